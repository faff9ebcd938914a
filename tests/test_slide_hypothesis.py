from datetime import date, timedelta

import polars as pl
from hypothesis import given, settings
from hypothesis import strategies as st
from polars.testing import assert_series_equal

from epiframe import as_epi_df, epi_slide_sum
from epiframe.types import SlideWindow

START = date(2020, 1, 1)
GEOS = ("ca", "ny", "tx")

ROWS = st.dictionaries(
    keys=st.tuples(st.sampled_from(GEOS), st.integers(min_value=0, max_value=60)),
    values=st.integers(min_value=-100, max_value=100),
    min_size=1,
    max_size=50,
)


@given(
    rows=ROWS,
    window_size=st.integers(min_value=1, max_value=20),
    align=st.sampled_from(["right", "center", "left"]),
)
@settings(max_examples=50)
def test_epi_slide_sum_matches_brute_force(rows: dict[tuple[str, int], int], window_size: int, align: str):
    """Tests that a sliding sum equals the sum over the rows whose time value is within the window."""

    df = pl.DataFrame(
        {
            "geo_value": [geo for geo, _ in rows],
            "time_value": [START + timedelta(days=offset) for _, offset in rows],
            "cases": list(rows.values()),
        }
    )
    x = as_epi_df(df, time_type="day", as_of=START + timedelta(days=100))

    try:
        out = epi_slide_sum(x, "cases", window_size, align=align, new_col_names=["total"])
    except Exception as e:
        raise AssertionError(
            f"epi_slide_sum failed with exception: {e}. df:\n{df}\nwindow_size: {window_size}, align: {align}"
        ) from e

    assert_series_equal(out.data["geo_value"], x.data["geo_value"])
    assert_series_equal(out.data["time_value"], x.data["time_value"])

    window = SlideWindow(window_size, align)
    for row in out.data.iter_rows(named=True):
        start = row["time_value"] - timedelta(days=window.before)
        end = row["time_value"] + timedelta(days=window.after)
        raw = x.data.filter(
            (pl.col("geo_value") == row["geo_value"])
            & (pl.col("time_value") >= start)
            & (pl.col("time_value") <= end)
        )
        assert raw["cases"].sum() == row["total"]


@given(rows=ROWS)
@settings(max_examples=25)
def test_cumulative_sum_matches_cum_sum(rows: dict[tuple[str, int], int]):
    df = pl.DataFrame(
        {
            "geo_value": [geo for geo, _ in rows],
            "time_value": [START + timedelta(days=offset) for _, offset in rows],
            "cases": list(rows.values()),
        }
    )
    x = as_epi_df(df, time_type="day", as_of=START + timedelta(days=100))

    out = epi_slide_sum(x, "cases", "inf")
    want = x.data.select(pl.col("cases").cum_sum().over("geo_value").alias("cases_cumsum"))["cases_cumsum"]
    assert_series_equal(out.data["cases_cumsum"], want)
