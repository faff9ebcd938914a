import math
from datetime import date

import polars as pl
import pytest

from epiframe import as_epi_df, epi_slide, epi_slide_mean, epi_slide_opt, epi_slide_sum

from .utils import assert_df_equal


@pytest.fixture
def x():
    return as_epi_df(
        pl.DataFrame(
            {
                "geo_value": ["ca"] * 4 + ["ny"] * 2,
                "time_value": [date(2022, 1, d) for d in (1, 2, 3, 5)] + [date(2022, 1, 1), date(2022, 1, 2)],
                "cases": [1, 2, 3, 4, 10, 20],
            }
        ),
        as_of=date(2022, 1, 6),
    )


@pytest.fixture
def x_by_age():
    return as_epi_df(
        pl.DataFrame(
            {
                "geo_value": ["ca"] * 4,
                "age_group": ["old", "old", "young", "young"],
                "time_value": [date(2022, 1, 1), date(2022, 1, 2)] * 2,
                "cases": [1, 2, 10, 20],
            }
        ),
        other_keys=["age_group"],
        as_of=date(2022, 1, 6),
    )


def test_epi_slide_mean_right_aligned(x):
    out = epi_slide_mean(x, "cases", 7)

    want = x.data.with_columns(cases_7dav=pl.Series([1.0, 1.5, 2.0, 2.5, 10.0, 15.0]))
    assert_df_equal(want, out.data, "7 day trailing mean")
    assert (out.geo_type, out.time_type, out.as_of) == (x.geo_type, x.time_type, x.as_of)


def test_epi_slide_center_even_window_extends_backwards(x):
    out = epi_slide_sum(x, "cases", 4, align="center")
    assert out.data["cases_4dcsum"].to_list() == [3, 6, 6, 7, 30, 30]


def test_epi_slide_count_reflects_missing_time_values(x):
    out = epi_slide_opt(x, "cases", "count", 3)
    assert out.data["cases_3dcount"].to_list() == [1, 2, 3, 2, 1, 2]


def test_epi_slide_cumulative(x):
    out = epi_slide_sum(x, "cases", math.inf)
    assert out.data["cases_cumsum"].to_list() == [1, 3, 6, 10, 10, 30]

    with pytest.raises(ValueError, match="requires align='right'"):
        epi_slide_sum(x, "cases", math.inf, align="center")


def test_epi_slide_ref_time_values(x):
    out = epi_slide_sum(x, "cases", 2, align="left", ref_time_values=[date(2022, 1, 2)])
    assert out.data.select("geo_value", "cases_2dlsum").rows() == [("ca", 5), ("ny", 20)]

    out = epi_slide_sum(x, "cases", 2, align="left", ref_time_values=[date(2022, 1, 2)], all_rows=True)
    assert out.data["cases_2dlsum"].to_list() == [None, 5, None, None, None, 20]
    assert len(out) == len(x)


def test_epi_slide_group_by(x_by_age):
    out = epi_slide_sum(x_by_age, "cases", 2, group_by=["geo_value"], new_col_names=["total"])
    assert out.data["total"].to_list() == [11, 33, 11, 33]

    out = epi_slide_sum(x_by_age, "cases", 2)
    assert out.data["cases_2dsum"].to_list() == [1, 3, 10, 30]

    with pytest.raises(ValueError, match="group_by can only name the non-time key columns"):
        epi_slide_sum(x_by_age, "cases", 2, group_by=["time_value"])


def test_epi_slide_without_groups(x):
    out = epi_slide(x, pl.col("cases").sum().alias("total"), 1, group_by=[])
    assert out.data["total"].to_list() == [11, 22, 3, 4, 11, 22]

    out = epi_slide(x, lambda w, key, t: w["cases"].sum(), 1, new_col_name="total", group_by=[])
    assert out.data["total"].to_list() == [11, 22, 3, 4, 11, 22]


def test_epi_slide_callable_arguments(x):
    calls = []

    def f(window_df, group_key, ref_time_value):
        calls.append((group_key, ref_time_value))
        return window_df["time_value"].min()

    out = epi_slide(x, f, 2, new_col_name="window_start")

    assert calls == [
        ({"geo_value": "ca"}, date(2022, 1, 1)),
        ({"geo_value": "ca"}, date(2022, 1, 2)),
        ({"geo_value": "ca"}, date(2022, 1, 3)),
        ({"geo_value": "ca"}, date(2022, 1, 5)),
        ({"geo_value": "ny"}, date(2022, 1, 1)),
        ({"geo_value": "ny"}, date(2022, 1, 2)),
    ]
    assert out.data["window_start"].to_list() == [
        date(2022, 1, 1),
        date(2022, 1, 1),
        date(2022, 1, 2),
        date(2022, 1, 5),
        date(2022, 1, 1),
        date(2022, 1, 1),
    ]


def test_epi_slide_callable_returning_dataframe(x):
    def f(w, key, t):
        return w.select(pl.col("cases").min().alias("lo"), pl.col("cases").max().alias("hi"))

    out = epi_slide(x, f, 2)
    assert out.data.select("lo", "hi").rows() == [(1, 1), (1, 2), (2, 3), (4, 4), (10, 10), (10, 20)]

    with pytest.raises(ValueError, match="must return one row"):
        epi_slide(x, lambda w, key, t: w.select(pl.col("cases").alias("window_cases")), 3)


def test_epi_slide_callable_cannot_return_key_columns(x):
    with pytest.raises(ValueError, match="New column\\(s\\) 'geo_value' would overwrite existing columns"):
        epi_slide(x, lambda w, key, t: {"geo_value": "zz", "s": w["cases"].sum()}, 2)

    with pytest.raises(ValueError, match="New column\\(s\\) 'time_value' would overwrite existing columns"):
        epi_slide(
            x, lambda w, key, t: w.select(pl.col("time_value").max(), pl.col("cases").sum().alias("s")), 2
        )

    with pytest.raises(ValueError, match="New column\\(s\\) 'cases' would overwrite existing columns"):
        epi_slide(x, lambda w, key, t: {"cases": w["cases"].sum()}, 2)


def test_epi_slide_yearweek_across_year_boundary():
    x = as_epi_df(
        pl.DataFrame(
            {"geo_value": ["ca"] * 4, "time_value": [202152, 202201, 202202, 202204], "cases": [1, 2, 3, 4]}
        ),
        time_type="yearweek",
        as_of=202210,
    )
    out = epi_slide_sum(x, "cases", 2)
    assert out.data["cases_2wsum"].to_list() == [1, 3, 5, 4]


def test_epi_slide_yearmonth():
    x = as_epi_df(
        pl.DataFrame(
            {
                "geo_value": ["ca"] * 4,
                "time_value": [date(2021, 11, 1), date(2021, 12, 1), date(2022, 1, 1), date(2022, 3, 1)],
                "cases": [1, 2, 3, 4],
            }
        ),
        as_of=date(2022, 4, 1),
    )
    assert x.time_type == "yearmonth"

    out = epi_slide_mean(x, "cases", 3)
    assert out.data["cases_3mav"].to_list() == [1.0, 1.5, 2.0, 3.5]


def test_epi_slide_duration_window_size():
    x = as_epi_df(
        pl.DataFrame(
            {
                "geo_value": ["ca"] * 3,
                "time_value": [date(2022, 1, 1), date(2022, 1, 8), date(2022, 1, 15)],
                "cases": [1, 2, 3],
            }
        ),
        as_of=date(2022, 2, 1),
    )
    assert x.time_type == "week"

    out = epi_slide_sum(x, "cases", "14 days")
    assert out.data["cases_2wsum"].to_list() == [1, 3, 5]


def test_epi_slide_opt_names(x):
    out = epi_slide_mean(x, "cases", 7, suffix="_{n}{time_unit_abbr}_avg")
    assert "cases_7d_avg" in out.data.columns

    out = epi_slide_mean(x, "cases", 7, new_col_names=["smoothed"])
    assert out.data.columns[-1] == "smoothed"

    with pytest.raises(ValueError, match="one name per column"):
        epi_slide_mean(x, "cases", 7, new_col_names=["a", "b"])

    with pytest.raises(ValueError, match="would overwrite existing columns"):
        epi_slide_mean(x, "cases", 7, new_col_names=["cases"])


def test_epi_slide_invalid_window(x):
    with pytest.raises(ValueError, match="window_size must be a positive integer"):
        epi_slide_sum(x, "cases", 0)

    with pytest.raises(ValueError, match="align must be one of"):
        epi_slide_sum(x, "cases", 3, align="middle")


def test_epi_slide_accepts_plain_dataframes(x):
    out = epi_slide_sum(x.data, "cases", 2)
    assert out.data["cases_2dsum"].to_list() == [1, 3, 5, 4, 10, 30]


def test_epi_slide_empty():
    x = as_epi_df(
        pl.DataFrame(schema={"geo_value": pl.String, "time_value": pl.Date, "cases": pl.Int64}),
        time_type="day",
        as_of=date(2022, 1, 1),
    )
    out = epi_slide_mean(x, "cases", 7)
    assert out.data.columns == ["geo_value", "time_value", "cases", "cases_7dav"]
    assert len(out) == 0
