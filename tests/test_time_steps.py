from datetime import date, datetime, timedelta

import polars as pl
import pytest
from polars.testing import assert_series_equal

from epiframe import (
    guess_time_type,
    n_steps_between,
    time_minus_n_steps,
    time_ordinal,
    time_plus_n_steps,
)
from epiframe.time_steps import parse_window_size, validate_time_values


@pytest.mark.parametrize(
    "value,n,time_type,want",
    [
        (date(2022, 2, 28), 1, "day", date(2022, 3, 1)),
        (date(2020, 2, 28), 1, "day", date(2020, 2, 29)),
        (date(2022, 12, 31), 1, "day", date(2023, 1, 1)),
        (date(2022, 1, 1), 52, "week", date(2022, 12, 31)),
        (date(2022, 11, 1), 3, "yearmonth", date(2023, 2, 1)),
        (202052, 1, "yearweek", 202053),
        (202053, 1, "yearweek", 202101),
        (202101, 51, "yearweek", 202152),
        (202152, 1, "yearweek", 202201),
        (2021, 1, "year", 2022),
        (7, 3, "integer", 10),
    ],
)
def test_time_plus_n_steps(value, n, time_type, want):
    assert time_plus_n_steps(value, n, time_type) == want
    assert time_minus_n_steps(want, n, time_type) == value


def test_time_plus_n_steps_datetime():
    got = time_plus_n_steps(datetime(2022, 3, 12), 2, "day")
    assert got == datetime(2022, 3, 14)


def test_time_plus_n_steps_series_keeps_name_and_dtype():
    s = pl.Series("time_value", [202150, 202151, 202152], dtype=pl.Int64)
    got = time_plus_n_steps(s, 2, "yearweek")
    assert_series_equal(got, pl.Series("time_value", [202152, 202201, 202202], dtype=pl.Int64))


def test_time_plus_n_steps_expr_with_column_steps():
    df = pl.DataFrame({"t": [date(2022, 1, 1)] * 3, "n": [0, 1, 12]})
    got = df.select(time_plus_n_steps(pl.col("t"), pl.col("n"), "yearmonth"))["t"].to_list()
    assert got == [date(2022, 1, 1), date(2022, 2, 1), date(2023, 1, 1)]


def test_unknown_time_type():
    with pytest.raises(ValueError, match="Unrecognized time_type 'month'"):
        time_plus_n_steps(date(2022, 1, 1), 1, "month")
    with pytest.raises(ValueError, match="Unrecognized time_type"):
        time_ordinal(date(2022, 1, 1), "month")


def test_time_ordinal_consecutive_steps():
    yearweeks = pl.Series([202051, 202052, 202053, 202101, 202102])
    assert time_ordinal(yearweeks, "yearweek").diff().drop_nulls().to_list() == [1, 1, 1, 1]

    months = pl.Series([date(2021, 11, 1), date(2021, 12, 1), date(2022, 1, 1)])
    assert time_ordinal(months, "yearmonth").diff().drop_nulls().to_list() == [1, 1]

    weeks = pl.Series([date(2022, 1, 1), date(2022, 1, 8), date(2022, 1, 15)])
    assert time_ordinal(weeks, "week").diff().drop_nulls().to_list() == [1, 1]


def test_yearweek_and_week_ordinals_agree():
    # 2022-01-03 is the Monday of ISO week 2022-01.
    assert time_ordinal(202201, "yearweek") == time_ordinal(date(2022, 1, 3), "week")


def test_n_steps_between():
    assert n_steps_between(date(2022, 1, 1), date(2022, 1, 31), "day") == 30
    assert n_steps_between(202101, 202053, "yearweek") == -1
    assert n_steps_between(2010, 2020, "year") == 10


@pytest.mark.parametrize(
    "values,want",
    [
        ([date(2022, 1, 1), date(2022, 1, 3)], "day"),
        ([date(2022, 1, 3), date(2022, 1, 17)], "week"),
        ([date(2022, 1, 1), date(2022, 3, 1)], "yearmonth"),
        ([datetime(2022, 1, 1), datetime(2022, 1, 5)], "day"),
        ([1990, 2000], "year"),
        ([0, 1, 2], "integer"),
    ],
)
def test_guess_time_type(values, want):
    assert guess_time_type(pl.Series(values)) == want


def test_guess_time_type_rejects_strings_and_sub_daily():
    with pytest.raises(ValueError, match="Cannot guess a time_type"):
        guess_time_type(pl.Series(["2022-01-01"]))
    with pytest.raises(ValueError, match="Sub-daily"):
        guess_time_type(pl.Series([datetime(2022, 1, 1, 6), datetime(2022, 1, 2)]))


def test_validate_time_values():
    validate_time_values(pl.Series([date(2022, 1, 1), date(2022, 2, 1)]), "yearmonth")
    validate_time_values(pl.Series([202053, 202101]), "yearweek")
    validate_time_values(pl.Series([5, 6]), "integer")

    with pytest.raises(ValueError, match="Invalid ISO year-week"):
        validate_time_values(pl.Series([202153]), "yearweek")
    with pytest.raises(TypeError, match="requires integer time values"):
        validate_time_values(pl.Series([date(2022, 1, 1)]), "yearweek")
    with pytest.raises(TypeError, match="requires Date time values"):
        validate_time_values(pl.Series([1, 2]), "week")


@pytest.mark.parametrize(
    "window_size,time_type,want",
    [
        (3, "week", 3),
        ("7 days", "day", 7),
        ("2 weeks", "week", 2),
        (timedelta(weeks=4), "yearweek", 4),
        ("Inf", "integer", float("inf")),
    ],
)
def test_parse_window_size(window_size, time_type, want):
    assert parse_window_size(window_size, time_type) == want


def test_parse_window_size_errors():
    with pytest.raises(ValueError, match="Failed to parse a duration"):
        parse_window_size("a fortnight or so", "day")
    with pytest.raises(ValueError, match="not a whole number"):
        parse_window_size("36 hours", "day")
    with pytest.raises(ValueError, match="fixed step length"):
        parse_window_size("365 days", "year")
