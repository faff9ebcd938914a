"""This module contains calendar-aware arithmetic over time values of the supported time types.

Every time type is a granularity: one "step" of a ``week`` is seven days, one step of a ``yearmonth`` is a
calendar month, and one step of a ``yearweek`` moves to the next ISO week. Each time value also maps to an
integer time ordinal such that consecutive steps differ by exactly one; windows are defined over ordinals.

The public functions accept a ``polars.Expr``, a ``polars.Series`` or a python scalar and return the same
kind of object.
"""

import math
from collections.abc import Callable
from datetime import date, datetime, timedelta

import polars as pl

from .types import TIME_TYPES
from .utils import parse_timedelta

TimeLike = pl.Expr | pl.Series | date | datetime | int

# The number of days in one step, for the time types that have a fixed step length.
STEP_DAYS = {"day": 1, "week": 7, "yearweek": 7}


def _check_time_type(time_type: str) -> None:
    if time_type not in TIME_TYPES:
        raise ValueError(f"Unrecognized time_type '{time_type}'. Options are: {', '.join(TIME_TYPES)}.")


def _evaluate(x: TimeLike, build: Callable[[pl.Expr], pl.Expr]) -> TimeLike:
    if isinstance(x, pl.Expr):
        return build(x)
    if isinstance(x, pl.Series):
        return pl.select(build(pl.lit(x))).to_series().alias(x.name)
    return pl.select(build(pl.lit(x))).item()


def _offset_str(n: int | pl.Expr, unit: str) -> str | pl.Expr:
    if isinstance(n, pl.Expr):
        return pl.format("{}" + unit, n)
    return f"{n}{unit}"


def _yearweek_to_date(yearweek: pl.Expr) -> pl.Expr:
    """Returns the Monday of the ISO week encoded as ``YYYYWW``.

    Week 1 of an ISO year is the week containing January 4th.
    """
    jan4 = pl.date(yearweek // 100, 1, 4)
    days = (
        jan4.cast(pl.Int64)
        - jan4.dt.weekday().cast(pl.Int64)
        + 1
        + (yearweek.cast(pl.Int64) % 100 - 1) * 7
    )
    return days.cast(pl.Int32).cast(pl.Date)


def _date_to_yearweek(dt: pl.Expr) -> pl.Expr:
    return dt.dt.iso_year().cast(pl.Int64) * 100 + dt.dt.week().cast(pl.Int64)


def _plus_n_steps_expr(x: pl.Expr, n: int | pl.Expr, time_type: str) -> pl.Expr:
    match time_type:
        case "day":
            return x.dt.offset_by(_offset_str(n, "d"))
        case "week":
            return x.dt.offset_by(_offset_str(n, "w"))
        case "yearmonth":
            return x.dt.offset_by(_offset_str(n, "mo"))
        case "yearweek":
            return _date_to_yearweek(_yearweek_to_date(x).dt.offset_by(_offset_str(n, "w")))
        case _:
            return x + n


def _ordinal_expr(x: pl.Expr, time_type: str) -> pl.Expr:
    match time_type:
        case "day":
            return x.cast(pl.Date).cast(pl.Int64)
        case "week":
            return x.cast(pl.Date).cast(pl.Int64) // 7
        case "yearweek":
            return _yearweek_to_date(x).cast(pl.Int64) // 7
        case "yearmonth":
            return x.dt.year().cast(pl.Int64) * 12 + x.dt.month().cast(pl.Int64) - 1
        case _:
            return x.cast(pl.Int64)


def time_plus_n_steps(x: TimeLike, n: int | pl.Expr, time_type: str) -> TimeLike:
    """Advances time values by ``n`` steps of the given time type.

    Args:
        x: The time values to advance. Can be a polars expression, a polars series or a single value.
        n: The number of steps. Negative values move backwards in time.
        time_type: The granularity of ``x``.

    Returns:
        The advanced time values, of the same kind as ``x``.

    Raises:
        ValueError: If ``time_type`` is not recognized.

    Examples:
        >>> from datetime import date
        >>> time_plus_n_steps(date(2022, 1, 1), 3, "day")
        datetime.date(2022, 1, 4)
        >>> time_plus_n_steps(date(2022, 1, 1), 1, "week")
        datetime.date(2022, 1, 8)
        >>> time_plus_n_steps(date(2022, 12, 1), 2, "yearmonth")
        datetime.date(2023, 2, 1)
        >>> time_plus_n_steps(202152, 1, "yearweek")
        202201
        >>> time_plus_n_steps(202053, 1, "yearweek")
        202101
        >>> time_plus_n_steps(2020, 5, "year")
        2025
        >>> time_plus_n_steps(pl.Series("t", [date(2022, 1, 31), date(2022, 2, 28)]), 1, "day").to_list()
        [datetime.date(2022, 2, 1), datetime.date(2022, 3, 1)]
        >>> df = pl.DataFrame({"t": [date(2022, 1, 1), date(2022, 1, 1)], "n": [1, -1]})
        >>> df.select(time_plus_n_steps(pl.col("t"), pl.col("n"), "week"))["t"].to_list()
        [datetime.date(2022, 1, 8), datetime.date(2021, 12, 25)]
        >>> time_plus_n_steps(1, 1, "fortnight")
        Traceback (most recent call last):
            ...
        ValueError: Unrecognized time_type 'fortnight'. Options are: day, week, yearweek, yearmonth, year, integer.
    """
    _check_time_type(time_type)
    return _evaluate(x, lambda e: _plus_n_steps_expr(e, n, time_type))


def time_minus_n_steps(x: TimeLike, n: int | pl.Expr, time_type: str) -> TimeLike:
    """Moves time values back by ``n`` steps of the given time type.

    Examples:
        >>> from datetime import date
        >>> time_minus_n_steps(date(2022, 1, 1), 1, "week")
        datetime.date(2021, 12, 25)
        >>> time_minus_n_steps(date(2022, 3, 1), 1, "yearmonth")
        datetime.date(2022, 2, 1)
        >>> time_minus_n_steps(202201, 1, "yearweek")
        202152
        >>> time_minus_n_steps(202101, 1, "yearweek")
        202053
    """
    return time_plus_n_steps(x, -n, time_type)


def time_ordinal(x: TimeLike, time_type: str) -> TimeLike:
    """Maps time values to integer ordinals in which consecutive time steps differ by one.

    Examples:
        >>> from datetime import date
        >>> time_ordinal(date(1970, 1, 2), "day")
        1
        >>> time_ordinal(date(2022, 1, 8), "week") - time_ordinal(date(2022, 1, 1), "week")
        1
        >>> time_ordinal(date(2022, 3, 1), "yearmonth") - time_ordinal(date(2021, 3, 1), "yearmonth")
        12
        >>> time_ordinal(202101, "yearweek") - time_ordinal(202053, "yearweek")
        1
    """
    _check_time_type(time_type)
    return _evaluate(x, lambda e: _ordinal_expr(e, time_type))


def n_steps_between(start: TimeLike, end: TimeLike, time_type: str) -> TimeLike:
    """Counts the number of time steps from ``start`` to ``end``.

    Examples:
        >>> from datetime import date
        >>> n_steps_between(date(2022, 1, 1), date(2022, 1, 29), "week")
        4
        >>> n_steps_between(date(2022, 1, 1), date(2021, 11, 1), "yearmonth")
        -2
        >>> n_steps_between(202150, 202203, "yearweek")
        5
    """
    return time_ordinal(end, time_type) - time_ordinal(start, time_type)


def guess_time_type(time_values: pl.Series) -> str:
    """Guesses the time type of a column of time values.

    Args:
        time_values: The time values.

    Returns:
        The name of the time type.

    Raises:
        ValueError: If the time values are of a type no time type supports.

    Examples:
        >>> from datetime import date, datetime
        >>> guess_time_type(pl.Series([date(2022, 1, 1), date(2022, 1, 2)]))
        'day'
        >>> guess_time_type(pl.Series([date(2022, 1, 1), date(2022, 1, 8), date(2022, 1, 22)]))
        'week'
        >>> guess_time_type(pl.Series([date(2022, 1, 1), date(2022, 2, 1), date(2022, 4, 1)]))
        'yearmonth'
        >>> guess_time_type(pl.Series([date(2022, 1, 1)]))
        'day'
        >>> guess_time_type(pl.Series([datetime(2022, 1, 1), datetime(2022, 1, 2)]))
        'day'
        >>> guess_time_type(pl.Series([2019, 2020, 2021]))
        'year'
        >>> guess_time_type(pl.Series([1, 2, 3]))
        'integer'
        >>> guess_time_type(pl.Series([datetime(2022, 1, 1, 12)]))
        Traceback (most recent call last):
            ...
        ValueError: Sub-daily time values are not supported.
        >>> guess_time_type(pl.Series(["2022-01-01"]))
        Traceback (most recent call last):
            ...
        ValueError: Cannot guess a time_type for time values of type String.
    """
    dtype = time_values.dtype
    values = time_values.drop_nulls().unique().sort()

    if dtype == pl.Date:
        if values.len() > 1:
            min_gap_days = values.diff().drop_nulls().dt.total_days().min()
            if (values.dt.day() == 1).all() and min_gap_days >= 28:
                return "yearmonth"
            if values.dt.weekday().n_unique() == 1:
                return "week"
        return "day"
    elif dtype == pl.Datetime:
        if (values.dt.truncate("1d") == values).all():
            return "day"
        raise ValueError("Sub-daily time values are not supported.")
    elif dtype.is_integer():
        if values.len() > 0 and values.min() >= 1582 and values.max() <= 9999:
            return "year"
        return "integer"

    raise ValueError(f"Cannot guess a time_type for time values of type {dtype}.")


def validate_time_values(time_values: pl.Series, time_type: str) -> None:
    """Checks that time values are consistent with a time type.

    Raises:
        ValueError: If the time type is not recognized or the values are inconsistent with it.
        TypeError: If the values have a data type the time type does not support.

    Examples:
        >>> from datetime import date
        >>> validate_time_values(pl.Series([date(2022, 1, 1), date(2022, 1, 8)]), "week")
        >>> validate_time_values(pl.Series([202152, 202201]), "yearweek")
        >>> validate_time_values(pl.Series([date(2022, 1, 1), date(2022, 1, 2)]), "week")
        Traceback (most recent call last):
            ...
        ValueError: time_type 'week' requires all time values to fall on the same weekday.
        >>> validate_time_values(pl.Series([date(2022, 1, 2)]), "yearmonth")
        Traceback (most recent call last):
            ...
        ValueError: time_type 'yearmonth' requires every time value to be the first day of a month.
        >>> validate_time_values(pl.Series([202153, 202200, 202201]), "yearweek")
        Traceback (most recent call last):
            ...
        ValueError: Invalid ISO year-week (YYYYWW) time values: [202153, 202200]
        >>> validate_time_values(pl.Series([1, 2]), "day")
        Traceback (most recent call last):
            ...
        TypeError: time_type 'day' requires Date or Datetime time values. Got Int64.
        >>> validate_time_values(pl.Series([date(2022, 1, 1)]), "integer")
        Traceback (most recent call last):
            ...
        TypeError: time_type 'integer' requires integer time values. Got Date.
    """
    _check_time_type(time_type)

    dtype = time_values.dtype
    values = time_values.drop_nulls()

    match time_type:
        case "day":
            if not (dtype == pl.Date or dtype == pl.Datetime):
                raise TypeError(f"time_type 'day' requires Date or Datetime time values. Got {dtype}.")
        case "week" | "yearmonth":
            if dtype != pl.Date:
                raise TypeError(f"time_type '{time_type}' requires Date time values. Got {dtype}.")
            if time_type == "week" and values.dt.weekday().n_unique() > 1:
                raise ValueError("time_type 'week' requires all time values to fall on the same weekday.")
            if time_type == "yearmonth" and not (values.dt.day() == 1).all():
                raise ValueError(
                    "time_type 'yearmonth' requires every time value to be the first day of a month."
                )
        case _:
            if not dtype.is_integer():
                raise TypeError(f"time_type '{time_type}' requires integer time values. Got {dtype}.")
            if time_type == "yearweek":
                round_trip = pl.select(_date_to_yearweek(_yearweek_to_date(pl.lit(values)))).to_series()
                invalid = values.filter(round_trip != values)
                if invalid.len() > 0:
                    raise ValueError(f"Invalid ISO year-week (YYYYWW) time values: {invalid.to_list()[:5]}")


def parse_window_size(window_size: int | float | str | timedelta, time_type: str) -> int | float:
    """Converts a window size given as a step count, infinity or a duration into a number of time steps.

    Durations are only meaningful for the time types with a fixed step length and must be a whole number of
    steps. The returned value is validated further when the window is built.

    Examples:
        >>> parse_window_size(7, "day")
        7
        >>> parse_window_size("14 days", "week")
        2
        >>> parse_window_size(timedelta(days=21), "yearweek")
        3
        >>> parse_window_size("inf", "yearmonth")
        inf
        >>> parse_window_size("10 days", "week")
        Traceback (most recent call last):
            ...
        ValueError: Window size '10 days' is not a whole number of 'week' steps.
        >>> parse_window_size("30 days", "yearmonth")
        Traceback (most recent call last):
            ...
        ValueError: Duration window sizes need a time type with a fixed step length. Got 'yearmonth'.
    """
    if isinstance(window_size, str):
        if window_size.strip().lower() in ("inf", "infinity"):
            return math.inf
        delta = parse_timedelta(window_size)
    elif isinstance(window_size, timedelta):
        delta = window_size
    else:
        return window_size

    if time_type not in STEP_DAYS:
        raise ValueError(
            f"Duration window sizes need a time type with a fixed step length. Got '{time_type}'."
        )

    step_days = STEP_DAYS[time_type]
    if delta.seconds or delta.microseconds or delta.days % step_days:
        raise ValueError(f"Window size '{window_size}' is not a whole number of '{time_type}' steps.")

    return delta.days // step_days
