from collections.abc import Iterable
from datetime import timedelta

from pytimeparse import parse


def parse_timedelta(time_str: str | None = None) -> timedelta:
    """Parse a time string and return a timedelta object.

    Using time expression parser: https://github.com/wroberts/pytimeparse

    Args:
        time_str: The time string to parse.

    Returns:
        datetime.timedelta: The parsed timedelta object.

    Raises:
        ValueError: If the string cannot be parsed as a duration.

    Examples:
        >>> parse_timedelta("7 days")
        datetime.timedelta(days=7)
        >>> parse_timedelta("1 day")
        datetime.timedelta(days=1)
        >>> parse_timedelta("2 weeks")
        datetime.timedelta(days=14)
        >>> parse_timedelta()
        datetime.timedelta(0)
        >>> parse_timedelta("")
        datetime.timedelta(0)
        >>> parse_timedelta("a fortnight")
        Traceback (most recent call last):
            ...
        ValueError: Failed to parse a duration from 'a fortnight'
    """
    if not time_str:
        return timedelta(days=0)

    seconds = parse(time_str)
    if seconds is None:
        raise ValueError(f"Failed to parse a duration from '{time_str}'")

    return timedelta(seconds=seconds)


def check_new_col_names(existing: Iterable[str], new: Iterable[str]) -> None:
    """Raise an error if any of the new column names are duplicated or would overwrite existing ones.

    Examples:
        >>> check_new_col_names(["geo_value", "cases"], ["cases_7dav"])
        >>> check_new_col_names(["geo_value", "cases"], ["cases"])
        Traceback (most recent call last):
            ...
        ValueError: New column(s) 'cases' would overwrite existing columns.
        >>> check_new_col_names(["geo_value"], ["a", "a"])
        Traceback (most recent call last):
            ...
        ValueError: New column names must be unique. Got: ['a', 'a']
    """
    existing = set(existing)
    new = list(new)

    if len(set(new)) != len(new):
        raise ValueError(f"New column names must be unique. Got: {new}")

    clashes = [c for c in new if c in existing]
    if clashes:
        raise ValueError(f"New column(s) '{', '.join(clashes)}' would overwrite existing columns.")
