"""This module contains functions for detecting and filling gaps in the time values of an epi_df."""

import logging
from typing import Any

import polars as pl

from .epi_df import EpiDF, as_epi_df
from .time_steps import _ordinal_expr, _plus_n_steps_expr
from .types import TIME_COL

logger = logging.getLogger(__name__)


def _time_grid(x: EpiDF, full: bool) -> pl.DataFrame:
    """Returns every (group, time value) pair between the first and last time value of each group.

    If ``full`` is set, every group spans the first to the last time value of the whole table instead.
    """
    group_cols = x.group_colnames
    ordinal = _ordinal_expr(pl.col(TIME_COL), x.time_type)
    bounds = [pl.col(TIME_COL).min().alias("_start"), (ordinal.max() - ordinal.min()).alias("_n_steps")]

    if full:
        ranges = x.data.select(*bounds).join(x.data.select(group_cols).unique(), how="cross")
    else:
        ranges = x.data.group_by(group_cols).agg(*bounds)

    return (
        ranges.with_columns(pl.int_ranges(0, pl.col("_n_steps") + 1).alias("_step"))
        .explode("_step")
        .select(
            *group_cols,
            _plus_n_steps_expr(pl.col("_start"), pl.col("_step"), x.time_type)
            .cast(x.data.schema[TIME_COL])
            .alias(TIME_COL),
        )
    )


def complete(x: EpiDF | pl.DataFrame, fill: dict[str, Any] | None = None, full: bool = False) -> EpiDF:
    """Adds rows for the time points missing from each group of an epi_df.

    Args:
        x: The epi_df.
        fill: A mapping from value columns to the value to use in the added rows. Columns not named here are
            null in the added rows. Existing nulls are left untouched.
        full: If ``True``, every group is completed over the time range of the whole table rather than over
            its own time range.

    Returns:
        The completed epi_df, sorted by its key columns.

    Raises:
        ValueError: If ``fill`` names a key column or a column not in the data.

    Examples:
        >>> from datetime import date
        >>> x = as_epi_df(pl.DataFrame({
        ...     "geo_value": ["ca", "ca", "ny"],
        ...     "time_value": [date(2022, 1, 1), date(2022, 1, 15), date(2022, 1, 8)],
        ...     "cases": [1, 3, 2],
        ... }), time_type="week", as_of=date(2022, 2, 1))
        >>> complete(x).data.rows()
        [('ca', datetime.date(2022, 1, 1), 1), ('ca', datetime.date(2022, 1, 8), None), ('ca', datetime.date(2022, 1, 15), 3), ('ny', datetime.date(2022, 1, 8), 2)]
        >>> complete(x, fill={"cases": 0}, full=True).data["cases"].to_list()
        [1, 0, 3, 0, 2, 0]
        >>> complete(x, fill={"geo_value": "ca"})
        Traceback (most recent call last):
            ...
        ValueError: fill can only name value columns ['cases']. Got: ['geo_value']
    """
    x = as_epi_df(x)
    fill = fill or {}

    invalid = [c for c in fill if c not in x.value_colnames]
    if invalid:
        raise ValueError(f"fill can only name value columns {x.value_colnames}. Got: {invalid}")

    if x.data.is_empty():
        return x

    grid = _time_grid(x, full)
    out = grid.join(x.data.with_columns(pl.lit(True).alias("_observed")), on=x.key_colnames, how="left")

    n_added = out.select(pl.col("_observed").is_null().sum()).item()
    logger.info(f"Adding {n_added:,} rows for missing time values.")

    is_added = pl.col("_observed").is_null()
    out = out.with_columns(
        pl.when(is_added).then(pl.lit(value).cast(x.data.schema[c])).otherwise(pl.col(c)).alias(c)
        for c, value in fill.items()
    )

    return x.with_data(out.drop("_observed").select(x.data.columns).sort(x.key_colnames))


def detect_gaps(x: EpiDF | pl.DataFrame, full: bool = False) -> pl.DataFrame:
    """Returns the key columns of every time point missing from a group of an epi_df.

    See ``complete`` for the meaning of ``full``.

    Examples:
        >>> x = as_epi_df(pl.DataFrame({
        ...     "geo_value": ["ca", "ca", "ca", "ny"],
        ...     "time_value": [202151, 202201, 202202, 202152],
        ...     "cases": [1, 3, 2, 4],
        ... }), time_type="yearweek", as_of=202210)
        >>> detect_gaps(x).rows()
        [('ca', 202152)]
        >>> detect_gaps(x, full=True).rows()
        [('ca', 202152), ('ny', 202151), ('ny', 202201), ('ny', 202202)]
    """
    x = as_epi_df(x)
    if x.data.is_empty():
        return x.data.select(x.key_colnames)

    return _time_grid(x, full).join(x.data, on=x.key_colnames, how="anti").sort(x.key_colnames)
