"""This module contains the epi_df data structure and the functions that build and validate it.

An epi_df is a snapshot of epidemiological signals: a polars dataframe keyed by a ``geo_value`` column, any
number of additional key columns, and a ``time_value`` column, together with metadata describing the
geographic resolution, the time type, and the time at which the snapshot was taken.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import polars as pl
from polars.exceptions import ColumnNotFoundError

from .time_steps import guess_time_type, validate_time_values
from .types import GEO_COL, RESERVED_COLS, TIME_COL, VERSION_COL

logger = logging.getLogger(__name__)

# Columns that are recognized as the geographic or time key when the reserved names are missing.
GEO_COL_ALIASES = (
    "geo_values",
    "geo_id",
    "geos",
    "location",
    "jurisdiction",
    "fips",
    "county",
    "state",
    "province",
    "nation",
)
TIME_COL_ALIASES = ("time_values", "time", "date", "dates", "datetime", "week", "year")

STATE_ABBRS = frozenset(
    "ak al ar as az ca co ct dc de fl ga gu hi ia id il in ks ky la ma md me mi mn mo mp ms mt nc nd ne nh "
    "nj nm nv ny oh ok or pa pr ri sc sd tn tx ut va vi vt wa wi wv wy".split()
)

GEO_TYPES = ("state", "county", "hhs", "nation", "custom")


@dataclasses.dataclass
class EpiDF:
    """A keyed snapshot of epidemiological time series.

    Attributes:
        data: The underlying dataframe, sorted by the key columns.
        geo_type: The geographic resolution of ``geo_value``.
        time_type: The granularity of ``time_value``.
        as_of: The time at which this snapshot of the data was taken.
        other_keys: Key columns other than ``geo_value`` and ``time_value``.

    Examples:
        >>> from datetime import date
        >>> x = as_epi_df(
        ...     pl.DataFrame({
        ...         "geo_value": ["ca", "ca", "ny"],
        ...         "age_group": ["adult", "child", "adult"],
        ...         "time_value": [date(2022, 1, 1)] * 3,
        ...         "cases": [1, 2, 3],
        ...     }),
        ...     other_keys=["age_group"],
        ...     as_of=date(2022, 1, 5),
        ... )
        >>> x.key_colnames
        ['geo_value', 'age_group', 'time_value']
        >>> x.group_colnames
        ['geo_value', 'age_group']
        >>> x.value_colnames
        ['cases']
        >>> len(x)
        3
        >>> x.with_data(x.data.head(1)).as_of
        datetime.date(2022, 1, 5)
    """

    data: pl.DataFrame
    geo_type: str
    time_type: str
    as_of: Any
    other_keys: list[str] = dataclasses.field(default_factory=list)

    @property
    def group_colnames(self) -> list[str]:
        return [GEO_COL, *self.other_keys]

    @property
    def key_colnames(self) -> list[str]:
        return [*self.group_colnames, TIME_COL]

    @property
    def value_colnames(self) -> list[str]:
        keys = set(self.key_colnames)
        return [c for c in self.data.columns if c not in keys]

    def with_data(self, data: pl.DataFrame) -> EpiDF:
        """Returns a copy of this epi_df holding ``data`` in place of the current dataframe."""
        return dataclasses.replace(self, data=data)

    def __len__(self) -> int:
        return self.data.height


def guess_geo_type(geo_values: pl.Series) -> str:
    """Guesses the geographic resolution of a column of geo values.

    Examples:
        >>> guess_geo_type(pl.Series(["ca", "NY", "pr"]))
        'state'
        >>> guess_geo_type(pl.Series(["us"]))
        'nation'
        >>> guess_geo_type(pl.Series(["06037", "36061"]))
        'county'
        >>> guess_geo_type(pl.Series([1, 4, 10]))
        'hhs'
        >>> guess_geo_type(pl.Series(["north", "south"]))
        'custom'
    """
    values = geo_values.drop_nulls().unique()

    if values.dtype == pl.String:
        lowered = values.str.to_lowercase()
        if lowered.is_in(["us"]).all():
            return "nation"
        if lowered.is_in(list(STATE_ABBRS)).all():
            return "state"
        if values.str.contains(r"^\d{5}$").all():
            return "county"
    elif values.dtype.is_integer() and values.len() > 0 and values.min() >= 1 and values.max() <= 10:
        return "hhs"

    return "custom"


def _rename_aliased_column(df: pl.DataFrame, target: str, aliases: Sequence[str]) -> pl.DataFrame:
    if target in df.columns:
        return df

    for alias in aliases:
        if alias in df.columns:
            logger.warning(f"Column '{target}' is missing; using '{alias}' in its place.")
            return df.rename({alias: target})

    raise ColumnNotFoundError(
        f"Data must have a '{target}' column (or one of {', '.join(repr(a) for a in aliases)})."
    )


def as_epi_df(
    df: pl.DataFrame | EpiDF,
    geo_type: str | None = None,
    time_type: str | None = None,
    as_of: Any = None,
    other_keys: Sequence[str] = (),
) -> EpiDF:
    """Builds and validates an epi_df from a polars dataframe.

    Args:
        df: The dataframe. It must contain a ``geo_value`` and a ``time_value`` column (or a recognized alias
            of either) and any columns named in ``other_keys``. An ``EpiDF`` is returned unchanged.
        geo_type: The geographic resolution. Guessed from ``geo_value`` if not given.
        time_type: The granularity of ``time_value``. Guessed from the time values if not given.
        as_of: The time the snapshot was taken. Defaults to the maximum of a ``version`` column if there is
            one (the column is then dropped), and to the current time otherwise.
        other_keys: Additional key columns.

    Returns:
        The validated ``EpiDF``, sorted by its key columns.

    Raises:
        ColumnNotFoundError: If the geo or time column cannot be found.
        ValueError: If ``other_keys`` names a missing or reserved column, if any key is null, if the key
            columns are not unique, or if the time values are inconsistent with ``time_type``.

    Examples:
        >>> from datetime import date
        >>> df = pl.DataFrame({
        ...     "state": ["ny", "ca", "ca"],
        ...     "date": [date(2022, 1, 1), date(2022, 1, 2), date(2022, 1, 1)],
        ...     "cases": [3, 2, 1],
        ... })
        >>> x = as_epi_df(df, as_of=date(2022, 1, 10))
        >>> x.data.columns
        ['geo_value', 'time_value', 'cases']
        >>> x.data["cases"].to_list()
        [1, 2, 3]
        >>> x.geo_type, x.time_type
        ('state', 'day')
        >>> as_epi_df(df.with_columns(version=pl.lit(date(2022, 1, 3)))).as_of
        datetime.date(2022, 1, 3)
        >>> as_epi_df(df.rename({"state": "region"}))
        Traceback (most recent call last):
            ...
        polars.exceptions.ColumnNotFoundError: Data must have a 'geo_value' column (or one of ...).
        >>> as_epi_df(pl.concat([df, df.head(1)]))
        Traceback (most recent call last):
            ...
        ValueError: There cannot be more than one row with the same combination of geo_value, time_value. Found 1 duplicated key(s).
        >>> as_epi_df(df, other_keys=["age_group"])
        Traceback (most recent call last):
            ...
        ValueError: other_keys names columns that are not in the data: ['age_group']
        >>> as_epi_df(df, other_keys=["version"])
        Traceback (most recent call last):
            ...
        ValueError: other_keys cannot include the reserved columns 'geo_value', 'time_value', or 'version'.
    """
    if isinstance(df, EpiDF):
        return df

    if not isinstance(df, pl.DataFrame):
        raise TypeError(f"Data must be a polars.DataFrame. Got: {type(df)}.")

    other_keys = list(other_keys)
    if any(k in RESERVED_COLS for k in other_keys):
        raise ValueError(
            f"other_keys cannot include the reserved columns '{GEO_COL}', '{TIME_COL}', or '{VERSION_COL}'."
        )

    df = _rename_aliased_column(df, GEO_COL, GEO_COL_ALIASES)
    df = _rename_aliased_column(df, TIME_COL, TIME_COL_ALIASES)

    missing_keys = [k for k in other_keys if k not in df.columns]
    if missing_keys:
        raise ValueError(f"other_keys names columns that are not in the data: {missing_keys}")

    key_cols = [GEO_COL, *other_keys, TIME_COL]

    null_keys = [k for k in key_cols if df[k].null_count() > 0]
    if null_keys:
        raise ValueError(f"Key columns cannot contain nulls. Found nulls in: {null_keys}")

    n_duplicated = df.height - df.n_unique(subset=key_cols)
    if n_duplicated > 0:
        raise ValueError(
            f"There cannot be more than one row with the same combination of {', '.join(key_cols)}. "
            f"Found {n_duplicated} duplicated key(s)."
        )

    if time_type is None:
        time_type = guess_time_type(df[TIME_COL])
        logger.info(f"Guessed time_type '{time_type}'.")
    validate_time_values(df[TIME_COL], time_type)

    if geo_type is None:
        geo_type = guess_geo_type(df[GEO_COL])
        logger.info(f"Guessed geo_type '{geo_type}'.")

    if VERSION_COL in df.columns:
        if as_of is None:
            as_of = df[VERSION_COL].max()
            logger.info(f"Using the latest version {as_of} as the as_of time.")
        df = df.drop(VERSION_COL)
    elif as_of is None:
        as_of = datetime.now()

    value_cols = [c for c in df.columns if c not in key_cols]
    return EpiDF(
        data=df.select(*key_cols, *value_cols).sort(key_cols),
        geo_type=geo_type,
        time_type=time_type,
        as_of=as_of,
        other_keys=other_keys,
    )
