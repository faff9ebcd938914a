"""This module contains the epi_archive data structure, which records every reported version of a signal.

An archive is a dataframe keyed by the epi_df keys plus a ``version`` column holding the issue date of each
row. The snapshot of the data "as of" a version is recovered by taking, for every key, the row with the
latest version not after it.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence
from typing import Any

import polars as pl
from polars.exceptions import ColumnNotFoundError

from .epi_df import GEO_COL_ALIASES, TIME_COL_ALIASES, EpiDF, _rename_aliased_column, guess_geo_type
from .time_steps import guess_time_type, time_minus_n_steps, validate_time_values
from .types import GEO_COL, RESERVED_COLS, TIME_COL, VERSION_COL

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class EpiArchive:
    """The full version history of a set of epidemiological signals.

    Attributes:
        data: The versioned data, sorted by the key columns and ``version``.
        geo_type: The geographic resolution of ``geo_value``.
        time_type: The granularity of ``time_value``.
        other_keys: Key columns other than ``geo_value``, ``time_value`` and ``version``.
        versions_end: The last version the archive is known to be complete through. Versions after the last
            recorded one but not after this reported no changes.
        clobberable_versions_start: The earliest version whose data may still be overwritten without a new
            version being assigned, or ``None`` if no version can be.
    """

    data: pl.DataFrame
    geo_type: str
    time_type: str
    other_keys: list[str]
    versions_end: Any
    clobberable_versions_start: Any = None

    @property
    def key_colnames(self) -> list[str]:
        return [GEO_COL, *self.other_keys, TIME_COL, VERSION_COL]

    @property
    def value_colnames(self) -> list[str]:
        keys = set(self.key_colnames)
        return [c for c in self.data.columns if c not in keys]


def _compactify(data: pl.DataFrame, key_cols: list[str], value_cols: list[str]) -> pl.DataFrame:
    """Drops rows that repeat the values of the previous version of the same key.

    ``data`` must be sorted by ``key_cols`` and ``version``.
    """
    if not value_cols:
        return data

    has_previous = pl.col(VERSION_COL).shift(1).over(key_cols).is_not_null()
    unchanged = pl.all_horizontal(pl.col(c).eq_missing(pl.col(c).shift(1).over(key_cols)) for c in value_cols)

    compacted = data.filter(~(has_previous & unchanged))
    logger.info(f"Dropped {data.height - compacted.height:,} redundant rows while compactifying.")
    return compacted


def as_epi_archive(
    df: pl.DataFrame,
    geo_type: str | None = None,
    time_type: str | None = None,
    other_keys: Sequence[str] = (),
    compactify: bool = True,
    versions_end: Any = None,
    clobberable_versions_start: Any = None,
) -> EpiArchive:
    """Builds and validates an epi_archive from a polars dataframe.

    Args:
        df: The versioned data. It must contain ``geo_value``, ``time_value`` (or recognized aliases of
            either), ``version`` and any columns named in ``other_keys``.
        geo_type: The geographic resolution. Guessed if not given.
        time_type: The granularity of ``time_value``. Guessed if not given.
        other_keys: Additional key columns.
        compactify: Whether to drop rows that repeat the previous version's values for the same key.
        versions_end: The last version the archive is complete through. Defaults to the latest version.
        clobberable_versions_start: The earliest version that may still be overwritten.

    Raises:
        ColumnNotFoundError: If a required column is missing.
        ValueError: If keys or versions contain nulls, ``(keys, version)`` is not unique, or the version
            bounds are inconsistent with the data.

    Examples:
        >>> from datetime import date
        >>> df = pl.DataFrame({
        ...     "geo_value": ["ca", "ca", "ca", "ca", "ny", "ny"],
        ...     "time_value": [date(2022, 1, 1)] * 3 + [date(2022, 1, 2)] + [date(2022, 1, 1)] * 2,
        ...     "version": [date(2022, 1, d) for d in (2, 3, 4, 3, 2, 4)],
        ...     "cases": [5, 6, 6, 7, 1, None],
        ... })
        >>> archive = as_epi_archive(df)
        >>> archive.data.height
        5
        >>> as_epi_archive(df, compactify=False).data.height
        6
        >>> archive.versions_end
        datetime.date(2022, 1, 4)
        >>> as_epi_archive(df, versions_end=date(2022, 1, 1))
        Traceback (most recent call last):
            ...
        ValueError: versions_end (2022-01-01) cannot be before the latest version in the data (2022-01-04).
        >>> as_epi_archive(df.drop("version"))
        Traceback (most recent call last):
            ...
        polars.exceptions.ColumnNotFoundError: Archive data must have a 'version' column.
        >>> as_epi_archive(pl.concat([df, df.head(1)]))
        Traceback (most recent call last):
            ...
        ValueError: There cannot be more than one row with the same combination of geo_value, time_value, version. Found 1 duplicated key(s).
    """
    if not isinstance(df, pl.DataFrame):
        raise TypeError(f"Archive data must be a polars.DataFrame. Got: {type(df)}.")

    other_keys = list(other_keys)
    if any(k in RESERVED_COLS for k in other_keys):
        raise ValueError(
            f"other_keys cannot include the reserved columns '{GEO_COL}', '{TIME_COL}', or '{VERSION_COL}'."
        )

    df = _rename_aliased_column(df, GEO_COL, GEO_COL_ALIASES)
    df = _rename_aliased_column(df, TIME_COL, TIME_COL_ALIASES)
    if VERSION_COL not in df.columns:
        raise ColumnNotFoundError(f"Archive data must have a '{VERSION_COL}' column.")

    missing_keys = [k for k in other_keys if k not in df.columns]
    if missing_keys:
        raise ValueError(f"other_keys names columns that are not in the data: {missing_keys}")

    key_cols = [GEO_COL, *other_keys, TIME_COL, VERSION_COL]
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

    max_version = df[VERSION_COL].max()
    if versions_end is None:
        versions_end = max_version
    elif max_version is not None and versions_end < max_version:
        raise ValueError(
            f"versions_end ({versions_end}) cannot be before the latest version in the data ({max_version})."
        )

    if clobberable_versions_start is not None:
        if max_version is not None and clobberable_versions_start < max_version:
            raise ValueError(
                f"clobberable_versions_start ({clobberable_versions_start}) cannot be before the latest "
                f"version in the data ({max_version})."
            )
        if clobberable_versions_start > versions_end:
            raise ValueError(
                f"clobberable_versions_start ({clobberable_versions_start}) cannot be after versions_end "
                f"({versions_end})."
            )

    value_cols = [c for c in df.columns if c not in key_cols]
    data = df.select(*key_cols, *value_cols).sort(key_cols)
    if compactify:
        data = _compactify(data, key_cols[:-1], value_cols)

    return EpiArchive(
        data=data,
        geo_type=geo_type,
        time_type=time_type,
        other_keys=other_keys,
        versions_end=versions_end,
        clobberable_versions_start=clobberable_versions_start,
    )


def epix_as_of(archive: EpiArchive, version: Any, min_time_value: Any = None) -> EpiDF:
    """Reconstructs the snapshot of the data as it was reported at ``version``.

    Rows whose value columns are all null in the latest version represent deletions and are dropped.

    Args:
        archive: The archive.
        version: The version to reconstruct.
        min_time_value: If given, only time values at or after this are kept.

    Returns:
        An epi_df with ``as_of`` set to ``version``.

    Raises:
        ValueError: If ``version`` is after the archive's ``versions_end``.

    Examples:
        >>> from datetime import date
        >>> archive = as_epi_archive(pl.DataFrame({
        ...     "geo_value": ["ca", "ca", "ca", "ca", "ny", "ny"],
        ...     "time_value": [date(2022, 1, 1)] * 3 + [date(2022, 1, 2)] + [date(2022, 1, 1)] * 2,
        ...     "version": [date(2022, 1, d) for d in (2, 3, 4, 3, 2, 4)],
        ...     "cases": [5, 6, 6, 7, 1, None],
        ... }))
        >>> epix_as_of(archive, date(2022, 1, 2)).data["cases"].to_list()
        [5, 1]
        >>> snapshot = epix_as_of(archive, date(2022, 1, 3))
        >>> snapshot.data.rows()
        [('ca', datetime.date(2022, 1, 1), 6), ('ca', datetime.date(2022, 1, 2), 7), ('ny', datetime.date(2022, 1, 1), 1)]
        >>> snapshot.as_of
        datetime.date(2022, 1, 3)
        >>> epix_as_of(archive, date(2022, 1, 4)).data["geo_value"].to_list()
        ['ca', 'ca']
        >>> epix_as_of(archive, date(2022, 1, 4), min_time_value=date(2022, 1, 2)).data["cases"].to_list()
        [7]
        >>> epix_as_of(archive, date(2022, 1, 5))
        Traceback (most recent call last):
            ...
        ValueError: version (2022-01-05) cannot be after the archive's versions_end (2022-01-04).
    """
    if version > archive.versions_end:
        raise ValueError(
            f"version ({version}) cannot be after the archive's versions_end ({archive.versions_end})."
        )

    if archive.clobberable_versions_start is not None and version >= archive.clobberable_versions_start:
        logger.warning(
            f"Getting data as of version {version}, which could still be overwritten without being "
            "assigned a new version number. This snapshot may not be reproducible later."
        )

    group_cols = [GEO_COL, *archive.other_keys, TIME_COL]
    snapshot = (
        archive.data.filter(pl.col(VERSION_COL) <= version)
        .sort(*group_cols, VERSION_COL)
        .group_by(group_cols, maintain_order=True)
        .last()
        .drop(VERSION_COL)
    )

    if min_time_value is not None:
        snapshot = snapshot.filter(pl.col(TIME_COL) >= min_time_value)

    value_cols = archive.value_colnames
    if value_cols:
        snapshot = snapshot.filter(pl.any_horizontal(pl.col(c).is_not_null() for c in value_cols))

    return EpiDF(
        data=snapshot.sort(group_cols),
        geo_type=archive.geo_type,
        time_type=archive.time_type,
        as_of=version,
        other_keys=list(archive.other_keys),
    )


def epix_truncate_versions_after(archive: EpiArchive, max_version: Any) -> EpiArchive:
    """Drops every version after ``max_version`` and marks the archive as complete through it.

    Examples:
        >>> archive = as_epi_archive(pl.DataFrame({
        ...     "geo_value": ["ca", "ca", "ca"],
        ...     "time_value": [1, 1, 2],
        ...     "version": [1, 2, 3],
        ...     "cases": [5, 6, 7],
        ... }))
        >>> truncated = epix_truncate_versions_after(archive, 2)
        >>> truncated.data["version"].to_list(), truncated.versions_end
        ([1, 2], 2)
        >>> epix_truncate_versions_after(archive, 4)
        Traceback (most recent call last):
            ...
        ValueError: max_version (4) cannot be after the archive's versions_end (3).
    """
    if max_version > archive.versions_end:
        raise ValueError(
            f"max_version ({max_version}) cannot be after the archive's versions_end "
            f"({archive.versions_end})."
        )

    clobberable_versions_start = archive.clobberable_versions_start
    if clobberable_versions_start is not None and clobberable_versions_start > max_version:
        clobberable_versions_start = None

    return dataclasses.replace(
        archive,
        data=archive.data.filter(pl.col(VERSION_COL) <= max_version),
        versions_end=max_version,
        clobberable_versions_start=clobberable_versions_start,
    )


def _slide_result_frame(value: Any, new_col_name: str) -> pl.DataFrame:
    if isinstance(value, pl.DataFrame):
        return value
    if isinstance(value, dict):
        return pl.DataFrame([value])
    return pl.DataFrame({new_col_name: [value]})


def epix_slide(
    archive: EpiArchive,
    f: pl.Expr | Sequence[pl.Expr] | Callable[[EpiDF, Any], Any],
    ref_versions: Sequence[Any] | None = None,
    before: int | None = None,
    new_col_name: str = "slide_value",
    group_by: Sequence[str] | None = None,
) -> pl.DataFrame:
    """Slides a computation over the versions of an archive, using only the data available at each version.

    Args:
        archive: The archive.
        f: Either polars expressions, aggregated over the snapshot for each group, or a callable
            ``f(snapshot, version)`` returning a dataframe, a dict of column names to scalars, or a scalar
            (stored in ``new_col_name``).
        ref_versions: The versions to compute at. Defaults to every version in the archive.
        before: If given, each snapshot is restricted to its latest time value and the ``before`` time steps
            preceding it.
        new_col_name: The output column for callables returning a scalar.
        group_by: The columns to group by for expressions. Defaults to ``geo_value`` and the other keys.

    Returns:
        The results for every reference version stacked together, with a leading ``version`` column.

    Examples:
        >>> from datetime import date
        >>> archive = as_epi_archive(pl.DataFrame({
        ...     "geo_value": ["ca", "ca", "ca", "ca", "ny", "ny"],
        ...     "time_value": [date(2022, 1, 1)] * 3 + [date(2022, 1, 2)] + [date(2022, 1, 1)] * 2,
        ...     "version": [date(2022, 1, d) for d in (2, 3, 4, 3, 2, 4)],
        ...     "cases": [5, 6, 6, 7, 1, None],
        ... }))
        >>> out = epix_slide(archive, pl.col("cases").sum().alias("total"), group_by=[])
        >>> out["total"].to_list()
        [6, 14, 13]
        >>> out = epix_slide(archive, pl.col("cases").last().alias("latest"), ref_versions=[date(2022, 1, 3)])
        >>> out.rows()
        [(datetime.date(2022, 1, 3), 'ca', 7), (datetime.date(2022, 1, 3), 'ny', 1)]
        >>> out = epix_slide(archive, lambda snapshot, v: len(snapshot), new_col_name="n_rows", before=0)
        >>> out["n_rows"].to_list()
        [2, 1, 1]
    """
    if ref_versions is None:
        ref_versions = archive.data[VERSION_COL].unique().sort().to_list()

    if isinstance(f, pl.Expr):
        f = [f]

    group_cols = [GEO_COL, *archive.other_keys] if group_by is None else list(group_by)
    version_dtype = archive.data.schema[VERSION_COL]

    frames = []
    for version in ref_versions:
        snapshot = epix_as_of(archive, version)
        if before is not None and not snapshot.data.is_empty():
            min_time_value = time_minus_n_steps(snapshot.data[TIME_COL].max(), before, archive.time_type)
            snapshot = snapshot.with_data(snapshot.data.filter(pl.col(TIME_COL) >= min_time_value))

        if callable(f):
            result = _slide_result_frame(f(snapshot, version), new_col_name)
        elif group_cols:
            result = snapshot.data.group_by(group_cols, maintain_order=True).agg(*f)
        else:
            result = snapshot.data.select(*f)

        frames.append(result.select(pl.lit(version).cast(version_dtype).alias(VERSION_COL), pl.all()))

    if not frames:
        return pl.DataFrame(schema={VERSION_COL: version_dtype})

    return pl.concat(frames, how="diagonal_relaxed")
