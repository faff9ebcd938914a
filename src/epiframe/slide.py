"""This module contains the functions for sliding computations over the time windows of an epi_df.

A slide anchors a window at every reference time point of every group and computes something over the rows
of the group whose time values fall inside that window. Window membership is decided on integer time
ordinals (see ``time_steps``), so missing time points simply leave a window with fewer rows.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

import polars as pl

from .epi_df import EpiDF, as_epi_df
from .time_steps import _ordinal_expr, parse_window_size
from .types import ALIGN_ABBR, ORDINAL_COL, TIME_COL, TIME_UNIT_ABBR, SlideWindow
from .utils import check_new_col_names

logger = logging.getLogger(__name__)

# The named aggregations supported by ``epi_slide_opt``, with the abbreviation used in output column names.
SLIDE_FNS: dict[str, tuple[str, Callable[[str], pl.Expr]]] = {
    "mean": ("av", lambda c: pl.col(c).mean()),
    "sum": ("sum", lambda c: pl.col(c).sum()),
    "min": ("min", lambda c: pl.col(c).min()),
    "max": ("max", lambda c: pl.col(c).max()),
    "median": ("med", lambda c: pl.col(c).median()),
    "std": ("sd", lambda c: pl.col(c).std()),
    "var": ("var", lambda c: pl.col(c).var()),
    "count": ("count", lambda c: pl.col(c).count()),
}

DEFAULT_SUFFIX = "_{n}{time_unit_abbr}{align_abbr}{f_abbr}"

SlideFn = pl.Expr | Sequence[pl.Expr] | Callable[[pl.DataFrame, dict[str, Any], Any], Any]


def _resolve_group_cols(x: EpiDF, group_by: Sequence[str] | None) -> list[str]:
    if group_by is None:
        return x.group_colnames

    group_cols = list(group_by)
    invalid = [c for c in group_cols if c not in x.group_colnames]
    if invalid:
        raise ValueError(
            f"group_by can only name the non-time key columns {x.group_colnames}. Got: {invalid}"
        )
    return group_cols


def _resolve_ref_time_values(
    x: EpiDF, ref_time_values: Sequence[Any] | pl.Series | None
) -> pl.Series | None:
    if ref_time_values is None:
        return None

    dtype = x.data.schema[TIME_COL]
    if isinstance(ref_time_values, pl.Series):
        ref = ref_time_values.cast(dtype).alias(TIME_COL)
    else:
        ref = pl.Series(TIME_COL, list(ref_time_values), dtype=dtype)

    missing = ref.filter(~ref.is_in(x.data[TIME_COL].to_list()))
    if missing.len() > 0:
        raise ValueError(
            "ref_time_values must be a subset of the time values in the data. "
            f"Not found: {missing.to_list()[:5]}"
        )

    return ref.unique()


def _finalize(
    x: EpiDF, out: pl.DataFrame, new_cols: list[str], ref: pl.Series | None, all_rows: bool
) -> EpiDF:
    if ref is not None:
        is_ref = pl.col(TIME_COL).is_in(ref.to_list())
        if all_rows:
            out = out.with_columns(pl.when(is_ref).then(pl.col(c)).otherwise(None).alias(c) for c in new_cols)
        else:
            out = out.filter(is_ref)

    return x.with_data(out.sort(x.key_colnames))


def _slide_exprs(x: EpiDF, exprs: list[pl.Expr], window: SlideWindow, group_cols: list[str]) -> pl.DataFrame:
    """Aggregates ``exprs`` over the window anchored at every row with a polars rolling group-by.

    Rows sharing a group and time value share a window, so the rolling output is deduplicated on those
    columns before being joined back onto the data.
    """
    df = x.data.with_columns(_ordinal_expr(pl.col(TIME_COL), x.time_type).alias(ORDINAL_COL))
    span = df[ORDINAL_COL].max() - df[ORDINAL_COL].min()

    rolled = (
        df.sort(*group_cols, ORDINAL_COL)
        .rolling(index_column=ORDINAL_COL, group_by=group_cols or None, **window.polars_rolling_kwargs(span))
        .agg(*exprs)
        .unique(subset=[*group_cols, ORDINAL_COL], keep="first", maintain_order=True)
    )

    return df.join(rolled, on=[*group_cols, ORDINAL_COL], how="left").drop(ORDINAL_COL)


def _result_as_row(value: Any, new_col_name: str) -> dict[str, Any]:
    if isinstance(value, pl.DataFrame):
        if value.height != 1:
            raise ValueError(
                f"Slide functions returning a DataFrame must return one row. Got {value.height}."
            )
        return value.row(0, named=True)
    if isinstance(value, dict):
        return value
    return {new_col_name: value}


def _slide_callable(
    x: EpiDF,
    f: Callable[[pl.DataFrame, dict[str, Any], Any], Any],
    window: SlideWindow,
    group_cols: list[str],
    ref: pl.Series | None,
    new_col_name: str,
) -> tuple[pl.DataFrame, list[str]]:
    """Calls ``f`` on the rows inside the window anchored at every reference time of every group."""
    df = x.data.with_columns(_ordinal_expr(pl.col(TIME_COL), x.time_type).alias(ORDINAL_COL))

    if group_cols:
        groups = df.partition_by(group_cols, as_dict=True, maintain_order=True)
    else:
        groups = {(): df}

    rows = []
    for key, group in groups.items():
        group_key = dict(zip(group_cols, key))
        anchors = group.select(TIME_COL, ORDINAL_COL).unique().sort(ORDINAL_COL)
        if ref is not None:
            anchors = anchors.filter(pl.col(TIME_COL).is_in(ref.to_list()))

        for ref_time, ordinal in anchors.iter_rows():
            in_window = pl.col(ORDINAL_COL) <= ordinal + window.after
            if not window.is_cumulative:
                in_window = in_window & (pl.col(ORDINAL_COL) >= ordinal - window.before)

            window_df = group.filter(in_window).drop(ORDINAL_COL)
            value = f(window_df, group_key, ref_time)
            result = _result_as_row(value, new_col_name)
            check_new_col_names(x.data.columns, result)
            rows.append({**group_key, TIME_COL: ref_time, **result})

    if not rows:
        logger.warning("No windows to slide over; the slide output is empty.")
        return df.drop(ORDINAL_COL).with_columns(pl.lit(None).alias(new_col_name)), [new_col_name]

    results = pl.DataFrame(rows, infer_schema_length=None)
    new_cols = [c for c in results.columns if c not in {*group_cols, TIME_COL}]

    results = results.with_columns(pl.col(c).cast(df.schema[c]) for c in [*group_cols, TIME_COL])
    out = df.drop(ORDINAL_COL).join(results, on=[*group_cols, TIME_COL], how="left")
    return out, new_cols


def epi_slide(
    x: EpiDF | pl.DataFrame,
    f: SlideFn,
    window_size: int | float | str,
    align: str = "right",
    ref_time_values: Sequence[Any] | pl.Series | None = None,
    new_col_name: str = "slide_value",
    all_rows: bool = False,
    group_by: Sequence[str] | None = None,
) -> EpiDF:
    """Slides a computation over the time windows of every group of an epi_df.

    Args:
        x: The epi_df. A plain dataframe is converted with ``as_epi_df`` using guessed metadata.
        f: The computation. Either a polars expression (or a list of them), which is aggregated over the rows
            of each window and named by the expression's output name, or a callable with the signature
            ``f(window_df, group_key, ref_time_value)``. ``window_df`` holds the rows of the group inside the
            window, ``group_key`` maps the group columns to their values for this group, and
            ``ref_time_value`` is the time value the window is anchored at. The callable may return a scalar
            (stored in ``new_col_name``), a dict of column names to scalars, or a one-row dataframe.
        window_size: The number of time steps in each window. ``math.inf`` (or ``"inf"``) gives cumulative
            windows. A duration string such as ``"14 days"`` is accepted for day and week time types.
        align: ``"right"`` for windows ending at the reference time, ``"center"`` for windows centered on it
            (with the extra step before it for even sizes), or ``"left"`` for windows starting at it.
        ref_time_values: The time values to anchor windows at. Defaults to all time values in ``x``. Must be
            a subset of the time values in ``x``.
        new_col_name: The name of the output column for callables returning a scalar.
        all_rows: If ``True``, keep every row of ``x`` and set the outputs of non-reference rows to null. If
            ``False``, return only the rows at reference times.
        group_by: The key columns defining the groups. Defaults to ``geo_value`` and all other key columns.

    Returns:
        An epi_df with the same metadata as ``x``, its rows in key order, and the new columns appended.

    Raises:
        ValueError: If the window is invalid, ``ref_time_values`` has values not in ``x``, ``group_by`` names
            non-key columns, or the new columns would overwrite existing ones.

    Examples:
        >>> from datetime import date
        >>> x = as_epi_df(pl.DataFrame({
        ...     "geo_value": ["ca"] * 4 + ["ny"] * 2,
        ...     "time_value": [date(2022, 1, d) for d in (1, 2, 3, 5)] + [date(2022, 1, 1), date(2022, 1, 2)],
        ...     "cases": [1, 2, 3, 4, 10, 20],
        ... }), as_of=date(2022, 1, 6))

        Windows cover time steps, not rows. Here, the third ``ca`` window has only two rows as January 4th is
        missing:

        >>> out = epi_slide(x, lambda w, key, t: w.height, 2, new_col_name="n_rows")
        >>> out.data["n_rows"].to_list()
        [1, 2, 2, 1, 1, 2]
        >>> out = epi_slide(x, [pl.col("cases").sum().alias("total"), pl.len().alias("n")], 3)
        >>> out.data["total"].to_list()
        [1, 3, 6, 7, 10, 30]
        >>> out.data["n"].to_list()
        [1, 2, 3, 2, 1, 2]
        >>> out = epi_slide(x, pl.col("cases").sum().alias("total"), 3, ref_time_values=[date(2022, 1, 2)])
        >>> out.data.select("geo_value", "total").rows()
        [('ca', 3), ('ny', 30)]
        >>> out = epi_slide(
        ...     x, pl.col("cases").sum().alias("total"), 3, ref_time_values=[date(2022, 1, 2)], all_rows=True
        ... )
        >>> out.data["total"].to_list()
        [None, 3, None, None, None, 30]
        >>> out = epi_slide(x, lambda w, key, t: {"first": w["cases"][0], "last": w["cases"][-1]}, 3, "left")
        >>> out.data.select("first", "last").rows()
        [(1, 3), (2, 3), (3, 4), (4, 4), (10, 20), (20, 20)]
        >>> epi_slide(x, pl.col("cases").sum(), 3)
        Traceback (most recent call last):
            ...
        ValueError: New column(s) 'cases' would overwrite existing columns.
        >>> epi_slide(x, pl.col("cases").sum().alias("total"), 3, ref_time_values=[date(2023, 1, 1)])
        Traceback (most recent call last):
            ...
        ValueError: ref_time_values must be a subset of the time values in the data. Not found: [datetime.date(2023, 1, 1)]
    """
    x = as_epi_df(x)
    window = SlideWindow(parse_window_size(window_size, x.time_type), align)
    group_cols = _resolve_group_cols(x, group_by)
    ref = _resolve_ref_time_values(x, ref_time_values)

    if isinstance(f, pl.Expr):
        f = [f]

    if callable(f):
        out, new_cols = _slide_callable(x, f, window, group_cols, ref, new_col_name)
        return _finalize(x, out, new_cols, ref, all_rows)

    exprs = list(f)
    new_cols = [e.meta.output_name() for e in exprs]
    check_new_col_names(x.data.columns, new_cols)

    if x.data.is_empty():
        out = x.data.with_columns(pl.lit(None).alias(c) for c in new_cols)
    else:
        out = _slide_exprs(x, exprs, window, group_cols)

    return _finalize(x, out, new_cols, ref, all_rows)


def _default_col_name(col: str, fn: str, window: SlideWindow, time_type: str, suffix: str) -> str:
    if window.is_cumulative:
        n, time_unit_abbr = "cum", ""
    else:
        n, time_unit_abbr = window.window_size, TIME_UNIT_ABBR[time_type]

    return col + suffix.format(
        n=n, time_unit_abbr=time_unit_abbr, align_abbr=ALIGN_ABBR[window.align], f_abbr=SLIDE_FNS[fn][0]
    )


def epi_slide_opt(
    x: EpiDF | pl.DataFrame,
    columns: str | Sequence[str],
    fn: str,
    window_size: int | float | str,
    align: str = "right",
    ref_time_values: Sequence[Any] | pl.Series | None = None,
    all_rows: bool = False,
    suffix: str = DEFAULT_SUFFIX,
    new_col_names: Sequence[str] | None = None,
    group_by: Sequence[str] | None = None,
) -> EpiDF:
    """Slides a named aggregation over one or more columns.

    This is the fast path of ``epi_slide`` for common aggregations. The output column for each input column
    is named by appending ``suffix``, a format string over ``n`` (the window size, or ``cum`` for cumulative
    windows), ``time_unit_abbr`` (e.g. ``d`` for days), ``align_abbr`` (empty, ``c`` or ``l``) and ``f_abbr``
    (e.g. ``av`` for mean), unless ``new_col_names`` is given.

    Args:
        x: The epi_df.
        columns: The columns to aggregate.
        fn: One of ``mean``, ``sum``, ``min``, ``max``, ``median``, ``std``, ``var`` or ``count``.
        window_size: See ``epi_slide``.
        align: See ``epi_slide``.
        ref_time_values: See ``epi_slide``.
        all_rows: See ``epi_slide``.
        suffix: The format string for output column names.
        new_col_names: Explicit output column names, one per input column.
        group_by: See ``epi_slide``.

    Raises:
        ValueError: If ``fn`` is unknown, a column is missing, or ``new_col_names`` has the wrong length.

    Examples:
        >>> from datetime import date
        >>> x = as_epi_df(pl.DataFrame({
        ...     "geo_value": ["ca"] * 4 + ["ny"] * 2,
        ...     "time_value": [date(2022, 1, d) for d in (1, 2, 3, 5)] + [date(2022, 1, 1), date(2022, 1, 2)],
        ...     "cases": [1, 2, 3, 4, 10, 20],
        ...     "deaths": [0, 1, 0, 1, 2, 2],
        ... }), as_of=date(2022, 1, 6))
        >>> out = epi_slide_opt(x, ["cases", "deaths"], "max", 2)
        >>> out.data.columns
        ['geo_value', 'time_value', 'cases', 'deaths', 'cases_2dmax', 'deaths_2dmax']
        >>> out.data["deaths_2dmax"].to_list()
        [0, 1, 1, 1, 2, 2]
        >>> epi_slide_opt(x, "cases", "mean", 3, align="center").data["cases_3dcav"].to_list()
        [1.5, 2.0, 2.5, 4.0, 15.0, 15.0]
        >>> epi_slide_opt(x, "cases", "mode", 3)
        Traceback (most recent call last):
            ...
        ValueError: Unknown slide function 'mode'. Options are: mean, sum, min, max, median, std, var, count.
        >>> epi_slide_opt(x, "hospitalizations", "sum", 3)
        Traceback (most recent call last):
            ...
        ValueError: Columns not found in the data: ['hospitalizations']
    """
    x = as_epi_df(x)

    if fn not in SLIDE_FNS:
        raise ValueError(f"Unknown slide function '{fn}'. Options are: {', '.join(SLIDE_FNS)}.")

    columns = [columns] if isinstance(columns, str) else list(columns)
    missing = [c for c in columns if c not in x.data.columns]
    if missing:
        raise ValueError(f"Columns not found in the data: {missing}")

    window = SlideWindow(parse_window_size(window_size, x.time_type), align)

    if new_col_names is None:
        new_col_names = [_default_col_name(c, fn, window, x.time_type, suffix) for c in columns]
    elif len(new_col_names) != len(columns):
        raise ValueError(
            f"new_col_names must have one name per column. Got {len(new_col_names)} names for "
            f"{len(columns)} columns."
        )

    agg = SLIDE_FNS[fn][1]
    exprs = [agg(c).alias(n) for c, n in zip(columns, new_col_names)]

    logger.info(f"Sliding '{fn}' over {columns} with window size {window.window_size} ({window.align})...")
    return epi_slide(
        x,
        exprs,
        window.window_size,
        align=window.align,
        ref_time_values=ref_time_values,
        all_rows=all_rows,
        group_by=group_by,
    )


def epi_slide_mean(x: EpiDF | pl.DataFrame, columns: str | Sequence[str], window_size, **kwargs) -> EpiDF:
    """Slides a mean over ``columns``; see ``epi_slide_opt``.

    Examples:
        >>> from datetime import date
        >>> x = as_epi_df(pl.DataFrame({
        ...     "geo_value": ["ca"] * 4,
        ...     "time_value": [date(2022, 1, d) for d in (1, 2, 3, 5)],
        ...     "cases": [1, 2, 3, 4],
        ... }), as_of=date(2022, 1, 6))
        >>> epi_slide_mean(x, "cases", 3).data["cases_3dav"].to_list()
        [1.0, 1.5, 2.0, 3.5]
    """
    return epi_slide_opt(x, columns, "mean", window_size, **kwargs)


def epi_slide_sum(x: EpiDF | pl.DataFrame, columns: str | Sequence[str], window_size, **kwargs) -> EpiDF:
    """Slides a sum over ``columns``; see ``epi_slide_opt``.

    Examples:
        >>> from datetime import date
        >>> x = as_epi_df(pl.DataFrame({
        ...     "geo_value": ["ca"] * 4,
        ...     "time_value": [date(2022, 1, d) for d in (1, 2, 3, 5)],
        ...     "cases": [1, 2, 3, 4],
        ... }), as_of=date(2022, 1, 6))
        >>> epi_slide_sum(x, "cases", 3).data["cases_3dsum"].to_list()
        [1, 3, 6, 7]
        >>> epi_slide_sum(x, "cases", math.inf).data["cases_cumsum"].to_list()
        [1, 3, 6, 10]
    """
    return epi_slide_opt(x, columns, "sum", window_size, **kwargs)
