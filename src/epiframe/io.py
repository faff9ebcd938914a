"""This module contains functions for loading epi_df source data from disk."""

import logging
from pathlib import Path

import polars as pl

from .epi_df import TIME_COL_ALIASES
from .types import TIME_COL

logger = logging.getLogger(__name__)


def _time_col_name(columns: list[str]) -> str | None:
    """Returns the column ``as_epi_df`` will use as the time column, if any.

    Examples:
        >>> _time_col_name(["geo_value", "time_value", "date"])
        'time_value'
        >>> _time_col_name(["geo_value", "week", "date"])
        'date'
        >>> _time_col_name(["geo_value", "cases"]) is None
        True
    """
    for col in (TIME_COL, *TIME_COL_ALIASES):
        if col in columns:
            return col
    return None


def load_data(data_path: Path, ts_format: str | None = None) -> pl.DataFrame:
    """Loads a CSV or parquet file of epidemiological signals from disk.

    The file must contain a ``time_value`` column (or an alias recognized by ``as_epi_df``). String time
    values are parsed as dates using ``ts_format``; temporal and integer time values are kept as they are.

    Args:
        data_path: The path to the ``.csv`` or ``.parquet`` file.
        ts_format: The ``strftime``-style format of string time values.

    Returns:
        The loaded dataframe.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file format is not supported, or the time values are strings and no format is
            given.

    Examples:
        >>> csv = "geo_value,time_value,cases\\nca,01/02/2022,3\\nca,01/01/2022,2\\n"
        >>> with tempfile.NamedTemporaryFile(mode="w", suffix=".csv") as f:
        ...     _ = f.write(csv)
        ...     f.flush()
        ...     load_data(Path(f.name), ts_format="%m/%d/%Y")["time_value"].to_list()
        [datetime.date(2022, 1, 2), datetime.date(2022, 1, 1)]
        >>> with tempfile.NamedTemporaryFile(mode="w", suffix=".csv") as f:
        ...     _ = f.write(csv)
        ...     f.flush()
        ...     load_data(Path(f.name))
        Traceback (most recent call last):
            ...
        ValueError: Must provide a timestamp format for data with string time values.
        >>> with tempfile.NamedTemporaryFile(mode="w", suffix=".foo") as f:
        ...     load_data(Path(f.name))
        Traceback (most recent call last):
            ...
        ValueError: Unsupported file format: .foo
        >>> load_data(Path("/nonexistent/data.csv"))
        Traceback (most recent call last):
            ...
        FileNotFoundError: Data file /nonexistent/data.csv does not exist!
    """
    logger.info(f"Attempting to load data from file {data_path.resolve()!s}")

    if not data_path.is_file():
        raise FileNotFoundError(f"Data file {data_path} does not exist!")

    match data_path.suffix:
        case ".csv":
            data = pl.scan_csv(data_path)
        case ".parquet":
            data = pl.scan_parquet(data_path)
        case _:
            raise ValueError(f"Unsupported file format: {data_path.suffix}")

    schema = data.collect_schema()
    time_col = _time_col_name(schema.names())
    if time_col is not None and schema[time_col] == pl.String:
        if ts_format is None:
            raise ValueError("Must provide a timestamp format for data with string time values.")
        data = data.with_columns(pl.col(time_col).str.strptime(pl.Date, format=ts_format))
    elif ts_format is not None:
        logger.info(f"Ignoring specified timestamp format of {ts_format} as time values are not strings.")

    return data.collect()
