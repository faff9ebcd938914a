"""This is the main module of the epiframe package.

It contains the epi_df and epi_archive data structures and the rolling-window functions that operate on them.
"""

from importlib.metadata import PackageNotFoundError, version

__package_name__ = "epiframe"
try:
    __version__ = version(__package_name__)
except PackageNotFoundError:  # pragma: no cover
    __version__ = "unknown"

from .archive import EpiArchive, as_epi_archive, epix_as_of, epix_slide, epix_truncate_versions_after
from .epi_df import EpiDF, as_epi_df, guess_geo_type
from .gaps import complete, detect_gaps
from .slide import epi_slide, epi_slide_mean, epi_slide_opt, epi_slide_sum
from .time_steps import (
    guess_time_type,
    n_steps_between,
    time_minus_n_steps,
    time_ordinal,
    time_plus_n_steps,
)

__all__ = [
    "EpiArchive",
    "EpiDF",
    "as_epi_archive",
    "as_epi_df",
    "complete",
    "detect_gaps",
    "epi_slide",
    "epi_slide_mean",
    "epi_slide_opt",
    "epi_slide_sum",
    "epix_as_of",
    "epix_slide",
    "epix_truncate_versions_after",
    "guess_geo_type",
    "guess_time_type",
    "n_steps_between",
    "time_minus_n_steps",
    "time_ordinal",
    "time_plus_n_steps",
]
