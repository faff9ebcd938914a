"""This module contains the classes for loading and validating slide task configuration files.

A slide task configuration is a YAML file of the following form:

.. code-block:: yaml

    description: Smoothed case counts.
    complete:
      fill:
        cases: 0
    slides:
      cases_7dav:
        column: cases
        fn: mean
        window_size: 7
      cases_total:
        column: cases
        fn: sum
        window_size: inf

Every entry under ``slides`` adds a column named by its key; slides are applied in order, so later slides
may use the output of earlier ones.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import field
from pathlib import Path
from typing import Any

import ruamel.yaml

from .epi_df import EpiDF
from .gaps import complete
from .slide import SLIDE_FNS, epi_slide_opt
from .types import ALIGNMENTS, SlideWindow
from .utils import parse_timedelta

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SlideConfig:
    """The configuration of a single named-aggregation slide.

    Attributes:
        column: The column to aggregate.
        fn: The aggregation; one of the keys of ``SLIDE_FNS``.
        window_size: The window size, as accepted by ``epi_slide``.
        align: The window alignment.
        new_col_name: The output column name.

    Examples:
        >>> SlideConfig("cases", "mean", 7, new_col_name="cases_7dav")
        SlideConfig(column='cases', fn='mean', window_size=7, align='right', new_col_name='cases_7dav')
        >>> SlideConfig("cases", "mean", ".inf").window_size
        inf
        >>> SlideConfig("cases", "mode", 7)
        Traceback (most recent call last):
            ...
        ValueError: Unknown slide function 'mode'. Options are: mean, sum, min, max, median, std, var, count.
        >>> SlideConfig("cases", "sum", None)
        Traceback (most recent call last):
            ...
        ValueError: Slide over 'cases' must specify a window_size.
        >>> SlideConfig("cases", "sum", 7, align="middle")
        Traceback (most recent call last):
            ...
        ValueError: Slide over 'cases' has invalid align 'middle'. Options are: right, center, left.
        >>> SlideConfig("cases", "sum", "14 days").window_size
        '14 days'
        >>> SlideConfig("cases", "sum", -3)
        Traceback (most recent call last):
            ...
        ValueError: window_size must be a positive integer or math.inf. Got: -3
        >>> SlideConfig("cases", "sum", "abc")
        Traceback (most recent call last):
            ...
        ValueError: Failed to parse a duration from 'abc'
        >>> SlideConfig("cases", "sum", "inf", align="left")
        Traceback (most recent call last):
            ...
        ValueError: A cumulative window (window_size=inf) requires align='right'. Got: 'left'
    """

    column: str
    fn: str
    window_size: int | float | str
    align: str = "right"
    new_col_name: str | None = None

    def __post_init__(self) -> None:
        if self.fn not in SLIDE_FNS:
            raise ValueError(f"Unknown slide function '{self.fn}'. Options are: {', '.join(SLIDE_FNS)}.")

        if self.window_size is None:
            raise ValueError(f"Slide over '{self.column}' must specify a window_size.")
        if isinstance(self.window_size, str) and self.window_size.strip().lower() in (".inf", "inf"):
            self.window_size = math.inf

        if self.align not in ALIGNMENTS:
            raise ValueError(
                f"Slide over '{self.column}' has invalid align '{self.align}'. "
                f"Options are: {', '.join(ALIGNMENTS)}."
            )

        # Durations are checked against the time type once the slide is applied.
        if isinstance(self.window_size, str):
            parse_timedelta(self.window_size)
        else:
            SlideWindow(self.window_size, self.align)

    def apply(self, x: EpiDF) -> EpiDF:
        new_col_names = None if self.new_col_name is None else [self.new_col_name]
        return epi_slide_opt(
            x, self.column, self.fn, self.window_size, align=self.align, new_col_names=new_col_names
        )


@dataclasses.dataclass
class CompleteConfig:
    """The configuration of the gap filling applied before any slide."""

    fill: dict[str, Any] = field(default_factory=dict)
    full: bool = False

    def apply(self, x: EpiDF) -> EpiDF:
        return complete(x, fill=self.fill, full=self.full)


@dataclasses.dataclass
class SlideTaskConfig:
    """A sequence of slides to compute over an epi_df, optionally preceded by gap filling.

    Attributes:
        slides: The slides, keyed by output column name, in application order.
        complete: The gap filling configuration, if gaps should be filled first.
    """

    slides: dict[str, SlideConfig]
    complete: CompleteConfig | None = None

    @classmethod
    def load(cls, config_path: str | Path) -> SlideTaskConfig:
        """Load a slide task configuration file from the given path.

        Args:
            config_path: The path to the YAML configuration file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file is not a ".yaml" file, has unrecognized keys, or has invalid slides.

        Examples:
            >>> with tempfile.TemporaryDirectory() as d:
            ...     config_path = Path(d) / "task.yaml"
            ...     _ = config_path.write_text(
            ...         "description: smoothed cases\\n"
            ...         "complete:\\n"
            ...         "  fill: {cases: 0}\\n"
            ...         "slides:\\n"
            ...         "  cases_7dav: {column: cases, fn: mean, window_size: 7}\\n"
            ...         "  cases_total: {column: cases, fn: sum, window_size: .inf}\\n"
            ...     )
            ...     cfg = SlideTaskConfig.load(config_path)
            >>> list(cfg.slides)
            ['cases_7dav', 'cases_total']
            >>> cfg.slides["cases_total"].window_size
            inf
            >>> cfg.complete
            CompleteConfig(fill={'cases': 0}, full=False)
            >>> with tempfile.TemporaryDirectory() as d:
            ...     config_path = Path(d) / "task.yaml"
            ...     _ = config_path.write_text("slides: {}\\nwindows: {}\\n")
            ...     cfg = SlideTaskConfig.load(config_path)
            Traceback (most recent call last):
                ...
            ValueError: Unrecognized keys in configuration file: 'windows'
            >>> with tempfile.TemporaryDirectory() as d:
            ...     config_path = Path(d) / "task.yaml"
            ...     _ = config_path.write_text("slides:\\n  x: {column: cases, fn: sum, size: 7}\\n")
            ...     cfg = SlideTaskConfig.load(config_path)
            Traceback (most recent call last):
                ...
            ValueError: Unrecognized keys for slide 'x': 'size'
            >>> SlideTaskConfig.load(Path("/nonexistent/task.yaml"))
            Traceback (most recent call last):
                ...
            FileNotFoundError: Cannot load missing configuration file /nonexistent/task.yaml!
            >>> with tempfile.NamedTemporaryFile(suffix=".json") as f:
            ...     SlideTaskConfig.load(Path(f.name))
            Traceback (most recent call last):
                ...
            ValueError: Only supports reading from '.yaml'. Got: '.json' in '...'.
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)

        if not config_path.is_file():
            raise FileNotFoundError(f"Cannot load missing configuration file {config_path.resolve()!s}!")

        if config_path.suffix == ".yaml":
            yaml = ruamel.yaml.YAML(typ="safe", pure=True)
            loaded_dict = yaml.load(config_path.read_text()) or {}
        else:
            raise ValueError(
                f"Only supports reading from '.yaml'. Got: '{config_path.suffix}' in '{config_path.name}'."
            )

        # Remove the description or metadata keys if they exist - currently unused except for readability
        # in the YAML
        _ = loaded_dict.pop("description", None)
        _ = loaded_dict.pop("metadata", None)

        slides = loaded_dict.pop("slides", None)
        complete_cfg = loaded_dict.pop("complete", None)

        if loaded_dict:
            raise ValueError(f"Unrecognized keys in configuration file: '{', '.join(loaded_dict.keys())}'")

        if slides is None:
            raise ValueError("Configuration file must have a 'slides' section.")

        logger.info("Parsing slides...")
        allowed_keys = {"column", "fn", "window_size", "align"}
        parsed_slides = {}
        for name, slide in slides.items():
            unknown = [k for k in slide if k not in allowed_keys]
            if unknown:
                raise ValueError(f"Unrecognized keys for slide '{name}': '{', '.join(unknown)}'")
            if "column" not in slide or "fn" not in slide:
                raise ValueError(f"Slide '{name}' must specify a 'column' and an 'fn'.")
            parsed_slides[name] = SlideConfig(
                column=slide["column"],
                fn=slide["fn"],
                window_size=slide.get("window_size"),
                align=slide.get("align", "right"),
                new_col_name=name,
            )

        if complete_cfg is not None:
            logger.info("Parsing gap filling...")
            complete_cfg = CompleteConfig(**complete_cfg)

        return cls(slides=parsed_slides, complete=complete_cfg)

    def apply(self, x: EpiDF) -> EpiDF:
        """Fills gaps if configured, then applies every slide in order."""
        if self.complete is not None:
            logger.info("Filling gaps in the time values...")
            x = self.complete.apply(x)

        for name, slide in self.slides.items():
            logger.info(f"Computing slide '{name}'...")
            x = slide.apply(x)

        return x
