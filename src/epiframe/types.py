"""This module contains types and constants defined by this package.

The window type here is a simple dataclass, so downstream users can also construct it positionally as
``SlideWindow(window_size, align)``.
"""

import dataclasses
import math

# Reserved column names.
GEO_COL = "geo_value"
TIME_COL = "time_value"
VERSION_COL = "version"
RESERVED_COLS = (GEO_COL, TIME_COL, VERSION_COL)

# The internal column holding the integer time ordinal used for window membership.
ORDINAL_COL = "_time_ordinal"

TIME_TYPES = ("day", "week", "yearweek", "yearmonth", "year", "integer")

# The abbreviation of a single time step, used in default slide column names.
TIME_UNIT_ABBR = {
    "day": "d",
    "week": "w",
    "yearweek": "w",
    "yearmonth": "m",
    "year": "y",
    "integer": "i",
}

ALIGNMENTS = ("right", "center", "left")
ALIGN_ABBR = {"right": "", "center": "c", "left": "l"}


@dataclasses.dataclass
class SlideWindow:
    """A sliding window measured in time steps.

    Attributes:
        window_size: The number of time steps covered by the window, or ``math.inf`` for a cumulative window
            covering every earlier time point.
        align: Where the reference time point sits in the window; one of ``"right"`` (the window ends at the
            reference time), ``"center"`` or ``"left"`` (the window starts at the reference time).

    Raises:
        ValueError: If the window size is not a positive integer or infinity.
        ValueError: If the alignment is not recognized, or a cumulative window is not right-aligned.

    Examples:
        >>> SlideWindow(7)
        SlideWindow(window_size=7, align='right')
        >>> SlideWindow(7).before, SlideWindow(7).after
        (6, 0)
        >>> w = SlideWindow(4, "center")
        >>> w.before, w.after
        (2, 1)
        >>> w = SlideWindow(3, "left")
        >>> w.before, w.after
        (0, 2)
        >>> SlideWindow(math.inf).is_cumulative
        True
        >>> SlideWindow(0)
        Traceback (most recent call last):
            ...
        ValueError: window_size must be a positive integer or math.inf. Got: 0
        >>> SlideWindow(2.5)
        Traceback (most recent call last):
            ...
        ValueError: window_size must be a positive integer or math.inf. Got: 2.5
        >>> SlideWindow(7, "middle")
        Traceback (most recent call last):
            ...
        ValueError: align must be one of 'right', 'center', 'left'. Got: 'middle'
        >>> SlideWindow(math.inf, "left")
        Traceback (most recent call last):
            ...
        ValueError: A cumulative window (window_size=inf) requires align='right'. Got: 'left'
    """

    window_size: int | float
    align: str = "right"

    def __post_init__(self) -> None:
        is_int = isinstance(self.window_size, int) and not isinstance(self.window_size, bool)
        if not ((is_int and self.window_size > 0) or self.window_size == math.inf):
            raise ValueError(f"window_size must be a positive integer or math.inf. Got: {self.window_size}")

        if self.align not in ALIGNMENTS:
            allowed = ", ".join(f"'{a}'" for a in ALIGNMENTS)
            raise ValueError(f"align must be one of {allowed}. Got: '{self.align}'")

        if self.is_cumulative and self.align != "right":
            raise ValueError(
                f"A cumulative window (window_size=inf) requires align='right'. Got: '{self.align}'"
            )

    @property
    def is_cumulative(self) -> bool:
        return self.window_size == math.inf

    @property
    def before(self) -> int | float:
        """The number of time steps the window extends before the reference time."""
        match self.align:
            case "right":
                return self.window_size - 1
            case "center":
                return self.window_size // 2
            case _:
                return 0

    @property
    def after(self) -> int:
        """The number of time steps the window extends after the reference time."""
        match self.align:
            case "right":
                return 0
            case "center":
                return self.window_size - self.window_size // 2 - 1
            case _:
                return self.window_size - 1

    def polars_rolling_kwargs(self, span: int = 0) -> dict[str, str]:
        """Return the parameters for a group_by rolling operation in Polars over an integer time ordinal.

        The window anchored at ordinal ``t`` is ``(t + offset, t + offset + period]``, which equals the closed
        range ``[t - before, t + after]`` on integers.

        Args:
            span: The largest difference between two ordinals in the data. Only used for cumulative windows,
                which are realized as a window of ``span`` steps before the reference time.

        Examples:
            >>> SlideWindow(7).polars_rolling_kwargs()
            {'period': '7i', 'offset': '-7i', 'closed': 'right'}
            >>> SlideWindow(4, "center").polars_rolling_kwargs()
            {'period': '4i', 'offset': '-3i', 'closed': 'right'}
            >>> SlideWindow(3, "left").polars_rolling_kwargs()
            {'period': '3i', 'offset': '-1i', 'closed': 'right'}
            >>> SlideWindow(math.inf).polars_rolling_kwargs(span=10)
            {'period': '11i', 'offset': '-11i', 'closed': 'right'}
        """
        before = span if self.is_cumulative else self.before
        period = before + self.after + 1
        return {"period": f"{period}i", "offset": f"-{before + 1}i", "closed": "right"}
