"""Test set-up and fixtures code."""

import math
import sys
import tempfile
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import polars as pl
import pytest


@pytest.fixture(autouse=True)
def _setup_doctest_namespace(doctest_namespace: dict[str, Any], caplog: pytest.LogCaptureFixture) -> None:
    doctest_namespace.update(
        {
            "caplog": caplog,
            "sys": sys,
            "Path": Path,
            "math": math,
            "pl": pl,
            "date": date,
            "datetime": datetime,
            "timedelta": timedelta,
            "tempfile": tempfile,
        }
    )
