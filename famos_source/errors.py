"""Error taxonomy for FAMOS access.

Fatal conditions are exceptions. Truncated files, missing channels and
rejected channel names are not errors: the affected output simply stays in its
"no data" state.
"""

from __future__ import annotations

from concurrent.futures import CancelledError
from typing import Optional
import threading


class FamosError(Exception):
    """Base class for all errors raised by this package."""


class FamosFormatError(FamosError, ValueError):
    """The file is not a well-formed FAMOS file (structural error)."""


class SamplePeriodError(FamosError, ValueError):
    """The sample period of a component cannot be determined (structural error)."""


class UnsupportedDataTypeError(FamosError, ValueError):
    """The on-disk number format of a component is not supported."""

    def __init__(self, data_type: object) -> None:
        super().__init__(f"The data type '{data_type}' is not supported.")
        self.data_type = data_type


class ConfigError(FamosError, ValueError):
    """The data source configuration is malformed."""


def raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    """Raise :class:`concurrent.futures.CancelledError` once ``cancel_event`` is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise CancelledError()


__all__ = [
    "FamosError",
    "FamosFormatError",
    "SamplePeriodError",
    "UnsupportedDataTypeError",
    "ConfigError",
    "raise_if_cancelled",
]
