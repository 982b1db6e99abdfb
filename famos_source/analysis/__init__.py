"""Numeric stages applied to raw samples after ingest.

Design principle:
  - Ingest returns raw sample arrays in their on-disk encoding.
  - Analysis widens them to float64 and applies the affine calibration.

Both stages are elementwise and order independent; large arrays are processed
in parallel chunks with identical results for any worker count.
"""

from .calibration import apply_calibration, apply_calibration_exact
from .normalize import SUPPORTED_DATA_TYPES, dtype_for, is_supported, to_double

__all__ = [
    "apply_calibration",
    "apply_calibration_exact",
    "SUPPORTED_DATA_TYPES",
    "dtype_for",
    "is_supported",
    "to_double",
]
