"""Widening of raw FAMOS sample arrays to float64.

Every supported number format maps to exactly one little-endian numpy dtype.
All of them widen to float64 without loss (integers up to 32 bit and float32
are exactly representable), which is enforced with ``casting="safe"``.
Number formats outside the table are rejected before anything is converted.
"""

from __future__ import annotations

from typing import Dict, Optional, Union

import numpy as np

from famos_source.analysis._parallel import run_chunked
from famos_source.errors import UnsupportedDataTypeError
from famos_source.models.famos import FamosDataType


_NUMPY_DTYPES: Dict[FamosDataType, np.dtype] = {
    FamosDataType.UINT8: np.dtype("<u1"),
    FamosDataType.INT8: np.dtype("<i1"),
    FamosDataType.UINT16: np.dtype("<u2"),
    FamosDataType.INT16: np.dtype("<i2"),
    FamosDataType.UINT32: np.dtype("<u4"),
    FamosDataType.INT32: np.dtype("<i4"),
    FamosDataType.FLOAT32: np.dtype("<f4"),
    FamosDataType.FLOAT64: np.dtype("<f8"),
}

SUPPORTED_DATA_TYPES = frozenset(_NUMPY_DTYPES)


def _describe(data_type: Union[FamosDataType, int]) -> str:
    try:
        return FamosDataType(data_type).name
    except ValueError:
        return str(data_type)


def is_supported(data_type: Union[FamosDataType, int, None]) -> bool:
    if data_type is None:
        return False
    try:
        return FamosDataType(data_type) in _NUMPY_DTYPES
    except ValueError:
        return False


def dtype_for(data_type: Union[FamosDataType, int, None]) -> np.dtype:
    """On-disk numpy dtype of a number format.

    Raises
    ------
    UnsupportedDataTypeError
        For device-specific formats (transitional recording, ASCII time stamp,
        16-bit digital, 48-bit unsigned) and unknown codes.
    """
    if not is_supported(data_type):
        raise UnsupportedDataTypeError(_describe(data_type) if data_type is not None else None)
    return _NUMPY_DTYPES[FamosDataType(data_type)]


def to_double(
    values: np.ndarray,
    data_type: Union[FamosDataType, int],
    *,
    max_workers: Optional[int] = None,
    min_chunk_size: int = 1 << 20,
) -> np.ndarray:
    """Convert a raw sample array to a new float64 array of the same length.

    ``values`` must already carry the numpy dtype of ``data_type`` (any byte
    order). Large arrays are converted in parallel chunks.
    """
    expected = dtype_for(data_type)
    values = np.asarray(values)
    if values.ndim != 1:
        raise ValueError(f"Expected 1D array, got shape {values.shape}")
    if values.dtype.kind != expected.kind or values.dtype.itemsize != expected.itemsize:
        raise ValueError(
            f"Array dtype {values.dtype} does not match data type {_describe(data_type)} ({expected})."
        )

    out = np.empty(values.size, dtype=np.float64)

    def _convert(start: int, stop: int) -> None:
        np.copyto(out[start:stop], values[start:stop], casting="safe")

    run_chunked(_convert, values.size, max_workers=max_workers, min_chunk_size=min_chunk_size)
    return out
