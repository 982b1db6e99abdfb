"""Tests for the widening of raw FAMOS sample arrays to float64.

Covers:
- every supported number format against a per-element reference, extremes included
- rejection of device-specific and unknown number formats
- identical results for any worker count
"""

from __future__ import annotations

import numpy as np
import pytest

from famos_source.analysis.normalize import SUPPORTED_DATA_TYPES, dtype_for, is_supported, to_double
from famos_source.errors import UnsupportedDataTypeError
from famos_source.models.famos import FamosDataType


_SAMPLES = {
    FamosDataType.UINT8: [0, 1, 127, 128, 255],
    FamosDataType.INT8: [-128, -1, 0, 1, 127],
    FamosDataType.UINT16: [0, 1, 32768, 65535],
    FamosDataType.INT16: [-32768, -1, 0, 180, 32767],
    FamosDataType.UINT32: [0, 1, 2**31, 2**32 - 1],
    FamosDataType.INT32: [-(2**31), -1, 0, 2**31 - 1],
    FamosDataType.FLOAT32: [0.0, -0.0, 1.1, -3.4e38, 1e-45, np.inf, np.nan],
    FamosDataType.FLOAT64: [0.0, 0.1, -1.7976931348623157e308, 5e-324, -np.inf, np.nan],
}


def test_supported_table_is_complete() -> None:
    assert SUPPORTED_DATA_TYPES == frozenset(_SAMPLES)


@pytest.mark.parametrize("data_type", sorted(_SAMPLES))
def test_to_double_matches_reference(data_type: FamosDataType) -> None:
    raw = np.array(_SAMPLES[data_type], dtype=dtype_for(data_type))
    out = to_double(raw, data_type)

    assert out.dtype == np.float64
    assert out.shape == raw.shape
    expected = np.array([float(v) for v in raw], dtype=np.float64)
    np.testing.assert_array_equal(out, expected)


def test_to_double_returns_new_array() -> None:
    raw = np.array([1.5, 2.5], dtype="<f8")
    out = to_double(raw, FamosDataType.FLOAT64)
    out[0] = 99.0
    assert raw[0] == 1.5


def test_to_double_accepts_big_endian_input() -> None:
    raw = np.array([-2, 300], dtype=">i2")
    np.testing.assert_array_equal(to_double(raw, FamosDataType.INT16), [-2.0, 300.0])


def test_to_double_rejects_mismatched_dtype() -> None:
    with pytest.raises(ValueError):
        to_double(np.zeros(3, dtype="<i2"), FamosDataType.INT32)
    with pytest.raises(ValueError):
        to_double(np.zeros((2, 2), dtype="<f8"), FamosDataType.FLOAT64)


@pytest.mark.parametrize(
    "code, label",
    [
        (FamosDataType.IMC_DEVICES_TRANSITIONAL_RECORDING, "IMC_DEVICES_TRANSITIONAL_RECORDING"),
        (FamosDataType.ASCII_TIMESTAMP, "ASCII_TIMESTAMP"),
        (FamosDataType.DIGITAL_16_BIT, "DIGITAL_16_BIT"),
        (FamosDataType.UINT48, "UINT48"),
        (12, "12"),
        (0, "0"),
    ],
)
def test_unsupported_data_types_raise(code, label) -> None:
    assert not is_supported(code)
    with pytest.raises(UnsupportedDataTypeError) as excinfo:
        dtype_for(code)
    assert excinfo.value.data_type == label
    assert str(excinfo.value) == f"The data type '{label}' is not supported."

    with pytest.raises(UnsupportedDataTypeError):
        to_double(np.zeros(4, dtype=np.uint8), code)


def test_parallel_conversion_is_deterministic() -> None:
    raw = np.arange(-50_000, 50_000, dtype="<i4")
    inline = to_double(raw, FamosDataType.INT32, max_workers=1)
    chunked = to_double(raw, FamosDataType.INT32, max_workers=4, min_chunk_size=1_000)

    np.testing.assert_array_equal(inline, chunked)
    np.testing.assert_array_equal(inline, raw.astype(np.float64))
