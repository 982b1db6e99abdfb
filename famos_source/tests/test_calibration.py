"""Tests for the affine calibration ``value * factor + offset``."""

from __future__ import annotations

from decimal import Decimal

import numpy as np
import pytest

from famos_source.analysis.calibration import apply_calibration, apply_calibration_exact, split_decimal
from famos_source.models.famos import CalibrationInfo


def _cal(factor: str, offset: str, apply: bool = True) -> CalibrationInfo:
    return CalibrationInfo(
        apply_transformation=apply,
        factor=Decimal(factor),
        offset=Decimal(offset),
        is_calibrated=True,
        unit="V",
    )


def test_identity_calibration_is_exact() -> None:
    data = np.array([0.0, -0.0, 1e-300, -2.5, 123456.789, 1e300, np.inf, np.nan])
    expected = data.copy()
    out = apply_calibration(data, _cal("1", "0"))

    assert out is data
    np.testing.assert_array_equal(out, expected)


def test_disabled_or_missing_calibration_passes_through() -> None:
    data = np.array([1.0, 2.0, 3.0])
    assert apply_calibration(data, _cal("2", "5", apply=False)) is data
    assert apply_calibration(data, None) is data
    np.testing.assert_array_equal(data, [1.0, 2.0, 3.0])


def test_integer_raw_values() -> None:
    data = np.array([180.0, 202.0, 196.0])
    np.testing.assert_array_equal(apply_calibration(data, _cal("0.5", "100")), [190.0, 201.0, 198.0])


@pytest.mark.parametrize(
    "factor, offset",
    [
        ("0.1", "273.15"),
        ("0.000152587890625", "0"),
        ("3.0517578125E-05", "-10"),
        ("1.2345678901234567890123", "0.3"),
    ],
)
def test_matches_decimal_reference(factor: str, offset: str) -> None:
    rng = np.random.default_rng(7)
    raw = np.concatenate([
        rng.integers(0, 65536, 2_000).astype(np.float64),
        rng.uniform(0.0, 1e6, 2_000),
    ])
    cal = _cal(factor, offset)

    expected = apply_calibration_exact(raw, cal)
    out = apply_calibration(raw.copy(), cal)

    np.testing.assert_array_equal(out, expected)


def test_parallel_calibration_is_deterministic() -> None:
    raw = np.linspace(-1e4, 1e4, 100_001)
    cal = _cal("0.001", "-3.3")
    inline = apply_calibration(raw.copy(), cal, max_workers=1)
    chunked = apply_calibration(raw.copy(), cal, max_workers=8, min_chunk_size=500)
    np.testing.assert_array_equal(inline, chunked)


def test_non_finite_values_stay_non_finite() -> None:
    out = apply_calibration(np.array([np.inf, -np.inf, np.nan, 1.7e308]), _cal("2", "1"))
    assert out[0] == np.inf
    assert out[1] == -np.inf
    assert np.isnan(out[2])
    assert out[3] == np.inf


def test_rejects_non_float64_input() -> None:
    with pytest.raises(TypeError):
        apply_calibration(np.zeros(3, dtype=np.float32), _cal("2", "0"))


def test_split_decimal_keeps_decimal_precision() -> None:
    hi, lo = split_decimal(Decimal("0.1"))
    assert hi == 0.1
    assert lo != 0.0
    assert abs(Decimal(hi) + Decimal(lo) - Decimal("0.1")) < Decimal("1e-32")


@pytest.mark.parametrize(
    "factor, offset, raw",
    [
        ("20.345524", "386870.1388600", -19015.0),
        ("9616.57", "-172934778.310", 17983.0),
        ("0.5", "-100", 200.0),
    ],
)
def test_zero_point_calibrates_to_exact_zero(factor: str, offset: str, raw: float) -> None:
    data = np.array([raw - 1.0, raw, raw + 1.0])
    out = apply_calibration(data.copy(), _cal(factor, offset))

    assert out[1] == 0.0
    np.testing.assert_array_equal(out, apply_calibration_exact(data, _cal(factor, offset)))


def test_near_zero_point_keeps_decimal_residue() -> None:
    cal = _cal("0.000005118", "-0.184437365999999997")
    out = apply_calibration(np.array([36037.0]), cal)
    assert out[0] == 3e-18


def test_cancelling_offsets_match_decimal_reference() -> None:
    rng = np.random.default_rng(11)
    residues = ["0", "1E-12", "-3E-9", "7E-15", "0.001"]
    for _ in range(200):
        factor = Decimal(int(rng.integers(1, 10**7))).scaleb(-int(rng.integers(0, 9)))
        raw = rng.integers(-32768, 32768, 16).astype(np.float64)
        zero_point = Decimal(float(raw[0]))
        offset = -(zero_point * factor) + Decimal(residues[int(rng.integers(len(residues)))])
        cal = _cal(str(factor), str(offset))

        out = apply_calibration(raw.copy(), cal)
        np.testing.assert_array_equal(out, apply_calibration_exact(raw, cal))
