"""Affine calibration ``value * factor + offset`` in the decimal domain.

factor and offset come from the file as decimal text, and the calibrated
value is ``float(Decimal(x) * factor + offset)`` with 28 significant digits.
Evaluating that per element in Python is too slow for millions of samples,
so the multiply-add runs vectorized in double-double arithmetic (about 106
significant bits):

- factor and offset are split into ``hi + lo`` float64 pairs from their
  Decimal value;
- ``x * factor_hi`` is expanded into an exact ``p + e`` pair (Dekker
  two-product with Veltkamp splitting), ``x * factor_lo`` is added to ``e``;
- ``p + offset_hi`` is expanded into an exact ``s + t`` pair (Knuth two-sum);
- the result is rounded to float64 once, at the very end.

The ``hi + lo`` pairs are not exact, and their residue dominates the result
when ``x * factor`` nearly cancels ``offset`` (a sensor sitting on its zero
point). Elements with ``|s| < 2**-20 * (|p| + |offset_hi|)`` are therefore
recomputed with Decimal, which gives exactly ``0.0`` for an exact zero point.

:func:`apply_calibration_exact` is the per-element Decimal reference.
"""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Optional, Tuple

import numpy as np

from famos_source.analysis._parallel import run_chunked
from famos_source.models.famos import CalibrationInfo


_SPLITTER = 134217729.0  # 2**27 + 1
_DECIMAL_DIGITS = 28
_CANCELLATION = 2.0 ** -20


def split_decimal(value: Decimal) -> Tuple[float, float]:
    """Split a Decimal into float64 ``(hi, lo)`` with ``hi + lo`` ~ value to ~106 bits."""
    value = Decimal(value)
    hi = float(value)
    with localcontext() as ctx:
        ctx.prec = 60
        lo = float(value - Decimal(hi))
    return hi, lo


def _split(a: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    c = _SPLITTER * a
    hi = c - (c - a)
    return hi, a - hi


def _affine_double_double(
    x: np.ndarray,
    f_hi: float,
    f_lo: float,
    o_hi: float,
    o_lo: float,
) -> np.ndarray:
    # p + e == x * f_hi
    p = x * f_hi
    x_hi, x_lo = _split(x)
    f1, f2 = _split(np.float64(f_hi))
    e = ((x_hi * f1 - p) + x_hi * f2 + x_lo * f1) + x_lo * f2
    e = e + x * f_lo

    # s + t == p + o_hi
    s = p + o_hi
    bb = s - p
    t = (p - (s - bb)) + (o_hi - bb)

    return s + (t + (e + o_lo))


def _decimal_affine(values: np.ndarray, factor: Decimal, offset: Decimal) -> np.ndarray:
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_DIGITS
        return np.fromiter(
            (float(Decimal(float(v)) * factor + offset) for v in values),
            dtype=np.float64,
            count=values.size,
        )


def is_enabled(calibration: Optional[CalibrationInfo]) -> bool:
    return calibration is not None and bool(calibration.apply_transformation)


def apply_calibration(
    data: np.ndarray,
    calibration: Optional[CalibrationInfo],
    *,
    max_workers: Optional[int] = None,
    min_chunk_size: int = 1 << 20,
) -> np.ndarray:
    """Apply ``calibration`` to a float64 array in place and return it.

    Absent or disabled calibration returns ``data`` untouched.
    """
    if not is_enabled(calibration):
        return data
    if data.dtype != np.float64 or data.ndim != 1:
        raise TypeError(f"Calibration expects a 1D float64 array, got {data.dtype} {data.shape}")

    factor = Decimal(calibration.factor)
    offset = Decimal(calibration.offset)
    f_hi, f_lo = split_decimal(factor)
    o_hi, o_lo = split_decimal(offset)

    def _apply(start: int, stop: int) -> None:
        x = data[start:stop]
        with np.errstate(over="ignore", invalid="ignore"):
            y = _affine_double_double(x, f_hi, f_lo, o_hi, o_lo)
            # The splitting overflows for |x| near float64 max; plain float64 is exact enough there.
            bad = ~np.isfinite(y)
            if bad.any():
                y[bad] = x[bad] * f_hi + o_hi
            p = x * f_hi
            near_zero = np.abs(p + o_hi) < _CANCELLATION * (np.abs(p) + abs(o_hi))
        if near_zero.any():
            y[near_zero] = _decimal_affine(x[near_zero], factor, offset)
        x[...] = y

    run_chunked(_apply, data.size, max_workers=max_workers, min_chunk_size=min_chunk_size)
    return data


def apply_calibration_exact(data: np.ndarray, calibration: Optional[CalibrationInfo]) -> np.ndarray:
    """Per-element Decimal evaluation (slow; small arrays and tests only)."""
    data = np.asarray(data, dtype=np.float64)
    if not is_enabled(calibration):
        return data.copy()
    return _decimal_affine(data, Decimal(calibration.factor), Decimal(calibration.offset))
