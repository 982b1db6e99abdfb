"""Structural view of a FAMOS file.

A file holds *fields* (one shared x axis each), fields hold *components*
(one dependent value stream each) and components carry one or more named
*channels*. Channels may additionally be listed in *groups*.

The objects here are produced by :mod:`famos_source.ingest.famos_file` and
never carry sample data; raw samples are read on demand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import List, Optional


class FamosFieldType(IntEnum):
    """``CG`` field type code."""

    MULTIPLE_Y_TO_SINGLE_EQUIDISTANT_TIME = 1
    MULTIPLE_Y_TO_SINGLE_MONOTONOUS_TIME = 2
    MULTIPLE_Y_TO_SINGLE_X_OR_VICE_VERSA = 3
    COMPLEX_REAL_IMAGINARY = 4
    COMPLEX_MAGNITUDE_PHASE = 5
    COMPLEX_MAGNITUDE_DB_PHASE = 6


class FamosDataType(IntEnum):
    """``CP`` number format code (on-disk encoding of raw samples)."""

    UINT8 = 1
    INT8 = 2
    UINT16 = 3
    INT16 = 4
    UINT32 = 5
    INT32 = 6
    FLOAT32 = 7
    FLOAT64 = 8
    IMC_DEVICES_TRANSITIONAL_RECORDING = 9
    ASCII_TIMESTAMP = 10
    DIGITAL_16_BIT = 11
    UINT48 = 13


@dataclass(frozen=True)
class XAxisScaling:
    """``CD`` key: sampling interval and unit of a field (or component) x axis."""

    delta_x: Decimal
    is_calibrated: bool
    unit: str
    x0: Decimal = Decimal(0)


@dataclass(frozen=True)
class CalibrationInfo:
    """``CR`` key: affine calibration ``value * factor + offset``.

    factor and offset are kept as :class:`~decimal.Decimal` exactly as written
    in the file.
    """

    apply_transformation: bool
    factor: Decimal
    offset: Decimal
    is_calibrated: bool
    unit: str


@dataclass(frozen=True)
class PackInfo:
    """``CP`` key: where and how raw values of a component are stored."""

    buffer_reference: int
    value_size: int
    number_format: int
    sign_bits: int
    mask: int
    offset: int
    direct_sequence_number: int
    value_distance: int

    @property
    def data_type(self) -> Optional[FamosDataType]:
        """Number format as enum, or None for codes outside the table."""
        try:
            return FamosDataType(self.number_format)
        except ValueError:
            return None

    @property
    def stride(self) -> int:
        return self.value_distance if self.value_distance > 0 else self.value_size


@dataclass(frozen=True)
class FamosBuffer:
    """One buffer entry of a ``Cb`` key."""

    reference: int
    raw_data_index: int
    offset_in_raw_data: int
    size: int
    first_sample_offset: int
    filled_bytes: int
    x0: Decimal = Decimal(0)
    add_time: Decimal = Decimal(0)
    new_event: bool = False


@dataclass
class FamosChannel:
    """``CN`` key. ``component`` is the owning component."""

    name: str
    comment: str = ""
    group_index: int = 0
    bit_index: int = 0
    component: Optional["FamosComponent"] = field(default=None, repr=False, compare=False)


@dataclass
class FamosComponent:
    """``CC`` key plus the pack/calibration/channel keys that follow it."""

    index: int
    is_analog: bool
    x_axis_scaling: Optional[XAxisScaling] = None
    pack_info: Optional[PackInfo] = None
    calibration_info: Optional[CalibrationInfo] = None
    channels: List[FamosChannel] = field(default_factory=list)


@dataclass
class FamosField:
    """``CG`` key and everything up to the next field."""

    field_type: int
    component_count: int
    dimension: int
    x_axis_scaling: Optional[XAxisScaling] = None
    trigger_time: Optional[datetime] = None
    components: List[FamosComponent] = field(default_factory=list)

    @property
    def type(self) -> Optional[FamosFieldType]:
        try:
            return FamosFieldType(self.field_type)
        except ValueError:
            return None


@dataclass
class FamosGroup:
    """``CB`` key: a named collection of channels."""

    index: int
    name: str
    comment: str = ""
    channels: List[FamosChannel] = field(default_factory=list)
