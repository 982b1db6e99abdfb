"""Read-only access to imc FAMOS files (*.dat, *.raw).

File layout
-----------
A FAMOS file is a sequence of keys::

    |<name>,<version>,<length>,<payload>;

``name`` has two characters and ``length`` is the byte count of ``payload``.
Keys may be separated by whitespace (usually CRLF). Inside a payload,
parameters are comma separated; text parameters are length-prefixed
(``<n>,<n bytes>``) and may therefore contain commas themselves.

Keys interpreted here::

    CF  format / processor          CG  field (starts a new field)
    CK  key group (ignored)         CD  x-axis scaling (field or component)
    NO  origin                      NT  trigger time
    NL  code page                   CC  component (starts a new component)
    CB  group                       CP  pack info of the current component
    Cb  buffers                     CR  calibration of the current component
    CN  channel name                CS  raw data

Unknown keys are skipped by length. Raw data (``CS``) is not loaded while
parsing; only its location is recorded and samples are read on demand with
:meth:`FamosFile.read_component`.

Incomplete recordings
---------------------
Files written by a running acquisition may end inside the last ``CS`` key.
Such a key is accepted with the bytes that are present and components stored
in it simply yield fewer samples. A truncated key of any other kind is a
:class:`~famos_source.errors.FamosFormatError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple
import codecs
import logging
import os

import numpy as np

from famos_source.analysis.normalize import dtype_for
from famos_source.errors import FamosFormatError
from famos_source.models.famos import (
    CalibrationInfo,
    FamosBuffer,
    FamosChannel,
    FamosComponent,
    FamosField,
    FamosGroup,
    PackInfo,
    XAxisScaling,
)


logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cp1252"

_WHITESPACE = b" \t\r\n\x00"
_MAX_HEADER_NUMBER_BYTES = 32


@dataclass(frozen=True)
class RawDataBlock:
    """Location of the payload of one ``CS`` key."""

    index: int
    file_offset: int
    declared_size: int
    available_size: int

    @property
    def truncated(self) -> bool:
        return self.available_size < self.declared_size


class _PayloadCursor:
    """Sequential reader over the comma separated parameters of one key."""

    def __init__(self, payload: bytes, key: str, encoding: str) -> None:
        self._buf = payload
        self._pos = 0
        self._key = key
        self._encoding = encoding

    def _fail(self, what: str) -> FamosFormatError:
        return FamosFormatError(f"Malformed '{self._key}' key: {what} (payload position {self._pos}).")

    def token(self) -> str:
        if self._pos > len(self._buf):
            raise self._fail("missing parameter")
        end = self._buf.find(b",", self._pos)
        if end < 0:
            end = len(self._buf)
        tok = self._buf[self._pos:end]
        self._pos = end + 1
        return tok.decode("ascii", errors="replace").strip()

    def int(self) -> int:
        tok = self.token()
        try:
            return int(tok)
        except ValueError:
            raise self._fail(f"invalid integer {tok!r}") from None

    def decimal(self) -> Decimal:
        tok = self.token()
        try:
            value = Decimal(tok)
        except InvalidOperation:
            raise self._fail(f"invalid number {tok!r}") from None
        if not value.is_finite():
            raise self._fail(f"non-finite number {tok!r}")
        return value

    def raw(self, n: int) -> bytes:
        if n < 0 or self._pos + n > len(self._buf):
            raise self._fail(f"text of {n} bytes exceeds payload")
        data = self._buf[self._pos:self._pos + n]
        self._pos += n
        if self._pos < len(self._buf):
            if self._buf[self._pos:self._pos + 1] != b",":
                raise self._fail("expected ',' after text")
            self._pos += 1
        else:
            self._pos = len(self._buf) + 1
        return data

    def text(self) -> str:
        n = self.int()
        return self.raw(n).decode(self._encoding, errors="replace")


def _encoding_for_code_page(code_page: int) -> Optional[str]:
    name = "utf-8" if code_page == 65001 else f"cp{code_page}"
    try:
        codecs.lookup(name)
    except LookupError:
        return None
    return name


class FamosFile:
    """An open FAMOS file.

    Use :meth:`open`, preferably as a context manager::

        with FamosFile.open(path) as famos_file:
            channel = famos_file.find_channel("STTZ")
            raw = famos_file.read_component(famos_file.find_component(channel))

    Only structural keys are read by :meth:`open`; the handle stays open for
    :meth:`read_component` until :meth:`close`.
    """

    def __init__(self, path: Path, fh: BinaryIO) -> None:
        self.path = path
        self._fh = fh
        self._encoding = DEFAULT_ENCODING

        self.format_version: Optional[int] = None
        self.processor: Optional[int] = None
        self.origin_name: str = ""
        self.trigger_time: Optional[datetime] = None

        self._fields: List[FamosField] = []
        self._groups: List[FamosGroup] = []
        self._groups_by_index: Dict[int, FamosGroup] = {}
        self._channels: List[FamosChannel] = []
        self._buffers: Dict[int, FamosBuffer] = {}
        self._raw_data: Dict[int, RawDataBlock] = {}

        self._field: Optional[FamosField] = None
        self._component: Optional[FamosComponent] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, file_path: str | Path) -> "FamosFile":
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(str(path))
        fh = path.open("rb")
        famos_file = cls(path, fh)
        try:
            famos_file._scan()
        except BaseException:
            fh.close()
            raise
        return famos_file

    def close(self) -> None:
        self._fh.close()

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def __enter__(self) -> "FamosFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def fields(self) -> List[FamosField]:
        return list(self._fields)

    @property
    def groups(self) -> List[FamosGroup]:
        return list(self._groups)

    @property
    def channels(self) -> List[FamosChannel]:
        """Channels not assigned to any group."""
        return list(self._channels)

    @property
    def is_truncated(self) -> bool:
        return any(block.truncated for block in self._raw_data.values())

    def all_channels(self) -> List[FamosChannel]:
        """Channels of all groups (in group order), then ungrouped channels."""
        out: List[FamosChannel] = []
        for group in self._groups:
            out.extend(group.channels)
        out.extend(self._channels)
        return out

    def find_channel(self, name: str) -> Optional[FamosChannel]:
        """First channel whose name equals ``name`` exactly, or None."""
        for channel in self.all_channels():
            if channel.name == name:
                return channel
        return None

    def find_component(self, channel: FamosChannel) -> FamosComponent:
        component = channel.component
        if component is None or not any(component is c for f in self._fields for c in f.components):
            raise KeyError(f"Channel '{channel.name}' does not belong to {self.path.name}.")
        return component

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def read_component(self, component: FamosComponent) -> np.ndarray:
        """Raw samples of ``component`` in their on-disk dtype.

        Raises
        ------
        UnsupportedDataTypeError
            If the component's number format is not supported.
        FamosFormatError
            If pack info, buffer or raw data references are inconsistent.
        """
        pack = component.pack_info
        if pack is None:
            raise FamosFormatError(f"Component {component.index} has no pack info (CP key).")
        dtype = dtype_for(pack.number_format)
        if pack.value_size != dtype.itemsize:
            raise FamosFormatError(
                f"Component {component.index}: value size {pack.value_size} does not match {dtype}."
            )

        buffer = self._buffers.get(pack.buffer_reference)
        if buffer is None:
            raise FamosFormatError(f"Component {component.index} references unknown buffer {pack.buffer_reference}.")
        block = self._raw_data.get(buffer.raw_data_index)
        if block is None:
            raise FamosFormatError(f"Buffer {buffer.reference} references unknown raw data key {buffer.raw_data_index}.")

        size = pack.value_size
        stride = pack.stride
        start = buffer.offset_in_raw_data + buffer.first_sample_offset + pack.offset
        usable = min(
            buffer.filled_bytes - buffer.first_sample_offset - pack.offset,
            block.available_size - start,
        )
        count = 0 if usable < size else (usable - size) // stride + 1
        if count == 0:
            return np.empty(0, dtype=dtype)

        n_bytes = (count - 1) * stride + size
        self._fh.seek(block.file_offset + start)
        data = self._fh.read(n_bytes)
        if len(data) != n_bytes:
            raise FamosFormatError(f"{self.path.name}: raw data ended early ({len(data)} of {n_bytes} bytes).")

        if stride == size:
            return np.frombuffer(data, dtype=dtype, count=count)
        return np.ndarray((count,), dtype=dtype, buffer=data, strides=(stride,)).copy()

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _scan(self) -> None:
        fh = self._fh
        file_size = os.fstat(fh.fileno()).st_size
        first = True

        while True:
            header = self._read_key_header()
            if header is None:
                break
            name, version, length = header
            if first and name != "CF":
                raise FamosFormatError(f"{self.path.name} is not a FAMOS file (first key '{name}').")
            first = False

            if name == "CS":
                self._read_raw_data_key(length, file_size)
                continue

            payload = fh.read(length)
            if len(payload) != length:
                raise FamosFormatError(f"{self.path.name}: key '{name}' is truncated.")
            if fh.read(1) != b";":
                raise FamosFormatError(f"{self.path.name}: key '{name}' is not terminated by ';'.")

            handler = self._HANDLERS.get(name)
            if handler is not None:
                handler(self, version, _PayloadCursor(payload, name, self._encoding))

        if first:
            raise FamosFormatError(f"{self.path.name} is empty.")

    def _read_key_header(self) -> Optional[Tuple[str, int, int]]:
        fh = self._fh
        while True:
            c = fh.read(1)
            if not c:
                return None
            if c == b"|":
                break
            if c not in _WHITESPACE:
                raise FamosFormatError(f"{self.path.name}: unexpected byte {c!r} at offset {fh.tell() - 1}.")

        head = fh.read(3)
        if len(head) != 3 or head[2:3] != b",":
            raise FamosFormatError(f"{self.path.name}: malformed key header at offset {fh.tell()}.")
        name = head[:2].decode("ascii", errors="replace")
        version = self._read_header_number(name)
        length = self._read_header_number(name)
        return name, version, length

    def _read_header_number(self, name: str) -> int:
        raw = bytearray()
        while True:
            c = self._fh.read(1)
            if c == b",":
                break
            if not c or len(raw) >= _MAX_HEADER_NUMBER_BYTES:
                raise FamosFormatError(f"{self.path.name}: malformed header of key '{name}'.")
            raw += c
        # Writers may pad header numbers with blanks.
        digits = bytes(raw).strip(b" \t")
        if not digits:
            raise FamosFormatError(f"{self.path.name}: empty number in header of key '{name}'.")
        if not digits.isdigit():
            raise FamosFormatError(f"{self.path.name}: malformed header of key '{name}'.")
        return int(digits)

    def _read_raw_data_key(self, length: int, file_size: int) -> None:
        fh = self._fh
        payload_start = fh.tell()
        index = self._read_header_number("CS")
        data_offset = fh.tell()
        declared = length - (data_offset - payload_start)
        if declared < 0:
            raise FamosFormatError(f"{self.path.name}: raw data key {index} has a negative size.")

        available = min(declared, max(0, file_size - data_offset))
        self._raw_data[index] = RawDataBlock(
            index=index,
            file_offset=data_offset,
            declared_size=declared,
            available_size=available,
        )

        if available < declared:
            logger.debug(
                "%s: raw data key %d is truncated (%d of %d bytes)", self.path.name, index, available, declared
            )
            fh.seek(file_size)
            return

        fh.seek(data_offset + declared)
        end = fh.read(1)
        if end not in (b";", b""):
            raise FamosFormatError(f"{self.path.name}: raw data key {index} is not terminated by ';'.")

    # --- key handlers -------------------------------------------------

    def _require_field(self, key: str) -> FamosField:
        if self._field is None:
            raise FamosFormatError(f"{self.path.name}: '{key}' key outside of a field (no preceding CG key).")
        return self._field

    def _require_component(self, key: str) -> FamosComponent:
        if self._component is None:
            raise FamosFormatError(f"{self.path.name}: '{key}' key outside of a component (no preceding CC key).")
        return self._component

    def _on_cf(self, version: int, cur: _PayloadCursor) -> None:
        self.format_version = version
        self.processor = cur.int()

    def _on_nl(self, version: int, cur: _PayloadCursor) -> None:
        code_page = cur.int()
        encoding = _encoding_for_code_page(code_page)
        if encoding is None:
            logger.debug("%s: unknown code page %d, keeping %s", self.path.name, code_page, self._encoding)
        else:
            self._encoding = encoding

    def _on_no(self, version: int, cur: _PayloadCursor) -> None:
        cur.int()  # origin: 0 = original, 1 = processed
        self.origin_name = cur.text()

    def _on_cb_group(self, version: int, cur: _PayloadCursor) -> None:
        index = cur.int()
        name = cur.text()
        comment = cur.text()
        group = FamosGroup(index=index, name=name, comment=comment)
        self._groups.append(group)
        self._groups_by_index[index] = group

    def _on_cg(self, version: int, cur: _PayloadCursor) -> None:
        component_count = cur.int()
        field_type = cur.int()
        dimension = cur.int()
        self._field = FamosField(field_type=field_type, component_count=component_count, dimension=dimension)
        self._fields.append(self._field)
        self._component = None

    def _on_cd(self, version: int, cur: _PayloadCursor) -> None:
        delta_x = cur.decimal()
        is_calibrated = cur.int() != 0
        unit = cur.text()
        x0 = Decimal(0)
        if version >= 2:
            cur.int()  # reduction
            cur.int()  # multi events
            cur.int()  # sort buffers
            x0 = cur.decimal()
        scaling = XAxisScaling(delta_x=delta_x, is_calibrated=is_calibrated, unit=unit, x0=x0)

        if self._component is not None:
            self._component.x_axis_scaling = scaling
        else:
            self._require_field("CD").x_axis_scaling = scaling

    def _on_nt(self, version: int, cur: _PayloadCursor) -> None:
        day, month, year, hour, minute = cur.int(), cur.int(), cur.int(), cur.int(), cur.int()
        second = cur.decimal()
        try:
            trigger = datetime(year, month, day, hour, minute) + timedelta(seconds=float(second))
        except ValueError as e:
            raise FamosFormatError(f"{self.path.name}: invalid trigger time ({e}).") from e
        if self._field is not None:
            self._field.trigger_time = trigger
        else:
            self.trigger_time = trigger

    def _on_cc(self, version: int, cur: _PayloadCursor) -> None:
        field = self._require_field("CC")
        index = cur.int()
        analog_digital = cur.int()
        self._component = FamosComponent(
            index=index,
            is_analog=(analog_digital == 1),
            x_axis_scaling=field.x_axis_scaling,
        )
        field.components.append(self._component)

    def _on_cp(self, version: int, cur: _PayloadCursor) -> None:
        component = self._require_component("CP")
        component.pack_info = PackInfo(
            buffer_reference=cur.int(),
            value_size=cur.int(),
            number_format=cur.int(),
            sign_bits=cur.int(),
            mask=cur.int(),
            offset=cur.int(),
            direct_sequence_number=cur.int(),
            value_distance=cur.int(),
        )

    def _on_cb_buffers(self, version: int, cur: _PayloadCursor) -> None:
        count = cur.int()
        user_info_size = cur.int()
        for _ in range(count):
            reference = cur.int()
            raw_data_index = cur.int()
            offset_in_raw_data = cur.int()
            size = cur.int()
            first_sample_offset = cur.int()
            filled_bytes = cur.int()
            cur.int()  # reserved
            x0 = cur.decimal()
            add_time = cur.decimal()
            cur.raw(user_info_size)
            new_event = cur.int() != 0
            self._buffers[reference] = FamosBuffer(
                reference=reference,
                raw_data_index=raw_data_index,
                offset_in_raw_data=offset_in_raw_data,
                size=size,
                first_sample_offset=first_sample_offset,
                filled_bytes=filled_bytes,
                x0=x0,
                add_time=add_time,
                new_event=new_event,
            )

    def _on_cr(self, version: int, cur: _PayloadCursor) -> None:
        component = self._require_component("CR")
        component.calibration_info = CalibrationInfo(
            apply_transformation=cur.int() != 0,
            factor=cur.decimal(),
            offset=cur.decimal(),
            is_calibrated=cur.int() != 0,
            unit=cur.text(),
        )

    def _on_cn(self, version: int, cur: _PayloadCursor) -> None:
        component = self._require_component("CN")
        group_index = cur.int()
        cur.int()  # reserved
        bit_index = cur.int()
        name = cur.text()
        comment = cur.text()
        channel = FamosChannel(
            name=name,
            comment=comment,
            group_index=group_index,
            bit_index=bit_index,
            component=component,
        )
        component.channels.append(channel)

        if group_index > 0:
            group = self._groups_by_index.get(group_index)
            if group is None:
                raise FamosFormatError(f"{self.path.name}: channel '{name}' references unknown group {group_index}.")
            group.channels.append(channel)
        else:
            self._channels.append(channel)

    _HANDLERS: Dict[str, Callable[["FamosFile", int, _PayloadCursor], None]] = {
        "CF": _on_cf,
        "NL": _on_nl,
        "NO": _on_no,
        "CB": _on_cb_group,
        "CG": _on_cg,
        "CD": _on_cd,
        "NT": _on_nt,
        "CC": _on_cc,
        "CP": _on_cp,
        "Cb": _on_cb_buffers,
        "CR": _on_cr,
        "CN": _on_cn,
    }
