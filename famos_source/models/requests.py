from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from famos_source.models.catalog import CatalogItem, Representation


@dataclass(frozen=True)
class ReadInfo:
    """Where one file-sized slice of a read comes from.

    file_path:
      Physical file.
    file_length:
      Number of samples a complete file holds (file period / sample period).
    file_offset:
      Index of the first sample to extract from the file.
    file_block:
      Number of samples to extract.
    file_begin:
      Nominal begin of the file period (informational).
    """

    file_path: Path
    file_length: int
    file_offset: int
    file_block: int
    file_begin: Optional[pd.Timestamp] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "file_path", Path(self.file_path))
        if self.file_length < 0 or self.file_offset < 0 or self.file_block < 0:
            raise ValueError(f"ReadInfo values must be >= 0: {self}")
        if self.file_offset + self.file_block > self.file_length:
            raise ValueError(
                f"Slice [{self.file_offset}, {self.file_offset + self.file_block}) exceeds "
                f"file length {self.file_length}."
            )


@dataclass(frozen=True, eq=False)
class ReadRequest:
    """Destination of a read for one catalog item.

    data:
      uint8 buffer, ``element_size`` bytes per sample (float64 little-endian).
    status:
      uint8 buffer, one byte per sample: 0 = no data, 1 = valid.

    Both buffers may be views into larger buffers; writes go through.
    """

    catalog_item: CatalogItem
    data: np.ndarray
    status: np.ndarray

    def __post_init__(self) -> None:
        for name in ("data", "status"):
            buf = getattr(self, name)
            if not isinstance(buf, np.ndarray) or buf.dtype != np.uint8 or buf.ndim != 1:
                raise TypeError(f"ReadRequest.{name} must be a 1-D uint8 numpy array.")
        if self.data.size != self.status.size * self.element_size:
            raise ValueError(
                f"Buffer size mismatch: data has {self.data.size} bytes, "
                f"status covers {self.status.size} samples of {self.element_size} bytes."
            )

    @property
    def element_size(self) -> int:
        return self.catalog_item.representation.element_size

    @property
    def original_resource_name(self) -> Optional[str]:
        return self.catalog_item.resource.original_name

    @property
    def n_samples(self) -> int:
        return int(self.status.size)

    def slice(self, start: int, count: int) -> "ReadRequest":
        """Request addressing samples ``[start, start + count)`` of this one (views, no copy)."""
        if start < 0 or count < 0 or start + count > self.n_samples:
            raise IndexError(f"Slice [{start}, {start + count}) outside of 0..{self.n_samples}.")
        size = self.element_size
        return ReadRequest(
            catalog_item=self.catalog_item,
            data=self.data[start * size:(start + count) * size],
            status=self.status[start:start + count],
        )

    def values(self) -> np.ndarray:
        """Data buffer viewed as samples of the representation dtype."""
        return self.data.view(self.catalog_item.representation.dtype)


def sample_count(begin: pd.Timestamp, end: pd.Timestamp, sample_period: pd.Timedelta) -> int:
    """Number of samples in ``[begin, end)``; the window must be period-aligned."""
    span = pd.Timestamp(end) - pd.Timestamp(begin)
    if span < pd.Timedelta(0):
        raise ValueError(f"end ({end}) is before begin ({begin}).")
    period = pd.Timedelta(sample_period)
    if span.value % period.value != 0:
        raise ValueError(f"Window length {span} is not a multiple of the sample period {period}.")
    return int(span.value // period.value)


def create_buffers(
    representation: Representation,
    begin: pd.Timestamp,
    end: pd.Timestamp,
) -> Tuple[np.ndarray, np.ndarray]:
    """Zeroed (data, status) buffers covering ``[begin, end)``."""
    n = sample_count(begin, end, representation.sample_period)
    data = np.zeros(n * representation.element_size, dtype=np.uint8)
    status = np.zeros(n, dtype=np.uint8)
    return data, status
