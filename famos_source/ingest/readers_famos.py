from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging
import threading

import numpy as np

from famos_source.analysis.calibration import apply_calibration
from famos_source.analysis.normalize import dtype_for, to_double
from famos_source.errors import FamosFormatError, raise_if_cancelled
from famos_source.ingest.famos_file import FamosFile
from famos_source.models.famos import FamosChannel, FamosComponent
from famos_source.models.requests import ReadInfo, ReadRequest


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FamosReaderConfig:
    """
    Reader configuration.

    max_workers:
      Threads used to widen and calibrate one channel (None: CPU count, 1: inline).
    min_chunk_size:
      Arrays shorter than two chunks of this many samples are processed inline.
    """
    max_workers: Optional[int] = None
    min_chunk_size: int = 1 << 20


class FamosChannelReader:
    """
    Extracts one file-sized slice of calibrated float64 samples per request.

    Contract (per request):
      - the file is opened for the request and closed before returning, also on error
      - channel looked up by exact original name across grouped and ungrouped channels;
        not found -> nothing written, status stays 0
      - unsupported number format -> UnsupportedDataTypeError
      - the full channel is decoded and calibrated; if its length differs from
        ReadInfo.file_length the file is treated as incomplete: nothing written
      - otherwise samples [file_offset, file_offset + file_block) are copied and the
        request's status bytes are set to 1
    """

    def __init__(self, config: Optional[FamosReaderConfig] = None):
        self.config = config or FamosReaderConfig()

    def decode(self, famos_file: FamosFile, channel: FamosChannel) -> np.ndarray:
        """Full calibrated float64 samples of ``channel``."""
        component = famos_file.find_component(channel)
        return self.decode_component(famos_file, component)

    def decode_component(self, famos_file: FamosFile, component: FamosComponent) -> np.ndarray:
        cfg = self.config
        pack = component.pack_info
        if pack is None:
            raise FamosFormatError(f"Component {component.index} has no pack info (CP key).")
        # Reject unsupported formats before touching any sample.
        dtype_for(pack.number_format)

        raw = famos_file.read_component(component)
        data = to_double(raw, pack.number_format, max_workers=cfg.max_workers, min_chunk_size=cfg.min_chunk_size)
        return apply_calibration(
            data,
            component.calibration_info if component.is_analog else None,
            max_workers=cfg.max_workers,
            min_chunk_size=cfg.min_chunk_size,
        )

    def read(
        self,
        info: ReadInfo,
        request: ReadRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Fill ``request`` from ``info.file_path``. Returns True if data was written."""
        name = request.original_resource_name
        if name is None:
            logger.debug("%s: request for '%s' has no original name", info.file_path.name, request.catalog_item.resource.id)
            return False
        if request.n_samples != info.file_block:
            raise ValueError(
                f"Request covers {request.n_samples} samples but the file slice has {info.file_block}."
            )

        with FamosFile.open(info.file_path) as famos_file:
            channel = famos_file.find_channel(name)
            if channel is None:
                logger.debug("%s: channel '%s' not found", info.file_path.name, name)
                return False

            raise_if_cancelled(cancel_event)
            data = self.decode(famos_file, channel)

        raise_if_cancelled(cancel_event)

        if data.size != info.file_length:
            logger.debug(
                "%s: the actual buffer size (%d) does not match the expected size (%d), "
                "which indicates an incomplete file",
                info.file_path.name,
                data.size,
                info.file_length,
            )
            return False

        size = request.element_size
        byte_data = data.astype("<f8", copy=False).view(np.uint8)
        start = info.file_offset * size
        stop = start + info.file_block * size
        request.data[:] = byte_data[start:stop]
        request.status.fill(1)
        return True


def read_channel(file_path: str | Path, channel_name: str, config: Optional[FamosReaderConfig] = None) -> np.ndarray:
    """Calibrated float64 samples of one channel of one file.

    Raises KeyError if the file has no channel of that name.
    """
    reader = FamosChannelReader(config)
    with FamosFile.open(file_path) as famos_file:
        channel = famos_file.find_channel(channel_name)
        if channel is None:
            raise KeyError(f"Channel '{channel_name}' not found in {Path(file_path).name}.")
        return reader.decode(famos_file, channel)
