"""Data sources backed by files that each cover one fixed time period.

A file source names its files after the (local) begin of the period they
cover: ``root / strftime(segment) / ... / strftime(file_template)``. With
that convention the file for any instant can be located without listing
directories, and a read over ``[begin, end)`` becomes a sequence of
file-sized slices, one per file period.

Subclasses provide the catalog content (:meth:`enrich_catalog`), the file
sources per catalog (:meth:`get_file_sources`) and the extraction of one
file-sized slice (:meth:`read_single`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple
import logging
import threading

import pandas as pd

from famos_source.errors import raise_if_cancelled
from famos_source.models.catalog import CatalogRegistration, ResourceCatalog
from famos_source.models.config import FileSource
from famos_source.models.requests import ReadInfo, ReadRequest


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def to_utc(ts) -> pd.Timestamp:
    """Naive UTC timestamp (tz-aware input is converted, naive input is taken as UTC)."""
    ts = pd.Timestamp(ts)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def floor_to_period(ts: pd.Timestamp, file_source: FileSource) -> pd.Timestamp:
    """Begin (UTC) of the file period containing ``ts``.

    Periods are aligned in local time (UTC + utc_offset) to multiples of the
    file period since the epoch.
    """
    local = to_utc(ts) + file_source.utc_offset
    remainder = local.value % file_source.file_period.value
    return local - pd.Timedelta(remainder, unit="ns") - file_source.utc_offset


def file_path_for(root: Path, file_source: FileSource, file_begin: pd.Timestamp) -> Path:
    """Path of the file whose period begins at ``file_begin`` (UTC)."""
    local = to_utc(file_begin) + file_source.utc_offset
    parts = [local.strftime(segment) for segment in file_source.path_segments]
    return Path(root).joinpath(*parts, local.strftime(file_source.file_template))


def _parse_local(name: str, pattern: str) -> Optional[pd.Timestamp]:
    try:
        return pd.Timestamp(datetime.strptime(name, pattern))
    except ValueError:
        return None


def _matches(name: str, pattern: str) -> bool:
    if "%" not in pattern:
        return name == pattern
    return _parse_local(name, pattern) is not None


def _in_validity(file_source: FileSource, file_begin: pd.Timestamp) -> bool:
    if file_source.begin is not None and file_begin < file_source.begin:
        return False
    if file_source.end is not None and file_begin >= file_source.end:
        return False
    return True


def iter_files(root: Path, file_source: FileSource) -> Iterator[Tuple[pd.Timestamp, Path]]:
    """Existing files of ``file_source`` as ``(file_begin_utc, path)``, sorted by begin."""
    dirs = [Path(root)]
    for segment in file_source.path_segments:
        next_dirs: List[Path] = []
        for d in dirs:
            if not d.is_dir():
                continue
            if "%" not in segment:
                candidate = d / segment
                if candidate.is_dir():
                    next_dirs.append(candidate)
                continue
            next_dirs.extend(c for c in sorted(d.iterdir()) if c.is_dir() and _matches(c.name, segment))
        dirs = next_dirs

    found: List[Tuple[pd.Timestamp, Path]] = []
    for d in dirs:
        if not d.is_dir():
            continue
        for child in d.iterdir():
            if not child.is_file():
                continue
            local = _parse_local(child.name, file_source.file_template)
            if local is None:
                continue
            file_begin = local - file_source.utc_offset
            if _in_validity(file_source, file_begin):
                found.append((file_begin, child))

    found.sort(key=lambda item: (item[0], str(item[1])))
    return iter(found)


def _samples(span: pd.Timedelta, sample_period: pd.Timedelta, what: str) -> int:
    if span.value % sample_period.value != 0:
        raise ValueError(f"{what} ({span}) is not a multiple of the sample period {sample_period}.")
    return int(span.value // sample_period.value)


class StructuredFileDataSource(ABC):
    """Base class of file-period organized data sources.

    Parameters
    ----------
    root:
        Database root directory.
    max_read_workers:
        Size of the executor behind :meth:`submit_read` (created lazily).
    """

    def __init__(self, root: str | Path, *, max_read_workers: Optional[int] = None):
        self.root = Path(root).expanduser()
        self._max_read_workers = max_read_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # ---- subclass hooks ----

    @abstractmethod
    def get_catalog_registrations(self, path: str) -> List[CatalogRegistration]:
        ...

    @abstractmethod
    def get_file_sources(self, catalog_id: str) -> Dict[str, Tuple[FileSource, ...]]:
        """File source group id -> file sources of one catalog."""

    @abstractmethod
    def enrich_catalog(self, catalog: ResourceCatalog) -> ResourceCatalog:
        ...

    @abstractmethod
    def read_single(
        self,
        info: ReadInfo,
        requests: Sequence[ReadRequest],
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Fill ``requests`` (already sliced to ``info.file_block`` samples) from one file."""

    # ---- catalog ----

    def get_catalog(self, catalog_id: str) -> ResourceCatalog:
        return self.enrich_catalog(ResourceCatalog(id=catalog_id))

    def try_get_first_file(self, file_source: FileSource) -> Optional[Path]:
        for _, path in iter_files(self.root, file_source):
            return path
        return None

    def _all_file_sources(self, catalog_id: str) -> List[FileSource]:
        return [fs for group in self.get_file_sources(catalog_id).values() for fs in group]

    def get_time_range(self, catalog_id: str) -> Tuple[pd.Timestamp, pd.Timestamp]:
        """Earliest file begin and latest file end over all file sources.

        Without any file the range is empty: ``(Timestamp.max, Timestamp.min)``.
        """
        begin = pd.Timestamp.max
        end = pd.Timestamp.min
        for file_source in self._all_file_sources(catalog_id):
            files = list(iter_files(self.root, file_source))
            if not files:
                continue
            begin = min(begin, files[0][0])
            end = max(end, files[-1][0] + file_source.file_period)
        return begin, end

    def _iter_periods(
        self, file_source: FileSource, begin: pd.Timestamp, end: pd.Timestamp
    ) -> Iterator[pd.Timestamp]:
        current = floor_to_period(begin, file_source)
        while current < end:
            yield current
            current = current + file_source.file_period

    def _clip(self, file_source: FileSource, begin: pd.Timestamp, end: pd.Timestamp) -> Tuple[pd.Timestamp, pd.Timestamp]:
        if file_source.begin is not None:
            begin = max(begin, file_source.begin)
        if file_source.end is not None:
            end = min(end, file_source.end)
        return begin, end

    def get_availability(self, catalog_id: str, begin, end) -> float:
        """Fraction of expected files in ``[begin, end)`` that exist, averaged over file sources."""
        begin, end = to_utc(begin), to_utc(end)
        if end <= begin:
            raise ValueError(f"end ({end}) must be after begin ({begin}).")

        ratios: List[float] = []
        for file_source in self._all_file_sources(catalog_id):
            expected = 0
            existing = 0
            for file_begin in self._iter_periods(file_source, begin, end):
                expected += 1
                if _in_validity(file_source, file_begin) and file_path_for(self.root, file_source, file_begin).is_file():
                    existing += 1
            ratios.append(existing / expected if expected else 0.0)

        return sum(ratios) / len(ratios) if ratios else 0.0

    # ---- read ----

    def read(
        self,
        begin,
        end,
        requests: Sequence[ReadRequest],
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Fill ``requests`` (buffers covering ``[begin, end)``) file period by file period.

        Missing files leave their samples at status 0. Cancellation is checked
        before each file and raises :class:`concurrent.futures.CancelledError`.
        """
        begin, end = to_utc(begin), to_utc(end)
        if end < begin:
            raise ValueError(f"end ({end}) is before begin ({begin}).")

        # (catalog id, file source group id) -> requests
        routed: Dict[Tuple[str, str], List[ReadRequest]] = {}
        for request in requests:
            resource = request.catalog_item.resource
            if resource.file_source_id is None:
                raise ValueError(f"Resource '{resource.id}' has no file source id.")
            n = _samples(end - begin, request.catalog_item.representation.sample_period, "Read window")
            if n != request.n_samples:
                raise ValueError(
                    f"Request for '{request.catalog_item.to_path()}' holds {request.n_samples} samples, "
                    f"the window holds {n}."
                )
            routed.setdefault((request.catalog_item.catalog.id, resource.file_source_id), []).append(request)

        plan: List[Tuple[FileSource, pd.Timestamp, pd.Timestamp, pd.Timestamp, List[ReadRequest]]] = []
        for (catalog_id, group_id), group_requests in routed.items():
            groups = self.get_file_sources(catalog_id)
            if group_id not in groups:
                raise ValueError(f"Catalog '{catalog_id}' has no file source group '{group_id}'.")
            for file_source in groups[group_id]:
                window_begin, window_end = self._clip(file_source, begin, end)
                for file_begin in self._iter_periods(file_source, window_begin, window_end):
                    plan.append((file_source, file_begin, window_begin, window_end, group_requests))

        total = len(plan)
        for done, (file_source, file_begin, window_begin, window_end, group_requests) in enumerate(plan, start=1):
            raise_if_cancelled(cancel_event)
            self._read_file_period(file_source, file_begin, window_begin, window_end, begin, group_requests, cancel_event)
            if progress is not None:
                progress(done / total)

        if progress is not None and total == 0:
            progress(1.0)

    def _read_file_period(
        self,
        file_source: FileSource,
        file_begin: pd.Timestamp,
        window_begin: pd.Timestamp,
        window_end: pd.Timestamp,
        buffer_begin: pd.Timestamp,
        requests: Sequence[ReadRequest],
        cancel_event: Optional[threading.Event],
    ) -> None:
        path = file_path_for(self.root, file_source, file_begin)
        if not path.is_file():
            logger.debug("no file for period %s (%s)", file_begin, path)
            return

        slice_begin = max(window_begin, file_begin)
        slice_end = min(window_end, file_begin + file_source.file_period)
        if slice_end <= slice_begin:
            return

        by_period: Dict[pd.Timedelta, List[ReadRequest]] = {}
        for request in requests:
            by_period.setdefault(request.catalog_item.representation.sample_period, []).append(request)

        for sample_period, same_period in by_period.items():
            file_length = _samples(file_source.file_period, sample_period, "File period")
            file_offset = _samples(slice_begin - file_begin, sample_period, "File offset")
            file_block = _samples(slice_end - slice_begin, sample_period, "File block")
            buffer_offset = _samples(slice_begin - buffer_begin, sample_period, "Buffer offset")

            info = ReadInfo(
                file_path=path,
                file_length=file_length,
                file_offset=file_offset,
                file_block=file_block,
                file_begin=file_begin,
            )
            sliced = [r.slice(buffer_offset, file_block) for r in same_period]
            self.read_single(info, sliced, cancel_event)

    def submit_read(
        self,
        begin,
        end,
        requests: Sequence[ReadRequest],
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "Future[None]":
        """Run :meth:`read` on the data source's worker threads."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_read_workers,
                    thread_name_prefix=type(self).__name__,
                )
            executor = self._executor
        return executor.submit(self.read, begin, end, requests, progress, cancel_event)

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
