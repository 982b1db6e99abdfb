from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import threading

from famos_source.errors import raise_if_cancelled
from famos_source.ingest.discovery import discover_resources
from famos_source.ingest.famos_file import FamosFile
from famos_source.ingest.readers_famos import FamosChannelReader, FamosReaderConfig
from famos_source.models.catalog import CatalogRegistration, ResourceCatalog
from famos_source.models.config import CatalogDescription, FileSource, SourceConfig, load_config
from famos_source.models.requests import ReadInfo, ReadRequest
from famos_source.source.structured import StructuredFileDataSource


logger = logging.getLogger(__name__)


class FamosDataSource(StructuredFileDataSource):
    """
    Structured file data source for imc FAMOS (.dat/.raw) files.

    Catalogs, their file source groups and file naming come from ``config.json``
    in the database root (see :mod:`famos_source.models.config`). Resources are
    discovered from sample files; every read request opens its own file.
    """

    def __init__(self, root: str | Path, config: SourceConfig, *, max_read_workers: Optional[int] = None):
        super().__init__(root, max_read_workers=max_read_workers)
        self.config = config
        self.reader = FamosChannelReader(
            FamosReaderConfig(max_workers=config.max_workers, min_chunk_size=config.min_chunk_size)
        )

    @classmethod
    def from_root(cls, root: str | Path, *, max_read_workers: Optional[int] = None, **options: Any) -> "FamosDataSource":
        """Data source for ``root`` configured by ``<root>/config.json``.

        ``options`` are passed on to :class:`SourceConfig` (max_workers, min_chunk_size).
        """
        return cls(root, load_config(root, **options), max_read_workers=max_read_workers)

    def _description(self, catalog_id: str) -> CatalogDescription:
        try:
            return self.config.catalogs[catalog_id]
        except KeyError:
            raise KeyError(f"Unknown catalog '{catalog_id}'.") from None

    def get_catalog_registrations(self, path: str) -> List[CatalogRegistration]:
        if path != "/":
            return []
        return [CatalogRegistration(path=cid, title=desc.title) for cid, desc in self.config.catalogs.items()]

    def get_file_sources(self, catalog_id: str) -> Dict[str, Tuple[FileSource, ...]]:
        return self._description(catalog_id).file_source_groups

    def _discovery_files(self, file_source: FileSource) -> List[Path]:
        explicit = file_source.catalog_source_files
        if explicit is not None:
            return [self.root / p for p in sorted(explicit)]
        first = self.try_get_first_file(file_source)
        return [first] if first is not None else []

    def enrich_catalog(self, catalog: ResourceCatalog, cancel_event: Optional[threading.Event] = None) -> ResourceCatalog:
        """Add the resources found in the discovery files of every file source.

        Groups are processed in configuration order, explicit discovery files
        in lexicographic order. A resource found again replaces the earlier one.
        """
        description = self._description(catalog.id)
        if catalog.title is None and description.title:
            catalog = ResourceCatalog(id=catalog.id, resources=catalog.resources, title=description.title)

        n_files = 0
        for file_source_id, file_sources in description.file_source_groups.items():
            for file_source in file_sources:
                for path in self._discovery_files(file_source):
                    raise_if_cancelled(cancel_event)
                    with FamosFile.open(path) as famos_file:
                        resources = discover_resources(famos_file, file_source_id)
                    logger.debug("%s: %d resources for group '%s'", path.name, len(resources), file_source_id)
                    catalog = catalog.add_resources(resources)
                    n_files += 1

        logger.info("catalog %s: %d resources from %d files", catalog.id, len(catalog.resources), n_files)
        return catalog

    def read_single(
        self,
        info: ReadInfo,
        requests: Sequence[ReadRequest],
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        for request in requests:
            raise_if_cancelled(cancel_event)
            self.reader.read(info, request, cancel_event=cancel_event)
