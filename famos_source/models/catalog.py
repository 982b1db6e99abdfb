from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
import re

import numpy as np
import pandas as pd


VALID_ID_EXPRESSION = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
INVALID_ID_CHARS_EXPRESSION = re.compile(r"[^A-Za-z0-9_]")
INVALID_ID_START_CHARS_EXPRESSION = re.compile(r"^[0-9]+")

VALID_CATALOG_ID_EXPRESSION = re.compile(r"^(?:/[A-Za-z_][A-Za-z0-9_]*)+$")

# Output encodings a representation may declare.
_DTYPES: Dict[str, np.dtype] = {
    "FLOAT64": np.dtype("<f8"),
}

# Largest unit first; a period is named after the largest unit dividing it.
_PERIOD_UNITS: Tuple[Tuple[str, int], ...] = (
    ("min", 60_000_000_000),
    ("s", 1_000_000_000),
    ("ms", 1_000_000),
    ("us", 1_000),
    ("ns", 1),
)


def _period_to_unit_string(period: pd.Timedelta) -> str:
    ns = int(period.value)
    for unit, size in _PERIOD_UNITS:
        if ns % size == 0:
            return f"{ns // size}_{unit}"
    return f"{ns}_ns"


@dataclass(frozen=True)
class Representation:
    """Declared output encoding and sample period of a resource."""

    sample_period: pd.Timedelta
    data_type: str = "FLOAT64"

    def __post_init__(self) -> None:
        if self.data_type not in _DTYPES:
            raise ValueError(f"Unknown representation data type '{self.data_type}'.")
        if pd.Timedelta(self.sample_period) <= pd.Timedelta(0):
            raise ValueError(f"Sample period must be positive, got {self.sample_period}.")
        object.__setattr__(self, "sample_period", pd.Timedelta(self.sample_period))

    @property
    def dtype(self) -> np.dtype:
        return _DTYPES[self.data_type]

    @property
    def element_size(self) -> int:
        return int(self.dtype.itemsize)

    @property
    def id(self) -> str:
        return _period_to_unit_string(self.sample_period)


@dataclass(frozen=True)
class Resource:
    """Externally visible identity of one channel.

    id:
      Sanitized identifier (see :func:`famos_source.ingest.discovery.enforce_naming_convention`).
    groups:
      Group labels; FAMOS resources carry exactly one (the file source group id).
    file_source_id:
      File source group the resource was discovered in; reads are routed by it.
    original_name:
      Channel name as stored in the file, used to locate the channel on read.
    """

    id: str
    unit: str = ""
    groups: Tuple[str, ...] = ()
    file_source_id: Optional[str] = None
    original_name: Optional[str] = None
    representations: Tuple[Representation, ...] = ()

    def __post_init__(self) -> None:
        if not VALID_ID_EXPRESSION.match(self.id):
            raise ValueError(f"The resource id '{self.id}' is not valid.")
        object.__setattr__(self, "groups", tuple(self.groups))
        object.__setattr__(self, "representations", tuple(self.representations))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view (periods become ISO-8601 durations)."""
        return {
            "id": self.id,
            "properties": {
                "unit": self.unit,
                "groups": list(self.groups),
                "file_source_id": self.file_source_id,
                "original_name": self.original_name,
            },
            "representations": [
                {"id": r.id, "data_type": r.data_type, "sample_period": r.sample_period.isoformat()}
                for r in self.representations
            ],
        }


@dataclass(frozen=True)
class ResourceCatalog:
    """Ordered, id-unique collection of resources."""

    id: str
    resources: Tuple[Resource, ...] = ()
    title: Optional[str] = None

    def __post_init__(self) -> None:
        if not VALID_CATALOG_ID_EXPRESSION.match(self.id):
            raise ValueError(f"The catalog id '{self.id}' is not valid.")
        resources = tuple(self.resources)
        ids = [r.id for r in resources]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Catalog '{self.id}' contains duplicate resource ids.")
        object.__setattr__(self, "resources", resources)

    def merge(self, other: "ResourceCatalog") -> "ResourceCatalog":
        """Return a catalog holding the resources of both catalogs.

        On id collision the resource of ``other`` wins and takes the position
        of the replaced one; new ids are appended in ``other``'s order.
        """
        if other.id != self.id:
            raise ValueError(f"Cannot merge catalog '{other.id}' into '{self.id}'.")
        merged = self.add_resources(other.resources)
        if merged.title is None and other.title is not None:
            merged = ResourceCatalog(id=self.id, resources=merged.resources, title=other.title)
        return merged

    def add_resources(self, resources: Iterable[Resource]) -> "ResourceCatalog":
        """Add resources in order, later ones replacing earlier ones with the same id."""
        merged: Dict[str, Resource] = {r.id: r for r in self.resources}
        for resource in resources:
            merged[resource.id] = resource
        return ResourceCatalog(id=self.id, resources=tuple(merged.values()), title=self.title)

    def find(self, resource_id: str) -> Resource:
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        raise KeyError(f"Resource '{resource_id}' not found in catalog '{self.id}'.")

    @property
    def resource_ids(self) -> List[str]:
        return [r.id for r in self.resources]


@dataclass(frozen=True)
class CatalogItem:
    """One (catalog, resource, representation) triple addressed by a read."""

    catalog: ResourceCatalog
    resource: Resource
    representation: Representation

    def to_path(self) -> str:
        return f"{self.catalog.id}/{self.resource.id}/{self.representation.id}"


@dataclass(frozen=True)
class CatalogRegistration:
    path: str
    title: str = ""
