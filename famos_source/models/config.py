"""Data source configuration.

The configuration is read once from ``<root>/config.json`` and then passed
around as frozen dataclasses. Layout of ``config.json``::

    {
      "/A/B/C": {
        "Title": "Test catalog",
        "FileSourceGroups": {
          "raw": [
            {
              "PathSegments": ["DATA", "%Y-%m"],
              "FileTemplate": "%Y-%m-%d_%H-%M-%S.dat",
              "FilePeriod": "00:10:00",
              "UtcOffset": "00:00:00",
              "AdditionalProperties": {"CatalogSourceFiles": ["DATA/2020-06/2020-06-01_00-00-00.dat"]}
            }
          ]
        }
      }
    }

Path segments and file templates are ``strftime`` patterns evaluated at the
(local, i.e. UTC + UtcOffset) begin of each file period.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
import json

import pandas as pd

from famos_source.errors import ConfigError


CONFIG_FILE_NAME = "config.json"
DEFAULT_MIN_CHUNK_SIZE = 1 << 20


def _parse_timedelta(value: Any, what: str) -> pd.Timedelta:
    try:
        return pd.Timedelta(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid {what}: {value!r} ({e})") from e


def _parse_timestamp(value: Any, what: str) -> pd.Timestamp:
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid {what}: {value!r} ({e})") from e
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


@dataclass(frozen=True)
class FileSource:
    """How the files of one file source are named and how long each one lasts.

    file_template:
      strftime pattern of the file name.
    file_period:
      Time span covered by one complete file.
    path_segments:
      strftime patterns of the directory levels below the root.
    utc_offset:
      Offset of the time stamps used in paths/names relative to UTC.
    begin, end:
      Optional validity window (UTC) of this file source.
    additional_properties:
      Free-form settings; ``CatalogSourceFiles`` lists files used for catalog discovery.
    """

    file_template: str
    file_period: pd.Timedelta
    path_segments: Tuple[str, ...] = ()
    utc_offset: pd.Timedelta = pd.Timedelta(0)
    begin: Optional[pd.Timestamp] = None
    end: Optional[pd.Timestamp] = None
    additional_properties: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "path_segments", tuple(self.path_segments))
        object.__setattr__(self, "file_period", pd.Timedelta(self.file_period))
        object.__setattr__(self, "utc_offset", pd.Timedelta(self.utc_offset))
        if self.file_period <= pd.Timedelta(0):
            raise ConfigError(f"FilePeriod must be positive, got {self.file_period}.")
        if not self.file_template:
            raise ConfigError("FileTemplate must not be empty.")

    @property
    def catalog_source_files(self) -> Optional[Tuple[str, ...]]:
        files = self.additional_properties.get("CatalogSourceFiles")
        if files is None:
            return None
        if isinstance(files, str) or not isinstance(files, (list, tuple)):
            raise ConfigError(f"CatalogSourceFiles must be a list of paths, got {files!r}.")
        return tuple(str(f) for f in files if f is not None)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "FileSource":
        if "FileTemplate" not in d or "FilePeriod" not in d:
            raise ConfigError(f"File source requires FileTemplate and FilePeriod: {dict(d)!r}")
        begin = d.get("Begin")
        end = d.get("End")
        return cls(
            file_template=str(d["FileTemplate"]),
            file_period=_parse_timedelta(d["FilePeriod"], "FilePeriod"),
            path_segments=tuple(str(s) for s in d.get("PathSegments") or ()),
            utc_offset=_parse_timedelta(d.get("UtcOffset", "00:00:00"), "UtcOffset"),
            begin=_parse_timestamp(begin, "Begin") if begin is not None else None,
            end=_parse_timestamp(end, "End") if end is not None else None,
            additional_properties=dict(d.get("AdditionalProperties") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "PathSegments": list(self.path_segments),
            "FileTemplate": self.file_template,
            "FilePeriod": str(self.file_period),
            "UtcOffset": str(self.utc_offset),
        }
        if self.begin is not None:
            d["Begin"] = self.begin.isoformat()
        if self.end is not None:
            d["End"] = self.end.isoformat()
        if self.additional_properties:
            d["AdditionalProperties"] = dict(self.additional_properties)
        return d


@dataclass(frozen=True)
class CatalogDescription:
    title: str
    file_source_groups: Dict[str, Tuple[FileSource, ...]] = field(default_factory=dict, hash=False)
    additional_properties: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "CatalogDescription":
        groups_raw = d.get("FileSourceGroups")
        if not isinstance(groups_raw, Mapping):
            raise ConfigError("Catalog description requires a FileSourceGroups object.")
        groups: Dict[str, Tuple[FileSource, ...]] = {}
        for group_id, sources in groups_raw.items():
            if not isinstance(sources, list):
                raise ConfigError(f"File source group '{group_id}' must be a list.")
            groups[str(group_id)] = tuple(FileSource.from_dict(s) for s in sources)
        return cls(
            title=str(d.get("Title", "")),
            file_source_groups=groups,
            additional_properties=dict(d.get("AdditionalProperties") or {}),
        )


@dataclass(frozen=True)
class SourceConfig:
    """Immutable data source configuration.

    catalogs:
      Catalog id -> description, in file order.
    max_workers:
      Thread count for elementwise conversion and calibration (None: CPU count).
    min_chunk_size:
      Arrays shorter than this are converted on the calling thread.
    """

    catalogs: Dict[str, CatalogDescription] = field(default_factory=dict, hash=False)
    max_workers: Optional[int] = None
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], **options: Any) -> "SourceConfig":
        if not isinstance(d, Mapping):
            raise ConfigError("Configuration root must be an object of catalog descriptions.")
        catalogs = {str(k): CatalogDescription.from_dict(v) for k, v in d.items()}
        return cls(catalogs=catalogs, **options)


def load_config(root: str | Path, **options: Any) -> SourceConfig:
    """Load ``<root>/config.json``."""
    path = Path(root).expanduser() / CONFIG_FILE_NAME
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file {path} not found.")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Configuration file {path} is not valid JSON: {e}") from e
    return SourceConfig.from_dict(raw, **options)
