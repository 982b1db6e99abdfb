"""Ingest package - FAMOS file access, resource discovery and channel reading.

This package handles:
- Parsing the key structure of FAMOS files (fields, components, channels, groups)
- Discovering catalog resources from equidistant time fields
- Reading one channel as calibrated float64 samples for a file slice

Key classes:
- FamosFile: Open FAMOS file with on-demand raw sample access
- FamosChannelReader: Fills read requests from one physical file

Design principle:
- Structure is read eagerly, samples lazily
- Files are never modified
- Incomplete files and missing channels leave requests empty; they do not raise
"""

from .discovery import discover_resources, enforce_naming_convention, sanitize_resource_id
from .famos_file import FamosFile
from .readers_famos import FamosChannelReader, FamosReaderConfig, read_channel

__all__ = [
    "discover_resources",
    "enforce_naming_convention",
    "sanitize_resource_id",
    "FamosFile",
    "FamosChannelReader",
    "FamosReaderConfig",
    "read_channel",
]
