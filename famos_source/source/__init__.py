"""Source package - data sources serving catalogs and reads from a database root.

Key classes:
- StructuredFileDataSource: Maps time windows onto files that each cover one file period
- FamosDataSource: Structured file data source for FAMOS files, configured by config.json

Design principle:
- Discovery and reads are driven by the immutable configuration only
- Every file-sized slice is extracted independently; missing files leave gaps
"""

from .famos import FamosDataSource
from .structured import StructuredFileDataSource, file_path_for, floor_to_period, iter_files

__all__ = [
    "FamosDataSource",
    "StructuredFileDataSource",
    "file_path_for",
    "floor_to_period",
    "iter_files",
]
