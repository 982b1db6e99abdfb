"""FAMOS Source -- calibrated sample streams from imc FAMOS measurement files.

This package provides tools for:
- Parsing FAMOS files (fields, components, channels, groups, raw data blocks)
- Discovering catalog resources with sanitized ids and 100 ns sample periods
- Widening all supported number formats to float64
- Applying the affine calibration with decimal-grade precision
- Reading time windows from databases of fixed-period files

Key principles:
- Files are read only, never modified
- Incomplete files yield no data instead of wrong data
- Identical results regardless of the number of worker threads

Main subpackages:
- analysis: Numeric normalization and calibration
- ingest: FAMOS file access, discovery and channel reading
- models: Catalog, request, configuration and FAMOS structure models
- source: Data sources serving catalogs, time ranges, availability and reads
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
