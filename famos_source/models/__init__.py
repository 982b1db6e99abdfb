from .catalog import CatalogItem, CatalogRegistration, Representation, Resource, ResourceCatalog
from .config import CatalogDescription, FileSource, SourceConfig, load_config
from .famos import (
    CalibrationInfo,
    FamosChannel,
    FamosComponent,
    FamosDataType,
    FamosField,
    FamosFieldType,
    FamosGroup,
    PackInfo,
    XAxisScaling,
)
from .requests import ReadInfo, ReadRequest, create_buffers

__all__ = [
    "CatalogItem",
    "CatalogRegistration",
    "Representation",
    "Resource",
    "ResourceCatalog",
    "CatalogDescription",
    "FileSource",
    "SourceConfig",
    "load_config",
    "CalibrationInfo",
    "FamosChannel",
    "FamosComponent",
    "FamosDataType",
    "FamosField",
    "FamosFieldType",
    "FamosGroup",
    "PackInfo",
    "XAxisScaling",
    "ReadInfo",
    "ReadRequest",
    "create_buffers",
]
