"""Tests for catalog and read request models.

Covers:
- representation ids derived from the sample period
- resource and catalog id validation
- later-wins catalog merge with stable positions
- buffer creation and request slicing
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from famos_source.models.catalog import CatalogItem, Representation, Resource, ResourceCatalog
from famos_source.models.requests import ReadInfo, ReadRequest, create_buffers, sample_count


def _resource(rid: str, unit: str = "") -> Resource:
    return Resource(
        id=rid,
        unit=unit,
        groups=("raw",),
        file_source_id="raw",
        original_name=rid,
        representations=(Representation(sample_period=pd.Timedelta(milliseconds=20)),),
    )


@pytest.mark.parametrize(
    "period, expected",
    [
        (pd.Timedelta(milliseconds=20), "20_ms"),
        (pd.Timedelta(seconds=1), "1_s"),
        (pd.Timedelta(minutes=1), "1_min"),
        (pd.Timedelta(microseconds=1500), "1500_us"),
        (pd.Timedelta(nanoseconds=100), "100_ns"),
    ],
)
def test_representation_id(period, expected) -> None:
    assert Representation(sample_period=period).id == expected


def test_representation_rejects_bad_values() -> None:
    with pytest.raises(ValueError):
        Representation(sample_period=pd.Timedelta(0))
    with pytest.raises(ValueError):
        Representation(sample_period=pd.Timedelta(seconds=1), data_type="INT16")


def test_resource_id_must_be_valid() -> None:
    with pytest.raises(ValueError):
        Resource(id="1abc")
    with pytest.raises(ValueError):
        Resource(id="a b")


def test_catalog_id_must_be_valid() -> None:
    ResourceCatalog(id="/A/B/C")
    for bad in ("A/B", "/", "/A/", "/1A", "/A B"):
        with pytest.raises(ValueError):
            ResourceCatalog(id=bad)


def test_catalog_rejects_duplicate_ids() -> None:
    with pytest.raises(ValueError):
        ResourceCatalog(id="/A", resources=(_resource("X"), _resource("X")))


def test_merge_later_wins_and_keeps_position() -> None:
    left = ResourceCatalog(id="/A/B/C", resources=(_resource("X", "a"), _resource("Y", "a")), title="T")
    right = ResourceCatalog(id="/A/B/C", resources=(_resource("Y", "b"), _resource("Z", "b")))

    merged = left.merge(right)

    assert merged.resource_ids == ["X", "Y", "Z"]
    assert merged.find("Y").unit == "b"
    assert merged.find("X").unit == "a"
    assert merged.title == "T"
    assert left.resource_ids == ["X", "Y"]

    with pytest.raises(KeyError):
        merged.find("W")
    with pytest.raises(ValueError):
        left.merge(ResourceCatalog(id="/Other"))


def test_catalog_item_path() -> None:
    r = _resource("STTZ")
    item = CatalogItem(ResourceCatalog(id="/A/B/C", resources=(r,)), r, r.representations[0])
    assert item.to_path() == "/A/B/C/STTZ/20_ms"


def test_create_buffers() -> None:
    rep = Representation(sample_period=pd.Timedelta(milliseconds=20))
    data, status = create_buffers(rep, pd.Timestamp("2020-01-01"), pd.Timestamp("2020-01-01 00:00:01"))
    assert data.dtype == np.uint8 and data.size == 50 * 8
    assert status.dtype == np.uint8 and status.size == 50
    assert not data.any() and not status.any()

    assert sample_count(pd.Timestamp("2020-01-01"), pd.Timestamp("2020-01-02"), pd.Timedelta(milliseconds=20)) == 4_320_000
    with pytest.raises(ValueError):
        create_buffers(rep, pd.Timestamp("2020-01-01"), pd.Timestamp("2020-01-01 00:00:00.010"))
    with pytest.raises(ValueError):
        create_buffers(rep, pd.Timestamp("2020-01-02"), pd.Timestamp("2020-01-01"))


def test_read_request_validation_and_slicing() -> None:
    r = _resource("STTZ")
    item = CatalogItem(ResourceCatalog(id="/A", resources=(r,)), r, r.representations[0])

    with pytest.raises(ValueError):
        ReadRequest(item, np.zeros(79, dtype=np.uint8), np.zeros(10, dtype=np.uint8))
    with pytest.raises(TypeError):
        ReadRequest(item, np.zeros(10, dtype=np.float64), np.zeros(10, dtype=np.uint8))

    req = ReadRequest(item, np.zeros(80, dtype=np.uint8), np.zeros(10, dtype=np.uint8))
    part = req.slice(2, 3)
    part.values()[:] = 7.5
    part.status[:] = 1
    np.testing.assert_array_equal(req.values(), [0, 0, 7.5, 7.5, 7.5, 0, 0, 0, 0, 0])
    assert req.status.tolist() == [0, 0, 1, 1, 1, 0, 0, 0, 0, 0]

    with pytest.raises(IndexError):
        req.slice(8, 3)


def test_read_info_validation() -> None:
    ReadInfo("x.dat", file_length=30000, file_offset=29990, file_block=10)
    with pytest.raises(ValueError):
        ReadInfo("x.dat", file_length=30000, file_offset=29990, file_block=11)
    with pytest.raises(ValueError):
        ReadInfo("x.dat", file_length=30000, file_offset=-1, file_block=1)


def test_resource_to_dict() -> None:
    d = _resource("STTZ", "mV/V").to_dict()
    assert d == {
        "id": "STTZ",
        "properties": {
            "unit": "mV/V",
            "groups": ["raw"],
            "file_source_id": "raw",
            "original_name": "STTZ",
        },
        "representations": [{"id": "20_ms", "data_type": "FLOAT64", "sample_period": "P0DT0H0M0.02S"}],
    }
