import unittest
import tempfile
import threading
from concurrent.futures import CancelledError
from pathlib import Path

import numpy as np
import pandas as pd

from famos_source.errors import UnsupportedDataTypeError
from famos_source.ingest.readers_famos import FamosChannelReader, FamosReaderConfig, read_channel
from famos_source.models.catalog import CatalogItem, Representation, Resource, ResourceCatalog
from famos_source.models.famos import FamosDataType
from famos_source.models.requests import ReadInfo, ReadRequest

from famos_writer import ComponentSpec, FieldSpec, write_famos


def _request(original_name: str, n: int, resource_id: str = None) -> ReadRequest:
    resource = Resource(
        id=resource_id or original_name,
        file_source_id="raw",
        original_name=original_name,
        representations=(Representation(sample_period=pd.Timedelta(milliseconds=20)),),
    )
    catalog = ResourceCatalog(id="/A/B/C", resources=(resource,))
    item = CatalogItem(catalog=catalog, resource=resource, representation=resource.representations[0])
    return ReadRequest(item, np.zeros(n * 8, dtype=np.uint8), np.zeros(n, dtype=np.uint8))


class TestFamosChannelReader(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.raw = (np.arange(100) % 300 + 150).astype("<i2")
        self.path = write_famos(
            self.dir / "x.dat",
            [FieldSpec([
                ComponentSpec("STTZ", self.raw, data_type=FamosDataType.INT16,
                              apply_transformation=True, factor="0.5", offset="100", unit="mV/V"),
                ComponentSpec("Dig", np.arange(100, dtype="<u2"), data_type=FamosDataType.UINT16,
                              is_analog=False, apply_transformation=True, factor="10", offset="1"),
                ComponentSpec("U48", np.zeros(600, dtype=np.uint8), data_type=FamosDataType.UINT48, value_size=6),
            ])],
        )
        self.reader = FamosChannelReader(FamosReaderConfig(max_workers=1))

    def tearDown(self):
        self._tmp.cleanup()

    def test_reads_calibrated_slice(self):
        req = _request("STTZ", 20)
        ok = self.reader.read(ReadInfo(self.path, file_length=100, file_offset=10, file_block=20), req)

        self.assertTrue(ok)
        np.testing.assert_array_equal(req.values(), self.raw[10:30] * 0.5 + 100)
        self.assertTrue((req.status == 1).all())

    def test_writes_through_to_parent_buffers(self):
        parent = _request("STTZ", 50)
        child = parent.slice(5, 20)
        self.reader.read(ReadInfo(self.path, file_length=100, file_offset=0, file_block=20), child)

        status = parent.status
        self.assertEqual(int(status.sum()), 20)
        self.assertTrue((status[5:25] == 1).all())
        self.assertTrue((status[:5] == 0).all() and (status[25:] == 0).all())
        np.testing.assert_array_equal(parent.values()[5:25], self.raw[:20] * 0.5 + 100)
        self.assertTrue((parent.values()[:5] == 0).all())

    def test_length_mismatch_leaves_request_untouched(self):
        req = _request("STTZ", 20)
        ok = self.reader.read(ReadInfo(self.path, file_length=30000, file_offset=0, file_block=20), req)
        self.assertFalse(ok)
        self.assertFalse(req.status.any())
        self.assertFalse(req.data.any())

    def test_truncated_file_leaves_request_untouched(self):
        p = write_famos(
            self.dir / "cut.dat",
            [FieldSpec([ComponentSpec("STTZ", self.raw, data_type=FamosDataType.INT16)])],
            truncate_bytes=21,
        )
        req = _request("STTZ", 100)
        ok = self.reader.read(ReadInfo(p, file_length=100, file_offset=0, file_block=100), req)
        self.assertFalse(ok)
        self.assertFalse(req.status.any())

    def test_missing_channel_is_not_an_error(self):
        req = _request("Nope", 10)
        self.assertFalse(self.reader.read(ReadInfo(self.path, 100, 0, 10), req))
        self.assertFalse(req.status.any())

    def test_request_without_original_name(self):
        req = _request("STTZ", 10)
        bare = Resource(id="STTZ", file_source_id="raw", representations=req.catalog_item.resource.representations)
        item = CatalogItem(req.catalog_item.catalog, bare, bare.representations[0])
        req = ReadRequest(item, req.data, req.status)
        self.assertFalse(self.reader.read(ReadInfo(self.path, 100, 0, 10), req))

    def test_digital_component_is_not_calibrated(self):
        req = _request("Dig", 100)
        self.assertTrue(self.reader.read(ReadInfo(self.path, 100, 0, 100), req))
        np.testing.assert_array_equal(req.values(), np.arange(100, dtype=np.float64))

    def test_unsupported_number_format_raises(self):
        with self.assertRaises(UnsupportedDataTypeError):
            self.reader.read(ReadInfo(self.path, 100, 0, 10), _request("U48", 10))

    def test_block_size_must_match_request(self):
        with self.assertRaises(ValueError):
            self.reader.read(ReadInfo(self.path, 100, 0, 10), _request("STTZ", 11))

    def test_cancelled_before_decode(self):
        event = threading.Event()
        event.set()
        req = _request("STTZ", 10)
        with self.assertRaises(CancelledError):
            self.reader.read(ReadInfo(self.path, 100, 0, 10), req, cancel_event=event)
        self.assertFalse(req.status.any())

    def test_read_channel(self):
        np.testing.assert_array_equal(read_channel(self.path, "STTZ"), self.raw * 0.5 + 100)
        with self.assertRaises(KeyError):
            read_channel(self.path, "Nope")


if __name__ == "__main__":
    unittest.main()
