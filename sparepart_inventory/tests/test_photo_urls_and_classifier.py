import os
import sys
import unittest
from pathlib import Path


APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from schemas.stock import StockRecord
from services.photo_url_service import (
    get_photo_base_url,
    mint_draft_photo_id,
    mint_photo_id,
    parse_photo_id,
    resolve_photo_url,
)
from services.stock_classifier import (
    StockClassificationError,
    classify,
    item_type_for_bucket,
    stock_type_for_bucket,
)


class PhotoUrlTests(unittest.TestCase):
    def test_absolute_urls_are_returned_unchanged(self):
        self.assertEqual(resolve_photo_url("https://cdn.test/a.jpg", "http://files.test"), "https://cdn.test/a.jpg")
        self.assertEqual(resolve_photo_url("http://cdn.test/a.jpg", "http://files.test"), "http://cdn.test/a.jpg")

    def test_relative_paths_are_joined_with_one_slash(self):
        self.assertEqual(resolve_photo_url("/img/a.jpg", "http://files.test/"), "http://files.test/img/a.jpg")
        self.assertEqual(resolve_photo_url("img/a.jpg", "http://files.test"), "http://files.test/img/a.jpg")
        self.assertEqual(resolve_photo_url("img/a.jpg", ""), "/img/a.jpg")

    def test_base_url_is_read_from_environment_on_every_call(self):
        original_photo = os.environ.pop("SPAREPART_PHOTO_BASE_URL", None)
        original_services = os.environ.pop("SPAREPART_SERVICES_URL", None)
        try:
            self.assertEqual(get_photo_base_url(), "")
            os.environ["SPAREPART_SERVICES_URL"] = "http://service.test"
            self.assertEqual(resolve_photo_url("a.jpg"), "http://service.test/a.jpg")
            os.environ["SPAREPART_PHOTO_BASE_URL"] = "http://photos.test/"
            self.assertEqual(resolve_photo_url("a.jpg"), "http://photos.test/a.jpg")
        finally:
            os.environ.pop("SPAREPART_PHOTO_BASE_URL", None)
            os.environ.pop("SPAREPART_SERVICES_URL", None)
            if original_photo is not None:
                os.environ["SPAREPART_PHOTO_BASE_URL"] = original_photo
            if original_services is not None:
                os.environ["SPAREPART_SERVICES_URL"] = original_services

    def test_photo_ids_are_stable_and_reversible(self):
        self.assertEqual(mint_photo_id(42, "stok", 0), "42-stok-0")
        self.assertEqual(mint_photo_id(42, "stok", 0), mint_photo_id(42, "stok", 0))
        minted = {mint_photo_id(record_id, bucket, index) for record_id in (1, 12) for bucket in ("stok", "bekas") for index in (0, 2)}
        self.assertEqual(len(minted), 8)
        self.assertEqual(parse_photo_id("42-bekas-3"), (42, "bekas", 3))
        self.assertEqual(parse_photo_id(mint_photo_id(7, "tools", 1)), (7, "tools", 1))

    def test_malformed_photo_ids_are_rejected(self):
        for photo_id in ("42", "42-stok", "x-stok-0", "42-other-0", "42-stok-x", ""):
            with self.assertRaises(ValueError):
                parse_photo_id(photo_id)

    def test_unsaved_item_photo_ids_never_address_a_record(self):
        draft_id = mint_draft_photo_id(13, "stok", 0)
        self.assertEqual(draft_id, "master13-stok-0")
        self.assertNotEqual(draft_id, mint_photo_id(13, "stok", 0))
        with self.assertRaisesRegex(ValueError, "unsaved"):
            parse_photo_id(draft_id)


class ClassifierTests(unittest.TestCase):
    def _record(self, **overrides):
        values = {"master_id": 11, "name": "Battery", "stock_type": "NEW_STOCK"}
        values.update(overrides)
        return StockRecord(**values)

    def test_sparepart_stock_types_map_to_buckets(self):
        self.assertEqual(classify(self._record()).bucket, "stok")
        self.assertEqual(classify(self._record(stock_type="USED_STOCK")).bucket, "bekas")

    def test_tools_always_classify_as_tools(self):
        record = self._record(family="tool", stock_type=None, item_type="TOOLS_ALKER")
        self.assertEqual(classify(record).bucket, "tools")

    def test_identity_follows_stock_id(self):
        self.assertFalse(classify(self._record()).has_identity)
        self.assertTrue(classify(self._record(stock_id=5)).has_identity)

    def test_unknown_stock_type_fails_loudly(self):
        with self.assertRaises(StockClassificationError):
            classify(self._record(stock_type="BROKEN"))
        with self.assertRaises(StockClassificationError):
            classify(self._record(stock_type=None))

    def test_bucket_enum_mapping(self):
        self.assertEqual(stock_type_for_bucket("stok"), "NEW_STOCK")
        self.assertEqual(stock_type_for_bucket("bekas"), "USED_STOCK")
        self.assertIsNone(stock_type_for_bucket("tools"))
        self.assertEqual(item_type_for_bucket("tools"), "TOOLS_ALKER")
        self.assertEqual(item_type_for_bucket("bekas"), "SPAREPART")


if __name__ == "__main__":
    unittest.main()
