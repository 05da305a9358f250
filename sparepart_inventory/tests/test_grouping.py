import sys
import unittest
from pathlib import Path


APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.grouping_service import StockLookupError, find_location_group, group_stock, group_stock_payload
from services.stock_payload_parser import StockPayloadError, parse_stock_page


BASE_URL = "http://files.test/"


def _location(location_id, region="PAPUA", regency="Jayapura", cluster="Sentani"):
    return {"id": location_id, "region": region, "regency": regency, "cluster": cluster}


def _line(master_id, stock_id, name, stock_type, quantity, documentation=None, notes=None):
    return {
        "id": master_id,
        "stock_id": stock_id,
        "name": name,
        "item_type": "SPAREPART",
        "stock_type": stock_type,
        "quantity": quantity,
        "documentation": documentation or [],
        "notes": notes,
    }


def _group(location_id, lines, **location_kwargs):
    return {
        "id": location_id,
        "location_id": location_id,
        "location": _location(location_id, **location_kwargs),
        "sparepart": lines,
        "created_at": "2026-01-05T08:00:00",
        "updated_at": "2026-01-06T08:00:00",
    }


def _legacy(stock_id, location, master_id, name, stock_type, quantity, documentation=None, notes=None):
    return {
        "id": stock_id,
        "location_id": location["id"],
        "sparepart_id": master_id,
        "stock_type": stock_type,
        "quantity": quantity,
        "documentation": documentation or [],
        "notes": notes,
        "created_at": "2026-01-05T08:00:00",
        "updated_at": "2026-01-05T08:00:00",
        "location": location,
        "sparepart": {"id": master_id, "name": name, "item_type": "SPAREPART"},
    }


class GroupedPayloadTests(unittest.TestCase):
    def test_location_with_new_and_used_stock_becomes_one_row(self):
        entries = [
            _group(
                7,
                [
                    _line(11, 101, "Battery", "NEW_STOCK", 3, ["/img/a.jpg"]),
                    _line(12, 102, "Panel", "USED_STOCK", 1),
                ],
            )
        ]
        rows = group_stock_payload(entries, "stock", base_url=BASE_URL)

        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row.id, 7)
        self.assertEqual(row.no, 1)
        self.assertEqual(row.region, "papua")
        self.assertEqual(row.kabupaten, "Jayapura")
        self.assertEqual(row.type, "stok")
        self.assertEqual([(item.name, item.quantity) for item in row.sparepartStok], [("Battery", 3)])
        self.assertEqual(
            [(photo.id, photo.url) for photo in row.dokumentasiStok],
            [("101-stok-0", "http://files.test/img/a.jpg")],
        )
        self.assertEqual([(item.name, item.quantity) for item in row.sparepartBekas], [("Panel", 1)])
        self.assertEqual(row.dokumentasiBekas, [])
        self.assertEqual(row.sparepartStok[0].id, "11")
        self.assertEqual(row.sparepartStok[0].stockId, 101)

    def test_row_type_falls_back_to_bekas(self):
        rows = group_stock_payload([_group(3, [_line(12, 102, "Panel", "USED_STOCK", 1)])], base_url=BASE_URL)
        self.assertEqual(rows[0].type, "bekas")
        self.assertEqual(rows[0].sparepartStok, [])

    def test_grouping_is_deterministic(self):
        entries = [
            _group(1, [_line(11, 101, "Battery", "NEW_STOCK", 3, ["a.jpg", "b.jpg"])]),
            _group(2, [_line(12, 102, "Panel", "USED_STOCK", 1)], regency="Ambon", region="MALUKU"),
        ]
        first = [row.model_dump_json() for row in group_stock_payload(entries, base_url=BASE_URL)]
        second = [row.model_dump_json() for row in group_stock_payload(entries, base_url=BASE_URL)]
        self.assertEqual(first, second)

    def test_empty_groups_are_dropped_and_numbering_skips_them(self):
        entries = [
            _group(1, []),
            _group(2, [_line(12, 102, "Panel", "USED_STOCK", 1)]),
            _group(3, [_line(13, 103, "Fuse", "NEW_STOCK", 0)]),
        ]
        rows = group_stock_payload(entries, base_url=BASE_URL)
        self.assertEqual([(row.id, row.no) for row in rows], [(2, 1), (3, 2)])
        for row in rows:
            self.assertTrue(row.sparepartStok or row.sparepartBekas)

    def test_first_non_empty_note_wins_per_bucket(self):
        entries = [
            _group(
                1,
                [
                    _line(11, 101, "Battery", "NEW_STOCK", 3, notes=""),
                    _line(12, 102, "Panel", "NEW_STOCK", 1, notes="first"),
                    _line(13, 103, "Fuse", "NEW_STOCK", 1, notes="second"),
                    _line(14, 104, "Cable", "USED_STOCK", 1, notes="used note"),
                ],
            )
        ]
        row = group_stock_payload(entries, base_url=BASE_URL)[0]
        self.assertEqual(row.catatanStok, "first")
        self.assertEqual(row.catatanBekas, "used note")
        self.assertEqual(row.catatan, "first")

    def test_photos_are_namespaced_by_owning_record(self):
        entries = [
            _group(
                1,
                [
                    _line(11, 101, "Battery", "NEW_STOCK", 3, ["a.jpg"]),
                    _line(12, 102, "Panel", "NEW_STOCK", 1, ["b.jpg", "c.jpg"]),
                    _line(13, None, "Draft", "NEW_STOCK", 1, ["d.jpg"]),
                ],
            )
        ]
        row = group_stock_payload(entries, base_url=BASE_URL)[0]
        self.assertEqual(
            [photo.id for photo in row.dokumentasiStok],
            ["101-stok-0", "102-stok-0", "102-stok-1", "master13-stok-0"],
        )

    def test_unclassifiable_record_is_skipped_not_the_page(self):
        entries = [
            _group(1, [_line(11, 101, "Battery", "BROKEN", 3), _line(12, 102, "Panel", "NEW_STOCK", 2)]),
            _group(2, [_line(13, 103, "Fuse", "SCRAP", 1)]),
            _group(3, [_line(14, 104, "Cable", "USED_STOCK", 4)]),
        ]
        with self.assertLogs("sparepart_inventory.grouping", level="WARNING") as captured:
            rows = group_stock_payload(entries, base_url=BASE_URL)
        self.assertEqual([row.id for row in rows], [1, 3])
        self.assertEqual([item.name for item in rows[0].sparepartStok], ["Panel"])
        self.assertEqual(len(captured.records), 2)

    def test_unknown_region_skips_only_that_group(self):
        entries = [
            _group(1, [_line(11, 101, "Battery", "NEW_STOCK", 3)], region="BORNEO"),
            _group(2, [_line(12, 102, "Panel", "NEW_STOCK", 1)]),
        ]
        with self.assertLogs("sparepart_inventory.parser", level="WARNING"):
            rows = group_stock_payload(entries, base_url=BASE_URL)
        self.assertEqual([row.id for row in rows], [2])

    def test_tools_rows_use_the_stok_slots(self):
        entries = [
            {
                "id": 5,
                "location_id": 5,
                "location": _location(5, region="MALUKU", regency="Ambon", cluster="Kota"),
                "tools": [
                    {
                        "id": 31,
                        "stock_id": 301,
                        "name": "Crimping tool",
                        "item_type": "TOOLS_ALKER",
                        "quantity": 2,
                        "condition": "GOOD",
                        "documentation": ["/tools/t.jpg"],
                        "notes": "kept in van",
                    }
                ],
            }
        ]
        row = group_stock_payload(entries, "tools-alker", base_url=BASE_URL)[0]
        self.assertEqual(row.type, "tools_alker")
        self.assertEqual(row.region, "maluku")
        self.assertEqual([(item.name, item.unit) for item in row.sparepartStok], [("Crimping tool", "unit")])
        self.assertEqual([photo.id for photo in row.dokumentasiStok], ["301-tools-0"])
        self.assertEqual(row.sparepartBekas, [])
        self.assertEqual(row.catatan, "kept in van")


class LegacyPayloadTests(unittest.TestCase):
    def test_flat_records_are_grouped_by_location_in_first_seen_order(self):
        ambon = _location(3, region="MALUKU", regency="Ambon", cluster="A")
        jayapura = _location(4, region="PAPUA", regency="Jayapura", cluster="B")
        entries = [
            _legacy(201, ambon, 11, "Battery", "USED_STOCK", 2, ["img/x.jpg"]),
            _legacy(202, jayapura, 12, "Panel", "NEW_STOCK", 1, notes="first"),
            _legacy(203, ambon, 13, "Fuse", "NEW_STOCK", 5, notes="keep me"),
        ]
        page = parse_stock_page(entries, "stock")
        self.assertEqual(page.shape, "flat")

        rows = group_stock(page, base_url=BASE_URL)
        self.assertEqual([(row.id, row.no) for row in rows], [(3, 1), (4, 2)])
        ambon_row = rows[0]
        self.assertEqual([item.stockId for item in ambon_row.sparepartBekas], [201])
        self.assertEqual([item.id for item in ambon_row.sparepartStok], ["13"])
        self.assertEqual(
            [(photo.id, photo.url) for photo in ambon_row.dokumentasiBekas],
            [("201-bekas-0", "http://files.test/img/x.jpg")],
        )
        self.assertEqual(ambon_row.catatan, "keep me")

    def test_mixed_shapes_are_rejected(self):
        entries = [
            _group(1, [_line(11, 101, "Battery", "NEW_STOCK", 3)]),
            _legacy(201, _location(3), 11, "Battery", "USED_STOCK", 2),
        ]
        with self.assertRaises(StockPayloadError):
            parse_stock_page(entries, "stock")

    def test_entries_without_sparepart_key_are_rejected(self):
        with self.assertRaises(StockPayloadError):
            parse_stock_page([{"id": 1, "location": _location(1)}], "stock")


class LookupTests(unittest.TestCase):
    def test_find_location_group_matches_location_id(self):
        page = parse_stock_page([_group(7, [_line(11, 101, "Battery", "NEW_STOCK", 3)])], "stock")
        self.assertEqual(find_location_group(page, 7).location.id, 7)

    def test_missing_location_is_a_lookup_error(self):
        page = parse_stock_page([_group(7, [_line(11, 101, "Battery", "NEW_STOCK", 3)])], "stock")
        with self.assertRaises(StockLookupError):
            find_location_group(page, 99)


if __name__ == "__main__":
    unittest.main()
