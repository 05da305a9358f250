import sys
import unittest
from pathlib import Path


APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.pagination_service import estimate_pagination
from services.stock_view_service import raw_record_count


class PaginationEstimateTests(unittest.TestCase):
    def test_short_page_uses_exact_grouped_count(self):
        estimate = estimate_pagination(raw_page_size=7, raw_total=7, grouped_row_count=5, requested_limit=10)
        self.assertEqual((estimate.total, estimate.totalPages), (5, 1))

        estimate = estimate_pagination(raw_page_size=3, raw_total=3, grouped_row_count=3, requested_limit=10)
        self.assertEqual((estimate.total, estimate.totalPages), (3, 1))

    def test_full_page_divides_flat_total_by_group_size(self):
        estimate = estimate_pagination(raw_page_size=20, raw_total=100, grouped_row_count=6, requested_limit=20)
        self.assertEqual((estimate.total, estimate.totalPages), (34, 2))

    def test_total_never_drops_below_rows_in_hand(self):
        estimate = estimate_pagination(raw_page_size=20, raw_total=12, grouped_row_count=15, requested_limit=20)
        self.assertEqual(estimate.total, 15)

        for raw_total in range(0, 200, 7):
            for grouped in (0, 1, 8, 20):
                estimate = estimate_pagination(20, raw_total, grouped, 20)
                self.assertGreaterEqual(estimate.total, grouped)
                self.assertGreaterEqual(estimate.totalPages, 1)

    def test_estimate_grows_with_flat_total(self):
        previous = 0
        for raw_total in range(20, 400, 13):
            estimate = estimate_pagination(20, raw_total, 4, 20)
            self.assertGreaterEqual(estimate.total, previous)
            previous = estimate.total

    def test_empty_result_still_has_one_page(self):
        estimate = estimate_pagination(raw_page_size=0, raw_total=0, grouped_row_count=0, requested_limit=20)
        self.assertEqual((estimate.total, estimate.totalPages), (0, 1))

    def test_raw_page_size_counts_flat_records_inside_groups(self):
        grouped = [{"id": 1, "sparepart": [{}, {}, {}]}, {"id": 2, "sparepart": [{}]}]
        self.assertEqual(raw_record_count(grouped, "stock"), 4)
        self.assertEqual(raw_record_count([{"id": 1, "tools": [{}, {}]}], "tools-alker"), 2)
        legacy = [{"id": 10, "sparepart": {"id": 1}}, {"id": 11, "sparepart": {"id": 2}}]
        self.assertEqual(raw_record_count(legacy, "stock"), 2)

    def test_non_positive_limit_is_rejected(self):
        with self.assertRaises(ValueError):
            estimate_pagination(raw_page_size=0, raw_total=0, grouped_row_count=0, requested_limit=0)


if __name__ == "__main__":
    unittest.main()
