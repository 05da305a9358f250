from __future__ import annotations

import math

from schemas.stock import PaginationEstimate


# Assumed average number of flat stock records per location group.
RECORDS_PER_GROUP_ESTIMATE = 3
DEFAULT_PAGE_LIMIT = 20


def estimate_pagination(
    raw_page_size: int,
    raw_total: int,
    grouped_row_count: int,
    requested_limit: int,
) -> PaginationEstimate:
    """Approximate grouped totals from a page of flat stock records.

    The stock service paginates flat records while the UI pages through
    location rows, so an exact grouped total is not knowable from a single
    page. A short page means the table is exhausted and the grouped count is
    exact; otherwise the flat total is divided by an assumed group size. The
    result is never smaller than the rows already in hand and must not be
    used as a cursor boundary.
    """
    if requested_limit < 1:
        raise ValueError("requested_limit must be at least 1")

    grouped = max(int(grouped_row_count), 0)
    if raw_page_size < requested_limit:
        total = grouped
    else:
        total = max(grouped, math.ceil(max(int(raw_total), 0) / RECORDS_PER_GROUP_ESTIMATE))

    total_pages = max(1, math.ceil(total / requested_limit))
    return PaginationEstimate(total=total, totalPages=total_pages)
