"""Turn an edited location row back into per-record stock writes.

Every line item either already has a stock record (``stockId``) and becomes an
update, or it does not and becomes a create. Newly attached photos go with the
creates of their bucket and, when the bucket already holds a persisted record,
to the first such record as well. The writes are independent: nothing is
rolled back when one of them fails, so callers re-fetch after an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from schemas.operations import AddPhotos, CreateNew, Operation, PhotoUpload, UpdateExisting, describe_operation
from schemas.stock import AggregateRow, SparepartItemView
from services.stock_classifier import item_type_for_bucket, stock_type_for_bucket


RECONCILE_LOGGER = logging.getLogger("sparepart_inventory.reconciliation")


class ReconciliationError(RuntimeError):
    def __init__(self, failures: list[tuple[Operation, Exception]], succeeded: list[Operation]):
        self.failures = failures
        self.succeeded = succeeded
        total = len(failures) + len(succeeded)
        super().__init__(f"{len(failures)} of {total} stock operations failed")

    def describe(self) -> list[dict[str, Any]]:
        return [
            {**describe_operation(operation), "error": str(exc) or type(exc).__name__}
            for operation, exc in self.failures
        ]


def row_buckets(row: AggregateRow) -> list[tuple[str, list[SparepartItemView]]]:
    if row.type == "tools_alker":
        return [("tools", row.sparepartStok)]
    return [("stok", row.sparepartStok), ("bekas", row.sparepartBekas)]


def _master_id(item: SparepartItemView) -> int:
    try:
        return int(item.id)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Item {item.name!r} has no sparepart master id") from exc


def reconcile(
    row: AggregateRow,
    note: str | None = None,
    new_photos: dict[str, list[PhotoUpload]] | None = None,
) -> list[Operation]:
    notes = (row.catatan if note is None else note) or None
    photos_by_bucket = new_photos or {}
    operations: list[Operation] = []

    buckets = row_buckets(row)
    for bucket, items in buckets:
        for item in items:
            if item.stockId is not None:
                operations.append(
                    UpdateExisting(bucket=bucket, stockId=item.stockId, quantity=item.quantity, notes=notes)
                )
                continue
            operations.append(
                CreateNew(
                    bucket=bucket,
                    locationId=row.id,
                    masterItemId=_master_id(item),
                    stockType=stock_type_for_bucket(bucket),
                    itemType=item_type_for_bucket(bucket),
                    quantity=item.quantity,
                    notes=notes,
                    photos=list(photos_by_bucket.get(bucket) or []),
                )
            )

    for bucket, items in buckets:
        photos = list(photos_by_bucket.get(bucket) or [])
        if not photos:
            continue
        # first persisted item of the bucket receives the photos
        target = next((item for item in items if item.stockId is not None), None)
        if target is not None:
            operations.append(AddPhotos(bucket=bucket, stockId=target.stockId, photos=photos))
        elif not items:
            RECONCILE_LOGGER.warning(
                "Dropping %s new photos for empty bucket=%s location_id=%s", len(photos), bucket, row.id
            )

    return operations


async def apply_operations(client, operations: list[Operation]) -> list[Any]:
    results = await asyncio.gather(*(client.execute(operation) for operation in operations), return_exceptions=True)

    failures: list[tuple[Operation, Exception]] = []
    succeeded: list[Operation] = []
    payloads: list[Any] = []
    for operation, result in zip(operations, results):
        if isinstance(result, Exception):
            RECONCILE_LOGGER.warning("Stock operation failed %s error=%s", describe_operation(operation), result)
            failures.append((operation, result))
            continue
        if isinstance(result, BaseException):
            raise result
        succeeded.append(operation)
        payloads.append(result)

    RECONCILE_LOGGER.info(
        "Applied stock operations total=%s succeeded=%s failed=%s", len(operations), len(succeeded), len(failures)
    )
    if failures:
        raise ReconciliationError(failures, succeeded)
    return payloads
