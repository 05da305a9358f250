from __future__ import annotations

from dataclasses import dataclass

from schemas.stock import StockRecord


STOCK_TYPE_BUCKETS = {
    "NEW_STOCK": "stok",
    "USED_STOCK": "bekas",
}
BUCKET_STOCK_TYPES = {bucket: stock_type for stock_type, bucket in STOCK_TYPE_BUCKETS.items()}


class StockClassificationError(ValueError):
    pass


@dataclass(frozen=True)
class Classification:
    bucket: str
    has_identity: bool


def classify(record: StockRecord) -> Classification:
    has_identity = record.stock_id is not None
    if record.family == "tool":
        return Classification(bucket="tools", has_identity=has_identity)

    bucket = STOCK_TYPE_BUCKETS.get(record.stock_type or "")
    if bucket is None:
        raise StockClassificationError(
            f"Unrecognized stock_type {record.stock_type!r} for sparepart {record.master_id} "
            f"(stock_id={record.stock_id})"
        )
    return Classification(bucket=bucket, has_identity=has_identity)


def stock_type_for_bucket(bucket: str) -> str | None:
    if bucket == "tools":
        return None
    try:
        return BUCKET_STOCK_TYPES[bucket]
    except KeyError as exc:
        raise StockClassificationError(f"Unknown bucket: {bucket!r}") from exc


def item_type_for_bucket(bucket: str) -> str:
    return "TOOLS_ALKER" if bucket == "tools" else "SPAREPART"
