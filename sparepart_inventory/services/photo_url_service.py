from __future__ import annotations

import os


PHOTO_BUCKETS = ("stok", "bekas", "tools")
DRAFT_PHOTO_PREFIX = "master"


def get_photo_base_url() -> str:
    for name in ("SPAREPART_PHOTO_BASE_URL", "SPAREPART_SERVICES_URL"):
        value = (os.environ.get(name) or "").strip()
        if value:
            return value
    return ""


def resolve_photo_url(relative_path: str, base_url: str | None = None) -> str:
    path = (relative_path or "").strip()
    if path.startswith("http://") or path.startswith("https://"):
        return path
    base = get_photo_base_url() if base_url is None else base_url
    clean_base = base.rstrip("/")
    clean_path = path if path.startswith("/") else f"/{path}"
    return f"{clean_base}{clean_path}"


def mint_photo_id(record_id: int | str, bucket: str, index: int) -> str:
    return f"{record_id}-{bucket}-{index}"


def mint_draft_photo_id(master_id: int, bucket: str, index: int) -> str:
    """Photo id for an item that has no stock record yet; never parses back to a record."""
    return mint_photo_id(f"{DRAFT_PHOTO_PREFIX}{master_id}", bucket, index)


def parse_photo_id(photo_id: str) -> tuple[int, str, int]:
    parts = (photo_id or "").strip().rsplit("-", 2)
    if len(parts) != 3:
        raise ValueError(f"Malformed photo id: {photo_id!r}")
    raw_id, bucket, raw_index = parts
    if bucket not in PHOTO_BUCKETS:
        raise ValueError(f"Unknown photo bucket in id: {photo_id!r}")
    if raw_id.startswith(DRAFT_PHOTO_PREFIX):
        raise ValueError(f"Photo {photo_id!r} belongs to an unsaved stock item")
    try:
        record_id = int(raw_id)
        index = int(raw_index)
    except ValueError as exc:
        raise ValueError(f"Malformed photo id: {photo_id!r}") from exc
    if index < 0:
        raise ValueError(f"Malformed photo id: {photo_id!r}")
    return record_id, bucket, index
