from __future__ import annotations

import base64
import binascii
import uuid

from schemas.operations import Operation, PhotoUpload
from schemas.stock import AggregateRow, LocationGroup, RowPage, SparepartItemView, StockRowSaveRequest
from services.grouping_service import StockLookupError, group_stock, location_groups, merge_location_groups
from services.pagination_service import DEFAULT_PAGE_LIMIT, estimate_pagination
from services.photo_url_service import parse_photo_id
from services.reconciliation_service import apply_operations, reconcile
from services.stock_classifier import item_type_for_bucket
from services.stock_client import SparepartStockClient, category_for_bucket, unwrap_list
from services.stock_payload_parser import ParsedStockPage, parse_stock_page


LOOKUP_PAGE_LIMIT = 100
IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}


def raw_record_count(entries: list, category: str = "stock") -> int:
    """Count the flat stock records a page carried, whatever its envelope shape."""
    lines_key = "tools" if category == "tools-alker" else "sparepart"
    count = 0
    for entry in entries:
        lines = entry.get(lines_key) if isinstance(entry, dict) else None
        count += len(lines) if isinstance(lines, list) else 1
    return count


async def load_stock_rows(
    client: SparepartStockClient,
    category: str = "stock",
    *,
    region: str | None = None,
    regency: str | None = None,
    cluster: str | None = None,
    sparepart_name: str | None = None,
    stock_type: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> tuple[list[AggregateRow], RowPage]:
    payload = await client.fetch_stock_page(
        category,
        region=region,
        regency=regency,
        cluster=cluster,
        sparepart_name=sparepart_name,
        stock_type=stock_type,
        page=page,
        limit=limit,
    )
    entries, pagination = unwrap_list(payload)
    rows = group_stock(parse_stock_page(entries, category))

    raw_total = pagination.get("total")
    estimate = estimate_pagination(
        raw_page_size=raw_record_count(entries, category),
        raw_total=int(raw_total) if raw_total is not None else len(entries),
        grouped_row_count=len(rows),
        requested_limit=limit,
    )
    return rows, RowPage(
        page=int(pagination.get("page") or page),
        limit=limit,
        total=estimate.total,
        totalPages=estimate.totalPages,
    )


async def get_stock_row(
    client: SparepartStockClient,
    category: str,
    location_id: int,
    *,
    region: str | None = None,
    regency: str | None = None,
    cluster: str | None = None,
) -> AggregateRow:
    if not (region and regency and cluster):
        location = await client.get_location(location_id)
        region, regency, cluster = location.get("region"), location.get("regency"), location.get("cluster")

    # the listing pages over records, so one location can span several pages
    groups: list[LocationGroup] = []
    page = 1
    while True:
        payload = await client.fetch_stock_page(
            category,
            region=region,
            regency=regency,
            cluster=cluster,
            page=page,
            limit=LOOKUP_PAGE_LIMIT,
        )
        entries, pagination = unwrap_list(payload)
        if entries:
            groups.extend(location_groups(parse_stock_page(entries, category), location_id))
        total_pages = int(pagination.get("total_pages") or 1)
        if raw_record_count(entries, category) < LOOKUP_PAGE_LIMIT or page >= total_pages:
            break
        page += 1

    if not groups:
        raise StockLookupError(f"Stock location {location_id} not found")
    rows = group_stock(ParsedStockPage(shape="grouped", groups=[merge_location_groups(groups)]))
    if not rows:
        raise StockLookupError(f"Stock location {location_id} has no stock records")
    return rows[0]


def decode_photo_data_url(data_url: str, prefix: str = "photo") -> PhotoUpload:
    raw = (data_url or "").strip()
    if not raw.startswith("data:image/"):
        raise ValueError("Invalid image payload format.")

    parts = raw.split(",", 1)
    if len(parts) != 2:
        raise ValueError("Invalid data URL payload.")

    meta, b64_data = parts
    content_type = meta[len("data:"):].split(";", 1)[0]
    ext = IMAGE_EXTENSIONS.get(content_type)
    if ext is None:
        raise ValueError("Unsupported image type. Please upload jpg, png, webp or gif.")

    try:
        binary = base64.b64decode(b64_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid base64 image data.") from exc
    return PhotoUpload(filename=f"{prefix}_{uuid.uuid4().hex}.{ext}", content_type=content_type, content=binary)


async def _resolve_masters(client: SparepartStockClient, bucket: str, items: list[SparepartItemView]) -> list[SparepartItemView]:
    resolved: list[SparepartItemView] = []
    for item in items:
        if item.stockId is None and not str(item.id or "").strip().isdigit():
            if not item.name.strip():
                raise ValueError("New stock items need a sparepart name or master id.")
            master = await client.resolve_master(item.name, item_type_for_bucket(bucket))
            item = item.model_copy(update={"id": str(master["id"]), "name": master.get("name") or item.name})
        resolved.append(item)
    return resolved


async def save_stock_row(
    client: SparepartStockClient,
    category: str,
    location_id: int | None,
    request: StockRowSaveRequest,
) -> tuple[AggregateRow, list[Operation]]:
    if location_id is None:
        location_id = await client.find_location_id(request.region, request.kabupaten, request.cluster)

    is_tools = category == "tools-alker"
    stok_bucket = "tools" if is_tools else "stok"
    new_photos = {stok_bucket: [decode_photo_data_url(url, stok_bucket) for url in request.newPhotosStok]}
    if not is_tools:
        new_photos["bekas"] = [decode_photo_data_url(url, "bekas") for url in request.newPhotosBekas]

    stok_items = await _resolve_masters(client, stok_bucket, request.sparepartStok)
    bekas_items = [] if is_tools else await _resolve_masters(client, "bekas", request.sparepartBekas)
    if not stok_items and not bekas_items:
        raise ValueError("No sparepart items to save.")

    row = AggregateRow(
        id=location_id,
        kabupaten=request.kabupaten,
        cluster=request.cluster,
        region=request.region,
        type="tools_alker" if is_tools else ("stok" if stok_items else "bekas"),
        sparepartStok=stok_items,
        sparepartBekas=bekas_items,
        catatan=request.catatan or "",
    )
    operations = reconcile(row, request.catatan, new_photos)
    await apply_operations(client, operations)

    fresh = await get_stock_row(
        client,
        category,
        location_id,
        region=request.region,
        regency=request.kabupaten,
        cluster=request.cluster,
    )
    return fresh, operations


async def delete_row_photo(client: SparepartStockClient, photo_id: str) -> dict:
    stock_id, bucket, index = parse_photo_id(photo_id)
    return await client.delete_photo(category_for_bucket(bucket), stock_id, index)
