from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from schemas.stock import AggregateRow, LocationGroup, LocationRef, SparepartItemView, SparepartPhotoView, StockRecord
from services.photo_url_service import get_photo_base_url, mint_draft_photo_id, mint_photo_id, resolve_photo_url
from services.stock_classifier import StockClassificationError, classify
from services.stock_payload_parser import ParsedStockPage, parse_stock_page


GROUPING_LOGGER = logging.getLogger("sparepart_inventory.grouping")


class StockLookupError(LookupError):
    pass


@dataclass
class _BucketAccumulator:
    name: str
    items: list[SparepartItemView] = field(default_factory=list)
    photos: list[SparepartPhotoView] = field(default_factory=list)
    note: str = ""

    def add(self, record: StockRecord, base_url: str) -> None:
        self.items.append(
            SparepartItemView(
                id=str(record.master_id),
                stockId=record.stock_id,
                name=record.name,
                quantity=record.quantity,
                unit="unit" if self.name == "tools" else "pcs",
                stock_type=record.stock_type if self.name != "tools" else None,
            )
        )
        # first non-empty note wins, later ones are dropped
        if not self.note and record.notes:
            self.note = record.notes
        for index, path in enumerate(record.documentation):
            if record.stock_id is not None:
                photo_id = mint_photo_id(record.stock_id, self.name, index)
            else:
                photo_id = mint_draft_photo_id(record.master_id, self.name, index)
            self.photos.append(
                SparepartPhotoView(
                    id=photo_id,
                    url=resolve_photo_url(path, base_url),
                )
            )


def location_key(location: LocationRef) -> str:
    return f"{location.region}|{location.regency}|{location.cluster}"


def bucket_by_location(records: list[StockRecord]) -> list[LocationGroup]:
    grouped: dict[str, LocationGroup] = {}
    for record in records:
        if record.location is None:
            GROUPING_LOGGER.warning("Skipping stock record without location stock_id=%s", record.stock_id)
            continue
        key = location_key(record.location)
        group = grouped.get(key)
        if group is None:
            group = LocationGroup(
                location=record.location,
                records=[],
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
            grouped[key] = group
        group.records.append(record)
    return list(grouped.values())


def build_aggregate_row(group: LocationGroup, no: int, base_url: str) -> AggregateRow | None:
    buckets = {name: _BucketAccumulator(name) for name in ("stok", "bekas", "tools")}
    for record in group.records:
        try:
            classification = classify(record)
            buckets[classification.bucket].add(record, base_url)
        except (StockClassificationError, ValidationError) as exc:
            GROUPING_LOGGER.warning(
                "Skipping stock record location_id=%s stock_id=%s sparepart_id=%s reason=%s",
                group.location.id,
                record.stock_id,
                record.master_id,
                exc,
            )

    stok, bekas, tools = buckets["stok"], buckets["bekas"], buckets["tools"]
    location = group.location
    common = {
        "id": location.id,
        "no": no,
        "kabupaten": location.regency,
        "cluster": location.cluster,
        "region": location.region,
        "createdAt": group.created_at,
        "updatedAt": group.updated_at,
    }

    if stok.items or bekas.items:
        if tools.items:
            GROUPING_LOGGER.warning(
                "Ignoring %s tool lines in sparepart group location_id=%s", len(tools.items), location.id
            )
        return AggregateRow(
            **common,
            type="stok" if stok.items else "bekas",
            sparepartStok=stok.items,
            dokumentasiStok=stok.photos,
            sparepartBekas=bekas.items,
            dokumentasiBekas=bekas.photos,
            catatanStok=stok.note,
            catatanBekas=bekas.note,
            catatan=stok.note or bekas.note,
        )

    if tools.items:
        return AggregateRow(
            **common,
            type="tools_alker",
            sparepartStok=tools.items,
            dokumentasiStok=tools.photos,
            catatanStok=tools.note,
            catatan=tools.note,
        )

    return None


def group_stock(page: ParsedStockPage, base_url: str | None = None) -> list[AggregateRow]:
    groups = page.groups if page.shape == "grouped" else bucket_by_location(page.records)
    resolved_base = get_photo_base_url() if base_url is None else base_url

    rows: list[AggregateRow] = []
    no = 1
    for group in groups:
        row = build_aggregate_row(group, no, resolved_base)
        if row is None:
            continue
        rows.append(row)
        no += 1
    return rows


def group_stock_payload(entries: list | None, category: str = "stock", base_url: str | None = None) -> list[AggregateRow]:
    return group_stock(parse_stock_page(entries, category), base_url=base_url)


def location_groups(page: ParsedStockPage, location_id: int) -> list[LocationGroup]:
    groups = page.groups if page.shape == "grouped" else bucket_by_location(page.records)
    matches = [group for group in groups if group.location.id == location_id]
    if not matches:
        matches = [group for group in groups if group.group_id == location_id]
    return matches


def merge_location_groups(groups: list[LocationGroup]) -> LocationGroup:
    """Join the pieces of one location that a record-paginated listing split across pages."""
    first = groups[0]
    updated = [group.updated_at for group in groups if group.updated_at is not None]
    return first.model_copy(
        update={
            "records": [record for group in groups for record in group.records],
            "updated_at": max(updated) if updated else first.updated_at,
        }
    )


def find_location_group(page: ParsedStockPage, location_id: int) -> LocationGroup:
    matches = location_groups(page, location_id)
    if not matches:
        raise StockLookupError(f"Stock location {location_id} not found")
    return merge_location_groups(matches)
