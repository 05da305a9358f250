"""Boundary parser for stock listings returned by the sparepart service.

The service has shipped two layouts over time. The current one is already
grouped per location (``sparepart`` / ``tools`` is a list of line items);
the legacy one is a flat list of stock records whose ``sparepart`` key is a
single catalog object. Both are normalized here into ``StockRecord`` and
``LocationGroup`` so the grouping code never has to look at raw payloads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import ValidationError

from schemas.stock import LocationGroup, LocationRef, StockRecord


PARSER_LOGGER = logging.getLogger("sparepart_inventory.parser")

REGION_FROM_BACKEND = {"PAPUA": "papua", "MALUKU": "maluku"}


class StockPayloadError(ValueError):
    pass


@dataclass
class ParsedStockPage:
    shape: Literal["grouped", "flat"]
    groups: list[LocationGroup] = field(default_factory=list)
    records: list[StockRecord] = field(default_factory=list)


def _parse_location(raw: Any, location_id: Any = None) -> LocationRef:
    if not isinstance(raw, dict):
        raise StockPayloadError("Stock entry has no location object")
    region = REGION_FROM_BACKEND.get(str(raw.get("region") or "").strip().upper())
    if region is None:
        raise StockPayloadError(f"Unknown region {raw.get('region')!r}")
    if location_id is None:
        location_id = raw.get("id")
    try:
        return LocationRef(
            id=int(location_id),
            region=region,
            regency=str(raw.get("regency") or ""),
            cluster=str(raw.get("cluster") or ""),
        )
    except (TypeError, ValueError) as exc:
        raise StockPayloadError(f"Invalid location id {location_id!r}") from exc


def _detect_shape(entry: Any, category: str) -> str:
    if not isinstance(entry, dict):
        raise StockPayloadError("Stock entry is not an object")
    if category == "tools-alker":
        if isinstance(entry.get("tools"), list) or entry.get("tools") is None:
            return "tools"
        raise StockPayloadError("Tools entry has no tools list")
    sparepart = entry.get("sparepart")
    if isinstance(sparepart, list):
        return "grouped"
    if isinstance(sparepart, dict):
        return "flat"
    raise StockPayloadError("Stock entry has neither a sparepart list nor a sparepart object")


def _grouped_line(raw: dict, family: str, location: LocationRef) -> StockRecord:
    return StockRecord(
        stock_id=raw.get("stock_id"),
        master_id=raw.get("id"),
        name=raw.get("name") or "",
        item_type=raw.get("item_type") or ("TOOLS_ALKER" if family == "tool" else "SPAREPART"),
        family=family,
        stock_type=raw.get("stock_type") if family == "sparepart" else None,
        quantity=raw.get("quantity") or 0,
        documentation=list(raw.get("documentation") or []),
        notes=raw.get("notes"),
        location=location,
    )


def _legacy_record(raw: dict) -> StockRecord:
    sparepart = raw.get("sparepart") or {}
    location = _parse_location(raw.get("location"), raw.get("location_id"))
    return StockRecord(
        stock_id=raw.get("id"),
        master_id=raw.get("sparepart_id") or sparepart.get("id"),
        name=sparepart.get("name") or "",
        item_type=sparepart.get("item_type") or "SPAREPART",
        family="sparepart",
        stock_type=raw.get("stock_type"),
        quantity=raw.get("quantity") or 0,
        documentation=list(raw.get("documentation") or []),
        notes=raw.get("notes"),
        location=location,
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
    )


def _grouped_entry(raw: dict, shape: str) -> LocationGroup:
    location = _parse_location(raw.get("location"), raw.get("location_id"))
    family = "tool" if shape == "tools" else "sparepart"
    records: list[StockRecord] = []
    for line in raw.get("tools" if shape == "tools" else "sparepart") or []:
        if not isinstance(line, dict):
            continue
        try:
            records.append(_grouped_line(line, family, location))
        except ValidationError as exc:
            PARSER_LOGGER.warning(
                "Skipping stock line location_id=%s item_id=%s reason=%s", location.id, line.get("id"), exc
            )
    return LocationGroup(
        location=location,
        group_id=raw.get("id"),
        records=records,
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
    )


def parse_stock_page(entries: list[Any] | None, category: str = "stock") -> ParsedStockPage:
    if entries is None:
        return ParsedStockPage(shape="grouped")
    if not isinstance(entries, list):
        raise StockPayloadError("Stock payload data is not a list")

    shapes = {_detect_shape(entry, category) for entry in entries}
    if len(shapes) > 1:
        raise StockPayloadError(f"Mixed stock payload shapes: {sorted(shapes)}")
    shape = shapes.pop() if shapes else "grouped"

    if shape == "flat":
        page = ParsedStockPage(shape="flat")
        for entry in entries:
            try:
                page.records.append(_legacy_record(entry))
            except (StockPayloadError, ValidationError) as exc:
                PARSER_LOGGER.warning("Skipping legacy stock record id=%s reason=%s", entry.get("id"), exc)
        return page

    page = ParsedStockPage(shape="grouped")
    for entry in entries:
        try:
            page.groups.append(_grouped_entry(entry, shape))
        except (StockPayloadError, ValidationError) as exc:
            PARSER_LOGGER.warning(
                "Skipping stock group location_id=%s reason=%s", entry.get("location_id"), exc
            )
    return page
