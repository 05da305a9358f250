from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any

import httpx

from schemas.operations import AddPhotos, CreateNew, PhotoUpload, UpdateExisting
from services.grouping_service import StockLookupError


CLIENT_LOGGER = logging.getLogger("sparepart_inventory.client")

API_PREFIX = "/api/v1/sparepart"
STOCK_CATEGORIES = ("stock", "tools-alker")
STOCK_TYPE_FILTERS = {"stok": "NEW_STOCK", "bekas": "USED_STOCK"}
DEFAULT_TIMEOUT_SECONDS = 20.0
MASTER_PAGE_LIMIT = 100
EXPORT_FORMATS = {
    "excel": ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "pdf": ("pdf", "application/pdf"),
}
_DISPOSITION_FILENAME = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)


class StockServiceConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class StockExport:
    content: bytes
    filename: str
    media_type: str


def _require_env(name: str) -> str:
    value = (os.environ.get(name) or "").strip()
    if not value:
        raise StockServiceConfigError(f"Missing required environment variable: {name}")
    return value


def _build_auth_header_value(token: str, scheme: str) -> str:
    if not scheme:
        return token
    return f"{scheme} {token}"


def category_for_bucket(bucket: str) -> str:
    return "tools-alker" if bucket == "tools" else "stock"


def _category_path(category: str) -> str:
    if category not in STOCK_CATEGORIES:
        raise ValueError(f"Unknown stock category: {category!r}")
    return f"{API_PREFIX}/{category}"


def _stock_filters(
    category: str,
    region: str | None,
    regency: str | None,
    cluster: str | None,
    sparepart_name: str | None,
    stock_type: str | None,
) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if region:
        params["region"] = region.upper()
    if regency:
        params["regency"] = regency
    if cluster:
        params["cluster"] = cluster
    if sparepart_name:
        params["sparepart_name"] = sparepart_name
    if stock_type and category == "stock":
        params["stock_type"] = STOCK_TYPE_FILTERS.get(stock_type, stock_type)
    return params


def _disposition_filename(header: str | None) -> str | None:
    match = _DISPOSITION_FILENAME.search(header or "")
    return match.group(1).strip() if match else None


def _photo_files(photos: list[PhotoUpload]) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [("photos", (photo.filename, photo.content, photo.content_type)) for photo in photos]


def unwrap_list(payload: Any) -> tuple[list[Any], dict[str, Any]]:
    """Return ``(rows, pagination)`` from either envelope the service uses.

    Listings come back as ``{data: [...], pagination}`` or, for the catalog
    endpoints, ``{data: {data: [...], pagination}}``.
    """
    if not isinstance(payload, dict):
        return [], {}
    data = payload.get("data")
    if isinstance(data, list):
        return data, payload.get("pagination") or {}
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"], data.get("pagination") or payload.get("pagination") or {}
    return [], payload.get("pagination") or {}


class SparepartStockClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        auth_header: str = "Authorization",
        auth_scheme: str = "Bearer",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers[auth_header] = _build_auth_header_value(token, auth_scheme)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls, transport: httpx.AsyncBaseTransport | None = None) -> "SparepartStockClient":
        base_url = _require_env("SPAREPART_SERVICES_URL")
        raw_timeout = (os.environ.get("SPAREPART_SERVICES_TIMEOUT_SECONDS") or "").strip()
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT_SECONDS
        except ValueError as exc:
            raise StockServiceConfigError(f"Invalid SPAREPART_SERVICES_TIMEOUT_SECONDS: {raw_timeout}") from exc
        return cls(
            base_url,
            token=(os.environ.get("SPAREPART_SERVICES_TOKEN") or "").strip() or None,
            auth_header=(os.environ.get("SPAREPART_SERVICES_AUTH_HEADER") or "Authorization").strip(),
            auth_scheme=(os.environ.get("SPAREPART_SERVICES_AUTH_SCHEME") or "Bearer").strip(),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SparepartStockClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            CLIENT_LOGGER.warning("Stock service %s %s returned status=%s", method, path, response.status_code)
            raise
        return response

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        response = await self._send(method, path, **kwargs)
        if not response.content:
            return {}
        return response.json()

    async def fetch_stock_page(
        self,
        category: str = "stock",
        *,
        region: str | None = None,
        regency: str | None = None,
        cluster: str | None = None,
        sparepart_name: str | None = None,
        stock_type: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        params = _stock_filters(category, region, regency, cluster, sparepart_name, stock_type)
        params.update({"page": page, "limit": limit})
        return await self._request("GET", _category_path(category), params=params)

    async def export_stock(
        self,
        category: str,
        export_format: str,
        *,
        region: str | None = None,
        regency: str | None = None,
        cluster: str | None = None,
        sparepart_name: str | None = None,
        stock_type: str | None = None,
    ) -> StockExport:
        if export_format not in EXPORT_FORMATS:
            raise ValueError(f"Unknown export format: {export_format!r}")
        params = _stock_filters(category, region, regency, cluster, sparepart_name, stock_type)
        response = await self._send("GET", f"{_category_path(category)}/export/{export_format}", params=params)
        extension, media_type = EXPORT_FORMATS[export_format]
        default_name = f"{'tools-alker' if category == 'tools-alker' else 'sparepart-stock'}-export.{extension}"
        return StockExport(
            content=response.content,
            filename=_disposition_filename(response.headers.get("content-disposition")) or default_name,
            media_type=media_type,
        )

    async def list_locations(
        self,
        region: str | None = None,
        regency: str | None = None,
        cluster: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if region:
            params["region"] = region.upper()
        if regency:
            params["regency"] = regency
        if cluster:
            params["cluster"] = cluster
        payload = await self._request("GET", f"{API_PREFIX}/location", params=params)
        rows, _ = unwrap_list(payload)
        return rows

    async def find_location_id(self, region: str, regency: str, cluster: str) -> int:
        rows = await self.list_locations(region=region, regency=regency, cluster=cluster)
        wanted = (region.upper(), regency.strip().lower(), cluster.strip().lower())
        for row in rows:
            candidate = (
                str(row.get("region") or "").upper(),
                str(row.get("regency") or "").strip().lower(),
                str(row.get("cluster") or "").strip().lower(),
            )
            if candidate == wanted:
                return int(row["id"])
        raise StockLookupError(f"Location {region}/{regency}/{cluster} not found")

    async def get_location(self, location_id: int) -> dict[str, Any]:
        try:
            payload = await self._request("GET", f"{API_PREFIX}/location/{location_id}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise StockLookupError(f"Location {location_id} not found") from exc
            raise
        location = payload.get("data")
        if not isinstance(location, dict):
            raise StockLookupError(f"Location {location_id} not found")
        return location

    async def list_contact_persons(
        self, location_id: int | None = None, page: int = 1, limit: int = 100
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if location_id is not None:
            params["location_id"] = location_id
        payload = await self._request("GET", f"{API_PREFIX}/contact-person", params=params)
        return unwrap_list(payload)

    async def _list_master_page(
        self, item_type: str | None, name: str | None, page: int, limit: int
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if item_type:
            params["item_type"] = item_type
        if name:
            params["name"] = name
        payload = await self._request("GET", f"{API_PREFIX}/master", params=params)
        return unwrap_list(payload)

    async def list_masters(
        self, item_type: str | None = None, name: str | None = None, page: int = 1, limit: int = MASTER_PAGE_LIMIT
    ) -> list[dict[str, Any]]:
        rows, _ = await self._list_master_page(item_type, name, page, limit)
        return rows

    async def find_master(self, name: str, item_type: str) -> dict[str, Any] | None:
        wanted = name.strip().lower()
        page = 1
        while True:
            rows, pagination = await self._list_master_page(item_type, name.strip(), page, MASTER_PAGE_LIMIT)
            for row in rows:
                if str(row.get("name") or "").strip().lower() == wanted:
                    return row
            # the name filter is advisory, keep paging when the service ignores it
            total_pages = int(pagination.get("total_pages") or 1)
            if len(rows) < MASTER_PAGE_LIMIT or page >= total_pages:
                return None
            page += 1

    async def create_master(self, name: str, item_type: str) -> dict[str, Any]:
        payload = await self._request("POST", f"{API_PREFIX}/master", json={"name": name, "item_type": item_type})
        return payload.get("data") or {}

    async def resolve_master(self, name: str, item_type: str) -> dict[str, Any]:
        existing = await self.find_master(name, item_type)
        if existing is not None:
            return existing
        CLIENT_LOGGER.info("Creating sparepart master name=%s item_type=%s", name.strip(), item_type)
        try:
            return await self.create_master(name.strip(), item_type)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != 409:
                raise
            # created concurrently, or under a spelling the lookup missed
            existing = await self.find_master(name, item_type)
            if existing is None:
                raise
            return existing

    async def create_stock(self, operation: CreateNew) -> dict[str, Any]:
        form: dict[str, str] = {
            "location_id": str(operation.locationId),
            "sparepart_id": str(operation.masterItemId),
            "quantity": str(operation.quantity or 0),
        }
        if operation.stockType:
            form["stock_type"] = operation.stockType
        if operation.notes:
            form["notes"] = operation.notes
        return await self._request(
            "POST",
            _category_path(category_for_bucket(operation.bucket)),
            data=form,
            files=_photo_files(operation.photos) or None,
        )

    async def update_stock(self, operation: UpdateExisting) -> dict[str, Any]:
        # quantity and notes always travel together, a missing note clears it
        payload: dict[str, Any] = {"quantity": int(operation.quantity), "notes": operation.notes}
        path = f"{_category_path(category_for_bucket(operation.bucket))}/{operation.stockId}"
        return await self._request("PUT", path, json=payload)

    async def add_photos(self, operation: AddPhotos) -> dict[str, Any]:
        path = f"{_category_path(category_for_bucket(operation.bucket))}/{operation.stockId}/photos"
        return await self._request("POST", path, files=_photo_files(operation.photos))

    async def delete_photo(self, category: str, stock_id: int, photo_index: int) -> dict[str, Any]:
        return await self._request("DELETE", f"{_category_path(category)}/{stock_id}/photos/{photo_index}")

    async def delete_stock(self, category: str, stock_id: int) -> dict[str, Any]:
        return await self._request("DELETE", f"{_category_path(category)}/{stock_id}")

    async def execute(self, operation: UpdateExisting | CreateNew | AddPhotos) -> dict[str, Any]:
        if isinstance(operation, UpdateExisting):
            return await self.update_stock(operation)
        if isinstance(operation, CreateNew):
            return await self.create_stock(operation)
        if isinstance(operation, AddPhotos):
            return await self.add_photos(operation)
        raise TypeError(f"Unsupported stock operation: {type(operation).__name__}")
