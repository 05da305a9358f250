import logging
import os
from collections.abc import AsyncIterator

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from schemas.operations import describe_operation
from schemas.stock import SparepartMasterCreate, StockRowSaveRequest
from services.grouping_service import StockLookupError
from services.pagination_service import DEFAULT_PAGE_LIMIT
from services.reconciliation_service import ReconciliationError
from services.stock_client import STOCK_CATEGORIES, SparepartStockClient, StockServiceConfigError
from services.stock_payload_parser import StockPayloadError
from services.stock_view_service import (
    delete_row_photo,
    get_stock_row,
    load_stock_rows,
    save_stock_row,
)

app = FastAPI()


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials; force safe behavior.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"]
)

GATEWAY_LOGGER = logging.getLogger("sparepart_inventory.gateway")


async def get_stock_client() -> AsyncIterator[SparepartStockClient]:
    try:
        client = SparepartStockClient.from_env()
    except StockServiceConfigError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    try:
        yield client
    finally:
        await client.aclose()


def _require_category(category: str) -> str:
    if category not in STOCK_CATEGORIES:
        raise HTTPException(status_code=404, detail=f"Unknown stock category: {category}")
    return category


async def _guard(awaitable):
    try:
        return await awaitable
    except StockLookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ReconciliationError as exc:
        raise HTTPException(
            status_code=502,
            detail={
                "message": f"{exc}. Reload the location before retrying.",
                "failed": exc.describe(),
                "succeededCount": len(exc.succeeded),
            },
        ) from exc
    except httpx.HTTPStatusError as exc:
        GATEWAY_LOGGER.warning(
            "Stock service error %s %s status=%s", exc.request.method, exc.request.url, exc.response.status_code
        )
        raise HTTPException(status_code=exc.response.status_code, detail=exc.response.text) from exc
    except httpx.RequestError as exc:
        GATEWAY_LOGGER.warning("Stock service unreachable %s error=%s", exc.request.url, exc)
        raise HTTPException(status_code=502, detail=f"Stock service unavailable: {exc}") from exc
    except StockPayloadError as exc:
        GATEWAY_LOGGER.warning("Stock service returned an unexpected payload: %s", exc)
        raise HTTPException(status_code=502, detail=f"Unexpected stock payload: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


async def _list_rows(client: SparepartStockClient, category: str, **filters):
    rows, page = await _guard(load_stock_rows(client, category, **filters))
    return {"data": rows, "pagination": page}


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/sparepart/stock")
async def list_sparepart_stock(
    region: str | None = Query(None),
    regency: str | None = Query(None),
    cluster: str | None = Query(None),
    sparepart_name: str | None = Query(None),
    stock_type: str | None = Query(None, pattern="^(stok|bekas)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=100),
    client: SparepartStockClient = Depends(get_stock_client),
):
    return await _list_rows(
        client,
        "stock",
        region=region,
        regency=regency,
        cluster=cluster,
        sparepart_name=sparepart_name,
        stock_type=stock_type,
        page=page,
        limit=limit,
    )


@app.get("/api/sparepart/tools-alker")
async def list_tools_alker(
    region: str | None = Query(None),
    regency: str | None = Query(None),
    cluster: str | None = Query(None),
    sparepart_name: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=100),
    client: SparepartStockClient = Depends(get_stock_client),
):
    return await _list_rows(
        client,
        "tools-alker",
        region=region,
        regency=regency,
        cluster=cluster,
        sparepart_name=sparepart_name,
        page=page,
        limit=limit,
    )


@app.get("/api/sparepart/masters")
async def list_masters(
    item_type: str | None = Query(None, pattern="^(SPAREPART|TOOLS_ALKER)$"),
    client: SparepartStockClient = Depends(get_stock_client),
):
    return await _guard(client.list_masters(item_type=item_type))


@app.post("/api/sparepart/masters")
async def create_master(payload: SparepartMasterCreate, client: SparepartStockClient = Depends(get_stock_client)):
    return await _guard(client.resolve_master(payload.name, payload.item_type))


@app.get("/api/sparepart/locations")
async def list_locations(
    region: str | None = Query(None),
    regency: str | None = Query(None),
    cluster: str | None = Query(None),
    client: SparepartStockClient = Depends(get_stock_client),
):
    return await _guard(client.list_locations(region=region, regency=regency, cluster=cluster))


@app.get("/api/sparepart/contact-persons")
async def list_contact_persons(
    location_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    client: SparepartStockClient = Depends(get_stock_client),
):
    rows, pagination = await _guard(client.list_contact_persons(location_id=location_id, page=page, limit=limit))
    return {"data": rows, "pagination": pagination}


@app.get("/api/sparepart/{category}/export/{export_format}")
async def export_stock(
    category: str,
    export_format: str,
    region: str | None = Query(None),
    regency: str | None = Query(None),
    cluster: str | None = Query(None),
    sparepart_name: str | None = Query(None),
    stock_type: str | None = Query(None, pattern="^(stok|bekas)$"),
    client: SparepartStockClient = Depends(get_stock_client),
):
    _require_category(category)
    if export_format not in ("excel", "pdf"):
        raise HTTPException(status_code=404, detail=f"Unknown export format: {export_format}")
    export = await _guard(
        client.export_stock(
            category,
            export_format,
            region=region,
            regency=regency,
            cluster=cluster,
            sparepart_name=sparepart_name,
            stock_type=stock_type,
        )
    )
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@app.delete("/api/sparepart/photos/{photo_id}")
async def delete_photo(photo_id: str, client: SparepartStockClient = Depends(get_stock_client)):
    await _guard(delete_row_photo(client, photo_id))
    return {"message": "Deleted"}


@app.get("/api/sparepart/{category}/{location_id}")
async def get_location_row(
    category: str,
    location_id: int,
    region: str | None = Query(None),
    regency: str | None = Query(None),
    cluster: str | None = Query(None),
    client: SparepartStockClient = Depends(get_stock_client),
):
    _require_category(category)
    return await _guard(
        get_stock_row(client, category, location_id, region=region, regency=regency, cluster=cluster)
    )


async def _save_row(client: SparepartStockClient, category: str, location_id: int | None, payload: StockRowSaveRequest):
    row, operations = await _guard(save_stock_row(client, category, location_id, payload))
    return {"data": row, "operations": [describe_operation(operation) for operation in operations]}


@app.post("/api/sparepart/{category}")
async def create_location_row(
    category: str,
    payload: StockRowSaveRequest,
    client: SparepartStockClient = Depends(get_stock_client),
):
    _require_category(category)
    return await _save_row(client, category, None, payload)


@app.put("/api/sparepart/{category}/{location_id}")
async def update_location_row(
    category: str,
    location_id: int,
    payload: StockRowSaveRequest,
    client: SparepartStockClient = Depends(get_stock_client),
):
    _require_category(category)
    return await _save_row(client, category, location_id, payload)


@app.delete("/api/sparepart/{category}/records/{stock_id}")
async def delete_stock_record(
    category: str,
    stock_id: int,
    client: SparepartStockClient = Depends(get_stock_client),
):
    _require_category(category)
    await _guard(client.delete_stock(category, stock_id))
    return {"message": "Deleted"}
