import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.staticfiles import StaticFiles
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.base import Base
from db.deps import get_stock_db
from db.session import engine_stock
from models.stock_models import ContactPerson, Location, SparepartMaster, Stock
from schemas.backend import ContactPersonCreate, LocationCreate, StockQuantityUpdate
from schemas.stock import SparepartMasterCreate

BASE_DIR = Path(__file__).resolve().parent
UPLOADS_DIR = Path(os.environ.get("SPAREPART_UPLOADS_DIR") or (BASE_DIR / "static" / "uploads"))
API_PREFIX = "/api/v1/sparepart"

FAMILIES = {
    "stock": {"item_type": "SPAREPART", "lines_key": "sparepart"},
    "tools-alker": {"item_type": "TOOLS_ALKER", "lines_key": "tools"},
}
STOCK_TYPES = {"NEW_STOCK", "USED_STOCK"}
IMAGE_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
BACKEND_LOGGER = logging.getLogger("sparepart_inventory.backend")

Base.metadata.create_all(bind=engine_stock)
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

app = FastAPI()
app.mount("/uploads", StaticFiles(directory=str(UPLOADS_DIR)), name="uploads")


def _envelope(data, message: str = "OK", pagination: dict | None = None) -> dict:
    payload = {"success": True, "message": message, "data": data}
    if pagination is not None:
        payload["pagination"] = pagination
    return payload


def _pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "total_pages": (total + limit - 1) // limit}


def _family(category: str) -> dict:
    family = FAMILIES.get(category)
    if family is None:
        raise HTTPException(status_code=404, detail=f"Unknown stock category: {category}")
    return family


def serialize_location(location: Location) -> dict:
    return {
        "id": location.LocationID,
        "region": location.Region,
        "regency": location.Regency,
        "cluster": location.Cluster,
        "created_at": location.CreatedDate,
        "updated_at": location.UpdatedDate,
    }


def serialize_master(master: SparepartMaster) -> dict:
    return {
        "id": master.SparepartID,
        "name": master.Name,
        "item_type": master.ItemType,
        "created_at": master.CreatedDate,
        "updated_at": master.UpdatedDate,
    }


def serialize_contact_person(contact: ContactPerson) -> dict:
    return {
        "id": contact.ContactPersonID,
        "location_id": contact.LocationID,
        "pic": contact.PIC,
        "phone": contact.Phone,
        "created_at": contact.CreatedDate,
        "updated_at": contact.UpdatedDate,
        "location": serialize_location(contact.Location) if contact.Location else None,
    }


def serialize_stock_line(stock: Stock) -> dict:
    payload = {
        "id": stock.SparepartID,
        "stock_id": stock.StockID,
        "name": stock.Sparepart.Name if stock.Sparepart else "",
        "item_type": stock.Sparepart.ItemType if stock.Sparepart else None,
        "quantity": stock.Quantity,
        "documentation": list(stock.Documentation or []),
        "notes": stock.Notes,
    }
    if stock.StockType:
        payload["stock_type"] = stock.StockType
    else:
        payload["condition"] = stock.Condition or ""
    return payload


def serialize_stock_record(stock: Stock) -> dict:
    return {
        "id": stock.StockID,
        "location_id": stock.LocationID,
        "sparepart_id": stock.SparepartID,
        "stock_type": stock.StockType,
        "quantity": stock.Quantity,
        "documentation": list(stock.Documentation or []),
        "notes": stock.Notes,
        "created_at": stock.CreatedDate,
        "updated_at": stock.UpdatedDate,
        "location": serialize_location(stock.Location) if stock.Location else None,
        "sparepart": serialize_master(stock.Sparepart) if stock.Sparepart else None,
    }


def group_stock_page(stocks: list[Stock], lines_key: str) -> list[dict]:
    grouped: dict[int, dict] = {}
    for stock in stocks:
        entry = grouped.get(stock.LocationID)
        if entry is None:
            entry = {
                "id": stock.LocationID,
                "location_id": stock.LocationID,
                "location": serialize_location(stock.Location),
                lines_key: [],
                "created_at": stock.CreatedDate,
                "updated_at": stock.UpdatedDate,
            }
            grouped[stock.LocationID] = entry
        entry[lines_key].append(serialize_stock_line(stock))
        if stock.UpdatedDate and (entry["updated_at"] is None or stock.UpdatedDate > entry["updated_at"]):
            entry["updated_at"] = stock.UpdatedDate
    return list(grouped.values())


def _save_upload(file: UploadFile, category: str) -> str:
    if file.content_type not in IMAGE_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Unsupported file type. Please upload an image (jpg, png, webp, gif).")

    destination_dir = UPLOADS_DIR / category
    destination_dir.mkdir(parents=True, exist_ok=True)
    ext = os.path.splitext(file.filename or "")[1]
    filename = f"{uuid.uuid4().hex}{ext}"
    target = destination_dir / filename

    with target.open("wb") as output:
        output.write(file.file.read())

    return f"/uploads/{category}/{filename}"


def _remove_upload(relative_path: str) -> None:
    prefix = "/uploads/"
    if not relative_path.startswith(prefix):
        return
    target = (UPLOADS_DIR / relative_path[len(prefix):]).resolve()
    if UPLOADS_DIR.resolve() not in target.parents:
        return
    target.unlink(missing_ok=True)


def _get_stock(db: Session, category: str, stock_id: int) -> Stock:
    family = _family(category)
    stock = db.get(Stock, stock_id)
    if not stock or not stock.Sparepart or stock.Sparepart.ItemType != family["item_type"]:
        raise HTTPException(status_code=404, detail="Stock not found")
    return stock


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get(f"{API_PREFIX}/location")
def list_locations(
    region: Optional[str] = Query(None),
    regency: Optional[str] = Query(None),
    cluster: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_stock_db),
):
    stmt = select(Location)
    if region:
        stmt = stmt.where(Location.Region == region.upper())
    if regency:
        stmt = stmt.where(Location.Regency.ilike(regency))
    if cluster:
        stmt = stmt.where(Location.Cluster.ilike(cluster))
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(stmt.order_by(Location.LocationID).offset((page - 1) * limit).limit(limit)).scalars().all()
    return _envelope([serialize_location(row) for row in rows], pagination=_pagination(page, limit, total))


@app.post(f"{API_PREFIX}/location")
def create_location(payload: LocationCreate, db: Session = Depends(get_stock_db)):
    location = Location(Region=payload.region, Regency=payload.regency.strip(), Cluster=payload.cluster.strip())
    db.add(location)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Location already exists") from exc
    db.refresh(location)
    return _envelope(serialize_location(location), message="Location created")


@app.get(f"{API_PREFIX}/location/{{location_id}}")
def get_location(location_id: int, db: Session = Depends(get_stock_db)):
    location = db.get(Location, location_id)
    if not location:
        raise HTTPException(status_code=404, detail="Location not found")
    return _envelope(serialize_location(location))


@app.get(f"{API_PREFIX}/contact-person")
def list_contact_persons(
    location_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_stock_db),
):
    stmt = select(ContactPerson)
    if location_id is not None:
        stmt = stmt.where(ContactPerson.LocationID == location_id)
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(ContactPerson.ContactPersonID).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return _envelope([serialize_contact_person(row) for row in rows], pagination=_pagination(page, limit, total))


@app.post(f"{API_PREFIX}/contact-person")
def create_contact_person(payload: ContactPersonCreate, db: Session = Depends(get_stock_db)):
    if not db.get(Location, payload.location_id):
        raise HTTPException(status_code=404, detail="Location not found")
    contact = ContactPerson(LocationID=payload.location_id, PIC=payload.pic.strip(), Phone=(payload.phone or "").strip() or None)
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return _envelope(serialize_contact_person(contact), message="Contact person created")


@app.get(f"{API_PREFIX}/master")
def list_masters(
    item_type: Optional[str] = Query(None, pattern="^(SPAREPART|TOOLS_ALKER)$"),
    name: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_stock_db),
):
    stmt = select(SparepartMaster)
    if item_type:
        stmt = stmt.where(SparepartMaster.ItemType == item_type)
    if name and name.strip():
        stmt = stmt.where(func.lower(SparepartMaster.Name) == name.strip().lower())
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(SparepartMaster.Name, SparepartMaster.SparepartID).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return _envelope(
        {"data": [serialize_master(row) for row in rows], "pagination": _pagination(page, limit, total)}
    )


@app.post(f"{API_PREFIX}/master")
def create_master(payload: SparepartMasterCreate, db: Session = Depends(get_stock_db)):
    master = SparepartMaster(Name=payload.name.strip(), ItemType=payload.item_type)
    db.add(master)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Sparepart master already exists") from exc
    db.refresh(master)
    return _envelope(serialize_master(master), message="Sparepart master created")


@app.get(f"{API_PREFIX}/{{category}}")
def list_stock(
    category: str,
    region: Optional[str] = Query(None),
    regency: Optional[str] = Query(None),
    cluster: Optional[str] = Query(None),
    sparepart_name: Optional[str] = Query(None),
    stock_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    db: Session = Depends(get_stock_db),
):
    family = _family(category)
    stmt = (
        select(Stock)
        .join(Stock.Location)
        .join(Stock.Sparepart)
        .where(SparepartMaster.ItemType == family["item_type"])
    )
    if region:
        stmt = stmt.where(Location.Region == region.upper())
    if regency:
        stmt = stmt.where(Location.Regency.ilike(regency))
    if cluster:
        stmt = stmt.where(Location.Cluster.ilike(cluster))
    if sparepart_name:
        stmt = stmt.where(SparepartMaster.Name.ilike(f"%{sparepart_name}%"))
    if stock_type and category == "stock":
        stmt = stmt.where(Stock.StockType == stock_type)

    # paginate over flat stock records, group only the returned page
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    stocks = db.execute(
        stmt.order_by(Location.LocationID, Stock.StockID).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return _envelope(group_stock_page(list(stocks), family["lines_key"]), pagination=_pagination(page, limit, total))


@app.post(f"{API_PREFIX}/{{category}}")
def create_stock(
    category: str,
    location_id: int = Form(...),
    sparepart_id: int = Form(...),
    stock_type: Optional[str] = Form(None),
    quantity: int = Form(0),
    notes: Optional[str] = Form(None),
    condition: Optional[str] = Form(None),
    photos: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_stock_db),
):
    family = _family(category)
    if quantity < 0:
        raise HTTPException(status_code=400, detail="quantity must not be negative.")
    if category == "stock" and stock_type not in STOCK_TYPES:
        raise HTTPException(status_code=400, detail="stock_type must be NEW_STOCK or USED_STOCK.")

    location = db.get(Location, location_id)
    if not location:
        raise HTTPException(status_code=404, detail="Location not found")
    master = db.get(SparepartMaster, sparepart_id)
    if not master:
        raise HTTPException(status_code=404, detail="Sparepart master not found")
    if master.ItemType != family["item_type"]:
        raise HTTPException(status_code=400, detail=f"Sparepart master {sparepart_id} is not {family['item_type']}.")

    documentation = [_save_upload(photo, category) for photo in photos or []]
    now = datetime.now()
    stock = Stock(
        LocationID=location.LocationID,
        SparepartID=master.SparepartID,
        StockType=stock_type if category == "stock" else None,
        Quantity=quantity,
        Condition=condition if category != "stock" else None,
        Notes=notes or None,
        Documentation=documentation,
        CreatedDate=now,
        UpdatedDate=now,
    )
    db.add(stock)
    db.commit()
    db.refresh(stock)
    BACKEND_LOGGER.info("Stock created stock_id=%s location_id=%s sparepart_id=%s", stock.StockID, location_id, sparepart_id)
    return _envelope(serialize_stock_record(stock), message="Stock created")


@app.put(f"{API_PREFIX}/{{category}}/{{stock_id}}")
def update_stock(category: str, stock_id: int, payload: StockQuantityUpdate, db: Session = Depends(get_stock_db)):
    stock = _get_stock(db, category, stock_id)
    stock.Quantity = payload.quantity
    if "notes" in payload.model_fields_set:
        stock.Notes = payload.notes or None
    stock.UpdatedDate = datetime.now()
    db.commit()
    return _envelope(serialize_stock_record(stock), message="Stock updated")


@app.delete(f"{API_PREFIX}/{{category}}/{{stock_id}}")
def delete_stock(category: str, stock_id: int, db: Session = Depends(get_stock_db)):
    stock = _get_stock(db, category, stock_id)
    paths = list(stock.Documentation or [])
    db.delete(stock)
    db.commit()
    for path in paths:
        _remove_upload(path)
    return _envelope(None, message="Deleted")


@app.post(f"{API_PREFIX}/{{category}}/{{stock_id}}/photos")
def add_stock_photos(
    category: str,
    stock_id: int,
    photos: List[UploadFile] = File(...),
    db: Session = Depends(get_stock_db),
):
    stock = _get_stock(db, category, stock_id)
    added = [_save_upload(photo, category) for photo in photos]
    stock.Documentation = list(stock.Documentation or []) + added
    stock.UpdatedDate = datetime.now()
    db.commit()
    return _envelope(serialize_stock_record(stock), message="Photos added")


@app.delete(f"{API_PREFIX}/{{category}}/{{stock_id}}/photos/{{photo_index}}")
def delete_stock_photo(category: str, stock_id: int, photo_index: int, db: Session = Depends(get_stock_db)):
    stock = _get_stock(db, category, stock_id)
    documentation = list(stock.Documentation or [])
    if photo_index < 0 or photo_index >= len(documentation):
        raise HTTPException(status_code=404, detail="Photo not found")
    removed = documentation.pop(photo_index)
    stock.Documentation = documentation
    stock.UpdatedDate = datetime.now()
    db.commit()
    _remove_upload(removed)
    return _envelope(serialize_stock_record(stock), message="Photo deleted")
