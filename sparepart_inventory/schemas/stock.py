from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


StockCategory = Literal["stock", "tools-alker"]
RowType = Literal["stok", "bekas", "tools_alker"]
Bucket = Literal["stok", "bekas", "tools"]


class LocationRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    region: Literal["papua", "maluku"]
    regency: str
    cluster: str


class StockRecord(BaseModel):
    """One backend item, normalized from whichever payload shape carried it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stock_id: Optional[int] = None
    master_id: int
    name: str
    item_type: str = "SPAREPART"
    family: Literal["sparepart", "tool"] = "sparepart"
    stock_type: Optional[str] = None
    quantity: int = 0
    documentation: List[str] = []
    notes: Optional[str] = None
    location: Optional[LocationRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LocationGroup(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location: LocationRef
    group_id: Optional[int] = None
    records: List[StockRecord] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SparepartItemView(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    stockId: Optional[int] = None
    name: str = ""
    quantity: int = Field(0, ge=0)
    unit: str = "pcs"
    stock_type: Optional[Literal["NEW_STOCK", "USED_STOCK"]] = None


class SparepartPhotoView(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    url: str
    thumbnailUrl: Optional[str] = None
    caption: Optional[str] = None


class AggregateRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    no: int = 0
    kabupaten: str
    cluster: str
    region: Literal["papua", "maluku"]
    type: RowType
    sparepartStok: List[SparepartItemView] = []
    dokumentasiStok: List[SparepartPhotoView] = []
    sparepartBekas: List[SparepartItemView] = []
    dokumentasiBekas: List[SparepartPhotoView] = []
    catatanStok: str = ""
    catatanBekas: str = ""
    catatan: str = ""
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class PaginationEstimate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total: int
    totalPages: int


class RowPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page: int
    limit: int
    total: int
    totalPages: int


class StockRowSaveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    region: Literal["papua", "maluku"]
    kabupaten: str
    cluster: str
    sparepartStok: List[SparepartItemView] = []
    sparepartBekas: List[SparepartItemView] = []
    catatan: Optional[str] = None
    newPhotosStok: List[str] = []
    newPhotosBekas: List[str] = []


class SparepartMasterCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    item_type: Literal["SPAREPART", "TOOLS_ALKER"] = "SPAREPART"
