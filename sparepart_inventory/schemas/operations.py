from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PhotoUpload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    filename: str
    content_type: str = "image/jpeg"
    content: bytes


class UpdateExisting(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: Literal["update_existing"] = "update_existing"
    bucket: Literal["stok", "bekas", "tools"]
    stockId: int
    quantity: int
    notes: Optional[str] = None


class CreateNew(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: Literal["create_new"] = "create_new"
    bucket: Literal["stok", "bekas", "tools"]
    locationId: int
    masterItemId: int
    stockType: Optional[Literal["NEW_STOCK", "USED_STOCK"]] = None
    itemType: Literal["SPAREPART", "TOOLS_ALKER"] = "SPAREPART"
    quantity: int = 0
    notes: Optional[str] = None
    photos: List[PhotoUpload] = []


class AddPhotos(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: Literal["add_photos"] = "add_photos"
    bucket: Literal["stok", "bekas", "tools"]
    stockId: int
    photos: List[PhotoUpload] = []


Operation = Annotated[Union[UpdateExisting, CreateNew, AddPhotos], Field(discriminator="kind")]


def describe_operation(operation: UpdateExisting | CreateNew | AddPhotos) -> dict:
    payload = {"kind": operation.kind, "bucket": operation.bucket}
    if isinstance(operation, CreateNew):
        payload["locationId"] = operation.locationId
        payload["masterItemId"] = operation.masterItemId
        payload["quantity"] = operation.quantity
        payload["photoCount"] = len(operation.photos)
    elif isinstance(operation, UpdateExisting):
        payload["stockId"] = operation.stockId
        payload["quantity"] = operation.quantity
    else:
        payload["stockId"] = operation.stockId
        payload["photoCount"] = len(operation.photos)
    return payload
