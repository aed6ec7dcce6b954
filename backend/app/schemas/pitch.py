from pydantic import BaseModel
from typing import Optional, Any


class PackageSelection(BaseModel):
    selected_package: Optional[str] = None
    agree_to_terms: Optional[bool] = None


class AutoSaveRequest(BaseModel):
    step_data: Any = None
    step_name: str


class DeleteFileRequest(BaseModel):
    public_id: Optional[str] = None


class DeleteMediaFileRequest(BaseModel):
    file_type: Optional[str] = None
    public_id: Optional[str] = None


class FavouriteCreate(BaseModel):
    pitch_id: str
