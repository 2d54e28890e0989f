from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

class ClipBase(BaseModel):
    title: str
    subtitle: str = ""
    game: str
    duration: str = ""

class ClipCreate(ClipBase):
    owner_id: Optional[int] = None

class Clip(ClipBase):
    id: int
    file_path: str
    owner_id: int
    upload_date: datetime
    video_hash: str
    is_private: bool
    views: int

    class Config:
        from_attributes = True

class PrivacyUpdate(BaseModel):
    is_private: bool = Field(alias="isPrivate")

    class Config:
        populate_by_name = True
