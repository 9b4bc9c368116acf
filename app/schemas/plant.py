from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, List
from datetime import datetime
from enum import Enum

from app.core.uploads import build_image_url


class PlantStatusEnum(str, Enum):
    """植物状态"""
    active = "active"
    inactive = "inactive"


class PlantCreate(BaseModel):
    """创建植物的请求"""
    name: str
    scientificName: Optional[str] = None
    description: Optional[str] = None
    status: PlantStatusEnum = PlantStatusEnum.active
    categoryIds: List[str] = Field(default_factory=list)


class PlantUpdate(BaseModel):
    """更新植物的请求"""
    name: Optional[str] = None
    scientificName: Optional[str] = None
    description: Optional[str] = None
    status: Optional[PlantStatusEnum] = None
    categoryIds: Optional[List[str]] = None


class PlantResponse(BaseModel):
    """植物响应"""
    id: str
    name: str
    scientificName: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    status: str
    categoryIds: List[str] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def imageUrl(self) -> Optional[str]:
        return build_image_url(self.image)
