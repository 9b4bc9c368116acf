from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, List
from datetime import datetime

from app.core.uploads import build_image_url


class CategoryCreate(BaseModel):
    """创建分类的请求"""
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    parentId: Optional[str] = None


class CategoryUpdate(BaseModel):
    """更新分类的请求（只更新显式传入的字段）"""
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    parentId: Optional[str] = None


class CategoryResponse(BaseModel):
    """分类响应"""
    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    image: Optional[str] = None
    parentId: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def imageUrl(self) -> Optional[str]:
        return build_image_url(self.image)


class CategoryTreeNode(CategoryResponse):
    """分类树节点"""
    children: List[CategoryTreeNode] = Field(default_factory=list)


class CategoryCount(BaseModel):
    """分类下的植物数量"""
    categoryId: str
    name: str
    icon: Optional[str] = None
    count: int
