from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
from app.core.database import Base
import uuid
from datetime import datetime


PLANT_STATUS_ACTIVE = "active"
PLANT_STATUS_INACTIVE = "inactive"


class PlantCategory(Base):
    """植物与分类的多对多关系（保留顺序）"""
    __tablename__ = "plant_category"

    plantId = Column(String(36), ForeignKey("plant.id", ondelete="CASCADE"), primary_key=True)
    # 不加外键：分类删除后成员关系保留，只把植物状态置为 inactive
    categoryId = Column(String(36), primary_key=True, index=True)
    position = Column(Integer, default=0, nullable=False)

    plant = relationship("Plant", back_populates="categoryLinks")

    def __repr__(self):
        return f"<PlantCategory {self.plantId} -> {self.categoryId}>"


class Plant(Base):
    __tablename__ = "plant"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    scientificName = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    image = Column(String(255), nullable=True)
    status = Column(String(20), default=PLANT_STATUS_ACTIVE, nullable=False, index=True)  # active, inactive

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updatedAt = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 关系
    categoryLinks = relationship(
        "PlantCategory",
        back_populates="plant",
        cascade="all, delete-orphan",
        order_by=PlantCategory.position,
        lazy="selectin",
    )

    @property
    def categoryIds(self) -> list[str]:
        return [link.categoryId for link in self.categoryLinks]

    @categoryIds.setter
    def categoryIds(self, values) -> None:
        # 复用已存在的关联行，避免同一 flush 内删除+插入相同主键
        existing = {link.categoryId: link for link in self.categoryLinks}
        links: list[PlantCategory] = []
        for position, category_id in enumerate(dict.fromkeys(values or [])):
            link = existing.get(category_id) or PlantCategory(categoryId=category_id)
            link.position = position
            links.append(link)
        self.categoryLinks = links

    def __repr__(self):
        return f"<Plant {self.name}>"
