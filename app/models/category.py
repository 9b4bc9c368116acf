from sqlalchemy import Column, String, Text, DateTime
from app.core.database import Base
import uuid
from datetime import datetime


class Category(Base):
    """植物分类（可嵌套，parentId 为空表示根分类）"""
    __tablename__ = "category"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    icon = Column(String(255), nullable=True)
    image = Column(String(255), nullable=True)  # 上传目录下的相对 key

    # 不加外键：父分类被删除后允许悬空引用，由树组装时忽略
    parentId = Column(String(36), nullable=True, index=True)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updatedAt = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Category {self.name}>"
