"""
分类删除后的级联处理

1. 删除分类（单独提交）；分类不存在 -> NotFound，不执行第 2 步
2. 把 categoryIds 包含该分类的植物 status 置为 inactive（单独提交）
   植物本身与其 categoryIds 不做任何其他修改

两步不在同一事务中：第 2 步失败时分类已被删除，抛出 CascadeIncompleteError
（部分完成），调用方据此区分“全部成功 / 全部失败 / 部分完成”。
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import AppError, CascadeIncompleteError, NotFound
from app.core.uploads import delete_image
from app.models import Category, Plant, PlantCategory, PLANT_STATUS_INACTIVE
from app.services.repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeResult:
    categoryId: str
    name: str
    modifiedCount: int


def plants_in_category(category_id: str):
    """植物属于某分类的条件（categoryIds 包含 category_id）"""
    return Plant.id.in_(
        select(PlantCategory.plantId).where(PlantCategory.categoryId == category_id)
    )


def deactivate_plants_in_category(db: Session, category_id: str) -> int:
    """把属于该分类的植物置为 inactive，返回实际修改的数量"""
    return Repository(db, Plant).update_many(
        [plants_in_category(category_id), Plant.status != PLANT_STATUS_INACTIVE],
        {"status": PLANT_STATUS_INACTIVE},
    )


def delete_category_with_cascade(db: Session, category_id: str) -> CascadeResult:
    """删除分类，并把其下植物标记为 inactive

    modifiedCount 只统计状态实际发生变化的植物，原本就是 inactive 的不计入。
    """
    deleted: Optional[Category] = Repository(db, Category).delete_one(category_id)
    if deleted is None:
        raise NotFound("Category", category_id)

    name = deleted.name
    image = deleted.image

    try:
        modified = deactivate_plants_in_category(db, category_id)
    except AppError as exc:
        logger.error("分类 %s 已删除，但植物状态更新失败: %s", category_id, exc.message)
        raise CascadeIncompleteError(category_id, name) from exc

    logger.info("分类 %s (%s) 已删除，%d 个植物标记为 inactive", category_id, name, modified)

    if image and not delete_image(image):
        logger.warning("分类 %s 的图片清理失败: %s", category_id, image)

    return CascadeResult(categoryId=category_id, name=name, modifiedCount=modified)
