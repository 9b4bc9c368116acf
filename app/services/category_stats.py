"""
分类统计

两个固定的只读聚合视图（全量，不分页），都按 plant_category 关联表 GROUP BY：
- most_popular_categories: 只包含至少有一个植物的分类
- categories_with_counts: 所有分类，没有植物的分类 count 为 0

排序：count 降序 -> name 升序 -> id 升序（计数相同时结果稳定）
悬空的 categoryId（分类已删除）在与 category 表 JOIN 时自然被忽略。
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Category, PlantCategory
from app.schemas.category import CategoryCount
from app.services.repository import storage_errors

logger = logging.getLogger(__name__)


def _ordered(query, count_expr):
    return query.group_by(Category.id, Category.name, Category.icon).order_by(
        count_expr.desc(),
        Category.name.asc(),
        Category.id.asc(),
    )


def _to_counts(rows) -> list[CategoryCount]:
    return [
        CategoryCount(categoryId=row.id, name=row.name, icon=row.icon, count=int(row.count or 0))
        for row in rows
    ]


def most_popular_categories(db: Session, limit: Optional[int] = None) -> list[CategoryCount]:
    """按植物数量排序的热门分类（没有植物的分类不出现）"""
    count_expr = func.count(PlantCategory.plantId)
    query = _ordered(
        db.query(Category.id, Category.name, Category.icon, count_expr.label("count"))
        .join(PlantCategory, PlantCategory.categoryId == Category.id),
        count_expr,
    )
    if limit is not None:
        query = query.limit(limit)

    with storage_errors(db, "most_popular_categories"):
        rows = query.all()
    logger.debug("热门分类统计: %d 个分类", len(rows))
    return _to_counts(rows)


def categories_with_counts(db: Session) -> list[CategoryCount]:
    """所有分类及其植物数量（LEFT OUTER JOIN，没有植物的分类 count 为 0）"""
    count_expr = func.count(PlantCategory.plantId)
    query = _ordered(
        db.query(Category.id, Category.name, Category.icon, count_expr.label("count"))
        .outerjoin(PlantCategory, PlantCategory.categoryId == Category.id),
        count_expr,
    )

    with storage_errors(db, "categories_with_counts"):
        rows = query.all()
    return _to_counts(rows)
