"""
分类树组装

输入为全部分类的扁平列表（不分页），输出为森林：
- parentId 为空 -> 根节点
- parentId 指向列表中的分类 -> 追加到该分类的 children（保持输入顺序）
- parentId 指向不存在的分类 -> 该分类（及其子树）不出现在结果中
- parentId 成环 -> CategoryCycleError
"""
import logging
from typing import Any, Iterable, Optional

from app.core.errors import CategoryCycleError
from app.schemas.category import CategoryTreeNode

logger = logging.getLogger(__name__)


def find_parent_cycle(parent_of: dict[str, Optional[str]]) -> Optional[list[str]]:
    """沿 parentId 链查找环，返回环上的 id 列表；无环返回 None。

    每个 id 只会被完整走过一次，整体 O(n)。
    """
    resolved: set[str] = set()
    for start in parent_of:
        path: list[str] = []
        on_path: dict[str, int] = {}
        current = start
        while current is not None and current in parent_of and current not in resolved:
            if current in on_path:
                return path[on_path[current]:]
            on_path[current] = len(path)
            path.append(current)
            current = parent_of[current]
        resolved.update(path)
    return None


def build_category_tree(categories: Iterable[Any]) -> list[CategoryTreeNode]:
    """把扁平分类列表组装为树（id -> 节点索引，一次挂载，O(n)）"""
    records = list(categories)

    nodes: dict[str, CategoryTreeNode] = {}
    parent_of: dict[str, Optional[str]] = {}
    ordered_ids: list[str] = []
    for record in records:
        if record.id in nodes:
            continue
        nodes[record.id] = CategoryTreeNode.model_validate(record)
        parent_of[record.id] = record.parentId or None
        ordered_ids.append(record.id)

    cycle = find_parent_cycle(parent_of)
    if cycle:
        logger.error("分类层级存在环: %s", cycle)
        raise CategoryCycleError(cycle)

    roots: list[CategoryTreeNode] = []
    dropped = 0
    for category_id in ordered_ids:
        node = nodes[category_id]
        parent_id = parent_of[category_id]
        if parent_id is None:
            roots.append(node)
            continue
        parent = nodes.get(parent_id)
        if parent is None:
            dropped += 1
            continue
        parent.children.append(node)

    if dropped:
        logger.debug("分类树忽略了 %d 个父分类不存在的节点", dropped)
    return roots
