from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
import logging
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import AppError, NotFound, ValidationFailure
from app.core.responses import success_response
from app.core.uploads import ALLOWED_IMAGE_TYPES, UploadPath, delete_image, save_image
from app.models import Category
from app.schemas.category import CategoryCreate, CategoryUpdate, CategoryResponse
from app.services.category_cascade import delete_category_with_cascade
from app.services.category_stats import categories_with_counts, most_popular_categories
from app.services.category_tree import build_category_tree
from app.services.query_builder import QueryOptions, execute_query, parse_query_params
from app.services.repository import Repository

router = APIRouter()
logger = logging.getLogger(__name__)

CATEGORY_QUERY_OPTIONS = QueryOptions(
    model=Category,
    default_sort="createdAt",
    allowed_sort_fields=("createdAt", "updatedAt", "name"),
    allowed_filter_fields=("name", "parentId", "icon"),
    search_fields=("name", "description"),
    date_field="createdAt",
)


def _would_create_cycle(repo: Repository, category_id: str, new_parent_id: str) -> bool:
    """检查把 category_id 挂到 new_parent_id 下是否会形成环。"""
    current_id = new_parent_id
    seen: set[str] = set()

    for _ in range(1000):
        if current_id == category_id:
            return True
        if current_id in seen:
            return True
        seen.add(current_id)

        parent = repo.get(current_id)
        if parent is None or not parent.parentId:
            return False
        current_id = parent.parentId

    return True


def _normalize_name(name: str | None) -> str:
    next_name = (name or "").strip()
    if not next_name:
        raise ValidationFailure("Category name must not be empty")
    return next_name


def _ensure_unique_name(repo: Repository, name: str, exclude_id: str | None = None) -> None:
    criteria = [Category.name == name]
    if exclude_id:
        criteria.append(Category.id != exclude_id)
    if repo.count(criteria):
        raise ValidationFailure(f"Category name '{name}' already exists")


def _get_or_404(repo: Repository, category_id: str) -> Category:
    category = repo.get(category_id)
    if category is None:
        raise NotFound("Category", category_id)
    return category


@router.get("")
async def list_categories(request: Request, db: Session = Depends(get_db)):
    """分类列表（分页 / 排序 / 过滤 / 搜索 / 日期范围）"""
    descriptor = parse_query_params(request.query_params, CATEGORY_QUERY_OPTIONS)
    page = execute_query(Repository(db, Category), descriptor, CATEGORY_QUERY_OPTIONS)
    return success_response(
        [CategoryResponse.model_validate(item) for item in page.items],
        **page.pagination(),
    )


@router.get("/tree")
async def get_category_tree(db: Session = Depends(get_db)):
    """分类树（全量）"""
    categories = Repository(db, Category).find_all(order_by=[Category.createdAt.asc(), Category.id.asc()])
    return success_response(build_category_tree(categories))


@router.get("/popular")
async def get_popular_categories(
    limit: int | None = Query(None, ge=1, le=settings.MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
):
    """按植物数量排序的热门分类"""
    return success_response(most_popular_categories(db, limit=limit))


@router.get("/with-counts")
async def get_categories_with_counts(db: Session = Depends(get_db)):
    """所有分类及其植物数量"""
    return success_response(categories_with_counts(db))


@router.get("/{category_id}")
async def get_category(category_id: str, db: Session = Depends(get_db)):
    """获取单个分类"""
    category = _get_or_404(Repository(db, Category), category_id)
    return success_response(CategoryResponse.model_validate(category))


@router.post("", status_code=201)
async def create_category(category_data: CategoryCreate, db: Session = Depends(get_db)):
    """创建分类"""
    repo = Repository(db, Category)
    name = _normalize_name(category_data.name)
    _ensure_unique_name(repo, name)

    if category_data.parentId:
        _get_or_404(repo, category_data.parentId)

    category = repo.insert_one(
        Category(
            name=name,
            description=category_data.description,
            icon=category_data.icon,
            parentId=category_data.parentId or None,
        )
    )
    logger.info("创建分类 %s (%s)", category.id, category.name)
    return success_response(CategoryResponse.model_validate(category), message="Category created")


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    category_data: CategoryUpdate,
    db: Session = Depends(get_db),
):
    """更新分类（只更新显式传入的字段）"""
    repo = Repository(db, Category)
    _get_or_404(repo, category_id)

    payload = category_data.model_dump(exclude_unset=True)
    if "name" in payload:
        payload["name"] = _normalize_name(payload["name"])
        _ensure_unique_name(repo, payload["name"], exclude_id=category_id)

    if "parentId" in payload:
        next_parent_id = payload["parentId"] or None
        if next_parent_id:
            if next_parent_id == category_id:
                raise ValidationFailure("A category cannot be its own parent")
            _get_or_404(repo, next_parent_id)
            if _would_create_cycle(repo, category_id, next_parent_id):
                raise ValidationFailure("Cannot move a category under one of its descendants")
        payload["parentId"] = next_parent_id

    category = repo.update_one(category_id, payload)
    if category is None:
        raise NotFound("Category", category_id)
    return success_response(CategoryResponse.model_validate(category), message="Category updated")


@router.delete("/{category_id}")
async def delete_category(category_id: str, db: Session = Depends(get_db)):
    """删除分类，并把该分类下的植物标记为 inactive"""
    result = delete_category_with_cascade(db, category_id)
    return success_response(
        message="Category deleted",
        deletedData={"id": result.categoryId, "name": result.name},
        modifiedCount=result.modifiedCount,
    )


@router.post("/{category_id}/image")
async def upload_category_image(
    category_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """上传分类图片（替换旧图片）"""
    repo = Repository(db, Category)
    category = _get_or_404(repo, category_id)

    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationFailure("Only JPG/PNG/GIF/WebP images are supported")
    content = await file.read()
    if len(content) > settings.MAX_IMAGE_SIZE:
        raise ValidationFailure("Image is too large")

    previous = category.image
    key = save_image(content, UploadPath.CATEGORY_IMAGES, file.filename or "category.jpg")
    try:
        category = repo.update_one(category_id, {"image": key})
    except AppError:
        delete_image(key)
        raise
    if category is None:
        delete_image(key)
        raise NotFound("Category", category_id)
    if previous and previous != key:
        delete_image(previous)
    return success_response(CategoryResponse.model_validate(category), message="Category image uploaded")
