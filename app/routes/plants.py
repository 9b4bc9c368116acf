from fastapi import APIRouter, Depends, File, Request, UploadFile
import logging
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import AppError, NotFound, ValidationFailure
from app.core.responses import success_response
from app.core.uploads import ALLOWED_IMAGE_TYPES, UploadPath, delete_image, save_image
from app.models import Category, Plant
from app.schemas.plant import PlantCreate, PlantUpdate, PlantResponse
from app.services.category_cascade import plants_in_category
from app.services.query_builder import QueryOptions, execute_query, parse_query_params
from app.services.repository import Repository

router = APIRouter()
logger = logging.getLogger(__name__)

PLANT_QUERY_OPTIONS = QueryOptions(
    model=Plant,
    default_sort="createdAt",
    allowed_sort_fields=("createdAt", "updatedAt", "name", "status"),
    allowed_filter_fields=("status", "name", "categoryId"),
    search_fields=("name", "scientificName", "description"),
    date_field="createdAt",
    custom_filters={"categoryId": plants_in_category},
)


def _normalize_name(name: str | None) -> str:
    next_name = (name or "").strip()
    if not next_name:
        raise ValidationFailure("Plant name must not be empty")
    return next_name


def _validate_category_ids(db: Session, category_ids: list[str]) -> list[str]:
    """categoryIds 去重并校验分类存在"""
    ids = [cid for cid in dict.fromkeys(category_ids) if cid]
    existing = Repository(db, Category).exists(ids)
    missing = [cid for cid in ids if cid not in existing]
    if missing:
        raise ValidationFailure(f"Unknown category ids: {', '.join(missing)}")
    return ids


def _get_or_404(repo: Repository, plant_id: str) -> Plant:
    plant = repo.get(plant_id)
    if plant is None:
        raise NotFound("Plant", plant_id)
    return plant


@router.get("")
async def list_plants(request: Request, db: Session = Depends(get_db)):
    """植物列表（分页 / 排序 / 过滤 / 搜索 / 日期范围）"""
    descriptor = parse_query_params(request.query_params, PLANT_QUERY_OPTIONS)
    page = execute_query(Repository(db, Plant), descriptor, PLANT_QUERY_OPTIONS)
    return success_response(
        [PlantResponse.model_validate(item) for item in page.items],
        **page.pagination(),
    )


@router.get("/{plant_id}")
async def get_plant(plant_id: str, db: Session = Depends(get_db)):
    """获取单个植物"""
    plant = _get_or_404(Repository(db, Plant), plant_id)
    return success_response(PlantResponse.model_validate(plant))


@router.post("", status_code=201)
async def create_plant(plant_data: PlantCreate, db: Session = Depends(get_db)):
    """创建植物"""
    plant = Repository(db, Plant).insert_one(
        Plant(
            name=_normalize_name(plant_data.name),
            scientificName=plant_data.scientificName,
            description=plant_data.description,
            status=plant_data.status.value,
            categoryIds=_validate_category_ids(db, plant_data.categoryIds),
        )
    )
    logger.info("创建植物 %s (%s)", plant.id, plant.name)
    return success_response(PlantResponse.model_validate(plant), message="Plant created")


@router.put("/{plant_id}")
async def update_plant(plant_id: str, plant_data: PlantUpdate, db: Session = Depends(get_db)):
    """更新植物（只更新显式传入的字段）"""
    repo = Repository(db, Plant)
    _get_or_404(repo, plant_id)

    payload = plant_data.model_dump(exclude_unset=True)
    if "name" in payload:
        payload["name"] = _normalize_name(payload["name"])
    if "status" in payload:
        if payload["status"] is None:
            raise ValidationFailure("Plant status must not be null")
        payload["status"] = payload["status"].value
    if "categoryIds" in payload:
        payload["categoryIds"] = _validate_category_ids(db, payload["categoryIds"] or [])

    plant = repo.update_one(plant_id, payload)
    if plant is None:
        raise NotFound("Plant", plant_id)
    return success_response(PlantResponse.model_validate(plant), message="Plant updated")


@router.delete("/{plant_id}")
async def delete_plant(plant_id: str, db: Session = Depends(get_db)):
    """删除植物"""
    deleted = Repository(db, Plant).delete_one(plant_id)
    if deleted is None:
        raise NotFound("Plant", plant_id)

    if deleted.image and not delete_image(deleted.image):
        logger.warning("植物 %s 的图片清理失败: %s", plant_id, deleted.image)
    return success_response(message="Plant deleted", deletedData={"id": deleted.id, "name": deleted.name})


@router.post("/{plant_id}/image")
async def upload_plant_image(
    plant_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """上传植物图片（替换旧图片）"""
    repo = Repository(db, Plant)
    plant = _get_or_404(repo, plant_id)

    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationFailure("Only JPG/PNG/GIF/WebP images are supported")
    content = await file.read()
    if len(content) > settings.MAX_IMAGE_SIZE:
        raise ValidationFailure("Image is too large")

    previous = plant.image
    key = save_image(content, UploadPath.PLANT_IMAGES, file.filename or "plant.jpg")
    try:
        plant = repo.update_one(plant_id, {"image": key})
    except AppError:
        delete_image(key)
        raise
    if plant is None:
        delete_image(key)
        raise NotFound("Plant", plant_id)
    if previous and previous != key:
        delete_image(previous)
    return success_response(PlantResponse.model_validate(plant), message="Plant image uploaded")
