import logging
import os
import tempfile
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

_BACKEND_ROOT = Path(__file__).resolve().parents[2]

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


class UploadPath(str, Enum):
    """上传目录枚举（相对 UPLOAD_DIR）"""
    CATEGORY_IMAGES = "categories"
    PLANT_IMAGES = "plants"


def get_upload_root() -> Path:
    raw = (settings.UPLOAD_DIR or "uploads").strip()
    base = Path(raw)
    if not base.is_absolute():
        base = _BACKEND_ROOT / base
    return base


def _safe_rel_key(key: str) -> str:
    value = str(key or "").strip().lstrip("/")
    if not value:
        raise ValueError("empty key")

    path = Path(value)
    if path.is_absolute():
        raise ValueError("absolute key not allowed")
    if any(part in {".", ".."} for part in path.parts):
        raise ValueError("invalid key")

    # 统一用 / 作为分隔，避免平台差异
    return "/".join(path.parts)


def get_local_path_for_key(key: str) -> Optional[Path]:
    try:
        safe_key = _safe_rel_key(key)
    except ValueError:
        return None
    return get_upload_root() / safe_key


def build_image_key(folder: UploadPath, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    unique_name = f"{uuid.uuid4().hex}_{int(datetime.now().timestamp())}"
    if ext:
        unique_name = f"{unique_name}.{ext}"
    return f"{folder.value}/{unique_name}"


def save_image(file_bytes: bytes, folder: UploadPath, filename: str) -> str:
    """写入上传目录，返回存储 key（写入记录的 image 字段）"""
    key = build_image_key(folder, filename)
    local_path = get_local_path_for_key(key)
    if local_path is None:
        raise ValueError("invalid upload key")

    local_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            delete=False,
            dir=str(local_path.parent),
            prefix=".tmp_upload_",
        ) as tmp_file:
            tmp_file.write(file_bytes)
            tmp_name = tmp_file.name
        os.replace(tmp_name, str(local_path))
    except OSError:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise
    logger.info("图片已保存: %s (%d bytes)", key, len(file_bytes))
    return key


def delete_image(key: Optional[str]) -> bool:
    """删除已存储的图片（best-effort，调用方决定是否关心结果）"""
    if not key:
        return False
    local_path = get_local_path_for_key(key)
    if local_path is None:
        return False
    try:
        if local_path.exists():
            local_path.unlink()
        return True
    except OSError as exc:
        logger.warning("删除图片失败 key=%s err=%s", key, exc)
        return False


def build_image_url(key: Optional[str]) -> Optional[str]:
    """imageUrl = BASE_URL + STATIC_PATH + "/" + image"""
    if not key:
        return None
    base = settings.BASE_URL.rstrip("/")
    return f"{base}{settings.STATIC_PATH}/{key.lstrip('/')}"
