"""
存储访问层

路由与服务只通过 Repository 读写数据库：
- criteria 为 SQLAlchemy 条件表达式列表（AND 组合）
- 写操作各自提交（一次调用 = 一次往返），失败时回滚
- IntegrityError -> ValidationFailure，其余 SQLAlchemyError -> StorageFailure
"""
import logging
from contextlib import contextmanager
from typing import Any, Generic, Iterable, Optional, Sequence, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageFailure, ValidationFailure

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


@contextmanager
def storage_errors(db: Session, action: str):
    """把数据库异常转换为服务层异常（不向调用方暴露底层错误文本）"""
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        logger.warning("%s 违反约束: %s", action, exc.orig)
        raise ValidationFailure("Record violates a uniqueness or integrity constraint") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s 数据库异常: %s", action, exc)
        raise StorageFailure() from exc


class Repository(Generic[ModelT]):
    """单个实体类型的存储访问句柄"""

    def __init__(self, db: Session, model: type[ModelT]):
        self.db = db
        self.model = model

    @property
    def entity(self) -> str:
        return self.model.__name__

    def find(
        self,
        criteria: Sequence[Any] = (),
        order_by: Sequence[Any] = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        with storage_errors(self.db, f"{self.entity}.find"):
            query = self.db.query(self.model).filter(*criteria).order_by(*order_by)
            if skip:
                query = query.offset(skip)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def count(self, criteria: Sequence[Any] = ()) -> int:
        with storage_errors(self.db, f"{self.entity}.count"):
            return self.db.query(self.model).filter(*criteria).count()

    def find_all(self, order_by: Sequence[Any] = ()) -> list[ModelT]:
        return self.find(order_by=order_by)

    def get(self, identity: str) -> Optional[ModelT]:
        with storage_errors(self.db, f"{self.entity}.get"):
            return self.db.get(self.model, identity)

    def exists(self, identities: Iterable[str]) -> set[str]:
        """返回 identities 中实际存在的 id 集合"""
        ids = list(dict.fromkeys(identities))
        if not ids:
            return set()
        with storage_errors(self.db, f"{self.entity}.exists"):
            rows = self.db.query(self.model.id).filter(self.model.id.in_(ids)).all()
        return {row_id for (row_id,) in rows}

    def insert_one(self, record: ModelT) -> ModelT:
        with storage_errors(self.db, f"{self.entity}.insert_one"):
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record

    def update_one(self, identity: str, values: dict[str, Any]) -> Optional[ModelT]:
        with storage_errors(self.db, f"{self.entity}.update_one"):
            record = self.db.get(self.model, identity)
            if record is None:
                return None
            for field, value in values.items():
                setattr(record, field, value)
            self.db.commit()
            self.db.refresh(record)
            return record

    def update_many(self, criteria: Sequence[Any], values: dict[str, Any]) -> int:
        """批量更新，返回被修改的记录数"""
        with storage_errors(self.db, f"{self.entity}.update_many"):
            modified = (
                self.db.query(self.model)
                .filter(*criteria)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
            return int(modified or 0)

    def delete_one(self, identity: str) -> Optional[ModelT]:
        """删除一条记录，返回被删除的记录；不存在时返回 None"""
        with storage_errors(self.db, f"{self.entity}.delete_one"):
            record = self.db.get(self.model, identity)
            if record is None:
                return None
            self.db.delete(record)
            self.db.commit()
            return record
