"""
通用列表查询构建

把 HTTP 查询字符串转换为经过校验的查询描述（分页 / 排序 / 过滤 / 搜索 / 日期范围），
再把描述转换为 SQLAlchemy 条件并执行：

    descriptor = parse_query_params(request.query_params, CATEGORY_QUERY_OPTIONS)
    page = execute_query(Repository(db, Category), descriptor, CATEGORY_QUERY_OPTIONS)

约定：
- page / limit 不是整数、或小于 1 时抛出 InvalidQuery；limit 超过 max_limit 时截断
- sort 为 "-field"（降序）或 "field" / "+field"（升序）；未传或字段不在白名单时按 default_sort 降序
- 不在 allowed_filter_fields 中的参数直接忽略，永不报错
- 过滤值为字符串 "null" 时匹配空值（例如 parentId=null 列出根分类）
- dateFrom / dateTo 为 ISO-8601 日期或时间，闭区间；仅日期的 dateTo 包含当天全天
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

from sqlalchemy import or_

from app.core.config import settings
from app.core.errors import InvalidQuery
from app.services.repository import Repository

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESERVED_PARAMS = frozenset({"page", "limit", "sort", "search", "dateFrom", "dateTo"})
NULL_FILTER_VALUE = "null"
_INT_RE = re.compile(r"[+-]?[0-9]+")
# OFFSET 需能放进 64 位有符号整数
MAX_OFFSET = 2 ** 63 - 1


@dataclass(frozen=True)
class QueryOptions:
    """单个实体类型的列表查询配置"""
    model: Any
    default_limit: int = settings.DEFAULT_PAGE_LIMIT
    max_limit: int = settings.MAX_PAGE_LIMIT
    default_sort: str = "createdAt"
    allowed_sort_fields: tuple[str, ...] = ("createdAt",)
    allowed_filter_fields: tuple[str, ...] = ()
    search_fields: tuple[str, ...] = ()
    date_field: Optional[str] = "createdAt"
    # 非简单等值匹配的过滤字段：字段名 -> (值 -> 条件表达式)
    custom_filters: Mapping[str, Callable[[Optional[str]], Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class SortClause:
    field: str
    descending: bool = True


@dataclass(frozen=True)
class FilterClause:
    field: str
    value: Optional[str]


@dataclass(frozen=True)
class SearchClause:
    term: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class DateRangeClause:
    field: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class QueryDescriptor:
    page: int
    limit: int
    sort: SortClause
    filters: tuple[FilterClause, ...] = ()
    search: Optional[SearchClause] = None
    date_range: Optional[DateRangeClause] = None

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class PageResult(Generic[T]):
    items: list[T]
    page: int
    limit: int
    total: int

    @property
    def totalPages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def hasNext(self) -> bool:
        return self.page < self.totalPages

    @property
    def hasPrev(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.totalPages,
            "hasNext": self.hasNext,
            "hasPrev": self.hasPrev,
        }


def _parse_positive_int(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip()
    if not _INT_RE.fullmatch(value):
        raise InvalidQuery(name, raw, "must be an integer")
    number = int(value)
    if number < 1:
        raise InvalidQuery(name, raw, "must be >= 1")
    return number


def _parse_sort(raw: Optional[str], options: QueryOptions) -> SortClause:
    default = SortClause(options.default_sort, descending=True)
    if raw is None or not raw.strip():
        return default

    value = raw.strip()
    descending = False
    if value[0] in "+-":
        descending = value[0] == "-"
        value = value[1:].strip()

    if value not in options.allowed_sort_fields:
        logger.debug("忽略不允许的排序字段: %s", raw)
        return default
    return SortClause(value, descending=descending)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_date_bound(name: str, raw: str, end_of_day: bool) -> datetime:
    value = raw.strip()
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        # 兼容 "Z" 结尾的 UTC 写法
        if value.endswith(("Z", "z")):
            value = value[:-1] + "+00:00"
        return _to_naive_utc(datetime.fromisoformat(value))
    except ValueError as exc:
        raise InvalidQuery(name, raw, "must be an ISO-8601 date or datetime") from exc


def _parse_date_range(params: Mapping[str, str], options: QueryOptions) -> Optional[DateRangeClause]:
    if not options.date_field:
        return None

    raw_from = (params.get("dateFrom") or "").strip()
    raw_to = (params.get("dateTo") or "").strip()
    if not raw_from and not raw_to:
        return None

    start = _parse_date_bound("dateFrom", raw_from, end_of_day=False) if raw_from else None
    end = _parse_date_bound("dateTo", raw_to, end_of_day=True) if raw_to else None
    if start and end and start > end:
        raise InvalidQuery("dateFrom", raw_from, "must not be later than dateTo")
    return DateRangeClause(options.date_field, start=start, end=end)


def parse_query_params(params: Mapping[str, str], options: QueryOptions) -> QueryDescriptor:
    """把查询参数解析为 QueryDescriptor"""
    page = _parse_positive_int("page", params.get("page"), 1)
    limit = min(_parse_positive_int("limit", params.get("limit"), options.default_limit), options.max_limit)
    if (page - 1) * limit > MAX_OFFSET:
        raise InvalidQuery("page", params.get("page"), "is too large")
    sort = _parse_sort(params.get("sort"), options)

    filters: list[FilterClause] = []
    for key in params.keys():
        if key in RESERVED_PARAMS or key not in options.allowed_filter_fields:
            continue
        raw = params.get(key)
        if raw is None or not raw.strip():
            continue
        value = raw.strip()
        filters.append(FilterClause(key, None if value == NULL_FILTER_VALUE else value))

    search = None
    term = (params.get("search") or "").strip()
    if term and options.search_fields:
        search = SearchClause(term, tuple(options.search_fields))

    return QueryDescriptor(
        page=page,
        limit=limit,
        sort=sort,
        filters=tuple(filters),
        search=search,
        date_range=_parse_date_range(params, options),
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_criteria(descriptor: QueryDescriptor, options: QueryOptions) -> list[Any]:
    """filters AND search(OR) AND date_range -> SQLAlchemy 条件列表"""
    model = options.model
    criteria: list[Any] = []

    for clause in descriptor.filters:
        builder = options.custom_filters.get(clause.field)
        if builder is not None:
            criteria.append(builder(clause.value))
            continue
        column = getattr(model, clause.field)
        criteria.append(column.is_(None) if clause.value is None else column == clause.value)

    if descriptor.search:
        pattern = f"%{_escape_like(descriptor.search.term)}%"
        criteria.append(
            or_(*[getattr(model, name).ilike(pattern, escape="\\") for name in descriptor.search.fields])
        )

    if descriptor.date_range:
        column = getattr(model, descriptor.date_range.field)
        if descriptor.date_range.start is not None:
            criteria.append(column >= descriptor.date_range.start)
        if descriptor.date_range.end is not None:
            criteria.append(column <= descriptor.date_range.end)

    return criteria


def build_order_by(descriptor: QueryDescriptor, options: QueryOptions) -> list[Any]:
    model = options.model
    column = getattr(model, descriptor.sort.field)
    primary = column.desc() if descriptor.sort.descending else column.asc()
    # id 作为次级排序，保证分页结果稳定
    return [primary, model.id.asc()]


def execute_query(repository: Repository, descriptor: QueryDescriptor, options: QueryOptions) -> PageResult:
    """执行列表查询：同一组条件分别用于取当前页与统计总数"""
    criteria = build_criteria(descriptor, options)
    items = repository.find(
        criteria,
        order_by=build_order_by(descriptor, options),
        skip=descriptor.skip,
        limit=descriptor.limit,
    )
    total = repository.count(criteria)
    return PageResult(items=items, page=descriptor.page, limit=descriptor.limit, total=total)
