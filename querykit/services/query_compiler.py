"""Compile request query parameters into find-many / count descriptors.

Every stage takes the ``QueryState`` accumulator, updates it and hands it
back; the state is owned by exactly one compilation. ``QueryCompiler`` wraps
the stages in a chainable facade and ``compile_query`` runs all of them in
the usual order.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from querykit.core.config import Settings, settings as default_settings
from querykit.schemas.query import (
    LOGICAL_KEYS,
    RESERVED_PARAMS,
    SORT_DIRECTIONS,
    Dir,
    PaginationMeta,
    PathPolicy,
    QueryConfig,
)
from querykit.services.filter_values import coerce_value, compile_range, parse_number
from querykit.services.relation_paths import assign_path, merge_conditions, nest_path, resolve_path, split_path

_LOG = logging.getLogger("querykit.compiler")

SEARCH_MODE = "insensitive"


@dataclass
class CompiledQuery:
    conditions: dict[str, Any]
    order_by: dict[str, Any]
    skip: int
    take: int
    select: dict[str, bool] | None = None
    include: dict[str, Any] | None = None

    def __post_init__(self):
        if self.select is not None and self.include is not None:
            raise ValueError("select and include are mutually exclusive")

    def to_find_many_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {
            "where": self.conditions,
            "orderBy": self.order_by,
            "skip": self.skip,
            "take": self.take,
        }
        if self.select is not None:
            args["select"] = self.select
        elif self.include is not None:
            args["include"] = self.include
        return args


@dataclass
class CompiledCountQuery:
    conditions: dict[str, Any]

    def to_count_args(self) -> dict[str, Any]:
        return {"where": self.conditions}


@dataclass
class CompiledQueries:
    query: CompiledQuery
    count: CompiledCountQuery
    page: int = 1
    limit: int = 10

    def meta(self, total: int) -> PaginationMeta:
        return build_meta(self.page, self.limit, total)


@dataclass
class CompileOptions:
    default_limit: int
    max_limit: int | None
    sort_by: str
    sort_order: Dir
    path_policy: PathPolicy


@dataclass
class QueryState:
    conditions: dict[str, Any] = field(default_factory=dict)
    order_by: dict[str, Any] = field(default_factory=dict)
    select: dict[str, bool] | None = None
    include: dict[str, Any] | None = None
    page: int = 1
    limit: int = 10
    skip: int = 0


def resolve_options(config: QueryConfig, app_settings: Settings | None = None) -> CompileOptions:
    app_settings = app_settings or default_settings
    sort_order = str(app_settings.QUERY_DEFAULT_SORT_ORDER or "").strip().lower()
    if sort_order not in SORT_DIRECTIONS:
        sort_order = "desc"
    policy = config.deep_path_policy or str(app_settings.QUERY_DEEP_PATH_POLICY or "").strip().lower()
    if policy not in {"ignore", "reject"}:
        policy = "ignore"
    return CompileOptions(
        default_limit=max(1, int(app_settings.QUERY_DEFAULT_LIMIT)),
        max_limit=config.max_limit or app_settings.max_limit,
        sort_by=str(app_settings.QUERY_DEFAULT_SORT_BY or "").strip() or "createdAt",
        sort_order=sort_order,
        path_policy=policy,
    )


def validate_config_paths(config: QueryConfig, app_settings: Settings | None = None) -> None:
    """Raise ``FieldPathError`` for configured paths the ``reject`` policy refuses.

    Configured paths are a developer concern; call this once when an endpoint
    is wired so request-time errors only ever come from request input.
    """
    policy = resolve_options(config, app_settings).path_policy
    for path in (*config.searchable_fields, *config.filterable_fields, *config.sortable_fields):
        resolve_path(path, policy)


def _scalar(raw: Any) -> Any:
    if isinstance(raw, (list, tuple)):
        raw = next((item for item in reversed(raw) if item not in (None, "")), None)
    if raw is None or isinstance(raw, Mapping):
        return None
    return raw


def _text(raw: Any) -> str | None:
    value = _scalar(raw)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _positive_int(raw: Any) -> int | None:
    number = parse_number(_scalar(raw))
    if isinstance(number, float):
        number = int(number) if number.is_integer() else None
    if number is None or number < 1:
        return None
    return number


def _has_logical_segment(segments: tuple[str, ...]) -> bool:
    return any(segment in LOGICAL_KEYS for segment in segments)


def apply_search(state: QueryState, params: Mapping[str, Any], config: QueryConfig, options: CompileOptions) -> QueryState:
    term = _scalar(params.get("searchTerm"))
    if term is None or not str(term).strip() or not config.searchable_fields:
        return state
    term = str(term)
    or_conditions: list[dict[str, Any]] = []
    for path in config.searchable_fields:
        segments = resolve_path(path, options.path_policy)
        if segments is None:
            continue
        or_conditions.append(nest_path(segments, {"contains": term, "mode": SEARCH_MODE}))
    if or_conditions:
        state.conditions["OR"] = or_conditions
    return state


def apply_filters(state: QueryState, params: Mapping[str, Any], config: QueryConfig, options: CompileOptions) -> QueryState:
    allowed = set(config.filterable_fields)
    for key, raw in params.items():
        if key in RESERVED_PARAMS or not str(key or "").strip():
            continue
        if raw is None or (isinstance(raw, str) and raw == ""):
            continue
        if allowed and key not in allowed:
            _LOG.debug("dropping filter %r: not a filterable field", key)
            continue
        segments = resolve_path(key, options.path_policy)
        if segments is None:
            continue
        if _has_logical_segment(segments):
            _LOG.debug("dropping filter %r: logical operators are not filterable", key)
            continue
        value = compile_range(raw) if isinstance(raw, Mapping) else coerce_value(raw)
        assign_path(state.conditions, segments, value.to_native())
    return state


def apply_where(state: QueryState, conditions: Mapping[str, Any] | None) -> QueryState:
    if conditions:
        merge_conditions(state.conditions, dict(conditions))
    return state


def apply_pagination(state: QueryState, params: Mapping[str, Any], options: CompileOptions) -> QueryState:
    page = _positive_int(params.get("page")) or 1
    limit = _positive_int(params.get("limit")) or options.default_limit
    if options.max_limit is not None and limit > options.max_limit:
        _LOG.debug("clamping limit %s to %s", limit, options.max_limit)
        limit = options.max_limit
    state.page = page
    state.limit = limit
    state.skip = (page - 1) * limit
    return state


def apply_sort(state: QueryState, params: Mapping[str, Any], config: QueryConfig, options: CompileOptions) -> QueryState:
    sort_by = _text(params.get("sortBy")) or options.sort_by
    direction = (_text(params.get("sortOrder")) or "").lower()
    if direction not in SORT_DIRECTIONS:
        direction = options.sort_order
    if config.sortable_fields and sort_by != options.sort_by and sort_by not in config.sortable_fields:
        _LOG.debug("sort field %r is not sortable, using %r", sort_by, options.sort_by)
        sort_by = options.sort_by
    segments = resolve_path(sort_by, options.path_policy)
    if segments is None or _has_logical_segment(segments):
        segments = split_path(options.sort_by) or (options.sort_by,)
    state.order_by = nest_path(segments, direction)
    return state


def apply_include(state: QueryState, relations: Mapping[str, Any] | None) -> QueryState:
    if relations is None or state.select is not None:
        return state
    state.include = copy.deepcopy(dict(relations))
    return state


def apply_projection(state: QueryState, params: Mapping[str, Any]) -> QueryState:
    raw = params.get("fields")
    if raw is None or isinstance(raw, Mapping):
        return state
    chunks = raw if isinstance(raw, (list, tuple)) else [raw]
    names = [name.strip() for chunk in chunks for name in str(chunk).split(",")]
    select = {name: True for name in names if name}
    if not select:
        return state
    state.select = select
    state.include = None
    return state


def build_meta(page: int, limit: int, total: int) -> PaginationMeta:
    total = max(0, int(total))
    return PaginationMeta(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


class QueryCompiler:
    def __init__(
        self,
        params: Mapping[str, Any],
        config: QueryConfig | None = None,
        *,
        app_settings: Settings | None = None,
    ):
        self.params = dict(params or {})
        self.config = config or QueryConfig()
        self.options = resolve_options(self.config, app_settings)
        self._state = QueryState(limit=self.options.default_limit)

    def search(self) -> "QueryCompiler":
        self._state = apply_search(self._state, self.params, self.config, self.options)
        return self

    def filter(self) -> "QueryCompiler":
        self._state = apply_filters(self._state, self.params, self.config, self.options)
        return self

    def where(self, conditions: Mapping[str, Any]) -> "QueryCompiler":
        self._state = apply_where(self._state, conditions)
        return self

    def include(self, relations: Mapping[str, Any]) -> "QueryCompiler":
        self._state = apply_include(self._state, relations)
        return self

    def paginate(self) -> "QueryCompiler":
        self._state = apply_pagination(self._state, self.params, self.options)
        return self

    def sort(self) -> "QueryCompiler":
        self._state = apply_sort(self._state, self.params, self.config, self.options)
        return self

    def fields(self) -> "QueryCompiler":
        self._state = apply_projection(self._state, self.params)
        return self

    def build(self) -> CompiledQuery:
        state = self._state
        return CompiledQuery(
            conditions=copy.deepcopy(state.conditions),
            order_by=copy.deepcopy(state.order_by),
            skip=state.skip,
            take=state.limit,
            select=dict(state.select) if state.select is not None else None,
            include=copy.deepcopy(state.include) if state.include is not None else None,
        )

    def build_count(self) -> CompiledCountQuery:
        return CompiledCountQuery(conditions=copy.deepcopy(self._state.conditions))

    def compile(self) -> CompiledQueries:
        return CompiledQueries(
            query=self.build(),
            count=self.build_count(),
            page=self._state.page,
            limit=self._state.limit,
        )

    def meta(self, total: int) -> PaginationMeta:
        return build_meta(self._state.page, self._state.limit, total)


def compile_query(
    params: Mapping[str, Any],
    config: QueryConfig | None = None,
    *,
    include: Mapping[str, Any] | None = None,
    where: Mapping[str, Any] | None = None,
    app_settings: Settings | None = None,
) -> CompiledQueries:
    compiler = QueryCompiler(params, config, app_settings=app_settings)
    compiler.search().filter()
    if where:
        compiler.where(where)
    if include is not None:
        compiler.include(include)
    return compiler.paginate().sort().fields().compile()
