from typing import Any, Mapping

from fastapi import Depends, HTTPException, Request

from querykit.schemas.query import QueryConfig
from querykit.services.query_compiler import CompiledQueries, compile_query, validate_config_paths
from querykit.services.query_params import parse_query_items
from querykit.services.relation_paths import FieldPathError


def get_query_params(request: Request) -> dict[str, Any]:
    return parse_query_items(request.query_params.multi_items())


def compiled_query(
    config: QueryConfig,
    *,
    include: Mapping[str, Any] | None = None,
    where: Mapping[str, Any] | None = None,
):
    # Config paths are checked once, at wiring time.
    validate_config_paths(config)

    def _inner(params: dict = Depends(get_query_params)) -> CompiledQueries:
        try:
            return compile_query(params, config, include=include, where=where)
        except FieldPathError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _inner
