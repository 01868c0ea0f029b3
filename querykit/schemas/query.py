from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Dir = Literal["asc", "desc"]
PathPolicy = Literal["ignore", "reject"]

SORT_DIRECTIONS = ("asc", "desc")
MAX_PATH_DEPTH = 3

RESERVED_PARAMS = frozenset(
    {
        "searchTerm",
        "page",
        "limit",
        "sortBy",
        "sortOrder",
        "fields",
        "includes",
    }
)

# Keys the data-access layer treats as boolean combinators, never as fields.
LOGICAL_KEYS = frozenset({"AND", "OR", "NOT"})


class RangeOperator(str, Enum):
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    EQUALS = "equals"
    NOT = "not"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IN = "in"
    NOT_IN = "notIn"


LIST_OPERATORS = frozenset({RangeOperator.IN, RangeOperator.NOT_IN})


class QueryConfig(BaseModel):
    searchable_fields: List[str] = Field(default_factory=list)
    filterable_fields: List[str] = Field(default_factory=list)
    sortable_fields: List[str] = Field(default_factory=list)
    max_limit: Optional[int] = Field(default=None, ge=1)
    deep_path_policy: Optional[PathPolicy] = None

    @field_validator("searchable_fields", "filterable_fields", "sortable_fields")
    @classmethod
    def _drop_blank_paths(cls, value: List[str]) -> List[str]:
        return [str(item).strip() for item in value if str(item or "").strip()]


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
