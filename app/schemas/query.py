from enum import Enum
from typing import Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

RESERVED_KEYS = frozenset({"page", "limit", "search", "sort", "order"})
MAX_LIMIT = 100

Order = Literal["asc", "desc"]
FilterValue = Union[str, List[str]]
Row = TypeVar("Row")


class Operator(str, Enum):
    eq = "eq"
    like = "like"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"


class ParsedQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=MAX_LIMIT)
    search: Optional[str] = None
    sort: Optional[str] = None
    order: Order = "asc"
    filters: Dict[str, FilterValue] = {}

    @field_validator("filters")
    @classmethod
    def _no_reserved_filters(cls, value: Dict[str, FilterValue]) -> Dict[str, FilterValue]:
        reserved = RESERVED_KEYS.intersection(value)
        if reserved:
            raise ValueError(f"reserved keys in filters: {sorted(reserved)}")
        return value


class PaginatedResult(BaseModel, Generic[Row]):
    model_config = ConfigDict(populate_by_name=True)

    data: List[Row]
    page: int
    limit: int
    total: int = Field(ge=0)
    total_pages: int = Field(alias="totalPages", ge=1)

