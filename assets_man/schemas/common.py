from typing import Literal

from fastapi import Query
from pydantic import BaseModel, Field

from ..core.responses import LIMIT_DEFAULT, LIMIT_MAX, PAGE_DEFAULT

ItemType = Literal["asset", "folder"]

RECENT_LIMIT_MAX = 50


class PageQuery(BaseModel):
    page: int = Field(default=PAGE_DEFAULT, ge=1)
    limit: int = Field(default=LIMIT_DEFAULT, ge=1, le=LIMIT_MAX)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(PAGE_DEFAULT, ge=1),
    limit: int = Query(LIMIT_DEFAULT, ge=1, le=LIMIT_MAX),
) -> PageQuery:
    return PageQuery(page=page, limit=limit)


def recent_page_params(
    page: int = Query(PAGE_DEFAULT, ge=1),
    limit: int = Query(LIMIT_DEFAULT, ge=1, le=RECENT_LIMIT_MAX),
) -> PageQuery:
    return PageQuery(page=page, limit=limit)
