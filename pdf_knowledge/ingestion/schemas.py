"""
Pydantic models for the JSON the vision model returns. Items that fail
validation are dropped one by one so a single malformed table does not cost
the whole page.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class SectionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    content: str = ""
    chapter: Optional[str] = None


class TablePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    headers: List[str]
    rows: List[List[str]]
    summary: str = ""

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_as_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_cell_text(v) for v in value]
        return value

    @field_validator("rows", mode="before")
    @classmethod
    def _cells_as_text(cls, value: Any) -> Any:
        # models often emit numeric cells; keep them, as text
        if isinstance(value, list):
            return [[_cell_text(v) for v in row] if isinstance(row, list) else row for row in value]
        return value


class ImagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str
    type: str = "image"


class MetadataPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    summary: str
    brief_summary: str = Field(alias="briefSummary")
    author: Optional[str] = None
    date: Optional[str] = None
    category: str
    key_points: List[str] = Field(alias="keyPoints")


class SearchHitPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    doc_id: str = Field(alias="docId")
    type: str = "section"
    title: str
    snippet: str
    score: float
    page_number: Optional[int] = Field(default=None, alias="pageNumber")


def _cell_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


def parse_items(model: Type[M], items: Any) -> List[M]:
    if not isinstance(items, list):
        return []
    parsed: List[M] = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as exc:
            logger.debug("Dropping malformed %s: %s", model.__name__, exc.errors()[:1])
    return parsed


def clean_strings(values: Any) -> List[str]:
    if not isinstance(values, Iterable) or isinstance(values, (str, bytes)):
        return []
    return [v for v in values if isinstance(v, str) and v.strip()]
