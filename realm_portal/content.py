"""
Content Service
===============
Release notes, blog posts and wiki pages.

The admin panel authors content and pushes it here through the signed
``/api/public/content`` API; website visitors read only published items.
Payloads use the admin panel's camelCase field names.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError

from .models import Content, ContentType
from .store import ContentStore

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
REQUIRED_FIELDS = ("type", "slug", "title", "body")

MISSING_FIELDS = "Missing required fields: type, slug, title, body"
INVALID_TYPE = "Invalid content type. Must be: release, blog, or wiki"
INVALID_BODY = "Invalid request body"
NOT_FOUND = "Content not found"
SLUG_TAKEN = "A content item with this slug already exists"
LIST_FAILED = "Failed to list content"
GET_FAILED = "Failed to get content"
CREATE_FAILED = "Failed to create content"
UPDATE_FAILED = "Failed to update content"
DELETE_FAILED = "Failed to delete content"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContentInput(CamelModel):
    """Writable fields. Absent fields are left untouched on update."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: Optional[ContentType] = None
    slug: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    body: Any = None
    featured_image: Optional[str] = None
    published: Optional[bool] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_columns(self) -> Dict[str, Any]:
        values = self.model_dump(exclude_unset=True)
        if "type" in values and values["type"] is not None:
            values["type"] = values["type"].value
        if "metadata" in values:
            values["extra"] = values.pop("metadata")
        return values


class ContentSummary(CamelModel):
    id: str
    type: str
    slug: str
    title: str
    summary: Optional[str] = None
    featured_image: Optional[str] = None
    published: bool
    published_at: Optional[datetime] = None
    author_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, content: Content) -> "ContentSummary":
        return cls(**_summary_fields(content))


class ContentDetail(ContentSummary):
    body: Any = None
    author_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_model(cls, content: Content) -> "ContentDetail":
        return cls(
            **_summary_fields(content),
            body=content.body,
            author_id=content.author_id,
            metadata=content.extra,
        )


def _summary_fields(content: Content) -> Dict[str, Any]:
    return dict(
        id=content.id,
        type=content.type,
        slug=content.slug,
        title=content.title,
        summary=content.summary,
        featured_image=content.featured_image,
        published=content.published,
        published_at=content.published_at,
        author_name=content.author_name,
        created_at=content.created_at,
        updated_at=content.updated_at,
    )


class ContentListResult(CamelModel):
    success: bool
    error: Optional[str] = None
    items: List[ContentSummary] = []
    total: int = 0


class ContentResult(CamelModel):
    success: bool
    error: Optional[str] = None
    content: Optional[ContentDetail] = None

    @classmethod
    def fail(cls, error: str) -> "ContentResult":
        return cls(success=False, error=error)


def _page(limit: Optional[int], offset: Optional[int]) -> tuple:
    limit = DEFAULT_LIMIT if limit is None else max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset or 0)
    return limit, offset


def parse_content_type(value: Optional[str]) -> Optional[ContentType]:
    """Raises ValueError for anything other than release, blog or wiki."""
    return ContentType(value) if value else None


class ContentService:
    """Content management for the admin panel and read access for visitors."""

    def __init__(self, store: ContentStore):
        self.store = store

    async def list_content(
        self,
        content_type: Optional[str] = None,
        published: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ContentListResult:
        """All content including drafts. Admin panel only."""
        try:
            kind = parse_content_type(content_type)
        except ValueError:
            return ContentListResult(success=False, error=INVALID_TYPE)
        limit, offset = _page(limit, offset)
        try:
            items, total = await self.store.list(
                [kind.value] if kind else None, published=published, limit=limit, offset=offset
            )
        except Exception:
            logger.exception("list_content_failed")
            return ContentListResult(success=False, error=LIST_FAILED)
        return ContentListResult(success=True, items=[ContentSummary.from_model(c) for c in items], total=total)

    async def get_content(self, id_or_slug: str) -> ContentResult:
        try:
            content = await self.store.get(id_or_slug)
        except Exception:
            logger.exception("get_content_failed", content=id_or_slug)
            return ContentResult.fail(GET_FAILED)
        if content is None:
            return ContentResult.fail(NOT_FOUND)
        return ContentResult(success=True, content=ContentDetail.from_model(content))

    async def create_content(self, payload: Any) -> ContentResult:
        if not isinstance(payload, dict):
            return ContentResult.fail(INVALID_BODY)
        if any(not payload.get(f) for f in REQUIRED_FIELDS if f != "body") or "body" not in payload:
            return ContentResult.fail(MISSING_FIELDS)

        parsed = _parse_input(payload)
        if isinstance(parsed, str):
            return ContentResult.fail(parsed)

        columns = parsed.to_columns()
        if columns.get("published"):
            columns["published_at"] = datetime.now(timezone.utc)

        try:
            content = await self.store.create(columns)
        except IntegrityError:
            return ContentResult.fail(SLUG_TAKEN)
        except Exception:
            logger.exception("create_content_failed", slug=columns.get("slug"))
            return ContentResult.fail(CREATE_FAILED)

        logger.info("content_created", content_id=content.id, type=content.type, slug=content.slug)
        return ContentResult(success=True, content=ContentDetail.from_model(content))

    async def update_content(self, content_id: str, payload: Any) -> ContentResult:
        if not isinstance(payload, dict):
            return ContentResult.fail(INVALID_BODY)

        parsed = _parse_input(payload)
        if isinstance(parsed, str):
            return ContentResult.fail(parsed)

        columns = {k: v for k, v in parsed.to_columns().items() if v is not None}
        try:
            content = await self.store.update(content_id, columns)
        except IntegrityError:
            return ContentResult.fail(SLUG_TAKEN)
        except Exception:
            logger.exception("update_content_failed", content_id=content_id)
            return ContentResult.fail(UPDATE_FAILED)

        if content is None:
            return ContentResult.fail(NOT_FOUND)
        logger.info("content_updated", content_id=content.id, fields=sorted(columns))
        return ContentResult(success=True, content=ContentDetail.from_model(content))

    async def delete_content(self, content_id: str) -> ContentResult:
        try:
            deleted = await self.store.delete(content_id)
        except Exception:
            logger.exception("delete_content_failed", content_id=content_id)
            return ContentResult.fail(DELETE_FAILED)
        if not deleted:
            return ContentResult.fail(NOT_FOUND)
        logger.info("content_deleted", content_id=content_id)
        return ContentResult(success=True)

    async def list_published(
        self,
        content_type: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> ContentListResult:
        """Published items, newest first."""
        try:
            kind = parse_content_type(content_type)
        except ValueError:
            return ContentListResult(success=False, error=INVALID_TYPE)
        limit, offset = _page(limit, offset)
        try:
            items, total = await self.store.list(
                [kind.value] if kind else None, published=True, limit=limit, offset=offset
            )
        except Exception:
            logger.exception("list_published_content_failed")
            return ContentListResult(success=False, error=LIST_FAILED)
        return ContentListResult(success=True, items=[ContentSummary.from_model(c) for c in items], total=total)

    async def get_published(self, slug: str) -> ContentResult:
        """Drafts are reported as not found."""
        try:
            content = await self.store.get_by_slug(slug)
        except Exception:
            logger.exception("get_published_content_failed", slug=slug)
            return ContentResult.fail(GET_FAILED)
        if content is None or not content.published:
            return ContentResult.fail(NOT_FOUND)
        return ContentResult(success=True, content=ContentDetail.from_model(content))


def _parse_input(payload: Dict[str, Any]):
    """Return a ContentInput, or the error message to report."""
    try:
        parse_content_type(payload.get("type"))
    except ValueError:
        return INVALID_TYPE
    try:
        return ContentInput.model_validate(payload)
    except ValidationError as e:
        logger.info("content_payload_rejected", errors=e.error_count())
        return INVALID_BODY
