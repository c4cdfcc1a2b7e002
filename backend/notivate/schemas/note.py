"""
Notivate Backend - Note Request/Response Schemas
==================================================

What:  API contract for saved study guides and the health endpoint.
How:   Separate from the SQLAlchemy models so the wire shape (camelCase,
       previews, pagination cursors) can change without a migration.
Who:   routes/notes.py, routes/health.py, NoteService.

Pagination strategy:
    Cursor-based, not offset-based: the cursor is the ISO created_at of the
    last item of the previous page, and the next page is
    `WHERE created_at < :cursor`. New notes saved while paging never shift
    or duplicate items.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from notivate.schemas.study_guide import StudyGuide


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    """Body of POST /api/notes: a guide returned by /api/upload, kept by the user."""

    model_config = ConfigDict(populate_by_name=True)

    study_guide: StudyGuide = Field(alias="studyGuide")
    raw_text: Optional[str] = Field(default=None, alias="rawText")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """Full note, returned by GET /api/notes/{id} and POST /api/notes."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    title: str
    subject: str
    summary: str
    study_guide: StudyGuide = Field(alias="studyGuide")
    raw_text: Optional[str] = Field(default=None, alias="rawText")
    created_at: datetime = Field(alias="createdAt")


class NoteListItem(BaseModel):
    """Compact card for list views; no guide body, no raw text."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    title: str
    subject: str
    summary: str
    created_at: datetime = Field(alias="createdAt")


class NoteListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notes: List[NoteListItem]
    next_cursor: Optional[str] = Field(
        default=None,
        alias="nextCursor",
        description="ISO created_at of the last item; null on the last page",
    )
    has_more: bool = Field(alias="hasMore")


class HealthResponse(BaseModel):
    """
    Service and dependency status for GET /health.

    status is "healthy" when every dependency answers, "degraded" when the
    database is up but an AI dependency is not, "unhealthy" without a database.
    """

    status: str
    version: str
    database: str = Field(description="connected | disconnected")
    gemini: str = Field(description="available | unavailable | circuit_open")
    vision: str = Field(description="available | unavailable | circuit_open")
    uptime_seconds: float
