"""
Notivate Backend - Note Service
=================================

What:  User-scoped CRUD for saved study guides.
How:   Works on the request-scoped AsyncSession handed in by the route
       (commit/rollback is owned by the session dependency). Every query
       filters on the caller's user_id; another user's note is reported as
       not found, never as forbidden.
Who:   routes/notes.py.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notivate.exceptions import DatabaseError, NotFoundError, ValidationError
from notivate.models.note import Note
from notivate.schemas.note import NoteCreate, NoteListItem, NoteListResponse, NoteResponse

logger = logging.getLogger(__name__)


def _to_response(note: Note) -> NoteResponse:
    return NoteResponse(
        id=note.id,
        title=note.title,
        subject=note.subject,
        summary=note.summary,
        study_guide=note.study_guide,
        raw_text=note.raw_text,
        created_at=note.created_at,
    )


class NoteService:
    """
    Operations:
        - create_note(): persist a study guide for the caller
        - get_note():    fetch one of the caller's notes
        - list_notes():  the caller's notes, newest first, cursor-paginated
        - delete_note(): remove one of the caller's notes
    """

    async def create_note(self, db: AsyncSession, user_id: UUID, payload: NoteCreate) -> NoteResponse:
        guide = payload.study_guide
        note = Note(
            user_id=user_id,
            title=guide.title,
            subject=guide.subject,
            summary=guide.summary,
            study_guide=guide.to_wire(),
            raw_text=payload.raw_text,
        )
        try:
            db.add(note)
            await db.flush()
            await db.refresh(note)
        except SQLAlchemyError as e:
            logger.error("Failed to save note for user %s: %s", user_id, e, exc_info=True)
            raise DatabaseError(
                message="Could not save the study guide. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Note %s saved for user %s", note.id, user_id)
        return _to_response(note)

    async def get_note(self, db: AsyncSession, user_id: UUID, note_id: UUID) -> NoteResponse:
        try:
            result = await db.execute(
                select(Note).where(Note.id == note_id, Note.user_id == user_id)
            )
            note = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, e, exc_info=True)
            raise DatabaseError(context={"note_id": str(note_id)}) from e

        if note is None:
            raise NotFoundError(resource="Note", resource_id=str(note_id))
        return _to_response(note)

    async def list_notes(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> NoteListResponse:
        """
        Newest first. `cursor` is the ISO created_at of the last item of the
        previous page; the page holds notes strictly older than it.

        Fetches limit + 1 rows to know whether another page exists without a
        COUNT query.
        """
        query = select(Note).where(Note.user_id == user_id)
        if cursor:
            try:
                cursor_dt = datetime.fromisoformat(cursor)
            except ValueError as e:
                raise ValidationError(
                    message="Invalid pagination cursor",
                    field="cursor",
                    context={"cursor": cursor},
                ) from e
            query = query.where(Note.created_at < cursor_dt)
        query = query.order_by(desc(Note.created_at)).limit(limit + 1)

        try:
            result = await db.execute(query)
            notes = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", e, exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        has_more = len(notes) > limit
        notes = notes[:limit]
        next_cursor = notes[-1].created_at.isoformat() if has_more and notes else None

        return NoteListResponse(
            notes=[
                NoteListItem(
                    id=note.id,
                    title=note.title,
                    subject=note.subject,
                    summary=note.summary,
                    created_at=note.created_at,
                )
                for note in notes
            ],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def delete_note(self, db: AsyncSession, user_id: UUID, note_id: UUID) -> None:
        try:
            result = await db.execute(
                delete(Note).where(Note.id == note_id, Note.user_id == user_id)
            )
        except SQLAlchemyError as e:
            logger.error("Database error deleting note %s: %s", note_id, e, exc_info=True)
            raise DatabaseError(context={"note_id": str(note_id)}) from e

        if result.rowcount == 0:
            raise NotFoundError(resource="Note", resource_id=str(note_id))
        logger.info("Note %s deleted by user %s", note_id, user_id)
