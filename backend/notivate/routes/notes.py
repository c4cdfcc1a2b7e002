"""
Notivate Backend - Notes Route Handlers
=========================================

What:  Saved study guides, scoped to the authenticated caller.
       GET    /api/notes        list (cursor pagination, newest first)
       GET    /api/notes/{id}   one note
       POST   /api/notes        save a guide returned by /api/upload
       DELETE /api/notes/{id}   remove a note
How:   Thin handlers over NoteService with the request-scoped session.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from notivate.dependencies import get_caller, get_db_session, get_note_service
from notivate.schemas.note import NoteCreate, NoteListResponse, NoteResponse
from notivate.schemas.upload import ErrorResponse
from notivate.services.identity_service import CallerContext
from notivate.services.note_service import NoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["Notes"])


@router.get(
    "",
    response_model=NoteListResponse,
    responses={400: {"description": "Invalid cursor", "model": ErrorResponse}},
    summary="List saved study guides",
)
async def list_notes(
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    cursor: Optional[str] = Query(
        default=None,
        description="nextCursor from the previous page (ISO datetime)",
    ),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
    notes: NoteService = Depends(get_note_service),
) -> NoteListResponse:
    return await notes.list_notes(db, caller.user_id, limit=limit, cursor=cursor)


@router.get(
    "/{note_id}",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Get a saved study guide",
)
async def get_note(
    note_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
    notes: NoteService = Depends(get_note_service),
) -> NoteResponse:
    return await notes.get_note(db, caller.user_id, note_id)


@router.post(
    "",
    status_code=201,
    response_model=NoteResponse,
    summary="Save a study guide",
)
async def create_note(
    payload: NoteCreate,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
    notes: NoteService = Depends(get_note_service),
) -> NoteResponse:
    return await notes.create_note(db, caller.user_id, payload)


@router.delete(
    "/{note_id}",
    status_code=204,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Delete a saved study guide",
)
async def delete_note(
    note_id: UUID,
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
    notes: NoteService = Depends(get_note_service),
) -> Response:
    await notes.delete_note(db, caller.user_id, note_id)
    return Response(status_code=204)
