"""
Notivate Backend - Service Wiring & FastAPI Dependencies
==========================================================

What:  Builds every long-lived collaborator from Settings (build_services) and
       exposes them to routes through FastAPI dependencies.
How:   The lifespan in main.py calls build_services() once and stores the
       result on app.state.services. Routes never import service instances;
       they Depends() on the getters below, which tests replace with
       app.dependency_overrides.

Who builds what:
    Settings ─┬─ engine → session_factory ─┬─ UsageRepository → UsageService
              │                            └─ ProfileRepository ─┐
              ├─ httpx.AsyncClient ──────────────────────────────┴─ SupabaseIdentityProvider
              ├─ VisionOCRService ─┐
              ├─ GeminiService ────┼─ TransformationOrchestrator
              └─ UploadStore ──────┘
"""

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from notivate.config import Settings
from notivate.database import build_engine, build_session_factory, dispose_engine, session_scope
from notivate.repositories.profile_repository import ProfileRepository
from notivate.repositories.usage_repository import UsageRepository, upsert_insert_for
from notivate.services.base import GuideSynthesizer, TextExtractor
from notivate.services.gemini_service import GeminiService
from notivate.services.identity_service import (
    CallerContext,
    SupabaseIdentityProvider,
    parse_bearer_token,
)
from notivate.services.note_service import NoteService
from notivate.services.transform_service import TransformationOrchestrator
from notivate.services.upload_store import UploadStore
from notivate.services.usage_service import UsageService
from notivate.services.vision_service import VisionOCRService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every collaborator that lives for the whole process."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    http_client: httpx.AsyncClient
    extractor: TextExtractor
    synthesizer: GuideSynthesizer
    uploads: UploadStore
    usage: UsageService
    identity: SupabaseIdentityProvider
    orchestrator: TransformationOrchestrator
    notes: NoteService

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await dispose_engine(self.engine)


def build_services(
    settings: Settings,
    extractor: Optional[TextExtractor] = None,
    synthesizer: Optional[GuideSynthesizer] = None,
) -> Services:
    """
    Constructs the object graph. `extractor` / `synthesizer` replace the
    Google adapters (tests, local runs without credentials).

    Raises:
        ValueError: the database cannot count usage atomically.
    """
    engine = build_engine(settings)
    upsert_insert_for(engine.dialect.name)
    session_factory = build_session_factory(engine)
    http_client = httpx.AsyncClient(timeout=settings.auth_timeout_seconds)

    extractor = extractor or VisionOCRService.from_settings(settings)
    synthesizer = synthesizer or GeminiService.from_settings(settings)
    uploads = UploadStore(settings.upload_dir, settings.max_file_size)
    usage = UsageService(UsageRepository(session_factory))
    identity = SupabaseIdentityProvider(
        http_client=http_client,
        supabase_url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        profiles=ProfileRepository(session_factory),
    )
    orchestrator = TransformationOrchestrator(
        extractor=extractor,
        synthesizer=synthesizer,
        usage=usage,
        uploads=uploads,
        upgrade_path=settings.upgrade_path,
    )
    return Services(
        engine=engine,
        session_factory=session_factory,
        http_client=http_client,
        extractor=extractor,
        synthesizer=synthesizer,
        uploads=uploads,
        usage=usage,
        identity=identity,
        orchestrator=orchestrator,
        notes=NoteService(),
    )


# ── FastAPI Dependencies ──────────────────────────────────────────────────
def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_db_session(
    services: Services = Depends(get_services),
) -> AsyncGenerator[AsyncSession, None]:
    """Per-request session: commit on success, rollback on any error."""
    async with session_scope(services.session_factory) as session:
        yield session


def get_orchestrator(services: Services = Depends(get_services)) -> TransformationOrchestrator:
    return services.orchestrator


def get_usage_service(services: Services = Depends(get_services)) -> UsageService:
    return services.usage


def get_note_service(services: Services = Depends(get_services)) -> NoteService:
    return services.notes


def get_identity_provider(services: Services = Depends(get_services)) -> SupabaseIdentityProvider:
    return services.identity


async def get_caller(
    authorization: Optional[str] = Header(default=None),
    identity: SupabaseIdentityProvider = Depends(get_identity_provider),
) -> CallerContext:
    """
    Resolves the caller from `Authorization: Bearer <token>`.

    Raises:
        AuthenticationError: missing, malformed or rejected credential (401).
    """
    token = parse_bearer_token(authorization)
    return await identity.authenticate(token)
