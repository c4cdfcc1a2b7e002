"""
Notivate Backend - Application Package
=======================================

What:  Turns a photo of lecture notes into a structured, AI-generated study guide.
How:   A FastAPI service that chains OCR (Google Cloud Vision) and guide
       synthesis (Google Gemini), metered by per-user monthly quotas.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Pipeline & Adapters)    │  ← Orchestration, quotas, adapters
    ├─────────────────────────────────────┤
    │   Repositories, Models & Schemas    │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
