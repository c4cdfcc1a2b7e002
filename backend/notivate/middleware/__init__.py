# Middleware package init
"""
Notivate Backend - Middleware Package
=======================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Starlette runs middleware in reverse order of registration, so main.py
    adds CORS first and RequestID last.
"""
