# Services package init
"""
Notivate Backend - Services Layer
===================================

What:  Business logic between routes (HTTP) and repositories (persistence).
How:   Services are built once by dependencies.build_services() and handed to
       routes through FastAPI dependencies.

Service Inventory:
    - TextExtractor / GuideSynthesizer (abstract): adapter interfaces
    - VisionOCRService: TextExtractor on Google Cloud Vision
    - GeminiService: GuideSynthesizer on Google Gemini
    - RetryPolicy / CircuitBreaker: shared resilience for both adapters
    - UploadStore: validation, storage and disposal of transient uploads
    - UsageService: monthly quota checks and usage accounting
    - SupabaseIdentityProvider: bearer token → CallerContext
    - TransformationOrchestrator: the upload → OCR → synthesis → accounting pipeline
    - NoteService: saved study guides
"""
