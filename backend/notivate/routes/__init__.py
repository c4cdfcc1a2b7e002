# Routes package init
"""
Notivate Backend - API Routes Package
=======================================

Route Inventory:
    - upload.py:  POST   /api/upload          (photo → study guide)
    - usage.py:   GET    /api/usage           (this month's transforms)
    - notes.py:   GET    /api/notes           (saved guides, paginated)
                  GET    /api/notes/{id}
                  POST   /api/notes
                  DELETE /api/notes/{id}
    - health.py:  GET    /health

Routes stay thin: parse the request, call a service, shape the response.
"""
