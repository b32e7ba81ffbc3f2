# Routes package init
"""
EcoDex Backend - API Routes Package
=====================================

Route Inventory:
    - identify.py:    POST /api/ecodex/identify     (photo → discovery)
                      POST /api/ecodex/chat         (companion chat)
    - discoveries.py: GET  /api/ecodex/entries      (paginated collection)
                      GET  /api/ecodex/entries/{id} (single entry)
                      GET  /api/ecodex/stats        (collection summary)
    - users.py:       POST /api/users, GET /api/users/me
    - health.py:      GET  /health

Routes stay THIN: read the request, call a service, shape the response.
"""
