# Middleware package init
"""
EcoDex Backend - Middleware Package
=====================================

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Rate limiting runs first so rejected requests cost nothing; the request
    id is assigned before the access log line is written.
"""
