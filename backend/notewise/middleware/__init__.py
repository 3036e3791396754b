# Middleware package init
"""
NoteWise Backend — Middleware Package
======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [CORS] → [GZip] → [Request ID] → [Logging] → Route Handler

    - CORS answers browser preflights and decorates every response
    - Request ID is set before logging so access lines carry it
    - Rate limiting is NOT middleware: it is keyed by the authenticated
      caller id, which only exists after the auth dependency has run
      (see services/rate_limiter.py)
"""
