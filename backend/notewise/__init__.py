"""
NoteWise Backend — Application Package Initializer
===================================================

What: Server-side content-analysis and notification pipeline for the NoteWise
      mobile app.
Who:  Imported by uvicorn (`notewise.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────────────────────┐
    │              Routes (API Layer)                     │  ← HTTP concerns only
    │   POST /api/analyze   POST /api/jobs/daily-...      │
    ├─────────────────────────────────────────────────────┤
    │           Services (Business Logic)                 │
    │   AnalysisService ─▶ RateLimiter                    │
    │                   ─▶ GeminiAnalyzer ─╮ (fallback)   │
    │                   ─▶ LocalAnalyzer ◀─╯              │
    │   NotificationJob ─▶ NoteWindowFetcher              │
    │                   ─▶ UserAggregator                 │
    │                   ─▶ NotificationComposer           │
    │                   ─▶ PushDispatcher                 │
    │                   ─▶ JobAuditor                     │
    ├─────────────────────────────────────────────────────┤
    │       Models & Schemas (Data)                       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────────────────────┤
    │        Database (Persistence)                       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────────────────────┘

    The analysis side and the notification side share nothing but the store,
    which both only read (the job additionally appends audit rows).
"""

__version__ = "1.0.0"
