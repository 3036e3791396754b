# Services package init
"""
NoteWise Backend — Services Layer
==================================

What:  Business logic between the HTTP routes and the outside world
       (Gemini, Supabase auth, PostgreSQL, Expo push).

Service Inventory:
    Analysis
    - RateLimiter:          per-caller fixed-window admission
    - ContentAnalyzer:      abstract AI analyzer (llm_base)
    - GeminiAnalyzer:       Gemini implementation with a circuit breaker
    - LocalAnalyzer:        deterministic fallback heuristics
    - AnalysisService:      validate → rate limit → AI → fallback
    - SupabaseAuthVerifier: bearer token → caller id

    Daily notifications
    - NoteWindowFetcher:    notes created in the trailing window
    - UserAggregator:       group by owner, resolve push-eligible profiles
    - notification_composer: one payload per user (pure functions)
    - PushDispatcher:       chunked delivery to Expo
    - JobAuditor:           cron_job_logs rows
    - NotificationJob:      the run state machine tying the above together
"""
