# Routes package init
"""
NoteWise Backend — API Routes Package
======================================

Route Inventory:
    - analyze.py:  POST    /api/analyze                    (content analysis)
                   OPTIONS /api/analyze                    (preflight, always 200)
    - jobs.py:     POST    /api/jobs/daily-notifications   (scheduler trigger)
    - health.py:   GET     /health                         (service health check)

Routes stay thin: they read the request, call the collaborator stored on
`app.state` by create_app(), and return the response model. Errors are
raised, not returned; main.py turns them into the error envelope.
"""
