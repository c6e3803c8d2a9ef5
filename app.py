"""
app.py - re-exports the application for process managers that expect `app:app`.

The application lives in fitness_api/main.py:
- fitness_api/models/ - Pydantic request schemas
- fitness_api/routes/ - API endpoints organized by domain
- fitness_api/services/ - Business logic
- fitness_api/middleware/ - Auth, audit, rate limiting and request context
- fitness_api/database/ - ORM models, connection and query utilities
- fitness_api/utils/ - Errors, logging, validators and helpers
"""

from fitness_api.main import app

__all__ = ["app"]
