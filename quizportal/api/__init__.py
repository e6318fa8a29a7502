"""API route package — imports all routers for main.py."""

from quizportal.api.health import router as health_router  # noqa: F401
from quizportal.api.evaluations import router as evaluations_router  # noqa: F401
from quizportal.api.attempts import router as attempts_router  # noqa: F401
from quizportal.api.admin import router as admin_router  # noqa: F401
