"""Pydantic schemas — re‑exported for convenience."""

from quizportal.schemas.common import ErrorResponse  # noqa: F401
from quizportal.schemas.evaluation import (  # noqa: F401
    EvaluationSummary,
    StartRequest,
    StartResponse,
    MetadataResponse,
    HistoryResponse,
)
from quizportal.schemas.attempt import (  # noqa: F401
    SaveRequest,
    SaveResponse,
    SubmitRequest,
    SubmitResponse,
    ViolationRequest,
    ViolationResponse,
    TakeView,
    ResultView,
)
from quizportal.schemas.admin import MaintenanceSetting  # noqa: F401
