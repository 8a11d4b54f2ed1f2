"""API Routers for llmgate."""

from .chat import router as chat_router
from .status import router as status_router

__all__ = ["chat_router", "status_router"]
