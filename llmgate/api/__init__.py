"""HTTP API for llmgate."""

from llmgate.api.main import create_app

__all__ = ["create_app"]
