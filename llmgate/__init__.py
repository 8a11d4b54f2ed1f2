"""llmgate: OpenAI-compatible LLM gateway with a constitutional safety layer.

The gateway sits in front of any chat-completion provider, keeps the provider
URL, model and key server-side, and runs every chat request through a
defense-in-depth policy engine (system prompt injection, input and output
pattern scoring, crisis detection and per-client rate limiting).
"""

__version__ = "1.0.0"
__license__ = "MIT"

from llmgate.constitution.models import PolicyConfig, Verdict
from llmgate.constitution.pipeline import EnforcementPipeline
from llmgate.constitution.scorer import score

__all__ = [
    "__version__",
    "__license__",
    "PolicyConfig",
    "Verdict",
    "EnforcementPipeline",
    "score",
]
