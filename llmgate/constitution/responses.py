"""Synthesized chat-completion payloads.

Builds the substitute returned when a request or reply is blocked, and the
crisis-resource augmentation appended to an assistant reply.
"""

import copy
import time
from typing import Any, Dict, Optional

from llmgate.constitution.models import Domain, Mode, Verdict
from llmgate.constitution.prompts import CRISIS_RESOURCES, CRISIS_SEPARATOR, safe_alternative_for

SAFETY_MODEL_NAME = "llmgate-safety-layer"
META_KEY = "_constitution"


def build_blocked_response(verdict: Verdict, domain: Domain, mode: Mode, stage: str) -> Dict[str, Any]:
    """Chat-completion payload carrying the domain's safe alternative.

    Args:
        verdict: Unsafe verdict that triggered the block
        domain: Policy domain selecting the safe-alternative text
        mode: Active mode, echoed in the metadata
        stage: ``"input"`` or ``"output"``
    """
    now = time.time()
    return {
        "id": f"chatcmpl-gate-{int(now * 1000)}",
        "object": "chat.completion",
        "created": int(now),
        "model": SAFETY_MODEL_NAME,
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": safe_alternative_for(domain)},
            "finish_reason": "stop",
        }],
        "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        META_KEY: {
            "blocked": True,
            "mode": Mode(mode).value,
            "domain": Domain(domain).value,
            "stage": stage,
            "violations": len(verdict.violations),
            "summary": verdict.summary(),
        },
    }


def assistant_content(response: Any) -> Optional[str]:
    """``choices[0].message.content`` when it is a non-empty string, else None."""
    if not isinstance(response, dict):
        return None
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def append_crisis_resources(response: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``response`` with the crisis block appended to the assistant text.

    Responses without assistant text are returned unchanged.
    """
    content = assistant_content(response)
    if content is None:
        return response

    augmented = copy.deepcopy(response)
    augmented["choices"][0]["message"]["content"] = content + CRISIS_SEPARATOR + CRISIS_RESOURCES
    meta = augmented.get(META_KEY)
    augmented[META_KEY] = {**(meta if isinstance(meta, dict) else {}), "crisisResourcesAppended": True}
    return augmented


def annotate_output(response: Dict[str, Any], verdict: Verdict, mode: Mode) -> Dict[str, Any]:
    """Copy of ``response`` with the output verdict attached to its metadata."""
    annotated = copy.deepcopy(response)
    meta = annotated.get(META_KEY)
    annotated[META_KEY] = {
        **(meta if isinstance(meta, dict) else {}),
        "outputValidation": {
            "safe": verdict.safe,
            "violations": len(verdict.violations),
            "confidence": verdict.confidence,
            "mode": Mode(mode).value,
        },
    }
    return annotated
