"""Constitutional safety layer.

Pattern rule set, text scorer, domain prompts, rate limiter, response
synthesis and the enforcement pipeline tying them together.
"""

from llmgate.constitution.exceptions import ConstitutionError, RuleDefinitionError
from llmgate.constitution.metrics import ConstitutionStats, StatEvent
from llmgate.constitution.models import (
    Category,
    Decision,
    Domain,
    Mode,
    PolicyConfig,
    Severity,
    Verdict,
    Violation,
)
from llmgate.constitution.patterns import DEFAULT_RULES, RULE_TABLE, Rule, RuleSet, load_rule_set
from llmgate.constitution.pipeline import EnforcementPipeline, PipelineOutcome, PipelineState, decide
from llmgate.constitution.prompts import inject_system_prompt, prompt_for, safe_alternative_for
from llmgate.constitution.rate_limiter import FixedWindowRateLimiter
from llmgate.constitution.responses import append_crisis_resources, build_blocked_response
from llmgate.constitution.scorer import score

__all__ = [
    "Category",
    "ConstitutionError",
    "ConstitutionStats",
    "DEFAULT_RULES",
    "Decision",
    "Domain",
    "EnforcementPipeline",
    "FixedWindowRateLimiter",
    "Mode",
    "PipelineOutcome",
    "PipelineState",
    "PolicyConfig",
    "RULE_TABLE",
    "Rule",
    "RuleDefinitionError",
    "RuleSet",
    "Severity",
    "StatEvent",
    "Verdict",
    "Violation",
    "append_crisis_resources",
    "build_blocked_response",
    "decide",
    "inject_system_prompt",
    "load_rule_set",
    "prompt_for",
    "safe_alternative_for",
    "score",
]
