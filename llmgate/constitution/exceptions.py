"""Constitution-layer exceptions.

Safety violations are never raised: they are ordinary pipeline outcomes.
These errors only cover broken rule definitions supplied by the operator.
"""

from typing import Optional

from llmgate.exceptions import LLMGateError


class ConstitutionError(LLMGateError):
    """Base error for the constitution layer."""
    DEFAULT_CODE = "CONSTITUTION_ERROR"


class RuleDefinitionError(ConstitutionError):
    """A rule table entry is malformed or its regex does not compile."""
    DEFAULT_CODE = "RULE_DEFINITION_ERROR"

    def __init__(self, message: str, rule_id: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code or self.DEFAULT_CODE)
        self.rule_id = rule_id
