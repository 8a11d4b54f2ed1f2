"""Data models for the constitutional safety layer.

Defines the policy configuration, the rule categories and the verdict
produced by scoring a piece of text.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class Category(str, Enum):
    """Rule categories, in scoring order."""

    FORBIDDEN = "forbidden"
    MEDICAL_SCOPE = "medical_scope"
    PRESCRIPTIVE = "prescriptive"
    ALARMING = "alarming"
    SUGGESTIVE = "suggestive"
    CRISIS = "crisis"

    @property
    def is_negative(self) -> bool:
        """Negative categories lower confidence and count as violations."""
        return self not in (Category.SUGGESTIVE, Category.CRISIS)


class Severity(str, Enum):
    """Reporting labels for negative categories."""

    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Domain(str, Enum):
    """Safety-policy verticals."""

    GENERAL = "general"
    WEARABLES = "wearables"
    BCI = "bci"
    THERAPY = "therapy"


class Mode(str, Enum):
    """How a negative verdict is acted upon."""

    BLOCK = "block"
    WARN = "warn"
    LOG = "log"


class Decision(str, Enum):
    """Action chosen for a verdict at a scoring point."""

    PASS = "pass"
    ANNOTATE = "annotate"
    SUBSTITUTE = "substitute"


class PolicyConfig(BaseModel):
    """Immutable constitution policy for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Master toggle for every layer")
    domain: Domain = Field(default=Domain.GENERAL, description="Prompt and safe-alternative vertical")
    mode: Mode = Field(default=Mode.WARN, description="block | warn | log")
    system_prompt: bool = Field(default=True, description="Inject the domain safety prompt")
    validate_input: bool = Field(default=True, description="Score user messages")
    validate_output: bool = Field(default=True, description="Score non-streamed replies")
    log_violations: bool = Field(default=True, description="Log violation details")
    rate_limit: int = Field(default=60, ge=0, description="Requests per minute per client, 0 disables")

    @field_validator("domain", mode="before")
    @classmethod
    def fallback_domain(cls, v):
        """Unknown domains fall back to the general policy."""
        if isinstance(v, Domain):
            return v
        try:
            return Domain(str(v).strip().lower())
        except ValueError:
            logger.warning(f"Unknown constitution domain '{v}', falling back to 'general'")
            return Domain.GENERAL

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def rate_limiting(self) -> bool:
        return self.enabled and self.rate_limit > 0

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the policy (contains no secrets)."""
        return {
            "enabled": self.enabled,
            "domain": self.domain.value,
            "mode": self.mode.value,
            "systemPrompt": self.system_prompt,
            "validateInput": self.validate_input,
            "validateOutput": self.validate_output,
            "logViolations": self.log_violations,
            "rateLimit": f"{self.rate_limit}/min" if self.rate_limit > 0 else "disabled",
        }


@dataclass(frozen=True)
class Violation:
    """One negative rule match."""

    category: Category
    severity: Severity
    rule_id: str
    pattern: str
    matched: str

    def summary(self) -> str:
        return f'[{self.severity.value}] {self.category.value}: "{self.matched}"'

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "rule_id": self.rule_id,
            "pattern": self.pattern,
            "matched": self.matched,
        }


@dataclass(frozen=True)
class Verdict:
    """Result of scoring one text string.

    Attributes:
        safe: True iff no negative rule matched
        violations: Negative matches in category order, then rule order
        confidence: Score in [0, 1], rounded to two decimals
        has_crisis_signal: True if any crisis rule matched; never affects ``safe``
    """

    safe: bool = True
    violations: Tuple[Violation, ...] = field(default_factory=tuple)
    confidence: float = 1.0
    has_crisis_signal: bool = False

    @classmethod
    def neutral(cls) -> "Verdict":
        return cls()

    def summary(self) -> str:
        """Human-readable one-line summary of every violation."""
        return "; ".join(v.summary() for v in self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safe": self.safe,
            "violations": [v.to_dict() for v in self.violations],
            "confidence": self.confidence,
            "has_crisis_signal": self.has_crisis_signal,
        }
