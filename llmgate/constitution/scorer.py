"""Text scorer: evaluates one string against the constitutional rule set."""

import unicodedata
from typing import List, Optional

from llmgate.constitution.models import Category, PolicyConfig, Verdict, Violation
from llmgate.constitution.patterns import DEFAULT_RULES, SUGGESTIVE_BONUS, RuleSet, pattern_snippet


def score(text: Optional[str], policy: PolicyConfig, rules: Optional[RuleSet] = None) -> Verdict:
    """Score text against the rule set.

    Every matching negative rule adds one violation and subtracts its
    category weight. Any suggestive match adds a single bonus. The first
    crisis match raises the crisis signal without affecting safety.

    Args:
        text: Text to evaluate
        policy: Active policy; a disabled policy yields a neutral verdict
        rules: Rule set to use, defaults to the built-in table

    Returns:
        Verdict with confidence clamped to [0, 1] and rounded to 2 decimals
    """
    if not policy.enabled or not text:
        return Verdict.neutral()

    rules = rules if rules is not None else DEFAULT_RULES
    normalized = unicodedata.normalize("NFC", text)

    violations: List[Violation] = []
    confidence = 1.0

    for spec in rules.negative_specs():
        for rule in spec.rules:
            hit = rule.search(normalized)
            if hit is None:
                continue
            pattern, match = hit
            violations.append(Violation(
                category=spec.category,
                severity=spec.severity,
                rule_id=rule.id,
                pattern=pattern_snippet(pattern),
                matched=match.group(0),
            ))
            confidence -= spec.weight

    if any(rule.search(normalized) for rule in rules.rules(Category.SUGGESTIVE)):
        confidence += SUGGESTIVE_BONUS

    has_crisis_signal = any(rule.search(normalized) for rule in rules.rules(Category.CRISIS))

    confidence = round(max(0.0, min(1.0, confidence)), 2)

    return Verdict(
        safe=not violations,
        violations=tuple(violations),
        confidence=confidence,
        has_crisis_signal=has_crisis_signal,
    )
