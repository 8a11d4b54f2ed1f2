"""Declarative rule table for the constitutional pattern engine.

The table maps each category to its weight, its severity label and an
ordered list of rules. A rule bundles one or more regex patterns covering the
same concern in several languages (English, Spanish, French, German, Italian,
Portuguese, Russian, Chinese, Japanese). Patterns are tried in order and the
first match is the one reported, so each rule produces at most one violation.

CJK patterns carry no ``\\b`` anchors: ideographs are word characters and
Chinese/Japanese text has no spaces between words.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Pattern, Tuple, Union

import yaml

from llmgate.constitution.exceptions import RuleDefinitionError
from llmgate.constitution.models import Category, Severity

logger = logging.getLogger(__name__)

PATTERN_SNIPPET_LENGTH = 80
SUGGESTIVE_BONUS = 0.1

# ============================================================================
# Rule table
# ============================================================================

RULE_TABLE: Dict[str, Dict[str, Any]] = {
    # Critical: diagnoses, named conditions, dosing, treatment claims
    "forbidden": {
        "weight": 0.5,
        "severity": "critical",
        "rules": [
            {
                "id": "diagnosis",
                "description": "No medical claims and no named diseases or conditions",
                "patterns": [
                    r"\b(?:sleep\s+apnea|insomnia|narcolepsy|restless\s+legs?|fibromyalgia|chronic\s+fatigue)\b",
                    r"\b(?:atrial\s+fibrillation|a[\s-]?fib|arrhythmia|tachycardia|bradycardia|hypertension|hypotension)\b",
                    r"\b(?:diabetes|pre[\s-]?diabet\w*|metabolic\s+syndrome|thyroid|hypothyroid\w*|hyperthyroid\w*)\b",
                    r"\b(?:depression|anxiety\s+disorder|bipolar|schizophreni\w*|ptsd|post[\s-]?traumatic|ocd|obsessive[\s-]?compulsive)\b",
                    r"\b(?:adhd|attention[\s-]?deficit|autism(?:\s+spectrum)?|asd)\b",
                    r"\b(?:anorexia|bulimia|eating\s+disorder)\b",
                    r"\b(?:alzheimer\w*|dementia|parkinson\w*|epilepsy|multiple\s+sclerosis)\b",
                    r"\b(?:apnée(?:\s+du\s+sommeil)?|apnea\s+del\s+sueño|insomnio|insomnie|insonnia|insônia|Schlafapnoe|narcolepsie"
                    r"|taquicardia|tachycardie|Tachykardie|hipertensión|hypertonie|ipertensione|hipertensão"
                    r"|diabète|diabete|dépression|depresión|depressione|depressão)\b",
                    r"\b(?:апноэ|бессонниц|диабет|депресси|гипертони|тахикарди|аритми)\w*",
                    r"(?:睡眠呼吸暂停|睡眠時無呼吸|失眠症?|不眠症|糖尿病|抑郁症|うつ病|高血压|高血圧|心律失常|不整脈|心房颤动|心房細動)",
                    r"\b(?:you\s+have|you(?:'re|\s+are)\s+(?:suffering|diagnosed)|diagnosis\s+(?:is|of)|you\s+(?:suffer|show\s+signs)\s+(?:from|of))\b",
                    r"\b(?:this\s+(?:is|indicates|suggests|confirms|shows)\s+(?:a\s+)?(?:sign|symptom|case|diagnosis)\s+(?:of|that))\b",
                    r"\b(?:usted\s+tiene|vous\s+avez|Sie\s+haben|lei\s+ha|você\s+tem)\b",
                    r"\b(?:diagnóstico|diagnosi|диагноз\w*)\b",
                    r"(?:诊断|診断)",
                ],
            },
            {
                "id": "supplement-dosing",
                "description": "No supplement, vitamin or medication advice with dosing",
                "patterns": [
                    r"\b(?:take|consume|ingest)\s+\d+(?:\.\d+)?\s*(?:mg|mcg|iu|g|ml|µg|grams?|milligrams?|micrograms?)\b",
                    r"\b(?:prescri(?:be|bed|bing|ption)|dosage|dose|administer|medication|medicate)\b",
                    r"\b(?:melatonin|magnesium|ashwagandha|valerian|5[\s-]?htp|cbd|thc|ssri|snri|benzodiazepines?)\b",
                    r"\b(?:ibuprofen|acetaminophen|aspirin|paracetamol|naproxen|prednisone|cortisol\s+supplements?)\b",
                    r"\b(?:tome|tomar|prenez|prendre|nehmen\s+Sie|prenda|prendere|принимайте)\s+\d+(?:[.,]\d+)?\s*(?:mg|mcg|µg|ml|g|мг|мкг|мл)\b",
                    r"\b(?:medicamento|médicament|Medikament|farmaco|лекарств|препарат)\w*",
                    r"(?:服用|服药|处方|処方|投与)",
                ],
            },
            {
                "id": "treatment-claims",
                "description": "No treatment or cure language",
                "patterns": [
                    r"\b(?:this\s+(?:will|can|should)\s+(?:treat|cure|heal|fix|remedy|resolve))\b",
                    r"\b(?:treatment\s+(?:for|of|plan)|cure\s+(?:for|your)|therapy\s+(?:for|to\s+treat))\b",
                    r"\b(?:traitement|tratamiento|Behandlung|trattamento|tratamento|лечени\w*)\b",
                    r"(?:治療|治疗|治愈|治す)",
                ],
            },
        ],
    },
    # High: clinical scope the assistant must stay out of
    "medical_scope": {
        "weight": 0.3,
        "severity": "high",
        "rules": [
            {
                "id": "clinical-terminology",
                "description": "No clinical vocabulary or diagnostic classifications",
                "patterns": [
                    r"\b(?:clinical(?:ly)?|pathological|prognosis|etiology|contraindications?|comorbidit(?:y|ies)|differential\s+diagnosis)\b",
                    r"\b(?:ICD[\s-]?\d+|DSM[\s-]?(?:IV|5|V)|diagnostic\s+criteria)\b",
                ],
            },
            {
                "id": "medical-assessment",
                "description": "No medical assessments or risk statements",
                "patterns": [
                    r"(?<!not\s)\bmedical\s+(?:condition|diagnosis|treatment|advice|opinion|assessment)\b",
                    r"\b(?:at\s+risk\s+(?:for|of)\s+(?:cardiovascular|heart|stroke|cancer|disease))\b",
                    r"\b(?:symptoms?\s+(?:indicate|suggest|confirm|are\s+consistent\s+with))\b",
                ],
            },
        ],
    },
    # Medium: imperative or absolute framing
    "prescriptive": {
        "weight": 0.2,
        "severity": "medium",
        "rules": [
            {
                "id": "imperative-directive",
                "description": "No imperative directives",
                "patterns": [
                    r"\b(?:you\s+(?:should|must|need\s+to|have\s+to|ought\s+to|are\s+required\s+to))\b",
                    r"\b(?:debes|necesitas|vous\s+devez|il\s+faut|Sie\s+müssen|Sie\s+sollten|deve|bisogna|você\s+precisa)\b",
                ],
            },
            {
                "id": "absolute-language",
                "description": "No absolute or non-negotiable framing",
                "patterns": [
                    r"\b(?:it\s+is\s+(?:essential|critical|vital|imperative|necessary)\s+(?:that\s+you|to))\b",
                    r"\b(?:do\s+not\s+(?:ever|under\s+any\s+circumstances))\b",
                ],
            },
        ],
    },
    # High: alarming or emergency escalation
    "alarming": {
        "weight": 0.4,
        "severity": "high",
        "rules": [
            {
                "id": "emergency-escalation",
                "description": "No emergency escalation language",
                "patterns": [
                    r"\b(?:(?:medical|health)\s+emergency|seek\s+(?:immediate|emergency)\s+(?:help|care|attention))\b",
                    r"\b(?:call\s+(?:911|999|112|ambulance)\s+(?:immediately|now|right\s+away))\b",
                ],
            },
            {
                "id": "mortality-threat",
                "description": "No threats to life or health",
                "patterns": [
                    r"\b(?:(?:your|this)\s+(?:life|health)\s+is\s+(?:in\s+)?(?:serious\s+)?danger)\b",
                    r"\b(?:you\s+(?:could|might|will)\s+die)\b",
                ],
            },
        ],
    },
    # Positive: hedged language raises confidence
    "suggestive": {
        "rules": [
            {
                "id": "hedged-language",
                "description": "Optional, hedged framing",
                "patterns": [
                    r"\b(?:consider|you\s+(?:might|could|may\s+want\s+to)|some\s+people\s+find|it\s+might\s+(?:help|be\s+worth))\b",
                ],
            },
            {
                "id": "professional-referral",
                "description": "Referral to a qualified professional",
                "patterns": [r"\b(?:healthcare\s+professional|medical\s+provider|doctor|qualified\s+practitioner)\b"],
            },
            {
                "id": "disclaimer",
                "description": "Not-medical-advice disclaimer",
                "patterns": [r"\b(?:this\s+is\s+not\s+medical\s+advice|for\s+informational\s+purposes\s+only)\b"],
            },
            {
                "id": "baseline-framing",
                "description": "Comparison against the user's own baseline",
                "patterns": [r"\b(?:personal\s+(?:trend|pattern|baseline)|your\s+(?:own|recent)\s+(?:average|pattern))\b"],
            },
        ],
    },
    # Detection only: never blocks, triggers crisis resources
    "crisis": {
        "rules": [
            {
                "id": "self-harm-intent",
                "description": "Stated intent to hurt oneself",
                "patterns": [
                    r"\b(?:(?:want\s+to|going\s+to|plan(?:ning)?\s+to)\s+(?:kill|hurt|harm)\s+(?:myself|yourself|themselves))\b",
                ],
            },
            {
                "id": "suicidal-ideation",
                "description": "Suicidal ideation",
                "patterns": [
                    r"\b(?:suicid(?:e|al)|self[\s-]?harm|end\s+(?:my|their|your)\s+life)\b",
                    r"\b(?:don[’']?t\s+want\s+to\s+(?:live|be\s+alive|exist))\b",
                    r"\b(?:suicidio|suicídio|Selbstmord|quiero\s+morir|je\s+veux\s+mourir|ich\s+will\s+sterben|voglio\s+morire|quero\s+morrer)\b",
                    r"\bсамоубийств\w*",
                    r"(?:自杀|自殺|死にたい|不想活)",
                ],
            },
            {
                "id": "harm-to-others",
                "description": "Stated intent to harm others",
                "patterns": [r"\b(?:harm\s+(?:others?|someone|people))\b"],
            },
        ],
    },
}


# ============================================================================
# Compiled rules
# ============================================================================

@dataclass(frozen=True)
class Rule:
    """Immutable, compiled rule.

    Attributes:
        id: Unique identifier within the rule set
        description: Human-readable description
        category: Category the rule belongs to
        patterns: Compiled patterns, tried in order
    """
    id: str
    description: str
    category: Category
    patterns: Tuple[Pattern, ...]

    @classmethod
    def from_definition(cls, category: Category, definition: Mapping[str, Any]) -> Rule:
        """Compile a rule from its table entry.

        Raises:
            RuleDefinitionError: If the entry is malformed or a regex is invalid
        """
        rule_id = str(definition.get("id") or "").strip()
        if not rule_id:
            raise RuleDefinitionError(f"Rule in category '{category.value}' has no id")

        sources = definition.get("patterns") or []
        if isinstance(sources, str):
            sources = [sources]
        if not sources:
            raise RuleDefinitionError(f"Rule '{rule_id}' has no patterns", rule_id=rule_id)

        compiled = []
        for source in sources:
            try:
                compiled.append(re.compile(source, re.IGNORECASE))
            except re.error as e:
                raise RuleDefinitionError(f"Invalid regex in rule '{rule_id}': {e}", rule_id=rule_id)

        return cls(
            id=rule_id,
            description=str(definition.get("description") or rule_id),
            category=category,
            patterns=tuple(compiled),
        )

    def search(self, text: str) -> Optional[Tuple[Pattern, "re.Match[str]"]]:
        """Return the first matching pattern and its match, or None."""
        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                return pattern, match
        return None


@dataclass(frozen=True)
class CategorySpec:
    """Weight, label and rules of one category."""
    category: Category
    weight: float = 0.0
    severity: Optional[Severity] = None
    rules: Tuple[Rule, ...] = field(default_factory=tuple)


class RuleSet:
    """Ordered, read-only collection of compiled rules keyed by category."""

    def __init__(self, specs: Mapping[Category, CategorySpec]):
        # Scoring order is the Category declaration order
        self._specs: Dict[Category, CategorySpec] = {
            category: specs.get(category, CategorySpec(category=category))
            for category in Category
        }

    @classmethod
    def from_table(cls, table: Mapping[str, Mapping[str, Any]]) -> RuleSet:
        """Compile a rule set from a table shaped like ``RULE_TABLE``."""
        specs: Dict[Category, CategorySpec] = {}
        seen_ids = set()

        for name, entry in table.items():
            category = _parse_category(name)
            rules = []
            for definition in entry.get("rules") or []:
                rule = Rule.from_definition(category, definition)
                if rule.id in seen_ids:
                    raise RuleDefinitionError(f"Duplicate rule id '{rule.id}'", rule_id=rule.id)
                seen_ids.add(rule.id)
                rules.append(rule)

            weight, severity = _parse_weight(category, entry)
            specs[category] = CategorySpec(category=category, weight=weight, severity=severity, rules=tuple(rules))

        return cls(specs)

    def extend(self, table: Mapping[str, Mapping[str, Any]]) -> RuleSet:
        """Return a new rule set with the table's rules appended.

        Weights and labels of existing categories are kept unless the table
        overrides them.
        """
        merged: Dict[str, Dict[str, Any]] = {}
        for category, spec in self._specs.items():
            merged[category.value] = {
                "weight": spec.weight,
                "severity": spec.severity.value if spec.severity else None,
                "rules": [_rule_to_definition(rule) for rule in spec.rules],
            }

        for name, entry in table.items():
            category = _parse_category(name)
            target = merged[category.value]
            if "weight" in entry:
                target["weight"] = entry["weight"]
            if "severity" in entry:
                target["severity"] = entry["severity"]
            target["rules"].extend(entry.get("rules") or [])

        return RuleSet.from_table(merged)

    def spec(self, category: Category) -> CategorySpec:
        return self._specs[category]

    def rules(self, category: Category) -> Tuple[Rule, ...]:
        return self._specs[category].rules

    def negative_specs(self) -> Iterator[CategorySpec]:
        """Negative categories in scoring order."""
        return (spec for category, spec in self._specs.items() if category.is_negative)

    def __len__(self) -> int:
        return sum(len(spec.rules) for spec in self._specs.values())

    def __repr__(self) -> str:
        counts = ", ".join(f"{c.value}={len(s.rules)}" for c, s in self._specs.items())
        return f"RuleSet({counts})"


def _parse_category(name: str) -> Category:
    try:
        return Category(str(name).strip().lower().replace("-", "_"))
    except ValueError:
        raise RuleDefinitionError(f"Unknown rule category '{name}'")


def _parse_weight(category: Category, entry: Mapping[str, Any]) -> Tuple[float, Optional[Severity]]:
    if not category.is_negative:
        return 0.0, None

    try:
        weight = float(entry.get("weight", 0.2))
        severity = Severity(str(entry.get("severity") or "medium").lower())
    except (TypeError, ValueError) as e:
        raise RuleDefinitionError(f"Invalid weight or severity for '{category.value}': {e}")

    if weight <= 0:
        raise RuleDefinitionError(f"Weight for '{category.value}' must be positive")
    return weight, severity


def _rule_to_definition(rule: Rule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "description": rule.description,
        "patterns": [p.pattern for p in rule.patterns],
    }


def load_rule_set(path: Union[str, Path], base: Optional[RuleSet] = None) -> RuleSet:
    """Load extra rules from a YAML file and append them to ``base``.

    The file uses the same shape as ``RULE_TABLE``::

        forbidden:
          rules:
            - id: local-brand-claims
              description: No branded cure claims
              patterns: ["\\\\bmiracle\\\\s+cure\\\\b"]

    Raises:
        RuleDefinitionError: If the file cannot be read or is malformed
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            table = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise RuleDefinitionError(f"Failed to load rules file {path}: {e}")

    if not isinstance(table, dict):
        raise RuleDefinitionError(f"Rules file {path} must contain a mapping of categories")

    rule_set = (base if base is not None else DEFAULT_RULES).extend(table)
    logger.info(f"Loaded rules from {path}: {rule_set!r}")
    return rule_set


def pattern_snippet(pattern: Pattern) -> str:
    return pattern.pattern[:PATTERN_SNIPPET_LENGTH]


DEFAULT_RULES = RuleSet.from_table(RULE_TABLE)
