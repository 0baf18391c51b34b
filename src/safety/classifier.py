"""Keyword-based content safety classification for coaching interactions.

A deliberately simple, explainable heuristic: a declarative table of rules,
each mapping a keyword set to a flag and a risk contribution. Rules are
independent and cumulative; the overall risk is the maximum over all fired
rules. Pure and deterministic, no I/O.
"""

import re
from dataclasses import dataclass
from enum import StrEnum


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


@dataclass(frozen=True)
class SafetyRule:
    """Fires when any of ``keywords`` matches and, if set, any of ``requires`` too.

    Keywords match as whole-word prefixes unless ``substring`` is set, in which
    case they match anywhere ("kneepain" fires on "pain").
    """

    flag: str
    keywords: tuple[str, ...]
    risk: RiskLevel
    review_required: bool = False
    requires: tuple[str, ...] = ()
    substring: bool = False


@dataclass(frozen=True)
class SafetyAssessment:
    flags: frozenset[str]
    risk_level: RiskLevel
    review_required: bool


SAFETY_RULES: tuple[SafetyRule, ...] = (
    SafetyRule(
        flag="injury_related",
        keywords=(
            "injury", "injured", "pain", "hurt", "sprain", "strain", "swelling", "swollen",
            "bruise", "bleeding", "concussion", "fracture", "broken", "torn", "medical",
        ),
        risk=RiskLevel.MEDIUM,
        substring=True,
    ),
    SafetyRule(
        flag="medical_advice",
        keywords=(
            "doctor", "treatment", "diagnosis", "diagnose", "medication", "prescription",
            "painkiller", "surgery", "physical therapy", "physiotherapy", "dosage",
        ),
        risk=RiskLevel.HIGH,
        review_required=True,
        substring=True,
    ),
    SafetyRule(
        flag="inappropriate_content",
        keywords=("violence", "illegal", "dangerous", "harmful", "steroid", "doping", "weapon"),
        risk=RiskLevel.HIGH,
        review_required=True,
    ),
    SafetyRule(
        flag="personal_counseling",
        keywords=("personal",),
        requires=("problem", "issue"),
        risk=RiskLevel.MEDIUM,
    ),
    SafetyRule(
        flag="mental_health",
        keywords=("depressed", "depression", "anxiety", "anxious", "overwhelmed", "panic attack", "hopeless"),
        risk=RiskLevel.MEDIUM,
    ),
    SafetyRule(
        flag="crisis_language",
        keywords=("suicide", "suicidal", "self-harm", "self harm", "kill myself", "want to die", "end my life"),
        risk=RiskLevel.HIGH,
        review_required=True,
    ),
)


def _compile(terms: tuple[str, ...], substring: bool = False) -> re.Pattern[str] | None:
    if not terms:
        return None
    prefix = "" if substring else r"\b"
    return re.compile(prefix + "(?:" + "|".join(re.escape(t) for t in terms) + ")")


_COMPILED: dict[SafetyRule, tuple[re.Pattern[str] | None, re.Pattern[str] | None]] = {}


def _patterns(rule: SafetyRule) -> tuple[re.Pattern[str] | None, re.Pattern[str] | None]:
    compiled = _COMPILED.get(rule)
    if compiled is None:
        compiled = (_compile(rule.keywords, rule.substring), _compile(rule.requires))
        _COMPILED[rule] = compiled
    return compiled


def rule_matches(rule: SafetyRule, text: str) -> bool:
    """Check one rule against already-lowercased text."""
    keywords, requires = _patterns(rule)
    if keywords is None or not keywords.search(text):
        return False
    return requires is None or bool(requires.search(text))


def classify(question: str, response: str, rules: tuple[SafetyRule, ...] = SAFETY_RULES) -> SafetyAssessment:
    """Classify a question/response pair.

    Args:
        question: The caller's question.
        response: The generated answer.
        rules: Rule table to evaluate. Defaults to ``SAFETY_RULES``.

    Returns:
        The set of fired flags, the maximum risk across them (``LOW`` when none
        fire), and whether any fired rule requires human review.
    """
    text = f"{question} {response}".lower()
    flags: set[str] = set()
    risk = RiskLevel.LOW
    review_required = False

    for rule in rules:
        if rule.flag in flags or not rule_matches(rule, text):
            continue
        flags.add(rule.flag)
        if rule.risk.rank > risk.rank:
            risk = rule.risk
        review_required = review_required or rule.review_required

    return SafetyAssessment(flags=frozenset(flags), risk_level=risk, review_required=review_required)
