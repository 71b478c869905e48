"""
Field auto-matching for arbitrary API responses.

Scores candidate field names against the four budget metrics using
keyword and alias rules, and proposes a mapping.

Assignment is greedy: targets are visited in a fixed order and a field
claimed by one target is unavailable to the targets after it. Ties
between candidates go to the one listed first.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from usage_monitor.config.loader import FieldMapping


MONTHLY_BUDGET = "monthlyBudget"
MONTHLY_SPENT = "monthlySpent"
DAILY_BUDGET = "dailyBudget"
DAILY_SPENT = "dailySpent"

# Iteration order decides who wins a contested field.
TARGET_FIELDS = (MONTHLY_BUDGET, MONTHLY_SPENT, DAILY_BUDGET, DAILY_SPENT)

MIN_MATCH_SCORE = 15
FULL_CONFIDENCE_SCORE = 25
COMBO_BONUS = 5
LONG_NAME_WORDS = 4
LONG_NAME_PENALTY = 2
DEFAULT_AUTO_APPLY_CONFIDENCE = 70


@dataclass(frozen=True)
class MatchRule:
    """Keyword rule for one target metric."""
    time_keywords: Tuple[str, ...]
    type_keywords: Tuple[str, ...]
    aliases: Tuple[str, ...]
    time_weight: int = 10
    type_weight: int = 10


@dataclass(frozen=True)
class FieldMatch:
    """Best candidate found for a target metric."""
    field: str
    confidence: int
    matched_keywords: Tuple[str, ...]
    reason: str


@dataclass(frozen=True)
class MatchQuality:
    """Human readable label for a confidence value."""
    label: str
    color: str


_MONTH_KEYWORDS = ("month", "monthly", "mon")
_DAY_KEYWORDS = ("day", "daily", "today", "per_day")
_BUDGET_KEYWORDS = ("budget", "limit", "allowance", "quota", "allocation")
_SPENT_KEYWORDS = ("spent", "spend", "used", "cost", "consumed", "usage", "expense")

MATCH_RULES: Dict[str, MatchRule] = {
    MONTHLY_BUDGET: MatchRule(
        time_keywords=_MONTH_KEYWORDS,
        type_keywords=_BUDGET_KEYWORDS,
        aliases=("month_budget", "monthly_budget", "monthlybudget"),
    ),
    MONTHLY_SPENT: MatchRule(
        time_keywords=_MONTH_KEYWORDS,
        type_keywords=_SPENT_KEYWORDS,
        aliases=("month_spent", "monthly_spent", "monthlyspent", "month_used", "monthly_used"),
    ),
    DAILY_BUDGET: MatchRule(
        time_keywords=_DAY_KEYWORDS,
        type_keywords=_BUDGET_KEYWORDS,
        aliases=("day_budget", "daily_budget", "dailybudget", "today_budget"),
    ),
    DAILY_SPENT: MatchRule(
        time_keywords=_DAY_KEYWORDS,
        type_keywords=_SPENT_KEYWORDS,
        aliases=("day_spent", "daily_spent", "dailyspent", "today_spent", "day_used", "daily_used"),
    ),
}

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[-_]")


def normalize_field_name(field_name: str) -> List[str]:
    """Split a field name into lower-case words.

    ``"dailySpent"``, ``"daily-spent"`` and ``"daily_spent"`` all give
    ``["daily", "spent"]``.
    """
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", field_name)
    spaced = _SEPARATORS.sub(" ", spaced).lower()
    return [word for word in spaced.split() if word]


def _strip_separators(text: str) -> str:
    return _SEPARATORS.sub("", text)


@dataclass(frozen=True)
class _Score:
    score: int
    matched_keywords: Tuple[str, ...]
    reason: str


def _first_keyword(keywords: Sequence[str], words: List[str], field_lower: str) -> Optional[str]:
    for keyword in keywords:
        if keyword in words or keyword in field_lower:
            return keyword
    return None


def score_field(field_name: str, rule: MatchRule) -> _Score:
    """Score one candidate field against one rule."""
    field_lower = field_name.lower()

    for alias in rule.aliases:
        if field_lower == alias or _strip_separators(field_lower) == _strip_separators(alias):
            return _Score(100, (alias,), f'exact alias match "{alias}"')

    words = normalize_field_name(field_name)
    score = 0
    matched: List[str] = []
    reasons: List[str] = []

    time_keyword = _first_keyword(rule.time_keywords, words, field_lower)
    if time_keyword is not None:
        score += rule.time_weight
        matched.append(time_keyword)
        reasons.append(f'time keyword "{time_keyword}"')

    type_keyword = _first_keyword(rule.type_keywords, words, field_lower)
    if type_keyword is not None:
        score += rule.type_weight
        matched.append(type_keyword)
        reasons.append(f'type keyword "{type_keyword}"')

    if time_keyword is not None and type_keyword is not None:
        score += COMBO_BONUS
        reasons.append("time + type combination")

    if len(words) > LONG_NAME_WORDS:
        score -= LONG_NAME_PENALTY

    return _Score(max(0, score), tuple(matched), ", ".join(reasons))


def score_to_confidence(score: int) -> int:
    """Map a raw score onto 0..100, rounding halves up."""
    return min(100, int(math.floor(score / FULL_CONFIDENCE_SCORE * 100 + 0.5)))


def auto_match_fields(candidates: Sequence[str]) -> Dict[str, FieldMatch]:
    """Propose a source field for each target metric.

    Args:
        candidates: Candidate field names (dotted paths allowed), in
            the order they should be preferred on ties

    Returns:
        Mapping of target name to FieldMatch; targets without an
        eligible candidate are omitted
    """
    result: Dict[str, FieldMatch] = {}
    used_fields = set()

    for target in TARGET_FIELDS:
        rule = MATCH_RULES[target]
        best_field: Optional[str] = None
        best: Optional[_Score] = None

        for candidate in candidates:
            if candidate in used_fields:
                continue
            scored = score_field(candidate, rule)
            if scored.score < MIN_MATCH_SCORE:
                continue
            if best is None or scored.score > best.score:
                best_field, best = candidate, scored

        if best is not None and best_field is not None:
            used_fields.add(best_field)
            result[target] = FieldMatch(
                field=best_field,
                confidence=score_to_confidence(best.score),
                matched_keywords=best.matched_keywords,
                reason=best.reason,
            )

    return result


def match_quality(confidence: int) -> MatchQuality:
    """Describe how trustworthy a confidence value is."""
    if confidence >= 90:
        return MatchQuality("high confidence", "green")
    if confidence >= 70:
        return MatchQuality("medium confidence", "yellow")
    if confidence >= 50:
        return MatchQuality("low confidence", "dark_orange")
    return MatchQuality("poor match", "red")


def apply_matches(
    mapping: FieldMapping,
    matches: Dict[str, FieldMatch],
    min_confidence: int = DEFAULT_AUTO_APPLY_CONFIDENCE
) -> Tuple[FieldMapping, List[str]]:
    """Apply suggestions at or above ``min_confidence`` to a mapping.

    Returns:
        The updated mapping and the targets that were changed
    """
    applied: List[str] = []
    updated = mapping
    for target in TARGET_FIELDS:
        match = matches.get(target)
        if match is not None and match.confidence >= min_confidence:
            updated = updated.with_field(target, match.field)
            applied.append(target)
    return updated, applied
