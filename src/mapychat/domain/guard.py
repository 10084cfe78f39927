"""Deterministic content-policy guard.

Screens user text against a fixed, ordered set of lexicon rules before any
request reaches the upstream provider. This is a regex pre-filter over
normalized text, not a moderation model.

Rule order (first match wins):
    1. Underage lexicon
    2. Underage age pattern, unless an exclusion phrase matches
    3. Hard-prohibited topics
    4. Doxxing
    5. Real-identity marker (original text) combined with an NSFW term

Each rule keeps its own compiled pattern so it can be tested in isolation and
reports its own reason.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from mapychat.domain.exceptions import PolicyViolationError
from mapychat.domain.normalizer import normalize_text

UNDERAGE_LEXICON = re.compile(
    r"\b("
    r"menor(?:es)?|nin[oa]s?|adolescentes?|teen(?:ager)?s?|infantes?"
    r"|pre(?:adolecente|adolescente|pubescente)s?|preteens?|underage"
    r"|loli|lolicon|shota|shotacon|pedofil[oa]s?|pedophiles?"
    r")\b"
)

AGE_PATTERN = re.compile(
    r"\b(1[0-7]|[1-9])\s*(anos|years?|yrs?|y/o|yo)(\s*de\s*edad)?\b"
)

AGE_EXCLUSIONS = re.compile(
    r"\b("
    r"hace\s*\d+\s*anos"
    r"|anos\s*(de\s*experiencia|despues|atras|antiguedad)"
    r"|antiguedad\s*\d+\s*anos"
    r"|years?\s*(of\s*experience|ago|later)"
    r"|seniority"
    r")\b"
)

HARD_PROHIBITED = re.compile(
    r"\b("
    r"incesto|incest|zoofilia|bestialidad|bestiality"
    r"|violencia\s+sexual|sexual\s+violence|violacion|rape"
    r"|trata\s+de\s+(?:personas|blancas)|human\s+trafficking"
    r"|explotacion\s+(?:sexual|infantil)|sexual\s+exploitation"
    r"|sextortion|sextorsion"
    r")\b"
)

DOXXING = re.compile(
    r"\b("
    r"doxx?(?:eo|ear|ing|ed)?"
    r"|filtrar\s+datos|exponer\s+datos"
    r"|(?:leak|expose)\s+(?:personal|private)\s+(?:data|info\w*)"
    r")\b"
)

# Matched against the original text: handles and URLs lose meaning once
# lower-cased and leet-folded.
REAL_LIKENESS = re.compile(
    r"(@\w+|https?://(www\.)?(instagram|facebook|tiktok|x|twitter)\.com/\S+)"
)

NSFW_TERMS = re.compile(
    r"\b(sex|sexo|porn|porno|desnudos?|nudes?|naked|erot\w*|fetich\w*|xxx)\b"
)


@dataclass(slots=True, frozen=True)
class GuardRule:
    """A single policy rule.

    Attributes:
        reason: Human-readable reason reported on violation.
        pattern: Pattern searched in the normalized text.
        unless: Optional pattern that cancels the rule when found in the
            normalized text.
        original_marker: Optional pattern that must ALSO be found in the
            original, non-normalized text.
    """

    reason: str
    pattern: re.Pattern[str]
    unless: re.Pattern[str] | None = None
    original_marker: re.Pattern[str] | None = None

    def matches(self, text: str, normalized: str) -> bool:
        if self.original_marker is not None and not self.original_marker.search(text):
            return False
        if not self.pattern.search(normalized):
            return False
        if self.unless is not None and self.unless.search(normalized):
            return False
        return True


UNDERAGE_RULE = GuardRule("referencia a menores", UNDERAGE_LEXICON)
UNDERAGE_AGE_RULE = GuardRule(
    "referencia etaria a menores", AGE_PATTERN, unless=AGE_EXCLUSIONS
)
HARD_RULE = GuardRule("contenido hard prohibido", HARD_PROHIBITED)
DOXXING_RULE = GuardRule("doxxing", DOXXING)
REAL_LIKENESS_RULE = GuardRule(
    "likeness real en contexto NSFW", NSFW_TERMS, original_marker=REAL_LIKENESS
)

RULES: tuple[GuardRule, ...] = (
    UNDERAGE_RULE,
    UNDERAGE_AGE_RULE,
    HARD_RULE,
    DOXXING_RULE,
    REAL_LIKENESS_RULE,
)


def find_violation(text: str) -> GuardRule | None:
    """Return the first rule ``text`` violates, or None when it is clean."""
    normalized = normalize_text(text)
    for rule in RULES:
        if rule.matches(text, normalized):
            return rule
    return None


def guard_or_raise(text: str) -> None:
    """Raise PolicyViolationError if ``text`` violates any rule.

    Raises:
        PolicyViolationError: With the reason of the first matching rule.
    """
    rule = find_violation(text)
    if rule is not None:
        raise PolicyViolationError(rule.reason)


def guard_segments(segments: Iterable[str]) -> None:
    """Run the guard over every text segment, failing on the first violation."""
    for segment in segments:
        guard_or_raise(segment)


__all__ = [
    "AGE_EXCLUSIONS",
    "AGE_PATTERN",
    "DOXXING",
    "HARD_PROHIBITED",
    "NSFW_TERMS",
    "REAL_LIKENESS",
    "RULES",
    "UNDERAGE_LEXICON",
    "GuardRule",
    "find_violation",
    "guard_or_raise",
    "guard_segments",
]
