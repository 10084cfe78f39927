"""Text normalization used by the content guard.

Folds disguised text into a canonical form so the policy lexicon matches it:
lower-casing, diacritic stripping and reversal of simple leetspeak.
"""

from __future__ import annotations

import unicodedata

# Digits and symbols that only fold when touching a letter, since they are
# just as likely to be real numerals (ages, counts).
_ADJACENT_LEET = {
    "1": "i",
    "!": "i",
    "3": "e",
    "0": "o",
    "$": "s",
}

# Folded regardless of neighbours.
_ALWAYS_LEET = {"@": "a"}


def _is_letter(char: str) -> bool:
    return "a" <= char <= "z"


def strip_diacritics(text: str) -> str:
    """Decompose ``text`` (NFKD) and drop combining marks."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def fold_leetspeak(text: str) -> str:
    """Reverse leetspeak substitutions.

    Adjacency is judged against the unfolded input, so "n1ñ0" folds both
    digits while "15 yrs" keeps its numerals.
    """
    folded: list[str] = []
    last = len(text) - 1
    for index, char in enumerate(text):
        if char in _ALWAYS_LEET:
            folded.append(_ALWAYS_LEET[char])
            continue
        replacement = _ADJACENT_LEET.get(char)
        if replacement is None:
            folded.append(char)
            continue
        prev_char = text[index - 1] if index > 0 else ""
        next_char = text[index + 1] if index < last else ""
        near_letter = _is_letter(prev_char) or _is_letter(next_char)
        folded.append(replacement if near_letter else char)
    return "".join(folded)


def normalize_text(text: str) -> str:
    """Return the canonical form of ``text`` used for lexicon matching.

    Steps, in order: lower-case, NFKD with combining marks removed, leetspeak
    folding. Pure and deterministic.
    """
    return fold_leetspeak(strip_diacritics(text.lower()))


__all__ = ["fold_leetspeak", "normalize_text", "strip_diacritics"]
