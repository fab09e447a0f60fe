"""
Officer name matching for directors without a registry officer id.

Companies House lists officers as "SURNAME, Forenames", sometimes with a
title or post-nominals attached. Names are parsed into (forenames, surname)
and compared part by part:

- surnames by string similarity (catches variants like JOHNSTON/JOHNSTONE
  among directors sharing a surname prefix)
- the first forename exactly, by nickname (Liz/Elizabeth), by initial, or
  by string similarity
- middle names are ignored

A pair scores the weaker of its forename and surname scores, so a perfect
surname cannot carry an unrelated forename.
"""

import re
import logging
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Canonical forename -> the short forms it is registered under
_NICKNAMES = {
    "robert": ("bob", "bobby", "rob", "robbie"),
    "william": ("bill", "billy", "will"),
    "james": ("jim", "jimmy", "jamie"),
    "michael": ("mike", "mick"),
    "richard": ("dick", "rick", "rich"),
    "thomas": ("tom", "tommy"),
    "daniel": ("dan", "danny"),
    "david": ("dave",),
    "joseph": ("joe",),
    "stephen": ("steve", "steven"),
    "christopher": ("chris",),
    "edward": ("ed", "eddie", "ted"),
    "anthony": ("tony",),
    "matthew": ("matt",),
    "alexander": ("alex",),
    "andrew": ("andy",),
    "benjamin": ("ben",),
    "charles": ("charlie",),
    "frederick": ("fred",),
    "henry": ("harry",),
    "john": ("jack", "jon"),
    "nicholas": ("nick",),
    "philip": ("phil",),
    "peter": ("pete",),
    "samuel": ("sam",),
    "elizabeth": ("liz", "beth", "libby"),
    "katherine": ("kate", "kath", "cathy"),
    "margaret": ("maggie", "meg"),
    "susan": ("sue",),
    "jennifer": ("jen", "jenny"),
    "joanne": ("jo",),
    "amanda": ("mandy",),
    "victoria": ("vicky",),
    "rebecca": ("becky",),
}

NICKNAME_MAP: Dict[str, str] = {
    short: canonical for canonical, shorts in _NICKNAMES.items() for short in shorts
}

TITLES = {"mr", "mrs", "ms", "miss", "mx", "dr", "prof", "sir", "dame", "lord", "lady", "rev"}

POST_NOMINALS = {
    "jr", "sr", "ii", "iii", "iv", "phd", "obe", "mbe", "cbe", "kbe",
    "fca", "aca", "acca", "fcca", "cta", "qc", "kc",
}

# Length of the surname prefix used to pick similarity candidates
SURNAME_PREFIX_LENGTH = 4

NICKNAME_SCORE = 0.95
# Below the default threshold: "J SMITH" only joins "Jane SMITH" when loosened
INITIAL_SCORE = 0.85

_PUNCTUATION = re.compile(r"[^\w\s\-,']")


class ParsedName(NamedTuple):
    forenames: Tuple[str, ...]
    surname: str

    @property
    def first(self) -> str:
        return self.forenames[0] if self.forenames else ""


@dataclass
class PersonMatchResult:
    """Outcome of comparing two officer names."""

    matched: bool
    similarity: float
    match_type: str  # name_exact, nickname_match, initial_match, name_fuzzy, no_match
    notes: Optional[str] = None


def string_similarity(a: str, b: str) -> float:
    """0.0 (nothing shared) to 1.0 (identical)."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def _tokens(text: str) -> list:
    words = [w.strip(".'") for w in text.split()]
    return [w for w in words if w]


def parse_name(name: Optional[str]) -> ParsedName:
    """
    Split an officer name into forenames and surname.

    "SMITH, Jane Elizabeth" and "Dr Jane Elizabeth Smith FCA" both give
    (("jane", "elizabeth"), "smith"). A single word is taken as the surname.
    """
    if not name:
        return ParsedName((), "")

    cleaned = _PUNCTUATION.sub(" ", name.lower())

    if "," in cleaned:
        surname_part, _, forename_part = cleaned.partition(",")
        surname_words = _tokens(surname_part)
        forenames = _tokens(forename_part.replace(",", " "))
    else:
        words = _tokens(cleaned)
        while words and words[-1] in POST_NOMINALS:
            words.pop()
        surname_words = words[-1:]
        forenames = words[:-1]

    forenames = [w for w in forenames if w not in POST_NOMINALS]
    while forenames and forenames[0] in TITLES:
        forenames.pop(0)

    return ParsedName(tuple(forenames), " ".join(surname_words))


def canonical_forename(forename: str) -> str:
    return NICKNAME_MAP.get(forename, forename)


def surname_prefix(name: Optional[str]) -> Optional[str]:
    """
    Leading characters of the parsed surname, or None for an empty name.

    Spellings that differ after the prefix (JOHNSTON/JOHNSTONE) share it in
    both directions, so candidate lookup does not depend on which was stored
    first. Typos inside the prefix are not found.
    """
    surname = parse_name(name).surname
    return surname[:SURNAME_PREFIX_LENGTH] or None


class PersonNameMatcher:
    """
    Scores officer name pairs; a pair matches at match_threshold or above.
    """

    def __init__(self, match_threshold: float = 0.9):
        self.match_threshold = match_threshold

    def normalize_name(self, name: Optional[str]) -> str:
        """Display form "forenames surname", lowercased, title and suffixes removed."""
        parsed = parse_name(name)
        return " ".join(parsed.forenames + (parsed.surname,)).strip()

    def _forename_score(self, first1: str, first2: str) -> Tuple[float, str]:
        if first1 == first2:
            return 1.0, "name_exact"
        if canonical_forename(first1) == canonical_forename(first2):
            return NICKNAME_SCORE, "nickname_match"
        if (len(first1) == 1 or len(first2) == 1) and first1[0] == first2[0]:
            return INITIAL_SCORE, "initial_match"
        return string_similarity(first1, first2), "name_fuzzy"

    def compare(self, name1: Optional[str], name2: Optional[str]) -> PersonMatchResult:
        """Compare two officer names."""
        a, b = parse_name(name1), parse_name(name2)

        if not a.surname or not b.surname:
            return PersonMatchResult(False, 0.0, "no_match", notes="Empty name")

        surname_score = string_similarity(a.surname, b.surname)

        if not a.first or not b.first:
            # Surname-only names only ever match each other exactly
            exact = a == b
            return PersonMatchResult(
                exact, 1.0 if exact else 0.0, "name_exact" if exact else "no_match",
                notes=None if exact else "Missing forename",
            )

        forename_score, match_type = self._forename_score(a.first, b.first)
        similarity = round(min(forename_score, surname_score), 3)

        if surname_score < 1.0 and match_type == "name_exact":
            match_type = "name_fuzzy"

        if similarity < self.match_threshold:
            return PersonMatchResult(
                False, similarity, "no_match",
                notes=f"forename {forename_score:.3f}, surname {surname_score:.3f}",
            )
        return PersonMatchResult(True, similarity, match_type)

    def best_match(
        self, name: str, candidates: Sequence[str]
    ) -> Optional[Tuple[int, PersonMatchResult]]:
        """
        Highest-scoring matching candidate as (index, result), or None.

        Ties go to the earliest candidate.
        """
        scored = [
            (index, result)
            for index, result in ((i, self.compare(name, c)) for i, c in enumerate(candidates))
            if result.matched
        ]
        if not scored:
            return None
        return max(scored, key=lambda pair: pair[1].similarity)
