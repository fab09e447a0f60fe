"""
Director identity resolution.

Maps a registry officer record to a durable Director id. Officers that
carry a registry officer id (in their appointments link) are matched on
that id exactly. Officers without one fall back to a name heuristic, which
is where the two strategies differ:

- ExactIdentityResolver: reuse a director with exactly the same name
- SimilarityIdentityResolver: reuse the closest fuzzy name match

Name matching is best effort: two different people with the same name and
no officer id are conflated, and (under the exact strategy) one person
spelled two ways becomes two directors.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from app.core.config import get_settings
from app.network.person_matcher import PersonNameMatcher, surname_prefix
from app.network.store import NetworkStore
from app.sources.companies_house.metadata import extract_officer_id
from app.sources.companies_house.types import OfficerRecord

logger = logging.getLogger(__name__)


class IdentityResolver(ABC):
    """Resolves officer records to director ids."""

    def __init__(self, store: NetworkStore):
        self.store = store

    def resolve(self, officer: OfficerRecord) -> int:
        """
        Resolve an officer to a director id, creating the director if needed.

        Returns:
            Director id
        """
        officer_id = extract_officer_id(officer.appointments_ref)
        date_of_birth = officer.date_of_birth.as_month_year() if officer.date_of_birth else None

        if officer_id:
            return self.store.upsert_director_by_officer_id(
                officer_id,
                name=officer.name,
                date_of_birth=date_of_birth,
                nationality=officer.nationality,
            )

        existing_id = self.match_by_name(officer)
        if existing_id is not None:
            logger.debug(f"Matched '{officer.name}' to director {existing_id} by name")
            return existing_id

        # Keyed whatever the strategy, so switching to similarity matching
        # later still finds directors created now
        return self.store.create_director(
            name=officer.name,
            date_of_birth=date_of_birth,
            nationality=officer.nationality,
            surname_prefix=surname_prefix(officer.name),
        )

    @abstractmethod
    def match_by_name(self, officer: OfficerRecord) -> Optional[int]:
        """Find an existing director (without an officer id) for this officer's name."""


class ExactIdentityResolver(IdentityResolver):
    """Name fallback on exact string equality."""

    def match_by_name(self, officer: OfficerRecord) -> Optional[int]:
        candidates = self.store.find_anonymous_directors_by_name(officer.name)
        return candidates[0].id if candidates else None


class SimilarityIdentityResolver(IdentityResolver):
    """Name fallback on fuzzy similarity among directors sharing a surname prefix."""

    def __init__(self, store: NetworkStore, matcher: Optional[PersonNameMatcher] = None):
        super().__init__(store)
        self.matcher = matcher or PersonNameMatcher()

    def match_by_name(self, officer: OfficerRecord) -> Optional[int]:
        candidates = self.store.find_anonymous_directors_by_surname_prefix(
            surname_prefix(officer.name)
        )
        if not candidates:
            return None

        best = self.matcher.best_match(officer.name, [c.name for c in candidates])
        if best is None:
            return None

        index, result = best
        logger.debug(
            f"Similarity match '{officer.name}' ~ '{candidates[index].name}' "
            f"({result.match_type}, {result.similarity})"
        )
        return candidates[index].id


def get_identity_resolver(store: NetworkStore, strategy: Optional[str] = None) -> IdentityResolver:
    """
    Build the identity resolver for a strategy name.

    Args:
        store: Persistence used for lookups and creation
        strategy: "exact" or "similarity" (defaults to settings)
    """
    settings = get_settings()
    strategy = (strategy or settings.identity_match_strategy).lower()

    if strategy == "exact":
        return ExactIdentityResolver(store)
    if strategy == "similarity":
        return SimilarityIdentityResolver(
            store, PersonNameMatcher(match_threshold=settings.name_match_threshold)
        )
    raise ValueError(f"Unknown identity match strategy: {strategy}")
