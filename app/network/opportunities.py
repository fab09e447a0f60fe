"""
Opportunity Ranker.

Read path over a practice's stored network edges: one opportunity per
edge, newest first, with connecting director names and company names
resolved in batch.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from app.network.schemas import NetworkOpportunity
from app.network.store import NetworkStore

logger = logging.getLogger(__name__)


class OpportunityRanker:
    """Lists warm introduction opportunities for a practice."""

    def __init__(self, session: Session):
        self.session = session
        self.store = NetworkStore(session)

    def get_network_opportunities(self, practice_id: str) -> List[NetworkOpportunity]:
        """
        Get all opportunities recorded for a practice.

        Ordered by discovery time, newest first. Directors whose names can
        no longer be found are left out of connection_path.
        """
        connections = self.store.get_connections(practice_id)
        if not connections:
            return []

        director_names = self.store.get_director_names(
            director_id
            for connection in connections
            for director_id in connection.connecting_directors
        )
        companies = self.store.get_companies(
            [c.source_company for c in connections] + [c.target_company for c in connections]
        )

        opportunities = []
        for connection in connections:
            connecting = connection.connecting_directors
            source = companies.get(connection.source_company)
            target = companies.get(connection.target_company)

            opportunities.append(
                NetworkOpportunity(
                    company_number=connection.target_company,
                    company_name=(
                        connection.target_company_name
                        or (target.company_name if target else None)
                        or ""
                    ),
                    connection_strength=connection.connection_type,
                    connection_path=[
                        director_names[d] for d in connecting if d in director_names
                    ],
                    source_client=connection.source_company,
                    source_client_name=source.company_name if source else None,
                    connecting_directors=connecting,
                    sector=connection.target_sector,
                    status=target.company_status if target else None,
                )
            )

        logger.debug(f"{len(opportunities)} opportunities for practice {practice_id}")
        return opportunities
