"""
Director network discovery.

Builds company-to-company warm introduction edges from shared directors
and lists them as opportunities for a practice.
"""
from app.network.builder import NetworkBuilder
from app.network.opportunities import OpportunityRanker

__all__ = ["NetworkBuilder", "OpportunityRanker"]
