"""
Pydantic models for director network results.

These are the shapes returned by the network builder and the opportunity
ranker, and serialized as-is by the API.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class AppointmentSummary(BaseModel):
    """Another company a director serves, as seen during a build."""
    company_number: str
    company_name: str = ""
    role: str
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None
    is_active: bool = True
    sector: Optional[str] = None
    status: Optional[str] = None


class NetworkOpportunity(BaseModel):
    """A target company reachable through a warm introduction."""
    company_number: str
    company_name: str = ""
    connection_strength: str = Field(
        "direct", description="Connection type: direct or shared_director"
    )
    connection_path: List[str] = Field(
        default_factory=list, description="Names of the connecting directors"
    )
    source_client: str
    source_client_name: Optional[str] = None
    connecting_directors: List[int] = Field(default_factory=list)
    sector: Optional[str] = None
    status: Optional[str] = None


class DirectorNetworkDetail(BaseModel):
    """Per-director result of a network build."""
    director_id: int
    director_name: str
    appointments: List[AppointmentSummary] = Field(default_factory=list)
    total_companies: int = 1
    active_companies: int = 0
    your_clients: List[str] = Field(default_factory=list)
    opportunities: List[NetworkOpportunity] = Field(default_factory=list)


class BuildNetworkResult(BaseModel):
    """Result of building the network for one client company."""
    networks: List[DirectorNetworkDetail] = Field(default_factory=list)
    total_opportunities: int = 0
    job_id: Optional[int] = None
    message: Optional[str] = None
