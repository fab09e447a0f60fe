"""
Director Network API endpoints.

Builds director-sharing networks for a practice's client companies and
lists the resulting warm introduction opportunities.
"""

import logging
from datetime import date, datetime
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.config import MissingCompaniesHouseAPIKeyError
from app.core.database import get_db
from app.core.models import NetworkBuildJob
from app.network.builder import InvalidBuildRequest, NetworkBuilder
from app.network.opportunities import OpportunityRanker
from app.network.schemas import BuildNetworkResult, NetworkOpportunity
from app.network.store import NetworkStore
from app.sources.companies_house.client import CompaniesHouseClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/network", tags=["network"])


# Request / Response Models


class BuildNetworkRequest(BaseModel):
    """Build the network for one client company."""

    practice_id: str = Field(..., min_length=1, description="Practice identifier")
    company_number: str = Field(
        ..., min_length=1, max_length=20, description="Client company registry number"
    )


class AppointmentResponse(BaseModel):
    """A stored director appointment."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    director_id: int
    company_number: str
    role: str
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None
    is_active: bool
    last_observed_at: Optional[datetime] = None


class CompanyDirectorResponse(BaseModel):
    """An active director of a company."""

    director_id: int
    name: str
    external_officer_id: Optional[str] = None
    role: str
    appointed_on: Optional[date] = None


class BuildJobResponse(BaseModel):
    """Status of a network build run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    practice_id: str
    company_number: str
    status: str
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    officers_processed: Optional[int] = None
    total_opportunities: Optional[int] = None
    error_message: Optional[str] = None


# Dependencies


async def get_registry_client() -> AsyncIterator[CompaniesHouseClient]:
    """Companies House client for one request, closed afterwards."""
    try:
        client = CompaniesHouseClient.from_settings()
    except MissingCompaniesHouseAPIKeyError as e:
        raise HTTPException(status_code=503, detail=str(e))

    async with client:
        yield client


# Endpoints


@router.post(
    "/build",
    response_model=BuildNetworkResult,
    summary="Build director network for a client company",
    description="""
    Finds every other active company that shares an active director with
    the given client company and records a warm introduction edge for each.

    Registry calls are made one at a time under the shared rate limit, so a
    client with many well-connected directors can take a while. Officers
    whose appointments cannot be fetched are skipped; re-running the build
    is safe and fills in what was missed.
    """,
)
async def build_network(
    request: BuildNetworkRequest,
    db: Session = Depends(get_db),
    registry: CompaniesHouseClient = Depends(get_registry_client),
):
    """Build one level of director-sharing connections."""
    builder = NetworkBuilder(db, registry)
    try:
        return await builder.build(request.practice_id, request.company_number)
    except InvalidBuildRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Network build failed for {request.company_number}")
        raise HTTPException(status_code=500, detail=f"Network build failed: {e}")


@router.get(
    "/opportunities",
    response_model=List[NetworkOpportunity],
    summary="List a practice's network opportunities",
    description="""
    Returns one opportunity per recorded connection, newest first, with the
    names of the connecting directors and the client company.
    """,
)
def get_network_opportunities(
    practice_id: str = Query(..., min_length=1, description="Practice identifier"),
    db: Session = Depends(get_db),
):
    """List warm introduction opportunities."""
    return OpportunityRanker(db).get_network_opportunities(practice_id)


@router.get(
    "/directors/{director_id}/appointments",
    response_model=List[AppointmentResponse],
    summary="Get a director's appointments",
)
def get_director_appointments(
    director_id: int,
    db: Session = Depends(get_db),
):
    """All recorded appointments of a director, most recent first."""
    store = NetworkStore(db)
    if store.get_director(director_id) is None:
        raise HTTPException(status_code=404, detail=f"Director {director_id} not found")
    return store.get_director_appointments(director_id)


@router.get(
    "/companies/{company_number}/directors",
    response_model=List[CompanyDirectorResponse],
    summary="Get a company's active directors",
)
def get_company_directors(
    company_number: str,
    db: Session = Depends(get_db),
):
    """Active directors recorded at a company."""
    appointments = NetworkStore(db).get_company_directors(company_number.strip().upper())
    return [
        CompanyDirectorResponse(
            director_id=a.director_id,
            name=a.director.name,
            external_officer_id=a.director.external_officer_id,
            role=a.role,
            appointed_on=a.appointed_on,
        )
        for a in appointments
    ]


@router.get(
    "/jobs/{job_id}",
    response_model=BuildJobResponse,
    summary="Get network build job status",
)
def get_build_job(
    job_id: int,
    db: Session = Depends(get_db),
):
    """Status and counts for one build run."""
    job = db.get(NetworkBuildJob, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job
