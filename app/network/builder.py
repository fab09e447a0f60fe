"""
Director Network Builder.

Given a practice's client company, finds every other active company that
shares an active director with it and records the result:

1. Fetch the client company's active officers from the registry
2. Resolve each officer to a Director and record the client appointment
3. Fetch each officer's appointment history
4. Fetch each other active appointment's company and record the appointment
5. Record a direct network edge for each target company that is itself active

Resignations the registry reports (at the client or elsewhere) end the
matching stored appointment; they never create new ones.

Registry calls are made strictly one after another with a fixed delay
between them, since every build shares one registry rate limit budget.
Registry failures skip the affected officer or appointment; database
failures fail the build. All writes are idempotent upserts, so a failed
or repeated build can simply be run again.
"""

import asyncio
import enum
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.api_errors import FetchError
from app.core.config import get_settings
from app.core.models import JobStatus, NetworkBuildJob
from app.core.network_models import ConnectionType
from app.network.identity import IdentityResolver, get_identity_resolver
from app.network.schemas import (
    AppointmentSummary,
    BuildNetworkResult,
    DirectorNetworkDetail,
    NetworkOpportunity,
)
from app.network.store import NetworkStore
from app.sources.companies_house.metadata import extract_officer_id, normalize_role
from app.sources.companies_house.types import (
    AppointmentRecord,
    CompanyRecord,
    OfficerRecord,
)

logger = logging.getLogger(__name__)

# Officer roles that count as directors for network discovery
ACTIVE_OFFICER_ROLES = {"director", "llp member", "secretary"}

ACTIVE_COMPANY_STATUS = "active"


class BuildState(str, enum.Enum):
    """Where a build currently is."""
    IDLE = "idle"
    FETCHING_SOURCE_OFFICERS = "fetching_source_officers"
    RESOLVING_IDENTITY = "resolving_identity"
    FETCHING_OTHER_APPOINTMENTS = "fetching_other_appointments"
    FETCHING_COMPANY_DETAIL = "fetching_company_detail"
    PERSISTING_EDGE = "persisting_edge"
    DONE = "done"
    FAILED = "failed"


class InvalidBuildRequest(ValueError):
    """Raised when a build is requested without a practice or company."""
    pass


def is_active_director(officer: OfficerRecord) -> bool:
    """Active officer in one of the roles used for network discovery."""
    return officer.is_active and normalize_role(officer.officer_role) in ACTIVE_OFFICER_ROLES


class NetworkBuilder:
    """
    Builds one level of director-sharing connections for a client company.

    The registry argument is anything with the CompaniesHouseClient
    coroutine methods get_officers, get_officer_appointments and
    get_company.
    """

    def __init__(
        self,
        session: Session,
        registry: Any,
        identity_resolver: Optional[IdentityResolver] = None,
        call_delay: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.session = session
        self.store = NetworkStore(session)
        self.registry = registry
        self.identity_resolver = identity_resolver or get_identity_resolver(self.store)
        if call_delay is None:
            call_delay = get_settings().network_call_delay_seconds
        self.call_delay = call_delay
        self._sleep = sleep or asyncio.sleep
        self.state = BuildState.IDLE
        self._registry_calls = 0

    def _transition(self, state: BuildState) -> None:
        if state != self.state:
            logger.debug(f"Network build: {self.state.value} -> {state.value}")
            self.state = state

    async def _registry_call(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Call the registry, pausing call_delay seconds after the previous call."""
        if self._registry_calls and self.call_delay > 0:
            await self._sleep(self.call_delay)
        self._registry_calls += 1
        return await func(*args)

    # -------------------------------------------------------------------------
    # Job tracking
    # -------------------------------------------------------------------------

    def _start_job(self, practice_id: str, company_number: str) -> int:
        job = NetworkBuildJob(
            practice_id=practice_id,
            company_number=company_number,
            status=JobStatus.RUNNING,
            started_at=datetime.utcnow(),
        )
        self.session.add(job)
        self.session.commit()
        return job.id

    def _finish_job(self, job_id: int, result: BuildNetworkResult) -> None:
        job = self.session.get(NetworkBuildJob, job_id)
        job.status = JobStatus.SUCCESS
        job.completed_at = datetime.utcnow()
        job.officers_processed = len(result.networks)
        job.total_opportunities = result.total_opportunities
        self.session.commit()

    def _fail_job(self, job_id: int, error: Exception) -> None:
        try:
            job = self.session.get(NetworkBuildJob, job_id)
            job.status = JobStatus.FAILED
            job.completed_at = datetime.utcnow()
            job.error_message = str(error)
            self.session.commit()
        except Exception as job_error:
            logger.error(f"Could not mark network build job {job_id} failed: {job_error}")
            self.session.rollback()

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    async def build(self, practice_id: str, company_number: str) -> BuildNetworkResult:
        """
        Build the director network for a practice's client company.

        Args:
            practice_id: Practice the connections are recorded for
            company_number: Client company registry number

        Returns:
            Per-director summaries and the total opportunity count

        Raises:
            InvalidBuildRequest: If practice_id or company_number is blank
            FetchError: If the client company's officers cannot be fetched
            SQLAlchemyError: If a write fails
        """
        practice_id = (practice_id or "").strip()
        company_number = (company_number or "").strip().upper()
        if not practice_id or not company_number:
            raise InvalidBuildRequest("practice_id and company_number are required")

        self.state = BuildState.IDLE
        self._registry_calls = 0
        job_id = self._start_job(practice_id, company_number)
        logger.info(
            f"Building director network for {company_number} "
            f"(practice={practice_id}, job={job_id})"
        )

        try:
            result = await self._build(practice_id, company_number)
        except Exception as e:
            logger.error(f"Network build for {company_number} failed: {e}")
            self.session.rollback()
            self._transition(BuildState.FAILED)
            self._fail_job(job_id, e)
            raise

        self._finish_job(job_id, result)
        result.job_id = job_id
        self._transition(BuildState.DONE)

        logger.info(
            f"Director network for {company_number}: {len(result.networks)} directors, "
            f"{result.total_opportunities} opportunities "
            f"({self._registry_calls} registry calls)"
        )
        return result

    async def _build(self, practice_id: str, company_number: str) -> BuildNetworkResult:
        self._transition(BuildState.FETCHING_SOURCE_OFFICERS)
        officers: List[OfficerRecord] = await self._registry_call(
            self.registry.get_officers, company_number, True
        )
        active_directors = [o for o in officers if is_active_director(o)]

        for officer in officers:
            if not officer.is_active:
                self._record_source_resignation(company_number, officer)

        if not active_directors:
            logger.info(f"No active directors found for {company_number}")
            return BuildNetworkResult(message="No officers found")

        await self._record_source_company(company_number)

        networks: List[DirectorNetworkDetail] = []
        for officer in active_directors:
            detail = await self._process_officer(practice_id, company_number, officer)
            networks.append(detail)
            # Keep each officer's writes even if a later officer fails
            self.session.commit()

        return BuildNetworkResult(
            networks=networks,
            total_opportunities=sum(len(n.opportunities) for n in networks),
        )

    def _record_source_resignation(self, company_number: str, officer: OfficerRecord) -> None:
        """End the stored client appointment of a known director who has resigned."""
        officer_id = extract_officer_id(officer.appointments_ref)
        if not officer_id:
            return
        director = self.store.get_director_by_officer_id(officer_id)
        if director is None:
            return
        self.store.record_resignation(
            director.id, company_number, officer.officer_role, officer.resigned_on
        )

    async def _record_source_company(self, company_number: str) -> None:
        """Best-effort refresh of the client company's name for opportunity listings."""
        try:
            company: CompanyRecord = await self._registry_call(
                self.registry.get_company, company_number
            )
        except FetchError as e:
            logger.warning(f"Could not fetch client company {company_number}: {e}")
            return
        self.store.upsert_company(
            company_number,
            company_name=company.company_name,
            company_status=company.company_status,
            sector=company.sector,
            sic_codes=company.sic_codes or None,
        )

    async def _process_officer(
        self, practice_id: str, company_number: str, officer: OfficerRecord
    ) -> DirectorNetworkDetail:
        self._transition(BuildState.RESOLVING_IDENTITY)
        director_id = self.identity_resolver.resolve(officer)

        self.store.upsert_appointment(
            director_id,
            company_number,
            officer.officer_role,
            appointed_on=officer.appointed_on,
            resigned_on=officer.resigned_on,
        )

        appointments: List[AppointmentSummary] = []
        if officer.appointments_ref:
            for appointment in await self._fetch_other_appointments(company_number, officer):
                if appointment.is_active:
                    appointments.append(await self._process_appointment(director_id, appointment))
                else:
                    self.store.record_resignation(
                        director_id,
                        appointment.company_number,
                        appointment.officer_role,
                        appointment.resigned_on,
                    )

        opportunities: Dict[str, NetworkOpportunity] = {}
        for appointment in appointments:
            if not appointment.is_active or appointment.status != ACTIVE_COMPANY_STATUS:
                continue

            self._transition(BuildState.PERSISTING_EDGE)
            self.store.upsert_connection(
                practice_id=practice_id,
                source_company=company_number,
                target_company=appointment.company_number,
                director_id=director_id,
                target_company_name=appointment.company_name,
                target_sector=appointment.sector,
            )
            # One opportunity per target even if the director holds several roles there
            opportunities.setdefault(
                appointment.company_number,
                NetworkOpportunity(
                    company_number=appointment.company_number,
                    company_name=appointment.company_name,
                    connection_strength=ConnectionType.DIRECT,
                    connection_path=[officer.name],
                    source_client=company_number,
                    connecting_directors=[director_id],
                    sector=appointment.sector,
                    status=appointment.status,
                ),
            )

        return DirectorNetworkDetail(
            director_id=director_id,
            director_name=officer.name,
            appointments=appointments,
            total_companies=len(appointments) + 1,
            active_companies=sum(1 for a in appointments if a.is_active),
            your_clients=[company_number],
            opportunities=list(opportunities.values()),
        )

    async def _fetch_other_appointments(
        self, company_number: str, officer: OfficerRecord
    ) -> List[AppointmentRecord]:
        """The officer's appointments at companies other than the client."""
        self._transition(BuildState.FETCHING_OTHER_APPOINTMENTS)
        try:
            history: List[AppointmentRecord] = await self._registry_call(
                self.registry.get_officer_appointments, officer.appointments_ref
            )
        except FetchError as e:
            logger.warning(f"Skipping appointments for {officer.name}: {e}")
            return []

        return [a for a in history if a.company_number and a.company_number != company_number]

    async def _process_appointment(
        self, director_id: int, appointment: AppointmentRecord
    ) -> AppointmentSummary:
        company, error = await self._fetch_company(appointment.company_number)
        if error:
            logger.warning(
                f"Could not fetch company {appointment.company_number}, "
                f"recording appointment without details: {error}"
            )

        company_name = (company.company_name if company else "") or appointment.company_name or ""
        status = None
        if company and company.company_status:
            status = company.company_status.lower()

        self._transition(BuildState.PERSISTING_EDGE)
        self.store.upsert_appointment(
            director_id,
            appointment.company_number,
            appointment.officer_role,
            appointed_on=appointment.appointed_on,
            resigned_on=appointment.resigned_on,
        )
        self.store.upsert_company(
            appointment.company_number,
            company_name=company_name,
            company_status=company.company_status if company else None,
            sector=company.sector if company else None,
            sic_codes=(company.sic_codes or None) if company else None,
        )

        return AppointmentSummary(
            company_number=appointment.company_number,
            company_name=company_name,
            role=normalize_role(appointment.officer_role),
            appointed_on=appointment.appointed_on,
            resigned_on=appointment.resigned_on,
            is_active=appointment.is_active,
            sector=company.sector if company else None,
            status=status,
        )

    async def _fetch_company(
        self, company_number: str
    ) -> Tuple[Optional[CompanyRecord], Optional[FetchError]]:
        self._transition(BuildState.FETCHING_COMPANY_DETAIL)
        try:
            return await self._registry_call(self.registry.get_company, company_number), None
        except FetchError as e:
            return None, e
