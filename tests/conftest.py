"""
Pytest configuration and shared fixtures.
"""
import pytest
from datetime import date
from typing import Dict, List, Optional, Set
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.api_errors import NotFoundError, RetryableError
from app.core.config import reset_settings
from app.core.models import Base
from app.core.rate_limiter import reset_rate_limiter
from app.core import network_models  # noqa: F401
from app.sources.companies_house.types import (
    AppointmentRecord,
    CompanyRecord,
    OfficerRecord,
    PartialDate,
)


@pytest.fixture(autouse=True)
def app_env(monkeypatch):
    """
    Minimal environment for every test.

    Settings and the shared rate limiter are rebuilt per test.
    """
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.delenv("COMPANIES_HOUSE_API_KEY", raising=False)
    monkeypatch.delenv("IDENTITY_MATCH_STRATEGY", raising=False)
    reset_settings()
    reset_rate_limiter()

    yield

    reset_settings()
    reset_rate_limiter()


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "DATABASE_URL",
        "COMPANIES_HOUSE_API_KEY",
        "COMPANIES_HOUSE_BASE_URL",
        "LOG_LEVEL",
        "REGISTRY_RATE_LIMIT_REQUESTS",
        "REGISTRY_RATE_LIMIT_WINDOW_SECONDS",
        "NETWORK_CALL_DELAY_SECONDS",
        "IDENTITY_MATCH_STRATEGY",
        "NAME_MATCH_THRESHOLD",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    reset_settings()

    yield

    reset_settings()


@pytest.fixture(scope="function")
def test_db():
    """
    Create an in-memory SQLite database for testing.

    Fresh database for each test. A single shared connection so the
    FastAPI TestClient thread sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_db):
    """
    Alias for test_db fixture.
    """
    yield test_db


# =============================================================================
# Registry Fixtures
# =============================================================================

def make_officer(
    name: str,
    officer_id: Optional[str] = None,
    role: str = "director",
    appointed_on: Optional[date] = date(2015, 4, 1),
    resigned_on: Optional[date] = None,
    nationality: Optional[str] = "British",
    dob: Optional[PartialDate] = None,
) -> OfficerRecord:
    """Officer record; officer_id becomes the appointments link."""
    return OfficerRecord(
        name=name,
        officer_role=role,
        appointed_on=appointed_on,
        resigned_on=resigned_on,
        appointments_ref=f"/officers/{officer_id}/appointments" if officer_id else None,
        nationality=nationality,
        date_of_birth=dob,
    )


def make_appointment(
    company_number: str,
    company_name: str = "",
    role: str = "director",
    appointed_on: Optional[date] = date(2018, 1, 1),
    resigned_on: Optional[date] = None,
) -> AppointmentRecord:
    return AppointmentRecord(
        company_number=company_number,
        company_name=company_name or f"COMPANY {company_number} LIMITED",
        company_status="active",
        officer_role=role,
        appointed_on=appointed_on,
        resigned_on=resigned_on,
    )


def make_company(
    company_number: str,
    company_name: str = "",
    status: str = "active",
    sic_codes: Optional[List[str]] = None,
) -> CompanyRecord:
    return CompanyRecord(
        company_number=company_number,
        company_name=company_name or f"COMPANY {company_number} LIMITED",
        company_status=status,
        sic_codes=sic_codes if sic_codes is not None else ["69201"],
    )


class FakeRegistry:
    """
    In-memory stand-in for CompaniesHouseClient.

    Unknown companies raise NotFoundError; refs and companies listed in
    `failing` raise a RetryableError, like a registry 5xx.
    """

    def __init__(self):
        self.officers: Dict[str, List[OfficerRecord]] = {}
        self.appointments: Dict[str, List[AppointmentRecord]] = {}
        self.companies: Dict[str, CompanyRecord] = {}
        self.failing: Set[str] = set()
        self.calls: List[tuple] = []

    def _maybe_fail(self, key: str) -> None:
        if key in self.failing:
            raise RetryableError(
                message=f"Server error for {key}",
                source="companies_house",
                status_code=503,
            )

    async def get_officers(self, company_number: str, include_resigned: bool = False):
        self.calls.append(("officers", company_number))
        self._maybe_fail(company_number)
        officers = self.officers.get(company_number, [])
        if not include_resigned:
            officers = [o for o in officers if o.is_active]
        return list(officers)

    async def get_officer_appointments(self, appointments_ref: str):
        self.calls.append(("appointments", appointments_ref))
        self._maybe_fail(appointments_ref)
        return list(self.appointments.get(appointments_ref, []))

    async def get_company(self, company_number: str):
        self.calls.append(("company", company_number))
        self._maybe_fail(company_number)
        if company_number not in self.companies:
            raise NotFoundError(
                message="Resource not found",
                source="companies_house",
                resource_id=f"company:{company_number}",
            )
        return self.companies[company_number]


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def jane_smith_registry(fake_registry):
    """
    Jane Smith directs 00000001 (the client), 00000002 (active) and
    00000003 (dissolved).
    """
    ref = "/officers/JS1/appointments"
    fake_registry.officers["00000001"] = [
        make_officer("SMITH, Jane", officer_id="JS1", dob=PartialDate(month=3, year=1970)),
    ]
    fake_registry.appointments[ref] = [
        make_appointment("00000001", "CLIENT CO LIMITED"),
        make_appointment("00000002", "TARGET CO LIMITED"),
        make_appointment("00000003", "DISSOLVED CO LIMITED"),
    ]
    fake_registry.companies["00000001"] = make_company("00000001", "CLIENT CO LIMITED")
    fake_registry.companies["00000002"] = make_company(
        "00000002", "TARGET CO LIMITED", sic_codes=["62012", "62020"]
    )
    fake_registry.companies["00000003"] = make_company(
        "00000003", "DISSOLVED CO LIMITED", status="dissolved"
    )
    return fake_registry
