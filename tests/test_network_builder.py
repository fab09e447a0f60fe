"""
Unit tests for the Director Network Builder.

The registry is an in-memory fake; persistence is in-memory SQLite.
"""
import pytest
from datetime import date
from sqlalchemy.exc import OperationalError

from app.core.api_errors import FetchError
from app.core.models import JobStatus, NetworkBuildJob
from app.core.network_models import (
    Director,
    DirectorAppointment,
    DirectorNetwork,
    DirectorNetworkMember,
    RegistryCompany,
)
from app.network.builder import BuildState, InvalidBuildRequest, NetworkBuilder

from conftest import make_appointment, make_company, make_officer


def make_builder(session, registry, **kwargs):
    kwargs.setdefault("call_delay", 0)
    return NetworkBuilder(session, registry, **kwargs)


def edges(session):
    return sorted(
        (n.practice_id, n.source_company, n.target_company)
        for n in session.query(DirectorNetwork).all()
    )


class TestJaneSmithScenario:
    """One director, an active and a dissolved other company."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_active_target_connected(self, test_db, jane_smith_registry):
        result = await make_builder(test_db, jane_smith_registry).build("p1", "00000001")

        assert result.total_opportunities == 1
        assert edges(test_db) == [("p1", "00000001", "00000002")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_appointments_recorded_for_all_companies(self, test_db, jane_smith_registry):
        await make_builder(test_db, jane_smith_registry).build("p1", "00000001")

        director = test_db.query(Director).one()
        companies = sorted(
            a.company_number
            for a in test_db.query(DirectorAppointment).filter_by(director_id=director.id)
        )
        assert companies == ["00000001", "00000002", "00000003"]
        assert director.external_officer_id == "JS1"
        assert director.date_of_birth == "3/1970"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_director_summary(self, test_db, jane_smith_registry):
        result = await make_builder(test_db, jane_smith_registry).build("p1", "00000001")

        assert len(result.networks) == 1
        summary = result.networks[0]
        assert summary.director_name == "SMITH, Jane"
        assert summary.total_companies == 3
        assert summary.active_companies == 2
        assert summary.your_clients == ["00000001"]
        assert [a.company_number for a in summary.appointments] == ["00000002", "00000003"]

        opportunity = summary.opportunities[0]
        assert opportunity.company_number == "00000002"
        assert opportunity.company_name == "TARGET CO LIMITED"
        assert opportunity.connection_strength == "direct"
        assert opportunity.connection_path == ["SMITH, Jane"]
        assert opportunity.connecting_directors == [summary.director_id]
        assert opportunity.sector == "62012"
        assert opportunity.status == "active"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_companies_recorded(self, test_db, jane_smith_registry):
        await make_builder(test_db, jane_smith_registry).build("p1", "00000001")

        assert test_db.get(RegistryCompany, "00000001").company_name == "CLIENT CO LIMITED"
        assert test_db.get(RegistryCompany, "00000003").company_status == "dissolved"
        assert test_db.get(RegistryCompany, "00000002").sic_codes == ["62012", "62020"]


class TestIdempotence:
    """Re-running a build converges on the same rows."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_run_adds_no_rows(self, test_db, jane_smith_registry):
        builder = make_builder(test_db, jane_smith_registry)
        first = await builder.build("p1", "00000001")
        second = await builder.build("p1", "00000001")

        assert first.total_opportunities == second.total_opportunities == 1
        assert test_db.query(Director).count() == 1
        assert test_db.query(DirectorAppointment).count() == 3
        assert test_db.query(DirectorNetwork).count() == 1
        assert test_db.query(DirectorNetworkMember).count() == 1
        assert test_db.query(NetworkBuildJob).count() == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_practices_share_directors_not_edges(self, test_db, jane_smith_registry):
        await make_builder(test_db, jane_smith_registry).build("p1", "00000001")
        await make_builder(test_db, jane_smith_registry).build("p2", "00000001")

        assert test_db.query(Director).count() == 1
        assert test_db.query(DirectorAppointment).count() == 3
        assert edges(test_db) == [
            ("p1", "00000001", "00000002"),
            ("p2", "00000001", "00000002"),
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_shared_target_merges_directors(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [
            make_officer("SMITH, Jane", officer_id="JS1"),
            make_officer("BROWN, Alice", officer_id="AB3"),
        ]
        fake_registry.appointments["/officers/JS1/appointments"] = [make_appointment("00000002")]
        fake_registry.appointments["/officers/AB3/appointments"] = [make_appointment("00000002")]
        fake_registry.companies["00000002"] = make_company("00000002")

        result = await make_builder(test_db, fake_registry).build("p1", "00000001")

        assert result.total_opportunities == 2
        network = test_db.query(DirectorNetwork).one()
        assert len(network.connecting_directors) == 2


class TestReObservation:
    """Later registry observations update stored appointments."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_target_resignation_updates_row(self, test_db, jane_smith_registry):
        builder = make_builder(test_db, jane_smith_registry)
        await builder.build("p1", "00000001")

        jane_smith_registry.appointments["/officers/JS1/appointments"][1] = make_appointment(
            "00000002", "TARGET CO LIMITED", resigned_on=date(2024, 3, 31)
        )
        result = await builder.build("p1", "00000001")

        rows = test_db.query(DirectorAppointment).filter_by(company_number="00000002").all()
        assert len(rows) == 1
        assert rows[0].is_active is False
        assert rows[0].resigned_on == date(2024, 3, 31)
        assert result.total_opportunities == 0
        # Edges are never deleted
        assert test_db.query(DirectorNetwork).count() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_source_resignation_updates_row(self, test_db, jane_smith_registry):
        builder = make_builder(test_db, jane_smith_registry)
        await builder.build("p1", "00000001")

        jane_smith_registry.officers["00000001"] = [
            make_officer("SMITH, Jane", officer_id="JS1", resigned_on=date(2024, 1, 15)),
        ]
        result = await builder.build("p1", "00000001")

        row = test_db.query(DirectorAppointment).filter_by(company_number="00000001").one()
        assert row.is_active is False
        assert row.resigned_on == date(2024, 1, 15)
        assert result.networks == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_resignation_creates_nothing(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [
            make_officer("SMITH, Jane", officer_id="JS1"),
        ]
        fake_registry.appointments["/officers/JS1/appointments"] = [
            make_appointment("00000007", resigned_on=date(2010, 1, 1)),
        ]

        await make_builder(test_db, fake_registry).build("p1", "00000001")

        assert test_db.query(DirectorAppointment).filter_by(company_number="00000007").count() == 0


class TestIdentity:
    """Director identity across builds."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_officer_id_different_name(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [make_officer("SMITH, Jane", officer_id="JS1")]
        fake_registry.officers["00000005"] = [
            make_officer("SMITH, Jane Elizabeth", officer_id="JS1"),
        ]

        builder = make_builder(test_db, fake_registry)
        first = await builder.build("p1", "00000001")
        second = await builder.build("p1", "00000005")

        assert first.networks[0].director_id == second.networks[0].director_id
        assert test_db.query(Director).count() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_officer_without_ref_recorded_at_source_only(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [make_officer("BROWN, Alice")]

        result = await make_builder(test_db, fake_registry).build("p1", "00000001")

        assert result.networks[0].appointments == []
        assert test_db.query(DirectorAppointment).count() == 1
        assert ("appointments", None) not in fake_registry.calls


class TestPartialFailure:
    """Registry failures skip one unit of work, not the build."""

    @pytest.fixture
    def three_officer_registry(self, fake_registry):
        fake_registry.officers["00000001"] = [
            make_officer("SMITH, Jane", officer_id="O1"),
            make_officer("JONES, Peter", officer_id="O2"),
            make_officer("BROWN, Alice", officer_id="O3"),
        ]
        fake_registry.appointments["/officers/O1/appointments"] = [make_appointment("00000002")]
        fake_registry.appointments["/officers/O2/appointments"] = [make_appointment("00000004")]
        fake_registry.appointments["/officers/O3/appointments"] = [make_appointment("00000005")]
        for number in ("00000002", "00000004", "00000005"):
            fake_registry.companies[number] = make_company(number)
        return fake_registry

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_officer_fails(self, test_db, three_officer_registry):
        three_officer_registry.failing.add("/officers/O2/appointments")

        result = await make_builder(test_db, three_officer_registry).build("p1", "00000001")

        assert result.total_opportunities == 2
        assert edges(test_db) == [
            ("p1", "00000001", "00000002"),
            ("p1", "00000001", "00000005"),
        ]
        assert len(result.networks) == 3
        assert result.networks[1].opportunities == []
        # The failed officer is still recorded at the client
        assert test_db.query(DirectorAppointment).filter_by(company_number="00000001").count() == 3

        job = test_db.get(NetworkBuildJob, result.job_id)
        assert job.status == JobStatus.SUCCESS

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_company_detail_failure(self, test_db, three_officer_registry):
        three_officer_registry.failing.add("00000004")

        result = await make_builder(test_db, three_officer_registry).build("p1", "00000001")

        assert result.total_opportunities == 2
        # Appointment kept under the name from the appointment history
        appointment = test_db.query(DirectorAppointment).filter_by(company_number="00000004").one()
        assert appointment.is_active is True
        company = test_db.get(RegistryCompany, "00000004")
        assert company.company_name == "COMPANY 00000004 LIMITED"
        assert company.company_status is None
        assert ("p1", "00000001", "00000004") not in edges(test_db)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_company_treated_as_detail_failure(self, test_db, three_officer_registry):
        del three_officer_registry.companies["00000005"]

        result = await make_builder(test_db, three_officer_registry).build("p1", "00000001")

        assert result.total_opportunities == 2
        assert test_db.query(DirectorAppointment).filter_by(company_number="00000005").count() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_source_officer_fetch_failure_fails_build(self, test_db, fake_registry):
        fake_registry.failing.add("00000001")
        builder = make_builder(test_db, fake_registry)

        with pytest.raises(FetchError):
            await builder.build("p1", "00000001")

        job = test_db.query(NetworkBuildJob).one()
        assert job.status == JobStatus.FAILED
        assert "Server error" in job.error_message
        assert builder.state == BuildState.FAILED


class TestFilters:
    """Which officers and appointments are traversed."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_roles(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [
            make_officer("A, Director", officer_id="D1", role="director"),
            make_officer("B, Member", officer_id="D2", role="llp-member"),
            make_officer("C, Secretary", officer_id="D3", role="secretary"),
            make_officer("D, Nominee", officer_id="D4", role="nominee-director"),
            make_officer("E, Former", officer_id="D5", resigned_on=date(2019, 1, 1)),
        ]

        result = await make_builder(test_db, fake_registry).build("p1", "00000001")

        assert [n.director_name for n in result.networks] == [
            "A, Director", "B, Member", "C, Secretary",
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_roles_stored_normalized(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [
            make_officer("B, Member", officer_id="D2", role="llp-member"),
        ]
        fake_registry.appointments["/officers/D2/appointments"] = [
            make_appointment("00000002", role="llp-member"),
        ]
        fake_registry.companies["00000002"] = make_company("00000002")

        result = await make_builder(test_db, fake_registry).build("p1", "00000001")

        roles = {a.company_number: a.role for a in test_db.query(DirectorAppointment)}
        assert roles == {"00000001": "llp member", "00000002": "llp member"}
        assert [a.role for a in result.networks[0].appointments] == ["llp member"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_hyphenated_role_resignation_recorded(self, test_db, fake_registry):
        fake_registry.officers["00000001"] = [
            make_officer("B, Member", officer_id="D2", role="llp-member"),
        ]
        builder = make_builder(test_db, fake_registry)
        await builder.build("p1", "00000001")

        fake_registry.officers["00000001"] = [
            make_officer(
                "B, Member", officer_id="D2", role="llp-member", resigned_on=date(2024, 1, 15)
            ),
        ]
        await builder.build("p1", "00000001")

        row = test_db.query(DirectorAppointment).filter_by(company_number="00000001").one()
        assert row.role == "llp member"
        assert row.is_active is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_officers(self, test_db, fake_registry):
        result = await make_builder(test_db, fake_registry).build("p1", "00000001")

        assert result.networks == []
        assert result.total_opportunities == 0
        assert result.message == "No officers found"
        job = test_db.get(NetworkBuildJob, result.job_id)
        assert job.status == JobStatus.SUCCESS
        assert job.officers_processed == 0


class TestValidation:
    """Structural request errors."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("practice_id,company_number", [
        ("", "00000001"),
        ("p1", ""),
        ("   ", "00000001"),
        (None, "00000001"),
    ])
    async def test_blank_inputs(self, test_db, fake_registry, practice_id, company_number):
        with pytest.raises(InvalidBuildRequest):
            await make_builder(test_db, fake_registry).build(practice_id, company_number)

        assert fake_registry.calls == []
        assert test_db.query(NetworkBuildJob).count() == 0

    @pytest.mark.unit
    def test_invalid_request_is_value_error(self):
        assert issubclass(InvalidBuildRequest, ValueError)


class TestPacingAndJobs:
    """Registry pacing and job bookkeeping."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fixed_delay_between_registry_calls(self, test_db, jane_smith_registry):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        builder = make_builder(
            test_db, jane_smith_registry, call_delay=0.5, sleep=fake_sleep
        )
        await builder.build("p1", "00000001")

        # officers, client company, appointments, two target companies
        assert len(jane_smith_registry.calls) == 5
        assert sleeps == [0.5] * 4

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_default_delay_from_settings(self, test_db, fake_registry):
        builder = NetworkBuilder(test_db, fake_registry)

        assert builder.call_delay == 0.5

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_job_success_counts(self, test_db, jane_smith_registry):
        builder = make_builder(test_db, jane_smith_registry)
        result = await builder.build("p1", "00000001")

        job = test_db.get(NetworkBuildJob, result.job_id)
        assert job.status == JobStatus.SUCCESS
        assert job.practice_id == "p1"
        assert job.company_number == "00000001"
        assert job.officers_processed == 1
        assert job.total_opportunities == 1
        assert job.completed_at is not None
        assert builder.state == BuildState.DONE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persistence_error_fails_job(self, test_db, jane_smith_registry, monkeypatch):
        builder = make_builder(test_db, jane_smith_registry)

        def broken_upsert(*args, **kwargs):
            raise OperationalError("INSERT INTO director_networks", {}, Exception("disk I/O error"))

        monkeypatch.setattr(builder.store, "upsert_connection", broken_upsert)

        with pytest.raises(OperationalError):
            await builder.build("p1", "00000001")

        job = test_db.query(NetworkBuildJob).one()
        assert job.status == JobStatus.FAILED
        assert "disk I/O error" in job.error_message
        assert test_db.query(DirectorNetwork).count() == 0
