"""
Director network persistence.

Idempotent writes for directors, appointments, registry companies and
network edges. Every write that must converge under concurrent builders is
a single INSERT ... ON CONFLICT statement against a unique constraint, never
a read followed by a write. Nothing is ever deleted.

The store does not commit; callers own the transaction.
"""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, joinedload

from app.core.network_models import (
    ConnectionType,
    Director,
    DirectorAppointment,
    DirectorNetwork,
    DirectorNetworkMember,
    RegistryCompany,
)
from app.sources.companies_house.metadata import normalize_role

logger = logging.getLogger(__name__)


class NetworkStore:
    """Persistence for the director/company relation and projected edges."""

    def __init__(self, session: Session):
        self.session = session

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _insert(self, model):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")

    # -------------------------------------------------------------------------
    # Directors
    # -------------------------------------------------------------------------

    def get_director(self, director_id: int) -> Optional[Director]:
        return self.session.get(Director, director_id)

    def get_director_by_officer_id(self, officer_id: str) -> Optional[Director]:
        """Look up a director by registry officer id."""
        return self.session.execute(
            select(Director).where(Director.external_officer_id == officer_id)
        ).scalar_one_or_none()

    def upsert_director_by_officer_id(
        self,
        officer_id: str,
        name: str,
        date_of_birth: Optional[str] = None,
        nationality: Optional[str] = None,
    ) -> int:
        """
        Get or create the director for a registry officer id.

        Insert-or-ignore on the unique officer id, then read back the row, so
        concurrent builders observing the same officer end up with one
        director. Missing date of birth and nationality on an existing row
        are filled in.

        Returns:
            Director id
        """
        stmt = self._insert(Director).values(
            external_officer_id=officer_id,
            name=name,
            date_of_birth=date_of_birth,
            nationality=nationality,
            created_at=datetime.utcnow(),
        ).on_conflict_do_nothing(index_elements=["external_officer_id"])
        self.session.execute(stmt)

        director_id = self.session.execute(
            select(Director.id).where(Director.external_officer_id == officer_id)
        ).scalar_one()

        self._fill_missing_details(director_id, date_of_birth, nationality)
        return director_id

    def _fill_missing_details(
        self,
        director_id: int,
        date_of_birth: Optional[str],
        nationality: Optional[str],
    ) -> None:
        """Set date of birth / nationality only where currently null."""
        if date_of_birth:
            self.session.execute(
                update(Director)
                .where(Director.id == director_id, Director.date_of_birth.is_(None))
                .values(date_of_birth=date_of_birth, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
        if nationality:
            self.session.execute(
                update(Director)
                .where(Director.id == director_id, Director.nationality.is_(None))
                .values(nationality=nationality, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )

    def find_anonymous_directors_by_name(self, name: str) -> List[Director]:
        """Directors without an officer id whose name is exactly `name`."""
        return list(
            self.session.execute(
                select(Director)
                .where(Director.name == name, Director.external_officer_id.is_(None))
                .order_by(Director.id)
            ).scalars()
        )

    def find_anonymous_directors_by_surname_prefix(self, prefix: Optional[str]) -> List[Director]:
        """Directors without an officer id stored under this surname prefix, oldest first."""
        if not prefix:
            return []
        return list(
            self.session.execute(
                select(Director)
                .where(
                    Director.external_officer_id.is_(None),
                    Director.surname_prefix == prefix,
                )
                .order_by(Director.id)
            ).scalars()
        )

    def create_director(
        self,
        name: str,
        date_of_birth: Optional[str] = None,
        nationality: Optional[str] = None,
        surname_prefix: Optional[str] = None,
    ) -> int:
        """Create a director with no officer id. Returns the new id."""
        director = Director(
            name=name,
            date_of_birth=date_of_birth,
            nationality=nationality,
            surname_prefix=surname_prefix,
        )
        self.session.add(director)
        self.session.flush()
        logger.debug(f"Created director {director.id} for '{name}' (no officer id)")
        return director.id

    def get_director_names(self, director_ids: Iterable[int]) -> Dict[int, str]:
        """Batch lookup of director display names."""
        ids = list(set(director_ids))
        if not ids:
            return {}
        rows = self.session.execute(
            select(Director.id, Director.name).where(Director.id.in_(ids))
        ).all()
        return {row.id: row.name for row in rows}

    # -------------------------------------------------------------------------
    # Appointments
    # -------------------------------------------------------------------------

    def upsert_appointment(
        self,
        director_id: int,
        company_number: str,
        role: str,
        appointed_on: Optional[date] = None,
        resigned_on: Optional[date] = None,
    ) -> None:
        """
        Insert or update the (director, company, role) appointment.
        Roles are stored normalized ("llp-member" -> "llp member").

        Re-observation overwrites resigned_on and is_active with the latest
        registry view and keeps a known appointed_on when the new observation
        has none. Safe to repeat.
        """
        role = normalize_role(role)
        now = datetime.utcnow()
        stmt = self._insert(DirectorAppointment).values(
            director_id=director_id,
            company_number=company_number,
            role=role,
            appointed_on=appointed_on,
            resigned_on=resigned_on,
            is_active=resigned_on is None,
            created_at=now,
            last_observed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["director_id", "company_number", "role"],
            set_={
                "appointed_on": func.coalesce(
                    stmt.excluded.appointed_on, DirectorAppointment.appointed_on
                ),
                "resigned_on": stmt.excluded.resigned_on,
                "is_active": stmt.excluded.is_active,
                "last_observed_at": stmt.excluded.last_observed_at,
            },
        )
        self.session.execute(stmt)

    def record_resignation(
        self,
        director_id: int,
        company_number: str,
        role: str,
        resigned_on: date,
    ) -> int:
        """
        End a stored active appointment the registry now reports as resigned.

        Only updates an existing row; resignations of appointments never
        recorded are ignored.

        Returns:
            Number of appointments updated (0 or 1)
        """
        role = normalize_role(role)
        result = self.session.execute(
            update(DirectorAppointment)
            .where(
                DirectorAppointment.director_id == director_id,
                DirectorAppointment.company_number == company_number,
                DirectorAppointment.role == role,
                DirectorAppointment.is_active.is_(True),
            )
            .values(
                resigned_on=resigned_on,
                is_active=False,
                last_observed_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(
                f"Director {director_id} resigned as {role} of {company_number} on {resigned_on}"
            )
        return result.rowcount

    def get_director_appointments(self, director_id: int) -> List[DirectorAppointment]:
        """All appointments of a director, most recent appointment first."""
        return list(
            self.session.execute(
                select(DirectorAppointment)
                .where(DirectorAppointment.director_id == director_id)
                .order_by(
                    DirectorAppointment.appointed_on.desc(),
                    DirectorAppointment.id.desc(),
                )
            ).scalars()
        )

    def get_company_directors(self, company_number: str) -> List[DirectorAppointment]:
        """Active appointments at a company, with their directors loaded."""
        return list(
            self.session.execute(
                select(DirectorAppointment)
                .options(joinedload(DirectorAppointment.director))
                .where(
                    DirectorAppointment.company_number == company_number,
                    DirectorAppointment.is_active.is_(True),
                )
                .order_by(DirectorAppointment.id)
            ).scalars()
        )

    def stale_appointments(
        self, company_number: str, observed_before: datetime
    ) -> List[DirectorAppointment]:
        """
        Active appointments at a company not re-observed since a cutoff.

        Input for a reconciliation pass; nothing is changed here.
        """
        return list(
            self.session.execute(
                select(DirectorAppointment)
                .where(
                    DirectorAppointment.company_number == company_number,
                    DirectorAppointment.is_active.is_(True),
                    DirectorAppointment.last_observed_at < observed_before,
                )
                .order_by(DirectorAppointment.id)
            ).scalars()
        )

    # -------------------------------------------------------------------------
    # Registry companies
    # -------------------------------------------------------------------------

    def upsert_company(
        self,
        company_number: str,
        company_name: Optional[str] = None,
        company_status: Optional[str] = None,
        sector: Optional[str] = None,
        sic_codes: Optional[List[str]] = None,
    ) -> None:
        """
        Record the latest known details for a company.

        Null-preserving: a value missing from this observation keeps the
        stored one, so a name-only observation never erases a known status.
        """
        stmt = self._insert(RegistryCompany).values(
            company_number=company_number,
            company_name=company_name or None,
            company_status=company_status,
            sector=sector,
            sic_codes=sic_codes,
            last_fetched_at=datetime.utcnow(),
        )
        # COALESCE: prefer new value, fall back to existing
        update_dict = {
            col: func.coalesce(stmt.excluded[col], getattr(RegistryCompany, col))
            for col in ("company_name", "company_status", "sector", "sic_codes")
        }
        update_dict["last_fetched_at"] = stmt.excluded.last_fetched_at
        stmt = stmt.on_conflict_do_update(
            index_elements=["company_number"],
            set_=update_dict,
        )
        self.session.execute(stmt)

    def get_companies(self, company_numbers: Iterable[str]) -> Dict[str, RegistryCompany]:
        """Batch lookup of known registry companies by number."""
        numbers = list(set(company_numbers))
        if not numbers:
            return {}
        rows = self.session.execute(
            select(RegistryCompany).where(RegistryCompany.company_number.in_(numbers))
        ).scalars()
        return {company.company_number: company for company in rows}

    # -------------------------------------------------------------------------
    # Network edges
    # -------------------------------------------------------------------------

    def upsert_connection(
        self,
        practice_id: str,
        source_company: str,
        target_company: str,
        director_id: int,
        target_company_name: Optional[str] = None,
        target_sector: Optional[str] = None,
        connection_type: str = ConnectionType.DIRECT,
        connection_strength: int = 1,
    ) -> int:
        """
        Insert or update the practice's source -> target edge and add the
        director to its connecting directors.

        Returns:
            Network edge id
        """
        now = datetime.utcnow()
        stmt = self._insert(DirectorNetwork).values(
            practice_id=practice_id,
            source_company=source_company,
            target_company=target_company,
            connection_type=connection_type,
            connection_strength=connection_strength,
            target_company_name=target_company_name or None,
            target_sector=target_sector,
            created_at=now,
            last_updated=now,
            last_observed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["practice_id", "source_company", "target_company"],
            set_={
                "target_company_name": func.coalesce(
                    stmt.excluded.target_company_name, DirectorNetwork.target_company_name
                ),
                "target_sector": func.coalesce(
                    stmt.excluded.target_sector, DirectorNetwork.target_sector
                ),
                "last_updated": stmt.excluded.last_updated,
                "last_observed_at": stmt.excluded.last_observed_at,
            },
        )
        self.session.execute(stmt)

        network_id = self.session.execute(
            select(DirectorNetwork.id).where(
                DirectorNetwork.practice_id == practice_id,
                DirectorNetwork.source_company == source_company,
                DirectorNetwork.target_company == target_company,
            )
        ).scalar_one()

        member_stmt = self._insert(DirectorNetworkMember).values(
            network_id=network_id,
            director_id=director_id,
            created_at=now,
        ).on_conflict_do_nothing(index_elements=["network_id", "director_id"])
        self.session.execute(member_stmt)

        return network_id

    def get_connections(self, practice_id: str) -> List[DirectorNetwork]:
        """A practice's network edges, most recently discovered first."""
        return list(
            self.session.execute(
                select(DirectorNetwork)
                .where(DirectorNetwork.practice_id == practice_id)
                .order_by(DirectorNetwork.created_at.desc(), DirectorNetwork.id.desc())
                .execution_options(populate_existing=True)
            ).scalars()
        )
