"""
Director Network - Database Models.

This module defines the tables behind director-network discovery: the
bipartite director/company relation observed in the registry and the
company/company edges projected from it for each practice.

Identity Tables (1):
- directors: Resolved director identities

Relation Tables (1):
- director_appointments: Director <-> company appointments (upserted, never deleted)

Network Tables (2):
- director_networks: Company -> company warm introduction edges per practice
- director_network_members: Directors connecting each edge

Reference Tables (1):
- registry_companies: Latest known name/status/sector per company number
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Boolean,
    JSON, ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from app.core.models import Base


class ConnectionType:
    """Values of director_networks.connection_type."""
    DIRECT = "direct"
    SHARED_DIRECTOR = "shared_director"  # reserved


# =============================================================================
# IDENTITY
# =============================================================================

class Director(Base):
    """
    Resolved director identity.

    At most one row per registry officer id. Rows created from officers
    without an id are matched by name and may duplicate.
    """
    __tablename__ = "directors"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    external_officer_id = Column(String(100), unique=True, nullable=True)
    name = Column(String(500), nullable=False, index=True)
    date_of_birth = Column(String(20))  # "month/year", registry never publishes the day
    nationality = Column(String(100))
    # Candidate key for fuzzy name matching (see person_matcher.surname_prefix)
    surname_prefix = Column(String(8), index=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    appointments = relationship(
        "DirectorAppointment", back_populates="director", lazy="select"
    )

    __table_args__ = (
        CheckConstraint("name <> ''", name="ck_directors_name_not_empty"),
    )

    def __repr__(self):
        return f"<Director {self.name} ({self.external_officer_id or 'no officer id'})>"


# =============================================================================
# RELATION
# =============================================================================

class DirectorAppointment(Base):
    """
    A director's role at a company.

    Unique per (director, company, role); re-observing the same tuple
    updates dates in place.
    """
    __tablename__ = "director_appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    director_id = Column(Integer, ForeignKey("directors.id"), nullable=False)
    company_number = Column(String(20), nullable=False, index=True)
    role = Column(String(100), nullable=False)

    appointed_on = Column(Date)
    resigned_on = Column(Date)
    is_active = Column(Boolean, nullable=False, default=True)  # resigned_on IS NULL

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_observed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    director = relationship("Director", back_populates="appointments")

    __table_args__ = (
        UniqueConstraint("director_id", "company_number", "role", name="uq_director_appointment"),
        Index("ix_director_appointments_director", "director_id"),
        Index("ix_director_appointments_company_active", "company_number", "is_active"),
    )

    def __repr__(self):
        return f"<DirectorAppointment director={self.director_id} {self.role} at {self.company_number}>"


# =============================================================================
# NETWORK
# =============================================================================

class DirectorNetwork(Base):
    """
    Warm introduction edge from a practice's client company to a target.

    Unique per (practice, source, target). The directors that make up the
    connection live in director_network_members.
    """
    __tablename__ = "director_networks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practice_id = Column(String(64), nullable=False)
    source_company = Column(String(20), nullable=False)
    target_company = Column(String(20), nullable=False)

    connection_type = Column(String(30), nullable=False, default=ConnectionType.DIRECT)
    connection_strength = Column(Integer, nullable=False, default=1)

    # Denormalized target details at the time of discovery
    target_company_name = Column(String(500))
    target_sector = Column(String(20))

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_observed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    members = relationship(
        "DirectorNetworkMember",
        back_populates="network",
        lazy="selectin",
        order_by="DirectorNetworkMember.id",
    )

    __table_args__ = (
        UniqueConstraint(
            "practice_id", "source_company", "target_company", name="uq_director_network"
        ),
        Index("ix_director_networks_practice_created", "practice_id", "created_at"),
    )

    @property
    def connecting_directors(self):
        """Director ids connecting source to target, in discovery order."""
        return [m.director_id for m in self.members]

    def __repr__(self):
        return (
            f"<DirectorNetwork {self.practice_id}: "
            f"{self.source_company} -> {self.target_company}>"
        )


class DirectorNetworkMember(Base):
    """A director connecting one network edge."""
    __tablename__ = "director_network_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    network_id = Column(Integer, ForeignKey("director_networks.id"), nullable=False)
    director_id = Column(Integer, ForeignKey("directors.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    network = relationship("DirectorNetwork", back_populates="members")

    __table_args__ = (
        UniqueConstraint("network_id", "director_id", name="uq_director_network_member"),
        Index("ix_director_network_members_director", "director_id"),
    )


# =============================================================================
# REFERENCE
# =============================================================================

class RegistryCompany(Base):
    """
    Latest known registry details for a company number.

    Refreshed whenever a build fetches the company; used to join names
    into the opportunity list.
    """
    __tablename__ = "registry_companies"

    company_number = Column(String(20), primary_key=True)
    company_name = Column(String(500))
    company_status = Column(String(50), index=True)
    sector = Column(String(20))  # first SIC code
    sic_codes = Column(JSON(none_as_null=True))

    last_fetched_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<RegistryCompany {self.company_number} {self.company_name}>"
