"""
SQLAlchemy models for core tables.

Declares the shared declarative Base and the build job table that records
every network build run.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, Index
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


class JobStatus(str, enum.Enum):
    """Job status enumeration - ONLY these values allowed."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class NetworkBuildJob(Base):
    """
    Tracks all director network build runs.

    Every build creates a job record; officer-level skips are not failures,
    so a successful job may still reflect partial registry data.
    """
    __tablename__ = "network_build_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practice_id = Column(String(64), nullable=False, index=True)
    company_number = Column(String(20), nullable=False, index=True)
    status = Column(
        Enum(JobStatus, native_enum=False, length=20),
        nullable=False,
        default=JobStatus.PENDING,
        index=True
    )

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Results
    officers_processed = Column(Integer, nullable=True)
    total_opportunities = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_network_build_jobs_target", "practice_id", "company_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<NetworkBuildJob(id={self.id}, practice_id={self.practice_id}, "
            f"company_number={self.company_number}, status={self.status})>"
        )
