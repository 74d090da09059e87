"""SQLAlchemy repository for print jobs.

Every ticket accepted by the relay is stored as a print job row with the
rendered text, so a ticket can be reprinted or audited later. Database
connection parameters are configured via the ``DATABASE_URL`` env var, or
the ``DB_*`` variables when it is not set.
"""

import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import create_engine, DateTime, String, Text, JSON
from sqlalchemy.orm import DeclarativeBase, mapped_column, Session

DB_HOST = os.getenv("DB_HOST", "print-relay-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "print_relay")
DB_USER = os.getenv("DB_USER", "print_relay_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "print-relay-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL", f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase): pass


class PrintJob(Base):
    """A ticket sent to the printer.

    Attributes:
        id: Job identifier (UUID string).
        reference: Client id the ticket belongs to.
        body: Rendered fixed-width ticket text.
        payload: Ticket summary as received.
        status: ``queued`` until a printer driver picks it up.
        created_at: When the job was accepted.
    """
    __tablename__ = "print_jobs"
    id = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reference = mapped_column(String(64), nullable=False, index=True)
    body = mapped_column(Text, nullable=False)
    payload = mapped_column(JSON, nullable=False)
    status = mapped_column(String(16), nullable=False, default="queued")
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


def init_db():
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


class PrintJobRepo:
    """Repository for print jobs."""

    def create(self, reference: str, body: str, payload: dict) -> str:
        """Store a queued job and return its id."""
        with get_session() as s:
            job = PrintJob(id=str(uuid.uuid4()), reference=reference, body=body, payload=payload)
            s.add(job)
            s.commit()
            return job.id

    def get(self, job_id: str) -> PrintJob | None:
        with get_session() as s:
            return s.get(PrintJob, job_id)
