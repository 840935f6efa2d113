"""Relational store for practices, setup requests, chat logs and Q&A overrides.

Several writers touch the ``clinics`` table (signup, the admin console, the
billing webhook), so every practice row carries a ``version`` counter that
is bumped on each update. Callers that read-then-write pass the version
they read; a mismatch raises :class:`StaleRecordError` instead of silently
overwriting the other writer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, time
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from dgtl_dental.chat.facts import (
    DEMO_PRACTICE,
    PracticeFacts,
    facts_from_record,
    unconfigured_facts,
)
from dgtl_dental.models import IntakeStatus, SubscriptionStatus

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite has no timezone-aware column type)."""
    return datetime.now(UTC).replace(tzinfo=None)


class PracticeNotFound(LookupError):
    """No practice exists with the requested ``clinic_id``."""


class StaleRecordError(Exception):
    """The practice changed since the caller read it."""

    def __init__(self, clinic_id: str, expected: int, actual: int | None):
        self.clinic_id = clinic_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Practice {clinic_id} is at version {actual}, expected {expected}"
        )


# ── Tables ───────────────────────────────────────────────────────────


class Practice(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    clinic_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    address = Column(String(500), nullable=False, default="")
    phone = Column(String(64), nullable=False, default="")
    email = Column(String(320), nullable=True)
    website_url = Column(String(1024), nullable=True)
    office_hours = Column(String(500), nullable=True)
    office_hours_detail = Column(JSON, default=dict)
    services_offered = Column(JSON, default=list)
    insurance_accepted = Column(JSON, default=list)
    emergency_instructions = Column(Text, nullable=True)
    practice_description = Column(Text, nullable=True)
    contact_first_name = Column(String(100), nullable=True)
    contact_last_name = Column(String(100), nullable=True)
    contact_email = Column(String(320), nullable=True)
    contact_phone = Column(String(64), nullable=True)
    how_did_you_hear = Column(String(100), nullable=True)
    need_install_help = Column(Boolean, default=False)
    widget_config = Column(JSON, nullable=True)
    subscription_status = Column(
        Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.PENDING,
    )
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class SetupRequest(Base):
    __tablename__ = "setup_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practice_name = Column(String(200), nullable=False)
    website_url = Column(String(1024), nullable=True)
    contact_name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False)
    status = Column(Enum(IntakeStatus), nullable=False, default=IntakeStatus.PENDING)
    created_at = Column(DateTime, default=utcnow)


class ChatLog(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    clinic_id = Column(String(64), nullable=False, index=True)
    message_content = Column(Text, nullable=False)
    response_content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)


class QAPair(Base):
    __tablename__ = "custom_qa_pairs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    clinic_id = Column(String(64), ForeignKey("clinics.clinic_id"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


# ── Engine ───────────────────────────────────────────────────────────


def make_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


# ── Repository ───────────────────────────────────────────────────────


class PracticeStore:
    """All reads and writes against the practice database."""

    def __init__(self, engine: Engine | str):
        self.engine = make_engine(engine) if isinstance(engine, str) else engine
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def init_db(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    # ── Practices ────────────────────────────────────────────────────

    def create_practice(self, **fields: Any) -> Practice:
        practice = Practice(**fields)
        with self._sessions.begin() as db:
            db.add(practice)
        logger.info("Created practice %s (%s)", practice.clinic_id, practice.subscription_status.value)
        return practice

    def get_practice(self, clinic_id: str) -> Practice | None:
        with self._sessions() as db:
            return db.scalar(select(Practice).where(Practice.clinic_id == clinic_id))

    def require_practice(self, clinic_id: str) -> Practice:
        practice = self.get_practice(clinic_id)
        if practice is None:
            raise PracticeNotFound(clinic_id)
        return practice

    def list_practices(self, status: SubscriptionStatus | None = None) -> list[Practice]:
        query = select(Practice).order_by(Practice.created_at.desc(), Practice.id.desc())
        if status is not None:
            query = query.where(Practice.subscription_status == status)
        with self._sessions() as db:
            return list(db.scalars(query))

    def touch_practices(
        self,
        clinic_ids: Iterable[str],
        status: SubscriptionStatus | None = None,
    ) -> int:
        """Bump ``updated_at`` (and ``version``) on every listed practice.

        With *status*, rows in any other status are left alone. Runs as one
        transaction: either every matching row is touched or none is.
        Returns the number of rows updated.
        """
        ids = list(dict.fromkeys(clinic_ids))
        if not ids:
            return 0
        stmt = update(Practice).where(Practice.clinic_id.in_(ids))
        if status is not None:
            stmt = stmt.where(Practice.subscription_status == status)
        with self._sessions.begin() as db:
            result = db.execute(stmt.values(updated_at=utcnow(), version=Practice.version + 1))
        logger.info("Touched %d of %d practices", result.rowcount, len(ids))
        return result.rowcount

    def set_status(
        self,
        clinic_id: str,
        status: SubscriptionStatus,
        expected_version: int | None = None,
    ) -> Practice:
        """Change a practice's subscription status, optionally version-checked."""
        stmt = update(Practice).where(Practice.clinic_id == clinic_id)
        if expected_version is not None:
            stmt = stmt.where(Practice.version == expected_version)
        stmt = stmt.values(
            subscription_status=status, updated_at=utcnow(), version=Practice.version + 1,
        )
        with self._sessions.begin() as db:
            result = db.execute(stmt)
            if result.rowcount == 0:
                current = db.scalar(select(Practice.version).where(Practice.clinic_id == clinic_id))
                if current is None:
                    raise PracticeNotFound(clinic_id)
                raise StaleRecordError(clinic_id, expected_version, current)
        return self.require_practice(clinic_id)

    def load_facts(self, clinic_id: str) -> PracticeFacts:
        """Facts for *clinic_id*; unknown ids degrade to generic copy."""
        practice = self.get_practice(clinic_id)
        if practice is None:
            if clinic_id == DEMO_PRACTICE.clinic_id:
                return DEMO_PRACTICE
            logger.warning("No practice stored for %s; using generic facts", clinic_id)
            return unconfigured_facts(clinic_id)
        pairs = [(p.question, p.answer) for p in self.list_qa_pairs(clinic_id)]
        return facts_from_record(practice, pairs)

    def ensure_demo_practice(self) -> Practice:
        existing = self.get_practice(DEMO_PRACTICE.clinic_id)
        if existing is not None:
            return existing
        d = DEMO_PRACTICE
        return self.create_practice(
            clinic_id=d.clinic_id,
            name=d.name,
            address=d.address,
            phone=d.phone,
            email=d.email,
            website_url=d.website,
            office_hours=d.office_hours,
            services_offered=list(d.services),
            insurance_accepted=list(d.insurance),
            emergency_instructions=d.emergency_instructions,
            subscription_status=SubscriptionStatus.ACTIVE,
        )

    # ── Setup requests ───────────────────────────────────────────────

    def create_intake_record(
        self, *, practice_name: str, website_url: str, contact_name: str, email: str,
    ) -> SetupRequest:
        record = SetupRequest(
            practice_name=practice_name,
            website_url=website_url,
            contact_name=contact_name,
            email=email,
        )
        with self._sessions.begin() as db:
            db.add(record)
        logger.info("Saved setup request #%s for %s", record.id, practice_name)
        return record

    def list_intake_records(self) -> list[SetupRequest]:
        with self._sessions() as db:
            return list(db.scalars(select(SetupRequest).order_by(SetupRequest.id.desc())))

    # ── Chat log ─────────────────────────────────────────────────────

    def log_chat(self, clinic_id: str, message: str, response: str) -> None:
        with self._sessions.begin() as db:
            db.add(ChatLog(clinic_id=clinic_id, message_content=message, response_content=response))

    def recent_messages(self, limit: int = 50) -> list[ChatLog]:
        query = select(ChatLog).order_by(ChatLog.created_at.desc(), ChatLog.id.desc()).limit(limit)
        with self._sessions() as db:
            return list(db.scalars(query))

    # ── Custom Q&A ───────────────────────────────────────────────────

    def add_qa_pair(self, clinic_id: str, question: str, answer: str) -> QAPair:
        self.require_practice(clinic_id)
        pair = QAPair(clinic_id=clinic_id, question=question.strip(), answer=answer.strip())
        with self._sessions.begin() as db:
            db.add(pair)
        return pair

    def remove_qa_pair(self, clinic_id: str, pair_id: int) -> bool:
        with self._sessions.begin() as db:
            pair = db.get(QAPair, pair_id)
            if pair is None or pair.clinic_id != clinic_id:
                return False
            db.delete(pair)
        return True

    def list_qa_pairs(self, clinic_id: str) -> list[QAPair]:
        query = select(QAPair).where(QAPair.clinic_id == clinic_id).order_by(QAPair.id)
        with self._sessions() as db:
            return list(db.scalars(query))

    # ── Dashboard counts ─────────────────────────────────────────────

    def stats(self) -> dict[str, int]:
        start_of_day = datetime.combine(utcnow().date(), time.min)
        with self._sessions() as db:
            return {
                "total_clinics": db.scalar(select(func.count(Practice.id))) or 0,
                "active_clinics": db.scalar(
                    select(func.count(Practice.id)).where(
                        Practice.subscription_status == SubscriptionStatus.ACTIVE
                    )
                ) or 0,
                "total_messages": db.scalar(select(func.count(ChatLog.id))) or 0,
                "today_messages": db.scalar(
                    select(func.count(ChatLog.id)).where(ChatLog.created_at >= start_of_day)
                ) or 0,
            }
