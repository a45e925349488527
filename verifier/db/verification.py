# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage for presentation challenges, verification sessions and verified credentials
"""

import uuid
import logging
from enum import Enum

import sqlalchemy.orm as sa_orm
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Uuid, Text, Boolean, Float, JSON, select, update, delete, and_

import common.db.database as db

_logger = logging.getLogger(__name__)


class VerificationStatus(Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"


class Challenge(db.Base):
    """
    Anti replay nonce of a presentation request
    """

    __tablename__ = "challenge"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)
    """
    Expiration time in seconds since 1.1.1970
    Challenge is not valid anymore if the current time >= expires_at
    """
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)


class VerificationSession(db.Base):
    """
    One presentation verification attempt, reaches a final state exactly once
    """

    __tablename__ = "verification_session"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    """Not a foreign key, expired challenges get deleted while the session is kept"""
    status: Mapped[str] = mapped_column(Text, nullable=False, default=VerificationStatus.PENDING.value)
    presentation_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    """Verification result or error"""
    verified_at: Mapped[float] = mapped_column(Float, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)


class VerifiedCredential(db.Base):
    """
    Outcome of a successful verification, never changed after creation
    """

    __tablename__ = "verified_credential"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    credential_type: Mapped[str] = mapped_column(Text, nullable=False)
    issuer: Mapped[str] = mapped_column(Text, nullable=True)
    """mdoc presentations are not bound to an issuer identifier"""
    subject: Mapped[str] = mapped_column(Text, nullable=True)
    claims: Mapped[dict] = mapped_column(JSON, nullable=False)
    verified_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "session_id": str(self.session_id),
            "credential_type": self.credential_type,
            "issuer": self.issuer,
            "subject": self.subject,
            "claims": self.claims,
            "verified_at": self.verified_at,
        }


##############
# Challenges #
##############


def create_challenge(session: sa_orm.Session, challenge_id: uuid.UUID, value: str, expires_at: float) -> Challenge:
    challenge = Challenge(id=challenge_id, challenge=value, expires_at=expires_at, used=False, created_at=db.now())
    session.add(challenge)
    session.flush()
    return challenge


def get_valid_challenge(session: sa_orm.Session, value: str, now: float = None) -> Challenge | None:
    """Returns the challenge if it is neither used nor expired"""
    now = now if now is not None else db.now()
    return session.scalars(
        select(Challenge).where(
            and_(
                Challenge.challenge == value,
                Challenge.used.is_(False),
                Challenge.expires_at > now,
            )
        )
    ).one_or_none()


def get_valid_challenge_by_id(session: sa_orm.Session, challenge_id: uuid.UUID, now: float = None) -> Challenge | None:
    now = now if now is not None else db.now()
    return session.scalars(
        select(Challenge).where(
            and_(
                Challenge.id == challenge_id,
                Challenge.used.is_(False),
                Challenge.expires_at > now,
            )
        )
    ).one_or_none()


def try_consume_challenge(session: sa_orm.Session, challenge_id: uuid.UUID, now: float = None) -> bool:
    """
    Marks the challenge as used in a single conditional update.
    Returns true only for the one call which changed the challenge from unused to used.
    """
    now = now if now is not None else db.now()
    result = session.execute(
        update(Challenge)
        .where(
            and_(
                Challenge.id == challenge_id,
                Challenge.used.is_(False),
                Challenge.expires_at > now,
            )
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def delete_expired_challenges(session: sa_orm.Session, now: float = None) -> int:
    now = now if now is not None else db.now()
    result = session.execute(delete(Challenge).where(Challenge.expires_at <= now).execution_options(synchronize_session=False))
    return result.rowcount


#########################
# Verification Sessions #
#########################


def create_verification_session(
    session: sa_orm.Session,
    session_id: uuid.UUID,
    challenge_id: uuid.UUID,
    status: VerificationStatus = VerificationStatus.PENDING,
) -> VerificationSession:
    now = db.now()
    verification_session = VerificationSession(
        id=session_id,
        challenge_id=challenge_id,
        status=status.value,
        created_at=now,
        updated_at=now,
    )
    session.add(verification_session)
    session.flush()
    return verification_session


def get_verification_session(session: sa_orm.Session, session_id: uuid.UUID) -> VerificationSession | None:
    return session.get(VerificationSession, session_id)


def get_verification_session_by_challenge_id(session: sa_orm.Session, challenge_id: uuid.UUID) -> VerificationSession | None:
    return session.scalars(
        select(VerificationSession).where(VerificationSession.challenge_id == challenge_id).order_by(VerificationSession.created_at.desc()).limit(1)
    ).one_or_none()


def finish_verification_session(session: sa_orm.Session, session_id: uuid.UUID, status: VerificationStatus, presentation_data: dict = None) -> bool:
    """
    Moves a pending session to its final state. Returns false if the session already left pending.
    """
    now = db.now()
    values = {"status": status.value, "presentation_data": presentation_data, "updated_at": now}
    if status == VerificationStatus.VERIFIED:
        values["verified_at"] = now
    result = session.execute(
        update(VerificationSession)
        .where(
            and_(
                VerificationSession.id == session_id,
                VerificationSession.status == VerificationStatus.PENDING.value,
            )
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def expire_verification_sessions(session: sa_orm.Session, created_before: float) -> int:
    """Pending sessions created before the given time will not be finished anymore"""
    result = session.execute(
        update(VerificationSession)
        .where(
            and_(
                VerificationSession.status == VerificationStatus.PENDING.value,
                VerificationSession.created_at < created_before,
            )
        )
        .values(status=VerificationStatus.EXPIRED.value, updated_at=db.now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def delete_verification_sessions_before(session: sa_orm.Session, created_before: float) -> int:
    result = session.execute(delete(VerificationSession).where(VerificationSession.created_at < created_before).execution_options(synchronize_session=False))
    return result.rowcount


########################
# Verified Credentials #
########################


def create_verified_credential(
    session: sa_orm.Session,
    credential_id: uuid.UUID,
    session_id: uuid.UUID,
    credential_type: str,
    issuer: str | None,
    claims: dict,
    subject: str | None = None,
) -> VerifiedCredential:
    verified_credential = VerifiedCredential(
        id=credential_id,
        session_id=session_id,
        credential_type=credential_type,
        issuer=issuer,
        subject=subject,
        claims=claims,
        verified_at=db.now(),
    )
    session.add(verified_credential)
    session.flush()
    return verified_credential


def get_verified_credential(session: sa_orm.Session, credential_id: uuid.UUID) -> VerifiedCredential | None:
    return session.get(VerifiedCredential, credential_id)


def get_verified_credentials_by_session(session: sa_orm.Session, session_id: uuid.UUID) -> list[VerifiedCredential]:
    return list(session.scalars(select(VerifiedCredential).where(VerifiedCredential.session_id == session_id).order_by(VerifiedCredential.verified_at)).all())
