# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage for issuance sessions and the credentials issued in them
"""

import uuid
import logging
from enum import Enum

import sqlalchemy.orm as sa_orm
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Uuid, Text, Boolean, Float, JSON, select, update, delete, and_

import common.db.database as db

_logger = logging.getLogger(__name__)


class IssuanceStatus(Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CREDENTIAL_ISSUED = "credential_issued"
    EXPIRED = "expired"
    FAILED = "failed"


class IssuanceSession(db.Base):
    """
    Binds an access token to the holder data the credential is built from
    """

    __tablename__ = "issuance_session"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    authorization_code_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    access_token_expires_at: Mapped[float] = mapped_column(Float, nullable=False)
    c_nonce: Mapped[str] = mapped_column(Text, nullable=True)
    """Nonce the wallet has to sign in the proof of the next credential request"""
    c_nonce_expires_at: Mapped[float] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=IssuanceStatus.AUTHORIZED.value)
    user_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    """Claims supplied by the holder at authorization"""
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)

    def has_valid_c_nonce(self, c_nonce: str, now: float = None) -> bool:
        now = now if now is not None else db.now()
        return self.c_nonce is not None and self.c_nonce == c_nonce and self.c_nonce_expires_at is not None and self.c_nonce_expires_at > now


class IssuedCredential(db.Base):
    """
    Audit record of a signed credential. Only the revoked flag may change after creation.
    """

    __tablename__ = "issued_credential"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    credential_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    """`jti` of the credential"""
    credential_format: Mapped[str] = mapped_column(Text, nullable=False)
    credential_type: Mapped[str] = mapped_column(Text, nullable=False)
    credential: Mapped[str] = mapped_column(Text, nullable=False)
    claims: Mapped[dict] = mapped_column(JSON, nullable=False)
    issuer_key_id: Mapped[str] = mapped_column(Text, nullable=False)
    subject_id: Mapped[str] = mapped_column(Text, nullable=False)
    issued_at: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


def create_issuance_session(
    session: sa_orm.Session,
    session_id: uuid.UUID,
    authorization_code_id: uuid.UUID,
    access_token: str,
    access_token_expires_at: float,
    c_nonce: str = None,
    c_nonce_expires_at: float = None,
    user_data: dict = None,
) -> IssuanceSession:
    now = db.now()
    issuance_session = IssuanceSession(
        id=session_id,
        authorization_code_id=authorization_code_id,
        access_token=access_token,
        access_token_expires_at=access_token_expires_at,
        c_nonce=c_nonce,
        c_nonce_expires_at=c_nonce_expires_at,
        status=IssuanceStatus.AUTHORIZED.value,
        user_data=user_data,
        created_at=now,
        updated_at=now,
    )
    session.add(issuance_session)
    session.flush()
    return issuance_session


def get_issuance_session_by_access_token(session: sa_orm.Session, access_token: str, now: float = None) -> IssuanceSession | None:
    """Session of an unexpired access token which is authorized to receive credentials"""
    now = now if now is not None else db.now()
    return session.scalars(
        select(IssuanceSession).where(
            and_(
                IssuanceSession.access_token == access_token,
                IssuanceSession.status.in_([IssuanceStatus.AUTHORIZED.value, IssuanceStatus.CREDENTIAL_ISSUED.value]),
                IssuanceSession.access_token_expires_at > now,
            )
        )
    ).one_or_none()


def update_issuance_session(
    session: sa_orm.Session,
    issuance_session: IssuanceSession,
    status: IssuanceStatus,
    c_nonce: str = None,
    c_nonce_expires_at: float = None,
) -> IssuanceSession:
    issuance_session.status = status.value
    if c_nonce is not None:
        issuance_session.c_nonce = c_nonce
        issuance_session.c_nonce_expires_at = c_nonce_expires_at
    issuance_session.updated_at = db.now()
    session.flush()
    return issuance_session


def expire_issuance_sessions(session: sa_orm.Session, now: float = None) -> int:
    """Marks the sessions of expired access tokens as expired and drops their holder data"""
    now = now if now is not None else db.now()
    result = session.execute(
        update(IssuanceSession)
        .where(
            and_(
                IssuanceSession.status.in_([IssuanceStatus.AUTHORIZED.value, IssuanceStatus.CREDENTIAL_ISSUED.value]),
                IssuanceSession.access_token_expires_at <= now,
            )
        )
        .values(status=IssuanceStatus.EXPIRED.value, user_data=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def delete_issuance_sessions_before(session: sa_orm.Session, created_before: float) -> int:
    result = session.execute(delete(IssuanceSession).where(IssuanceSession.created_at < created_before).execution_options(synchronize_session=False))
    return result.rowcount


def create_issued_credential(
    session: sa_orm.Session,
    session_id: uuid.UUID,
    credential_id: str,
    credential_format: str,
    credential_type: str,
    credential: str,
    claims: dict,
    issuer_key_id: str,
    subject_id: str,
    issued_at: float,
    expires_at: float,
) -> IssuedCredential:
    issued_credential = IssuedCredential(
        session_id=session_id,
        credential_id=credential_id,
        credential_format=credential_format,
        credential_type=credential_type,
        credential=credential,
        claims=claims,
        issuer_key_id=issuer_key_id,
        subject_id=subject_id,
        issued_at=issued_at,
        expires_at=expires_at,
        revoked=False,
    )
    session.add(issued_credential)
    session.flush()
    return issued_credential


def get_issued_credentials_by_session(session: sa_orm.Session, session_id: uuid.UUID) -> list[IssuedCredential]:
    return list(session.scalars(select(IssuedCredential).where(IssuedCredential.session_id == session_id)).all())
