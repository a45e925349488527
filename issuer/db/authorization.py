# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage for authorization codes and the offers waiting for their redemption
"""

import uuid
import logging
from enum import Enum

import sqlalchemy.orm as sa_orm
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Uuid, Text, Boolean, Float, JSON, select, update, delete, and_

import common.db.database as db

_logger = logging.getLogger(__name__)


class CodeChallengeMethod(Enum):
    S256 = "S256"


class AuthorizationCode(db.Base):
    """
    Code proving the holder is authorized to receive a credential.
    Pre-authorized codes and codes of the authorization code flow share this table.
    """

    __tablename__ = "authorization_code"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    client_id: Mapped[str] = mapped_column(Text, nullable=True)
    redirect_uri: Mapped[str] = mapped_column(Text, nullable=True)
    scope: Mapped[str] = mapped_column(Text, nullable=True)
    code_challenge: Mapped[str] = mapped_column(Text, nullable=True)
    """PKCE challenge, base64url(sha256(code_verifier))"""
    code_challenge_method: Mapped[str] = mapped_column(Text, nullable=True)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)
    """
    Expiration time in seconds since 1.1.1970
    Code is not valid anymore if the current time >= expires_at
    """
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)


class PendingOffer(db.Base):
    """
    Transaction code and holder data of a pre-authorized offer, kept until the code is redeemed or expires.
    """

    __tablename__ = "pending_offer"
    authorization_code_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    tx_code: Mapped[str] = mapped_column(Text, nullable=False)
    user_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)


def create_authorization_code(
    session: sa_orm.Session,
    code_id: uuid.UUID,
    code: str,
    expires_at: float,
    client_id: str = None,
    scope: str = None,
    code_challenge: str = None,
    code_challenge_method: str = None,
    redirect_uri: str = None,
) -> AuthorizationCode:
    authorization_code = AuthorizationCode(
        id=code_id,
        code=code,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        expires_at=expires_at,
        used=False,
        created_at=db.now(),
    )
    session.add(authorization_code)
    session.flush()
    return authorization_code


def get_valid_authorization_code(session: sa_orm.Session, code: str, now: float = None) -> AuthorizationCode | None:
    """Returns the code if it is neither used nor expired"""
    now = now if now is not None else db.now()
    return session.scalars(
        select(AuthorizationCode).where(
            and_(
                AuthorizationCode.code == code,
                AuthorizationCode.used.is_(False),
                AuthorizationCode.expires_at > now,
            )
        )
    ).one_or_none()


def try_consume_authorization_code(session: sa_orm.Session, code: str, now: float = None) -> bool:
    """
    Marks the code as used in a single conditional update.
    Returns true only for the one call which changed the code from unused to used.
    """
    now = now if now is not None else db.now()
    result = session.execute(
        update(AuthorizationCode)
        .where(
            and_(
                AuthorizationCode.code == code,
                AuthorizationCode.used.is_(False),
                AuthorizationCode.expires_at > now,
            )
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def delete_expired_authorization_codes(session: sa_orm.Session, now: float = None) -> int:
    now = now if now is not None else db.now()
    result = session.execute(delete(AuthorizationCode).where(AuthorizationCode.expires_at <= now).execution_options(synchronize_session=False))
    return result.rowcount


def create_pending_offer(session: sa_orm.Session, authorization_code_id: uuid.UUID, tx_code: str, user_data: dict, expires_at: float) -> PendingOffer:
    pending_offer = PendingOffer(
        authorization_code_id=authorization_code_id,
        tx_code=tx_code,
        user_data=user_data,
        expires_at=expires_at,
    )
    session.add(pending_offer)
    session.flush()
    return pending_offer


def get_pending_offer(session: sa_orm.Session, authorization_code_id: uuid.UUID, now: float = None) -> PendingOffer | None:
    now = now if now is not None else db.now()
    return session.scalars(
        select(PendingOffer).where(
            and_(
                PendingOffer.authorization_code_id == authorization_code_id,
                PendingOffer.expires_at > now,
            )
        )
    ).one_or_none()


def delete_pending_offer(session: sa_orm.Session, authorization_code_id: uuid.UUID) -> None:
    session.execute(delete(PendingOffer).where(PendingOffer.authorization_code_id == authorization_code_id).execution_options(synchronize_session=False))


def delete_expired_pending_offers(session: sa_orm.Session, now: float = None) -> int:
    now = now if now is not None else db.now()
    result = session.execute(delete(PendingOffer).where(PendingOffer.expires_at <= now).execution_options(synchronize_session=False))
    return result.rowcount
