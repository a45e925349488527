# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage for the issuer signing keys, shared by the issuer (signing) and the verifier (key lookup by DID)
"""

import uuid

import sqlalchemy.orm as sa_orm
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Uuid, Text, Boolean, Float, select, and_

import common.db.database as db


class IssuerKey(db.Base):
    __tablename__ = "issuer_key"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    key_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    """Used as `kid` in the header of the signed credentials"""
    issuer_did: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    key_type: Mapped[str] = mapped_column(Text, nullable=False)
    algorithm: Mapped[str] = mapped_column(Text, nullable=False)
    public_jwk: Mapped[str] = mapped_column(Text, nullable=False)
    """Serialized JSON Web Key"""
    private_jwk: Mapped[str] = mapped_column(Text, nullable=False)
    """Serialized JSON Web Key"""
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=db.now)


def create_issuer_key(
    session: sa_orm.Session,
    key_id: str,
    issuer_did: str,
    key_type: str,
    algorithm: str,
    public_jwk: str,
    private_jwk: str,
) -> IssuerKey:
    issuer_key = IssuerKey(
        key_id=key_id,
        issuer_did=issuer_did,
        key_type=key_type,
        algorithm=algorithm,
        public_jwk=public_jwk,
        private_jwk=private_jwk,
        is_active=True,
        created_at=db.now(),
    )
    session.add(issuer_key)
    session.flush()
    return issuer_key


def get_active_issuer_key(session: sa_orm.Session) -> IssuerKey | None:
    """Most recently created active key"""
    return session.scalars(select(IssuerKey).where(IssuerKey.is_active.is_(True)).order_by(IssuerKey.created_at.desc()).limit(1)).one_or_none()


def get_issuer_key_by_key_id(session: sa_orm.Session, key_id: str) -> IssuerKey | None:
    return session.scalars(select(IssuerKey).where(IssuerKey.key_id == key_id)).one_or_none()


def get_issuer_key_by_issuer_did(session: sa_orm.Session, issuer_did: str, key_id: str | None = None) -> IssuerKey | None:
    """Key of the issuer, preferring the key with the given `kid` if there are several"""
    if key_id:
        issuer_key = session.scalars(select(IssuerKey).where(and_(IssuerKey.issuer_did == issuer_did, IssuerKey.key_id == key_id))).one_or_none()
        if issuer_key:
            return issuer_key
    return session.scalars(
        select(IssuerKey).where(and_(IssuerKey.issuer_did == issuer_did, IssuerKey.is_active.is_(True))).order_by(IssuerKey.created_at.desc()).limit(1)
    ).one_or_none()
