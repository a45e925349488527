# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Key manager for the issuer signing keys and the verifier request object key.

Issuer keys are persisted in the `issuer_key` table as serialized JWKs,
the verifier key only lives as long as the process.
"""

import json
import logging
import threading
from typing import Annotated

from fastapi import Depends
from jwcrypto import jwk, jws, common as jw_common
import sqlalchemy.exc
import sqlalchemy.orm as sa_orm

from common import config as conf
from common.parsing import object_to_url_safe
from common.db.model import issuer_key as key_store
import common.model.ietf as ietf

_logger = logging.getLogger(__name__)

KEY_TYPE = "EC"
CURVE = "P-256"
SIGNING_ALGORITHM = "ES256"
VERIFIER_KEY_ID = "verifier-key-1"


class KeyImportError(ValueError):
    """Persisted key material can not be turned into an operable key pair."""


class KeyConfiguration:
    """
    Holds the public & private key of an ES256 key pair identified by `key_id`,
    owned by the DID `did`.
    """

    signing_algorithm: str = SIGNING_ALGORITHM

    @staticmethod
    def generate(key_id: str, did: str) -> "KeyConfiguration":
        """Creates a fresh random P-256 key pair tagged with `kid` and `use`"""
        private_jwk = jwk.JWK.generate(kty=KEY_TYPE, crv=CURVE, kid=key_id, use="sig")
        public_jwk = jwk.JWK(**private_jwk.export_public(as_dict=True))
        return KeyConfiguration(key_id, public_jwk, private_jwk, did)

    @staticmethod
    def load(key_id: str, public_jwk: str, private_jwk: str, did: str) -> "KeyConfiguration":
        """Recreates a key pair from its serialized JWKs.

        Raises:
            KeyImportError: the JWKs are malformed, not P-256 or do not belong together
        """
        try:
            loaded_public = jwk.JWK.from_json(public_jwk)
            loaded_private = jwk.JWK.from_json(private_jwk)
            parameter_sets = [loaded.export_public(as_dict=True) for loaded in (loaded_public, loaded_private)]
        except (jwk.InvalidJWKValue, jwk.InvalidJWKType, ValueError, TypeError) as e:
            raise KeyImportError(f"Malformed key material for {key_id}: {e}") from e
        if not loaded_private.has_private:
            raise KeyImportError(f"Private key of {key_id} has no private part")
        for parameters in parameter_sets:
            if parameters.get("kty") != KEY_TYPE or parameters.get("crv") != CURVE:
                raise KeyImportError(f"Key {key_id} is not a {KEY_TYPE} {CURVE} key")
        if loaded_public.thumbprint() != loaded_private.thumbprint():
            raise KeyImportError(f"Public and private key of {key_id} do not match")
        public_only = jwk.JWK(**loaded_public.export_public(as_dict=True))
        return KeyConfiguration(key_id, public_only, loaded_private, did)

    def __init__(self, key_id: str, public_jwk: jwk.JWK, private_jwk: jwk.JWK, did: str):
        self.key_id = key_id
        self.public_jwk = public_jwk
        self.private_jwk = private_jwk
        self.did = did

    def export(self) -> tuple[str, str]:
        """Serialized (public, private) JWKs, the inverse of `load`"""
        return (
            json.dumps(self.public_jwk.export_public(as_dict=True)),
            json.dumps(self.private_jwk.export_private(as_dict=True)),
        )

    def encode_jwt(self, payload: dict, header: dict = None) -> str:
        """Signs the payload, the protected header defaults to alg & kid of this key"""
        if not header:
            header = {}
        header.setdefault('alg', self.signing_algorithm)
        header.setdefault('kid', self.key_id)

        encoded_claims = jw_common.json_encode(payload)
        encoded_header = jw_common.json_encode(header)
        signer = jws.JWS(encoded_claims)
        signer.add_signature(key=self.private_jwk, protected=encoded_header)
        return signer.serialize(compact=True)

    @property
    def public_jwk_dict(self) -> dict:
        return self.public_jwk.export_public(as_dict=True)

    @property
    def jwks(self) -> dict:
        """
        JSON Web Key Set with public signing key
        """
        return {"keys": [{**self.public_jwk_dict, "alg": self.signing_algorithm}]}

    @property
    def verification_method_id(self) -> str:
        return f"{self.did}#{self.key_id}"

    @property
    def jwk_did(self) -> str:
        """
        DID JWK with public signing key
        """
        return f'did:jwk:{object_to_url_safe(self.public_jwk_dict)}'

    def public_key_as_dto(self) -> ietf.JSONWebKey:
        """Returns the public key as pydantic data transfer object"""
        return ietf.JSONWebKey.model_validate(self.public_jwk_dict)


def generate_issuer_key_pair(key_id: str, issuer_did: str) -> KeyConfiguration:
    return KeyConfiguration.generate(key_id, issuer_did)


def import_issuer_key_pair(key_id: str, public_jwk: str, private_jwk: str, issuer_did: str) -> KeyConfiguration:
    return KeyConfiguration.load(key_id, public_jwk, private_jwk, issuer_did)


def _from_stored_key(stored: key_store.IssuerKey) -> KeyConfiguration:
    return import_issuer_key_pair(stored.key_id, stored.public_jwk, stored.private_jwk, stored.issuer_did)


_issuer_key_lock = threading.Lock()


def get_or_create_active_issuer_key(session: sa_orm.Session, key_id: str, issuer_did: str) -> KeyConfiguration:
    """
    Returns the most recent active issuer key, creating and persisting one on first use.

    Concurrent first use within the process is serialized by a lock, across
    processes the unique `key_id` decides and the loser reads the winners key.
    Commits the session when a key is created.
    """
    stored = key_store.get_active_issuer_key(session)
    if stored is not None:
        return _from_stored_key(stored)

    with _issuer_key_lock:
        stored = key_store.get_active_issuer_key(session)
        if stored is None:
            key_configuration = generate_issuer_key_pair(key_id, issuer_did)
            public_jwk, private_jwk = key_configuration.export()
            try:
                stored = key_store.create_issuer_key(
                    session,
                    key_id=key_id,
                    issuer_did=issuer_did,
                    key_type=KEY_TYPE,
                    algorithm=SIGNING_ALGORITHM,
                    public_jwk=public_jwk,
                    private_jwk=private_jwk,
                )
                session.commit()
                _logger.info(f"Created issuer key {key_id} for {issuer_did}")
            except sqlalchemy.exc.IntegrityError:
                session.rollback()
                _logger.info(f"Issuer key {key_id} was created concurrently, using the stored one")
                stored = key_store.get_issuer_key_by_key_id(session, key_id)
    return _from_stored_key(stored)


_verifier_key: KeyConfiguration | None = None
_verifier_key_lock = threading.Lock()


def get_verifier_key_configuration(config: conf.inject) -> KeyConfiguration:
    """
    Process wide verifier key pair used for the request objects and the verifier JWKS.

    Generated once on first use, every later call returns the same key.
    """
    global _verifier_key
    if _verifier_key is None:
        with _verifier_key_lock:
            if _verifier_key is None:
                _verifier_key = KeyConfiguration.generate(VERIFIER_KEY_ID, config.did_web("verifier"))
                _logger.info("Generated verifier key pair")
    return _verifier_key


inject_verifier_key = Annotated[KeyConfiguration, Depends(get_verifier_key_configuration)]
