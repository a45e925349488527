# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Agent application wired to an in memory SQLite database for the tests
"""

import typing

from fastapi.testclient import TestClient
from sqlalchemy import Engine
import sqlalchemy.orm as sa_orm

import common.config
import common.db.database as db
import issuer.config
import verifier.config

EXTERNAL_URL = "http://localhost:8000"
ISSUER_DID = "did:web:localhost%3A8000"


def t_config() -> common.config.Config:
    config = common.config.Config()
    config.external_url = EXTERNAL_URL
    return config


def t_issuer_config() -> issuer.config.IssuerConfig:
    config = issuer.config.IssuerConfig()
    config.external_url = EXTERNAL_URL
    return config


def t_verifier_config_factory(allow_unknown_issuer: bool = False) -> typing.Callable[[], verifier.config.VerifierConfig]:
    def t_verifier_config() -> verifier.config.VerifierConfig:
        config = verifier.config.VerifierConfig()
        config.external_url = EXTERNAL_URL
        config.allow_unknown_issuer = allow_unknown_issuer
        return config

    return t_verifier_config


def create_test_engine() -> Engine:
    """Fresh in memory database with all tables of the agent"""
    import agent.agent  # noqa:F401 registers all tables

    engine = db._create_engine("sqlite://")
    db.Base.metadata.create_all(engine)
    return engine


def t_session_factory(engine: Engine) -> typing.Callable[[], typing.Generator[sa_orm.Session, None, None]]:
    """Override for the session injection, one session per request like in production"""

    def t_session() -> typing.Generator[sa_orm.Session, None, None]:
        session = sa_orm.Session(bind=engine)
        try:
            yield session
        finally:
            session.close()

    return t_session


def create_test_client(engine: Engine, allow_unknown_issuer: bool = False) -> TestClient:
    """
    Test client of the agent app using the database of `engine`.
    The lifespan (logging setup & cleanup timer) is not run.
    """
    from agent.agent import app

    app.dependency_overrides[db.env_session] = t_session_factory(engine)
    app.dependency_overrides[common.config.Config] = t_config
    app.dependency_overrides[issuer.config.IssuerConfig] = t_issuer_config
    app.dependency_overrides[verifier.config.VerifierConfig] = t_verifier_config_factory(allow_unknown_issuer)
    return TestClient(app)


def reset_overrides() -> None:
    from agent.agent import app

    app.dependency_overrides.clear()


def issue_pid_credential(client: TestClient, user_data: dict, wallet=None) -> str:
    """
    Runs the pre-authorized issuance flow and returns the credential.
    With a `wallet` (HolderWallet) the credential is bound to its did:jwk.
    """
    response = client.post("/issue/authorize", json={"user_data": user_data})
    assert response.status_code == 200, response.text
    offer = response.json()

    response = client.post(
        "/issue/token",
        data={
            "grant_type": "urn:ietf:params:oauth:grant-type:pre-authorized_code",
            "pre-authorized_code": offer["pre_authorized_code"],
            "user_pin": offer["tx_code"],
        },
    )
    assert response.status_code == 200, response.text
    token = response.json()

    credential_request = {"format": "jwt_vc", "credential_type": "eu.europa.ec.eudi.pid.1"}
    if wallet is not None:
        credential_request["proof"] = {"proof_type": "jwt", "jwt": wallet.proof_jwt(EXTERNAL_URL, token["c_nonce"])}
    response = client.post("/issue/credential", headers={"Authorization": f"Bearer {token['access_token']}"}, json=credential_request)
    assert response.status_code == 200, response.text
    return response.json()["credential"]
