# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Tests of the agent application: health probes and the cleanup timer
"""

import typing

import pytest
import sqlalchemy.orm as sa_orm
from fastapi.testclient import TestClient

import common.config
import common.db.database as db
from common.test_helpers import agent_helper
from common.test_helpers.wallet_helper import ADA

from agent.agent import app
from agent.cleanup import ArtifactCleanupTimer


@pytest.fixture()
def engine():
    yield agent_helper.create_test_engine()


@pytest.fixture()
def client(engine) -> TestClient:
    client = agent_helper.create_test_client(engine)
    yield client
    client.close()
    agent_helper.reset_overrides()


def test_liveness(client: TestClient):
    response = client.get("/health/liveness")
    assert response.status_code == 200, response.text
    assert response.json() == {"http_server_connectivity": "HEALTHY", "verifier_key_is_available": "HEALTHY"}


def test_readiness(client: TestClient):
    response = client.get("/health/readiness")
    assert response.status_code == 200, response.text
    assert response.json()["db_connectivity"] == "HEALTHY"


def test_readiness_without_database(client: TestClient):
    class UnavailableSession:
        is_active = False

        def execute(self, *args, **kwargs):
            raise RuntimeError("database unavailable")

    app.dependency_overrides[db.env_session] = UnavailableSession
    response = client.get("/health/readiness")
    assert response.status_code == 503
    assert response.json() == {"http_server_connectivity": "HEALTHY", "db_connectivity": "UNHEALTHY"}


def test_debug(client: TestClient):
    response = client.get("/health/debug")
    assert response.status_code == 503, "Unhealthy until the first credential created the issuer key"
    assert response.json()["issuer_key_present"] == "UNHEALTHY"
    assert response.json()["config_external_url_present"] == "HEALTHY"

    agent_helper.issue_pid_credential(client, ADA)
    response = client.get("/health/debug")
    assert response.status_code == 200, response.text
    assert response.json()["issuer_key_present"] == "HEALTHY"


def test_validation_errors_are_invalid_requests(client: TestClient):
    response = client.post("/issue/authorize", content="no json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_cleanup_timer_reschedules(engine):
    sessions = []

    def t_session(config: common.config.DBConfig) -> typing.Generator[sa_orm.Session, None, None]:
        session = sa_orm.Session(bind=engine)
        sessions.append(session)
        try:
            yield session
        finally:
            session.close()

    issuer_config = agent_helper.t_issuer_config()
    issuer_config.cleanup_interval = 3600
    cleanup_timer = ArtifactCleanupTimer(session_function=t_session, issuer_config=issuer_config)
    try:
        cleanup_timer._run_cleanup()
        assert len(sessions) == 1
        assert cleanup_timer._timer is not None
        assert cleanup_timer._timer.interval == 3600
        assert cleanup_timer._timer.daemon
    finally:
        cleanup_timer.cancel_timer()
    assert cleanup_timer._timer.finished.is_set()


def test_cleanup_timer_survives_failures():
    def failing_session(config: common.config.DBConfig) -> typing.Generator[sa_orm.Session, None, None]:
        raise RuntimeError("database unavailable")
        yield

    cleanup_timer = ArtifactCleanupTimer(session_function=failing_session, issuer_config=agent_helper.t_issuer_config())
    try:
        cleanup_timer._run_cleanup()
        assert cleanup_timer._timer is not None, "A failed cleanup must be scheduled again"
    finally:
        cleanup_timer.cancel_timer()
