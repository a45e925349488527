# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Health probes of the agent: `/health/liveness`, `/health/readiness` and `/health/debug`.

Every probe fills a response model with boolean checks, those are converted to
`HealthStatus` values and a single unhealthy check answers the probe with 503.
"""
import logging
from enum import Enum

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

import common.config as conf
import common.db.database as db
import common.key_configuration as key
from common.db.model import issuer_key as key_store

_logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    healthy = "HEALTHY"
    unhealthy = "UNHEALTHY"


class HealthResponse(BaseModel):
    """May only contain `HealthStatus` fields, booleans are accepted until the probe is resolved"""

    http_server_connectivity: HealthStatus = HealthStatus.unhealthy

    def resolve(self, response: Response) -> "HealthResponse":
        self.http_server_connectivity = HealthStatus.healthy
        for name, value in iter(self):
            if isinstance(value, bool):
                setattr(self, name, HealthStatus.healthy if value else HealthStatus.unhealthy)
        healthy = all(value == HealthStatus.healthy for _, value in iter(self))
        response.status_code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return self


class LivenessHealthResponse(HealthResponse):
    verifier_key_is_available: HealthStatus = HealthStatus.unhealthy


class ReadinessHealthResponse(HealthResponse):
    db_connectivity: HealthStatus = HealthStatus.unhealthy


class DebugHealthResponse(HealthResponse):
    config_external_url_present: HealthStatus = HealthStatus.unhealthy
    issuer_key_present: HealthStatus = HealthStatus.unhealthy
    """The issuer key is created on the first issuance, unhealthy before"""


def check_health_of_db(session: Session) -> bool:
    try:
        session.execute(text("SELECT 1"))
        return session.is_active
    except Exception:
        _logger.exception("Error in health check db probe.")
        return False


def _probe_responses(response_model: type[HealthResponse]) -> dict:
    return {
        status.HTTP_200_OK: {"model": response_model},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": response_model},
    }


router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/liveness",
    description="Determines whether the application instance needs to be restarted.",
    responses=_probe_responses(LivenessHealthResponse),
)
def get_liveness_probe(response: Response, verifier_key: key.inject_verifier_key) -> LivenessHealthResponse:
    result = LivenessHealthResponse()
    try:
        result.verifier_key_is_available = bool(verifier_key.jwks["keys"])
    except Exception:
        _logger.exception("Cannot get verifier public key.")
    return result.resolve(response)


@router.get(
    "/readiness",
    description="Determines whether the application instance is ready to accept requests.",
    responses=_probe_responses(ReadinessHealthResponse),
)
def get_readiness_probe(response: Response, session: db.inject) -> ReadinessHealthResponse:
    result = ReadinessHealthResponse()
    result.db_connectivity = check_health_of_db(session)
    return result.resolve(response)


@router.get(
    "/debug",
    description="Provides information regarding debug and config states.",
    responses=_probe_responses(DebugHealthResponse),
)
def get_debug_probe(response: Response, config: conf.inject, session: db.inject) -> DebugHealthResponse:
    result = DebugHealthResponse()
    result.config_external_url_present = bool(config.external_url)
    try:
        result.issuer_key_present = key_store.get_active_issuer_key(session) is not None
    except Exception:
        _logger.exception("Error in health checking the issuer key.")
    return result.resolve(response)
