# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Periodical cleanup of expired protocol artifacts and of sessions past their retention
"""

import threading
import logging
from typing import Generator
import contextlib

import common.config
import common.db.database as db

import issuer.config
import issuer.db.authorization as db_auth
import issuer.db.issuance as db_issuance
from issuer.logging import IssuerOperationsLogEntry
import verifier.config
from verifier.db import verification as db_verification
from verifier.logging import VerifierOperationsLogEntry

_logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@contextlib.contextmanager
def artifact_cleanup_lifespan() -> contextlib.AbstractContextManager:
    """
    Lifespan managing the cleanup timer.
    Runs once immediatly after creating to achieve a clean state.
    """
    cleanup_timer = ArtifactCleanupTimer()
    cleanup_timer.set_immediate_timer()
    yield
    cleanup_timer.cancel_timer()


class ArtifactCleanupTimer:
    """Timer, once started will run every `cleanup_interval` seconds, rescheduling itself afterwards"""

    _timer: threading.Timer = None

    def __init__(
        self,
        session_function: Generator[db.Session, None, None] = db.env_session,
        issuer_config: issuer.config.IssuerConfig = None,
        verifier_config: verifier.config.VerifierConfig = None,
    ) -> None:
        """* session_function: a generator to call using contextlib to get a session."""
        # FastAPI does something similar internally, to use the same function
        # we have to create the context manager from the generator
        self._session_function = contextlib.contextmanager(session_function)
        self._issuer_config = issuer_config or issuer.config.IssuerConfig()
        self._verifier_config = verifier_config or verifier.config.VerifierConfig()

    def cleanup(self, session: db.Session, now: float = None) -> dict[str, int]:
        """
        Deletes expired challenges, pending offers & authorization codes, expires stale sessions
        and deletes sessions older than the retention period. Returns the affected rows per kind.
        """
        now = now if now is not None else db.now()
        retention_limit = now - self._issuer_config.retention_days * SECONDS_PER_DAY
        counts = {
            "challenges": db_verification.delete_expired_challenges(session, now),
            "pending_offers": db_auth.delete_expired_pending_offers(session, now),
            "authorization_codes": db_auth.delete_expired_authorization_codes(session, now),
            "expired_issuance_sessions": db_issuance.expire_issuance_sessions(session, now),
            "expired_verification_sessions": db_verification.expire_verification_sessions(session, now - self._verifier_config.siop_challenge_ttl),
            "deleted_issuance_sessions": db_issuance.delete_issuance_sessions_before(session, retention_limit),
            "deleted_verification_sessions": db_verification.delete_verification_sessions_before(session, retention_limit),
        }
        session.commit()

        if counts["expired_issuance_sessions"]:
            _logger.info(
                IssuerOperationsLogEntry(
                    message=f"Expired {counts['expired_issuance_sessions']} issuance sessions.",
                    status=IssuerOperationsLogEntry.Status.success,
                    step=IssuerOperationsLogEntry.Step.issuance_expiry,
                )
            )
        if counts["expired_verification_sessions"]:
            _logger.info(
                VerifierOperationsLogEntry(
                    message=f"Expired {counts['expired_verification_sessions']} verification sessions.",
                    status=VerifierOperationsLogEntry.Status.success,
                    step=VerifierOperationsLogEntry.Step.verification_expiry,
                )
            )
        _logger.info(f"Artifact cleanup done {counts}")
        return counts

    def _run_cleanup(self) -> None:
        """
        Runs the cleanup with a fresh session and starts a new timer, also if the cleanup failed
        """
        try:
            with self._session_function(common.config.DBConfig()) as session:
                self.cleanup(session)
        except Exception:
            _logger.exception("Artifact cleanup failed")
        finally:
            self.set_interval_timer()

    def set_timer(self, time: float):
        """Starts the timer. Cancels other instances of the timer"""
        self.cancel_timer()
        _logger.info(f"Next cleanup {time=}")
        self._timer = threading.Timer(time, self._run_cleanup)
        self._timer.daemon = True
        self._timer.start()

    def set_interval_timer(self):
        self.set_timer(self._issuer_config.cleanup_interval)

    def set_immediate_timer(self):
        """Runs the action of the timer immediatly. Reschedules it after normally"""
        self.set_timer(1)

    def cancel_timer(self):
        """Stops the timer thread."""
        if self._timer:
            self._timer.cancel()
