# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from urllib.parse import urlencode

import common.config as conf
from typing import Annotated
from fastapi import Depends

from common.parsing import interpret_as_bool
from common.verifiable_credential import PID_CREDENTIAL_TYPE


class VerifierConfig(conf.Config):
    def __init__(self):
        super().__init__()
        self.credential_type = PID_CREDENTIAL_TYPE
        self.challenge_ttl = int(os.getenv("CHALLENGE_TTL", 300))
        """Seconds a challenge of the Digital Credentials API flow is valid, 5 minutes"""
        self.siop_challenge_ttl = int(os.getenv("SIOP_CHALLENGE_TTL", 600))
        """Seconds a challenge of the SIOPv2 flow is valid, 10 minutes"""
        self.request_object_ttl = int(os.getenv("REQUEST_OBJECT_TTL", 300))

        self.expected_credential_id = os.getenv("EXPECTED_CREDENTIAL_ID", "cred1")
        """Credential query id the wallet has to answer in the vp_token"""

        self.allow_unknown_issuer: bool = interpret_as_bool(os.getenv("ALLOW_UNKNOWN_ISSUER", "False"))
        """
        Accept JWT credentials of issuers without a known key, without checking the signature.
        Only intended for demonstrations.
        """

        self.result_page = os.getenv("VERIFICATION_RESULT_PAGE", "/verify")
        """Page the SIOPv2 callback redirects the browser of the wallet to"""
        self.client_name = os.getenv("VERIFIER_CLIENT_NAME", "Digital Credentials Verifier")

    @property
    def verifier_did(self) -> str:
        return self.did_web("verifier")

    @property
    def client_id(self) -> str:
        return f"{self.external_url}/verify/openid4vci"

    def endpoint(self, path: str) -> str:
        """Absolute url of a verifier endpoint"""
        return f"{self.external_url}/verify/{path}"

    @property
    def response_uri(self) -> str:
        return self.endpoint("openid4vci/callback")

    @property
    def jwks_uri(self) -> str:
        return self.endpoint("openid4vci/jwks")

    def result_url(self, **query: str) -> str:
        return f"{self.external_url}{self.result_page}?{urlencode(query)}"


inject = Annotated[VerifierConfig, Depends(VerifierConfig)]
