# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from typing import Annotated

from fastapi import Depends

import common.config as conf
from common.verifiable_credential import PID_CREDENTIAL_TYPE


class IssuerConfig(conf.Config):
    def __init__(self):
        super().__init__()
        self.credential_type = PID_CREDENTIAL_TYPE
        """Only credential configuration offered by the issuer, doubles as scope"""

        self.pre_authorized_code_ttl = int(os.getenv("PRE_AUTHORIZED_CODE_TTL", 600))
        """Seconds a pre-authorized code (and its tx_code) can be redeemed, 10 minutes"""
        self.authorization_code_ttl = int(os.getenv("AUTHORIZATION_CODE_TTL", 300))
        """Seconds a code of the standard authorization code flow can be redeemed, 5 minutes"""
        self.access_token_ttl = int(os.getenv("ACCESS_TOKEN_TTL", 3600))
        self.c_nonce_ttl = int(os.getenv("C_NONCE_TTL", 300))

        self.issuer_key_id = os.getenv("ISSUER_KEY_ID", "issuer-key-1")
        """`kid` of the issuer key created on first issuance"""

        self.issuer_display_name = os.getenv("ISSUER_DISPLAY_NAME", "Digital Credentials Issuer")

        # Claims the holder does not need to provide
        self.default_document_number = os.getenv("DEFAULT_DOCUMENT_NUMBER", "123456789")
        self.default_expiry_date = os.getenv("DEFAULT_EXPIRY_DATE", "2030-12-31")
        self.default_issuing_country = os.getenv("DEFAULT_ISSUING_COUNTRY", "EU")
        self.default_issuing_authority = os.getenv("DEFAULT_ISSUING_AUTHORITY", self.issuer_display_name)

        self.cleanup_interval = int(os.getenv("CLEANUP_INTERVAL", 3600))
        """Seconds between two runs of the expired artifact cleanup"""
        self.retention_days = int(os.getenv("RETENTION_DAYS", 30))
        """Days finished issuance and verification sessions are kept"""

    @property
    def issuer_did(self) -> str:
        return self.did_web()

    @property
    def credential_issuer(self) -> str:
        return self.external_url

    @property
    def schema_url(self) -> str:
        return f"{self.external_url}/schemas/pid"

    def endpoint(self, path: str) -> str:
        """Absolute url of an issuer endpoint"""
        return f"{self.external_url}/issue/{path}"


inject = Annotated[IssuerConfig, Depends(IssuerConfig)]
