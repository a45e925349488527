# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

import common.model.dif_presentation_exchange as dif
from common.verifiable_credential import CredentialFormat


class VerificationState(BaseModel):
    """
    Correlation data the browser hands back with the presentation
    * nonce: value of the challenge
    * challenge_id: identifier of the challenge
    """

    model_config = ConfigDict(extra='allow')

    credential_type: Optional[str] = None
    nonce: Optional[str] = None
    challenge_id: Optional[str] = None
    format: Optional[CredentialFormat] = None


class PresentationRequest(BaseModel):
    """OpenID4VP request handed to the Digital Credentials API"""

    response_type: str = "vp_token"
    response_mode: str = "dc_api"
    nonce: str
    dcql_query: dif.DCQLQuery


class VerificationStartResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    challenge: str
    session_id: uuid.UUID = Field(alias="sessionId")
    protocol: str = "openid4vp"
    request: Optional[PresentationRequest] = None
    presentation_definition: Optional[dif.PresentationDefinition] = Field(default=None, alias="presentationDefinition")
    state: VerificationState
    expires_at: str = Field(alias="expiresAt")


class VerificationFinishRequest(BaseModel):
    """
    Response of the wallet, the vp_token maps the credential query ids to the presented credentials.
    Browsers wrap it in `data`.
    """

    model_config = ConfigDict(extra='allow')

    vp_token: Optional[Any] = None
    data: Optional[dict[str, Any]] = None
    state: Optional[VerificationState] = None
    format: Optional[CredentialFormat] = None

    def get_vp_token(self) -> Any:
        if self.vp_token is not None:
            return self.vp_token
        if self.data is not None:
            return self.data.get("vp_token")
        return None


class VerificationFinishResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verified: bool
    message: str
    session_id: uuid.UUID = Field(alias="sessionId")
    details: dict
    credential_data: dict = Field(alias="credentialData")


class SiopStartResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: uuid.UUID = Field(alias="sessionId")
    verification_url: str = Field(alias="verificationUrl")
    request_uri: str = Field(alias="requestUri")
    challenge: str
    expires_at: str = Field(alias="expiresAt")


class VerificationStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: uuid.UUID = Field(alias="sessionId")
    status: str
    credential_data: Optional[dict] = Field(default=None, alias="credentialData")
    error: Optional[str] = None
    created_at: float = Field(alias="createdAt")
    updated_at: float = Field(alias="updatedAt")
