# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Errors of the authorization, token & credential endpoints.
See https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-credential-error-response for OID4VCI
and https://www.rfc-editor.org/rfc/rfc6749#section-5.2 & https://www.rfc-editor.org/rfc/rfc6750#section-3.1 for OAuth2.0
"""

from fastapi import HTTPException
from pydantic import BaseModel


class OpenIdError(BaseModel):
    """
    Error Class as defined in OpenID4VC standard.
    * error: Machine readable code identifieng the exception
    * error_description: Human readable error description for the error type.
    """

    error: str
    error_description: str


class OpenIdErrorNonce(OpenIdError):
    """
    OpenId Error class providing a new nonce to be used in the next request
    * c_nonce: The c_nonce to be used in the proof
    * c_nonce_expires_in: Validity of the c_nonce
    """

    c_nonce: str
    c_nonce_expires_in: int


class OpenIdIssuanceException(HTTPException):
    """Base class for all openid issuance exceptions."""

    error: str = None
    """Machine readable code identifieng the exception."""

    error_description: str = None
    """Human readable error description for the error type."""

    _fields: list[str] = [
        "error",
        "error_description",
    ]
    """Fields to render into the response."""

    _optional_fields: list[str] = []
    """Optional fiels which only get renderd into the response if available."""

    def __init__(self, status_code: int = 400, error_description: str = None) -> None:
        """Create a OpenId issuance exception.

        Args:
            status_code (int, optional):  status code for the rendered response. Defaults to 400.
            error_description (str, optional): Human readable description replacing the generic one of the error type.
        """
        super().__init__(status_code, self.error, headers={"Cache-Control": "no-store"})

        if error_description:
            self.error_description = error_description


class InvalidRequestException(OpenIdIssuanceException):
    """The request is missing a required parameter or a parameter is malformed."""

    error = "invalid_request"
    error_description = "The request is missing a required parameter, includes an invalid parameter value or is otherwise malformed."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class InvalidGrantException(OpenIdIssuanceException):
    """
    https://datatracker.ietf.org/doc/html/rfc6749#section-5.2
    * the holder provides the wrong transaction code in the pre-authorized flow
    * the code is unknown, was already redeemed or has expired
    """

    error = "invalid_grant"
    error_description = "Invalid or expired authorization code"

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class InvalidClientException(OpenIdIssuanceException):
    """Client authentication failed, the client_id does not match the one the code was issued to."""

    error = "invalid_client"
    error_description = "Invalid client"

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class UnsupportedGrantTypeException(OpenIdIssuanceException):
    error = "unsupported_grant_type"
    error_description = "The authorization grant type is not supported by the authorization server."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class UnsupportedResponseTypeException(OpenIdIssuanceException):
    error = "unsupported_response_type"
    error_description = "Only response type 'code' is supported."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class InvalidTokenException(OpenIdIssuanceException):
    """
    Credential Request contains the wrong Access Token or the Access Token is missing.
    OAuth 2.0 Exception
    """

    error = "invalid_token"
    error_description = "Credential Request contains the wrong Access Token or the Access Token is missing."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(401, error_description)
        self.headers = {**self.headers, "WWW-Authenticate": "Bearer"}


class UnsupportedCredentialTypeException(OpenIdIssuanceException):
    """
    Requested credential type is not supported.
    OID4VCI Exception
    """

    error = "unsupported_credential_type"
    error_description = "Requested credential type is not supported."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class UnsupportedCredentialFormatException(OpenIdIssuanceException):
    """
    Requested credential format is not supported.
    OID4VCI Exception
    """

    error = "unsupported_credential_format"
    error_description = "Requested credential format is not supported."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class MissingUserDataException(OpenIdIssuanceException):
    """The holder did not supply the mandatory PID claims, or they got lost with the session."""

    error = "missing_user_data"
    error_description = "User data with given_name, family_name and birth_date is required."

    def __init__(self, error_description: str = None) -> None:
        super().__init__(400, error_description)


class InvalidOrMissingProofException(OpenIdIssuanceException):
    """
    Credential Request proof was invalid, i.e. it was not bound to the Credential Issuer provided nonce.
    OID4VCI Exception
    """

    error = "invalid_or_missing_proof"
    error_description = "Credential Request did not contain a proof, or proof was invalid, i.e. it was not bound to a Credential Issuer provided nonce."

    _optional_fields = OpenIdIssuanceException._optional_fields + [
        "c_nonce",
        "c_nonce_expires_in",
    ]

    def __init__(self, error_description: str = None, c_nonce: str = None, c_nonce_expires_in: int = None) -> None:
        super().__init__(400, error_description)
        self.c_nonce = c_nonce
        self.c_nonce_expires_in = c_nonce_expires_in
