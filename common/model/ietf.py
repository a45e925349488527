# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Pydantic models for IETF Objects
"""
from jwcrypto import jwk
from pydantic import BaseModel, ConfigDict
from typing import Optional


class JSONWebKey(BaseModel):
    """
    represents a cryptographic key
    https://datatracker.ietf.org/doc/html/rfc7517
    """

    model_config = ConfigDict(extra='allow')

    kty: str
    """
    key type
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.1
    """

    use: str | None = None
    """
    Intended Use of the public key
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.2
    """

    alg: str | None = None
    """
    Alogirhtm inteded for use with the key
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.4
    """

    kid: str | None = None
    """
    Key ID, used to match sepcific keys
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.5
    """

    def __eq__(self, other: object) -> bool:
        if isinstance(other, JSONWebKey):
            return self.thumbprint() == other.thumbprint()
        return False

    def as_crypto_jwk(self) -> jwk.JWK:
        """Returns the crypto library object"""
        return jwk.JWK(**self.model_dump(exclude_none=True))

    def thumbprint(self) -> str:
        """RFC 7638 thumbprint, only depends on the required key members"""
        return self.as_crypto_jwk().thumbprint()


class JSONWebKeySet(BaseModel):
    keys: list[JSONWebKey]

    def find(self, kid: str) -> JSONWebKey | None:
        return next((key for key in self.keys if key.kid == kid), None)


class OAuth2Token(BaseModel):
    """
    https://www.rfc-editor.org/rfc/rfc6749.txt
    """

    access_token: str
    """The access token issued by the authorization server."""
    token_type: str
    """The type of the token issued (eg. Bearer)"""
    expires_in: int
    """The lifetime in seconds of the access token"""
    refresh_token: Optional[str] = None
    """The refresh token, which can be used to obtain new
        access tokens using the same authorization grant"""
    scope: Optional[str] = None
    """The scope of the access token"""


class OpenID4VCToken(OAuth2Token):
    """
    Extended OAuth2.0 Token (https://www.rfc-editor.org/rfc/rfc6749.txt)
    * c_nonce: nonce to be used to create a proof of possession of key material when requesting a Credential
    * c_nonce_expires_in: integer denoting the lifetime in seconds of the c_nonce
    """

    c_nonce: Optional[str] = None
    c_nonce_expires_in: Optional[int] = None
