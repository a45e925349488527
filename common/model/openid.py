# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Pydantic models according to openid specification
"""
from typing import Optional
from pydantic import BaseModel

from common.model.openid4vc import MetadataCredentialConfiguration, MetadataDisplay


class OpenIdConfiguration(BaseModel):
    """
    Authorization server metadata of the issuer, extended with the OpenID4VCI issuer fields wallets look up there
    https://openid.net/specs/openid-connect-discovery-1_0.html#ProviderMetadata
    https://www.rfc-editor.org/rfc/rfc8414#section-2
    """

    issuer: Optional[str] = None
    credential_issuer: str
    authorization_endpoint: str
    token_endpoint: str
    credential_endpoint: str
    jwks_uri: Optional[str] = None
    credential_configurations_supported: dict[str, MetadataCredentialConfiguration]
    grant_types_supported: list[str]
    pre_authorized_grant_anonymous_access_supported: Optional[bool] = None
    code_challenge_methods_supported: list[str]
    token_endpoint_auth_methods_supported: list[str]
    response_types_supported: list[str]
    response_modes_supported: Optional[list[str]] = None
    scopes_supported: Optional[list[str]] = None
    display: Optional[list[MetadataDisplay]] = None
