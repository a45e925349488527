# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Lookups of verification sessions and their results
"""

from fastapi import status

from .authorization_response_errors import OpenIdVerificationError


class VerificationNotFoundError(OpenIdVerificationError):
    """The verification session with the specified identifier wasn't found"""

    error = "verification_not_found"
    error_description = "Verification session not found"

    def __init__(self, additional_error_description: str = None) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, additional_error_description)


class VerifiedCredentialNotFoundError(OpenIdVerificationError):
    """No verified credential is stored for the identifier"""

    error = "verified_credential_not_found"
    error_description = "Verified credential not found"

    def __init__(self, additional_error_description: str = None) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, additional_error_description)
