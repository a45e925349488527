# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Presentations which could not be verified. Rendered as `{verified: false, message}`.
"""

from fastapi import status


class PresentationVerificationError(Exception):
    """The presented credential or the request carrying it is not acceptable"""

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidChallengeError(PresentationVerificationError):
    def __init__(self) -> None:
        super().__init__("Invalid or expired challenge.")
