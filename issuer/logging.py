# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum

from common.logging import operations


class IssuerOperationsLogEntry(operations.OperationsLogEntry):
    """Container for issuer operations specific logging."""

    class Operation(Enum):
        issuance = "ISSUANCE"

    class Step(Enum):
        issuance_authorization = "AUTHORIZATION"
        issuance_token = "TOKEN"
        issuance_delivery = "DELIVERY"
        issuance_expiry = "EXPIRY"

    operation: Operation = Operation.issuance
    step: Step

    credential_id: str | None = None
    error_code: str | None = None
