# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import logging
from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse

from .authorization_response_errors import OpenIdVerificationError
from .presentation_errors import PresentationVerificationError

_logger = logging.getLogger(__name__)


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configure exception handlers on the FastAPI app instance for the verifier errors.

    Args:
        app (FastAPI): the instance to configure the handlers for.
    """

    @app.exception_handler(OpenIdVerificationError)
    async def openid_verification_exception_handler(request: Request, exc: OpenIdVerificationError):
        # Create a resonse based on the configured fields
        content_builder = {}

        # Include all required fields
        for field_name in exc._fields:
            content_builder[field_name] = getattr(exc, field_name)

        # Include all optional fields with a value which is not None
        for field_name in exc._optional_fields:
            if getattr(exc, field_name, None) is not None:
                content_builder[field_name] = getattr(exc, field_name)

        _logger.info(f"OID4VP Exception {exc.status_code=} {content_builder}")
        return JSONResponse(
            status_code=exc.status_code,
            headers=exc.headers,
            content=content_builder,
        )

    @app.exception_handler(PresentationVerificationError)
    async def presentation_verification_exception_handler(request: Request, exc: PresentationVerificationError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"verified": False, "message": exc.message},
        )
