# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
PID Credential Agent, issuing and verifying EU PID credentials
Using Specifications

# OpenID4VCI Draft 13
https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html

# OpenID4VP
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html

# SIOPv2
https://openid.net/specs/openid-connect-self-issued-v2-1_0.html

W3C Verifiable Credential (VC-JWT)
https://www.w3.org/TR/vc-data-model/#json-web-token

OAuth 2.0 & PKCE
https://datatracker.ietf.org/doc/html/rfc6749
https://datatracker.ietf.org/doc/html/rfc7636

did:web
https://w3c-ccg.github.io/did-method-web/
"""

# FastAPI
from asgi_correlation_id import CorrelationIdMiddleware

from common.fastapi_extensions import ExtendedFastAPI
import common.config as conf

# Tables are only created for imported models
import common.db.model.issuer_key  # noqa:F401
import issuer.db.authorization  # noqa:F401
import issuer.db.issuance  # noqa:F401
import verifier.db.verification  # noqa:F401

import issuer.exception.handler as issuer_exception
import issuer.route.openid as issuer_openid
import issuer.route.well_known as well_known
import verifier.exception.handler as verifier_exception
import verifier.route.openid as verifier_openid
import agent.route.health as health
import agent.cleanup as cleanup

TAG_METADATA = well_known.TAG
TAG_OPENID4VCI = issuer_openid.TAG
TAG_OPENID4VP = verifier_openid.TAG

app = ExtendedFastAPI(
    conf.Config,
    lifespan_functions=[cleanup.artifact_cleanup_lifespan()],
)

app.include_router(well_known.router)
app.include_router(issuer_openid.router)
app.include_router(verifier_openid.router)
app.include_router(health.router)

app.add_middleware(CorrelationIdMiddleware)

issuer_exception.configure_exception_handlers(app)
verifier_exception.configure_exception_handlers(app)
