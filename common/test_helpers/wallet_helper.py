# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Holder side of the protocols for the tests: proofs of possession, verifiable presentations
and mdoc device responses
"""

import time
import uuid

import cbor2
from jwcrypto import jwk, jws, common as jw_common

from common.parsing import bytes_to_url_safe, object_to_url_safe
from common.key_configuration import KeyConfiguration
import common.verifiable_credential as vc

ADA = {"given_name": "Ada", "family_name": "Lovelace", "birth_date": "1815-12-10"}


class HolderWallet:
    """Holder key pair identified by its did:jwk"""

    def __init__(self) -> None:
        self.private_jwk = jwk.JWK.generate(kty="EC", crv="P-256")

    @property
    def public_jwk(self) -> dict:
        return self.private_jwk.export_public(as_dict=True)

    @property
    def did(self) -> str:
        return f"did:jwk:{object_to_url_safe(self.public_jwk)}"

    def sign(self, payload: dict, header: dict) -> str:
        token = jws.JWS(jw_common.json_encode(payload))
        token.add_signature(key=self.private_jwk, protected=jw_common.json_encode(header))
        return token.serialize(compact=True)

    def proof_jwt(self, audience: str, nonce: str | None, embed_jwk: bool = True) -> str:
        """OpenID4VCI jwt proof, the holder key is either in the `jwk` header or the `kid`"""
        header = {"alg": "ES256", "typ": "openid4vci-proof+jwt"}
        if embed_jwk:
            header["jwk"] = self.public_jwk
        else:
            header["kid"] = f"{self.did}#0"
        payload = {"aud": audience, "iat": int(time.time())}
        if nonce is not None:
            payload["nonce"] = nonce
        return self.sign(payload, header)

    def presentation_jwt(self, credentials: list[str], nonce: str, audience: str) -> str:
        """VP JWT wrapping the credentials, signed by the holder"""
        payload = {
            "iss": self.did,
            "aud": audience,
            "iat": int(time.time()),
            "nonce": nonce,
            "vp": {
                "@context": ["https://www.w3.org/2018/credentials/v1"],
                "type": ["VerifiablePresentation"],
                "verifiableCredential": credentials,
            },
        }
        return self.sign(payload, {"alg": "ES256", "typ": "JWT", "kid": f"{self.did}#0"})


def unknown_issuer_credential(claims: dict = ADA, issued_at: int = None) -> str:
    """PID credential signed by an issuer whose key the verifier does not know"""
    key_configuration = KeyConfiguration.generate("unknown-key-1", "did:web:unknown-issuer.example")
    return vc.create_jwt_verifiable_credential(
        vc.PIDClaims.model_validate(claims),
        key_configuration,
        f"urn:uuid:{uuid.uuid4()}",
        issued_at=issued_at,
    )


def device_response(doctype: str, elements: dict, device_namespaces: dict = None) -> str:
    """Base64url encoded mdoc device response with one document holding the elements as issuer signed items"""
    items = [
        cbor2.CBORTag(
            24,
            cbor2.dumps(
                {
                    "digestID": index,
                    "random": bytes(16),
                    "elementIdentifier": identifier,
                    "elementValue": value,
                }
            ),
        )
        for index, (identifier, value) in enumerate(elements.items())
    ]
    document = {
        "docType": doctype,
        "issuerSigned": {"nameSpaces": {doctype: items}, "issuerAuth": []},
    }
    if device_namespaces is not None:
        document["deviceSigned"] = {"nameSpaces": cbor2.CBORTag(24, cbor2.dumps(device_namespaces)), "deviceAuth": {}}
    return bytes_to_url_safe(cbor2.dumps({"version": "1.0", "documents": [document], "status": 0}))
