"""Key material, blind indexing and document encryption for the encrypted store.

Blind index tokens are HMAC-SHA256 over the attribute name and over the
(name, value) pair, so equal pairs always produce equal tokens under the
same key while the stored tokens reveal neither. Documents are encrypted as
JWE (JSON serialization) with ECDH-ES+A256KW key wrapping and A256GCM
content encryption, one recipient entry per key agreement key.
"""
import json
from typing import Iterable, List, NamedTuple, Optional, Tuple

from cryptography.hazmat.primitives import hashes, hmac
from jwcrypto import jwe, jwk
from jwcrypto.common import base64url_decode, base64url_encode, json_encode

HMAC_KEY_TYPE = "Sha256HmacKey2019"
KEY_WRAP_ALG = "ECDH-ES+A256KW"
CONTENT_ENC = "A256GCM"


class IndexToken(NamedTuple):
    name: str
    value: str


def _with_kid(key: jwk.JWK, kid: Optional[str]) -> jwk.JWK:
    data = key.export(as_dict=True)
    data["kid"] = kid or key.thumbprint()
    return jwk.JWK(**data)


def generate_key_agreement_key(kid: Optional[str] = None) -> jwk.JWK:
    return _with_kid(jwk.JWK.generate(kty="EC", crv="P-256"), kid)


def generate_hmac_key(kid: Optional[str] = None) -> jwk.JWK:
    return _with_kid(jwk.JWK.generate(kty="oct", size=256), kid)


def key_id(key: jwk.JWK) -> str:
    return key.export_public(as_dict=True).get("kid") or key.thumbprint()


class HmacIndexer:
    def __init__(self, key: jwk.JWK):
        params = key.export(as_dict=True)
        if params.get("kty") != "oct":
            raise ValueError("Blind indexing requires a symmetric (oct) key")
        self.key_id = params.get("kid") or key.thumbprint()
        self._secret = base64url_decode(params["k"])

    def _blind(self, data: bytes) -> str:
        mac = hmac.HMAC(self._secret, hashes.SHA256())
        mac.update(data)
        return base64url_encode(mac.finalize())

    def compute_index_token(self, name: str, value) -> IndexToken:
        pair = json.dumps({"name": name, "value": value}, sort_keys=True, separators=(",", ":"))
        return IndexToken(
            name=self._blind(name.encode("utf-8")),
            value=self._blind(pair.encode("utf-8")),
        )

    def build_index_entries(self, attributes: Iterable[Tuple[str, object]]) -> List[dict]:
        return [{
            "hmac": {"id": self.key_id, "type": HMAC_KEY_TYPE},
            "sequence": 0,
            "attributes": [
                self.compute_index_token(name, value)._asdict()
                for name, value in attributes
            ],
        }]


class DocumentCipher:
    def __init__(self, key_agreement_key: jwk.JWK):
        if not key_agreement_key.has_private:
            raise ValueError("Decrypting documents requires a private key agreement key")
        self.key = key_agreement_key
        self.key_id = key_id(key_agreement_key)
        self.public_key = jwk.JWK.from_json(key_agreement_key.export_public())

    def encrypt(self, doc: dict, recipients: Optional[Iterable[jwk.JWK]] = None) -> dict:
        token = jwe.JWE(
            json.dumps(doc).encode("utf-8"),
            protected=json_encode({"enc": CONTENT_ENC}),
        )
        for recipient in [self.public_key, *(recipients or [])]:
            token.add_recipient(
                recipient,
                header=json_encode({"alg": KEY_WRAP_ALG, "kid": key_id(recipient)}),
            )
        return json.loads(token.serialize())

    def decrypt(self, encrypted: dict) -> dict:
        token = jwe.JWE()
        token.deserialize(json.dumps(encrypted), key=self.key)
        return json.loads(token.payload)
