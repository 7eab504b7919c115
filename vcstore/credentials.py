from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from jose import jwt
from jose.exceptions import JWTError

from vcstore.errors import ValidationError


def get_issuer(credential: Mapping[str, Any]) -> str:
    """Normalize the issuer of a credential to a single URI string."""
    issuer = credential.get("issuer")
    if not issuer:
        raise ValidationError("A verifiable credential MUST have an issuer property.")
    if isinstance(issuer, str):
        return issuer
    if isinstance(issuer, Mapping) and isinstance(issuer.get("id"), str) and issuer["id"]:
        return issuer["id"]
    raise ValidationError(
        "The value of the issuer property MUST be either a URI or an object "
        "containing an id property."
    )


def validate_credential(credential) -> str:
    if not isinstance(credential, Mapping):
        raise ValidationError("A verifiable credential MUST be a JSON object.")
    credential_id = credential.get("id")
    if not isinstance(credential_id, str) or not credential_id:
        raise ValidationError("A verifiable credential MUST have a string id property.")
    return get_issuer(credential)


def _timestamp(value) -> str:
    return datetime.fromtimestamp(int(value), tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def credential_from_jwt(token: str) -> Dict[str, Any]:
    """Convert a JWT-encoded credential into its JSON form.

    The signature is not checked here; registered claims (jti, iss, sub,
    nbf, exp) fill in the matching credential properties when the ``vc``
    claim does not already carry them.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise ValidationError(f"Invalid credential JWT: {e}") from e

    vc = claims.get("vc")
    if not isinstance(vc, dict):
        raise ValidationError("Credential JWT is missing the 'vc' claim")

    credential = dict(vc)
    if "jti" in claims:
        credential.setdefault("id", claims["jti"])
    if "iss" in claims:
        credential.setdefault("issuer", claims["iss"])
    if "sub" in claims and isinstance(credential.get("credentialSubject"), dict):
        subject = dict(credential["credentialSubject"])
        subject.setdefault("id", claims["sub"])
        credential["credentialSubject"] = subject
    if "nbf" in claims:
        credential.setdefault("issuanceDate", _timestamp(claims["nbf"]))
    if "exp" in claims:
        credential.setdefault("expirationDate", _timestamp(claims["exp"]))
    return credential
