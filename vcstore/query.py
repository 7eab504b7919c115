"""Query-by-Example compilation.

A request names the credential types it needs and, optionally, the issuers
it trusts for them::

    {
        "type": "QueryByExample",
        "credentialQuery": [{
            "example": {"type": ["AlumniCredential"]},
            "trustedIssuer": [{"id": "urn:issuer:A", "required": True}],
        }],
    }

Each query item compiles to one ``ConstraintSet``: the type x issuer cross
product as OR-ed equality groups, or one group per type when no issuer
constrains the item.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple

import pydantic

from vcstore.errors import NotSupportedError, ValidationError
from vcstore.models import CredentialQueryItem, QueryByExample, TrustedIssuer

log = logging.getLogger(__name__)


class IssuerPolicy(str, Enum):
    # every listed trusted issuer constrains the item, whatever its required flag
    ANY_LISTED = "any"
    # only issuers flagged required: true constrain; none required means any issuer
    REQUIRED_ONLY = "required"


@dataclass(frozen=True)
class ConstraintSet:
    groups: Tuple[Dict[str, Any], ...]


def _unique(values):
    return list(dict.fromkeys(values))


class QueryCompiler:
    def __init__(self, profile_id: str, issuer_policy: IssuerPolicy = IssuerPolicy.ANY_LISTED):
        self.profile_id = profile_id
        self.issuer_policy = IssuerPolicy(issuer_policy)

    def parse(self, query: Mapping[str, Any]) -> QueryByExample:
        try:
            return QueryByExample.model_validate(query)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid QueryByExample request: {e}") from e

    def compile(self, query: Mapping[str, Any]) -> List[ConstraintSet]:
        parsed = self.parse(query)
        # validate every issuer before expanding anything
        issuers = [self._issuer_ids(item.trusted_issuer) for item in parsed.credential_query]
        constraint_sets = [
            self._expand(item, item_issuers)
            for item, item_issuers in zip(parsed.credential_query, issuers)
        ]
        log.debug(
            "Compiled %d query item(s) into %d constraint group(s)",
            len(constraint_sets), sum(len(cs.groups) for cs in constraint_sets),
        )
        return constraint_sets

    def _issuer_ids(self, trusted_issuers: List[Any]) -> List[str]:
        for issuer in trusted_issuers:
            issuer_id = issuer.get("id") if isinstance(issuer, Mapping) else None
            if not isinstance(issuer_id, str) or not issuer_id:
                raise NotSupportedError(
                    "Trusted issuers without a string \"id\" are not supported: "
                    f"{issuer!r}"
                )
        try:
            parsed = [TrustedIssuer.model_validate(issuer) for issuer in trusted_issuers]
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid trusted issuer: {e}") from e
        if self.issuer_policy is IssuerPolicy.REQUIRED_ONLY:
            parsed = [issuer for issuer in parsed if issuer.required]
        return _unique(issuer.id for issuer in parsed)

    def _expand(self, item: CredentialQueryItem, issuers: List[str]) -> ConstraintSet:
        groups = []
        for credential_type in _unique(item.example.type):
            group = {"meta.profileId": self.profile_id, "content.type": credential_type}
            if not issuers:
                groups.append(group)
                continue
            for issuer in issuers:
                groups.append(dict(group, **{"meta.issuer": issuer}))
        return ConstraintSet(groups=tuple(groups))
