import logging
from functools import partial
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import pydantic
from jwcrypto import jwk

from vcstore.config import TRUSTED_ISSUER_POLICY
from vcstore.credentials import validate_credential
from vcstore.errors import (
    DocumentNotFound,
    InvalidArgument,
    NotFoundError,
    UnsupportedQueryType,
    ValidationError,
)
from vcstore.executor import ConcurrentExecutor
from vcstore.facade import StoreFacade
from vcstore.models import Meta, StoredDocument
from vcstore.query import IssuerPolicy, QueryCompiler

log = logging.getLogger(__name__)

QUERY_BY_EXAMPLE = "QueryByExample"


class CredentialRepository:
    """Verifiable credentials of a single profile.

    Every document written carries ``meta.profileId`` of this repository and
    every lookup is scoped to it.
    """

    def __init__(
        self,
        store: StoreFacade,
        profile_id: str,
        executor: Optional[ConcurrentExecutor] = None,
        issuer_policy: Union[IssuerPolicy, str] = TRUSTED_ISSUER_POLICY,
    ):
        if not profile_id:
            raise InvalidArgument("A profile id is required.")
        self.store = store
        self.profile_id = profile_id
        self.executor = executor or ConcurrentExecutor()
        self.compiler = QueryCompiler(profile_id, issuer_policy)
        self._matchers = {QUERY_BY_EXAMPLE: self._match_by_example}

    @classmethod
    async def create(cls, store: StoreFacade, profile_id: str, **kwargs) -> "CredentialRepository":
        await store.open()
        return cls(store, profile_id, **kwargs)

    def _scope(self, **constraints) -> Dict[str, Any]:
        return {"meta.profileId": self.profile_id, **constraints}

    async def get(self, id: str) -> StoredDocument:
        if not id:
            raise InvalidArgument("A credential id is required.")
        doc = await self.store.get(self._scope(**{"content.id": id}))
        if doc is None:
            raise NotFoundError("Verifiable Credential not found.")
        return StoredDocument.from_doc(doc)

    async def find(
        self,
        type: Union[str, Iterable[str], None] = None,
        parent_id: Optional[str] = None,
        displayable: Optional[bool] = None,
    ) -> List[StoredDocument]:
        base = self._scope()
        if parent_id is not None:
            base["meta.parentId"] = parent_id
        if displayable is not None:
            base["meta.displayable"] = displayable

        if type is None:
            groups = [base]
        else:
            types = [type] if isinstance(type, str) else list(dict.fromkeys(type))
            if not types:
                return []
            groups = [dict(base, **{"content.type": t}) for t in types]

        docs = await self.store.find(groups)
        return [StoredDocument.from_doc(doc) for doc in docs]

    async def insert(
        self,
        credential: Mapping[str, Any],
        meta: Optional[Mapping[str, Any]] = None,
        recipients: Optional[Iterable[jwk.JWK]] = None,
    ) -> StoredDocument:
        issuer = validate_credential(credential)
        try:
            meta = Meta.model_validate({**(meta or {}), "issuer": issuer, "profileId": self.profile_id})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid credential meta: {e}") from e

        doc = {
            "meta": meta.model_dump(by_alias=True, exclude_none=True),
            "content": dict(credential),
        }
        doc_id = await self.store.insert(doc, recipients=recipients)
        log.info(
            "Stored credential %s", credential["id"],
            extra={"profile_id": self.profile_id, "credential_id": credential["id"]},
        )
        return StoredDocument(id=doc_id, content=doc["content"], meta=meta)

    async def delete(self, id: str) -> bool:
        if not id:
            raise InvalidArgument("A credential id is required.")
        try:
            removed = await self.store.delete(self._scope(**{"content.id": id}))
        except DocumentNotFound:
            removed = False
        if removed:
            log.info("Deleted credential %s", id, extra={"profile_id": self.profile_id, "credential_id": id})
        return removed

    async def match(self, query: Optional[Mapping[str, Any]]) -> List[StoredDocument]:
        if query is None:
            raise InvalidArgument('"query" is required.')
        if not isinstance(query, Mapping):
            raise ValidationError('"query" must be an object.')
        query_type = query.get("type")
        matcher = self._matchers.get(query_type) if isinstance(query_type, str) else None
        if matcher is None:
            raise UnsupportedQueryType(query_type)
        return await matcher(query)

    async def _match_by_example(self, query: Mapping[str, Any]) -> List[StoredDocument]:
        constraint_sets = self.compiler.compile(query)
        lookups = [partial(self.store.find, cs.groups) for cs in constraint_sets]
        docs = await self.executor.run(lookups)
        return [StoredDocument.from_doc(doc) for doc in docs]
