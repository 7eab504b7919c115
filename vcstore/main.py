import logging
import re
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from jwcrypto import jwk

from vcstore.backends import MemoryBackend
from vcstore.config import DATABASE_URL, HMAC_JWK, KEY_AGREEMENT_JWK, TRUSTED_ISSUER_POLICY
from vcstore.credentials import credential_from_jwt
from vcstore.crypto import DocumentCipher, HmacIndexer
from vcstore.errors import (
    InvalidArgument,
    NotFoundError,
    NotSupportedError,
    UnsupportedQueryType,
    ValidationError,
)
from vcstore.facade import StoreFacade
from vcstore.logging_config import configure_logging
from vcstore.models import AddCredentialRequest, MatchRequest
from vcstore.postgres import PostgresBackend
from vcstore.repository import CredentialRepository
from vcstore.translator import BlindIndexTranslator

log = logging.getLogger(__name__)

PROFILE_ROUTE = re.compile(r"^/profiles/([^/]+)/")

CLIENT_ERRORS = (InvalidArgument, NotSupportedError, UnsupportedQueryType, ValidationError)


def build_store(database_url: str = DATABASE_URL) -> StoreFacade:
    if database_url.startswith("memory://"):
        backend = MemoryBackend()
    elif database_url.startswith(("postgresql://", "postgres://")):
        backend = PostgresBackend(database_url)
    else:
        raise ValueError(f"Unsupported database URL: {database_url}")

    if HMAC_JWK and KEY_AGREEMENT_JWK:
        translator = BlindIndexTranslator(HmacIndexer(jwk.JWK.from_json(HMAC_JWK)))
        cipher = DocumentCipher(jwk.JWK.from_json(KEY_AGREEMENT_JWK))
        return StoreFacade(backend, translator, cipher)
    return StoreFacade(backend)


def create_app(store: Optional[StoreFacade] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        if getattr(app.state, "store", None) is None:
            app.state.store = build_store()
        await app.state.store.open()
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.store = store

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        extra = {
            "route": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
        }
        profile = PROFILE_ROUTE.match(request.url.path)
        if profile:
            extra["profile_id"] = profile.group(1)
        log.info(f"request_complete status={response.status_code} duration_ms={duration_ms}", extra=extra)
        return response

    def repository(request: Request, profile_id: str) -> CredentialRepository:
        return CredentialRepository(
            request.app.state.store, profile_id, issuer_policy=TRUSTED_ISSUER_POLICY
        )

    @app.get("/profiles/{profile_id}/credentials")
    async def find_credentials(
        request: Request,
        profile_id: str,
        type: Optional[List[str]] = Query(None),
        parent_id: Optional[str] = Query(None, alias="parentId"),
        displayable: Optional[bool] = None,
    ):
        docs = await repository(request, profile_id).find(
            type=type, parent_id=parent_id, displayable=displayable
        )
        return [doc.model_dump(by_alias=True, exclude_none=True) for doc in docs]

    @app.get("/profiles/{profile_id}/credentials/{credential_id:path}")
    async def get_credential(request: Request, profile_id: str, credential_id: str):
        try:
            doc = await repository(request, profile_id).get(credential_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return doc.model_dump(by_alias=True, exclude_none=True)

    @app.post("/profiles/{profile_id}/credentials")
    async def add_credential(request: Request, profile_id: str, req: AddCredentialRequest):
        if (req.credential is None) == (req.jwt is None):
            raise HTTPException(status_code=400, detail="Provide exactly one of 'credential' or 'jwt'")
        try:
            credential = req.credential if req.jwt is None else credential_from_jwt(req.jwt)
            doc = await repository(request, profile_id).insert(credential, req.meta)
        except CLIENT_ERRORS as e:
            raise HTTPException(status_code=400, detail=f"Failed to store: {str(e)}")
        return {"status": "stored", "id": doc.id, "credentialId": doc.content["id"]}

    @app.delete("/profiles/{profile_id}/credentials/{credential_id:path}")
    async def delete_credential(request: Request, profile_id: str, credential_id: str):
        deleted = await repository(request, profile_id).delete(credential_id)
        return {"deleted": deleted}

    @app.post("/profiles/{profile_id}/credentials/match")
    async def match_credentials(request: Request, profile_id: str, req: MatchRequest):
        try:
            docs = await repository(request, profile_id).match(req.query)
        except CLIENT_ERRORS as e:
            raise HTTPException(status_code=400, detail=str(e))
        return [doc.model_dump(by_alias=True, exclude_none=True) for doc in docs]

    return app


app = create_app()
