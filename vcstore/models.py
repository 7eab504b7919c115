from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class Meta(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    profile_id: Optional[str] = Field(None, alias="profileId")
    issuer: Optional[str] = None
    parent_id: Optional[str] = Field(None, alias="parentId")
    displayable: Optional[bool] = None


class StoredDocument(BaseModel):
    id: str  # backend identity
    content: Dict[str, Any]
    meta: Meta

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "StoredDocument":
        return cls(id=doc["_id"], content=doc["content"], meta=doc.get("meta") or {})


class TrustedIssuer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    required: bool = False


class Example(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: List[str] = Field(min_length=1)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        return _as_list(value)


class CredentialQueryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    example: Example
    # entries stay raw so the compiler can report unsupported shapes
    trusted_issuer: List[Any] = Field(default_factory=list, alias="trustedIssuer")

    @field_validator("trusted_issuer", mode="before")
    @classmethod
    def _normalize_trusted_issuer(cls, value):
        return _as_list(value)


class QueryByExample(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    credential_query: List[CredentialQueryItem] = Field(alias="credentialQuery")

    @field_validator("credential_query", mode="before")
    @classmethod
    def _normalize_credential_query(cls, value):
        if value is None:
            raise ValueError("credentialQuery is required")
        return _as_list(value)


class AddCredentialRequest(BaseModel):
    credential: Optional[Dict[str, Any]] = None
    jwt: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None


class MatchRequest(BaseModel):
    query: Optional[Dict[str, Any]] = None
