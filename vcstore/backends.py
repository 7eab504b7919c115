"""Document backends for the credential store.

A backend persists raw JSON documents and answers selector lookups. The
selector language is a small Mango-style subset shared by every backend:

- a dict is an implicit AND of its entries
- ``"$and"`` / ``"$or"`` take a list of selectors
- a dotted field name maps to a scalar (equality; an array field matches
  when it contains the value), ``{"$eq": value}``, or
  ``{"$elemMatch": selector}`` (some array element matches the selector)

Returned documents carry their backend identity under ``_id``.
"""
import asyncio
import copy
import logging
import uuid
from typing import Any, Dict, Iterable, List, Protocol

from vcstore.errors import DocumentNotFound

log = logging.getLogger(__name__)

MISSING = object()

SCALARS = (str, int, float, bool)


class Backend(Protocol):
    async def ensure_index(self, fields: Iterable[str]) -> None:
        ...

    async def insert(self, doc: Dict[str, Any]) -> str:
        ...

    async def find(self, selector: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...

    async def remove(self, doc: Dict[str, Any]) -> bool:
        ...


def resolve_path(doc, path: str):
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return MISSING
        value = value[part]
    return value


def matches(selector: Dict[str, Any], doc) -> bool:
    for key, condition in selector.items():
        if key == "$and":
            if not all(matches(sub, doc) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(sub, doc) for sub in condition):
                return False
        elif not _match_field(resolve_path(doc, key), condition):
            return False
    return True


def _match_field(value, condition) -> bool:
    if isinstance(condition, dict):
        if "$elemMatch" in condition:
            if not isinstance(value, list):
                return False
            return any(
                isinstance(element, dict) and matches(condition["$elemMatch"], element)
                for element in value
            )
        if "$eq" not in condition:
            raise ValueError(f"Unsupported selector operator in {sorted(condition)}")
        condition = condition["$eq"]

    if not isinstance(condition, SCALARS):
        raise ValueError("Only scalar equality is supported in selectors")
    if value is MISSING:
        return False
    if isinstance(value, list):
        return any(_same(element, condition) for element in value)
    return _same(value, condition)


def _same(a, b) -> bool:
    # keep True from matching 1
    return type(a) is type(b) and a == b


class MemoryBackend:
    """Process-local backend, keeps documents in insertion order."""

    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self.indexes: List[tuple] = []

    async def ensure_index(self, fields):
        fields = tuple(fields)
        if fields not in self.indexes:
            self.indexes.append(fields)

    async def insert(self, doc):
        doc_id = str(uuid.uuid4())
        self._docs[doc_id] = copy.deepcopy(doc)
        await asyncio.sleep(0)
        log.debug("Inserted document %s", doc_id)
        return doc_id

    async def find(self, selector):
        await asyncio.sleep(0)
        return [
            dict(copy.deepcopy(doc), _id=doc_id)
            for doc_id, doc in self._docs.items()
            if matches(selector, doc)
        ]

    async def remove(self, doc):
        await asyncio.sleep(0)
        if self._docs.pop(doc["_id"], None) is None:
            raise DocumentNotFound(f"Document {doc['_id']} not found")
        log.debug("Removed document %s", doc["_id"])
        return True
