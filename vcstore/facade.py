import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from jwcrypto import jwk

from vcstore.backends import Backend
from vcstore.crypto import DocumentCipher
from vcstore.translator import INDEXED_FIELDS, BlindIndexTranslator

log = logging.getLogger(__name__)


class StoreFacade:
    """Reads and writes credential documents, encrypting them when configured.

    Plaintext mode stores ``{content, meta}`` as-is. Encrypted mode stores
    ``{jwe, indexed}``: the JWE-encrypted document plus blind index entries,
    and decrypts transparently on read. Lookups take OR-of-AND constraint
    groups of logical field names, e.g.
    ``[{"meta.profileId": "p1", "content.type": "AlumniCredential"}]``.
    """

    def __init__(
        self,
        backend: Backend,
        translator: Optional[BlindIndexTranslator] = None,
        cipher: Optional[DocumentCipher] = None,
    ):
        self.backend = backend
        self.translator = translator or BlindIndexTranslator()
        self.cipher = cipher
        if self.translator.blind != (cipher is not None):
            raise ValueError("Encrypted mode requires both a blinding indexer and a cipher")
        self._opened = False

    @property
    def encrypted(self) -> bool:
        return self.cipher is not None

    async def open(self):
        if self._opened:
            return
        await self.backend.ensure_index(("indexed",) if self.encrypted else INDEXED_FIELDS)
        self._opened = True

    async def insert(self, doc: Dict[str, Any], recipients: Optional[Iterable[jwk.JWK]] = None) -> str:
        if self.encrypted:
            stored = {
                "jwe": self.cipher.encrypt(doc, recipients),
                "indexed": self.translator.index_entries(doc),
            }
        else:
            stored = doc
        return await self.backend.insert(stored)

    async def find(self, groups: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        selector = self.translator.disjunction(groups)
        docs = await self.backend.find(selector)
        log.debug("Lookup over %d constraint group(s) matched %d document(s)", len(groups), len(docs))
        return [self._reveal(doc) for doc in docs]

    async def get(self, constraints: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        docs = await self.find([constraints])
        return docs[0] if docs else None

    async def delete(self, constraints: Mapping[str, Any]) -> bool:
        # encrypted documents are removed without being decrypted
        docs = await self.backend.find(self.translator.conjunction(constraints))
        if not docs:
            return False
        return await self.backend.remove(docs[0])

    def _reveal(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        if not self.encrypted:
            return doc
        plain = self.cipher.decrypt(doc["jwe"])
        plain["_id"] = doc["_id"]
        return plain
