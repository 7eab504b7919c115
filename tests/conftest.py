import asyncio
import copy

import pytest

from vcstore.backends import MemoryBackend
from vcstore.crypto import DocumentCipher, HmacIndexer, generate_hmac_key, generate_key_agreement_key
from vcstore.facade import StoreFacade
from vcstore.repository import CredentialRepository
from vcstore.translator import BlindIndexTranslator

PROFILE_ID = "123456"

ALUMNI_CREDENTIAL = {
    "@context": [
        "https://www.w3.org/2018/credentials/v1",
        "https://www.w3.org/2018/credentials/examples/v1",
    ],
    "id": "http://example.edu/credentials/1872",
    "type": ["VerifiableCredential", "AlumniCredential"],
    "issuer": "https://example.edu/issuers/565049",
    "issuanceDate": "2010-01-01T19:23:24Z",
    "credentialSubject": {
        "id": "did:example:ebfeb1f712ebc6f1c276e12ec21",
        "alumniOf": {"id": "did:example:c276e12ec21ebfeb1f712ebc6f1", "name": "Example University"},
    },
}


class CountingBackend(MemoryBackend):
    """MemoryBackend that records lookups and how many overlap."""

    def __init__(self, delay: float = 0.01):
        super().__init__()
        self.delay = delay
        self.find_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def find(self, selector):
        self.find_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return await super().find(selector)
        finally:
            self.in_flight -= 1


def make_encrypted_store(backend=None) -> StoreFacade:
    translator = BlindIndexTranslator(HmacIndexer(generate_hmac_key("urn:hmac:test")))
    cipher = DocumentCipher(generate_key_agreement_key("urn:kak:test"))
    return StoreFacade(backend or MemoryBackend(), translator, cipher)


@pytest.fixture
def alumni_credential():
    return copy.deepcopy(ALUMNI_CREDENTIAL)


@pytest.fixture(params=["plaintext", "encrypted"])
def store(request):
    """Run each repository test against both storage modes."""
    if request.param == "encrypted":
        return make_encrypted_store()
    return StoreFacade(MemoryBackend())


@pytest.fixture
def repository(store):
    return CredentialRepository(store, PROFILE_ID)


@pytest.fixture
def counting_backend():
    return CountingBackend()


def query_by_example(*items):
    return {"type": "QueryByExample", "credentialQuery": list(items)}
