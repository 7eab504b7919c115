"""Tests for selector translation, blind indexing and document encryption."""

import json

import pytest
from jwcrypto.common import JWException

from conftest import make_encrypted_store
from vcstore.backends import MemoryBackend, matches
from vcstore.crypto import (
    DocumentCipher,
    HmacIndexer,
    generate_hmac_key,
    generate_key_agreement_key,
)
from vcstore.errors import InvalidArgument
from vcstore.facade import StoreFacade
from vcstore.translator import BlindIndexTranslator


@pytest.fixture
def indexer():
    return HmacIndexer(generate_hmac_key("urn:hmac:1"))


class TestPlaintextTranslator:

    def test_clause_is_field_match(self):
        assert BlindIndexTranslator().clause("content.type", "AlumniCredential") == {
            "content.type": "AlumniCredential",
        }

    def test_conjunction_merges_fields(self):
        selector = BlindIndexTranslator().conjunction({"meta.profileId": "p1", "content.id": "urn:1"})
        assert selector == {"meta.profileId": "p1", "content.id": "urn:1"}

    def test_disjunction_of_one_group_is_unwrapped(self):
        translator = BlindIndexTranslator()
        assert translator.disjunction([{"a": 1}]) == {"a": 1}
        assert translator.disjunction([{"a": 1}, {"a": 2}]) == {"$or": [{"a": 1}, {"a": 2}]}

    @pytest.mark.parametrize("name, value", [("", "x"), (None, "x"), ("content.id", None)])
    def test_missing_name_or_value(self, name, value):
        with pytest.raises(InvalidArgument):
            BlindIndexTranslator().clause(name, value)

    def test_empty_constraints(self):
        with pytest.raises(InvalidArgument):
            BlindIndexTranslator().disjunction([])
        with pytest.raises(InvalidArgument):
            BlindIndexTranslator().conjunction({})


class TestBlindTranslator:

    def test_tokens_are_deterministic(self, indexer):
        assert indexer.compute_index_token("content.type", "A") == indexer.compute_index_token("content.type", "A")

    def test_tokens_depend_on_key_name_and_value(self, indexer):
        other = HmacIndexer(generate_hmac_key("urn:hmac:2"))
        token = indexer.compute_index_token("content.type", "A")

        assert token != other.compute_index_token("content.type", "A")
        assert token.value != indexer.compute_index_token("content.type", "B").value
        assert token.value != indexer.compute_index_token("content.id", "A").value
        assert token.name == indexer.compute_index_token("content.type", "B").name

    def test_tokens_distinguish_value_types(self, indexer):
        assert indexer.compute_index_token("meta.displayable", True) != \
            indexer.compute_index_token("meta.displayable", "true")

    def test_clause_does_not_carry_plaintext(self, indexer):
        clause = BlindIndexTranslator(indexer).clause("content.type", "AlumniCredential")
        dumped = json.dumps(clause)

        assert "AlumniCredential" not in dumped
        assert "content.type" not in dumped
        assert clause["indexed"]["$elemMatch"]["hmac.id"] == "urn:hmac:1"

    def test_conjunction_is_one_token_per_attribute(self, indexer):
        selector = BlindIndexTranslator(indexer).conjunction({"meta.profileId": "p1", "content.id": "urn:1"})
        assert len(selector["$and"]) == 2

    def test_index_entries_cover_each_type(self, indexer):
        translator = BlindIndexTranslator(indexer)
        doc = {
            "content": {"id": "urn:1", "type": ["VerifiableCredential", "AlumniCredential"]},
            "meta": {"profileId": "p1", "issuer": "urn:issuer:A"},
        }
        [entry] = translator.index_entries(doc)

        assert entry["hmac"]["id"] == "urn:hmac:1"
        assert len(entry["attributes"]) == 5
        for name, value in [("content.type", "AlumniCredential"), ("meta.issuer", "urn:issuer:A")]:
            assert matches(translator.clause(name, value), {"indexed": [entry]})
        assert not matches(translator.clause("meta.parentId", "x"), {"indexed": [entry]})

    def test_index_entries_need_indexer(self):
        with pytest.raises(InvalidArgument):
            BlindIndexTranslator().index_entries({"content": {}})


class TestDocumentCipher:

    def test_round_trip(self):
        cipher = DocumentCipher(generate_key_agreement_key("urn:kak:1"))
        doc = {"content": {"id": "urn:1"}, "meta": {"profileId": "p1"}}

        encrypted = cipher.encrypt(doc)
        assert "urn:1" not in json.dumps(encrypted)
        assert cipher.decrypt(encrypted) == doc

    def test_additional_recipient_can_decrypt(self):
        cipher = DocumentCipher(generate_key_agreement_key("urn:kak:1"))
        other_key = generate_key_agreement_key("urn:kak:2")
        other = DocumentCipher(other_key)

        encrypted = cipher.encrypt({"a": 1}, recipients=[other.public_key])
        assert other.decrypt(encrypted) == {"a": 1}
        assert cipher.decrypt(encrypted) == {"a": 1}

    def test_stranger_cannot_decrypt(self):
        cipher = DocumentCipher(generate_key_agreement_key("urn:kak:1"))
        stranger = DocumentCipher(generate_key_agreement_key("urn:kak:3"))
        with pytest.raises(JWException):
            stranger.decrypt(cipher.encrypt({"a": 1}))

    def test_public_key_is_rejected(self):
        public = DocumentCipher(generate_key_agreement_key()).public_key
        with pytest.raises(ValueError):
            DocumentCipher(public)

    def test_hmac_indexer_needs_symmetric_key(self):
        with pytest.raises(ValueError):
            HmacIndexer(generate_key_agreement_key())


class TestEncryptedStore:

    @pytest.mark.asyncio
    async def test_stored_documents_are_opaque(self):
        backend = MemoryBackend()
        store = make_encrypted_store(backend)
        await store.insert({
            "content": {"id": "urn:1", "type": "AlumniCredential", "issuer": "urn:issuer:A"},
            "meta": {"profileId": "p1", "issuer": "urn:issuer:A"},
        })

        [stored] = await backend.find({})
        assert set(stored) == {"jwe", "indexed", "_id"}
        dumped = json.dumps(stored)
        for plaintext in ("urn:1", "AlumniCredential", "urn:issuer:A", "profileId"):
            assert plaintext not in dumped

    def test_mode_needs_indexer_and_cipher_together(self, indexer):
        with pytest.raises(ValueError):
            StoreFacade(MemoryBackend(), BlindIndexTranslator(indexer))
        with pytest.raises(ValueError):
            StoreFacade(MemoryBackend(), cipher=DocumentCipher(generate_key_agreement_key()))
