from vcstore.backends import MemoryBackend
from vcstore.crypto import DocumentCipher, HmacIndexer
from vcstore.errors import (
    InvalidArgument,
    NotFoundError,
    NotSupportedError,
    UnsupportedQueryType,
    ValidationError,
)
from vcstore.executor import ConcurrentExecutor
from vcstore.facade import StoreFacade
from vcstore.query import IssuerPolicy, QueryCompiler
from vcstore.repository import CredentialRepository
from vcstore.translator import BlindIndexTranslator

__all__ = [
    "BlindIndexTranslator",
    "ConcurrentExecutor",
    "CredentialRepository",
    "DocumentCipher",
    "HmacIndexer",
    "InvalidArgument",
    "IssuerPolicy",
    "MemoryBackend",
    "NotFoundError",
    "NotSupportedError",
    "QueryCompiler",
    "StoreFacade",
    "UnsupportedQueryType",
    "ValidationError",
]
