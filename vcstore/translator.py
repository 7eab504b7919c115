from typing import Any, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

from vcstore.backends import MISSING, resolve_path
from vcstore.crypto import IndexToken
from vcstore.errors import InvalidArgument


# Attributes that can be looked up; in encrypted mode each one is blinded
INDEXED_FIELDS = (
    "content.id",
    "content.type",
    "meta.profileId",
    "meta.issuer",
    "meta.parentId",
    "meta.displayable",
)


class Indexer(Protocol):
    key_id: str

    def compute_index_token(self, name: str, value: Any) -> IndexToken:
        ...

    def build_index_entries(self, attributes) -> List[dict]:
        ...


class BlindIndexTranslator:
    """Turns logical equality constraints into backend selectors.

    Without an indexer, constraints become plain field matches. With one,
    each (name, value) pair is blinded into a single index token and matched
    against the ``indexed`` entries of encrypted documents; a conjunction
    requires every blinded attribute to be present on the document.
    """

    def __init__(self, indexer: Optional[Indexer] = None):
        self.indexer = indexer

    @property
    def blind(self) -> bool:
        return self.indexer is not None

    def clause(self, name: str, value: Any) -> dict:
        if not name:
            raise InvalidArgument("An attribute name is required.")
        if value is None:
            raise InvalidArgument(f'A value is required for attribute "{name}".')
        if self.indexer is None:
            return {name: value}

        token = self.indexer.compute_index_token(name, value)
        return {
            "indexed": {
                "$elemMatch": {
                    "hmac.id": self.indexer.key_id,
                    "attributes": {
                        "$elemMatch": {"name": token.name, "value": token.value},
                    },
                },
            },
        }

    def conjunction(self, constraints: Mapping[str, Any]) -> dict:
        if not constraints:
            raise InvalidArgument("At least one constraint is required.")
        clauses = [self.clause(name, value) for name, value in constraints.items()]
        if not self.blind:
            merged = {}
            for clause in clauses:
                merged.update(clause)
            return merged
        return clauses[0] if len(clauses) == 1 else {"$and": clauses}

    def disjunction(self, groups: Sequence[Mapping[str, Any]]) -> dict:
        if not groups:
            raise InvalidArgument("At least one constraint group is required.")
        selectors = [self.conjunction(group) for group in groups]
        return selectors[0] if len(selectors) == 1 else {"$or": selectors}

    def index_attributes(self, doc: Mapping[str, Any]) -> Iterator[Tuple[str, Any]]:
        for field in INDEXED_FIELDS:
            value = resolve_path(doc, field)
            if value is MISSING or value is None:
                continue
            for item in value if isinstance(value, list) else [value]:
                yield field, item

    def index_entries(self, doc: Mapping[str, Any]) -> List[dict]:
        if self.indexer is None:
            raise InvalidArgument("Index entries require a blinding indexer.")
        return self.indexer.build_index_entries(list(self.index_attributes(doc)))
