import json
import logging
import uuid
from typing import Any, Dict

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from vcstore.backends import SCALARS
from vcstore.errors import DocumentNotFound

log = logging.getLogger(__name__)


def _quote(part: str) -> str:
    return '"' + part.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _path(field: str) -> str:
    return "@" + "".join("." + _quote(part) for part in field.split("."))


def _join(terms, op: str, empty: str) -> str:
    if not terms:
        return empty
    if len(terms) == 1:
        return terms[0]
    return "(" + f" {op} ".join(terms) + ")"


def _literal(value) -> str:
    # JSON scalars are valid SQL/JSONPath literals
    return json.dumps(value, allow_nan=False)


def _compile(selector: Dict[str, Any]) -> str:
    terms = []
    for key, condition in selector.items():
        if key == "$and":
            terms.append(_join([_compile(s) for s in condition], "&&", "(1 == 1)"))
        elif key == "$or":
            terms.append(_join([_compile(s) for s in condition], "||", "(1 == 0)"))
        else:
            terms.append(_compile_field(key, condition))
    return _join(terms, "&&", "(1 == 1)")


def _compile_field(field: str, condition) -> str:
    if isinstance(condition, dict):
        if "$elemMatch" in condition:
            return f"exists({_path(field)}[*] ? ({_compile(condition['$elemMatch'])}))"
        if "$eq" not in condition:
            raise ValueError(f"Unsupported selector operator in {sorted(condition)}")
        condition = condition["$eq"]
    if not isinstance(condition, SCALARS):
        raise ValueError("Only scalar equality is supported in selectors")
    # lax mode unwraps arrays, so an array field matches on membership
    return f"{_path(field)} == {_literal(condition)}"


def compile_selector(selector: Dict[str, Any]) -> str:
    """Compile a selector into a SQL/JSONPath predicate for ``doc @? path``.

    Values are inlined as literals since ``@?`` takes no variables, which keeps
    the predicate usable by a ``jsonb_path_ops`` GIN index on ``doc``.
    """
    return f"$ ? ({_compile(selector)})"


class PostgresBackend:
    def __init__(self, conninfo: str, table: str = "vc_documents"):
        self.conninfo = conninfo
        self.table = table

    async def init_db(self):
        async with await psycopg.AsyncConnection.connect(self.conninfo) as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql.SQL("""
                    CREATE TABLE IF NOT EXISTS {} (
                        id UUID PRIMARY KEY,
                        seq BIGSERIAL,
                        doc JSONB NOT NULL
                    )
                """).format(sql.Identifier(self.table)))
                await conn.commit()

    async def ensure_index(self, fields):
        await self.init_db()
        async with await psycopg.AsyncConnection.connect(self.conninfo) as conn:
            async with conn.cursor() as cur:
                # one path index serves every selector field, blinded entries included
                await cur.execute(sql.SQL(
                    "CREATE INDEX IF NOT EXISTS {} ON {} USING GIN (doc jsonb_path_ops)"
                ).format(
                    sql.Identifier(f"{self.table}_doc_path_idx".lower()),
                    sql.Identifier(self.table),
                ))
                await conn.commit()
        log.info("Ensured path index on %s for %s", self.table, ", ".join(fields))

    async def insert(self, doc):
        doc_id = str(uuid.uuid4())
        async with await psycopg.AsyncConnection.connect(self.conninfo) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    sql.SQL("INSERT INTO {} (id, doc) VALUES (%s, %s)").format(sql.Identifier(self.table)),
                    (doc_id, Jsonb(doc)),
                )
                await conn.commit()
        return doc_id

    async def find(self, selector):
        path = compile_selector(selector)
        async with await psycopg.AsyncConnection.connect(self.conninfo) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    sql.SQL(
                        "SELECT id, doc FROM {} WHERE doc @? %s::jsonpath ORDER BY seq"
                    ).format(sql.Identifier(self.table)),
                    (path,),
                )
                rows = await cur.fetchall()
        return [dict(doc, _id=str(doc_id)) for doc_id, doc in rows]

    async def remove(self, doc):
        async with await psycopg.AsyncConnection.connect(self.conninfo) as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    sql.SQL("DELETE FROM {} WHERE id = %s").format(sql.Identifier(self.table)),
                    (doc["_id"],),
                )
                if cur.rowcount == 0:
                    raise DocumentNotFound(f"Document {doc['_id']} not found")
                await conn.commit()
        return True
