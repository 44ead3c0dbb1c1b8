"""Table definitions for the forum entity graph.

Each entity kind declares its table, tenant column, natural key and
references to other kinds.  The recovery operations iterate these
definitions instead of hardcoding column names at every call site.

Usage:
    from forum_recovery.schema.models import EntitySchema, TableDef, ForeignKey

    schema = EntitySchema(tables=[
        TableDef(kind="users", table="users", natural_key=["tenant_id", "email"]),
        TableDef(kind="content", table="posts",
                 refs=[ForeignKey(kind="users", field="author_id")]),
    ])
"""

from typing import Any

from pydantic import BaseModel, Field


class ForeignKey(BaseModel):
    """Reference from one kind to another."""

    kind: str               # referenced kind
    field: str              # FK column in this table
    required: bool = True   # skip record if the reference cannot be resolved


class TableDef(BaseModel):
    """Definition of one entity kind for backup/restore/clean operations."""

    kind: str                                       # bundle key (users, content, ...)
    table: str                                      # table name in the store
    pk: str = "id"                                  # primary key column
    tenant_field: str = "tenant_id"                 # tenant ownership column
    natural_key: list[str] = Field(default_factory=list)  # upsert conflict target
    refs: list[ForeignKey] = Field(default_factory=list)

    @property
    def upsertable(self) -> bool:
        """Whether rows of this kind are matched by natural key on restore."""
        return bool(self.natural_key)

    def key_for(self, tenant_id: str, record: Any) -> dict[str, Any]:
        """Natural-key values of ``record`` inside ``tenant_id``.

        ``record`` is a row dict or a record model.  The tenant column always
        takes ``tenant_id``, so a row keyed in one tenant can be matched in
        another.

        Raises:
            ValueError: If this kind has no natural key.
        """
        if not self.upsertable:
            raise ValueError(f"{self.kind} rows have no natural key")
        get = record.get if isinstance(record, dict) else lambda col: getattr(record, col)
        return {
            col: tenant_id if col == self.tenant_field else get(col)
            for col in self.natural_key
        }


class EntitySchema(BaseModel):
    """Declarative entity schema. Tables ordered by dependency (parents first)."""

    tables: list[TableDef]

    def get(self, kind: str) -> TableDef:
        """Find a TableDef by kind.

        Raises:
            KeyError: If no table is declared for ``kind``.
        """
        for t in self.tables:
            if t.kind == kind:
                return t
        raise KeyError(f"Unknown entity kind: {kind}")

    @property
    def kinds(self) -> list[str]:
        return [t.kind for t in self.tables]
