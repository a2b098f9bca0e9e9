"""Builds the single parameterized statement used for every row of a run.

Table and column names are the only text ever spliced into SQL, and each
one passes through :func:`quote_identifier` first. Values are always bound
as named parameters (``:column``).
"""

import re
from typing import Iterable, List, Optional, Sequence

from bulkload.config import ConflictPolicy, ConflictStrategy
from bulkload.exceptions import InvalidIdentifierError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Alias under which the RETURNING clause reports the row identifier.
RETURNED_ID = "__id"


def is_identifier(name) -> bool:
    return isinstance(name, str) and bool(IDENTIFIER_PATTERN.match(name))


def quote_identifier(name, role: str = "identifier") -> str:
    """Validate a table or column name and wrap it in double quotes."""
    if not is_identifier(name):
        raise InvalidIdentifierError(name, role)
    return f'"{name}"'


class StatementBuilder:
    """
    Insert/upsert SQL for one table and column list.

    All names are validated in the constructor, so an invalid identifier
    fails before any statement reaches the database.
    """

    def __init__(
        self,
        table: str,
        columns: Sequence[str],
        conflict: Optional[ConflictPolicy] = None,
        id_column: Optional[str] = "id",
    ):
        self.table = table
        self.columns: List[str] = list(columns)
        self.conflict = conflict or ConflictPolicy()
        self.id_column = id_column or "rowid"

        quote_identifier(table, "table name")
        self._check_all(self.columns, "column name")
        self._check_all(self.conflict.keys, "conflict key")
        self._check_all(self.conflict.update_columns, "update column")
        quote_identifier(self.id_column, "id column")

    @staticmethod
    def _check_all(names: Iterable[str], role: str) -> None:
        for name in names:
            quote_identifier(name, role)

    @property
    def quoted_table(self) -> str:
        return quote_identifier(self.table)

    def _verb(self) -> str:
        if self.conflict.strategy == ConflictStrategy.IGNORE:
            return "INSERT OR IGNORE INTO"
        if self.conflict.strategy == ConflictStrategy.REPLACE:
            return "INSERT OR REPLACE INTO"
        return "INSERT INTO"

    def _upsert_clause(self) -> str:
        keys = self.conflict.keys
        update_set = ", ".join(
            f"{quote_identifier(c)}=excluded.{quote_identifier(c)}"
            for c in self.conflict.update_columns
            if c in self.columns
        )
        # Nothing to refresh: self-assign the first key so the clause stays valid.
        set_clause = update_set or f"{quote_identifier(keys[0])}={quote_identifier(keys[0])}"
        conflict_target = ",".join(quote_identifier(k) for k in keys)
        return f" ON CONFLICT({conflict_target}) DO UPDATE SET {set_clause}"

    def build(self, use_returning: bool = False) -> str:
        """
        Build the insert statement.

        Args:
            use_returning: Append a RETURNING clause yielding the id (as ``__id``)
                and every mapped column

        Returns:
            SQL text with ``:column`` bind parameters
        """
        column_list = ", ".join(quote_identifier(c) for c in self.columns)
        placeholders = ", ".join(f":{c}" for c in self.columns)
        sql = f"{self._verb()} {self.quoted_table} ({column_list}) VALUES ({placeholders})"

        if self.conflict.strategy == ConflictStrategy.UPSERT and self.conflict.keys:
            sql += self._upsert_clause()

        if use_returning:
            sql += f" RETURNING {quote_identifier(self.id_column)} AS {RETURNED_ID}, {column_list}"

        return sql

    def build_key_lookup(self) -> str:
        """SELECT recovering the id of the row matching the conflict keys."""
        where = " AND ".join(f"{quote_identifier(k)}=:{k}" for k in self.conflict.keys)
        return (
            f"SELECT {quote_identifier(self.id_column)} AS id "
            f"FROM {self.quoted_table} WHERE {where} LIMIT 1"
        )
