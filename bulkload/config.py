"""Configuration models for bulkload."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, model_validator

from bulkload.exceptions import ConfigValidationError


class SourceKind(str, Enum):
    """Where a value comes from.

    * `path` - dot path into the current row (row mappings only)
    * `expression` - jinja2 expression over the message plus `row`
    * `str`, `num`, `bool`, `json` - literals
    * `env` - environment variable
    * `msg`, `flow`, `global` - dot path into the message or a scope store
    """

    PATH = "path"
    EXPRESSION = "expression"
    STR = "str"
    NUM = "num"
    BOOL = "bool"
    JSON = "json"
    ENV = "env"
    MSG = "msg"
    FLOW = "flow"
    GLOBAL = "global"


class TransformKind(str, Enum):
    """Normalization applied to a resolved value."""

    NONE = "none"
    TRIM = "trim"
    UPPER = "upper"
    LOWER = "lower"
    NULL_IF_BLANK = "nz"  # empty / "NA" / "N/A" -> null
    BOOL01 = "bool01"
    NUMBER = "number"
    STRING = "string"


class ConflictStrategy(str, Enum):
    """How a uniqueness violation is resolved."""

    NONE = "none"
    IGNORE = "ignore"
    REPLACE = "replace"
    UPSERT = "upsert"


class TransactionMode(str, Enum):
    """Transaction batching policy."""

    SINGLE = "single"  # one transaction for the whole run
    CHUNKED = "chunked"  # commit every chunk_size rows
    NONE = "none"  # no explicit transaction


class ReturnMode(str, Enum):
    """Which rows are echoed back to the caller."""

    NONE = "none"
    INSERTED = "inserted"
    AFFECTED = "affected"


class OutputScope(str, Enum):
    """Destination scope for typed writes."""

    MSG = "msg"
    FLOW = "flow"
    GLOBAL = "global"


class SynchronousMode(str, Enum):
    OFF = "OFF"
    NORMAL = "NORMAL"
    FULL = "FULL"
    EXTRA = "EXTRA"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ColumnMapping(BaseModel):
    """
    Maps one target column to a value extracted from each row.

    Example:
    ```yaml
    mapping:
      - column: email
        source_kind: path
        source: contact.email
        transform: lower
      - column: total
        source_kind: expression
        source: "row.qty * row.price"
        transform: number
    ```
    """

    model_config = ConfigDict(frozen=True)

    column: str = Field(description="Target column name")
    source_kind: SourceKind = Field(default=SourceKind.PATH, description="How to obtain the value")
    source: str = Field(default="", description="Path, expression or literal, per source_kind")
    transform: TransformKind = Field(default=TransformKind.NONE, description="Normalization")

    @model_validator(mode="after")
    def default_source_to_column(self):
        """A path mapping without a source reads the field named like the column."""
        if self.source_kind == SourceKind.PATH and not self.source:
            object.__setattr__(self, "source", self.column)
        return self


class ConflictPolicy(BaseModel):
    """
    Conflict resolution for the insert statement.

    Example:
    ```yaml
    conflict:
      strategy: upsert
      keys: [sku]
      update_columns: [qty, price]
    ```
    """

    strategy: ConflictStrategy = ConflictStrategy.NONE
    keys: List[str] = Field(default_factory=list, description="Conflict target columns (upsert)")
    update_columns: List[str] = Field(
        default_factory=list,
        description="Columns refreshed on conflict. Empty means a no-op update of the first key.",
    )

    @model_validator(mode="after")
    def check_upsert_keys(self):
        if self.strategy == ConflictStrategy.UPSERT and not self.keys:
            raise ValueError("conflict.keys must be non-empty when strategy is 'upsert'")
        if len(set(self.keys)) != len(self.keys):
            raise ValueError(f"conflict.keys contains duplicates: {self.keys}")
        return self


class TransactionPolicy(BaseModel):
    """
    Transaction batching and error tolerance.

    Example:
    ```yaml
    transaction:
      mode: chunked
      chunk_size: 500
      continue_on_error: false
      pre_sql: "DELETE FROM staging_items"
    ```
    """

    mode: TransactionMode = TransactionMode.SINGLE
    chunk_size: PositiveInt = Field(default=500, description="Rows per transaction (chunked)")
    continue_on_error: bool = Field(
        default=False, description="Count failing rows and keep going instead of aborting"
    )
    pre_sql: Optional[str] = Field(default=None, description="Statement run once before the batch")
    post_sql: Optional[str] = Field(default=None, description="Statement run once after the batch")


class ReturnPolicy(BaseModel):
    """Which rows to echo back, and where to put them."""

    mode: ReturnMode = ReturnMode.NONE
    id_column: str = Field(default="id", description="Identifier column, or 'rowid'")
    scope: OutputScope = OutputScope.MSG
    path: str = "sqlite.rows"


class OutputConfig(BaseModel):
    """Where the run summary is written."""

    scope: OutputScope = OutputScope.MSG
    path: str = "sqlite"


class PragmaConfig(BaseModel):
    """Connection pragmas applied right after opening."""

    wal: bool = Field(default=False, description="PRAGMA journal_mode=WAL")
    synchronous: Optional[SynchronousMode] = None
    extra: Optional[str] = Field(default=None, description="';'-separated extra statements")


class ConnectionConfig(BaseModel):
    """
    Database location.

    Example:
    ```yaml
    connection:
      db_path_kind: env
      db_path: INVENTORY_DB
      pragmas:
        wal: true
        synchronous: NORMAL
    ```
    """

    db_path_kind: SourceKind = SourceKind.STR
    db_path: str = ""
    pragmas: PragmaConfig = Field(default_factory=PragmaConfig)

    @model_validator(mode="after")
    def check_kind(self):
        if self.db_path_kind == SourceKind.PATH:
            raise ValueError("connection.db_path_kind cannot be 'path'")
        return self


class SourceConfig(BaseModel):
    """Where the input records come from."""

    kind: SourceKind = SourceKind.MSG
    value: str = "payload"

    @model_validator(mode="after")
    def check_kind(self):
        if self.kind == SourceKind.PATH:
            raise ValueError("source.kind cannot be 'path'")
        return self


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Example:
    ```yaml
    logging:
      level: "INFO"
      structured: true
    ```
    """

    level: LogLevel = LogLevel.INFO
    structured: bool = Field(default=False, description="Output JSON logs")


class BulkInsertConfig(BaseModel):
    """
    Complete configuration of a bulk insert node.

    Example:
    ```yaml
    name: load_items
    connection:
      db_path: ./data/inventory.db
    table: items
    mapping:
      - {column: sku, source: sku, transform: upper}
      - {column: qty, source: qty, transform: number}
    conflict:
      strategy: upsert
      keys: [sku]
      update_columns: [qty]
    transaction:
      mode: chunked
      chunk_size: 200
    returning:
      mode: affected
    ```
    """

    name: str = ""
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    table: str = ""
    auto_map: bool = Field(default=False, description="Map every key of the first record")
    mapping: List[ColumnMapping] = Field(default_factory=list)
    conflict: ConflictPolicy = Field(default_factory=ConflictPolicy)
    transaction: TransactionPolicy = Field(default_factory=TransactionPolicy)
    output: OutputConfig = Field(default_factory=OutputConfig)
    returning: ReturnPolicy = Field(default_factory=ReturnPolicy)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def check_unique_columns(self):
        seen = set()
        duplicates = []
        for m in self.mapping:
            if m.column in seen:
                duplicates.append(m.column)
            seen.add(m.column)
        if duplicates:
            raise ValueError(f"Duplicate mapped columns: {duplicates}")
        return self


def build_config(data: Dict[str, Any], file: Optional[str] = None) -> BulkInsertConfig:
    """Validate a raw dict, reporting problems as ConfigValidationError."""
    try:
        return BulkInsertConfig(**data)
    except ValidationError as e:
        raise ConfigValidationError(str(e), file=file) from e


def load_config_from_file(path: str, env: Optional[str] = None) -> BulkInsertConfig:
    """
    Load and validate configuration from file.

    Args:
        path: Path to YAML file
        env: Environment override to apply

    Returns:
        BulkInsertConfig
    """
    from bulkload.utils import load_yaml_with_env

    return build_config(load_yaml_with_env(path, env=env), file=path)
