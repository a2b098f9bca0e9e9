"""Resolving values from rows, the run message and the scope stores.

Missing data is a normal value here: lookups that fall off the end of a
path, unknown variables and failing expressions all resolve to ``None``.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from bulkload.config import ColumnMapping, OutputScope, SourceKind
from bulkload.context import RunContext, walk_path
from bulkload.transforms import apply_transform, to_number
from bulkload.utils.logging_context import get_logging_context


class TypedValueResolver:
    """Reads typed values and writes results back into the run context."""

    def __init__(self, context: RunContext):
        self.context = context
        self.ctx = get_logging_context()
        self._env = SandboxedEnvironment()
        self._expressions: Dict[str, Callable[..., Any]] = {}

    def _compile(self, source: str) -> Callable[..., Any]:
        expression = self._expressions.get(source)
        if expression is None:
            expression = self._env.compile_expression(source, undefined_to_none=True)
            self._expressions[source] = expression
        return expression

    def evaluate(self, source: str, row: Any = None) -> Any:
        """Evaluate an expression against the message, with ``row`` and ``msg`` bound."""
        if not source:
            return None
        variables = {k: v for k, v in self.context.message.items() if isinstance(k, str)}
        variables["msg"] = self.context.message
        variables["row"] = row
        try:
            return self._compile(str(source))(**variables)
        except TemplateError as e:
            self.ctx.debug("Expression failed", expression=source, error=str(e))
            return None
        except Exception as e:
            # Runtime errors inside user expressions (bad arithmetic, bad
            # attribute access) mean "no value" for this row.
            self.ctx.debug(
                "Expression raised", expression=source, error_type=type(e).__name__, error=str(e)
            )
            return None

    def get_typed(self, kind: SourceKind, value: Any) -> Any:
        kind = SourceKind(kind)
        if kind == SourceKind.NUM:
            return to_number(value)
        if kind == SourceKind.BOOL:
            if isinstance(value, str):
                return value.strip().lower() == "true"
            return bool(value)
        if kind == SourceKind.ENV:
            return self.context.env.get(str(value))
        if kind == SourceKind.MSG:
            return self.context.get_message_property(str(value))
        if kind == SourceKind.FLOW:
            return self.context.flow.get(str(value))
        if kind == SourceKind.GLOBAL:
            return self.context.global_store.get(str(value))
        if kind == SourceKind.JSON:
            try:
                return json.loads(str(value))
            except ValueError:
                return None
        if kind == SourceKind.EXPRESSION:
            return self.evaluate(str(value))
        if kind == SourceKind.PATH:
            return None
        return value

    def set_typed(self, scope: OutputScope, path: str, value: Any) -> None:
        if not path:
            return
        scope = OutputScope(scope)
        if scope == OutputScope.FLOW:
            self.context.flow.set(path, value)
        elif scope == OutputScope.GLOBAL:
            self.context.global_store.set(path, value)
        else:
            self.context.set_message_property(path, value)

    def resolve_for_row(self, row: Any, mapping: ColumnMapping) -> Any:
        if mapping.source_kind == SourceKind.PATH:
            return walk_path(row, mapping.source)
        if mapping.source_kind == SourceKind.EXPRESSION:
            return self.evaluate(mapping.source, row=row)
        return self.get_typed(mapping.source_kind, mapping.source)


class RowMapper:
    """Turns one input record into the bound parameters of the insert statement."""

    def __init__(self, resolver: TypedValueResolver, mapping: Sequence[ColumnMapping]):
        self.resolver = resolver
        self.mapping: List[ColumnMapping] = list(mapping)

    @property
    def columns(self) -> List[str]:
        return [m.column for m in self.mapping]

    def __call__(self, row: Any) -> Dict[str, Any]:
        return {
            m.column: apply_transform(self.resolver.resolve_for_row(row, m), m.transform)
            for m in self.mapping
        }


def auto_mapping(records: Sequence[Any]) -> List[ColumnMapping]:
    """Path mappings for every key of the first dict record."""
    sample: Optional[dict] = next((r for r in records if isinstance(r, dict)), None)
    if not sample:
        return []
    return [ColumnMapping(column=str(key), source=str(key)) for key in sample.keys()]
