"""End-to-end runs of the bulk insert node."""

import sqlite3

import pytest

import bulkload.node as node_module
from bulkload.config import build_config
from bulkload.connections.sqlite import SqliteSession
from bulkload.context import RunContext, ScopeStore
from bulkload.exceptions import BracketStatementError, ChunkAbortError, ConfigValidationError
from bulkload.node import BulkInsertNode, NodeStatus, normalize_records


def make_node(db_path, **overrides):
    data = {
        "name": "load_items",
        "connection": {"db_path": db_path},
        "table": "items",
        "mapping": [
            {"column": "sku", "source": "code", "transform": "upper"},
            {"column": "qty", "transform": "number"},
        ],
    }
    data.update(overrides)
    return BulkInsertNode(build_config(data))


@pytest.fixture
def recorded_sessions(monkeypatch):
    sessions = []

    class RecordingSession(SqliteSession):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            sessions.append(self)

    monkeypatch.setattr(node_module, "SqliteSession", RecordingSession)
    return sessions


class TestNormalizeRecords:
    def test_shapes(self):
        assert normalize_records(None) == []
        assert normalize_records({"a": 1}) == [{"a": 1}]
        assert normalize_records(({"a": 1},)) == [{"a": 1}]
        assert normalize_records([1, 2]) == [1, 2]


class TestBulkInsertNode:
    def test_writes_summary_to_message(self, db_path, read_items):
        node = make_node(db_path)
        context = RunContext(message={"payload": [{"code": "a", "qty": "3"}, {"code": "b"}]})

        summary = node.run(context)

        assert summary.ok
        out = context.message["sqlite"]
        assert out["ok"] is True
        assert out["table"] == "items"
        assert out["counts"]["inserted"] == 2
        assert out["first_id"] == 1
        assert out["last_id"] == 2
        assert out["timings"]["ms_open"] >= 0
        assert [(r[1], r[2]) for r in read_items()] == [("A", 3), ("B", None)]
        assert node.status == NodeStatus(fill="green", shape="dot", text="I:2 U:0 S:0 E:0")

    def test_single_record_payload(self, db_path, read_items):
        node = make_node(db_path)
        node.run(RunContext(message={"payload": {"code": "x", "qty": 1}}))
        assert len(read_items()) == 1

    def test_empty_payload(self, db_path):
        node = make_node(db_path)
        context = RunContext(message={})
        summary = node.run(context)
        assert summary.counts.total == 0
        assert node.status.text == "I:0 U:0 S:0 E:0"

    def test_records_from_flow_scope(self, db_path, read_items):
        node = make_node(db_path, source={"kind": "flow", "value": "staged.items"})
        flow = ScopeStore({"staged": {"items": [{"code": "f", "qty": 1}]}})
        node.run(RunContext(flow=flow))
        assert read_items()[0][1] == "F"

    def test_auto_map(self, db_path, read_items):
        node = make_node(db_path, mapping=[], auto_map=True)
        node.run(RunContext(message={"payload": [{"sku": "k1", "qty": 5, "note": "n"}]}))
        assert read_items() == [(1, "k1", 5, "n")]

    def test_outputs_to_other_scopes(self, db_path):
        node = make_node(
            db_path,
            output={"scope": "global", "path": "loads.items"},
            returning={"mode": "inserted", "scope": "flow", "path": "inserted_rows"},
        )
        context = RunContext(message={"payload": [{"code": "a", "qty": 1}]})

        node.run(context)

        assert "sqlite" not in context.message
        assert context.global_store.get("loads.items.counts.inserted") == 1
        rows = context.flow.get("inserted_rows")
        assert rows == [{"action": "inserted", "id": 1, "data": {"sku": "A", "qty": 1}}]

    def test_returned_rows_nested_under_summary(self, db_path):
        node = make_node(db_path, returning={"mode": "affected"})
        context = RunContext(message={"payload": [{"code": "a", "qty": 1}]})
        node.run(context)
        assert context.message["sqlite"]["rows"][0]["id"] == 1
        assert context.message["sqlite"]["counts"]["inserted"] == 1

    def test_db_path_from_env(self, db_path, read_items):
        node = make_node(db_path, connection={"db_path_kind": "env", "db_path": "ITEMS_DB"})
        node.run(RunContext(message={"payload": [{"code": "e"}]}, env={"ITEMS_DB": db_path}))
        assert len(read_items()) == 1

    def test_upsert_status_is_yellow(self, db_path):
        node = make_node(
            db_path, conflict={"strategy": "upsert", "keys": ["sku"], "update_columns": ["qty"]}
        )
        records = [{"code": "a", "qty": 1}]
        node.run(RunContext(message={"payload": records}))
        node.run(RunContext(message={"payload": records}))
        assert node.status.fill == "yellow"
        assert node.status.text.startswith("I:0 U:1")

    def test_row_errors_turn_status_red(self, db_path):
        node = make_node(db_path, transaction={"continue_on_error": True})
        summary = node.run(RunContext(message={"payload": [{"code": "a"}, {"qty": 1}]}))
        assert summary.counts.errors == 1
        assert node.status.fill == "red"
        assert node.status.text == "I:1 U:0 S:0 E:1"

    def test_pragmas_applied(self, db_path):
        node = make_node(db_path, connection={"db_path": db_path, "pragmas": {"wal": True}})
        node.run(RunContext(message={"payload": [{"code": "w"}]}))

        conn = sqlite3.connect(db_path)
        try:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        finally:
            conn.close()


class TestBulkInsertNodeFailures:
    def test_invalid_db_path(self, db_path):
        node = make_node(db_path, connection={"db_path_kind": "env", "db_path": "NOT_SET"})
        with pytest.raises(ConfigValidationError, match="Invalid database path"):
            node.run(RunContext(env={}))
        assert node.status.fill == "red"

    def test_no_columns(self, db_path):
        node = make_node(db_path, mapping=[], auto_map=True)
        with pytest.raises(ConfigValidationError, match="No columns configured"):
            node.run(RunContext(message={"payload": []}))
        assert node.status.text == "no columns"

    def test_missing_table(self, db_path):
        node = make_node(db_path, table="")
        with pytest.raises(ConfigValidationError, match="Table name is required"):
            node.run(RunContext(message={"payload": [{"code": "a"}]}))
        assert node.status.fill == "red"
        assert node.status.text == "Table name is required"

    def test_session_closed_after_pre_sql_failure(self, db_path, recorded_sessions):
        node = make_node(db_path, transaction={"pre_sql": "DELETE FROM nowhere"})

        with pytest.raises(BracketStatementError):
            node.run(RunContext(message={"payload": [{"code": "a"}]}))

        assert len(recorded_sessions) == 1
        assert recorded_sessions[0].is_open is False
        assert recorded_sessions[0].supports_returning is None
        assert node.status.fill == "red"
        assert node.status.text == "✗ pre-SQL failed"

    def test_session_closed_after_abort(self, db_path, recorded_sessions):
        node = make_node(db_path)
        with pytest.raises(ChunkAbortError) as exc_info:
            node.run(RunContext(message={"payload": [{"code": "a"}, {"qty": 2}]}))

        assert recorded_sessions[0].is_open is False
        assert exc_info.value.summary.counts.rolled_back == 1

    def test_session_closed_after_success(self, db_path, recorded_sessions):
        make_node(db_path).run(RunContext(message={"payload": [{"code": "a"}]}))
        assert recorded_sessions[0].is_open is False
