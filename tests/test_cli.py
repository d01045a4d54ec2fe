"""Tests for the CLI, with daemon calls stubbed out."""

import json

import pytest
from typer.testing import CliRunner

from nodeflow.cli import main as cli

runner = CliRunner()


class _Calls(list):
    pass


@pytest.fixture
def api(monkeypatch):
    recorded = _Calls()
    recorded.responses = {}

    def fake_api(method, path, **kwargs):
        recorded.append((method, path, kwargs))
        if (method, path) in recorded.responses:
            return recorded.responses[(method, path)]
        if path.endswith("/nodes"):
            return {"id": f"id-{kwargs['json']['name']}"}
        return {"id": "p1", "name": "chain", "status": "active"}

    monkeypatch.setattr(cli, "_api", fake_api)
    return recorded


class TestApply:
    def test_creates_nodes_edges_and_publishes(self, api, tmp_path):
        definition = {
            "name": "chain",
            "nodes": [
                {"name": "A", "type": "text", "config": {"content": "{{x}}"}},
                {"name": "B", "type": "text", "config": {"content": "Got: {{text}}"}},
            ],
            "edges": [{"source": "A", "target": "B"}],
        }
        path = tmp_path / "chain.json"
        path.write_text(json.dumps(definition))

        result = runner.invoke(cli.app, ["apply", str(path)])
        assert result.exit_code == 0, result.output
        assert [(m, p) for m, p, _ in api] == [
            ("POST", "/pipelines"),
            ("POST", "/pipelines/p1/nodes"),
            ("POST", "/pipelines/p1/nodes"),
            ("POST", "/pipelines/p1/edges"),
            ("POST", "/pipelines/p1/publish"),
        ]
        assert api[3][2]["json"] == {"source_node_id": "id-A", "target_node_id": "id-B"}
        assert "2 node(s), 1 edge(s)" in result.output

    def test_draft_skips_publish(self, api, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text(json.dumps({"name": "empty"}))
        result = runner.invoke(cli.app, ["apply", str(path), "--draft"])
        assert result.exit_code == 0
        assert [p for _, p, _ in api] == ["/pipelines"]

    def test_missing_file(self, api, tmp_path):
        result = runner.invoke(cli.app, ["apply", str(tmp_path / "nope.json")])
        assert result.exit_code == 1
        assert api == []


class TestRun:
    def test_passes_input_data(self, api):
        api.responses[("POST", "/pipelines/p1/runs")] = {"run_id": "r1", "status": "pending"}
        result = runner.invoke(cli.app, ["run", "p1", "-i", '{"name": "Ada"}'])
        assert result.exit_code == 0, result.output
        assert api[0][2]["json"] == {"input_data": {"name": "Ada"}}
        assert "r1" in result.output

    def test_rejects_invalid_json(self, api):
        result = runner.invoke(cli.app, ["run", "p1", "-i", "{nope"])
        assert result.exit_code == 1
        assert api == []

    def test_wait_prints_output(self, api):
        api.responses[("POST", "/pipelines/p1/runs")] = {"run_id": "r1", "status": "pending"}
        api.responses[("GET", "/runs/r1")] = {
            "id": "r1",
            "status": "completed",
            "progress_percent": 100,
            "duration_ms": 12,
            "error_message": None,
            "output_data": {"text": "Hi Ada"},
            "nodes": [],
        }
        result = runner.invoke(cli.app, ["run", "p1", "--wait", "--poll", "0"])
        assert result.exit_code == 0, result.output
        assert "Hi Ada" in result.output
        assert "100%" in result.output
