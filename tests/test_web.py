"""Tests for the HTTP plan API."""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from starlette.concurrency import run_in_threadpool
from starlette.testclient import TestClient

from hands_protocol.web.app import create_app


@pytest.fixture
def web_env():
    """Set up a temp environment for web API testing."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        templates_dir = root / "templates"
        templates_dir.mkdir()
        (templates_dir / "git_repo_setup.md").write_text("# Git repo setup\n", encoding="utf-8")

        env = {
            "HP_QUEUE_DIR": str(root / "queue"),
            "HP_TEMPLATES_DIR": str(templates_dir),
            "HP_INSTALL_ROOT": str(root / "install"),
            "HP_WORK_DIR": tmp,
            "FREE_LLM_API_KEY": "",
            "GOOGLE_API_KEY": "",
            "HP_API_TOKEN": "",
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        app = create_app()
        client = TestClient(app)
        yield client

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _parse(client, text):
    resp = client.post("/api/parse", json={"input": text})
    assert resp.status_code == 200
    return resp.json()


class TestParseAPI:
    def test_parse(self, web_env):
        plan = _parse(web_env, "npm install express")
        assert plan["planId"].startswith("plan_")
        assert plan["detectedFormat"] == "natural_language"
        assert plan["overallRisk"] == "caution"
        assert "npm_project_init" in plan["templates"]
        assert plan["requiresConfirmation"] is True

    def test_parse_missing_input(self, web_env):
        resp = web_env.post("/api/parse", json={})
        assert resp.status_code == 400

    def test_parse_invalid_body(self, web_env):
        resp = web_env.post("/api/parse", content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    def test_parse_runs_off_event_loop(self, web_env):
        with patch("hands_protocol.web.app.run_in_threadpool", wraps=run_in_threadpool) as mock_pool:
            plan = _parse(web_env, "git status")
        assert plan["originalInput"] == "git status"
        func, text = mock_pool.await_args.args
        assert func.__name__ == "parse"
        assert text == "git status"


class TestQueueAPI:
    def test_submit_and_list(self, web_env):
        plan = _parse(web_env, "git status")
        resp = web_env.post("/api/queue", json=plan)
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "queued",
            "planId": plan["planId"],
            "message": "Queued for execution.",
        }

        items = web_env.get("/api/queue").json()
        assert [i["planId"] for i in items] == [plan["planId"]]
        assert items[0]["status"] == "pending"

    def test_submit_blocked_plan(self, web_env):
        plan = _parse(web_env, "delete all files in project")
        resp = web_env.post("/api/queue", json=plan)
        assert resp.status_code == 403
        assert "critical warning" in resp.json()["error"]
        assert web_env.get("/api/queue").json() == []

    def test_submit_blocked_command(self, web_env):
        plan = _parse(web_env, '{"description":"x","steps":[{"action":"rm -rf /","type":"command"}]}')
        # warnings are client-supplied; commands are re-checked on submit
        plan["warnings"] = []
        resp = web_env.post("/api/queue", json=plan)
        assert resp.status_code == 403
        assert "Blocked destructive command pattern" in resp.json()["error"]

    def test_submit_invalid_plan(self, web_env):
        resp = web_env.post("/api/queue", json={"plan": []})
        assert resp.status_code == 400

    def test_submit_wrong_field_types(self, web_env):
        for body in (
            {"planId": "p1", "templates": 5},
            {"planId": "p1", "plan": [{"step": None, "action": "ls"}]},
            {"planId": "p1", "workingDirectory": ["/tmp"]},
        ):
            resp = web_env.post("/api/queue", json=body)
            assert resp.status_code == 400
        assert web_env.get("/api/queue").json() == []

    def test_remove(self, web_env):
        plan = _parse(web_env, "git status")
        web_env.post("/api/queue", json=plan)

        resp = web_env.delete(f"/api/queue/{plan['planId']}")
        assert resp.status_code == 200
        assert web_env.get("/api/queue").json() == []

        resp = web_env.delete(f"/api/queue/{plan['planId']}")
        assert resp.status_code == 404

    def test_clear(self, web_env):
        for text in ("git status", "add docker"):
            web_env.post("/api/queue", json=_parse(web_env, text))
        resp = web_env.delete("/api/queue")
        assert resp.json() == {"status": "cleared", "removed": 2}


class TestHistoryAPI:
    def test_history_empty(self, web_env):
        assert web_env.get("/api/history").json() == []

    def test_clear_history(self, web_env):
        resp = web_env.delete("/api/history")
        assert resp.status_code == 200
        assert resp.json() == {"status": "cleared"}


class TestTemplatesAPI:
    def test_list(self, web_env):
        templates = web_env.get("/api/templates").json()
        assert [t["name"] for t in templates] == ["git_repo_setup"]

    def test_get(self, web_env):
        resp = web_env.get("/api/templates/git_repo_setup")
        assert resp.status_code == 200
        assert resp.text == "# Git repo setup\n"

    def test_get_missing(self, web_env):
        assert web_env.get("/api/templates/nope").status_code == 404

    def test_update_meta(self, web_env):
        resp = web_env.post(
            "/api/templates/git_repo_setup/meta",
            json={"comment": "noisy", "quarantined": True},
        )
        assert resp.status_code == 200
        assert resp.json()["quarantined"] is True

        plan = _parse(web_env, "git status")
        assert "git_repo_setup" not in plan["templates"]

    def test_update_meta_invalid_name(self, web_env):
        resp = web_env.post("/api/templates/bad%20name/meta", json={"comment": "x"})
        assert resp.status_code == 400


class TestAuth:
    def test_token_required_for_mutations(self, web_env):
        os.environ["HP_API_TOKEN"] = "s3cret"
        try:
            plan = _parse(web_env, "git status")
            assert web_env.post("/api/queue", json=plan).status_code == 401
            assert web_env.delete("/api/history").status_code == 401

            resp = web_env.post(
                "/api/queue", json=plan, headers={"Authorization": "Bearer s3cret"}
            )
            assert resp.status_code == 200
            assert web_env.get("/api/queue").status_code == 200
        finally:
            os.environ["HP_API_TOKEN"] = ""
