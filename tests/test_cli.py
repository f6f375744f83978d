"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from hands_protocol.cli import main


@pytest.fixture
def cli_env():
    """Set up a temp environment for CLI testing."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        templates_dir = root / "templates"
        templates_dir.mkdir()
        (templates_dir / "git_repo_setup.md").write_text("# Git repo setup\n", encoding="utf-8")
        work_dir = root / "work"
        work_dir.mkdir()

        env = {
            "HP_QUEUE_DIR": str(root / "queue"),
            "HP_TEMPLATES_DIR": str(templates_dir),
            "HP_INSTALL_ROOT": str(root / "install"),
            "HP_WORK_DIR": str(work_dir),
            "FREE_LLM_API_KEY": "",
            "GOOGLE_API_KEY": "",
            "SLACK_BOT_TOKEN": "",
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        yield CliRunner(), root

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _queued_ids(runner):
    result = runner.invoke(main, ["queue", "list", "--json"])
    return [item["planId"] for item in json.loads(result.output)]


class TestCLI:
    def test_help(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Hands Protocol" in result.output

    def test_parse(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["parse", "npm install express"])
        assert result.exit_code == 0
        assert "Plan: plan_" in result.output
        assert "Risk: caution" in result.output
        assert "npm_project_init" in result.output

    def test_parse_json_from_stdin(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["parse", "--json"], input='{"steps": ["ls"]}')
        assert result.exit_code == 0
        plan = json.loads(result.output)
        assert plan["detectedFormat"] == "json"
        assert plan["plan"][0]["action"] == "ls"
        assert plan["requiresConfirmation"] is True

    def test_parse_from_file(self, cli_env):
        runner, root = cli_env
        directive = root / "directive.md"
        directive.write_text("### Directive: List\n```bash\nls -la\n```\n", encoding="utf-8")
        result = runner.invoke(main, ["parse", "-f", str(directive), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["detectedFormat"] == "markdown"


class TestSubmit:
    def test_submit_confirmed(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["submit", "git status"], input="y\n")
        assert result.exit_code == 0
        assert "Queued: plan_" in result.output
        assert len(_queued_ids(runner)) == 1

    def test_submit_declined(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["submit", "git status"], input="n\n")
        assert result.exit_code == 0
        assert "Not queued." in result.output
        assert _queued_ids(runner) == []

    def test_submit_blocked(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["submit", "delete all files in project"], input="y\n")
        assert result.exit_code == 1
        assert "blocked" in result.output
        assert _queued_ids(runner) == []

    def test_submit_plan_file(self, cli_env):
        runner, root = cli_env
        parsed = runner.invoke(main, ["parse", "--json", "git status"])
        plan_file = root / "plan.json"
        plan_file.write_text(parsed.output, encoding="utf-8")
        plan_id = json.loads(parsed.output)["planId"]

        result = runner.invoke(main, ["submit", "--plan-file", str(plan_file)], input="y\n")
        assert result.exit_code == 0
        assert _queued_ids(runner) == [plan_id]

    def test_submit_bad_plan_file(self, cli_env):
        runner, root = cli_env
        plan_file = root / "plan.json"
        plan_file.write_text('{"plan": []}', encoding="utf-8")
        result = runner.invoke(main, ["submit", "--plan-file", str(plan_file)])
        assert result.exit_code == 1
        assert "invalid plan file" in result.output


class TestQueueAndWorker:
    def test_queue_list_empty(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["queue", "list"])
        assert result.exit_code == 0
        assert "Queue is empty." in result.output

    def test_queue_remove(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["submit", "git status"], input="y\n")
        plan_id = _queued_ids(runner)[0]
        result = runner.invoke(main, ["queue", "remove", plan_id])
        assert result.exit_code == 0
        assert _queued_ids(runner) == []

        result = runner.invoke(main, ["queue", "remove", plan_id])
        assert result.exit_code == 1

    def test_queue_clear(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["submit", "git status"], input="y\n")
        runner.invoke(main, ["submit", "add docker"], input="y\n")
        result = runner.invoke(main, ["queue", "clear"])
        assert "Cleared 2 queued plan(s)." in result.output

    def test_worker_once(self, cli_env):
        runner, root = cli_env
        directive = json.dumps({"description": "Touch", "steps": ["echo hi > touched.txt"]})
        runner.invoke(main, ["submit", directive], input="y\n")

        result = runner.invoke(main, ["worker", "--once"])
        assert result.exit_code == 0
        assert "completed" in result.output
        assert (root / "work" / "touched.txt").exists()
        assert _queued_ids(runner) == []

        history = runner.invoke(main, ["history", "list"])
        assert "[COMPLETED]" in history.output
        assert "Touch" in history.output

    def test_worker_once_empty(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["worker", "--once"])
        assert result.exit_code == 0
        assert "Queue is empty." in result.output

    def test_history_clear(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["submit", "git status"], input="y\n")
        runner.invoke(main, ["worker", "--once"])
        runner.invoke(main, ["history", "clear"])
        result = runner.invoke(main, ["history", "list", "--json"])
        assert json.loads(result.output) == []


class TestTemplates:
    def test_list_and_show(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["templates", "list"])
        assert "git_repo_setup" in result.output

        result = runner.invoke(main, ["templates", "show", "git_repo_setup"])
        assert result.exit_code == 0
        assert "# Git repo setup" in result.output

    def test_show_missing(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["templates", "show", "nope"])
        assert result.exit_code == 1

    def test_quarantine(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["templates", "quarantine", "git_repo_setup"])
        assert "quarantined" in result.output
        assert "[quarantined]" in runner.invoke(main, ["templates", "list"]).output

        parsed = json.loads(runner.invoke(main, ["parse", "--json", "git status"]).output)
        assert "git_repo_setup" not in parsed["templates"]

        result = runner.invoke(main, ["templates", "quarantine", "--release", "git_repo_setup"])
        assert "released" in result.output

    def test_meta(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["templates", "meta", "git_repo_setup", "--comment", "good", "--score", "4"])
        assert result.exit_code == 0
        assert "score=4" in runner.invoke(main, ["templates", "list"]).output
