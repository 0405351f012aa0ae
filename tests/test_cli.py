"""Tests for the command line interface."""

import json
import logging
import os

import pytest

from autoflow.cli import main
from autoflow.core.config import ENV_OVERRIDES


GOOD_WORKFLOW = """
name: cli-flow
steps:
  - name: greet
    type: log
    params:
      message: "Hello ${variables.who}"
"""

UNKNOWN_TYPE_WORKFLOW = """
name: cli-broken
steps:
  - name: mystery
    type: foobar
    params: {}
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the CLI from an empty directory with a clean environment."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "good.yaml").write_text(GOOD_WORKFLOW)
    (tmp_path / "broken.yaml").write_text(UNKNOWN_TYPE_WORKFLOW)
    (tmp_path / "invalid.yaml").write_text("name: invalid\nsteps: []\n")
    yield tmp_path
    # main() installs a root handler bound to the captured stderr
    logging.getLogger().handlers.clear()


class TestCli:
    """Test the run, validate, list, show and clear commands."""

    def test_validate(self, workdir, capsys):
        assert main(["validate", "good.yaml"]) == 0

        out = capsys.readouterr().out
        assert "Workflow is valid" in out
        assert "Name: cli-flow" in out

    def test_validate_invalid(self, workdir, capsys):
        assert main(["validate", "invalid.yaml"]) == 1

        out = capsys.readouterr().out
        assert "Workflow validation failed:" in out
        assert "  - steps:" in out

    def test_run_then_list_and_show(self, workdir, capsys):
        db = str(workdir / "runs.db")

        assert main(["--db", db, "run", "good.yaml", "--variables", '{"who": "cli"}']) == 0
        out = capsys.readouterr().out
        assert "Workflow completed successfully" in out
        run_id = out.split("(ID: ")[1].rstrip(")\n")

        assert main(["--db", db, "list", "--workflow", "cli-flow"]) == 0
        assert run_id in capsys.readouterr().out

        assert main(["--db", db, "show", run_id]) == 0
        shown = json.loads(capsys.readouterr().out)
        assert shown["status"] == "completed"
        assert shown["variables"] == {"who": "cli"}
        assert shown["steps"]["greet"]["data"]["message"] == "Hello cli"

    def test_failed_run_exit_code(self, workdir, capsys):
        db = str(workdir / "runs.db")

        assert main(["--db", db, "run", "broken.yaml"]) == 1
        assert "Unknown step type: foobar" in capsys.readouterr().err

    def test_bad_variables(self, workdir, capsys):
        assert main(["--db", str(workdir / "runs.db"), "run", "good.yaml", "-v", "[1]"]) == 1
        assert "Variables must be a JSON object" in capsys.readouterr().err

    def test_missing_workflow_file(self, workdir, capsys):
        assert main(["--db", str(workdir / "runs.db"), "run", "nope.yaml"]) == 1
        assert "Failed to load workflow" in capsys.readouterr().err

    def test_show_unknown_run(self, workdir, capsys):
        assert main(["--db", str(workdir / "runs.db"), "show", "does-not-exist"]) == 1

    def test_clear(self, workdir, capsys):
        db = str(workdir / "runs.db")
        main(["--db", db, "run", "good.yaml"])

        assert main(["--db", db, "clear"]) == 0
        assert main(["--db", db, "list"]) == 0
        assert "No workflow runs found" in capsys.readouterr().out
        assert os.path.exists(db)
