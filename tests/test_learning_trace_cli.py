# ABOUTME: Verifies the learning-trace CLI exposes its commands and renders results.
# ABOUTME: Runs commands through Typer's test runner against small temporary inputs.

import yaml
from typer.testing import CliRunner

from scripts import learning_trace

runner = CliRunner()


def test_cli_registers_every_command():
    app = learning_trace.app
    command_names = {cmd.name or cmd.callback.__name__ for cmd in app.registered_commands}
    assert {"estimate", "calibrate", "collocations", "allocate", "bottleneck"} <= command_names


def test_collocations_command_lists_partner(tmp_path):
    words = []
    for i in range(20):
        words += ["strong", "tea", f"a{i}", f"b{i}"]
    for i in range(5):
        words += ["strong", f"c{i}", f"d{i}", "tea", f"e{i}", f"f{i}"]
    corpus = tmp_path / "corpus.txt"
    corpus.write_text(" ".join(words))
    config = tmp_path / "engine.yaml"
    config.write_text("lexical:\n  window_size: 2\n")

    result = runner.invoke(
        learning_trace.app,
        ["--config", str(config), "collocations", "--corpus", str(corpus), "--word", "strong"],
    )

    assert result.exit_code == 0, result.output
    assert "tea" in result.output


def test_allocate_command_prints_every_goal(tmp_path):
    goals = tmp_path / "goals.yaml"
    goals.write_text(
        yaml.safe_dump(
            [
                {"goal_id": "exam", "target_theta": 1.0, "current_theta": 0.0, "deadline_days": 7},
                {"goal_id": "trip", "target_theta": 1.0, "current_theta": 0.2, "deadline_days": 45},
            ]
        )
    )

    result = runner.invoke(learning_trace.app, ["allocate", "--goals", str(goals), "--budget", "40"])

    assert result.exit_code == 0, result.output
    assert "exam" in result.output
    assert "trip" in result.output
