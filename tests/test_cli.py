"""
Queue CLI Tests

Exercises the Typer commands with CliRunner against a temporary queue
directory; the submission client is replaced by a scripted fake.

Example usage:
    pytest tests/test_cli.py -v
"""

import json

import pytest
from typer.testing import CliRunner

from cli import main as cli_main
from cli.main import app as cli_app
from client.submit import Refused
from tests.helpers import ScriptedSubmitter

runner = CliRunner()


@pytest.fixture
def images(tmp_path):
    paths = []
    for name in ("living.jpg", "kitchen.png"):
        path = tmp_path / name
        path.write_bytes(b"fake image " + name.encode())
        paths.append(path)
    return paths


@pytest.fixture
def queue_dir(tmp_path):
    return tmp_path / "queue"


def queued(queue_dir):
    return json.loads((queue_dir / "enhance-queue.json").read_text())


def test_help():
    result = runner.invoke(cli_app, ["--help"])

    assert result.exit_code == 0
    for command in ("add", "list", "process", "remove", "clear"):
        assert command in result.stdout


def test_add_and_list(images, queue_dir):
    result = runner.invoke(cli_app, ["add", *map(str, images), "--queue-dir", str(queue_dir)])

    assert result.exit_code == 0
    assert "2/20 items in queue" in result.stdout
    records = queued(queue_dir)
    assert [r["filename"] for r in records] == ["living.jpg", "kitchen.png"]
    assert records[1]["contentType"] == "image/png"

    listing = runner.invoke(cli_app, ["list", "--queue-dir", str(queue_dir)])
    assert "living.jpg" in listing.stdout
    assert "pending" in listing.stdout


def test_add_missing_file(queue_dir, tmp_path):
    result = runner.invoke(cli_app, ["add", str(tmp_path / "nope.jpg"), "--queue-dir", str(queue_dir)])

    assert result.exit_code == 1
    assert not (queue_dir / "enhance-queue.json").exists()


def test_add_over_limit(tmp_path, queue_dir):
    paths = []
    for i in range(21):
        path = tmp_path / f"{i}.jpg"
        path.write_bytes(b"x")
        paths.append(str(path))

    result = runner.invoke(cli_app, ["add", *paths, "--queue-dir", str(queue_dir)])

    assert result.exit_code == 1
    assert not (queue_dir / "enhance-queue.json").exists()


def test_remove_and_clear(images, queue_dir):
    runner.invoke(cli_app, ["add", *map(str, images), "--queue-dir", str(queue_dir)])
    first_id = queued(queue_dir)[0]["id"]

    result = runner.invoke(cli_app, ["remove", first_id, "--queue-dir", str(queue_dir)])
    assert result.exit_code == 0
    assert len(queued(queue_dir)) == 1

    result = runner.invoke(cli_app, ["clear", "--yes", "--queue-dir", str(queue_dir)])
    assert result.exit_code == 0
    assert not (queue_dir / "enhance-queue.json").exists()


def test_remove_unknown(queue_dir):
    result = runner.invoke(cli_app, ["remove", "missing", "--queue-dir", str(queue_dir)])

    assert result.exit_code == 1


def test_process(images, queue_dir, monkeypatch):
    submitter = ScriptedSubmitter()
    monkeypatch.setattr(cli_main, "build_submitter", lambda url, token: submitter)
    runner.invoke(cli_app, ["add", *map(str, images), "--queue-dir", str(queue_dir)])

    result = runner.invoke(cli_app, ["process", "--mode", "sky", "--queue-dir", str(queue_dir)])

    assert result.exit_code == 0
    assert "Completed: 2" in result.stdout
    assert submitter.calls[0][2].mode == "sky"
    assert [r["status"] for r in queued(queue_dir)] == ["completed", "completed"]


def test_process_stops_at_paywall(images, queue_dir, monkeypatch):
    submitter = ScriptedSubmitter([Refused("QUOTA_EXCEEDED", "Image quota exceeded")])
    monkeypatch.setattr(cli_main, "build_submitter", lambda url, token: submitter)
    runner.invoke(cli_app, ["add", *map(str, images), "--queue-dir", str(queue_dir)])

    result = runner.invoke(cli_app, ["process", "--queue-dir", str(queue_dir)])

    assert result.exit_code == 2
    assert [r["status"] for r in queued(queue_dir)] == ["pending", "pending"]
