"""
CLI Tests
==========

Drives `campussync` subcommands against a file-backed SQLite database.
"""

from __future__ import annotations

import json

import pytest

from campussync.cli import main


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "campussync.yaml"
    path.write_text(
        f"database:\n  url: sqlite:///{tmp_path / 'campussync.db'}\n"
        "credentials:\n  signing_key: cli-test-key\n"
        "log_level: WARNING\n"
    )
    return str(path)


def run(config_path, *argv):
    main(["--config", config_path, *argv])


@pytest.mark.integration
class TestCli:
    """Admin commands end to end."""

    def test_seed_and_rules(self, config_path, capsys):
        run(config_path, "seed")
        assert "Seeded 10 trusted issuers and 4 verification rules." in capsys.readouterr().out

        run(config_path, "seed")
        assert "Seeded 0 trusted issuers and 0 verification rules." in capsys.readouterr().out

        run(config_path, "rules", "toggle", "Logo Match", "--off")
        assert "Rule 'Logo Match' is disabled" in capsys.readouterr().out

        run(config_path, "rules", "update", "Template Match", "--weight", "0.5")
        assert "weight=0.5" in capsys.readouterr().out

        run(config_path, "rules", "list")
        out = capsys.readouterr().out
        assert "[off] Logo Match" in out
        assert "[on ] Template Match" in out

    def test_invalid_threshold(self, config_path, capsys):
        run(config_path, "seed")
        with pytest.raises(SystemExit) as exc:
            run(config_path, "rules", "update", "Logo Match", "--threshold", "1.5")
        assert exc.value.code == 1
        assert "threshold must be in [0, 1]" in capsys.readouterr().out

    def test_job_submit_and_status(self, config_path, capsys):
        payload = json.dumps({"certificate_id": "c1", "file_ref": "uploads/c1.png"})
        run(config_path, "jobs", "submit", "--type", "ocr", "--payload", payload)
        job_id = capsys.readouterr().out.strip()

        run(config_path, "jobs", "status", job_id)
        status = json.loads(capsys.readouterr().out)
        assert status["status"] == "pending"

        run(config_path, "jobs", "list", "--status", "pending")
        assert job_id in capsys.readouterr().out

    def test_invalid_payload_reported(self, config_path, capsys):
        with pytest.raises(SystemExit) as exc:
            run(config_path, "jobs", "submit", "--type", "ocr", "--payload", '{"certificate_id": "c1"}')
        assert exc.value.code == 1
        assert capsys.readouterr().out.startswith("Error: Invalid ocr payload")

    def test_unknown_job(self, config_path, capsys):
        with pytest.raises(SystemExit):
            run(config_path, "jobs", "status", "nope")
        assert "Job not found: nope" in capsys.readouterr().out

    def test_review_requires_reason(self, config_path):
        with pytest.raises(SystemExit) as exc:
            run(config_path, "review", "approve", "c1", "--actor", "admin-1")
        assert exc.value.code == 2

    def test_empty_review_queue(self, config_path, capsys):
        run(config_path, "review", "list")
        assert "No certificates awaiting review." in capsys.readouterr().out

    def test_no_command(self, config_path):
        with pytest.raises(SystemExit):
            run(config_path)
