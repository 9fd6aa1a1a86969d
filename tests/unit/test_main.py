"""Tests for the command line entry point."""

from __future__ import annotations

import json
import sys

from nsalloc.__main__ import main


def _run(monkeypatch, *argv) -> int:
    monkeypatch.setattr(sys, "argv", ["nsalloc", *argv])
    return main()


class TestMain:
    def test_allocates_every_namespace(self, monkeypatch, capsys, config_path):
        code = _run(
            monkeypatch,
            "--config", str(config_path),
            "--namespaces", "3",
            "--uid-range", "0-9/1",
            "--timeout", "10",
            "--log-level", "WARNING",
        )
        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["uid_range"] == "0-9/1"
        assert summary["allocated"] == {"ns-0000": "0/1", "ns-0001": "1/1", "ns-0002": "2/1"}
        assert summary["controller"]["state"] == "stopped"
        assert summary["events"] == 3

    def test_unfinished_allocation_exit_code(self, monkeypatch, capsys, config_path):
        code = _run(
            monkeypatch,
            "--config", str(config_path),
            "--namespaces", "3",
            "--uid-range", "0-1/1",
            "--timeout", "0.5",
            "--log-level", "ERROR",
        )
        assert code == 2
        summary = json.loads(capsys.readouterr().out)
        assert len(summary["allocated"]) == 2

    def test_missing_config(self, monkeypatch, tmp_path):
        assert _run(monkeypatch, "--config", str(tmp_path / "missing.yaml")) == 1

    def test_invalid_uid_range(self, monkeypatch, capsys, config_path):
        assert _run(monkeypatch, "--config", str(config_path), "--uid-range", "bogus") == 1
        assert "Invalid allocation settings" in capsys.readouterr().err

    def test_validation_failure(self, monkeypatch, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("nsalloc:\n  controller:\n    event_history: 0\n")
        assert _run(monkeypatch, "--config", str(path), "--validate-config") == 1
