"""Tests for the certkeeper command-line interface."""

from __future__ import annotations

from unittest.mock import patch

import pytest
import yaml

from certkeeper import __version__
from certkeeper.cli.main import _build_parser, main
from certkeeper.store.base import StoreError
from certkeeper.store.memory import MemoryStore


def _run(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_config_required(self, capsys):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["run"])
        assert "--config" in capsys.readouterr().err

    def test_subcommand_arguments(self):
        args = _build_parser().parse_args(["-c", "x.yaml", "reconcile", "default", "web"])
        assert (args.command, args.namespace, args.name) == ("reconcile", "default", "web")

    def test_test_issue_defaults(self):
        args = _build_parser().parse_args(["-c", "x.yaml", "test-issue"])
        assert args.common_name == "test.certkeeper.internal"
        assert args.duration == "24h"

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["--version"])
        assert __version__ in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Config handling
# ---------------------------------------------------------------------------


class TestConfig:
    def test_missing_file(self, tmp_path, capsys):
        assert _run(["-c", str(tmp_path / "nope.yaml"), "run"]) == 1
        assert "configuration file not found" in capsys.readouterr().err

    def test_validate_only(self, tmp_config_file, capsys):
        assert _run(["-c", str(tmp_config_file), "--validate-only"]) == 0
        out = capsys.readouterr().out
        assert "configuration OK" in out
        assert "store:      memory" in out
        assert "namespaces: (all)" in out
        assert "metrics:    disabled" in out

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"issuer": {"key_size": 512}}), encoding="utf-8")
        assert _run(["-c", str(path), "--validate-only"]) == 1
        assert "Configuration validation failed" in capsys.readouterr().err

    def test_malformed_yaml(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text("logging: [unclosed\n", encoding="utf-8")
        assert _run(["-c", str(path), "--validate-only"]) == 1
        assert "failed to load configuration" in capsys.readouterr().err

    def test_no_command_prints_help(self, tmp_config_file, capsys):
        assert _run(["-c", str(tmp_config_file)]) == 2
        assert "usage: certkeeper" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


class TestTestIssue:
    def test_success(self, tmp_config_file, capsys):
        main(["-c", str(tmp_config_file), "test-issue", "--common-name", "probe.internal"])
        out = capsys.readouterr().out
        assert "Test issuance OK" in out
        assert "probe.internal" in out
        assert "Fingerprint:" in out

    def test_invalid_duration(self, tmp_config_file, capsys):
        assert _run(["-c", str(tmp_config_file), "test-issue", "--duration", "soon"]) == 1
        assert "test issuance failed: invalid duration" in capsys.readouterr().err


class TestInspect:
    def test_not_found(self, tmp_config_file, capsys):
        assert _run(["-c", str(tmp_config_file), "inspect", "default", "web"]) == 1
        assert "certificate default/web not found" in capsys.readouterr().err

    def test_prints_status(self, tmp_config_file, capsys, cert_factory):
        store = MemoryStore()
        store.add_certificate(cert_factory())
        with patch("certkeeper.store.load_store", return_value=store):
            main(["-c", str(tmp_config_file), "inspect", "default", "web"])
        out = capsys.readouterr().out
        assert "Certificate: default/web" in out
        assert "State:        initializing" in out
        assert "Serial:       -" in out


class TestReconcile:
    def test_missing_certificate(self, tmp_config_file, capsys):
        main(["-c", str(tmp_config_file), "reconcile", "default", "web"])
        out = capsys.readouterr().out
        assert "default/web: removed" in out
        assert "requeue: none" in out

    def test_issues_certificate(self, tmp_config_file, capsys, cert_factory):
        store = MemoryStore()
        store.add_certificate(cert_factory())
        with patch("certkeeper.store.load_store", return_value=store):
            main(["-c", str(tmp_config_file), "reconcile", "default", "web"])
        out = capsys.readouterr().out
        assert "default/web: active" in out
        assert "requeue after: 143" in out
        assert store.get_secret("default", "web-tls").data["tls.crt"].startswith(
            b"-----BEGIN CERTIFICATE-----",
        )

    def test_failure_exits_nonzero(self, tmp_config_file, capsys):
        with patch("certkeeper.store.load_store", side_effect=StoreError("no cluster")):
            assert _run(["-c", str(tmp_config_file), "reconcile", "default", "web"]) == 1
        assert "reconcile default/web failed: no cluster" in capsys.readouterr().err


class TestRunCommand:
    def test_store_unavailable(self, tmp_config_file, capsys):
        with patch("certkeeper.store.load_store", side_effect=StoreError("unreachable")):
            assert _run(["-c", str(tmp_config_file), "run"]) == 1
        assert "object store unavailable: unreachable" in capsys.readouterr().err

    def test_starts_operator(self, tmp_config_file):
        with patch("certkeeper.runtime.run_operator") as run_operator:
            main(["-c", str(tmp_config_file), "run"])
        settings, store = run_operator.call_args.args
        assert settings.store.backend == "memory"
        assert isinstance(store, MemoryStore)
