"""Tests for kubemirror.cli.main: argument handling and output formatting."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from kubemirror import __version__
from kubemirror.cli.main import _run, cli
from kubemirror.errors import AccessDeniedError
from kubemirror.models.config import KubeMirrorConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _pods() -> list[dict[str, Any]]:
    return [
        {"metadata": {"name": "web-0", "namespace": "default", "creationTimestamp": "2024-01-01T00:00:00Z"}},
        {"metadata": {"name": "api-0", "namespace": "default", "creationTimestamp": "2024-01-02T00:00:00Z"}},
    ]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LOG_LEVEL", "NAMESPACE", "KUBECONFIG", "CONTEXT"):
        monkeypatch.delenv(f"KUBEMIRROR_{name}", raising=False)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


class TestVersion:
    def test_version_output(self) -> None:
        result = CliRunner().invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output
        assert "kubemirror" in result.output


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


class TestList:
    def test_table_output(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=_pods()) as run:
            result = CliRunner().invoke(cli, ["list", "v1/pods", "-n", "default"])
        assert result.exit_code == 0
        assert "NAMESPACE" in result.output
        assert "web-0" in result.output
        assert "api-0" in result.output
        assert run.call_args.args[1] == "default"

    def test_json_output(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=_pods()):
            result = CliRunner().invoke(cli, ["list", "v1/pods", "--json"])
        assert result.exit_code == 0
        assert [o["metadata"]["name"] for o in json.loads(result.output)] == ["web-0", "api-0"]

    def test_empty_result(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=[]):
            result = CliRunner().invoke(cli, ["list", "v1/pods"])
        assert result.exit_code == 0
        assert "No resources found" in result.output

    def test_all_namespaces_flag(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=[]) as run:
            CliRunner().invoke(cli, ["list", "v1/pods", "-n", "default", "-A"])
        assert run.call_args.args[1] == ""

    def test_namespace_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_NAMESPACE", "payments")
        with patch("kubemirror.cli.main._run", return_value=[]) as run:
            CliRunner().invoke(cli, ["list", "v1/pods"])
        assert run.call_args.args[1] == "payments"

    def test_bad_selector_rejected_before_connecting(self) -> None:
        with patch("kubemirror.cli.main._run") as run:
            result = CliRunner().invoke(cli, ["list", "v1/pods", "-l", "env in (prod"])
        assert result.exit_code == 2
        assert "--selector" in result.output
        run.assert_not_called()

    def test_global_overrides_reach_config(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=[]) as run:
            CliRunner().invoke(
                cli, ["--kubeconfig", "/tmp/kc", "--context", "dev", "--log-level", "DEBUG", "list", "v1/pods"]
            )
        config: KubeMirrorConfig = run.call_args.args[0]
        assert config.kube.config_file == "/tmp/kc"
        assert config.kube.context == "dev"
        assert config.log.level == "debug"

    def test_invalid_env_config_is_click_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEMIRROR_LOG_LEVEL", "loud")
        result = CliRunner().invoke(cli, ["list", "v1/pods"])
        assert result.exit_code == 1
        assert "Invalid log level" in result.output


# ---------------------------------------------------------------------------
# get
# ---------------------------------------------------------------------------


class TestGet:
    def test_found(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=_pods()[0]) as run:
            result = CliRunner().invoke(cli, ["get", "v1/pods", "default/web-0"])
        assert result.exit_code == 0
        assert json.loads(result.output)["metadata"]["name"] == "web-0"
        assert run.call_args.args[1] == "default"

    def test_not_found(self) -> None:
        with patch("kubemirror.cli.main._run", return_value=None):
            result = CliRunner().invoke(cli, ["get", "v1/pods", "default/ghost"])
        assert result.exit_code == 1
        assert "not found" in result.output


# ---------------------------------------------------------------------------
# _run
# ---------------------------------------------------------------------------


def _fake_app(ready: bool = True) -> MagicMock:
    app = MagicMock()
    app.start = AsyncMock()
    app.stop = AsyncMock()
    app.wait_ready = AsyncMock(return_value=ready)
    app.factory = MagicMock()
    return app


class TestRunHelper:
    def test_queries_before_and_after_sync(self) -> None:
        app = _fake_app()
        query = AsyncMock(side_effect=[[], ["warm"]])
        with patch("kubemirror.cli.main.KubeMirrorApp", return_value=app) as app_cls:
            assert _run(KubeMirrorConfig(), "ns1", query) == ["warm"]

        assert query.await_count == 2
        assert app_cls.call_args.args[0].cache.namespace == "ns1"
        app.stop.assert_awaited_once()

    def test_kubemirror_error_becomes_click_exception(self) -> None:
        app = _fake_app()
        query = AsyncMock(side_effect=AccessDeniedError("list", "default", "v1/secrets"))
        with (
            patch("kubemirror.cli.main.KubeMirrorApp", return_value=app),
            pytest.raises(click.ClickException, match="insufficient access"),
        ):
            _run(KubeMirrorConfig(), "default", query)

        app.stop.assert_awaited_once()
        app.wait_ready.assert_not_awaited()
