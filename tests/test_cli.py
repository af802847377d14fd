"""Tests for aumai_meshenv.cli — Click command interface."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner, Result

from aumai_meshenv.cli import main
from aumai_meshenv.core import MeshEnvError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_config(tmp_path: Path, data: dict[str, object], suffix: str = ".yaml") -> Path:
    file_path = tmp_path / f"env{suffix}"
    if suffix == ".json":
        file_path.write_text(json.dumps(data), encoding="utf-8")
    else:
        lines = [f"{key}: {json.dumps(value)}" for key, value in data.items()]
        file_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return file_path


class FakeComponent:
    def __init__(self, name: str, error: Exception | None = None) -> None:
        self.name = name
        self.error = error
        self.torn_down = False

    def __str__(self) -> str:
        return self.name

    def setup(self) -> None:
        pass

    def run(self) -> None:
        if self.error is not None:
            raise self.error

    def teardown(self) -> None:
        self.torn_down = True


@pytest.fixture()
def fake_env() -> MagicMock:
    env = MagicMock()
    env.namespace = "istio-test-app"
    env.istio_namespace = "istio-test-system"
    return env


def _invoke_run(
    tmp_path: Path,
    fake_env: MagicMock,
    components: list[FakeComponent],
    *extra_args: str,
) -> tuple[Result, MagicMock]:
    config_path = _write_config(tmp_path, {"hub": "docker.io/test", "mongo": True})
    with patch("aumai_meshenv.cli.ClusterContext") as context_cls, patch(
        "aumai_meshenv.cli.MeshEnvironment", return_value=fake_env
    ) as env_cls, patch("aumai_meshenv.cli.build_components", return_value=components):
        result = CliRunner().invoke(
            main,
            ["run", "--config", str(config_path), "--kubeconfig", "/k/config", *extra_args],
        )
    context_cls.assert_called_once_with("/k/config")
    return result, env_cls


# ---------------------------------------------------------------------------
# --version / --help
# ---------------------------------------------------------------------------


class TestVersionFlag:
    def test_version_exits_zero(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0

    def test_version_contains_expected_string(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert "0.1.0" in result.output


class TestHelpFlag:
    def test_help_exits_zero(self) -> None:
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0

    def test_help_lists_commands(self) -> None:
        result = CliRunner().invoke(main, ["--help"])
        assert "run" in result.output
        assert "probe" in result.output

    def test_run_help_lists_components(self) -> None:
        result = CliRunner().invoke(main, ["run", "--help"])
        assert result.exit_code == 0
        assert "mongodb" in result.output


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRunCommand:
    def test_all_components_pass(self, tmp_path: Path, fake_env: MagicMock) -> None:
        component = FakeComponent("mongodb")
        result, env_cls = _invoke_run(tmp_path, fake_env, [component])

        assert result.exit_code == 0, result.output
        assert "All components passed." in result.output
        config = env_cls.call_args.args[0]
        assert config.hub == "docker.io/test"
        assert config.mongo is True
        fake_env.setup.assert_called_once()
        fake_env.deploy_apps.assert_called_once()
        fake_env.discover_pods.assert_called_once()
        fake_env.teardown.assert_called_once()
        assert component.torn_down

    def test_component_failure_exits_non_zero(
        self, tmp_path: Path, fake_env: MagicMock
    ) -> None:
        components = [FakeComponent("good"), FakeComponent("bad", RuntimeError("no reply"))]
        result, _ = _invoke_run(tmp_path, fake_env, components)

        assert result.exit_code == 1
        assert "FAILED: bad" in result.output
        assert all(c.torn_down for c in components)
        fake_env.teardown.assert_called_once()

    def test_setup_failure_still_tears_down(
        self, tmp_path: Path, fake_env: MagicMock
    ) -> None:
        fake_env.setup.side_effect = MeshEnvError("pilot failed")
        result, _ = _invoke_run(tmp_path, fake_env, [])

        assert result.exit_code == 1
        assert "Environment setup failed: pilot failed" in result.output
        fake_env.deploy_apps.assert_not_called()
        fake_env.teardown.assert_called_once()

    def test_skip_cleanup_leaves_environment(
        self, tmp_path: Path, fake_env: MagicMock
    ) -> None:
        result, _ = _invoke_run(tmp_path, fake_env, [], "--skip-cleanup")

        assert result.exit_code == 0
        assert "Skipping cleanup (namespace=istio-test-app" in result.output
        fake_env.teardown.assert_not_called()

    def test_json_config_accepted(self, tmp_path: Path, fake_env: MagicMock) -> None:
        config_path = _write_config(tmp_path, {"tag": "v9"}, suffix=".json")
        with patch("aumai_meshenv.cli.ClusterContext"), patch(
            "aumai_meshenv.cli.MeshEnvironment", return_value=fake_env
        ) as env_cls, patch("aumai_meshenv.cli.build_components", return_value=[]):
            result = CliRunner().invoke(main, ["run", "--config", str(config_path)])
        assert result.exit_code == 0, result.output
        assert env_cls.call_args.args[0].tag == "v9"

    def test_invalid_config_exits_non_zero(self, tmp_path: Path) -> None:
        config_path = _write_config(tmp_path, {"verbosity": -1})
        result = CliRunner().invoke(main, ["run", "--config", str(config_path)])
        assert result.exit_code == 1
        assert "Error loading config" in result.output

    def test_unknown_component_rejected(self, tmp_path: Path) -> None:
        config_path = _write_config(tmp_path, {})
        result = CliRunner().invoke(
            main, ["run", "--config", str(config_path), "--component", "nope"]
        )
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# probe
# ---------------------------------------------------------------------------


def _pod(name: str, app: str, phase: str = "Running") -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, labels={"app": app}),
        status=SimpleNamespace(phase=phase),
    )


class TestProbeCommand:
    def _invoke(self, context: MagicMock, *extra_args: str) -> Result:
        with patch("aumai_meshenv.cli.ClusterContext", return_value=context):
            return CliRunner().invoke(
                main,
                ["probe", "--namespace", "apps", "--app", "t", "--url", "http://c", *extra_args],
            )

    def test_prints_parsed_response(self) -> None:
        context = MagicMock()
        context.list_pods.return_value = [_pod("t-1", "t"), _pod("c-1", "c")]
        context.exec.return_value = "StatusCode=200\nServiceVersion=v2\n"

        result = self._invoke(context, "--count", "2")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["code"] == ["200"]
        assert payload["version"] == ["v2"]
        pod, namespace, _, command = context.exec.call_args.args
        assert (pod, namespace) == ("t-1", "apps")
        assert command[-2:] == ["-count", "2"]

    def test_non_ok_response_exits_non_zero(self) -> None:
        context = MagicMock()
        context.list_pods.return_value = [_pod("t-1", "t")]
        context.exec.return_value = "StatusCode=503\n"
        result = self._invoke(context)
        assert result.exit_code == 1

    def test_pending_pods_are_ignored(self) -> None:
        context = MagicMock()
        context.list_pods.return_value = [_pod("t-1", "t", phase="Pending")]
        result = self._invoke(context)
        assert result.exit_code == 1
        context.exec.assert_not_called()
