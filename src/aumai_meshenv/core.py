"""Error taxonomy and the cluster command boundary for aumai-meshenv."""

from __future__ import annotations

import base64
import logging
import subprocess
from typing import Any

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class MeshEnvError(RuntimeError):
    """Base class for every error raised by aumai-meshenv."""


class CommandError(MeshEnvError):
    """A cluster command exited non-zero or could not be started."""

    def __init__(self, command: list[str], returncode: int | None, output: str) -> None:
        super().__init__(
            f"command {' '.join(command)!r} failed (exit={returncode}): {output.strip()}"
        )
        self.command = command
        self.returncode = returncode
        self.output = output


class NamespaceError(MeshEnvError):
    """A namespace supplied by the caller does not exist."""


class ConfigStoreError(MeshEnvError):
    """The live configuration store rejected an operation."""


class StaleVersionError(ConfigStoreError):
    """An update carried a version token older than the stored object's."""


class ConfigParseError(ConfigStoreError):
    """Configuration text could not be turned into configuration objects."""


class ScenarioFailure(MeshEnvError):
    """A single scenario did not behave as expected."""


class ScenarioFailuresError(MeshEnvError):
    """One or more scenarios of a parallel run failed.

    ``failures`` maps each failing scenario name to its cause.
    """

    def __init__(self, failures: dict[str, BaseException]) -> None:
        details = "; ".join(f"{name}: {exc}" for name, exc in sorted(failures.items()))
        super().__init__(f"{len(failures)} scenario(s) failed: {details}")
        self.failures = failures


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


def run_command(command: list[str], stdin: str | None = None, timeout: float | None = None) -> str:
    """Run *command*, feeding *stdin*, and return its combined stdout/stderr.

    Raises:
        CommandError: on a non-zero exit, a timeout or an OS error.
    """
    try:
        result = subprocess.run(
            command,
            input=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except (subprocess.SubprocessError, OSError) as exc:
        raise CommandError(command, None, str(exc)) from exc
    if result.returncode != 0:
        raise CommandError(command, result.returncode, result.stdout or "")
    return result.stdout or ""


# ---------------------------------------------------------------------------
# ClusterContext
# ---------------------------------------------------------------------------


class ClusterContext:
    """Explicit handle on one cluster: kubeconfig path, CLI binary, API client.

    Every lifecycle, reconciler and probe operation receives one of these
    instead of reaching for process-wide state, so that several environments
    can share a process.

    ``api_client`` and ``core_api`` may be injected; otherwise a client is
    built lazily from ``kubeconfig`` on first use.
    """

    def __init__(
        self,
        kubeconfig: str,
        kubectl: str = "kubectl",
        api_client: Any | None = None,
        core_api: Any | None = None,
        timeout: float | None = 600.0,
    ) -> None:
        self.kubeconfig = kubeconfig
        self.kubectl = kubectl
        self.timeout = timeout
        self._api_client = api_client
        self._core: Any | None = core_api

    @property
    def api_client(self) -> Any:
        if self._api_client is None:
            self._api_client = k8s_config.new_client_from_config(
                config_file=self.kubeconfig
            )
        return self._api_client

    @property
    def core(self) -> Any:
        """A ``CoreV1Api`` bound to this context's client."""
        if self._core is None:
            self._core = k8s_client.CoreV1Api(self.api_client)
        return self._core

    def run(self, args: list[str], stdin: str | None = None) -> str:
        """Run ``kubectl <args>`` and return its combined output."""
        return run_command([self.kubectl, *args], stdin=stdin, timeout=self.timeout)

    def apply(self, manifest: str, namespace: str) -> None:
        """``kubectl apply --kubeconfig <path> -n <namespace> -f -``."""
        logger.debug("Applying manifest in namespace %s", namespace)
        self.run(self._manifest_args("apply", namespace), stdin=manifest)

    def delete(self, manifest: str, namespace: str) -> None:
        """``kubectl delete --kubeconfig <path> -n <namespace> -f -``."""
        logger.debug("Deleting manifest in namespace %s", namespace)
        self.run(self._manifest_args("delete", namespace), stdin=manifest)

    def exec(self, pod: str, namespace: str, container: str, command: list[str]) -> str:
        """Run *command* inside *container* of *pod* and return its output."""
        return self.run(
            [
                "exec",
                pod,
                "--kubeconfig",
                self.kubeconfig,
                "-n",
                namespace,
                "-c",
                container,
                "--",
                *command,
            ]
        )

    # ------------------------------------------------------------------
    # Cluster API helpers
    # ------------------------------------------------------------------

    def create_namespace(self, prefix: str = "istio-test-") -> str:
        """Create a namespace with a generated name and return that name."""
        body = k8s_client.V1Namespace(
            metadata=k8s_client.V1ObjectMeta(generate_name=prefix)
        )
        created = self.core.create_namespace(body)
        name = created.metadata.name
        logger.info("Created namespace %s", name)
        return name

    def check_namespace(self, name: str) -> None:
        """Raise :class:`NamespaceError` unless namespace *name* exists."""
        try:
            self.core.read_namespace(name)
        except ApiException as exc:
            raise NamespaceError(f"namespace {name!r} is not available: {exc.reason}") from exc

    def delete_namespace(self, name: str) -> None:
        self.core.delete_namespace(name)
        logger.info("Deleted namespace %s", name)

    def create_secret(self, namespace: str, name: str, data: dict[str, bytes]) -> None:
        """Create an opaque secret holding *data* (raw bytes, encoded here)."""
        body = k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(name=name),
            data={key: base64.b64encode(value).decode("ascii") for key, value in data.items()},
        )
        self.core.create_namespaced_secret(namespace, body)

    def read_config_map(self, namespace: str, name: str) -> dict[str, str]:
        return self.core.read_namespaced_config_map(name, namespace).data or {}

    def list_pods(self, namespace: str) -> list[Any]:
        return list(self.core.list_namespaced_pod(namespace).items)

    def _manifest_args(self, verb: str, namespace: str) -> list[str]:
        return [verb, "--kubeconfig", self.kubeconfig, "-n", namespace, "-f", "-"]


__all__ = [
    "ClusterContext",
    "CommandError",
    "ConfigParseError",
    "ConfigStoreError",
    "MeshEnvError",
    "NamespaceError",
    "ScenarioFailure",
    "ScenarioFailuresError",
    "StaleVersionError",
    "run_command",
]
