"""Remote probe execution and parsing of the probe's text protocol."""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Mapping, Sequence

from aumai_meshenv.core import ClusterContext, CommandError
from aumai_meshenv.models import ProbeResponse

logger = logging.getLogger(__name__)

# Field names and case-sensitivity are fixed by the probe binary.
ID_RE = re.compile(r"(?i)X-Request-Id=(.*)")
VERSION_RE = re.compile(r"ServiceVersion=(.*)")
PORT_RE = re.compile(r"ServicePort=(.*)")
CODE_RE = re.compile(r"StatusCode=(.*)")

PROBE_CONTAINER = "app"
PROBE_BINARY = "client"


def parse_response(body: str) -> ProbeResponse:
    """Extract every request id, version, port and status code from *body*.

    Each field is scanned independently and kept in order of appearance.
    """
    return ProbeResponse(
        body=body,
        id=ID_RE.findall(body),
        version=VERSION_RE.findall(body),
        port=PORT_RE.findall(body),
        code=CODE_RE.findall(body),
    )


class ExecutionProbe:
    """Run the probe client inside a workload pod and parse what it prints.

    *apps* maps an application name to its running pod names. It is read,
    never mutated, so one probe may be shared by concurrent scenarios.
    """

    def __init__(
        self,
        context: ClusterContext,
        namespace: str,
        apps: Mapping[str, Sequence[str]],
    ) -> None:
        self.context = context
        self.namespace = namespace
        self.apps = apps

    def client_request(self, app: str, url: str, count: int = 1, extra: str = "") -> ProbeResponse:
        """Issue *count* requests to *url* from the first pod of *app*.

        Never raises: an unknown app or a failed command yields an empty
        :class:`ProbeResponse`, which callers treat as failure.
        """
        pods = self.apps.get(app) or ()
        if not pods:
            logger.error("missing pod names for app %r", app)
            return ProbeResponse()

        command = [PROBE_BINARY, "-url", url, "-count", str(count)]
        try:
            command.extend(shlex.split(extra))
            body = self.context.exec(pods[0], self.namespace, PROBE_CONTAINER, command)
        except (CommandError, ValueError) as exc:
            logger.error("client request error %s for %s in %s", exc, url, app)
            return ProbeResponse()

        return parse_response(body)


__all__ = [
    "CODE_RE",
    "ExecutionProbe",
    "ID_RE",
    "PORT_RE",
    "VERSION_RE",
    "parse_response",
]
