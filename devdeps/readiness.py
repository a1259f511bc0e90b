from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

import httpx

from .docker_ops import DockerOps
from .errors import ReadinessTimeout
from .models import HealthStatus, ServiceSpec


log = logging.getLogger(__name__)


class Probe(Protocol):
    def __call__(self) -> tuple[bool, str]: ...


class ExecProbe:
    """Readiness command executed inside the container (e.g. pg_isready)."""

    def __init__(self, ops: DockerOps, container: str, command: list[str], user: str | None = None):
        self.ops = ops
        self.container = container
        self.command = command
        self.user = user

    def __call__(self) -> tuple[bool, str]:
        code, output = self.ops.exec_in_container(self.container, self.command, user=self.user)
        return code == 0, output.strip() or f"exit {code}"


def check_health(url: str, timeout_s: float = 2.0, transport: httpx.BaseTransport | None = None) -> tuple[bool, str, float | None]:
    """GET a health endpoint.

    Returns (is_healthy, message, latency_ms). Any 200 counts as healthy.
    """
    start = time.time()
    try:
        with httpx.Client(timeout=timeout_s, follow_redirects=False, transport=transport) as client:
            resp = client.get(url)
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if resp.status_code != 200:
            return False, f"HTTP {resp.status_code}", latency_ms
        return True, "Healthy", latency_ms
    except (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError):
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, "No response", latency_ms
    except httpx.HTTPError as e:
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, f"Error: {type(e).__name__}: {e}", latency_ms


class HttpProbe:
    def __init__(self, url: str, timeout_s: float = 2.0, transport: httpx.BaseTransport | None = None):
        self.url = url
        self.timeout_s = timeout_s
        self.transport = transport

    def __call__(self) -> tuple[bool, str]:
        ok, msg, _ = check_health(self.url, timeout_s=self.timeout_s, transport=self.transport)
        return ok, msg


def probe_for(spec: ServiceSpec, ops: DockerOps, transport: httpx.BaseTransport | None = None) -> Probe:
    if spec.probe.kind == "exec":
        return ExecProbe(ops, spec.name, list(spec.probe.command), user=spec.probe.user)
    if spec.probe.kind == "http":
        return HttpProbe(f"http://localhost:{spec.host_port}{spec.probe.path}", transport=transport)
    raise ValueError(f"Unknown probe kind: {spec.probe.kind!r}")


def wait_until_ready(
    probe: Probe,
    rounds: int,
    interval_s: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> HealthStatus:
    """Poll ``probe`` at most ``rounds`` times, ``interval_s`` apart.

    Returns a ready HealthStatus on the first success; raises ReadinessTimeout
    once the budget is spent. No sleep follows the last round.
    """
    rounds = max(1, int(rounds))
    t0 = clock()
    msg = ""
    for n in range(1, rounds + 1):
        ok, msg = probe()
        if ok:
            return HealthStatus(ready=True, rounds=n, elapsed_s=round(clock() - t0, 3), message=msg)
        log.debug("not ready (round %d/%d): %s", n, rounds, msg)
        if n < rounds:
            sleep(interval_s)

    status = HealthStatus(ready=False, rounds=rounds, elapsed_s=round(clock() - t0, 3), message=msg)
    raise ReadinessTimeout(f"Service did not become ready after {rounds} checks.", status)
