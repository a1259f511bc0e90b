from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
import requests
from pydantic import ValidationError

from .api_models import ChatCompletion, ChatMessage, ChatRequest, ModelList
from .docker_ops import DockerOps
from .models import ServiceSpec
from .readiness import check_health
from .settings import Settings


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Check:
    name: str
    ok: bool
    detail: str = ""


@dataclass
class DiagnosticReport:
    service: str
    checks: list[Check] = field(default_factory=list)
    response_time_s: float | None = None
    stats: dict[str, Any] | None = None
    recent_logs: str = ""

    @property
    def ok(self) -> bool:
        return bool(self.checks) and all(c.ok for c in self.checks)

    def add(self, name: str, ok: bool, detail: str = "") -> bool:
        self.checks.append(Check(name, ok, detail))
        (log.info if ok else log.error)("%s: %s%s", name, "passed" if ok else "FAILED", f" ({detail})" if detail else "")
        return ok


def _finish(report: DiagnosticReport, ops: DockerOps, spec: ServiceSpec) -> DiagnosticReport:
    report.stats = ops.container_stats(spec.name)
    report.recent_logs = ops.container_logs(spec.name, tail=10)
    return report


def check_llm(
    spec: ServiceSpec,
    settings: Settings,
    ops: DockerOps,
    session: Any | None = None,
    transport: httpx.BaseTransport | None = None,
) -> DiagnosticReport:
    """Liveness, models listing and one timed chat completion against the LLM server.

    Stops at the first failing check.
    """
    report = DiagnosticReport(service=spec.key)
    if not report.add("container running", ops.container_is_running(spec.name), spec.name):
        return report

    base = f"http://localhost:{spec.host_port}"
    ok, msg, latency = check_health(f"{base}/health", transport=transport)
    if not report.add("health endpoint", ok, f"{msg}, {latency} ms"):
        return report

    http = session or requests.Session()
    try:
        r = http.get(f"{base}/v1/models", timeout=10)
        models = ModelList.model_validate(r.json())
        ok = r.status_code == 200
        detail = ", ".join(m.id for m in models.data)
    except (requests.RequestException, ValueError, ValidationError) as e:
        ok, detail = False, str(e)
    if not report.add("models endpoint", ok, detail):
        return report

    payload = ChatRequest(
        model=settings.llm.model,
        messages=[ChatMessage(role="user", content="Hello, how are you?")],
    )
    start = time.time()
    try:
        r = http.post(
            f"{base}/v1/chat/completions",
            json=payload.model_dump(),
            headers={"Authorization": "Bearer dummy"},
            timeout=300,
        )
        report.response_time_s = round(time.time() - start, 3)
        completion = ChatCompletion.model_validate(r.json())
        ok = r.status_code == 200
        content = completion.choices[0].message.content or ""
        usage = completion.usage.model_dump() if completion.usage else {}
        detail = f"{report.response_time_s}s, usage={usage}, content={content.strip()[:200]!r}"
    except (requests.RequestException, ValueError, ValidationError) as e:
        ok, detail = False, str(e)
    if not report.add("chat completion", ok, detail):
        return report

    return _finish(report, ops, spec)


def check_vectordb(spec: ServiceSpec, settings: Settings, ops: DockerOps) -> DiagnosticReport:
    """Liveness plus a timed round-trip query through psql in the container."""
    pg = settings.pgvector
    report = DiagnosticReport(service=spec.key)
    if not report.add("container running", ops.container_is_running(spec.name), spec.name):
        return report

    code, out = ops.exec_in_container(spec.name, list(spec.probe.command), user=spec.probe.user)
    if not report.add("pg_isready", code == 0, out.strip()):
        return report

    psql = ["psql", "-U", pg.postgres_user, "-d", pg.postgres_db, "-Atc"]
    start = time.time()
    code, out = ops.exec_in_container(spec.name, psql + ["SHOW server_version;"])
    report.response_time_s = round(time.time() - start, 3)
    if not report.add("query round-trip", code == 0, f"{report.response_time_s}s, server_version={out.strip()}"):
        return report

    code, out = ops.exec_in_container(spec.name, psql + ["SELECT extname FROM pg_extension ORDER BY 1;"])
    exts = out.split()
    if not report.add("vector extension", code == 0 and "vector" in exts, " ".join(exts)):
        return report

    return _finish(report, ops, spec)


def render(report: DiagnosticReport) -> str:
    lines = ["", "-" * 60, f"{report.service} service test results", ""]
    for c in report.checks:
        lines.append(f"  [{'ok' if c.ok else 'FAIL'}] {c.name}" + (f": {c.detail}" if c.detail else ""))
    if report.response_time_s is not None:
        lines.append(f"\nResponse time: {report.response_time_s}s")
    if report.stats:
        s = report.stats
        lines.append(
            f"Resource usage: CPU {s['cpu_percent']}%  MEM {s['mem_usage_bytes'] / 2**20:.1f}MiB"
            f" / {s['mem_limit_bytes'] / 2**20:.1f}MiB ({s['mem_percent']}%)"
        )
    if report.recent_logs:
        lines.append("\nRecent container logs (last 10 lines):")
        lines.append(report.recent_logs.rstrip())
    lines.append("-" * 60)
    return "\n".join(lines)
