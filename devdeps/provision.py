from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from .build import BuildContext, build_image
from .docker_ops import DockerOps
from .errors import ReadinessTimeout
from .initdb import Psql, initialize_vectordb
from .launcher import ServiceLauncher
from .models import ProvisionResult, ServiceSpec
from .platforms import HostInfo, detect_host, resolve_profile
from .readiness import probe_for, wait_until_ready
from .runner import CommandRunner, run_command
from .settings import Settings


log = logging.getLogger(__name__)

LOG_TAIL_LINES = 50


class Provisioner:
    """Resolve -> build -> launch -> wait ready -> initialize, for one service.

    Any fatal step raises a DevDepsError subclass and stops the pipeline.
    """

    def __init__(
        self,
        settings: Settings,
        ops: DockerOps,
        runner: CommandRunner = run_command,
        host: HostInfo | None = None,
        sleep: Callable[[float], None] = time.sleep,
        http_transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings
        self.ops = ops
        self.runner = runner
        self.host = host
        self.sleep = sleep
        self.http_transport = http_transport

    def provision(self, spec: ServiceSpec) -> ProvisionResult:
        host = self.host or detect_host(self.runner)
        self.ops.ensure_available(host.system, runner=self.runner, sleep=self.sleep)

        profile = resolve_profile(spec, self.settings.arch_override, host, self.settings.project_dir)

        ctx = BuildContext(project_dir=self.settings.project_dir, runner=self.runner, ops=self.ops)
        image = build_image(spec, profile, ctx)

        launcher = ServiceLauncher(self.ops, sleep=self.sleep)
        run_attempts = launcher.launch(spec, profile, image)

        log.info("Waiting for %s to be ready...", spec.name)
        probe = probe_for(spec, self.ops, transport=self.http_transport)
        try:
            health = wait_until_ready(probe, spec.ready_rounds, spec.ready_interval_s, sleep=self.sleep)
        except ReadinessTimeout as e:
            logs = self.ops.container_logs(spec.name, tail=LOG_TAIL_LINES).rstrip()
            if logs:
                e.diagnostics = f"{e.diagnostics}\n\nLast {LOG_TAIL_LINES} lines of '{spec.name}' logs:\n{logs}".lstrip()
            raise
        log.info("%s is ready (%d checks, %.1fs).", spec.name, health.rounds, health.elapsed_s)

        result = ProvisionResult(
            spec=spec,
            profile=profile,
            image=image,
            build_attempts=list(ctx.attempts),
            run_attempts=run_attempts,
            health=health,
        )
        if spec.key == "vectordb":
            pg = self.settings.pgvector
            result.details.update(initialize_vectordb(Psql(self.ops, spec.name, pg.postgres_user, pg.postgres_db), pg))
        return result


def summary(result: ProvisionResult, settings: Settings) -> str:
    spec = result.spec
    if spec.key == "vectordb":
        pg = settings.pgvector
        return f"""
------------------------------------------------------------
PostgreSQL + pgvector is running  (no seed data)

Container:     {spec.name}
Image:         {result.image}
Volume:        {spec.volume}
PG Version:    {result.details.get('pg_version', '?')}
Extensions:    {result.details.get('extensions', '?')}

Host:          localhost
Port:          {spec.host_port}
Database:      {pg.postgres_db}

App user:      {pg.postgres_user}
Read-only user:{pg.ro_user}

psql (app user):
  PGPASSWORD=... psql -h localhost -p {spec.host_port} -U {pg.postgres_user} -d {pg.postgres_db}

JDBC URL:
  jdbc:postgresql://localhost:{spec.host_port}/{pg.postgres_db}
------------------------------------------------------------
"""
    llm = settings.llm
    return f"""
------------------------------------------------------------
LLM server (OpenAI-compatible)

Container:   {spec.name}
Image:       {result.image}
Dockerfile:  {result.profile.build_definition}
Platform:    {result.profile.platform}
Port:        {spec.host_port}
Model:       {llm.model}
Threads:     OMP_NUM_THREADS={llm.omp_num_threads}
Memory:      {spec.memory}
CPUs:        {spec.cpus}

Check logs:
  docker logs {spec.name}

Test:
  devdeps check llm
------------------------------------------------------------
"""
