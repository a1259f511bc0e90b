from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable

from docker.errors import APIError, DockerException

from .docker_ops import DockerOps
from .errors import LaunchError
from .models import PlatformProfile, RunAttempt, RunSpec, ServiceSpec


log = logging.getLogger(__name__)


def merged_env(spec: ServiceSpec, run: RunSpec) -> dict[str, str]:
    # insertion order: base env first, variant env overrides
    env: dict[str, str] = {}
    for k, v in spec.env:
        env[k] = v
    for k, v in run.env:
        env[k] = v
    return env


def run_kwargs(spec: ServiceSpec, profile: PlatformProfile, run: RunSpec) -> dict[str, Any]:
    """docker SDK ``containers.run`` keyword arguments for one launch variant."""
    kwargs: dict[str, Any] = {
        "environment": merged_env(spec, run),
        "platform": profile.platform,
    }
    if run.command:
        kwargs["command"] = list(run.command)
    if spec.host_port and spec.container_port:
        kwargs["ports"] = {f"{spec.container_port}/tcp": spec.host_port}
    if spec.volumes:
        kwargs["volumes"] = {
            (v.source if v.is_named else os.path.expanduser(v.source)): {"bind": v.target, "mode": v.mode}
            for v in spec.volumes
        }
    if spec.memory:
        kwargs["mem_limit"] = spec.memory
    if spec.cpus:
        kwargs["nano_cpus"] = int(float(spec.cpus) * 1_000_000_000)
    return kwargs


class ServiceLauncher:
    """Replace whatever runs under the service name with one fresh container."""

    def __init__(self, ops: DockerOps, sleep: Callable[[float], None] = time.sleep):
        self.ops = ops
        self.sleep = sleep

    def launch(self, spec: ServiceSpec, profile: PlatformProfile, image: str) -> list[RunAttempt]:
        self._clear(spec)
        self._prepare_volumes(spec)

        plan = spec.launch_plan_for(profile.arch)
        attempts: list[RunAttempt] = []

        log.info("Starting container '%s' using image %s...", spec.name, image)
        first = self._start("primary", spec, profile, image, plan.primary, spec.grace_s)
        attempts.append(first)
        if first.running:
            return attempts

        log.warning("Container failed to start. Here are the logs:\n%s", first.logs)
        if plan.alternate is None:
            raise LaunchError(f"Container '{spec.name}' exited right after start.", first.logs)

        log.warning("Trying alternative startup command...")
        self.ops.remove_container(spec.name, force=True)
        second = self._start("alternate", spec, profile, image, plan.alternate, spec.alternate_grace_s)
        attempts.append(second)
        if second.running:
            return attempts

        raise LaunchError(f"Container '{spec.name}' still failed with the alternate command. Full logs:", second.logs)

    def _clear(self, spec: ServiceSpec) -> None:
        try:
            if self.ops.container_is_running(spec.name):
                log.info("Stopping running container '%s'...", spec.name)
                self.ops.stop_container(spec.name)
            removed = self.ops.remove_container(spec.name, force=True)
        except APIError as e:
            raise LaunchError(f"Could not remove existing container '{spec.name}'.", str(e)) from e
        if removed:
            log.info("Removed existing container '%s'.", spec.name)

    def _prepare_volumes(self, spec: ServiceSpec) -> None:
        try:
            created = bool(spec.volume) and self.ops.ensure_volume(spec.volume)
        except APIError as e:
            raise LaunchError(f"Could not create volume '{spec.volume}'.", str(e)) from e
        if created:
            log.info("Created volume '%s'.", spec.volume)
        for v in spec.volumes:
            if not v.is_named:
                os.makedirs(os.path.expanduser(v.source), exist_ok=True)

    def _start(
        self,
        variant: str,
        spec: ServiceSpec,
        profile: PlatformProfile,
        image: str,
        run: RunSpec,
        grace_s: float,
    ) -> RunAttempt:
        try:
            cont = self.ops.run_container(image, spec.name, **run_kwargs(spec, profile, run))
        except (APIError, DockerException) as e:
            raise LaunchError(f"docker refused to start '{spec.name}' ({variant}).", str(e)) from e

        self.sleep(grace_s)
        if self.ops.container_is_running(spec.name):
            return RunAttempt(variant=variant, container_id=cont.id, state="running")
        return RunAttempt(
            variant=variant,
            container_id=cont.id,
            state="exited",
            logs=self.ops.container_logs(spec.name),
        )
