from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from .errors import ConfigurationError, DockerUnavailable
from .models import ResourceMatch
from .runner import CommandRunner


log = logging.getLogger(__name__)

CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,127}$")
RESOURCE_KINDS = ("container", "volume", "network", "image")


def validate_resource_name(name: str) -> None:
    if not CONTAINER_NAME_RE.match(name):
        raise ConfigurationError(
            f"Invalid docker resource name {name!r}. Use letters/numbers and _.- starting with a letter or digit."
        )


class DockerOps:
    """Thin wrapper around the docker SDK.

    Nothing is cached: every question goes to the daemon, so the answer reflects
    whatever happened since the previous call.
    """

    def __init__(self, client: Any | None = None, client_factory: Callable[[], Any] = docker.from_env):
        self._client = client
        self._client_factory = client_factory

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except DockerException as e:
                raise DockerUnavailable(f"Docker daemon not reachable: {e}") from e
        return self._client

    # --- daemon ---

    def available(self) -> bool:
        try:
            self.client.ping()
            return True
        except (DockerException, DockerUnavailable):
            self._client = None
            return False

    def ensure_available(
        self,
        system: str,
        runner: CommandRunner | None = None,
        attempts: int = 90,
        interval_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Make sure the daemon answers; on macOS try to start Docker Desktop first."""
        if self.available():
            return
        if system != "Darwin" or runner is None:
            raise DockerUnavailable("Docker daemon not reachable. Start Docker and retry.")

        if not runner(["pgrep", "-f", "Docker Desktop"]).ok:
            runner(["open", "-a", "Docker"])
        log.info("Waiting for Docker Desktop...")
        for _ in range(attempts):
            if self.available():
                return
            sleep(interval_s)
        raise DockerUnavailable("Docker daemon not ready. Open Docker Desktop and retry.")

    # --- containers ---

    def get_container(self, name: str) -> Any | None:
        try:
            return self.client.containers.get(name)
        except NotFound:
            return None

    def container_is_running(self, name: str) -> bool:
        cont = self.get_container(name)
        if cont is None:
            return False
        try:
            cont.reload()
        except NotFound:
            return False
        return cont.status == "running"

    def stop_container(self, name: str) -> bool:
        cont = self.get_container(name)
        if cont is None:
            return False
        try:
            cont.stop()
        except NotFound:
            return False
        return True

    def remove_container(self, name: str, force: bool = False) -> bool:
        cont = self.get_container(name)
        if cont is None:
            return False
        try:
            cont.remove(force=force)
        except NotFound:
            return False
        return True

    def run_container(self, image: str, name: str, **kwargs: Any) -> Any:
        validate_resource_name(name)
        return self.client.containers.run(image, name=name, detach=True, **kwargs)

    def container_logs(self, name: str, tail: int | str = "all") -> str:
        cont = self.get_container(name)
        if cont is None:
            return ""
        try:
            raw = cont.logs(tail=tail)
        except (NotFound, APIError):
            return ""
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        return str(raw)

    def exec_in_container(self, name: str, cmd: list[str], user: str | None = None) -> tuple[int, str]:
        """Run a command inside a running container. Returns (exit_code, output)."""
        cont = self.get_container(name)
        if cont is None:
            return 1, f"container {name!r} not found"
        kwargs: dict[str, Any] = {}
        if user:
            kwargs["user"] = user
        try:
            res = cont.exec_run(cmd, **kwargs)
        except APIError as e:
            return 1, str(e)
        exit_code, output = res
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        return int(exit_code if exit_code is not None else 1), output or ""

    def container_stats(self, name: str) -> dict[str, Any] | None:
        """One-shot CPU/memory usage, shaped like `docker stats --no-stream`."""
        cont = self.get_container(name)
        if cont is None:
            return None
        try:
            st = cont.stats(stream=False)
        except APIError:
            return None

        cpu = st.get("cpu_stats", {}) or {}
        pre = st.get("precpu_stats", {}) or {}
        cpu_delta = (cpu.get("cpu_usage", {}).get("total_usage", 0) or 0) - (
            pre.get("cpu_usage", {}).get("total_usage", 0) or 0
        )
        sys_delta = (cpu.get("system_cpu_usage", 0) or 0) - (pre.get("system_cpu_usage", 0) or 0)
        ncpu = cpu.get("online_cpus") or len(cpu.get("cpu_usage", {}).get("percpu_usage", []) or []) or 1
        cpu_pct = (cpu_delta / sys_delta) * ncpu * 100.0 if sys_delta > 0 and cpu_delta > 0 else 0.0

        mem = st.get("memory_stats", {}) or {}
        usage = mem.get("usage", 0) or 0
        limit = mem.get("limit", 0) or 0
        mem_pct = (usage / limit) * 100.0 if limit else 0.0
        return {
            "name": name,
            "cpu_percent": round(cpu_pct, 2),
            "mem_usage_bytes": usage,
            "mem_limit_bytes": limit,
            "mem_percent": round(mem_pct, 2),
        }

    # --- volumes ---

    def volume_exists(self, name: str) -> bool:
        try:
            self.client.volumes.get(name)
            return True
        except NotFound:
            return False

    def ensure_volume(self, name: str) -> bool:
        """Create the named volume if absent. Returns True when it was created."""
        validate_resource_name(name)
        if self.volume_exists(name):
            return False
        self.client.volumes.create(name=name)
        return True

    def remove_volume(self, name: str) -> bool:
        try:
            self.client.volumes.get(name).remove()
        except NotFound:
            return False
        return True

    # --- images ---

    def pull_image(self, ref: str) -> None:
        self.client.images.pull(ref)

    def remove_image(self, ref: str) -> bool:
        """Remove an image by reference. Returns False if it does not exist.

        In-use conflicts surface as APIError (status 409) for the caller to judge.
        """
        try:
            self.client.images.remove(ref)
        except ImageNotFound:
            return False
        return True

    # --- inventory ---

    def list_resources(self, kind: str) -> list[ResourceMatch]:
        """All resources of one kind as typed records (images: one record per repo:tag)."""
        if kind == "container":
            return [ResourceMatch("container", c.id, c.name) for c in self.client.containers.list(all=True)]
        if kind == "volume":
            return [ResourceMatch("volume", v.name, v.name) for v in self.client.volumes.list()]
        if kind == "network":
            return [ResourceMatch("network", n.id, n.name) for n in self.client.networks.list()]
        if kind == "image":
            out: list[ResourceMatch] = []
            for img in self.client.images.list(all=True):
                tags = list(img.tags or []) or ["<none>:<none>"]
                out.extend(ResourceMatch("image", img.id, t) for t in tags)
            return out
        raise ValueError(f"Unknown resource kind: {kind!r}")

    def remove_resource(self, res: ResourceMatch) -> bool:
        """Remove one inventory record; a resource that vanished meanwhile is a no-op."""
        try:
            if res.kind == "container":
                self.client.containers.get(res.identifier).remove(force=True)
            elif res.kind == "volume":
                self.client.volumes.get(res.identifier).remove()
            elif res.kind == "network":
                self.client.networks.get(res.identifier).remove()
            elif res.kind == "image":
                self.client.images.remove(res.identifier)
            else:
                raise ValueError(f"Unknown resource kind: {res.kind!r}")
        except NotFound:
            return False
        return True

    # --- global prunes ---

    def prune_build_cache(self) -> dict[str, Any]:
        return self.client.api.prune_builds() or {}

    def prune_dangling_images(self) -> dict[str, Any]:
        return self.client.images.prune(filters={"dangling": True}) or {}

    def prune_volumes(self) -> dict[str, Any]:
        return self.client.volumes.prune() or {}

    def prune_networks(self) -> dict[str, Any]:
        return self.client.networks.prune() or {}
