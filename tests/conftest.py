from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Callable

import pytest
import requests
from docker.errors import APIError, ImageNotFound, NotFound

from devdeps.docker_ops import DockerOps
from devdeps.platforms import HostInfo
from devdeps.runner import CommandResult
from devdeps.settings import LlmSettings, Settings


_ids = itertools.count(1)


def _next_id(prefix: str) -> str:
    return f"{prefix}{next(_ids):012x}"


def api_error(status: int, message: str = "error") -> APIError:
    resp = requests.Response()
    resp.status_code = status
    resp.url = "http+docker://localhost/fake"
    resp.reason = message
    return APIError(message, response=resp)


class FakeContainer:
    def __init__(self, client: "FakeDockerClient", name: str, image: str, status: str, **kwargs: Any):
        self.client = client
        self.id = _next_id("c")
        self.name = name
        self.image = image
        self.status = status
        self.kwargs = kwargs
        self.log_text = kwargs.pop("log_text", "")

    def _alive(self) -> None:
        if self.client.containers.by_name.get(self.name) is not self:
            raise NotFound(f"No such container: {self.name}")

    def reload(self) -> None:
        self._alive()

    def stop(self) -> None:
        self._alive()
        self.status = "exited"
        self.client.calls.append(("stop", self.name))

    def remove(self, force: bool = False) -> None:
        self._alive()
        if self.status in ("running", "paused", "restarting") and not force:
            raise api_error(409, f"cannot remove container: container is {self.status}")
        del self.client.containers.by_name[self.name]
        self.client.calls.append(("rm", self.name))

    def logs(self, tail: Any = "all") -> bytes:
        return self.log_text.encode()

    def exec_run(self, cmd: list[str], user: str | None = None) -> tuple[int, bytes]:
        self._alive()
        self.client.exec_calls.append((self.name, list(cmd), user))
        code, out = self.client.exec_handler(self.name, list(cmd))
        return code, out.encode()

    def stats(self, stream: bool = False) -> dict[str, Any]:
        return {
            "cpu_stats": {"cpu_usage": {"total_usage": 400}, "system_cpu_usage": 2000, "online_cpus": 2},
            "precpu_stats": {"cpu_usage": {"total_usage": 200}, "system_cpu_usage": 1000},
            "memory_stats": {"usage": 512 * 2**20, "limit": 8 * 2**30},
        }


class FakeContainers:
    def __init__(self, client: "FakeDockerClient"):
        self.client = client
        self.by_name: dict[str, FakeContainer] = {}
        self.run_calls: list[dict[str, Any]] = []

    def get(self, key: str) -> FakeContainer:
        if key in self.by_name:
            return self.by_name[key]
        for c in self.by_name.values():
            if c.id == key:
                return c
        raise NotFound(f"No such container: {key}")

    def list(self, all: bool = False, filters: Any = None) -> list[FakeContainer]:
        return [c for c in self.by_name.values() if all or c.status == "running"]

    def run(self, image: str, name: str, detach: bool = True, **kwargs: Any) -> FakeContainer:
        if name in self.by_name:
            raise api_error(409, f"Conflict. The container name {name} is already in use")
        if self.client.run_error is not None:
            raise self.client.run_error
        self.run_calls.append({"image": image, "name": name, **kwargs})
        status = self.client.run_outcomes.pop(0) if self.client.run_outcomes else "running"
        c = FakeContainer(self.client, name, image, status, log_text=f"logs of {name} ({status})")
        self.by_name[name] = c
        self.client.calls.append(("run", name))
        return c

    def add(self, name: str, status: str = "running", image: str = "busybox:latest") -> FakeContainer:
        c = FakeContainer(self.client, name, image, status)
        self.by_name[name] = c
        return c


class FakeVolume:
    def __init__(self, client: "FakeDockerClient", name: str):
        self.client = client
        self.name = name
        self.id = name

    def remove(self) -> None:
        if self.name in self.client.volumes.in_use:
            raise api_error(409, "volume is in use")
        self.client.volumes.by_name.pop(self.name, None)
        self.client.calls.append(("volume rm", self.name))


class FakeVolumes:
    def __init__(self, client: "FakeDockerClient"):
        self.client = client
        self.by_name: dict[str, FakeVolume] = {}
        self.in_use: set[str] = set()
        self.pruned = 0

    def get(self, name: str) -> FakeVolume:
        if name not in self.by_name:
            raise NotFound(f"No such volume: {name}")
        return self.by_name[name]

    def create(self, name: str) -> FakeVolume:
        v = FakeVolume(self.client, name)
        self.by_name[name] = v
        self.client.calls.append(("volume create", name))
        return v

    def list(self) -> list[FakeVolume]:
        return list(self.by_name.values())

    def prune(self) -> dict[str, Any]:
        self.pruned += 1
        return {"VolumesDeleted": []}


class FakeNetwork:
    def __init__(self, client: "FakeDockerClient", name: str):
        self.client = client
        self.name = name
        self.id = _next_id("n")

    def remove(self) -> None:
        self.client.networks.by_id.pop(self.id, None)
        self.client.calls.append(("network rm", self.name))


class FakeNetworks:
    def __init__(self, client: "FakeDockerClient"):
        self.client = client
        self.by_id: dict[str, FakeNetwork] = {}
        self.pruned = 0

    def add(self, name: str) -> FakeNetwork:
        n = FakeNetwork(self.client, name)
        self.by_id[n.id] = n
        return n

    def get(self, key: str) -> FakeNetwork:
        if key in self.by_id:
            return self.by_id[key]
        raise NotFound(f"network {key} not found")

    def list(self) -> list[FakeNetwork]:
        return list(self.by_id.values())

    def prune(self) -> dict[str, Any]:
        self.pruned += 1
        return {"NetworksDeleted": []}


class FakeImage:
    def __init__(self, tags: list[str]):
        self.id = "sha256:" + _next_id("i")
        self.tags = tags


class FakeImages:
    def __init__(self, client: "FakeDockerClient"):
        self.client = client
        self.items: list[FakeImage] = []
        self.in_use: set[str] = set()
        self.pull_error: Exception | None = None
        self.pruned = 0

    def add(self, *tags: str) -> FakeImage:
        img = FakeImage(list(tags))
        self.items.append(img)
        return img

    def _find(self, ref: str) -> FakeImage:
        for img in self.items:
            if img.id == ref or ref in img.tags:
                return img
        raise ImageNotFound(f"No such image: {ref}")

    def get(self, ref: str) -> FakeImage:
        return self._find(ref)

    def list(self, all: bool = False) -> list[FakeImage]:
        return list(self.items)

    def pull(self, ref: str) -> FakeImage:
        self.client.calls.append(("pull", ref))
        if self.pull_error is not None:
            raise self.pull_error
        return self.add(ref)

    def remove(self, ref: str) -> None:
        img = self._find(ref)
        if ref in self.in_use or img.id in self.in_use or self.in_use.intersection(img.tags):
            raise api_error(409, f"image {ref} is being used by a container")
        self.items.remove(img)
        self.client.calls.append(("rmi", ref))

    def prune(self, filters: Any = None) -> dict[str, Any]:
        self.pruned += 1
        return {"ImagesDeleted": []}


class FakeAPI:
    def __init__(self) -> None:
        self.builds_pruned = 0

    def prune_builds(self) -> dict[str, Any]:
        self.builds_pruned += 1
        return {"SpaceReclaimed": 0}


class FakeDockerClient:
    """In-memory stand-in for docker.DockerClient covering what DockerOps touches."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.exec_calls: list[tuple[str, list[str], str | None]] = []
        self.run_outcomes: list[str] = []
        self.run_error: Exception | None = None
        self.exec_handler: Callable[[str, list[str]], tuple[int, str]] = lambda name, cmd: (0, "")
        self.containers = FakeContainers(self)
        self.volumes = FakeVolumes(self)
        self.networks = FakeNetworks(self)
        self.images = FakeImages(self)
        self.api = FakeAPI()

    def ping(self) -> bool:
        return True


class FakeRunner:
    """Scripted command runner: first matching prefix wins, default is success."""

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], dict[str, str] | None]] = []
        self.rules: list[tuple[tuple[str, ...], Callable[[dict[str, str]], CommandResult] | CommandResult]] = []

    def on(self, prefix: tuple[str, ...], result: Any) -> None:
        self.rules.append((prefix, result))

    def __call__(self, args, env=None, cwd=None) -> CommandResult:
        args = tuple(args)
        self.calls.append((args, dict(env) if env else None))
        for prefix, result in self.rules:
            if args[: len(prefix)] == prefix:
                return result(dict(env or {})) if callable(result) else result
        return CommandResult(args, 0, "", "")

    def commands(self) -> list[tuple[str, ...]]:
        return [a for a, _ in self.calls]


@pytest.fixture
def fake_client() -> FakeDockerClient:
    return FakeDockerClient()


@pytest.fixture
def ops(fake_client: FakeDockerClient) -> DockerOps:
    return DockerOps(client=fake_client)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def linux_host() -> HostInfo:
    return HostInfo(system="Linux", machine="x86_64")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], None]:
    return sleeps.append


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(project_dir=tmp_path, llm=LlmSettings(hf_cache_host=str(tmp_path / "hf-cache")))
