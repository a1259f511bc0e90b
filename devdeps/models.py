from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


DEFAULT_KEY = "*"


@dataclass(frozen=True)
class VolumeBinding:
    source: str  # named volume or absolute host path
    target: str
    mode: str = "rw"

    @property
    def is_named(self) -> bool:
        return "/" not in self.source and "\\" not in self.source


@dataclass(frozen=True)
class RunSpec:
    """Extra env and optional explicit command for one launch variant."""

    env: tuple[tuple[str, str], ...] = ()
    command: tuple[str, ...] | None = None


@dataclass(frozen=True)
class LaunchPlan:
    primary: RunSpec
    alternate: RunSpec | None = None


@dataclass(frozen=True)
class ProbeSpec:
    kind: str  # exec|http
    command: tuple[str, ...] = ()
    user: str | None = None
    path: str = "/health"


@dataclass(frozen=True)
class ServiceSpec:
    """Immutable description of one managed container."""

    key: str
    name: str
    image: str
    build_definitions: dict[str, str]  # arch -> build definition file, "*" = any
    launch_plans: dict[str, LaunchPlan]  # arch -> plan, "*" = any
    probe: ProbeSpec
    purge_pattern: str
    fallback_image: str | None = None
    allow_pull_fallback: bool = False
    pull_base: bool = True
    volume: str | None = None
    env: tuple[tuple[str, str], ...] = ()
    host_port: int | None = None
    container_port: int | None = None
    volumes: tuple[VolumeBinding, ...] = ()
    memory: str | None = None
    cpus: float | None = None
    local_artifacts: tuple[str, ...] = ()
    delete_local_artifacts: bool = False
    ready_rounds: int = 60
    ready_interval_s: float = 1.0
    grace_s: float = 5.0
    alternate_grace_s: float = 10.0

    def build_definition_for(self, arch: str) -> str | None:
        return self.build_definitions.get(arch) or self.build_definitions.get(DEFAULT_KEY)

    def launch_plan_for(self, arch: str) -> LaunchPlan:
        plan = self.launch_plans.get(arch) or self.launch_plans.get(DEFAULT_KEY)
        if plan is None:
            return LaunchPlan(primary=RunSpec())
        return plan

    def known_images(self) -> list[str]:
        images = [self.image]
        if self.fallback_image and self.fallback_image != self.image:
            images.append(self.fallback_image)
        return images


@dataclass(frozen=True)
class PlatformProfile:
    arch: str  # arm64|amd64
    platform: str  # linux/arm64|linux/amd64
    build_definition: str | None
    warnings: tuple[str, ...] = ()


class BuildCause(str, Enum):
    CREDENTIAL_HELPER = "credential-helper"
    BUILDX_MISSING = "buildx-missing"
    UNCLASSIFIED = "unclassified"


class BuildOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED_CLASSIFIED = "failed-classified"
    FAILED_UNCLASSIFIED = "failed-unclassified"


@dataclass(frozen=True)
class BuildAttempt:
    strategy: str
    outcome: BuildOutcome
    cause: BuildCause | None = None
    diagnostics: str = ""
    image: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is BuildOutcome.SUCCEEDED


@dataclass(frozen=True)
class RunAttempt:
    variant: str  # primary|alternate
    container_id: str
    state: str  # running|exited
    logs: str = ""

    @property
    def running(self) -> bool:
        return self.state == "running"


@dataclass(frozen=True)
class ResourceMatch:
    kind: str  # container|image|volume|network
    identifier: str
    name: str


@dataclass(frozen=True)
class HealthStatus:
    ready: bool
    rounds: int
    elapsed_s: float
    message: str = ""


@dataclass
class ProvisionResult:
    spec: ServiceSpec
    profile: PlatformProfile
    image: str
    build_attempts: list[BuildAttempt] = field(default_factory=list)
    run_attempts: list[RunAttempt] = field(default_factory=list)
    health: HealthStatus | None = None
    details: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StepResult:
    step: str
    outcome: str  # removed|absent|skipped|ignored|done
    detail: str = ""


@dataclass
class TeardownReport:
    steps: list[StepResult] = field(default_factory=list)

    def add(self, step: str, outcome: str, detail: str = "") -> StepResult:
        res = StepResult(step=step, outcome=outcome, detail=detail)
        self.steps.append(res)
        return res

    def by_outcome(self, outcome: str) -> list[StepResult]:
        return [s for s in self.steps if s.outcome == outcome]

