"""Image build with an ordered chain of fallback strategies.

Order: primary BuildKit build, then (depending on how the primary failed) an
empty-auth legacy build or a plain legacy build, then ``docker buildx``, and
finally pulling a prebuilt image when the service allows it. The first
strategy that succeeds wins; its image is the one the launcher runs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from docker.errors import APIError, DockerException

from .docker_ops import DockerOps
from .errors import BuildError
from .models import BuildAttempt, BuildCause, BuildOutcome, PlatformProfile, ServiceSpec
from .runner import CommandResult, CommandRunner


log = logging.getLogger(__name__)

BUILD_ERR_FILE = "build.err"
ERR_TAIL_LINES = 60
EMPTY_AUTH_CONFIG = '{"auths":{}}'

FAILURE_SIGNATURES = (
    ("error getting credentials", BuildCause.CREDENTIAL_HELPER),
    ("buildx component is missing", BuildCause.BUILDX_MISSING),
)


def classify_failure(stderr: str) -> BuildCause:
    text = stderr.lower()
    for needle, cause in FAILURE_SIGNATURES:
        if needle in text:
            return cause
    return BuildCause.UNCLASSIFIED


@dataclass
class BuildContext:
    project_dir: Path
    runner: CommandRunner
    ops: DockerOps
    attempts: list[BuildAttempt] = field(default_factory=list)

    @property
    def primary(self) -> BuildAttempt | None:
        for a in self.attempts:
            if a.strategy == "primary":
                return a
        return None


StrategyFn = Callable[[ServiceSpec, PlatformProfile, BuildContext], BuildAttempt]
AppliesFn = Callable[[ServiceSpec, PlatformProfile, BuildContext], bool]


@dataclass(frozen=True)
class BuildStrategy:
    name: str
    applies: AppliesFn
    run: StrategyFn


def _build_args(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext, buildx: bool = False) -> list[str]:
    args = ["docker", "buildx", "build", "--load"] if buildx else ["docker", "build"]
    if spec.pull_base:
        args.append("--pull")
    args += ["-f", str(ctx.project_dir / (profile.build_definition or "Dockerfile"))]
    args += ["--platform", profile.platform, "-t", spec.image, str(ctx.project_dir)]
    return args


def _attempt_from(name: str, spec: ServiceSpec, res: CommandResult) -> BuildAttempt:
    if res.ok:
        return BuildAttempt(strategy=name, outcome=BuildOutcome.SUCCEEDED, image=spec.image)
    diagnostics = res.stderr or res.stdout
    cause = classify_failure(diagnostics)
    outcome = BuildOutcome.FAILED_UNCLASSIFIED if cause is BuildCause.UNCLASSIFIED else BuildOutcome.FAILED_CLASSIFIED
    return BuildAttempt(strategy=name, outcome=outcome, cause=cause, diagnostics=diagnostics)


def _local_build(name: str, env: dict[str, str], buildx: bool = False) -> StrategyFn:
    def run(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext) -> BuildAttempt:
        res = ctx.runner(_build_args(spec, profile, ctx, buildx=buildx), env=env, cwd=str(ctx.project_dir))
        return _attempt_from(name, spec, res)

    return run


def _pull_fallback(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext) -> BuildAttempt:
    ref = spec.fallback_image or spec.image
    log.warning("Local build failed. Falling back to: %s", ref)
    try:
        ctx.ops.pull_image(ref)
    except (APIError, DockerException) as e:
        return BuildAttempt(
            strategy="pull-fallback",
            outcome=BuildOutcome.FAILED_UNCLASSIFIED,
            cause=BuildCause.UNCLASSIFIED,
            diagnostics=str(e),
        )
    return BuildAttempt(strategy="pull-fallback", outcome=BuildOutcome.SUCCEEDED, image=ref)


def _definition_present(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext) -> bool:
    return bool(profile.build_definition) and (ctx.project_dir / profile.build_definition).is_file()


def _primary_failed_with(cause: BuildCause) -> AppliesFn:
    def applies(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext) -> bool:
        primary = ctx.primary
        return _definition_present(spec, profile, ctx) and primary is not None and primary.cause is cause

    return applies


def _buildx_available(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext) -> bool:
    return _definition_present(spec, profile, ctx) and ctx.runner(["docker", "buildx", "version"]).ok


def _pull_permitted(spec: ServiceSpec, profile: PlatformProfile, ctx: BuildContext) -> bool:
    return spec.allow_pull_fallback and bool(spec.fallback_image)


STRATEGIES: tuple[BuildStrategy, ...] = (
    BuildStrategy("primary", _definition_present, _local_build("primary", {"DOCKER_BUILDKIT": "1"})),
    BuildStrategy(
        "no-cache-auth",
        _primary_failed_with(BuildCause.CREDENTIAL_HELPER),
        _local_build("no-cache-auth", {"DOCKER_AUTH_CONFIG": EMPTY_AUTH_CONFIG, "DOCKER_BUILDKIT": "0"}),
    ),
    BuildStrategy(
        "legacy-builder",
        _primary_failed_with(BuildCause.BUILDX_MISSING),
        _local_build("legacy-builder", {"DOCKER_BUILDKIT": "0"}),
    ),
    BuildStrategy("buildx", _buildx_available, _local_build("buildx", {}, buildx=True)),
    BuildStrategy("pull-fallback", _pull_permitted, _pull_fallback),
)

STRATEGY_MESSAGES = {
    "no-cache-auth": "Credential helper issue -> retrying with DOCKER_AUTH_CONFIG and legacy builder...",
    "legacy-builder": "BuildKit/buildx missing -> retrying with legacy builder...",
    "buildx": "Retrying with docker buildx build...",
}


def build_image(
    spec: ServiceSpec,
    profile: PlatformProfile,
    ctx: BuildContext,
    strategies: tuple[BuildStrategy, ...] = STRATEGIES,
) -> str:
    """Walk the strategy chain; return the usable image reference or raise BuildError."""
    err_file = ctx.project_dir / BUILD_ERR_FILE
    last: BuildAttempt | None = None

    for strategy in strategies:
        if not strategy.applies(spec, profile, ctx):
            continue
        if strategy.name == "primary":
            log.info("Building image: %s", spec.image)
        elif strategy.name in STRATEGY_MESSAGES:
            log.warning(STRATEGY_MESSAGES[strategy.name])

        attempt = strategy.run(spec, profile, ctx)
        ctx.attempts.append(attempt)
        last = attempt
        if attempt.succeeded:
            if err_file.exists():
                err_file.unlink()
            log.info("Build succeeded (%s): %s", attempt.strategy, attempt.image)
            return attempt.image or spec.image
        log.debug("Strategy %s failed (%s)", attempt.strategy, attempt.cause)

    diagnostics = last.diagnostics if last else "no applicable build strategy"
    try:
        err_file.write_text(diagnostics, encoding="utf-8")
    except OSError as e:
        log.debug("Could not write %s: %s", err_file, e)
    tail = "\n".join(diagnostics.splitlines()[-ERR_TAIL_LINES:])
    raise BuildError(f"Build failed for {spec.name}. See {err_file} (last {ERR_TAIL_LINES} lines):", tail, attempts=ctx.attempts)
