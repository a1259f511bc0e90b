from __future__ import annotations

import logging
import platform as _platform
from dataclasses import dataclass
from pathlib import Path

from .errors import ResolutionError
from .models import PlatformProfile, ServiceSpec
from .runner import CommandRunner


log = logging.getLogger(__name__)

DEFAULT_ARCH = "amd64"
PLATFORMS = {
    "arm64": "linux/arm64",
    "amd64": "linux/amd64",
}
ARCH_ALIASES = {
    "arm64": "arm64",
    "aarch64": "arm64",
    "amd64": "amd64",
    "x86_64": "amd64",
}


@dataclass(frozen=True)
class HostInfo:
    system: str  # platform.system(): Darwin|Linux|Windows
    machine: str  # platform.machine()
    mac_arm64: bool = False
    translated: bool = False  # Rosetta


def _sysctl_flag(runner: CommandRunner, key: str) -> bool:
    res = runner(["sysctl", "-n", key])
    return res.ok and res.stdout.strip() == "1"


def detect_host(runner: CommandRunner) -> HostInfo:
    system = _platform.system()
    machine = _platform.machine()
    if system != "Darwin":
        return HostInfo(system=system, machine=machine)
    # uname -m reports x86_64 under Rosetta; sysctl tells the truth
    return HostInfo(
        system=system,
        machine=machine,
        mac_arm64=_sysctl_flag(runner, "hw.optional.arm64"),
        translated=_sysctl_flag(runner, "sysctl.proc_translated"),
    )


def resolve_arch(override: str | None, host: HostInfo) -> tuple[str, list[str]]:
    """Pick the target architecture. Returns (arch, warnings)."""
    warnings: list[str] = []
    if override:
        arch = ARCH_ALIASES.get(override.strip().lower())
        if arch is None:
            warnings.append(f"Unknown UNAME_M value: {override}, defaulting to {DEFAULT_ARCH}")
            arch = DEFAULT_ARCH
        return arch, warnings

    if host.mac_arm64:
        if host.translated:
            warnings.append("Rosetta detected; using arm64 build.")
        return "arm64", warnings

    return ARCH_ALIASES.get(host.machine.strip().lower(), DEFAULT_ARCH), warnings


def resolve_profile(spec: ServiceSpec, override: str | None, host: HostInfo, project_dir: Path) -> PlatformProfile:
    """Resolve the single PlatformProfile used for the whole invocation."""
    arch, warnings = resolve_arch(override, host)
    for w in warnings:
        log.warning(w)

    definition = spec.build_definition_for(arch)
    if definition is None or not (project_dir / definition).is_file():
        if not (spec.allow_pull_fallback and spec.fallback_image):
            raise ResolutionError(f"Missing build definition {definition or '(none)'} for {arch} in {project_dir}")
        log.warning("Build definition %s not found; will use %s.", definition, spec.fallback_image)
    else:
        check_build_definition(project_dir / definition)

    profile = PlatformProfile(arch=arch, platform=PLATFORMS[arch], build_definition=definition, warnings=tuple(warnings))
    log.info("Arch -> %s  (--platform %s)", definition, profile.platform)
    return profile


def check_build_definition(path: Path) -> bool:
    """Warn if the first active line is not a FROM instruction."""
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return False
    for line in lines:
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        if s.upper().startswith("FROM"):
            return True
        log.warning("%s first active line is '%s' (should start with 'FROM ...'); build may fall back.", path.name, s)
        return False
    return False
