from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from docker.errors import APIError

from .docker_ops import RESOURCE_KINDS, DockerOps
from .errors import ConfigurationError
from .models import ResourceMatch, ServiceSpec, TeardownReport


log = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


@dataclass(frozen=True)
class TeardownOptions:
    force: bool = False
    zap: bool = False
    prune_build_cache: bool = False


def always_yes(prompt: str) -> bool:
    return True


def always_no(prompt: str) -> bool:
    return False


def compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid purge pattern {pattern!r}: {e}") from e


def match_resources(records: Iterable[ResourceMatch], pattern: str) -> list[ResourceMatch]:
    """Case-insensitive regex search over resource names (substring semantics)."""
    rx = compile_pattern(pattern)
    return [r for r in records if rx.search(r.name)]


class ResourceReclaimer:
    """Remove everything a service may have left behind.

    Every removal is preceded by a fresh lookup; absence is reported, never raised.
    """

    def __init__(self, ops: DockerOps, project_dir: Path, confirm: Confirm = always_no):
        self.ops = ops
        self.project_dir = project_dir
        self.confirm = confirm

    def teardown(self, spec: ServiceSpec, options: TeardownOptions) -> TeardownReport:
        report = TeardownReport()
        confirm = always_yes if options.force else self.confirm
        if options.zap:
            compile_pattern(spec.purge_pattern)

        self._remove_container(spec, report)
        if spec.volume:
            self._remove_volume(spec.volume, report)
        self._remove_images(spec, report)

        if options.zap:
            self.zap(spec.purge_pattern, report)
        if options.prune_build_cache:
            self._prune(confirm, report)
        if spec.delete_local_artifacts:
            self._delete_files(spec, confirm, report)

        log.info("Teardown complete.")
        return report

    def _remove_container(self, spec: ServiceSpec, report: TeardownReport) -> None:
        try:
            if self.ops.container_is_running(spec.name):
                log.info("Stopping container: %s", spec.name)
                self.ops.stop_container(spec.name)
            removed = self.ops.remove_container(spec.name)
        except APIError as e:
            # paused or restarting containers refuse a plain rm
            log.warning("Could not remove container '%s': %s", spec.name, e)
            report.add(f"container:{spec.name}", "ignored", str(e))
            return
        if removed:
            log.info("Removed container: %s", spec.name)
            report.add(f"container:{spec.name}", "removed")
        else:
            log.info("Container '%s' not found; skipping.", spec.name)
            report.add(f"container:{spec.name}", "absent")

    def _remove_volume(self, name: str, report: TeardownReport) -> None:
        try:
            removed = self.ops.remove_volume(name)
        except APIError as e:
            log.warning("Could not remove volume '%s': %s", name, e)
            report.add(f"volume:{name}", "ignored", str(e))
            return
        if removed:
            log.info("Removed volume: %s", name)
            report.add(f"volume:{name}", "removed")
        else:
            log.info("Volume '%s' not found; skipping.", name)
            report.add(f"volume:{name}", "absent")

    def _remove_images(self, spec: ServiceSpec, report: TeardownReport) -> None:
        log.info("Removing images (if present): %s", ", ".join(spec.known_images()))
        for ref in spec.known_images():
            try:
                removed = self.ops.remove_image(ref)
            except APIError as e:
                log.warning("Could not remove image '%s': %s", ref, e)
                report.add(f"image:{ref}", "ignored", str(e))
                continue
            if removed:
                log.info("Removed image: %s", ref)
            else:
                log.info("Image '%s' not found; skipping.", ref)
            report.add(f"image:{ref}", "removed" if removed else "absent")

    def zap(self, pattern: str, report: TeardownReport) -> list[ResourceMatch]:
        """Remove every container, volume, network and image whose name matches ``pattern``."""
        log.info("ZAP mode enabled. Target pattern: /%s/i", pattern)
        removed: list[ResourceMatch] = []
        for kind in RESOURCE_KINDS:
            try:
                records = self.ops.list_resources(kind)
            except APIError as e:
                log.warning("Could not list %ss: %s", kind, e)
                report.add(f"{kind}s", "ignored", str(e))
                continue
            matches = match_resources(records, pattern)
            if not matches:
                continue
            log.info("Removing %s(s): %s", kind, ", ".join(m.name for m in matches))
            seen: set[str] = set()
            for m in matches:
                # an image with several matching tags is removed once, by id
                if m.identifier in seen:
                    continue
                seen.add(m.identifier)
                try:
                    ok = self.ops.remove_resource(m)
                except APIError as e:
                    log.warning("Could not remove %s '%s': %s", kind, m.name, e)
                    report.add(f"{kind}:{m.name}", "ignored", str(e))
                    continue
                report.add(f"{kind}:{m.name}", "removed" if ok else "absent")
                if ok:
                    removed.append(m)
        return removed

    def _prune(self, confirm: Confirm, report: TeardownReport) -> None:
        if not confirm("Prune Docker build cache (global)?"):
            log.warning("Skipped pruning build cache.")
            report.add("prune", "skipped")
            return
        steps = (
            ("build cache", self.ops.prune_build_cache),
            ("dangling images", self.ops.prune_dangling_images),
            ("unused volumes", self.ops.prune_volumes),
            ("unused networks", self.ops.prune_networks),
        )
        for label, fn in steps:
            log.info("Pruning %s", label)
            try:
                fn()
            except APIError as e:
                log.warning("Pruning %s failed: %s", label, e)
                report.add(f"prune:{label}", "ignored", str(e))
                continue
            report.add(f"prune:{label}", "done")

    def _delete_files(self, spec: ServiceSpec, confirm: Confirm, report: TeardownReport) -> None:
        targets = [self.project_dir / a for a in spec.local_artifacts if (self.project_dir / a).exists()]
        if not targets:
            return
        listing = " ".join(p.name + ("/" if p.is_dir() else "") for p in targets)
        if not confirm(f"Delete local files: {listing}?"):
            log.warning("Skipping deletion of local files.")
            report.add("files", "skipped", listing)
            return
        for p in targets:
            log.info("Deleting %s", p)
            if p.is_dir():
                shutil.rmtree(p, ignore_errors=True)
            elif p.exists():
                p.unlink()
            report.add(f"file:{p.name}", "removed")
        log.info("Local docker files removed.")
