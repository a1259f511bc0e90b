from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

from devdeps.catalog import SERVICES, service_spec
from devdeps.diagnostics import check_llm, check_vectordb, render
from devdeps.docker_ops import DockerOps
from devdeps.errors import DevDepsError
from devdeps.logs import setup_logging
from devdeps.provision import Provisioner, summary
from devdeps.reclaimer import ResourceReclaimer, TeardownOptions
from devdeps.settings import Settings, load_settings


log = logging.getLogger("devdeps")


def prompt_confirm(prompt: str) -> bool:
    """Ask on the terminal; without one, destructive global steps are declined."""
    if not sys.stdin.isatty():
        return False
    try:
        ans = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return ans.strip() in {"y", "Y"}


def _fail(e: DevDepsError) -> int:
    log.error("%s", e)
    if e.diagnostics:
        print(e.diagnostics, file=sys.stderr)
    return 1


def cmd_setup(settings: Settings, args: argparse.Namespace) -> int:
    spec = service_spec(args.service, settings)
    result = Provisioner(settings, DockerOps()).provision(spec)
    print(summary(result, settings))
    return 0


def cmd_teardown(settings: Settings, args: argparse.Namespace) -> int:
    spec = service_spec(args.service, settings)
    options = TeardownOptions(
        force=args.force or settings.force,
        zap=args.zap or settings.zap,
        prune_build_cache=args.prune_build_cache or settings.prune_build_cache,
    )
    reclaimer = ResourceReclaimer(DockerOps(), settings.project_dir, confirm=prompt_confirm)
    report = reclaimer.teardown(spec, options)
    for step in report.steps:
        print(f"  {step.outcome:<8} {step.step}" + (f"  ({step.detail})" if step.detail else ""))
    print("Verify with: docker ps -a ; docker images -a ; docker volume ls ; docker network ls")
    return 0


def cmd_check(settings: Settings, args: argparse.Namespace) -> int:
    spec = service_spec(args.service, settings)
    ops = DockerOps()
    report = check_llm(spec, settings, ops) if spec.key == "llm" else check_vectordb(spec, settings, ops)
    print(render(report))
    return 0 if report.ok else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="devdeps", description="Local dependency services (pgvector, LLM server)")
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    p.add_argument("--log-file", default=None, help="Also write logs to this file")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_setup = sub.add_parser("setup", help="Build, start and wait for a service")
    s_setup.add_argument("service", choices=SERVICES)

    s_down = sub.add_parser("teardown", help="Stop and remove a service's resources")
    s_down.add_argument("service", choices=SERVICES)
    s_down.add_argument("-f", "--force", action="store_true", help="Do not prompt for confirmations")
    s_down.add_argument(
        "--zap",
        action="store_true",
        help="Remove ALL containers/images/volumes/networks whose name matches the service's pattern",
    )
    s_down.add_argument(
        "--prune-build-cache",
        action="store_true",
        help="Also prune build cache, dangling images, unused volumes and networks (global; not pattern-scoped)",
    )

    s_check = sub.add_parser("check", help="Run liveness and round-trip diagnostics")
    s_check.add_argument("service", choices=SERVICES)
    return p


COMMANDS = {
    "setup": cmd_setup,
    "teardown": cmd_teardown,
    "check": cmd_check,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.debug:
        settings = dataclasses.replace(settings, log_level="DEBUG")
    if args.log_file:
        settings = dataclasses.replace(settings, log_file=args.log_file)
    setup_logging(settings.log_level, settings.log_file)

    try:
        return COMMANDS[args.cmd](settings, args)
    except DevDepsError as e:
        return _fail(e)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
