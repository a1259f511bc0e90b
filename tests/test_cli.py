import pytest

import cli
from devdeps.docker_ops import DockerOps
from devdeps.errors import DockerUnavailable


@pytest.fixture
def wired(monkeypatch, settings, fake_client):
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "DockerOps", lambda: DockerOps(client=fake_client))
    return fake_client


def test_parser_teardown_flags():
    args = cli.build_parser().parse_args(["teardown", "vectordb", "-f", "--zap", "--prune-build-cache"])
    assert (args.cmd, args.service) == ("teardown", "vectordb")
    assert args.force and args.zap and args.prune_build_cache


def test_parser_rejects_unknown_service():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["setup", "redis"])


def test_help_exits_cleanly(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["teardown", "--help"])
    assert exc.value.code == 0
    assert "--prune-build-cache" in capsys.readouterr().out


def test_teardown_on_empty_inventory_succeeds(wired, capsys):
    assert cli.main(["teardown", "vectordb"]) == 0
    out = capsys.readouterr().out
    assert "absent   container:pgvector" in out


def test_teardown_without_tty_skips_prune(wired, capsys):
    # pytest replaces stdin with a non-tty
    assert cli.main(["teardown", "vectordb", "--prune-build-cache"]) == 0
    assert wired.api.builds_pruned == 0
    assert "skipped  prune" in capsys.readouterr().out


def test_forced_teardown_prunes(wired):
    assert cli.main(["teardown", "llm", "--force", "--prune-build-cache"]) == 0
    assert wired.api.builds_pruned == 1


def test_check_failure_exit_code(wired, capsys):
    assert cli.main(["check", "vectordb"]) == 1
    assert "[FAIL] container running" in capsys.readouterr().out


def test_fatal_error_prints_diagnostics(monkeypatch, settings, capsys):
    monkeypatch.setattr(cli, "load_settings", lambda: settings)

    def unavailable(*a, **kw):
        raise DockerUnavailable("Docker daemon not reachable.", "Is the daemon running?")

    monkeypatch.setattr(cli.Provisioner, "provision", unavailable)
    monkeypatch.setattr(cli, "DockerOps", lambda: None)

    assert cli.main(["setup", "vectordb"]) == 1
    assert "Is the daemon running?" in capsys.readouterr().err


def test_bad_purge_pattern_exits_nonzero_and_keeps_resources(monkeypatch, settings, fake_client):
    import dataclasses

    broken = dataclasses.replace(settings, llm=dataclasses.replace(settings.llm, zap_pattern="vllm("))
    monkeypatch.setattr(cli, "load_settings", lambda: broken)
    monkeypatch.setattr(cli, "DockerOps", lambda: DockerOps(client=fake_client))
    fake_client.containers.add("vllm")

    assert cli.main(["teardown", "llm", "--zap"]) == 1
    assert "vllm" in fake_client.containers.by_name
