from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


TRUE_VALUES = {"1", "true", "yes", "y", "on"}


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUE_VALUES


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float | None) -> float | None:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_str(env: Mapping[str, str], name: str, default: str | None) -> str | None:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class PgvectorSettings:
    container: str = "pgvector"
    volume: str = "pgvector_data"
    image: str = "pgvector-local:16"
    fallback_image: str = "pgvector/pgvector:pg16"
    host_port: int = 5432
    postgres_user: str = "app"
    postgres_password: str = "secret"
    postgres_db: str = "appdb"
    vector_dim: int = 768
    ro_user: str = "readonly"
    ro_password: str = "readonly_secret"
    memory: str | None = None
    cpus: float | None = None
    zap_pattern: str = "pgvector|vectordb"
    delete_files: bool = True
    ready_rounds: int = 60
    ready_interval_s: float = 1.0


@dataclass(frozen=True)
class LlmSettings:
    container: str = "vllm"
    image: str = "vllm-cpu:local"
    host_port: int = 8000
    model: str = "Qwen/Qwen2.5-1.5B-Instruct"
    omp_num_threads: int = 8
    memory: str = "8g"
    cpus: float = 4.0
    hf_cache_host: str = "~/.cache/huggingface"
    zap_pattern: str = "vllm"
    delete_files: bool = False
    ready_rounds: int = 120
    ready_interval_s: float = 5.0


@dataclass(frozen=True)
class Settings:
    project_dir: Path = field(default_factory=Path.cwd)
    arch_override: str | None = None
    force: bool = False
    zap: bool = False
    prune_build_cache: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    pgvector: PgvectorSettings = field(default_factory=PgvectorSettings)
    llm: LlmSettings = field(default_factory=LlmSettings)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read configuration once from the environment.

    Everything downstream receives the returned object; nothing else reads os.environ.
    """
    env = os.environ if environ is None else environ
    pg_d = PgvectorSettings()
    llm_d = LlmSettings()

    pgvector = PgvectorSettings(
        container=_env_str(env, "PGVECTOR_CONTAINER", pg_d.container),
        volume=_env_str(env, "PGVECTOR_VOLUME", pg_d.volume),
        image=_env_str(env, "PGVECTOR_IMAGE", pg_d.image),
        fallback_image=_env_str(env, "PGVECTOR_FALLBACK_IMAGE", pg_d.fallback_image),
        host_port=_env_int(env, "PGVECTOR_HOST_PORT", pg_d.host_port),
        postgres_user=_env_str(env, "POSTGRES_USER", pg_d.postgres_user),
        postgres_password=_env_str(env, "POSTGRES_PASSWORD", pg_d.postgres_password),
        postgres_db=_env_str(env, "POSTGRES_DB", pg_d.postgres_db),
        vector_dim=_env_int(env, "VECTOR_DIM", pg_d.vector_dim),
        ro_user=_env_str(env, "RO_USER", pg_d.ro_user),
        ro_password=_env_str(env, "RO_PASSWORD", pg_d.ro_password),
        memory=_env_str(env, "PGVECTOR_MEMORY", pg_d.memory),
        cpus=_env_float(env, "PGVECTOR_CPUS", pg_d.cpus),
        zap_pattern=_env_str(env, "PGVECTOR_ZAP_PATTERN", pg_d.zap_pattern),
        delete_files=_env_bool(env, "PGVECTOR_DELETE_FILES", pg_d.delete_files),
        ready_rounds=_env_int(env, "PGVECTOR_READY_ROUNDS", pg_d.ready_rounds),
        ready_interval_s=_env_float(env, "PGVECTOR_READY_INTERVAL_S", pg_d.ready_interval_s),
    )

    llm = LlmSettings(
        container=_env_str(env, "LLM_CONTAINER", llm_d.container),
        image=_env_str(env, "LLM_IMAGE", llm_d.image),
        host_port=_env_int(env, "LLM_HOST_PORT", llm_d.host_port),
        model=_env_str(env, "LLM_MODEL", llm_d.model),
        omp_num_threads=_env_int(env, "OMP_NUM_THREADS", llm_d.omp_num_threads),
        memory=_env_str(env, "LLM_MEMORY", llm_d.memory),
        cpus=_env_float(env, "LLM_CPUS", llm_d.cpus),
        hf_cache_host=_env_str(env, "HF_CACHE_HOST", llm_d.hf_cache_host),
        zap_pattern=_env_str(env, "LLM_ZAP_PATTERN", llm_d.zap_pattern),
        delete_files=_env_bool(env, "LLM_DELETE_FILES", llm_d.delete_files),
        ready_rounds=_env_int(env, "LLM_READY_ROUNDS", llm_d.ready_rounds),
        ready_interval_s=_env_float(env, "LLM_READY_INTERVAL_S", llm_d.ready_interval_s),
    )

    project_dir = _env_str(env, "DEVDEPS_PROJECT_DIR", None)

    return Settings(
        project_dir=Path(project_dir).expanduser() if project_dir else Path.cwd(),
        arch_override=_env_str(env, "UNAME_M", None),
        force=_env_bool(env, "DEVDEPS_FORCE", False),
        zap=_env_bool(env, "DEVDEPS_ZAP", False),
        prune_build_cache=_env_bool(env, "DEVDEPS_PRUNE_BUILD_CACHE", False),
        log_level=(_env_str(env, "DEVDEPS_LOG_LEVEL", "INFO") or "INFO").upper(),
        log_file=_env_str(env, "DEVDEPS_LOG_FILE", None),
        pgvector=pgvector,
        llm=llm,
    )
