from __future__ import annotations

from .models import LaunchPlan, ProbeSpec, RunSpec, ServiceSpec, VolumeBinding
from .settings import Settings


SERVICES = ("vectordb", "llm")

PG_DATA_DIR = "/var/lib/postgresql/data"
HF_CACHE_CONT = "/root/.cache/huggingface"
LLM_PORT = 8000


def vectordb_spec(settings: Settings) -> ServiceSpec:
    pg = settings.pgvector
    return ServiceSpec(
        key="vectordb",
        name=pg.container,
        image=pg.image,
        fallback_image=pg.fallback_image,
        allow_pull_fallback=True,
        pull_base=False,
        build_definitions={"*": "Dockerfile"},
        launch_plans={
            "*": LaunchPlan(
                primary=RunSpec(),
                # same image, entrypoint script invoked explicitly
                alternate=RunSpec(command=("docker-entrypoint.sh", "postgres")),
            )
        },
        probe=ProbeSpec(
            kind="exec",
            command=("pg_isready", "-U", pg.postgres_user, "-d", pg.postgres_db, "-h", "localhost", "-p", "5432"),
            user="postgres",
        ),
        purge_pattern=pg.zap_pattern,
        volume=pg.volume,
        env=(
            ("POSTGRES_USER", pg.postgres_user),
            ("POSTGRES_PASSWORD", pg.postgres_password),
            ("POSTGRES_DB", pg.postgres_db),
        ),
        host_port=pg.host_port,
        container_port=5432,
        volumes=(VolumeBinding(pg.volume, PG_DATA_DIR),),
        memory=pg.memory,
        cpus=pg.cpus,
        local_artifacts=("Dockerfile", "initdb"),
        delete_local_artifacts=pg.delete_files,
        ready_rounds=pg.ready_rounds,
        ready_interval_s=pg.ready_interval_s or 1.0,
    )


def _vllm_command(model: str) -> tuple[str, ...]:
    return (
        "python", "-m", "vllm.entrypoints.openai.api_server",
        "--model", model,
        "--device", "cpu",
        "--host", "0.0.0.0",
        "--port", str(LLM_PORT),
    )


def llm_spec(settings: Settings) -> ServiceSpec:
    llm = settings.llm
    vllm_env = (
        ("CUDA_VISIBLE_DEVICES", ""),
        ("VLLM_TARGET_DEVICE", "cpu"),
        ("VLLM_USE_MODELSCOPE", "false"),
    )
    return ServiceSpec(
        key="llm",
        name=llm.container,
        image=llm.image,
        build_definitions={"arm64": "Dockerfile.vllm-arm64", "amd64": "Dockerfile.vllm-amd64"},
        launch_plans={
            # arm64 image ships a transformers-based server instead of vLLM
            "arm64": LaunchPlan(
                primary=RunSpec(),
                alternate=RunSpec(command=("python", "-u", "openai_api_server.py")),
            ),
            "amd64": LaunchPlan(
                primary=RunSpec(
                    env=vllm_env + (("VLLM_LOGGING_LEVEL", "INFO"), ("VLLM_CPU_KVCACHE_SPACE", "40")),
                    command=_vllm_command(llm.model),
                ),
                alternate=RunSpec(
                    env=vllm_env + (("VLLM_LOGGING_LEVEL", "DEBUG"),),
                    command=_vllm_command(llm.model),
                ),
            ),
        },
        probe=ProbeSpec(kind="http", path="/health"),
        purge_pattern=llm.zap_pattern,
        env=(
            ("MODEL", llm.model),
            ("OMP_NUM_THREADS", str(llm.omp_num_threads)),
        ),
        host_port=llm.host_port,
        container_port=LLM_PORT,
        volumes=(VolumeBinding(llm.hf_cache_host, HF_CACHE_CONT),),
        memory=llm.memory,
        cpus=llm.cpus,
        local_artifacts=("Dockerfile.vllm-arm64", "Dockerfile.vllm-amd64"),
        delete_local_artifacts=llm.delete_files,
        ready_rounds=llm.ready_rounds,
        ready_interval_s=llm.ready_interval_s or 5.0,
    )


def service_spec(key: str, settings: Settings) -> ServiceSpec:
    if key == "vectordb":
        return vectordb_spec(settings)
    if key == "llm":
        return llm_spec(settings)
    raise ValueError(f"Unknown service {key!r}; expected one of {', '.join(SERVICES)}")
