from pathlib import Path

from devdeps.catalog import llm_spec, service_spec, vectordb_spec
from devdeps.settings import load_settings


def test_defaults_without_environment():
    s = load_settings({})

    assert s.project_dir == Path.cwd()
    assert s.arch_override is None
    assert (s.force, s.zap, s.prune_build_cache) == (False, False, False)
    assert s.pgvector.container == "pgvector"
    assert s.pgvector.volume == "pgvector_data"
    assert s.pgvector.host_port == 5432
    assert s.llm.model == "Qwen/Qwen2.5-1.5B-Instruct"
    assert s.llm.omp_num_threads == 8


def test_environment_overrides(tmp_path):
    s = load_settings(
        {
            "DEVDEPS_PROJECT_DIR": str(tmp_path),
            "UNAME_M": "aarch64",
            "DEVDEPS_FORCE": "yes",
            "DEVDEPS_LOG_LEVEL": "debug",
            "POSTGRES_DB": "vectors",
            "VECTOR_DIM": "1536",
            "PGVECTOR_CPUS": "1.5",
            "LLM_MODEL": "TinyLlama/TinyLlama-1.1B-Chat-v1.0",
            "LLM_DELETE_FILES": "1",
        }
    )

    assert s.project_dir == tmp_path
    assert s.arch_override == "aarch64"
    assert s.force is True
    assert s.log_level == "DEBUG"
    assert s.pgvector.postgres_db == "vectors"
    assert s.pgvector.vector_dim == 1536
    assert s.pgvector.cpus == 1.5
    assert s.llm.model == "TinyLlama/TinyLlama-1.1B-Chat-v1.0"
    assert s.llm.delete_files is True


def test_invalid_numbers_and_blank_strings_fall_back():
    s = load_settings({"VECTOR_DIM": "lots", "LLM_HOST_PORT": "", "LLM_CPUS": "four", "POSTGRES_USER": "  "})

    assert s.pgvector.vector_dim == 768
    assert s.llm.host_port == 8000
    assert s.llm.cpus == 4.0
    assert s.pgvector.postgres_user == "app"


def test_settings_flow_into_service_specs():
    s = load_settings({"PGVECTOR_CONTAINER": "pgv-test", "PGVECTOR_ZAP_PATTERN": "pgv-", "LLM_HOST_PORT": "18000"})

    pg = vectordb_spec(s)
    assert pg.name == "pgv-test"
    assert pg.purge_pattern == "pgv-"
    assert llm_spec(s).host_port == 18000
    assert service_spec("llm", s).key == "llm"
