from __future__ import annotations

import logging
import re

from .docker_ops import DockerOps
from .errors import InitializationError
from .settings import PgvectorSettings


log = logging.getLogger(__name__)

IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
INDEX_NAME = "items_embedding_ivfflat_idx"


def _ident(name: str) -> str:
    if not IDENT_RE.match(name):
        raise InitializationError(f"Refusing unsafe SQL identifier: {name!r}")
    return name


def _literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class Psql:
    """psql inside the database container, one statement per call."""

    def __init__(self, ops: DockerOps, container: str, user: str, db: str):
        self.ops = ops
        self.container = container
        self.user = user
        self.db = db

    def __call__(self, sql: str) -> str:
        cmd = ["psql", "-v", "ON_ERROR_STOP=1", "-U", self.user, "-d", self.db, "-Atc", sql]
        code, out = self.ops.exec_in_container(self.container, cmd)
        if code != 0:
            raise InitializationError(f"psql failed (exit {code})", out)
        return out.strip()


def initialize_vectordb(psql: Psql, pg: PgvectorSettings) -> dict[str, str]:
    """Idempotent schema setup: extension, items table, ANN index, read-only role.

    No data is seeded. Returns the server version and installed extensions.
    """
    log.info("Applying database initialization (no data seeding)...")
    ro_user = _ident(pg.ro_user)
    db = _ident(pg.postgres_db)
    dim = int(pg.vector_dim)

    psql("CREATE EXTENSION IF NOT EXISTS vector;")
    psql(
        "CREATE TABLE IF NOT EXISTS items ("
        " id BIGSERIAL PRIMARY KEY,"
        f" embedding vector({dim}),"
        " doc TEXT"
        ");"
    )
    if not psql(f"SELECT 1 FROM pg_class WHERE relname={_literal(INDEX_NAME)} LIMIT 1;"):
        psql(f"CREATE INDEX {INDEX_NAME} ON items USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100);")

    psql(
        "DO $$ BEGIN "
        f"IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = {_literal(ro_user)}) THEN "
        f"CREATE ROLE {ro_user} LOGIN PASSWORD {_literal(pg.ro_password)}; "
        "END IF; END $$;"
    )
    psql(f"GRANT CONNECT ON DATABASE {db} TO {ro_user};")
    psql(f"GRANT USAGE ON SCHEMA public TO {ro_user};")
    psql(f"GRANT SELECT ON ALL TABLES IN SCHEMA public TO {ro_user};")
    psql(f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT SELECT ON TABLES TO {ro_user};")

    return {
        "pg_version": psql("SHOW server_version;"),
        "extensions": " ".join(psql("SELECT extname FROM pg_extension ORDER BY 1;").split()),
    }
