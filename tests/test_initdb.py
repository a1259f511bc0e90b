import dataclasses

import pytest

from devdeps.errors import InitializationError
from devdeps.initdb import initialize_vectordb
from devdeps.settings import PgvectorSettings


def recorder(answers=None):
    statements = []

    def psql(sql):
        statements.append(sql)
        for prefix, answer in (answers or {}).items():
            if sql.startswith(prefix):
                return answer
        return ""

    psql.statements = statements
    return psql


def test_statements_are_idempotent_and_escaped():
    pg = PgvectorSettings(ro_password="it's-secret", vector_dim=384)
    psql = recorder({"SHOW": "16.4", "SELECT extname": "plpgsql\nvector"})

    info = initialize_vectordb(psql, pg)

    assert info == {"pg_version": "16.4", "extensions": "plpgsql vector"}
    joined = "\n".join(psql.statements)
    assert "vector(384)" in joined
    assert "PASSWORD 'it''s-secret'" in joined
    assert "IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = 'readonly')" in joined
    assert "GRANT CONNECT ON DATABASE appdb TO readonly;" in psql.statements


def test_unsafe_identifier_is_refused_before_any_statement():
    pg = dataclasses.replace(PgvectorSettings(), ro_user="ro; DROP TABLE items")
    psql = recorder()

    with pytest.raises(InitializationError):
        initialize_vectordb(psql, pg)
    assert psql.statements == []
