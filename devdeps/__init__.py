"""Local dependency services (devdeps).

Provisions and tears down single-instance local containers used during
development:
 - vectordb: PostgreSQL 16 + pgvector
 - llm: CPU inference server with an OpenAI-compatible API

Every step queries the docker daemon fresh, so setup and teardown can be
re-run at any time.
"""

__version__ = "0.1.0"
