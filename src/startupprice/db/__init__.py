"""PostgreSQL connection pool and schema migrations."""

from startupprice.db.pool import close_pool, open_pool

__all__ = ["close_pool", "open_pool"]
