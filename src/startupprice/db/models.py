"""Table-name constants."""


class Table:
    """Database table names."""

    USER_ENTITLEMENTS = "user_entitlements"
    SCHEMA_MIGRATIONS = "schema_migrations"
