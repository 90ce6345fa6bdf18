"""
Database engine creation and dialect helpers.

PostgreSQL is the production target; SQLite is supported for local
runs and tests.
"""

import sqlalchemy as sa

from caseload.config.settings import DatabaseConfig, validate_identifier
from caseload.utils.logging import get_logger, route_sql_echo

log = get_logger(__name__)

SUPPORTED_DIALECTS: frozenset[str] = frozenset({"postgresql", "sqlite"})

# Bind-parameter ceilings per statement
MAX_BIND_PARAMETERS: dict[str, int] = {
    "postgresql": 65_535,
    "sqlite": 999,
}


def create_warehouse_engine(config: DatabaseConfig) -> sa.Engine:
    """
    Create an engine for the configured database.

    Args:
        config: Database configuration.

    Returns:
        SQLAlchemy engine.

    Raises:
        ValueError: If the dialect is not supported.
    """
    url = sa.make_url(config.url)
    if url.get_backend_name() not in SUPPORTED_DIALECTS:
        msg = (
            f"Unsupported database dialect {url.get_backend_name()!r}. "
            f"Supported: {', '.join(sorted(SUPPORTED_DIALECTS))}"
        )
        raise ValueError(msg)

    route_sql_echo(config.echo)
    engine = sa.create_engine(url, pool_pre_ping=True)
    log.info(
        "Created database engine",
        dialect=engine.dialect.name,
        database=url.database,
        host=url.host,
    )
    return engine


def max_bind_parameters(dialect_name: str) -> int:
    """Bind-parameter ceiling for a dialect."""
    return MAX_BIND_PARAMETERS.get(dialect_name, 999)


def effective_batch_size(batch_size: int, n_columns: int, dialect_name: str) -> int:
    """
    Clamp a batch size so one multi-row INSERT stays under the
    dialect's bind-parameter ceiling.

    Args:
        batch_size: Configured rows per INSERT.
        n_columns: Columns bound per row.
        dialect_name: SQLAlchemy dialect name.

    Returns:
        Rows per INSERT, at least 1.
    """
    if n_columns <= 0:
        return max(batch_size, 1)
    ceiling = max_bind_parameters(dialect_name) // n_columns
    return max(1, min(batch_size, ceiling))


def quote_identifier(conn: sa.Connection, name: str) -> str:
    """
    Quote a configured table/column name for raw SQL.

    Names are validated against the identifier rules first, then
    quoted by the dialect.
    """
    validate_identifier(name)
    return conn.dialect.identifier_preparer.quote_identifier(name)


def text_table(name: str, columns: list[str] | tuple[str, ...]) -> sa.Table:
    """Table construct with every column typed as TEXT."""
    return sa.Table(
        name,
        sa.MetaData(),
        *(sa.Column(column, sa.Text, nullable=True) for column in columns),
    )
