"""Database engine construction for the council decision log.

SQLAlchemy connectivity primitives live here so every SQL statement stays
inside the db package.
"""

from sqlalchemy import Engine, create_engine


def db_create_engine(database_url: str) -> Engine:
    """Create the SQLAlchemy engine for the council decision log.

    SQLite connections are shared between the orchestrator loop and the API
    worker threads, so same-thread checking is disabled for SQLite URLs.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Engine: Configured SQLAlchemy engine.

    Raises:
        ValueError: Raised when the database URL is blank.
    """

    normalized_url = database_url.strip()
    if not normalized_url:
        raise ValueError("database_url must not be blank")

    connect_args: dict[str, object] = {}
    if normalized_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(normalized_url, pool_pre_ping=True, connect_args=connect_args)
