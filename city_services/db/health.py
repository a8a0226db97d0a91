"""Decision-log database health checks."""

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from city_services.domain import HealthStatus

from .interfaces import DatabaseHealthPort


class SQLAlchemyDatabaseHealthService(DatabaseHealthPort):
    """Verify that the decision-log database is reachable and migrated."""

    def __init__(self, engine: Engine):
        """Initialize database health service.

        Args:
            engine: SQLAlchemy engine of the decision log.

        Raises:
            ValueError: Raised when engine is None.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    def db_connection_label(self) -> str:
        """Return the decision-log database URL with credentials hidden."""

        return self._engine.url.render_as_string(hide_password=True)

    def db_check_health(self) -> HealthStatus:
        """Count recorded decisions to prove connectivity and schema presence.

        Returns:
            HealthStatus: `ok` status with the recorded decision count.

        Raises:
            ConnectionError: Raised when the database or `council_decision` table is unreachable.
        """

        try:
            with self._engine.connect() as connection:
                decision_count = connection.execute(text("SELECT COUNT(*) FROM council_decision")).scalar_one()
        except SQLAlchemyError as error:
            raise ConnectionError("decision log database check failed") from error
        return HealthStatus(status="ok", detail=f"decision log reachable ({decision_count} decisions)")
