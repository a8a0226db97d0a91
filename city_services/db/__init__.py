"""Database layer package for all SQL and persistence boundaries."""

from .decision_log import SQLAlchemyDecisionLogService
from .health import SQLAlchemyDatabaseHealthService
from .interfaces import DatabaseHealthPort, DecisionLogRecord, DecisionLogRepositoryPort
from .session import db_create_engine

__all__ = [
	"DatabaseHealthPort",
	"DecisionLogRecord",
	"DecisionLogRepositoryPort",
	"SQLAlchemyDatabaseHealthService",
	"SQLAlchemyDecisionLogService",
	"db_create_engine",
]
