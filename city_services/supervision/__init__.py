"""Supervision package for department process health and bounded restarts."""

from .health_protocol import HealthProtocol
from .interfaces import HealthCheckSenderPort, SupervisionTickResult, SupervisorConfig
from .supervisor import ProcessSupervisor

__all__ = [
	"HealthCheckSenderPort",
	"HealthProtocol",
	"ProcessSupervisor",
	"SupervisionTickResult",
	"SupervisorConfig",
]
