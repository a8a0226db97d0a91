"""Jobs package for the council control loop and its cadence sources."""

from .interfaces import JobExecutionResult, JobOrchestratorPort, TickerPort
from .orchestrator import OrchestratorConfig, OrchestratorCycleResult, OrchestratorLoop
from .ticker import EventTicker, ManualTicker

__all__ = [
	"EventTicker",
	"JobExecutionResult",
	"JobOrchestratorPort",
	"ManualTicker",
	"OrchestratorConfig",
	"OrchestratorCycleResult",
	"OrchestratorLoop",
	"TickerPort",
]
