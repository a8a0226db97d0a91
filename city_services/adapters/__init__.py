"""Adapter layer package for process, transport and template boundaries."""

from .errors import AdapterError, MessageBusError, ProcessSpawnError
from .interfaces import DepartmentTemplateSourcePort, EnvelopeHandler, MessageBusPort, ProcessLauncherPort
from .memory_bus import InMemoryMessageBus
from .process_launcher import SubprocessProcessLauncher
from .redis_bus import RedisMessageBus
from .template_source import DirectoryTemplateSource

__all__ = [
	"AdapterError",
	"DepartmentTemplateSourcePort",
	"DirectoryTemplateSource",
	"EnvelopeHandler",
	"InMemoryMessageBus",
	"MessageBusError",
	"MessageBusPort",
	"ProcessLauncherPort",
	"ProcessSpawnError",
	"RedisMessageBus",
	"SubprocessProcessLauncher",
]
