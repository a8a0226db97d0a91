"""Message contracts and envelope codec for the city message bus."""

from .models import (
	BusMessage,
	ConsolidationRecommendation,
	CouncilDecision,
	DepartmentAnalysisRequest,
	DepartmentAnnouncement,
	DepartmentChangeNotification,
	EmergencyCall,
	HealthCheckRequest,
	HealthStatusReply,
	ServiceRequest,
	TerminationRecommendation,
)
from .registry import (
	MESSAGE_TYPE_REGISTRY,
	MalformedMessageError,
	message_build_envelope,
	message_decode_envelope,
	message_type_tag,
)

__all__ = [
	"BusMessage",
	"ConsolidationRecommendation",
	"CouncilDecision",
	"DepartmentAnalysisRequest",
	"DepartmentAnnouncement",
	"DepartmentChangeNotification",
	"EmergencyCall",
	"HealthCheckRequest",
	"HealthStatusReply",
	"MESSAGE_TYPE_REGISTRY",
	"MalformedMessageError",
	"ServiceRequest",
	"TerminationRecommendation",
	"message_build_envelope",
	"message_decode_envelope",
	"message_type_tag",
]
