"""Closed message-type registry and envelope codec for bus payloads.

Every message type the system understands is listed here once, so decoding
never resolves classes by name at runtime.
"""

from __future__ import annotations

from typing import Any, Final, Mapping

from pydantic import BaseModel, ValidationError

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


class MalformedMessageError(ValueError):
    """Raised when a bus envelope or its payload cannot be decoded.

    Attributes:
        message_type: Envelope type tag when one could be read.
    """

    def __init__(self, message: str, message_type: str | None = None):
        super().__init__(message)
        self.message_type = message_type


MESSAGE_TYPE_REGISTRY: Final[dict[str, type[BusMessage]]] = {
    "HealthCheckRequest": HealthCheckRequest,
    "HealthStatusReply": HealthStatusReply,
    "ServiceRequest": ServiceRequest,
    "ConsolidationRecommendation": ConsolidationRecommendation,
    "TerminationRecommendation": TerminationRecommendation,
    "CouncilDecision": CouncilDecision,
    "DepartmentChangeNotification": DepartmentChangeNotification,
    "DepartmentAnalysisRequest": DepartmentAnalysisRequest,
    "DepartmentAnnouncement": DepartmentAnnouncement,
    "EmergencyCall": EmergencyCall,
}

_MESSAGE_TAG_BY_TYPE: Final[dict[type[BusMessage], str]] = {
    message_class: message_tag for message_tag, message_class in MESSAGE_TYPE_REGISTRY.items()
}


def message_type_tag(message: BaseModel) -> str:
    """Return the registry tag of one message instance.

    Args:
        message: Registered message model instance.

    Returns:
        str: Registry tag.

    Raises:
        ValueError: Raised when the message type is not registered.
    """

    message_tag = _MESSAGE_TAG_BY_TYPE.get(type(message))
    if message_tag is None:
        raise ValueError(f"unregistered message type={type(message).__name__}")
    return message_tag


def message_build_envelope(message: BusMessage, sender: str, recipient: str) -> dict[str, Any]:
    """Wrap one message into a JSON-compatible bus envelope.

    Args:
        message: Registered message model instance.
        sender: Logical name of the sending service.
        recipient: Logical name of the receiving channel.

    Returns:
        dict[str, Any]: Envelope with type tag, routing header and payload.

    Raises:
        ValueError: Raised when sender/recipient are blank or type is unregistered.
    """

    normalized_sender = sender.strip()
    normalized_recipient = recipient.strip()
    if not normalized_sender:
        raise ValueError("sender must not be blank")
    if not normalized_recipient:
        raise ValueError("recipient must not be blank")

    return {
        "message_type": message_type_tag(message),
        "sender": normalized_sender,
        "recipient": normalized_recipient,
        "payload": message.model_dump(mode="json", by_alias=True),
    }


def message_decode_envelope(envelope: Mapping[str, Any]) -> tuple[str, BusMessage]:
    """Decode one bus envelope into its registered message model.

    Args:
        envelope: Raw envelope mapping received from the bus.

    Returns:
        tuple[str, BusMessage]: Type tag and validated message.

    Raises:
        MalformedMessageError: Raised when the envelope or payload is invalid.
    """

    if not isinstance(envelope, Mapping):
        raise MalformedMessageError("envelope must be a mapping")

    message_tag = envelope.get("message_type")
    if not isinstance(message_tag, str) or not message_tag.strip():
        raise MalformedMessageError("envelope is missing message_type")

    message_class = MESSAGE_TYPE_REGISTRY.get(message_tag)
    if message_class is None:
        raise MalformedMessageError(f"unknown message_type={message_tag}", message_type=message_tag)

    payload = envelope.get("payload")
    if not isinstance(payload, Mapping):
        raise MalformedMessageError("envelope payload must be a mapping", message_type=message_tag)

    try:
        return message_tag, message_class.model_validate(dict(payload))
    except ValidationError as error:
        raise MalformedMessageError(
            f"invalid {message_tag} payload: {error.error_count()} validation error(s)",
            message_type=message_tag,
        ) from error
