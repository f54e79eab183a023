"""
Event kinds for the two sockets, decoded once at the boundary.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from utils import normalize_event_to_dict


class TwilioEventType(str, Enum):
    CONNECTED = "connected"
    START = "start"
    MEDIA = "media"
    MARK = "mark"
    STOP = "stop"
    UNKNOWN = "unknown"


class RealtimeEventType(str, Enum):
    ERROR = "error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    RESPONSE_CREATED = "response.created"
    AUDIO_DELTA = "response.audio.delta"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    FUNCTION_ARGUMENTS_DELTA = "response.function_call_arguments.delta"
    FUNCTION_ARGUMENTS_DONE = "response.function_call_arguments.done"
    OUTPUT_ITEM_ADDED = "response.output_item.added"
    OUTPUT_ITEM_DONE = "response.output_item.done"
    RESPONSE_DONE = "response.done"
    RESPONSE_FAILED = "response.failed"
    RESPONSE_CANCELLED = "response.cancelled"
    UNKNOWN = "unknown"


# Wire names that share a kind with a canonical member.
_REALTIME_ALIASES = {
    "response.output_audio.delta": RealtimeEventType.AUDIO_DELTA,
    "output_audio_buffer.delta": RealtimeEventType.AUDIO_DELTA,
}

_TWILIO_BY_NAME = {member.value: member for member in TwilioEventType}
_REALTIME_BY_NAME = {member.value: member for member in RealtimeEventType}
_REALTIME_BY_NAME.update(_REALTIME_ALIASES)


class MalformedEvent(ValueError):
    """Raised when a frame is not a JSON object."""


@dataclass
class TwilioEvent:
    kind: TwilioEventType
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RealtimeEvent:
    kind: RealtimeEventType
    name: str
    data: Dict[str, Any] = field(default_factory=dict)


def _decode_object(raw: Any) -> Dict[str, Any]:
    data = normalize_event_to_dict(raw)
    if data.get("type") == "unknown" and "raw" in data:
        raise MalformedEvent(data["raw"])
    return data


def decode_twilio_event(raw: Any) -> TwilioEvent:
    data = _decode_object(raw)
    kind = _TWILIO_BY_NAME.get(str(data.get("event")), TwilioEventType.UNKNOWN)
    return TwilioEvent(kind=kind, data=data)


def decode_realtime_event(raw: Any) -> RealtimeEvent:
    data = _decode_object(raw)
    name = str(data.get("type"))
    kind = _REALTIME_BY_NAME.get(name, RealtimeEventType.UNKNOWN)
    return RealtimeEvent(kind=kind, name=name, data=data)
