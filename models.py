"""
Data models for the call bridge.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set


class ResponseState(str, Enum):
    """Whether the model is currently generating a response."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"


class BargeInState(str, Enum):
    QUIET = "quiet"
    SPEECH_PENDING = "speech_pending"
    INTERRUPTING = "interrupting"


@dataclass
class PlaybackCursor:
    """
    Tracks the utterance currently being streamed to Twilio.

    ``forwarded_ms`` is the audio actually sent for ``item_id``;
    ``started_at`` is the monotonic clock reading of its first frame.
    """
    item_id: Optional[str] = None
    forwarded_ms: float = 0.0
    started_at: Optional[float] = None

    def reset(self) -> None:
        self.item_id = None
        self.forwarded_ms = 0.0
        self.started_at = None

    @property
    def active(self) -> bool:
        return self.item_id is not None


@dataclass
class PendingToolCall:
    """Argument text streamed by the model for one function call."""
    call_id: str
    name: Optional[str] = None
    arguments: str = ""


@dataclass
class CallState:
    """
    Mutable per-call state shared by the bridge components.

    One instance per Twilio media stream; nothing here is shared between calls.
    """
    call_sid: Optional[str] = None
    stream_sid: Optional[str] = None
    session_ready: bool = False
    assistant_started: bool = False

    # response lifecycle
    response_state: ResponseState = ResponseState.IDLE
    pending_instructions: Optional[str] = None
    suppress_output_audio: bool = False

    # barge-in
    barge_in: BargeInState = BargeInState.QUIET
    caller_speaking: bool = False
    playback: PlaybackCursor = field(default_factory=PlaybackCursor)

    # tool calls
    tool_calls: Dict[str, PendingToolCall] = field(default_factory=dict)
    dispatched_call_ids: Set[str] = field(default_factory=set)

    @property
    def response_in_progress(self) -> bool:
        return self.response_state is ResponseState.IN_PROGRESS

    @property
    def log_prefix(self) -> str:
        return f"[{self.call_sid or 'no-call'}]"
