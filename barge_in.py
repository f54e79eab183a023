"""
Debounced caller barge-in handling.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from audio_codec import chunk_duration_ms
from models import BargeInState, CallState
from openai_service import OpenAIService
from response_tracker import ResponseLifecycleTracker

logger = logging.getLogger(__name__)

SendFn = Callable[[Dict[str, Any]], Awaitable[bool]]


class BargeInController:
    """
    Interrupts the assistant when the caller keeps talking over it.

    ``speech_started`` while a response is in progress, or while forwarded
    audio is still queued at Twilio, arms a debounce timer. If
    ``speech_stopped`` arrives first the blip is ignored; otherwise Twilio's
    playback queue is cleared, the model's copy of the utterance is truncated
    to what the caller actually heard and, if the model is still generating,
    the response is cancelled.
    """

    def __init__(
        self,
        state: CallState,
        tracker: ResponseLifecycleTracker,
        send_to_openai: SendFn,
        send_to_twilio: SendFn,
        debounce_ms: int,
        clock: Callable[[], float] = time.monotonic,
        on_failure: Optional[Callable[[BaseException], Awaitable[None]]] = None,
    ):
        self.state = state
        self.tracker = tracker
        self._send_to_openai = send_to_openai
        self._send_to_twilio = send_to_twilio
        self.debounce_ms = debounce_ms
        self._clock = clock
        self._on_failure = on_failure
        self._timer: Optional[asyncio.Task] = None

    # ---- playback accounting ----

    def on_audio_forwarded(self, item_id: Optional[str], delta_b64: str) -> None:
        """Record a chunk that was just sent to Twilio."""
        cursor = self.state.playback
        if item_id and item_id != cursor.item_id:
            cursor.reset()
            cursor.item_id = item_id
        if cursor.started_at is None:
            cursor.started_at = self._clock()
        cursor.forwarded_ms += chunk_duration_ms(delta_b64)

    def _elapsed_ms(self) -> float:
        return max(0.0, (self._clock() - self.state.playback.started_at) * 1000.0)

    def truncation_offset_ms(self) -> int:
        """Elapsed playback of the active utterance, never beyond what was forwarded."""
        cursor = self.state.playback
        if cursor.started_at is None:
            return 0
        return int(min(self._elapsed_ms(), cursor.forwarded_ms))

    def audio_mid_flight(self) -> bool:
        """True while forwarded audio has not finished playing at Twilio."""
        cursor = self.state.playback
        if cursor.started_at is None:
            return False
        return self._elapsed_ms() < cursor.forwarded_ms

    # ---- speech events ----

    def on_speech_started(self) -> None:
        self.state.caller_speaking = True
        if self.state.barge_in is not BargeInState.QUIET:
            return
        if not self.state.response_in_progress and not self.audio_mid_flight():
            logger.debug("%s caller speaking into silence", self.state.log_prefix)
            return
        self.state.barge_in = BargeInState.SPEECH_PENDING
        self._timer = asyncio.create_task(self._debounce(), name="barge-in-debounce")

    def on_speech_stopped(self) -> None:
        self.state.caller_speaking = False
        if self.state.barge_in is BargeInState.SPEECH_PENDING:
            logger.debug("%s speech stopped inside debounce window; ignoring", self.state.log_prefix)
            self.cancel_timer()
            self.state.barge_in = BargeInState.QUIET

    def on_response_terminal(self) -> None:
        """A response finished; an interruption in progress is over."""
        if self.state.barge_in is BargeInState.INTERRUPTING:
            self.state.barge_in = BargeInState.QUIET
        # audio already queued at Twilio keeps playing after the response ends
        if not self.audio_mid_flight():
            self.state.playback.reset()

    def blocks_pending_response(self) -> bool:
        return self.state.barge_in is not BargeInState.QUIET or self.state.caller_speaking

    def cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _debounce(self) -> None:
        try:
            await asyncio.sleep(self.debounce_ms / 1000.0)
            self._timer = None
            if self.state.barge_in is not BargeInState.SPEECH_PENDING:
                return
            if not self.state.response_in_progress and not self.audio_mid_flight():
                self.state.barge_in = BargeInState.QUIET
                return
            await self.interrupt()
        except Exception as exc:
            logger.exception("%s barge-in interruption failed", self.state.log_prefix)
            if self._on_failure is not None:
                await self._on_failure(exc)

    async def interrupt(self) -> None:
        state = self.state
        cancel = state.response_in_progress
        offset_ms = self.truncation_offset_ms()
        item_id = state.playback.item_id
        logger.info(
            "%s barge-in: %s (item=%s, heard=%sms)",
            state.log_prefix,
            "cancelling response" if cancel else "clearing queued audio",
            item_id,
            offset_ms,
        )

        # Stop forwarding before the first await so no late delta slips through.
        if cancel:
            state.barge_in = BargeInState.INTERRUPTING
            state.suppress_output_audio = True
        else:
            # no response left to end the interruption
            state.barge_in = BargeInState.QUIET
        self.tracker.clear_pending()
        state.playback.reset()

        if cancel:
            await self._send_to_openai(OpenAIService.response_cancel())
        if state.stream_sid:
            await self._send_to_twilio({"event": "clear", "streamSid": state.stream_sid})
        if item_id and offset_ms > 0:
            await self._send_to_openai(OpenAIService.truncate(item_id, offset_ms))
