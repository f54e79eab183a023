"""
Per-call bridge between a Twilio media stream and the OpenAI Realtime API.
"""
import asyncio
import json
import logging
import time
from typing import Any, AsyncContextManager, Callable, Dict, Optional

import websockets
from fastapi.websockets import WebSocketDisconnect
from starlette.websockets import WebSocketState

import config
from barge_in import BargeInController
from events import (
    MalformedEvent,
    RealtimeEvent,
    RealtimeEventType,
    TwilioEvent,
    TwilioEventType,
    decode_realtime_event,
    decode_twilio_event,
)
from models import CallState
from openai_service import OpenAIService
from response_tracker import ResponseLifecycleTracker
from tool_dispatcher import ToolDispatcher
from tools import Tool, ToolContext, openai_tool_schemas

logger = logging.getLogger(__name__)

ModelConnector = Callable[[], AsyncContextManager[Any]]


class CallBridgeSession:
    """
    Owns both sockets for one call and routes events between them.

    Twilio frames are read by one task and Realtime events by another; both run
    on the same event loop, so handlers never mutate ``state`` concurrently.
    All writes go through ``send_to_openai`` / ``send_to_twilio``.
    """

    def __init__(
        self,
        twilio_ws,
        registry: Dict[str, Tool],
        debounce_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.twilio_ws = twilio_ws
        self.openai_ws = None
        self.registry = registry
        self.state = CallState()
        self.tool_context = ToolContext()
        self.tracker = ResponseLifecycleTracker(
            self.state, self.send_to_openai, flush_blocked=self._pending_response_blocked
        )
        self.barge_in = BargeInController(
            self.state,
            self.tracker,
            send_to_openai=self.send_to_openai,
            send_to_twilio=self.send_to_twilio,
            debounce_ms=config.BARGE_IN_DEBOUNCE_MS if debounce_ms is None else debounce_ms,
            clock=clock,
            on_failure=self._on_barge_in_failure,
        )
        self.dispatcher = ToolDispatcher(
            self.state, registry, self.tracker, self.send_to_openai, self.tool_context
        )
        self.dropped_media_frames = 0
        self._model_open = False
        self._closed = False

        self._twilio_handlers = {
            TwilioEventType.CONNECTED: self._ignore_twilio,
            TwilioEventType.START: self._on_start,
            TwilioEventType.MEDIA: self._on_media,
            TwilioEventType.MARK: self._ignore_twilio,
            TwilioEventType.STOP: self._on_stop,
            TwilioEventType.UNKNOWN: self._ignore_twilio,
        }
        self._realtime_handlers = {
            RealtimeEventType.ERROR: self._on_error,
            RealtimeEventType.SESSION_CREATED: self._on_session_created,
            RealtimeEventType.SESSION_UPDATED: self._on_session_updated,
            RealtimeEventType.RESPONSE_CREATED: self._on_response_created,
            RealtimeEventType.AUDIO_DELTA: self._on_audio_delta,
            RealtimeEventType.SPEECH_STARTED: self._on_speech_started,
            RealtimeEventType.SPEECH_STOPPED: self._on_speech_stopped,
            RealtimeEventType.FUNCTION_ARGUMENTS_DELTA: self._on_arguments_delta,
            RealtimeEventType.FUNCTION_ARGUMENTS_DONE: self._on_arguments_done,
            RealtimeEventType.OUTPUT_ITEM_ADDED: self._on_output_item_added,
            RealtimeEventType.OUTPUT_ITEM_DONE: self._on_output_item_done,
            RealtimeEventType.RESPONSE_DONE: self._on_response_done,
            RealtimeEventType.RESPONSE_FAILED: self._on_response_failed,
            RealtimeEventType.RESPONSE_CANCELLED: self._on_response_cancelled,
            RealtimeEventType.UNKNOWN: self._ignore_realtime,
        }
        missing = (set(TwilioEventType) - set(self._twilio_handlers)) | (
            set(RealtimeEventType) - set(self._realtime_handlers)
        )
        if missing:
            raise RuntimeError(f"No handler for event kinds: {sorted(m.value for m in missing)}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def model_open(self) -> bool:
        return self._model_open

    # =============================
    # Socket writes
    # =============================
    async def send_to_openai(self, message: Dict[str, Any]) -> bool:
        if not self._model_open or self.openai_ws is None:
            logger.debug("%s model socket not open; dropping %s", self.state.log_prefix, message.get("type"))
            return False
        await self.openai_ws.send(json.dumps(message))
        return True

    async def send_to_twilio(self, message: Dict[str, Any]) -> bool:
        if self._closed or self.twilio_ws.client_state != WebSocketState.CONNECTED:
            return False
        await self.twilio_ws.send_json(message)
        return True

    # =============================
    # Lifecycle
    # =============================
    async def attach_model(self, openai_ws) -> None:
        """Adopt a freshly opened Realtime socket and configure the session."""
        self.openai_ws = openai_ws
        self._model_open = True
        logger.info("%s OpenAI socket open (model=%s)", self.state.log_prefix, config.OPENAI_MODEL)
        await self.send_to_openai(OpenAIService.session_update(openai_tool_schemas(self.registry)))

    async def close(self, reason: str = "") -> None:
        """Tear down both sockets. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._model_open = False
        logger.info("%s closing bridge: %s", self.state.log_prefix, reason or "unspecified")
        self.barge_in.cancel_timer()

        if self.openai_ws is not None:
            try:
                await self.openai_ws.close()
            except (OSError, websockets.WebSocketException) as e:
                logger.debug("%s error closing OpenAI socket: %s", self.state.log_prefix, e)
        if self.twilio_ws.client_state == WebSocketState.CONNECTED:
            try:
                await self.twilio_ws.close()
            except RuntimeError as e:
                # already closed by the peer
                logger.debug("%s error closing Twilio socket: %s", self.state.log_prefix, e)

    def _pending_response_blocked(self) -> bool:
        return self.barge_in.blocks_pending_response()

    async def _on_barge_in_failure(self, exc: BaseException) -> None:
        await self.close(f"barge-in failed: {exc}")

    async def run(self, connect: ModelConnector) -> None:
        """Bridge until either side hangs up or fails, then close both."""
        twilio_task = asyncio.create_task(self.receive_from_twilio(), name="twilio->openai")
        model_task = asyncio.create_task(self._run_model(connect), name="openai->twilio")
        try:
            await asyncio.wait({twilio_task, model_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self.close("bridge finished")
            for task in (twilio_task, model_task):
                if not task.done():
                    task.cancel()
            for task in (twilio_task, model_task):
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception("%s %s crashed", self.state.log_prefix, task.get_name())

    async def _run_model(self, connect: ModelConnector) -> None:
        try:
            async with connect() as openai_ws:
                if self._closed:
                    return
                await self.attach_model(openai_ws)
                await self.receive_from_openai()
        except (OSError, websockets.WebSocketException) as e:
            logger.error("%s OpenAI connection failed: %s", self.state.log_prefix, e)

    # =============================
    # Twilio -> OpenAI
    # =============================
    async def receive_from_twilio(self) -> None:
        try:
            async for message in self.twilio_ws.iter_text():
                await self.handle_twilio_message(message)
                if self._closed:
                    break
        except WebSocketDisconnect:
            logger.info("%s Twilio WebSocket disconnected", self.state.log_prefix)

    async def handle_twilio_message(self, raw: Any) -> None:
        try:
            event = decode_twilio_event(raw)
        except MalformedEvent:
            logger.warning("%s dropping unparseable Twilio frame", self.state.log_prefix)
            return
        await self._twilio_handlers[event.kind](event)

    async def _on_start(self, event: TwilioEvent) -> None:
        start = event.data.get("start") or {}
        self.state.stream_sid = start.get("streamSid") or event.data.get("streamSid")
        self.state.call_sid = start.get("callSid")
        self.tool_context.stream_sid = self.state.stream_sid
        self.tool_context.call_sid = self.state.call_sid
        logger.info(
            "%s Twilio stream started (streamSid=%s, mediaFormat=%s)",
            self.state.log_prefix,
            self.state.stream_sid,
            start.get("mediaFormat"),
        )

    async def _on_media(self, event: TwilioEvent) -> None:
        payload = (event.data.get("media") or {}).get("payload")
        if not payload:
            return
        if not self._model_open:
            self.dropped_media_frames += 1
            logger.debug("%s model not connected; dropped media frame", self.state.log_prefix)
            return
        await self.send_to_openai(OpenAIService.input_audio_append(payload))

    async def _on_stop(self, event: TwilioEvent) -> None:
        logger.info("%s Twilio stop", self.state.log_prefix)
        await self.close("twilio stop")

    async def _ignore_twilio(self, event: TwilioEvent) -> None:
        pass

    # =============================
    # OpenAI -> Twilio
    # =============================
    async def receive_from_openai(self) -> None:
        try:
            async for raw in self.openai_ws:
                await self.handle_realtime_message(raw)
                if self._closed:
                    break
        except websockets.ConnectionClosed as e:
            logger.info("%s OpenAI WebSocket closed: %s", self.state.log_prefix, e)

    async def handle_realtime_message(self, raw: Any) -> None:
        try:
            event = decode_realtime_event(raw)
        except MalformedEvent:
            logger.warning("%s dropping unparseable OpenAI event", self.state.log_prefix)
            return
        if event.name in config.LOG_EVENT_TYPES:
            logger.info("%s OpenAI event: %s", self.state.log_prefix, event.name)
        await self._realtime_handlers[event.kind](event)

    async def _on_error(self, event: RealtimeEvent) -> None:
        error = event.data.get("error") or {}
        if error.get("code") == "response_cancel_not_active":
            # our cancel raced the server's own VAD interruption
            logger.debug("%s cancel ignored by server: no active response", self.state.log_prefix)
            return
        logger.error("%s OpenAI error event: %s", self.state.log_prefix, error or event.data)

    async def _on_session_created(self, event: RealtimeEvent) -> None:
        logger.info("%s session created (model=%s)", self.state.log_prefix, (event.data.get("session") or {}).get("model"))

    async def _on_session_updated(self, event: RealtimeEvent) -> None:
        session = event.data.get("session") or {}
        output_format = session.get("output_audio_format")
        if output_format and output_format != config.AUDIO_FORMAT:
            logger.warning("%s server chose %s audio; requesting %s", self.state.log_prefix, output_format, config.AUDIO_FORMAT)
            await self.send_to_openai(OpenAIService.audio_format_correction())
            return

        self.state.session_ready = True
        if self.state.assistant_started:
            return
        self.state.assistant_started = True
        await self.send_to_openai(OpenAIService.initial_conversation_item())
        await self.tracker.request(config.GREETING_INSTRUCTIONS)

    async def _on_response_created(self, event: RealtimeEvent) -> None:
        self.tracker.on_created()

    async def _on_audio_delta(self, event: RealtimeEvent) -> None:
        if self.state.suppress_output_audio:
            return
        delta = event.data.get("delta")
        if not delta or not self.state.stream_sid:
            return
        sent = await self.send_to_twilio({
            "event": "media",
            "streamSid": self.state.stream_sid,
            "media": {"payload": delta},
        })
        if sent:
            self.barge_in.on_audio_forwarded(event.data.get("item_id"), delta)

    async def _on_speech_started(self, event: RealtimeEvent) -> None:
        self.barge_in.on_speech_started()

    async def _on_speech_stopped(self, event: RealtimeEvent) -> None:
        self.barge_in.on_speech_stopped()

    async def _on_arguments_delta(self, event: RealtimeEvent) -> None:
        call_id = event.data.get("call_id")
        delta = event.data.get("delta")
        if call_id and delta:
            self.dispatcher.on_argument_fragment(call_id, delta)

    async def _on_arguments_done(self, event: RealtimeEvent) -> None:
        call_id = event.data.get("call_id")
        if call_id:
            self.dispatcher.on_arguments_done(call_id, event.data.get("arguments"), event.data.get("name"))

    async def _on_output_item_added(self, event: RealtimeEvent) -> None:
        item = event.data.get("item") or {}
        if item.get("type") == "function_call" and item.get("call_id"):
            self.dispatcher.on_call_started(item["call_id"], item.get("name"))

    async def _on_output_item_done(self, event: RealtimeEvent) -> None:
        item = event.data.get("item") or {}
        if item.get("type") == "function_call":
            await self.dispatcher.on_call_complete(item.get("call_id"), item.get("name"), item.get("arguments"))

    async def _on_response_done(self, event: RealtimeEvent) -> None:
        response = event.data.get("response") or {}
        await self._finish_response(response.get("status") or "completed")

        # fallback delivery path; already-dispatched calls are skipped
        for item in response.get("output") or []:
            if item.get("type") == "function_call":
                await self.dispatcher.on_call_complete(item.get("call_id"), item.get("name"), item.get("arguments"))

    async def _on_response_failed(self, event: RealtimeEvent) -> None:
        await self._finish_response("failed")

    async def _on_response_cancelled(self, event: RealtimeEvent) -> None:
        await self._finish_response("cancelled")

    async def _finish_response(self, kind: str) -> None:
        await self.tracker.on_terminal(kind)
        self.barge_in.on_response_terminal()

    async def _ignore_realtime(self, event: RealtimeEvent) -> None:
        pass
