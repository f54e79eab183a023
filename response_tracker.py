"""
Response lifecycle tracking with last-request-wins coalescing.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from models import CallState, ResponseState
from openai_service import OpenAIService

logger = logging.getLogger(__name__)

SendFn = Callable[[Dict[str, Any]], Awaitable[bool]]


class ResponseLifecycleTracker:
    """
    Sequences response.create requests so only one response is generated at a time.

    A request made while a response is in progress replaces any earlier pending
    request and is sent once the model reports the response as finished.
    ``flush_blocked`` is consulted at that point; while it returns True the
    pending request is dropped instead.
    """

    def __init__(self, state: CallState, send: SendFn, flush_blocked: Optional[Callable[[], bool]] = None):
        self.state = state
        self._send = send
        self._flush_blocked = flush_blocked or (lambda: False)

    async def request(self, instructions: Optional[str]) -> None:
        if self.state.response_state is ResponseState.IN_PROGRESS:
            if self.state.pending_instructions is not None:
                logger.debug("%s replacing pending response request", self.state.log_prefix)
            self.state.pending_instructions = instructions
            return

        # claimed before the send so a request made during it coalesces
        self.state.response_state = ResponseState.IN_PROGRESS
        if not await self._send(OpenAIService.response_create(instructions)):
            logger.warning("%s response.create not sent; staying idle", self.state.log_prefix)
            self.state.response_state = ResponseState.IDLE

    def on_created(self) -> None:
        self.state.response_state = ResponseState.IN_PROGRESS

    async def on_terminal(self, kind: str) -> None:
        """Handle response.done / response.failed / response.cancelled."""
        self.state.response_state = ResponseState.IDLE
        self.state.suppress_output_audio = False

        pending = self.state.pending_instructions
        self.state.pending_instructions = None
        if pending is None:
            return
        if self._flush_blocked():
            logger.info("%s dropping pending response after %s: caller is talking", self.state.log_prefix, kind)
            return
        await self.request(pending)

    def clear_pending(self) -> None:
        self.state.pending_instructions = None
