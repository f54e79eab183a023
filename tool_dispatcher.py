"""
Buffering and dispatch of streamed function calls.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from models import CallState, PendingToolCall
from openai_service import OpenAIService
from response_tracker import ResponseLifecycleTracker
from tools import Tool, ToolContext, ToolError
from utils import safe_parse_arguments

logger = logging.getLogger(__name__)

SendFn = Callable[[Dict[str, Any]], Awaitable[bool]]

ERROR_NARRATION = "Briefly apologize and explain the problem to the caller in plain English."


class ToolDispatcher:
    """
    Accumulates function-call arguments and runs each call exactly once.

    The model may deliver the same call through ``response.output_item.done``
    and again inside ``response.done``; the second delivery is ignored.
    """

    def __init__(
        self,
        state: CallState,
        registry: Dict[str, Tool],
        tracker: ResponseLifecycleTracker,
        send: SendFn,
        context: Optional[ToolContext] = None,
    ):
        self.state = state
        self.registry = registry
        self.tracker = tracker
        self._send = send
        self.context = context or ToolContext()

    def _pending(self, call_id: str) -> PendingToolCall:
        pending = self.state.tool_calls.get(call_id)
        if pending is None:
            pending = self.state.tool_calls[call_id] = PendingToolCall(call_id=call_id)
        return pending

    def on_call_started(self, call_id: str, name: Optional[str]) -> None:
        if call_id in self.state.dispatched_call_ids:
            return
        if name:
            self._pending(call_id).name = name

    def on_argument_fragment(self, call_id: str, text: str) -> None:
        if call_id in self.state.dispatched_call_ids:
            return
        self._pending(call_id).arguments += text

    def on_arguments_done(self, call_id: str, arguments: Optional[str], name: Optional[str] = None) -> None:
        """Arguments delivered whole; kept only if nothing was streamed."""
        if call_id in self.state.dispatched_call_ids:
            return
        pending = self._pending(call_id)
        if name and not pending.name:
            pending.name = name
        if arguments and not pending.arguments:
            pending.arguments = arguments

    async def on_call_complete(
        self,
        call_id: Optional[str],
        name: Optional[str],
        fallback_args: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Run the call, report the result to the model and ask for a narration."""
        if not call_id:
            logger.warning("%s function call without call_id ignored", self.state.log_prefix)
            return None
        if call_id in self.state.dispatched_call_ids:
            logger.debug("%s duplicate completion for %s ignored", self.state.log_prefix, call_id)
            return None
        self.state.dispatched_call_ids.add(call_id)

        pending = self.state.tool_calls.pop(call_id, None)
        buffered = pending.arguments if pending else ""
        name = name or (pending.name if pending else None)
        args_text = buffered or fallback_args or "{}"
        args = safe_parse_arguments(args_text)

        result = await self.execute(name, args)
        logger.info("%s [tool call] %s(%s) => %s", self.state.log_prefix, name, args_text, result.get("status"))

        await self._send(OpenAIService.function_result(call_id, result))

        tool = self.registry.get(name or "")
        if result["status"] == "ok" and tool is not None:
            await self.tracker.request(tool.narration)
        else:
            await self.tracker.request(ERROR_NARRATION)
        return result

    async def execute(self, name: Optional[str], args: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke a tool and wrap the outcome in a status envelope; never raises."""
        tool = self.registry.get(name or "")
        if tool is None:
            return {
                "status": "error",
                "message": f"Unknown tool: {name}",
                "code": "UNKNOWN_TOOL",
            }
        try:
            data = await tool.handler(args, self.context)
        except ToolError as e:
            return {"status": "error", "message": e.message, "code": e.code, "details": e.details}
        except Exception as e:
            logger.exception("%s tool %s raised", self.state.log_prefix, name)
            return {
                "status": "error",
                "message": f"{name} failed",
                "code": "TOOL_EXECUTION_FAILED",
                "details": str(e),
            }
        return {"status": "ok", "data": data}
