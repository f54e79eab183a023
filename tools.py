"""
Tools the realtime model can call during a conversation.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from frappe_service import FrappeClient, FrappeError
from twilio_service import CallTerminationError, TwilioCallService

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """A tool failure the assistant can explain to the caller."""

    def __init__(self, message: str, code: str = "TOOL_EXECUTION_FAILED", details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


@dataclass
class ToolContext:
    """Call details a tool may need; filled in from the Twilio start event."""
    call_sid: Optional[str] = None
    stream_sid: Optional[str] = None


ToolHandler = Callable[[Dict[str, Any], ToolContext], Awaitable[Any]]


@dataclass
class Tool:
    name: str
    description: str
    handler: ToolHandler
    parameters: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    # response.create instructions used to narrate a successful result
    narration: str = "Tell the caller the result in plain English."

    def to_openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


def _job_id_parameters(purpose: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "job_id": {
                "type": "string",
                "description": f"Job ID provided by the caller to look up their {purpose}.",
            },
        },
        "required": ["job_id"],
    }


def _require_job_id(args: Dict[str, Any]) -> str:
    job_id = str(args.get("job_id") or "").strip()
    if not job_id:
        raise ToolError("Missing job_id", code="MISSING_JOB_ID")
    return job_id


def build_tool_registry(
    frappe: FrappeClient,
    twilio: Optional[TwilioCallService] = None,
) -> Dict[str, Tool]:
    """The fixed set of tools offered to the model, keyed by name."""

    async def get_job_details(args: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        job_id = _require_job_id(args)
        try:
            return await frappe.get_doc("Job", job_id, ["*"])
        except FrappeError as e:
            raise ToolError(
                f"Failed to retrieve job details for job_id: {job_id}",
                code="GET_JOB_DETAILS_FAILED",
                details=str(e),
            ) from e

    async def get_job_updates(args: Dict[str, Any], context: ToolContext) -> List[Dict[str, Any]]:
        job_id = _require_job_id(args)
        try:
            updates = await frappe.get_list(
                "Update",
                filters=[["job", "=", job_id]],
                fields=["*"],
                order_by="modified desc",
                limit_page_length=50,
            )
        except FrappeError as e:
            raise ToolError(
                f"Failed to retrieve job updates for job_id: {job_id}",
                code="GET_JOB_UPDATES_FAILED",
                details=str(e),
            ) from e
        logger.info("Retrieved %d updates for job_id: %s", len(updates), job_id)
        return updates

    async def end_call(args: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        reason = str(args.get("reason") or "caller requested")
        if not context.call_sid:
            raise ToolError("Missing callSid", code="MISSING_CALL_SID")
        if twilio is None:
            raise ToolError("Missing Twilio client", code="MISSING_TWILIO_CLIENT")
        try:
            return await twilio.end_call(context.call_sid, reason)
        except CallTerminationError as e:
            raise ToolError(str(e), code=e.code) from e

    tools = [
        Tool(
            name="get_job_updates",
            description="Look up the updates for a customer's job/project based on the job ID provided by the caller.",
            parameters=_job_id_parameters("job updates"),
            handler=get_job_updates,
            narration="Tell the caller the job updates in plain English.",
        ),
        Tool(
            name="get_job_details",
            description="Look up the details for a customer's job/project based on the job ID provided by the caller.",
            parameters=_job_id_parameters("job details"),
            handler=get_job_details,
            narration="Tell the caller the job details in plain English.",
        ),
        Tool(
            name="end_call",
            description="Say goodbye and hang up the call when the caller requests to end the call.",
            parameters={
                "type": "object",
                "properties": {
                    "reason": {"type": "string", "description": "Brief reason for ending the call."},
                },
                "required": ["reason"],
            },
            handler=end_call,
            narration="Say goodbye briefly.",
        ),
    ]
    return {tool.name: tool for tool in tools}


def openai_tool_schemas(registry: Dict[str, Tool]) -> List[Dict[str, Any]]:
    return [tool.to_openai_schema() for tool in registry.values()]
