"""
Twilio REST service for hanging up calls.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

import config

logger = logging.getLogger(__name__)


class CallTerminationError(Exception):
    def __init__(self, message: str, code: str = "END_CALL_FAILED"):
        super().__init__(message)
        self.code = code


class TwilioCallService:
    """Ends live calls through the Twilio REST API."""

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_config(cls) -> Optional["TwilioCallService"]:
        """Build the service, or return None when Twilio credentials are not configured."""
        if not (config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN):
            return None
        return cls(Client(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN))

    async def end_call(self, call_sid: str, reason: str) -> Dict[str, Any]:
        # the Twilio helper library is synchronous
        try:
            await asyncio.to_thread(self._complete_call, call_sid)
        except TwilioException as e:
            raise CallTerminationError(f"Twilio refused to end call {call_sid}: {e}") from e
        logger.info("[%s] call ended: %s", call_sid, reason)
        return {"status": "ok", "message": f"Call ended: {reason}"}

    def _complete_call(self, call_sid: str) -> None:
        self.client.calls(call_sid).update(status="completed")
