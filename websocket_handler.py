"""
WebSocket handler for the Twilio media stream.
"""
import logging

from fastapi import WebSocket

import config
from call_bridge import CallBridgeSession
from frappe_service import FrappeClient
from openai_service import OpenAIService
from tools import build_tool_registry
from twilio_service import TwilioCallService

logger = logging.getLogger(__name__)

# 1011: server hit a condition that prevents it from fulfilling the request
MISSING_CREDENTIAL_CLOSE_CODE = 1011


class WebSocketHandler:
    """Handles WebSocket connections for realtime voice communication."""

    @staticmethod
    async def handle_media_stream(websocket: WebSocket):
        """Bridge one Twilio media stream to one OpenAI Realtime session."""
        await websocket.accept()

        api_key = config.OPENAI_API_KEY
        if not api_key:
            logger.error("Refusing media stream: OPENAI_API_KEY is not set")
            await websocket.close(code=MISSING_CREDENTIAL_CLOSE_CODE, reason="Missing OPENAI_API_KEY")
            return

        registry = build_tool_registry(FrappeClient.from_config(), TwilioCallService.from_config())
        session = CallBridgeSession(websocket, registry)
        await session.run(lambda: OpenAIService.connect(api_key))
