"""
FastAPI routes for the Twilio webhook and media stream.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from twilio.twiml.voice_response import VoiceResponse, Connect

import config
from websocket_handler import WebSocketHandler

logger = logging.getLogger(__name__)

MEDIA_STREAM_PATH = "/media"


class Routes:
    """Contains all FastAPI route handlers."""

    def __init__(self, app: FastAPI):
        self.app = app
        self._setup_routes()

    def _setup_routes(self):
        """Setup all route handlers."""
        self.app.get("/", response_class=JSONResponse)(self.index_page)
        self.app.api_route("/twilio", methods=["GET", "POST"])(self.handle_incoming_call)
        self.app.websocket(MEDIA_STREAM_PATH)(WebSocketHandler.handle_media_stream)

    async def index_page(self):
        """Root endpoint returning status information."""
        return {"status": "ok", "message": "Realtime call bridge is running."}

    async def handle_incoming_call(self, request: Request):
        """Answer Twilio's voice webhook with TwiML that opens the media stream."""
        stream_url = config.PUBLIC_WSS_URL
        if not stream_url:
            host = request.headers.get("host") or request.url.hostname
            if not host:
                return PlainTextResponse("Missing PUBLIC_WSS_URL", status_code=500)
            stream_url = f"wss://{host}{MEDIA_STREAM_PATH}"

        response = VoiceResponse()
        connect = Connect()
        connect.stream(url=stream_url)
        response.append(connect)
        logger.info("Using WebSocket URL: %s", stream_url)
        return HTMLResponse(content=str(response), media_type="application/xml")
