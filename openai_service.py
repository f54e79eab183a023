"""
OpenAI Realtime connection and message builders.
"""
import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import websockets

import config


class OpenAIService:
    """Builds the client messages the bridge sends to the Realtime API."""

    @staticmethod
    def realtime_url(model: Optional[str] = None) -> str:
        return f"{config.OPENAI_REALTIME_URL}?model={quote(model or config.OPENAI_MODEL)}"

    @staticmethod
    def connect(api_key: str, model: Optional[str] = None):
        """
        Open a websocket to the Realtime API.

        Returns the ``websockets`` connect object, usable with ``async with``.
        """
        return websockets.connect(
            OpenAIService.realtime_url(model),
            additional_headers={
                "Authorization": f"Bearer {api_key}",
                "OpenAI-Beta": "realtime=v1",
            },
            max_size=None,
        )

    @staticmethod
    def session_update(tools: List[Dict[str, Any]]) -> Dict[str, Any]:
        """The initial session.update with audio formats, voice, instructions, tools and VAD."""
        return {
            "type": "session.update",
            "session": {
                "model": config.OPENAI_MODEL,
                "modalities": ["audio", "text"],
                "input_audio_format": config.AUDIO_FORMAT,
                "output_audio_format": config.AUDIO_FORMAT,
                "voice": config.VOICE,
                "temperature": config.TEMPERATURE,
                "instructions": config.SYSTEM_MESSAGE,
                "turn_detection": {
                    "type": "server_vad",
                    "threshold": config.VAD_THRESHOLD,
                    "prefix_padding_ms": config.VAD_PREFIX_PADDING_MS,
                    "silence_duration_ms": config.VAD_SILENCE_DURATION_MS,
                    "create_response": True,
                    "interrupt_response": True,
                },
                "tools": tools,
                "tool_choice": "auto",
            },
        }

    @staticmethod
    def audio_format_correction() -> Dict[str, Any]:
        return {
            "type": "session.update",
            "session": {
                "input_audio_format": config.AUDIO_FORMAT,
                "output_audio_format": config.AUDIO_FORMAT,
            },
        }

    @staticmethod
    def initial_conversation_item(text: str = config.GREETING_PROMPT) -> Dict[str, Any]:
        """Synthetic user turn that makes the assistant speak first."""
        return {
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": text}],
            },
        }

    @staticmethod
    def input_audio_append(payload: str) -> Dict[str, Any]:
        return {"type": "input_audio_buffer.append", "audio": payload}

    @staticmethod
    def response_create(instructions: Optional[str] = None) -> Dict[str, Any]:
        message: Dict[str, Any] = {"type": "response.create"}
        if instructions:
            message["response"] = {"instructions": instructions}
        return message

    @staticmethod
    def response_cancel() -> Dict[str, Any]:
        return {"type": "response.cancel"}

    @staticmethod
    def truncate(item_id: str, audio_end_ms: int) -> Dict[str, Any]:
        return {
            "type": "conversation.item.truncate",
            "item_id": item_id,
            "content_index": 0,
            "audio_end_ms": audio_end_ms,
        }

    @staticmethod
    def function_result(call_id: str, result: Any) -> Dict[str, Any]:
        """Function call output item; the Realtime API wants the output as a string."""
        return {
            "type": "conversation.item.create",
            "item": {
                "type": "function_call_output",
                "call_id": call_id,
                "output": json.dumps(result, default=str),
            },
        }
