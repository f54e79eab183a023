"""
Configuration and constants for the call bridge.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# =============================
# Server Configuration
# =============================
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Stream URL handed to Twilio in the TwiML response, e.g. wss://example.com/media
PUBLIC_WSS_URL = os.getenv("PUBLIC_WSS_URL", "")

# =============================
# OpenAI Realtime Configuration
# =============================
# Not enforced at import; the media route refuses sessions without it.
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-realtime")
OPENAI_REALTIME_URL = os.getenv("OPENAI_REALTIME_URL", "wss://api.openai.com/v1/realtime")
VOICE = os.getenv("VOICE", "sage")
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.8"))

# g711 mu-law in both directions, as Twilio media streams expect
AUDIO_FORMAT = "g711_ulaw"

# =============================
# Turn Detection / Barge-In
# =============================
BARGE_IN_DEBOUNCE_MS = int(os.getenv("BARGE_IN_DEBOUNCE_MS", "180"))
VAD_THRESHOLD = float(os.getenv("VAD_THRESHOLD", "0.5"))
VAD_PREFIX_PADDING_MS = int(os.getenv("VAD_PREFIX_PADDING_MS", "300"))
VAD_SILENCE_DURATION_MS = int(os.getenv("VAD_SILENCE_DURATION_MS", "500"))

# =============================
# External Service Configuration
# =============================
FRAPPE_BASE_URL = os.getenv("FRAPPE_BASE_URL", "https://app.midwestsolutions.com")
FRAPPE_API_KEY = os.getenv("FRAPPE_API_KEY", "")
FRAPPE_API_SECRET = os.getenv("FRAPPE_API_SECRET", "")
FRAPPE_TIMEOUT_S = float(os.getenv("FRAPPE_TIMEOUT_S", "10"))
FRAPPE_RETRIES = int(os.getenv("FRAPPE_RETRIES", "1"))

# Optional: without these, end_call reports MISSING_TWILIO_CLIENT
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")

# =============================
# Application Constants
# =============================
SYSTEM_MESSAGE = (
    "You are Wendy, a friendly, playful and human-sounding customer service agent.\n"
    "You work at Midwest Solutions Inc, a dedicated solar energy solutions company.\n"
    "Speak in clear, natural American English, or whatever language the caller uses.\n"
    "Keep responses short and conversational, use contractions, and avoid sounding robotic.\n"
    "Start by greeting the caller, introducing yourself, and asking how you can help.\n"
    "Your main job is to provide updates on customers' jobs/projects when they call in:\n"
    "1) Ask for the job ID and use the `get_job_updates` tool.\n"
    "   Every update has `reference_doctype` (stage) and `content` (the actual update).\n"
    "2) You can also provide details for a job/project using `get_job_details`.\n"
    "3) If the caller says goodbye or asks to end the call, say goodbye and use the `end_call` tool.\n"
)

GREETING_PROMPT = (
    "Please greet the caller in clear American English, introduce yourself as Wendy "
    "from Midwest Solutions Inc, and ask how you can help."
)
GREETING_INSTRUCTIONS = "Greet the caller and ask how you can help."

LOG_EVENT_TYPES = [
    "error",
    "session.created",
    "session.updated",
    "response.created",
    "response.done",
    "response.failed",
    "response.cancelled",
    "input_audio_buffer.speech_started",
    "input_audio_buffer.speech_stopped",
    "response.output_item.done",
]
