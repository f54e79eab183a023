"""
Utility functions for the call bridge.
"""
import json
from typing import Dict, Any, Union


def normalize_event_to_dict(event: Any) -> Dict[str, Any]:
    """Convert various event formats to a dictionary."""
    if isinstance(event, dict):
        return event
    if isinstance(event, (str, bytes, bytearray)):
        try:
            parsed = json.loads(event if isinstance(event, str) else event.decode())
        except (ValueError, UnicodeDecodeError):
            return {"type": "unknown", "raw": repr(event)}
        if isinstance(parsed, dict):
            return parsed
        return {"type": "unknown", "raw": repr(event)}

    model_dump = getattr(event, "model_dump", None)
    if callable(model_dump):
        return model_dump()

    return {"type": "unknown", "raw": repr(event)}


def safe_parse_arguments(args: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Safely parse function call arguments; anything unusable becomes {}."""
    if args is None:
        return {}
    if isinstance(args, dict):
        return args
    if isinstance(args, (str, bytes, bytearray)):
        try:
            parsed = json.loads(args if isinstance(args, str) else args.decode())
        except (ValueError, UnicodeDecodeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}

