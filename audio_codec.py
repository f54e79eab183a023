"""
Duration estimates for base64 audio chunks, used for playback accounting.
"""
from typing import Optional

# g711 mu-law: 8 kHz, one byte per sample
ULAW_SAMPLE_RATE = 8000
ULAW_BYTES_PER_SAMPLE = 1


def decoded_length(b64: Optional[str]) -> int:
    """Number of bytes a base64 string decodes to, without decoding it."""
    if not b64:
        return 0
    text = b64.strip()
    if not text:
        return 0
    padding = len(text) - len(text.rstrip("="))
    return max(0, (len(text) * 3) // 4 - padding)


def chunk_duration_ms(
    b64: Optional[str],
    sample_rate: int = ULAW_SAMPLE_RATE,
    bytes_per_sample: int = ULAW_BYTES_PER_SAMPLE,
) -> float:
    """Playback duration of a base64 audio chunk in milliseconds."""
    if sample_rate <= 0 or bytes_per_sample <= 0:
        raise ValueError("sample_rate and bytes_per_sample must be positive")
    samples = decoded_length(b64) / bytes_per_sample
    return samples * 1000.0 / sample_rate
