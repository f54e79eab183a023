"""Unit tests for boundary event decoding."""
import pytest

from events import (
    MalformedEvent,
    RealtimeEventType,
    TwilioEventType,
    decode_realtime_event,
    decode_twilio_event,
)


class TestEventDecoding:

    @pytest.mark.parametrize("name", ["response.audio.delta", "response.output_audio.delta"])
    def test_audio_delta_aliases(self, name):
        event = decode_realtime_event(f'{{"type": "{name}", "delta": "AAAA"}}')
        assert event.kind is RealtimeEventType.AUDIO_DELTA
        assert event.name == name
        assert event.data["delta"] == "AAAA"

    def test_unrecognized_types_decode_as_unknown(self):
        assert decode_realtime_event('{"type": "rate_limits.updated"}').kind is RealtimeEventType.UNKNOWN
        assert decode_twilio_event('{"event": "dtmf"}').kind is TwilioEventType.UNKNOWN

    def test_twilio_kinds(self):
        assert decode_twilio_event('{"event": "start", "start": {}}').kind is TwilioEventType.START
        assert decode_twilio_event(b'{"event": "stop"}').kind is TwilioEventType.STOP

    @pytest.mark.parametrize("raw", ["", "not json", "[]", "42", b"\xff\xfe"])
    def test_non_object_frames_are_malformed(self, raw):
        with pytest.raises(MalformedEvent):
            decode_twilio_event(raw)
