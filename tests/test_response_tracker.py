"""Unit tests for response sequencing and coalescing."""
import pytest

from models import CallState, ResponseState
from response_tracker import ResponseLifecycleTracker


class Recorder:
    def __init__(self):
        self.sent = []

    async def __call__(self, message):
        self.sent.append(message)
        return True


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def tracker(recorder):
    return ResponseLifecycleTracker(CallState(), recorder)


class TestResponseLifecycleTracker:

    @pytest.mark.asyncio
    async def test_request_while_idle_sends_immediately(self, tracker, recorder):
        await tracker.request("Say hi.")

        assert recorder.sent == [{"type": "response.create", "response": {"instructions": "Say hi."}}]
        assert tracker.state.response_state is ResponseState.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_requests_while_busy_coalesce_to_last(self, tracker, recorder):
        await tracker.request("first")
        for i in range(5):
            await tracker.request(f"queued {i}")

        assert len(recorder.sent) == 1
        assert tracker.state.pending_instructions == "queued 4"

        await tracker.on_terminal("completed")

        assert len(recorder.sent) == 2
        assert recorder.sent[-1]["response"]["instructions"] == "queued 4"
        assert tracker.state.pending_instructions is None
        assert tracker.state.response_state is ResponseState.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_terminal_without_pending_goes_idle(self, tracker, recorder):
        await tracker.request("first")
        tracker.state.suppress_output_audio = True

        await tracker.on_terminal("cancelled")

        assert tracker.state.response_state is ResponseState.IDLE
        assert tracker.state.suppress_output_audio is False
        assert len(recorder.sent) == 1

    @pytest.mark.asyncio
    async def test_pending_dropped_when_flush_blocked(self, recorder):
        tracker = ResponseLifecycleTracker(CallState(), recorder, flush_blocked=lambda: True)
        await tracker.request("first")
        await tracker.request("second")

        await tracker.on_terminal("failed")

        assert len(recorder.sent) == 1
        assert tracker.state.pending_instructions is None
        assert tracker.state.response_state is ResponseState.IDLE

    @pytest.mark.asyncio
    async def test_on_created_marks_in_progress(self, tracker, recorder):
        tracker.on_created()
        await tracker.request("later")

        assert recorder.sent == []
        assert tracker.state.pending_instructions == "later"

    @pytest.mark.asyncio
    async def test_dropped_send_leaves_tracker_idle(self):
        sent = []

        async def closed_socket(message):
            sent.append(message)
            return False

        tracker = ResponseLifecycleTracker(CallState(), closed_socket)
        await tracker.request("Say hi.")

        assert len(sent) == 1
        assert tracker.state.response_state is ResponseState.IDLE

        await tracker.request("Say hi again.")

        assert len(sent) == 2
        assert tracker.state.pending_instructions is None
