"""Unit tests for the Frappe client, Twilio hang-up service and tool catalog."""
import json
from unittest.mock import MagicMock

import httpx
import pytest
from twilio.base.exceptions import TwilioRestException

from frappe_service import FrappeClient, FrappeError
from tools import ToolContext, ToolError, build_tool_registry, openai_tool_schemas
from twilio_service import CallTerminationError, TwilioCallService


def _frappe(handler, retries: int = 1) -> FrappeClient:
    return FrappeClient(
        base_url="https://erp.example.com/",
        api_key="key",
        api_secret="secret",
        retries=retries,
        transport=httpx.MockTransport(handler),
    )


class TestFrappeClient:

    @pytest.mark.asyncio
    async def test_get_doc_sends_token_auth(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"data": {"name": "JOB 1"}})

        doc = await _frappe(handler).get_doc("Job", "JOB 1")

        assert doc == {"name": "JOB 1"}
        request = seen[0]
        assert request.headers["Authorization"] == "token key:secret"
        assert request.url.raw_path.startswith(b"/api/resource/Job/JOB%201?")
        assert json.loads(request.url.params["fields"]) == ["*"]

    @pytest.mark.asyncio
    async def test_get_list_encodes_filters(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"data": [{"name": "U1"}]})

        rows = await _frappe(handler).get_list(
            "Update", filters=[["job", "=", "J1"]], order_by="modified desc", limit_page_length=50
        )

        assert rows == [{"name": "U1"}]
        params = seen[0].url.params
        assert json.loads(params["filters"]) == [["job", "=", "J1"]]
        assert params["order_by"] == "modified desc"
        assert params["limit_page_length"] == "50"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"data": {"ok": 1}})]

        def handler(request):
            return responses.pop(0)

        assert await _frappe(handler).get_doc("Job", "J") == {"ok": 1}
        assert responses == []

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        def handler(request):
            return httpx.Response(404, text="not found")

        with pytest.raises(FrappeError) as exc:
            await _frappe(handler).get_doc("Job", "missing")
        assert exc.value.status_code == 404


class FakeFrappe:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def get_doc(self, doctype, name, fields=None):
        self.calls.append(("get_doc", doctype, name))
        if self.fail:
            raise FrappeError("HTTP 500", status_code=500)
        return {"name": name}

    async def get_list(self, doctype, **kwargs):
        self.calls.append(("get_list", doctype, kwargs))
        if self.fail:
            raise FrappeError("HTTP 500", status_code=500)
        return [{"content": "Panels installed"}]


class TestToolCatalog:

    def test_schemas_expose_all_tools(self):
        schemas = openai_tool_schemas(build_tool_registry(FakeFrappe()))
        assert [s["name"] for s in schemas] == ["get_job_updates", "get_job_details", "end_call"]
        assert all(s["type"] == "function" for s in schemas)
        assert schemas[0]["parameters"]["required"] == ["job_id"]

    @pytest.mark.asyncio
    async def test_get_job_updates_queries_latest_fifty(self):
        frappe = FakeFrappe()
        registry = build_tool_registry(frappe)

        result = await registry["get_job_updates"].handler({"job_id": "J1"}, ToolContext())

        assert result == [{"content": "Panels installed"}]
        _, doctype, kwargs = frappe.calls[0]
        assert doctype == "Update"
        assert kwargs["filters"] == [["job", "=", "J1"]]
        assert kwargs["limit_page_length"] == 50
        assert kwargs["order_by"] == "modified desc"

    @pytest.mark.asyncio
    async def test_missing_job_id(self):
        registry = build_tool_registry(FakeFrappe())
        with pytest.raises(ToolError) as exc:
            await registry["get_job_details"].handler({}, ToolContext())
        assert exc.value.code == "MISSING_JOB_ID"

    @pytest.mark.asyncio
    async def test_backend_failure_maps_to_tool_code(self):
        registry = build_tool_registry(FakeFrappe(fail=True))
        with pytest.raises(ToolError) as exc:
            await registry["get_job_details"].handler({"job_id": "J1"}, ToolContext())
        assert exc.value.code == "GET_JOB_DETAILS_FAILED"

    @pytest.mark.asyncio
    async def test_end_call_requires_call_sid_and_client(self):
        registry = build_tool_registry(FakeFrappe(), twilio=None)
        with pytest.raises(ToolError) as exc:
            await registry["end_call"].handler({"reason": "bye"}, ToolContext())
        assert exc.value.code == "MISSING_CALL_SID"

        with pytest.raises(ToolError) as exc:
            await registry["end_call"].handler({"reason": "bye"}, ToolContext(call_sid="CA1"))
        assert exc.value.code == "MISSING_TWILIO_CLIENT"

    @pytest.mark.asyncio
    async def test_end_call_completes_call(self):
        client = MagicMock()
        registry = build_tool_registry(FakeFrappe(), twilio=TwilioCallService(client))

        result = await registry["end_call"].handler({"reason": "caller said bye"}, ToolContext(call_sid="CA1"))

        client.calls.assert_called_once_with("CA1")
        client.calls.return_value.update.assert_called_once_with(status="completed")
        assert result == {"status": "ok", "message": "Call ended: caller said bye"}

    @pytest.mark.asyncio
    async def test_end_call_twilio_failure(self):
        client = MagicMock()
        client.calls.return_value.update.side_effect = TwilioRestException(404, "/Calls/CA1", "not found")
        service = TwilioCallService(client)

        with pytest.raises(CallTerminationError):
            await service.end_call("CA1", "bye")

        registry = build_tool_registry(FakeFrappe(), twilio=service)
        with pytest.raises(ToolError) as exc:
            await registry["end_call"].handler({"reason": "bye"}, ToolContext(call_sid="CA1"))
        assert exc.value.code == "END_CALL_FAILED"
