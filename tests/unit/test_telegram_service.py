import json

import httpx
import pytest

from applybot.services.errors import BotConnectionError, TelegramAuthError
from applybot.services.telegram_service import TelegramService


def _service(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramService("123:abc", base_url="https://api.test", client=client)


@pytest.mark.asyncio
async def test_get_me_returns_result():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"username": "apply_bot"}})

    svc = _service(handler)
    assert await svc.get_me() == {"username": "apply_bot"}
    assert str(requests[0].url) == "https://api.test/bot123:abc/getMe"
    await svc.close()


@pytest.mark.asyncio
async def test_get_updates_sends_offset_and_timeout():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": [{"update_id": 5}]})

    svc = _service(handler)
    assert await svc.get_updates(offset=5, timeout=30) == [{"update_id": 5}]
    assert bodies[0]["offset"] == 5
    assert bodies[0]["timeout"] == 30
    assert bodies[0]["allowed_updates"] == ["message"]
    await svc.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 404])
async def test_rejected_token_raises_auth_error(status_code):
    svc = _service(lambda request: httpx.Response(status_code, json={"ok": False}))
    with pytest.raises(TelegramAuthError):
        await svc.get_me()
    await svc.close()


@pytest.mark.asyncio
async def test_api_error_raises_connection_error():
    svc = _service(
        lambda request: httpx.Response(409, json={"ok": False, "error_code": 409, "description": "Conflict"})
    )
    with pytest.raises(BotConnectionError, match="Conflict"):
        await svc.get_updates(0, 1)
    await svc.close()


@pytest.mark.asyncio
async def test_network_failure_raises_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    svc = _service(handler)
    with pytest.raises(BotConnectionError):
        await svc.get_me()
    await svc.close()


@pytest.mark.asyncio
async def test_non_json_response_raises_connection_error():
    svc = _service(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))
    with pytest.raises(BotConnectionError):
        await svc.send_message(1, "hi")
    await svc.close()
