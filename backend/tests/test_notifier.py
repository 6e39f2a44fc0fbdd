import json

import httpx
import pytest

from checkin.config import Settings
from checkin.services.notifier import (
    LineNotificationDispatcher,
    NullNotificationDispatcher,
    build_dispatcher,
    notify,
    resolve_contact,
)

MESSAGE = {"type": "flex", "altText": "It's your turn", "contents": {}}


def line_dispatcher(handler) -> LineNotificationDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LineNotificationDispatcher("secret-token", base_url="https://line.test/", client=client)


async def test_push_request():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    assert await line_dispatcher(handler).send("U-1", MESSAGE)

    [request] = captured
    assert str(request.url) == "https://line.test/v2/bot/message/push"
    assert request.headers["Authorization"] == "Bearer secret-token"
    assert json.loads(request.content) == {"to": "U-1", "messages": [MESSAGE]}


async def test_rejected_push_returns_false():
    dispatcher = line_dispatcher(lambda request: httpx.Response(500, text="boom"))
    assert not await dispatcher.send("U-1", MESSAGE)


async def test_transport_error_returns_false():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert not await line_dispatcher(handler).send("U-1", MESSAGE)


def test_build_dispatcher():
    assert isinstance(build_dispatcher(Settings(_env_file=None)), NullNotificationDispatcher)
    line = build_dispatcher(Settings(_env_file=None, line_channel_access_token="abc"))
    assert isinstance(line, LineNotificationDispatcher)
    assert line.access_token == "abc"


async def test_notify_without_contact(notifier):
    assert not await notify(notifier, None, MESSAGE)
    assert notifier.sent == []


async def test_notify_swallows_errors(failing_notifier):
    assert not await notify(failing_notifier, "U-1", MESSAGE)


async def test_null_dispatcher():
    assert not await NullNotificationDispatcher().send("U-1", MESSAGE)


async def test_contact_prefers_registration(session_maker, make_activity, make_registration, make_profile):
    activity = await make_activity()
    direct = await make_registration(activity, line_user_id="U-direct")
    await make_profile(direct.national_id, "U-profile")
    via_profile = await make_registration(activity)
    await make_profile(via_profile.national_id, "U-other")
    unknown = await make_registration(activity)

    async with session_maker() as session:
        assert await resolve_contact(session, direct) == "U-direct"
        assert await resolve_contact(session, via_profile) == "U-other"
        assert await resolve_contact(session, unknown) is None


@pytest.mark.parametrize("token", ["", None])
def test_empty_token_disables_line(token):
    dispatcher = build_dispatcher(Settings(_env_file=None, line_channel_access_token=token))
    assert isinstance(dispatcher, NullNotificationDispatcher)
