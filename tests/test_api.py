from __future__ import annotations

import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from bumpdash.api.auth import BOT_PERMISSIONS, OAUTH_AUTHORIZE
from bumpdash.errors import COOLDOWN_MESSAGE
from bumpdash.main import create_app
from bumpdash.sessions import SessionStore
from tests.conftest import FakeDirectory

USER_GUILDS = [
    {"id": "1", "name": "Owned", "icon": None, "owner": True, "permissions": "0"},
    {"id": "2", "name": "Managed", "icon": "abc", "owner": False, "permissions": str(0x20)},
    {"id": "3", "name": "Member only", "icon": None, "owner": False, "permissions": "1024"},
]


class FakeOAuth:
    def __init__(self) -> None:
        self.token_status = 200
        self.user_body: object = {"id": "42", "username": "alice"}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/oauth2/token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "user-token", "token_type": "Bearer"})
        assert request.headers["Authorization"] == "Bearer user-token"
        if path.endswith("/users/@me"):
            return httpx.Response(200, json=self.user_body)
        if path.endswith("/users/@me/guilds"):
            return httpx.Response(200, json=USER_GUILDS)
        return httpx.Response(404, json={"message": "404: Not Found"})


@pytest.fixture
def oauth() -> FakeOAuth:
    return FakeOAuth()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(
        guild_ids={"1"},
        channels={"1": [{"id": "555", "name": "general"}]},
        bad_channels={"404": "Selected channel is not a text channel."},
    )


@pytest.fixture
def client(service, directory, oauth):
    # the directory doubles as the bot's channel checks
    service.attach_channel_validator(directory)
    app = create_app(service, guilds=directory, http=httpx.AsyncClient(transport=httpx.MockTransport(oauth.handler)))
    with TestClient(app) as c:
        yield c


def _login(client: TestClient) -> None:
    r = client.get("/callback", params={"code": "abc"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/dashboard"


# -------------------------
# Auth
# -------------------------

def test_login_redirects_to_discord(client, settings):
    r = client.get("/login", follow_redirects=False)

    assert r.status_code == 302
    location = r.headers["location"]
    assert location.startswith(OAUTH_AUTHORIZE)
    qs = parse_qs(urlparse(location).query)
    assert qs["client_id"] == [settings.client_id]
    assert qs["response_type"] == ["code"]
    assert qs["scope"] == ["identify guilds"]
    assert qs["redirect_uri"] == [settings.redirect_uri]


def test_callback_without_code_is_400(client):
    r = client.get("/callback", follow_redirects=False)
    assert r.status_code == 400
    assert r.text == "Missing code"


def test_callback_token_failure_is_500(client, oauth):
    oauth.token_status = 401
    r = client.get("/callback", params={"code": "bad"}, follow_redirects=False)
    assert r.status_code == 500
    assert r.text == "OAuth error"


@pytest.mark.parametrize("body", [["not", "a", "user"], {"username": "no-id"}])
def test_callback_with_unusable_user_payload_is_500(client, oauth, body):
    oauth.user_body = body
    r = client.get("/callback", params={"code": "abc"}, follow_redirects=False)
    assert r.status_code == 500
    assert r.text == "OAuth error"


@pytest.mark.parametrize(
    "method, path",
    [("get", "/api/guilds"), ("get", "/api/channels"), ("post", "/api/save"), ("post", "/api/bump"), ("get", "/dashboard")],
)
def test_protected_routes_redirect_to_login(client, method, path):
    kwargs = {"json": {}} if method == "post" else {}
    r = getattr(client, method)(path, follow_redirects=False, **kwargs)
    assert r.status_code == 302
    assert r.headers["location"] == "/login"


def test_logout_drops_the_session(client):
    _login(client)
    assert client.get("/api/guilds", follow_redirects=False).status_code == 200

    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 302

    assert client.get("/api/guilds", follow_redirects=False).status_code == 302


def test_invite_url_targets_the_guild(client, settings):
    _login(client)
    r = client.get("/invite", params={"guild_id": "2"}, follow_redirects=False)

    qs = parse_qs(urlparse(r.headers["location"]).query)
    assert qs["client_id"] == [settings.client_id]
    assert qs["guild_id"] == ["2"]
    assert qs["permissions"] == [str(BOT_PERMISSIONS)]
    assert BOT_PERMISSIONS == 2147552256


def test_pages_render(client):
    assert "Log in with Discord" in client.get("/").text
    _login(client)
    page = client.get("/dashboard")
    assert page.status_code == 200
    assert "alice" in page.text


# -------------------------
# Dashboard API
# -------------------------

def test_guilds_lists_only_manageable_ones(client, service):
    service.store.upsert("1", channel_id="555", interval_minutes=5, message=None, default_interval=120)
    _login(client)

    data = client.get("/api/guilds").json()

    assert [g["id"] for g in data["guilds"]] == ["1", "2"]
    by_id = {g["id"]: g for g in data["guilds"]}
    assert by_id["1"]["hasBot"] is True
    assert by_id["2"]["hasBot"] is False
    assert "guild_id=2" in by_id["2"]["inviteUrl"]
    assert data["config"] == {"1": {"channelId": "555", "intervalMinutes": 5, "message": "Bumped! 🚀"}}


def test_channels(client):
    _login(client)

    assert client.get("/api/channels").status_code == 400
    r = client.get("/api/channels", params={"guild_id": "1"})
    assert r.json() == {"channels": [{"id": "555", "name": "general"}]}


def test_channels_without_bot_is_503(service, oauth):
    app = create_app(service, http=httpx.AsyncClient(transport=httpx.MockTransport(oauth.handler)))
    with TestClient(app) as c:
        _login(c)
        r = c.get("/api/channels", params={"guild_id": "1"})
    assert r.status_code == 503


def test_save_persists_and_schedules(client, service):
    _login(client)

    r = client.post("/api/save", json={"guildId": 1, "channelId": "555", "intervalMinutes": 5})

    assert r.status_code == 200
    assert r.json() == {"ok": True, "config": {"channelId": "555", "intervalMinutes": 5, "message": "Bumped! 🚀"}}
    assert service.scheduler.get("1") is not None
    assert service.scheduler.get("1").interval_s == 300


def test_save_requires_ids(client):
    _login(client)
    r = client.post("/api/save", json={"guildId": "1"})
    assert r.status_code == 400
    assert r.json() == {"error": "guildId and channelId required"}


def test_save_rejects_non_text_channel(client, service):
    _login(client)
    r = client.post("/api/save", json={"guildId": "1", "channelId": "404"})

    assert r.status_code == 400
    assert r.json() == {"error": "Selected channel is not a text channel."}
    assert "1" not in service.store


def test_remove_unschedules(client, service):
    _login(client)
    client.post("/api/save", json={"guildId": "1", "channelId": "555", "intervalMinutes": 5})

    r = client.post("/api/remove", json={"guildId": "1"})

    assert r.json() == {"ok": True}
    assert service.store.get("1") is None
    assert service.scheduler.get("1") is None
    assert client.post("/api/remove", json={}).status_code == 400


def test_bump_uses_the_configured_channel(client, service, discord_api):
    service.store.upsert("1", channel_id="555", interval_minutes=5, message=None, default_interval=120)
    _login(client)

    r = client.post("/api/bump", json={"guildId": "1"})

    assert r.status_code == 200
    assert r.json() == {"ok": True, "message": "Bump command executed successfully!"}
    assert discord_api.interactions[0]["channel_id"] == "555"


def test_bump_requires_guild_and_channel(client):
    _login(client)
    assert client.post("/api/bump", json={}).status_code == 400

    r = client.post("/api/bump", json={"guildId": "1"})
    assert r.status_code == 400
    assert r.json() == {"error": "No channel provided or configured for this guild."}


def test_bump_cooldown_is_reported_as_200(client, discord_api):
    discord_api.interaction_status = 429
    discord_api.interaction_body = {"message": "You are on cooldown...", "retry_after": 30}
    _login(client)

    r = client.post("/api/bump", json={"guildId": "1", "channelId": "555"})

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is False
    assert body["cooldown"] is True
    assert body["error"] == COOLDOWN_MESSAGE
    assert body["embed"]["title"] == "Cooldown Active"


def test_bump_failure_is_500(client, discord_api):
    discord_api.interaction_status = 500
    discord_api.interaction_body = {"message": "Internal Server Error", "code": 0}
    _login(client)

    r = client.post("/api/bump", json={"guildId": "1", "channelId": "555"})

    assert r.status_code == 500
    body = r.json()
    assert body["cooldown"] is False
    assert body["error"] == "Failed to execute bump command. Internal Server Error"
    assert body["embed"]["title"] == "Bump command failed"


def test_health(client, service):
    r = client.get("/health")
    assert r.json() == {"ok": True, "gateway": "ready", "scheduled": 0, "configured": 0}


def test_save_reports_storage_failures_as_500(client, service, tmp_path):
    service.store.path = tmp_path  # a directory: the write fails
    _login(client)

    r = client.post("/api/save", json={"guildId": "1", "channelId": "555", "intervalMinutes": 5})

    assert r.status_code == 500
    assert r.json() == {"error": "Failed to write the configuration file."}
    assert "1" not in service.store
    assert service.scheduler.get("1") is None


def test_expired_session_sends_user_back_to_login(service, directory, oauth):
    skew = {"s": 0.0}
    sessions = SessionStore(max_age_s=3600, clock=lambda: time.time() + skew["s"])
    app = create_app(
        service,
        guilds=directory,
        sessions=sessions,
        http=httpx.AsyncClient(transport=httpx.MockTransport(oauth.handler)),
    )
    with TestClient(app) as c:
        _login(c)
        assert c.get("/api/guilds", follow_redirects=False).status_code == 200

        skew["s"] = 3601
        r = c.get("/api/guilds", follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/login"
    assert len(sessions) == 0


@pytest.mark.parametrize("path, title", [("/terms", "Terms of Service"), ("/privacy", "Privacy Policy")])
def test_legal_pages_are_public(client, path, title):
    r = client.get(path)
    assert r.status_code == 200
    assert title in r.text
    assert "Log in with Discord" in r.text
