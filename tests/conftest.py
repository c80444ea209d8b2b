import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import pytest

from mcauth.config import AuthConfig
from mcauth.transport import NetworkError, Reply

CONFIG = AuthConfig()
SKIN_URL = "http://textures.minecraft.net/texture/1a2b3c"
SKIN_BYTES = b"\x89PNG\r\n\x1a\nfake skin"
UHS = "1234567890123456789"


def xbl_body(token: str, uhs: str = UHS, **extra_claims: Any) -> dict:
    return {
        "IssueInstant": "2020-12-07T19:52:08.4463796Z",
        "NotAfter": "2020-12-21T19:52:08.4463796Z",
        "Token": token,
        "DisplayClaims": {"xui": [{"uhs": uhs, **extra_claims}]},
    }


PROFILE_BODY = {
    "id": "069a79f444e94726a5befca90e38aaf5",
    "name": "Notch",
    "skins": [
        {
            "id": "skin-1",
            "state": "ACTIVE",
            "url": SKIN_URL,
            "variant": "CLASSIC",
        }
    ],
    "capes": [
        {
            "id": "cape-1",
            "state": "ACTIVE",
            "url": "http://textures.minecraft.net/texture/cape",
            "alias": "Migrator",
        }
    ],
}


def ok(body: Any = b"") -> Reply:
    if not isinstance(body, bytes):
        body = json.dumps(body).encode()
    return Reply(NetworkError.NONE, body, {})


def fail(kind: NetworkError, body: Any = b"") -> Reply:
    if not isinstance(body, bytes):
        body = json.dumps(body).encode()
    return Reply(kind, body, {})


@dataclass
class Call:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes | None

    @property
    def json(self) -> Any:
        return json.loads(self.body) if self.body else None


@dataclass
class Route:
    method: str
    url: str
    reply: Reply
    match: Callable[[Any], bool] | None = None
    gate: asyncio.Event | None = None
    on_reply: Callable[[], None] | None = None


@dataclass
class ScriptedTransport:
    """In-memory transport: canned replies per route, every request recorded."""

    routes: list[Route] = field(default_factory=list)
    calls: list[Call] = field(default_factory=list)

    def add(
        self,
        method: str,
        url: str,
        reply: Reply,
        *,
        match: Callable[[Any], bool] | None = None,
        gate: asyncio.Event | None = None,
        on_reply: Callable[[], None] | None = None,
    ) -> Route:
        route = Route(method, url, reply, match, gate, on_reply)
        # later routes win so tests can override the happy path
        self.routes.insert(0, route)
        return route

    def called(self, url: str, method: str | None = None) -> list[Call]:
        return [
            c
            for c in self.calls
            if c.url == url and (method is None or c.method == method)
        ]

    async def _handle(self, call: Call) -> Reply:
        self.calls.append(call)
        for route in self.routes:
            if route.method != call.method or route.url != call.url:
                continue
            if route.match is not None and not route.match(call.json):
                continue
            if route.gate is not None:
                await route.gate.wait()
            if route.on_reply is not None:
                route.on_reply()
            return route.reply
        return Reply(NetworkError.OTHER, b"no route", {})

    async def post(self, url: str, headers: Mapping[str, str], body: bytes) -> Reply:
        return await self._handle(Call("POST", url, dict(headers), body))

    async def get(self, url: str, headers: Mapping[str, str]) -> Reply:
        return await self._handle(Call("GET", url, dict(headers), None))


def relying_party(rp: str) -> Callable[[Any], bool]:
    return lambda body: body is not None and body.get("RelyingParty") == rp


MINECRAFT_RP = relying_party("rp://api.minecraftservices.com/")
XBOX_RP = relying_party("http://xboxlive.com")


def script_success(transport: ScriptedTransport) -> ScriptedTransport:
    transport.add("POST", CONFIG.xbl_user_auth, ok(xbl_body("user-token")))
    transport.add(
        "POST", CONFIG.xsts_authorize, ok(xbl_body("mc-xsts")), match=MINECRAFT_RP
    )
    transport.add(
        "POST", CONFIG.xsts_authorize, ok(xbl_body("xbox-xsts")), match=XBOX_RP
    )
    transport.add(
        "POST",
        CONFIG.mc_login_with_xbox,
        ok(
            {
                "username": "some-uuid",
                "roles": [],
                "access_token": "mc-access-token",
                "token_type": "Bearer",
                "expires_in": 86400,
            }
        ),
    )
    transport.add(
        "GET", CONFIG.xbox_profile_url, ok({"profileUsers": [{"id": "2535"}]})
    )
    transport.add("GET", CONFIG.mc_profile, ok(PROFILE_BODY))
    transport.add(
        "GET", CONFIG.mc_migration, ok({"feature": "msamigration", "rollout": True})
    )
    transport.add("GET", SKIN_URL, ok(SKIN_BYTES))
    return transport


@pytest.fixture
def transport() -> ScriptedTransport:
    """A transport where every stage succeeds."""
    return script_success(ScriptedTransport())
