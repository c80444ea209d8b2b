"""
Strict parsers for every JSON payload the pipeline consumes.

Each parser either returns a fully populated value or raises
:class:`ProtocolParseError`. Nothing is silently defaulted except the
skip-incomplete-entry behaviour for skins and capes.
"""

import json
import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from .errors import ProtocolParseError
from .models import Cape, Profile, Skin, Token, Validity, utcnow

logger = logging.getLogger(__name__)

# Xbox sends up to 7 fractional digits, datetime only keeps 6
_ISO_FRACTION = re.compile(r"(\.\d{6})\d+")


def _load(body: bytes | str | dict, what: str) -> dict[str, Any]:
    if isinstance(body, dict):
        return body
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolParseError(
            f"{what} response is not valid JSON", detail=str(e)
        ) from e
    if not isinstance(data, dict):
        raise ProtocolParseError(f"{what} response is not a JSON object")
    return data


def _string(obj: dict, key: str) -> str | None:
    value = obj.get(key)
    return value if isinstance(value, str) else None


def _number(obj: dict, key: str) -> int | float | None:
    value = obj.get(key)
    # bool is an int subclass; JSON true is not a number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _timestamp(obj: dict, key: str) -> datetime | None:
    value = _string(obj, key)
    if value is None:
        return None
    value = _ISO_FRACTION.sub(r"\1", value)
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_service_token(body: bytes | str | dict, label: str) -> Token:
    """Parse a user.auth / XSTS token response.

    ::

        {
            "IssueInstant": "2020-12-07T19:52:08.4463796Z",
            "NotAfter": "2020-12-21T19:52:08.4463796Z",
            "Token": "token",
            "DisplayClaims": {"xui": [{"uhs": "userhash"}]}
        }
    """
    logger.debug("Parsing %s", label)
    data = _load(body, label)

    issued_at = _timestamp(data, "IssueInstant")
    if issued_at is None:
        raise ProtocolParseError(f"{label} IssueInstant is not a timestamp")
    expires_at = _timestamp(data, "NotAfter")
    if expires_at is None:
        raise ProtocolParseError(f"{label} NotAfter is not a timestamp")
    if expires_at <= issued_at:
        raise ProtocolParseError(f"{label} expires before it was issued")
    value = _string(data, "Token")
    if value is None:
        raise ProtocolParseError(f"{label} Token is not a string")

    display_claims = data.get("DisplayClaims")
    xui = display_claims.get("xui") if isinstance(display_claims, dict) else None
    if not isinstance(xui, list):
        raise ProtocolParseError(f"{label} is missing the xui claims array")

    claims: dict[str, str] | None = None
    for item in xui:
        if not isinstance(item, dict) or "uhs" not in item:
            continue
        # take every claim of the first entry carrying a user hash
        claims = {}
        for key, claim in item.items():
            if not isinstance(claim, str):
                raise ProtocolParseError(
                    f"{label} display claim {key!r} is not a string"
                )
            claims[key] = claim
        break

    if claims is None:
        raise ProtocolParseError(f"{label} is missing uhs")

    logger.debug("%s is valid.", label)
    return Token(issued_at, expires_at, value, claims, Validity.CERTAIN)


def parse_access_token(body: bytes | str | dict, now: datetime | None = None) -> Token:
    """Parse the login_with_xbox response into a bearer token."""
    data = _load(body, "login_with_xbox")

    expires_in = _number(data, "expires_in")
    if expires_in is None:
        raise ProtocolParseError("expires_in is not a valid number")
    if isinstance(expires_in, float) and not math.isfinite(expires_in):
        raise ProtocolParseError(f"expires_in is not finite: {expires_in}")
    if expires_in <= 0:
        raise ProtocolParseError(f"expires_in must be positive, got {expires_in}")
    if _string(data, "username") is None:
        raise ProtocolParseError("username is not valid")
    access_token = _string(data, "access_token")
    if access_token is None:
        raise ProtocolParseError("access_token is not valid")

    issued_at = now or utcnow()
    try:
        expires_at = issued_at + timedelta(seconds=expires_in)
    except (OverflowError, ValueError) as e:
        raise ProtocolParseError(
            f"expires_in is out of range: {expires_in}", detail=str(e)
        ) from e
    return Token(issued_at, expires_at, access_token, validity=Validity.CERTAIN)


def _active_skin(entries: Any) -> Skin | None:
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if not isinstance(entry, dict) or _string(entry, "state") != "ACTIVE":
            continue
        skin_id = _string(entry, "id")
        url = _string(entry, "url")
        variant = _string(entry, "variant")
        if skin_id is None or url is None or variant is None:
            continue
        # we deal with only the active skin
        return Skin(skin_id, url, variant)
    return None


def _capes(entries: Any) -> tuple[dict[str, Cape], str | None]:
    capes: dict[str, Cape] = {}
    current = None
    if not isinstance(entries, list):
        return capes, current
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        cape_id = _string(entry, "id")
        state = _string(entry, "state")
        if cape_id is None or state is None:
            continue
        # an active cape counts even when it is too incomplete to be stored
        if state == "ACTIVE":
            current = cape_id
        url = _string(entry, "url")
        alias = _string(entry, "alias")
        if url is None or alias is None:
            continue
        capes[cape_id] = Cape(cape_id, url, alias)
    return capes, current


def parse_profile(body: bytes | str | dict) -> Profile:
    logger.debug("Parsing Minecraft profile...")
    data = _load(body, "Minecraft profile")

    profile_id = _string(data, "id")
    if profile_id is None:
        raise ProtocolParseError("Minecraft profile id is not a string")
    name = _string(data, "name")
    if name is None:
        raise ProtocolParseError("Minecraft profile name is not a string")

    capes, current_cape = _capes(data.get("capes"))
    return Profile(
        id=profile_id,
        name=name,
        skin=_active_skin(data.get("skins")),
        capes=capes,
        current_cape=current_cape,
        validity=Validity.CERTAIN,
    )


def parse_migration_flag(body: bytes | str | dict) -> bool:
    data = _load(body, "msamigration rollout")

    feature = _string(data, "feature")
    if feature is None:
        raise ProtocolParseError("Rollout feature is not a string")
    if feature != "msamigration":
        raise ProtocolParseError(
            f"Rollout feature is {feature!r}, expected 'msamigration'"
        )
    rollout = data.get("rollout")
    if not isinstance(rollout, bool):
        raise ProtocolParseError("Rollout flag is not a boolean")
    return rollout


def parse_upstream_error_code(body: bytes | str | dict) -> int | None:
    """Pull ``XErr`` out of an XSTS 401 body, if there is one.

    ::

        {
            "Identity": "0",
            "XErr": 2148916238,
            "Message": "",
            "Redirect": "https://start.ui.xboxlive.com/AddChildToFamily"
        }
    """
    try:
        data = _load(body, "XSTS error")
    except ProtocolParseError as e:
        logger.warning("Cannot parse error XSTS response: %s", e.message)
        return None
    xerr = _number(data, "XErr")
    if xerr is None:
        logger.warning("XErr is not a number")
        return None
    return int(xerr)
