"""
Runtime configuration: endpoints, timeouts and debug dumping.
"""

import json
import logging
import math
import os
from dataclasses import dataclass, fields
from pathlib import Path

from platformdirs import user_cache_dir, user_config_dir

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(user_config_dir("mcauth")) / "config.json"

XBOX_PROFILE_SETTINGS = (
    "GameDisplayName,AppDisplayName,AppDisplayPicRaw,GameDisplayPicRaw,"
    "PublicGamerpic,ShowUserAsAvatar,Gamerscore,Gamertag,ModernGamertag,ModernGamertagSuffix,"
    "UniqueModernGamertag,AccountTier,TenureLevel,XboxOneRep,"
    "PreferredColor,Location,Bio,Watermarks,"
    "RealName,RealNameOverride,IsQuarantined"
)


@dataclass
class AuthConfig:
    timeout: float = 15.0
    user_agent: str = "mcauth/0.1"
    debug: bool = False
    debug_path: str = user_cache_dir("mcauth")

    # Endpoints
    xbl_user_auth: str = "https://user.auth.xboxlive.com/user/authenticate"
    xsts_authorize: str = "https://xsts.auth.xboxlive.com/xsts/authorize"
    xbox_profile: str = "https://profile.xboxlive.com/users/me/profile/settings"
    mc_login_with_xbox: str = (
        "https://api.minecraftservices.com/authentication/login_with_xbox"
    )
    mc_profile: str = "https://api.minecraftservices.com/minecraft/profile"
    mc_migration: str = "https://api.minecraftservices.com/rollout/v1/msamigration"

    @property
    def xbox_profile_url(self) -> str:
        return f"{self.xbox_profile}?settings={XBOX_PROFILE_SETTINGS}"


def _coerce(value, default):
    # the default's type is the field's type
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise TypeError("expected true or false")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError("expected a number")
        if not math.isfinite(value) or value <= 0:
            raise ValueError("expected a positive number")
        return float(value)
    if not isinstance(value, str):
        raise TypeError("expected a string")
    return value


def load_config(path: str | Path | None = None) -> AuthConfig:
    """Build an :class:`AuthConfig` from a JSON file and the environment.

    A missing or unreadable file just means defaults. Environment variables
    (``MCAUTH_TIMEOUT``, ``AUTH_DEBUG``, ``DEBUG_PATH``) win over the file.
    """
    config_file = Path(path) if path is not None else DEFAULT_CONFIG_FILE
    data = {}
    if config_file.exists():
        try:
            with open(config_file, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", config_file, e)
            data = {}
    if not isinstance(data, dict):
        data = {}

    config = AuthConfig()
    known = {f.name for f in fields(AuthConfig)}
    for key, value in data.items():
        if key not in known:
            continue
        try:
            setattr(config, key, _coerce(value, getattr(config, key)))
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring config value %s=%r: %s", key, value, e)

    if (timeout := os.getenv("MCAUTH_TIMEOUT")) is not None:
        try:
            config.timeout = float(timeout)
        except ValueError:
            logger.warning("MCAUTH_TIMEOUT=%r is not a number; ignoring", timeout)

    # same switch the old auth module used: anything but "0" turns dumps on
    if (debug := os.getenv("AUTH_DEBUG")) is not None:
        config.debug = bool(debug) and debug != "0"

    if debug_path := os.getenv("DEBUG_PATH"):
        config.debug_path = debug_path

    return config
