from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum

from .errors import AuthException


class Validity(Enum):
    UNKNOWN = 0
    CERTAIN = 1
    INVALID = 2


class AccountType(Enum):
    MSA = "msa"
    MOJANG = "mojang"  # legacy password-based account, may be eligible for migration


class Stage(IntEnum):
    INITIAL = 0
    USER_AUTH = 1
    XBOX_AUTH = 2
    PROFILE = 3
    MIGRATION_CHECK = 4
    SKIN = 5
    COMPLETE = 6


class RunState(Enum):
    IDLE = "idle"
    WORKING = "working"
    FAILED_SOFT = "failed_soft"
    FAILED_HARD = "failed_hard"
    SUCCEEDED = "succeeded"

    @property
    def terminal(self) -> bool:
        return self not in (RunState.IDLE, RunState.WORKING)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Token:
    """An Xbox/Mojang token plus whatever extra claims came with it."""

    issued_at: datetime
    expires_at: datetime
    value: str
    claims: dict[str, str] = field(default_factory=dict)
    validity: Validity = Validity.UNKNOWN

    @classmethod
    def empty(cls) -> Token:
        epoch = datetime.fromtimestamp(0, timezone.utc)
        return cls(epoch, epoch, "")

    @property
    def uhs(self) -> str | None:
        return self.claims.get("uhs")

    def expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def __bool__(self) -> bool:
        return bool(self.value)

    def __repr__(self) -> str:
        # never leak the token itself into logs
        return (
            f"Token(issued_at={self.issued_at.isoformat()}, "
            f"expires_at={self.expires_at.isoformat()}, "
            f"claims={self.claims!r}, validity={self.validity.name})"
        )


@dataclass
class Skin:
    id: str = ""
    url: str = ""
    variant: str = ""
    data: bytes | None = None


@dataclass
class Cape:
    id: str
    url: str
    alias: str


@dataclass
class Profile:
    id: str = ""
    name: str = ""
    skin: Skin | None = None
    capes: dict[str, Cape] = field(default_factory=dict)
    current_cape: str | None = None
    validity: Validity = Validity.UNKNOWN

    def __bool__(self) -> bool:
        return bool(self.id)


@dataclass
class CredentialBundle:
    """Everything a single authentication run produces.

    Owned by exactly one run; only handed out once the run is over.
    """

    account_type: AccountType = AccountType.MSA
    msa_token: str = ""
    user_token: Token = field(default_factory=Token.empty)
    services_token: Token = field(default_factory=Token.empty)
    xbox_api_token: Token = field(default_factory=Token.empty)
    access_token: Token = field(default_factory=Token.empty)
    profile: Profile = field(default_factory=Profile)
    xbox_profile: bytes = b""
    can_migrate: bool = False
    validity: Validity = Validity.UNKNOWN

    def __repr__(self) -> str:
        return (
            f"CredentialBundle(account_type={self.account_type.name}, "
            f"profile={self.profile.name!r}, validity={self.validity.name})"
        )


@dataclass
class RunResult:
    """Terminal outcome of one run."""

    state: RunState
    bundle: CredentialBundle
    message: str = ""
    error: AuthException | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.SUCCEEDED
