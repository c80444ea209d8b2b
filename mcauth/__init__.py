from .barrier import JoinBarrier
from .classify import Category, classify
from .config import AuthConfig, load_config
from .context import AuthContext, DeviceFlow
from .errors import (
    AdvisoryFailure,
    AuthException,
    ConcurrentActivity,
    ConsistencyError,
    ProtocolParseError,
    ResourceMissing,
    TransportError,
    UpstreamAuthorizationError,
)
from .events import subscribe
from .models import (
    AccountType,
    Cape,
    CredentialBundle,
    Profile,
    RunResult,
    RunState,
    Skin,
    Stage,
    Token,
    Validity,
)
from .transport import AiohttpTransport, NetworkError, Reply, Transport

__all__ = [
    "AccountType",
    "AdvisoryFailure",
    "AiohttpTransport",
    "AuthConfig",
    "AuthContext",
    "AuthException",
    "Cape",
    "Category",
    "ConcurrentActivity",
    "ConsistencyError",
    "CredentialBundle",
    "DeviceFlow",
    "JoinBarrier",
    "NetworkError",
    "Profile",
    "ProtocolParseError",
    "Reply",
    "ResourceMissing",
    "RunResult",
    "RunState",
    "Skin",
    "Stage",
    "Token",
    "Transport",
    "TransportError",
    "UpstreamAuthorizationError",
    "Validity",
    "classify",
    "load_config",
    "login",
    "subscribe",
]


async def login(
    msa_token: str,
    account_type: AccountType = AccountType.MSA,
    config: AuthConfig | None = None,
) -> CredentialBundle:
    """Run the whole pipeline once and return the bundle.

    Raises the run's error instead of returning a failed result.
    """
    config = config or load_config()
    async with AiohttpTransport(config) as transport:
        result = await AuthContext(transport, account_type, config).start(msa_token)

    if not result.succeeded:
        raise result.error or AuthException(result.message)
    return result.bundle
