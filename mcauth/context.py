"""
The authentication state machine.

One :class:`AuthContext` turns a Microsoft account token into a
:class:`~mcauth.models.CredentialBundle`::

    Initial -> UserAuth -> XboxAuth (two branches) -> Profile
            -> MigrationCheck (legacy accounts only) -> Skin -> Complete

After UserAuth the pipeline forks. Branch A gets an XSTS token for
api.minecraftservices.com and trades it for a Minecraft access token; branch B
gets an XSTS token for the generic Xbox API and reads the Xbox profile. Both
must succeed before the Minecraft profile is fetched. MigrationCheck and Skin
are advisory: their failures are logged and otherwise ignored.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Protocol

from .barrier import JoinBarrier
from .classify import GENERIC_FAILURE, classify_error
from .config import AuthConfig
from .errors import (
    AdvisoryFailure,
    AuthException,
    ConcurrentActivity,
    ConsistencyError,
    ProtocolParseError,
    ResourceMissing,
    TransportError,
)
from .events import EventEmitter
from .models import (
    AccountType,
    CredentialBundle,
    Profile,
    RunResult,
    RunState,
    Stage,
    Token,
    Validity,
)
from .parsers import (
    parse_access_token,
    parse_migration_flag,
    parse_profile,
    parse_service_token,
    parse_upstream_error_code,
)
from .transport import NetworkError, Reply, Transport

logger = logging.getLogger(__name__)

MINECRAFT_RELYING_PARTY = "rp://api.minecraftservices.com/"
XBOX_RELYING_PARTY = "http://xboxlive.com"

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}

_NO_PROFILE_MESSAGE = (
    "Account is missing a Minecraft Java profile.\n\n"
    "While the Microsoft account is valid, it does not own the game.\n\n"
    "You might own Bedrock on this account, "
    "but that does not give you access to Java currently."
)


class DeviceFlow(Protocol):
    """The OAuth2 device-code client that produces the Microsoft token."""

    async def authenticate(
        self, on_code: Callable[[str, str], Awaitable[None]]
    ) -> str: ...


class AuthContext(EventEmitter):
    """Runs the Xbox/Minecraft token exchange for one account.

    Events (see :mod:`mcauth.events`):

    - ``progress`` -> ``(stage_index, total_stages)``
    - ``status`` -> ``(RunState, message)``
    - ``show_verification`` -> ``(verification_uri, user_code)``
    - ``hide_verification`` -> ``None``
    - ``finished`` -> :class:`~mcauth.models.RunResult`
    """

    total_stages = int(Stage.COMPLETE)

    def __init__(
        self,
        transport: Transport,
        account_type: AccountType = AccountType.MSA,
        config: AuthConfig | None = None,
    ):
        super().__init__()
        self.transport = transport
        self.account_type = account_type
        self.config = config or AuthConfig()

        self.state = RunState.IDLE
        self.stage = Stage.INITIAL
        self.message = ""
        self.error: AuthException | None = None

        self._bundle = CredentialBundle(account_type=account_type)
        self._sts_errors: set[int] = set()
        self._branch_errors: list[AuthException] = []

    @property
    def busy(self) -> bool:
        return self.state is RunState.WORKING

    @property
    def bundle(self) -> CredentialBundle:
        if self.busy:
            raise RuntimeError("the credential bundle is not readable mid-run")
        return self._bundle

    @property
    def state_message(self) -> str:
        if not self.busy:
            return self.message
        match self.stage:
            case Stage.INITIAL:
                kind = "Microsoft" if self.account_type is AccountType.MSA else "Mojang"
                return f"Logging in as {kind} user"
            case Stage.USER_AUTH:
                return "Logging in as XBox user"
            case Stage.XBOX_AUTH:
                return "Logging in with XBox and Mojang services"
            case Stage.PROFILE:
                return "Getting Minecraft profile"
            case Stage.MIGRATION_CHECK:
                return "Checking for migration eligibility"
            case Stage.SKIN:
                return "Getting Minecraft skin"
            case Stage.COMPLETE:
                return "Finished"
        return self.message

    # ---------- lifecycle ----------

    def _begin(self, msa_token: str = ""):
        if self.busy:
            raise ConcurrentActivity()
        self.state = RunState.WORKING
        self.stage = Stage.INITIAL
        self.message = "Initializing"
        self.error = None
        self._bundle = CredentialBundle(
            account_type=self.account_type, msa_token=msa_token
        )
        self._sts_errors = set()
        self._branch_errors = []

    async def start(self, msa_token: str) -> RunResult:
        """Run the whole pipeline for ``msa_token``.

        Raises :class:`ConcurrentActivity` if a run is already working; every
        other failure ends up in the returned :class:`RunResult`.
        """
        self._begin(msa_token)
        return await self._drive(self._run)

    async def link(self, flow: DeviceFlow) -> RunResult:
        """Get the Microsoft token from ``flow`` first, then run the pipeline."""
        self._begin()

        async def steps():
            try:
                token = await flow.authenticate(self._show_verification)
            except TransportError as e:
                raise _SoftFailure(
                    "Couldn't establish connection to Microsoft authentication server.",
                    e,
                ) from e
            except AuthException as e:
                raise AuthException(
                    "Microsoft user authentication failed.",
                    code="MSA-FAILED",
                    detail=e.message,
                ) from e
            finally:
                await self.emit("hide_verification")
            self._bundle.msa_token = token
            await self._run()

        return await self._drive(steps)

    async def _show_verification(self, uri: str, code: str):
        await self.emit("show_verification", (uri, code))

    async def _drive(self, steps: Callable[[], Awaitable[None]]) -> RunResult:
        try:
            await self._set_state(RunState.WORKING, self.state_message)
            await steps()
        except _SoftFailure as e:
            logger.warning("Authentication failed: %s", e.error)
            await self._finish(RunState.FAILED_SOFT, e.message, e.error)
        except AuthException as e:
            logger.warning("Authentication failed: %s", e)
            await self._finish(RunState.FAILED_HARD, e.message, e)
        except BaseException:
            # release the guard before letting the bug through
            self.state = RunState.FAILED_HARD
            raise
        else:
            await self._finish(RunState.SUCCEEDED, "Finished all authentication steps")

        result = RunResult(self.state, self._bundle, self.message, self.error)
        await self.emit("finished", result)
        return result

    async def _finish(
        self, state: RunState, message: str, error: AuthException | None = None
    ):
        self.error = error
        await self._set_state(state, message)

    async def _set_stage(self, stage: Stage, status: str):
        if stage < self.stage:
            raise RuntimeError(f"stage cannot go back from {self.stage.name} to {stage.name}")
        self.stage = stage
        await self.emit("progress", (int(stage), self.total_stages))
        await self._set_state(RunState.WORKING, status)

    async def _set_state(self, state: RunState, message: str):
        self.state = state
        self.message = message
        await self.emit("status", (state, message))

    # ---------- requests ----------

    async def _post_json(
        self, url: str, payload: dict, headers: Mapping[str, str] | None = None
    ) -> Reply:
        body = json.dumps(payload).encode()
        return await self.transport.post(url, {**_JSON_HEADERS, **(headers or {})}, body)

    async def _get(self, url: str, headers: Mapping[str, str] | None = None) -> Reply:
        return await self.transport.get(url, dict(headers or {}))

    def _bearer(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._bundle.access_token.value}",
        }

    # ---------- stages ----------

    async def _run(self):
        await self._user_auth()
        await self._xbox_auth()
        await self._minecraft_profile()
        if self.account_type is AccountType.MOJANG:
            await self._migration_check()
        await self._skin()
        self._bundle.validity = Validity.CERTAIN
        await self._set_stage(Stage.COMPLETE, "Finished")

    async def _user_auth(self):
        await self._set_stage(Stage.USER_AUTH, "Starting user authentication")
        logger.info("First layer of XBox auth ... commencing.")

        reply = await self._post_json(
            self.config.xbl_user_auth,
            {
                "Properties": {
                    "AuthMethod": "RPS",
                    "SiteName": "user.auth.xboxlive.com",
                    "RpsTicket": f"d={self._bundle.msa_token}",
                },
                "RelyingParty": "http://auth.xboxlive.com",
                "TokenType": "JWT",
            },
        )
        if not reply.ok:
            raise TransportError("XBox user authentication failed.", reply.error)

        try:
            self._bundle.user_token = parse_service_token(reply.data, "UToken")
        except ProtocolParseError as e:
            raise ProtocolParseError(
                "XBox user authentication response could not be understood.",
                detail=e.message,
            ) from e

    async def _xbox_auth(self):
        await self._set_stage(Stage.XBOX_AUTH, "Starting XBox authentication")

        # branches only touch what belongs to this run, even if they outlive it
        bundle = self._bundle
        sts_errors = self._sts_errors
        branch_errors = self._branch_errors

        barrier = JoinBarrier(
            lambda ok: logger.debug("XBox authentication branches done, ok=%s", ok)
        )
        tasks = [
            asyncio.create_task(
                self._branch(
                    barrier,
                    "minecraft",
                    lambda: self._minecraft_branch(bundle, sts_errors),
                    branch_errors,
                )
            ),
            asyncio.create_task(
                self._branch(
                    barrier,
                    "xbox",
                    lambda: self._xbox_branch(bundle, sts_errors),
                    branch_errors,
                )
            ),
        ]

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # a branch aborted the run, or the caller cancelled us
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and (exc := task.exception()) is not None:
                raise exc

        if await barrier.wait():
            return

        if (error := classify_error(sts_errors)) is not None:
            raise error
        detail = "; ".join(str(e) for e in branch_errors) or None
        raise AuthException(GENERIC_FAILURE, code="XBOX-AUTH", detail=detail)

    async def _branch(
        self,
        barrier: JoinBarrier,
        name: str,
        steps: Callable[[], Awaitable[None]],
        errors: list[AuthException],
    ):
        try:
            await steps()
        except ConsistencyError:
            raise
        except AuthException as e:
            logger.warning("XBox auth branch %r failed: %s", name, e)
            errors.append(e)
            barrier.report(name, False)
        else:
            barrier.report(name, True)

    async def _xsts_authorize(
        self,
        bundle: CredentialBundle,
        sts_errors: set[int],
        label: str,
        relying_party: str,
    ) -> Token:
        logger.info("Getting %s XSTS token...", relying_party)
        reply = await self._post_json(
            self.config.xsts_authorize,
            {
                "Properties": {
                    "SandboxId": "RETAIL",
                    "UserTokens": [bundle.user_token.value],
                },
                "RelyingParty": relying_party,
                "TokenType": "JWT",
            },
        )
        if not reply.ok:
            if reply.error is NetworkError.AUTHENTICATION_REQUIRED:
                if (code := parse_upstream_error_code(reply.data)) is not None:
                    sts_errors.add(code)
            raise TransportError(f"{label} authorization failed.", reply.error)

        token = parse_service_token(reply.data, label)
        if token.uhs != bundle.user_token.uhs:
            raise ConsistencyError(
                f"Server has changed user hash in the {label} reply. Aborting."
            )
        return token

    async def _minecraft_branch(self, bundle: CredentialBundle, sts_errors: set[int]):
        token = await self._xsts_authorize(
            bundle, sts_errors, "STSAuthMinecraft", MINECRAFT_RELYING_PARTY
        )
        bundle.services_token = token

        logger.info("Getting Minecraft access token...")
        reply = await self._post_json(
            self.config.mc_login_with_xbox,
            {"identityToken": f"XBL3.0 x={token.uhs};{token.value}"},
        )
        if not reply.ok:
            raise TransportError("Minecraft login_with_xbox failed.", reply.error)
        bundle.access_token = parse_access_token(reply.data)

    async def _xbox_branch(self, bundle: CredentialBundle, sts_errors: set[int]):
        token = await self._xsts_authorize(
            bundle, sts_errors, "STSAuthGeneric", XBOX_RELYING_PARTY
        )
        bundle.xbox_api_token = token

        logger.info("Getting Xbox profile...")
        reply = await self._get(
            self.config.xbox_profile_url,
            {
                **_JSON_HEADERS,
                "x-xbl-contract-version": "3",
                "Authorization": f"XBL3.0 x={bundle.user_token.uhs};{token.value}",
            },
        )
        if not reply.ok:
            raise TransportError("XBox profile request failed.", reply.error)
        # only its success matters
        bundle.xbox_profile = reply.data

    async def _minecraft_profile(self):
        await self._set_stage(Stage.PROFILE, "Starting minecraft profile acquisition")

        reply = await self._get(self.config.mc_profile, self._bearer())
        if reply.error is NetworkError.CONTENT_NOT_FOUND:
            self._bundle.profile = Profile(validity=Validity.INVALID)
            self._bundle.validity = Validity.INVALID
            raise ResourceMissing(_NO_PROFILE_MESSAGE)
        if not reply.ok:
            raise TransportError("Minecraft Java profile acquisition failed.", reply.error)

        try:
            self._bundle.profile = parse_profile(reply.data)
        except ProtocolParseError as e:
            self._bundle.profile = Profile()
            raise ProtocolParseError(
                "Minecraft Java profile response could not be parsed",
                detail=e.message,
            ) from e

    async def _migration_check(self):
        await self._set_stage(
            Stage.MIGRATION_CHECK, "Starting check for migration eligibility"
        )

        reply = await self._get(self.config.mc_migration, self._bearer())
        try:
            if not reply.ok:
                raise AdvisoryFailure(
                    "Migration eligibility check failed.", detail=reply.error.name
                )
            self._bundle.can_migrate = parse_migration_flag(reply.data)
        except AuthException as e:
            logger.warning("Ignoring migration check failure: %s", e)

    async def _skin(self):
        await self._set_stage(Stage.SKIN, "Fetching player skin")

        skin = self._bundle.profile.skin
        if skin is None or not skin.url:
            logger.info("Profile has no active skin, nothing to fetch")
            return

        reply = await self._get(skin.url)
        if reply.ok:
            skin.data = reply.data
        else:
            logger.warning(
                "Ignoring skin download failure: %s",
                AdvisoryFailure("Skin download failed.", detail=reply.error.name),
            )


class _SoftFailure(AuthException):
    """Ends the run as FAILED_SOFT while keeping the underlying error."""

    def __init__(self, message: str, error: AuthException):
        super().__init__(message, code=error.code, detail=error.detail)
        self.error = error


def bundle_summary(bundle: CredentialBundle) -> dict[str, Any]:
    """A log/CLI friendly view of a bundle without any token values."""
    profile = bundle.profile
    return {
        "name": profile.name,
        "id": profile.id,
        "validity": bundle.validity.name,
        "skin": profile.skin.url if profile.skin else None,
        "skin_bytes": len(profile.skin.data or b"") if profile.skin else 0,
        "capes": sorted(profile.capes),
        "current_cape": profile.current_cape,
        "can_migrate": bundle.can_migrate,
        "access_token_expires": bundle.access_token.expires_at.isoformat(),
    }
