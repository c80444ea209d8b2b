import argparse
import asyncio
import json
import logging
import os
import sys

from .config import load_config
from .context import AuthContext, bundle_summary
from .models import AccountType, RunState
from .transport import AiohttpTransport


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="mcauth",
        description="Exchange a Microsoft account token for Minecraft credentials",
    )
    parser.add_argument(
        "token",
        nargs="?",
        default=os.getenv("MSA_TOKEN", ""),
        help="Microsoft account access token (default: $MSA_TOKEN)",
    )
    parser.add_argument(
        "-l",
        "--legacy",
        action="store_true",
        help="Treat the account as a legacy Mojang account (checks migration eligibility)",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: from config, 15)",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to a JSON config file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log more (-v info, -vv debug)",
    )
    return parser.parse_args(argv)


async def _main(args) -> int:
    config = load_config(args.config)
    if args.timeout is not None:
        config.timeout = args.timeout

    account_type = AccountType.MOJANG if args.legacy else AccountType.MSA

    async with AiohttpTransport(config) as transport:
        ctx = AuthContext(transport, account_type, config)
        ctx.on("progress", lambda p: print(f"[{p[0]}/{p[1]}]", end=" ", flush=True))
        ctx.on("status", lambda s: print(s[1]) if s[0] is RunState.WORKING else None)
        result = await ctx.start(args.token)

    if not result.succeeded:
        print(f"Login failed: {result.message}", file=sys.stderr)
        return 1

    print(json.dumps(bundle_summary(result.bundle), indent=2))
    return 0


def main(argv=None):
    args = parse_args(argv)
    if not args.token:
        print("No token given (pass one or set MSA_TOKEN)", file=sys.stderr)
        sys.exit(2)

    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(args.verbose, 2)]
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        sys.exit(asyncio.run(_main(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
