from enum import Enum
from typing import Iterable

from .errors import UpstreamAuthorizationError

# XErr values returned by xsts.auth.xboxlive.com on 401
XERR_NO_XBOX_PROFILE = 2148916233
XERR_REGION_BLOCKED = 2148916235
XERR_CHILD_ACCOUNT = 2148916238

GENERIC_FAILURE = "XBox and/or Mojang authentication steps did not succeed"


class Category(Enum):
    NO_ENTITLEMENT = "no_entitlement"
    REGION_BLOCKED = "region_blocked"
    UNDERAGE = "underage"
    UNRECOGNIZED = "unrecognized"
    GENERIC = "generic"


# checked in this order, first hit wins
_KNOWN: list[tuple[int, Category, str]] = [
    (
        XERR_NO_XBOX_PROFILE,
        Category.NO_ENTITLEMENT,
        "This Microsoft account does not have an XBox Live profile. "
        "Buy the game on minecraft.net first "
        "(https://www.minecraft.net/en-us/store/minecraft-java-edition).",
    ),
    (
        XERR_REGION_BLOCKED,
        Category.REGION_BLOCKED,
        "XBox Live is not available in your country. You've been blocked.",
    ),
    (
        XERR_CHILD_ACCOUNT,
        Category.UNDERAGE,
        "This Microsoft account is underaged and is not linked to a family.\n\n"
        "Please set up your account according to "
        "https://help.minecraft.net/hc/en-us/articles/4403181904525",
    ),
]


def classify(codes: Iterable[int]) -> tuple[Category, str]:
    """Pick a category and user-facing message for a set of XErr codes."""
    codes = set(codes)
    if not codes:
        return Category.GENERIC, GENERIC_FAILURE

    for code, category, message in _KNOWN:
        if code in codes:
            return category, message

    listing = "\n".join(str(code) for code in sorted(codes))
    return (
        Category.UNRECOGNIZED,
        f"XSTS authentication ended with unrecognized error(s):\n\n{listing}",
    )


def classify_error(codes: Iterable[int]) -> UpstreamAuthorizationError | None:
    """Same as :func:`classify` but wrapped in an exception; None without codes."""
    codes = set(codes)
    if not codes:
        return None
    category, message = classify(codes)
    return UpstreamAuthorizationError(message, codes, category)
