import pytest

from mcauth.classify import Category, classify, classify_error
from mcauth.errors import UpstreamAuthorizationError


@pytest.mark.parametrize(
    "code, category, needle",
    [
        (2148916233, Category.NO_ENTITLEMENT, "does not have an XBox Live profile"),
        (2148916235, Category.REGION_BLOCKED, "not available in your country"),
        (2148916238, Category.UNDERAGE, "underaged"),
    ],
)
def test_known_codes(code, category, needle):
    got, message = classify({code})
    assert got is category
    assert needle in message


def test_unknown_code_is_listed():
    category, message = classify({999})
    assert category is Category.UNRECOGNIZED
    assert "999" in message


def test_several_unknown_codes_are_all_listed():
    category, message = classify([999, 1234])
    assert category is Category.UNRECOGNIZED
    assert "999" in message and "1234" in message


def test_known_code_wins_over_unknown():
    category, _ = classify({999, 2148916238})
    assert category is Category.UNDERAGE


def test_no_codes_is_generic():
    category, message = classify(set())
    assert category is Category.GENERIC
    assert message == "XBox and/or Mojang authentication steps did not succeed"


def test_classify_error_wraps_codes():
    error = classify_error({2148916235})
    assert isinstance(error, UpstreamAuthorizationError)
    assert error.category is Category.REGION_BLOCKED
    assert error.codes == {2148916235}
    assert error.code == "XSTS-REGION-BLOCKED"
    assert classify_error([]) is None
