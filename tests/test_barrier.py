import asyncio

import pytest

from mcauth.barrier import JoinBarrier


@pytest.mark.parametrize(
    "first, second, expected",
    [
        (("a", True), ("b", True), True),
        (("a", True), ("b", False), False),
        (("a", False), ("b", True), False),
        (("a", False), ("b", False), False),
    ],
)
def test_decision_does_not_depend_on_order(first, second, expected):
    decisions = []

    forward = JoinBarrier(decisions.append)
    assert forward.report(*first) is None
    assert forward.report(*second) is expected

    backward = JoinBarrier(decisions.append)
    assert backward.report(*second) is None
    assert backward.report(*first) is expected

    assert decisions == [expected, expected]


def test_no_decision_after_first_failure():
    decisions = []
    barrier = JoinBarrier(decisions.append)

    barrier.report("a", False)

    assert decisions == []
    assert not barrier.decided
    assert barrier.done == 1


def test_same_branch_cannot_report_twice():
    barrier = JoinBarrier()
    barrier.report("a", True)
    with pytest.raises(RuntimeError):
        barrier.report("a", True)
    assert barrier.done == 1


def test_no_third_report():
    decisions = []
    barrier = JoinBarrier(decisions.append)
    barrier.report("a", True)
    barrier.report("b", True)
    with pytest.raises(RuntimeError):
        barrier.report("c", False)
    assert decisions == [True]


@pytest.mark.asyncio
async def test_wait_resolves_on_second_report():
    barrier = JoinBarrier()
    waiter = asyncio.create_task(barrier.wait())

    barrier.report("b", True)
    await asyncio.sleep(0)
    assert not waiter.done()

    barrier.report("a", True)
    assert await waiter is True


@pytest.mark.asyncio
async def test_wait_after_decision_returns_immediately():
    barrier = JoinBarrier()
    barrier.report("a", True)
    barrier.report("b", False)
    assert await barrier.wait() is False
