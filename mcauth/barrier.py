import asyncio
from typing import Callable, Hashable


class JoinBarrier:
    """Waits for exactly two branch outcomes, then decides once.

    Each branch calls :meth:`report` a single time. Nothing is decided on the
    first report, whatever it says; the second one fires ``on_decision`` (if
    given) and resolves :meth:`wait` with True only when both succeeded.
    """

    expected = 2

    def __init__(self, on_decision: Callable[[bool], None] | None = None):
        self.outcomes: dict[Hashable, bool] = {}
        self.done = 0
        self.decided = False
        self._on_decision = on_decision
        self._future: asyncio.Future[bool] | None = None

    @property
    def succeeded(self) -> bool:
        return len(self.outcomes) == self.expected and all(self.outcomes.values())

    def report(self, branch: Hashable, success: bool) -> bool | None:
        """Record one branch outcome; returns the decision once there is one."""
        if branch in self.outcomes:
            raise RuntimeError(f"branch {branch!r} already reported")
        if self.done >= self.expected:
            raise RuntimeError("barrier already has all of its outcomes")

        self.outcomes[branch] = success
        self.done += 1

        if self.done != self.expected:
            return None
        return self._decide()

    def _decide(self) -> bool:
        if self.decided:
            return self.succeeded
        self.decided = True

        result = self.succeeded
        if self._future is not None and not self._future.done():
            self._future.set_result(result)
        if self._on_decision is not None:
            self._on_decision(result)
        return result

    async def wait(self) -> bool:
        if self.decided:
            return self.succeeded
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return await self._future
