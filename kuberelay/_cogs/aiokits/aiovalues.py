import asyncio
from typing import Generic, TypeVar

_T = TypeVar('_T')


class Outcome(Generic[_T]):
    """
    A single-slot cell where the first reported result wins.

    Several concurrent tasks can report their results at any time and in any
    order, even after the outcome is already decided: the later results are
    silently discarded, and only the first one is kept and awaited.

    Unlike :class:`asyncio.Future`, repeated settings do not raise
    :class:`asyncio.InvalidStateError`, so the reporters need no coordination.
    """

    def __init__(self) -> None:
        super().__init__()
        self._decided = asyncio.Event()
        self._value: _T

    def __repr__(self) -> str:
        clsname = self.__class__.__name__
        if self._decided.is_set():
            return f'<{clsname}: {self._value!r}>'
        else:
            return f'<{clsname}: undecided>'

    def done(self) -> bool:
        return self._decided.is_set()

    def set(self, value: _T) -> bool:
        """ Report a result; return ``True`` only if it is the first one. """
        if self._decided.is_set():
            return False
        self._value = value
        self._decided.set()
        return True

    def get_nowait(self) -> _T:  # used mostly in testing
        if not self._decided.is_set():
            raise LookupError("The outcome is not decided yet.")
        return self._value

    async def wait(self) -> _T:
        await self._decided.wait()
        return self._value
