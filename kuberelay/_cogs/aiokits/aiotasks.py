"""
Helpers for orchestrating asyncio tasks of the relay sessions.

These utilities only support tasks, not more generic futures or coroutines:
the relay not only waits for its tasks, but also cancels the losing ones.
"""
import asyncio
from typing import TYPE_CHECKING, Any, Collection, Optional, Set, Tuple

from kuberelay._cogs.helpers import typedefs

# A workaround for a difference in tasks at runtime and type-checking time.
# Otherwise, at runtime: TypeError: 'type' object is not subscriptable.
if TYPE_CHECKING:
    Future = asyncio.Future[Any]
    Task = asyncio.Task[Any]
else:
    Future = asyncio.Future
    Task = asyncio.Task


async def wait(
        tasks: Collection[Task],
        *,
        timeout: Optional[float] = None,
        return_when: Any = asyncio.ALL_COMPLETED,
) -> Tuple[Set[Task], Set[Task]]:
    """
    A safer version of :func:`asyncio.wait` -- does not fail on an empty list.
    """
    if not tasks:
        return set(), set()
    done, pending = await asyncio.wait(tasks, timeout=timeout, return_when=return_when)
    return done, pending


async def stop(
        tasks: Collection[Task],
        *,
        title: str,
        quiet: bool = False,
        logger: Optional[typedefs.Logger] = None,
) -> Tuple[Set[Task], Set[Task]]:
    """
    Cancel the tasks and wait for them to finish.

    The already finished tasks are only collected, not cancelled.
    The stopping has no timeouts: it ends either with all the tasks exited,
    or with the stopping routine itself being cancelled (then, the tasks
    remain cancelled but possibly not finished yet).

    In the quiet mode, only the stuck tasks are logged.
    """
    captitle = title.capitalize()

    if not tasks:
        if logger is not None and not quiet:
            logger.debug(f"{captitle} tasks stopping is skipped: no tasks given.")
        return set(), set()

    for task in tasks:
        if not task.done():
            task.cancel()

    try:
        done, pending = await wait(tasks)
    except asyncio.CancelledError:
        pending = {task for task in tasks if not task.done()}
        if logger is not None and (not quiet or pending):
            are = 'are' if not pending else 'are not'
            logger.debug(f"{captitle} tasks {are} stopped: cancelled while stopping; "
                         f"tasks left: {pending!r}")
        raise
    else:
        if logger is not None and (not quiet or pending):
            are = 'are' if not pending else 'are not'
            logger.debug(f"{captitle} tasks {are} stopped; tasks left: {pending!r}")
        return done, pending
