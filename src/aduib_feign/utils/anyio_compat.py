import atexit
import threading
from collections.abc import Awaitable, Callable
from concurrent import futures
from typing import Any, TypeVar

import anyio
from anyio.from_thread import BlockingPortal

T = TypeVar("T")

_portal_lock = threading.Lock()
_portal: BlockingPortal | None = None
_portal_thread: threading.Thread | None = None


def _serve(ready: "futures.Future[BlockingPortal]") -> None:
    async def main() -> None:
        async with BlockingPortal() as portal:
            ready.set_result(portal)
            await portal.sleep_until_stopped()

    try:
        anyio.run(main)
    except BaseException as exc:
        if not ready.done():
            ready.set_exception(exc)
        raise


def _shared_portal() -> BlockingPortal:
    global _portal, _portal_thread
    with _portal_lock:
        if _portal is None:
            ready: futures.Future[BlockingPortal] = futures.Future()
            _portal_thread = threading.Thread(
                target=_serve, args=(ready,), name="aduib_feign_sync_bridge", daemon=True
            )
            _portal_thread.start()
            _portal = ready.result()
        return _portal


def shutdown() -> None:
    """Stop the shared event loop thread, if it was started."""
    global _portal, _portal_thread
    with _portal_lock:
        portal, thread = _portal, _portal_thread
        _portal, _portal_thread = None, None
    if portal is None or thread is None:
        return
    portal.call(portal.stop)
    thread.join()


def run(func: Callable[..., Awaitable[T]], *args: Any) -> T:
    """Run an async callable to completion from synchronous code.

    Every call runs on one event loop owned by a daemon thread, so pooled
    connections opened by an earlier call stay usable. The calling thread
    blocks for the result, also when it runs an event loop itself.
    """
    return _shared_portal().call(func, *args)


atexit.register(shutdown)
