from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar


T = TypeVar("T")


class AsyncMemo(Generic[T]):
    """
    Compute-once cache for an async function.

    Concurrent callers with the same key share one in-flight future. Results
    are kept after success; a failed computation is dropped so the next call
    starts over. Each waiter is shielded, so cancelling one caller does not
    cancel the shared computation.
    """

    def __init__(
        self,
        func: Callable[..., Awaitable[T]],
        *,
        key: Callable[..., Hashable] | None = None,
    ) -> None:
        self._func = func
        self._key = key
        self._futures: dict[Hashable, asyncio.Future[T]] = {}

    def _make_key(self, args: tuple[Any, ...]) -> Hashable:
        return self._key(*args) if self._key is not None else args

    async def __call__(self, *args: Any) -> T:
        k = self._make_key(args)
        fut = self._futures.get(k)
        if fut is not None and fut.done():
            return fut.result()
        if fut is None or fut.get_loop() is not asyncio.get_running_loop():
            # Pending futures from a closed loop (an earlier asyncio.run) are abandoned.
            fut = asyncio.ensure_future(self._func(*args))
            self._futures[k] = fut
            fut.add_done_callback(lambda f, k=k: self._drop_failed(k, f))
        return await asyncio.shield(fut)

    def _drop_failed(self, k: Hashable, fut: asyncio.Future[T]) -> None:
        if fut.cancelled() or fut.exception() is not None:
            if self._futures.get(k) is fut:
                del self._futures[k]

    def forget(self, *args: Any) -> None:
        self._futures.pop(self._make_key(args), None)

    def clear(self) -> None:
        self._futures.clear()
