from collections.abc import AsyncIterable, AsyncIterator, Callable

from tqdm import tqdm

ProgressCallback = Callable[[int], None]
"""Receives the cumulative number of bytes consumed so far."""


async def observe_chunks(
    chunks: AsyncIterable[bytes],
    total: int,
    on_progress: ProgressCallback | None = None,
    on_complete: Callable[[], None] | None = None,
) -> AsyncIterator[bytes]:
    """Pass `chunks` through unchanged, reporting progress as each one is consumed.

    The reported count is capped at `total`. `on_complete` fires once: the first time the
    count reaches `total`, or when the source is exhausted if it never does. Like any
    async generator, the result can only be iterated once.
    """
    consumed = 0
    completed = False

    def complete() -> None:
        nonlocal completed
        if not completed:
            completed = True
            if on_complete is not None:
                on_complete()

    async for chunk in chunks:
        consumed = min(consumed + len(chunk), total)
        if on_progress is not None:
            on_progress(consumed)
        if consumed >= total:
            complete()
        yield chunk

    complete()


class ProgressBar:
    """A `tqdm` bar for one file, driven by cumulative byte counts."""

    def __init__(self, name: str, total: int, disable: bool = False) -> None:
        self._bar = tqdm(
            total=total,
            desc=name,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            leave=True,
            disable=disable,
        )

    def update(self, consumed: int) -> None:
        self._bar.update(consumed - self._bar.n)

    def close(self) -> None:
        self._bar.close()
