import asyncio
from typing import Awaitable, Callable, Dict, Optional

class DedupRegistry:
    """
    Run-scoped map from remote image url to its href inside the EPUB.

    Entries are write-once. While a url is being loaded, other callers for the
    same url wait on the in-flight load instead of starting their own.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, url: str) -> Optional[str]:
        return self._entries.get(url)

    async def insert_if_absent(self, url: str, ref: str) -> str:
        async with self._lock:
            return self._entries.setdefault(url, ref)

    async def resolve(self, url: str, loader: Callable[[str], Awaitable[str]]) -> Optional[str]:
        """
        Return the href for url, running loader(url) only if nobody has yet.
        Exceptions from loader propagate to the caller that ran it; callers
        that were waiting on that load get None.
        """
        async with self._lock:
            if url in self._entries:
                return self._entries[url]
            pending = self._pending.get(url)
            if pending is None:
                pending = asyncio.get_running_loop().create_future()
                self._pending[url] = pending
                owner = True
            else:
                owner = False

        if not owner:
            return await asyncio.shield(pending)

        ref = None
        try:
            ref = await loader(url)
            ref = await self.insert_if_absent(url, ref)
            return ref
        finally:
            self._pending.pop(url, None)
            if not pending.done():
                pending.set_result(ref)
