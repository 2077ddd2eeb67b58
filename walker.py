from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple

from listing import ListingEntry


class ListingSource(Protocol):
    def list_children(self, locator: str) -> List[ListingEntry]:
        ...


class WalkFailed(RuntimeError):
    def __init__(self, walk: "SiteWalk") -> None:
        super().__init__(f"{walk.label}: {walk.error}")
        self.walk = walk


class VisitCounter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def incr(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def read(self) -> int:
        with self._lock:
            return self._value


def walk(
    source: ListingSource,
    counter: Optional[VisitCounter] = None,
    site_map: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Build the name -> locator map for every entry below the source root.

    Traversal is depth-first and pre-order: a directory is inserted before
    anything inside it, and its subtree is finished before its next sibling.
    An explicit stack of child iterators replaces recursion so deep trees do
    not hit the interpreter's recursion limit.
    """
    if site_map is None:
        site_map = {}
    if counter is None:
        counter = VisitCounter()

    stack: List[Tuple[str, str, Iterator[ListingEntry]]] = [("", "", iter(source.list_children("")))]
    while stack:
        parent_name, parent_locator, children = stack[-1]
        entry = next(children, None)
        if entry is None:
            stack.pop()
            continue
        name = parent_name + entry.name
        if entry.is_dir and not name.endswith("/"):
            name += "/"
        locator = parent_locator + entry.href

        site_map[name] = locator
        counter.incr()

        if entry.is_dir:
            stack.append((name, locator, iter(source.list_children(locator))))

    return site_map


class SiteWalk:
    """One root's traversal, run on its own thread.

    The map is written only by the walking thread and must not be read until
    ``done`` is set.
    """

    def __init__(
        self,
        label: str,
        root: str,
        source: ListingSource,
        on_done: Optional[Callable[["SiteWalk"], None]] = None,
    ) -> None:
        self.label = label
        self.root = root
        self.source = source
        self.on_done = on_done
        self.counter = VisitCounter()
        self.site_map: Dict[str, str] = {}
        self.done = threading.Event()
        self.error: Optional[BaseException] = None
        self.started_at = 0.0
        self.finished_at = 0.0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self.started_at = time.time()
        self._thread = threading.Thread(target=self._run, name=f"walk-{self.label}", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            walk(self.source, self.counter, self.site_map)
        except Exception as exc:
            self.error = exc
        finally:
            self.finished_at = time.time()
            self.done.set()
            if self.on_done is not None:
                self.on_done(self)

    def elapsed(self) -> float:
        end = self.finished_at if self.done.is_set() else time.time()
        return max(0.0, end - self.started_at) if self.started_at else 0.0

    def result(self) -> Dict[str, str]:
        if not self.done.is_set():
            raise RuntimeError(f"{self.label}: walk still running")
        if self.error is not None:
            raise WalkFailed(self)
        return self.site_map


class WalkGroup:
    """Runs several walks concurrently and waits for all of them.

    The first failure is raised immediately, without waiting for the other
    walks: discovery either succeeds for every root or the comparison is
    abandoned.
    """

    def __init__(self, walks: List[SiteWalk]) -> None:
        self.walks = list(walks)
        self._cond = threading.Condition()
        self._remaining = len(self.walks)
        for item in self.walks:
            item.on_done = self._walk_done

    def _walk_done(self, _walk: SiteWalk) -> None:
        with self._cond:
            self._remaining -= 1
            self._cond.notify_all()

    def start(self) -> None:
        for item in self.walks:
            item.start()

    def wait(self) -> List[Dict[str, str]]:
        with self._cond:
            while True:
                for item in self.walks:
                    if item.done.is_set() and item.error is not None:
                        raise WalkFailed(item)
                if self._remaining <= 0:
                    return [item.site_map for item in self.walks]
                self._cond.wait()
