from __future__ import annotations

import threading
from typing import IO, List, Optional

from tqdm import tqdm

from walker import SiteWalk


UPDATE_INTERVAL = 0.2


class ProgressView:
    """Live per-root counters while the walks run. Observational only."""

    def __init__(
        self,
        walks: List[SiteWalk],
        interval: float = UPDATE_INTERVAL,
        enabled: bool = True,
        stream: Optional[IO[str]] = None,
    ) -> None:
        self.walks = list(walks)
        self.interval = interval
        self.enabled = enabled
        self.stream = stream
        self._bars: List[tqdm] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if not self.enabled:
            return
        self._bars = [
            tqdm(total=None, position=idx, leave=True, file=self.stream, bar_format="{desc}")
            for idx, _ in enumerate(self.walks)
        ]
        self._refresh()
        self._thread = threading.Thread(target=self._run, name="progress-view", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self._refresh()

    def _refresh(self) -> None:
        for walk, bar in zip(self.walks, self._bars):
            bar.set_description_str(self.status_line(walk), refresh=False)
            bar.refresh()

    @staticmethod
    def status_line(walk: SiteWalk) -> str:
        line = f"{walk.label + ':':<20} {int(walk.elapsed()):>5}s {walk.counter.read():>6} files and directories"
        if walk.done.is_set():
            line += " - DONE!"
        return line

    def stop(self) -> None:
        if not self.enabled:
            return
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
        self._refresh()
        for bar in self._bars:
            bar.close()
        self._bars = []
