from __future__ import annotations

import os
import queue
import shutil
import stat
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import requests

from listing import build_session, is_network_root, with_trailing_slash


TEMP_SUFFIX = ".sitediff-part"
FILE_MODE = 0o644
CHUNK_SIZE = 64 * 1024
DOWNLOAD_RETRIES = 3
RETRY_DELAY = 0.6


class NotWritableError(RuntimeError):
    pass


class TransferError(RuntimeError):
    pass


@dataclass
class TransferJob:
    name: str
    locator: str


@dataclass
class TransferResult:
    planned: int = 0
    linked: int = 0
    copied: int = 0
    downloaded: int = 0
    skipped: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, outcome: str) -> None:
        with self._lock:
            setattr(self, outcome, getattr(self, outcome) + 1)

    def fail(self, name: str, error: BaseException) -> None:
        with self._lock:
            self.failures.append((name, str(error)))

    @property
    def transferred(self) -> int:
        return self.linked + self.copied + self.downloaded

    @property
    def failed(self) -> int:
        return len(self.failures)


def is_writable(path: str) -> bool:
    try:
        info = os.stat(path)
    except OSError:
        return False
    if not stat.S_ISDIR(info.st_mode):
        return False
    if not info.st_mode & stat.S_IWUSR:
        return False
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return os.access(path, os.W_OK)
    return info.st_uid == geteuid()


def jobs_from_diff(names: List[str], source_map: Dict[str, str]) -> List[TransferJob]:
    return [TransferJob(name=name, locator=source_map.get(name, name)) for name in names]


class Reconciler:
    """Copies missing entries from the remote (reference) root into the local root.

    Jobs are pre-loaded into a bounded queue and drained by a fixed pool of
    worker threads. A worker that hits a transfer error stops pulling jobs;
    the remaining workers carry on. The optional timeout ends the whole
    process without waiting for transfers in flight.
    """

    def __init__(
        self,
        local_root: str,
        remote_root: str,
        workers: int = 4,
        dry_run: bool = False,
        timeout_hours: float = 0.0,
        user: str = "",
        password: str = "",
        session: Optional[requests.Session] = None,
        exit_func: Callable[[int], None] = os._exit,
        on_event: Optional[Callable[[Dict[str, object]], None]] = None,
    ) -> None:
        self.remote_is_network = is_network_root(remote_root)
        if not self.remote_is_network:
            remote_root = os.path.expanduser(remote_root)
        self.local_root = with_trailing_slash(os.path.expanduser(local_root))
        self.remote_root = with_trailing_slash(remote_root)
        self.workers = max(1, int(workers))
        self.dry_run = dry_run
        self.timeout_hours = max(0.0, float(timeout_hours or 0.0))
        self.session = session
        if self.session is None and self.remote_is_network and not dry_run:
            self.session = build_session(user, password)
        self.request_timeout = (10, 120)
        self.exit_func = exit_func
        self.on_event = on_event
        self.result = TransferResult()
        self._queue: "queue.Queue[TransferJob]" = queue.Queue()
        self._finished = threading.Event()

    def run(self, jobs: List[TransferJob]) -> TransferResult:
        if not is_writable(self.local_root):
            raise NotWritableError(f"local root is not a writable directory: {self.local_root}")

        self._queue = queue.Queue(maxsize=max(1, len(jobs)))
        for job in jobs:
            self._queue.put_nowait(job)

        watcher: Optional[threading.Thread] = None
        if self.timeout_hours > 0:
            watcher = threading.Thread(target=self._watch, args=(self.timeout_hours * 3600,), name="reconcile-timeout", daemon=True)
            watcher.start()

        threads = [
            threading.Thread(target=self._worker, args=(idx,), name=f"reconcile-{idx}", daemon=True)
            for idx in range(1, self.workers + 1)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self._finished.set()
        if watcher is not None:
            watcher.join()
        return self.result

    def _watch(self, seconds: float) -> None:
        if self._finished.wait(seconds):
            return
        self._emit(stage="timeout", message=f"Timeout of {self.timeout_hours:g} hours reached, stopping now")
        sys.stdout.flush()
        sys.stderr.flush()
        self.exit_func(0)

    def _worker(self, index: int) -> None:
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                self.process(job)
            except (TransferError, OSError) as exc:
                self.result.fail(job.name, exc)
                self._emit(stage="error", message=f"worker {index} stopping: {exc}", name=job.name)
                return
            finally:
                self._queue.task_done()

    def process(self, job: TransferJob) -> str:
        if job.name.endswith("/") or job.name.endswith(TEMP_SUFFIX):
            self.result.add("skipped")
            return "skipped"

        if self.dry_run:
            self.result.add("planned")
            self._emit(stage="plan", message="would transfer", name=job.name)
            return "planned"

        if self.remote_is_network:
            outcome = self.download(job)
        else:
            outcome = self.link_or_copy(job)
        self.result.add(outcome)
        self._emit(stage="transfer", message=outcome, name=job.name)
        return outcome

    def local_path(self, name: str) -> str:
        root = os.path.normpath(self.local_root)
        path = os.path.normpath(self.local_root + name)
        if path == root or os.path.commonpath([root, path]) != root:
            raise TransferError(f"refusing to write outside {root}: {name}")
        return path

    def download(self, job: TransferJob) -> str:
        url = self.remote_root + job.locator
        final_path = self.local_path(job.name)
        temp_path = final_path + TEMP_SUFFIX
        os.makedirs(os.path.dirname(final_path), exist_ok=True)

        for attempt in range(DOWNLOAD_RETRIES + 1):
            try:
                self._fetch_into(url, temp_path)
                break
            except requests.RequestException as exc:
                if attempt < DOWNLOAD_RETRIES:
                    time.sleep(RETRY_DELAY * (2 ** attempt))
                    continue
                raise TransferError(f"download failed for {url}: {exc}") from exc

        self._finalize(temp_path, final_path)
        return "downloaded"

    def _fetch_into(self, url: str, temp_path: str) -> None:
        offset = os.path.getsize(temp_path) if os.path.exists(temp_path) else 0
        headers = {"Range": f"bytes={offset}-"} if offset else {}
        response = self.session.get(url, headers=headers, stream=True, timeout=self.request_timeout)
        try:
            # the partial file already holds the whole body
            if offset and response.status_code == 416:
                return
            response.raise_for_status()
            mode = "ab" if offset and response.status_code == 206 else "wb"
            with open(temp_path, mode) as handle:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
        finally:
            response.close()

    def link_or_copy(self, job: TransferJob) -> str:
        source_path = os.path.normpath(self.remote_root + job.locator)
        final_path = self.local_path(job.name)
        os.makedirs(os.path.dirname(final_path), exist_ok=True)

        try:
            os.link(source_path, final_path)
            return "linked"
        except OSError as exc:
            self._emit(stage="debug", message=f"link failed ({exc.strerror}), copying", name=job.name)

        temp_path = final_path + TEMP_SUFFIX
        shutil.copyfile(source_path, temp_path)
        self._finalize(temp_path, final_path)
        return "copied"

    def _finalize(self, temp_path: str, final_path: str) -> None:
        os.replace(temp_path, final_path)
        os.chmod(final_path, FILE_MODE)

    def _emit(self, **payload: object) -> None:
        if self.on_event is None:
            return
        self.on_event(payload)
