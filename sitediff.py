from __future__ import annotations

import os
import sys
import time
from typing import Dict, List, Optional

from differ import diff_maps, format_report
from listing import InvalidRootError, is_network_root, source_for, validate_url
from progress_view import ProgressView
from reconciler import NotWritableError, Reconciler, jobs_from_diff
from settings import ConfigError, Settings, load_settings
from walker import SiteWalk, WalkFailed, WalkGroup


def _error(message: str) -> None:
    print(f"ERROR: {message}", file=sys.stderr)


def check_root(root: str) -> None:
    if is_network_root(root):
        validate_url(root)
        return
    path = os.path.expanduser(root)
    if not root or not os.path.isdir(path):
        raise InvalidRootError(f"not a URL or an existing directory: <{root}>")
    if not os.access(path, os.R_OK | os.X_OK):
        raise InvalidRootError(f"directory is not readable: <{root}>")


def discover(settings: Settings) -> List[Dict[str, str]]:
    def _warn(message: str) -> None:
        print(f"WARNING: {message}", file=sys.stderr)

    walks = [
        SiteWalk(settings.site1name, settings.site1, source_for(settings.site1, settings.site1user, settings.site1pass, on_warning=_warn)),
        SiteWalk(settings.site2name, settings.site2, source_for(settings.site2, settings.site2user, settings.site2pass, on_warning=_warn)),
    ]
    group = WalkGroup(walks)
    view = ProgressView(walks, enabled=not settings.no_progress)

    group.start()
    view.start()
    try:
        return group.wait()
    finally:
        view.stop()


def reconcile(settings: Settings, site1_map: Dict[str, str], site2_map: Dict[str, str]) -> int:
    if is_network_root(settings.site1):
        _error(f"{settings.site1name} must be a local folder to receive files: <{settings.site1}>")
        return 1

    def _report(payload: Dict[str, object]) -> None:
        stage = payload.get("stage")
        if stage == "debug" and not settings.debug:
            return
        name = payload.get("name", "")
        if stage == "error":
            print(f"ERROR: {name}: {payload.get('message')}", file=sys.stderr)
        elif stage == "timeout":
            print(str(payload.get("message")))
        else:
            print(f"{payload.get('message')}: {name}")

    names = diff_maps(site2_map, site1_map, suppress_dirs=True)
    manager = Reconciler(
        settings.site1,
        settings.site2,
        workers=settings.workers,
        dry_run=settings.dry_run,
        timeout_hours=settings.timeout,
        user=settings.site2user,
        password=settings.site2pass,
        on_event=_report,
    )
    started = time.time()
    try:
        result = manager.run(jobs_from_diff(names, site2_map))
    except NotWritableError as exc:
        _error(str(exc))
        return 1

    if settings.dry_run:
        print(f"\nDry run: {result.planned} files would be transferred.")
    else:
        print(
            f"\nTransferred {result.transferred} files "
            f"({result.linked} linked, {result.copied} copied, {result.downloaded} downloaded), "
            f"{result.failed} failed in {round(time.time() - started, 2)}s."
        )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = load_settings(argv)
    except ConfigError as exc:
        _error(str(exc))
        return 1

    if settings.debug:
        for line in settings.describe():
            print(f"DEBUG: {line}")

    if settings.site1 == settings.site2:
        print("Both sites are the same:")
        print(f"    Site 1: {settings.site1}")
        print(f"    Site 2: {settings.site2}\n")
        print("Nothing to compare...")
        return 1

    for root in (settings.site1, settings.site2):
        try:
            check_root(root)
        except InvalidRootError as exc:
            _error(f"invalid site <{root}>: {exc}")
            return 1

    print("")
    print(f"{settings.site1name + ':':<20} {settings.site1}")
    print(f"{settings.site2name + ':':<20} {settings.site2}")
    print("\nConnecting to servers...\n")

    try:
        site1_map, site2_map = discover(settings)
    except WalkFailed as exc:
        _error(f"discovery aborted at {exc}")
        return 1

    print("\n")
    print(format_report(diff_maps(site1_map, site2_map, settings.no_dirs), settings.site1name), end="")
    print(format_report(diff_maps(site2_map, site1_map, settings.no_dirs), settings.site2name), end="")

    if settings.sync:
        return reconcile(settings, site1_map, site2_map)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
