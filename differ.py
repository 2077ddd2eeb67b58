from __future__ import annotations

from typing import Dict, List


REPORT_BANNER = "Files/directories only at "


def diff_maps(source_map: Dict[str, str], target_map: Dict[str, str], suppress_dirs: bool = False) -> List[str]:
    """Names present in ``source_map`` but not in ``target_map``, sorted."""
    missing = [name for name in sorted(source_map) if name not in target_map]
    if suppress_dirs:
        missing = [name for name in missing if not name.endswith("/")]
    return missing


def format_report(names: List[str], site_name: str) -> str:
    title = f"{REPORT_BANNER}{site_name}:"
    lines = [title, "=" * len(title), ""]
    lines.extend(names)
    return "\n".join(lines) + "\n\n\n"
