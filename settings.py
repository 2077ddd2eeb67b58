from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, List, Mapping, Optional


ENV_PREFIX = "SITEDIFF_"
DEFAULT_CONFIG_FILE = "sitediff.env"
DEFAULT_WORKERS = 4


class ConfigError(RuntimeError):
    pass


@dataclass
class Settings:
    site1: str = ""
    site1user: str = ""
    site1pass: str = ""
    site1name: str = "Site 1"
    site2: str = ""
    site2user: str = ""
    site2pass: str = ""
    site2name: str = "Site 2"
    workers: int = DEFAULT_WORKERS
    timeout: float = 0.0
    dry_run: bool = False
    no_dirs: bool = False
    no_progress: bool = False
    sync: bool = False
    debug: bool = False
    config: str = ""

    def describe(self) -> List[str]:
        lines = []
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name.endswith("pass") and value:
                value = "********"
            lines.append(f"{item.name:<12} <{value}>")
        return lines


def read_env_file(path: Path) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().lower()
        if key.startswith(ENV_PREFIX.lower()):
            key = key[len(ENV_PREFIX):]
        if key:
            values[key] = value.strip().strip('"').strip("'")
    return values


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_int(value: Optional[str], default: int, min_value: int, max_value: int) -> int:
    raw = (value or "").strip()
    try:
        num = int(raw)
    except ValueError:
        num = default
    return max(min_value, min(num, max_value))


def _parse_float(value: Optional[str], default: float) -> float:
    raw = (value or "").strip()
    try:
        num = float(raw)
    except ValueError:
        num = default
    return max(0.0, num)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitediff",
        description="Compare the file trees behind two directory-listing sites or local folders, "
        "and optionally copy what only the second one has into the first.",
    )
    parser.add_argument("-c", "--config", help=f"path to an alternate configuration file (default {DEFAULT_CONFIG_FILE})")
    parser.add_argument("-d", "--debug", action="store_true", default=None, help="output debugging info")
    for site in ("site1", "site2"):
        label = site.replace("site", "Site ")
        parser.add_argument(f"--{site}", help=f"{label} URL or local path")
        parser.add_argument(f"--{site}user", help=f"{label} User ID")
        parser.add_argument(f"--{site}pass", help=f"{label} Password")
        parser.add_argument(f"--{site}name", help=f"{label} Name")
    parser.add_argument("--sync", action="store_true", default=None, help="copy entries only at Site 2 into Site 1 (a local folder)")
    parser.add_argument("-w", "--workers", help=f"number of concurrent transfers (default {DEFAULT_WORKERS})")
    parser.add_argument("-t", "--timeout", help="stop transfers after this many hours (0 = no limit)")
    parser.add_argument("-n", "--dry-run", dest="dry_run", action="store_true", default=None, help="show what would be transferred")
    parser.add_argument("--no-dirs", dest="no_dirs", action="store_true", default=None, help="leave directories out of the report")
    parser.add_argument("--no-progress", dest="no_progress", action="store_true", default=None, help="do not render live progress")
    return parser


def load_settings(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve settings: command line > environment > config file > defaults."""
    args = build_parser().parse_args(argv)
    env = os.environ if environ is None else environ

    config_name = args.config or env.get(ENV_PREFIX + "CONFIG") or DEFAULT_CONFIG_FILE
    config_path = Path(config_name).expanduser()
    if args.config and config_path.suffix != ".env" and not config_path.exists():
        config_path = config_path.with_name(config_path.name + ".env")
    file_values: Dict[str, str] = {}
    if config_path.exists():
        file_values = read_env_file(config_path)
    elif args.config:
        raise ConfigError(f"config file not found: {config_path}")

    raw: Dict[str, Optional[str]] = {}
    for item in fields(Settings):
        if item.name == "config":
            continue
        cli_value = getattr(args, item.name, None)
        env_value = env.get(ENV_PREFIX + item.name.upper())
        if cli_value is not None:
            raw[item.name] = str(cli_value)
        elif env_value is not None:
            raw[item.name] = env_value
        else:
            raw[item.name] = file_values.get(item.name)

    defaults = Settings()
    settings = Settings(config=str(config_path) if config_path.exists() else "")
    for item in fields(Settings):
        if item.name == "config":
            continue
        value = raw.get(item.name)
        default = getattr(defaults, item.name)
        if isinstance(default, bool):
            setattr(settings, item.name, _parse_bool(value, default))
        elif isinstance(default, int):
            setattr(settings, item.name, _parse_int(value, default, 1, 256))
        elif isinstance(default, float):
            setattr(settings, item.name, _parse_float(value, default))
        elif value is not None:
            setattr(settings, item.name, value.strip().strip('"'))
    return settings
