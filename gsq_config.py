"""
    Settings for gsq.

    Precedence, lowest first: built-in defaults, the YAML file at $GSQ_CONFIG
    (or ~/.config/gsq.yml), `git config gsq.<key>`, command-line flags.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import attr
import yaml

import gsq_git

log = logging.getLogger("gsq.config")

ENV_CONFIG = "GSQ_CONFIG"
DEFAULT_CONFIG_FILE = Path("~/.config/gsq.yml")
GIT_SECTION = "gsq"


class Error(Exception):
    """Raised for an unreadable or malformed config file."""
    pass


@attr.s
class Settings(object):
    remote = attr.ib(default="gerrit")
    target = attr.ib(default="master")
    scratch_branch = attr.ib(default="gsq-squash")
    url = attr.ib(default=None)
    hook_command = attr.ib(default="gsq")
    log_level = attr.ib(default="WARNING")

    @classmethod
    def keys(cls) -> list[str]:
        return [a.name for a in attr.fields(cls)]


def config_file() -> Path:
    return Path(os.environ.get(ENV_CONFIG) or DEFAULT_CONFIG_FILE).expanduser()


def load_yaml(path: Path) -> dict:
    """Mapping stored in `path`; an absent file is an empty mapping."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise Error(f"cannot parse {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise Error(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def git_key(name: str) -> str:
    """
    >>> git_key("scratch_branch")
    'gsq.scratchbranch'
    """
    return f"{GIT_SECTION}.{name.replace('_', '')}"


def load(path: Optional[Path] = None, use_git: bool = True) -> Settings:
    path = path or config_file()
    values = {}
    for key, value in load_yaml(path).items():
        if key in Settings.keys():
            values[key] = value if value is None else str(value)
        else:
            log.warning("ignoring unknown setting %r in %s", key, path)

    if use_git:
        for key in Settings.keys():
            value = gsq_git.config_get(git_key(key))
            if value is not None:
                values[key] = value

    settings = Settings(**values)
    log.debug("settings: %s", settings)
    return settings
