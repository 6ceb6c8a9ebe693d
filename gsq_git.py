"""Thin helpers over the git binary.

Everything goes through `_run`; the helpers below only shape arguments and
trim output.
"""
from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

log = logging.getLogger("gsq.git")


class Error(Exception):
    """Base class for all exceptions raised by this module."""
    pass


class GitError(Error):
    """A checked git invocation exited non-zero."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        msg = f"{' '.join(cmd)} exited with {returncode}"
        if self.stderr:
            msg += f": {self.stderr}"
        super().__init__(msg)


def _run(cmd: list[str], **kw) -> subprocess.CompletedProcess:
    kw.setdefault("check", True)
    kw.setdefault("text", True)
    kw.setdefault("capture_output", True)
    check = kw.pop("check")
    log.debug("run: %s", " ".join(cmd))
    proc = subprocess.run(cmd, **kw)
    if proc.returncode != 0:
        log.debug("exit %s: %s", proc.returncode, (proc.stderr or "").strip())
        if check:
            raise GitError(cmd, proc.returncode, proc.stderr)
    return proc


def git(*args: str, **kw) -> subprocess.CompletedProcess:
    return _run(["git", *args], **kw)


def out(*args: str) -> str:
    """Run a checked git command and return its stripped stdout."""
    return (git(*args).stdout or "").strip()


def ok(*args: str) -> bool:
    return git(*args, check=False).returncode == 0


def interactive(*args: str) -> int:
    """Run git attached to the terminal (editor prompts) and return the exit code."""
    cmd = ["git", *args]
    log.debug("run (interactive): %s", " ".join(cmd))
    return subprocess.run(cmd).returncode


# -------------------------
# Queries
# -------------------------

def git_dir() -> Path:
    """Absolute path of the repository's git directory."""
    return Path(out("rev-parse", "--absolute-git-dir"))


def current_branch() -> Optional[str]:
    """Current branch name, or None on a detached HEAD."""
    proc = git("symbolic-ref", "--quiet", "--short", "HEAD", check=False)
    name = (proc.stdout or "").strip()
    return name or None


def is_dirty() -> bool:
    """True if tracked files have staged or unstaged modifications."""
    proc = git("status", "--porcelain", "--untracked-files=no")
    return bool((proc.stdout or "").strip())


def has_staged_changes() -> bool:
    """True if the index differs from HEAD."""
    return git("diff", "--cached", "--quiet", check=False).returncode != 0


def config_get(key: str) -> Optional[str]:
    """Value of `key` from git config (any scope), or None when unset."""
    proc = git("config", "--get", key, check=False)
    value = (proc.stdout or "").strip()
    return value or None


def config_set(key: str, value: str) -> None:
    git("config", key, value)


def remote_url(name: str) -> Optional[str]:
    """URL configured for remote `name`.

    Returns:
        The URL, or None if no such remote exists.
    """
    proc = git("remote", "get-url", name, check=False)
    url = (proc.stdout or "").strip()
    return url or None


def write_tree() -> str:
    return out("write-tree")


def ident(var: str) -> str:
    """`git var GIT_AUTHOR_IDENT` / `GIT_COMMITTER_IDENT`."""
    return out("var", var)


def in_history(ref: str, needle: str) -> bool:
    """Check whether `needle` appears in any commit message reachable from `ref`.

    Args:
        ref: Branch or commit whose history is searched.
        needle: Text matched literally (no regex), e.g. a Change-Id.

    Returns:
        True if at least one commit matches; False otherwise, including when
        `ref` does not exist.
    """
    proc = git("log", ref, "--fixed-strings", f"--grep={needle}", "--format=%H", check=False)
    return bool((proc.stdout or "").strip())


def head_message() -> str:
    return git("log", "-1", "--format=%B").stdout or ""


def project_from_url(url: str) -> str:
    """Basename of a remote URL without a trailing `.git`.

    >>> project_from_url("ssh://host:29418/tools/widget.git")
    'widget'
    """
    base = url.rstrip("/").replace(":", "/").split("/")[-1]
    if base.endswith(".git"):
        base = base[: -len(".git")]
    return base


def make_executable(path: Path) -> None:
    mode = os.stat(path).st_mode
    os.chmod(path, mode | 0o755)
