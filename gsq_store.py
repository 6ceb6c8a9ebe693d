"""
    Bookkeeping kept under <git-dir>/gsq/

    current_branch      branch being submitted (hand-off to the commit hook)
    current_target      target branch of that submission
    changeid_<key>      Change-Id minted for a branch
    msg_<key>           last commit message pushed for a branch

    <key> is the branch name with slashes replaced.
"""
from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import Optional

import attr

log = logging.getLogger("gsq.store")

STORE_DIRNAME = "gsq"
CURRENT_BRANCH = "current_branch"
CURRENT_TARGET = "current_target"
CHANGEID_PREFIX = "changeid_"
MSG_PREFIX = "msg_"
ENCODING = "utf-8"

SQUASH_HEADER = "Squashed commit of the following:"
_CHANGE_ID_LINE = re.compile(r"^\s*Change-Id:", re.IGNORECASE)
_LOG_HEADER_LINE = re.compile(r"^(commit [0-9a-f]{7,64}|Author: |Date: |Merge: )")


def branch_key(branch: str) -> str:
    """
    >>> branch_key("feature/login/form")
    'feature_login_form'
    """
    return branch.replace("/", "_")


@attr.s
class ChangeRecord(object):
    """
    What the store knows about one branch.
    """

    branch = attr.ib()
    change_id = attr.ib(default=None)
    message = attr.ib(default=None)

    @property
    def subject(self) -> Optional[str]:
        if not self.message:
            return None
        for line in self.message.splitlines():
            if line.strip():
                return line.strip()
        return None


@attr.s
class Store(object):
    """
    Flat-file bookkeeping for one repository.
    """

    root = attr.ib(converter=Path)

    @classmethod
    def for_git_dir(cls, git_dir) -> "Store":
        return cls(Path(git_dir) / STORE_DIRNAME)

    def _path(self, name: str) -> Path:
        return self.root / name

    def _read(self, name: str) -> Optional[str]:
        p = self._path(name)
        if not p.exists():
            return None
        return p.read_text(encoding=ENCODING)

    def _write(self, name: str, text: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(name).write_text(text, encoding=ENCODING)

    # hand-off between `submit` and the commit hook

    def set_current(self, branch: str, target: str) -> None:
        self._write(CURRENT_BRANCH, branch + "\n")
        self._write(CURRENT_TARGET, target + "\n")

    def current_branch(self) -> Optional[str]:
        value = (self._read(CURRENT_BRANCH) or "").strip()
        return value or None

    def current_target(self) -> Optional[str]:
        value = (self._read(CURRENT_TARGET) or "").strip()
        return value or None

    # per-branch records

    def change_id(self, branch: str) -> Optional[str]:
        value = (self._read(CHANGEID_PREFIX + branch_key(branch)) or "").strip()
        return value or None

    def set_change_id(self, branch: str, change_id: str) -> None:
        self._write(CHANGEID_PREFIX + branch_key(branch), change_id + "\n")

    def invalidate_change_id(self, branch: str) -> None:
        """Blank the record; the next hook run mints a fresh id."""
        log.info("discarding Change-Id for %s", branch)
        self._write(CHANGEID_PREFIX + branch_key(branch), "")

    def message(self, branch: str) -> Optional[str]:
        text = self._read(MSG_PREFIX + branch_key(branch))
        return text if text and text.strip() else None

    def set_message(self, branch: str, text: str) -> None:
        self._write(MSG_PREFIX + branch_key(branch), text)

    def record(self, branch: str) -> ChangeRecord:
        return ChangeRecord(branch, self.change_id(branch), self.message(branch))

    def clear(self, branch: str) -> list[Path]:
        """Remove every file kept for `branch`; returns what was removed."""
        key = branch_key(branch)
        removed = []
        if not self.root.is_dir():
            return removed
        for p in sorted(self.root.iterdir()):
            if p.name in (CHANGEID_PREFIX + key, MSG_PREFIX + key):
                p.unlink()
                removed.append(p)
        log.info("cleared %d file(s) for %s", len(removed), branch)
        return removed


def make_change_id(branch: str, tree: str, author: str, committer: str) -> str:
    """Gerrit-style Change-Id: 'I' followed by the sha1 of the identifying tuple.

    >>> len(make_change_id("topic", "4b825dc6", "A <a@x> 1 +0000", "C <c@x> 1 +0000"))
    41
    """
    data = "\n".join((branch, tree, author, committer)).encode(ENCODING)
    return "I" + hashlib.sha1(data).hexdigest()


def _strip_boilerplate(lines: list[str]) -> list[str]:
    body = []
    for line in lines:
        if _CHANGE_ID_LINE.match(line):
            continue
        if line.strip() == SQUASH_HEADER or _LOG_HEADER_LINE.match(line):
            continue
        if line.startswith("    "):
            line = line[4:]
        body.append(line.rstrip())

    # collapse runs of blank lines left behind by removed headers
    out: list[str] = []
    for line in body:
        if not line and (not out or not out[-1]):
            continue
        out.append(line)
    while out and not out[-1]:
        out.pop()
    return out


def compose_message(text: str, change_id: str) -> str:
    """Proposed message for a fresh squash: squash boilerplate and old
    Change-Id lines removed, `Change-Id: <id>` as the last body line.

    Trailing git comment lines (`# ...`) are kept after the trailer.
    """
    lines = text.splitlines()
    split = len(lines)
    while split > 0 and (lines[split - 1].startswith("#") or not lines[split - 1].strip()):
        split -= 1
    comments = [l for l in lines[split:] if l.startswith("#")]

    body = _strip_boilerplate(lines[:split])
    if body:
        body.append("")
    body.append(f"Change-Id: {change_id}")

    result = "\n".join(body) + "\n"
    if comments:
        result += "\n" + "\n".join(comments) + "\n"
    return result
