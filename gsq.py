#!/usr/bin/env python3
"""gsq - squash a branch into one commit and push it for review.

Usage:
  gsq init -u https://review.example.com     # add the review remote + commit hook
  gsq update                                 # fast-forward master, merge it into this branch
  gsq submit [-b master] [-d]                # squash this branch, push to refs/for/master
  gsq new                                    # forget the Change-Id of this branch
  gsq status                                 # show what gsq remembers for this branch
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

import gsq_config
import gsq_git
import gsq_log
from gsq_git import GitError
from gsq_store import Store, compose_message, make_change_id

HOOK_NAME = "prepare-commit-msg"
HOOK_TEMPLATE = """#!/bin/sh
# installed by gsq init
exec {command} prepare-commit-msg "$@"
"""

app = typer.Typer(
    name="gsq",
    help="Squash-and-submit workflow for Gerrit-style review servers.",
    no_args_is_help=True,
)
console = Console()
log = logging.getLogger("gsq")

_verbose = False


# -------------------------
# Utilities
# -------------------------

def _fail(message: str, detail: str = "") -> NoReturn:
    typer.secho(f"❌ {message}", fg=typer.colors.RED)
    if detail:
        typer.echo(detail.strip())
    raise typer.Exit(1)


def _settings() -> gsq_config.Settings:
    try:
        settings = gsq_config.load()
    except gsq_config.Error as exc:
        _fail(str(exc))
    if not _verbose:
        gsq_log.setup(settings.log_level)
    return settings


def _require_repo() -> Path:
    try:
        return gsq_git.git_dir()
    except GitError:
        _fail("Not a git repository.")


def _require_branch() -> str:
    branch = gsq_git.current_branch()
    if not branch:
        _fail("HEAD is detached; check out a branch first.")
    return branch


def _require_clean(action: str) -> None:
    if gsq_git.is_dirty():
        _fail(f"You have uncommitted changes; commit or stash them before {action}.")


def _restore(branch: str) -> None:
    """Throw away the scratch work and go back to `branch`."""
    log.info("restoring %s", branch)
    gsq_git.git("reset", "-q", "--hard", check=False)
    gsq_git.git("checkout", "-q", branch, check=False)


def _review_ref(target: str, draft: bool) -> str:
    namespace = "drafts" if draft else "for"
    return f"refs/{namespace}/{target}"


# -------------------------
# Commands
# -------------------------

@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every git command to stderr"),
) -> None:
    global _verbose
    _verbose = verbose
    gsq_log.setup("DEBUG" if verbose else "WARNING")


@app.command(help="Add the review remote and install the commit-message hook")
def init(
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Review server base URL (default: git config gsq.url)"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project name (default: basename of origin)"),
    remote: Optional[str] = typer.Option(None, "--remote", "-r", help="Name of the review remote"),
) -> None:
    """Point the review remote at <url>/<project> and install the commit hook.

    Args:
        url: Review server base URL; falls back to `git config gsq.url`.
        project: Project name; falls back to the basename of origin.
        remote: Remote name to (re)create, default from settings.
    """
    settings = _settings()
    git_dir = _require_repo()

    url = url or settings.url
    if not url:
        _fail("No review server URL. Pass -u <url> or set `git config gsq.url`.")

    if not project:
        origin = gsq_git.remote_url("origin")
        project = gsq_git.project_from_url(origin) if origin else ""
    if not project:
        _fail("Cannot derive the project name from origin. Pass -p <project>.")

    remote_name = remote or settings.remote
    remote_url = f"{url.rstrip('/')}/{project.strip('/')}"

    try:
        if gsq_git.remote_url(remote_name):
            gsq_git.git("remote", "remove", remote_name)
        gsq_git.git("remote", "add", remote_name, remote_url)
        gsq_git.config_set(gsq_config.git_key("url"), url)
        if remote:
            gsq_git.config_set(gsq_config.git_key("remote"), remote)
    except GitError as exc:
        _fail(f"Cannot configure remote '{remote_name}'.", exc.stderr)
    typer.secho(f"✅ Remote '{remote_name}' -> {remote_url}", fg=typer.colors.GREEN)

    hook = git_dir / "hooks" / HOOK_NAME
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text(HOOK_TEMPLATE.format(command=settings.hook_command), encoding="utf-8")
    gsq_git.make_executable(hook)
    typer.secho(f"✅ Installed hook: {hook}", fg=typer.colors.GREEN)


@app.command(help="Fast-forward the target branch and merge it into the current branch")
def update(
    target: Optional[str] = typer.Option(None, "--branch", "-b", help="Target branch (default: master)"),
) -> None:
    """Bring `target` up to date with its upstream, then merge it into the current branch.

    On a failed fast-forward `target` stays checked out so the user can sort it out.
    """
    settings = _settings()
    _require_repo()
    target = target or settings.target
    branch = _require_branch()
    _require_clean("updating")

    if branch != target:
        proc = gsq_git.git("checkout", "-q", target, check=False)
        if proc.returncode != 0:
            _fail(f"Cannot check out {target}.", proc.stderr)

    typer.secho(f"🔍 Fast-forwarding {target}", fg=typer.colors.CYAN)
    proc = gsq_git.git("pull", "--ff-only", check=False)
    if proc.returncode != 0:
        _fail(
            f"Fast-forward of {target} failed. {target} is checked out; resolve the conflicts manually.",
            proc.stderr,
        )

    if branch == target:
        typer.secho(f"✅ {target} is up to date.", fg=typer.colors.GREEN)
        return

    gsq_git.git("checkout", "-q", branch)
    typer.secho(f"🔍 Merging {target} into {branch}", fg=typer.colors.CYAN)
    proc = gsq_git.git("merge", "--no-edit", target, check=False)
    if proc.returncode != 0:
        _fail(f"Merging {target} into {branch} failed; resolve the conflicts and commit.", proc.stdout)
    typer.secho(f"✅ {branch} is up to date with {target}.", fg=typer.colors.GREEN)


@app.command(help="Squash the current branch into one commit and push it for review")
def submit(
    target: Optional[str] = typer.Option(None, "--branch", "-b", help="Target branch (default: master)"),
    draft: bool = typer.Option(False, "--draft", "-d", help="Push to refs/drafts/ instead of refs/for/"),
) -> None:
    """Squash the current branch onto `target` and push it as one reviewable commit.

    Every failure after the scratch branch is checked out resets it and goes
    back to the working branch before exiting 1.

    Args:
        target: Branch the change is for; its name also selects the review ref.
        draft: Push to refs/drafts/<target> instead of refs/for/<target>.
    """
    settings = _settings()
    git_dir = _require_repo()
    target = target or settings.target
    scratch = settings.scratch_branch

    if not gsq_git.remote_url(settings.remote):
        _fail(f"No '{settings.remote}' remote. Run `gsq init` first.")
    branch = _require_branch()
    if branch == target:
        _fail(f"You are on {target}; switch to a working branch before submitting.")
    if branch == scratch:
        _fail(f"{scratch} is gsq's scratch branch; switch to a working branch before submitting.")
    _require_clean("submitting")

    store = Store.for_git_dir(git_dir)
    store.set_current(branch, target)

    proc = gsq_git.git("checkout", "-q", "-B", scratch, target, check=False)
    if proc.returncode != 0:
        _restore(branch)
        _fail(f"Cannot create {scratch} from {target}.", proc.stderr)

    typer.secho(f"🔍 Squashing {branch} onto {target}", fg=typer.colors.CYAN)
    proc = gsq_git.git("merge", "--squash", branch, check=False)
    if proc.returncode != 0:
        _restore(branch)
        _fail(f"{branch} does not merge cleanly into {target}. Run `gsq update` and resolve the conflicts.", proc.stdout)

    if not gsq_git.has_staged_changes():
        _restore(branch)
        _fail(f"Nothing to merge from {branch} into {target}. Commit your changes first.")

    if gsq_git.interactive("commit") != 0:
        _restore(branch)
        _fail("Commit aborted.")

    ref = _review_ref(target, draft)
    typer.secho(f"🔍 Pushing to {settings.remote} {ref}", fg=typer.colors.CYAN)
    proc = gsq_git.git("push", settings.remote, f"HEAD:{ref}", check=False)
    if proc.returncode != 0:
        _restore(branch)
        _fail("Push failed.", proc.stderr)
    if proc.stderr and proc.stderr.strip():
        typer.echo(proc.stderr.strip())

    store.set_message(branch, gsq_git.head_message())
    gsq_git.git("checkout", "-q", branch)
    typer.secho(f"✅ Submitted {branch} for review on {target}.", fg=typer.colors.GREEN)


@app.command(help="Forget the Change-Id and message of the current branch")
def new() -> None:
    _settings()
    git_dir = _require_repo()
    branch = _require_branch()
    removed = Store.for_git_dir(git_dir).clear(branch)
    if removed:
        typer.secho(f"✅ Next submit of {branch} starts a new change.", fg=typer.colors.GREEN)
    else:
        typer.secho(f"Nothing recorded for {branch}.", fg=typer.colors.YELLOW)


@app.command(help="Show the Change-Id and cached message of the current branch")
def status(
    target: Optional[str] = typer.Option(None, "--branch", "-b", help="Target branch (default: master)"),
) -> None:
    settings = _settings()
    git_dir = _require_repo()
    target = target or settings.target
    branch = _require_branch()
    record = Store.for_git_dir(git_dir).record(branch)

    if record.change_id:
        merged = gsq_git.in_history(target, record.change_id)
        state = f"merged into {target}" if merged else "open"
    else:
        state = "-"

    table = Table(title=f"gsq: {branch}", show_header=False)
    table.add_column("key", style="cyan")
    table.add_column("value")
    table.add_row("target", target)
    table.add_row("remote", gsq_git.remote_url(settings.remote) or "(not initialised)")
    table.add_row("Change-Id", record.change_id or "(none)")
    table.add_row("state", state)
    table.add_row("message", record.subject or "(none)")
    console.print(table)


@app.command(HOOK_NAME, help="Internal: called by git's prepare-commit-msg hook")
def prepare_commit_msg(
    msg_file: Path = typer.Argument(..., help="Commit message file passed by git"),
    source: Optional[str] = typer.Argument(None, help="Message source passed by git (ignored)"),
    sha: Optional[str] = typer.Argument(None, help="Commit sha passed by git (ignored)"),
) -> None:
    """Fill in the squash commit's message; any other commit passes through untouched.

    A broken config file only matters once we know this is gsq's own commit.
    """
    try:
        scratch = gsq_config.load().scratch_branch
    except gsq_config.Error:
        scratch = gsq_git.config_get(gsq_config.git_key("scratch_branch")) or gsq_config.Settings().scratch_branch
    if gsq_git.current_branch() != scratch:
        raise typer.Exit(0)

    settings = _settings()
    store = Store.for_git_dir(_require_repo())
    branch = store.current_branch()
    if not branch:
        _fail(f"No branch recorded for {settings.scratch_branch}; run `gsq submit` from your working branch.")
    target = store.current_target() or settings.target

    change_id = store.change_id(branch)
    if change_id and gsq_git.in_history(target, change_id):
        typer.secho(f"⚠️ {change_id} is already in {target}; starting a new change.", fg=typer.colors.YELLOW)
        store.invalidate_change_id(branch)
        change_id = None

    if change_id:
        cached = store.message(branch)
        if cached:
            msg_file.write_text(cached, encoding="utf-8")
            return
    else:
        change_id = make_change_id(
            branch,
            gsq_git.write_tree(),
            gsq_git.ident("GIT_AUTHOR_IDENT"),
            gsq_git.ident("GIT_COMMITTER_IDENT"),
        )
        store.set_change_id(branch, change_id)

    text = msg_file.read_text(encoding="utf-8") if msg_file.exists() else ""
    msg_file.write_text(compose_message(text, change_id), encoding="utf-8")


if __name__ == "__main__":
    app()
