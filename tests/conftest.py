import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

# ensure repo root is importable (and importable by the hook's `python -m gsq`)
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))


def git(cwd, *args):
    proc = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return proc.stdout.strip()


def commit_file(cwd, name, content, message):
    (Path(cwd) / name).write_text(content)
    git(cwd, "add", name)
    git(cwd, "commit", "-q", "-m", message)


@pytest.fixture
def git_env(tmp_path, monkeypatch):
    """Isolated git identity/config and a gsq config whose hook runs this interpreter."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "A U Thor")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "C O Mitter")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")
    monkeypatch.setenv("GIT_EDITOR", "true")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(var, raising=False)

    pythonpath = [str(ROOT)]
    if os.environ.get("PYTHONPATH"):
        pythonpath.append(os.environ["PYTHONPATH"])
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(pythonpath))

    config = tmp_path / "gsq.yml"
    config.write_text(yaml.safe_dump({"hook_command": f'"{sys.executable}" -m gsq'}))
    monkeypatch.setenv("GSQ_CONFIG", str(config))
    return tmp_path


@pytest.fixture
def upstream(git_env):
    """Bare origin repository `widget.git` with one commit on master."""
    bare = git_env / "upstream" / "widget.git"
    git(git_env, "init", "-q", "--bare", str(bare))
    git(bare, "symbolic-ref", "HEAD", "refs/heads/master")

    seed = git_env / "seed"
    git(git_env, "init", "-q", str(seed))
    git(seed, "symbolic-ref", "HEAD", "refs/heads/master")
    commit_file(seed, "README", "widget\n", "Initial commit")
    git(seed, "push", "-q", str(bare), "master")
    return bare


@pytest.fixture
def repo(git_env, upstream, monkeypatch):
    """A clone of `upstream`; the test runs inside it."""
    work = git_env / "work"
    git(git_env, "clone", "-q", str(upstream), str(work))
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def review(git_env):
    """Stand-in review server: <review>/widget is a bare repository."""
    server = git_env / "review"
    git(git_env, "init", "-q", "--bare", str(server / "widget"))
    return server


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def initialised(repo, review, runner):
    import gsq

    result = runner.invoke(gsq.app, ["init", "-u", str(review)])
    assert result.exit_code == 0, result.output
    return repo


@pytest.fixture
def topic(initialised):
    """Working branch `topic` with one commit on top of master."""
    git(initialised, "checkout", "-q", "-b", "topic")
    commit_file(initialised, "feature.txt", "v1\n", "Add feature")
    return initialised
