"""Commit source backed by a local git repository.

Reads ``git log --name-only`` and turns every commit into a
:class:`CommitEvent`, oldest first, so a repository's history can be
replayed into the view store.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from coupling_view.core.view.model import CommitEvent

logger = logging.getLogger(__name__)

_COMMIT_MARKER = "COMMIT:"


@dataclass
class GitCommit:
    """A commit hash with the files it changed."""

    sha: str
    files: list[str] = field(default_factory=list)


def parse_git_log_output(output: str) -> list[GitCommit]:
    """Split ``git log --name-only --pretty=format:COMMIT:%H`` output into commits.

    Commits without changed files (merges, empty commits) are kept with an
    empty file list; callers decide whether to skip them.
    """
    commits: list[GitCommit] = []
    current: GitCommit | None = None

    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        if stripped.startswith(_COMMIT_MARKER):
            current = GitCommit(sha=stripped[len(_COMMIT_MARKER):])
            commits.append(current)
        elif current is not None:
            current.files.append(stripped)

    return commits


def parse_git_log(repo_path: Path, since_months: int | None = None) -> list[GitCommit]:
    """Run ``git log`` in *repo_path* and return its commits, oldest first.

    Args:
        repo_path: Root of the git repository.
        since_months: Only read commits from this many months back.
            ``None`` reads the whole history.

    Returns:
        The parsed commits.  An empty list when the git command fails
        (e.g. not a repository or git is not installed).
    """
    cmd = [
        "git",
        "log",
        "--reverse",
        "--name-only",
        f"--pretty=format:{_COMMIT_MARKER}%H",
    ]
    if since_months is not None:
        cmd.append(f"--since={since_months} months ago")

    try:
        result = subprocess.run(
            cmd,
            cwd=repo_path,
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        logger.debug("git log failed for %s, not a git repo?", repo_path)
        return []

    return parse_git_log_output(result.stdout)


def commits_to_events(commits: list[GitCommit], project_id: str) -> list[CommitEvent]:
    """Turn git commits into commit events for *project_id*, skipping empty ones."""
    return [
        CommitEvent(project_id=project_id, files=tuple(c.files), commit_id=c.sha)
        for c in commits
        if c.files
    ]
