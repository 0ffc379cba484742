"""Group per-file change events into commits."""

from collections.abc import Iterable

from skilltrace.schemas.analysis import FileChangeEvent
from skilltrace.services.analysis.types import Commit


def group_commits(events: Iterable[FileChangeEvent]) -> list[Commit]:
    """
    Group file change events by commit sha.

    Commits come out in the order their sha was first seen, and each commit's
    file changes keep their input order. Author and timestamp are taken from
    the first event of a commit. Events are not de-duplicated: the backend
    lists each file once per commit.
    """
    grouped: dict[str, Commit] = {}
    for event in events:
        commit = grouped.get(event.sha)
        if commit is None:
            commit = Commit(sha=event.sha, author=event.author, timestamp=event.timestamp)
            grouped[event.sha] = commit
        commit.file_changes.append(event)
    return list(grouped.values())
