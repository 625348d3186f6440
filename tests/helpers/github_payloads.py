"""Raw GitHub payload builders shared by adapter, pipeline and integration tests."""

from __future__ import annotations

from typing import Any


def user_payload(
    github_id: int = 1001,
    login: str = "alice",
    **extra: Any,
) -> dict[str, Any]:
    return {"id": github_id, "login": login, "type": "User", **extra}


def repository_payload(
    github_id: int = 42,
    full_name: str = "octo/hello",
    **extra: Any,
) -> dict[str, Any]:
    owner, _, name = full_name.partition("/")
    return {
        "id": github_id,
        "name": name,
        "full_name": full_name,
        "owner": {"id": 9000 + github_id, "login": owner, "type": "Organization"},
        "stargazers_count": 10,
        "forks_count": 2,
        "language": "Python",
        "fork": False,
        **extra,
    }


def commit_payload(
    sha: str,
    *,
    additions: int,
    deletions: int,
    author: dict[str, Any] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "sha": sha,
        "commit": {"message": f"change {sha}", "author": {"name": "Dev", "date": None}},
        "stats": {"additions": additions, "deletions": deletions},
        **extra,
    }
    if author is not None:
        payload["author"] = author
    return payload


def pull_request_payload(
    github_id: int = 5001,
    number: int = 7,
    *,
    repository: dict[str, Any] | None = None,
    user: dict[str, Any] | None = None,
    merged_by: dict[str, Any] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    repo = repository or repository_payload()
    return {
        "id": github_id,
        "number": number,
        "title": f"PR {number}",
        "state": "closed",
        "merged_at": "2024-03-01T12:00:00Z",
        "user": user or user_payload(),
        "merged_by": merged_by,
        "additions": 20,
        "deletions": 4,
        "head": {"ref": "feature"},
        "base": {"ref": "main", "repo": repo},
        **extra,
    }


def push_envelope() -> dict[str, Any]:
    """Push-style envelope: one repository and two anonymous commits (13 added, 7 removed)."""

    return {
        "repository": {"id": 42, "full_name": "octo/hello", "name": "hello"},
        "commits": [
            {"id": "sha1", "message": "first", "additions": 10, "deletions": 5},
            {"id": "sha2", "message": "second", "additions": 3, "deletions": 2},
        ],
    }


def merged_pull_request_envelope(
    *,
    author_id: int = 1001,
    author_login: str = "alice",
    reviewer_id: int = 1002,
    reviewer_login: str = "bob",
) -> dict[str, Any]:
    """Webhook envelope for a merged PR with one authored commit."""

    repo = repository_payload()
    author = user_payload(author_id, author_login)
    return {
        "action": "closed",
        "repository": repo,
        "pull_request": pull_request_payload(
            repository=repo,
            user=author,
            merged_by=user_payload(reviewer_id, reviewer_login),
            commits=[
                commit_payload(
                    "abc123",
                    additions=15,
                    deletions=3,
                    author={"id": author_id, "login": author_login, "type": "User"},
                ),
            ],
        ),
    }
