from __future__ import annotations

import pytest

from ghexplorer.adapters.github import GitHubPayload, classify, parse_payload
from ghexplorer.adapters.github.schema import (
    CommitPayload,
    PullRequestPayload,
    RepositoryPayload,
    UserPayload,
    WebhookEnvelope,
)
from ghexplorer.domain.pipeline import ValidationError
from tests.helpers.github_payloads import (
    commit_payload,
    merged_pull_request_envelope,
    pull_request_payload,
    push_envelope,
    repository_payload,
    user_payload,
)


@pytest.mark.parametrize(
    ("payload", "shape"),
    [
        (push_envelope(), "envelope"),
        (merged_pull_request_envelope(), "envelope"),
        (pull_request_payload(), "pull_request"),
        (repository_payload(), "repository"),
        (user_payload(), "user"),
        (commit_payload("abc", additions=1, deletions=0), "commit"),
        ({"unexpected": True}, None),
        ("not a mapping", None),
    ],
)
def test_classify_detects_payload_shape(payload: object, shape: str | None) -> None:
    assert classify(payload) == shape


def test_parse_payload_selects_model_by_shape() -> None:
    assert isinstance(parse_payload(push_envelope()).root, WebhookEnvelope)
    assert isinstance(parse_payload(pull_request_payload()).root, PullRequestPayload)
    assert isinstance(parse_payload(repository_payload()).root, RepositoryPayload)
    assert isinstance(parse_payload(user_payload()).root, UserPayload)


def test_unknown_shape_raises_domain_validation_error() -> None:
    with pytest.raises(ValidationError, match="does not match any known GitHub entity shape"):
        parse_payload({"unexpected": True})


def test_wrong_field_type_raises_domain_validation_error() -> None:
    with pytest.raises(ValidationError, match="id"):
        parse_payload({"id": "not-a-number", "login": "alice"})


def test_push_commit_accepts_id_alias_and_top_level_line_counts() -> None:
    commit = CommitPayload.model_validate({"id": "sha1", "additions": 10, "deletions": 5})

    assert commit.sha == "sha1"
    assert commit.lines_added == 10
    assert commit.lines_removed == 5


def test_api_commit_prefers_stats_block() -> None:
    payload = commit_payload("abc", additions=7, deletions=2)
    payload["additions"] = 99
    commit = CommitPayload.model_validate(payload)

    assert commit.lines_added == 7
    assert commit.lines_removed == 2


def test_user_blank_strings_become_none() -> None:
    user = UserPayload.model_validate(user_payload(bio="   ", company=""))

    assert user.bio is None
    assert user.company is None


def test_pull_request_merge_state() -> None:
    merged = PullRequestPayload.model_validate(pull_request_payload())
    closed = PullRequestPayload.model_validate(pull_request_payload(merged_at=None))
    explicit = PullRequestPayload.model_validate(pull_request_payload(merged=False))

    assert merged.is_merged is True
    assert closed.is_merged is False
    assert explicit.is_merged is False


def test_root_model_round_trips_through_validation() -> None:
    parsed = GitHubPayload.model_validate(repository_payload(topics=["etl"]))

    assert isinstance(parsed.root, RepositoryPayload)
    assert parsed.root.topics == ["etl"]
