from __future__ import annotations

import pytest

from ghexplorer.adapters.github import GitHubPayloadDecoder, parse_payload, translate
from ghexplorer.domain.model import (
    CommitDraft,
    ContributionDraft,
    ContributorDraft,
    Draft,
    EntityKind,
    MergeRequestDraft,
    RepositoryDraft,
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


def _by_kind(drafts: list[Draft]) -> dict[EntityKind, list[Draft]]:
    grouped: dict[EntityKind, list[Draft]] = {}
    for draft in drafts:
        grouped.setdefault(draft.KIND, []).append(draft)
    return grouped


def test_merged_pull_request_envelope_yields_linked_drafts() -> None:
    drafts = _by_kind(translate(parse_payload(merged_pull_request_envelope())))

    (repository,) = drafts[EntityKind.REPOSITORY]
    (merge_request,) = drafts[EntityKind.MERGE_REQUEST]
    (commit,) = drafts[EntityKind.COMMIT]
    contributors = drafts[EntityKind.CONTRIBUTOR]
    contributions = drafts[EntityKind.CONTRIBUTION]

    assert isinstance(repository, RepositoryDraft)
    assert repository.full_name == "octo/hello"
    assert repository.primary_language == "Python"
    assert isinstance(merge_request, MergeRequestDraft)
    assert merge_request.author_github_id == 1001
    assert merge_request.merged_by_github_id == 1002
    assert merge_request.is_merged is True
    assert merge_request.commits_count == 1
    assert merge_request.source_branch == "feature"
    assert isinstance(commit, CommitDraft)
    assert commit.merge_request_github_id == 5001
    assert commit.author_github_id == 1001
    assert (commit.additions, commit.deletions) == (15, 3)
    assert {c.github_id for c in contributors if isinstance(c, ContributorDraft)} == {1001, 1002}
    assert {
        c.contributor_github_id for c in contributions if isinstance(c, ContributionDraft)
    } == {1001, 1002}


def test_push_envelope_commits_without_accounts() -> None:
    drafts = _by_kind(translate(parse_payload(push_envelope())))

    commits = [d for d in drafts[EntityKind.COMMIT] if isinstance(d, CommitDraft)]
    assert [c.sha for c in commits] == ["sha1", "sha2"]
    assert all(c.author_github_id is None for c in commits)
    assert all(c.merge_request_github_id is None for c in commits)
    assert EntityKind.CONTRIBUTOR not in drafts
    assert EntityKind.CONTRIBUTION not in drafts


def test_repository_with_user_owner_adds_contributor() -> None:
    payload = repository_payload(full_name="alice/tools")
    payload["owner"] = user_payload(1001, "alice")

    drafts = _by_kind(translate(parse_payload(payload)))

    (owner,) = drafts[EntityKind.CONTRIBUTOR]
    assert isinstance(owner, ContributorDraft)
    assert owner.username == "alice"
    (repository,) = drafts[EntityKind.REPOSITORY]
    assert isinstance(repository, RepositoryDraft)
    assert repository.owner_login == "alice"


def test_organisation_owner_is_not_a_contributor() -> None:
    drafts = _by_kind(translate(parse_payload(repository_payload())))

    assert set(drafts) == {EntityKind.REPOSITORY}


def test_bot_accounts_are_flagged() -> None:
    drafts = translate(parse_payload(user_payload(49699333, "dependabot[bot]", type="Bot")))

    (bot,) = drafts
    assert isinstance(bot, ContributorDraft)
    assert bot.is_bot is True


def test_bare_pull_request_uses_base_repository() -> None:
    drafts = _by_kind(translate(parse_payload(pull_request_payload(labels=[{"name": "bug"}]))))

    (merge_request,) = drafts[EntityKind.MERGE_REQUEST]
    assert isinstance(merge_request, MergeRequestDraft)
    assert merge_request.repository_github_id == 42
    assert merge_request.repository_full_name == "octo/hello"
    assert merge_request.labels == ("bug",)


def test_pull_request_without_repository_context_is_rejected() -> None:
    payload = pull_request_payload()
    payload["base"] = {"ref": "main"}

    with pytest.raises(ValidationError, match="no repository context"):
        translate(parse_payload(payload))


def test_commit_without_repository_context_is_rejected() -> None:
    with pytest.raises(ValidationError, match="no repository context"):
        translate(parse_payload(commit_payload("abc", additions=1, deletions=1)))


def test_commit_with_embedded_repository() -> None:
    payload = commit_payload(
        "abc",
        additions=4,
        deletions=1,
        author=user_payload(),
        repository=repository_payload(),
        parents=[{"sha": "p1"}, {"sha": "p2"}],
    )

    drafts = _by_kind(translate(parse_payload(payload)))

    (commit,) = drafts[EntityKind.COMMIT]
    assert isinstance(commit, CommitDraft)
    assert commit.is_merge_commit is True
    assert commit.parents == ("p1", "p2")
    assert commit.author_name == "Dev"
    assert len(drafts[EntityKind.CONTRIBUTION]) == 1


def test_decoder_rejects_unknown_payloads() -> None:
    decoder = GitHubPayloadDecoder()

    with pytest.raises(ValidationError):
        decoder.decode({"hello": "world"})
    assert len(decoder.decode(push_envelope())) == 3
