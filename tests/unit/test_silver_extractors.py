"""Unit tests for event-type dispatch and push extraction."""

from __future__ import annotations

import pytest

from pushwatch.silver import ExtractionError, ExtractionReason, get_extractor
from pushwatch.silver.extractors import (
    PushRecordDraft,
    extract_push_event,
    registered_event_types,
)
from tests.helpers.github_events import make_issue_event, make_push_event


def test_push_event_is_registered_and_others_are_not() -> None:
    """Only ``PushEvent`` produces silver records."""
    assert get_extractor("PushEvent") is extract_push_event
    assert get_extractor("IssuesEvent") is None
    assert "PushEvent" in registered_event_types()


def test_extract_push_event_builds_draft() -> None:
    """Every identifying field of the push is carried into the draft."""
    draft = extract_push_event(make_push_event("e1", push_id=777, repo_id=42))

    assert draft == PushRecordDraft(
        push_id="777",
        repository_id=42,
        ref="refs/heads/main",
        before_sha="a" * 40,
        head_sha="b" * 40,
        actor_login="octocat",
        actor_url="https://api.github.com/users/octocat",
        repo_name="octocat/Hello-World",
        repo_url="https://api.github.com/repos/octocat/Hello-World",
    )


def test_extract_push_event_tolerates_missing_actor() -> None:
    """The actor block is optional; enrichment later reports it missing."""
    draft = extract_push_event(make_push_event("e2", actor_login=None))

    assert draft.actor_login is None
    assert draft.actor_url is None


def test_missing_push_id_is_malformed() -> None:
    """A payload without ``push_id`` raises a malformed-payload error."""
    with pytest.raises(ExtractionError) as excinfo:
        extract_push_event(make_push_event("e3", push_id=None))

    assert excinfo.value.reason == ExtractionReason.MALFORMED_PAYLOAD
    assert "push_id" in str(excinfo.value)


def test_non_object_payload_is_malformed() -> None:
    """Lists and scalars are rejected before validation."""
    with pytest.raises(ExtractionError, match="JSON object"):
        extract_push_event(["not", "an", "object"])  # type: ignore[arg-type]


def test_wrong_event_shape_is_malformed() -> None:
    """An issue payload fed to the push extractor fails validation."""
    with pytest.raises(ExtractionError):
        extract_push_event(make_issue_event("e4"))
