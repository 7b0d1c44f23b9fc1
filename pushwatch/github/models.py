"""Typed views of the GitHub events feed."""

from __future__ import annotations

import msgspec


class FeedEnvelope(msgspec.Struct, frozen=True):
    """The identifying fields every feed envelope must carry.

    Other keys are ignored here; the full envelope is stored verbatim.
    """

    id: str
    type: str


class ActorProfile(msgspec.Struct, frozen=True):
    """Subset of ``GET /users/{login}`` kept in the enrichment cache."""

    id: int
    login: str
    name: str | None = None
    avatar_url: str | None = None
    html_url: str | None = None
    url: str | None = None


class RepositoryProfile(msgspec.Struct, frozen=True):
    """Subset of ``GET /repositories/{id}`` kept in the enrichment cache."""

    id: int
    full_name: str
    description: str | None = None
    html_url: str | None = None
    default_branch: str | None = None
    stargazers_count: int | None = None
    language: str | None = None
    url: str | None = None
