"""Pure extractors turning raw feed envelopes into silver record drafts.

Extractors are registered per GitHub event ``type``. Dispatch for an
unregistered type returns ``None`` and the caller treats the raw event as
handled without producing a record.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import msgspec

from pushwatch.silver.errors import ExtractionError

type Payload = dict[str, typ.Any]
type Extractor = typ.Callable[[Payload], PushRecordDraft]

_registry: dict[str, Extractor] = {}


def register(event_type: str) -> typ.Callable[[Extractor], Extractor]:
    """Register an extractor for ``event_type``."""

    def _inner(func: Extractor) -> Extractor:
        _registry[event_type] = func
        return func

    return _inner


def get_extractor(event_type: str) -> Extractor | None:
    """Return the registered extractor for the event type if present."""
    return _registry.get(event_type)


def registered_event_types() -> frozenset[str]:
    """Return the event types that produce silver records."""
    return frozenset(_registry)


@dc.dataclass(frozen=True, slots=True)
class PushRecordDraft:
    """Fields of a push record derived from a single ``PushEvent``."""

    push_id: str
    repository_id: int
    ref: str
    before_sha: str
    head_sha: str
    actor_login: str | None = None
    actor_url: str | None = None
    repo_name: str | None = None
    repo_url: str | None = None


class _RepoRef(msgspec.Struct, frozen=True):
    id: int
    name: str | None = None
    url: str | None = None


class _ActorRef(msgspec.Struct, frozen=True):
    id: int | None = None
    login: str | None = None
    url: str | None = None


class PushPayload(msgspec.Struct, frozen=True):
    """The ``payload`` object of a ``PushEvent``."""

    push_id: int | str
    ref: str
    before: str
    head: str
    size: int | None = None
    distinct_size: int | None = None


class PushEventEnvelope(msgspec.Struct, frozen=True):
    """Typed view of a ``PushEvent`` feed envelope."""

    id: str
    type: str
    repo: _RepoRef
    payload: PushPayload
    actor: _ActorRef | None = None
    created_at: str | None = None


def _decode_envelope[EnvelopeT: msgspec.Struct](
    payload: object, model: type[EnvelopeT]
) -> EnvelopeT:
    """Validate a raw payload against ``model``."""
    if not isinstance(payload, dict):
        raise ExtractionError.not_an_object()
    try:
        return msgspec.convert(payload, type=model)
    except msgspec.ValidationError as exc:
        raise ExtractionError.malformed_payload(str(exc)) from exc


@register("PushEvent")
def extract_push_event(payload: Payload) -> PushRecordDraft:
    """Build a :class:`PushRecordDraft` from a ``PushEvent`` envelope."""
    envelope = _decode_envelope(payload, PushEventEnvelope)
    actor = envelope.actor
    return PushRecordDraft(
        push_id=str(envelope.payload.push_id),
        repository_id=envelope.repo.id,
        ref=envelope.payload.ref,
        before_sha=envelope.payload.before,
        head_sha=envelope.payload.head,
        actor_login=actor.login if actor is not None else None,
        actor_url=actor.url if actor is not None else None,
        repo_name=envelope.repo.name,
        repo_url=envelope.repo.url,
    )


__all__ = [
    "Extractor",
    "PushEventEnvelope",
    "PushPayload",
    "PushRecordDraft",
    "extract_push_event",
    "get_extractor",
    "register",
    "registered_event_types",
]
