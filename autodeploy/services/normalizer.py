"""Turn raw webhook requests into canonical ``PushEvent`` objects.

Providers deliver push notifications in several shapes: a JSON body, a JSON
body wrapping a ``payload`` key (either an object or a JSON-encoded string),
or a form-encoded body with a JSON ``payload`` field. Each shape is handled
by a small pure strategy; ``normalize`` tries them in order and accepts the
first one that names a repository and gives us something to derive a branch
from.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from autodeploy.schemas.events import NormalizationError, PushEvent
from autodeploy.schemas.webhooks import PushWebhookPayload
from autodeploy.services.branches import named_branches

Strategy = Callable[[bytes, Mapping[str, str]], dict[str, Any]]

_TRUTHY = {"true", "1", "yes", "on"}


class PayloadRejected(ValueError):
    """Raised by a strategy when its interpretation of the request is unusable."""


def _lenient_json(text: str) -> dict[str, Any]:
    """Decode JSON after dropping raw CR/LF characters.

    Some providers emit unescaped newlines inside string values; dropping them
    keeps the document parseable. Only mappings are accepted.
    """
    cleaned = text.replace("\r", "").replace("\n", "")
    if not cleaned.strip():
        raise PayloadRejected("empty document")
    try:
        decoded = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise PayloadRejected(f"invalid JSON: {exc.msg}") from None
    if not isinstance(decoded, dict):
        raise PayloadRejected(f"expected a JSON object, got {type(decoded).__name__}")
    return decoded


def _decode_body(raw_body: bytes) -> dict[str, Any]:
    try:
        text = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        raise PayloadRejected("body is not valid UTF-8") from None
    return _lenient_json(text)


def from_json_body(raw_body: bytes, form_fields: Mapping[str, str]) -> dict[str, Any]:
    """The request body itself is the push payload."""
    return _decode_body(raw_body)


def from_nested_payload(raw_body: bytes, form_fields: Mapping[str, str]) -> dict[str, Any]:
    """The JSON body wraps the push payload in a ``payload`` key."""
    nested = _decode_body(raw_body).get("payload")
    if isinstance(nested, dict):
        return nested
    if isinstance(nested, str):
        return _lenient_json(nested)
    raise PayloadRejected("no payload key in JSON body")


def from_form_payload(raw_body: bytes, form_fields: Mapping[str, str]) -> dict[str, Any]:
    """A form-encoded submission carries the push payload in a ``payload`` field."""
    value = form_fields.get("payload")
    if not value:
        raise PayloadRejected("no payload form field")
    return _lenient_json(value)


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("json_body", from_json_body),
    ("nested_payload", from_nested_payload),
    ("form_payload", from_form_payload),
)


def _safe_identifier(value: str | None) -> str | None:
    # The identifier becomes a directory name under the repositories root
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        return None
    return value


def _relay_flag(value: bool | int | str | None) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def to_event(data: dict[str, Any], *, merge_quirk_marker: str = "") -> PushEvent:
    """Build a ``PushEvent`` from a decoded payload mapping.

    Raises:
        PayloadRejected: if the mapping names no usable repository or offers
            no branch name that survives derivation (and is not from the
            ambiguous-merge provider).
    """
    try:
        payload = PushWebhookPayload.model_validate(data)
    except ValidationError as exc:
        raise PayloadRejected(f"unexpected field types: {exc.error_count()} error(s)") from None

    repo = payload.repository
    # Prefer the slug: display names may not match the directory on disk
    identifier = None
    if repo is not None:
        identifier = _safe_identifier(repo.slug) or _safe_identifier(repo.name)
    if identifier is None:
        raise PayloadRejected("no usable repository slug or name")

    event = PushEvent(
        repository_identifier=identifier,
        raw_ref=payload.ref or None,
        explicit_branch=payload.branch or None,
        commit_branches=tuple(c.branch for c in payload.commits or () if c.branch),
        change_branches=tuple(
            c.new.name for c in (payload.push.changes or () if payload.push else ()) if c.new and c.new.name
        ),
        origin_host_hint=payload.canon_url or None,
        relay_flag=_relay_flag(payload.autodeploy_relay),
        source=data,
    )
    if not named_branches(event) and not event.is_from(merge_quirk_marker):
        raise PayloadRejected("no usable branch name")
    return event


def normalize(
    raw_body: bytes,
    form_fields: Mapping[str, str],
    *,
    merge_quirk_marker: str = "bitbucket.org",
) -> PushEvent | NormalizationError:
    """Interpret an inbound webhook request as a ``PushEvent``.

    Never raises for bad input: when every strategy is rejected, a
    ``NormalizationError`` carrying the request and the reasons is returned.
    """
    reasons: list[str] = []
    for name, strategy in STRATEGIES:
        try:
            return to_event(strategy(raw_body, form_fields), merge_quirk_marker=merge_quirk_marker)
        except PayloadRejected as exc:
            reasons.append(f"{name}: {exc}")
    return NormalizationError(raw_body=raw_body, form_fields=dict(form_fields), reasons=tuple(reasons))
