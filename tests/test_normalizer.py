"""Tests for payload normalization across webhook dialects."""

import json

import pytest
from pydantic import ValidationError

from autodeploy.schemas.events import NormalizationError, PushEvent
from autodeploy.services.branches import named_branches
from autodeploy.services.normalizer import (
    PayloadRejected,
    from_form_payload,
    from_nested_payload,
    normalize,
    to_event,
)


def _github_push(**overrides) -> dict:
    payload = {
        "ref": "refs/heads/main",
        "repository": {"name": "demo", "full_name": "acme/demo"},
        "commits": [{"id": "abc123", "message": "fix"}],
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Shape independence
# ---------------------------------------------------------------------------


def test_all_shapes_normalize_to_the_same_event() -> None:
    """Direct JSON, nested object, nested string and form payloads agree."""
    data = _github_push()
    encoded = json.dumps(data)

    direct = normalize(encoded.encode(), {})
    nested_object = normalize(json.dumps({"payload": data}).encode(), {})
    nested_string = normalize(json.dumps({"payload": encoded}).encode(), {})
    form = normalize(b"payload=ignored-by-json-parsers", {"payload": encoded})

    assert isinstance(direct, PushEvent)
    assert direct == nested_object == nested_string == form
    assert direct.repository_identifier == "demo"
    assert direct.raw_ref == "refs/heads/main"


def test_direct_json_wins_over_nested_payload() -> None:
    data = _github_push(payload={"repository": {"name": "other"}, "ref": "refs/heads/x"})

    event = normalize(json.dumps(data).encode(), {})

    assert isinstance(event, PushEvent)
    assert event.repository_identifier == "demo"


def test_slug_preferred_over_display_name() -> None:
    data = {
        "repository": {"slug": "my-repo", "name": "My Repo"},
        "commits": [{"branch": "main"}],
        "canon_url": "https://bitbucket.org",
    }

    event = normalize(json.dumps(data).encode(), {})

    assert isinstance(event, PushEvent)
    assert event.repository_identifier == "my-repo"
    assert event.commit_branches == ("main",)
    assert event.origin_host_hint == "https://bitbucket.org"


def test_name_used_when_slug_missing() -> None:
    event = normalize(json.dumps({"repository": {"name": "site"}, "branch": "dev"}).encode(), {})

    assert isinstance(event, PushEvent)
    assert event.repository_identifier == "site"
    assert event.explicit_branch == "dev"


def test_change_list_branches_collected() -> None:
    data = {
        "repository": {"slug": "app"},
        "push": {
            "changes": [
                {"new": {"name": "main", "type": "branch"}},
                {"new": None, "old": {"name": "gone"}},
                {"new": {"name": "release"}},
            ]
        },
    }

    event = normalize(json.dumps(data).encode(), {})

    assert isinstance(event, PushEvent)
    assert event.change_branches == ("main", "release")


# ---------------------------------------------------------------------------
# Lenient decoding
# ---------------------------------------------------------------------------


def test_raw_newlines_inside_strings_are_tolerated() -> None:
    body = b'{"ref": "refs/heads/main", "repository": {"name": "demo"},\r\n "message": "line one\nline two"}'

    event = normalize(body, {})

    assert isinstance(event, PushEvent)
    assert event.repository_identifier == "demo"


def test_form_payload_with_raw_newlines() -> None:
    value = '{"repository": {"name": "demo"},\n"branch": "main"}'

    data = from_form_payload(b"", {"payload": value})

    assert data["branch"] == "main"


@pytest.mark.parametrize("document", ["[1, 2, 3]", '"just a string"', "42", "null"])
def test_non_mapping_json_is_rejected(document: str) -> None:
    result = normalize(document.encode(), {"payload": document})

    assert isinstance(result, NormalizationError)


def test_nested_payload_must_be_object_or_string() -> None:
    with pytest.raises(PayloadRejected):
        from_nested_payload(json.dumps({"payload": 17}).encode(), {})


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_unparseable_request_returns_tagged_failure() -> None:
    result = normalize(b"\xff\xfe not json", {"other": "field"})

    assert isinstance(result, NormalizationError)
    assert result.raw_body == b"\xff\xfe not json"
    assert result.form_fields == {"other": "field"}
    assert len(result.reasons) == 3
    diagnostic = result.diagnostic()
    assert diagnostic["form_fields"] == {"other": "field"}
    assert "json_body" in diagnostic["reasons"][0]


def test_missing_repository_is_rejected() -> None:
    result = normalize(json.dumps({"ref": "refs/heads/main"}).encode(), {})

    assert isinstance(result, NormalizationError)


def test_missing_branch_information_is_rejected() -> None:
    result = normalize(json.dumps({"repository": {"name": "demo"}, "commits": []}).encode(), {})

    assert isinstance(result, NormalizationError)


def test_empty_ref_falls_through_to_nested_payload() -> None:
    """A ref with no final segment names no branch, so the nested payload is used."""
    data = {
        "repository": {"name": "demo"},
        "ref": "refs/heads/",
        "payload": {"repository": {"name": "demo"}, "ref": "refs/heads/main"},
    }

    event = normalize(json.dumps(data).encode(), {})

    assert isinstance(event, PushEvent)
    assert event.raw_ref == "refs/heads/main"
    assert named_branches(event) == ["main"]


def test_ref_without_branch_segment_is_rejected() -> None:
    result = normalize(json.dumps({"repository": {"name": "demo"}, "ref": "refs/heads/"}).encode(), {})

    assert isinstance(result, NormalizationError)
    assert any("no usable branch name" in reason for reason in result.reasons)


def test_ambiguous_merge_provider_accepted_without_branch() -> None:
    data = {"repository": {"slug": "demo"}, "commits": [], "canon_url": "https://bitbucket.org"}

    event = normalize(json.dumps(data).encode(), {})

    assert isinstance(event, PushEvent)
    assert named_branches(event) == []


@pytest.mark.parametrize("name", ["..", ".", "../etc", "a/b", "a\\b", ""])
def test_path_escaping_identifiers_are_rejected(name: str) -> None:
    with pytest.raises(PayloadRejected):
        to_event({"repository": {"name": name}, "branch": "main"})


def test_wrong_field_types_are_rejected_not_raised() -> None:
    result = normalize(json.dumps({"repository": "demo", "ref": ["refs/heads/main"]}).encode(), {})

    assert isinstance(result, NormalizationError)


# ---------------------------------------------------------------------------
# Relay marker
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("marker", "expected"),
    [("true", True), ("TRUE", True), (True, True), (1, True), ("false", False), (False, False)],
)
def test_relay_marker_parsing(marker, expected: bool) -> None:
    event = to_event({**_github_push(), "autodeploy_relay": marker})

    assert event.relay_flag is expected


def test_relay_flag_defaults_to_false() -> None:
    assert to_event(_github_push()).relay_flag is False


def test_event_is_frozen() -> None:
    event = to_event(_github_push())

    with pytest.raises(ValidationError):
        event.relay_flag = True  # type: ignore[misc]
