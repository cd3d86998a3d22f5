#!/usr/bin/env python3
"""Unit tests for update payload construction.

Tests cover:
    - Document shape and field names
    - Deterministic ordering
    - Empty application map
    - Immutability
"""
import dataclasses
import json
import sys

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.fleet.api.payload import ApplicationVersion, UpdatePayload, build_payload


class TestBuildPayload:
    """Test build_payload()."""

    def test_empty_map_serializes_empty_array(self):
        """An empty map must give an empty array, never null."""
        payload = build_payload({})

        assert payload.body == b'{"profile":{"applications":[]}}'
        assert payload.applications == ()

    def test_empty_map_is_stable(self):
        """Repeated builds of the empty map give identical bytes."""
        bodies = {build_payload({}).body for _ in range(5)}
        assert bodies == {b'{"profile":{"applications":[]}}'}

    def test_document_shape(self):
        """Should nest applications under profile with camelCase keys."""
        payload = build_payload({"music_app": "v1.4.10"})

        document = json.loads(payload.body)
        assert document == {
            "profile": {
                "applications": [
                    {"applicationId": "music_app", "version": "v1.4.10"},
                ]
            }
        }

    def test_sorted_by_application_id(self):
        """Entries are ordered by application id regardless of input order."""
        payload = build_payload({
            "settings_app": "v1.1.5",
            "music_app": "v1.4.10",
            "diagnostic_app": "v1.2.6",
        })

        ids = [app["applicationId"] for app in json.loads(payload.body)["profile"]["applications"]]
        assert ids == ["diagnostic_app", "music_app", "settings_app"]

    def test_insertion_order_does_not_change_bytes(self):
        """Same map built in different orders gives the same body."""
        first = build_payload({"a": "v1.0.0", "b": "v2.0.0", "c": "v3.0.0"})
        second = build_payload({"c": "v3.0.0", "a": "v1.0.0", "b": "v2.0.0"})

        assert first.body == second.body
        assert first == second

    def test_applications_tuple(self):
        """Parsed entries are exposed as ApplicationVersion values."""
        payload = build_payload({"b": "v2.0.0", "a": "v1.0.0"})

        assert payload.applications == (
            ApplicationVersion("a", "v1.0.0"),
            ApplicationVersion("b", "v2.0.0"),
        )


class TestUpdatePayload:
    """Test the UpdatePayload value."""

    def test_frozen(self):
        """Payload cannot be modified once built."""
        payload = build_payload({"a": "v1.0.0"})

        with pytest.raises(dataclasses.FrozenInstanceError):
            payload.body = b"{}"

    def test_pretty_matches_body(self):
        """Indented rendering holds the same document as the body."""
        payload = build_payload({"a": "v1.0.0", "b": "v2.0.0"})

        assert json.loads(payload.pretty()) == json.loads(payload.body)
        assert "\n" in payload.pretty()

    def test_to_dict(self):
        payload = UpdatePayload(applications=(), body=b"")
        assert payload.to_dict() == {"profile": {"applications": []}}
