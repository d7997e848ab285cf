"""Tests for the core data models."""

import pytest
from pydantic import ValidationError

from companion.models import Association, ContextBrief, Mindstate, Turn


class TestAssociation:
    def test_legacy_tags_normalized(self):
        association = Association(type="RECALL", intensity="Strong", text="x", source="graphiti")
        assert association.type == "recollection"
        assert association.intensity == "strong"
        assert association.source == "memory-service"

    def test_sign_and_pattern_aliases(self):
        association = Association(type="sign", text="x", source="pattern")
        assert association.type == "signal"
        assert association.source == "pattern-fallback"

    def test_defaults(self):
        association = Association(type="hunch", text="x")
        assert association.intensity == "medium"
        assert association.source == "inference"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Association(type="dream", text="x")

    def test_frozen(self):
        association = Association(type="pull", text="x")
        with pytest.raises(ValidationError):
            association.text = "y"


def test_turn_is_immutable():
    turn = Turn(turn_id="t1", user_id="u", user_message="hi", response="hello",
                mindstate=Mindstate(identity_kernel="k"))
    with pytest.raises(ValidationError):
        turn.response = "changed"
    assert turn.timestamp.tzinfo is not None
    assert turn.debug is None


def test_context_brief_defaults():
    brief = ContextBrief()
    assert brief.detected_emotion == "neutral"
    assert brief.primary_intent == "sharing"
    assert brief.depth_guidance == "moderate"
    assert brief.memory_source == "none"
    assert brief.relationship_history is None
