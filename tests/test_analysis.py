"""Tests for emotion, intent and approach classification."""

import pytest

from companion.context.analysis import (
    NEW_PERSON,
    classify_intent,
    detect_emotion,
    determine_approach,
    extract_preferences,
    relationship_sentence,
)
from companion.models import Association


class TestDetectEmotion:
    @pytest.mark.parametrize(
        ("message", "emotion"),
        [
            ("I am feeling really sad today", "sad"),
            ("This is so frustrating, I'm annoyed", "frustrated"),
            ("I'm nervous about tomorrow", "anxious"),
            ("I got the job, I'm so excited!", "positive"),
            ("I'm confused by all this", "confused"),
            ("I went to the store", "neutral"),
            ("I made dinner for my family", "neutral"),
            ("I am downloading the new album", "neutral"),
            ("The greatest show", "neutral"),
        ],
    )
    def test_families(self, message, emotion):
        assert detect_emotion(message)[0] == emotion

    def test_first_family_wins(self):
        assert detect_emotion("sad and angry")[0] == "sad"

    def test_guidance(self):
        assert detect_emotion("I'm worried")[1] == "They may need reassurance and grounding."
        assert detect_emotion("hello")[1] == ""


class TestClassifyIntent:
    def test_trailing_question_mark(self):
        assert classify_intent("I wonder about that?", "neutral", has_history=False) == "question"

    def test_leading_wh_word(self):
        assert classify_intent("How does this work", "neutral", has_history=False) == "question"

    def test_greeting(self):
        assert classify_intent("Hello there!", "neutral", has_history=False) == "greeting"
        assert classify_intent("Good morning friend", "neutral", has_history=True) == "greeting"

    def test_request(self):
        assert classify_intent("I need a recipe for dinner", "neutral", has_history=False) == "request"

    def test_venting_on_negative_emotion(self):
        assert classify_intent("I am feeling really sad today", "sad", has_history=False) == "venting"

    def test_plain_statement_is_not_venting(self):
        message = "I made dinner for my family"
        emotion, _ = detect_emotion(message)
        assert classify_intent(message, emotion, has_history=False) == "sharing"

    def test_continuation_with_history(self):
        assert classify_intent("Then I went home", "neutral", has_history=True) == "continuation"

    def test_sharing_by_default(self):
        assert classify_intent("Then I went home", "positive", has_history=False) == "sharing"

    def test_question_beats_greeting(self):
        assert classify_intent("Hi, are you there?", "neutral", has_history=False) == "question"


class TestDetermineApproach:
    def test_greeting_is_brief(self):
        approach = determine_approach("greeting", "neutral")
        assert approach.depth == "brief"
        assert approach.tone == "warm and present"

    def test_sad_escalates(self):
        approach = determine_approach("question", "sad")
        assert approach.depth == "deep"
        assert approach.tone == "gentle, grounding, and supportive"

    def test_positive_matches_energy(self):
        approach = determine_approach("sharing", "positive")
        assert approach.tone == "warm and matching their energy"
        assert approach.depth == "moderate"
        assert approach.topics == ["what this means to them"]

    def test_venting_defaults(self):
        approach = determine_approach("venting", "frustrated")
        assert approach.tone == "gentle and supportive"
        assert approach.depth == "deep"


class TestRelationship:
    def test_thresholds(self):
        assert relationship_sentence(0, []) == NEW_PERSON
        assert relationship_sentence(1, []) == "You are getting to know this person."
        assert relationship_sentence(10, []) == "You are getting to know this person."
        assert relationship_sentence(11, []).startswith("This is someone you know well.")

    def test_memories_without_turns(self):
        memories = [Association(type="recollection", text="x")]
        assert relationship_sentence(0, memories) == "You have memories of this person from before."


def test_extract_preferences_first_three():
    associations = [
        Association(type="preference", text="likes tea"),
        Association(type="recollection", text="went to Rome"),
        Association(type="teaching", text="taught me about sourdough"),
        Association(type="preference", text="hates mornings"),
        Association(type="preference", text="reads sci-fi"),
    ]
    assert extract_preferences(associations) == ["likes tea", "taught me about sourdough", "hates mornings"]
