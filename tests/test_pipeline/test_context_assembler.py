"""Tests for ContextAssembler."""

import logging

import pytest

from storyloom.pipeline.context_assembler import ContextAssembler
from storyloom.pipeline.intent import NarrativeIntent
from storyloom.pipeline.state import NarrativeState, ParticipantRecord
from tests.factories import create_state


class TestParticipantSelection:
    """Tests for which participants enter the context."""

    def test_defaults_to_active_participants(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert context.participant_names == ["Alice", "Bob"]

    def test_explicit_targets_include_inactive(self, state):
        intent = NarrativeIntent.dialogue(["alice", "carol"])

        context = ContextAssembler().assemble(state, intent)

        assert [p.id for p in context.participants] == ["alice", "carol"]
        assert [p.name for p in context.inactive_participants] == ["Carol"]

    def test_unknown_target_is_skipped(self, state, caplog):
        intent = NarrativeIntent.dialogue(["alice", "nobody"])

        with caplog.at_level(logging.WARNING, logger="storyloom.pipeline.context_assembler"):
            context = ContextAssembler().assemble(state, intent)

        assert [p.id for p in context.participants] == ["alice"]
        assert context.metadata["skipped_targets"] == ("nobody",)
        assert "nobody" in caplog.text

    def test_only_unknown_targets_gives_empty_cast(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.dialogue(["zed"]))

        assert context.participants == ()
        assert context.location is None

    def test_known_facts_are_copied(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert context.participant("alice").known_facts == frozenset({"owes Bob money"})


class TestLocationSelection:
    """Tests for location inference."""

    def test_shared_location_is_inferred(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert context.location.name == "The Rusty Anchor"
        assert context.location.present_participant_ids == frozenset({"alice", "bob"})

    def test_spread_out_participants_have_no_location(self, state):
        state.get_participant("bob").location_id = "docks"

        context = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert context.location is None
        assert context.metadata["has_location"] is False

    def test_target_location(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.describe_location("docks"))

        assert context.location.name == "The Docks"
        assert context.location.present_participant_ids == frozenset()

    def test_unknown_target_location_falls_back_to_inference(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.describe_location("moon"))

        assert context.location.name == "The Rusty Anchor"
        assert context.metadata["skipped_targets"] == ("moon",)


class TestContextContents:
    """Tests for events, summary and metadata."""

    def test_event_window(self, state):
        context = ContextAssembler(event_window=4).assemble(state, NarrativeIntent.continue_story())

        assert [e.description for e in context.recent_events] == [
            "Event 8",
            "Event 9",
            "Event 10",
            "Event 11",
        ]

    def test_default_window_is_ten(self, state):
        context = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert len(context.recent_events) == 10

    def test_summary_and_metadata(self):
        state = create_state(summary="Alice lost the wager.")

        context = ContextAssembler().assemble(state, NarrativeIntent.summarize(), run_id="run-1")

        assert context.run_id == "run-1"
        assert context.world_name == "Eldoria"
        assert context.summary == "Alice lost the wager."
        assert context.metadata["intent_type"] == "summarize"
        assert context.metadata["participant_count"] == 2
        assert context.metadata["event_count"] == 10

    def test_run_id_is_generated(self, state):
        first = ContextAssembler().assemble(state, NarrativeIntent.continue_story())
        second = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert first.run_id != second.run_id

    def test_empty_world(self):
        context = ContextAssembler().assemble(NarrativeState("Void"), NarrativeIntent.continue_story())

        assert context.participants == ()
        assert context.location is None
        assert context.recent_events == ()

    def test_missing_arguments_raise(self, state):
        with pytest.raises(ValueError):
            ContextAssembler().assemble(None, NarrativeIntent.continue_story())
        with pytest.raises(ValueError):
            ContextAssembler().assemble(state, None)

    def test_negative_window_raises(self):
        with pytest.raises(ValueError):
            ContextAssembler(event_window=-1)

    def test_state_is_not_modified(self):
        alice = ParticipantRecord("alice", "Alice", known_facts={"secret"})
        state = NarrativeState("Eldoria", participants=[alice])

        context = ContextAssembler().assemble(state, NarrativeIntent.continue_story())

        assert alice.known_facts == {"secret"}
        assert context.participant("alice").known_facts == frozenset({"secret"})
