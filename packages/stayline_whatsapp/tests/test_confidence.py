"""
Tests for the confidence gate.
"""

from stayline_whatsapp.service.confidence import ConfidenceGate


class TestConfidenceGate:
    """Tests for ConfidenceGate.classify."""

    def setup_method(self):
        self.gate = ConfidenceGate()

    def test_uncertainty_phrase_blocks_send(self):
        decision = self.gate.classify("Let me check with the host", "Can I check in early?")

        assert decision.confidence == 0.3
        assert decision.should_send is False

    def test_uncertainty_wins_over_documented_topic(self):
        decision = self.gate.classify(
            "I'm not sure what the wifi password is right now.",
            "What's the wifi password?",
        )

        assert decision.confidence == 0.3
        assert decision.should_send is False

    def test_documented_topic_sends(self):
        decision = self.gate.classify("The WiFi password is Welcome2024!", "What's the wifi password?")

        assert decision.confidence == 0.98
        assert decision.should_send is True

    def test_topic_match_is_case_insensitive(self):
        decision = self.gate.classify("There is free street parking.", "Is there PARKING nearby?")

        assert decision.should_send is True

    def test_medium_length_general_answer_held(self):
        draft = "x" * 50

        decision = self.gate.classify(draft, "Any tips for the area?")

        assert decision.confidence == 0.85
        assert decision.should_send is False

    def test_short_draft_low_confidence(self):
        decision = self.gate.classify("Sure!", "Can I come?")

        assert decision.confidence == 0.5
        assert decision.should_send is False

    def test_long_draft_low_confidence(self):
        decision = self.gate.classify("y" * 300, "Tell me everything")

        assert decision.confidence == 0.5

    def test_length_bounds_are_exclusive(self):
        assert self.gate.classify("z" * 20, "hello").confidence == 0.5
        assert self.gate.classify("z" * 21, "hello").confidence == 0.85
        assert self.gate.classify("z" * 299, "hello").confidence == 0.85

    def test_reasoning_is_set(self):
        assert self.gate.classify("Let me check", "q").reasoning == "Response contains uncertainty indicators"

    def test_custom_keyword_lists(self):
        gate = ConfidenceGate(
            uncertainty_phrases=["perhaps"],
            well_documented_topics=["pool hours"],
        )

        assert gate.classify("Perhaps tomorrow.", "pool hours?").confidence == 0.3
        assert gate.classify("The pool opens at 9am.", "What are the pool hours?").should_send is True
        # Defaults no longer apply
        assert gate.classify("Let me check that for you please", "wifi password?").confidence == 0.85

    def test_empty_list_disables_rule(self):
        gate = ConfidenceGate(uncertainty_phrases=[])

        decision = gate.classify("Let me check that for you please", "Can I check in early?")

        assert decision.confidence == 0.85
        assert decision.reasoning == "General response, requires manual review"
