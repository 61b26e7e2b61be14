"""
Confidence Gate

Keyword heuristic deciding whether a drafted reply may be auto-sent or
must go to a human. Rules are checked in order; the first match wins.
"""

from stayline_whatsapp.contracts.results import GateDecision

# Phrases in the draft that mean the model is hedging
UNCERTAINTY_PHRASES = (
    "let me check",
    "i'm not sure",
    "i don't know",
    "not certain",
    "need to verify",
    "check with the host",
    "contact the host",
)

# Topics in the guest's question that property info answers directly
WELL_DOCUMENTED_TOPICS = (
    "wifi password",
    "check-in time",
    "check-out time",
    "trash day",
    "parking",
    "nearby restaurant",
    "address",
    "amenities",
)

# Exclusive bounds on draft length for the general-answer rule
MIN_GENERAL_LENGTH = 20
MAX_GENERAL_LENGTH = 300


class ConfidenceGate:
    """
    Heuristic classifier over (draft, original query).

    Keyword lists can be replaced per instance.
    """

    def __init__(
        self,
        uncertainty_phrases: tuple[str, ...] | list[str] | None = None,
        well_documented_topics: tuple[str, ...] | list[str] | None = None,
    ):
        if uncertainty_phrases is None:
            uncertainty_phrases = UNCERTAINTY_PHRASES
        if well_documented_topics is None:
            well_documented_topics = WELL_DOCUMENTED_TOPICS
        self.uncertainty_phrases = tuple(uncertainty_phrases)
        self.well_documented_topics = tuple(well_documented_topics)

    def classify(self, draft: str, original_query: str) -> GateDecision:
        draft_lower = (draft or "").lower()
        query_lower = (original_query or "").lower()

        if any(phrase in draft_lower for phrase in self.uncertainty_phrases):
            return GateDecision(
                confidence=0.3,
                should_send=False,
                reasoning="Response contains uncertainty indicators",
            )

        if any(topic in query_lower for topic in self.well_documented_topics):
            return GateDecision(
                confidence=0.98,
                should_send=True,
                reasoning="Question about well-documented property information",
            )

        if MIN_GENERAL_LENGTH < len(draft or "") < MAX_GENERAL_LENGTH:
            # Medium confidence is never enough to send unattended
            return GateDecision(
                confidence=0.85,
                should_send=False,
                reasoning="General response, requires manual review",
            )

        return GateDecision(
            confidence=0.5,
            should_send=False,
            reasoning="Response length suggests uncertainty",
        )
