"""
Reply Drafting

Text-generation contract and its OpenAI-compatible implementation.
"""

from stayline_whatsapp.llm.base import TextDrafter
from stayline_whatsapp.llm.chat_completions import ChatCompletionsDrafter

__all__ = ["TextDrafter", "ChatCompletionsDrafter"]
