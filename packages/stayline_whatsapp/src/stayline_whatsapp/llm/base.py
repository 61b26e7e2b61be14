from abc import ABC, abstractmethod


class TextDrafter(ABC):
    """Abstract base class for reply drafters."""

    @abstractmethod
    async def draft(
        self,
        history: list[dict[str, str]],
        property_context: str,
        new_message: str,
    ) -> str:
        """
        Draft a reply to ``new_message``.

        ``history`` holds ``{"role": "user"|"assistant", "content": ...}``
        turns, oldest first. Raises DraftingError on failure.
        """

    async def close(self) -> None:
        return None
