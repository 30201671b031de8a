"""
Mock audio collaborator that logs pronunciations instead of speaking them.
"""
import logging

logger = logging.getLogger(__name__)


class MockAudio:
    """Mock audio player that records speak requests."""

    def __init__(self):
        """Initialize the mock audio player."""
        self.speak_count = 0
        self.spoken = []

    def speak(self, text: str) -> None:
        """Log the pronunciation request instead of playing it."""
        self.speak_count += 1
        self.spoken.append(text)
        logger.info(f"[MockAudio] Speak: {text!r} (call #{self.speak_count})")

    def reset_counters(self) -> None:
        """Reset counters for testing."""
        self.speak_count = 0
        self.spoken = []
