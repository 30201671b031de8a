"""
Exception types for capability bring-up and game state transitions.
"""


class CapabilityError(Exception):
    """Base class for failures while bringing hand tracking online.

    ``status_message`` is the user-facing text shown in the status line.
    """

    def __init__(self, status_message: str, detail: str = ""):
        super().__init__(detail or status_message)
        self.status_message = status_message
        self.detail = detail


class RuntimeUnavailableError(CapabilityError):
    """MediaPipe / OpenCV runtime could not be found."""


class InsecureContextError(CapabilityError):
    """A network endpoint is reached over plain HTTP from a non-loopback host."""


class CameraError(CapabilityError):
    """Camera could not be opened."""


class CameraPermissionError(CameraError):
    """Access to the camera device was denied."""


class CameraNotFoundError(CameraError):
    """No camera device exists at the configured source."""


class CameraBusyError(CameraError):
    """The camera exists but another application holds it."""


class AssetError(CapabilityError):
    """A model asset failed to resolve or initialize."""


class LoadTimeoutError(CapabilityError):
    """Model loading did not finish within the configured bound."""


class WarmupError(CapabilityError):
    """The detector failed on its first frame."""


class InvalidTransitionError(Exception):
    """Raised when a game event has no transition from the current mode."""


class RuntimeIncompatibleError(CapabilityError):
    """MediaPipe is installed but its native runtime cannot run here."""


class PuzzleInvariantError(Exception):
    """Raised when slot locking or tile placement is inconsistent."""
