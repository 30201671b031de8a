"""
Resilient bring-up of the hand tracking capability.

Bring-up runs as a pipeline of named stages (runtime preflight, secure
context, camera, model assets, warm-up). Each stage returns a StageResult
tagged OK, RECOVERABLE or FATAL; the retry, fallback and timeout policy lives
in three combinators (poll_until, first_success, race_timeout) shared by all
stages.
"""
import asyncio
import importlib
import importlib.util
import ipaddress
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .config import Cfg, ModelCandidate
from .errors import (AssetError, CameraError, CapabilityError, InsecureContextError, LoadTimeoutError,
                     RuntimeIncompatibleError, RuntimeUnavailableError, WarmupError)
from .models import remote_locations, resolve_model
from .types import CapabilityStatus, FrameSignal, Point

logger = logging.getLogger(__name__)

REQUIRED_MODULES = ("mediapipe", "cv2")
SECURE_SCHEMES = ("https", "rtsps", "file", "")
LOOPBACK_HOSTS = ("localhost",)
# native runtime failures (as opposed to a bad model file)
RUNTIME_FAILURE_PATTERN = re.compile(
    r"wasm|abort|simd|module|illegal instruction|undefined symbol|dll load", re.IGNORECASE)

# Progress checkpoints within one attempt
PROGRESS_PREFLIGHT = 10
PROGRESS_SECURE = 20
PROGRESS_CAMERA_START = 25
PROGRESS_CAMERA = 35
PROGRESS_ASSETS_START = 40
PROGRESS_ASSETS_DONE = 85
PROGRESS_WARMUP = 90
PROGRESS_READY = 100


class LoadStage(Enum):
    IDLE = auto()
    PREFLIGHT = auto()
    SECURE_CONTEXT = auto()
    CAMERA = auto()
    ASSETS = auto()
    WARMUP = auto()
    READY = auto()
    FAILED = auto()


@dataclass
class LoadCapabilityState:
    """Progress of one bring-up attempt."""
    stage: LoadStage = LoadStage.IDLE
    progress: int = 0
    status_message: str = "Initializing..."
    is_ready: bool = False
    is_camera_active: bool = False
    error: Optional[CapabilityError] = None


class Outcome(Enum):
    OK = auto()
    RECOVERABLE = auto()
    FATAL = auto()


@dataclass
class StageResult:
    """Tagged result of a bring-up stage."""
    outcome: Outcome
    value: Any = None
    error: Optional[CapabilityError] = None

    @classmethod
    def ok(cls, value: Any = None) -> "StageResult":
        return cls(Outcome.OK, value=value)

    @classmethod
    def recoverable(cls, error: CapabilityError) -> "StageResult":
        return cls(Outcome.RECOVERABLE, error=error)

    @classmethod
    def fatal(cls, error: CapabilityError) -> "StageResult":
        return cls(Outcome.FATAL, error=error)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.OK


# ----------------------------------------------------------------- combinators

async def poll_until(probe: Callable[[], bool], interval: float, timeout: float) -> bool:
    """Call ``probe`` every ``interval`` seconds until it returns True or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while True:
        if probe():
            return True
        if time.monotonic() + interval > deadline:
            return False
        await asyncio.sleep(interval)


Attempt = Tuple[str, Callable[[], Awaitable[StageResult]]]


async def first_success(attempts: Sequence[Attempt], exhausted_message: str = "All sources failed") -> StageResult:
    """
    Run attempts in order until one succeeds.

    RECOVERABLE results move on to the next attempt; a FATAL result stops the
    chain immediately. When every attempt failed, the last error is wrapped
    in a FATAL AssetError.
    """
    failures: List[str] = []
    for name, attempt in attempts:
        result = await attempt()
        if result.outcome is Outcome.RECOVERABLE:
            detail = str(result.error) if result.error else "unknown error"
            logger.warning(f"⚠️ {name} failed, trying next source: {detail}")
            failures.append(f"{name}: {detail}")
            continue
        return result
    return StageResult.fatal(AssetError(exhausted_message, "; ".join(failures)))


async def race_timeout(awaitable: Awaitable[StageResult], timeout: float, message: str) -> StageResult:
    """Await a stage, turning expiry into a FATAL LoadTimeoutError."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        return StageResult.fatal(LoadTimeoutError(message, f"no result after {timeout:.0f}s"))


# ------------------------------------------------------------------ checks

def default_runtime_probe() -> bool:
    """True when MediaPipe's HandLandmarker and OpenCV's VideoCapture can be imported."""
    if any(importlib.util.find_spec(name) is None for name in REQUIRED_MODULES):
        return False
    try:
        vision = importlib.import_module("mediapipe.tasks.python.vision")
        cv2 = importlib.import_module("cv2")
    except ImportError:
        return False
    return hasattr(vision, "HandLandmarker") and hasattr(cv2, "VideoCapture")


def is_runtime_failure(error: BaseException) -> bool:
    """True when a detector failed because MediaPipe itself cannot run, whatever the model."""
    return isinstance(error, ImportError) or bool(RUNTIME_FAILURE_PATTERN.search(str(error)))


def is_loopback(host: str) -> bool:
    if host in LOOPBACK_HOSTS or host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def insecure_endpoints(endpoints: Sequence[str]) -> List[str]:
    """Endpoints reached without transport security from a non-loopback host."""
    insecure = []
    for endpoint in endpoints:
        parsed = urlparse(endpoint)
        if parsed.scheme in SECURE_SCHEMES:
            continue
        if is_loopback(parsed.hostname or ""):
            continue
        insecure.append(endpoint)
    return insecure


# ------------------------------------------------------------------ loader

class _Attempt:
    """Resources acquired by one bring-up attempt."""

    def __init__(self, generation: int):
        self.generation = generation
        self.camera = None
        self.tracker = None
        self.source = None
        self.ticker: Optional[asyncio.Task] = None

    def release(self) -> None:
        if self.ticker is not None:
            self.ticker.cancel()
            self.ticker = None
        if self.source is not None:
            self.source.close()
        else:
            if self.tracker is not None:
                self.tracker.close()
            if self.camera is not None:
                self.camera.close()
        self.source = self.tracker = self.camera = None


class ResilientCapabilityLoader:
    """
    Brings the hand pose source online and reports progress.

    Collaborators are injected so that the pipeline can run against real
    OpenCV/MediaPipe objects or test doubles:

    * ``camera_factory(source, width, height, fps)`` -> object with
      ``open()``, ``read_frame()``, ``blank_frame()``, ``close()``
    * ``tracker_factory(model_path, hand_mode)`` -> object with
      ``process(frame)`` and ``close()``
    * ``source_factory(camera, tracker)`` -> live hand pose source
    * ``model_resolver(candidate)`` -> local model path
    * ``runtime_probe()`` -> bool
    """

    def __init__(self, cfg: Cfg, camera_factory: Callable[..., Any], tracker_factory: Callable[[Path, str], Any],
                 source_factory: Callable[[Any, Any], Any],
                 model_resolver: Optional[Callable[[ModelCandidate], Path]] = None,
                 runtime_probe: Callable[[], bool] = default_runtime_probe,
                 viewport_width: Optional[int] = None):
        self.cfg = cfg
        self.camera_factory = camera_factory
        self.tracker_factory = tracker_factory
        self.source_factory = source_factory
        self.model_resolver = model_resolver or (lambda c: resolve_model(c, cfg.models, cfg.base_dir))
        self.runtime_probe = runtime_probe
        self.viewport_width = viewport_width if viewport_width is not None else cfg.display.width

        self.state = LoadCapabilityState()
        self.hand_mode = cfg.mediapipe.hand_mode
        self._generation = 0
        self._alive = True
        self._attempt: Optional[_Attempt] = None
        self._handed_off = False

    # ----------------------------------------------------------- public API

    async def bring_up(self, hand_mode: Optional[str] = None) -> bool:
        """
        Run one complete bring-up attempt, replacing any previous one.

        Returns:
            True if the capability is ready
        """
        self._release_attempt()
        self._generation += 1
        self._alive = True
        self._handed_off = False
        if hand_mode is not None:
            self.hand_mode = hand_mode
        attempt = _Attempt(self._generation)
        self._attempt = attempt
        self.state = LoadCapabilityState()

        try:
            result = await self._run_pipeline(attempt)
        except asyncio.CancelledError:
            if self._attempt is attempt:
                self._release_attempt()
            else:
                attempt.release()
            raise

        if not self._is_current(attempt):
            attempt.release()
            return False

        self._stop_ticker(attempt)
        if result.succeeded:
            return True

        error = result.error or CapabilityError("Startup error")
        logger.error(f"❌ Hand tracking unavailable: {error.status_message} ({error})")
        self.state.stage = LoadStage.FAILED
        self.state.status_message = error.status_message
        self.state.error = error
        attempt.release()
        self.state.is_camera_active = False
        return False

    def take_source(self):
        """
        Hand the live pose source to the frame loop.

        The loader still closes it on teardown.

        Raises:
            RuntimeError: if the capability is not ready or was already handed off
        """
        if not self.state.is_ready or self._attempt is None or self._attempt.source is None:
            raise RuntimeError("Hand tracking is not ready")
        if self._handed_off:
            raise RuntimeError("Hand pose source was already handed off")
        self._handed_off = True
        return self._attempt.source

    def teardown(self) -> None:
        """Release camera and detector and ignore any late results of the current attempt."""
        self._alive = False
        self._generation += 1
        self._release_attempt()
        self.state.is_ready = False
        self.state.is_camera_active = False

    def status(self, frame: Optional[FrameSignal] = None) -> CapabilityStatus:
        cursor = Point(0.0, 0.0)
        pinching = False
        if frame is not None and frame.hands:
            cursor = Point(frame.hands[0].x, frame.hands[0].y)
            pinching = frame.hands[0].pinching
        return CapabilityStatus(
            is_camera_active=self.state.is_camera_active,
            is_model_loaded=self.state.is_ready,
            hand_presence=bool(frame and frame.hand_presence),
            cursor_position=cursor,
            is_pinching=pinching,
            status_message=self.state.status_message,
            loading_progress=self.state.progress
        )

    # ------------------------------------------------------------- pipeline

    async def _run_pipeline(self, attempt: _Attempt) -> StageResult:
        stages = [
            (LoadStage.PREFLIGHT, self._stage_preflight),
            (LoadStage.SECURE_CONTEXT, self._stage_secure_context),
            (LoadStage.CAMERA, self._stage_camera),
            (LoadStage.ASSETS, self._stage_assets),
            (LoadStage.WARMUP, self._stage_warmup),
            (LoadStage.READY, self._stage_ready),
        ]
        for stage, run in stages:
            if not self._is_current(attempt):
                return StageResult.fatal(CapabilityError("Startup cancelled"))
            self._update(attempt, stage=stage)
            logger.info(f"Bring-up stage: {stage.name}")
            result = await run(attempt)
            if not result.succeeded:
                return result
        return StageResult.ok()

    async def _stage_preflight(self, attempt: _Attempt) -> StageResult:
        self._update(attempt, message="Checking MediaPipe runtime...")
        loader_cfg = self.cfg.loader
        if not await poll_until(self.runtime_probe, loader_cfg.preflight_poll_s, loader_cfg.preflight_timeout_s):
            return StageResult.fatal(RuntimeUnavailableError(
                "MediaPipe is not available - install mediapipe and opencv-python, then restart"))
        self._update(attempt, progress=PROGRESS_PREFLIGHT)
        return StageResult.ok()

    async def _stage_secure_context(self, attempt: _Attempt) -> StageResult:
        endpoints = remote_locations(self.cfg.models)
        if isinstance(self.cfg.camera.source, str):
            endpoints.append(self.cfg.camera.source)
        insecure = insecure_endpoints(endpoints)
        if insecure:
            return StageResult.fatal(InsecureContextError(
                "Use HTTPS endpoints (camera and model access need a secure connection) or run them locally",
                ", ".join(insecure)))
        self._update(attempt, progress=PROGRESS_SECURE)
        return StageResult.ok()

    async def _stage_camera(self, attempt: _Attempt) -> StageResult:
        width, height = self.cfg.camera.capture_size(self.viewport_width)
        self._update(attempt, progress=PROGRESS_CAMERA_START, message="Starting camera...")
        try:
            camera = self.camera_factory(self.cfg.camera.source, width, height, self.cfg.camera.fps)
            await self._in_thread(attempt, camera.open, discard=lambda _: camera.close())
        except CameraError as e:
            return StageResult.fatal(e)
        except Exception as e:
            return StageResult.fatal(CameraError(f"Camera error: {e}", str(e)))

        if not self._is_current(attempt):
            camera.close()
            return StageResult.fatal(CapabilityError("Startup cancelled"))
        attempt.camera = camera
        self._update(attempt, progress=PROGRESS_CAMERA, camera_active=True)
        logger.info("✅ Camera started")
        return StageResult.ok()

    async def _stage_assets(self, attempt: _Attempt) -> StageResult:
        candidates = self.cfg.models.candidates
        if not candidates:
            return StageResult.fatal(AssetError("No hand model sources configured"))

        self._update(attempt, progress=PROGRESS_ASSETS_START,
                     message="Loading hand model... (first start takes 10-30 seconds)")
        attempt.ticker = asyncio.create_task(self._status_ticker(attempt))

        step = (PROGRESS_ASSETS_DONE - PROGRESS_ASSETS_START) / len(candidates)
        attempts = [
            (candidate.name, self._model_attempt(attempt, candidate, PROGRESS_ASSETS_START + round(step * (i + 1))))
            for i, candidate in enumerate(candidates)
        ]
        result = await race_timeout(
            first_success(attempts, "Hand model failed to load from every source"),
            self.cfg.loader.load_timeout_s,
            "Loading timed out - check your network connection and try again")
        self._stop_ticker(attempt)

        if result.succeeded:
            attempt.tracker = result.value
            self._update(attempt, progress=PROGRESS_ASSETS_DONE, message="Model loaded! Warming up...")
        return result

    def _model_attempt(self, attempt: _Attempt, candidate: ModelCandidate, progress_after: int):
        async def run() -> StageResult:
            try:
                path = await self._in_thread(attempt, self.model_resolver, candidate)
                tracker = await self._in_thread(attempt, self.tracker_factory, path, self.hand_mode,
                                                discard=lambda t: t.close())
            except AssetError as e:
                self._update(attempt, progress=progress_after)
                return StageResult.recoverable(e)
            except Exception as e:
                self._update(attempt, progress=progress_after)
                if is_runtime_failure(e):
                    return StageResult.fatal(RuntimeIncompatibleError(
                        "MediaPipe cannot run on this system - reinstall mediapipe for this Python version", str(e)))
                return StageResult.recoverable(AssetError(f"Model '{candidate.name}' failed to load", str(e)))

            if not self._is_current(attempt):
                tracker.close()
                return StageResult.fatal(CapabilityError("Startup cancelled"))
            logger.info(f"✅ Hand model '{candidate.name}' loaded")
            return StageResult.ok(tracker)
        return run

    async def _stage_warmup(self, attempt: _Attempt) -> StageResult:
        def warm():
            frame = attempt.camera.read_frame()
            if frame is None:
                frame = attempt.camera.blank_frame()
            attempt.tracker.process(frame)

        try:
            await self._in_thread(attempt, warm)
        except Exception as e:
            return StageResult.fatal(WarmupError(f"Hand model failed on its first frame: {e}", str(e)))
        self._update(attempt, progress=PROGRESS_WARMUP)
        return StageResult.ok()

    async def _stage_ready(self, attempt: _Attempt) -> StageResult:
        attempt.source = self.source_factory(attempt.camera, attempt.tracker)
        self.state.is_ready = True
        self._update(attempt, progress=PROGRESS_READY, message="System ready!")
        logger.info("✅ Hand tracking ready")
        return StageResult.ok()

    async def _status_ticker(self, attempt: _Attempt) -> None:
        interval = self.cfg.loader.status_interval_s
        waited = 0.0
        while self._is_current(attempt):
            await asyncio.sleep(interval)
            waited += interval
            self._update(attempt, message=f"Loading hand model... (waited {waited:.0f}s, please keep this window open)")

    # -------------------------------------------------------------- helpers

    async def _in_thread(self, attempt: _Attempt, fn: Callable, *args, discard: Optional[Callable] = None):
        """
        Run a blocking call in a worker thread.

        If the awaiting coroutine is cancelled (timeout, teardown) the call
        keeps running; ``discard`` then receives its result once it lands.
        """
        task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            def _cleanup(t: asyncio.Future) -> None:
                if t.cancelled():
                    return
                if t.exception() is None and discard is not None:
                    discard(t.result())
            task.add_done_callback(_cleanup)
            raise

    def _is_current(self, attempt: _Attempt) -> bool:
        return self._alive and attempt.generation == self._generation

    def _update(self, attempt: _Attempt, stage: Optional[LoadStage] = None, progress: Optional[int] = None,
                message: Optional[str] = None, camera_active: Optional[bool] = None) -> None:
        if not self._is_current(attempt):
            return
        if stage is not None:
            self.state.stage = stage
        if progress is not None:
            self.state.progress = max(self.state.progress, min(100, progress))
        if message is not None:
            self.state.status_message = message
            logger.debug(f"Status: {message}")
        if camera_active is not None:
            self.state.is_camera_active = camera_active

    def _stop_ticker(self, attempt: _Attempt) -> None:
        if attempt.ticker is not None:
            attempt.ticker.cancel()
            attempt.ticker = None

    def _release_attempt(self) -> None:
        if self._attempt is not None:
            self._attempt.release()
            self._attempt = None
