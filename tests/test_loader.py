"""
Test cases for resilient hand tracking bring-up, using fake camera and detector objects.
"""
import asyncio
import sys
import threading
import time
import unittest
from pathlib import Path
from unittest import mock

from pinchspell.config import LoaderConfig, ModelCandidate, load_config
from pinchspell.errors import (AssetError, CameraPermissionError, CapabilityError, InsecureContextError,
                               LoadTimeoutError, RuntimeIncompatibleError, RuntimeUnavailableError, WarmupError)
from pinchspell.loader import (LoadStage, Outcome, ResilientCapabilityLoader, StageResult, default_runtime_probe,
                               first_success, insecure_endpoints, is_loopback, poll_until, race_timeout)
from pinchspell.types import FrameSignal, HandSignal, Point


class FakeCamera:
    def __init__(self, source, width, height, fps, error=None):
        self.source = source
        self.size = (width, height)
        self.error = error
        self.opened = False
        self.closed = False

    def open(self):
        if self.error is not None:
            raise self.error
        self.opened = True

    def read_frame(self):
        return "frame"

    def blank_frame(self):
        return "blank"

    def close(self):
        self.closed = True


class FakeTracker:
    def __init__(self, name, hand_mode, error=None):
        self.name = name
        self.hand_mode = hand_mode
        self.error = error
        self.frames = []
        self.closed = False

    def process(self, frame):
        if self.error is not None:
            raise self.error
        self.frames.append(frame)
        return []

    def close(self):
        self.closed = True


class FakeSource:
    def __init__(self, camera, tracker):
        self.camera = camera
        self.tracker = tracker
        self.closed = False

    async def detect(self):
        return None, []

    def close(self):
        self.closed = True
        self.tracker.close()
        self.camera.close()


class Harness:
    """Builds a loader whose collaborators record what happened to them."""

    def __init__(self, failing=(), slow_s=0.0, camera_error=None, warmup_error=None, gate=None,
                 probe=lambda: True, camera_source=0, loader_cfg=None, tracker_errors=None):
        self.cfg = load_config()
        self.cfg.camera.source = camera_source
        self.cfg.loader = loader_cfg or LoaderConfig(preflight_poll_s=0.01, preflight_timeout_s=1.0,
                                                     load_timeout_s=2.0, status_interval_s=0.05)
        self.failing = set(failing)
        self.slow_s = slow_s
        self.camera_error = camera_error
        self.warmup_error = warmup_error
        self.tracker_errors = tracker_errors or {}
        self.gate = gate
        self.cameras = []
        self.trackers = []
        self.sources = []
        self.resolved = []
        self.loader = RecordingLoader(self.cfg, self.camera_factory, self.tracker_factory, self.source_factory,
                                      model_resolver=self.resolve, runtime_probe=probe)

    def camera_factory(self, source, width, height, fps):
        camera = FakeCamera(source, width, height, fps, self.camera_error)
        self.cameras.append(camera)
        return camera

    def resolve(self, candidate: ModelCandidate) -> Path:
        self.resolved.append(candidate.name)
        if self.gate is not None:
            self.gate.wait(5)
        if self.slow_s:
            time.sleep(self.slow_s)
        if candidate.name in self.failing:
            raise AssetError(f"{candidate.name} unavailable")
        return Path(candidate.name)

    def tracker_factory(self, path: Path, hand_mode: str):
        if path.name in self.tracker_errors:
            raise self.tracker_errors[path.name]
        tracker = FakeTracker(path.name, hand_mode, self.warmup_error)
        self.trackers.append(tracker)
        return tracker

    def source_factory(self, camera, tracker):
        source = FakeSource(camera, tracker)
        self.sources.append(source)
        return source


class RecordingLoader(ResilientCapabilityLoader):
    """Loader that keeps every (progress, message) pair it publishes."""

    def __init__(self, *args, **kwargs):
        self.history = []
        super().__init__(*args, **kwargs)

    def _update(self, attempt, **kwargs):
        super()._update(attempt, **kwargs)
        if self._is_current(attempt):
            self.history.append((self.state.progress, self.state.status_message))


class TestBringUp(unittest.IsolatedAsyncioTestCase):
    """Test the bring-up pipeline end to end."""

    async def test_ready_on_first_source(self):
        h = Harness()
        self.assertTrue(await h.loader.bring_up())

        state = h.loader.state
        self.assertIs(state.stage, LoadStage.READY)
        self.assertEqual(state.progress, 100)
        self.assertEqual(state.status_message, "System ready!")
        self.assertEqual(h.resolved, ["local-lite"])
        self.assertEqual(h.trackers[0].frames, ["frame"])
        self.assertEqual(h.cameras[0].size, (640, 360))

        status = h.loader.status()
        self.assertTrue(status.is_model_loaded)
        self.assertTrue(status.is_camera_active)
        self.assertEqual(status.loading_progress, 100)

    async def test_falls_back_to_third_source(self):
        """Test that two failing sources are skipped and the third one is used."""
        h = Harness(failing={"local-lite", "local-full"})
        self.assertTrue(await h.loader.bring_up())
        self.assertEqual(h.resolved, ["local-lite", "local-full", "remote"])
        self.assertEqual([t.name for t in h.trackers], ["remote"])
        self.assertTrue(h.loader.status().is_model_loaded)

    async def test_all_sources_fail(self):
        h = Harness(failing={"local-lite", "local-full", "remote"})
        self.assertFalse(await h.loader.bring_up())

        state = h.loader.state
        self.assertIs(state.stage, LoadStage.FAILED)
        self.assertIsInstance(state.error, AssetError)
        self.assertEqual(state.status_message, "Hand model failed to load from every source")
        self.assertFalse(h.loader.status().is_model_loaded)
        self.assertFalse(state.is_camera_active)
        self.assertTrue(h.cameras[0].closed)

    async def test_load_timeout(self):
        """Test that a hung model load fails with a timeout message."""
        h = Harness(slow_s=0.5, loader_cfg=LoaderConfig(preflight_poll_s=0.01, preflight_timeout_s=1.0,
                                                        load_timeout_s=0.1, status_interval_s=0.05))
        self.assertFalse(await h.loader.bring_up())
        self.assertIsInstance(h.loader.state.error, LoadTimeoutError)
        self.assertIn("timed out", h.loader.state.status_message)
        self.assertFalse(h.loader.status().is_model_loaded)
        self.assertEqual(h.trackers, [])

    async def test_status_reports_waiting_time(self):
        h = Harness(slow_s=0.2)
        self.assertTrue(await h.loader.bring_up())
        self.assertTrue(any("waited" in message for _, message in h.loader.history))

    async def test_camera_permission_denied(self):
        """Test that a camera failure surfaces its user-facing message and skips model loading."""
        h = Harness(camera_error=CameraPermissionError("Camera permission denied - allow camera access and restart"))
        self.assertFalse(await h.loader.bring_up())
        self.assertEqual(h.loader.state.status_message, "Camera permission denied - allow camera access and restart")
        self.assertEqual(h.resolved, [])
        self.assertFalse(h.loader.status().is_camera_active)

    async def test_unexpected_camera_failure(self):
        h = Harness(camera_error=OSError("device exploded"))
        self.assertFalse(await h.loader.bring_up())
        self.assertTrue(h.loader.state.status_message.startswith("Camera error:"))

    async def test_warmup_failure(self):
        h = Harness(warmup_error=RuntimeError("bad graph"))
        self.assertFalse(await h.loader.bring_up())
        self.assertIsInstance(h.loader.state.error, WarmupError)
        self.assertTrue(h.trackers[0].closed)

    async def test_runtime_missing(self):
        h = Harness(probe=lambda: False, loader_cfg=LoaderConfig(preflight_poll_s=0.01, preflight_timeout_s=0.05,
                                                                  load_timeout_s=1.0, status_interval_s=0.05))
        self.assertFalse(await h.loader.bring_up())
        self.assertIsInstance(h.loader.state.error, RuntimeUnavailableError)
        self.assertEqual(h.cameras, [])

    async def test_runtime_appears_while_polling(self):
        calls = []

        def probe():
            calls.append(1)
            return len(calls) >= 3

        h = Harness(probe=probe)
        self.assertTrue(await h.loader.bring_up())
        self.assertEqual(len(calls), 3)

    async def test_missing_mediapipe_fails_preflight(self):
        """Test that the default runtime check reports a missing MediaPipe install."""
        h = Harness(probe=default_runtime_probe,
                    loader_cfg=LoaderConfig(preflight_poll_s=0.01, preflight_timeout_s=0.05,
                                            load_timeout_s=1.0, status_interval_s=0.05))
        with mock.patch.dict(sys.modules, {"mediapipe": None}):
            self.assertFalse(await h.loader.bring_up())
        self.assertIsInstance(h.loader.state.error, RuntimeUnavailableError)
        self.assertIn("MediaPipe is not available", h.loader.state.status_message)

    async def test_broken_runtime_stops_fallbacks(self):
        """Test that a native runtime failure is reported as such and skips the remaining sources."""
        h = Harness(tracker_errors={"local-lite": ImportError("DLL load failed while importing _framework_bindings")})
        self.assertFalse(await h.loader.bring_up())
        self.assertIsInstance(h.loader.state.error, RuntimeIncompatibleError)
        self.assertIn("MediaPipe cannot run", h.loader.state.status_message)
        self.assertEqual(h.resolved, ["local-lite"])

    async def test_bad_model_file_falls_back(self):
        h = Harness(tracker_errors={"local-lite": RuntimeError("Unable to open zip archive")})
        self.assertTrue(await h.loader.bring_up())
        self.assertEqual(h.resolved, ["local-lite", "local-full"])

    async def test_plain_http_camera_stream_rejected(self):
        h = Harness(camera_source="http://192.168.1.20:8080/video")
        self.assertFalse(await h.loader.bring_up())
        self.assertIsInstance(h.loader.state.error, InsecureContextError)
        self.assertEqual(h.cameras, [])

    async def test_loopback_http_stream_allowed(self):
        h = Harness(camera_source="http://127.0.0.1:8080/video")
        self.assertTrue(await h.loader.bring_up())

    async def test_progress_is_monotonic_and_restarts(self):
        """Test that progress never decreases within an attempt and resets for a new one."""
        h = Harness(failing={"local-lite"})
        await h.loader.bring_up()
        values = [p for p, _ in h.loader.history]
        self.assertEqual(values, sorted(values))
        self.assertEqual(values[-1], 100)

        h.loader.history.clear()
        self.assertTrue(await h.loader.bring_up(hand_mode="one"))
        self.assertEqual(h.loader.history[0][0], 0)
        self.assertTrue(h.sources[0].closed)
        self.assertEqual(h.trackers[-1].hand_mode, "one")

    async def test_take_source_once(self):
        h = Harness()
        with self.assertRaises(RuntimeError):
            h.loader.take_source()

        await h.loader.bring_up()
        self.assertIs(h.loader.take_source(), h.sources[0])
        with self.assertRaises(RuntimeError):
            h.loader.take_source()

    async def test_teardown_releases_source(self):
        h = Harness()
        await h.loader.bring_up()
        h.loader.teardown()
        self.assertTrue(h.sources[0].closed)
        self.assertFalse(h.loader.state.is_ready)
        self.assertFalse(h.loader.status().is_model_loaded)

    async def test_teardown_during_loading_ignores_late_results(self):
        """Test that a detector finishing after teardown is closed and never published."""
        gate = threading.Event()
        h = Harness(gate=gate)
        task = asyncio.create_task(h.loader.bring_up())
        while h.loader.state.stage is not LoadStage.ASSETS:
            await asyncio.sleep(0.01)

        h.loader.teardown()
        progress = h.loader.state.progress
        gate.set()

        self.assertFalse(await task)
        self.assertFalse(h.loader.state.is_ready)
        self.assertEqual(h.loader.state.progress, progress)
        self.assertTrue(h.cameras[0].closed)
        self.assertTrue(all(t.closed for t in h.trackers))
        self.assertEqual(h.sources, [])

    async def test_status_mirrors_first_hand(self):
        h = Harness()
        await h.loader.bring_up()
        frame = FrameSignal(hand_presence=True, hands=[HandSignal(10, 20, True), HandSignal(30, 40, False)])
        status = h.loader.status(frame)
        self.assertTrue(status.hand_presence)
        self.assertEqual(status.cursor_position, Point(10, 20))
        self.assertTrue(status.is_pinching)


class TestCombinators(unittest.IsolatedAsyncioTestCase):
    """Test the retry, fallback and timeout helpers."""

    async def test_poll_until_gives_up(self):
        self.assertFalse(await poll_until(lambda: False, 0.01, 0.03))

    async def test_first_success_stops_on_fatal(self):
        calls = []

        def attempt(name, result):
            async def run():
                calls.append(name)
                return result
            return name, run

        result = await first_success([
            attempt("a", StageResult.recoverable(AssetError("a failed"))),
            attempt("b", StageResult.fatal(CapabilityError("b broke"))),
            attempt("c", StageResult.ok("c")),
        ])
        self.assertIs(result.outcome, Outcome.FATAL)
        self.assertEqual(calls, ["a", "b"])

    async def test_first_success_exhausted(self):
        async def fail():
            return StageResult.recoverable(AssetError("nope"))

        result = await first_success([("a", fail), ("b", fail)], "nothing worked")
        self.assertIs(result.outcome, Outcome.FATAL)
        self.assertEqual(result.error.status_message, "nothing worked")

    async def test_race_timeout(self):
        result = await race_timeout(asyncio.sleep(1, result=StageResult.ok()), 0.01, "too slow")
        self.assertIsInstance(result.error, LoadTimeoutError)
        self.assertEqual(result.error.status_message, "too slow")


class TestSecureContext(unittest.TestCase):

    def test_is_loopback(self):
        self.assertTrue(is_loopback("localhost"))
        self.assertTrue(is_loopback("127.0.0.1"))
        self.assertTrue(is_loopback("::1"))
        self.assertFalse(is_loopback("example.com"))

    def test_insecure_endpoints(self):
        endpoints = ["https://storage.googleapis.com/model.task", "http://localhost/model.task",
                     "http://example.com/model.task", "rtsp://10.0.0.5/stream"]
        self.assertEqual(insecure_endpoints(endpoints), ["http://example.com/model.task", "rtsp://10.0.0.5/stream"])


if __name__ == '__main__':
    unittest.main()
