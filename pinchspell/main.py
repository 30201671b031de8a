"""
Main application for the gesture spelling game.
"""
import argparse
import asyncio
import logging
import time
from typing import Optional

import cv2
import numpy as np

from .audio_mock import MockAudio
from .camera import CameraManager
from .config import HAND_MODES, load_config
from .controller import InteractionController
from .game import GameEvent, GameMode, GameStateMachine
from .gestures import GestureClassifier
from .landmarks import CameraHandSource, create_tracker
from .loader import LoadStage, ResilientCapabilityLoader
from .render import Renderer
from .types import FrameSignal
from .words import WordBank

logger = logging.getLogger(__name__)

IDLE_FRAME_S = 1 / 30


class PinchSpellApp:
    """Main application class: capability bring-up, frame loop and display."""

    def __init__(self, config_path: Optional[str] = None, hand_mode: Optional[str] = None):
        """Initialize the application with configuration."""
        self.config = load_config(config_path)
        self._preselected = hand_mode is not None
        if hand_mode is not None:
            self.config.mediapipe.hand_mode = hand_mode
        self.viewport = (self.config.display.width, self.config.display.height)

        self.machine = GameStateMachine()
        self.audio = MockAudio()
        self.classifier = GestureClassifier(self.config.gestures.pinch_threshold)
        self.controller = InteractionController(
            self.config, self.machine, WordBank(), self.audio, self.viewport
        )
        self.loader = ResilientCapabilityLoader(
            self.config,
            camera_factory=CameraManager,
            tracker_factory=lambda path, mode: create_tracker(path, self.config.mediapipe, mode),
            source_factory=CameraHandSource,
            viewport_width=self.viewport[0]
        )
        self.renderer = Renderer(self.config)

        self._bring_up_task: Optional[asyncio.Task] = None
        self._source = None
        self._last_signal = FrameSignal(hand_presence=False)
        self._running = False

    # ------------------------------------------------------------ capability

    def restart_capability(self, hand_mode: str) -> None:
        """Tear down hand tracking and bring it up again for a hand mode."""
        if self._bring_up_task is not None and not self._bring_up_task.done():
            self._bring_up_task.cancel()
        self._source = None
        self.loader.teardown()
        logger.info(f"Starting hand tracking ({hand_mode}-hand mode)")
        self._bring_up_task = asyncio.create_task(self.loader.bring_up(hand_mode))

    def select_mode(self, hand_mode: str) -> None:
        if hand_mode not in HAND_MODES or not self.machine.can(GameEvent.SELECT_MODE):
            return
        self.machine.fire(GameEvent.SELECT_MODE)
        if hand_mode != self.loader.hand_mode or self.loader.state.stage is LoadStage.FAILED:
            self.restart_capability(hand_mode)

    def _sync_capability(self) -> None:
        if not self.loader.state.is_ready:
            return
        if self._source is None:
            self._source = self.loader.take_source()
        if self.machine.mode is GameMode.LOADING:
            self.machine.fire(GameEvent.CAPABILITY_READY)

    # ------------------------------------------------------------- frames

    async def process_frame(self) -> Optional[np.ndarray]:
        """Run one detection and feed its gestures to the controller."""
        frame, hands = await self._source.detect()
        signal = self.classifier.classify(hands, self.viewport)
        self._last_signal = signal

        self.controller.on_hand_presence(signal.hand_presence)
        for index, hand in enumerate(signal.hands):
            self.controller.on_hand_detected(hand, index)
        self.controller.end_absent_hands(len(signal.hands))
        self.controller.tick()
        return frame

    def handle_key(self, key: int) -> None:
        if key == ord('q'):
            self._running = False
        elif key == ord('1'):
            self.select_mode("one")
        elif key == ord('2'):
            self.select_mode("two")
        elif key == ord('n'):
            self.controller.next_word()

    async def run(self):
        """Run the main application loop."""
        logger.info(f"Starting {self.config.display.window_name}")
        logger.info("Pinch (index + thumb) to grab letters, drop them into the slots")
        logger.info("Keys: 1 = one hand, 2 = two hands, n = next word, q = quit")

        self._running = True
        self.restart_capability(self.config.mediapipe.hand_mode)
        if self._preselected:
            self.machine.fire(GameEvent.SELECT_MODE)
        try:
            while self._running:
                self._sync_capability()

                frame = None
                if self._source is not None:
                    try:
                        frame = await self.process_frame()
                    except Exception:
                        logger.exception("Frame processing failed, continuing with the next frame")
                else:
                    await asyncio.sleep(IDLE_FRAME_S)

                canvas = self.renderer.draw(frame, self.controller, self.loader.state,
                                            self._last_signal, time.monotonic())
                cv2.imshow(self.config.display.window_name, canvas)
                self.handle_key(cv2.waitKey(1) & 0xFF)
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Cleanup resources."""
        if self._bring_up_task is not None and not self._bring_up_task.done():
            self._bring_up_task.cancel()
        self._source = None
        self.loader.teardown()
        cv2.destroyAllWindows()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gesture-controlled word spelling game.")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--hands", choices=HAND_MODES, default=None, help="Start in one- or two-hand mode")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def main(argv=None):
    """Entry point for the application."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    )

    try:
        app = PinchSpellApp(config_path=args.config, hand_mode=args.hands)
        await app.run()
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")


if __name__ == "__main__":
    asyncio.run(main())
