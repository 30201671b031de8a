"""
Configuration management for the gesture spelling game.
"""
import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple, Union
from dataclasses import dataclass, field

from dotenv import load_dotenv


CONFIG_ENV_VAR = "PINCHSPELL_CONFIG"
HAND_MODES = ("one", "two")


@dataclass
class CameraConfig:
    """Camera configuration settings."""
    source: Union[int, str] = 0
    fps: int = 30
    wide_width: int = 640
    wide_height: int = 360
    narrow_width: int = 480
    narrow_height: int = 270
    narrow_breakpoint_px: int = 768

    def capture_size(self, viewport_width: int) -> Tuple[int, int]:
        """Narrow viewports request a smaller frame for lower latency."""
        if viewport_width < self.narrow_breakpoint_px:
            return self.narrow_width, self.narrow_height
        return self.wide_width, self.wide_height


@dataclass
class MediaPipeConfig:
    """MediaPipe Hand Landmarker settings."""
    hand_mode: str = "two"
    min_detection_confidence: float = 0.5
    min_presence_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    @property
    def max_num_hands(self) -> int:
        return 1 if self.hand_mode == "one" else 2


@dataclass
class ModelCandidate:
    """One entry of the ordered model fallback chain."""
    name: str
    location: str


@dataclass
class ModelsConfig:
    """Model asset sources."""
    candidates: List[ModelCandidate] = field(default_factory=list)
    cache_dir: str = "~/.cache/pinchspell/models"
    download_timeout_s: float = 30.0


@dataclass
class LoaderConfig:
    """Capability bring-up timing."""
    preflight_poll_s: float = 0.4
    preflight_timeout_s: float = 20.0
    load_timeout_s: float = 55.0
    status_interval_s: float = 3.0


@dataclass
class GesturesConfig:
    """Gesture recognition configuration."""
    pinch_threshold: float = 0.05


@dataclass
class LayoutSizes:
    """Pixel sizes for one viewport class."""
    tile_size: int
    tile_hit_radius: float
    slot_width: int
    slot_gap: int
    drop_snap_radius: float
    slot_hit_margin: int
    slot_offset_y: int


@dataclass
class LayoutConfig:
    """Puzzle geometry for wide and narrow viewports."""
    wide: LayoutSizes = field(default_factory=lambda: LayoutSizes(70, 52, 80, 15, 70, 20, 100))
    narrow: LayoutSizes = field(default_factory=lambda: LayoutSizes(48, 40, 52, 8, 50, 12, 60))
    narrow_breakpoint_px: int = 768
    hint_button_width: int = 120
    hint_button_height: int = 48
    hint_margin: int = 20


@dataclass
class GameConfig:
    """Scoring and feedback timing."""
    score_per_word: int = 10
    wrong_flash_s: float = 1.2


@dataclass
class DisplayConfig:
    """Display configuration settings."""
    width: int = 1280
    height: int = 720
    window_name: str = "PinchSpell"
    show_landmarks: bool = True


@dataclass
class Cfg:
    """Main configuration class."""
    camera: CameraConfig
    mediapipe: MediaPipeConfig
    models: ModelsConfig
    loader: LoaderConfig
    gestures: GesturesConfig
    layout: LayoutConfig
    game: GameConfig
    display: DisplayConfig
    base_dir: Path = Path(".")


def load_config(path: Optional[str] = None) -> Cfg:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file. If None, uses $PINCHSPELL_CONFIG (a .env file
            is honoured) or config.default.yaml in the project root

    Returns:
        Configuration object with all settings
    """
    if path is None:
        load_dotenv()
        path = os.environ.get(CONFIG_ENV_VAR)
    if path is None:
        project_root = Path(__file__).parent.parent
        path = project_root / "config.default.yaml"

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    cfg = _dict_to_config(data)
    cfg.base_dir = config_path.resolve().parent
    return cfg


def _layout_sizes(data: Dict[str, Any], default: LayoutSizes) -> LayoutSizes:
    return LayoutSizes(
        tile_size=data.get('tile_size', default.tile_size),
        tile_hit_radius=data.get('tile_hit_radius', default.tile_hit_radius),
        slot_width=data.get('slot_width', default.slot_width),
        slot_gap=data.get('slot_gap', default.slot_gap),
        drop_snap_radius=data.get('drop_snap_radius', default.drop_snap_radius),
        slot_hit_margin=data.get('slot_hit_margin', default.slot_hit_margin),
        slot_offset_y=data.get('slot_offset_y', default.slot_offset_y),
    )


def _dict_to_config(data: Dict[str, Any]) -> Cfg:
    """Convert dictionary to configuration object."""
    camera_data = data.get('camera', {})
    camera_defaults = CameraConfig()
    camera = CameraConfig(
        source=camera_data.get('source', camera_defaults.source),
        fps=camera_data.get('fps', camera_defaults.fps),
        wide_width=camera_data.get('wide_width', camera_defaults.wide_width),
        wide_height=camera_data.get('wide_height', camera_defaults.wide_height),
        narrow_width=camera_data.get('narrow_width', camera_defaults.narrow_width),
        narrow_height=camera_data.get('narrow_height', camera_defaults.narrow_height),
        narrow_breakpoint_px=camera_data.get('narrow_breakpoint_px', camera_defaults.narrow_breakpoint_px)
    )

    mp_data = data.get('mediapipe', {})
    mediapipe = MediaPipeConfig(
        hand_mode=mp_data.get('hand_mode', 'two'),
        min_detection_confidence=mp_data.get('min_detection_confidence', 0.5),
        min_presence_confidence=mp_data.get('min_presence_confidence', 0.5),
        min_tracking_confidence=mp_data.get('min_tracking_confidence', 0.5)
    )
    if mediapipe.hand_mode not in HAND_MODES:
        raise ValueError(f"hand_mode must be one of {HAND_MODES}, got {mediapipe.hand_mode!r}")

    models_data = data.get('models', {})
    models = ModelsConfig(
        candidates=[
            ModelCandidate(name=c['name'], location=c['location'])
            for c in models_data.get('candidates', [])
        ],
        cache_dir=models_data.get('cache_dir', ModelsConfig.cache_dir),
        download_timeout_s=models_data.get('download_timeout_s', ModelsConfig.download_timeout_s)
    )

    loader_data = data.get('loader', {})
    loader = LoaderConfig(
        preflight_poll_s=loader_data.get('preflight_poll_s', LoaderConfig.preflight_poll_s),
        preflight_timeout_s=loader_data.get('preflight_timeout_s', LoaderConfig.preflight_timeout_s),
        load_timeout_s=loader_data.get('load_timeout_s', LoaderConfig.load_timeout_s),
        status_interval_s=loader_data.get('status_interval_s', LoaderConfig.status_interval_s)
    )

    gestures_data = data.get('gestures', {})
    gestures = GesturesConfig(
        pinch_threshold=gestures_data.get('pinch_threshold', GesturesConfig.pinch_threshold)
    )

    layout_data = data.get('layout', {})
    layout_defaults = LayoutConfig()
    layout = LayoutConfig(
        wide=_layout_sizes(layout_data.get('wide', {}), layout_defaults.wide),
        narrow=_layout_sizes(layout_data.get('narrow', {}), layout_defaults.narrow),
        narrow_breakpoint_px=layout_data.get('narrow_breakpoint_px', layout_defaults.narrow_breakpoint_px),
        hint_button_width=layout_data.get('hint_button_width', layout_defaults.hint_button_width),
        hint_button_height=layout_data.get('hint_button_height', layout_defaults.hint_button_height),
        hint_margin=layout_data.get('hint_margin', layout_defaults.hint_margin)
    )

    game_data = data.get('game', {})
    game = GameConfig(
        score_per_word=game_data.get('score_per_word', GameConfig.score_per_word),
        wrong_flash_s=game_data.get('wrong_flash_s', GameConfig.wrong_flash_s)
    )

    display_data = data.get('display', {})
    display = DisplayConfig(
        width=display_data.get('width', DisplayConfig.width),
        height=display_data.get('height', DisplayConfig.height),
        window_name=display_data.get('window_name', DisplayConfig.window_name),
        show_landmarks=display_data.get('show_landmarks', DisplayConfig.show_landmarks)
    )

    return Cfg(
        camera=camera,
        mediapipe=mediapipe,
        models=models,
        loader=loader,
        gestures=gestures,
        layout=layout,
        game=game,
        display=display
    )
