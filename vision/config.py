"""
Configuration dataclasses and value types for the detection-to-anchor pipeline.
Type-safe configuration for every stage, loadable from YAML.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import yaml

logger = logging.getLogger(__name__)

DEFAULT_CLASS_NAMES = ["faucet"]


class AbsencePolicy(Enum):
    """What the anchor does on a frame without a usable hit."""
    HIDE_ON_MISS = "hide_on_miss"
    RETAIN_ON_MISS = "retain_on_miss"


class OrientationMode(Enum):
    """How the anchor is rotated on a hit."""
    FACE_OBSERVER = "face_observer"
    ALIGN_TO_SURFACE = "align_to_surface"


# === Value types ===

@dataclass(frozen=True)
class Detection:
    """Single detection in frame pixels (origin top-left)."""
    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int = 0

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        # Signed: inverted boxes give a non-positive area.
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FrameMetadata:
    """Pixel space that detections are expressed in."""
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Frame size must be positive, got {self.width}x{self.height}"
            )


@dataclass(frozen=True)
class ViewportPoint:
    """Normalized view coordinate, origin bottom-left."""
    u: float
    v: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.u, self.v)


@dataclass
class RawOutputBuffer:
    """
    Flat network output plus its shape descriptors.

    The logical layout is row-major: one row of features per detection slot.
    """
    data: np.ndarray
    batch: int = 1
    height: int = 1
    width: int = 1
    channels: int = 1

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.float64).reshape(-1)

    def __len__(self) -> int:
        return int(self.data.size)

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (self.batch, self.height, self.width, self.channels)

    @classmethod
    def from_array(cls, array: Any, channels_first: bool = False) -> 'RawOutputBuffer':
        """
        Build a buffer from an N-d array.

        Args:
            array: Network output, e.g. (1, anchors, features).
            channels_first: Set for exports shaped (1, features, anchors);
                the array is transposed to one row per anchor.
        """
        arr = np.asarray(array, dtype=np.float64)
        if channels_first and arr.ndim >= 2:
            arr = np.swapaxes(arr, -1, -2)
        arr = np.ascontiguousarray(arr)

        dims = list(arr.shape)
        while len(dims) < 4:
            dims.insert(0, 1)
        if len(dims) > 4:
            dims = [int(np.prod(dims[:-3]))] + dims[-3:]
        batch, height, width, channels = (int(d) for d in dims)
        return cls(arr, batch=batch, height=height, width=width, channels=channels)


# === Stage configuration ===

@dataclass
class DecoderConfig:
    """Configuration for tensor decoding."""
    input_size: int = 640  # square model input resolution
    conf_threshold: float = 0.1
    class_names: List[str] = field(default_factory=lambda: list(DEFAULT_CLASS_NAMES))
    multi_class_layout: str = "packed"  # packed (4+n), objectness_row (5+n), class_scores (4+n)
    box_format: str = "auto"  # auto, pixels, normalized

    def __post_init__(self):
        if self.box_format not in ("auto", "pixels", "normalized"):
            raise ValueError(f"Unknown box_format: {self.box_format}")
        if self.multi_class_layout not in ("packed", "objectness_row", "class_scores"):
            raise ValueError(f"Unknown multi_class_layout: {self.multi_class_layout}")


@dataclass
class SuppressionConfig:
    """Configuration for non-max suppression."""
    iou_threshold: float = 0.45
    top_k: int = 100


@dataclass
class SelectionConfig:
    """Configuration for picking the anchored candidate."""
    target_class_id: int = 0
    min_score: float = 0.4


@dataclass
class PlacementConfig:
    """Configuration for ray-cast anchor placement."""
    max_distance: float = 5.0  # meters
    surface_offset: float = 0.02  # meters along the hit normal
    absence_policy: AbsencePolicy = AbsencePolicy.RETAIN_ON_MISS
    orientation_mode: OrientationMode = OrientationMode.FACE_OBSERVER
    reverse_facing: bool = False  # for assets modelled facing backwards
    geometry_filter: Optional[List[str]] = None  # layer names, None = all
    force_in_front: bool = False  # debug: skip the ray, pin in front of camera
    in_front_distance: float = 0.7

    def __post_init__(self):
        self.absence_policy = _coerce_enum(AbsencePolicy, self.absence_policy)
        self.orientation_mode = _coerce_enum(OrientationMode, self.orientation_mode)
        if isinstance(self.geometry_filter, str):
            # A bare layer name from YAML
            self.geometry_filter = [self.geometry_filter]
        elif self.geometry_filter is not None:
            self.geometry_filter = list(self.geometry_filter)


@dataclass
class AnchoringConfig:
    """
    Full configuration for the frame pipeline.

    Usage:
        config = AnchoringConfig.from_yaml("resources/anchoring.yaml")
        config.placement.absence_policy = AbsencePolicy.HIDE_ON_MISS
    """
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    suppression: SuppressionConfig = field(default_factory=SuppressionConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    placement: PlacementConfig = field(default_factory=PlacementConfig)
    debug_viewport_point: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        if self.debug_viewport_point is not None:
            u, v = self.debug_viewport_point
            self.debug_viewport_point = (float(u), float(v))
        if self.selection.min_score < self.decoder.conf_threshold:
            logger.info(
                f"[Config] min_score {self.selection.min_score} is below "
                f"conf_threshold {self.decoder.conf_threshold}; decode-time filtering dominates"
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AnchoringConfig':
        """Build from a nested dict (unknown keys raise ValueError)."""
        data = dict(data or {})
        sections = {
            "decoder": DecoderConfig,
            "suppression": SuppressionConfig,
            "selection": SelectionConfig,
            "placement": PlacementConfig,
        }
        kwargs: Dict[str, Any] = {}
        for key, section_cls in sections.items():
            values = data.pop(key, None) or {}
            try:
                kwargs[key] = section_cls(**values)
            except TypeError as e:
                raise ValueError(f"Invalid '{key}' section: {e}") from e

        debug_point = data.pop("debug_viewport_point", None)
        if data:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(data))}")
        return cls(debug_viewport_point=debug_point, **kwargs)

    @classmethod
    def from_yaml(cls, path: str) -> 'AnchoringConfig':
        """Load configuration from a YAML file."""
        if not Path(path).exists():
            raise FileNotFoundError(f"Config not found: {path}")
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded anchoring config from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form (enums as their string values)."""
        placement = asdict(self.placement)
        placement["absence_policy"] = self.placement.absence_policy.value
        placement["orientation_mode"] = self.placement.orientation_mode.value
        return {
            "decoder": asdict(self.decoder),
            "suppression": asdict(self.suppression),
            "selection": asdict(self.selection),
            "placement": placement,
            "debug_viewport_point": (
                list(self.debug_viewport_point) if self.debug_viewport_point else None
            ),
        }


def load_class_names(path: Optional[str]) -> List[str]:
    """
    Load class names, one per line; blank lines are dropped.

    Falls back to the built-in single-class list when the file is missing.
    """
    if path is None or not Path(path).exists():
        logger.warning(f"Class list not found ({path}); using {DEFAULT_CLASS_NAMES}")
        return list(DEFAULT_CLASS_NAMES)

    with open(path, "r", encoding="utf-8") as f:
        names = [line.strip() for line in f.read().split("\n")]
    return [n for n in names if n]


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} '{value}'. Valid: {valid}")


def as_frame(frame: Any) -> FrameMetadata:
    """Accept FrameMetadata or a (width, height) pair."""
    if isinstance(frame, FrameMetadata):
        return frame
    width, height = frame
    return FrameMetadata(int(width), int(height))
