from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import uuid

from .serialize import record

TRACK_KINDS = ("video", "audio")
SOURCE_KINDS = ("video", "audio", "image")
EASINGS = ("linear", "ease-in", "ease-out", "ease-in-out", "bezier")
MASK_MODES = ("add", "subtract", "intersect")
MASK_EDIT_MODES = ("none", "drawing", "drawingRect", "drawingEllipse", "drawingPen", "editing")

MIN_TRACK_HEIGHT = 20
MAX_TRACK_HEIGHT = 200
MIN_ZOOM = 0.1
MAX_ZOOM = 200.0
PROPERTY_ROW_HEIGHT = 18
CURVE_EDITOR_HEIGHT = 250
MIN_CURVE_EDITOR_HEIGHT = 80
MAX_CURVE_EDITOR_HEIGHT = 600
DEFAULT_TIMELINE_DURATION = 60.0
DEFAULT_MARKER_COLOR = "#00d4ff"
DEFAULT_DOWNLOAD_DURATION = 30.0


def new_id(prefix: str = "") -> str:
    """Generate a stable unique id for timeline entities."""
    raw = uuid.uuid4().hex
    return f"{prefix}-{raw[:12]}" if prefix else raw


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(value)))


@record
@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


@record
@dataclass
class Vec2:
    x: float = 0.0
    y: float = 0.0


@record
@dataclass
class Vec3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@record
@dataclass
class Transform:
    opacity: float = 1.0
    blend_mode: str = "normal"
    position: Vec3 = field(default_factory=Vec3)
    scale: Vec2 = field(default_factory=lambda: Vec2(1.0, 1.0))
    rotation: Vec3 = field(default_factory=Vec3)


@record
@dataclass
class Effect:
    id: str
    type: str
    enabled: bool = True
    params: Dict[str, Any] = field(default_factory=dict)
    name: str = ""


@record
@dataclass
class Transition:
    """One side of a transition; both clips of a junction share the id."""

    kind: str = "crossfade"
    duration: float = 0.5
    id: str = ""
    linked_clip_id: Optional[str] = None  # the clip on the other side


@record
@dataclass
class ClipSource:
    """
    Reference to the clip's media.

    `handle` is whatever the decoding layer attached (player, element, file).
    It is opaque here: snapshots carry it by reference and persistence drops it.
    """

    kind: str = "video"  # video | audio | image
    natural_duration: Optional[float] = None
    media_file_id: Optional[str] = None
    handle: Any = None

    @property
    def is_visual(self) -> bool:
        return self.kind in ("video", "image")


@record
@dataclass
class MaskVertex:
    id: str
    x: float
    y: float
    handle_in: Point = field(default_factory=Point)
    handle_out: Point = field(default_factory=Point)


@record
@dataclass
class ClipMask:
    id: str
    name: str
    vertices: List[MaskVertex] = field(default_factory=list)
    closed: bool = False
    opacity: float = 1.0
    feather: float = 0.0
    feather_quality: int = 50  # 1-100
    inverted: bool = False
    mode: str = "add"  # add | subtract | intersect
    visible: bool = True
    expanded: bool = True
    position: Point = field(default_factory=Point)


@record
@dataclass
class Keyframe:
    """
    One animation key. `time` is clip-local seconds.

    `property` is a dotted path: "opacity", "position.x", "scale.y",
    "rotation.z", "speed" or "effect.<effectId>.<param>".
    """

    id: str
    clip_id: str
    property: str
    time: float
    value: float
    easing: str = "linear"
    handle_in: Optional[Point] = None
    handle_out: Optional[Point] = None


@record
@dataclass
class Track:
    id: str
    name: str
    kind: str  # "video" | "audio"
    height: int = 60
    muted: bool = False
    visible: bool = True
    solo: bool = False
    parent_track_id: Optional[str] = None


@record
@dataclass
class Clip:
    """
    Non-destructive clip placed on a track.

    Attributes:
        start_time: position on the timeline (seconds)
        in_point/out_point: trimmed range within the source (seconds)
        duration: timeline length, kept equal to out_point - in_point by trims and splits
    """

    id: str
    track_id: str
    name: str
    start_time: float
    duration: float
    in_point: float
    out_point: float
    source: Optional[ClipSource] = None
    transform: Transform = field(default_factory=Transform)
    effects: List[Effect] = field(default_factory=list)
    masks: List[ClipMask] = field(default_factory=list)
    speed: float = 1.0
    preserves_pitch: Optional[bool] = None
    linked_clip_id: Optional[str] = None
    linked_group_id: Optional[str] = None
    parent_clip_id: Optional[str] = None
    transition_in: Optional[Transition] = None
    transition_out: Optional[Transition] = None
    reversed: bool = False
    thumbnails: Optional[List[str]] = None
    is_pending_download: bool = False
    download_progress: Optional[float] = None
    download_error: Optional[str] = None
    download_video_id: Optional[str] = None

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    @property
    def source_kind(self) -> Optional[str]:
        return self.source.kind if self.source is not None else None

    def contains(self, t: float) -> bool:
        """True when `t` lies strictly inside the clip span."""
        return self.start_time < t < self.end_time


@record
@dataclass
class Marker:
    id: str
    time: float
    label: str = ""
    color: str = DEFAULT_MARKER_COLOR


def creates_cycle(parents: Dict[str, Optional[str]], child_id: str, parent_id: Optional[str]) -> bool:
    """
    True when making `parent_id` the parent of `child_id` would close a loop.

    `parents` maps node id -> current parent id. Walks upward from the proposed
    parent; a visited set stops the walk on already-corrupt chains.
    """
    if parent_id is None:
        return False
    if parent_id == child_id:
        return True
    seen = set()
    cur: Optional[str] = parent_id
    while cur is not None and cur not in seen:
        if cur == child_id:
            return True
        seen.add(cur)
        cur = parents.get(cur)
    return False


def kind_fits_track(source_kind: Optional[str], track_kind: str) -> bool:
    """Video/image media belongs on video tracks, audio on audio tracks."""
    if source_kind is None:
        return True
    if source_kind not in SOURCE_KINDS:
        return False
    if source_kind in ("video", "image"):
        return track_kind == "video"
    return track_kind == "audio"
