from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Any, Callable, List, Mapping, Optional, Tuple

from .model import MASK_MODES, Clip, ClipMask, MaskVertex, Point, new_id

log = logging.getLogger("editcore.masks")

_MASK_FIELDS = {f.name for f in fields(ClipMask)} - {"id"}
_VERTEX_FIELDS = {f.name for f in fields(MaskVertex)} - {"id"}

# Presets use normalized (0-1) clip coordinates.
PRESET_MARGIN = 0.1
# Bezier handle length for a quarter circle, as a fraction of the radius.
ELLIPSE_KAPPA = 0.5523


def _as_point(value: Any) -> Point:
    if isinstance(value, Point):
        return Point(value.x, value.y)
    if isinstance(value, Mapping):
        return Point(float(value.get("x", 0.0)), float(value.get("y", 0.0)))
    return Point()


def get_clip_masks(clips: List[Clip], clip_id: str) -> List[ClipMask]:
    for c in clips:
        if c.id == clip_id:
            return list(c.masks)
    return []


def _map_masks(clips: List[Clip], clip_id: str, fn: Callable[[List[ClipMask]], List[ClipMask]]) -> List[Clip]:
    return [replace(c, masks=fn(list(c.masks))) if c.id == clip_id else c for c in clips]


def _map_mask(clips: List[Clip], clip_id: str, mask_id: str, fn: Callable[[ClipMask], ClipMask]) -> List[Clip]:
    return _map_masks(clips, clip_id, lambda masks: [fn(m) if m.id == mask_id else m for m in masks])


def new_mask(existing_count: int, data: Optional[Mapping[str, Any]] = None) -> ClipMask:
    """A mask with defaults; unnamed masks are called "Mask N"."""
    d = dict(data or {})
    mask = ClipMask(id=new_id("mask"), name=str(d.pop("name", "") or f"Mask {existing_count + 1}"))
    if "position" in d:
        d["position"] = _as_point(d["position"])
    if "mode" in d and d["mode"] not in MASK_MODES:
        log.warning("Unknown mask mode %r; using 'add'", d.pop("mode"))
    if "vertices" in d:
        d["vertices"] = [v if isinstance(v, MaskVertex) else new_vertex(v) for v in d["vertices"]]
    return replace(mask, **{k: v for k, v in d.items() if k in _MASK_FIELDS})


def add_mask(clips: List[Clip], clip_id: str, data: Optional[Mapping[str, Any]] = None) -> Tuple[List[Clip], Optional[str]]:
    clip = next((c for c in clips if c.id == clip_id), None)
    if clip is None:
        return clips, None
    mask = new_mask(len(clip.masks), data)
    return _map_masks(clips, clip_id, lambda masks: [*masks, mask]), mask.id


def rectangle_vertices(margin: float = PRESET_MARGIN) -> List[MaskVertex]:
    lo, hi = margin, 1.0 - margin
    return [new_vertex({"x": x, "y": y}) for x, y in ((lo, lo), (hi, lo), (hi, hi), (lo, hi))]


def ellipse_vertices(margin: float = PRESET_MARGIN) -> List[MaskVertex]:
    cx = cy = 0.5
    r = 0.5 - margin
    k = r * ELLIPSE_KAPPA
    # top, right, bottom, left; handles follow the clockwise winding
    points = [
        (cx, cy - r, (-k, 0.0), (k, 0.0)),
        (cx + r, cy, (0.0, -k), (0.0, k)),
        (cx, cy + r, (k, 0.0), (-k, 0.0)),
        (cx - r, cy, (0.0, k), (0.0, -k)),
    ]
    return [
        MaskVertex(id=new_id("vertex"), x=x, y=y, handle_in=Point(*h_in), handle_out=Point(*h_out))
        for x, y, h_in, h_out in points
    ]


def remove_mask(clips: List[Clip], clip_id: str, mask_id: str) -> List[Clip]:
    return _map_masks(clips, clip_id, lambda masks: [m for m in masks if m.id != mask_id])


def update_mask(clips: List[Clip], clip_id: str, mask_id: str, changes: Mapping[str, Any]) -> List[Clip]:
    patch = {k: v for k, v in changes.items() if k in _MASK_FIELDS}
    if "mode" in patch and patch["mode"] not in MASK_MODES:
        log.warning("Unknown mask mode: %r", patch["mode"])
        return clips
    if "position" in patch:
        patch["position"] = _as_point(patch["position"])
    if not patch:
        return clips
    return _map_mask(clips, clip_id, mask_id, lambda m: replace(m, **patch))


def reorder_masks(clips: List[Clip], clip_id: str, from_index: int, to_index: int) -> List[Clip]:
    """Pure index move: the mask at `from_index` ends up at `to_index`."""
    clip = next((c for c in clips if c.id == clip_id), None)
    if clip is None or not clip.masks:
        return clips
    n = len(clip.masks)
    if not (0 <= from_index < n):
        return clips
    to_index = max(0, min(int(to_index), n - 1))

    def move(masks: List[ClipMask]) -> List[ClipMask]:
        m = masks.pop(from_index)
        masks.insert(to_index, m)
        return masks

    return _map_masks(clips, clip_id, move)


def close_mask(clips: List[Clip], clip_id: str, mask_id: str) -> List[Clip]:
    return update_mask(clips, clip_id, mask_id, {"closed": True})


# ---------- vertices ----------

def new_vertex(data: Mapping[str, Any]) -> MaskVertex:
    return MaskVertex(
        id=str(data.get("id") or new_id("vertex")),
        x=float(data.get("x", 0.0)),
        y=float(data.get("y", 0.0)),
        handle_in=_as_point(data.get("handle_in")),
        handle_out=_as_point(data.get("handle_out")),
    )


def add_vertex(
    clips: List[Clip],
    clip_id: str,
    mask_id: str,
    data: Mapping[str, Any],
    index: Optional[int] = None,
) -> Tuple[List[Clip], Optional[str]]:
    masks = get_clip_masks(clips, clip_id)
    if not any(m.id == mask_id for m in masks):
        return clips, None
    vertex = new_vertex({k: v for k, v in data.items() if k != "id"})

    def insert(m: ClipMask) -> ClipMask:
        vertices = list(m.vertices)
        if index is None:
            vertices.append(vertex)
        else:
            vertices.insert(int(index), vertex)
        return replace(m, vertices=vertices)

    return _map_mask(clips, clip_id, mask_id, insert), vertex.id


def remove_vertex(clips: List[Clip], clip_id: str, mask_id: str, vertex_id: str) -> List[Clip]:
    return _map_mask(
        clips, clip_id, mask_id, lambda m: replace(m, vertices=[v for v in m.vertices if v.id != vertex_id])
    )


def update_vertex(clips: List[Clip], clip_id: str, mask_id: str, vertex_id: str, changes: Mapping[str, Any]) -> List[Clip]:
    """Partial vertex update; fields not named in `changes` are preserved."""
    patch = {k: v for k, v in changes.items() if k in _VERTEX_FIELDS}
    for key in ("handle_in", "handle_out"):
        if key in patch:
            patch[key] = _as_point(patch[key])
    for key in ("x", "y"):
        if key in patch:
            patch[key] = float(patch[key])
    if not patch:
        return clips
    return _map_mask(
        clips,
        clip_id,
        mask_id,
        lambda m: replace(m, vertices=[replace(v, **patch) if v.id == vertex_id else v for v in m.vertices]),
    )
