from __future__ import annotations

import copy
import logging
from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .model import (
    Clip,
    ClipSource,
    Effect,
    Track,
    Transform,
    Vec2,
    Vec3,
    creates_cycle,
    kind_fits_track,
    new_id,
)

log = logging.getLogger("editcore.timeline")

_CLIP_FIELDS = {f.name for f in fields(Clip)}

# Seconds within which a dragged clip edge sticks to another edge.
SNAP_THRESHOLD = 0.1

# Default parameter bags for built-in effect types.
DEFAULT_EFFECT_PARAMS: Dict[str, Dict[str, Any]] = {
    "brightness": {"amount": 0.0},
    "contrast": {"amount": 1.0},
    "saturation": {"amount": 1.0},
    "hue-shift": {"degrees": 0.0},
    "blur": {"radius": 0.0},
    "invert": {},
    "chroma-key": {"threshold": 0.4, "smoothness": 0.1, "color": "#00ff00"},
}


def find_clip(clips: List[Clip], clip_id: Optional[str]) -> Optional[Clip]:
    for c in clips:
        if c.id == clip_id:
            return c
    return None


def linked_partner(clips: List[Clip], clip: Clip) -> Optional[Clip]:
    """The reciprocal partner of `clip`, looked up from either side of the link."""
    for c in clips:
        if c.id == clip.id:
            continue
        if c.id == clip.linked_clip_id or c.linked_clip_id == clip.id:
            return c
    return None


def clips_at_time(clips: Iterable[Clip], t: float) -> List[Clip]:
    """Clips whose span strictly contains `t` (edges excluded)."""
    return [c for c in clips if c.contains(t)]


def is_track_span_free(clips: List[Clip], track_id: str, start: float, duration: float) -> bool:
    end = start + duration
    for c in clips:
        if c.track_id == track_id and c.start_time < end and start < c.end_time:
            return False
    return True


def add_clip(clips: List[Clip], tracks: List[Track], clip: Clip) -> List[Clip]:
    """Insert a prepared clip; rejected for unknown tracks or mismatched media kind."""
    track = next((t for t in tracks if t.id == clip.track_id), None)
    if track is None:
        log.warning("Track not found: %s", clip.track_id)
        return clips
    if not kind_fits_track(clip.source_kind, track.kind):
        log.warning("Cannot place %s clip on %s track", clip.source_kind, track.kind)
        return clips
    if find_clip(clips, clip.id) is not None:
        return clips
    return [*clips, clip]


def update_clip(clips: List[Clip], clip_id: str, changes: Mapping[str, Any]) -> List[Clip]:
    """Merge fields into a clip. Unknown ids and unknown field names are ignored."""
    if find_clip(clips, clip_id) is None:
        return clips
    known = {k: v for k, v in changes.items() if k in _CLIP_FIELDS and k != "id"}
    dropped = set(changes) - set(known)
    if dropped:
        log.debug("update_clip ignored fields: %s", ", ".join(sorted(dropped)))
    if not known:
        return clips
    return [replace(c, **known) if c.id == clip_id else c for c in clips]


def remove_clip(clips: List[Clip], clip_id: str, selected_ids: Set[str]) -> Tuple[List[Clip], Set[str]]:
    """
    Remove a clip.

    The linked partner is removed too only when both sides are selected;
    otherwise the survivor's `linked_clip_id` is cleared. Children lose their
    parent pointer.

    Returns:
        (new_clips, removed_ids)
    """
    clip = find_clip(clips, clip_id)
    if clip is None:
        return clips, set()

    removed = {clip.id}
    partner = linked_partner(clips, clip)
    if partner is not None and clip.id in selected_ids and partner.id in selected_ids:
        removed.add(partner.id)

    out: List[Clip] = []
    for c in clips:
        if c.id in removed:
            continue
        changes: Dict[str, Any] = {}
        if c.linked_clip_id in removed:
            changes["linked_clip_id"] = None
        if c.parent_clip_id in removed:
            changes["parent_clip_id"] = None
        out.append(replace(c, **changes) if changes else c)
    return out, removed


def trim_clip(clips: List[Clip], clip_id: str, new_in_point: float, new_out_point: float) -> List[Clip]:
    """Set in/out points and recompute duration; start_time stays put."""
    if find_clip(clips, clip_id) is None:
        return clips
    new_in = float(new_in_point)
    new_out = float(new_out_point)
    return [
        replace(c, in_point=new_in, out_point=new_out, duration=new_out - new_in) if c.id == clip_id else c
        for c in clips
    ]


def _split_pair(clip: Clip, offset: float, first_id: str, second_id: str) -> Tuple[Clip, Clip]:
    # Nested mutable parts are copied per half; the source (and its opaque
    # handle) is shared.
    first = replace(
        clip,
        id=first_id,
        duration=offset,
        out_point=clip.in_point + offset,
        transform=copy.deepcopy(clip.transform),
        effects=copy.deepcopy(clip.effects),
        masks=copy.deepcopy(clip.masks),
        thumbnails=list(clip.thumbnails) if clip.thumbnails is not None else None,
        transition_in=copy.deepcopy(clip.transition_in),
        transition_out=None,
        linked_clip_id=None,
    )
    second = replace(
        clip,
        id=second_id,
        start_time=clip.start_time + offset,
        duration=clip.duration - offset,
        in_point=clip.in_point + offset,
        transform=copy.deepcopy(clip.transform),
        effects=copy.deepcopy(clip.effects),
        masks=copy.deepcopy(clip.masks),
        thumbnails=list(clip.thumbnails) if clip.thumbnails is not None else None,
        transition_in=None,
        transition_out=copy.deepcopy(clip.transition_out),
        linked_clip_id=None,
    )
    return first, second


def split_clip(clips: List[Clip], clip_id: str, split_time: float) -> Tuple[List[Clip], List[Tuple[str, str, str, float]]]:
    """
    Split a clip at an absolute timeline time.

    Only strict interior points split. A linked partner is split at the same
    clip-local offset and the halves are re-linked pairwise.

    Returns:
        (new_clips, splits) where each split is (old_id, first_id, second_id, offset).
        The primary clip's split comes first; an empty list means nothing changed.
    """
    clip = find_clip(clips, clip_id)
    if clip is None:
        return clips, []
    t = float(split_time)
    if not clip.contains(t):
        log.warning("Cannot split %s at edge or outside clip (t=%.3f)", clip.name, t)
        return clips, []

    offset = t - clip.start_time
    first, second = _split_pair(clip, offset, new_id("clip"), new_id("clip"))
    splits = [(clip.id, first.id, second.id, offset)]
    replaced: Dict[str, List[Clip]] = {clip.id: [first, second]}

    partner = linked_partner(clips, clip)
    if partner is not None:
        if 0.0 < offset < partner.duration:
            p_first, p_second = _split_pair(partner, offset, new_id("clip"), new_id("clip"))
            first.linked_clip_id, p_first.linked_clip_id = p_first.id, first.id
            second.linked_clip_id, p_second.linked_clip_id = p_second.id, second.id
            replaced[partner.id] = [p_first, p_second]
            splits.append((partner.id, p_first.id, p_second.id, offset))
        else:
            replaced[partner.id] = [replace(partner, linked_clip_id=None)]

    out: List[Clip] = []
    for c in clips:
        out.extend(replaced.get(c.id, [c]))
    log.info("Split clip %r at %.2fs", clip.name, t)
    return out, splits


def move_clip(
    clips: List[Clip],
    tracks: List[Track],
    clip_id: str,
    new_start_time: float,
    new_track_id: Optional[str] = None,
    skip_linked: bool = False,
    skip_group: bool = False,
) -> List[Clip]:
    """
    Move a clip in time and optionally to another track.

    The linked partner follows to the same start time unless `skip_linked`;
    clips sharing `linked_group_id` follow by the same delta unless `skip_group`.
    """
    clip = find_clip(clips, clip_id)
    if clip is None:
        return clips

    target_track_id = clip.track_id
    if new_track_id is not None and new_track_id != clip.track_id:
        track = next((t for t in tracks if t.id == new_track_id), None)
        if track is None:
            return clips
        if not kind_fits_track(clip.source_kind, track.kind):
            log.warning("Cannot move %s clip to %s track", clip.source_kind, track.kind)
            return clips
        target_track_id = track.id

    final_start = max(0.0, float(new_start_time))
    delta = final_start - clip.start_time

    moves: Dict[str, Dict[str, Any]] = {clip.id: {"start_time": final_start, "track_id": target_track_id}}
    if not skip_linked:
        partner = linked_partner(clips, clip)
        if partner is not None:
            moves[partner.id] = {"start_time": final_start}
    if not skip_group and clip.linked_group_id:
        for c in clips:
            if c.linked_group_id == clip.linked_group_id and c.id not in moves:
                moves[c.id] = {"start_time": max(0.0, c.start_time + delta)}

    return [replace(c, **moves[c.id]) if c.id in moves else c for c in clips]


# ---------- snapping ----------

def snapped_start(
    clips: List[Clip],
    clip: Clip,
    desired_start: float,
    track_id: str,
    threshold: float = SNAP_THRESHOLD,
) -> float:
    """
    Pull a start time onto a nearby edge of another clip on the track, or onto 0.

    Both edges of the moving clip are tested; the clip's linked partner is not
    a snap target.
    """
    start = max(0.0, float(desired_start))
    end = start + clip.duration
    if start < threshold:
        return 0.0
    for c in clips:
        if c.track_id != track_id or c.id == clip.id or c.id == clip.linked_clip_id:
            continue
        for edge in (c.start_time, c.end_time):
            if abs(start - edge) < threshold:
                return edge
            if abs(end - edge) < threshold:
                return max(0.0, edge - clip.duration)
    return start


def non_overlapping_start(clips: List[Clip], clip: Clip, desired_start: float, track_id: str) -> float:
    """
    Push a start time out of any clip it lands on.

    The nearer side of the blocking clip wins when the moving clip fits there;
    otherwise the desired time is kept.
    """
    start = max(0.0, float(desired_start))
    others = [c for c in clips if c.track_id == track_id and c.id != clip.id]

    def fits(s: float) -> bool:
        return s >= 0.0 and all(not (o.start_time < s + clip.duration and s < o.end_time) for o in others)

    if fits(start):
        return start
    for o in others:
        if not (o.start_time < start + clip.duration and start < o.end_time):
            continue
        left = o.start_time - clip.duration
        right = o.end_time
        if start - left < right - start and fits(left):
            return left
        if fits(right):
            return right
    return start


def _merge_vec(current, patch):
    if patch is None:
        return current
    if isinstance(patch, (Vec2, Vec3)):
        patch = {f.name: getattr(patch, f.name) for f in fields(patch)}
    valid = {f.name for f in fields(current)}
    return replace(current, **{k: float(v) for k, v in dict(patch).items() if k in valid})


def merge_transform(current: Transform, patch: Mapping[str, Any]) -> Transform:
    """Deep-merge a partial transform; nested vectors merge field by field."""
    changes: Dict[str, Any] = {}
    if "opacity" in patch:
        changes["opacity"] = float(patch["opacity"])
    if "blend_mode" in patch:
        changes["blend_mode"] = str(patch["blend_mode"])
    for group in ("position", "scale", "rotation"):
        if patch.get(group) is not None:
            changes[group] = _merge_vec(getattr(current, group), patch[group])
    return replace(current, **changes)


def update_clip_transform(clips: List[Clip], clip_id: str, patch: Mapping[str, Any]) -> List[Clip]:
    if find_clip(clips, clip_id) is None:
        return clips
    return [replace(c, transform=merge_transform(c.transform, patch)) if c.id == clip_id else c for c in clips]


def toggle_clip_reverse(clips: List[Clip], clip_id: str) -> List[Clip]:
    """Flip `reversed`; the thumbnail strip is reversed with it."""
    out: List[Clip] = []
    for c in clips:
        if c.id != clip_id:
            out.append(c)
            continue
        thumbs = list(reversed(c.thumbnails)) if c.thumbnails is not None else None
        out.append(replace(c, reversed=not c.reversed, thumbnails=thumbs))
    return out


# ---------- effects ----------

def add_clip_effect(
    clips: List[Clip],
    clip_id: str,
    effect_type: str,
    params: Optional[Mapping[str, Any]] = None,
) -> Tuple[List[Clip], Optional[str]]:
    if find_clip(clips, clip_id) is None:
        return clips, None
    bag = dict(DEFAULT_EFFECT_PARAMS.get(effect_type, {}))
    bag.update(params or {})
    effect = Effect(id=new_id("effect"), type=str(effect_type), name=str(effect_type), params=bag)
    return [replace(c, effects=[*c.effects, effect]) if c.id == clip_id else c for c in clips], effect.id


def _map_effects(clips: List[Clip], clip_id: str, fn) -> List[Clip]:
    out: List[Clip] = []
    for c in clips:
        if c.id != clip_id:
            out.append(c)
            continue
        out.append(replace(c, effects=[e2 for e2 in (fn(e) for e in c.effects) if e2 is not None]))
    return out


def remove_clip_effect(clips: List[Clip], clip_id: str, effect_id: str) -> List[Clip]:
    return _map_effects(clips, clip_id, lambda e: None if e.id == effect_id else e)


def update_clip_effect(clips: List[Clip], clip_id: str, effect_id: str, params: Mapping[str, Any]) -> List[Clip]:
    """Shallow-merge into the effect's parameter bag."""
    return _map_effects(clips, clip_id, lambda e: replace(e, params={**e.params, **params}) if e.id == effect_id else e)


def set_clip_effect_enabled(clips: List[Clip], clip_id: str, effect_id: str, enabled: bool) -> List[Clip]:
    return _map_effects(clips, clip_id, lambda e: replace(e, enabled=bool(enabled)) if e.id == effect_id else e)


# ---------- linked groups ----------

def create_linked_group(clips: List[Clip], clip_ids: List[str], offsets_ms: Mapping[str, float]) -> Tuple[List[Clip], Optional[str]]:
    """
    Put clips into one move-together group.

    The clip with offset 0 anchors the group; every other clip starts at
    `anchor_start - offset / 1000`, clamped to 0.
    """
    members = [c for c in clips if c.id in set(clip_ids)]
    if not members:
        return clips, None

    anchor = next((c for c in members if float(offsets_ms.get(c.id, 0.0)) == 0.0), members[0])
    group_id = new_id("group")
    member_ids = {c.id for c in members}

    out: List[Clip] = []
    for c in clips:
        if c.id not in member_ids:
            out.append(c)
            continue
        changes: Dict[str, Any] = {"linked_group_id": group_id}
        if c.id != anchor.id and c.id in offsets_ms:
            changes["start_time"] = max(0.0, anchor.start_time - float(offsets_ms[c.id]) / 1000.0)
        out.append(replace(c, **changes))
    return out, group_id


def unlink_group(clips: List[Clip], clip_id: str) -> List[Clip]:
    clip = find_clip(clips, clip_id)
    if clip is None or not clip.linked_group_id:
        return clips
    gid = clip.linked_group_id
    return [replace(c, linked_group_id=None) if c.linked_group_id == gid else c for c in clips]


# ---------- parenting ----------

def set_clip_parent(clips: List[Clip], child_id: str, parent_id: Optional[str]) -> List[Clip]:
    """Assign or clear a parent clip; self-parenting and cycles leave the clip unchanged."""
    if find_clip(clips, child_id) is None:
        return clips
    if parent_id is not None and find_clip(clips, parent_id) is None:
        return clips
    parents = {c.id: c.parent_clip_id for c in clips}
    if creates_cycle(parents, child_id, parent_id):
        log.warning("Cannot create circular clip parent reference: %s -> %s", child_id, parent_id)
        return clips
    return [replace(c, parent_clip_id=parent_id) if c.id == child_id else c for c in clips]


def get_clip_children(clips: List[Clip], clip_id: str) -> List[Clip]:
    return [c for c in clips if c.parent_clip_id == clip_id]


def new_media_clip(
    track_id: str,
    name: str,
    start_time: float,
    duration: float,
    kind: str,
    media_file_id: Optional[str] = None,
) -> Clip:
    dur = max(0.0, float(duration))
    return Clip(
        id=new_id("clip"),
        track_id=track_id,
        name=name,
        start_time=max(0.0, float(start_time)),
        duration=dur,
        in_point=0.0,
        out_point=dur,
        source=ClipSource(kind=kind, natural_duration=dur, media_file_id=media_file_id),
    )
