from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from . import keyframes as kf
from .model import Clip, Keyframe, Transition, new_id
from .timeline import find_clip

log = logging.getLogger("editcore.transitions")

# Clips closer than this count as touching.
JUNCTION_GAP = 0.1


@dataclass(frozen=True)
class TransitionType:
    kind: str
    min_duration: float
    max_duration: float

    def outgoing_keys(self, duration: float) -> List[Tuple[str, float, float]]:
        """(property, time from transition start, value) for the clip that ends."""
        return [("opacity", 0.0, 1.0), ("opacity", duration, 0.0)]

    def incoming_keys(self, duration: float) -> List[Tuple[str, float, float]]:
        return [("opacity", 0.0, 0.0), ("opacity", duration, 1.0)]


TRANSITION_TYPES: Dict[str, TransitionType] = {
    "crossfade": TransitionType("crossfade", min_duration=0.1, max_duration=5.0),
}


def _keys(clip_id: str, shape: List[Tuple[str, float, float]], start: float) -> List[Keyframe]:
    return [
        Keyframe(id=new_id("kf"), clip_id=clip_id, property=prop, time=start + t, value=value)
        for prop, t, value in shape
    ]


def _drop_opacity(kf_map: kf.KeyframeMap, clip_id: str, keep) -> kf.KeyframeMap:
    kfs = kf_map.get(clip_id) or []
    return kf.set_clip_keyframes(kf_map, clip_id, [k for k in kfs if k.property != "opacity" or keep(k.time)])


def apply_transition(
    clips: List[Clip],
    kf_map: kf.KeyframeMap,
    clip_a_id: str,
    clip_b_id: str,
    kind: str,
    duration: float,
) -> Tuple[List[Clip], kf.KeyframeMap, Optional[str]]:
    """
    Join the end of clip A to the start of clip B with a transition.

    Clip B moves earlier so the two overlap by the (clamped) duration. Opacity
    keys replace any opacity animation inside the overlap on both clips.

    Returns:
        (new_clips, new_keyframes, transition_id); the id is None when rejected.
    """
    a = find_clip(clips, clip_a_id)
    b = find_clip(clips, clip_b_id)
    if a is None or b is None:
        log.warning("Cannot apply transition: clips not found (%s, %s)", clip_a_id, clip_b_id)
        return clips, kf_map, None
    if a.track_id != b.track_id:
        log.warning("Cannot apply transition: clips on different tracks")
        return clips, kf_map, None
    if b.start_time < a.start_time:
        log.warning("Cannot apply transition: %s must come after %s", b.name, a.name)
        return clips, kf_map, None
    ttype = TRANSITION_TYPES.get(kind)
    if ttype is None:
        log.warning("Unknown transition type: %r", kind)
        return clips, kf_map, None

    effective = min(max(float(duration), ttype.min_duration), min(ttype.max_duration, a.duration, b.duration))
    zone_start = a.duration - effective
    transition_id = new_id("transition")

    out_map = _drop_opacity(kf_map, a.id, lambda t: t < zone_start)
    out_map = kf.put_keyframes(out_map, a.id, _keys(a.id, ttype.outgoing_keys(effective), zone_start))
    out_map = _drop_opacity(out_map, b.id, lambda t: t > effective)
    out_map = kf.put_keyframes(out_map, b.id, _keys(b.id, ttype.incoming_keys(effective), 0.0))

    t_out = Transition(kind=kind, duration=effective, id=transition_id, linked_clip_id=b.id)
    t_in = Transition(kind=kind, duration=effective, id=transition_id, linked_clip_id=a.id)
    out: List[Clip] = []
    for c in clips:
        if c.id == a.id:
            c = replace(c, transition_out=t_out)
        elif c.id == b.id:
            c = replace(c, start_time=max(0.0, a.end_time - effective), transition_in=t_in)
        out.append(c)
    log.info("Applied %s transition (%.2fs) between %r and %r", kind, effective, a.name, b.name)
    return out, out_map, transition_id


def remove_transition(
    clips: List[Clip],
    kf_map: kf.KeyframeMap,
    clip_id: str,
    edge: str,
) -> Tuple[List[Clip], kf.KeyframeMap]:
    """
    Remove the transition on one edge ("in" or "out") of a clip.

    The opacity keys inside the overlap go away on both sides and the later clip
    moves back to start where the earlier one ends.
    """
    clip = find_clip(clips, clip_id)
    if clip is None or edge not in ("in", "out"):
        return clips, kf_map
    transition = clip.transition_in if edge == "in" else clip.transition_out
    if transition is None:
        return clips, kf_map

    other = find_clip(clips, transition.linked_clip_id)
    d = transition.duration
    if edge == "in":
        first, second = other, clip
    else:
        first, second = clip, other

    out_map = kf_map
    if first is not None:
        out_map = _drop_opacity(out_map, first.id, lambda t: t < first.duration - d)
    if second is not None:
        out_map = _drop_opacity(out_map, second.id, lambda t: t > d)

    out: List[Clip] = []
    for c in clips:
        if first is not None and c.id == first.id:
            c = replace(c, transition_out=None)
        if second is not None and c.id == second.id:
            changes = {"transition_in": None}
            if first is not None:
                changes["start_time"] = first.end_time
            c = replace(c, **changes)
        out.append(c)
    return out, out_map


def update_transition_duration(
    clips: List[Clip],
    kf_map: kf.KeyframeMap,
    clip_id: str,
    edge: str,
    new_duration: float,
) -> Tuple[List[Clip], kf.KeyframeMap]:
    """Remove the edge's transition and apply it again with a new duration."""
    clip = find_clip(clips, clip_id)
    if clip is None or edge not in ("in", "out"):
        return clips, kf_map
    transition = clip.transition_in if edge == "in" else clip.transition_out
    if transition is None or transition.linked_clip_id is None:
        return clips, kf_map
    a_id, b_id = (transition.linked_clip_id, clip_id) if edge == "in" else (clip_id, transition.linked_clip_id)
    clips, kf_map = remove_transition(clips, kf_map, clip_id, edge)
    clips, kf_map, _ = apply_transition(clips, kf_map, a_id, b_id, transition.kind, new_duration)
    return clips, kf_map


def find_clip_junction(
    clips: List[Clip],
    track_id: str,
    time: float,
    threshold: float = 0.5,
) -> Optional[Tuple[Clip, Clip, float]]:
    """Adjacent (touching) clips on a track whose junction lies within `threshold` of `time`."""
    on_track = sorted((c for c in clips if c.track_id == track_id), key=lambda c: c.start_time)
    for a, b in zip(on_track, on_track[1:]):
        if abs(b.start_time - a.end_time) < JUNCTION_GAP and abs(time - a.end_time) < threshold:
            return a, b, a.end_time
    return None
