from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from . import keyframes as kf
from .model import Clip, Keyframe, Track, clamp, new_id
from .timeline import find_clip, linked_partner

log = logging.getLogger("editcore.clipboard")


@dataclass
class CopiedClip:
    clip: Clip
    track_kind: str
    keyframes: List[Keyframe] = field(default_factory=list)


@dataclass
class CopiedKeyframe:
    """A key with its time relative to the earliest copied key."""

    keyframe: Keyframe
    clip_id: str


def _detached(clip: Clip) -> Clip:
    # The source handle is opaque and shared; everything else is copied.
    source = clip.source
    dup = copy.deepcopy(replace(clip, source=None))
    return replace(dup, source=source)


def copy_clips(
    clips: List[Clip],
    tracks: List[Track],
    kf_map: kf.KeyframeMap,
    clip_ids: Iterable[str],
) -> List[CopiedClip]:
    """Snapshot clips, their keyframes and their track kind. Linked partners come along."""
    wanted: List[Clip] = []
    seen: Set[str] = set()
    for cid in clip_ids:
        clip = find_clip(clips, cid)
        if clip is None or clip.id in seen:
            continue
        wanted.append(clip)
        seen.add(clip.id)
        partner = linked_partner(clips, clip)
        if partner is not None and partner.id not in seen:
            wanted.append(partner)
            seen.add(partner.id)

    kinds = {t.id: t.kind for t in tracks}
    out = [
        CopiedClip(
            clip=_detached(c),
            track_kind=kinds.get(c.track_id, "video"),
            keyframes=[replace(k) for k in kf.keyframes_for(kf_map, c.id)],
        )
        for c in wanted
    ]
    log.info("Copied %d clip(s)", len(out))
    return out


def _target_track(tracks: List[Track], entry: CopiedClip) -> Optional[str]:
    if any(t.id == entry.clip.track_id for t in tracks):
        return entry.clip.track_id
    same_kind = next((t for t in tracks if t.kind == entry.track_kind), None)
    return same_kind.id if same_kind is not None else None


def _fresh_clip(entry: CopiedClip, clip_id: str, track_id: str, start: float) -> Tuple[Clip, Dict[str, str]]:
    """A copy with new ids throughout; also returns the effect id mapping."""
    clip = _detached(entry.clip)
    effect_ids: Dict[str, str] = {}
    effects = []
    for e in clip.effects:
        effect_ids[e.id] = new_id("effect")
        effects.append(replace(e, id=effect_ids[e.id]))
    masks = [
        replace(m, id=new_id("mask"), vertices=[replace(v, id=new_id("vertex")) for v in m.vertices])
        for m in clip.masks
    ]
    clip = replace(
        clip,
        id=clip_id,
        track_id=track_id,
        start_time=start,
        effects=effects,
        masks=masks,
        linked_group_id=None,
        parent_clip_id=None,
        transition_in=None,
        transition_out=None,
    )
    return clip, effect_ids


def _remap_property(prop: str, effect_ids: Dict[str, str]) -> str:
    parts = prop.split(".")
    if len(parts) == 3 and parts[0] == "effect" and parts[1] in effect_ids:
        return f"effect.{effect_ids[parts[1]]}.{parts[2]}"
    return prop


def paste_clips(
    clips: List[Clip],
    tracks: List[Track],
    kf_map: kf.KeyframeMap,
    entries: List[CopiedClip],
    playhead: float,
) -> Tuple[List[Clip], kf.KeyframeMap, List[str]]:
    """
    Paste copied clips so the earliest one starts at the playhead.

    Each clip returns to its original track when that still exists, else to the
    first track of the same kind. Clips with no such track are skipped.

    Returns:
        (new_clips, new_keyframes, pasted_ids)
    """
    if not entries:
        return clips, kf_map, []
    earliest = min(e.clip.start_time for e in entries)
    offset = float(playhead) - earliest
    id_map = {e.clip.id: new_id("clip") for e in entries}

    pasted: List[Clip] = []
    out_map = kf_map
    for entry in entries:
        track_id = _target_track(tracks, entry)
        if track_id is None:
            log.warning("No %s track to paste %r into", entry.track_kind, entry.clip.name)
            continue
        start = max(0.0, entry.clip.start_time + offset)
        clip, effect_ids = _fresh_clip(entry, id_map[entry.clip.id], track_id, start)
        pasted.append(clip)
        if entry.keyframes:
            keys = [
                replace(k, id=new_id("kf"), clip_id=clip.id, property=_remap_property(k.property, effect_ids))
                for k in entry.keyframes
            ]
            out_map = kf.put_keyframes(out_map, clip.id, keys)

    placed = {c.id for c in pasted}
    pasted = [
        replace(c, linked_clip_id=id_map.get(c.linked_clip_id) if id_map.get(c.linked_clip_id) in placed else None)
        for c in pasted
    ]
    log.info("Pasted %d clip(s) at %.2fs", len(pasted), playhead)
    return [*clips, *pasted], out_map, [c.id for c in pasted]


def copy_keyframes(kf_map: kf.KeyframeMap, keyframe_ids: Iterable[str]) -> List[CopiedKeyframe]:
    ids = set(keyframe_ids)
    picked = [k for kfs in kf_map.values() for k in kfs if k.id in ids]
    if not picked:
        return []
    earliest = min(k.time for k in picked)
    return [CopiedKeyframe(keyframe=replace(k, time=k.time - earliest), clip_id=k.clip_id) for k in picked]


def paste_keyframes(
    kf_map: kf.KeyframeMap,
    entries: List[CopiedKeyframe],
    target: Clip,
    playhead: float,
) -> Tuple[kf.KeyframeMap, List[str]]:
    """Paste keys into `target` starting at the playhead, clamped to the clip's span."""
    if not entries:
        return kf_map, []
    base = float(playhead) - target.start_time
    keys = [
        replace(e.keyframe, id=new_id("kf"), clip_id=target.id, time=clamp(base + e.keyframe.time, 0.0, target.duration))
        for e in entries
    ]
    out_map = kf.put_keyframes(kf_map, target.id, keys)
    # Keys clamped onto the same time collapse to the last one.
    live = {k.id for k in out_map.get(target.id, [])}
    return out_map, [k.id for k in keys if k.id in live]
