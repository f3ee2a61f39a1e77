from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from .model import MAX_TRACK_HEIGHT, MIN_TRACK_HEIGHT, TRACK_KINDS, Track, creates_cycle, new_id

log = logging.getLogger("editcore.tracks")


def clamp_height(height: float) -> int:
    return int(max(MIN_TRACK_HEIGHT, min(MAX_TRACK_HEIGHT, round(float(height)))))


def find_track(tracks: List[Track], track_id: Optional[str]) -> Optional[Track]:
    for t in tracks:
        if t.id == track_id:
            return t
    return None


def add_track(tracks: List[Track], kind: str, height: int, name: Optional[str] = None) -> Tuple[List[Track], Track]:
    """
    Add a track. Video tracks go on top, audio tracks at the bottom.

    Returns:
        (new_tracks, created_track)
    """
    k = str(kind or "").strip().lower()
    if k not in TRACK_KINDS:
        k = "video"
    n = sum(1 for t in tracks if t.kind == k) + 1
    t = Track(
        id=new_id(k),
        name=str(name or f"{'Video' if k == 'video' else 'Audio'} {n}"),
        kind=k,
        height=clamp_height(height),
    )
    if k == "video":
        return [t, *tracks], t
    return [*tracks, t], t


def remove_track(tracks: List[Track], track_id: str) -> List[Track]:
    """Remove a track; children of the removed track lose their parent pointer."""
    if find_track(tracks, track_id) is None:
        return tracks
    return [
        replace(t, parent_track_id=None) if t.parent_track_id == track_id else t
        for t in tracks
        if t.id != track_id
    ]


def update_track(tracks: List[Track], track_id: str, **changes) -> List[Track]:
    if find_track(tracks, track_id) is None:
        return tracks
    return [replace(t, **changes) if t.id == track_id else t for t in tracks]


def set_track_height(tracks: List[Track], track_id: str, height: float) -> List[Track]:
    return update_track(tracks, track_id, height=clamp_height(height))


def scale_tracks_of_type(tracks: List[Track], kind: str, delta: float) -> List[Track]:
    """
    Resize all tracks of one kind together.

    The first call syncs mismatched heights to the tallest track; once they
    match, the delta is applied uniformly.
    """
    same = [t for t in tracks if t.kind == kind]
    if not same:
        return tracks
    tallest = max(t.height for t in same)
    if delta != 0 and any(t.height != tallest for t in same):
        target = tallest
    else:
        target = clamp_height(tallest + delta)
    return [replace(t, height=target) if t.kind == kind else t for t in tracks]


def set_track_parent(tracks: List[Track], track_id: str, parent_id: Optional[str]) -> List[Track]:
    """Assign a parent track; self-parenting and cycles are rejected."""
    if find_track(tracks, track_id) is None:
        return tracks
    if parent_id is not None and find_track(tracks, parent_id) is None:
        return tracks
    parents = {t.id: t.parent_track_id for t in tracks}
    if creates_cycle(parents, track_id, parent_id):
        log.warning("Cannot create circular track parent reference: %s -> %s", track_id, parent_id)
        return tracks
    return update_track(tracks, track_id, parent_track_id=parent_id)


def get_track_children(tracks: List[Track], track_id: str) -> List[Track]:
    return [t for t in tracks if t.parent_track_id == track_id]
