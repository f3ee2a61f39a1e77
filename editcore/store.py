from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from . import clipboard as cb
from . import keyframes as kf
from . import masks as mk
from . import timeline as tl
from . import tracks as tr
from . import transitions as tx
from .model import (
    CURVE_EDITOR_HEIGHT,
    DEFAULT_DOWNLOAD_DURATION,
    DEFAULT_MARKER_COLOR,
    DEFAULT_TIMELINE_DURATION,
    MASK_EDIT_MODES,
    MAX_CURVE_EDITOR_HEIGHT,
    MAX_ZOOM,
    MIN_CURVE_EDITOR_HEIGHT,
    MIN_ZOOM,
    PROPERTY_ROW_HEIGHT,
    Clip,
    ClipMask,
    ClipSource,
    Effect,
    Keyframe,
    Marker,
    Point,
    Track,
    Transform,
    clamp,
    new_id,
)
from .properties import ClipSpeed, parse_property, write_static

log = logging.getLogger("editcore.store")

# Trailing room after the last clip when the timeline grows.
DURATION_PADDING = 10.0


def _recording_key(clip_id: str, prop: str) -> str:
    return f"{clip_id}:{prop}"


class TimelineStore:
    """
    Live timeline document: tracks, clips, keyframes, masks, markers, and the
    selection/playhead/tool state the editor works with.

    Mutations replace `tracks`, `clips` and `clip_keyframes` with new objects
    rather than editing them in place, so a captured state is never aliased by
    later edits.
    """

    # Fields that make up the document (and the undoable view state).
    HISTORY_KEYS = ("tracks", "clips", "clip_keyframes", "selected_clip_ids", "zoom", "scroll_x", "markers")
    DOCUMENT_KEYS = ("tracks", "clips", "clip_keyframes", "markers")

    STATE_KEYS = (
        "tracks",
        "clips",
        "clip_keyframes",
        "keyframe_recording",
        "selected_clip_ids",
        "selected_keyframe_ids",
        "playhead_position",
        "duration",
        "zoom",
        "scroll_x",
        "markers",
        "mask_edit_mode",
        "active_mask_id",
        "selected_vertex_ids",
        "mask_draw_start",
        "expanded_tracks",
        "expanded_curve_properties",
        "curve_editor_height",
    )

    def __init__(
        self,
        default_duration: float = DEFAULT_TIMELINE_DURATION,
        video_track_height: int = 60,
        audio_track_height: int = 40,
        curve_editor_height: int = CURVE_EDITOR_HEIGHT,
        on_invalidate: Optional[Callable[[], None]] = None,
    ) -> None:
        self.default_duration = max(1.0, float(default_duration))
        self.video_track_height = tr.clamp_height(video_track_height)
        self.audio_track_height = tr.clamp_height(audio_track_height)
        self._on_invalidate = on_invalidate

        self.tracks: List[Track] = [
            Track(id="video-1", name="Video 1", kind="video", height=self.video_track_height),
            Track(id="video-2", name="Video 2", kind="video", height=self.video_track_height),
            Track(id="audio-1", name="Audio", kind="audio", height=self.audio_track_height),
        ]
        self.clips: List[Clip] = []
        self.clip_keyframes: Dict[str, List[Keyframe]] = {}
        self.keyframe_recording: Set[str] = set()
        self.selected_clip_ids: Set[str] = set()
        self.selected_keyframe_ids: Set[str] = set()
        self.playhead_position = 0.0
        self.duration = self.default_duration
        self.zoom = 50.0
        self.scroll_x = 0.0
        self.markers: List[Marker] = []

        self.mask_edit_mode = "none"
        self.active_mask_id: Optional[str] = None
        self.selected_vertex_ids: Set[str] = set()
        self.mask_draw_start: Optional[Point] = None

        self.expanded_tracks: Set[str] = set()
        self.expanded_curve_properties: Dict[str, Set[str]] = {}
        self.curve_editor_height = int(clamp(curve_editor_height, MIN_CURVE_EDITOR_HEIGHT, MAX_CURVE_EDITOR_HEIGHT))

        # Clipboard contents survive undo/redo.
        self.copied_clips: List[cb.CopiedClip] = []
        self.copied_keyframes: List[cb.CopiedKeyframe] = []

    # ---------- snapshot accessors ----------

    def get_state(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in self.STATE_KEYS}

    def set_state(self, partial: Mapping[str, Any]) -> None:
        """Replace the named fields; unknown keys are ignored."""
        for k, v in partial.items():
            if k in self.STATE_KEYS:
                setattr(self, k, v)
        if "clips" in partial:
            self.update_duration()
        if "clips" in partial or "clip_keyframes" in partial:
            self._prune_selections()
        self.invalidate_cache()

    def _prune_selections(self) -> None:
        """Drop selection and tool state that points at clips, keys or masks no longer present."""
        clip_ids = {c.id for c in self.clips}
        key_ids = {k.id for kfs in self.clip_keyframes.values() for k in kfs}
        masks = [m for c in self.clips for m in c.masks]
        vertex_ids = {v.id for m in masks for v in m.vertices}

        self.selected_clip_ids = self.selected_clip_ids & clip_ids
        self.selected_keyframe_ids = self.selected_keyframe_ids & key_ids
        self.selected_vertex_ids = self.selected_vertex_ids & vertex_ids
        if self.active_mask_id is not None and all(m.id != self.active_mask_id for m in masks):
            self.active_mask_id = None
            if self.mask_edit_mode == "editing":
                self.mask_edit_mode = "none"

    def invalidate_cache(self) -> None:
        if self._on_invalidate is not None:
            self._on_invalidate()

    # ---------- tracks ----------

    def get_track(self, track_id: str) -> Optional[Track]:
        return tr.find_track(self.tracks, track_id)

    def add_track(self, kind: str, name: Optional[str] = None) -> str:
        height = self.audio_track_height if kind == "audio" else self.video_track_height
        self.tracks, track = tr.add_track(self.tracks, kind, height, name)
        self.expanded_tracks = self.expanded_tracks | {track.id}
        return track.id

    def remove_track(self, track_id: str) -> None:
        if self.get_track(track_id) is None:
            return
        self.tracks = tr.remove_track(self.tracks, track_id)
        gone = {c.id for c in self.clips if c.track_id == track_id}
        if gone:
            self._drop_clips(gone)
        self.expanded_tracks = self.expanded_tracks - {track_id}
        self.expanded_curve_properties = {
            t: props for t, props in self.expanded_curve_properties.items() if t != track_id
        }
        self.update_duration()
        self.invalidate_cache()

    def rename_track(self, track_id: str, name: str) -> None:
        self.tracks = tr.update_track(self.tracks, track_id, name=str(name))

    def set_track_muted(self, track_id: str, muted: bool) -> None:
        self.tracks = tr.update_track(self.tracks, track_id, muted=bool(muted))

    def set_track_visible(self, track_id: str, visible: bool) -> None:
        track = self.get_track(track_id)
        self.tracks = tr.update_track(self.tracks, track_id, visible=bool(visible))
        if track is not None and track.kind == "video":
            self.invalidate_cache()

    def set_track_solo(self, track_id: str, solo: bool) -> None:
        track = self.get_track(track_id)
        self.tracks = tr.update_track(self.tracks, track_id, solo=bool(solo))
        if track is not None and track.kind == "video":
            self.invalidate_cache()

    def set_track_height(self, track_id: str, height: float) -> None:
        self.tracks = tr.set_track_height(self.tracks, track_id, height)

    def scale_tracks_of_type(self, kind: str, delta: float) -> None:
        self.tracks = tr.scale_tracks_of_type(self.tracks, kind, delta)

    def set_track_parent(self, track_id: str, parent_id: Optional[str]) -> None:
        self.tracks = tr.set_track_parent(self.tracks, track_id, parent_id)

    def get_track_children(self, track_id: str) -> List[Track]:
        return tr.get_track_children(self.tracks, track_id)

    # ---------- clips ----------

    def get_clip(self, clip_id: str) -> Optional[Clip]:
        return tl.find_clip(self.clips, clip_id)

    def add_clip(self, clip: Clip) -> bool:
        before = len(self.clips)
        self.clips = tl.add_clip(self.clips, self.tracks, clip)
        if len(self.clips) == before:
            return False
        self.update_duration()
        self.invalidate_cache()
        return True

    def find_available_audio_track(self, start_time: float, duration: float) -> str:
        """First audio track free over the span; a new one is added when all are busy."""
        for t in self.tracks:
            if t.kind == "audio" and tl.is_track_span_free(self.clips, t.id, start_time, duration):
                return t.id
        track_id = self.add_track("audio")
        log.info("Created audio track %s for linked audio", track_id)
        return track_id

    def add_media_clip(
        self,
        track_id: str,
        name: str,
        start_time: float,
        duration: float,
        kind: str = "video",
        media_file_id: Optional[str] = None,
        with_audio: bool = True,
    ) -> str:
        """
        Place a media clip. Video with audio also gets a linked audio clip on the
        first free audio track.

        Returns:
            The new clip id, or "" when the placement was rejected.
        """
        clip = tl.new_media_clip(track_id, name, start_time, duration, kind, media_file_id)
        if not self.add_clip(clip):
            return ""
        if kind == "video" and with_audio:
            audio_track_id = self.find_available_audio_track(clip.start_time, clip.duration)
            audio = replace(
                tl.new_media_clip(audio_track_id, f"{name} (Audio)", clip.start_time, clip.duration, "audio", media_file_id),
                linked_clip_id=clip.id,
            )
            if self.add_clip(audio):
                self.clips = tl.update_clip(self.clips, clip.id, {"linked_clip_id": audio.id})
        return clip.id

    def add_pending_download_clip(
        self,
        track_id: str,
        start_time: float,
        video_id: str,
        title: str,
        thumbnail: Optional[str] = None,
        estimated_duration: float = DEFAULT_DOWNLOAD_DURATION,
    ) -> str:
        """Placeholder clip shown while a remote video downloads. Video tracks only."""
        track = self.get_track(track_id)
        if track is None or track.kind != "video":
            log.warning("Pending download clip needs a video track: %s", track_id)
            return ""
        dur = max(0.0, float(estimated_duration))
        clip = Clip(
            id=new_id("clip-dl"),
            track_id=track_id,
            name=str(title),
            start_time=max(0.0, float(start_time)),
            duration=dur,
            in_point=0.0,
            out_point=dur,
            source=ClipSource(kind="video", natural_duration=dur),
            thumbnails=[thumbnail] if thumbnail else None,
            is_pending_download=True,
            download_progress=0.0,
            download_video_id=str(video_id),
        )
        return clip.id if self.add_clip(clip) else ""

    def update_download_progress(self, clip_id: str, progress: float) -> None:
        self.clips = tl.update_clip(self.clips, clip_id, {"download_progress": clamp(progress, 0.0, 100.0)})

    def set_download_error(self, clip_id: str, error: str) -> None:
        self.clips = tl.update_clip(self.clips, clip_id, {"download_error": str(error), "is_pending_download": False})

    def set_clip_preserves_pitch(self, clip_id: str, preserves_pitch: bool) -> None:
        self.clips = tl.update_clip(self.clips, clip_id, {"preserves_pitch": bool(preserves_pitch)})

    def update_clip(self, clip_id: str, changes: Mapping[str, Any]) -> None:
        self.clips = tl.update_clip(self.clips, clip_id, changes)
        if "start_time" in changes or "duration" in changes:
            self.update_duration()

    def _drop_clips(self, clip_ids: Set[str]) -> None:
        # Remove clips outright (track deletion); partner links are cleared.
        self.clips = [
            replace(c, linked_clip_id=None) if c.linked_clip_id in clip_ids else c
            for c in self.clips
            if c.id not in clip_ids
        ]
        self.clips = [replace(c, parent_clip_id=None) if c.parent_clip_id in clip_ids else c for c in self.clips]
        self._forget_clips(clip_ids)

    def _forget_clips(self, clip_ids: Set[str]) -> None:
        self.clip_keyframes = kf.remove_clip_keyframes(self.clip_keyframes, clip_ids)
        self.selected_clip_ids = self.selected_clip_ids - clip_ids
        self.keyframe_recording = {k for k in self.keyframe_recording if k.split(":", 1)[0] not in clip_ids}
        live = {k.id for kfs in self.clip_keyframes.values() for k in kfs}
        self.selected_keyframe_ids = self.selected_keyframe_ids & live

    def remove_clip(self, clip_id: str) -> None:
        self.clips, removed = tl.remove_clip(self.clips, clip_id, self.selected_clip_ids)
        if not removed:
            return
        self._forget_clips(removed)
        self.update_duration()
        self.invalidate_cache()

    def trim_clip(self, clip_id: str, new_in_point: float, new_out_point: float) -> None:
        self.clips = tl.trim_clip(self.clips, clip_id, new_in_point, new_out_point)
        self.update_duration()
        self.invalidate_cache()

    def _apply_split(self, clip_id: str, split_time: float) -> Optional[str]:
        self.clips, splits = tl.split_clip(self.clips, clip_id, split_time)
        if not splits:
            return None
        for old_id, first_id, second_id, offset in splits:
            self.clip_keyframes = kf.split_keyframes(self.clip_keyframes, old_id, first_id, second_id, offset)
        self.selected_clip_ids = self.selected_clip_ids - {s[0] for s in splits}
        return splits[0][2]

    def split_clip(self, clip_id: str, split_time: float) -> Optional[str]:
        """Split at an absolute time; the second half becomes the selection. Returns its id."""
        second_id = self._apply_split(clip_id, split_time)
        if second_id is None:
            return None
        self.selected_clip_ids = {second_id}
        self.invalidate_cache()
        return second_id

    def split_clip_at_playhead(self) -> List[str]:
        t = self.playhead_position
        under = tl.clips_at_time(self.clips, t)
        if not under:
            log.warning("No clip under playhead at %.2fs", t)
            return []
        targets = [c for c in under if c.id in self.selected_clip_ids] or under

        seconds: List[str] = []
        for c in targets:
            # A linked partner split earlier in this loop no longer exists.
            if self.get_clip(c.id) is None:
                continue
            second_id = self._apply_split(c.id, t)
            if second_id is not None:
                seconds.append(second_id)
        if seconds:
            self.selected_clip_ids = set(seconds)
            self.invalidate_cache()
        return seconds

    def move_clip(
        self,
        clip_id: str,
        new_start_time: float,
        new_track_id: Optional[str] = None,
        skip_linked: bool = False,
        skip_group: bool = False,
        snap: bool = False,
    ) -> None:
        """Move a clip. With `snap`, the start sticks to nearby edges and is pushed off overlapped clips."""
        clip = self.get_clip(clip_id)
        if clip is None:
            return
        if snap:
            track_id = new_track_id or clip.track_id
            new_start_time = tl.snapped_start(self.clips, clip, new_start_time, track_id)
            new_start_time = tl.non_overlapping_start(self.clips, clip, new_start_time, track_id)
        self.clips = tl.move_clip(self.clips, self.tracks, clip_id, new_start_time, new_track_id, skip_linked, skip_group)
        self.update_duration()
        self.invalidate_cache()

    def update_clip_transform(self, clip_id: str, patch: Mapping[str, Any]) -> None:
        self.clips = tl.update_clip_transform(self.clips, clip_id, patch)
        self.invalidate_cache()

    def toggle_clip_reverse(self, clip_id: str) -> None:
        self.clips = tl.toggle_clip_reverse(self.clips, clip_id)
        self.invalidate_cache()

    def add_clip_effect(self, clip_id: str, effect_type: str, params: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        self.clips, effect_id = tl.add_clip_effect(self.clips, clip_id, effect_type, params)
        if effect_id:
            self.invalidate_cache()
        return effect_id

    def remove_clip_effect(self, clip_id: str, effect_id: str) -> None:
        self.clips = tl.remove_clip_effect(self.clips, clip_id, effect_id)
        self.clip_keyframes = kf.remove_effect_keyframes(self.clip_keyframes, clip_id, effect_id)
        self.invalidate_cache()

    def update_clip_effect(self, clip_id: str, effect_id: str, params: Mapping[str, Any]) -> None:
        self.clips = tl.update_clip_effect(self.clips, clip_id, effect_id, params)
        self.invalidate_cache()

    def set_clip_effect_enabled(self, clip_id: str, effect_id: str, enabled: bool) -> None:
        self.clips = tl.set_clip_effect_enabled(self.clips, clip_id, effect_id, enabled)
        self.invalidate_cache()

    def create_linked_group(self, clip_ids: List[str], offsets_ms: Mapping[str, float]) -> Optional[str]:
        self.clips, group_id = tl.create_linked_group(self.clips, clip_ids, offsets_ms)
        if group_id:
            self.update_duration()
        return group_id

    def unlink_group(self, clip_id: str) -> None:
        self.clips = tl.unlink_group(self.clips, clip_id)

    def set_clip_parent(self, child_id: str, parent_id: Optional[str]) -> None:
        self.clips = tl.set_clip_parent(self.clips, child_id, parent_id)

    def get_clip_children(self, clip_id: str) -> List[Clip]:
        return tl.get_clip_children(self.clips, clip_id)

    # ---------- transitions ----------

    def apply_transition(self, clip_a_id: str, clip_b_id: str, kind: str = "crossfade", duration: float = 0.5) -> str:
        """Returns the shared transition id, or "" when rejected."""
        self.clips, self.clip_keyframes, transition_id = tx.apply_transition(
            self.clips, self.clip_keyframes, clip_a_id, clip_b_id, kind, duration
        )
        if not transition_id:
            return ""
        self.update_duration()
        self.invalidate_cache()
        return transition_id

    def remove_transition(self, clip_id: str, edge: str) -> None:
        self.clips, self.clip_keyframes = tx.remove_transition(self.clips, self.clip_keyframes, clip_id, edge)
        self._prune_selections()
        self.update_duration()
        self.invalidate_cache()

    def update_transition_duration(self, clip_id: str, edge: str, duration: float) -> None:
        self.clips, self.clip_keyframes = tx.update_transition_duration(
            self.clips, self.clip_keyframes, clip_id, edge, duration
        )
        self._prune_selections()
        self.update_duration()
        self.invalidate_cache()

    def find_clip_junction(self, track_id: str, time: float, threshold: float = 0.5):
        return tx.find_clip_junction(self.clips, track_id, time, threshold)

    # ---------- clipboard ----------

    def copy_clips(self) -> None:
        if not self.selected_clip_ids:
            return
        ids = [c.id for c in self.clips if c.id in self.selected_clip_ids]
        self.copied_clips = cb.copy_clips(self.clips, self.tracks, self.clip_keyframes, ids)
        self.copied_keyframes = []

    def paste_clips(self) -> List[str]:
        """Paste at the playhead; the pasted clips become the selection."""
        self.clips, self.clip_keyframes, pasted = cb.paste_clips(
            self.clips, self.tracks, self.clip_keyframes, self.copied_clips, self.playhead_position
        )
        if not pasted:
            return []
        self.selected_clip_ids = set(pasted)
        self.update_duration()
        self.invalidate_cache()
        return pasted

    def copy_keyframes(self) -> None:
        if not self.selected_keyframe_ids:
            return
        self.copied_keyframes = cb.copy_keyframes(self.clip_keyframes, self.selected_keyframe_ids)

    def paste_keyframes(self) -> List[str]:
        """
        Paste keys at the playhead into the single selected clip (or the clip they
        came from). With no copied keys this pastes clips instead.
        """
        if not self.copied_keyframes:
            return self.paste_clips()
        target = None
        if len(self.selected_clip_ids) == 1:
            target = self.get_clip(next(iter(self.selected_clip_ids)))
        if target is None:
            target = self.get_clip(self.copied_keyframes[0].clip_id)
        if target is None:
            log.warning("No clip to paste keyframes into")
            return []
        self.clip_keyframes, pasted = cb.paste_keyframes(
            self.clip_keyframes, self.copied_keyframes, target, self.playhead_position
        )
        self.selected_keyframe_ids = set(pasted)
        self.invalidate_cache()
        return pasted

    def has_clipboard_data(self) -> bool:
        return bool(self.copied_clips or self.copied_keyframes)

    # ---------- selection ----------

    def select_clip(self, clip_id: Optional[str], add_to_selection: bool = False) -> None:
        if clip_id is None:
            self.selected_clip_ids = set()
            return
        if self.get_clip(clip_id) is None:
            return
        if add_to_selection:
            self.selected_clip_ids = self.selected_clip_ids ^ {clip_id}
        else:
            self.selected_clip_ids = {clip_id}

    def select_clips(self, clip_ids: Iterable[str]) -> None:
        known = {c.id for c in self.clips}
        self.selected_clip_ids = {i for i in clip_ids if i in known}

    def clear_clip_selection(self) -> None:
        self.selected_clip_ids = set()

    # ---------- playback ----------

    def set_playhead_position(self, position: float) -> None:
        self.playhead_position = clamp(position, 0.0, self.duration)

    def set_zoom(self, zoom: float) -> None:
        self.zoom = clamp(zoom, MIN_ZOOM, MAX_ZOOM)

    def set_scroll_x(self, scroll_x: float) -> None:
        self.scroll_x = max(0.0, float(scroll_x))

    def update_duration(self) -> None:
        if not self.clips:
            self.duration = self.default_duration
            return
        furthest = max(c.end_time for c in self.clips)
        self.duration = max(self.default_duration, furthest + DURATION_PADDING)

    # ---------- markers ----------

    def _sort_markers(self, markers: List[Marker]) -> List[Marker]:
        return sorted(markers, key=lambda m: m.time)

    def add_marker(self, time: float, label: str = "", color: Optional[str] = None) -> str:
        marker = Marker(
            id=new_id("marker"),
            time=clamp(time, 0.0, self.duration),
            label=str(label or ""),
            color=str(color or DEFAULT_MARKER_COLOR),
        )
        self.markers = self._sort_markers([*self.markers, marker])
        return marker.id

    def remove_marker(self, marker_id: str) -> None:
        self.markers = [m for m in self.markers if m.id != marker_id]

    def update_marker(self, marker_id: str, changes: Mapping[str, Any]) -> None:
        patch = {k: v for k, v in changes.items() if k in ("time", "label", "color")}
        if "time" in patch:
            patch["time"] = clamp(patch["time"], 0.0, self.duration)
        if not patch:
            return
        self.markers = self._sort_markers([replace(m, **patch) if m.id == marker_id else m for m in self.markers])

    def move_marker(self, marker_id: str, new_time: float) -> None:
        self.update_marker(marker_id, {"time": new_time})

    def clear_markers(self) -> None:
        self.markers = []

    # ---------- keyframes ----------

    def _local_playhead(self, clip: Clip) -> float:
        return self.playhead_position - clip.start_time

    def get_clip_keyframes(self, clip_id: str) -> List[Keyframe]:
        return kf.keyframes_for(self.clip_keyframes, clip_id)

    def has_keyframes(self, clip_id: str, prop: Optional[str] = None) -> bool:
        return kf.has_keyframes(self.clip_keyframes, clip_id, prop)

    def _find_keyframe(self, keyframe_id: str) -> Optional[Keyframe]:
        return kf.find_keyframe(self.clip_keyframes, keyframe_id)

    def add_keyframe(
        self,
        clip_id: str,
        prop: str,
        value: float,
        time: Optional[float] = None,
        easing: str = "linear",
    ) -> str:
        """
        Insert (or overwrite) a keyframe. `time` is clip-local and defaults to the
        playhead position relative to the clip start.

        Returns:
            The keyframe id, or "" for an unknown clip, property or easing.
        """
        clip = self.get_clip(clip_id)
        if clip is None:
            return ""
        t = self._local_playhead(clip) if time is None else float(time)
        self.clip_keyframes, keyframe_id = kf.add_keyframe(self.clip_keyframes, clip, prop, value, t, easing)
        if keyframe_id:
            self.invalidate_cache()
        return keyframe_id

    def remove_keyframe(self, keyframe_id: str) -> None:
        if self._find_keyframe(keyframe_id) is None:
            return
        self.clip_keyframes = kf.remove_keyframes(self.clip_keyframes, [keyframe_id])
        self.selected_keyframe_ids = self.selected_keyframe_ids - {keyframe_id}
        self.invalidate_cache()

    def update_keyframe(self, keyframe_id: str, changes: Mapping[str, Any]) -> None:
        k = self._find_keyframe(keyframe_id)
        if k is None:
            return
        self.clip_keyframes = kf.update_keyframe(self.clip_keyframes, keyframe_id, changes, self.get_clip(k.clip_id))
        self.invalidate_cache()

    def move_keyframe(self, keyframe_id: str, new_time: float) -> None:
        k = self._find_keyframe(keyframe_id)
        if k is None:
            return
        self.clip_keyframes = kf.move_keyframe(self.clip_keyframes, keyframe_id, new_time, self.get_clip(k.clip_id))
        self.invalidate_cache()

    def update_bezier_handle(self, keyframe_id: str, handle: str, offset: Point) -> None:
        if self._find_keyframe(keyframe_id) is None:
            return
        self.clip_keyframes = kf.update_bezier_handle(self.clip_keyframes, keyframe_id, handle, offset)
        self.invalidate_cache()

    def select_keyframe(self, keyframe_id: str, add_to_selection: bool = False) -> None:
        if self._find_keyframe(keyframe_id) is None:
            return
        if add_to_selection:
            self.selected_keyframe_ids = self.selected_keyframe_ids ^ {keyframe_id}
        else:
            self.selected_keyframe_ids = {keyframe_id}

    def deselect_all_keyframes(self) -> None:
        self.selected_keyframe_ids = set()

    def delete_selected_keyframes(self) -> None:
        if not self.selected_keyframe_ids:
            return
        self.clip_keyframes = kf.remove_keyframes(self.clip_keyframes, self.selected_keyframe_ids)
        self.selected_keyframe_ids = set()
        self.invalidate_cache()

    def is_recording(self, clip_id: str, prop: str) -> bool:
        return _recording_key(clip_id, prop) in self.keyframe_recording

    def toggle_keyframe_recording(self, clip_id: str, prop: str) -> None:
        self.keyframe_recording = self.keyframe_recording ^ {_recording_key(clip_id, prop)}

    def _retime_for_speed(self, clip_id: str, speed: float) -> None:
        clip = self.get_clip(clip_id)
        if clip is None:
            return
        source = clip.out_point - clip.in_point
        new_duration = kf.timeline_duration(self.get_clip_keyframes(clip_id), source, speed)
        self.clips = tl.update_clip(self.clips, clip_id, {"speed": float(speed), "duration": new_duration})
        self.update_duration()

    def set_property_value(self, clip_id: str, prop: str, value: float) -> None:
        """
        Write a property from the editor. Animated (or recording) properties get a
        keyframe at the playhead; anything else changes the clip's static value.
        """
        clip = self.get_clip(clip_id)
        if clip is None or parse_property(prop) is None:
            return
        if self.is_recording(clip_id, prop) or self.has_keyframes(clip_id, prop):
            self.add_keyframe(clip_id, prop, value)
        else:
            self.clips = [write_static(c, prop, value) if c.id == clip_id else c for c in self.clips]
        if isinstance(parse_property(prop), ClipSpeed):
            self._retime_for_speed(clip_id, value)
        self.invalidate_cache()

    def disable_property_keyframes(self, clip_id: str, prop: str, current_value: float) -> None:
        """Drop a property's animation, keeping `current_value` as its static value."""
        if self.get_clip(clip_id) is None:
            return
        self.clip_keyframes = kf.remove_property_keyframes(self.clip_keyframes, clip_id, prop)
        self.keyframe_recording = self.keyframe_recording - {_recording_key(clip_id, prop)}
        live = {k.id for kfs in self.clip_keyframes.values() for k in kfs}
        self.selected_keyframe_ids = self.selected_keyframe_ids & live
        self.clips = [write_static(c, prop, current_value) if c.id == clip_id else c for c in self.clips]
        if isinstance(parse_property(prop), ClipSpeed):
            self._retime_for_speed(clip_id, current_value)
        self.invalidate_cache()

    def get_interpolated_transform(self, clip_id: str, local_time: float) -> Transform:
        clip = self.get_clip(clip_id)
        if clip is None:
            return Transform()
        return kf.interpolated_transform(clip, self.get_clip_keyframes(clip_id), local_time)

    def get_interpolated_effects(self, clip_id: str, local_time: float) -> List[Effect]:
        clip = self.get_clip(clip_id)
        if clip is None:
            return []
        return kf.interpolated_effects(clip, self.get_clip_keyframes(clip_id), local_time)

    def get_interpolated_speed(self, clip_id: str, local_time: float) -> float:
        clip = self.get_clip(clip_id)
        if clip is None:
            return 1.0
        return kf.speed_at(self.get_clip_keyframes(clip_id), local_time, clip.speed)

    def get_source_time_for_clip(self, clip_id: str, local_time: float) -> float:
        clip = self.get_clip(clip_id)
        if clip is None:
            return local_time
        kfs = self.get_clip_keyframes(clip_id)
        if clip.speed == 1.0 and not any(k.property == "speed" for k in kfs):
            return local_time
        return kf.source_time(kfs, local_time, clip.speed)

    def track_has_keyframes(self, track_id: str) -> bool:
        return any(self.has_keyframes(c.id) for c in self.clips if c.track_id == track_id)

    def toggle_track_expanded(self, track_id: str) -> None:
        self.expanded_tracks = self.expanded_tracks ^ {track_id}

    def is_track_expanded(self, track_id: str) -> bool:
        return track_id in self.expanded_tracks

    def toggle_curve_expanded(self, track_id: str, prop: str) -> None:
        # One curve editor open at a time.
        if self.is_curve_expanded(track_id, prop):
            self.expanded_curve_properties = {}
        else:
            self.expanded_curve_properties = {track_id: {prop}}

    def is_curve_expanded(self, track_id: str, prop: str) -> bool:
        return prop in self.expanded_curve_properties.get(track_id, set())

    def set_curve_editor_height(self, height: float) -> None:
        self.curve_editor_height = int(round(clamp(height, MIN_CURVE_EDITOR_HEIGHT, MAX_CURVE_EDITOR_HEIGHT)))

    def get_expanded_track_height(self, track_id: str, base_height: float) -> float:
        if track_id not in self.expanded_tracks:
            return base_height
        selected = next((c for c in self.clips if c.track_id == track_id and c.id in self.selected_clip_ids), None)
        if selected is None:
            return base_height
        props = {k.property for k in self.get_clip_keyframes(selected.id)}
        if not props:
            return base_height
        extra = len(props) * PROPERTY_ROW_HEIGHT
        for prop in self.expanded_curve_properties.get(track_id, set()):
            if prop in props:
                extra += self.curve_editor_height
        return base_height + extra

    # ---------- masks ----------

    def get_clip_masks(self, clip_id: str) -> List[ClipMask]:
        return mk.get_clip_masks(self.clips, clip_id)

    def add_mask(self, clip_id: str, data: Optional[Mapping[str, Any]] = None) -> str:
        self.clips, mask_id = mk.add_mask(self.clips, clip_id, data)
        if not mask_id:
            return ""
        self.invalidate_cache()
        return mask_id

    def add_rectangle_mask(self, clip_id: str) -> str:
        return self.add_mask(clip_id, {"name": "Rectangle Mask", "vertices": mk.rectangle_vertices(), "closed": True})

    def add_ellipse_mask(self, clip_id: str) -> str:
        return self.add_mask(clip_id, {"name": "Ellipse Mask", "vertices": mk.ellipse_vertices(), "closed": True})

    def remove_mask(self, clip_id: str, mask_id: str) -> None:
        if not any(m.id == mask_id for m in self.get_clip_masks(clip_id)):
            return
        self.clips = mk.remove_mask(self.clips, clip_id, mask_id)
        if self.active_mask_id == mask_id:
            self.active_mask_id = None
        self.invalidate_cache()

    def update_mask(self, clip_id: str, mask_id: str, changes: Mapping[str, Any]) -> None:
        self.clips = mk.update_mask(self.clips, clip_id, mask_id, changes)
        self.invalidate_cache()

    def reorder_masks(self, clip_id: str, from_index: int, to_index: int) -> None:
        self.clips = mk.reorder_masks(self.clips, clip_id, from_index, to_index)
        self.invalidate_cache()

    def add_vertex(self, clip_id: str, mask_id: str, vertex: Mapping[str, Any], index: Optional[int] = None) -> str:
        self.clips, vertex_id = mk.add_vertex(self.clips, clip_id, mask_id, vertex, index)
        if not vertex_id:
            return ""
        self.invalidate_cache()
        return vertex_id

    def remove_vertex(self, clip_id: str, mask_id: str, vertex_id: str) -> None:
        self.clips = mk.remove_vertex(self.clips, clip_id, mask_id, vertex_id)
        self.selected_vertex_ids = self.selected_vertex_ids - {vertex_id}
        self.invalidate_cache()

    def update_vertex(
        self,
        clip_id: str,
        mask_id: str,
        vertex_id: str,
        changes: Mapping[str, Any],
        skip_cache_invalidation: bool = False,
    ) -> None:
        """Partial vertex edit. Drag frames pass `skip_cache_invalidation` and invalidate once on release."""
        self.clips = mk.update_vertex(self.clips, clip_id, mask_id, vertex_id, changes)
        if not skip_cache_invalidation:
            self.invalidate_cache()

    def close_mask(self, clip_id: str, mask_id: str) -> None:
        self.clips = mk.close_mask(self.clips, clip_id, mask_id)
        self.invalidate_cache()

    def set_mask_edit_mode(self, mode: str) -> None:
        if mode not in MASK_EDIT_MODES:
            log.warning("Unknown mask edit mode: %s", mode)
            return
        self.mask_edit_mode = mode
        self.mask_draw_start = None
        if mode == "none":
            self.active_mask_id = None
            self.selected_vertex_ids = set()

    def set_active_mask(self, clip_id: Optional[str], mask_id: Optional[str]) -> None:
        # Clearing the active mask keeps the current mode.
        self.active_mask_id = mask_id
        self.selected_vertex_ids = set()
        if clip_id is not None and mask_id is not None:
            self.mask_edit_mode = "editing"

    def select_vertex(self, vertex_id: str, add_to_selection: bool = False) -> None:
        if add_to_selection:
            self.selected_vertex_ids = self.selected_vertex_ids ^ {vertex_id}
        else:
            self.selected_vertex_ids = {vertex_id}

    def deselect_all_vertices(self) -> None:
        self.selected_vertex_ids = set()

    def set_mask_draw_start(self, point: Optional[Point]) -> None:
        self.mask_draw_start = Point(point.x, point.y) if point is not None else None
