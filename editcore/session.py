from __future__ import annotations

import logging
from typing import Callable, Optional

from .config import ConfigStore
from .history import HistoryManager
from .layout import PanelLayout
from .media import MediaCatalog
from .project_io import load_project, save_project
from .store import TimelineStore
from .timeline import linked_partner

log = logging.getLogger("editcore.session")


class EditorSession:
    """
    One open project: the timeline document, the media catalog, the panel
    layout, and the history that snapshots all three together.

    Callers run an action on the stores and then `commit(label)` it, or wrap
    several actions in `history.batch(label)`.
    """

    def __init__(
        self,
        timeline: Optional[TimelineStore] = None,
        media: Optional[MediaCatalog] = None,
        layout: Optional[PanelLayout] = None,
        history: Optional[HistoryManager] = None,
    ) -> None:
        self.timeline = timeline if timeline is not None else TimelineStore()
        self.media = media if media is not None else MediaCatalog()
        self.layout = layout if layout is not None else PanelLayout()
        self.history = history if history is not None else HistoryManager()

        self.history.register("timeline", self.timeline, TimelineStore.HISTORY_KEYS)
        self.history.register("media", self.media, MediaCatalog.STATE_KEYS)
        self.history.register("layout", self.layout, PanelLayout.STATE_KEYS)
        self.history.capture_snapshot("initial")

    @classmethod
    def from_config(cls, config: ConfigStore, on_invalidate: Optional[Callable[[], None]] = None) -> "EditorSession":
        timeline = TimelineStore(
            default_duration=config.default_timeline_duration(),
            video_track_height=config.video_track_height(),
            audio_track_height=config.audio_track_height(),
            curve_editor_height=config.curve_editor_height(),
            on_invalidate=on_invalidate,
        )
        return cls(timeline=timeline, history=HistoryManager(limit=config.history_limit()))

    def commit(self, label: str) -> None:
        self.history.capture_snapshot(label)

    def undo(self) -> None:
        self.history.undo()

    def redo(self) -> None:
        self.history.redo()

    def delete_clip_with_media(self, clip_id: str) -> None:
        """
        Remove a clip, its linked partner, and any catalog entry that no
        remaining clip uses, as a single undo step.
        """
        clip = self.timeline.get_clip(clip_id)
        if clip is None:
            return
        partner = linked_partner(self.timeline.clips, clip)
        doomed = [clip] + ([partner] if partner is not None else [])
        media_ids = {c.source.media_file_id for c in doomed if c.source is not None and c.source.media_file_id}

        with self.history.batch("Delete clip"):
            self.timeline.select_clips([c.id for c in doomed])
            self.timeline.remove_clip(clip.id)
            in_use = {c.source.media_file_id for c in self.timeline.clips if c.source is not None}
            for media_id in sorted(media_ids - in_use):
                self.media.remove_file(media_id)
                log.info("Removed unused media %s", media_id)

    def save(self, path: str) -> None:
        save_project(self.timeline, path)
        log.info("Saved project to %s", path)

    def load(self, path: str) -> None:
        """Replace the document with a saved project. History starts over."""
        document = load_project(path)
        self.timeline.set_state(
            {
                **document,
                "selected_clip_ids": set(),
                "selected_keyframe_ids": set(),
                "keyframe_recording": set(),
                "playhead_position": 0.0,
                "active_mask_id": None,
                "selected_vertex_ids": set(),
            }
        )
        self.history.clear_history()
        self.history.capture_snapshot("initial")
        log.info("Loaded project from %s", path)
