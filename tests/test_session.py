import tempfile
import unittest
from pathlib import Path

from editcore.config import ConfigStore
from editcore.session import EditorSession


class TestEditorSession(unittest.TestCase):
    def test_delete_clip_with_media_is_one_undo_step(self):
        s = EditorSession()
        media_id = s.media.add_file("shot.mp4", "video", has_audio=True)
        s.commit("Import")
        vid = s.timeline.add_media_clip("video-1", "shot", 0.0, 8.0, "video", media_file_id=media_id)
        s.commit("Add clip")
        self.assertEqual(len(s.timeline.clips), 2)

        s.delete_clip_with_media(vid)
        self.assertEqual(s.timeline.clips, [])
        self.assertIsNone(s.media.get_file(media_id))

        s.undo()
        self.assertEqual(len(s.timeline.clips), 2)
        self.assertIsNotNone(s.media.get_file(media_id))
        self.assertEqual(s.history.redo_label(), "Delete clip")

        s.redo()
        self.assertEqual(s.timeline.clips, [])

    def test_media_kept_while_other_clip_uses_it(self):
        s = EditorSession()
        media_id = s.media.add_file("shot.mp4", "video")
        a = s.timeline.add_media_clip("video-1", "a", 0.0, 5.0, "video", media_file_id=media_id, with_audio=False)
        s.timeline.add_media_clip("video-2", "b", 0.0, 5.0, "video", media_file_id=media_id, with_audio=False)
        s.commit("Add clips")
        s.delete_clip_with_media(a)
        self.assertIsNotNone(s.media.get_file(media_id))
        self.assertEqual(len(s.timeline.clips), 1)

    def test_playhead_is_not_undone(self):
        s = EditorSession()
        s.timeline.set_zoom(80)
        s.commit("Zoom")
        s.timeline.set_playhead_position(12.0)
        s.undo()
        self.assertEqual(s.timeline.zoom, 50.0)
        self.assertEqual(s.timeline.playhead_position, 12.0)

    def test_layout_and_timeline_restore_together(self):
        s = EditorSession()
        with s.history.batch("Rearrange"):
            s.layout.set_split_ratio("root-split", 0.7)
            s.timeline.add_track("video")
        self.assertEqual(len(s.timeline.tracks), 4)
        s.undo()
        self.assertEqual(len(s.timeline.tracks), 3)
        self.assertEqual(s.layout.layout.ratio, 0.55)

    def test_save_load_clears_history(self):
        with tempfile.TemporaryDirectory() as td:
            path = str(Path(td) / "proj.json")
            s = EditorSession()
            vid = s.timeline.add_media_clip("video-1", "shot", 2.0, 6.0, "video")
            s.timeline.add_keyframe(vid, "opacity", 0.5, time=1.0)
            s.timeline.add_marker(3.0, "beat")
            s.commit("Edit")
            s.save(path)

            s2 = EditorSession()
            s2.timeline.set_zoom(90)
            s2.commit("Zoom")
            s2.load(path)
            self.assertFalse(s2.history.can_undo())
            self.assertEqual(len(s2.timeline.clips), 2)
            self.assertEqual(s2.timeline.get_clip_keyframes(vid)[0].value, 0.5)
            self.assertEqual(s2.timeline.markers[0].label, "beat")
            self.assertEqual(s2.timeline.selected_clip_ids, set())

    def test_from_config(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = ConfigStore(Path(td))
            cfg.save({"history_limit": 2, "video_track_height": 500, "default_timeline_duration": 120})
            calls = []
            s = EditorSession.from_config(cfg, on_invalidate=lambda: calls.append(1))
            self.assertEqual(s.history.limit, 2)
            self.assertEqual(s.timeline.tracks[0].height, 200)
            self.assertEqual(s.timeline.duration, 120.0)
            s.timeline.set_track_visible("video-1", False)
            self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
