import json
import tempfile
import unittest
from dataclasses import replace
from unittest import mock
from pathlib import Path

from editcore.project_io import FORMAT_VERSION, load_project, save_project
from editcore.store import TimelineStore


class TestProjectIO(unittest.TestCase):
    def test_save_creates_parent_dirs(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "a" / "b" / "proj.json"
            save_project(TimelineStore(), str(path))
            self.assertTrue(path.exists())
            data = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(data["version"], FORMAT_VERSION)
            self.assertEqual(set(data["document"]), set(TimelineStore.DOCUMENT_KEYS))
            # No temp files left behind.
            self.assertEqual([p.name for p in path.parent.iterdir()], ["proj.json"])

    def test_roundtrip_document(self):
        with tempfile.TemporaryDirectory() as td:
            path = str(Path(td) / "proj.json")
            store = TimelineStore()
            vid = store.add_media_clip("video-1", "shot", 1.0, 6.0, "video", media_file_id="m1")
            store.add_keyframe(vid, "scale.x", 1.5, time=2.0, easing="ease-in")
            store.add_marker(4.0, "cut")
            store.rename_track("video-2", "B-roll")
            save_project(store, path)

            doc = load_project(path)
            self.assertEqual(doc["clips"], store.clips)
            self.assertEqual(doc["tracks"], store.tracks)
            self.assertEqual(doc["markers"], store.markers)
            self.assertEqual(doc["clip_keyframes"], store.clip_keyframes)
            self.assertIsInstance(doc["clip_keyframes"], dict)

    def test_live_handles_are_dropped(self):
        with tempfile.TemporaryDirectory() as td:
            path = str(Path(td) / "proj.json")
            store = TimelineStore()
            vid = store.add_media_clip("video-1", "shot", 0.0, 3.0, "video", with_audio=False)
            clip = store.get_clip(vid)
            store.clips = [replace(clip, source=replace(clip.source, handle=object()))]
            save_project(store, path)

            doc = load_project(path)
            self.assertIsNone(doc["clips"][0].source.handle)

    def test_rejects_foreign_files(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "other.json"
            path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_project(str(path))
            path.write_text(json.dumps({"version": 1}), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_project(str(path))

    def test_rejects_newer_format(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "future.json"
            path.write_text(json.dumps({"version": FORMAT_VERSION + 1, "document": {}}), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_project(str(path))

    def test_failed_save_keeps_previous_file(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "proj.json"
            store = TimelineStore()
            save_project(store, str(path))
            before = path.read_text(encoding="utf-8")

            store.add_marker(3.0, "new")
            with mock.patch("editcore.project_io.os.replace", side_effect=OSError("disk full")):
                with self.assertRaises(OSError):
                    save_project(store, str(path))
            self.assertEqual(path.read_text(encoding="utf-8"), before)
            self.assertEqual([p.name for p in Path(td).iterdir()], ["proj.json"])


if __name__ == "__main__":
    unittest.main()
