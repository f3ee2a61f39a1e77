import unittest

from editcore.model import Track
from editcore.tracks import (
    add_track,
    clamp_height,
    get_track_children,
    remove_track,
    scale_tracks_of_type,
    set_track_height,
    set_track_parent,
)


def base_tracks():
    return [
        Track(id="v1", name="Video 1", kind="video", height=60),
        Track(id="v2", name="Video 2", kind="video", height=80),
        Track(id="a1", name="Audio", kind="audio", height=40),
    ]


class TestTracks(unittest.TestCase):
    def test_add_video_on_top_audio_at_bottom(self):
        tracks, v = add_track(base_tracks(), "video", 60)
        self.assertEqual(tracks[0].id, v.id)
        self.assertEqual(v.name, "Video 3")
        self.assertTrue(v.id.startswith("video-"))

        tracks, a = add_track(tracks, "audio", 40)
        self.assertEqual(tracks[-1].id, a.id)
        self.assertEqual(a.name, "Audio 2")

    def test_unknown_kind_becomes_video(self):
        tracks, t = add_track(base_tracks(), "subtitle", 60)
        self.assertEqual(t.kind, "video")
        self.assertEqual(tracks[0].id, t.id)

    def test_height_clamped(self):
        self.assertEqual(clamp_height(5), 20)
        self.assertEqual(clamp_height(999), 200)
        tracks = set_track_height(base_tracks(), "v1", 1000)
        self.assertEqual(tracks[0].height, 200)

    def test_scale_syncs_then_scales(self):
        tracks = scale_tracks_of_type(base_tracks(), "video", 10)
        self.assertEqual([t.height for t in tracks if t.kind == "video"], [80, 80])
        tracks = scale_tracks_of_type(tracks, "video", 10)
        self.assertEqual([t.height for t in tracks if t.kind == "video"], [90, 90])
        self.assertEqual(tracks[2].height, 40)

    def test_parent_cycle_rejected(self):
        tracks = set_track_parent(base_tracks(), "v2", "v1")
        tracks = set_track_parent(tracks, "a1", "v2")
        out = set_track_parent(tracks, "v1", "a1")
        self.assertIsNone(out[0].parent_track_id)
        out = set_track_parent(tracks, "v1", "v1")
        self.assertIsNone(out[0].parent_track_id)
        self.assertEqual([t.id for t in get_track_children(tracks, "v1")], ["v2"])

    def test_parent_unknown_ids_ignored(self):
        tracks = base_tracks()
        self.assertIs(set_track_parent(tracks, "v1", "ghost"), tracks)
        self.assertIs(set_track_parent(tracks, "ghost", "v1"), tracks)

    def test_remove_clears_children(self):
        tracks = set_track_parent(base_tracks(), "v2", "v1")
        out = remove_track(tracks, "v1")
        self.assertEqual([t.id for t in out], ["v2", "a1"])
        self.assertIsNone(out[0].parent_track_id)


if __name__ == "__main__":
    unittest.main()
