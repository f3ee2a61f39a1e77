import unittest

from editcore.history import HistoryManager
from editcore.layout import PanelLayout, SplitNode, TabGroup, find_node, find_panel
from editcore.media import MediaCatalog


class FakeDecoder:
    pass


class TestMediaCatalog(unittest.TestCase):
    def test_files_and_selection(self):
        media = MediaCatalog()
        fid = media.add_file("clip.mp4", "video", path="/tmp/clip.mp4", duration=12.5, has_audio=True)
        media.add_to_selection(fid)
        media.rename_file(fid, "renamed.mp4")
        self.assertEqual(media.get_file(fid).name, "renamed.mp4")
        media.remove_file(fid)
        self.assertIsNone(media.get_file(fid))
        self.assertEqual(media.selected_ids, set())

    def test_remove_folder_moves_children_up(self):
        media = MediaCatalog()
        outer = media.create_folder("Outer")
        inner = media.create_folder("Inner", parent_id=outer)
        fid = media.add_file("a.wav", "audio", parent_id=inner)
        self.assertIn(inner, media.expanded_folder_ids)
        media.remove_folder(inner)
        self.assertEqual(media.get_file(fid).parent_id, outer)
        self.assertNotIn(inner, media.expanded_folder_ids)

    def test_move_to_folder_rejects_cycles(self):
        media = MediaCatalog()
        outer = media.create_folder("Outer")
        inner = media.create_folder("Inner", parent_id=outer)
        media.move_to_folder([outer], inner)
        self.assertIsNone([f for f in media.folders if f.id == outer][0].parent_id)
        media.move_to_folder([outer], "ghost")
        self.assertIsNone([f for f in media.folders if f.id == outer][0].parent_id)

    def test_restore_keeps_live_handles(self):
        media = MediaCatalog()
        history = HistoryManager()
        history.register("media", media, MediaCatalog.STATE_KEYS)
        decoder = FakeDecoder()
        fid = media.add_file("clip.mp4", "video", handle=decoder)
        history.capture_snapshot("import")
        media.remove_file(fid)
        history.capture_snapshot("remove")

        history.undo()
        restored = media.get_file(fid)
        self.assertIsNotNone(restored)
        self.assertIs(restored.handle, decoder)


class TestPanelLayout(unittest.TestCase):
    def test_split_ratio_clamped(self):
        layout = PanelLayout()
        layout.set_split_ratio("root-split", 2.0)
        self.assertEqual(find_node(layout.layout, "root-split").ratio, 0.9)
        layout.set_split_ratio("left-group", 0.3)
        layout.set_split_ratio("ghost", 0.3)

    def test_active_tab_clamped(self):
        layout = PanelLayout()
        layout.set_active_tab("left-group", 9)
        self.assertEqual(find_node(layout.layout, "left-group").active_index, 1)

    def test_close_collapses_empty_group(self):
        layout = PanelLayout()
        layout.close_panel("preview")
        self.assertIsNone(find_node(layout.layout, "preview-group"))
        self.assertIsNone(find_node(layout.layout, "top-split"))
        self.assertIsInstance(find_node(layout.layout, "left-group"), TabGroup)
        self.assertEqual(sorted(layout.panel_ids()), ["clip-properties", "media", "timeline"])

    def test_move_panel_as_tab_and_split(self):
        layout = PanelLayout()
        layout.move_panel("media", "timeline-group")
        group, index = find_panel(layout.layout, "media")
        self.assertEqual(group.id, "timeline-group")
        self.assertEqual(group.active_index, index)

        layout.move_panel("clip-properties", "preview-group", position="right")
        group, _ = find_panel(layout.layout, "clip-properties")
        self.assertNotIn(group.id, ("left-group", "preview-group"))
        self.assertIsNone(find_node(layout.layout, "left-group"))
        self.assertTrue(any(isinstance(n, SplitNode) for n in (layout.layout.first,)))

    def test_layout_undo(self):
        layout = PanelLayout()
        history = HistoryManager()
        history.register("layout", layout, PanelLayout.STATE_KEYS)
        history.capture_snapshot("initial")
        layout.set_split_ratio("root-split", 0.3)
        history.capture_snapshot("Change layout")
        history.undo()
        self.assertAlmostEqual(find_node(layout.layout, "root-split").ratio, 0.55)


if __name__ == "__main__":
    unittest.main()
