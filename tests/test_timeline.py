import unittest

from editcore.model import Clip, ClipSource, Effect, Track, Transition, Vec3
from editcore.timeline import (
    add_clip,
    add_clip_effect,
    create_linked_group,
    get_clip_children,
    move_clip,
    remove_clip,
    set_clip_parent,
    split_clip,
    toggle_clip_reverse,
    trim_clip,
    unlink_group,
    update_clip,
    update_clip_effect,
    update_clip_transform,
)

TRACKS = [
    Track(id="v1", name="Video 1", kind="video"),
    Track(id="v2", name="Video 2", kind="video"),
    Track(id="a1", name="Audio", kind="audio", height=40),
]


def make_clip(clip_id, track_id="v1", start=0.0, duration=10.0, kind="video", **kw):
    return Clip(
        id=clip_id,
        track_id=track_id,
        name=clip_id,
        start_time=start,
        duration=duration,
        in_point=0.0,
        out_point=duration,
        source=ClipSource(kind=kind, natural_duration=duration),
        **kw,
    )


def linked_pair():
    v = make_clip("v", linked_clip_id="a")
    a = make_clip("a", track_id="a1", kind="audio", linked_clip_id="v")
    return [v, a]


class TestAddAndUpdate(unittest.TestCase):
    def test_add_clip_rejects_kind_mismatch(self):
        out = add_clip([], TRACKS, make_clip("x", track_id="a1", kind="video"))
        self.assertEqual(out, [])

    def test_add_clip_rejects_unknown_source_kind(self):
        out = add_clip([], TRACKS, make_clip("x", kind="hologram"))
        self.assertEqual(out, [])
        out = add_clip([], TRACKS, make_clip("img", kind="image"))
        self.assertEqual([c.id for c in out], ["img"])

    def test_add_clip_rejects_unknown_track(self):
        out = add_clip([], TRACKS, make_clip("x", track_id="nope"))
        self.assertEqual(out, [])

    def test_update_clip_unknown_id_is_noop(self):
        clips = [make_clip("c1")]
        self.assertIs(update_clip(clips, "missing", {"name": "x"}), clips)

    def test_update_clip_ignores_unknown_fields_and_id(self):
        clips = update_clip([make_clip("c1")], "c1", {"name": "renamed", "id": "hijack", "bogus": 1})
        self.assertEqual(clips[0].id, "c1")
        self.assertEqual(clips[0].name, "renamed")


class TestRemoveClip(unittest.TestCase):
    def test_survivor_link_is_cleared(self):
        out, removed = remove_clip(linked_pair(), "v", selected_ids={"v"})
        self.assertEqual(removed, {"v"})
        self.assertEqual([c.id for c in out], ["a"])
        self.assertIsNone(out[0].linked_clip_id)

    def test_partner_removed_when_both_selected(self):
        out, removed = remove_clip(linked_pair(), "v", selected_ids={"v", "a"})
        self.assertEqual(out, [])
        self.assertEqual(removed, {"v", "a"})

    def test_children_lose_parent(self):
        clips = [make_clip("p"), make_clip("c", track_id="v2", parent_clip_id="p")]
        out, _ = remove_clip(clips, "p", set())
        self.assertIsNone(out[0].parent_clip_id)


class TestTrimAndSplit(unittest.TestCase):
    def test_trim_recomputes_duration_keeps_start(self):
        out = trim_clip([make_clip("c1", start=5.0)], "c1", 2.0, 7.5)
        c = out[0]
        self.assertAlmostEqual(c.start_time, 5.0)
        self.assertAlmostEqual(c.duration, 5.5)
        self.assertAlmostEqual(c.out_point - c.in_point, c.duration)

    def test_split_example(self):
        out, splits = split_clip([make_clip("c1")], "c1", 4.0)
        self.assertEqual(len(out), 2)
        first, second = out
        self.assertNotIn("c1", [c.id for c in out])
        self.assertAlmostEqual(first.start_time, 0.0)
        self.assertAlmostEqual(first.duration, 4.0)
        self.assertAlmostEqual(first.out_point, 4.0)
        self.assertAlmostEqual(second.start_time, 4.0)
        self.assertAlmostEqual(second.duration, 6.0)
        self.assertAlmostEqual(second.in_point, 4.0)
        self.assertEqual(splits[0][2], second.id)
        for c in out:
            self.assertAlmostEqual(c.out_point - c.in_point, c.duration)

    def test_split_at_edges_or_outside_is_noop(self):
        clips = [make_clip("c1", start=2.0)]
        for t in (2.0, 12.0, 0.5, 20.0):
            out, splits = split_clip(clips, "c1", t)
            self.assertEqual(len(out), 1)
            self.assertEqual(splits, [])

    def test_split_deep_copies_transform_and_effects(self):
        c = make_clip("c1", effects=[Effect(id="e1", type="blur", params={"radius": 2.0})])
        out, _ = split_clip([c], "c1", 5.0)
        first, second = out
        self.assertIsNot(first.transform, second.transform)
        self.assertIsNot(first.effects[0].params, second.effects[0].params)
        out = update_clip_transform(out, first.id, {"position": {"x": 9.0}})
        out = update_clip_effect(out, first.id, "e1", {"radius": 7.0})
        second_after = [x for x in out if x.id == second.id][0]
        self.assertAlmostEqual(second_after.transform.position.x, 0.0)
        self.assertAlmostEqual(second_after.effects[0].params["radius"], 2.0)

    def test_split_transitions(self):
        c = make_clip(
            "c1",
            transition_in=Transition(kind="dissolve", duration=0.5),
            transition_out=Transition(kind="wipe", duration=1.0),
        )
        (first, second), _ = split_clip([c], "c1", 3.0)
        self.assertEqual(first.transition_in.kind, "dissolve")
        self.assertIsNone(first.transition_out)
        self.assertIsNone(second.transition_in)
        self.assertEqual(second.transition_out.kind, "wipe")

    def test_split_linked_pair_relinks(self):
        out, splits = split_clip(linked_pair(), "v", 4.0)
        self.assertEqual(len(out), 4)
        self.assertEqual(len(splits), 2)
        by_id = {c.id: c for c in out}
        for c in out:
            partner = by_id[c.linked_clip_id]
            self.assertEqual(partner.linked_clip_id, c.id)
            self.assertAlmostEqual(partner.start_time, c.start_time)


class TestMoveClip(unittest.TestCase):
    def test_clamps_negative_start(self):
        out = move_clip([make_clip("c1", start=5.0)], TRACKS, "c1", -10.0)
        self.assertEqual(out[0].start_time, 0.0)

    def test_rejects_cross_kind_track(self):
        clips = [make_clip("c1", start=5.0)]
        out = move_clip(clips, TRACKS, "c1", 8.0, new_track_id="a1")
        self.assertEqual(out[0].track_id, "v1")
        self.assertEqual(out[0].start_time, 5.0)

    def test_changes_track_of_same_kind(self):
        out = move_clip([make_clip("c1")], TRACKS, "c1", 3.0, new_track_id="v2")
        self.assertEqual(out[0].track_id, "v2")

    def test_linked_partner_follows_unless_skipped(self):
        out = move_clip(linked_pair(), TRACKS, "v", 6.0)
        self.assertEqual([c.start_time for c in out], [6.0, 6.0])
        out = move_clip(linked_pair(), TRACKS, "v", 6.0, skip_linked=True)
        self.assertEqual([c.start_time for c in out], [6.0, 0.0])

    def test_group_moves_by_delta(self):
        clips = [
            make_clip("g1", start=2.0, linked_group_id="g"),
            make_clip("g2", track_id="v2", start=5.0, linked_group_id="g"),
        ]
        out = move_clip(clips, TRACKS, "g1", 4.0)
        self.assertEqual([c.start_time for c in out], [4.0, 7.0])
        out = move_clip(clips, TRACKS, "g1", 4.0, skip_group=True)
        self.assertEqual([c.start_time for c in out], [4.0, 5.0])


class TestTransformAndEffects(unittest.TestCase):
    def test_transform_deep_merge(self):
        c = make_clip("c1")
        c.transform.position = Vec3(1.0, 2.0, 3.0)
        out = update_clip_transform([c], "c1", {"position": {"y": 5.0}, "opacity": 0.5})
        t = out[0].transform
        self.assertEqual((t.position.x, t.position.y, t.position.z), (1.0, 5.0, 3.0))
        self.assertAlmostEqual(t.opacity, 0.5)
        self.assertAlmostEqual(t.scale.x, 1.0)

    def test_reverse_flips_thumbnails(self):
        out = toggle_clip_reverse([make_clip("c1", thumbnails=["a", "b", "c"])], "c1")
        self.assertTrue(out[0].reversed)
        self.assertEqual(out[0].thumbnails, ["c", "b", "a"])

    def test_effect_params_shallow_merge(self):
        clips, effect_id = add_clip_effect([make_clip("c1")], "c1", "chroma-key")
        clips = update_clip_effect(clips, "c1", effect_id, {"threshold": 0.8})
        params = clips[0].effects[0].params
        self.assertAlmostEqual(params["threshold"], 0.8)
        self.assertAlmostEqual(params["smoothness"], 0.1)

    def test_add_effect_unknown_clip(self):
        clips, effect_id = add_clip_effect([], "missing", "blur")
        self.assertIsNone(effect_id)


class TestGroupsAndParenting(unittest.TestCase):
    def test_linked_group_offsets(self):
        clips = [make_clip("anchor", start=10.0), make_clip("b", track_id="v2"), make_clip("c", track_id="a1", kind="audio")]
        out, gid = create_linked_group(clips, ["anchor", "b", "c"], {"anchor": 0, "b": 2500, "c": 20000})
        by_id = {c.id: c for c in out}
        self.assertIsNotNone(gid)
        self.assertTrue(all(c.linked_group_id == gid for c in out))
        self.assertAlmostEqual(by_id["anchor"].start_time, 10.0)
        self.assertAlmostEqual(by_id["b"].start_time, 7.5)
        self.assertAlmostEqual(by_id["c"].start_time, 0.0)

        out = unlink_group(out, "b")
        self.assertTrue(all(c.linked_group_id is None for c in out))

    def test_parent_cycle_rejected(self):
        clips = [make_clip("a"), make_clip("b", track_id="v2"), make_clip("c", track_id="a1", kind="audio")]
        clips = set_clip_parent(clips, "b", "a")
        clips = set_clip_parent(clips, "c", "b")
        out = set_clip_parent(clips, "a", "c")
        self.assertIsNone([x for x in out if x.id == "a"][0].parent_clip_id)
        out = set_clip_parent(clips, "a", "a")
        self.assertIsNone([x for x in out if x.id == "a"][0].parent_clip_id)
        self.assertEqual([x.id for x in get_clip_children(clips, "a")], ["b"])

    def test_parent_reassign_overwrites(self):
        clips = [make_clip("a"), make_clip("b", track_id="v2"), make_clip("c", track_id="a1", kind="audio")]
        clips = set_clip_parent(clips, "c", "a")
        clips = set_clip_parent(clips, "c", "b")
        self.assertEqual([x for x in clips if x.id == "c"][0].parent_clip_id, "b")
        self.assertEqual(get_clip_children(clips, "a"), [])


if __name__ == "__main__":
    unittest.main()
