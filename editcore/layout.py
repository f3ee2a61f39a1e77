from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .model import clamp, new_id
from .serialize import record

MIN_SPLIT_RATIO = 0.1
MAX_SPLIT_RATIO = 0.9


@record
@dataclass
class DockPanel:
    id: str
    kind: str  # media | properties | preview | timeline | ...
    title: str = ""


@record
@dataclass
class TabGroup:
    id: str
    panels: List[DockPanel] = field(default_factory=list)
    active_index: int = 0


@record
@dataclass
class SplitNode:
    id: str
    direction: str  # horizontal | vertical
    first: "DockNode"
    second: "DockNode"
    ratio: float = 0.5


DockNode = Union[TabGroup, SplitNode]


def default_layout() -> DockNode:
    """Media/properties left, preview centre, timeline along the bottom."""
    return SplitNode(
        id="root-split",
        direction="vertical",
        ratio=0.55,
        first=SplitNode(
            id="top-split",
            direction="horizontal",
            ratio=0.25,
            first=TabGroup(
                id="left-group",
                panels=[
                    DockPanel(id="media", kind="media", title="Media"),
                    DockPanel(id="clip-properties", kind="clip-properties", title="Properties"),
                ],
            ),
            second=TabGroup(id="preview-group", panels=[DockPanel(id="preview", kind="preview", title="Preview")]),
        ),
        second=TabGroup(id="timeline-group", panels=[DockPanel(id="timeline", kind="timeline", title="Timeline")]),
    )


def find_node(node: DockNode, node_id: str) -> Optional[DockNode]:
    if node.id == node_id:
        return node
    if isinstance(node, SplitNode):
        return find_node(node.first, node_id) or find_node(node.second, node_id)
    return None


def find_panel(node: DockNode, panel_id: str) -> Optional[Tuple[TabGroup, int]]:
    """(group, index) of a panel, or None."""
    if isinstance(node, TabGroup):
        for i, p in enumerate(node.panels):
            if p.id == panel_id:
                return node, i
        return None
    return find_panel(node.first, panel_id) or find_panel(node.second, panel_id)


def _map_node(node: DockNode, node_id: str, fn) -> DockNode:
    if node.id == node_id:
        return fn(node)
    if isinstance(node, SplitNode):
        return replace(node, first=_map_node(node.first, node_id, fn), second=_map_node(node.second, node_id, fn))
    return node


def _is_empty(node: DockNode) -> bool:
    return isinstance(node, TabGroup) and not node.panels


def collapse_empty(node: DockNode) -> DockNode:
    """Drop empty tab groups; a split left with one child is replaced by it."""
    if isinstance(node, TabGroup):
        return node
    first = collapse_empty(node.first)
    second = collapse_empty(node.second)
    if _is_empty(first) and _is_empty(second):
        return TabGroup(id=node.id)
    if _is_empty(first):
        return second
    if _is_empty(second):
        return first
    return replace(node, first=first, second=second)


def _without_panel(group: TabGroup, panel_id: str) -> TabGroup:
    panels = [p for p in group.panels if p.id != panel_id]
    return replace(group, panels=panels, active_index=min(group.active_index, max(0, len(panels) - 1)))


class PanelLayout:
    """Dock layout store. Layout changes are undoable together with timeline edits."""

    STATE_KEYS = ("layout",)

    def __init__(self, layout: Optional[DockNode] = None) -> None:
        self.layout: DockNode = layout if layout is not None else default_layout()

    def get_state(self) -> Dict[str, Any]:
        return {"layout": self.layout}

    def set_state(self, partial: Mapping[str, Any]) -> None:
        if "layout" in partial and partial["layout"] is not None:
            self.layout = partial["layout"]

    def reset_layout(self) -> None:
        self.layout = default_layout()

    def set_active_tab(self, group_id: str, index: int) -> None:
        node = find_node(self.layout, group_id)
        if not isinstance(node, TabGroup) or not node.panels:
            return
        i = int(clamp(index, 0, len(node.panels) - 1))
        self.layout = _map_node(self.layout, group_id, lambda g: replace(g, active_index=i))

    def set_split_ratio(self, split_id: str, ratio: float) -> None:
        if not isinstance(find_node(self.layout, split_id), SplitNode):
            return
        r = clamp(ratio, MIN_SPLIT_RATIO, MAX_SPLIT_RATIO)
        self.layout = _map_node(self.layout, split_id, lambda s: replace(s, ratio=r))

    def close_panel(self, panel_id: str) -> None:
        found = find_panel(self.layout, panel_id)
        if found is None:
            return
        group, _ = found
        self.layout = collapse_empty(_map_node(self.layout, group.id, lambda g: _without_panel(g, panel_id)))

    def move_panel(self, panel_id: str, target_group_id: str, position: str = "center", index: Optional[int] = None) -> None:
        """
        Move a panel into another group.

        `position` "center" adds it as a tab (at `index`, default last); "left",
        "right", "top" and "bottom" split the target group and give the panel a
        group of its own on that side.
        """
        found = find_panel(self.layout, panel_id)
        target = find_node(self.layout, target_group_id)
        if found is None or not isinstance(target, TabGroup):
            return
        group, i = found
        panel = group.panels[i]
        if group.id == target.id and position == "center":
            return

        layout = _map_node(self.layout, group.id, lambda g: _without_panel(g, panel_id))

        def insert(g: TabGroup) -> DockNode:
            if position == "center":
                at = len(g.panels) if index is None else int(clamp(index, 0, len(g.panels)))
                panels = list(g.panels)
                panels.insert(at, panel)
                return replace(g, panels=panels, active_index=at)
            new_group = TabGroup(id=new_id("group"), panels=[panel])
            direction = "horizontal" if position in ("left", "right") else "vertical"
            if position in ("left", "top"):
                return SplitNode(id=new_id("split"), direction=direction, first=new_group, second=g)
            return SplitNode(id=new_id("split"), direction=direction, first=g, second=new_group)

        self.layout = collapse_empty(_map_node(layout, target.id, insert))

    def panel_ids(self) -> List[str]:
        out: List[str] = []

        def walk(node: DockNode) -> None:
            if isinstance(node, TabGroup):
                out.extend(p.id for p in node.panels)
            else:
                walk(node.first)
                walk(node.second)

        walk(self.layout)
        return out
