from __future__ import annotations

import copy
import logging
from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .model import EASINGS, Clip, Effect, Keyframe, Point, Transform, new_id
from .properties import TRANSFORM_PROPERTIES, parse_property, read_transform
from .timeline import merge_transform

log = logging.getLogger("editcore.keyframes")

KeyframeMap = Dict[str, List[Keyframe]]

_EDITABLE_FIELDS = {f.name for f in fields(Keyframe)} - {"id", "clip_id"}

# Keys closer than this are "at the same time".
TIME_EPSILON = 1e-6

_SPEED_SAMPLES_PER_SEGMENT = 10


def _sorted(keyframes: Iterable[Keyframe]) -> List[Keyframe]:
    return sorted(keyframes, key=lambda k: k.time)


def find_keyframe(kf_map: KeyframeMap, keyframe_id: str) -> Optional[Keyframe]:
    for kfs in kf_map.values():
        for k in kfs:
            if k.id == keyframe_id:
                return k
    return None


def set_clip_keyframes(kf_map: KeyframeMap, clip_id: str, keyframes: List[Keyframe]) -> KeyframeMap:
    """Copy-on-write update of one clip's list; empty lists are dropped."""
    out = dict(kf_map)
    if keyframes:
        out[clip_id] = _sorted(keyframes)
    else:
        out.pop(clip_id, None)
    return out


def _without_collisions(keyframes: List[Keyframe], kept: Keyframe) -> List[Keyframe]:
    return [
        k
        for k in keyframes
        if k.id == kept.id or k.property != kept.property or abs(k.time - kept.time) > TIME_EPSILON
    ]


def is_valid_key(prop: Optional[str] = None, easing: Optional[str] = None) -> bool:
    """Check an animatable property path and/or easing name; warns on rejection."""
    if prop is not None and parse_property(prop) is None:
        log.warning("Not an animatable property: %r", prop)
        return False
    if easing is not None and easing not in EASINGS:
        log.warning("Unknown easing: %r", easing)
        return False
    return True


def clamp_time(time: float, clip: Optional[Clip]) -> float:
    hi = clip.duration if clip is not None else float("inf")
    return max(0.0, min(float(time), hi))


def keyframes_for(kf_map: KeyframeMap, clip_id: str, prop: Optional[str] = None) -> List[Keyframe]:
    kfs = kf_map.get(clip_id) or []
    if prop is None:
        return list(kfs)
    return [k for k in kfs if k.property == prop]


def has_keyframes(kf_map: KeyframeMap, clip_id: str, prop: Optional[str] = None) -> bool:
    return bool(keyframes_for(kf_map, clip_id, prop))


def add_keyframe(
    kf_map: KeyframeMap,
    clip: Clip,
    prop: str,
    value: float,
    time: float,
    easing: str = "linear",
) -> Tuple[KeyframeMap, str]:
    """
    Insert a keyframe at a clip-local time (clamped to the clip span).

    An existing key for the same property at that time is overwritten in place.
    Unknown property paths and easings leave the map unchanged.

    Returns:
        (new_map, keyframe_id), with "" as the id when nothing was stored
    """
    if not is_valid_key(prop, easing):
        return kf_map, ""
    t = clamp_time(time, clip)
    existing = kf_map.get(clip.id) or []
    for k in existing:
        if k.property == prop and abs(k.time - t) <= TIME_EPSILON:
            updated = replace(k, value=float(value), easing=easing)
            return set_clip_keyframes(kf_map, clip.id, [updated if x.id == k.id else x for x in existing]), k.id

    kf = Keyframe(id=new_id("kf"), clip_id=clip.id, property=prop, time=t, value=float(value), easing=easing)
    return set_clip_keyframes(kf_map, clip.id, [*existing, kf]), kf.id


def put_keyframes(kf_map: KeyframeMap, clip_id: str, keyframes: Iterable[Keyframe]) -> KeyframeMap:
    """Merge prepared keys into a clip's list; each replaces any same-property key at its time."""
    kfs = list(kf_map.get(clip_id) or [])
    for k in keyframes:
        k = replace(k, clip_id=clip_id)
        kfs = _without_collisions([*kfs, k], k)
    return set_clip_keyframes(kf_map, clip_id, kfs)


def remove_keyframes(kf_map: KeyframeMap, keyframe_ids: Iterable[str]) -> KeyframeMap:
    ids = set(keyframe_ids)
    out: KeyframeMap = {}
    for clip_id, kfs in kf_map.items():
        kept = [k for k in kfs if k.id not in ids]
        if kept:
            out[clip_id] = kept
    return out


def remove_clip_keyframes(kf_map: KeyframeMap, clip_ids: Iterable[str]) -> KeyframeMap:
    ids = set(clip_ids)
    return {cid: kfs for cid, kfs in kf_map.items() if cid not in ids}


def remove_property_keyframes(kf_map: KeyframeMap, clip_id: str, prop: str) -> KeyframeMap:
    return set_clip_keyframes(kf_map, clip_id, [k for k in kf_map.get(clip_id) or [] if k.property != prop])


def remove_effect_keyframes(kf_map: KeyframeMap, clip_id: str, effect_id: str) -> KeyframeMap:
    prefix = f"effect.{effect_id}."
    return set_clip_keyframes(kf_map, clip_id, [k for k in kf_map.get(clip_id) or [] if not k.property.startswith(prefix)])


def update_keyframe(kf_map: KeyframeMap, keyframe_id: str, changes: Mapping[str, Any], clip: Optional[Clip] = None) -> KeyframeMap:
    kf = find_keyframe(kf_map, keyframe_id)
    if kf is None:
        return kf_map
    allowed = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}
    if not allowed or not is_valid_key(allowed.get("property"), allowed.get("easing")):
        return kf_map
    if "time" in allowed:
        allowed["time"] = clamp_time(allowed["time"], clip)
    updated = replace(kf, **allowed)
    kfs = [updated if k.id == kf.id else k for k in kf_map[kf.clip_id]]
    return set_clip_keyframes(kf_map, kf.clip_id, _without_collisions(kfs, updated))


def move_keyframe(kf_map: KeyframeMap, keyframe_id: str, new_time: float, clip: Optional[Clip]) -> KeyframeMap:
    """Move a key in time; a key of the same property already there is replaced."""
    return update_keyframe(kf_map, keyframe_id, {"time": new_time}, clip)


def update_bezier_handle(kf_map: KeyframeMap, keyframe_id: str, handle: str, offset: Point) -> KeyframeMap:
    """Set one bezier handle; the key's easing switches to "bezier"."""
    if handle not in ("in", "out"):
        return kf_map
    field_name = "handle_in" if handle == "in" else "handle_out"
    return update_keyframe(kf_map, keyframe_id, {field_name: Point(offset.x, offset.y), "easing": "bezier"})


def split_keyframes(kf_map: KeyframeMap, old_id: str, first_id: str, second_id: str, offset: float) -> KeyframeMap:
    """Hand a split clip's keys to its halves; the second half's keys shift by -offset."""
    kfs = kf_map.get(old_id)
    if not kfs:
        return kf_map
    first = [replace(k, clip_id=first_id) for k in kfs if k.time < offset]
    second = [replace(k, clip_id=second_id, time=k.time - offset) for k in kfs if k.time >= offset]
    out = remove_clip_keyframes(kf_map, [old_id])
    out = set_clip_keyframes(out, first_id, first)
    return set_clip_keyframes(out, second_id, second)


# ---------- easing & interpolation ----------

def apply_easing(easing: str, t: float) -> float:
    t = max(0.0, min(1.0, t))
    if easing == "ease-in":
        return t * t
    if easing == "ease-out":
        return t * (2.0 - t)
    if easing == "ease-in-out":
        return 2.0 * t * t if t < 0.5 else -1.0 + (4.0 - 2.0 * t) * t
    return t


def _cubic(p0: float, p1: float, p2: float, p3: float, s: float) -> float:
    u = 1.0 - s
    return u * u * u * p0 + 3 * u * u * s * p1 + 3 * u * s * s * p2 + s * s * s * p3


def _bezier_value(prev: Keyframe, nxt: Keyframe, t: float) -> float:
    # Handles are (time, value) offsets from their key. Missing handles default
    # to a third of the segment with flat tangents.
    dt = nxt.time - prev.time
    h_out = prev.handle_out or Point(dt / 3.0, 0.0)
    h_in = nxt.handle_in or Point(-dt / 3.0, 0.0)
    x1 = min(max(prev.time + h_out.x, prev.time), nxt.time)
    x2 = min(max(nxt.time + h_in.x, prev.time), nxt.time)

    lo, hi = 0.0, 1.0
    s = (t - prev.time) / dt
    for _ in range(40):
        s = (lo + hi) / 2.0
        x = _cubic(prev.time, x1, x2, nxt.time, s)
        if abs(x - t) < 1e-7:
            break
        if x < t:
            lo = s
        else:
            hi = s
    return _cubic(prev.value, prev.value + h_out.y, nxt.value + h_in.y, nxt.value, s)


def interpolate_keyframes(keyframes: Iterable[Keyframe], prop: str, t: float, default: float) -> float:
    """
    Value of `prop` at clip-local time `t`.

    Before the first key and after the last, the nearest key holds. Between two
    keys the earlier key's easing shapes the fraction before lerping.
    """
    kfs = _sorted(k for k in keyframes if k.property == prop)
    if not kfs:
        return default
    if t <= kfs[0].time:
        return kfs[0].value
    if t >= kfs[-1].time:
        return kfs[-1].value

    for prev, nxt in zip(kfs, kfs[1:]):
        if prev.time <= t <= nxt.time:
            span = nxt.time - prev.time
            if span <= 0:
                return nxt.value
            if prev.easing == "bezier":
                return _bezier_value(prev, nxt, t)
            frac = apply_easing(prev.easing, (t - prev.time) / span)
            return prev.value + (nxt.value - prev.value) * frac
    return kfs[-1].value


def interpolated_transform(clip: Clip, keyframes: List[Keyframe], t: float) -> Transform:
    # Callers get their own vectors; the clip's transform stays untouched.
    base = copy.deepcopy(clip.transform)
    if not keyframes:
        return base
    patch: Dict[str, Any] = {}
    for prop in TRANSFORM_PROPERTIES:
        if not any(k.property == prop for k in keyframes):
            continue
        value = interpolate_keyframes(keyframes, prop, t, read_transform(base, prop))
        parsed = parse_property(prop)
        if prop == "opacity":
            patch["opacity"] = value
        else:
            patch.setdefault(parsed.group, {})[parsed.axis] = value
    return merge_transform(base, patch)


def interpolated_effects(clip: Clip, keyframes: List[Keyframe], t: float) -> List[Effect]:
    effects = copy.deepcopy(clip.effects)
    effect_keys = [k for k in keyframes if k.property.startswith("effect.")]
    if not effect_keys:
        return effects
    out: List[Effect] = []
    for e in effects:
        params = dict(e.params)
        for name, v in e.params.items():
            if not isinstance(v, (int, float)) or isinstance(v, bool):
                continue
            prop = f"effect.{e.id}.{name}"
            if any(k.property == prop for k in effect_keys):
                params[name] = interpolate_keyframes(keyframes, prop, t, float(v))
        out.append(replace(e, params=params))
    return out


# ---------- speed ----------

def speed_at(keyframes: List[Keyframe], t: float, default_speed: float) -> float:
    return interpolate_keyframes(keyframes, "speed", t, default_speed)


def source_time(keyframes: List[Keyframe], t: float, default_speed: float) -> float:
    """
    Integrate the speed curve from 0 to `t` (trapezoidal rule).

    Constant speed is a plain multiplication; a single speed key is a constant.
    """
    speed_keys = _sorted(k for k in keyframes if k.property == "speed")
    if not speed_keys:
        return t * default_speed
    if len(speed_keys) == 1:
        return t * speed_keys[0].value
    if t <= 0:
        return 0.0

    bounds = [0.0] + [k.time for k in speed_keys if 0.0 < k.time < t] + [t]
    samples: List[float] = []
    for a, b in zip(bounds, bounds[1:]):
        step = (b - a) / _SPEED_SAMPLES_PER_SEGMENT
        samples.extend(a + i * step for i in range(_SPEED_SAMPLES_PER_SEGMENT))
    samples.append(t)
    samples = sorted(set(samples))

    total = 0.0
    for a, b in zip(samples, samples[1:]):
        total += (speed_at(keyframes, a, default_speed) + speed_at(keyframes, b, default_speed)) / 2.0 * (b - a)
    return total


def timeline_duration(keyframes: List[Keyframe], source_duration: float, default_speed: float, max_iterations: int = 50) -> float:
    """Timeline length needed to consume `source_duration` of media (inverse of `source_time`)."""
    if source_duration <= 0:
        return 0.0
    if not any(k.property == "speed" for k in keyframes):
        return source_duration / (abs(default_speed) or 0.01)

    lo, hi = 0.0, source_duration * 20.0
    for _ in range(max_iterations):
        mid = (lo + hi) / 2.0
        consumed = abs(source_time(keyframes, mid, default_speed))
        if abs(consumed - source_duration) < 0.001:
            return mid
        if consumed < source_duration:
            lo = mid
        else:
            hi = mid
    return (lo + hi) / 2.0
