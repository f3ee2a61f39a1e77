from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Union

from .model import Clip, Transform

# Animatable property paths form a small closed set:
#   "opacity"                      -> TransformScalar
#   "position.x|y|z", "scale.x|y", "rotation.x|y|z" -> TransformAxis
#   "speed"                        -> ClipSpeed
#   "effect.<effectId>.<param>"    -> EffectParam

_AXES = {
    "position": ("x", "y", "z"),
    "scale": ("x", "y"),
    "rotation": ("x", "y", "z"),
}

TRANSFORM_PROPERTIES = ("opacity",) + tuple(f"{group}.{axis}" for group, axes in _AXES.items() for axis in axes)


@dataclass(frozen=True)
class TransformScalar:
    name: str  # "opacity"


@dataclass(frozen=True)
class TransformAxis:
    group: str  # position | scale | rotation
    axis: str


@dataclass(frozen=True)
class ClipSpeed:
    pass


@dataclass(frozen=True)
class EffectParam:
    effect_id: str
    param: str


PropertyPath = Union[TransformScalar, TransformAxis, ClipSpeed, EffectParam]


def parse_property(path: str) -> Optional[PropertyPath]:
    """Resolve a dotted property path, or None when it is not animatable."""
    p = str(path or "")
    if p == "opacity":
        return TransformScalar("opacity")
    if p == "speed":
        return ClipSpeed()
    parts = p.split(".")
    if len(parts) == 3 and parts[0] == "effect" and parts[1] and parts[2]:
        return EffectParam(parts[1], parts[2])
    if len(parts) == 2 and parts[1] in _AXES.get(parts[0], ()):
        return TransformAxis(parts[0], parts[1])
    return None


def format_property(prop: PropertyPath) -> str:
    if isinstance(prop, TransformScalar):
        return prop.name
    if isinstance(prop, TransformAxis):
        return f"{prop.group}.{prop.axis}"
    if isinstance(prop, EffectParam):
        return f"effect.{prop.effect_id}.{prop.param}"
    return "speed"


# ---------- getters ----------

def _read_scalar(clip: Clip, prop: TransformScalar) -> Optional[float]:
    return float(getattr(clip.transform, prop.name))


def _read_axis(clip: Clip, prop: TransformAxis) -> Optional[float]:
    return float(getattr(getattr(clip.transform, prop.group), prop.axis))


def _read_speed(clip: Clip, prop: ClipSpeed) -> Optional[float]:
    return float(clip.speed)


def _read_effect(clip: Clip, prop: EffectParam) -> Optional[float]:
    for e in clip.effects:
        if e.id == prop.effect_id:
            v = e.params.get(prop.param)
            if isinstance(v, (int, float)) and not isinstance(v, bool):
                return float(v)
            return None
    return None


# ---------- setters (return a new clip) ----------

def _write_scalar(clip: Clip, prop: TransformScalar, value: float) -> Clip:
    return replace(clip, transform=replace(clip.transform, **{prop.name: float(value)}))


def _write_axis(clip: Clip, prop: TransformAxis, value: float) -> Clip:
    group = replace(getattr(clip.transform, prop.group), **{prop.axis: float(value)})
    return replace(clip, transform=replace(clip.transform, **{prop.group: group}))


def _write_speed(clip: Clip, prop: ClipSpeed, value: float) -> Clip:
    return replace(clip, speed=float(value))


def _write_effect(clip: Clip, prop: EffectParam, value: float) -> Clip:
    effects = [
        replace(e, params={**e.params, prop.param: float(value)}) if e.id == prop.effect_id else e
        for e in clip.effects
    ]
    return replace(clip, effects=effects)


_GETTERS: Dict[type, Callable] = {
    TransformScalar: _read_scalar,
    TransformAxis: _read_axis,
    ClipSpeed: _read_speed,
    EffectParam: _read_effect,
}

_SETTERS: Dict[type, Callable] = {
    TransformScalar: _write_scalar,
    TransformAxis: _write_axis,
    ClipSpeed: _write_speed,
    EffectParam: _write_effect,
}


def read_static(clip: Clip, path: str) -> Optional[float]:
    """Static (unanimated) value of a property on a clip."""
    prop = parse_property(path)
    if prop is None:
        return None
    return _GETTERS[type(prop)](clip, prop)


def write_static(clip: Clip, path: str, value: float) -> Clip:
    """Write a static value; unknown paths return the clip unchanged."""
    prop = parse_property(path)
    if prop is None:
        return clip
    return _SETTERS[type(prop)](clip, prop, value)


def read_transform(transform: Transform, path: str) -> Optional[float]:
    prop = parse_property(path)
    if isinstance(prop, TransformScalar):
        return float(getattr(transform, prop.name))
    if isinstance(prop, TransformAxis):
        return float(getattr(getattr(transform, prop.group), prop.axis))
    return None
