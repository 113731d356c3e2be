"""
Common package for the SLAM bridge.

Shared types, errors and parameters used by the engine, bridge and node layers.

Subpackages:
- transforms/: Rigid3 geometry
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "BridgeParams",
    "Rigid3",
    "constants",
    "errors",
]

_LAZY_ATTRS: dict[str, tuple[str, str | None]] = {
    "BridgeParams": ("slam_bridge.common.param_models", "BridgeParams"),
    "Rigid3": ("slam_bridge.common.transforms.rigid3", "Rigid3"),
    # Expose these as submodules, but do not eagerly import them at package import time.
    "constants": ("slam_bridge.common.constants", None),
    "errors": ("slam_bridge.common.errors", None),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = import_module(module_name)
    return module if attr_name is None else getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
