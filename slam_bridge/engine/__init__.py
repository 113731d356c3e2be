"""
SLAM engine layer.

Structure:
- facade.py: MapEngineFacade capability interface consumed by the bridge
- structures.py: samples, snapshots, trajectory nodes, submap listing, grids
- probability_grid.py: log-odds grid + ray casting
- local_engine.py: in-process reference engine
"""

__all__ = [
    "LocalMapEngine",
    "MapEngineFacade",
]


def __getattr__(name):
    if name == "LocalMapEngine":
        from slam_bridge.engine.local_engine import LocalMapEngine
        return LocalMapEngine
    elif name == "MapEngineFacade":
        from slam_bridge.engine.facade import MapEngineFacade
        return MapEngineFacade
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
