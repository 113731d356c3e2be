"""
Bridge layer: trajectory lifecycle and query serving.

Structure:
- tf_bridge.py: TransformResolver (static + tf2_ros backed)
- sensor_bridge.py: SensorIngestAdapter
- trajectory_session.py: TrajectorySession state machine
- map_builder_bridge.py: MappingBridge
"""

# Lazy imports to avoid circular dependencies
__all__ = [
    "MappingBridge",
    "TrajectorySession",
]


def __getattr__(name):
    if name == "MappingBridge":
        from slam_bridge.bridge.map_builder_bridge import MappingBridge
        return MappingBridge
    elif name == "TrajectorySession":
        from slam_bridge.bridge.trajectory_session import TrajectorySession
        return TrajectorySession
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
