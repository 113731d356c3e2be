"""
Bridge error taxonomy.

Recoverable:
    SubmapNotFound          unknown trajectory / out-of-range submap index
    EngineError             engine reported a failure string
    TransformTimeout        TF lookup exceeded its bound; sample is dropped
    InactiveTrajectoryError ingestion into a trajectory that is not ACTIVE

Fatal:
    ConsistencyViolation    engine bookkeeping disagrees with itself
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class SubmapNotFound(BridgeError, LookupError):
    def __init__(self, trajectory_id: int, submap_index: int, reason: str = "") -> None:
        self.trajectory_id = trajectory_id
        self.submap_index = submap_index
        msg = f"Submap ({trajectory_id}, {submap_index}) not found"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class EngineError(BridgeError):
    """Wraps a failure string reported by the SLAM engine."""


class TransformTimeout(BridgeError, TimeoutError):
    def __init__(self, target_frame: str, source_frame: str, time_sec: float, timeout_sec: float) -> None:
        self.target_frame = target_frame
        self.source_frame = source_frame
        self.time_sec = time_sec
        self.timeout_sec = timeout_sec
        super().__init__(
            f"Transform {target_frame} <- {source_frame} at t={time_sec:.6f} "
            f"not available within {timeout_sec:.3f}s"
        )


class ConsistencyViolation(BridgeError):
    """Engine-internal bookkeeping is corrupt. Never caught by the bridge."""


class InactiveTrajectoryError(BridgeError):
    def __init__(self, trajectory_id: int, state: str) -> None:
        self.trajectory_id = trajectory_id
        self.state = state
        super().__init__(f"Trajectory {trajectory_id} is {state} and does not accept sensor data")


class InvalidTransitionError(BridgeError):
    pass
