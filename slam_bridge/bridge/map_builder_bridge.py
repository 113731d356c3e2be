"""
MappingBridge: trajectory lifecycle, handoff and query serving.

Owns an append-only arena of TrajectorySessions indexed by trajectory handle;
exactly one of them is ACTIVE until close().

Locks:
    _ingest_lock  guards the current-session reference and every engine
                  ingestion call. TF resolution runs outside it, so a slow
                  lookup never stalls queries or the handoff swap.
    _finish_lock  makes the handoff non-reentrant; a second finish request
                  is rejected instead of interleaved.

Handoff order (finish):
    (a) allocate new handle + adapter
    (b) swap the current session under _ingest_lock
    (c) finalize the old engine trajectory
    (d) run a global optimization pass
    (e) export every trajectory's nodes (warn and skip when the old one is empty)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from slam_bridge.assets.assets_writer import AssetExporter, AssetsWriter
from slam_bridge.assets.occupancy_grid import GridRasterizer, OccupancyGridBuilder
from slam_bridge.bridge.sensor_bridge import SensorIngestAdapter
from slam_bridge.bridge.tf_bridge import TransformResolver
from slam_bridge.bridge.trajectory_session import TrajectorySession
from slam_bridge.common.errors import (
    ConsistencyViolation,
    EngineError,
    InactiveTrajectoryError,
    SubmapNotFound,
)
from slam_bridge.common.param_models import BridgeParams
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.facade import MapEngineFacade
from slam_bridge.engine.structures import (
    OccupancyGrid,
    SensorSample,
    SubmapEntry,
    SubmapList,
    SubmapSnapshot,
    TrajectoryHandle,
)


@dataclass(frozen=True)
class SubmapQueryResponse:
    success: bool
    snapshot: Optional[SubmapSnapshot] = None
    error: str = ""
    not_found: bool = False


@dataclass(frozen=True)
class FinishTrajectoryResult:
    success: bool
    message: str
    finished_trajectory_id: Optional[TrajectoryHandle] = None
    new_trajectory_id: Optional[TrajectoryHandle] = None
    exported: bool = False
    asset_paths: Tuple[str, ...] = ()


class MappingBridge:
    def __init__(
        self,
        params: BridgeParams,
        engine: MapEngineFacade,
        resolver: TransformResolver,
        exporter: Optional[AssetExporter] = None,
        grid_builder: Optional[GridRasterizer] = None,
        logger=None,
    ) -> None:
        self.params = params
        self.engine = engine
        self.resolver = resolver
        self._logger = logger or logging.getLogger("slam_bridge.map_builder_bridge")
        self.exporter = exporter or AssetsWriter(logger=self._logger)
        self.grid_builder = grid_builder or OccupancyGridBuilder()
        self.expected_sensor_ids = params.expected_sensor_ids()

        self._ingest_lock = threading.Lock()
        self._finish_lock = threading.Lock()
        self._sessions: List[TrajectorySession] = []
        self._closed = False

        session = self._create_session()
        with self._ingest_lock:
            self._register(session)
            session.activate()
            self._active = session
        self._logger.info(f"Trajectory {session.handle} started.")

    # -------------------------------------------------------------------------
    # Session arena
    # -------------------------------------------------------------------------

    def _create_session(self) -> TrajectorySession:
        return TrajectorySession.create(
            self.engine, self.resolver, self.expected_sensor_ids, logger=self._logger
        )

    def _register(self, session: TrajectorySession) -> None:
        if session.handle != len(self._sessions):
            raise ConsistencyViolation(
                f"Engine issued trajectory handle {session.handle}, expected {len(self._sessions)}"
            )
        self._sessions.append(session)

    @property
    def active_trajectory_id(self) -> Optional[TrajectoryHandle]:
        with self._ingest_lock:
            return None if self._closed else self._active.handle

    @property
    def closed(self) -> bool:
        return self._closed

    def sessions(self) -> Tuple[TrajectorySession, ...]:
        return tuple(self._sessions)

    def active_sessions(self) -> List[TrajectorySession]:
        """Sessions in state ACTIVE, observed atomically with respect to handoff."""
        with self._ingest_lock:
            return [s for s in self._sessions if s.active]

    # -------------------------------------------------------------------------
    # Ingestion (serialized into the active session)
    # -------------------------------------------------------------------------

    def _ingest(self, prepare: Callable[[SensorIngestAdapter], Optional[SensorSample]]) -> bool:
        with self._ingest_lock:
            session = self._active
            if not session.active:
                raise InactiveTrajectoryError(session.handle, session.state.value)
        # TF resolution may block for the lookup timeout; keep it off the lock.
        sample = prepare(session.ingest_adapter)
        if sample is None:
            return False
        with self._ingest_lock:
            # Redirected to the new trajectory when a handoff ran meanwhile.
            self._active.forward(sample)
        return True

    def handle_range(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        points: np.ndarray,
        origin: Optional[np.ndarray] = None,
    ) -> bool:
        return self._ingest(lambda a: a.prepare_range(sensor_id, time_sec, frame_id, points, origin))

    def handle_imu(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        linear_acceleration: np.ndarray,
        angular_velocity: np.ndarray,
    ) -> bool:
        return self._ingest(
            lambda a: a.prepare_imu(sensor_id, time_sec, frame_id, linear_acceleration, angular_velocity)
        )

    def handle_odometry(self, sensor_id: str, time_sec: float, child_frame_id: str, pose: Rigid3) -> bool:
        return self._ingest(lambda a: a.prepare_odometry(sensor_id, time_sec, child_frame_id, pose))

    # -------------------------------------------------------------------------
    # Finish / handoff
    # -------------------------------------------------------------------------

    def handle_finish_trajectory(self, export_stem: str) -> FinishTrajectoryResult:
        if not self._finish_lock.acquire(blocking=False):
            self._logger.warning("Finish request rejected: trajectory handoff already in progress.")
            return FinishTrajectoryResult(False, "Trajectory handoff already in progress")
        try:
            if self._closed:
                return FinishTrajectoryResult(False, "Bridge is closed")
            return self._handoff(export_stem)
        finally:
            self._finish_lock.release()

    def _handoff(self, export_stem: str) -> FinishTrajectoryResult:
        self._logger.info("Finishing trajectory...")

        new_session = self._create_session()
        with self._ingest_lock:
            previous = self._active
            self._register(new_session)
            new_session.activate()
            previous.begin_finish()
            self._active = new_session

        exported = False
        asset_paths: Tuple[str, ...] = ()
        try:
            self.engine.finalize_trajectory(previous.handle)
            self.engine.run_global_optimization()

            all_nodes = self.engine.get_all_trajectory_nodes()
            collected = any(n.trajectory == previous.handle for n in all_nodes)
            if not collected:
                self._logger.warning("No data collected and no assets will be written.")
            else:
                self._logger.info("Writing assets...")
                try:
                    asset_paths = tuple(self.exporter.export(all_nodes, self.params, export_stem))
                    exported = True
                except Exception as exc:
                    # The new trajectory is already live; a failed export must not undo that.
                    self._logger.error(
                        f"Failed to write assets under '{export_stem}': {type(exc).__name__}: {exc}"
                    )
        finally:
            previous.mark_finished()

        self._logger.info("New trajectory started.")
        if exported:
            message = f"Trajectory {previous.handle} finished; assets written under '{export_stem}'"
        elif not collected:
            message = f"Trajectory {previous.handle} finished; no data collected, no assets written"
        else:
            message = f"Trajectory {previous.handle} finished; asset export failed"
        return FinishTrajectoryResult(
            success=True,
            message=message,
            finished_trajectory_id=previous.handle,
            new_trajectory_id=new_session.handle,
            exported=exported,
            asset_paths=asset_paths,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query_submap(self, trajectory_id: int, submap_index: int) -> SubmapSnapshot:
        """Raises SubmapNotFound for unknown references, EngineError for engine failures."""
        sessions = self._sessions
        if not isinstance(trajectory_id, (int, np.integer)) or not 0 <= trajectory_id < len(sessions):
            raise SubmapNotFound(trajectory_id, submap_index, "unknown trajectory")
        handle = sessions[int(trajectory_id)].handle
        count = self.engine.get_submap_count(handle)
        if not isinstance(submap_index, (int, np.integer)) or not 0 <= submap_index < count:
            raise SubmapNotFound(trajectory_id, submap_index, f"trajectory has {count} submaps")
        return self.engine.get_submap_snapshot(handle, int(submap_index))

    def handle_submap_query(self, trajectory_id: int, submap_index: int) -> SubmapQueryResponse:
        try:
            snapshot = self.query_submap(trajectory_id, submap_index)
        except SubmapNotFound as exc:
            self._logger.error(str(exc))
            return SubmapQueryResponse(success=False, error=str(exc), not_found=True)
        except EngineError as exc:
            self._logger.error(str(exc))
            return SubmapQueryResponse(success=False, error=str(exc))
        return SubmapQueryResponse(success=True, snapshot=snapshot)

    def _read_submaps(self, handle: TrajectoryHandle):
        return (
            self.engine.get_submap_count(handle),
            self.engine.get_submap_versions(handle),
            self.engine.get_global_transforms(handle),
        )

    def _submap_entries(self, session: TrajectorySession) -> Tuple[SubmapEntry, ...]:
        with self._ingest_lock:
            growing = session is self._active and session.active
            if growing:
                count, versions, transforms = self._read_submaps(session.handle)
        if not growing:
            # Non-active trajectories never grow again.
            count, versions, transforms = self._read_submaps(session.handle)
        if len(versions) != count or len(transforms) != count:
            raise ConsistencyViolation(
                f"Trajectory {session.handle}: {count} submaps but {len(versions)} versions "
                f"and {len(transforms)} global transforms"
            )
        return tuple(SubmapEntry(version=v, pose=t) for v, t in zip(versions, transforms))

    def get_submap_list(self) -> SubmapList:
        trajectories = tuple(self._submap_entries(session) for session in self.sessions())
        return SubmapList(map_frame=self.params.map_frame, trajectories=trajectories)

    def build_occupancy_grid(self) -> Optional[OccupancyGrid]:
        nodes = self.engine.get_all_trajectory_nodes()
        if not nodes:
            return None
        return self.grid_builder.rasterize(nodes, self.params)

    def status(self) -> dict:
        with self._ingest_lock:
            active = None if self._closed else self._active
            sessions = list(self._sessions)
            sensors = active.ingest_adapter.stats() if active is not None else {}
        return {
            "active_trajectory_id": None if active is None else active.handle,
            "num_trajectories": len(sessions),
            "trajectory_states": {s.handle: s.state.value for s in sessions},
            "sensors": sensors,
            "closed": self._closed,
        }

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Finalize the active trajectory. Idempotent; waits for an in-flight handoff."""
        with self._finish_lock:
            if self._closed:
                return
            with self._ingest_lock:
                session = self._active
                session.begin_finish()
                self._closed = True
            try:
                self.engine.finalize_trajectory(session.handle)
            finally:
                session.mark_finished()
            self._logger.info(f"Trajectory {session.handle} finalized on shutdown.")

    def __enter__(self) -> "MappingBridge":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
