"""Lifecycle state machine tests for TrajectorySession."""

import numpy as np
import pytest

from slam_bridge.bridge.sensor_bridge import SensorIngestAdapter
from slam_bridge.bridge.trajectory_session import SessionState, TrajectorySession
from slam_bridge.common.errors import InactiveTrajectoryError, InvalidTransitionError

from conftest import ring_scan


@pytest.fixture
def session(engine, resolver):
    return TrajectorySession.create(engine, resolver, {"scan"})


class TestTransitions:
    def test_create_allocates_handle(self, engine, session):
        assert session.state is SessionState.CREATED
        assert session.handle == 0
        assert session.ingest_adapter.handle == 0
        assert engine.num_trajectories() == 1

    def test_full_lifecycle(self, session):
        session.activate()
        assert session.active
        session.begin_finish()
        assert session.state is SessionState.FINISHING
        session.mark_finished()
        assert session.state is SessionState.FINISHED
        assert not session.active

    @pytest.mark.parametrize("steps, illegal", [
        ([], "begin_finish"),
        ([], "mark_finished"),
        (["activate"], "activate"),
        (["activate"], "mark_finished"),
        (["activate", "begin_finish", "mark_finished"], "activate"),
    ])
    def test_illegal_transitions(self, session, steps, illegal):
        for step in steps:
            getattr(session, step)()
        before = session.state
        with pytest.raises(InvalidTransitionError):
            getattr(session, illegal)()
        assert session.state is before

    def test_adapter_handle_mismatch(self, engine, resolver):
        adapter = SensorIngestAdapter(engine, 5, resolver, {"scan"})
        with pytest.raises(ValueError):
            TrajectorySession(0, adapter, {"scan"})


class TestIngestionGate:
    def test_created_session_rejects_data(self, session):
        with pytest.raises(InactiveTrajectoryError, match="created"):
            session.handle_range("scan", 0.0, "laser", ring_scan())

    def test_active_session_forwards(self, engine, session):
        session.activate()
        assert session.handle_range("scan", 0.0, "laser", ring_scan())
        assert engine.get_submap_count(session.handle) == 1

    def test_finishing_session_rejects_data(self, session):
        session.activate()
        session.begin_finish()
        with pytest.raises(InactiveTrajectoryError):
            session.handle_imu("scan", 0.0, "base_link", np.zeros(3), np.zeros(3))
