"""
=============================================================================
SLAM BRIDGE NODE - ROS 2 surface of the MappingBridge
=============================================================================

Architecture:
    scan / echoes / points2 / imu / odom
        │  (ReentrantCallbackGroup, TF lookups block up to the timeout)
        ▼
    MappingBridge ── LocalMapEngine
        │
        ▼
    submap_list (String JSON), map (OccupancyGrid), status (String JSON)
    finish_trajectory (std_srvs/Trigger)
    submap_query (String JSON) → submap_query/response (String JSON)

Sensor ids equal the unremapped topic names of the enabled inputs.
"""

from __future__ import annotations

import time
from typing import Optional

import rclpy
import tf2_ros
from nav_msgs.msg import OccupancyGrid as OccupancyGridMsg
from nav_msgs.msg import Odometry
from rclpy.callback_groups import MutuallyExclusiveCallbackGroup, ReentrantCallbackGroup
from rclpy.executors import MultiThreadedExecutor
from rclpy.node import Node
from rclpy.qos import DurabilityPolicy, HistoryPolicy, QoSProfile, ReliabilityPolicy
from sensor_msgs.msg import Imu, LaserScan, MultiEchoLaserScan, PointCloud2
from std_msgs.msg import String
from std_srvs.srv import Trigger

from slam_bridge.bridge.map_builder_bridge import MappingBridge
from slam_bridge.bridge.tf_bridge import TfTransformResolver
from slam_bridge.common import constants
from slam_bridge.common.errors import InactiveTrajectoryError
from slam_bridge.common.param_models import BridgeParams, load_bridge_params
from slam_bridge.engine.local_engine import LocalMapEngine
from slam_bridge.node.msg_conversion import (
    imu_to_vectors,
    laser_scan_to_points,
    multi_echo_laser_scan_to_points,
    occupancy_grid_to_msg,
    odometry_to_rigid3,
    pointcloud2_to_points,
    stamp_to_sec,
)
from slam_bridge.node.payloads import (
    parse_submap_query,
    status_payload,
    submap_list_payload,
    submap_query_payload,
)
from slam_bridge.node.rerun_visualizer import RerunVisualizer


# Declared by rclpy.Node itself.
_NODE_BUILTIN_PARAMS = {"use_sim_time"}


class BridgeNode(Node):
    def __init__(self) -> None:
        super().__init__("slam_bridge")

        self.declare_parameter("config_path", "")
        self.declare_parameter("executor_threads", 4)
        config_path = str(self.get_parameter("config_path").value).strip()

        # YAML (if any) provides defaults; explicit ROS parameters override.
        base = load_bridge_params(config_path or None)
        values = {}
        for name, default in base.model_dump().items():
            if name not in _NODE_BUILTIN_PARAMS:
                self.declare_parameter(name, default)
            values[name] = self.get_parameter(name).value
        self.params: BridgeParams = BridgeParams(**values)

        self.tf_buffer = tf2_ros.Buffer()
        self.tf_listener = tf2_ros.TransformListener(self.tf_buffer, self, spin_thread=True)
        resolver = TfTransformResolver(
            self.params.tracking_frame, self.params.lookup_transform_timeout_sec, self.tf_buffer
        )
        self.engine = LocalMapEngine.from_params(self.params, logger=self.get_logger())
        self.bridge = MappingBridge(self.params, self.engine, resolver, logger=self.get_logger())

        self.visualizer: Optional[RerunVisualizer] = None
        if self.params.use_rerun:
            self.visualizer = RerunVisualizer(
                spawn=self.params.rerun_spawn,
                recording_path=self.params.rerun_recording_path or None,
            )
            self.visualizer.init()

        self._sensor_group = ReentrantCallbackGroup()
        self._control_group = MutuallyExclusiveCallbackGroup()
        self._setup_subscriptions()
        self._setup_outputs()
        self._log_banner(config_path)

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def _setup_subscriptions(self) -> None:
        qos_med = QoSProfile(
            reliability=ReliabilityPolicy.RELIABLE,
            durability=DurabilityPolicy.VOLATILE,
            history=HistoryPolicy.KEEP_LAST,
            depth=constants.QOS_DEPTH_SENSOR_MED_FREQ,
        )
        qos_high = QoSProfile(
            reliability=ReliabilityPolicy.RELIABLE,
            durability=DurabilityPolicy.VOLATILE,
            history=HistoryPolicy.KEEP_LAST,
            depth=constants.QOS_DEPTH_SENSOR_HIGH_FREQ,
        )
        p = self.params
        subs = [
            (p.use_laser_scan, LaserScan, constants.SCAN_TOPIC, self._on_scan, qos_med),
            (p.use_multi_echo_laser_scan, MultiEchoLaserScan, constants.MULTI_ECHO_SCAN_TOPIC, self._on_multi_echo_scan, qos_med),
            (p.use_point_cloud, PointCloud2, constants.POINT_CLOUD_TOPIC, self._on_point_cloud, qos_med),
            (p.use_imu, Imu, constants.IMU_TOPIC, self._on_imu, qos_high),
            (p.use_odometry, Odometry, constants.ODOMETRY_TOPIC, self._on_odometry, qos_med),
        ]
        self._subscriptions_by_topic = {}
        for enabled, msg_type, topic, callback, qos in subs:
            if enabled:
                self._subscriptions_by_topic[topic] = self.create_subscription(
                    msg_type, topic, callback, qos, callback_group=self._sensor_group
                )
        if not self._subscriptions_by_topic:
            raise ValueError("slam_bridge: at least one sensor input (use_*) must be enabled")

        self.create_subscription(
            String,
            constants.SUBMAP_QUERY_TOPIC,
            self._on_submap_query,
            constants.QOS_DEPTH_SENSOR_MED_FREQ,
            callback_group=self._control_group,
        )

    def _setup_outputs(self) -> None:
        latched = QoSProfile(
            reliability=ReliabilityPolicy.RELIABLE,
            durability=DurabilityPolicy.TRANSIENT_LOCAL,
            history=HistoryPolicy.KEEP_LAST,
            depth=constants.QOS_DEPTH_LOW_FREQ,
        )
        self.pub_submap_list = self.create_publisher(String, constants.SUBMAP_LIST_TOPIC, constants.QOS_DEPTH_SENSOR_MED_FREQ)
        self.pub_map = self.create_publisher(OccupancyGridMsg, constants.OCCUPANCY_GRID_TOPIC, latched)
        self.pub_status = self.create_publisher(String, constants.STATUS_TOPIC, constants.QOS_DEPTH_SENSOR_MED_FREQ)
        self.pub_submap_query = self.create_publisher(
            String, constants.SUBMAP_QUERY_RESPONSE_TOPIC, constants.QOS_DEPTH_SENSOR_MED_FREQ
        )

        self.create_service(
            Trigger,
            constants.FINISH_TRAJECTORY_SERVICE,
            self._on_finish_trajectory,
            callback_group=self._control_group,
        )
        self.create_timer(self.params.submap_publish_period_sec, self._publish_submap_list, callback_group=self._control_group)
        self.create_timer(self.params.occupancy_grid_publish_period_sec, self._publish_occupancy_grid, callback_group=self._control_group)
        self.create_timer(self.params.status_publish_interval_sec, self._publish_status, callback_group=self._control_group)

    def _log_banner(self, config_path: str) -> None:
        log = self.get_logger()
        log.info("=" * 60)
        log.info("SLAM BRIDGE")
        log.info("=" * 60)
        log.info(f"  Config:          {config_path or '(parameters only)'}")
        log.info(f"  Map frame:       {self.params.map_frame}")
        log.info(f"  Tracking frame:  {self.params.tracking_frame}")
        log.info(f"  Sensor inputs:   {sorted(self._subscriptions_by_topic)}")
        log.info(f"  Assets:          {self.params.export_stem('<id>')}.*")
        log.info(f"  Rerun:           {'enabled' if self.visualizer is not None else 'disabled'}")
        log.info("=" * 60)

    def _now_sec(self) -> float:
        return self.get_clock().now().nanoseconds * 1e-9

    # -------------------------------------------------------------------------
    # Sensor callbacks
    # -------------------------------------------------------------------------

    def _ingest(self, handler, *args) -> None:
        try:
            handler(*args)
        except InactiveTrajectoryError as exc:
            # Only reachable after shutdown began.
            self.get_logger().warning(str(exc))

    def _on_scan(self, msg: LaserScan) -> None:
        self._ingest(
            self.bridge.handle_range,
            constants.SCAN_TOPIC,
            stamp_to_sec(msg.header.stamp),
            msg.header.frame_id,
            laser_scan_to_points(msg),
        )

    def _on_multi_echo_scan(self, msg: MultiEchoLaserScan) -> None:
        self._ingest(
            self.bridge.handle_range,
            constants.MULTI_ECHO_SCAN_TOPIC,
            stamp_to_sec(msg.header.stamp),
            msg.header.frame_id,
            multi_echo_laser_scan_to_points(msg),
        )

    def _on_point_cloud(self, msg: PointCloud2) -> None:
        self._ingest(
            self.bridge.handle_range,
            constants.POINT_CLOUD_TOPIC,
            stamp_to_sec(msg.header.stamp),
            msg.header.frame_id,
            pointcloud2_to_points(msg),
        )

    def _on_imu(self, msg: Imu) -> None:
        accel, gyro = imu_to_vectors(msg)
        self._ingest(
            self.bridge.handle_imu,
            constants.IMU_TOPIC,
            stamp_to_sec(msg.header.stamp),
            msg.header.frame_id,
            accel,
            gyro,
        )

    def _on_odometry(self, msg: Odometry) -> None:
        self._ingest(
            self.bridge.handle_odometry,
            constants.ODOMETRY_TOPIC,
            stamp_to_sec(msg.header.stamp),
            msg.child_frame_id,
            odometry_to_rigid3(msg),
        )

    # -------------------------------------------------------------------------
    # Control surface
    # -------------------------------------------------------------------------

    def _on_finish_trajectory(self, request: Trigger.Request, response: Trigger.Response) -> Trigger.Response:
        trajectory_id = self.bridge.active_trajectory_id
        if trajectory_id is None:
            response.success = False
            response.message = "Bridge is shut down"
            return response
        result = self.bridge.handle_finish_trajectory(self.params.export_stem(trajectory_id))
        response.success = result.success
        response.message = result.message
        return response

    def _on_submap_query(self, msg: String) -> None:
        try:
            request = parse_submap_query(msg.data)
        except ValueError as exc:
            self.get_logger().warning(f"Ignoring malformed submap query: {exc}")
            return
        response = self.bridge.handle_submap_query(request.trajectory_id, request.submap_index)
        self.pub_submap_query.publish(String(data=submap_query_payload(request, response)))

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _publish_submap_list(self) -> None:
        submap_list = self.bridge.get_submap_list()
        now = self._now_sec()
        self.pub_submap_list.publish(String(data=submap_list_payload(submap_list, now)))
        if self.visualizer is not None:
            self.visualizer.log_submaps(submap_list, now)

    def _publish_occupancy_grid(self) -> None:
        t0 = time.perf_counter()
        grid = self.bridge.build_occupancy_grid()
        if grid is None:
            return
        now = self._now_sec()
        self.pub_map.publish(occupancy_grid_to_msg(grid, now))
        self.get_logger().debug(
            f"Published {grid.width}x{grid.height} occupancy grid in {time.perf_counter() - t0:.3f}s"
        )
        if self.visualizer is not None:
            self.visualizer.log_occupancy_grid(grid, now)
            self.visualizer.log_trajectory(self.engine.get_all_trajectory_nodes(), now)

    def _publish_status(self) -> None:
        self.pub_status.publish(String(data=status_payload(self.bridge.status(), self._now_sec())))

    def destroy_node(self) -> None:
        self.bridge.close()
        super().destroy_node()


def main() -> None:
    rclpy.init()
    node = BridgeNode()

    threads = int(node.get_parameter("executor_threads").value)
    if threads <= 0:
        raise ValueError("slam_bridge.executor_threads must be > 0")
    executor = MultiThreadedExecutor(num_threads=threads)
    executor.add_node(node)

    try:
        executor.spin()
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == "__main__":
    main()
