"""
SLAM Bridge Launch File.

Architecture:
    scan / echoes / points2 / imu / odom (+ TF) → slam_bridge
        → submap_list, map, status, submap_query/response
        ← finish_trajectory (std_srvs/Trigger), submap_query

Example:
    ros2 launch slam_bridge slam_bridge.launch.py use_sim_time:=true
    ros2 service call /finish_trajectory std_srvs/srv/Trigger
"""

import os

from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument, OpaqueFunction
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node

from ament_index_python.packages import get_package_share_directory


def _as_bool(s: str) -> bool:
    return s.strip().lower() in ("true", "1", "yes")


# Launch arguments forwarded as node parameters (LaunchConfiguration returns strings)
_FORWARDED_PARAMS = {
    "use_sim_time": _as_bool,
    "use_rerun": _as_bool,
    "rerun_spawn": _as_bool,
    "rerun_recording_path": str,
    "asset_directory": str,
}


def generate_launch_description():
    """Generate launch description for the SLAM bridge."""

    # =========================================================================
    # Launch Arguments
    # =========================================================================
    config_path_arg = DeclareLaunchArgument(
        "config_path",
        default_value=os.path.join(get_package_share_directory("slam_bridge"), "config", "slam_bridge.yaml"),
        description="Bridge config file (ros__parameters).",
    )
    use_sim_time_arg = DeclareLaunchArgument(
        "use_sim_time",
        default_value="false",
        description="Use /clock (rosbag playback).",
    )
    asset_directory_arg = DeclareLaunchArgument(
        "asset_directory",
        default_value="/tmp/slam_bridge",
        description="Directory for .pgm/.yaml/.ply assets written on finish_trajectory.",
    )
    use_rerun_arg = DeclareLaunchArgument(
        "use_rerun",
        default_value="false",
        description="Log submaps, trajectory and occupancy grid to Rerun.",
    )
    rerun_spawn_arg = DeclareLaunchArgument(
        "rerun_spawn",
        default_value="false",
        description="Spawn Rerun viewer at startup (use_rerun must be true).",
    )
    rerun_recording_path_arg = DeclareLaunchArgument(
        "rerun_recording_path",
        default_value="",
        description="Path for Rerun recording; open with: rerun <path>. Empty = buffer only.",
    )

    # =========================================================================
    # Bridge Node: config_path + launch overrides
    # =========================================================================
    def bridge_node_with_config(context):
        overrides = {
            name: convert(LaunchConfiguration(name).perform(context))
            for name, convert in _FORWARDED_PARAMS.items()
        }
        overrides["config_path"] = LaunchConfiguration("config_path").perform(context)
        overrides["executor_threads"] = 4
        return [
            Node(
                package="slam_bridge",
                executable="slam_bridge_node",
                name="slam_bridge",
                output="screen",
                parameters=[overrides],
            )
        ]

    return LaunchDescription([
        config_path_arg,
        use_sim_time_arg,
        asset_directory_arg,
        use_rerun_arg,
        rerun_spawn_arg,
        rerun_recording_path_arg,
        OpaqueFunction(function=bridge_node_with_config),
    ])
