"""
ROS 2 surface of the SLAM bridge.

- bridge_node.py: BridgeNode + main() entry point
- msg_conversion.py: ROS message <-> native conversions
- payloads.py: JSON payloads for String topics (ROS-free)
- rerun_visualizer.py: optional Rerun logging
"""
