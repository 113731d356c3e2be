"""
SLAM bridge between a mapping engine and ROS 2.

Subpackages:
- common/: constants, errors, parameters, Rigid3
- engine/: engine facade + in-process reference engine
- bridge/: trajectory sessions, sensor ingestion, MappingBridge
- assets/: occupancy grid + asset export
- node/: ROS 2 node, message conversion, Rerun visualization
"""
