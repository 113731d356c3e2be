"""
SLAM bridge constants only.

=============================================================================
CONVENTION QUICK REFERENCE
=============================================================================

RIGID TRANSFORMS:
  Rigid3 = (translation (3,), rotation quaternion (x, y, z, w))
  Composition: (A * B).apply(p) == A.apply(B.apply(p))
  Naming: T_a_b maps points expressed in frame b into frame a

SENSOR FRAMES:
  All samples are forwarded to the engine in the tracking frame.
  sensor_to_tracking = resolver.resolve(sensor_frame, time, timeout)

SUBMAP VERSIONS:
  version = index of the last range sample inserted into the submap
  (monotonically non-decreasing while the submap is being built)

OCCUPANCY VALUES:
  -1 unknown, 0 free .. 100 occupied (nav_msgs/OccupancyGrid convention)
=============================================================================
"""

# =============================================================================
# Frames
# =============================================================================

MAP_FRAME_DEFAULT = "map"
TRACKING_FRAME_DEFAULT = "base_link"

# TF lookups block at most this long before the sample is dropped.
LOOKUP_TRANSFORM_TIMEOUT_SEC_DEFAULT = 0.2

# IMU must be co-located with the tracking frame (meters).
IMU_COLOCATION_TOLERANCE_M = 1e-5

# =============================================================================
# Publishing cadence
# =============================================================================

SUBMAP_PUBLISH_PERIOD_SEC_DEFAULT = 0.3
OCCUPANCY_GRID_PUBLISH_PERIOD_SEC_DEFAULT = 5.0
STATUS_PUBLISH_INTERVAL_SEC = 1.0

# =============================================================================
# Engine / submaps
# =============================================================================

SCANS_PER_SUBMAP_DEFAULT = 20
SUBMAP_MAX_RANGE_DEFAULT = 30.0  # meters, points beyond are ignored for submaps

# =============================================================================
# Occupancy grid rasterization
# =============================================================================

RESOLUTION_DEFAULT = 0.05  # meters / cell
GRID_PADDING_CELLS = 2

# Upper bound on ray samples materialized at once during one insertion.
RAY_SAMPLES_PER_CHUNK = 1 << 18

# Hit/miss log-odds (probability 0.55 hit, 0.49 miss)
LOG_ODDS_HIT = 0.2006706954621511
LOG_ODDS_MISS = -0.040005334613699206
LOG_ODDS_MIN = -4.0
LOG_ODDS_MAX = 4.0

OCCUPANCY_UNKNOWN = -1
OCCUPANCY_MAX = 100

# Submap cells are exported as uint8 intensities; 0 marks unknown.
SUBMAP_CELL_UNKNOWN = 0

# =============================================================================
# Assets
# =============================================================================

ASSET_DIRECTORY_DEFAULT = "."
EXPORT_STEM_TEMPLATE_DEFAULT = "trajectory_{trajectory_id}"

# map_server thresholds written into the .yaml sidecar
MAP_OCCUPIED_THRESH = 0.65
MAP_FREE_THRESH = 0.196

# =============================================================================
# Topics (relative, remappable)
# =============================================================================

SCAN_TOPIC = "scan"
MULTI_ECHO_SCAN_TOPIC = "echoes"
POINT_CLOUD_TOPIC = "points2"
IMU_TOPIC = "imu"
ODOMETRY_TOPIC = "odom"

SUBMAP_LIST_TOPIC = "submap_list"
OCCUPANCY_GRID_TOPIC = "map"
STATUS_TOPIC = "status"
SUBMAP_QUERY_TOPIC = "submap_query"
SUBMAP_QUERY_RESPONSE_TOPIC = "submap_query/response"
FINISH_TRAJECTORY_SERVICE = "finish_trajectory"

# =============================================================================
# QoS depths
# =============================================================================

QOS_DEPTH_SENSOR_HIGH_FREQ = 100  # IMU
QOS_DEPTH_SENSOR_MED_FREQ = 10  # scans, odometry
QOS_DEPTH_LOW_FREQ = 1  # latched map / submap list
