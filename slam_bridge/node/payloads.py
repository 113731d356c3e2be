"""
JSON payloads for std_msgs/String topics (submap list, submap query, status).

Kept free of ROS imports so request parsing and payload layout are testable
without a ROS installation.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Dict

from slam_bridge.bridge.map_builder_bridge import SubmapQueryResponse
from slam_bridge.engine.structures import SubmapList


@dataclass(frozen=True)
class SubmapQueryRequest:
    trajectory_id: int
    submap_index: int
    request_id: str = ""


def parse_submap_query(text: str) -> SubmapQueryRequest:
    """Parse '{"trajectory_id": int, "submap_index": int[, "request_id": str]}'."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Submap query is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("Submap query must be a JSON object")
    fields = {}
    for key in ("trajectory_id", "submap_index"):
        value = data.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Submap query field '{key}' must be an integer, got {value!r}")
        fields[key] = value
    return SubmapQueryRequest(request_id=str(data.get("request_id", "")), **fields)


def submap_list_payload(submap_list: SubmapList, stamp_sec: float) -> str:
    payload: Dict[str, Any] = {"stamp": stamp_sec}
    payload.update(submap_list.to_dict())
    return json.dumps(payload)


def submap_query_payload(request: SubmapQueryRequest, response: SubmapQueryResponse) -> str:
    payload: Dict[str, Any] = {
        "request_id": request.request_id,
        "trajectory_id": request.trajectory_id,
        "submap_index": request.submap_index,
        "success": response.success,
    }
    if not response.success:
        payload["error"] = response.error
        payload["not_found"] = response.not_found
        return json.dumps(payload)

    snap = response.snapshot
    payload.update({
        "submap_version": snap.version,
        "width": snap.width,
        "height": snap.height,
        "resolution": snap.resolution,
        "slice_pose": snap.local_pose.to_dict(),
        "cells": base64.b64encode(snap.cells).decode("ascii"),
    })
    return json.dumps(payload)


def status_payload(status: Dict[str, Any], stamp_sec: float) -> str:
    payload = {"timestamp": stamp_sec, **status}
    # JSON object keys must be strings
    payload["trajectory_states"] = {str(k): v for k, v in status.get("trajectory_states", {}).items()}
    return json.dumps(payload)
