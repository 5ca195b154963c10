"""Checks for multi-leg routes (a route carrying ``subRoutes``).

The first leg must start where the route starts, the last leg must end where
it ends, and each leg must start where the previous one stopped. Places are
compared by name (trimmed, case-insensitive); coordinates are the fallback when
a name is missing on either side.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

# Sub-meter drift from geocoding / serialization round trips.
COORD_EPSILON = 1e-6


@dataclass
class CompositeRouteResult:
    ok: bool
    route: Dict[str, Any]
    code: Optional[str] = None
    segment_number: Optional[int] = None

    def describe(self) -> str:
        if self.ok:
            return "ok"
        if self.code == "disconnected_segment":
            return f"Route segment {self.segment_number} does not start where the previous one ends"
        return {
            "from_mismatch": "First segment does not start at the route origin",
            "to_mismatch": "Last segment does not end at the route destination",
            "from_coords_mismatch": "First segment starts away from the route origin coordinates",
            "to_coords_mismatch": "Last segment ends away from the route destination coordinates",
        }.get(self.code or "", "Invalid composite route")


def _name(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def _same_coords(left: Optional[Sequence[float]], right: Optional[Sequence[float]]) -> bool:
    if not left or not right or len(left) < 2 or len(right) < 2:
        return False
    return abs(left[0] - right[0]) < COORD_EPSILON and abs(left[1] - right[1]) < COORD_EPSILON


def _places_differ(
    name_a: Any,
    name_b: Any,
    coords_a: Optional[Sequence[float]],
    coords_b: Optional[Sequence[float]],
    any_name_wins: bool = False,
) -> Optional[str]:
    """Return "name" or "coords" for whichever comparison failed, else None.

    With ``any_name_wins`` a name on only one side skips the coordinate check.
    """
    if _name(name_a) and _name(name_b):
        return None if _name(name_a) == _name(name_b) else "name"
    if any_name_wins and (_name(name_a) or _name(name_b)):
        return None
    if coords_a and coords_b and not _same_coords(coords_a, coords_b):
        return "coords"
    return None


def _disconnected_segment(legs: List[Mapping[str, Any]]) -> Optional[int]:
    for index in range(1, len(legs)):
        previous, current = legs[index - 1], legs[index]
        if _places_differ(
            previous.get("to"),
            current.get("from"),
            previous.get("toCoordinates"),
            current.get("fromCoordinates"),
        ):
            return index + 1
    return None


def validate_and_normalize_composite_route(route: Mapping[str, Any]) -> CompositeRouteResult:
    normalized = dict(route)
    legs = route.get("subRoutes") or []
    if not legs:
        return CompositeRouteResult(True, normalized)

    first, last = legs[0], legs[-1]
    # Route-level endpoints are often unset on new routes; legs win then.
    start = _places_differ(
        route.get("from"),
        first.get("from"),
        route.get("fromCoordinates"),
        first.get("fromCoordinates"),
        any_name_wins=True,
    )
    if start:
        code = "from_mismatch" if start == "name" else "from_coords_mismatch"
        return CompositeRouteResult(False, normalized, code)
    end = _places_differ(
        route.get("to"),
        last.get("to"),
        route.get("toCoordinates"),
        last.get("toCoordinates"),
        any_name_wins=True,
    )
    if end:
        code = "to_mismatch" if end == "name" else "to_coords_mismatch"
        return CompositeRouteResult(False, normalized, code)

    segment = _disconnected_segment(legs)
    if segment:
        return CompositeRouteResult(False, normalized, "disconnected_segment", segment)

    normalized["from"] = first.get("from", route.get("from"))
    normalized["to"] = last.get("to", route.get("to"))
    if first.get("fromCoordinates") or route.get("fromCoordinates"):
        normalized["fromCoordinates"] = first.get("fromCoordinates") or route.get("fromCoordinates")
    if last.get("toCoordinates") or route.get("toCoordinates"):
        normalized["toCoordinates"] = last.get("toCoordinates") or route.get("toCoordinates")
    return CompositeRouteResult(True, normalized)
