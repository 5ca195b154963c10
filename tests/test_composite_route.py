from tripstore.services.composite_route import validate_and_normalize_composite_route


def leg(origin, destination, **extra):
    return {"id": f"{origin}-{destination}", "from": origin, "to": destination, **extra}


def test_route_without_legs_is_returned_as_is():
    route = {"id": "r", "from": "A", "to": "B"}
    result = validate_and_normalize_composite_route(route)
    assert result.ok
    assert result.route == route


def test_connected_legs_pass_with_case_and_whitespace_differences():
    route = {"id": "r", "from": "Lisbon", "to": "Madrid", "subRoutes": [leg(" lisbon", "Porto"), leg("PORTO ", "madrid")]}
    result = validate_and_normalize_composite_route(route)
    assert result.ok
    # Endpoints come from the legs
    assert result.route["from"] == " lisbon"
    assert result.route["to"] == "madrid"


def test_origin_and_destination_mismatch():
    legs = [leg("A", "B"), leg("B", "C")]
    bad_start = validate_and_normalize_composite_route({"from": "X", "to": "C", "subRoutes": legs})
    assert (bad_start.ok, bad_start.code) == (False, "from_mismatch")

    bad_end = validate_and_normalize_composite_route({"from": "A", "to": "Z", "subRoutes": legs})
    assert (bad_end.ok, bad_end.code) == (False, "to_mismatch")
    assert "destination" in bad_end.describe()


def test_disconnected_leg_reports_its_one_based_position():
    route = {"from": "A", "to": "D", "subRoutes": [leg("A", "B"), leg("B", "C"), leg("X", "D")]}
    result = validate_and_normalize_composite_route(route)
    assert not result.ok
    assert result.code == "disconnected_segment"
    assert result.segment_number == 3
    assert "3" in result.describe()


def test_route_level_names_unset_takes_endpoints_from_legs():
    route = {
        "fromCoordinates": [0.0, 0.0],
        "subRoutes": [
            leg("A", "B", fromCoordinates=[10.0, 10.0], toCoordinates=[1.0, 1.0]),
            leg("B", "C", fromCoordinates=[1.0, 1.0], toCoordinates=[2.0, 2.0]),
        ],
    }
    result = validate_and_normalize_composite_route(route)
    assert result.ok
    assert result.route["from"] == "A"
    assert result.route["to"] == "C"
    assert result.route["fromCoordinates"] == [10.0, 10.0]
    assert result.route["toCoordinates"] == [2.0, 2.0]


def test_legs_without_names_fall_back_to_coordinates():
    route = {
        "from": "A",
        "to": "C",
        "subRoutes": [
            {"id": "1", "from": "A", "toCoordinates": [1.0, 1.0]},
            {"id": "2", "fromCoordinates": [1.0000001, 1.0], "to": "C"},
        ],
    }
    assert validate_and_normalize_composite_route(route).ok

    route["subRoutes"][1]["fromCoordinates"] = [1.5, 1.0]
    result = validate_and_normalize_composite_route(route)
    assert (result.code, result.segment_number) == ("disconnected_segment", 2)


def test_coordinate_mismatch_when_no_names():
    route = {
        "fromCoordinates": [0.0, 0.0],
        "subRoutes": [{"id": "1", "fromCoordinates": [5.0, 5.0], "toCoordinates": [1.0, 1.0]}],
    }
    result = validate_and_normalize_composite_route(route)
    assert result.code == "from_coords_mismatch"


def test_input_is_not_mutated():
    route = {"from": "A", "to": "C", "subRoutes": [leg("A", "C", toCoordinates=[3.0, 3.0])]}
    result = validate_and_normalize_composite_route(route)
    assert "toCoordinates" not in route
    assert result.route["toCoordinates"] == [3.0, 3.0]
