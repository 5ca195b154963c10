import pytest

LINKS = "/trips/tripA/expense-links"


@pytest.fixture
def seeded(put_raw, make_trip):
    put_raw(make_trip("tripA"))
    other = make_trip("tripB")
    other["costData"]["expenses"] = [{"id": "expenseB", "amount": 10.0}]
    other["travelData"]["locations"] = [{"id": "locB1", "name": "Bergen", "costTrackingLinks": []}]
    other["travelData"]["routes"] = []
    other["accommodations"] = []
    put_raw(other)


def test_create_get_list_delete_trip(client):
    resp = client.post("/trips", json={"id": "trip1", "title": "Iceland", "currency": "isk"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["costData"]["currency"] == "ISK"
    assert body["schemaVersion"] == 4
    assert body["documentVersion"] == 1

    assert client.get("/trips/trip1").json()["title"] == "Iceland"
    assert [t["id"] for t in client.get("/trips").json()] == ["trip1"]

    assert client.delete("/trips/trip1").status_code == 204
    assert client.get("/trips/trip1").status_code == 404


def test_error_statuses(client):
    missing = client.get("/trips/nothere")
    assert missing.status_code == 404
    assert missing.json()["error"] == "TRIP_NOT_FOUND"

    bad_id = client.get("/trips/bad-id")
    assert bad_id.status_code == 400
    assert bad_id.json()["success"] is False

    no_title = client.post("/trips", json={"id": "trip2"})
    assert no_title.status_code == 422
    assert no_title.json()["error"] == "VALIDATION_ERROR"

    client.post("/trips", json={"id": "trip2", "title": "One"})
    assert client.post("/trips", json={"id": "trip2", "title": "Two"}).status_code == 409

    unknown = client.get("/no/such/route")
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "not_found"


def test_request_id_is_echoed(client):
    resp = client.get("/", headers={"x-request-id": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"
    assert client.get("/").headers["x-request-id"]


def test_patch_travel_data_with_base_version(client, seeded):
    resp = client.patch(
        "/trips/tripA/travel-data?baseVersion=1",
        json={"title": "Patagonia South", "locations": {"added": [{"id": "loc3", "name": "El Chalten"}]}},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["documentVersion"] == 2
    assert body["travelData"]["locations"][-1]["id"] == "loc3"

    stale = client.patch("/trips/tripA/travel-data?baseVersion=1", json={"title": "Lost update"})
    assert stale.status_code == 409
    assert stale.json()["error"] == "VERSION_CONFLICT"
    assert client.get("/trips/tripA").json()["title"] == "Patagonia South"


def test_patch_rejects_unknown_fields_and_accepts_empty_body(client, seeded):
    assert client.patch("/trips/tripA/cost-data", json={"budget": 1}).status_code == 422

    resp = client.patch("/trips/tripA/cost-data")
    assert resp.status_code == 200
    assert resp.json()["documentVersion"] == 1


def test_patch_cost_data(client, seeded):
    resp = client.patch("/trips/tripA/cost-data", json={"overallBudget": 4000, "expenses": {"removedIds": ["e2"]}})
    assert resp.status_code == 200
    cost = resp.json()["costData"]
    assert cost["overallBudget"] == 4000
    assert [e["id"] for e in cost["expenses"]] == ["e1"]


def test_disconnected_route_is_a_bad_request(client, seeded):
    route = {
        "id": "route9",
        "subRoutes": [{"id": "a", "from": "X", "to": "Y"}, {"id": "b", "from": "Z", "to": "W"}],
    }
    resp = client.patch("/trips/tripA/travel-data", json={"routes": {"added": [route]}})
    assert resp.status_code == 400
    assert resp.json()["code"] == "disconnected_segment"


def test_set_and_read_link(client, seeded):
    resp = client.put(LINKS, json={"expenseId": "e1", "travelItemId": "seg1", "travelItemType": "route"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["travelItemName"] == "Santiago → Punta Arenas"

    detail = client.get(f"{LINKS}/e1").json()
    assert detail["existingLink"]["travelItemId"] == "seg1"
    assert detail["travelReference"]["routeId"] == "seg1"

    expenses = {e["id"]: e for e in client.get("/trips/tripA/expenses").json()}
    assert expenses["e1"]["travelReference"]["type"] == "route"

    assert [l["expenseId"] for l in client.get(LINKS).json()] == ["e1"]


def test_strict_link_conflict_names_existing_link(client, seeded):
    payload = {"expenseId": "e1", "travelItemId": "loc1", "travelItemType": "location"}
    assert client.post(LINKS, json=payload).status_code == 201

    resp = client.post(LINKS, json={**payload, "travelItemId": "loc2"})
    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "DUPLICATE_LINK"
    assert body["existing_link"]["travelItemId"] == "loc1"


def test_cross_trip_link_is_rejected(client, seeded):
    resp = client.put(LINKS, json={"expenseId": "e1", "travelItemId": "locB1", "travelItemType": "location"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "CROSS_TRIP_REFERENCE"
    assert body["owner_trip_id"] == "tripB"
    assert client.get("/trips/tripA").json()["documentVersion"] == 1


def test_split_validation_failure(client, seeded):
    resp = client.post(
        f"{LINKS}/split",
        json={
            "expenseId": "e2",
            "links": [
                {"kind": "location", "id": "loc2", "splitMode": "percentage", "splitValue": 60},
                {"kind": "accommodation", "id": "acc1", "splitMode": "percentage", "splitValue": 40.6},
            ],
        },
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "SPLIT_VALIDATION_FAILED"


def test_split_move_and_remove(client, seeded):
    resp = client.post(
        f"{LINKS}/split",
        json={
            "expenseId": "e2",
            "links": [
                {"kind": "location", "id": "loc2", "splitMode": "fixed", "splitValue": 100},
                {"kind": "accommodation", "id": "acc1", "splitMode": "fixed", "splitValue": 200},
            ],
        },
    )
    assert resp.status_code == 200, resp.text
    assert [l["amount"] for l in resp.json()] == [100.0, 200.0]

    unlinked = client.delete(f"{LINKS}/e2/items/loc2")
    assert unlinked.json() == {"success": True, "removed": True}

    moved = client.post(
        f"{LINKS}/move",
        json={"expenseId": "e2", "fromTravelItemId": "acc1", "toTravelItemId": "loc1", "toTravelItemType": "location"},
    )
    assert moved.status_code == 200
    assert moved.json()["travelItemId"] == "loc1"

    assert client.delete(f"{LINKS}/e2").json() == {"success": True, "removed": 1}


def test_batch_operations(client, seeded):
    resp = client.post(
        f"{LINKS}/batch",
        json={
            "operations": [
                {"type": "add", "expenseId": "e1", "target": {"kind": "route", "id": "route1"}},
                {"type": "add", "expenseId": "e2", "target": {"kind": "accommodation", "id": "acc1"}},
            ]
        },
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["documentVersion"] == 2
    assert body["accommodations"][0]["costTrackingLinks"][0]["expenseId"] == "e2"


def test_sync_legacy_endpoint(client, put_raw, make_trip):
    doc = make_trip("tripC")
    doc["costData"]["expenses"][0]["travelReference"] = {"type": "location", "locationId": "loc1"}
    put_raw(doc)

    resp = client.post("/trips/tripC/expense-links/sync-legacy")
    assert resp.json() == {"synced": 1, "errors": []}


def test_validate_actions(client, put_raw, make_trip):
    doc = make_trip("tripC")
    doc["travelData"]["locations"][0]["costTrackingLinks"] = [{"expenseId": "ghost"}]
    put_raw(doc)

    report = client.post("/trips/tripC/validate", json={"action": "validate-all"}).json()
    assert report["isValid"] is False
    assert report["tripId"] == "tripC"
    assert report["errors"][0]["itemId"] == "loc1"
    assert report["summary"]["totalErrors"] == 1

    link = client.post(
        "/trips/tripC/validate",
        json={"action": "validate-link", "expenseId": "e1", "travelItemId": "loc2"},
    ).json()
    assert link == {"isValid": True, "errors": [], "tripId": "tripC"}

    assert client.post("/trips/tripC/validate", json={"action": "validate-expense"}).status_code == 400
    assert client.post("/trips/tripC/validate", json={"action": "explode"}).status_code == 422


def test_cleanup_log_endpoint(client, put_raw, make_trip):
    doc = make_trip("tripOld", schemaVersion=3)
    doc["travelData"]["locations"][0]["costTrackingLinks"] = [{"expenseId": "ghost"}]
    put_raw(doc)

    assert client.get("/trips/tripOld").json()["schemaVersion"] == 4
    [entry] = client.get("/trips/tripOld/cleanup-log").json()
    assert entry["message"] == "Removed invalid expense link ghost from location loc1"
