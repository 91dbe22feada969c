def lecture_payload(seed, **overrides):
    request = {
        "kind": "single",
        "day_index": 0,
        "slot_id": 0,
        "class_type": "lecture",
        "subject_id": seed.math,
        "teacher_ids": [seed.t1],
        "room_id": seed.r1,
    }
    request.update(overrides)
    return request


def test_assign_and_read_grid(client, seed):
    response = client.post(
        "/api/routines/cse/1/ab/assign",
        json={"request": lecture_payload(seed)},
        headers={"X-Actor": "office"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["committed"] is True
    assert body["operation"] == "single"

    grid = client.get("/api/routines/CSE/1/AB").json()
    sunday = grid["days"][0]
    assert sunday["day_name"] == "Sunday"
    first = sunday["cells"][0]
    assert first["label"] == "MATH101"
    assert first["groups"][0]["teacher_names"] == ["RKS"]

    logs = client.get("/api/activity/logs").json()
    assert logs[0]["action"] == "routine.allocate.single"
    assert logs[0]["actor"] == "office"


def test_conflicts_block_until_overridden(client, seed):
    client.post("/api/routines/CSE/1/AB/assign", json={"request": lecture_payload(seed)})
    request = lecture_payload(seed, subject_id=seed.physics, room_id=seed.r2)

    check = client.post("/api/routines/CSE/1/CD/check-conflicts", json={"request": request})
    assert check.status_code == 200
    assert check.json()["has_conflicts"] is True

    blocked = client.post("/api/routines/CSE/1/CD/assign", json={"request": request})
    assert blocked.status_code == 409
    assert blocked.json()["committed"] is False
    assert blocked.json()["conflicts"][0]["resource_id"] == seed.t1

    forced = client.post(
        "/api/routines/CSE/1/CD/assign",
        json={"request": request, "override_conflicts": True},
    )
    assert forced.status_code == 201
    assert forced.json()["overridden"] is True

    availability = client.get(f"/api/availability/teacher/{seed.t1}", params={"day_index": 0, "slot_id": 0})
    assert availability.json()["available"] is False

    bookings = client.get(f"/api/availability/teacher/{seed.t1}/double-bookings").json()
    assert len(bookings) == 1


def test_validation_errors_carry_field_details(client, seed):
    response = client.post(
        "/api/routines/CSE/1/AB/assign",
        json={"request": lecture_payload(seed, room_id=None)},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert "room_id" in body["details"]


def test_unknown_request_kind_is_rejected_by_schema(client, seed):
    response = client.post(
        "/api/routines/CSE/1/AB/assign",
        json={"request": lecture_payload(seed, kind="triple")},
    )
    assert response.status_code == 422
    assert "detail" in response.json()


def test_clear_slot_then_not_found(client, seed):
    client.post("/api/routines/CSE/1/AB/assign", json={"request": lecture_payload(seed)})

    cleared = client.delete("/api/routines/CSE/1/AB/slots/0/0")
    assert cleared.status_code == 200
    assert cleared.json()["removed_count"] == 1

    again = client.delete("/api/routines/CSE/1/AB/slots/0/0")
    assert again.status_code == 404
    assert again.json()["code"] == "not_found"


def test_span_and_lab_endpoints(client, seed):
    span = client.post(
        "/api/routines/CSE/1/AB/assign",
        json={
            "request": {
                "kind": "spanned",
                "day_index": 1,
                "slot_ids": [3, 2],
                "class_type": "practical",
                "subject_id": seed.prog_lab,
                "teacher_ids": [seed.t1],
                "room_id": seed.lab1,
            }
        },
    )
    assert span.status_code == 201
    span_id = span.json()["span_ids"][0]

    gap = client.post(
        "/api/routines/CSE/1/AB/assign",
        json={
            "request": {
                "kind": "spanned",
                "day_index": 2,
                "slot_ids": [2, 4],
                "class_type": "practical",
                "subject_id": seed.prog_lab,
                "teacher_ids": [seed.t1],
                "room_id": seed.lab1,
            }
        },
    )
    assert gap.status_code == 422

    lab = client.post(
        "/api/routines/CSE/1/AB/assign",
        json={
            "request": {
                "kind": "lab",
                "day_index": 3,
                "slot_ids": [5],
                "lab_group_type": "both_groups",
                "group_a": {"subject_id": seed.prog_lab, "teacher_ids": [seed.t1], "room_id": seed.lab1},
                "group_b": {"subject_id": seed.db_lab, "teacher_ids": [seed.t2], "room_id": seed.lab2},
            }
        },
    )
    assert lab.status_code == 201
    lab_pair_id = lab.json()["lab_pair_id"]

    assert client.delete(f"/api/routines/spans/{span_id}").json()["removed_count"] == 2
    assert client.delete(f"/api/routines/lab-pairs/{lab_pair_id}").json()["removed_count"] == 2
    assert client.delete(f"/api/routines/spans/{span_id}").status_code == 404


def test_elective_endpoints(client, seed):
    response = client.post(
        "/api/routines/CSE/7/AB/assign",
        json={
            "request": {
                "kind": "elective",
                "day_index": 2,
                "slot_ids": [4],
                "subject_id": seed.ai,
                "teacher_ids": [seed.t3],
                "room_id": seed.r2,
            }
        },
    )
    assert response.status_code == 201
    group_id = response.json()["elective_group_id"]

    routines = client.get("/api/routines/CSE").json()["routines"]
    assert [(item["semester"], item["section"]) for item in routines] == [(7, "AB"), (7, "CD")]

    schedule = client.get(f"/api/teachers/{seed.t3}/schedule").json()
    assert schedule["load"]["total_periods"] == 1

    bad_number = client.post(
        "/api/routines/CSE/8/AB/assign",
        json={
            "request": {
                "kind": "elective",
                "day_index": 2,
                "slot_ids": [4],
                "elective_number": 3,
                "subject_id": seed.ai,
                "teacher_ids": [seed.t3],
                "room_id": seed.r2,
            }
        },
    )
    assert bad_number.status_code == 422
    assert "elective_number" in bad_number.json()["details"]

    cleared = client.delete(f"/api/routines/electives/{group_id}")
    assert cleared.json()["removed_count"] == 2


def test_clear_whole_section(client, seed):
    client.post("/api/routines/CSE/1/AB/assign", json={"request": lecture_payload(seed)})
    client.post("/api/routines/CSE/1/AB/assign", json={"request": lecture_payload(seed, slot_id=1)})

    response = client.delete("/api/routines/CSE/1/AB")

    assert response.status_code == 200
    assert response.json()["removed_count"] == 2
    assert client.delete("/api/routines/CSE/1/AB").status_code == 404


def test_free_resource_listing(client, seed):
    client.post("/api/routines/CSE/1/AB/assign", json={"request": lecture_payload(seed)})

    teachers = client.get("/api/availability/free-teachers", params={"day_index": 0, "slot_id": 0}).json()
    rooms = client.get("/api/availability/free-rooms", params={"day_index": 0, "slot_id": 0}).json()

    assert seed.t1 not in teachers
    assert seed.r1 not in rooms
    assert client.get("/api/availability/free-rooms", params={"day_index": 0, "slot_id": 50}).status_code == 422
