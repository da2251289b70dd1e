from fastapi.testclient import TestClient
from timetabler.main import app

client = TestClient(app)


def sample_payload():
    courses = [
        {"id": "CS101", "name": "Programming", "department": "CS", "sessions_per_week": 3, "priority": "high"},
        {"id": "CS102", "name": "Discrete Maths", "department": "CS", "sessions_per_week": 2},
        {"id": "PH101", "name": "Physics Lab", "department": "PHY", "room_type": "lab", "sessions_per_week": 2},
    ]
    faculty = [
        {"id": "T1", "name": "T1", "department": "CS", "max_load_per_day": 2, "qualifications": ["CS101", "CS102"]},
        {"id": "T2", "name": "T2", "department": "PHY", "max_load_per_day": 2, "qualifications": ["PH101"]},
    ]
    classrooms = [
        {"id": "R1", "name": "R1", "capacity": 60},
        {"id": "L1", "name": "L1", "room_type": "lab", "capacity": 40},
    ]
    groups = [
        {"id": "CSE-1", "department": "CS", "year": 1, "size": 55},
        {"id": "PHY-1", "department": "PHY", "year": 1, "size": 30},
    ]
    return {
        "courses": courses,
        "faculty": faculty,
        "classrooms": classrooms,
        "student_groups": groups,
        "search": {"max_iterations": 10, "population_size": 6, "random_seed": 42},
    }


def test_generate_and_fetch_schedule():
    resp = client.post("/schedules", json=sample_payload())
    assert resp.status_code == 200, resp.text
    data = resp.json()
    result = data["result"]
    assert result["seed"] == 42
    assert result["termination"] in {"max_iterations", "stagnation"}
    best = result["candidates"][0]
    assert best["rank"] == 1
    assert best["feasible"] is True
    assert len(best["entries"]) == 7
    # no faculty, room or group is booked twice in the same slot
    for field in ("faculty_id", "classroom_id", "student_group_id"):
        keys = [(e[field], e["time_slot_id"], e["week"]) for e in best["entries"]]
        assert len(keys) == len(set(keys))
    # default grid: the 13:00 period is a break
    assert not [e for e in best["entries"] if e["time_slot_id"].endswith("p4")]

    fetched = client.get(f"/schedules/{data['run_id']}")
    assert fetched.status_code == 200
    assert fetched.json() == result


def test_get_missing_schedule():
    resp = client.get("/schedules/does-not-exist")
    assert resp.status_code == 404


def test_invalid_configuration_is_rejected():
    payload = sample_payload()
    payload["classrooms"] = [{"id": "R1", "capacity": 10}]
    resp = client.post("/schedules", json=payload)
    assert resp.status_code == 400
    assert "no available" in resp.json()["detail"]


def test_malformed_payload_is_rejected():
    payload = sample_payload()
    payload["search"]["population_size"] = 1
    resp = client.post("/schedules", json=payload)
    assert resp.status_code == 422


def test_conflict_analysis_of_supplied_entries():
    payload = sample_payload()
    payload["time_slots"] = [
        {"id": "mon-1", "day": 1, "period": 0, "start_time": "09:00", "end_time": "10:00"},
        {"id": "mon-2", "day": 1, "period": 1, "start_time": "10:00", "end_time": "11:00"},
    ]
    base = {"faculty_id": "T1", "classroom_id": "R1", "student_group_id": "CSE-1", "day": 1}
    payload["entries"] = [
        {**base, "id": "CS101:CSE-1:w1:s0", "course_id": "CS101", "time_slot_id": "mon-1"},
        {**base, "id": "CS102:CSE-1:w1:s0", "course_id": "CS102", "time_slot_id": "mon-1"},
    ]
    resp = client.post("/conflicts", json=payload)
    assert resp.status_code == 200, resp.text
    conflicts = resp.json()
    doubles = [c for c in conflicts if c["kind"] == "double_booking"]
    assert {c["type"] for c in doubles} == {"faculty", "classroom", "student"}
    assert all(c["severity"] == "high" for c in doubles)
    assert conflicts[0]["severity"] == "high"
    unplaced = [c for c in conflicts if c["kind"] == "unplaced"]
    assert len(unplaced) == 5


def test_conflict_analysis_rejects_duplicate_entries():
    payload = sample_payload()
    entry = {
        "id": "CS101:CSE-1:w1:s0",
        "course_id": "CS101",
        "faculty_id": "T1",
        "classroom_id": "R1",
        "student_group_id": "CSE-1",
        "time_slot_id": "d1p0",
        "day": 1,
    }
    payload["entries"] = [entry, entry]
    resp = client.post("/conflicts", json=payload)
    assert resp.status_code == 400


def test_generated_candidates_are_named_and_attributed():
    payload = sample_payload()
    payload["name"] = "Spring"
    payload["generated_by"] = "registrar"
    resp = client.post("/schedules", json=payload)
    assert resp.status_code == 200, resp.text
    candidates = resp.json()["result"]["candidates"]
    assert candidates[0]["name"] == "Spring #1"
    assert candidates[0]["id"] == f"{42:08x}-1"
    assert all(c["generated_by"] == "registrar" for c in candidates)
    assert all(c["constraints"]["allow_partial"] is False for c in candidates)


def test_entries_with_their_own_ids_fill_matching_sessions():
    payload = sample_payload()
    base = {"faculty_id": "T1", "classroom_id": "R1", "student_group_id": "CSE-1", "day": 1}
    payload["entries"] = [
        {**base, "id": "e1", "course_id": "CS101", "time_slot_id": "d1p0"},
        {**base, "id": "e2", "course_id": "CS101", "time_slot_id": "d1p1"},
        {**base, "id": "e3", "course_id": "CS102", "time_slot_id": "d1p1"},
    ]
    resp = client.post("/conflicts", json=payload)
    assert resp.status_code == 200, resp.text
    conflicts = resp.json()
    unplaced = sorted(c["affected_entries"][0] for c in conflicts if c["kind"] == "unplaced")
    assert unplaced == [
        "CS101:CSE-1:w1:s2",
        "CS102:CSE-1:w1:s1",
        "PH101:PHY-1:w1:s0",
        "PH101:PHY-1:w1:s1",
    ]
    doubles = [c for c in conflicts if c["kind"] == "double_booking"]
    assert len(doubles) == 3
    assert {tuple(c["affected_entries"]) for c in doubles} == {("CS101:CSE-1:w1:s1", "CS102:CSE-1:w1:s0")}


def test_entry_day_must_match_its_time_slot():
    payload = sample_payload()
    payload["entries"] = [
        {
            "id": "CS101:CSE-1:w1:s0",
            "course_id": "CS101",
            "faculty_id": "T1",
            "classroom_id": "R1",
            "student_group_id": "CSE-1",
            "time_slot_id": "d1p0",
            "day": 2,
        }
    ]
    resp = client.post("/conflicts", json=payload)
    assert resp.status_code == 400
    assert "d1p0" in resp.json()["detail"]
