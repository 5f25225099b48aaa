BASE = "/api/admin/attendance/schedule"
TEACHER = {"user_id": "teacher-1"}


def save(client, schedule_id, records, user=TEACHER):
    return client.put(f"{BASE}/{schedule_id}", params=user, json={"records": records})


def test_sheet_lists_records_with_counts(client, db):
    db.add("attendance", schedule_id="past-1", student_id="student-1", status="present")
    db.add("attendance", schedule_id="past-1", student_id="student-2", status="sick")
    db.add("attendance", schedule_id="past-2", student_id="student-1", status="absent")

    response = client.get(f"{BASE}/past-1", params=TEACHER)

    assert response.status_code == 200
    body = response.json()
    assert body["scheduleId"] == "past-1"
    assert [r["student_id"] for r in body["records"]] == ["student-1", "student-2"]
    assert body["stats"] == {"present": 1, "absent": 0, "late": 0, "sick": 1, "leave": 0, "total": 2}


def test_unknown_session_is_not_found(client):
    assert client.get(f"{BASE}/missing", params=TEACHER).status_code == 404


def test_save_replaces_existing_sheet(client, db):
    db.add("attendance", schedule_id="past-3", student_id="student-1", status="absent")
    db.add("attendance", schedule_id="past-3", student_id="student-2", status="absent")

    response = save(client, "past-3", [{"studentId": "student-1", "status": "late", "note": "Bus"}])

    assert response.status_code == 200
    rows = db.find("attendance", schedule_id="past-3")
    assert len(rows) == 1
    assert rows[0]["status"] == "late"
    assert rows[0]["note"] == "Bus"
    assert rows[0]["checked_by"] == "teacher-1"


def test_duplicate_entries_keep_the_last(client, db):
    response = save(client, "past-3", [
        {"studentId": "student-1", "status": "absent"},
        {"studentId": "student-1", "status": "present"},
    ])

    assert response.json()["stats"]["total"] == 1
    rows = db.find("attendance", schedule_id="past-3", student_id="student-1")
    assert [r["status"] for r in rows] == ["present"]


def test_present_removes_open_makeup_and_logs_it(client, db):
    makeup = db.add("makeup_classes", student_id="student-1", original_class_id="class-1",
                    original_schedule_id="future-4", status="pending", type="scheduled")

    response = save(client, "future-4", [{"studentId": "student-1", "status": "present"}])

    assert response.status_code == 200
    assert db.find("makeup_classes", id=makeup["id"]) == []
    log = db.rows("deletion_logs")[0]
    assert log["document_id"] == makeup["id"]
    assert log["deleted_by"] == "teacher-1"


def test_absent_keeps_open_makeup(client, db):
    db.add("makeup_classes", student_id="student-1", original_class_id="class-1",
           original_schedule_id="future-4", status="pending", type="scheduled")

    save(client, "future-4", [{"studentId": "student-1", "status": "absent"}])

    assert len(db.rows("makeup_classes")) == 1


def test_completed_makeup_is_not_touched(client, db):
    db.add("makeup_classes", student_id="student-1", original_class_id="class-1",
           original_schedule_id="past-1", status="completed", type="scheduled")

    save(client, "past-1", [{"studentId": "student-1", "status": "present"}])

    assert len(db.rows("makeup_classes")) == 1


def test_makeup_cleanup_failure_does_not_fail_save(client, db):
    db.add("makeup_classes", student_id="student-1", original_class_id="class-1",
           original_schedule_id="future-4", status="pending", type="scheduled")
    db.fail("makeup_classes", "delete")

    response = save(client, "future-4", [{"studentId": "student-1", "status": "present"}])

    assert response.status_code == 200
    assert db.find("attendance", schedule_id="future-4")[0]["status"] == "present"


def test_unknown_status_is_bad_request(client):
    response = save(client, "past-1", [{"studentId": "student-1", "status": "asleep"}])
    assert response.status_code == 400


def test_staff_without_account_cannot_save(client):
    response = save(client, "past-1", [], user={"user_id": "stranger"})
    assert response.status_code == 403
