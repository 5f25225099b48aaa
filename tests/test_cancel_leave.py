URL = "/api/liff/cancel-leave"


def add_makeup(db, status="pending", session_date="2026-10-25", schedule_id="future-4", student_id="student-1"):
    return db.add(
        "makeup_classes",
        student_id=student_id,
        original_class_id="class-1",
        original_schedule_id=schedule_id,
        original_session_date=session_date,
        status=status,
        type="scheduled",
        requested_by="parent-liff",
    )


def cancel(client, makeup_id, schedule_id="future-4", student_id="student-1"):
    return client.post(URL, json={
        "makeupId": makeup_id,
        "studentId": student_id,
        "classId": "class-1",
        "scheduleId": schedule_id,
    })


def test_cancel_pending_leave_removes_makeup_and_attendance(client, db):
    makeup = add_makeup(db)
    db.add("attendance", schedule_id="future-4", student_id="student-1", status="absent")

    response = cancel(client, makeup["id"])

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert db.rows("makeup_classes") == []
    assert db.find("attendance", schedule_id="future-4") == []


def test_leave_then_cancel_round_trip(client, db):
    created = client.post("/api/liff/leave-request", json={
        "studentId": "student-1", "classId": "class-1", "scheduleId": "future-5",
    })
    makeup_id = created.json()["makeupId"]

    response = cancel(client, makeup_id, schedule_id="future-5")

    assert response.status_code == 200
    assert db.rows("makeup_classes") == []
    assert db.rows("attendance") == []


def test_unknown_makeup_is_not_found(client):
    response = cancel(client, "missing")
    assert response.status_code == 404


def test_other_students_makeup_is_not_found(client, db):
    makeup = add_makeup(db, student_id="student-2")

    response = cancel(client, makeup["id"])

    assert response.status_code == 404
    assert len(db.rows("makeup_classes")) == 1


def test_scheduled_makeup_cannot_be_cancelled(client, db):
    makeup = add_makeup(db, status="scheduled")

    response = cancel(client, makeup["id"])

    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Makeup class already scheduled, cannot cancel"
    assert len(db.rows("makeup_classes")) == 1


def test_past_session_cannot_be_cancelled(client, db):
    makeup = add_makeup(db, session_date="2026-10-11", schedule_id="past-3")

    response = cancel(client, makeup["id"], schedule_id="past-3")

    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Cannot cancel leave retroactively"


def test_attendance_cleanup_failure_is_tolerated(client, db):
    makeup = add_makeup(db)
    db.fail("attendance", "delete")

    response = cancel(client, makeup["id"])

    assert response.status_code == 200
    assert db.rows("makeup_classes") == []


def test_missing_fields_is_bad_request(client):
    response = client.post(URL, json={"makeupId": "x"})
    assert response.status_code == 400


def test_mismatched_session_is_not_found_and_keeps_other_absences(client, db):
    db.add("attendance", schedule_id="past-1", student_id="student-1", status="absent")
    created = client.post("/api/liff/leave-request", json={
        "studentId": "student-1", "classId": "class-1", "scheduleId": "future-4",
    })

    response = cancel(client, created.json()["makeupId"], schedule_id="past-1")

    assert response.status_code == 404
    assert len(db.rows("makeup_classes")) == 1
    assert db.find("attendance", schedule_id="past-1")[0]["status"] == "absent"
    assert db.find("attendance", schedule_id="future-4")[0]["status"] == "absent"


def test_mismatched_class_is_not_found(client, db):
    makeup = add_makeup(db)

    response = client.post(URL, json={
        "makeupId": makeup["id"],
        "studentId": "student-1",
        "classId": "class-2",
        "scheduleId": "future-4",
    })

    assert response.status_code == 404
    assert len(db.rows("makeup_classes")) == 1


def test_cancel_removes_attendance_of_the_makeup_session_only(client, db):
    makeup = add_makeup(db)
    db.add("attendance", schedule_id="future-4", student_id="student-1", status="absent")
    db.add("attendance", schedule_id="past-2", student_id="student-1", status="absent")

    assert cancel(client, makeup["id"]).status_code == 200

    assert db.find("attendance", schedule_id="future-4") == []
    assert len(db.find("attendance", schedule_id="past-2")) == 1
