import pytest


@pytest.fixture
def classroom(make_faculty, make_subject, make_student):
    faculty_id, faculty_headers = make_faculty(name="Ms. Rao", faculty_id="F001")
    subject_id = make_subject(faculty=faculty_id)
    student_id, student_headers = make_student(subjects=[subject_id])
    return {
        "faculty_id": faculty_id,
        "faculty": faculty_headers,
        "subject_id": subject_id,
        "student_id": student_id,
        "student": student_headers,
    }


def post_announcement(client, classroom, content="Test on Friday"):
    return client.post("/api/faculty/announcements", headers=classroom["faculty"],
                       json={"subjectId": classroom["subject_id"], "content": content})


def test_assigned_subjects(client, classroom, make_subject):
    make_subject(name="Other", code="OTH")
    res = client.get("/api/faculty/subjects", headers=classroom["faculty"])
    assert [s["id"] for s in res.json()] == [classroom["subject_id"]]

    res = client.get(f"/api/faculty/subjects/{classroom['subject_id']}", headers=classroom["faculty"])
    assert res.json()["studentCount"] == 1


def test_announcement_lifecycle(client, db, classroom):
    res = post_announcement(client, classroom)
    assert res.status_code == 201
    announcement = res.json()["announcement"]
    assert announcement["faculty"]["name"] == "Ms. Rao"
    legacy = db["subject"].find_one()["announcements"]
    assert [a["id"] for a in legacy] == [announcement["id"]]

    res = client.put("/api/faculty/announcements", headers=classroom["faculty"], json={
        "subjectId": classroom["subject_id"], "announcementId": announcement["id"], "content": "Moved to Monday",
    })
    assert res.status_code == 200
    assert res.json()["announcement"]["content"] == "Moved to Monday"
    assert db["subject"].find_one()["announcements"][0]["content"] == "Moved to Monday"

    seen = client.get(f"/api/students/subjects/{classroom['subject_id']}/announcements",
                      headers=classroom["student"]).json()
    assert [a["content"] for a in seen] == ["Moved to Monday"]

    res = client.request("DELETE", "/api/faculty/announcements", headers=classroom["faculty"], json={
        "subjectId": classroom["subject_id"], "announcementId": announcement["id"],
    })
    assert res.status_code == 200
    assert db["announcement"].count_documents({}) == 0
    assert db["subject"].find_one()["announcements"] == []


def test_cannot_edit_another_facultys_announcement(client, classroom, make_faculty):
    announcement = post_announcement(client, classroom).json()["announcement"]
    _, other = make_faculty(name="Mr. Das", faculty_id="F002")
    res = client.put("/api/faculty/announcements", headers=other, json={
        "subjectId": classroom["subject_id"], "announcementId": announcement["id"], "content": "Hijacked",
    })
    assert res.status_code == 404
    assert res.json()["message"] == "Announcement not found"


def test_cannot_announce_on_unassigned_subject(client, make_faculty, make_subject):
    _, headers = make_faculty()
    subject_id = make_subject()
    res = client.post("/api/faculty/announcements", headers=headers, json={"subjectId": subject_id, "content": "Hi"})
    assert res.status_code == 404


def test_mark_and_read_attendance(client, db, classroom):
    url = f"/api/faculty/subjects/{classroom['subject_id']}/attendance"
    res = client.post(url, headers=classroom["faculty"], json={
        "date": "2025-03-04",
        "attendance": [{"studentId": classroom["student_id"], "status": "Present"}],
    })
    assert res.status_code == 200
    assert res.json()["saved"] == 1

    # re-marking the same day overwrites
    client.post(url, headers=classroom["faculty"], json={
        "date": "2025-03-04",
        "attendance": [{"studentId": classroom["student_id"], "status": "Absent"}],
    })
    assert db["attendance"].count_documents({}) == 1

    day = client.get(url, params={"date": "2025-03-04"}, headers=classroom["faculty"]).json()
    assert day[0]["status"] == "Absent"
    assert day[0]["studentName"] == "Asha"

    month = client.get("/api/students/attendance/monthly", params={"month": 3, "year": 2025},
                       headers=classroom["student"]).json()
    assert month == [{"date": "2025-03-04", "status": "Absent", "subject": classroom["subject_id"]}]

    other_month = client.get(f"/api/faculty/student/{classroom['student_id']}/attendance",
                             params={"month": 4, "year": 2025}, headers=classroom["faculty"]).json()
    assert other_month == []


def test_attendance_skips_blank_status_and_validates_date(client, classroom):
    url = f"/api/faculty/subjects/{classroom['subject_id']}/attendance"
    res = client.post(url, headers=classroom["faculty"], json={
        "date": "2025-03-04",
        "attendance": [{"studentId": classroom["student_id"], "status": None}],
    })
    assert res.json()["saved"] == 0

    res = client.post(url, headers=classroom["faculty"], json={"date": "04/03/2025", "attendance": []})
    assert res.status_code == 400


def test_attendance_rejects_unenrolled_student(client, classroom, make_student):
    outsider, _ = make_student(name="Ben", roll_no="2", mobile_no="9000000002")
    res = client.post(f"/api/faculty/subjects/{classroom['subject_id']}/attendance", headers=classroom["faculty"],
                      json={"date": "2025-03-04", "attendance": [{"studentId": outsider, "status": "Present"}]})
    assert res.status_code == 400


def test_faculty_profile(client, classroom):
    res = client.put("/api/faculty/profile", headers=classroom["faculty"],
                     json={"email": "rao@school.edu", "phone": "555"})
    assert res.status_code == 200
    profile = client.get("/api/faculty/profile", headers=classroom["faculty"]).json()
    assert profile["email"] == "rao@school.edu"
    assert "passwordHash" not in profile

    res = client.put("/api/faculty/profile/change-password", headers=classroom["faculty"],
                     json={"oldPassword": "secret", "newPassword": "better"})
    assert res.status_code == 200
    res = client.post("/api/auth/login", json={"role": "Faculty", "facultyId": "F001", "password": "better"})
    assert res.status_code == 200
