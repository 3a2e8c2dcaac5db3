def test_create_subject_without_teacher(client, admin_headers):
    res = client.post("/api/admin/subjects", headers=admin_headers,
                      json={"name": "Algebra", "code": "ALG1", "className": "10A"})
    assert res.status_code == 201
    subject = res.json()
    assert subject["faculty"] is None
    assert subject["isClassTeacher"] is False

    res = client.put(f"/api/admin/subjects/{subject['id']}", headers=admin_headers,
                     json={"teacherName": "NonExistentPerson"})
    assert res.status_code == 404
    assert res.json()["message"] == "Teacher not found"


def test_create_subject_with_teacher(client, admin_headers, make_faculty):
    faculty_id, _ = make_faculty(name="Ms. Rao")
    res = client.post("/api/admin/subjects", headers=admin_headers, json={
        "name": "Physics", "code": "PHY", "className": "10A", "teacherName": "Ms. Rao", "isClassTeacher": True,
    })
    assert res.status_code == 201
    assert res.json()["faculty"] == {"id": faculty_id, "name": "Ms. Rao"}
    assert res.json()["isClassTeacher"] is True


def test_duplicate_code_in_class_conflicts(client, admin_headers):
    body = {"name": "Algebra", "code": "ALG1", "className": "10A"}
    assert client.post("/api/admin/subjects", headers=admin_headers, json=body).status_code == 201
    res = client.post("/api/admin/subjects", headers=admin_headers, json=body)
    assert res.status_code == 409
    assert client.post("/api/admin/subjects", headers=admin_headers,
                       json={**body, "className": "10B"}).status_code == 201


def test_update_without_teacher_clears_assignment(client, admin_headers, make_faculty, make_subject):
    faculty_id, _ = make_faculty(name="Ms. Rao")
    subject_id = make_subject(faculty=faculty_id)
    res = client.put(f"/api/admin/subjects/{subject_id}", headers=admin_headers, json={"name": "Maths"})
    assert res.status_code == 200
    subject = res.json()["subject"]
    assert subject["name"] == "Maths"
    assert subject["faculty"] is None


def test_update_into_existing_pair_conflicts(client, admin_headers, make_subject):
    make_subject(code="MATH")
    other = make_subject(name="Science", code="SCI")
    res = client.put(f"/api/admin/subjects/{other}", headers=admin_headers, json={"code": "MATH"})
    assert res.status_code == 409


def test_delete_subject_unenrolls_students(client, db, admin_headers, make_subject, make_student):
    subject_id = make_subject()
    make_student(subjects=[subject_id])
    assert client.delete(f"/api/admin/subjects/{subject_id}", headers=admin_headers).status_code == 200
    assert db["student"].find_one()["subjects"] == []
    assert client.get(f"/api/subjects/{subject_id}").status_code == 404


def test_assign_teacher(client, admin_headers, make_faculty, make_subject):
    faculty_id, _ = make_faculty()
    subject_id = make_subject()
    res = client.post("/api/admin/subjects/assign-teacher", headers=admin_headers,
                      json={"subjectId": subject_id, "facultyId": faculty_id})
    assert res.status_code == 200
    assert res.json()["subject"]["faculty"]["id"] == faculty_id


def test_subject_search_and_public_listing(client, admin_headers, make_subject):
    make_subject(name="Mathematics", code="MATH")
    make_subject(name="Science", code="SCI")
    res = client.get("/api/admin/subjects/search", params={"query": "math"}, headers=admin_headers)
    assert [s["code"] for s in res.json()] == ["MATH"]
    assert client.get("/api/admin/subjects/search", headers=admin_headers).status_code == 400
    assert len(client.get("/api/subjects").json()) == 2


def test_subjects_router_requires_admin_for_writes(client, make_faculty):
    _, headers = make_faculty()
    res = client.post("/api/subjects", headers=headers, json={"name": "Art", "code": "ART", "className": "5"})
    assert res.status_code == 403


def test_subject_details(client, admin_headers, make_faculty, make_subject, make_student):
    faculty_id, _ = make_faculty(name="Ms. Rao")
    subject_id = make_subject(faculty=faculty_id)
    make_student(subjects=[subject_id])
    make_student(name="Ben", roll_no="2", mobile_no="9000000002", subjects=[subject_id])
    res = client.get(f"/api/admin/subjects/{subject_id}/details", headers=admin_headers)
    body = res.json()
    assert body["studentCount"] == 2
    assert body["faculty"]["name"] == "Ms. Rao"


def test_student_enrollment(client, db, make_subject, make_student):
    subject_id = make_subject(code="MATH", class_name="10A")
    _, headers = make_student(class_name="10A")

    res = client.post("/api/students/enroll", headers=headers, json={"subjectCode": "MATH"})
    assert res.status_code == 200
    res = client.post("/api/students/enroll", headers=headers, json={"subjectCode": "MATH"})
    assert res.status_code == 400
    assert res.json()["message"] == "Already enrolled in this subject"

    subjects = client.get("/api/students/subjects", headers=headers).json()
    assert [s["id"] for s in subjects] == [subject_id]

    assert client.post("/api/students/unenroll", headers=headers, json={"subjectCode": "MATH"}).status_code == 200
    res = client.post("/api/students/unenroll", headers=headers, json={"subjectCode": "MATH"})
    assert res.status_code == 400
    assert db["student"].find_one()["subjects"] == []


def test_enroll_prefers_students_class(client, db, make_subject, make_student):
    make_subject(code="MATH", class_name="9A")
    own = make_subject(code="MATH", class_name="10A")
    _, headers = make_student(class_name="10A")
    client.post("/api/students/enroll", headers=headers, json={"subjectCode": "MATH"})
    assert db["student"].find_one()["subjects"] == [own]


def test_enroll_unknown_code(client, make_student):
    _, headers = make_student()
    res = client.post("/api/students/enroll", headers=headers, json={"subjectCode": "NOPE"})
    assert res.status_code == 404


def test_subject_pages_require_enrollment(client, make_subject, make_student):
    subject_id = make_subject()
    _, headers = make_student()
    res = client.get(f"/api/students/subjects/{subject_id}/announcements", headers=headers)
    assert res.status_code == 403
