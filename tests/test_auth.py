REGISTRATION = {
    "name": "Asha",
    "fatherName": "Ravi",
    "address": "12 Lake Road",
    "class": "10A",
    "rollNo": "17",
    "mobileNo": "9000000042",
    "password": "pw",
}


def register(client, otp_store, **overrides):
    body = {**REGISTRATION, **overrides}
    code = client.post("/api/auth/send-otp", json={"mobileNo": body["mobileNo"]}).json()["otp"]
    return client.post("/api/auth/register", json={**body, "otp": code})


def test_send_otp_echoes_code(client, otp_store):
    res = client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"})
    assert res.status_code == 200
    code = res.json()["otp"]
    assert len(code) == 6 and code.isdigit()
    assert len(otp_store) == 1


def test_send_otp_requires_mobile(client):
    res = client.post("/api/auth/send-otp", json={})
    assert res.status_code == 400
    assert res.json()["message"] == "Mobile number is required"


def test_resend_replaces_pending_code(client, otp_store):
    first = client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"}).json()["otp"]
    second = client.post("/api/auth/resend-otp", json={"mobileNo": "9000000042"}).json()["otp"]
    if first != second:
        assert not otp_store.consume("9000000042", first)
    assert otp_store.consume("9000000042", second)


def test_register_then_login_after_approval(client, otp_store, admin_headers):
    res = register(client, otp_store)
    assert res.status_code == 201
    student_id = res.json()["studentId"]

    code = client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"}).json()["otp"]
    res = client.post("/api/auth/login", json={"role": "Student", "mobileNo": "9000000042", "otp": code})
    assert res.status_code == 403
    assert res.json()["message"] == "Account not approved by admin"

    res = client.post(f"/api/admin/students/approve/{student_id}", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["student"]["approved"] is True

    code = client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"}).json()["otp"]
    res = client.post("/api/auth/login", json={"role": "student", "mobileNo": "9000000042", "otp": code})
    assert res.status_code == 200
    body = res.json()
    assert body["token"]
    assert body["user"]["id"] == student_id
    assert body["user"]["role"] == "Student"
    assert "passwordHash" not in body["user"]


def test_register_rejects_wrong_otp(client, otp_store):
    client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"})
    res = client.post("/api/auth/register", json={**REGISTRATION, "otp": "000000x"})
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid or missing OTP"


def test_register_otp_is_single_use(client, otp_store):
    code = client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"}).json()["otp"]
    assert client.post("/api/auth/register", json={**REGISTRATION, "otp": code}).status_code == 201
    res = client.post("/api/auth/register", json={**REGISTRATION, "rollNo": "18", "otp": code})
    assert res.status_code == 400


def test_expired_otp_is_rejected(client, otp_store, clock):
    code = client.post("/api/auth/send-otp", json={"mobileNo": "9000000042"}).json()["otp"]
    clock.advance(601)
    res = client.post("/api/auth/register", json={**REGISTRATION, "otp": code})
    assert res.status_code == 400
    assert len(otp_store) == 0


def test_register_duplicate_roll_number(client, otp_store):
    assert register(client, otp_store).status_code == 201
    res = register(client, otp_store, mobileNo="9000000043")
    assert res.status_code == 409


def test_register_duplicate_mobile(client, otp_store):
    assert register(client, otp_store).status_code == 201
    res = register(client, otp_store, rollNo="99")
    assert res.status_code == 409


def test_admin_login_with_seeded_credentials(client):
    res = client.post("/api/auth/login", json={"role": "Admin", "adminId": "ADMIN", "password": "1234"})
    assert res.status_code == 200
    assert res.json()["user"]["role"] == "Admin"


def test_admin_login_wrong_password(client):
    res = client.post("/api/auth/login", json={"role": "Admin", "adminId": "ADMIN", "password": "nope"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"


def test_faculty_login(client, make_faculty):
    make_faculty(faculty_id="F123", password="teach")
    res = client.post("/api/auth/login", json={"role": "Faculty", "facultyId": "F123", "password": "teach"})
    assert res.status_code == 200
    assert res.json()["user"]["facultyId"] == "F123"

    res = client.post("/api/auth/login", json={"role": "Faculty", "facultyId": "F123", "password": "bad"})
    assert res.status_code == 401


def test_login_unknown_role(client):
    res = client.post("/api/auth/login", json={"role": "Janitor", "password": "x"})
    assert res.status_code == 400


def test_admin_password_change_persists(client, admin_headers, db):
    res = client.post("/api/auth/change-password", headers=admin_headers,
                      json={"role": "Admin", "identifier": "ADMIN", "newPassword": "s3cret"})
    assert res.status_code == 200
    res = client.post("/api/auth/login", json={"role": "Admin", "adminId": "ADMIN", "password": "1234"})
    assert res.status_code == 401
    res = client.post("/api/auth/login", json={"role": "Admin", "adminId": "ADMIN", "password": "s3cret"})
    assert res.status_code == 200


def test_admin_resets_faculty_password(client, admin_headers, make_faculty):
    make_faculty(faculty_id="F9", password="old")
    res = client.post("/api/auth/change-password", headers=admin_headers,
                      json={"role": "Faculty", "identifier": "F9", "newPassword": "new"})
    assert res.status_code == 200
    res = client.post("/api/auth/login", json={"role": "Faculty", "facultyId": "F9", "password": "new"})
    assert res.status_code == 200


def test_faculty_cannot_change_someone_elses_password(client, make_faculty):
    make_faculty(faculty_id="F1", password="a")
    _, headers = make_faculty(name="Other", faculty_id="F2", password="b")
    res = client.post("/api/auth/change-password", headers=headers,
                      json={"role": "Faculty", "identifier": "F1", "oldPassword": "a", "newPassword": "c"})
    assert res.status_code == 403


def test_own_password_change_requires_old_password(client, make_faculty):
    _, headers = make_faculty(faculty_id="F1", password="a")
    res = client.post("/api/auth/change-password", headers=headers,
                      json={"role": "Faculty", "identifier": "F1", "oldPassword": "wrong", "newPassword": "c"})
    assert res.status_code == 400
    res = client.post("/api/auth/change-password", headers=headers,
                      json={"role": "Faculty", "identifier": "F1", "oldPassword": "a", "newPassword": "c"})
    assert res.status_code == 200


def test_change_password_needs_token(client):
    res = client.post("/api/auth/change-password",
                      json={"role": "Admin", "identifier": "ADMIN", "newPassword": "x"})
    assert res.status_code == 401
