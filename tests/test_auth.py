from models.audit_log import AuditLog


def test_register_login_me_logout(client):
    reg = client.post("/auth/register", json={"email": "New@Example.com", "password": "long-enough-pw"})
    assert reg.status_code == 201

    assert client.post("/auth/register", json={"email": "new@example.com", "password": "long-enough-pw"}).status_code == 409

    login = client.post("/auth/login", json={"email": "new@example.com", "password": "long-enough-pw"})
    assert login.status_code == 200

    me = client.get("/auth/me").get_json()
    assert me["email"] == "new@example.com"
    assert me["roles"] == ["USER"]

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_register_validation(client):
    assert client.post("/auth/register", json={"email": "nope", "password": "long-enough-pw"}).status_code == 400
    assert client.post("/auth/register", json={"email": "a@b.co", "password": "short"}).status_code == 400


def test_wrong_password_is_audited(client, user):
    resp = client.post("/auth/login", json={"email": user.email, "password": "wrong-password"})
    assert resp.status_code == 401
    assert AuditLog.query.filter_by(action="LOGIN_FAIL").count() == 1


def test_health_and_security_headers(client):
    resp = client.get("/health")
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Frame-Options"] == "DENY"
