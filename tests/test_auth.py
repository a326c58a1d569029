REGISTER_PAYLOAD = {
    "name": "Ana Costa",
    "email": "ana.costa@email.com",
    "national_id": "555.555.555-55",
    "birth_date": "1988-04-05",
    "phone": "(41) 97654-3210",
    "country": "Brasil",
    "city": "Curitiba",
    "state": "PR",
    "password": "senha123",
    "role": "evaluator",
    "specialty": "Engenharia",
}


def _register_and_login(client, payload):
    response = client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 201
    login = client.post(
        "/api/v1/auth/login",
        data={"email": payload["email"], "password": payload["password"]},
    )
    assert login.status_code == 200
    return login.json()


def test_register_login_and_me(client) -> None:
    token = _register_and_login(client, REGISTER_PAYLOAD)

    assert token["token_type"] == "bearer"
    assert token["role"] == "evaluator"

    me = client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["id"] == token["user_id"]
    assert me.json()["specialty"] == "Engenharia"


def test_login_with_wrong_password(client) -> None:
    _register_and_login(client, REGISTER_PAYLOAD)

    response = client.post(
        "/api/v1/auth/login",
        data={"email": REGISTER_PAYLOAD["email"], "password": "errada"},
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthenticated"


def test_me_requires_valid_token(client) -> None:
    missing = client.get("/api/v1/auth/me")
    garbage = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer abc.def"})
    wrong_scheme = client.get("/api/v1/auth/me", headers={"Authorization": "Token abc"})

    for response in (missing, garbage, wrong_scheme):
        assert response.status_code == 401
        assert response.json() == missing.json()
        assert response.headers["WWW-Authenticate"] == "Bearer"


def test_admin_cannot_self_register(client) -> None:
    response = client.post(
        "/api/v1/auth/register", json={**REGISTER_PAYLOAD, "role": "admin"}
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


def test_duplicate_registration_conflicts(client) -> None:
    _register_and_login(client, REGISTER_PAYLOAD)

    response = client.post(
        "/api/v1/auth/register",
        json={**REGISTER_PAYLOAD, "national_id": "111.111.111-11"},
    )

    assert response.status_code == 409
    assert response.json()["error"] == "Conflict"


def test_malformed_payload_uses_validation_shape(client) -> None:
    response = client.post(
        "/api/v1/auth/register", json={**REGISTER_PAYLOAD, "birth_date": "ontem"}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert any(item.startswith("birth_date") for item in body["details"])
