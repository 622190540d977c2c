from conftest import auth_headers, latest_code, register_user, sign_in


def signed_in_token(client, email):
    register_user(client, email)
    response = sign_in(client, email)
    assert response.json()["state"] == "cleared"
    return response.json()["access_token"]


def test_settings_default_to_no_second_factor(client):
    token = signed_in_token(client, "defaults@example.com")

    response = client.get("/api/settings", headers=auth_headers(token))

    assert response.status_code == 200
    assert response.json() == {"two_factor_enabled": False, "theme": "system"}


def test_enable_two_factor_after_code_confirmation(client, outbox):
    token = signed_in_token(client, "enable@example.com")
    headers = auth_headers(token)

    started = client.post("/api/settings/two-factor", json={"enabled": True}, headers=headers)
    assert started.status_code == 200
    assert started.json()["state"] == "awaiting_code"
    assert started.json()["two_factor_enabled"] is False
    assert client.get("/api/settings", headers=headers).json()["two_factor_enabled"] is False

    verified = client.post(
        "/api/settings/two-factor/verify",
        json={"code": latest_code(outbox, "enable@example.com")},
        headers=headers,
    )
    assert verified.status_code == 200
    assert verified.json()["two_factor_enabled"] is True
    assert verified.json()["state"] == "idle"

    # The enabling device already proved the second factor.
    assert client.get("/api/auth/me", headers=headers).status_code == 200

    again = sign_in(client, "enable@example.com")
    assert again.json()["state"] == "awaiting_code"


def test_wrong_enrollment_code_keeps_setting_off(client, outbox):
    token = signed_in_token(client, "wrongcode@example.com")
    headers = auth_headers(token)
    client.post("/api/settings/two-factor", json={"enabled": True}, headers=headers)
    code = latest_code(outbox, "wrongcode@example.com")

    response = client.post(
        "/api/settings/two-factor/verify",
        json={"code": "000000" if code != "000000" else "111111"},
        headers=headers,
    )

    assert response.status_code == 400
    status_response = client.get("/api/settings/two-factor", headers=headers)
    assert status_response.json() == {"two_factor_enabled": False, "state": "awaiting_code", "message": None}


def test_cancel_discards_pending_enrollment(client, outbox):
    token = signed_in_token(client, "cancel@example.com")
    headers = auth_headers(token)
    client.post("/api/settings/two-factor", json={"enabled": True}, headers=headers)
    code = latest_code(outbox, "cancel@example.com")

    cancelled = client.post("/api/settings/two-factor/cancel", headers=headers)
    assert cancelled.json()["state"] == "idle"

    late = client.post("/api/settings/two-factor/verify", json={"code": code}, headers=headers)
    assert late.status_code == 409
    assert client.get("/api/settings", headers=headers).json()["two_factor_enabled"] is False


def test_disable_takes_effect_immediately(client, outbox):
    token = signed_in_token(client, "disable@example.com")
    headers = auth_headers(token)
    client.post("/api/settings/two-factor", json={"enabled": True}, headers=headers)
    client.post(
        "/api/settings/two-factor/verify",
        json={"code": latest_code(outbox, "disable@example.com")},
        headers=headers,
    )
    sent_before = len(outbox)

    response = client.post("/api/settings/two-factor", json={"enabled": False}, headers=headers)

    assert response.json()["two_factor_enabled"] is False
    assert response.json()["message"] == "Two-factor authentication disabled."
    assert len(outbox) == sent_before
    assert sign_in(client, "disable@example.com").json()["state"] == "cleared"


def test_enrollment_resend_without_smtp_reports_service_unavailable(client):
    token = signed_in_token(client, "nosmtp-enroll@example.com")
    headers = auth_headers(token)

    started = client.post("/api/settings/two-factor", json={"enabled": True}, headers=headers)
    assert started.status_code == 503

    resend = client.post("/api/settings/two-factor/resend", headers=headers)
    assert resend.status_code == 503
    assert client.get("/api/settings/two-factor", headers=headers).json()["state"] == "awaiting_code"


def test_theme_update(client):
    token = signed_in_token(client, "theme@example.com")

    response = client.put("/api/settings/theme", json={"theme": "dark"}, headers=auth_headers(token))

    assert response.status_code == 200
    assert response.json()["theme"] == "dark"
    assert client.get("/api/settings", headers=auth_headers(token)).json()["theme"] == "dark"

    invalid = client.put("/api/settings/theme", json={"theme": "neon"}, headers=auth_headers(token))
    assert invalid.status_code == 422


def test_settings_require_a_token(client):
    response = client.get("/api/settings", headers={"X-Device-Id": "device-0001"})

    assert response.status_code == 401
