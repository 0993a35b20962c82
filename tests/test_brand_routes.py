import pytest

from ratestuff.config import get_settings
from ratestuff.services import brand_otp_service

pytestmark = pytest.mark.anyio


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr(brand_otp_service, "generate_otp_code", lambda: "123456")


async def _login(client):
    resp = await client.post(
        "/api/brand/request-code",
        json={"email": "brand@acme.com"},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert resp.status_code == 200
    resp = await client.post("/api/brand/verify", json={"email": "brand@acme.com", "code": "123456"})
    assert resp.status_code == 200
    nonce = resp.json()["nonce"]
    resp = await client.post("/api/brand/session", json={"nonce": nonce})
    assert resp.status_code == 200
    return resp


async def test_request_code_answers_ok_for_unknown_email(client, sender):
    resp = await client.post("/api/brand/request-code", json={"email": "nobody@acme.com"})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert sender.sent == []


async def test_request_code_answers_ok_for_active_brand(client, make_brand, sender, fixed_code):
    await make_brand("brand@acme.com")
    resp = await client.post("/api/v1/brand/request-code", json={"email": "Brand@Acme.com"})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert len(sender.sent) == 1


async def test_request_code_records_forwarded_ip(client, db_session, make_brand, fixed_code):
    from sqlalchemy import select
    from ratestuff.models.brand_otp import BrandOtp

    await make_brand("brand@acme.com")
    await client.post(
        "/api/brand/request-code",
        json={"email": "brand@acme.com"},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    result = await db_session.execute(select(BrandOtp.ip))
    assert result.scalar_one() == "203.0.113.7"


async def test_invalid_email_is_rejected(client):
    resp = await client.post("/api/brand/request-code", json={"email": "not-an-email"})
    assert resp.status_code == 400
    body = resp.json()
    assert body == {
        "ok": False,
        "status": "error",
        "error": "invalid_email",
        "message": body["message"],
        "code": 400,
    }


async def test_malformed_code_is_rejected(client):
    resp = await client.post("/api/brand/verify", json={"email": "brand@acme.com", "code": "12ab56"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "malformed_code"


async def test_short_nonce_is_rejected(client):
    resp = await client.post("/api/brand/session", json={"nonce": "short"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"


async def test_wrong_code_is_401(client, make_brand, fixed_code):
    await make_brand("brand@acme.com")
    await client.post("/api/brand/request-code", json={"email": "brand@acme.com"})

    resp = await client.post("/api/brand/verify", json={"email": "brand@acme.com", "code": "000000"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_code"

    unknown = await client.post("/api/brand/verify", json={"email": "x@acme.com", "code": "000000"})
    assert unknown.status_code == 401
    assert unknown.json() == resp.json()


async def test_email_failure_is_503(client, make_brand, sender):
    await make_brand("brand@acme.com")
    sender.fail = True

    resp = await client.post("/api/brand/request-code", json={"email": "brand@acme.com"})
    assert resp.status_code == 503
    assert resp.json()["error"] == "email_dispatch_failed"
    assert resp.json()["code"] == 503


async def test_full_login_flow(client, make_brand, fixed_code):
    brand = await make_brand("brand@acme.com")

    resp = await _login(client)
    body = resp.json()
    assert body["ok"] is True
    assert body["token_type"] == "bearer"
    assert body["brand"]["id"] == brand.id
    assert get_settings().auth_cookie_name in resp.headers.get("set-cookie", "")

    headers = {"Authorization": f"Bearer {body['access_token']}"}
    me = await client.get("/api/brand/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "brand@acme.com"

    resp = await client.post("/api/brand/logout", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


async def test_me_requires_brand_session(client, admin_headers):
    resp = await client.get("/api/brand/me")
    assert resp.status_code == 401

    resp = await client.get("/api/brand/me", headers=admin_headers)
    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"


async def test_me_rejects_deactivated_brand(client, db_session, make_brand, fixed_code):
    brand = await make_brand("brand@acme.com")
    token = (await _login(client)).json()["access_token"]

    brand.active = False
    await db_session.commit()

    resp = await client.get("/api/brand/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_health_and_request_id(client):
    resp = await client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Request-ID"] == "req-123"


async def _brand_headers(client):
    token = (await _login(client)).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


async def test_update_profile_only_touches_given_fields(client, make_brand, fixed_code):
    await make_brand("brand@acme.com")
    headers = await _brand_headers(client)

    resp = await client.patch(
        "/api/brand/profile",
        json={"bio": "  Snacks since 1999 ", "cover_image_url": "https://cdn.acme.com/cover.png"},
        headers=headers,
    )
    assert resp.status_code == 200
    brand = resp.json()["brand"]
    assert brand["bio"] == "Snacks since 1999"
    assert brand["cover_image_url"] == "https://cdn.acme.com/cover.png"

    resp = await client.patch("/api/brand/profile", json={"bio": ""}, headers=headers)
    brand = resp.json()["brand"]
    assert brand["bio"] is None
    assert brand["cover_image_url"] == "https://cdn.acme.com/cover.png"


async def test_update_profile_requires_a_field(client, make_brand, fixed_code):
    await make_brand("brand@acme.com")
    headers = await _brand_headers(client)

    resp = await client.patch("/api/brand/profile", json={}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_request"


async def test_profile_requires_brand_session(client, admin_headers):
    resp = await client.patch("/api/brand/profile", json={"bio": "x"})
    assert resp.status_code == 401

    resp = await client.post("/api/brand/color", json={"color": "#112233"}, headers=admin_headers)
    assert resp.status_code == 401


async def test_card_color_set_normalise_and_reset(client, make_brand, fixed_code):
    await make_brand("brand@acme.com")
    headers = await _brand_headers(client)

    resp = await client.get("/api/brand/color", headers=headers)
    assert resp.json() == {"ok": True, "color": None}

    resp = await client.post("/api/brand/color", json={"color": "#a1b2c3"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "color": "#A1B2C3"}

    resp = await client.get("/api/v1/brand/color", headers=headers)
    assert resp.json()["color"] == "#A1B2C3"

    resp = await client.post("/api/brand/color", json={"color": None}, headers=headers)
    assert resp.json() == {"ok": True, "color": None}


async def test_card_color_rejects_bad_hex(client, make_brand, fixed_code):
    await make_brand("brand@acme.com")
    headers = await _brand_headers(client)

    resp = await client.post("/api/brand/color", json={"color": "red"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_color"
