import pytest

from ratestuff.config import Settings, parse_email_list
from ratestuff.errors import Unauthorized
from ratestuff.schemas.session import Session, SessionUser
from ratestuff.utils.admin_guard import AdminAllowList, AdminGuard
from ratestuff.utils.security import SESSION_KIND_BRAND, create_session_token


def _session(email):
    return Session(user=SessionUser(id="u1", email=email))


class _ExplodingSession:
    @property
    def user(self):
        raise ValueError("broken session")


def test_parse_email_list():
    assert parse_email_list("") == frozenset()
    assert parse_email_list(" A@x.com, b@Y.com ,, ") == frozenset({"a@x.com", "b@y.com"})


def test_settings_fall_back_to_single_admin_email():
    settings = Settings(_env_file=None, admin_emails="", admin_email="Solo@X.com")
    assert settings.admin_email_set == frozenset({"solo@x.com"})

    settings = Settings(_env_file=None, admin_emails="a@x.com,b@x.com", admin_email="solo@x.com")
    assert settings.admin_email_set == frozenset({"a@x.com", "b@x.com"})


def test_allow_list_from_settings_uses_fallback():
    settings = Settings(_env_file=None, admin_emails="", admin_email=" Solo@X.com ")
    allow_list = AdminAllowList.from_settings(settings)
    assert "solo@x.com" in allow_list
    assert len(allow_list) == 1


def test_production_rejects_default_secrets():
    settings = Settings(_env_file=None, environment="production", admin_emails="")
    with pytest.raises(RuntimeError):
        settings.validate_secrets()


def test_allow_list_is_case_insensitive():
    allow_list = AdminAllowList(["admin@x.com"])
    assert "Admin@X.com" in allow_list
    assert "admin@x.com" in allow_list
    assert "other@x.com" not in allow_list
    assert None not in allow_list
    assert len(allow_list) == 1


def test_require_admin():
    guard = AdminGuard(AdminAllowList(["admin@x.com"]))
    session = _session("ADMIN@x.com")
    assert guard.require_admin(session) is session

    with pytest.raises(Unauthorized):
        guard.require_admin(_session("user@x.com"))
    with pytest.raises(Unauthorized):
        guard.require_admin(None)
    with pytest.raises(Unauthorized):
        guard.require_admin(Session(user=None))


def test_empty_allow_list_rejects_everyone():
    guard = AdminGuard(AdminAllowList())
    assert guard.authorize(_session("admin@x.com")) is None
    assert not guard.is_admin(_session("admin@x.com"))


@pytest.mark.parametrize(
    "session",
    [
        None,
        {},
        {"user": None},
        {"user": {"email": 42}},
        {"user": {"email": ""}},
        "admin@x.com",
        object(),
        Session(user=None),
        _ExplodingSession(),
    ],
)
def test_is_admin_never_raises(session):
    guard = AdminGuard(AdminAllowList(["admin@x.com"]))
    assert guard.is_admin(session) is False


def test_is_admin_accepts_mapping_sessions():
    guard = AdminGuard(AdminAllowList(["admin@x.com"]))
    assert guard.is_admin({"user": {"email": "Admin@x.com"}}) is True


@pytest.mark.anyio
async def test_admin_status_never_401(client, admin_headers):
    resp = await client.get("/api/admin/status")
    assert resp.status_code == 200
    assert resp.json() == {"is_admin": False}

    resp = await client.get("/api/admin/status", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 200
    assert resp.json() == {"is_admin": False}

    resp = await client.get("/api/v1/admin/status", headers=admin_headers)
    assert resp.json() == {"is_admin": True}


@pytest.mark.anyio
async def test_admin_routes_require_admin(client):
    resp = await client.get("/api/admin/brands")
    assert resp.status_code == 401
    body = resp.json()
    assert body["ok"] is False
    assert body["error"] == "unauthorized"
    assert body["code"] == 401

    token = create_session_token("u1", "user@ratestuff.net")
    resp = await client.get("/api/admin/brands", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_admin_brand_lifecycle(client, admin_headers):
    resp = await client.post(
        "/api/admin/brands",
        json={"email": " Hello@Acme.com ", "display_name": "Acme Foods"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    brand = resp.json()
    assert brand["email"] == "hello@acme.com"
    assert brand["slug"] == "acme-foods"
    assert brand["active"] is True

    resp = await client.post(
        "/api/admin/brands",
        json={"email": "hello@acme.com"},
        headers=admin_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "brand_exists"

    resp = await client.patch(
        f"/api/admin/brands/{brand['id']}",
        json={"active": False},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["active"] is False

    resp = await client.get("/api/admin/brands", headers=admin_headers)
    assert resp.status_code == 200
    assert [b["id"] for b in resp.json()] == [brand["id"]]


@pytest.mark.anyio
async def test_admin_brand_slug_collision_gets_suffix(client, admin_headers):
    first = await client.post(
        "/api/admin/brands",
        json={"email": "one@acme.com", "display_name": "Acme"},
        headers=admin_headers,
    )
    second = await client.post(
        "/api/admin/brands",
        json={"email": "two@acme.com", "display_name": "Acme"},
        headers=admin_headers,
    )
    assert first.json()["slug"] == "acme"
    assert second.status_code == 201
    assert second.json()["slug"].startswith("acme-")


@pytest.mark.anyio
async def test_admin_update_unknown_brand(client, admin_headers):
    resp = await client.patch(
        "/api/admin/brands/does-not-exist",
        json={"active": True},
        headers=admin_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.anyio
async def test_admin_purge_endpoint(client, admin_headers):
    resp = await client.post("/api/admin/brand-otps/purge", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "deleted_otps": 0, "deleted_nonces": 0}


@pytest.mark.anyio
async def test_brand_session_with_admin_email_is_not_admin(client):
    token = create_session_token("brand-1", "admin@ratestuff.net", kind=SESSION_KIND_BRAND)
    headers = {"Authorization": f"Bearer {token}"}

    resp = await client.get("/api/admin/brands", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"

    resp = await client.get("/api/admin/status", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"is_admin": False}
