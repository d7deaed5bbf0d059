"""Tests for the Companies JSON API."""


def _create(client, headers, name, **extra):
    r = client.post("/api/company", json={"name": name, **extra}, headers=headers)
    assert r.status_code == 200, r.json
    return r.json["id"]


def test_list_empty(client, owner_headers):
    r = client.get("/api/company")
    assert r.status_code == 200
    assert r.json == []


def test_create_returns_id_and_flag(client, owner_headers):
    r = client.post(
        "/api/company",
        json={"name": "Acme", "industry": "Retail", "isPrimary": True, "targetMarket": "SMB"},
        headers=owner_headers,
    )
    assert r.status_code == 200
    assert r.json["is_primary"] is True

    detail = client.get(f"/api/company/{r.json['id']}").json
    assert detail["name"] == "Acme"
    assert detail["industry"] == "Retail"
    assert detail["target_market"] == "SMB"
    assert detail["is_primary"] is True


def test_create_requires_name(client, owner_headers):
    r = client.post("/api/company", json={"industry": "Retail"}, headers=owner_headers)
    assert r.status_code == 400
    assert "Name is required." in r.json["errors"]


def test_second_primary_replaces_first(client, owner_headers):
    a = _create(client, owner_headers, "Acme", is_primary=True)
    b = _create(client, owner_headers, "Beta")

    r = client.put(f"/api/company/{b}", json={"name": "Beta", "is_primary": True}, headers=owner_headers)
    assert r.status_code == 200
    assert r.json == {"id": b, "is_primary": True}

    flags = {c["id"]: c["is_primary"] for c in client.get("/api/company").json}
    assert flags == {a: False, b: True}


def test_list_puts_primary_first(client, owner_headers):
    _create(client, owner_headers, "Alpha")
    _create(client, owner_headers, "Zulu", is_primary=True)
    names = [c["name"] for c in client.get("/api/company").json]
    assert names == ["Zulu", "Alpha"]


def test_update_changes_fields(client, owner_headers):
    a = _create(client, owner_headers, "Acme")
    r = client.put(
        f"/api/company/{a}",
        json={"name": "Acme Corp", "website": "https://acme.example", "company_size": "11-50"},
        headers=owner_headers,
    )
    assert r.status_code == 200
    detail = client.get(f"/api/company/{a}").json
    assert detail["name"] == "Acme Corp"
    assert detail["website"] == "https://acme.example"
    assert detail["company_size"] == "11-50"
    assert detail["is_primary"] is False


def test_update_missing_company_is_404(client, owner_headers):
    r = client.put("/api/company/4242", json={"name": "Ghost"}, headers=owner_headers)
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_other_users_company_is_forbidden(client, login_as):
    other_headers = login_as(client, "other@example.com")
    theirs = _create(client, other_headers, "Their Co", is_primary=True)
    client.get("/auth/logout")

    owner_headers = login_as(client, "owner@example.com")
    assert client.get(f"/api/company/{theirs}").status_code == 403

    r = client.put(f"/api/company/{theirs}", json={"name": "Hijacked", "is_primary": False}, headers=owner_headers)
    assert r.status_code == 403
    assert r.json["error"] == "ownership_violation"

    assert client.delete(f"/api/company/{theirs}", headers=owner_headers).status_code == 403
    assert client.get("/api/company").json == []

    client.get("/auth/logout")
    login_as(client, "other@example.com")
    detail = client.get(f"/api/company/{theirs}").json
    assert detail["name"] == "Their Co"
    assert detail["is_primary"] is True


def test_delete_primary_leaves_none(client, owner_headers):
    a = _create(client, owner_headers, "Acme", is_primary=True)
    b = _create(client, owner_headers, "Beta")

    r = client.delete(f"/api/company/{a}", headers=owner_headers)
    assert r.status_code == 200
    assert r.json == {"id": a, "deleted": True}

    remaining = client.get("/api/company").json
    assert [(c["id"], c["is_primary"]) for c in remaining] == [(b, False)]


def test_viewer_cannot_manage_companies(client, login_as):
    headers = login_as(client, "viewer@example.com")
    r = client.post("/api/company", json={"name": "Acme"}, headers=headers)
    assert r.status_code == 403
    assert r.json["missing_permission"] == "companies.manage"


def test_overlong_bounded_fields_are_rejected(client, owner_headers):
    r = client.post(
        "/api/company",
        json={"name": "Acme", "industry": "i" * 256, "companySize": "9" * 65, "website": "https://" + "w" * 505},
        headers=owner_headers,
    )
    assert r.status_code == 400
    assert r.json["errors"] == [
        "Industry must be 255 characters or fewer.",
        "Website must be 512 characters or fewer.",
        "Company size must be 64 characters or fewer.",
    ]

    a = _create(client, owner_headers, "Acme", company_size="9" * 64)
    r = client.put(f"/api/company/{a}", json={"name": "Acme", "company_size": "9" * 100}, headers=owner_headers)
    assert r.status_code == 400
    assert client.get(f"/api/company/{a}").json["company_size"] == "9" * 64


def test_concurrent_promotion_is_409(app, client, owner_headers, monkeypatch):
    from app.promptdesk.modules.companies.models import Company
    from app.promptdesk.modules.primary_flag.repository import OwnedEntityRepository
    from app.promptdesk.modules.primary_flag.service import set_primary

    a = _create(client, owner_headers, "Acme")
    b = _create(client, owner_headers, "Beta")
    lock_partition = OwnedEntityRepository.lock_partition

    def lock_then_lose_race(self, owner_id):
        partition = lock_partition(self, owner_id)
        monkeypatch.setattr(OwnedEntityRepository, "lock_partition", lock_partition)
        # Another writer commits against the same partition before this request flushes.
        other = app.extensions["sqlalchemy_sessionmaker"]()
        try:
            assert set_primary(other, Company, owner_id, b, True).ok
        finally:
            other.close()
        return partition

    monkeypatch.setattr(OwnedEntityRepository, "lock_partition", lock_then_lose_race)
    r = client.put(f"/api/company/{a}", json={"name": "Acme", "is_primary": True}, headers=owner_headers)
    assert r.status_code == 409
    assert r.json["error"] == "conflict"
    assert r.json["id"] == a

    flags = {c["id"]: c["is_primary"] for c in client.get("/api/company").json}
    assert flags == {a: False, b: True}

    # Retrying with fresh data succeeds.
    r = client.put(f"/api/company/{a}", json={"name": "Acme", "is_primary": True}, headers=owner_headers)
    assert r.json == {"id": a, "is_primary": True}
