"""Tests for the Competitors JSON API."""


def _create(client, headers, name, **extra):
    r = client.post("/api/competitor", json={"name": name, **extra}, headers=headers)
    assert r.status_code == 200, r.json
    return r.json["id"]


def test_create_and_detail(client, owner_headers):
    cid = _create(
        client,
        owner_headers,
        "Rival",
        website="https://rival.example",
        pricingStrategy="Freemium",
        marketPosition="Challenger",
    )
    detail = client.get(f"/api/competitor/{cid}").json
    assert detail["name"] == "Rival"
    assert detail["pricing_strategy"] == "Freemium"
    assert detail["market_position"] == "Challenger"
    assert detail["is_primary"] is False


def test_blank_name_is_rejected(client, owner_headers):
    r = client.post("/api/competitor", json={"name": "   "}, headers=owner_headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Name is required."]


def test_primary_switches_between_competitors(client, owner_headers):
    a = _create(client, owner_headers, "Alpha", isPrimary=True)
    b = _create(client, owner_headers, "Beta", isPrimary=True)

    flags = {c["id"]: c["is_primary"] for c in client.get("/api/competitor").json}
    assert flags == {a: False, b: True}

    r = client.put(f"/api/competitor/{a}", json={"name": "Alpha", "isPrimary": "true"}, headers=owner_headers)
    assert r.json == {"id": a, "is_primary": True}
    flags = {c["id"]: c["is_primary"] for c in client.get("/api/competitor").json}
    assert flags == {a: True, b: False}


def test_competitor_primary_is_independent_of_company_primary(client, owner_headers):
    company = client.post("/api/company", json={"name": "Acme", "is_primary": True}, headers=owner_headers).json["id"]
    _create(client, owner_headers, "Rival", is_primary=True)

    companies = client.get("/api/company").json
    assert [(c["id"], c["is_primary"]) for c in companies] == [(company, True)]


def test_foreign_and_missing_competitors(client, login_as):
    other_headers = login_as(client, "other@example.com")
    theirs = _create(client, other_headers, "Their Rival")
    client.get("/auth/logout")

    owner_headers = login_as(client, "owner@example.com")
    r = client.put(f"/api/competitor/{theirs}", json={"name": "X", "is_primary": True}, headers=owner_headers)
    assert r.status_code == 403
    assert r.json["id"] == theirs

    r = client.delete("/api/competitor/777", headers=owner_headers)
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_delete(client, owner_headers):
    cid = _create(client, owner_headers, "Rival", is_primary=True)
    r = client.delete(f"/api/competitor/{cid}", headers=owner_headers)
    assert r.json == {"id": cid, "deleted": True}
    assert client.get(f"/api/competitor/{cid}").status_code == 404


def test_overlong_website_is_rejected(client, owner_headers):
    r = client.post(
        "/api/competitor", json={"name": "Rival", "website": "https://" + "w" * 505}, headers=owner_headers
    )
    assert r.status_code == 400
    assert r.json["errors"] == ["Website must be 512 characters or fewer."]
    assert client.get("/api/competitor").json == []


def test_stale_partition_on_delete_is_409(app, client, owner_headers, monkeypatch):
    from app.promptdesk.modules.competitors.models import Competitor
    from app.promptdesk.modules.primary_flag.repository import OwnedEntityRepository
    from app.promptdesk.modules.primary_flag.service import set_primary

    a = _create(client, owner_headers, "Alpha", is_primary=True)
    b = _create(client, owner_headers, "Beta")
    lock_partition = OwnedEntityRepository.lock_partition

    def lock_then_lose_race(self, owner_id):
        partition = lock_partition(self, owner_id)
        monkeypatch.setattr(OwnedEntityRepository, "lock_partition", lock_partition)
        other = app.extensions["sqlalchemy_sessionmaker"]()
        try:
            assert set_primary(other, Competitor, owner_id, b, True).ok
        finally:
            other.close()
        return partition

    monkeypatch.setattr(OwnedEntityRepository, "lock_partition", lock_then_lose_race)
    r = client.delete(f"/api/competitor/{a}", headers=owner_headers)
    assert r.status_code == 409
    assert r.json["error"] == "conflict"

    flags = {c["id"]: c["is_primary"] for c in client.get("/api/competitor").json}
    assert flags == {a: False, b: True}
