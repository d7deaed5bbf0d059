def test_profile_defaults_to_empty(client, owner_headers):
    r = client.get("/api/profile")
    assert r.status_code == 200
    assert r.json["email"] == "owner@example.com"
    assert r.json["display_name"] is None
    assert r.json["updated_at"] is None


def test_profile_update_roundtrip(client, owner_headers):
    r = client.put(
        "/api/profile",
        json={"display_name": "Olive Owner", "job_title": "Founder", "website": "https://olive.example"},
        headers=owner_headers,
    )
    assert r.status_code == 200
    assert r.json == {"success": True}

    profile = client.get("/api/profile").json
    assert profile["display_name"] == "Olive Owner"
    assert profile["job_title"] == "Founder"
    assert profile["website"] == "https://olive.example"

    # A second update edits the same row.
    client.put("/api/profile", json={"display_name": "Olive"}, headers=owner_headers)
    profile = client.get("/api/profile").json
    assert profile["display_name"] == "Olive"
    assert profile["job_title"] is None


def test_profile_validation(client, owner_headers):
    r = client.put("/api/profile", json={"website": "ftp://nope", "display_name": "x" * 121}, headers=owner_headers)
    assert r.status_code == 400
    assert len(r.json["errors"]) == 2


def test_viewer_can_edit_own_profile(client, login_as):
    headers = login_as(client, "viewer@example.com")
    assert client.put("/api/profile", json={"bio": "Just looking"}, headers=headers).status_code == 200
    assert client.get("/api/profile").json["bio"] == "Just looking"


def test_profile_requires_login(client):
    assert client.get("/api/profile").status_code == 401


def test_profile_length_limits(client, owner_headers):
    r = client.put(
        "/api/profile",
        json={"job_title": "j" * 256, "website": "https://" + "w" * 505},
        headers=owner_headers,
    )
    assert r.status_code == 400
    assert r.json["errors"] == [
        "Job title must be 255 characters or fewer.",
        "Website must be 512 characters or fewer.",
    ]
