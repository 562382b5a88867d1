from bson import ObjectId

from database import USERS
from tests.conftest import bearer


def test_create_user_defaults_to_tourist(client, db):
    res = client.post("/users", json={"email": "a@x.com", "name": "A"})
    assert res.status_code == 201
    body = res.json()
    assert body["insertedId"]
    assert body["user"]["role"] == "tourist"
    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "tourist"


def test_create_user_ignores_client_role(client, db):
    client.post("/users", json={"email": "a@x.com", "name": "A", "role": "admin"})
    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "tourist"


def test_create_user_twice_returns_existing_record(client, db):
    first = client.post("/users", json={"email": "a@x.com", "name": "A"})
    second = client.post("/users", json={"email": "a@x.com", "name": "Other"})

    assert second.status_code == 200
    assert second.json()["insertedId"] is None
    assert second.json()["user"]["_id"] == first.json()["insertedId"]
    assert second.json()["user"]["name"] == "A"
    assert db[USERS].count_documents({"email": "a@x.com"}) == 1


def test_create_user_rejects_bad_email(client):
    res = client.post("/users", json={"email": "not-an-email"})
    assert res.status_code == 400
    assert res.json()["error"] == "InvalidArgument"


def test_list_users_as_admin(client, admin, make_user):
    make_user("a@x.com")
    res = client.get("/users", headers=admin)
    assert res.status_code == 200
    assert {u["email"] for u in res.json()} == {"admin@x.com", "a@x.com"}


def test_role_lookup_for_self(client, make_user):
    headers = make_user("a@x.com", role="guide")
    res = client.get("/users/role/a@x.com", headers=headers)
    assert res.json() == {"role": "guide"}


def test_role_lookup_for_someone_else_is_forbidden(client, make_user):
    headers = make_user("a@x.com")
    make_user("c@x.com")
    res = client.get("/users/role/c@x.com", headers=headers)
    assert res.status_code == 403
    assert res.json()["error"] == "Forbidden"


def test_role_lookup_without_record(client):
    res = client.get("/users/role/a@x.com", headers=bearer("a@x.com"))
    assert res.status_code == 404


def test_admin_check(client, admin, make_user):
    tourist = make_user("a@x.com")
    assert client.get("/users/admin/admin@x.com", headers=admin).json() == {"admin": True}
    assert client.get("/users/admin/a@x.com", headers=tourist).json() == {"admin": False}
    assert client.get("/users/admin/admin@x.com", headers=tourist).status_code == 403


def test_make_admin(client, db, admin, make_user):
    make_user("a@x.com")
    user_id = str(db[USERS].find_one({"email": "a@x.com"})["_id"])

    res = client.patch(f"/users/admin/{user_id}", headers=admin)
    assert res.status_code == 200
    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "admin"


def test_make_admin_unknown_user(client, admin):
    res = client.patch(f"/users/admin/{ObjectId()}", headers=admin)
    assert res.status_code == 404


def test_make_admin_malformed_id(client, admin):
    res = client.patch("/users/admin/not-an-id", headers=admin)
    assert res.status_code == 400
    assert res.json()["error"] == "InvalidArgument"


def test_profile_upsert_creates_then_updates(client, db):
    headers = bearer("a@x.com")
    res = client.put("/users/a@x.com", json={"name": "A"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["role"] == "tourist"

    client.put("/users/a@x.com", json={"photoURL": "http://img/a.png"}, headers=headers)
    user = db[USERS].find_one({"email": "a@x.com"})
    assert user["name"] == "A"
    assert user["photoURL"] == "http://img/a.png"
    assert db[USERS].count_documents({"email": "a@x.com"}) == 1


def test_profile_update_cannot_change_role(client, db, make_user):
    headers = make_user("a@x.com")
    client.put("/users/a@x.com", json={"name": "A", "role": "admin"}, headers=headers)
    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "tourist"


def test_profile_update_of_someone_else_is_forbidden(client, make_user):
    headers = make_user("a@x.com")
    res = client.put("/users/c@x.com", json={"name": "C"}, headers=headers)
    assert res.status_code == 403


def test_admin_stats(client, admin, make_user, db):
    make_user("a@x.com")
    make_user("g@x.com", role="guide")
    res = client.get("/admin/stats", headers=admin)
    assert res.status_code == 200
    stats = res.json()
    assert stats["users"] == 3
    assert stats["usersByRole"] == {"tourist": 1, "guide": 1, "admin": 1}
    assert stats["bookings"] == 0
    assert stats["pendingApplications"] == 0
