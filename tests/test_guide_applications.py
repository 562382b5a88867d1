from bson import ObjectId

from database import GUIDE_APPLICATIONS, USERS
from tests.conftest import bearer


def submit(client, headers, **payload):
    res = client.post("/guideApplications", json=payload, headers=headers)
    assert res.status_code == 201
    return res.json()["insertedId"]


def test_submission_is_forced_pending(client, db, make_user):
    headers = make_user("a@x.com")
    app_id = submit(client, headers, status="approved", email="other@x.com", reason="I love hiking")

    doc = db[GUIDE_APPLICATIONS].find_one({"_id": ObjectId(app_id)})
    assert doc["status"] == "pending"
    assert doc["email"] == "a@x.com"
    assert doc["reason"] == "I love hiking"


def test_status_for_self(client, make_user):
    headers = make_user("a@x.com")
    submit(client, headers)
    res = client.get("/guideApplications/status/a@x.com", headers=headers)
    assert res.json() == {"status": "pending"}


def test_status_without_application(client, make_user):
    headers = make_user("a@x.com")
    res = client.get("/guideApplications/status/a@x.com", headers=headers)
    assert res.status_code == 404


def test_status_for_someone_else_is_forbidden(client, make_user):
    headers = make_user("a@x.com")
    res = client.get("/guideApplications/status/b@x.com", headers=headers)
    assert res.status_code == 403


def test_list_applications_with_filter(client, admin, make_user, db):
    submit(client, make_user("a@x.com"))
    second = submit(client, make_user("b@x.com"))
    client.delete(f"/guideApplications/{second}", headers=admin)

    assert len(client.get("/guideApplications", headers=admin).json()) == 2
    pending = client.get("/guideApplications", params={"status": "pending"}, headers=admin).json()
    assert [a["email"] for a in pending] == ["a@x.com"]


def test_reject_keeps_record(client, admin, make_user, db):
    app_id = submit(client, make_user("a@x.com"))

    res = client.delete(f"/guideApplications/{app_id}", headers=admin)
    assert res.status_code == 200

    fetched = client.get(f"/guideApplications/{app_id}", headers=admin)
    assert fetched.status_code == 200
    assert fetched.json()["status"] == "rejected"
    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "tourist"


def test_reject_unknown_application(client, admin):
    res = client.delete(f"/guideApplications/{ObjectId()}", headers=admin)
    assert res.status_code == 404
    assert res.json()["error"] == "NotFound"


def test_approve_promotes_and_removes(client, admin, make_user, db):
    app_id = submit(client, make_user("a@x.com"))

    res = client.patch(f"/guideApplications/{app_id}", headers=admin)
    assert res.status_code == 200
    assert res.json()["email"] == "a@x.com"

    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "guide"
    assert client.get(f"/guideApplications/{app_id}", headers=admin).status_code == 404


def test_approve_twice_is_not_found(client, admin, make_user):
    app_id = submit(client, make_user("a@x.com"))
    client.patch(f"/guideApplications/{app_id}", headers=admin)
    res = client.patch(f"/guideApplications/{app_id}", headers=admin)
    assert res.status_code == 404


def test_approve_without_user_keeps_application_pending(client, admin, make_user, db):
    app_id = submit(client, make_user("a@x.com"))
    db[USERS].delete_one({"email": "a@x.com"})

    res = client.patch(f"/guideApplications/{app_id}", headers=admin)
    assert res.status_code == 404
    assert res.json()["message"] == "User not found."
    assert db[GUIDE_APPLICATIONS].find_one({"_id": ObjectId(app_id)})["status"] == "pending"


def test_approve_malformed_id(client, admin):
    res = client.patch("/guideApplications/xyz", headers=admin)
    assert res.status_code == 400


def test_sign_up_apply_approve_scenario(client, admin, db):
    headers = bearer("a@x.com")
    assert client.post("/users", json={"email": "a@x.com", "name": "A"}).status_code == 201
    assert client.get("/users/role/a@x.com", headers=headers).json() == {"role": "tourist"}

    app_id = submit(client, headers, experience="5 years")
    assert client.patch(f"/guideApplications/{app_id}", headers=admin).status_code == 200

    assert client.get("/users/role/a@x.com", headers=headers).json() == {"role": "guide"}


def test_rejected_application_stays_rejected(client, admin, make_user, db):
    app_id = submit(client, make_user("a@x.com"))
    assert client.delete(f"/guideApplications/{app_id}", headers=admin).status_code == 200

    res = client.patch(f"/guideApplications/{app_id}", headers=admin)
    assert res.status_code == 400
    assert res.json()["error"] == "InvalidArgument"
    assert db[USERS].find_one({"email": "a@x.com"})["role"] == "tourist"
    assert client.get(f"/guideApplications/{app_id}", headers=admin).json()["status"] == "rejected"


def test_reject_twice_is_refused(client, admin, make_user):
    app_id = submit(client, make_user("a@x.com"))
    client.delete(f"/guideApplications/{app_id}", headers=admin)
    res = client.delete(f"/guideApplications/{app_id}", headers=admin)
    assert res.status_code == 400
