from bson import ObjectId

from conftest import achievement


def seed_pending(mongo):
    sid = mongo["student_achievements"].insert_one(achievement(title="student entry", status="pending")).inserted_id
    fid = mongo["faculty_achievements"].insert_one(
        achievement(title="faculty entry", status="pending", email="ravi@college.edu")
    ).inserted_id
    mongo["student_achievements"].insert_one(achievement(title="already approved"))
    return str(sid), str(fid)


def test_queue_merges_pending_from_both_groups(client, mongo, admin_headers):
    seed_pending(mongo)

    queue = client.get("/admin/verify", headers=admin_headers).json()

    assert {(q["title"], q["category"]) for q in queue} == {
        ("student entry", "student"),
        ("faculty entry", "faculty"),
    }


def test_approve_leaves_queue_and_reaches_wall(client, mongo, admin_headers):
    sid, _ = seed_pending(mongo)

    response = client.post(f"/admin/verify/student/{sid}", json={"status": "approved"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"status": "approved", "updated": 1}
    stored = mongo["student_achievements"].find_one({"_id": ObjectId(sid)})
    assert stored["status"] == "approved"
    assert stored["reviewed_by"] == "admin@college.edu"

    queue = client.get("/admin/verify", headers=admin_headers).json()
    assert sid not in [q["id"] for q in queue]
    wall = client.get("/achievements", params={"category": "student"}).json()
    assert "student entry" in [a["title"] for a in wall["achievements"]]


def test_reject_keeps_record_off_the_wall(client, mongo, admin_headers):
    _, fid = seed_pending(mongo)

    client.post(f"/admin/verify/faculty/{fid}", json={"status": "rejected"}, headers=admin_headers)

    assert mongo["faculty_achievements"].find_one({"_id": ObjectId(fid)})["status"] == "rejected"
    wall = client.get("/achievements", params={"category": "faculty"}).json()
    assert wall["achievements"] == []


def test_decision_is_audited(client, mongo, admin_headers):
    sid, _ = seed_pending(mongo)

    client.post(f"/admin/verify/student/{sid}", json={"status": "approved"}, headers=admin_headers)

    entries = list(mongo["audit_logs"].find({}))
    assert len(entries) == 1
    assert entries[0]["action"] == "achievement_approved"
    assert entries[0]["user"] == "asha@college.edu"
    assert entries[0]["updated_by"] == "admin@college.edu"


def test_second_decision_conflicts(client, mongo, admin_headers):
    sid, _ = seed_pending(mongo)
    client.post(f"/admin/verify/student/{sid}", json={"status": "approved"}, headers=admin_headers)

    response = client.post(f"/admin/verify/student/{sid}", json={"status": "rejected"}, headers=admin_headers)

    assert response.status_code == 409
    assert mongo["student_achievements"].find_one({"_id": ObjectId(sid)})["status"] == "approved"
    assert mongo["audit_logs"].count_documents({}) == 1


def test_decision_is_scoped_to_source_group(client, mongo, admin_headers):
    sid, _ = seed_pending(mongo)

    response = client.post(f"/admin/verify/faculty/{sid}", json={"status": "approved"}, headers=admin_headers)

    assert response.status_code == 404
    assert mongo["student_achievements"].find_one({"_id": ObjectId(sid)})["status"] == "pending"


def test_invalid_id_and_status(client, mongo, admin_headers):
    sid, _ = seed_pending(mongo)

    assert client.post("/admin/verify/student/nope", json={"status": "approved"},
                       headers=admin_headers).status_code == 400
    assert client.post(f"/admin/verify/student/{sid}", json={"status": "maybe"},
                       headers=admin_headers).status_code == 422
    assert client.post(f"/admin/verify/college/{sid}", json={"status": "approved"},
                       headers=admin_headers).status_code == 422


def test_dashboard_counts(client, mongo, admin_headers):
    seed_pending(mongo)

    data = client.get("/admin/dashboard", headers=admin_headers).json()

    assert data["name"] == "Principal"
    assert data["pending"] == {"student": 1, "faculty": 1}
    assert data["users"] == {"Admin": 1, "Faculty": 0, "Student": 0}
