"""
Achievements Portal - test configuration and fixtures

Each test gets a fresh in-memory mongomock database patched in place of the
real MongoDB connection.
"""
import os

# Set testing environment before the app reads its configuration
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-only"
os.environ["ROLE_CACHE_TTL_SECONDS"] = "300"
os.environ["MONGO_TRANSACTIONS"] = "false"

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main

# 1x1 transparent PNG
PNG_DATA_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture
def mongo(monkeypatch):
    mdb = mongomock.MongoClient()["achievements_test"]
    monkeypatch.setattr(database, "db", mdb)
    return mdb


@pytest.fixture
def client(mongo):
    return TestClient(main.app)


def add_user(mongo, role, email, name=None, **extra):
    coll = {"Admin": "admins", "Faculty": "faculty", "Student": "students"}[role]
    mongo[coll].insert_one({"_id": email, "email": email, "name": name or email.split("@")[0], "role": role, **extra})


def auth_headers(client, email):
    response = client.post("/auth/login", json={"email": email})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def achievement(**overrides):
    doc = {
        "title": "Hackathon winner",
        "description": "First place at the state hackathon",
        "date": "2024-03-15",
        "type": "Hackathon",
        "image": PNG_DATA_URL,
        "status": "approved",
        "email": "asha@college.edu",
        "name": "Asha",
        "department": "CSE",
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def admin_headers(client, mongo):
    add_user(mongo, "Admin", "admin@college.edu", "Principal")
    return auth_headers(client, "admin@college.edu")


@pytest.fixture
def student_headers(client, mongo):
    add_user(mongo, "Student", "asha@college.edu", "Asha")
    return auth_headers(client, "asha@college.edu")


@pytest.fixture
def faculty_headers(client, mongo):
    add_user(mongo, "Faculty", "ravi@college.edu", "Ravi")
    return auth_headers(client, "ravi@college.edu")
