"""Shared fixtures: a seeded throwaway database and an API client."""

import os

# Settings are read once at import, so they must be in place first
os.environ.setdefault("HOSPITAL_PASSWORD_ITERATIONS", "1000")
os.environ.setdefault("GOOGLE_CLIENT_ID", "google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "google-secret")
os.environ.setdefault("GITHUB_CLIENT_ID", "github-client")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "github-secret")

import pytest
from fastapi.testclient import TestClient

import database
from main import app

PATIENT = ("diya.patel@example.com", "password123")        # id 2
DOCTOR = ("rakesh.mehta@example.com", "password123")       # id 6
OTHER_DOCTOR = ("sneha.kapoor@example.com", "password123")  # id 7
ADMIN = ("admin@example.com", "admin123")                  # id 9


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DATABASE_PATH", str(tmp_path / "hospital.db"))
    database.init_database(seed=True)
    return tmp_path / "hospital.db"


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client, credentials):
    username, password = credentials
    response = client.post("/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
