"""
Pytest fixtures: mocked AWS, captured emails and an authenticated client
"""
import os

# boto3 needs credentials and a region even when moto intercepts the calls
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")

import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from app.core import security
from app.db import dynamo
from app.main import app
from app.utils import email_service, storage

PASSWORD = "secret123"


class Outbox:
    """Records outgoing emails instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def sender(self, kind):
        def send(to_email, code, name):
            self.sent.append({"kind": kind, "to": to_email, "code": code, "name": name})
            return not self.fail
        return send

    def last(self, kind):
        matching = [message for message in self.sent if message["kind"] == kind]
        return matching[-1] if matching else None


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(security, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def aws():
    with mock_aws():
        dynamo.reset_resource()
        storage.reset_client()
        dynamo.create_tables()
        yield
    dynamo.reset_resource()
    storage.reset_client()


@pytest.fixture
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr(email_service, "send_verification_email", box.sender("verification"))
    monkeypatch.setattr(email_service, "send_password_reset_email", box.sender("reset"))
    monkeypatch.setattr(email_service, "send_otp_email", box.sender("otp"))
    monkeypatch.setattr(email_service, "send_email_change_otp_email", box.sender("email_change"))
    return box


@pytest.fixture
def client(aws, outbox):
    """Test client; the lifespan (scheduler, table creation) is not started"""
    return TestClient(app)


@pytest.fixture
def register(client):
    """Register an account and return the user payload"""
    def _register(email="alex@mailbox.org", name="Alex Doe", password=PASSWORD):
        response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert response.status_code == 201, response.text
        return response.json()["data"]["user"]
    return _register


@pytest.fixture
def login(client):
    """Log in and return Authorization headers"""
    def _login(email="alex@mailbox.org", password=PASSWORD):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['data']['token']}"}
    return _login


@pytest.fixture
def auth_headers(register, login):
    register()
    return login()


@pytest.fixture
def make_category(client):
    def _make(headers, name="Groceries", type="expense"):
        response = client.post("/api/categories/", json={"name": name, "type": type}, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]["category"]
    return _make


@pytest.fixture
def make_transaction(client):
    def _make(headers, category, amount=10.0, title="Entry", **fields):
        body = {"title": title, "amount": amount, "type": category["type"], "category_id": category["category_id"]}
        body.update(fields)
        response = client.post("/api/transactions/", json=body, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]["transaction"]
    return _make
