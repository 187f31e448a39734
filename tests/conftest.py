"""
Pytest configuration and fixtures for all tests.
"""

import os

import pytest

# Set up test environment variables before importing any modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("GMAIL_EMAIL", "noreply@example.com")
os.environ.setdefault("MAILGUN_SENDER", "KoLU <noreply@example.com>")

from fastapi.testclient import TestClient  # noqa: E402

from confirmation_mailer.config import MailerConfig  # noqa: E402
from confirmation_mailer.main import create_app  # noqa: E402
from confirmation_mailer.schemas import Accepted  # noqa: E402


class FakeTransport:
    """Records every email and answers with a fixed outcome or error."""

    def __init__(self, outcome=None, error=None):
        self.outcome = outcome
        self.error = error
        self.sent = []

    async def send(self, email):
        self.sent.append(email)
        if self.error is not None:
            raise self.error
        return self.outcome


@pytest.fixture
def mailer_config():
    return MailerConfig(
        sender="KoLU <noreply@example.com>",
        account_email="noreply@example.com",
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        subject="Registration Confirmation",
    )


@pytest.fixture
def accepted_info():
    return {
        "accepted": ["a@b.com"],
        "rejected": [],
        "envelopeTime": 120,
        "messageTime": 340,
        "messageSize": 2048,
        "response": "250 2.0.0 OK  1700000000 m1 - gsmtp",
        "envelope": {"from": "noreply@example.com", "to": ["a@b.com"]},
        "messageId": "m1",
    }


@pytest.fixture
def fake_transport(accepted_info):
    return FakeTransport(outcome=Accepted(info=accepted_info))


@pytest.fixture
def make_client(mailer_config):
    """Factory for a TestClient around an app wired with the given doubles."""
    clients = []

    def _make(transport, renderer=None, **kwargs):
        app = create_app(config=mailer_config, transport=transport, renderer=renderer, **kwargs)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, fake_transport):
    return make_client(fake_transport)
