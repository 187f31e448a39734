"""
Tests for application bootstrap: middleware and the health route.
"""

from confirmation_mailer.main import app as module_app
from confirmation_mailer.main import create_app
from confirmation_mailer.security_headers import get_security_headers_dict
from confirmation_mailer.services.gmail_transport import GmailOAuth2Transport

VALID_BODY = {"destEmail": "user@test.com", "confirmationURL": "http://site/x"}


def test_module_app_uses_gmail_transport():
    assert isinstance(module_app.state.mail_transport, GmailOAuth2Transport)
    assert module_app.state.mailer_config.account_email == "noreply@example.com"


def test_create_app_without_doubles(mailer_config):
    app = create_app(config=mailer_config)

    assert isinstance(app.state.mail_transport, GmailOAuth2Transport)
    assert app.state.mail_transport.config is mailer_config


def test_health(client, fake_transport):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert fake_transport.sent == []
    # Health checks are excluded from security headers
    assert "Content-Security-Policy" not in response.headers


def test_security_headers_on_relay_responses(client):
    response = client.post("/", json=VALID_BODY)

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert response.headers["Cache-Control"] == "no-store"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]


def test_security_headers_on_error_responses(client):
    response = client.post("/", json={})

    assert response.status_code == 400
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_security_headers_can_be_disabled(make_client, fake_transport):
    client = make_client(fake_transport, security_headers_enabled=False)

    response = client.post("/", json=VALID_BODY)

    assert "X-Content-Type-Options" not in response.headers


def test_hsts_only_in_production():
    assert "Strict-Transport-Security" not in get_security_headers_dict(is_production=False)
    assert "Strict-Transport-Security" in get_security_headers_dict(is_production=True)


def test_cors_allows_any_origin_by_default(client):
    response = client.post("/", json=VALID_BODY, headers={"Origin": "https://kolu.id"})

    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_preflight(client):
    response = client.options(
        "/",
        headers={
            "Origin": "https://kolu.id",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )

    assert response.status_code == 200
    assert "POST" in response.headers["access-control-allow-methods"]


def test_cors_restricted_origins(make_client, fake_transport):
    client = make_client(fake_transport, allowed_origins=["https://kolu.id"])

    allowed = client.post("/", json=VALID_BODY, headers={"Origin": "https://kolu.id"})
    other = client.post("/", json=VALID_BODY, headers={"Origin": "https://evil.example"})

    assert allowed.headers["access-control-allow-origin"] == "https://kolu.id"
    assert "access-control-allow-origin" not in other.headers
