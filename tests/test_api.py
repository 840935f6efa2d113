"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from dgtl_dental.admin import NO_ACTIVE_MESSAGE, NO_SELECTION_MESSAGE, AdminSessions
from dgtl_dental.api.routes import INTERNAL_ERROR
from dgtl_dental.chat.facts import DEMO_CLINIC_ID
from dgtl_dental.models import SubscriptionStatus
from dgtl_dental.server import app
from dgtl_dental.services.checkout import CheckoutError, CheckoutSession
from dgtl_dental.services.mailer import MailerError

CHECKOUT_URL = "https://checkout.stripe.com/c/pay/cs_test_abc"
STATE_NAMES = ("store", "agent", "threads", "demo_stream", "checkout", "mailer", "admin_sessions")


@pytest.fixture
def services(store):
    """Attach mocks to app state the same way the lifespan does."""
    agent = MagicMock()
    agent.invoke.return_value = {"messages": [AIMessage(content="We open at 8am.")]}
    checkout = MagicMock()
    checkout.create_session.return_value = CheckoutSession(url=CHECKOUT_URL, session_id="cs_test_abc")

    ns = SimpleNamespace(
        store=store,
        agent=agent,
        threads=MagicMock(),
        demo_stream=MagicMock(side_effect=lambda message, history: iter(["Brush ", "twice."])),
        checkout=checkout,
        mailer=MagicMock(),
        admin_sessions=AdminSessions("admin@dgtldental.com", "correct-horse"),
    )
    for name in STATE_NAMES:
        setattr(app.state, name, getattr(ns, name))
    yield ns
    for name in STATE_NAMES:
        setattr(app.state, name, None)


@pytest.fixture
def client(services):
    return TestClient(app)


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/admin/login", json={"email": "admin@dgtldental.com", "password": "correct-horse"})
    return {"Authorization": f"Bearer {response.json()['token']}"}


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "dgtl-dental"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_missing_service_returns_503(self, client, services):
        app.state.agent = None
        response = client.post("/api/chat", json={"message": "hi", "clinicId": "c-1"})
        assert response.status_code == 503
        assert "starting up" in response.json()["error"]


class TestChatEndpoint:
    def test_chat_returns_response_and_logs_exchange(self, client, services):
        response = client.post("/api/chat", json={"message": "When do you open?", "clinicId": "c-1"})
        assert response.status_code == 200
        assert response.json() == {"response": "We open at 8am."}

        [logged] = services.store.recent_messages()
        assert logged.clinic_id == "c-1"
        assert logged.response_content == "We open at 8am."

    def test_chat_passes_clinic_and_session(self, client, services):
        client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1", "sessionId": "s-9"})
        args, kwargs = services.agent.invoke.call_args
        assert args[0]["clinic_id"] == "c-1"
        assert kwargs["config"]["configurable"]["thread_id"] == "s-9"

    def test_chat_without_session_gets_fresh_thread(self, client, services):
        client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1"})
        client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1"})
        threads = [c[1]["config"]["configurable"]["thread_id"] for c in services.agent.invoke.call_args_list]
        assert threads[0] != threads[1]
        assert all(t.startswith("c-1:") for t in threads)

    def test_sessionless_thread_is_forgotten_after_reply(self, client, services):
        client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1"})
        thread_id = services.agent.invoke.call_args[1]["config"]["configurable"]["thread_id"]
        services.threads.forget.assert_called_once_with(thread_id)
        services.threads.touch.assert_not_called()

    def test_sessionless_thread_is_forgotten_on_error(self, client, services):
        services.agent.invoke.side_effect = RuntimeError("LLM exploded")
        client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1"})
        services.threads.forget.assert_called_once()

    def test_session_thread_is_tracked_not_forgotten(self, client, services):
        client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1", "sessionId": "s-9"})
        services.threads.touch.assert_called_once_with("s-9")
        services.threads.forget.assert_not_called()

    @pytest.mark.parametrize(
        "body",
        [{"message": "", "clinicId": "c-1"}, {"message": "Hi"}],
    )
    def test_chat_validates_body(self, client, body):
        assert client.post("/api/chat", json=body).status_code == 422

    def test_chat_handles_agent_error(self, client, services):
        services.agent.invoke.side_effect = RuntimeError("LLM exploded")
        response = client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1"})
        assert response.status_code == 500
        assert response.json() == {"error": INTERNAL_ERROR}
        assert "exploded" not in response.text

    def test_chat_empty_reply_is_an_error(self, client, services):
        services.agent.invoke.return_value = {"messages": []}
        response = client.post("/api/chat", json={"message": "Hi", "clinicId": "c-1"})
        assert response.status_code == 500


class TestDemoChatEndpoint:
    def test_streams_deltas_then_done(self, client, services):
        response = client.post(
            "/api/demo-chat",
            json={"message": "tips?", "messages": [{"role": "user", "content": "hi"}]},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        lines = [line for line in response.text.splitlines() if line]
        assert lines[0] == 'data: {"choices": [{"delta": {"content": "Brush "}}]}'
        assert lines[-1] == "data: [DONE]"
        assert services.demo_stream.call_args[0][1] == [{"role": "user", "content": "hi"}]

    def test_stream_failure_still_ends_with_done(self, client, services):
        def broken(message, history):
            yield "Brush "
            raise RuntimeError("upstream closed")

        services.demo_stream.side_effect = broken
        response = client.post("/api/demo-chat", json={"message": "tips?"})
        lines = [line for line in response.text.splitlines() if line]
        assert len(lines) == 2
        assert lines[-1] == "data: [DONE]"


class TestClinicConfigEndpoint:
    def test_requires_id(self, client):
        response = client.get("/api/clinic-config")
        assert response.status_code == 400
        assert response.json() == {"error": "Client ID is required"}

    def test_demo_id(self, client):
        data = client.get("/api/clinic-config", params={"clientId": DEMO_CLINIC_ID}).json()
        assert data["clinic_id"] == DEMO_CLINIC_ID

    def test_unknown_id_gets_generic_config(self, client):
        data = client.get("/api/clinic-config", params={"clinic": "ghost-1"}).json()
        assert data["name"] == "Dental Practice"

    def test_stored_widget_overrides_are_merged(self, client, make_practice):
        make_practice("a-1", widget_config={"primaryColor": "#ff0000"})
        data = client.get("/api/clinic-config", params={"clinic": "a-1"}).json()
        assert data["name"] == "Bright Smiles Dental"
        assert data["widget_config"]["primaryColor"] == "#ff0000"

    def test_embed_snippet(self, client, make_practice):
        make_practice("a-1")
        data = client.get("/api/practices/a-1/embed").json()
        assert 'data-clinic-id="a-1"' in data["snippet"]

    def test_embed_unknown_practice(self, client):
        assert client.get("/api/practices/ghost/embed").status_code == 404


class TestIntakeAndSignup:
    def test_setup_request_normalizes_website(self, client, services):
        response = client.post(
            "/api/setup-requests",
            json={
                "practiceName": "Bright Smiles",
                "websiteUrl": "brightsmiles.com",
                "contactName": "Jane",
                "email": "jane@brightsmiles.com",
            },
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        [record] = services.store.list_intake_records()
        assert record.website_url == "https://brightsmiles.com"

    def _signup_body(self, **practice_overrides):
        practice = {
            "practiceName": "Bright Smiles Dental",
            "streetAddress": "1 Elm St",
            "city": "Austin",
            "state": "TX",
            "zip": "78701",
            "practicePhone": "(512) 555-0100",
            "officeEmail": "front@brightsmiles.com",
            "officeHours": {"monday": {"isOpen": True, "startTime": "8:00 AM", "endTime": "5:00 PM"}},
            "servicesOffered": ["Invisalign"],
            "insuranceAccepted": "Delta Dental",
            "emergencyPolicy": "Call us.",
        }
        practice.update(practice_overrides)
        return {
            "accountInfo": {
                "firstName": "Jane",
                "lastName": "Doe",
                "email": "jane@brightsmiles.com",
                "password": "s3cret!",
            },
            "practiceDetails": practice,
        }

    def test_signup_returns_checkout_url(self, client, services):
        response = client.post("/api/signup", json=self._signup_body(), headers={"Origin": "https://dgtldental.com"})
        assert response.status_code == 200
        data = response.json()
        assert data["url"] == CHECKOUT_URL
        practice = services.store.get_practice(data["clinicId"])
        assert practice.subscription_status is SubscriptionStatus.PENDING
        assert services.checkout.create_session.call_args[1]["origin"] == "https://dgtldental.com"

    def test_signup_incomplete_form(self, client, services):
        response = client.post("/api/signup", json=self._signup_body(servicesOffered=[]))
        assert response.status_code == 400
        assert response.json() == {"error": "Please complete all required fields."}
        services.checkout.create_session.assert_not_called()

    def test_signup_checkout_failure(self, client, services):
        services.checkout.create_session.side_effect = CheckoutError("down")
        response = client.post("/api/signup", json=self._signup_body())
        assert response.status_code == 502
        assert response.json() == {"error": "Failed to create payment session. Please try again."}

    def test_checkout_endpoint(self, client, services):
        response = client.post(
            "/api/checkout",
            json={"clinicId": "a-1", "email": "jane@x.com", "practiceName": "Bright"},
        )
        assert response.json() == {"url": CHECKOUT_URL, "sessionId": "cs_test_abc"}

    def test_checkout_endpoint_error(self, client, services):
        services.checkout.create_session.side_effect = CheckoutError("Invalid email format")
        response = client.post(
            "/api/checkout",
            json={"clinicId": "a-1", "email": "nope", "practiceName": "Bright"},
        )
        assert response.status_code == 502
        assert response.json() == {"error": "Invalid email format"}


class TestMailEndpoints:
    def test_contact(self, client, services):
        response = client.post("/api/contact", json={"email": "jane@x.com", "question": "Pricing?"})
        assert response.json() == {"success": True}
        services.mailer.send_contact.assert_called_once_with("jane@x.com", "Pricing?")

    def test_contact_validation_error(self, client, services):
        services.mailer.send_contact.side_effect = ValueError("Invalid email address")
        response = client.post("/api/contact", json={"email": "nope", "question": "Pricing?"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid email address"}

    def test_prospect_delivery_failure(self, client, services):
        services.mailer.send_prospect.side_effect = MailerError("Resend down", status_code=503)
        response = client.post(
            "/api/prospect",
            json={"name": "Jane", "practice": "Bright", "contactPreference": "phone", "contactValue": "555"},
        )
        assert response.status_code == 502

    def test_prospect_rejects_unknown_preference(self, client):
        response = client.post(
            "/api/prospect",
            json={"name": "Jane", "practice": "Bright", "contactPreference": "fax", "contactValue": "555"},
        )
        assert response.status_code == 422


class TestAdminEndpoints:
    def test_login_rejects_bad_credentials(self, client):
        response = client.post("/api/admin/login", json={"email": "admin@dgtldental.com", "password": "nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    @pytest.mark.parametrize(
        "method, path",
        [
            ("get", "/api/admin/practices"),
            ("get", "/api/admin/stats"),
            ("get", "/api/admin/messages"),
            ("get", "/api/practices/a-1/qa"),
        ],
    )
    def test_requires_token(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json() == {"error": "Admin session required"}

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.post("/api/admin/logout", headers=admin_headers).status_code == 204
        assert client.get("/api/admin/stats", headers=admin_headers).status_code == 401

    def test_list_practices_filtered(self, client, admin_headers, make_practice):
        make_practice("a-1")
        make_practice("p-1", subscription_status=SubscriptionStatus.PENDING)
        response = client.get("/api/admin/practices", params={"status": "active"}, headers=admin_headers)
        assert [p["clinicId"] for p in response.json()] == ["a-1"]

    def test_deploy(self, client, admin_headers, make_practice, services):
        make_practice("a-1")
        response = client.post("/api/admin/deploy", json={"clinicIds": ["a-1"]}, headers=admin_headers)
        assert response.json()["updated"] == 1
        assert services.store.get_practice("a-1").version == 2

    def test_deploy_skips_inactive_practices(self, client, admin_headers, make_practice, services):
        make_practice("p-1", subscription_status=SubscriptionStatus.PENDING)
        response = client.post("/api/admin/deploy", json={"clinicIds": ["p-1"]}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": NO_ACTIVE_MESSAGE}
        assert services.store.get_practice("p-1").version == 1

    def test_deploy_without_selection(self, client, admin_headers):
        response = client.post("/api/admin/deploy", json={"clinicIds": []}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": NO_SELECTION_MESSAGE}

    def test_stats(self, client, admin_headers, make_practice):
        make_practice("a-1")
        data = client.get("/api/admin/stats", headers=admin_headers).json()
        assert data["activeClinics"] == 1

    def test_qa_pair_lifecycle(self, client, admin_headers, make_practice):
        make_practice("a-1")
        created = client.post(
            "/api/practices/a-1/qa",
            json={"question": "Free parking?", "answer": "Yes."},
            headers=admin_headers,
        )
        assert created.status_code == 201
        pair_id = created.json()["id"]

        listed = client.get("/api/practices/a-1/qa", headers=admin_headers).json()
        assert [p["id"] for p in listed] == [pair_id]

        assert client.delete(f"/api/practices/a-1/qa/{pair_id}", headers=admin_headers).status_code == 204
        assert client.delete(f"/api/practices/a-1/qa/{pair_id}", headers=admin_headers).status_code == 404

    def test_qa_pair_for_unknown_practice(self, client, admin_headers):
        response = client.post(
            "/api/practices/ghost/qa",
            json={"question": "Q", "answer": "A"},
            headers=admin_headers,
        )
        assert response.status_code == 404
