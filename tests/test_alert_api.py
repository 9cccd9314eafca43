"""Tests for the alert and on-call HTTP endpoints."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from wygc.dispatcher import get_engine, get_opsgenie_client
from wygc.main import app
from wygc.middleware import CORRELATION_ID_HEADER
from wygc.models.alert import Outcome
from wygc.services.escalation_engine import EscalationEngine
from wygc.services.opsgenie_channel import (
    NoOnCallPersonError,
    OnCallInfo,
    OpsgenieClient,
    OpsgenieRequestError,
    UserPhoneNumbers,
)

from tests.fakes import ScriptedAdapter, fast_channel, make_registry


class TestReceiveAlert:
    """Tests for POST /api/alerts."""

    @pytest.mark.asyncio
    async def test_accepts_alert(self, client):
        response = await client.post(
            "/api/alerts", json={"payload": {"message": "disk full"}}
        )

        assert response.status_code == 202
        data = response.json()
        assert data["state"] == "escalating"
        assert data["payload"] == {"message": "disk full"}
        uuid.UUID(data["id"])

    @pytest.mark.asyncio
    async def test_empty_payload_allowed(self, client):
        response = await client.post("/api/alerts", json={})

        assert response.status_code == 202
        assert response.json()["payload"] == {}

    @pytest.mark.asyncio
    async def test_rejects_non_object_payload(self, client):
        response = await client.post("/api/alerts", json={"payload": [1, 2]})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self, client):
        response = await client.post(
            "/api/alerts",
            json={},
            headers={CORRELATION_ID_HEADER: "req-42"},
        )

        assert response.headers[CORRELATION_ID_HEADER] == "req-42"


class TestGetAlert:
    """Tests for GET /api/alerts and GET /api/alerts/{id}."""

    @pytest.mark.asyncio
    async def test_get_alert_with_attempts(self, client, engine):
        created = (await client.post("/api/alerts", json={})).json()
        await engine.wait_for_outcome(uuid.UUID(created["id"]), timeout=2)

        response = await client.get(f"/api/alerts/{created['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "notified"
        assert data["stop_reason"] == "delivered"
        assert len(data["attempts"]) == 1
        attempt = data["attempts"][0]
        assert attempt["channel"] == "pager"
        assert attempt["outcome"] == "delivered"
        assert attempt["acted_upon"] is True

    @pytest.mark.asyncio
    async def test_unknown_alert(self, client):
        response = await client.get(f"/api/alerts/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"] == "Alert not found"

    @pytest.mark.asyncio
    async def test_invalid_alert_id(self, client):
        response = await client.get("/api/alerts/not-a-uuid")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_filters_by_state(self, client, engine):
        first = (await client.post("/api/alerts", json={})).json()
        second = (await client.post("/api/alerts", json={})).json()
        await engine.wait_for_outcome(uuid.UUID(first["id"]), timeout=2)
        await engine.wait_for_outcome(uuid.UUID(second["id"]), timeout=2)
        await client.patch(f"/api/alerts/{first['id']}/acknowledge")

        everything = (await client.get("/api/alerts")).json()
        acknowledged = (await client.get("/api/alerts?state=acknowledged")).json()

        assert everything["count"] == 2
        assert [a["id"] for a in acknowledged["alerts"]] == [first["id"]]

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_state(self, client):
        response = await client.get("/api/alerts?state=sleeping")

        assert response.status_code == 422


class TestAcknowledge:
    """Tests for PATCH /api/alerts/{id}/acknowledge."""

    @pytest.mark.asyncio
    async def test_acknowledge(self, client, engine):
        created = (await client.post("/api/alerts", json={})).json()
        await engine.wait_for_outcome(uuid.UUID(created["id"]), timeout=2)

        response = await client.patch(f"/api/alerts/{created['id']}/acknowledge")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created["id"]
        assert data["state"] == "acknowledged"
        assert data["acknowledged_at"] is not None

    @pytest.mark.asyncio
    async def test_acknowledge_twice(self, client):
        created = (await client.post("/api/alerts", json={})).json()
        url = f"/api/alerts/{created['id']}/acknowledge"

        first = (await client.patch(url)).json()
        second = (await client.patch(url)).json()

        assert second["state"] == "acknowledged"
        assert second["acknowledged_at"] == first["acknowledged_at"]

    @pytest.mark.asyncio
    async def test_acknowledge_unknown(self, client):
        response = await client.patch(f"/api/alerts/{uuid.uuid4()}/acknowledge")

        assert response.status_code == 404


class TestAlertOnCall:
    """Tests for GET /alert."""

    @pytest.mark.asyncio
    async def test_triggers_alert_for_schedule(self, client, engine):
        response = await client.get(
            "/alert", params={"schedule": "ops", "twilioWorkflow": "FW9"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["payload"]["schedule"] == "ops"
        assert data["payload"]["twilio_workflow"] == "FW9"
        assert len(engine) == 1

    @pytest.mark.asyncio
    async def test_wait_for_delivery(self, client):
        response = await client.get("/alert", params={"schedule": "ops", "wait": "true"})

        assert response.status_code == 200
        assert response.json()["state"] == "notified"

    @pytest.mark.asyncio
    async def test_wait_reports_exhaustion(self, client):
        failing = EscalationEngine(
            make_registry(
                (
                    fast_channel("pager", max_retries=0),
                    ScriptedAdapter("pager", [Outcome.permanent("http 401")]),
                )
            )
        )
        app.dependency_overrides[get_engine] = lambda: failing

        response = await client.get("/alert", params={"schedule": "ops", "wait": "true"})

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["alert"]["state"] == "exhausted"
        await failing.shutdown()

    @pytest.mark.asyncio
    async def test_schedule_required(self, client):
        response = await client.get("/alert")

        assert response.status_code == 422


class TestOnCallNumber:
    """Tests for GET /oncallnumber."""

    @staticmethod
    def use_opsgenie(lookup: AsyncMock) -> None:
        opsgenie = MagicMock(spec=OpsgenieClient)
        opsgenie.get_oncall_number = lookup
        app.dependency_overrides[get_opsgenie_client] = lambda: opsgenie

    @pytest.mark.asyncio
    async def test_not_configured(self, client):
        response = await client.get("/oncallnumber", params={"name": "ops"})

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_schedule_required(self, client):
        self.use_opsgenie(AsyncMock())

        response = await client.get("/oncallnumber")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_returns_on_call_person(self, client):
        lookup = AsyncMock(
            return_value=OnCallInfo(
                username="alice@example.com",
                phone_number="+491701",
                full_information=[
                    UserPhoneNumbers(name="alice@example.com", phone=["+491701"])
                ],
            )
        )
        self.use_opsgenie(lookup)

        response = await client.get("/oncallnumber", params={"id": "abc-123"})

        assert response.status_code == 200
        assert response.json() == {
            "username": "alice@example.com",
            "phoneNumber": "+491701",
            "fullInformation": [{"name": "alice@example.com", "phone": ["+491701"]}],
        }
        schedule = lookup.call_args.args[0]
        assert schedule.identifier == "abc-123"
        assert schedule.identifier_type == "id"

    @pytest.mark.asyncio
    async def test_nobody_on_call(self, client):
        self.use_opsgenie(AsyncMock(side_effect=NoOnCallPersonError("no one")))

        response = await client.get("/oncallnumber", params={"name": "ops"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_upstream_failure(self, client):
        self.use_opsgenie(AsyncMock(side_effect=OpsgenieRequestError("http 500")))

        response = await client.get("/oncallnumber", params={"name": "ops"})

        assert response.status_code == 502
