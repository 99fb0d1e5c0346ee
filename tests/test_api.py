"""Tests for API routes."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.llm_client import UpstreamError
from app.models.schemas import OfferAnalysis
from app.services import database as db
from app.services import run_manager
from app.services.reference_import import ImportResult, ReferenceImportError


@pytest.fixture
def client():
    from app.main import app

    return TestClient(app)


def _seed_run(store, status="completed", **fields):
    run_id = uuid4()
    store.runs[run_id] = {
        "id": run_id,
        "status": status,
        "started_at": datetime(2026, 3, len(store.runs) + 1, tzinfo=timezone.utc),
        "completed_at": None,
        "current_state": None,
        "current_casino": None,
        "casinos_processed": 0,
        "offers_processed": 0,
        "progress_log": [],
        "missing_casinos": [],
        "offer_comparisons": [],
        "summary": None,
        **fields,
    }
    return run_id


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "offerscout"
    assert "timestamp" in data


class TestResearchRoutes:
    def test_start_run_returns_id_immediately(self, client):
        run_id = uuid4()
        with patch.object(run_manager, "start_run", AsyncMock(return_value=run_id)):
            response = client.post("/api/research/run")

        assert response.status_code == 200
        assert response.json() == {"run_id": str(run_id), "status": "in-progress"}

    def test_start_run_conflict_when_active(self, client):
        error = run_manager.RunAlreadyActiveError(uuid4())
        with patch.object(run_manager, "start_run", AsyncMock(side_effect=error)):
            response = client.post("/api/research/run")

        assert response.status_code == 409

    def test_get_run_returns_record(self, client, store):
        run_id = _seed_run(
            store,
            progress_log=["[2026-03-01T00:00:00+00:00] Research started for all states"],
            missing_casinos=[{"state": "New Jersey", "casinos": ["Beta Casino"]}],
            summary={"total_missing_casinos": 1, "total_new_offers": 0, "states_processed": ["New Jersey"]},
        )

        response = client.get(f"/api/research/runs/{run_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(run_id)
        assert data["status"] == "completed"
        assert data["missing_casinos"] == [{"state": "New Jersey", "casinos": ["Beta Casino"]}]
        assert data["summary"]["total_missing_casinos"] == 1

    def test_get_run_unknown_id_is_404(self, client, store):
        response = client.get(f"/api/research/runs/{uuid4()}")
        assert response.status_code == 404

    def test_get_run_rejects_malformed_id(self, client, store):
        response = client.get("/api/research/runs/not-a-uuid")
        assert response.status_code == 422

    def test_list_runs_newest_first(self, client, store):
        older = _seed_run(store, status="failed")
        newer = _seed_run(store, status="in-progress")

        response = client.get("/api/research/runs")

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [str(newer), str(older)]

    def test_store_failure_maps_to_503(self, client, monkeypatch):
        monkeypatch.setattr(db, "list_runs", AsyncMock(side_effect=db.PersistenceError("pool closed")))

        response = client.get("/api/research/runs")

        assert response.status_code == 503
        assert response.json()["detail"] == "Research store unavailable"

    def test_init_imports_reference_data(self, client):
        result = ImportResult(offers_imported=12, casinos_imported=5)
        with patch("app.services.reference_import.import_reference_data", AsyncMock(return_value=result)):
            response = client.post("/api/research/init")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "offers_imported": 12,
            "casinos": 5,
            "message": "Imported 12 offers from 5 casinos",
        }

    def test_init_feed_failure_is_502(self, client):
        error = ReferenceImportError("Reference feed request failed: timeout")
        with patch("app.services.reference_import.import_reference_data", AsyncMock(side_effect=error)):
            response = client.post("/api/research/init")

        assert response.status_code == 502


class TestOfferRoutes:
    def test_analyze_returns_model_verdicts(self, client):
        verdicts = [OfferAnalysis(offer_name="Sign-Up Bonus", is_superior=True, reasoning="bigger", recommendation="add")]
        with patch("app.api.routes.offers.AnalyzerAgent") as agent_cls:
            agent_cls.return_value.analyze = AsyncMock(return_value=verdicts)
            response = client.post(
                "/api/offers/analyze",
                json={
                    "casino_name": "Beta Casino",
                    "current_offers": [],
                    "new_offers": [{"name": "Sign-Up Bonus", "type": "welcome", "deposit": 200, "bonus": 200}],
                },
            )

        assert response.status_code == 200
        assert response.json()["analysis"][0]["recommendation"] == "add"

    def test_analyze_without_new_offers_skips_model(self, client):
        with patch("app.api.routes.offers.AnalyzerAgent") as agent_cls:
            response = client.post("/api/offers/analyze", json={"casino_name": "Beta Casino"})

        assert response.status_code == 200
        assert response.json() == {"analysis": []}
        agent_cls.assert_not_called()

    def test_analyze_upstream_failure_is_502(self, client):
        with patch("app.api.routes.offers.AnalyzerAgent") as agent_cls:
            agent_cls.return_value.analyze = AsyncMock(side_effect=UpstreamError("rate limited"))
            response = client.post(
                "/api/offers/analyze",
                json={"casino_name": "Beta Casino", "new_offers": [{"name": "X"}]},
            )

        assert response.status_code == 502
