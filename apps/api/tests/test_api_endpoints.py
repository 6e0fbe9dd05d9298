"""
Tests for API endpoints - calculator and fitness routes
"""
import pytest
from datetime import datetime, timezone
from uuid import uuid4

from fastapi.testclient import TestClient

from core.database import get_db
from fixtures.stream_fixtures import make_steady_stream, to_stream_data
from main import app
from models import Activity, ActivityStream


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


class TestVdotCalculatorEndpoints:
    """Stateless calculator routes"""

    def test_calculate(self, client):
        response = client.post("/v1/vdot/calculate", json={"distance_meters": 5000, "time_seconds": 1200})
        assert response.status_code == 200
        data = response.json()
        assert data["vdot"] == pytest.approx(49.8, abs=0.05)
        assert "threshold" in data["training_paces"]
        assert len(data["equivalent_races"]) > 0

    def test_calculate_invalid_input(self, client):
        response = client.post("/v1/vdot/calculate", json={"distance_meters": 0, "time_seconds": 1200})
        assert response.status_code == 422

    def test_calculate_out_of_range(self, client):
        """A 10:00 5K is rejected, not clamped."""
        response = client.post("/v1/vdot/calculate", json={"distance_meters": 5000, "time_seconds": 600})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VDOT_OUT_OF_RANGE"

    def test_training_paces(self, client):
        response = client.post("/v1/vdot/training-paces", json={"vdot": 50.0})
        assert response.status_code == 200
        data = response.json()
        for zone in ("easy_slow", "easy_fast", "marathon", "threshold", "interval", "repetition"):
            assert zone in data

    def test_training_paces_query(self, client):
        response = client.get("/v1/vdot/training-paces", params={"vdot": 50})
        assert response.status_code == 200
        assert response.json()["vdot"] == 50.0

    def test_training_paces_rejects_non_positive(self, client):
        response = client.post("/v1/vdot/training-paces", json={"vdot": 0})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR_VDOT"

    def test_equivalent_races(self, client):
        response = client.get("/v1/vdot/equivalent-races", params={"vdot": 50})
        assert response.status_code == 200
        assert len(response.json()["races"]) > 0

    def test_normalize(self, client):
        response = client.post("/v1/vdot/normalize", json={
            "distance_meters": 5000,
            "time_seconds": 1200,
            "effort_level": "all_out",
            "temperature_f": 80,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["weather_adjust_sec_per_mile"] == 20
        assert data["equivalent_vdot"] > 49.8

    def test_normalize_unknown_effort_level(self, client):
        response = client.post("/v1/vdot/normalize", json={
            "distance_meters": 5000, "time_seconds": 1200, "effort_level": "heroic",
        })
        assert response.status_code == 422


class TestPredictionEndpoint:

    def test_unknown_athlete(self, client):
        response = client.get(f"/v1/fitness/athletes/{uuid4()}/prediction")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_no_data_is_unavailable(self, client, test_athlete):
        response = client.get(f"/v1/fitness/athletes/{test_athlete.id}/prediction",
                              params={"as_of": "2024-06-30"})
        assert response.status_code == 200
        data = response.json()
        assert data["available"] is False
        assert data["prediction"] is None
        assert data["reason"]

    def test_race_gives_prediction(self, client, raced_athlete):
        response = client.get(f"/v1/fitness/athletes/{raced_athlete.id}/prediction",
                              params={"as_of": "2024-06-30"})
        assert response.status_code == 200
        data = response.json()
        assert data["available"] is True
        prediction = data["prediction"]
        assert prediction["as_of"] == "2024-06-30"
        assert [p["distance"] for p in prediction["predictions"]] == ["5K", "10K", "Half Marathon", "Marathon"]
        assert "race_vdot" in [s["name"] for s in prediction["signals"]]

    def test_as_of_hides_later_race(self, client, raced_athlete):
        response = client.get(f"/v1/fitness/athletes/{raced_athlete.id}/prediction",
                              params={"as_of": "2024-06-19"})
        assert response.json()["available"] is False


class TestTrainingLoadEndpoint:

    def test_no_data(self, client, test_athlete):
        response = client.get(f"/v1/fitness/athletes/{test_athlete.id}/training-load",
                              params={"days": 30, "as_of": "2024-06-30"})
        assert response.status_code == 200
        data = response.json()
        assert data["has_data"] is False
        assert data["confidence"] == 0

    def test_with_race_activity(self, client, raced_athlete):
        response = client.get(f"/v1/fitness/athletes/{raced_athlete.id}/training-load",
                              params={"days": 30, "as_of": "2024-06-30"})
        data = response.json()
        assert data["has_data"] is True
        assert len(data["metrics"]) == 30

    def test_days_bounds(self, client, test_athlete):
        response = client.get(f"/v1/fitness/athletes/{test_athlete.id}/training-load", params={"days": 3})
        assert response.status_code == 422


class TestBestSegmentEndpoint:

    def test_stream_segment(self, client, db_session, test_athlete):
        stream = make_steady_stream()
        activity = Activity(
            athlete_id=test_athlete.id,
            start_time=datetime(2024, 6, 1, 7, 0, tzinfo=timezone.utc),
            duration_s=1200,
            distance_m=5364,
            workout_type="tempo",
        )
        db_session.add(activity)
        db_session.flush()
        db_session.add(ActivityStream(
            activity_id=activity.id,
            stream_data=to_stream_data(stream),
            channels_available=["time", "distance", "heartrate"],
            point_count=stream.point_count,
        ))
        db_session.commit()

        response = client.get(f"/v1/fitness/activities/{activity.id}/best-segment")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["point_count"] == stream.point_count
        assert data["best"]["confidence"] == "high"

    def test_activity_without_stream(self, client, raced_athlete, db_session):
        activity = db_session.query(Activity).first()
        response = client.get(f"/v1/fitness/activities/{activity.id}/best-segment")
        assert response.status_code == 200
        assert response.json()["reason"] == "no_stream"

    def test_unknown_activity(self, client):
        response = client.get(f"/v1/fitness/activities/{uuid4()}/best-segment")
        assert response.status_code == 404


class TestBaselineEndpoints:

    def test_sync_then_history(self, client, raced_athlete):
        athlete_id = raced_athlete.id
        response = client.post(f"/v1/fitness/athletes/{athlete_id}/vdot-sync", json={"as_of": "2024-06-30"})
        assert response.status_code == 200
        data = response.json()
        assert data["updated"] is True
        assert data["previous_vdot"] is None
        assert data["smoothed"] is False
        assert data["vdot"] == pytest.approx(49.8, abs=0.05)
        assert data["source"] == "race"

        history = client.get(f"/v1/fitness/athletes/{athlete_id}/vdot-history").json()
        assert history["current_vdot"] == data["vdot"]
        assert [e["date"] for e in history["entries"]] == ["2024-06-01"]

        zones = client.get(f"/v1/fitness/athletes/{athlete_id}/pace-zones").json()
        assert zones["available"] is True
        assert "threshold" in zones["paces"]

    def test_sync_without_data_keeps_baseline(self, client, test_athlete):
        response = client.post(f"/v1/fitness/athletes/{test_athlete.id}/vdot-sync", json={"as_of": "2024-06-30"})
        data = response.json()
        assert data["updated"] is False
        assert data["vdot"] is None
        assert data["message"]

    def test_pace_zones_without_baseline(self, client, test_athlete):
        data = client.get(f"/v1/fitness/athletes/{test_athlete.id}/pace-zones").json()
        assert data["available"] is False

    def test_inline_backtest(self, client, raced_athlete):
        response = client.post(f"/v1/fitness/athletes/{raced_athlete.id}/backtest", json={})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["failed"] == 0
        assert data["processed"] >= 1
        assert data["months"][0]["month"] == "2024-06-01"
        assert data["months_written"] == data["processed"]

        history = client.get(f"/v1/fitness/athletes/{raced_athlete.id}/vdot-history").json()
        assert len(history["entries"]) == data["months_written"]
        assert history["entries"][0]["source"] == "backtest"


class TestHealth:

    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}
