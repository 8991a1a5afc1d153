"""HTTP-level tests for the FastAPI routers."""

from unittest.mock import AsyncMock, MagicMock

TIMES_SQUARE_ZONE = {
    "zone_id": "ZONE-TS",
    "name": "Times Square",
    "type": "tourist_area",
    "risk_level": "moderate",
    "boundary": {"type": "Circle", "center": {"latitude": 40.7580, "longitude": -73.9855}, "radius": 100},
    "alerts": {"entry_alert": True, "max_capacity": 500},
}

SQUARE_ZONE = {
    "zone_id": "ZONE-SQ",
    "name": "Square",
    "risk_level": "high",
    "boundary": {"type": "Polygon", "coordinates": [[0, 0], [0, 1], [1, 1], [1, 0]]},
}


def load_zones(client, zones=(TIMES_SQUARE_ZONE, SQUARE_ZONE)):
    response = client.put("/api/geofence/zones", json=list(zones))
    assert response.status_code == 200
    return response


class TestHealth:
    def test_root(self, app_client):
        response = app_client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_health(self, app_client):
        data = app_client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["tourists"] == 0
        assert data["zones"] == 0


class TestTourists:
    def test_register_and_get(self, app_client):
        response = app_client.post("/api/tourists", json={
            "tourist_id": "T-1",
            "expected_route": [{"latitude": 40.0, "longitude": -74.0}],
            "incident_count_24h": 1,
        })
        assert response.status_code == 201
        assert response.json()["tourist"]["id"] == "T-1"

        data = app_client.get("/api/tourists/T-1").json()
        assert data["incident_count_24h"] == 1
        assert data["status"] == "safe"

    def test_unknown(self, app_client):
        assert app_client.get("/api/tourists/ghost").status_code == 404

    def test_bad_route_point(self, app_client):
        response = app_client.post("/api/tourists", json={
            "tourist_id": "T-1",
            "expected_route": [{"latitude": 95.0, "longitude": 0}],
        })
        assert response.status_code == 400


class TestGeofence:
    def test_load_and_list(self, app_client):
        assert load_zones(app_client).json()["count"] == 2
        zones = app_client.get("/api/geofence/zones").json()["zones"]
        assert {z["zone_id"] for z in zones} == {"ZONE-TS", "ZONE-SQ"}

    def test_check(self, app_client):
        load_zones(app_client)
        data = app_client.post("/api/geofence/check", json={"latitude": 40.7580, "longitude": -73.9855}).json()
        assert [z["zone_id"] for z in data["zones"]] == ["ZONE-TS"]
        assert [z["zone_id"] for z in data["alerts_triggered"]] == ["ZONE-TS"]

        stats = app_client.get("/api/geofence/zones/ZONE-TS/stats").json()
        assert stats["current_tourists"] == 1
        assert stats["capacity"] == 500

    def test_check_invalid_coordinates(self, app_client):
        response = app_client.post("/api/geofence/check", json={"latitude": 100, "longitude": 0})
        assert response.status_code == 400

    def test_invalid_polygon_rejected(self, app_client):
        bad = dict(SQUARE_ZONE, boundary={"type": "Polygon", "coordinates": [[0, 0], [1, 1]]})
        assert app_client.put("/api/geofence/zones", json=[bad]).status_code == 400

    def test_circle_without_radius_rejected(self, app_client):
        bad = dict(TIMES_SQUARE_ZONE, boundary={"type": "Circle", "center": {"latitude": 0, "longitude": 0}})
        assert app_client.put("/api/geofence/zones", json=[bad]).status_code == 400

    def test_duplicate_ids_rejected(self, app_client):
        response = app_client.put("/api/geofence/zones", json=[SQUARE_ZONE, SQUARE_ZONE])
        assert response.status_code == 400

    def test_missing_zone_stats(self, app_client):
        assert app_client.get("/api/geofence/zones/nope/stats").status_code == 404

    def test_recompute(self, app_client):
        load_zones(app_client)
        app_client.post("/api/geofence/check", json={"latitude": 0.5, "longitude": 0.5})
        app_client.post("/api/location/update", json={"tourist_id": "T-1", "latitude": 0.5, "longitude": 0.5})
        occupancy = app_client.post("/api/geofence/occupancy/recompute").json()["occupancy"]
        assert occupancy == {"ZONE-TS": 0, "ZONE-SQ": 1}


class TestLocation:
    def test_update(self, app_client):
        load_zones(app_client)
        response = app_client.post("/api/location/update", json={
            "tourist_id": "T-1",
            "latitude": 0.5,
            "longitude": 0.5,
            "vitals": {"heart_rate": 80, "battery_level": 50},
        })
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Location updated successfully"
        assert [z["zone_id"] for z in data["alerts_triggered"]] == ["ZONE-SQ"]
        assert data["risk"]["status"] == "safe"

    def test_invalid_latitude(self, app_client):
        response = app_client.post("/api/location/update", json={"tourist_id": "T-1", "latitude": 91, "longitude": 0})
        assert response.status_code == 400

    def test_missing_fields(self, app_client):
        response = app_client.post("/api/location/update", json={"tourist_id": "T-1"})
        assert response.status_code == 422

    def test_abnormal_vitals_escalate(self, app_client):
        data = app_client.post("/api/location/update", json={
            "tourist_id": "T-1",
            "latitude": 10,
            "longitude": 10,
            "vitals": {"heart_rate": 190},
        }).json()
        assert data["anomalies"][0]["type"] == "vitals_anomaly"
        assert data["risk"]["status"] == "emergency"
        assert data["risk"]["dispatched"] is True

    def test_timestamps_without_timezone(self, app_client):
        app_client.post("/api/tourists", json={"tourist_id": "T-naive", "registered_at": "2026-10-17T12:00:00"})
        response = app_client.post("/api/location/update", json={
            "tourist_id": "T-naive",
            "latitude": 40,
            "longitude": -73,
            "timestamp": "2026-10-18T12:00:00",
            "vitals": {"heart_rate": 80, "last_sync_at": "2026-10-18T11:30:00"},
        })
        assert response.status_code == 200
        assert response.json()["detector_failures"] == []

        cycle = app_client.post("/api/analytics/anomalies").json()
        assert cycle["failures"] == []


class TestAnalytics:
    def test_heatmap(self, app_client):
        for i, lon in enumerate((0.5, 0.5005)):
            app_client.post("/api/location/update", json={"tourist_id": f"T-{i}", "latitude": 0.5, "longitude": lon})

        data = app_client.get("/api/analytics/heatmap", params={"bounds": "1,0,1,0", "grid_size": 10}).json()
        assert data["statistics"]["total_tourists"] == 2
        assert data["heatmap_data"]
        assert len(data["tourist_clusters"]) == 1

    def test_heatmap_bad_bounds(self, app_client):
        response = app_client.get("/api/analytics/heatmap", params={"bounds": "0,1,1,0"})
        assert response.status_code == 400

    def test_heatmap_grid_size_limit(self, app_client):
        response = app_client.get("/api/analytics/heatmap", params={"bounds": "1,0,1,0", "grid_size": 0})
        assert response.status_code == 422

    def test_clusters(self, app_client):
        for i, lon in enumerate((0.5, 0.5005, 3.0)):
            app_client.post("/api/location/update", json={"tourist_id": f"T-{i}", "latitude": 0.5, "longitude": lon})
        data = app_client.get("/api/analytics/clusters").json()
        assert data["total_clusters"] == 1
        assert data["clusters"][0]["count"] == 2

    def test_anomalies_view_is_read_only(self, app_client):
        app_client.post("/api/tourists", json={"tourist_id": "T-1", "incident_count_24h": 3})
        data = app_client.get("/api/analytics/anomalies").json()
        assert data["total_detected"] == 1
        assert data["anomalies"][0]["type"] == "behavior_pattern"
        assert data["risk_levels"]["medium"] == 1
        assert "status_changes" not in data
        assert app_client.get("/api/tourists/T-1").json()["status"] == "safe"

    def test_detection_cycle(self, app_client):
        app_client.post("/api/tourists", json={"tourist_id": "T-1", "incident_count_24h": 3})
        data = app_client.post("/api/analytics/anomalies").json()
        assert data["total_detected"] == 1
        assert [c["tourist_id"] for c in data["status_changes"]] == ["T-1"]
        assert app_client.get("/api/tourists/T-1").json()["status"] == "at-risk"


class TestEmergency:
    def test_panic(self, app_client):
        app_client.post("/api/tourists", json={"tourist_id": "T-1"})
        response = app_client.post("/api/emergency/panic", json={
            "tourist_id": "T-1",
            "location": {"latitude": 40.0, "longitude": -74.0},
            "message": "help",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "emergency_response_initiated"
        assert data["tourist"]["status"] == "emergency"
        assert data["tourist"]["dispatched"] is True

        repeat = app_client.post("/api/emergency/panic", json={"tourist_id": "T-1"}).json()
        assert repeat["tourist"]["dispatched"] is False

    def test_panic_unknown_tourist(self, app_client):
        response = app_client.post("/api/emergency/panic", json={"tourist_id": "ghost"})
        assert response.status_code == 404

    def test_panic_routed_to_dispatcher(self, app_client):
        dispatcher = MagicMock()
        dispatcher.handle_dispatch = AsyncMock(return_value=True)
        app_client.app.state.dispatcher = dispatcher

        app_client.post("/api/tourists", json={"tourist_id": "T-1"})
        app_client.post("/api/emergency/panic", json={"tourist_id": "T-1", "message": "help"})
        app_client.post("/api/emergency/panic", json={"tourist_id": "T-1"})

        dispatcher.handle_dispatch.assert_awaited_once()
        event = dispatcher.handle_dispatch.await_args.args[0]
        assert event.tourist_id == "T-1"
        assert event.reason == "panic"
        assert event.message == "help"

    def test_acknowledge(self, app_client):
        app_client.post("/api/tourists", json={"tourist_id": "T-1"})
        app_client.post("/api/emergency/panic", json={"tourist_id": "T-1"})
        data = app_client.post("/api/emergency/acknowledge", json={"tourist_id": "T-1"}).json()
        assert data["status"] == "safe"
        assert data["previous_status"] == "emergency"

    def test_acknowledge_cannot_raise(self, app_client):
        app_client.post("/api/tourists", json={"tourist_id": "T-1"})
        response = app_client.post("/api/emergency/acknowledge", json={"tourist_id": "T-1", "status": "emergency"})
        assert response.status_code == 400


class TestAlertFeed:
    def test_heartbeat(self, app_client):
        with app_client.websocket_connect("/ws/dash-1") as ws:
            ws.send_text("hello")
            assert ws.receive_json()["type"] == "heartbeat"

    def test_location_update_broadcast(self, app_client):
        with app_client.websocket_connect("/ws/dash-1") as ws:
            app_client.post("/api/location/update", json={"tourist_id": "T-1", "latitude": 10, "longitude": 10})
            message = ws.receive_json()
            assert message["type"] == "location_update"
            assert message["tourist_id"] == "T-1"
