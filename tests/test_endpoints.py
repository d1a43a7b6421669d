"""
Integration tests for API endpoints using SQLite in-memory DB.
"""


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert r.json()["db"] == "ok"


class TestProgress:
    def test_fresh_install(self, client):
        r = client.get("/progress")
        assert r.status_code == 200
        body = r.json()
        assert body["current_level"] == "emergency"
        assert body["current_level_index"] == 1
        assert body["relapse_count"] == 0
        assert body["total_program_days"] == 180
        assert body["metrics"]["current_streak_days"] == 0
        assert body["metrics"]["days_left_in_level"] == 14
        assert len(body["metrics"]["weekly_statuses"]) == 7

    def test_catalog(self, client):
        r = client.get("/progress/catalog")
        assert r.status_code == 200
        body = r.json()
        assert [lvl["level"] for lvl in body["levels"]] == [
            "emergency", "withdrawal", "reality", "glow_up", "unbothered",
        ]
        assert len(body["power_actions"]) == 11
        assert len(body["badges"]) == 11


class TestRelapse:
    def test_record_relapse(self, client):
        r = client.post("/progress/relapses", json={})
        assert r.status_code == 200
        body = r.json()
        assert body["persisted"] is True
        assert body["error"] is None
        assert body["progress"]["relapse_count"] == 1
        assert body["progress"]["last_relapse_date"] is not None
        assert len(body["progress"]["relapse_dates"]) == 1

    def test_reset(self, client):
        r = client.post("/progress/reset")
        assert r.status_code == 200
        progress = r.json()["progress"]
        assert progress["current_level"] == "emergency"
        assert progress["relapse_count"] == 1


class TestPowerActions:
    def test_one_time_action_counted_once(self, client):
        client.post("/progress/power-actions", json={"type": "delete_photos", "note": "done"})
        r = client.post("/progress/power-actions", json={"type": "delete_photos"})
        assert r.status_code == 200
        progress = r.json()["progress"]
        assert len(progress["power_actions"]) == 1
        assert progress["power_actions"][0]["note"] == "done"
        assert progress["bonus_days"] == 1.0
        assert "deleted_folder" in [b["type"] for b in progress["badges"]]

    def test_repeatable_action(self, client):
        for _ in range(2):
            r = client.post("/progress/power-actions", json={"type": "help_others"})
        progress = r.json()["progress"]
        assert len(progress["power_actions"]) == 2
        assert progress["lifetime_bonus_days"] == 0.5
        assert progress["metrics"]["total_power_actions_completed"] == 2

    def test_unknown_type_rejected(self, client):
        r = client.post("/progress/power-actions", json={"type": "skydiving"})
        assert r.status_code == 422
        body = r.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "type"


class TestCheckIns:
    def test_values_clamped(self, client):
        r = client.post("/progress/check-ins", json={"mood": 9, "urge": -3})
        assert r.status_code == 200
        check_in = r.json()["progress"]["check_ins"][0]
        assert (check_in["mood"], check_in["urge"]) == (5, 0)

    def test_same_day_overwrites(self, client):
        client.post("/progress/check-ins", json={"mood": 2, "urge": 8, "note": "rough"})
        r = client.post("/progress/check-ins", json={"mood": 4, "urge": 2, "note": "better"})
        progress = r.json()["progress"]
        assert len(progress["check_ins"]) == 1
        assert progress["check_ins"][0]["note"] == "better"
        assert progress["metrics"]["has_checked_in_today"] is True

    def test_missing_mood_rejected(self, client):
        r = client.post("/progress/check-ins", json={"urge": 3})
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestBadges:
    def test_grant_badge_once(self, client):
        client.post("/progress/badges", json={"type": "month_streak"})
        r = client.post("/progress/badges", json={"type": "month_streak"})
        badges = r.json()["progress"]["badges"]
        assert [b["type"] for b in badges] == ["month_streak"]
        assert badges[0]["title"] == "Month Master"

    def test_unknown_badge_rejected(self, client):
        r = client.post("/progress/badges", json={"type": "legendary"})
        assert r.status_code == 422


class TestProfile:
    def test_update_profile(self, client):
        r = client.put("/progress/profile", json={"ex_name": "Sam", "total_program_days": 90})
        assert r.status_code == 200
        progress = r.json()["progress"]
        assert progress["ex_name"] == "Sam"
        assert progress["total_program_days"] == 90
        assert progress["metrics"]["days_left_in_program"] == 90

    def test_zero_program_days_rejected(self, client):
        r = client.put("/progress/profile", json={"total_program_days": 0})
        assert r.status_code == 422


class TestMaintenance:
    def test_integrity_check_on_clean_storage(self, client):
        r = client.post("/progress/integrity-check")
        assert r.status_code == 200
        body = r.json()
        assert body["persisted"] is True
        assert isinstance(body["record_id"], int)
        assert body["report"] == {
            "duplicate_records_removed": 0,
            "orphans_removed": 0,
            "duplicate_children_removed": 0,
            "fields_corrected": 0,
        }

    def test_delete_starts_over(self, client):
        client.post("/progress/power-actions", json={"type": "block_ex"})
        client.post("/progress/relapses", json={})

        r = client.delete("/progress")
        assert r.status_code == 200
        body = r.json()
        assert body["persisted"] is True
        assert body["progress"]["relapse_count"] == 0
        assert body["progress"]["power_actions"] == []
        assert body["progress"]["badges"] == []

        # The fresh record accepts writes again.
        r = client.post("/progress/relapses", json={})
        assert r.json()["persisted"] is True
