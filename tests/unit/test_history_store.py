"""
Unit tests for utils/history_store.py
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from multicloud_deploy.exceptions import HistoryStoreError, ValidationError
from multicloud_deploy.models.deployment import (
    DeploymentHistoryEntry,
    DeploymentUrls,
    StepError,
    StepRecord,
)
from multicloud_deploy.utils.history_store import DeploymentHistoryStore

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_entry(minutes=0, status="success", errors=None):
    timestamp = START + timedelta(minutes=minutes)
    return DeploymentHistoryEntry(
        timestamp=timestamp,
        end_time=timestamp + timedelta(seconds=30),
        status=status,
        results=DeploymentUrls(compute_url="https://app-worker.workers.dev"),
        errors=errors,
        steps=[StepRecord(step="deploy-worker", status="completed", details="ok", logs=["line"])],
    )


@pytest.fixture
def store(tmp_path):
    return DeploymentHistoryStore(tmp_path / "history", limit=3)


# ── append / list ───────────────────────────────────────────────────────────

class TestAppend:
    def test_newest_first(self, store):
        store.append("production", make_entry(0))
        store.append("production", make_entry(1, status="failed"))

        history = store.list("production")
        assert [entry.status for entry in history] == ["failed", "success"]
        assert history[0].timestamp == START + timedelta(minutes=1)

    def test_limit_evicts_oldest(self, store):
        for minute in range(5):
            store.append("production", make_entry(minute))

        history = store.list("production")
        assert len(history) == 3
        assert history[-1].timestamp == START + timedelta(minutes=2)

    def test_list_limit(self, store):
        for minute in range(3):
            store.append("production", make_entry(minute))
        assert len(store.list("production", limit=2)) == 2

    def test_round_trip_keeps_steps_and_errors(self, store):
        store.append("production", make_entry(errors=[StepError(step="configure-cors", error="bad rules")]))
        entry = store.latest("production")
        assert entry.errors[0].step == "configure-cors"
        assert entry.steps[0].logs == ["line"]
        assert entry.results.compute_url == "https://app-worker.workers.dev"

    def test_file_format(self, store):
        store.append("production", make_entry())
        data = json.loads((store.history_dir / "production.json").read_text())

        assert data["deploymentId"] == "production"
        entry = data["history"][0]
        assert entry["endTime"].startswith("2024-05-01T12:00:30")
        assert entry["results"]["computeUrl"] == "https://app-worker.workers.dev"
        assert "errors" not in entry

    def test_no_temp_files_left(self, store):
        store.append("production", make_entry())
        assert [p.name for p in store.history_dir.iterdir()] == ["production.json"]


# ── reads ───────────────────────────────────────────────────────────────────

class TestRead:
    def test_unknown_deployment(self, store):
        assert store.list("staging") == []
        assert store.latest("staging") is None

    def test_deployment_ids(self, store):
        store.append("staging", make_entry())
        store.append("production", make_entry())
        (store.history_dir / ".tmp_partial.json").write_text("{}")
        assert store.deployment_ids() == ["production", "staging"]

    def test_corrupted_file(self, store):
        (store.history_dir / "production.json").write_text("{not json")
        with pytest.raises(HistoryStoreError):
            store.list("production")

    @pytest.mark.parametrize("bad_id", ["../escape", "a/b", ".hidden", ""])
    def test_invalid_deployment_id(self, store, bad_id):
        with pytest.raises(ValidationError):
            store.list(bad_id)
