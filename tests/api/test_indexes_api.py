"""
Test suite for the index status and build request endpoints.

System role: Verification of the index HTTP API
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from deltasearch.api.deps import get_indexing_service
from deltasearch.api.main import create_app
from deltasearch.application.services.indexing_service import IndexStatus
from deltasearch.boundary.db.models.job_model import IndexJobModel, JobStatus, TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.boundary.search.segment_store import SegmentInfo
from deltasearch.core.exceptions import IndexConfigurationError, IndexNotFoundError
from support import EPOCH


@pytest.fixture
def client(mock_indexing_service):
    app = create_app()
    app.dependency_overrides[get_indexing_service] = lambda: mock_indexing_service
    return TestClient(app)


def make_status() -> IndexStatus:
    return IndexStatus(
        name="articles",
        model="Article",
        strategy="delayed",
        enabled=True,
        delta=SegmentInfo(
            index_name="articles",
            kind=SegmentKind.DELTA,
            document_count=3,
            deleted_count=1,
            built_at=EPOCH,
            snapshot_at=EPOCH,
            size_bytes=512,
        ),
        dirty_records=3,
        jobs={"queued": 1, "running": 0, "completed": 4, "failed": 0},
    )


def make_job(target: SegmentKind) -> IndexJobModel:
    return IndexJobModel(
        id=uuid.uuid4(),
        index_name="articles",
        target=target,
        reason=TriggerReason.MANUAL,
        status=JobStatus.QUEUED,
    )


class TestIndexStatusEndpoints:
    """Test suite for GET /api/v1/indexes."""

    def test_list_indexes_should_return_statuses(self, client, mock_indexing_service) -> None:
        """Test every index status is listed."""
        # Arrange
        mock_indexing_service.statuses.return_value = [
            make_status(),
            IndexStatus(name="notes", model="", strategy="", enabled=False, error="bad config"),
        ]

        # Act
        response = client.get("/api/v1/indexes")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert [item["name"] for item in data] == ["articles", "notes"]
        assert data[0]["delta"]["document_count"] == 3
        assert data[0]["core"] is None
        assert data[1]["enabled"] is False
        assert data[1]["error"] == "bad config"

    def test_get_index_should_return_404_for_unknown(self, client, mock_indexing_service) -> None:
        """Test unknown index names map to 404."""
        # Arrange
        mock_indexing_service.status.side_effect = IndexNotFoundError("missing")

        # Act
        response = client.get("/api/v1/indexes/missing")

        # Assert
        assert response.status_code == 404

    def test_get_index_should_return_status(self, client, mock_indexing_service) -> None:
        """Test a single index status round trip."""
        # Arrange
        mock_indexing_service.status.return_value = make_status()

        # Act
        response = client.get("/api/v1/indexes/articles")

        # Assert
        assert response.status_code == 200
        assert response.json()["jobs"]["completed"] == 4
        mock_indexing_service.status.assert_awaited_once_with("articles")


class TestBuildRequestEndpoints:
    """Test suite for POST /api/v1/indexes/{name}/delta and /rebuild."""

    def test_rebuild_should_queue_core_job(self, client, mock_indexing_service) -> None:
        """Test a rebuild request answers 202 with the queued job."""
        # Arrange
        job = make_job(SegmentKind.CORE)
        mock_indexing_service.enqueue.return_value = (job, True)

        # Act
        response = client.post("/api/v1/indexes/articles/rebuild")

        # Assert
        assert response.status_code == 202
        data = response.json()
        assert data["job_id"] == str(job.id)
        assert data["target"] == "core"
        assert data["coalesced"] is False
        mock_indexing_service.enqueue.assert_awaited_once_with(
            "articles", SegmentKind.CORE, TriggerReason.MANUAL
        )

    def test_delta_should_report_coalesced_job(self, client, mock_indexing_service) -> None:
        """Test a request matching a queued job reuses it."""
        # Arrange
        mock_indexing_service.enqueue.return_value = (make_job(SegmentKind.DELTA), False)

        # Act
        response = client.post("/api/v1/indexes/articles/delta")

        # Assert
        assert response.status_code == 202
        assert response.json()["coalesced"] is True

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (IndexNotFoundError("articles"), 404),
            (IndexConfigurationError("no delta segment", index_name="articles"), 409),
        ],
    )
    def test_enqueue_errors_should_map_to_status(
        self,
        client,
        mock_indexing_service,
        error,
        expected,
    ) -> None:
        """Test configuration and lookup errors map to HTTP codes."""
        # Arrange
        mock_indexing_service.enqueue.side_effect = error

        # Act
        response = client.post("/api/v1/indexes/articles/delta")

        # Assert
        assert response.status_code == expected
