"""Tests for MangaDex enrichment API routes."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mangaquest.core.config import get_settings, reload_settings
from mangaquest.core.database import create_database_engine, create_session_factory, init_database
from mangaquest.core.dependencies import get_mangadex_client, get_matching_config
from mangaquest.core.mangadex.client import MangaDexClient
from mangaquest.core.matching import MatchingConfig
from mangaquest.db.models import Manga

USER_AGENT = "MangaQuestTests/1.0"


def make_candidate(mangadex_id: str, title: str) -> dict[str, Any]:
    return {
        "id": mangadex_id,
        "type": "manga",
        "attributes": {
            "title": {"en": title},
            "altTitles": [{"ja": f"{title} (ja)"}],
            "description": {"en": f"About {title}"},
            "originalLanguage": "ja",
            "publicationDemographic": "shounen",
            "contentRating": "safe",
            "tags": [{"id": "tag-action", "attributes": {"name": {"en": "Action"}, "group": "genre"}}],
        },
        "relationships": [
            {"id": "author-1", "type": "author", "attributes": {"name": "Oda Eiichiro"}},
        ],
    }


@pytest.fixture
async def session(isolated_data_dir) -> AsyncIterator[SQLModelAsyncSession]:
    """Session on the same database file the app uses."""
    engine = create_database_engine(get_settings().database_file, echo=False)
    async_session_factory = create_session_factory(engine)
    await init_database(engine)

    async with async_session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def mangadex_catalog() -> dict[str, Any]:
    """Search results by title; an int value answers with that HTTP status."""
    return {}


@pytest.fixture
def mangadex_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def client(
    session: SQLModelAsyncSession,
    mangadex_catalog: dict[str, Any],
    mangadex_requests: list[httpx.Request],
) -> TestClient:
    """Test client with the MangaDex API mocked at the transport level."""
    from mangaquest.app import create_app

    app = create_app()

    def handler(request: httpx.Request) -> httpx.Response:
        mangadex_requests.append(request)
        results = mangadex_catalog.get(request.url.params.get("title", ""), [])
        if isinstance(results, int):
            return httpx.Response(results, json={"result": "error"})
        return httpx.Response(200, json={"result": "ok", "data": results})

    def mangadex_client_override() -> MangaDexClient:
        return MangaDexClient(
            user_agent=USER_AGENT,
            max_retries=0,
            retry_backoff_seconds=0,
            transport=httpx.MockTransport(handler),
        )

    app.dependency_overrides[get_mangadex_client] = mangadex_client_override
    app.dependency_overrides[get_matching_config] = lambda: MatchingConfig(batch_delay_seconds=0)

    return TestClient(app)


async def add_manga(session: SQLModelAsyncSession, title: str, api_id: str, **fields: Any) -> Manga:
    manga = Manga(api_id=api_id, title=title, **fields)
    session.add(manga)
    await session.commit()
    await session.refresh(manga)
    return manga


@pytest.fixture
async def one_piece(session: SQLModelAsyncSession) -> Manga:
    return await add_manga(session, "One Piece", "content-op", last_fetched_at=int(time.time()))


@pytest.fixture
async def recently_synced(session: SQLModelAsyncSession) -> Manga:
    return await add_manga(
        session,
        "Blue Lock",
        "content-bl",
        mangadex_last_synced_at=int(time.time()) - 3600,
    )


@pytest.fixture
async def library(session: SQLModelAsyncSession) -> list[Manga]:
    now = int(time.time())
    return [
        await add_manga(session, "One Piece", "content-op", last_fetched_at=now),
        await add_manga(session, "Unknown Doujin", "content-ud", last_fetched_at=now - 10),
        await add_manga(session, "Chainsaw Man", "content-cm", last_fetched_at=now - 20),
    ]


class TestSyncActionEndpoint:
    """Test POST/GET /api/mangadex-sync."""

    def test_enrich_single_by_manga_id(
        self,
        client: TestClient,
        one_piece: Manga,
        mangadex_catalog: dict[str, Any],
        mangadex_requests: list[httpx.Request],
    ) -> None:
        mangadex_catalog["One Piece"] = [
            make_candidate("md-film", "One Piece Film Red"),
            make_candidate("md-op", "One Piece"),
        ]

        response = client.post(
            "/api/mangadex-sync",
            json={"action": "enrichSingle", "params": {"mangaId": one_piece.id}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["matched"] is True
        assert data["mangadex_id"] == "md-op"
        assert data["metadata"] == {
            "authors": ["Oda Eiichiro"],
            "artists": [],
            "tags": 1,
            "alt_titles": 1,
        }
        assert data["last_synced"].endswith("Z")

        assert len(mangadex_requests) == 1
        assert mangadex_requests[0].headers["User-Agent"] == USER_AGENT

    def test_enrich_single_by_api_id(
        self, client: TestClient, one_piece: Manga, mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = [make_candidate("md-op", "One Piece")]

        response = client.post(
            "/api/mangadex-sync",
            json={"action": "enrichSingle", "params": {"apiId": "content-op"}},
        )

        assert response.status_code == 200
        assert response.json()["manga_id"] == one_piece.id

    def test_default_action_is_enrich_single(
        self, client: TestClient, one_piece: Manga, mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = [make_candidate("md-op", "One Piece")]

        response = client.post("/api/mangadex-sync", json={"params": {"mangaId": one_piece.id}})

        assert response.status_code == 200
        assert response.json()["matched"] is True

    def test_missing_ids(self, client: TestClient) -> None:
        response = client.post("/api/mangadex-sync", json={"action": "enrichSingle", "params": {}})

        assert response.status_code == 400
        assert response.json() == {"error": "mangaId or apiId required"}

    def test_no_body(self, client: TestClient) -> None:
        response = client.post("/api/mangadex-sync")

        assert response.status_code == 400
        assert response.json() == {"error": "mangaId or apiId required"}

    def test_manga_not_found(self, client: TestClient) -> None:
        response = client.post(
            "/api/mangadex-sync",
            json={"action": "enrichSingle", "params": {"mangaId": "missing"}},
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Manga not found"}

    def test_invalid_action(self, client: TestClient) -> None:
        response = client.post("/api/mangadex-sync", json={"action": "dropTables"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "Invalid action",
            "available": ["enrichSingle", "enrichBatch", "health"],
        }

    def test_invalid_params(self, client: TestClient) -> None:
        response = client.post(
            "/api/mangadex-sync",
            json={"action": "enrichBatch", "params": {"limit": "lots"}},
        )

        assert response.status_code == 400
        assert "limit" in response.json()["error"]

    def test_query_action_overrides_body(self, client: TestClient, one_piece: Manga) -> None:
        response = client.post(
            "/api/mangadex-sync?action=health",
            json={"action": "enrichSingle", "params": {"mangaId": one_piece.id}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["stats"]["total_manga"] == 1

    def test_enrich_batch_action(
        self, client: TestClient, library: list[Manga], mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = [make_candidate("md-op", "One Piece")]
        mangadex_catalog["Chainsaw Man"] = [make_candidate("md-csm", "Chainsaw Man")]

        response = client.post(
            "/api/mangadex-sync",
            json={"action": "enrichBatch", "params": {"limit": 10}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 3
        assert data["matched"] == 2
        assert data["failed"] == 0
        assert [item["title"] for item in data["results"]] == [
            "One Piece",
            "Unknown Doujin",
            "Chainsaw Man",
        ]

        # Every row has been attempted, so a second run finds nothing
        again = client.post("/api/mangadex-sync", json={"action": "enrichBatch"})
        assert again.json() == {
            "success": True,
            "processed": 0,
            "matched": 0,
            "failed": 0,
            "results": [],
            "message": "No manga needing enrichment",
        }

    def test_health_over_get(self, client: TestClient, library: list[Manga]) -> None:
        response = client.get("/api/mangadex-sync?action=health")

        assert response.status_code == 200
        assert response.json()["stats"] == {
            "total_manga": 3,
            "enriched": 0,
            "pending": 3,
            "coverage": "0.0%",
        }

    def test_get_rejects_mutating_actions(self, client: TestClient) -> None:
        response = client.get("/api/mangadex-sync?action=enrichBatch")

        assert response.status_code == 400
        assert response.json()["available"] == ["health"]

    def test_upstream_failure_reads_as_no_match(
        self, client: TestClient, one_piece: Manga, mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = 500

        response = client.post(
            "/api/mangadex-sync",
            json={"action": "enrichSingle", "params": {"mangaId": one_piece.id}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["matched"] is False
        assert data["reason"] == "No match found on MangaDex"

        health = client.get("/api/manga/enrichment/health").json()
        assert health["stats"]["pending"] == 0
        assert health["stats"]["enriched"] == 0


class TestRestEndpoints:
    """Test the /api/manga REST routes."""

    def test_enrich_by_path(
        self, client: TestClient, one_piece: Manga, mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = [make_candidate("md-op", "One Piece")]

        response = client.post(f"/api/manga/{one_piece.id}/enrich")

        assert response.status_code == 200
        assert response.json()["mangadex_id"] == "md-op"

    def test_recently_synced_is_skipped(
        self,
        client: TestClient,
        recently_synced: Manga,
        mangadex_requests: list[httpx.Request],
    ) -> None:
        response = client.post(f"/api/manga/{recently_synced.id}/enrich")

        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is True
        assert data["reason"] == "Recently synced"
        assert mangadex_requests == []

    def test_force_bypasses_cooldown(
        self,
        client: TestClient,
        recently_synced: Manga,
        mangadex_requests: list[httpx.Request],
    ) -> None:
        response = client.post(f"/api/manga/{recently_synced.id}/enrich?force=true")

        assert response.status_code == 200
        assert response.json()["skipped"] is False
        assert len(mangadex_requests) == 1

    def test_enrich_unknown_manga(self, client: TestClient) -> None:
        response = client.post("/api/manga/missing/enrich")

        assert response.status_code == 404
        assert response.json() == {"error": "Manga not found"}

    def test_batch_records_run(
        self, client: TestClient, library: list[Manga], mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = [make_candidate("md-op", "One Piece")]

        response = client.post("/api/manga/enrich-batch", json={"limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["matched"] == 1

        runs = client.get("/api/manga/enrichment/runs").json()
        assert len(runs) == 1
        assert runs[0]["id"] == data["run_id"]
        assert runs[0]["trigger"] == "api"
        assert runs[0]["status"] == "completed"
        assert runs[0]["batch_limit"] == 2
        assert runs[0]["processed"] == 2

    def test_health_coverage(
        self, client: TestClient, library: list[Manga], mangadex_catalog: dict[str, Any]
    ) -> None:
        mangadex_catalog["One Piece"] = [make_candidate("md-op", "One Piece")]
        client.post(f"/api/manga/{library[0].id}/enrich")

        response = client.get("/api/manga/enrichment/health")

        assert response.status_code == 200
        assert response.json()["stats"] == {
            "total_manga": 3,
            "enriched": 1,
            "pending": 2,
            "coverage": "33.3%",
        }

    def test_upsert_manga(self, client: TestClient, session: SQLModelAsyncSession) -> None:
        created = client.put(
            "/api/manga",
            json={"api_id": "content-spy", "title": "Spy x Family", "status": "ongoing"},
        )

        assert created.status_code == 200
        data = created.json()
        assert data["api_id"] == "content-spy"
        assert data["mangadex_id"] is None
        assert data["mangadex_last_synced_at"] is None

        updated = client.put(
            "/api/manga",
            json={"api_id": "content-spy", "title": "SPY×FAMILY", "latest_chapter_number": 110.5},
        )

        assert updated.status_code == 200
        assert updated.json()["id"] == data["id"]
        assert updated.json()["title"] == "SPY×FAMILY"
        assert client.get("/api/manga/enrichment/health").json()["stats"]["total_manga"] == 1

    def test_upsert_requires_title(self, client: TestClient) -> None:
        response = client.put("/api/manga", json={"api_id": "content-1"})

        assert response.status_code == 400
        assert "title" in response.json()["error"]


class TestSyncSecret:
    """Test the optional shared secret."""

    @pytest.fixture
    def secret(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> str:
        monkeypatch.setenv("MANGAQUEST_SYNC_SECRET", "cron-secret")
        reload_settings()
        return "cron-secret"

    def test_missing_secret_rejected(self, client: TestClient, secret: str) -> None:
        response = client.post("/api/mangadex-sync", json={"action": "health"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid sync secret"}

    def test_wrong_secret_rejected(self, client: TestClient, secret: str) -> None:
        response = client.post("/api/mangadex-sync?secret=nope", json={"action": "health"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid sync secret"}

    def test_secret_in_query(self, client: TestClient, secret: str) -> None:
        response = client.post(f"/api/mangadex-sync?secret={secret}", json={"action": "health"})

        assert response.status_code == 200

    def test_secret_in_header(self, client: TestClient, secret: str) -> None:
        response = client.post(
            "/api/manga/enrich-batch",
            json={},
            headers={"X-Sync-Secret": secret},
        )

        assert response.status_code == 200

    def test_read_only_routes_stay_open(self, client: TestClient, secret: str) -> None:
        assert client.get("/api/manga/enrichment/health").status_code == 200
        assert client.get("/api/mangadex-sync").status_code == 200

    def test_rejection_on_rest_route(self, client: TestClient, secret: str) -> None:
        response = client.put("/api/manga", json={"api_id": "content-9", "title": "Blue Lock"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid sync secret"}


class TestConfigurationErrors:
    """Test missing client identification."""

    def test_missing_user_agent(
        self, client: TestClient, one_piece: Manga, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        client.app.dependency_overrides.pop(get_mangadex_client)  # type: ignore[attr-defined]
        monkeypatch.setenv("MANGAQUEST_MANGADEX_USER_AGENT", "")
        reload_settings()

        response = client.post(f"/api/manga/{one_piece.id}/enrich")

        assert response.status_code == 500
        assert "user agent" in response.json()["error"]
