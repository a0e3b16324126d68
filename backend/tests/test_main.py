import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import main


@pytest.mark.asyncio
async def test_readiness_requires_database_and_tier_catalog(monkeypatch):
    session = SimpleNamespace(execute=AsyncMock())
    monkeypatch.setattr(main, "tier_catalog", SimpleNamespace(list_active=lambda: ["GOLD"]))

    out = await main.readiness_check(session=session)

    assert out["status"] == "ready"
    assert out["checks"] == {"database": True, "tier_catalog": True}
    session.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_readiness_reports_empty_catalog_and_broken_database(monkeypatch):
    session = SimpleNamespace(execute=AsyncMock(side_effect=RuntimeError("database is locked")))
    monkeypatch.setattr(main, "tier_catalog", SimpleNamespace(list_active=lambda: []))

    out = await main.readiness_check(session=session)

    assert out["status"] == "not_ready"
    assert out["checks"] == {"database": False, "tier_catalog": False}


def test_router_is_mounted_under_api_prefix():
    # the generated schema lists mounted paths whatever the router wrapping
    paths = set(main.app.openapi()["paths"])

    assert "/api/providers/payouts/pending" in paths
    assert "/api/providers/{provider_id}/revenue-share/calculate" in paths
    assert "/health/ready" in paths
