"""
Tests for scripts/watchlist.py.
"""

from __future__ import annotations

import argparse
import importlib.util
from decimal import Decimal
from pathlib import Path
from types import ModuleType

import pytest

from src.db import create_db_engine
from src.models.repository import WatchlistRepository

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "watchlist.py"
FETA = "https://www.sklavenitis.gr/product/feta-400g"


@pytest.fixture(scope="module")
def cli() -> ModuleType:
    spec = importlib.util.spec_from_file_location("watchlist_cli", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestParseArgs:
    def test_defaults(self, cli: ModuleType) -> None:
        args = cli.parse_args(["--url", FETA])
        assert args.url == FETA
        assert args.name is None
        assert args.target is None
        assert args.inactive is False

    def test_target_is_decimal(self, cli: ModuleType) -> None:
        args = cli.parse_args(["--url", FETA, "--target", "4.50", "--inactive"])
        assert args.target == Decimal("4.50")
        assert args.inactive is True

    @pytest.mark.parametrize("value", ["abc", "0", "-1", "nan", "NaN", "sNaN", "Infinity", "-inf"])
    def test_bad_target_rejected(self, cli: ModuleType, value: str) -> None:
        with pytest.raises(SystemExit):
            cli.parse_args(["--url", FETA, "--target", value])

    def test_url_required(self, cli: ModuleType) -> None:
        with pytest.raises(SystemExit):
            cli.parse_args([])


@pytest.mark.asyncio
async def test_upsert_writes_item(cli: ModuleType, tmp_path: Path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    args = argparse.Namespace(url=FETA, name="Φέτα", target=Decimal("4.50"), inactive=True)

    item_id = await cli.upsert(args, database_url=url)

    engine, session_factory = await create_db_engine(url)
    try:
        async with session_factory() as session:
            [item] = await WatchlistRepository(session).list_watch_items()
    finally:
        await engine.dispose()

    assert item.id == item_id
    assert item.product_name == "Φέτα"
    assert item.target_price == Decimal("4.50")
    assert item.active is False


@pytest.mark.asyncio
async def test_upsert_rejects_malformed_url(cli: ModuleType, tmp_path: Path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    args = argparse.Namespace(url="http://[::1", name=None, target=None, inactive=False)

    with pytest.raises(ValueError, match="product_url"):
        await cli.upsert(args, database_url=url)
