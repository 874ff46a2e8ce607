"""Tests for the book overview: AUM, headcounts, top holdings, recent change."""

from __future__ import annotations

from datetime import date

import pytest

from conftest import make_snapshots
from custodia.book.assets import AssetBalance
from custodia.portfolio.overview import (
    get_portfolio_overview,
    portfolio_overview,
    summarize_performance,
    top_crypto_assets,
)
from custodia.storage import queries


def _token(asset_id, symbol, usd, chain="ethereum"):
    return AssetBalance(asset_id, chain, symbol, 1.0, usd)


class TestTopCryptoAssets:
    def test_grouped_by_symbol_across_wallets_and_chains(self):
        lines = [
            _token("w1", "USDC", 300),
            _token("w2", "USDC", 200, chain="polygon"),
            _token("w1", "ETH", 400),
        ]
        top = top_crypto_assets(lines)
        assert [(a.symbol, a.value_usd) for a in top] == [("USDC", 500), ("ETH", 400)]
        assert all(a.asset_class == "Crypto" for a in top)

    def test_unpriced_and_empty_lines_skipped(self):
        lines = [_token("w1", "ETH", 0), AssetBalance("w1", "ethereum", "DUST", 5.0, None)]
        assert top_crypto_assets(lines) == []

    def test_limited(self):
        lines = [_token("w1", f"T{i}", 10 + i) for i in range(8)]
        top = top_crypto_assets(lines, limit=3)
        assert [a.symbol for a in top] == ["T7", "T6", "T5"]


class TestSummarizePerformance:
    def test_no_snapshots(self):
        assert summarize_performance([]) is None

    def test_day_week_month_changes(self):
        snapshots = make_snapshots([float(v) for v in range(100, 140)])
        summary = summarize_performance(snapshots)
        assert summary.as_of == date(2026, 2, 9)
        assert summary.day_change_pct == pytest.approx((139 - 138) / 138 * 100)
        assert summary.week_change_pct == pytest.approx((139 - 132) / 132 * 100)
        assert summary.month_change_pct == pytest.approx((139 - 109) / 109 * 100)
        assert summary.total_roi_pct == pytest.approx((139 - 109) / 109 * 100)
        assert summary.total_profit_loss_usd == pytest.approx(30)

    def test_gaps_use_latest_older_snapshot(self):
        snapshots = make_snapshots([100.0, 120.0], step_days=2)
        summary = summarize_performance(snapshots)
        assert summary.day_change_pct == pytest.approx(20)
        assert summary.week_change_pct == 0
        assert summary.total_roi_pct == pytest.approx(20)

    def test_zero_base_gives_zero(self):
        summary = summarize_performance(make_snapshots([0.0, 50.0]))
        assert summary.day_change_pct == 0
        assert summary.total_roi_pct == 0
        assert summary.total_profit_loss_usd == 50


class TestPortfolioOverview:
    def test_empty_book(self):
        overview = portfolio_overview([], [], total_wallets=0, total_accounts=0, total_clients=0)
        assert overview.total_aum_usd == 0
        assert overview.crypto_percentage == 0
        assert overview.top_assets == []
        assert overview.performance is None

    def test_top_assets_mix_classes(self):
        wallets = [_token("w1", "ETH", 600), _token("w1", "BTC", 100)]
        accounts = [AssetBalance("a1", "BRL", "BRL", 1000.0, balance_type="CURRENT")]
        overview = portfolio_overview(
            wallets, accounts, total_wallets=1, total_accounts=1, total_clients=3,
        )
        assert overview.total_aum_usd == pytest.approx(900)
        assert [a.symbol for a in overview.top_assets] == ["ETH", "BRL", "BTC"]
        brl = overview.top_assets[1]
        assert brl.name == "BRL Accounts"
        assert brl.value_usd == pytest.approx(200)
        assert sum(a.percentage for a in overview.top_assets) == pytest.approx(100)


class TestFromDatabase:
    def test_seeded_book(self, book_db):
        overview = get_portfolio_overview(book_db)
        assert overview.total_aum_usd == pytest.approx(19_000)
        assert overview.crypto_value_usd == pytest.approx(15_000)
        assert overview.traditional_percentage == pytest.approx(4_000 / 19_000 * 100)
        assert (overview.total_wallets, overview.total_accounts) == (2, 2)
        assert overview.total_clients == 2
        assert [a.symbol for a in overview.top_assets[:3]] == ["ETH", "BTC", "USDC"]
        assert {a.symbol for a in overview.top_assets[3:]} == {"USD", "BRL"}
        assert overview.performance is None

    def test_summary_reads_book_wide_snapshots(self, book_db):
        queries.upsert_snapshot(book_db, date(2026, 1, 1), None, 1000, 600, 400)
        queries.upsert_snapshot(book_db, date(2026, 1, 2), None, 1100, 660, 440)
        queries.upsert_snapshot(book_db, date(2026, 1, 2), "c-alice", 50, 50, 0)
        overview = get_portfolio_overview(book_db)
        assert overview.performance.as_of == date(2026, 1, 2)
        assert overview.performance.day_change_pct == pytest.approx(10)
