"""Tests for book composition and concentration metrics."""

from __future__ import annotations

from datetime import datetime

import pytest

from custodia.book.assets import AssetBalance
from custodia.config.schema import FXConfig
from custodia.portfolio.composition import compute_composition, concentration_metrics, get_composition


def _wallet_line(asset_id, chain, usd):
    return AssetBalance(asset_id, chain, chain[:3].upper(), 1.0, usd)


def _account_line(asset_id, currency, amount, balance_type="AVAILABLE", ts=datetime(2026, 1, 1)):
    return AssetBalance(asset_id, currency, currency, amount, balance_type=balance_type, last_updated=ts)


class TestConcentration:
    def test_single_holding(self):
        metrics = concentration_metrics([500.0])
        assert metrics.herfindahl_index == pytest.approx(1.0)
        assert metrics.top_asset_pct == pytest.approx(100)
        assert metrics.total_assets == 1

    def test_equal_holdings(self):
        metrics = concentration_metrics([10.0] * 4)
        assert metrics.herfindahl_index == pytest.approx(0.25)
        assert metrics.top_asset_pct == pytest.approx(25)
        assert metrics.top5_pct == pytest.approx(100)

    def test_top_n(self):
        metrics = concentration_metrics([float(v) for v in range(1, 13)])
        total = sum(range(1, 13))
        assert metrics.top_asset_pct == pytest.approx(12 / total * 100)
        assert metrics.top5_pct == pytest.approx(sum(range(8, 13)) / total * 100)
        assert metrics.top10_pct == pytest.approx(sum(range(3, 13)) / total * 100)

    def test_zero_total(self):
        metrics = concentration_metrics([0.0, 0.0])
        assert metrics.herfindahl_index == 0
        assert metrics.top_asset_pct == 0
        assert metrics.total_assets == 2

    def test_empty(self):
        assert concentration_metrics([]).total_assets == 0


class TestComposition:
    def test_single_wallet_single_chain(self):
        comp = compute_composition([_wallet_line("w1", "ethereum", 1000.0)], [])
        assert comp.total_value_usd == pytest.approx(1000)
        assert comp.concentration.herfindahl_index == pytest.approx(1.0)
        assert comp.concentration.top_asset_pct == pytest.approx(100)
        crypto, traditional = comp.asset_classes
        assert crypto.asset_class == "Crypto"
        assert crypto.percentage == pytest.approx(100)
        assert traditional.value_usd == 0

    def test_chains_grouped_and_counted(self):
        lines = [
            _wallet_line("w1", "ethereum", 300.0),
            _wallet_line("w2", "ethereum", 200.0),
            _wallet_line("w2", "ethereum", 100.0),
            _wallet_line("w3", "solana", 400.0),
        ]
        comp = compute_composition(lines, [])
        assert [c.chain for c in comp.chain_breakdown] == ["ethereum", "solana"]
        ethereum = comp.chain_breakdown[0]
        assert ethereum.value_usd == pytest.approx(600)
        assert ethereum.wallet_count == 2
        assert ethereum.percentage == pytest.approx(60)
        assert comp.asset_classes[0].asset_count == 3

    def test_zero_and_unpriced_wallet_lines_ignored(self):
        lines = [
            _wallet_line("w1", "ethereum", 0.0),
            AssetBalance("w1", "polygon", "POL", 5.0, None),
            _wallet_line("w2", "bitcoin", 100.0),
        ]
        comp = compute_composition(lines, [])
        assert [c.chain for c in comp.chain_breakdown] == ["bitcoin"]

    def test_latest_counted_account_balance(self):
        lines = [
            _account_line("a1", "USD", 100.0, ts=datetime(2026, 1, 1)),
            _account_line("a1", "USD", 300.0, balance_type="CURRENT", ts=datetime(2026, 1, 5)),
            _account_line("a1", "USD", 9999.0, balance_type="LIMIT", ts=datetime(2026, 1, 9)),
        ]
        comp = compute_composition([], lines)
        assert comp.total_value_usd == pytest.approx(300)
        assert comp.currency_breakdown[0].account_count == 1

    def test_currency_conversion(self):
        lines = [_account_line("a1", "BRL", 10_000.0), _account_line("a2", "usd", 500.0)]
        comp = compute_composition([], lines, FXConfig(rates={"BRL": 0.25}))
        values = {c.currency: c.value_usd for c in comp.currency_breakdown}
        assert values == pytest.approx({"BRL": 2500.0, "USD": 500.0})
        assert comp.asset_classes[1].asset_class == "Traditional"
        assert comp.asset_classes[1].asset_count == 2

    def test_empty_book(self):
        comp = compute_composition([], [])
        assert comp.total_value_usd == 0
        assert comp.chain_breakdown == []
        assert all(c.percentage == 0 for c in comp.asset_classes)
        assert comp.concentration.herfindahl_index == 0

    def test_seeded_book(self, book_db):
        comp = get_composition(book_db, FXConfig())
        assert comp.total_value_usd == pytest.approx(19_000)
        assert [c.chain for c in comp.chain_breakdown] == ["ethereum", "bitcoin", "polygon"]
        assert {c.currency for c in comp.currency_breakdown} == {"USD", "BRL"}
        assert comp.asset_classes[0].value_usd == pytest.approx(15_000)
        assert comp.concentration.total_assets == 5
        assert comp.concentration.herfindahl_index == pytest.approx(85 / 361)
        assert sum(c.percentage for c in comp.chain_breakdown + comp.currency_breakdown) == pytest.approx(100)
