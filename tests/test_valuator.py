"""Tests for portfolio valuation and export."""
import csv
import json
import pytest
from decimal import Decimal

from models.portfolio import Holding
from portfolio.export import export_valuation
from portfolio.valuator import PortfolioValuator, profit_loss_pct, valuate
from utils.errors import NotFound, TransientFetchError


def _holding(coin_id="solana", quantity="2", purchase_price="100", **kwargs):
    return Holding(coin_id=coin_id, coin_name=coin_id.title(), symbol=coin_id[:3],
                   quantity=Decimal(quantity), purchase_price=Decimal(purchase_price), **kwargs)


def test_single_holding_profit():
    result = valuate([_holding()], {"solana": Decimal("150")})

    row = result.holdings[0]
    assert row.market_value == Decimal("300")
    assert row.cost == Decimal("200")
    assert row.profit_loss == Decimal("100")
    assert row.profit_loss_pct == Decimal("50.00")
    assert result.total_value == Decimal("300")
    assert result.partial is False


def test_loss_is_negative():
    result = valuate([_holding(quantity="4", purchase_price="50")], {"solana": "40"})
    assert result.profit_loss == Decimal("-40")
    assert result.profit_loss_pct == Decimal("-20.00")


def test_zero_cost_basis_has_zero_pct():
    result = valuate([_holding(purchase_price="0")], {"solana": Decimal("150")})
    assert result.holdings[0].profit_loss == Decimal("300")
    assert result.holdings[0].profit_loss_pct == Decimal("0.00")
    assert result.profit_loss_pct == Decimal("0.00")


def test_pct_rounds_half_up():
    assert profit_loss_pct(Decimal("1"), Decimal("8")) == Decimal("12.50")
    assert profit_loss_pct(Decimal("1"), Decimal("3")) == Decimal("33.33")
    assert profit_loss_pct(Decimal("2"), Decimal("3")) == Decimal("66.67")


def test_totals_use_summed_cost():
    holdings = [
        _holding("bitcoin", quantity="0.5", purchase_price="40000"),
        _holding("ethereum", quantity="10", purchase_price="2000"),
    ]
    result = valuate(holdings, {"bitcoin": "60000", "ethereum": "1500"})

    assert result.total_cost == Decimal("40000")
    assert result.total_value == Decimal("45000")
    assert result.profit_loss == Decimal("5000")
    assert result.profit_loss_pct == Decimal("12.50")


def test_missing_price_marks_result_partial():
    holdings = [_holding("bitcoin", quantity="1", purchase_price="100"), _holding("mystery")]
    result = valuate(holdings, {"bitcoin": "150"})

    assert result.partial is True
    assert result.missing_prices == ("mystery",)
    mystery = result.holdings[1]
    assert mystery.price_available is False
    assert mystery.market_value == Decimal("0")
    assert mystery.profit_loss == Decimal("-200")


def test_callable_lookup_called_once_per_coin():
    calls = []

    def lookup(coin_id):
        calls.append(coin_id)
        if coin_id == "dead":
            raise TransientFetchError("timeout")
        return Decimal("10")

    holdings = [_holding("solana"), _holding("solana", quantity="3"), _holding("dead")]
    result = valuate(holdings, lookup)

    assert calls == ["solana", "dead"]
    assert result.total_value == Decimal("50")
    assert result.missing_prices == ("dead",)


def test_deterministic():
    holdings = [_holding("bitcoin", quantity="0.1234", purchase_price="31000.55")]
    prices = {"bitcoin": "67500.12"}
    assert valuate(holdings, prices) == valuate(holdings, prices)


def test_empty_portfolio():
    result = valuate([], {})
    assert result.holdings == ()
    assert result.total_cost == Decimal("0")
    assert result.profit_loss_pct == Decimal("0.00")


def test_valuator_uses_live_prices(temp_db, provider):
    temp_db.create_holding(_holding("solana"))
    temp_db.create_holding(_holding("ghost"))
    provider.set_price("solana", "150")
    provider.errors["ghost"] = NotFound("ghost")

    result = PortfolioValuator(temp_db, provider, lookup_timeout=5).current()

    assert result.holdings[0].market_value == Decimal("300")
    assert result.missing_prices == ("ghost",)
    assert sorted(provider.detail_calls) == ["ghost", "solana"]


class TestExport:
    def test_csv(self, tmp_path):
        result = valuate([_holding()], {"solana": "150"})
        path = export_valuation(result, tmp_path / "out" / "portfolio.csv")

        with open(path) as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["coin_id"] == "solana"
        assert rows[0]["profit_loss_pct"] == "50.00"

    def test_json_includes_totals(self, tmp_path):
        result = valuate([_holding(), _holding("mystery")], {"solana": "150"})
        path = export_valuation(result, tmp_path / "portfolio.json", fmt="json")

        with open(path) as f:
            payload = json.load(f)
        assert payload["totals"]["partial"] is True
        assert payload["totals"]["missing_prices"] == ["mystery"]
        assert len(payload["holdings"]) == 2

    def test_empty_returns_none(self, tmp_path):
        assert export_valuation(valuate([], {}), tmp_path / "x.csv") is None

    def test_bad_format(self, tmp_path):
        with pytest.raises(ValueError):
            export_valuation(valuate([], {}), tmp_path / "x.xml", fmt="xml")


def test_unclassified_lookup_error_marks_partial():
    def lookup(coin_id):
        if coin_id == "solana":
            raise ConnectionError("socket reset")
        return Decimal("20")

    holdings = [_holding("solana"), _holding("dogecoin", quantity="5", purchase_price="10")]
    result = valuate(holdings, lookup)

    assert result.partial is True
    assert result.missing_prices == ("solana",)
    assert result.holdings[0].market_value == Decimal("0")
    assert result.holdings[1].market_value == Decimal("100")
