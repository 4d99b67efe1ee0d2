"""Runtime tests with a scripted venue and a real on-disk store."""

import pytest

from dip_surfer.config import RuntimeConfig, StrategyConfig, VenueConfig
from dip_surfer.runtime import SHADOW_REF, SurferRuntime
from dip_surfer.state_store import JsonStateStore
from dip_surfer.types import QuoteResult
from dip_surfer.venue import VenueError

from conftest import HOUR, T0, _flat, _uptrend

ARMED = dict(enable_swaps=True, allow_mainnet_swaps=True, solana_cluster="mainnet-beta")


class ScriptedVenue:
    def __init__(self, prices=(), impact=0.1):
        self.cfg = VenueConfig()
        self.prices = list(prices)
        self.impact = impact
        self.submitted = []

    def get_token_price(self):
        if not self.prices:
            raise VenueError("no price")
        return self.prices.pop(0)

    def get_buy_quote(self, usdc_amount):
        tokens = usdc_amount / 150.0
        return QuoteResult(
            price_usdc_per_token=150.0,
            in_amount=int(usdc_amount * self.cfg.usdc_unit),
            out_amount=int(round(tokens * self.cfg.token_unit)),
            price_impact_pct=self.impact,
            raw={},
        )

    def get_sell_quote(self, token_amount):
        return QuoteResult(
            price_usdc_per_token=160.0,
            in_amount=int(token_amount * self.cfg.token_unit),
            out_amount=int(token_amount * 160.0 * self.cfg.usdc_unit),
            price_impact_pct=0.0,
            raw={},
        )

    def submit_trade(self, quote, wallet):
        self.submitted.append(quote)
        return f"sig{len(self.submitted)}"


class StubWallet:
    public_key = "Wallet111"

    def __init__(self, usdc=100.0, tokens=0.2):
        self.usdc = usdc
        self.tokens = tokens

    def usdc_balance(self):
        return self.usdc

    def token_balance(self):
        return self.tokens

    def sign_and_send(self, swap_tx_b64):
        return "unused"


@pytest.fixture
def build(tmp_path, make_engine):
    def _build(venue=None, wallet=None, backfill=None, strat_cfg=None, **rt_kwargs):
        rt_cfg = RuntimeConfig(data_dir=str(tmp_path), **rt_kwargs)
        return SurferRuntime(
            make_engine(strat_cfg),
            venue or ScriptedVenue(),
            JsonStateStore(tmp_path, rt_cfg.token_symbol),
            rt_cfg,
            wallet=wallet,
            backfill=backfill,
        )

    return _build


class TestInitialise:
    def test_armed_without_wallet_is_rejected(self, build):
        rt = build(**ARMED)
        with pytest.raises(ValueError):
            rt.initialise()

    def test_backfill_when_history_is_short(self, build):
        rt = build(backfill=lambda: _uptrend(60))
        rt.initialise()
        assert len(rt.engine.bars) == 60
        assert rt.engine.indicators().ready

    def test_saved_bars_and_state_are_restored(self, build):
        first = build()
        for bar in _uptrend(70):
            first.engine.add_bar(bar)
        first.engine.open_position(150.0, 0.2, 30.0, SHADOW_REF)
        first.persist()

        calls = []
        second = build(backfill=lambda: calls.append(1) or [])
        second.initialise()
        assert calls == []
        assert len(second.engine.bars) == 70
        assert second.engine.position == first.engine.position

    def test_position_age_survives_bar_trim(self, build):
        bars = _flat(620, 100.0)
        first = build(max_saved_bars=500)
        for bar in bars[:600]:
            first.engine.add_bar(bar)
        first.engine.open_position(100.0, 0.2, 20.0, SHADOW_REF)
        for bar in bars[600:]:
            first.engine.add_bar(bar)
        assert first.engine.bars_held() == 20
        first.persist()

        second = build(max_saved_bars=500)
        second.initialise()
        assert len(second.engine.bars) == 500
        assert second.engine.bars_held() == 20
        assert second.engine.check_exit(100.0).reason == "timeout"

    def test_position_age_survives_older_backfill(self, build):
        bars = _flat(330, 100.0)
        first = build()
        for bar in bars[300:]:
            first.engine.add_bar(bar)
        first.engine.open_position(100.0, 0.2, 20.0, SHADOW_REF)
        first.persist()

        second = build(backfill=lambda: bars[:300])
        second.initialise()
        assert len(second.engine.bars) == 330
        assert second.engine.bars_held() == 0
        assert second.engine.check_exit(100.0) is None


class TestShadowExecution:
    def test_buy_and_sell(self, build):
        rt = build(strat_cfg=StrategyConfig())
        rt.initialise()
        assert rt.execute_buy(150.0)
        pos = rt.engine.position
        assert pos.execution_ref == SHADOW_REF
        assert pos.cost_basis == pytest.approx(30.0)
        assert pos.quantity == pytest.approx(0.2)
        assert rt.store.load_state().position == pos

        rt.last_price = 165.0
        assert rt.execute_sell("tp1")
        trades = rt.store.load_trades()
        assert [t.reason for t in trades] == ["tp1"]
        assert trades[0].pnl_pct == pytest.approx(0.10)
        assert rt.engine.position is None

    def test_sell_when_flat_is_a_no_op(self, build):
        assert build().execute_sell("sl") is False

    def test_close_before_first_price_uses_last_bar(self, build):
        first = build()
        for bar in _uptrend(60):
            first.engine.add_bar(bar)
        first.engine.open_position(150.0, 0.2, 30.0, SHADOW_REF)
        first.persist()

        second = build()
        second.initialise()
        assert second.last_price == 0.0
        assert second.force_close() is True
        trade = second.store.load_trades()[0]
        assert trade.exit_price == pytest.approx(_uptrend(60)[-1].close)
        assert second.engine.stats.equity > 0
        assert second.engine.stats.max_drawdown < 1

    def test_close_refused_without_any_price(self, build):
        rt = build()
        rt.initialise()
        rt.execute_buy(150.0)
        assert rt.force_close() is False
        assert rt.engine.position is not None
        assert rt.store.load_trades() == []


class TestArmedExecution:
    def test_buy_sizes_from_usdc_balance(self, build):
        venue = ScriptedVenue()
        rt = build(venue=venue, wallet=StubWallet(usdc=100.0), **ARMED)
        rt.initialise()
        assert rt.execute_buy(149.0)
        pos = rt.engine.position
        assert pos.entry_price == 150.0
        assert pos.cost_basis == pytest.approx(30.0)
        assert pos.quantity == pytest.approx(0.2)
        assert pos.execution_ref == "sig1"

    def test_buy_skipped_on_price_impact(self, build):
        rt = build(venue=ScriptedVenue(impact=2.5), wallet=StubWallet(), **ARMED)
        rt.initialise()
        assert rt.execute_buy(150.0) is False
        assert rt.engine.position is None

    def test_buy_skipped_without_funds(self, build):
        rt = build(wallet=StubWallet(usdc=1.0), **ARMED)
        rt.initialise()
        assert rt.execute_buy(150.0) is False

    def test_sell_records_quote_price(self, build):
        venue = ScriptedVenue()
        rt = build(venue=venue, wallet=StubWallet(tokens=0.2), **ARMED)
        rt.initialise()
        rt.execute_buy(150.0)
        assert rt.execute_sell("tp1")
        trade = rt.store.load_trades()[0]
        assert trade.exit_price == 160.0
        assert len(venue.submitted) == 2

    def test_dust_balance_closes_on_paper(self, build):
        rt = build(wallet=StubWallet(tokens=0.0), **ARMED)
        rt.initialise()
        rt.execute_buy(150.0)
        rt.last_price = 140.0
        assert rt.execute_sell("sl") is False
        assert rt.engine.position is None
        assert rt.store.load_trades()[0].exit_price == 140.0


class TestTick:
    def test_price_errors_are_counted(self, build):
        rt = build()
        rt.tick(now_ms=T0 * 1000)
        rt.tick(now_ms=T0 * 1000 + 1000)
        assert rt.price_errors == 2
        assert rt.loop_count == 2
        assert rt.engine.bars == []

    def test_dip_entry_then_stop_loss(self, build):
        last = _uptrend(60)[-1].close
        dip = last * 0.85
        venue = ScriptedVenue(prices=[dip, dip, dip * 0.9])
        rt = build(venue=venue, backfill=lambda: _uptrend(60), strat_cfg=StrategyConfig(min_ema_slope=0.0))
        rt.initialise()

        t = (T0 + 60 * HOUR) * 1000
        rt.tick(now_ms=t)
        assert rt.engine.position is None

        rt.tick(now_ms=t + HOUR * 1000)
        assert rt.last_signal.startswith("ENTRY")
        assert rt.engine.position.entry_price == pytest.approx(dip)

        rt.tick(now_ms=t + HOUR * 1000 + 15_000)
        assert rt.last_signal.startswith("EXIT: sl")
        assert rt.engine.position is None
        assert rt.store.load_trades()[0].reason == "sl"

    def test_warmup_signal(self, build):
        venue = ScriptedVenue(prices=[100.0, 100.0])
        rt = build(venue=venue)
        rt.initialise()
        rt.tick(now_ms=T0 * 1000)
        rt.tick(now_ms=(T0 + HOUR) * 1000)
        assert rt.last_signal == "warmup (1 bars)"


def test_force_close_and_health(build):
    rt = build()
    rt.initialise()
    assert rt.force_close() is False
    rt.last_price = 150.0
    rt.execute_buy(150.0)
    assert rt.force_close() is True
    assert rt.store.load_trades()[0].reason == "timeout"

    health = rt.health()
    assert health["status"] == "ok"
    assert health["bot"] == "SOL Surfer"
    assert health["swaps_armed"] is False
    assert health["stats"]["total_trades"] == 1
