# main.py
"""
Adaptive FX Decision Engine — Historical Replay Host

Downloads FX pairs with yfinance, replays the bars through the engine,
resolves every trade after a fixed holding period and feeds the
outcome back, so the engine adapts as it goes.

Usage:
    python main.py                              # default majors, 2 years
    python main.py EURUSD=X GBPUSD=X --period 5y
    python main.py AUDUSD=X --hold 3 --config my_engine.yaml
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Dict, List

import pandas as pd
import yfinance as yf

from fx_layers.L0_adaptive_config import InvalidConfiguration, load_engine_settings
from fx_layers.L1_data_features import Direction, ReplayMarket, ReplayPortfolio
from pipeline import AdaptiveDecisionEngine


# === CONFIGURATION ===
DEFAULT_SYMBOLS = ["EURUSD=X", "GBPUSD=X", "USDJPY=X"]


@dataclass
class OpenTrade:
    symbol: str
    decision_id: str
    direction: Direction
    entry_ts: pd.Timestamp
    exit_ts: pd.Timestamp
    realized_return: float
    max_drawdown: float


def load_fx_data(symbol: str, period: str, interval: str) -> pd.DataFrame:
    """Load historical OHLC bars for an FX pair."""
    print(f"  Downloading {symbol} ({period}, {interval})...")

    df = yf.download(
        symbol,
        period=period,
        interval=interval,
        progress=False,
        auto_adjust=False,
    )

    if df.empty:
        raise ValueError(f"No data found for {symbol}")

    # Handle both old and new yfinance column formats
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = [col[0] if isinstance(col, tuple) else col for col in df.columns]

    df = df[["Open", "High", "Low", "Close"]].dropna()
    if df.index.tz is not None:
        df.index = df.index.tz_convert("UTC").tz_localize(None)

    print(f"  Downloaded {len(df)} bars")
    return df


def replay(engine: AdaptiveDecisionEngine, market: ReplayMarket, portfolio: ReplayPortfolio, hold: int) -> int:
    """Walk every bar; returns the number of trades resolved."""
    open_trades: List[OpenTrade] = []
    resolved = 0

    for ts in market.timestamps:
        market.advance_to(ts)

        # Resolve trades whose exit bar has arrived
        for trade in [t for t in open_trades if t.exit_ts <= ts]:
            open_trades.remove(trade)
            portfolio.close_position(trade.symbol, trade.realized_return)
            engine.record_outcome(
                trade.decision_id,
                trade.realized_return,
                trade.max_drawdown,
                holding_time=(trade.exit_ts - trade.entry_ts).total_seconds(),
                timestamp=trade.exit_ts.to_pydatetime(),
            )
            resolved += 1

        for symbol in market.symbols:
            if ts not in market.features[symbol].index or symbol in portfolio.positions:
                continue

            metrics = engine.make_decision(symbol, now=ts.to_pydatetime())
            if not metrics.is_trade:
                continue

            outcome = market.resolve_trade(
                symbol, metrics.direction, metrics.position_size_fraction, ts, hold
            )
            if outcome is None:
                continue

            realized, max_dd, exit_ts = outcome
            portfolio.open_position(symbol, metrics.direction, metrics.position_size_fraction)
            open_trades.append(OpenTrade(
                symbol=symbol,
                decision_id=metrics.decision_id,
                direction=metrics.direction,
                entry_ts=ts,
                exit_ts=exit_ts,
                realized_return=realized,
                max_drawdown=max_dd,
            ))

    return resolved


def print_summary(engine: AdaptiveDecisionEngine, symbols: List[str]) -> None:
    summary = engine.get_performance_summary()

    print(f"\n{'='*50}")
    print("REPLAY SUMMARY")
    print(f"{'='*50}")

    for key, value in summary.overall.to_dict().items():
        print(f"  {key:>15}: {value}")

    print(f"\n  Experience: {summary.experience_size}/{summary.experience_capacity} "
          f"(evicted {summary.experience_evicted}), pending {summary.pending_trades}")
    print(f"  Mode switches: {len(summary.mode_switches)}")

    print("\n  Final state per symbol:")
    for symbol in symbols:
        profile = engine.get_market_profile(symbol)
        config = engine.get_adaptive_config(symbol)
        if profile is None:
            print(f"    {symbol}: no classification (insufficient data)")
            continue
        print(f"    {symbol}: {profile.current_state.value} "
              f"({profile.state_confidence:.0f}%) -> {config.primary_mode.value} "
              f"(fallback {config.fallback_mode.value})")

    if not summary.records.empty:
        print("\n  Learned (mode, state) records:")
        cols = ["Mode", "State", "Trades", "Accuracy", "RiskAdjusted", "Sharpe"]
        print(summary.records[cols].round(3).to_string(index=False))

        print("\n  Realized attribution:")
        print(engine.monitor.get_mode_attribution().round(3).to_string(index=False))


def main():
    parser = argparse.ArgumentParser(description="Replay FX history through the adaptive decision engine")
    parser.add_argument("symbols", nargs="*", default=DEFAULT_SYMBOLS, help="yfinance FX symbols")
    parser.add_argument("--period", default="2y", help="History to download (yfinance period)")
    parser.add_argument("--interval", default="1d", help="Bar interval (yfinance interval)")
    parser.add_argument("--hold", type=int, default=5, help="Bars to hold each trade")
    parser.add_argument("--config", default=None, help="Engine YAML config (packaged defaults if omitted)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine decisions")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_engine_settings(args.config)
    except (InvalidConfiguration, FileNotFoundError) as e:
        print(f"✗ Invalid engine configuration: {e}")
        sys.exit(1)

    print("\n📈 Adaptive FX Decision Engine — replay")
    bars: Dict[str, pd.DataFrame] = {}
    for symbol in args.symbols:
        try:
            bars[symbol] = load_fx_data(symbol, args.period, args.interval)
        except Exception as e:
            print(f"  ⚠ Skipping {symbol}: {e}")

    if not bars:
        print("✗ No data downloaded, nothing to replay")
        sys.exit(1)

    market = ReplayMarket(bars)
    portfolio = ReplayPortfolio(market)
    engine = AdaptiveDecisionEngine(
        signal_source=market,
        ml_predictor=market,
        sentiment_analyzer=market,
        analyzers=market.analyzers(),
        portfolio=portfolio,
        settings=settings,
        # Bar timestamps carry no intraday session information
        detect_sessions=args.interval not in ("1d", "5d", "1wk", "1mo", "3mo"),
    )

    print(f"\n  Replaying {len(market.timestamps)} bars across {len(bars)} symbols...")
    resolved = replay(engine, market, portfolio, args.hold)
    print(f"  ✓ {resolved} trades resolved")

    print_summary(engine, list(bars))


if __name__ == "__main__":
    main()
