"""
Main entry point for the portfolio agent.

Builds every component from configuration and exposes the agent's
operations as CLI commands:

    portfolio-agent run                  # scheduler loop
    portfolio-agent cycle                # one decision cycle, prints the record
    portfolio-agent balances
    portfolio-agent pairs
    portfolio-agent history --limit 10
    portfolio-agent trade BUY SOL_USDT 5
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from portfolio_agent.analytics.cross_asset import CrossAssetAnalyzer
from portfolio_agent.analytics.indicators import IndicatorEngine, IndicatorWindows
from portfolio_agent.config.loader import load_config
from portfolio_agent.config.settings import AppConfig
from portfolio_agent.core.errors import CycleAbortedError
from portfolio_agent.decision.advisory import AdvisoryProvider
from portfolio_agent.decision.consensus import ConsensusDecisionEngine
from portfolio_agent.execution.lending_handler import LendingSignalHandler
from portfolio_agent.execution.state_machine import TradeExecutionStateMachine
from portfolio_agent.integrations.dex.raydium_adapter import RaydiumAdapter
from portfolio_agent.integrations.solana.rpc_client import SolanaRpcClient
from portfolio_agent.integrations.solana.wallet import WalletSigner
from portfolio_agent.market_data.aggregator import MarketDataAggregator
from portfolio_agent.market_data.birdeye_client import BirdeyeClient
from portfolio_agent.market_data.kamino_client import KaminoClient
from portfolio_agent.orchestration.orchestrator import DecisionOrchestrator
from portfolio_agent.orchestration.scheduler import DecisionScheduler
from portfolio_agent.portfolio.balance_manager import BalanceManager
from portfolio_agent.storage.history_store import HistoryStore
from portfolio_agent.utils.logger import setup_logging
from portfolio_agent.utils.retry import BackoffPolicy

logger = logging.getLogger(__name__)


@dataclass
class AgentServices:
    """Everything built by the composition root, plus what needs closing."""
    config: AppConfig
    orchestrator: DecisionOrchestrator
    closeables: List[Any] = field(default_factory=list)

    async def close(self) -> None:
        for resource in reversed(self.closeables):
            try:
                result = resource.close()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Error closing {type(resource).__name__}: {e}")


def build_services(config: AppConfig) -> AgentServices:
    """Wire all components from ``config``."""
    md = config.market_data
    birdeye = BirdeyeClient(
        base_url=md.base_url,
        api_key=md.api_key.get_secret_value() or None,
        chain=md.chain,
        timeout_seconds=md.timeout_seconds,
    )
    market_data = MarketDataAggregator(
        client=birdeye,
        pairs=md.pairs,
        resolution=md.resolution,
        resolution_minutes=md.resolution_minutes,
        lookback_days=md.lookback_days,
        max_attempts=md.max_attempts,
        backoff=BackoffPolicy(base_delay=md.backoff_base_seconds, factor=2.0),
    )

    windows = IndicatorWindows.for_periods_per_day(md.periods_per_day)
    indicator_engine = IndicatorEngine(windows)
    cross_asset_analyzer = CrossAssetAnalyzer(windows)

    kamino = None
    if config.lending.enabled:
        kamino = KaminoClient(
            api_url=config.lending.api_url,
            market_id=config.lending.market_id,
            env=config.lending.env,
            interested_tokens=config.lending.interested_tokens,
            fallback_top_n=config.lending.fallback_top_n,
            timeout_seconds=config.lending.timeout_seconds,
        )

    primary = AdvisoryProvider.from_config(config.advisory.primary)
    secondary = AdvisoryProvider.from_config(config.advisory.secondary)
    consensus = ConsensusDecisionEngine(
        primary,
        secondary,
        min_apy_threshold=config.lending.min_apy_threshold,
        allocation_pct=config.lending.allocation_pct,
        trading_temperature=config.advisory.primary.trading_temperature,
        lending_temperature=config.advisory.primary.lending_temperature,
    )

    signer = WalletSigner.from_base58(config.solana.private_key.get_secret_value())
    rpc = SolanaRpcClient(
        config.solana.rpc_url,
        commitment=config.solana.commitment,
        request_timeout=config.solana.request_timeout_seconds,
        confirm_timeout=config.solana.confirm_timeout_seconds,
    )
    dex = RaydiumAdapter(
        swap_host=config.dex.swap_host,
        base_host=config.dex.base_host,
        priority_fee_endpoint=config.dex.priority_fee_endpoint,
        tx_version=config.dex.tx_version,
        timeout_seconds=config.dex.timeout_seconds,
    )

    pairs = config.trading.enabled_pairs
    balance_manager = BalanceManager(rpc, signer.address, pairs)
    history_store = HistoryStore(config.storage.path)

    trade_executor = TradeExecutionStateMachine(
        dex=dex,
        rpc=rpc,
        signer=signer,
        balance_manager=balance_manager,
        history_store=history_store,
        pairs=pairs,
        risk=config.risk,
        default_priority_fee=config.dex.default_priority_fee,
        fail_on_unconfirmed=config.execution.fail_on_unconfirmed,
    )

    orchestrator = DecisionOrchestrator(
        market_data=market_data,
        indicator_engine=indicator_engine,
        cross_asset_analyzer=cross_asset_analyzer,
        consensus=consensus,
        trade_executor=trade_executor,
        lending_handler=LendingSignalHandler(history_store),
        balance_manager=balance_manager,
        history_store=history_store,
        trading_pairs=config.trading.pairs,
        lending_source=kamino,
    )

    closeables = [birdeye, primary, secondary, dex, rpc, history_store]
    if kamino is not None:
        closeables.append(kamino)

    logger.info(
        f"Portfolio agent wired: wallet={signer.address} pairs={[p.name for p in pairs]} "
        f"tracked={list(md.pairs)} lending={'on' if kamino else 'off'}"
    )
    return AgentServices(config=config, orchestrator=orchestrator, closeables=closeables)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run_scheduler(services: AgentServices) -> None:
    """Run decision cycles until SIGINT/SIGTERM."""
    scheduler = DecisionScheduler(
        services.orchestrator,
        interval_minutes=services.config.scheduler.interval_minutes,
        run_on_start=services.config.scheduler.run_on_start,
        cycle_timeout=services.config.scheduler.cycle_timeout_seconds,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Not supported on this platform; Ctrl+C still raises KeyboardInterrupt
            pass

    await scheduler.start()
    logger.info(f"Scheduler running every {services.config.scheduler.interval_minutes} minutes")
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()


async def _dispatch(args: argparse.Namespace, services: AgentServices) -> int:
    orchestrator = services.orchestrator

    if args.command == "run":
        await run_scheduler(services)
        return 0

    if args.command == "cycle":
        try:
            record = await orchestrator.run_decision_cycle()
        except CycleAbortedError as e:
            _print_json({"success": False, "decisionId": e.decision_id, "error": e.reason})
            return 1
        _print_json(record.to_dict())
        return 0

    if args.command == "balances":
        balances = await orchestrator.get_balances()
        _print_json([b.to_dict() for b in balances])
        return 0

    if args.command == "pairs":
        _print_json(orchestrator.get_pair_details() if args.details else orchestrator.get_available_pairs())
        return 0

    if args.command == "history":
        filters = {}
        if args.action:
            filters["action"] = args.action.upper()
        if args.pair:
            filters["pair"] = args.pair
        count, records = orchestrator.get_decision_history(filters, args.limit, args.offset)
        _print_json({"count": count, "records": [r.to_dict() for r in records]})
        return 0

    if args.command == "trade":
        outcome = await orchestrator.execute_trade(args.action, args.pair, args.amount)
        _print_json(outcome.to_dict())
        return 0 if outcome.success else 1

    raise ValueError(f"Unknown command: {args.command}")


async def async_main(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config_dir) if args.config_dir else None)
    setup_logging(
        log_level=args.log_level or config.system.log_level.value,
        log_file=config.system.log_file,
        json_format=config.system.json_logs,
    )
    logger.info(f"Starting portfolio agent ({config.system.environment.value})")

    services = build_services(config)
    try:
        return await _dispatch(args, services)
    finally:
        await services.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="portfolio-agent", description="Autonomous Solana portfolio agent")
    parser.add_argument("--config-dir", help="Directory containing config.yaml")
    parser.add_argument("--log-level", help="Override the configured log level")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run decision cycles on the configured interval")
    sub.add_parser("cycle", help="Run a single decision cycle")
    sub.add_parser("balances", help="Show wallet balances")
    pairs = sub.add_parser("pairs", help="Show tradable pair names")
    pairs.add_argument("--details", action="store_true", help="Include token metadata")

    history = sub.add_parser("history", help="Show decision history")
    history.add_argument("--limit", type=int, default=50)
    history.add_argument("--offset", type=int, default=0)
    history.add_argument("--action", help="Filter by trading action (BUY, SELL, WAIT)")
    history.add_argument("--pair", help="Filter by trading pair")

    trade = sub.add_parser("trade", help="Execute a manual trade")
    trade.add_argument("action", choices=["BUY", "SELL", "buy", "sell"])
    trade.add_argument("pair")
    trade.add_argument("amount", type=float, help="Amount of the input token")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the application."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
