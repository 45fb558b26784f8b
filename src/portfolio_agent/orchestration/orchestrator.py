"""
Decision Orchestrator - one full decision cycle.

Pipeline per cycle:
1. Market data (+ indicators, cross-asset signals) and lending market data,
   fetched concurrently
2. Trading and lending consensus, concurrently
3. Trade execution and lending handling, concurrently and isolated from
   each other
4. Persist the DecisionRecord

Only two failures abort a cycle: no market data at all, and no trading
consensus. Everything else degrades.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from portfolio_agent.analytics.cross_asset import CrossAssetAnalyzer, CrossAssetSignals
from portfolio_agent.analytics.indicators import IndicatorEngine, IndicatorSnapshot
from portfolio_agent.config.settings import TradingPairConfig
from portfolio_agent.core.errors import CycleAbortedError
from portfolio_agent.decision.consensus import ConsensusDecisionEngine
from portfolio_agent.decision.models import DecisionRecord, LendingDecision, TradingDecision, Wait
from portfolio_agent.execution.lending_handler import LendingSignalHandler
from portfolio_agent.execution.models import TradeOutcome
from portfolio_agent.execution.state_machine import TradeExecutionStateMachine
from portfolio_agent.market_data.aggregator import MarketDataAggregator, TimeRange
from portfolio_agent.market_data.models import LendingMarketSnapshot, PriceSeries
from portfolio_agent.portfolio.balance_manager import BalanceManager, TokenBalance
from portfolio_agent.storage.history_store import HistoryStore, LendingHistoryRecord, TradeHistoryRecord
from portfolio_agent.utils.logger import get_agent_logger

logger = logging.getLogger(__name__)
agent_log = get_agent_logger(__name__)


@dataclass
class MarketView:
    """Market inputs of one cycle."""
    series: Dict[str, PriceSeries]
    snapshots: Dict[str, IndicatorSnapshot]
    cross_asset: CrossAssetSignals


class DecisionOrchestrator:
    """
    Runs decision cycles and exposes the agent's operations.

    All collaborators are passed in explicitly; see ``main.build_services``
    for the production wiring.
    """

    def __init__(
        self,
        market_data: MarketDataAggregator,
        indicator_engine: IndicatorEngine,
        cross_asset_analyzer: CrossAssetAnalyzer,
        consensus: ConsensusDecisionEngine,
        trade_executor: TradeExecutionStateMachine,
        lending_handler: LendingSignalHandler,
        balance_manager: BalanceManager,
        history_store: HistoryStore,
        trading_pairs: List[TradingPairConfig],
        lending_source=None,
    ):
        self.market_data = market_data
        self.indicator_engine = indicator_engine
        self.cross_asset_analyzer = cross_asset_analyzer
        self.consensus = consensus
        self.trade_executor = trade_executor
        self.lending_handler = lending_handler
        self.balance_manager = balance_manager
        self.history_store = history_store
        self.trading_pairs = trading_pairs
        self.lending_source = lending_source

    # ------------------------------------------------------------------
    # Decision cycle
    # ------------------------------------------------------------------

    async def run_decision_cycle(self, time_range: Optional[TimeRange] = None) -> DecisionRecord:
        """
        Run one full cycle and persist its DecisionRecord.

        Raises:
            CycleAbortedError: If no market data or no trading consensus was available
        """
        decision_id = str(uuid.uuid4())
        created_at = datetime.now(timezone.utc)
        logger.info(f"Starting decision cycle {decision_id}", extra={'decision_id': decision_id})

        with agent_log.timed("decision_cycle", decision_id=decision_id):
            market, lending_market = await asyncio.gather(
                self._gather_market(time_range),
                self._gather_lending(),
                return_exceptions=True,
            )
            if isinstance(lending_market, BaseException):
                logger.warning(f"Lending market data unavailable: {lending_market}")
                lending_market = None
            if isinstance(market, BaseException):
                self._abort(decision_id, "no market data", market)

            trading, lending = await asyncio.gather(
                self.consensus.decide_trading(market.snapshots, market.cross_asset, lending_market),
                self._decide_lending(lending_market, market.cross_asset),
                return_exceptions=True,
            )
            if isinstance(trading, BaseException):
                self._abort(decision_id, "no trading consensus", trading)
            if isinstance(lending, BaseException):
                logger.error(f"Lending decision failed: {lending}")
                lending = None

            execution = await self._execute(decision_id, trading, lending)

            record = DecisionRecord(
                id=decision_id,
                created_at=created_at,
                trading=trading,
                lending=lending,
                execution=execution,
            )
            try:
                self.history_store.save_decision(record)
            except Exception as e:
                logger.error(f"Failed to persist decision {decision_id}: {e}", extra={'decision_id': decision_id})

        logger.info(
            f"Decision cycle {decision_id} complete: trading={trading.action.kind} "
            f"lending={lending.action.kind if lending else 'NONE'}",
            extra={'decision_id': decision_id},
        )
        return record

    def _abort(self, decision_id: str, reason: str, error: BaseException) -> None:
        agent_log.alert(
            "cycle_aborted", "high", f"Decision cycle aborted: {reason}: {error}", decision_id=decision_id,
        )
        raise CycleAbortedError(f"{reason}: {error}", decision_id) from error

    async def _gather_market(self, time_range: Optional[TimeRange]) -> MarketView:
        series = await self.market_data.fetch_all(time_range)
        snapshots = self.indicator_engine.compute_all(series)
        cross_asset = self.cross_asset_analyzer.analyze(series, snapshots)
        return MarketView(series=series, snapshots=snapshots, cross_asset=cross_asset)

    async def _gather_lending(self) -> Optional[LendingMarketSnapshot]:
        if self.lending_source is None:
            return None
        return await self.lending_source.get_market_snapshot()

    async def _decide_lending(
        self,
        lending_market: Optional[LendingMarketSnapshot],
        cross_asset: CrossAssetSignals,
    ) -> Optional[LendingDecision]:
        if lending_market is None or not lending_market.reserves:
            return None
        return await self.consensus.decide_lending(lending_market, cross_asset)

    async def _execute(
        self,
        decision_id: str,
        trading: TradingDecision,
        lending: Optional[LendingDecision],
    ) -> Dict[str, Any]:
        """Run the trade and lending branches; neither one's failure affects the other."""
        branches = {}
        if trading.should_execute and not isinstance(trading.action, Wait):
            branches["trade"] = self.trade_executor.execute_decision(trading, decision_id)
        if lending is not None and lending.should_execute and not isinstance(lending.action, Wait):
            branches["lending"] = self.lending_handler.handle(lending, decision_id)

        if not branches:
            logger.info(f"Nothing to execute for decision {decision_id}")
            return {}

        results = await asyncio.gather(*branches.values(), return_exceptions=True)

        summary: Dict[str, Any] = {}
        for name, result in zip(branches, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"{name.capitalize()} execution failed for decision {decision_id}: {result}",
                    extra={'decision_id': decision_id},
                )
                summary[name] = {"success": False, "error": str(result)}
            elif result is None:
                summary[name] = None
            else:
                summary[name] = result.to_dict()
        return summary

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get_decision_history(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[DecisionRecord]]:
        return self.history_store.get_decision_history(dict(filters or {}), limit, offset)

    def get_trade_history(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[TradeHistoryRecord]]:
        return self.history_store.get_trade_history(dict(filters or {}), limit, offset)

    def get_lending_history(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[LendingHistoryRecord]]:
        return self.history_store.get_lending_history(dict(filters or {}), limit, offset)

    def get_available_pairs(self) -> List[str]:
        """Names of the enabled trading pairs."""
        return [pair.name for pair in self.trading_pairs if pair.enabled]

    def get_pair_details(self) -> List[Dict[str, Any]]:
        """Enabled trading pairs with their token metadata."""
        return [
            {
                "name": pair.name,
                "base": pair.base.model_dump(),
                "quote": pair.quote.model_dump(),
                "enabled": pair.enabled,
            }
            for pair in self.trading_pairs
            if pair.enabled
        ]

    async def get_balances(self) -> List[TokenBalance]:
        balances = await self.balance_manager.get_balances()
        return list(balances.values())

    async def execute_trade(self, action: str, pair: str, amount: float) -> TradeOutcome:
        """Manual trade outside any decision cycle."""
        return await self.trade_executor.execute_trade(action, pair, amount)
