"""
Trade execution state machine.

Drives one swap through SIZED -> QUOTED -> FEE_ESTIMATED -> BUILT -> SIGNED
-> BROADCAST -> CONFIRMING -> DONE, with FAILED reachable from every
non-terminal state. Each state has one handler that performs the work
leaving that state and returns the next state. The driver loop always ends
by writing exactly one trade-history record.

Transactions are all signed before the first broadcast. Broadcast and
confirmation alternate strictly per transaction. A confirmation that times
out or errors is a warning only, unless fail_on_unconfirmed is set.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Dict, List, Optional

from portfolio_agent.config.settings import RiskConfig, TradingPairConfig
from portfolio_agent.decision.models import Buy, Sell, TradingDecision
from portfolio_agent.integrations.dex.aggregator_adapter import AggregatorError, DEXAggregator
from portfolio_agent.integrations.solana.rpc_client import NATIVE_SOL_MINT, RpcError, associated_token_address
from portfolio_agent.storage.history_store import HistoryStatus, TradeHistoryRecord
from portfolio_agent.utils.logger import get_agent_logger
from portfolio_agent.execution.models import TradeContext, TradeIntent, TradeOutcome, TradeSide, TradeState
from portfolio_agent.execution.pairs import resolve_pair
from portfolio_agent.execution.sizing import PositionSizer

logger = logging.getLogger(__name__)
agent_log = get_agent_logger(__name__)

StateHandler = Callable[[TradeContext], Awaitable[TradeState]]


class TradeRejected(Exception):
    """Trade cannot proceed from its current state."""


class TradeExecutionStateMachine:
    """
    Executes sized trades against a DEX aggregator and the Solana chain.

    Example:
        machine = TradeExecutionStateMachine(dex, rpc, signer, balances, store, pairs, risk)
        outcome = await machine.execute(TradeIntent(TradeSide.BUY, "SOL_USDT", 25.0))
    """

    def __init__(
        self,
        dex: DEXAggregator,
        rpc,
        signer,
        balance_manager,
        history_store,
        pairs: List[TradingPairConfig],
        risk: RiskConfig,
        default_priority_fee: int = 100000,
        fail_on_unconfirmed: bool = False,
    ):
        self.dex = dex
        self.rpc = rpc
        self.signer = signer
        self.balance_manager = balance_manager
        self.history_store = history_store
        self.pairs = pairs
        self.risk = risk
        self.sizer = PositionSizer(risk)
        self.default_priority_fee = default_priority_fee
        self.fail_on_unconfirmed = fail_on_unconfirmed

        self._handlers: Dict[TradeState, StateHandler] = {
            TradeState.SIZED: self._request_quote,
            TradeState.QUOTED: self._estimate_fee,
            TradeState.FEE_ESTIMATED: self._build,
            TradeState.BUILT: self._sign,
            TradeState.SIGNED: self._broadcast,
            TradeState.BROADCAST: self._confirm,
            TradeState.CONFIRMING: self._continue_or_finish,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def execute_decision(self, decision: TradingDecision, decision_id: Optional[str] = None) -> Optional[TradeOutcome]:
        """
        Size and execute an actionable trading decision.

        Returns None when the decision is not a BUY/SELL to execute.
        """
        action = decision.action
        if not decision.should_execute or not isinstance(action, (Buy, Sell)):
            logger.info(f"Decision {decision_id} not executable ({action.kind}), no trade")
            return None

        side = TradeSide.BUY if isinstance(action, Buy) else TradeSide.SELL
        amount = 0.0
        trading_pair = resolve_pair(action.pair, self.pairs)
        if trading_pair is not None:
            balances = await self.balance_manager.get_balances()
            amount = self.sizer.size(side, trading_pair, decision.confidence, balances)

        intent = TradeIntent(side=side, pair=action.pair, amount=amount, decision_id=decision_id)
        return await self.execute(intent)

    async def execute_trade(self, action: str, pair: str, amount: float, decision_id: Optional[str] = None) -> TradeOutcome:
        """Manual trade with an explicit amount in UI units of the input token."""
        try:
            side = TradeSide(str(action).upper())
        except ValueError:
            raise ValueError(f"Unsupported trade action: {action}") from None
        return await self.execute(TradeIntent(side=side, pair=pair, amount=float(amount), decision_id=decision_id))

    async def execute(self, intent: TradeIntent) -> TradeOutcome:
        """Drive ``intent`` to a terminal state and persist one trade record."""
        context = TradeContext(intent=intent)
        agent_log.trade(
            intent.pair, "started",
            action=intent.side.value, decision_id=intent.decision_id, state=context.state.value,
        )

        while not context.state.is_terminal:
            source = context.state
            handler = self._handlers[source]
            try:
                target = await handler(context)
            except asyncio.CancelledError:
                # Transactions may already be on chain; the attempt is still recorded
                self._fail(context, source, f"Trade cancelled in state {source.value}")
                self._finish(context)
                raise
            except Exception as e:
                target = self._fail(context, source, str(e) or type(e).__name__)
                continue

            context.log_transition(source, target)
            context.state = target
            logger.debug(f"Trade {intent.pair}: {source.value} -> {target.value}")

        return self._finish(context)

    def _fail(self, context: TradeContext, source: TradeState, error: str) -> TradeState:
        context.error = error
        context.log_transition(source, TradeState.FAILED, error)
        context.state = TradeState.FAILED
        logger.error(f"Trade {context.intent.pair} failed in state {source.value}: {error}")
        return TradeState.FAILED

    def _finish(self, context: TradeContext) -> TradeOutcome:
        intent = context.intent
        outcome = self._outcome(context)
        outcome.record_id = self._record(context, outcome)

        agent_log.trade(
            intent.pair, "completed" if outcome.success else "failed",
            action=intent.side.value, decision_id=intent.decision_id,
            state=outcome.final_state.value, tx_id=",".join(outcome.tx_ids) or None,
        )
        return outcome

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _request_quote(self, context: TradeContext) -> TradeState:
        intent = context.intent
        trading_pair = resolve_pair(intent.pair, self.pairs)
        if trading_pair is None:
            raise TradeRejected(f"Trading pair {intent.pair} not found or disabled")

        context.trading_pair = trading_pair
        if intent.side == TradeSide.BUY:
            context.input_token, context.output_token = trading_pair.quote, trading_pair.base
        else:
            context.input_token, context.output_token = trading_pair.base, trading_pair.quote

        raw_amount = math.floor(intent.amount * (10 ** context.input_token.decimals)) if intent.amount > 0 else 0
        if raw_amount <= 0:
            raise TradeRejected("amount too small")
        context.raw_amount = raw_amount

        logger.info(
            f"Swapping {intent.amount} {context.input_token.symbol} for {context.output_token.symbol} "
            f"(raw {raw_amount}, slippage {self.risk.slippage_bps} bps)"
        )
        context.quote = await self.dex.get_quote(
            context.input_token.mint, context.output_token.mint, raw_amount, self.risk.slippage_bps
        )
        logger.info(f"Quote received. Expected output: {context.expected_output:.6f} {context.output_token.symbol}")
        return TradeState.QUOTED

    async def _estimate_fee(self, context: TradeContext) -> TradeState:
        try:
            context.priority_fee = await self.dex.get_priority_fee()
        except AggregatorError as e:
            logger.warning(f"Priority fee unavailable, using default {self.default_priority_fee}: {e}")
            context.priority_fee = self.default_priority_fee
        logger.info(f"Priority fee: {context.priority_fee} microLamports")
        return TradeState.FEE_ESTIMATED

    async def _build(self, context: TradeContext) -> TradeState:
        wallet = self.signer.address
        input_is_sol = context.input_token.mint == NATIVE_SOL_MINT
        output_is_sol = context.output_token.mint == NATIVE_SOL_MINT

        context.unsigned_transactions = await self.dex.build_swap_transactions(
            context.quote,
            wallet,
            context.priority_fee,
            wrap_sol=input_is_sol,
            unwrap_sol=output_is_sol,
            input_account=None if input_is_sol else associated_token_address(wallet, context.input_token.mint),
            output_account=None if output_is_sol else associated_token_address(wallet, context.output_token.mint),
        )
        if not context.unsigned_transactions:
            raise TradeRejected("No transactions to sign")
        return TradeState.BUILT

    async def _sign(self, context: TradeContext) -> TradeState:
        context.signed_transactions = self.signer.sign_all(context.unsigned_transactions)
        logger.info(f"Signed {len(context.signed_transactions)} transaction(s)")
        return TradeState.SIGNED

    async def _broadcast(self, context: TradeContext) -> TradeState:
        index = context.next_tx_index
        total = len(context.signed_transactions)
        logger.info(f"Sending transaction {index + 1}/{total}")

        tx_id = await self.rpc.send_transaction(context.signed_transactions[index])
        context.tx_ids.append(tx_id)
        context.next_tx_index += 1
        logger.info(f"Transaction {index + 1} sent: {tx_id}", extra={'tx_id': tx_id})
        return TradeState.BROADCAST

    async def _confirm(self, context: TradeContext) -> TradeState:
        tx_id = context.tx_ids[-1]
        try:
            await self.rpc.confirm_transaction(tx_id)
            logger.info(f"Transaction {len(context.tx_ids)} confirmed", extra={'tx_id': tx_id})
        except RpcError as e:
            context.unconfirmed_tx_ids.append(tx_id)
            agent_log.alert(
                "unconfirmed_transaction", "medium",
                f"Transaction {tx_id} not confirmed, it may still succeed: {e}",
                tx_id=tx_id, pair=context.intent.pair,
            )
            if self.fail_on_unconfirmed:
                raise TradeRejected(f"Transaction {tx_id} not confirmed: {e}") from e
        return TradeState.CONFIRMING

    async def _continue_or_finish(self, context: TradeContext) -> TradeState:
        if context.has_pending_broadcast:
            return await self._broadcast(context)
        return TradeState.DONE

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _outcome(self, context: TradeContext) -> TradeOutcome:
        success = context.state == TradeState.DONE
        return TradeOutcome(
            success=success,
            pair=context.intent.pair,
            final_state=context.state,
            tx_ids=list(context.tx_ids),
            unconfirmed_tx_ids=list(context.unconfirmed_tx_ids),
            token_in=context.input_token.symbol if context.input_token else "UNKNOWN",
            token_out=context.output_token.symbol if context.output_token else "UNKNOWN",
            expected_output=context.expected_output,
            error=None if success else context.error,
            transitions=list(context.transitions),
        )

    def _record(self, context: TradeContext, outcome: TradeOutcome) -> Optional[str]:
        record = TradeHistoryRecord(
            pair=context.trading_pair.name if context.trading_pair else context.intent.pair,
            action=context.intent.side.value,
            token_in=outcome.token_in,
            token_out=outcome.token_out,
            amount_in=context.raw_amount,
            expected_amount_out=context.quote.output_amount if context.quote else None,
            status=HistoryStatus.SUCCESS if outcome.success else HistoryStatus.FAILED,
            decision_id=context.intent.decision_id,
            tx_hashes=list(outcome.tx_ids),
            unconfirmed_tx_hashes=list(outcome.unconfirmed_tx_ids),
            error=outcome.error,
            message="Trade execution completed successfully" if outcome.success else "Trade execution failed",
        )
        try:
            return self.history_store.save_trade(record)
        except Exception as e:
            logger.error(f"Failed to save trade record for {context.intent.pair}: {e}")
            return None
