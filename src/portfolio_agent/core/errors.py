"""
Exception hierarchy for the portfolio agent.

Only NoMarketDataError and ConsensusUnavailableError abort a decision cycle;
the orchestrator wraps them in CycleAbortedError. Everything else is degraded
locally by the component that sees it.
"""


class PortfolioAgentError(Exception):
    """Base class for all agent errors."""


# Market data -----------------------------------------------------------------

class PriceHistoryError(PortfolioAgentError):
    """Price-history request failed (transport, status or payload)."""


class NoMarketDataError(PortfolioAgentError):
    """No tracked pair produced a usable price series this cycle."""


class LendingDataError(PortfolioAgentError):
    """Lending-market metrics could not be fetched or parsed."""


# Advisory / consensus --------------------------------------------------------

class AdvisoryProviderError(PortfolioAgentError):
    """Provider call rejected (transport error or non-200 status)."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class AdvisoryParseError(AdvisoryProviderError):
    """Unparsable provider response: timed out, empty body or no valid JSON object."""


class ConsensusUnavailableError(PortfolioAgentError):
    """Both advisory providers failed for the trading flow."""


# Orchestration ---------------------------------------------------------------

class CycleAbortedError(PortfolioAgentError):
    """The current decision cycle was abandoned; the next one may proceed."""

    def __init__(self, reason: str, decision_id: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.decision_id = decision_id
