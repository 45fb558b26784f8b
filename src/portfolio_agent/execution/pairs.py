"""Resolve requested pair names onto configured trading pairs."""

import logging
import re
from typing import List, Optional

from portfolio_agent.config.settings import TradingPairConfig

logger = logging.getLogger(__name__)


def normalize_pair_name(name: str) -> str:
    """Uppercase and unify separators: ``sol/usd`` -> ``SOL_USD``."""
    return re.sub(r"[/_\-]", "_", (name or "").strip().upper())


def resolve_pair(name: str, pairs: List[TradingPairConfig]) -> Optional[TradingPairConfig]:
    """
    Find the enabled trading pair matching ``name``.

    Matching order: exact normalized name, then ``BASE_QUOTE`` or
    ``BASEQUOTE`` by token symbols, then ``BASE_USD`` against a pair whose
    quote token is USD-denominated (e.g. ``SOL_USD`` -> ``SOL_USDT``).
    """
    normalized = normalize_pair_name(name)
    enabled = [p for p in pairs if p.enabled]

    for pair in enabled:
        if normalize_pair_name(pair.name) == normalized:
            return pair

    for pair in enabled:
        base = pair.base.symbol.upper()
        quote = pair.quote.symbol.upper()
        if normalized in (f"{base}_{quote}", f"{base}{quote}"):
            return pair

    for pair in enabled:
        base = pair.base.symbol.upper()
        quote = pair.quote.symbol.upper()
        if normalized == f"{base}_USD" and "USD" in quote:
            return pair

    logger.warning(
        f"Trading pair not found or disabled: {name} (normalized {normalized}), "
        f"available: {[p.name for p in enabled]}"
    )
    return None
