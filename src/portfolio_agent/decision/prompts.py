"""Prompt templates for the trading and lending advisory calls."""

import json
from typing import Any, Dict, List, Optional

TRADING_SYSTEM_PROMPT = (
    "You are a professional crypto trading advisor analyzing {pairs} pairs on Solana. "
    "Assess market conditions using the technical indicators, price action and cross-pair "
    "signals provided. Respond with ONLY raw JSON, no markdown or code blocks."
)

TRADING_USER_PROMPT = """Analyze these trading pairs and recommend the best trading opportunity if any:
Data: {data}

Consider the following factors in your analysis:

1. Technical Indicators:
- Moving averages (SMA 20/50/200)
- Relative Strength Index (RSI)
- Momentum
- Volatility
- Volume trend

2. Price Action & Trend Analysis:
- Support/resistance levels and distance to them
- Daily, weekly and monthly change
- Trend strength

3. Cross-Pair Analysis:
- Correlations
- Relative strength
- Volatility rank
- Market regime

4. Risk Assessment:
- Volatility levels
- Position sizing
- Lending yields available as an alternative to trading

Return ONLY this JSON structure (no markdown):
{{
  "action": "BUY" | "SELL" | "WAIT",
  "pair": {pair_choices},
  "reasoning": {{
    "marketCondition": "brief state of the chosen market",
    "technicalAnalysis": "key technical factors",
    "riskAssessment": "risk level and considerations",
    "pairSelection": "why this pair was chosen over others",
    "comparativeAnalysis": {{
      "volatilityComparison": "volatility across pairs",
      "trendAlignment": "how trends align/diverge",
      "relativeStrength": "strongest setup and why",
      "correlationImpact": "how correlations affect the decision"
    }}
  }}
}}"""

LENDING_SYSTEM_PROMPT = (
    "You are a DeFi lending expert. Analyze lending opportunities and provide specific "
    "recommendations."
)

LENDING_USER_PROMPT = """## Task
Analyze the provided lending protocol data and recommend the single best yield opportunity. Base the decision primarily on supply APY while considering risk factors.

## Data Structure
Each reserve has:
- `reserve`: Reserve address
- `liquidityToken`: Token symbol
- `maxLtv`: Maximum loan-to-value ratio (risk indicator)
- `borrowApy`: Borrow APY (decimal)
- `supplyApy`: Supply APY (decimal)
- `totalSupplyUsd`: USD value supplied to the pool
- `totalBorrowUsd`: USD value borrowed from the pool
- `utilization`: totalBorrowUsd / totalSupplyUsd

## Decision Criteria (in order of priority):
1. Highest `supplyApy`
2. Pool liquidity depth (prefer pools with more than $1M supplied)
3. Utilization (prefer 10-80%)
4. `maxLtv` > 0 means borrowing is allowed (slightly higher risk)
{trading_context}
## Response Format
Respond with exactly this JSON object:
{{
  "recommended_pair": "[liquidityToken]",
  "supply_apy": "[supplyApy as percentage with % symbol]",
  "supply_apy_decimal": [supplyApy as decimal number],
  "reason": "[2-3 sentence justification focusing on APY and risk]",
  "pool_size_usd": [totalSupplyUsd as number],
  "pool_size_formatted": "$[totalSupplyUsd in millions]M",
  "utilization_rate": "[utilization as percentage with % symbol]",
  "reserve_address": "[reserve address]"
}}

## Important Notes:
- Ignore reserves with a supply APY of 0 or near 0
- If several reserves have similar APY, prefer larger, more liquid pools
- Be concise and data-driven

## Data to Analyze:
{data}"""


def build_trading_prompts(
    indicators: Dict[str, Any],
    cross_asset: Dict[str, Any],
    pairs: List[str],
    lending_context: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, str]:
    """System and user prompts for the trading flow."""
    data: Dict[str, Any] = {"indicators": indicators, "crossPairAnalysis": cross_asset}
    if lending_context:
        data["lendingMarket"] = lending_context

    pair_choices = " | ".join(f'"{p}"' for p in pairs) or "null"
    return {
        "system": TRADING_SYSTEM_PROMPT.format(pairs=", ".join(p.replace("_", "/") for p in pairs)),
        "user": TRADING_USER_PROMPT.format(data=json.dumps(data, default=str), pair_choices=pair_choices),
    }


def build_lending_prompts(
    reserves: List[Dict[str, Any]],
    market_regime: Optional[str] = None,
) -> Dict[str, str]:
    """System and user prompts for the lending flow."""
    trading_context = ""
    if market_regime:
        trading_context = f"\n## Market Context\nCurrent market regime across tracked pairs: {market_regime}\n"
    return {
        "system": LENDING_SYSTEM_PROMPT,
        "user": LENDING_USER_PROMPT.format(
            data=json.dumps(reserves, indent=2, default=str),
            trading_context=trading_context,
        ),
    }
