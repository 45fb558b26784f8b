"""
Advisory providers and response parsing.

AdvisoryProvider talks to an OpenAI-compatible /chat/completions endpoint
(OpenAI, xAI Grok, ...). Provider text is turned into typed advice in exactly
one place: parse_advisory_response() extracts the first top-level JSON object,
and the parse_*_advice() helpers validate it with pydantic. Nothing past this
module looks at raw provider text.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Literal, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from portfolio_agent.core.errors import AdvisoryParseError, AdvisoryProviderError
from portfolio_agent.decision.models import LendingAdvice, RiskLevel, TradingAdvice, TradingReasoning

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?")


# ============================================================================
# Provider client
# ============================================================================

class AdvisoryProvider:
    """
    OpenAI-compatible chat completion client.

    A rejected call (transport error, non-200) raises AdvisoryProviderError.
    A call that produced nothing usable (timeout, empty or malformed body)
    raises AdvisoryParseError. Both carry the provider name.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        model: str,
        timeout_seconds: float = 30.0,
        max_tokens: int = 500,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config) -> "AdvisoryProvider":
        return cls(
            name=config.name,
            base_url=config.base_url,
            api_key=config.api_key.get_secret_value(),
            model=config.model,
            timeout_seconds=config.timeout_seconds,
            max_tokens=config.max_tokens,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.2) -> str:
        """Send one chat completion and return the assistant text."""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(f"Making API call to {self.name} ({self.model})", extra={"provider": self.name})
        session = await self._get_session()
        try:
            async with session.post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise AdvisoryProviderError(
                        f"{self.name} returned {response.status}: {text[:200]}", provider=self.name
                    )
                data = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise AdvisoryParseError(
                f"{self.name} timed out after {self.timeout_seconds}s", provider=self.name
            ) from e
        except aiohttp.ClientError as e:
            raise AdvisoryProviderError(f"{self.name} request failed: {e}", provider=self.name) from e
        except ValueError as e:
            raise AdvisoryParseError(f"{self.name} returned invalid JSON: {e}", provider=self.name) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not content or not str(content).strip():
            raise AdvisoryParseError(f"{self.name} returned an empty response", provider=self.name)

        logger.debug(f"{self.name} response: {str(content)[:500]}", extra={"provider": self.name})
        return str(content)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None


# ============================================================================
# Parsing boundary
# ============================================================================

def parse_advisory_response(text: Optional[str], provider: str = "") -> Dict[str, Any]:
    """
    Extract the first top-level JSON object from provider text.

    Prose and markdown fences around the object are ignored.

    Raises:
        AdvisoryParseError: If the text is empty or holds no JSON object
    """
    if text is None or not text.strip():
        raise AdvisoryParseError("Empty provider response", provider=provider)

    cleaned = _FENCE_RE.sub("", text)
    decoder = json.JSONDecoder()
    idx = cleaned.find("{")
    while idx != -1:
        try:
            obj, _ = decoder.raw_decode(cleaned, idx)
        except json.JSONDecodeError:
            idx = cleaned.find("{", idx + 1)
            continue
        if isinstance(obj, dict):
            return obj
        idx = cleaned.find("{", idx + 1)

    raise AdvisoryParseError(f"No JSON object found in response: {text[:120]!r}", provider=provider)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _as_number(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace("%", "").replace("$", "").replace(",", "").strip()
    multiplier = 1.0
    if cleaned[-1:].upper() == "M":
        cleaned, multiplier = cleaned[:-1], 1_000_000.0
    try:
        return float(cleaned) * multiplier
    except ValueError:
        return 0.0


class ComparativeAnalysisPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    volatilityComparison: str = ""
    trendAlignment: str = ""
    relativeStrength: str = ""
    correlationImpact: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)


class TradingReasoningPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    marketCondition: str = ""
    technicalAnalysis: str = ""
    riskAssessment: str = ""
    pairSelection: str = ""
    comparativeAnalysis: ComparativeAnalysisPayload = Field(default_factory=ComparativeAnalysisPayload)

    @field_validator("marketCondition", "technicalAnalysis", "riskAssessment", "pairSelection", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)

    @field_validator("comparativeAnalysis", mode="before")
    @classmethod
    def comparative_object(cls, v):
        if isinstance(v, str):
            return {"relativeStrength": v}
        return v or {}


class TradingAdvicePayload(BaseModel):
    """Expected JSON shape of a trading recommendation."""
    model_config = ConfigDict(extra="ignore")

    action: Literal["BUY", "SELL", "WAIT"]
    pair: Optional[str] = None
    reasoning: TradingReasoningPayload = Field(default_factory=TradingReasoningPayload)

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v):
        return str(v).strip().upper() if v is not None else v

    @field_validator("pair", mode="before")
    @classmethod
    def normalize_pair(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("reasoning", mode="before")
    @classmethod
    def reasoning_object(cls, v):
        if isinstance(v, str):
            return {"marketCondition": v}
        return v or {}


class LendingAdvicePayload(BaseModel):
    """Expected JSON shape of a lending recommendation."""
    model_config = ConfigDict(extra="ignore")

    recommended_pair: Optional[str] = None
    supply_apy: str = ""
    supply_apy_decimal: float = 0.0
    reason: str = ""
    pool_size_usd: float = 0.0
    pool_size_formatted: str = ""
    utilization_rate: float = 0.0
    reserve_address: Optional[str] = None

    @field_validator("supply_apy", "reason", "pool_size_formatted", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _as_text(v)

    @field_validator("supply_apy_decimal", "pool_size_usd", "utilization_rate", mode="before")
    @classmethod
    def coerce_number(cls, v):
        return _as_number(v)


def lending_risk_level(apy_decimal: float, pool_size_usd: float, utilization_pct: float) -> RiskLevel:
    """
    Classify a lending opportunity.

    HIGH: APY above 10%, pool under $1M or utilization above 90%.
    MEDIUM: utilization under 5%.
    LOW: APY between 2% and 10% in a pool of at least $1M.
    """
    if apy_decimal > 0.1:
        return RiskLevel.HIGH
    if pool_size_usd < 1_000_000:
        return RiskLevel.HIGH
    if utilization_pct > 90:
        return RiskLevel.HIGH
    if utilization_pct < 5:
        return RiskLevel.MEDIUM
    if 0.02 <= apy_decimal <= 0.1:
        return RiskLevel.LOW
    return RiskLevel.MEDIUM


def parse_trading_advice(text: Optional[str], provider: str = "") -> TradingAdvice:
    """Parse and validate a trading recommendation."""
    data = parse_advisory_response(text, provider)
    try:
        payload = TradingAdvicePayload.model_validate(data)
    except ValidationError as e:
        raise AdvisoryParseError(f"Invalid trading recommendation: {e}", provider=provider) from e

    reasoning = payload.reasoning
    return TradingAdvice(
        provider=provider,
        action=payload.action,
        pair=payload.pair,
        reasoning=TradingReasoning(
            market_condition=reasoning.marketCondition,
            technical_analysis=reasoning.technicalAnalysis,
            risk_assessment=reasoning.riskAssessment,
            pair_selection=reasoning.pairSelection,
            comparative_analysis=reasoning.comparativeAnalysis.model_dump(),
        ),
    )


def parse_lending_advice(
    text: Optional[str],
    provider: str = "",
    min_apy_threshold: float = 0.01,
    allocation_pct: float = 0.1,
) -> LendingAdvice:
    """
    Parse and validate a lending recommendation.

    The action is LEND for any positive yield; execution additionally needs
    the yield to exceed ``min_apy_threshold``.
    """
    data = parse_advisory_response(text, provider)
    try:
        payload = LendingAdvicePayload.model_validate(data)
    except ValidationError as e:
        raise AdvisoryParseError(f"Invalid lending recommendation: {e}", provider=provider) from e

    apy = payload.supply_apy_decimal
    token = payload.recommended_pair
    action = "LEND" if apy > 0 and token else "WAIT"
    should_execute = action == "LEND" and apy > min_apy_threshold

    return LendingAdvice(
        provider=provider,
        action=action,
        token=token,
        apy_decimal=apy,
        apy_display=payload.supply_apy,
        reason=payload.reason or "No reasoning provided",
        pool_size_usd=payload.pool_size_usd,
        utilization_pct=payload.utilization_rate,
        reserve_address=payload.reserve_address,
        should_execute=should_execute,
        risk_level=lending_risk_level(apy, payload.pool_size_usd, payload.utilization_rate),
        amount_pct=allocation_pct if should_execute else 0.0,
    )
