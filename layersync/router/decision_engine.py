"""Rule-based routing for extraction strategies.

Turns a request (mode, provider, what the URL and options carry) into an
ordered fallback chain of strategies plus the reasons behind it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from layersync.core.models import ExtractionMode, StrategyName


@dataclass
class RouteContext:
    url: str
    mode: ExtractionMode = ExtractionMode.AUTO
    provider: Optional[str] = None       # detected preset name, e.g. "redbus"
    has_xhr_preset: bool = False
    has_search_params: bool = False      # URL carries fromCityId/toCityId/date
    has_selectors: bool = False
    has_datalayer_config: bool = False   # explicit dataLayer preset or config
    fallback_on_error: bool = True


class DecisionEngine:
    def decide(self, ctx: RouteContext) -> Dict[str, Any]:
        """Build the strategy chain for one request.

        Returns a dict with ``chain`` (list of ``StrategyName``),
        ``chain_names`` and ``reasons``. An empty chain means nothing can
        extract from this URL.
        """
        reasons: List[str] = []

        if ctx.mode == ExtractionMode.DATALAYER:
            reasons.append("mode=dataLayer -> DATALAYER")
            return self._result([StrategyName.DATALAYER], reasons)

        if ctx.mode == ExtractionMode.SELECTORS:
            reasons.append("mode=selectors -> SELECTORS")
            return self._result([StrategyName.SELECTORS], reasons)

        if ctx.mode == ExtractionMode.XHR:
            chain = [StrategyName.XHR, StrategyName.INJECTION]
            reasons.append("mode=xhr -> XHR, INJECTION")
            if ctx.fallback_on_error:
                chain.append(StrategyName.DATALAYER)
                reasons.append("fallback_on_error -> DATALAYER")
            return self._result(chain, reasons)

        if ctx.mode == ExtractionMode.DIRECT:
            chain = [StrategyName.DIRECT]
            reasons.append("mode=direct -> DIRECT")
            if ctx.fallback_on_error:
                tail = [s for s in self._auto_chain(ctx, reasons) if s != StrategyName.DIRECT]
                chain.extend(tail)
                reasons.append("fallback_on_error -> auto tail")
            return self._result(chain, reasons)

        chain = self._auto_chain(ctx, reasons)
        # without fallback a failed direct call is final
        if not ctx.fallback_on_error and chain and chain[0] == StrategyName.DIRECT:
            reasons.append("fallback_on_error=false -> DIRECT only")
            chain = chain[:1]
        return self._result(chain, reasons)

    def _auto_chain(self, ctx: RouteContext, reasons: List[str]) -> List[StrategyName]:
        chain: List[StrategyName] = []
        if ctx.provider and ctx.has_xhr_preset:
            if ctx.has_search_params:
                chain.append(StrategyName.DIRECT)
                reasons.append(f"provider={ctx.provider} + search params -> DIRECT")
            chain.extend([StrategyName.XHR, StrategyName.INJECTION, StrategyName.DATALAYER])
            reasons.append(f"provider={ctx.provider} has XHR preset -> XHR, INJECTION, DATALAYER")
        elif ctx.provider or ctx.has_datalayer_config:
            chain.append(StrategyName.DATALAYER)
            reasons.append("dataLayer preset available -> DATALAYER")
        else:
            reasons.append("unknown provider")

        if ctx.has_selectors:
            chain.append(StrategyName.SELECTORS)
            reasons.append("selectors supplied -> SELECTORS")
        return chain

    def _result(self, chain: List[StrategyName], reasons: List[str]) -> Dict[str, Any]:
        return {
            "chain": chain,
            "chain_names": [s.value for s in chain],
            "reasons": reasons,
        }
