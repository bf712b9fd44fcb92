"""
trustcota/services/ai.py

AI advisor: procurement insights from an OpenAI-compatible chat-completions API.

Behaviour:
- Without OPENAI_API_KEY every method returns fixed fallback content (development, tests).
- Dashboard insights and market analysis degrade to the fallback content when
  the upstream call fails.
- analyze_quotation_request() raises AiServiceError on failure; it runs as a
  best-effort side effect, so the failure is reported there.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests
from flask import Flask, current_app

from ..models import QuotationRequest

logger = logging.getLogger(__name__)

QUOTATION_ANALYSIS_CONFIDENCE = "0.85"

FALLBACK_QUOTATION_ANALYSIS: Dict[str, List[str]] = {
    "costSavings": [
        "Considere negociar desconto para grandes volumes",
        "Avalie fornecedores locais para reduzir custos de frete",
    ],
    "supplierRecommendations": [
        "Solicite cotações de pelo menos 3 fornecedores",
        "Verifique referências e certificações",
    ],
    "timelineOptimization": [
        "Inicie processo de cotação com antecedência",
        "Considere prazos sazonais",
    ],
    "riskAssessment": [
        "Baixo risco para fornecedores conhecidos",
        "Verifique disponibilidade de estoque",
    ],
    "budgetAnalysis": [
        "Orçamento adequado para especificações",
        "Considere margem para variações",
    ],
}

FALLBACK_INSIGHTS: List[Dict[str, Any]] = [
    {
        "type": "opportunity",
        "title": "Otimização de Custos",
        "description": "Identifique oportunidades de economia através da consolidação de fornecedores",
        "priority": "high",
        "actionable": True,
    },
    {
        "type": "trend",
        "title": "Tendência de Mercado",
        "description": "Preços de matérias-primas em alta - considere compras antecipadas",
        "priority": "medium",
        "actionable": True,
    },
    {
        "type": "warning",
        "title": "Alerta de Fornecedor",
        "description": "Revisar contratos que vencem nos próximos 30 dias",
        "priority": "high",
        "actionable": True,
    },
]

FALLBACK_MARKET_ANALYSIS: Dict[str, Any] = {
    "priceRanges": {"min": 50, "max": 200, "average": 125},
    "trends": [
        "Preços estáveis no último trimestre",
        "Demanda crescente por produtos sustentáveis",
    ],
    "recommendations": [
        "Considere negociar contratos de longo prazo",
        "Avalie fornecedores alternativos",
    ],
    "riskFactors": ["Volatilidade cambial", "Mudanças na legislação"],
    "confidence": 0.75,
}


class AiServiceError(RuntimeError):
    """Upstream AI call failed or returned something unusable."""


class AiAdvisor:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o",
        api_url: str = "https://api.openai.com/v1/chat/completions",
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.http = session or requests.Session()

    @classmethod
    def from_app(cls, app: Flask) -> "AiAdvisor":
        cfg = app.config
        advisor = cls(
            api_key=cfg.get("OPENAI_API_KEY"),
            model=cfg.get("OPENAI_MODEL", "gpt-4o"),
            api_url=cfg.get("OPENAI_API_URL", "https://api.openai.com/v1/chat/completions"),
            timeout=int(cfg.get("AI_TIMEOUT_SECONDS", 30)),
        )
        if not advisor.enabled:
            logger.info("OPENAI_API_KEY not set, AI features use fallback content")
        return advisor

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------
    def _complete_json(self, system_prompt: str, user_prompt: str) -> Any:
        """POST one chat completion in JSON mode and return the parsed content."""
        try:
            resp = self.http.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    "response_format": {"type": "json_object"},
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"] or "{}"
            return json.loads(content)
        except requests.RequestException as exc:
            raise AiServiceError(f"AI request failed: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise AiServiceError(f"Unexpected AI response: {exc}") from exc

    # -----------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------
    def analyze_quotation_request(self, request: QuotationRequest) -> Dict[str, Any]:
        if not self.enabled:
            return dict(FALLBACK_QUOTATION_ANALYSIS)

        prompt = (
            "Analyze this quotation request for potential issues, opportunities and recommendations.\n"
            f"Title: {request.title}\n"
            f"Description: {request.description or ''}\n"
            f"Department: {request.department or ''}\n"
            f"Urgency: {request.urgency}\n"
            f"Total Budget: R$ {request.total_budget or '-'}\n"
            "Respond with JSON with these fields: costSavings, supplierRecommendations, "
            "timelineOptimization, riskAssessment, budgetAnalysis"
        )
        result = self._complete_json(
            "You are a procurement specialist analyzing purchase requests.",
            prompt,
        )
        if not isinstance(result, dict):
            raise AiServiceError("AI analysis is not a JSON object")
        return result

    def generate_dashboard_insights(self) -> List[Dict[str, Any]]:
        if not self.enabled:
            return list(FALLBACK_INSIGHTS)

        prompt = (
            "Generate 3-5 current procurement insights for a Brazilian company's dashboard "
            "(cost optimization, market trends, supplier management, risk alerts). "
            'Respond with JSON: {"insights": [{"type": "opportunity|warning|trend|recommendation", '
            '"title": str, "description": str, "priority": "low|medium|high", "actionable": bool}]}'
        )
        try:
            result = self._complete_json("You are a procurement AI assistant.", prompt)
        except AiServiceError as exc:
            logger.warning("Dashboard insights unavailable, using fallback: %s", exc)
            return list(FALLBACK_INSIGHTS)

        insights = result.get("insights") if isinstance(result, dict) else result
        if not isinstance(insights, list) or not insights:
            return list(FALLBACK_INSIGHTS)
        return insights

    def analyze_market_trends(self, product_name: str, category: Optional[str] = None) -> Dict[str, Any]:
        if not self.enabled:
            return dict(FALLBACK_MARKET_ANALYSIS)

        scope = f' in the category "{category}"' if category else ""
        prompt = (
            f'Analyze the current market trends for the product "{product_name}"{scope} in Brazil. '
            'Respond with JSON: {"priceRanges": {"min": number, "max": number, "average": number}, '
            '"trends": [str], "recommendations": [str], "riskFactors": [str], "confidence": number}'
        )
        try:
            result = self._complete_json("You are a procurement and market analysis expert.", prompt)
        except AiServiceError as exc:
            logger.warning("Market analysis unavailable, using fallback: %s", exc)
            return dict(FALLBACK_MARKET_ANALYSIS)

        if not isinstance(result, dict):
            return dict(FALLBACK_MARKET_ANALYSIS)
        return result


def get_advisor() -> AiAdvisor:
    return current_app.extensions["ai_advisor"]
