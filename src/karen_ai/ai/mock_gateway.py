"""Gateway determinístico (modo mock) para dev e testes.

Sem chamadas externas: reconhece o ponto de decisão pelos marcadores dos
prompts e responde com heurísticas de palavras-chave (reembolso de pedido,
cancelamento de assinatura). Respostas JSON seguem os mesmos contratos
esperados do modelo real.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from dateutil import parser as date_parser

from karen_ai.ai import prompts
from karen_ai.domain.protocols.ai_gateway import AIGateway
from karen_ai.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_ORDER_RE = re.compile(r"#\s*(\d+)|order\s+(?:number\s+|no\.?\s*)?(\d{3,})", re.IGNORECASE)
_DATE_RE = re.compile(
    r"([A-Z][a-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})"
    r"|(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})"
)
_REASON_KEYWORDS = (
    "damaged",
    "broken",
    "wrong",
    "defective",
    "late",
    "not received",
    "cancel",
)
_REFUND_FIELDS = ("orderNumber", "orderDate", "reason")
_SUBSCRIPTION_FIELDS = ("accountType", "signupMethod")

DEFAULT_REPLY = (
    "I'll help you with your customer service request. "
    "Could you please provide more specific details about your issue?"
)


def extract_order_number(text: str) -> str | None:
    match = _ORDER_RE.search(text)
    if not match:
        return None
    return match.group(1) or match.group(2)


def extract_date(text: str) -> str | None:
    """Data normalizada em ISO (YYYY-MM-DD) ou None."""
    match = _DATE_RE.search(text)
    if not match:
        return None
    try:
        return date_parser.parse(match.group(0), fuzzy=True).date().isoformat()
    except (ValueError, OverflowError):
        return match.group(0)


def extract_reason(text: str) -> str | None:
    lowered = text.lower()
    for keyword in _REASON_KEYWORDS:
        if keyword in lowered:
            return keyword
    return None


def extract_account_type(text: str) -> str | None:
    lowered = text.lower()
    if "premium" in lowered or "paid subscription" in lowered:
        return "Premium"
    if "family plan" in lowered:
        return "Family"
    if "student plan" in lowered:
        return "Student"
    if "free" in lowered:
        return "Free"
    return None


def extract_signup_method(text: str) -> str | None:
    lowered = text.lower()
    if "apple" in lowered or "app store" in lowered or "iphone" in lowered:
        return "Apple"
    if "google" in lowered or "play store" in lowered or "android" in lowered:
        return "Google Play"
    if "website" in lowered or "direct" in lowered:
        return "Spotify Website"
    return None


def _is_subscription(text: str) -> bool:
    lowered = text.lower()
    return any(token in lowered for token in ("spotify", "subscription", "cancel"))


def _known_info(text: str) -> dict[str, Any]:
    """Lê o JSON que os prompts embutem após KNOWN_INFO_LABEL."""
    _, sep, rest = text.partition(prompts.KNOWN_INFO_LABEL)
    if not sep:
        return {}
    line = rest.strip().splitlines()[0] if rest.strip() else ""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


class DeterministicGateway(AIGateway):
    """Respostas determinísticas por palavra-chave (AI_MOCK_MODE)."""

    def __init__(self) -> None:
        self.request_count = 0

    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        system_prompt: str | None = None,
    ) -> str:
        self.request_count += 1
        system = system_prompt or ""
        user_message = next(
            (m.get("content", "") for m in messages if m.get("role") == "user"), ""
        )

        if prompts.INITIAL_ANALYSIS_MARKER in system:
            return self._initial_analysis(user_message)
        if prompts.EXTRACTION_MARKER in system:
            return self._extraction(user_message, system)
        if prompts.PLAN_MARKER in system:
            return self._plan(system)
        if prompts.CHANNEL_MARKER in system:
            return self._channel(user_message)
        if prompts.SUFFICIENCY_MARKER in user_message:
            return self._sufficiency(user_message)
        if prompts.MISSING_INFO_MARKER in user_message:
            return self._info_needed(user_message)
        if "What specific additional information" in user_message:
            return self._request_more(user_message)
        if user_message.startswith("Extract the customer service issue from this text"):
            return "Customer service inquiry"
        if user_message.startswith("Extract the service provider"):
            return "Unknown"
        return DEFAULT_REPLY

    async def health(self) -> dict[str, Any]:
        return {
            "status": "mock_mode",
            "message": "AI service is running in mock mode",
            "requestCount": self.request_count,
        }

    # === Pontos de decisão ===

    def _initial_analysis(self, text: str) -> str:
        lowered = text.lower()
        if _is_subscription(text):
            payload: dict[str, Any] = {
                "issue": "Subscription cancellation",
                "service": "Spotify",
                "keyDetails": {},
            }
        elif "refund" in lowered and "amazon" in lowered:
            order_number = extract_order_number(text)
            payload = {
                "issue": "Refund request",
                "service": "Amazon",
                "keyDetails": {"orderNumber": order_number} if order_number else {},
            }
        else:
            service_match = re.search(
                r"(\w+)(?=\s+order|\s+subscription|\s+account)", text, re.IGNORECASE
            )
            if "refund" in lowered:
                issue = "Refund request"
            elif "cancel" in lowered:
                issue = "Cancellation request"
            else:
                issue = "Customer service inquiry"
            payload = {
                "issue": issue,
                "service": service_match.group(1) if service_match else "Unknown",
                "keyDetails": {},
            }
        return json.dumps(payload)

    def _extraction(self, text: str, system: str) -> str:
        if _is_subscription(text) or _is_subscription(system):
            details = {
                "accountType": extract_account_type(text),
                "signupMethod": extract_signup_method(text),
            }
            required = _SUBSCRIPTION_FIELDS
        else:
            details = {
                "orderNumber": extract_order_number(text),
                "orderDate": extract_date(text),
                "reason": extract_reason(text),
            }
            required = _REFUND_FIELDS

        found = {k: v for k, v in details.items() if v}
        known = _known_info(system)
        logger.debug(
            "mock_extraction",
            extra={"found_fields": sorted(found), "required_fields": list(required)},
        )
        if all(found.get(field) or known.get(field) for field in required):
            return json.dumps({"hasEnoughInfo": True, "details": found})
        if found:
            return json.dumps(found)
        return DEFAULT_REPLY

    def _sufficiency(self, prompt: str) -> str:
        info = _known_info(prompt)
        required = _SUBSCRIPTION_FIELDS if _is_subscription(prompt) else _REFUND_FIELDS
        missing = [field for field in required if not info.get(field)]
        return json.dumps({"sufficient": not missing, "missing": missing})

    def _plan(self, system: str) -> str:
        target = "Amazon.com" if "Amazon" in system else "the service website"
        subject = "refund" if "refund" in system.lower() else "customer service"
        return (
            f"1. Navigate to the service provider's website ({target})\n"
            "2. Go to the customer service or help section\n"
            f"3. Search for information about the {subject} request\n"
            "4. Find and select the specific order or account using the provided information\n"
            f"5. Submit the {subject} request\n"
            "6. Capture confirmation details\n"
            "7. Verify the status of the request"
        )

    def _info_needed(self, prompt: str) -> str:
        if _is_subscription(prompt):
            return (
                "I understand you want to cancel your subscription. Can you please confirm "
                "if you're using a free or premium account, and how you originally signed up "
                "(directly on the website, through Apple, etc.)?"
            )
        return (
            "I understand you need help with your order. Can you please provide the order "
            "number, the order date and the reason for your request?"
        )

    def _request_more(self, prompt: str) -> str:
        _, sep, rest = prompt.partition("Still missing:")
        missing = rest.strip().splitlines()[0].rstrip(".") if sep and rest.strip() else ""
        if missing:
            return f"Thanks! To continue I still need: {missing}. Could you share that?"
        return DEFAULT_REPLY

    def _channel(self, issue_json: str) -> str:
        try:
            details = json.loads(issue_json)
        except json.JSONDecodeError:
            details = {}
        if not isinstance(details, dict):
            details = {}
        blob = json.dumps(details).lower()
        issue_type = details.get("issueType", "help")
        company = details.get("company", "")
        if "chat" in blob:
            return json.dumps({"approach": "chat", "chatMessage": details.get("details", "")})
        if "email" in blob:
            return json.dumps({
                "approach": "email",
                "emailSubject": f"{issue_type} - Support Request",
                "emailMessage": details.get("details", ""),
            })
        return json.dumps({
            "approach": "search",
            "searchQuery": f"{issue_type} {company}".strip(),
        })
