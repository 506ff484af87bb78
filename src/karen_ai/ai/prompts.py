"""Prompts do gateway de IA.

Cada ponto de decisão do FSM tem um prompt próprio. Os que esperam JSON
descrevem o schema exigido; a resposta é sempre decodificada por
`karen_ai.ai.parser` (nunca confiada cegamente).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

# Marcadores estáveis (usados também pelo gateway determinístico)
INITIAL_ANALYSIS_MARKER = "Extract the customer service issue"
EXTRACTION_MARKER = "Extract any new relevant information"
SUFFICIENCY_MARKER = "Do we have enough information"
PLAN_MARKER = "step-by-step automation plan"
MISSING_INFO_MARKER = "what additional information"
CHANNEL_MARKER = "determine the best approach"
KNOWN_INFO_LABEL = "Known information (JSON):"

ASSISTANT_PERSONA = (
    "You are a friendly customer service automation assistant. "
    "You help users resolve issues with companies by collecting the details "
    "you need and then handling the process for them."
)

INITIAL_ANALYSIS_SYSTEM_PROMPT = (
    "You are a customer service automation assistant. "
    f"{INITIAL_ANALYSIS_MARKER}, the service provider, and any key details "
    "from the user message. Respond ONLY with JSON: "
    '{"issue": string, "service": string, "keyDetails": object}'
)

PLAN_REQUEST = (
    "Based on the information provided, create a detailed step-by-step plan "
    "to resolve this customer service issue."
)

HEALTH_CHECK_PROMPT = "This is a health check. Please respond with 'ok'."


def _dump(info: Mapping[str, Any]) -> str:
    return json.dumps(dict(info), ensure_ascii=False, default=str)


def issue_fallback_prompt(text: str) -> str:
    return f'Extract the customer service issue from this text: "{text}"'


def service_fallback_prompt(text: str) -> str:
    return f'Extract the service provider (e.g., Amazon, PayPal) from this text: "{text}"'


def info_needed_prompt(issue: str | None, service: str | None) -> str:
    return (
        f'Based on this customer service issue: "{issue}" '
        f'with service provider: "{service}", '
        f"{MISSING_INFO_MARKER} do I need to collect from the user to resolve this issue? "
        "Format your response as a friendly message asking for the specific missing information."
    )


def extraction_system_prompt(
    issue: str | None, service: str | None, known_info: Mapping[str, Any]
) -> str:
    return (
        "You are extracting key information for a customer service issue.\n"
        f"Current issue: {issue}\n"
        f"Service provider: {service}\n"
        f"{KNOWN_INFO_LABEL} {_dump(known_info)}\n"
        f"{EXTRACTION_MARKER} from the user's message and format as JSON. "
        "Include order numbers, dates, account details, amounts, etc. "
        'If, together with the known information, everything needed is present, '
        'respond with {"hasEnoughInfo": true, "details": {...}}.'
    )


def sufficiency_prompt(
    issue: str | None, service: str | None, known_info: Mapping[str, Any]
) -> str:
    return (
        f'For this customer service issue: "{issue}" '
        f'with service provider: "{service}",\n'
        f"{KNOWN_INFO_LABEL} {_dump(known_info)}\n"
        f"{SUFFICIENCY_MARKER} to begin automating the customer service process? "
        'Respond ONLY with JSON: {"sufficient": boolean, "missing": [string]}.'
    )


def request_more_info_prompt(
    issue: str | None,
    service: str | None,
    known_info: Mapping[str, Any],
    missing: list[str] | None = None,
) -> str:
    missing_hint = f"Still missing: {', '.join(missing)}.\n" if missing else ""
    return (
        f'Based on this customer service issue: "{issue}" '
        f'with service provider: "{service}",\n'
        f"{KNOWN_INFO_LABEL} {_dump(known_info)}\n"
        f"{missing_hint}"
        "What specific additional information do I need to ask the user for? "
        "Format as a friendly message asking for just the specific missing information."
    )


def plan_system_prompt(
    issue: str | None, service: str | None, known_info: Mapping[str, Any]
) -> str:
    return (
        "You are a customer service automation assistant creating a plan to handle this issue:\n"
        f"Issue: {issue}\n"
        f"Service provider: {service}\n"
        f"{KNOWN_INFO_LABEL} {_dump(known_info)}\n"
        f"Create a {PLAN_MARKER} to resolve this issue with the service provider."
    )


def followup_system_prompt(issue: str | None, service: str | None, completed: bool) -> str:
    status = "Successfully completed" if completed else "Error occurred"
    return (
        "You are a customer service automation assistant who has handled this issue:\n"
        f"Issue: {issue}\n"
        f"Service: {service}\n"
        f"Status: {status}\n"
        "Respond helpfully to the user's follow-up question."
    )


def channel_system_prompt(vendor_name: str) -> str:
    return (
        f"You are a customer service automation expert for the {vendor_name} website.\n"
        f"Analyze this customer issue and {CHANNEL_MARKER}:\n"
        "1. Search knowledge base for information\n"
        "2. Start live chat support\n"
        "3. Send email to support\n"
        "Respond ONLY with JSON:\n"
        '{"approach": "search|chat|email", "searchQuery": string, "chatMessage": string, '
        '"emailSubject": string, "emailMessage": string}'
    )
