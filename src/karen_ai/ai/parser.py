"""Decodificação estrita das respostas do gateway de IA.

A IA é um oráculo não confiável: cada resposta passa por um decode com
schema (contratos Pydantic) e, se falhar, por uma política de fallback
determinística documentada em cada função. Nenhuma função aqui lança.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from karen_ai.ai.contracts.decisions import (
    ChannelRecommendation,
    ExtractionOutcome,
    InitialAnalysis,
    SufficiencyVerdict,
)
from karen_ai.observability.logging import get_logger, log_fallback

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_ENOUGH_INFO_KEYS = ("hasEnoughInfo", "has_enough_info")


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Retorna o objeto JSON da resposta ou None.

    Aceita cercas markdown (```json ... ```). Só objetos contam: listas ou
    escalares retornam None.
    """
    if not text:
        return None
    candidate = text.strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    if not candidate.startswith("{"):
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _pop_enough_info_flag(data: dict[str, Any]) -> bool | None:
    flag: bool | None = None
    for key in _ENOUGH_INFO_KEYS:
        value = data.pop(key, None)
        if isinstance(value, bool):
            flag = value if flag is None else (flag or value)
    return flag


def decode_initial_analysis(text: str | None) -> InitialAnalysis | None:
    """Decodifica {issue, service, keyDetails}. None → chamador faz fallback."""
    data = parse_json_object(text)
    if data is None:
        log_fallback(logger, "initial_analysis", reason="not_json")
        return None
    if not isinstance(data.get("keyDetails", data.get("key_details", {})), dict):
        data.pop("keyDetails", None)
        data.pop("key_details", None)
    try:
        return InitialAnalysis.model_validate(data)
    except ValidationError:
        log_fallback(logger, "initial_analysis", reason="schema_error")
        return None


def decode_extraction(text: str | None) -> ExtractionOutcome:
    """Decodifica a extração incremental.

    Política:
    - JSON objeto: `details` (se mapping) é desempacotado junto das demais
      chaves; `hasEnoughInfo` booleano no topo ou dentro de `details` vira
      sinal explícito (True vence se aparecer em ambos)
    - Qualquer outra coisa: parsed=False e o texto bruto vira `notes`
    """
    data = parse_json_object(text)
    if data is None:
        log_fallback(logger, "extraction", reason="not_json")
        return ExtractionOutcome(parsed=False, notes=(text or "").strip() or None)

    flag = _pop_enough_info_flag(data)
    details = data.pop("details", None)
    facts: dict[str, Any] = dict(data)
    if isinstance(details, dict):
        nested_flag = _pop_enough_info_flag(details)
        if nested_flag is not None:
            flag = nested_flag if flag is None else (flag or nested_flag)
        facts.update(details)
    elif details is not None:
        facts["details"] = details

    return ExtractionOutcome(parsed=True, facts=facts, has_enough_info=flag)


def decode_sufficiency(text: str | None) -> SufficiencyVerdict:
    """Decodifica a resposta de suficiência.

    Política:
    - JSON com `sufficient` (ou `hasEnoughInfo`) booleano → usado como está
    - Caso contrário: suficiente somente se a primeira palavra for YES
      (case-insensitive); o restante do texto vira o item pendente
    """
    data = parse_json_object(text)
    if data is not None:
        flag = data.get("sufficient")
        if not isinstance(flag, bool):
            flag = _pop_enough_info_flag(dict(data))
        if isinstance(flag, bool):
            missing = data.get("missing") or []
            if not isinstance(missing, list):
                missing = [str(missing)]
            return SufficiencyVerdict(sufficient=flag, missing=[str(m) for m in missing])

    log_fallback(logger, "sufficiency_check", reason="not_json")
    raw = (text or "").strip()
    first_word = re.split(r"[\s,.;:!]+", raw, maxsplit=1)[0].upper() if raw else ""
    sufficient = first_word == "YES"
    missing = [] if sufficient or not raw else [raw]
    return SufficiencyVerdict(sufficient=sufficient, missing=missing, parsed=False)


def decode_channel_recommendation(text: str | None) -> ChannelRecommendation | None:
    """Decodifica {approach, searchQuery, ...}. None → chamador usa busca padrão."""
    data = parse_json_object(text)
    if data is None or not isinstance(data.get("approach"), str):
        log_fallback(logger, "channel_selection", reason="not_json")
        return None
    try:
        return ChannelRecommendation.model_validate(data)
    except ValidationError:
        log_fallback(logger, "channel_selection", reason="schema_error")
        return None
