"""Tabelas fixas de fornecedores: URL do serviço e detecção de website."""

from __future__ import annotations

from karen_ai.config.settings import DEFAULT_SERVICE_URL

# Ordem importa: primeira chave contida no nome do serviço vence
SERVICE_URLS: tuple[tuple[str, str], ...] = (
    ("amazon", "https://www.amazon.com"),
    ("paypal", "https://www.paypal.com"),
    ("uber", "https://www.uber.com"),
    ("airbnb", "https://www.airbnb.com"),
    ("spotify", "https://www.spotify.com"),
    ("netflix", "https://www.netflix.com"),
    ("paddy power", "https://helpcenter.paddypower.com/app/home"),
    ("paddypower", "https://helpcenter.paddypower.com/app/home"),
)

WEBSITE_DETECTION_PATTERNS: dict[str, tuple[str, ...]] = {
    "amazon": ("amazon.com", "amazon."),
    "paypal": ("paypal.com", "paypal."),
    "uber": ("uber.com", "ubereats.com"),
    "airbnb": ("airbnb.com",),
    "spotify": ("spotify.com",),
    "netflix": ("netflix.com",),
    "paddypower": ("paddypower.com",),
}


def resolve_service_url(service: str | None) -> str:
    """Resolve a URL do fornecedor (case-insensitive, por substring).

    Serviço desconhecido ou ausente → placeholder neutro.
    """
    if not service:
        return DEFAULT_SERVICE_URL
    normalized = service.lower()
    for key, url in SERVICE_URLS:
        if key in normalized:
            return url
    return DEFAULT_SERVICE_URL


def detect_website(url: str | None) -> str:
    """Identifica o fornecedor a partir da URL; 'unknown' se nenhum padrão casar."""
    if not url:
        return "unknown"
    for service, patterns in WEBSITE_DETECTION_PATTERNS.items():
        if any(pattern in url for pattern in patterns):
            return service
    return "unknown"
