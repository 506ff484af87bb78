"""Configurações centralizadas do karen_ai.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única
- Constantes de automação (DEFAULT_SERVICE_URL, SCREENSHOT_URL_PREFIX)

Uso típico:
    from karen_ai.config import get_settings
"""

from karen_ai.config.settings import (
    DEFAULT_SERVICE_URL,
    SCREENSHOT_URL_PREFIX,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "DEFAULT_SERVICE_URL",
    "SCREENSHOT_URL_PREFIX",
]
