"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars (ou `.env` em dev).
Nunca hardcode secrets ou valores sensíveis.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# -----------------------------------------------------------------------------
# Constantes de automação
# -----------------------------------------------------------------------------
DEFAULT_SERVICE_URL: str = "https://example.com"
SCREENSHOT_URL_PREFIX: str = "/data/screenshots"
DEFAULT_BROWSER_USER_AGENT: str = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/100.0.4896.127 Safari/537.36"
)

_VALID_STORE_BACKENDS = frozenset({"memory", "redis", "firestore"})


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    # Aplicação
    service_name: str = "karen_ai"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json | text

    # IA (gateway OpenAI)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0
    openai_max_retries: int = 2
    openai_temperature: float = 0.7
    openai_max_tokens: int = 1000
    ai_mock_mode: bool = False  # Respostas determinísticas (dev/testes)
    ai_max_requests_per_minute: int = 100

    # Persistência de conversas
    conversation_store_backend: str = "memory"  # memory | redis | firestore
    redis_url: str | None = None
    firestore_project_id: str | None = None
    firestore_database_id: str = "(default)"
    conversations_collection: str = "conversations"

    # Navegador (Playwright)
    browser_headless: bool = True
    browser_user_agent: str = DEFAULT_BROWSER_USER_AGENT
    browser_viewport_width: int = 1280
    browser_viewport_height: int = 800
    browser_element_timeout_ms: int = 10_000  # Espera por seletor
    browser_navigation_timeout_ms: int = 30_000  # Espera por networkidle
    screenshot_dir: str = "data/screenshots"

    # Fluxo de conversa
    automation_completion_steps: int = 3  # Passos até COMPLETED
    followup_context_messages: int = 5  # Mensagens usadas no follow-up
    turn_timeout_seconds: float = 120.0  # Deadline por turno
    user_conversations_default_limit: int = 10

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @property
    def use_mock_ai(self) -> bool:
        """Mock quando explicitamente habilitado ou sem chave configurada."""
        return self.ai_mock_mode or not self.openai_api_key

    def validate_ai_config(self) -> list[str]:
        """Valida configuração do gateway de IA.

        Em produção o modo mock é proibido. Retorna lista de erros (vazia = OK).
        """
        errors: list[str] = []
        if self.is_production and self.use_mock_ai:
            errors.append(
                "AI_MOCK_MODE (ou OPENAI_API_KEY ausente) é proibido em produção"
            )
        if self.ai_max_requests_per_minute <= 0:
            errors.append("AI_MAX_REQUESTS_PER_MINUTE deve ser positivo")
        return errors

    def validate_store_config(self) -> list[str]:
        """Valida backend de persistência de conversas."""
        errors: list[str] = []
        backend = self.conversation_store_backend.lower()

        if backend not in _VALID_STORE_BACKENDS:
            errors.append(
                f"CONVERSATION_STORE_BACKEND '{backend}' inválido. "
                f"Valores válidos: {sorted(_VALID_STORE_BACKENDS)}"
            )
        if backend == "redis" and not self.redis_url:
            errors.append("CONVERSATION_STORE_BACKEND=redis requer REDIS_URL configurado")
        if self.is_production and backend == "memory":
            errors.append(
                "CONVERSATION_STORE_BACKEND=memory é proibido em produção. "
                "Use 'redis' ou 'firestore'."
            )
        return errors

    def validate_flow_config(self) -> list[str]:
        """Valida limites do fluxo de automação."""
        errors: list[str] = []
        if self.automation_completion_steps < 1:
            errors.append("AUTOMATION_COMPLETION_STEPS deve ser >= 1")
        if self.followup_context_messages < 1:
            errors.append("FOLLOWUP_CONTEXT_MESSAGES deve ser >= 1")
        if self.turn_timeout_seconds <= 0:
            errors.append("TURN_TIMEOUT_SECONDS deve ser positivo")
        return errors

    def validate_all(self) -> list[str]:
        errors: list[str] = []
        errors.extend(self.validate_ai_config())
        errors.extend(self.validate_store_config())
        errors.extend(self.validate_flow_config())
        return errors


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()
