"""Per-session capture configuration."""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

DEFAULT_SERVICE_URL = "https://interview-stt-proxy.agusmontoya.workers.dev"
DEFAULT_LANGUAGE = "en"
DEFAULT_PROVIDER = "deepgram"
DEFAULT_MODEL = "nova-3"


@dataclass(frozen=True)
class CaptureConfig:
    """Immutable options for one capture session.

    Built once from the caller's options when a session starts and only read
    afterwards.
    """
    auth_token: str = ""
    service_url: str = DEFAULT_SERVICE_URL
    language: str = DEFAULT_LANGUAGE
    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    collaborator_url: str = ""
    collaborator_anon_key: str = ""
    internal_api_key: str = ""

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "CaptureConfig":
        """Build a config from caller options keyed the way the host sends them.

        Args:
            options: Mapping with optional keys authToken, sttProxyUrl, language,
                provider, model, supabaseUrl, supabaseAnonKey, internalApiKey.
                Missing or null values fall back to the defaults.
        """
        options = options or {}

        def pick(key: str, default: str) -> str:
            value = options.get(key)
            return default if value is None else str(value)

        return cls(
            auth_token=pick("authToken", ""),
            service_url=pick("sttProxyUrl", DEFAULT_SERVICE_URL),
            language=pick("language", DEFAULT_LANGUAGE),
            provider=pick("provider", DEFAULT_PROVIDER),
            model=pick("model", DEFAULT_MODEL),
            collaborator_url=pick("supabaseUrl", ""),
            collaborator_anon_key=pick("supabaseAnonKey", ""),
            internal_api_key=pick("internalApiKey", ""),
        )
