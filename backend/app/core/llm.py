# In backend/core/llm.py

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

# LangChain is used as an abstraction layer to interact with various LLM providers.
# This makes it easy to switch between models like Gemini, OpenAI, etc.
try:
    from langchain_openai import ChatOpenAI, AzureChatOpenAI
    from langchain_google_genai import ChatGoogleGenerativeAI
    from langchain_community.chat_models import ChatOllama
    from langchain_core.messages import HumanMessage, SystemMessage, AIMessage
except ImportError as e:
    raise ImportError(
        "Required LangChain packages not found. Please install:\n"
        "pip install langchain-core langchain-openai langchain-google-genai langchain-community"
    ) from e

from app.core.config import settings
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

# complete(system_prompt, user_text, temperature=..., max_tokens=...) -> text
TextCompletion = Callable[..., str]


class LLMProvider(Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    AZURE = "azure"
    OPENAI = "openai"
    OLLAMA = "ollama"


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: LLMProvider
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: int = 30

    # Provider-specific configs
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    api_version: Optional[str] = None
    deployment_name: Optional[str] = None
    credentials_path: Optional[str] = None


class LLMError(ExternalServiceError):
    """Base exception for LLM-related errors."""
    pass


class ConfigurationError(LLMError):
    """Raised when LLM configuration is invalid."""
    pass


class ProviderError(LLMError):
    """Raised when LLM provider call fails."""
    pass


class LLMManager:
    """
    Unified chat-completion interface over the supported providers.
    """

    DEFAULT_MODELS = {
        LLMProvider.GEMINI: "gemini-2.5-flash",
        LLMProvider.AZURE: "gpt-4o",
        LLMProvider.OPENAI: "gpt-4o",
        LLMProvider.OLLAMA: "llama3",
    }

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or self.load_config()
        logger.debug(f"LLMManager: Initializing for provider {self.config.provider.value}, model {self.config.model}")
        self._validate_config()
        self.llm = self._initialize_llm()

    @classmethod
    def from_settings(cls, provider: Optional[str] = None) -> "LLMManager":
        return cls(cls.load_config(provider))

    @classmethod
    def load_config(cls, provider: Optional[str] = None) -> LLMConfig:
        """Build an LLMConfig from application settings."""
        provider_str = provider or settings.LLM_PROVIDER or "gemini"
        try:
            provider_enum = LLMProvider(provider_str.lower())
        except ValueError as e:
            valid_providers = [p.value for p in LLMProvider]
            raise ConfigurationError(
                f"Invalid LLM_PROVIDER: {provider_str}. Valid options: {valid_providers}"
            ) from e

        common = dict(
            provider=provider_enum,
            temperature=settings.LLM_TEMPERATURE if settings.LLM_TEMPERATURE is not None else 0.7,
            max_tokens=settings.LLM_MAX_TOKENS,
            timeout=settings.LLM_TIMEOUT or 30,
        )

        if provider_enum == LLMProvider.GEMINI:
            return LLMConfig(
                model=settings.GEMINI_MODEL or cls.DEFAULT_MODELS[provider_enum],
                api_key=settings.GOOGLE_API_KEY,
                credentials_path=settings.GOOGLE_APPLICATION_CREDENTIALS,
                **common,
            )
        if provider_enum == LLMProvider.AZURE:
            deployment_name = settings.AZURE_DEPLOYMENT_NAME or cls.DEFAULT_MODELS[provider_enum]
            return LLMConfig(
                model=deployment_name,
                api_key=settings.AZURE_OPENAI_KEY,
                api_base=settings.AZURE_OPENAI_BASE,
                api_version=settings.AZURE_API_VERSION,
                deployment_name=deployment_name,
                **common,
            )
        if provider_enum == LLMProvider.OPENAI:
            return LLMConfig(
                model=settings.OPENAI_MODEL or cls.DEFAULT_MODELS[provider_enum],
                api_key=settings.OPENAI_API_KEY,
                api_base=settings.OPENAI_API_BASE or "https://api.openai.com/v1",
                **common,
            )
        return LLMConfig(
            model=settings.OLLAMA_MODEL or cls.DEFAULT_MODELS[provider_enum],
            api_base=settings.OLLAMA_BASE_URL or "http://localhost:11434",
            **common,
        )

    def _validate_config(self) -> None:
        """Validate the current configuration."""
        provider = self.config.provider
        if provider == LLMProvider.GEMINI:
            if not (self.config.api_key or self.config.credentials_path):
                raise ConfigurationError("Gemini requires either GOOGLE_API_KEY or GOOGLE_APPLICATION_CREDENTIALS.")
        elif provider == LLMProvider.AZURE:
            missing = [var for var in ["api_key", "api_base", "api_version", "deployment_name"] if not getattr(self.config, var)]
            if missing:
                raise ConfigurationError(f"Missing required Azure config: {missing}")
        elif provider == LLMProvider.OPENAI:
            if not self.config.api_key:
                raise ConfigurationError("OpenAI requires OPENAI_API_KEY.")
        elif provider == LLMProvider.OLLAMA:
            if not self.config.api_base:
                raise ConfigurationError("Ollama requires OLLAMA_BASE_URL.")

    def _initialize_llm(self):
        """Initialize the appropriate LangChain chat model."""
        config = self.config
        try:
            if config.provider == LLMProvider.GEMINI:
                return ChatGoogleGenerativeAI(
                    model=config.model, temperature=config.temperature, google_api_key=config.api_key,
                    max_output_tokens=config.max_tokens, timeout=config.timeout,
                )
            if config.provider == LLMProvider.AZURE:
                return AzureChatOpenAI(
                    azure_deployment=config.deployment_name, openai_api_version=config.api_version,
                    azure_endpoint=config.api_base, api_key=config.api_key, temperature=config.temperature,
                    max_tokens=config.max_tokens, timeout=config.timeout,
                )
            if config.provider == LLMProvider.OPENAI:
                return ChatOpenAI(
                    model=config.model, api_key=config.api_key, base_url=config.api_base,
                    temperature=config.temperature, max_tokens=config.max_tokens, timeout=config.timeout,
                )
            return ChatOllama(
                model=config.model, base_url=config.api_base, temperature=config.temperature,
                num_predict=config.max_tokens,
            )
        except Exception as e:
            logger.critical(f"LLMManager: Failed to initialize {config.provider.value} LLM: {e}")
            raise ConfigurationError(f"Failed to initialize {config.provider.value} LLM: {e}") from e

    def with_overrides(self, temperature: Optional[float] = None, max_tokens: Optional[int] = None) -> "LLMManager":
        """Return a manager for the same provider with per-request sampling settings."""
        if temperature is None and max_tokens is None:
            return self
        return LLMManager(replace(
            self.config,
            temperature=self.config.temperature if temperature is None else temperature,
            max_tokens=self.config.max_tokens if max_tokens is None else max_tokens,
        ))

    def _format_messages(self, messages: List[Dict[str, str]]) -> List[Union[HumanMessage, SystemMessage, AIMessage]]:
        """Convert message dictionaries to LangChain message objects."""
        formatted_messages = []
        for msg in messages:
            role, content = msg.get("role", "").lower(), msg.get("content", "")
            if role == "system": formatted_messages.append(SystemMessage(content=content))
            elif role in ("user", "human"): formatted_messages.append(HumanMessage(content=content))
            elif role in ("assistant", "ai"): formatted_messages.append(AIMessage(content=content))
            else: logger.warning(f"LLMManager: Unknown message role: {role}, treating as human."); formatted_messages.append(HumanMessage(content=content))
        return formatted_messages

    def get_response(self, messages: List[Dict[str, str]]) -> str:
        """Get response from the configured LLM."""
        try:
            formatted_messages = self._format_messages(messages)
            logger.info(f"LLMManager: Calling {self.config.provider.value} with {len(messages)} messages.")
            response = self.llm.invoke(formatted_messages)
            logger.info(f"LLMManager: Received response from {self.config.provider.value}. Content length: {len(response.content)}")
            return response.content
        except Exception as e:
            error_msg = f"{self.config.provider.value} call failed: {str(e)}"
            logger.error(f"LLMManager: {error_msg}")
            raise ProviderError(error_msg) from e


def complete_text(
    system_prompt: str,
    user_text: str,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
) -> str:
    """
    The text-completion capability used by the pipeline: one system prompt,
    one user message, plain text back.
    """
    manager = LLMManager.from_settings(provider).with_overrides(temperature=temperature, max_tokens=max_tokens)
    return manager.get_response([
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_text},
    ])


def strip_code_fences(text: str) -> str:
    """Remove markdown code block delimiters that models like to wrap JSON in."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else cleaned.lstrip("`")
        if cleaned.startswith("json"):
            cleaned = cleaned[4:]
    if cleaned.rstrip().endswith("```"):
        cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()
