"""
配置管理模块
============
使用 Pydantic 进行配置验证，支持环境变量和 .env 文件。
"""
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["anthropic", "openrouter", "openai", "groq", "local"]

DEFAULT_PROVIDER_PRIORITY = "anthropic,openrouter,openai,groq"

PROVIDER_BASE_URLS: Dict[str, str] = {
    "openrouter": "https://openrouter.ai/api/v1",
    "groq": "https://api.groq.com/openai/v1",
}


class LLMConfig(BaseModel):
    provider: ProviderName = "openai"
    model_name: str = "gpt-4o-mini"
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=4096, gt=0)
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0 <= v <= 2:
            raise ValueError("temperature 必须在 0 到 2 之间")
        return v


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )
    provider_priority: str = Field(default=DEFAULT_PROVIDER_PRIORITY, alias="PROVIDER_PRIORITY")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(default="claude-3-5-sonnet-latest", alias="ANTHROPIC_MODEL")
    openrouter_api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")
    openrouter_model: str = Field(default="anthropic/claude-3.5-sonnet", alias="OPENROUTER_MODEL")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    groq_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")
    local_model_url: str = Field(default="http://localhost:11434/v1", alias="LOCAL_MODEL_URL")
    local_model_name: str = Field(default="llama3.2", alias="LOCAL_MODEL_NAME")
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=4096, alias="LLM_MAX_TOKENS")
    debug_mode: bool = Field(default=False, alias="DEBUG_MODE")
    max_iterations: int = Field(default=2, ge=1, alias="MAX_ITERATIONS")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    enable_memory_context: bool = Field(default=True, alias="ENABLE_MEMORY_CONTEXT")
    memory_max_items: int = Field(default=200, gt=0, alias="MEMORY_MAX_ITEMS")
    retry_config: RetryConfig = Field(default_factory=RetryConfig)

    def get_provider_priority(self) -> List[str]:
        """按优先级返回候选提供商，忽略空项与重复项"""
        seen: List[str] = []
        for name in self.provider_priority.split(","):
            name = name.strip().lower()
            if name and name not in seen:
                seen.append(name)
        return seen

    def get_llm_config(self, provider: str) -> LLMConfig:
        common = {"temperature": self.llm_temperature, "max_tokens": self.llm_max_tokens}
        if provider == "anthropic":
            return LLMConfig(provider="anthropic", model_name=self.anthropic_model, api_key=self.anthropic_api_key, **common)
        elif provider == "openrouter":
            return LLMConfig(provider="openrouter", model_name=self.openrouter_model, api_key=self.openrouter_api_key, base_url=PROVIDER_BASE_URLS["openrouter"], **common)
        elif provider == "openai":
            return LLMConfig(provider="openai", model_name=self.openai_model, api_key=self.openai_api_key, base_url=self.openai_base_url, **common)
        elif provider == "groq":
            return LLMConfig(provider="groq", model_name=self.groq_model, api_key=self.groq_api_key, base_url=PROVIDER_BASE_URLS["groq"], **common)
        elif provider == "local":
            return LLMConfig(provider="local", model_name=self.local_model_name, base_url=self.local_model_url, **common)
        raise ValueError(f"不支持的 LLM 提供商: {provider}")


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()
