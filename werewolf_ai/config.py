"""AI 配置 - 读取并校验模型调用参数"""
import os
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError


# 兼容 OpenAI 协议的服务商
PROVIDER_BASE_URLS: Dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "qwen": "https://dashscope.aliyuncs.com/compatible-mode/v1",
    "deepseek": "https://api.deepseek.com/v1",
}

DEFAULT_MODEL = "gpt-3.5-turbo"


class AIConfig(BaseModel):
    """模型调用配置（只读）"""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = PROVIDER_BASE_URLS["openai"]
    enabled: bool = True
    max_tokens: int = Field(1000, gt=0)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    turn_timeout: float = Field(30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"base_url 不是合法的 URL: {value!r}")
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_api_key(self) -> "AIConfig":
        # 禁用时走 MockLLM，不需要密钥
        if self.enabled and (not self.api_key.startswith("sk-") or len(self.api_key) < 10):
            raise ValueError("API密钥格式不正确，应以 sk- 开头且长度不少于10")
        return self

    def masked_key(self) -> str:
        if not self.api_key:
            return "(未设置)"
        return f"{self.api_key[:5]}...{self.api_key[-4:]}"


def _from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}

    api_key = environ.get("OPENAI_API_KEY", "")
    values["api_key"] = api_key

    provider = environ.get("AI_PROVIDER", "openai").lower()
    if provider not in PROVIDER_BASE_URLS:
        raise ConfigError(f"未知的 AI_PROVIDER: {provider}")
    values["base_url"] = environ.get("OPENAI_BASE_URL") or PROVIDER_BASE_URLS[provider]

    if environ.get("OPENAI_MODEL"):
        values["model"] = environ["OPENAI_MODEL"]

    if environ.get("AI_ENABLED"):
        values["enabled"] = environ["AI_ENABLED"].lower() != "false"

    for env_name, key in (
        ("AI_MAX_TOKENS", "max_tokens"),
        ("AI_TEMPERATURE", "temperature"),
        ("AI_TURN_TIMEOUT", "turn_timeout"),
    ):
        if environ.get(env_name):
            values[key] = environ[env_name]
    return values


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AIConfig:
    """
    合并配置：overrides > 环境变量 > 默认值

    Raises:
        ConfigError: 任何字段不合法
    """
    values = _from_environ(os.environ if environ is None else environ)
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})
    # 未显式指定时，有密钥即启用
    values.setdefault("enabled", bool(values.get("api_key")))
    try:
        return AIConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"AI 配置无效: {e}") from e
