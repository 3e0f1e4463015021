"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("RELAY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class RelaySettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 模型 Provider ----
    default_provider: str = Field(
        default="gemini",
        description="默认使用的 Provider 名称",
    )
    default_model: str = Field(
        default="assistant-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )

    # ---- 聊天平台（Stream Chat） ----
    stream_api_key: Optional[str] = Field(default=None, description="Stream Chat API key")
    stream_api_secret: Optional[str] = Field(default=None, description="Stream Chat API secret，用于签发服务端 JWT")
    stream_base_url: str = Field(
        default="https://chat.stream-io-api.com",
        description="Stream Chat REST 基础URL",
    )
    bot_user_id: str = Field(default="ai-bot", description="AI 回复消息使用的用户 ID")

    # ---- Web 搜索（Tavily） ----
    tavily_api_key: Optional[str] = Field(default=None, description="Tavily API 密钥，未配置时搜索不可用")
    tavily_base_url: str = Field(default="https://api.tavily.com", description="Tavily API 基础URL")

    # ---- 运行参数 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    log_dir: str = Field(default="logs", description="日志目录")
    log_file: str = Field(default="relay.log", description="日志文件名（位于 log_dir 下）")
    log_level: str = Field(default="INFO", description="日志级别，如 DEBUG / INFO / WARNING")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    update_interval: float = Field(
        default=1.0,
        gt=0.0,
        description="流式输出期间两次消息局部更新之间的最小间隔（秒）",
    )
    max_tool_rounds: int = Field(
        default=1,
        ge=1,
        le=5,
        description="单次回复内工具调用的最大往返次数",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("gemini_api_key", "tavily_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = RelaySettings()
