"""
应用配置
使用 pydantic-settings 从环境变量、.env 文件或 YAML 配置文件中读取配置

优先级（从高到低）：构造参数 > 环境变量 > .env > YAML 文件
"""
import json
import os
from functools import lru_cache
from typing import Annotated, Dict, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

# YAML 配置文件路径，可通过 CONFIG_PATH 环境变量覆盖
CONFIG_PATH = os.getenv("CONFIG_PATH", "config/config.yaml")


class Settings(BaseSettings):
    """应用配置类"""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',  # 忽略未定义的字段
        yaml_file=CONFIG_PATH,
    )

    host: str = Field(default='0.0.0.0', description='监听地址')
    port: int = Field(default=8080, description='监听端口')

    # Ollama 服务地址
    ollama_url: str = Field(
        default='http://localhost:11434',
        description='Ollama API 基础 URL'
    )

    # API Key 到别名的映射，别名用于用量统计
    # 支持两种格式：
    # 1. JSON 格式：API_KEYS={"sk-alice": "alice", "sk-bob": "bob"}
    # 2. 逗号分隔：API_KEYS=sk-alice:alice,sk-bob:bob
    api_keys: Annotated[Dict[str, str], NoDecode] = Field(
        default_factory=dict,
        description='API Key -> 别名'
    )

    # 单个请求的超时时间（秒）
    timeout: float = Field(default=300, gt=0, description='单个请求的总时限（秒），同时用作后端连接超时')

    log_level: str = Field(default='info', description='日志级别')

    default_model: str = Field(default='llama3', description='未指定 model 时使用的聊天模型')
    default_embedding_model: str = Field(
        default='nomic-embed-text',
        description='未指定 model 时使用的向量模型'
    )

    verify_ollama_on_startup: bool = Field(
        default=True,
        description='启动时是否检查 Ollama 连接并打印模型列表'
    )

    @field_validator('api_keys', mode='before')
    @classmethod
    def parse_api_keys(cls, v):
        """解析 API Key 映射，支持 JSON 和逗号分隔格式"""
        if v is None:
            return {}

        if isinstance(v, dict):
            return {str(key): str(alias) for key, alias in v.items()}

        if isinstance(v, str):
            v = v.strip()
            if not v:
                return {}
            if v.startswith('{') and v.endswith('}'):
                return json.loads(v)

            result = {}
            for item in v.split(','):
                item = item.strip()
                if not item:
                    continue
                key, sep, alias = item.partition(':')
                if not sep or not key.strip() or not alias.strip():
                    raise ValueError(f"无法解析的 API Key 配置项: {item!r}，应为 key:alias")
                result[key.strip()] = alias.strip()
            return result

        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # YAML 文件不存在时该数据源为空
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @property
    def address(self) -> str:
        """服务监听地址 host:port"""
        return f"{self.host}:{self.port}"

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_keys)

    def get_alias(self, api_key: str) -> Optional[str]:
        """根据 API Key 查找别名，未配置时返回 None"""
        return self.api_keys.get(api_key)


@lru_cache
def get_settings() -> Settings:
    """获取全局配置实例（首次调用时加载）"""
    return Settings()


__all__ = [
    'CONFIG_PATH',
    'Settings',
    'get_settings',
]
