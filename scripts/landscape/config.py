"""Landscape CLI 配置加载

配置来源（后者覆盖前者）：
1. 默认值
2. YAML 配置文件（默认 .landscape_config.yaml，可选）
3. 环境变量 LANDSCAPE_API_URI / LANDSCAPE_API_KEY / LANDSCAPE_API_SECRET / LANDSCAPE_API_TIMEOUT

配置文件格式：

    api:
      uri: https://landscape.canonical.com/api/
      key: XXXXXXXX
      secret: XXXXXXXX
      timeout: 10
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError
from .models import ApiCredentials

logger = logging.getLogger(__name__)

DEFAULT_API_URI = "https://landscape.canonical.com/api/"
DEFAULT_CONFIG_FILE = ".landscape_config.yaml"
# 请求超时（秒）
DEFAULT_TIMEOUT = 10.0

ENV_URI = "LANDSCAPE_API_URI"
ENV_KEY = "LANDSCAPE_API_KEY"
ENV_SECRET = "LANDSCAPE_API_SECRET"
ENV_TIMEOUT = "LANDSCAPE_API_TIMEOUT"


class LandscapeSettings(BaseModel):
    """进程级配置，启动时加载一次，之后不可变。"""

    model_config = ConfigDict(frozen=True)

    uri: str = DEFAULT_API_URI
    credentials: ApiCredentials = Field(default_factory=ApiCredentials)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)


def _load_file(config_path: Path) -> Dict[str, Any]:
    logger.info(f"加载配置文件: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"配置文件格式错误 {config_path}: {e}") from e

    if not isinstance(config, dict) or not isinstance(config.get("api", {}), dict):
        raise ConfigurationError(f"配置文件格式错误 {config_path}: 缺少 api 字段")

    return config.get("api", {})


def _pick(
    environ: Mapping[str, str], env_name: str, api: Dict[str, Any], key: str, default: Any
) -> Any:
    """按 环境变量 > 配置文件 > 默认值 取值。

    已设置的环境变量即使为空字符串也会生效；配置文件中的 0 或空值同样保留，
    交给 LandscapeSettings 校验。
    """
    if env_name in environ:
        return environ[env_name]
    if api.get(key) is not None:
        return api[key]
    return default


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LandscapeSettings:
    """加载配置。

    凭证缺失时不报错，由签名器在发起请求前拒绝。

    Args:
        config_path: 配置文件路径；为 None 时使用默认文件（存在时）
        environ: 环境变量映射，默认 os.environ

    Returns:
        LandscapeSettings 实例

    Raises:
        ConfigurationError: 指定的配置文件不存在、格式错误或取值无效
    """
    if environ is None:
        environ = os.environ

    api: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"配置文件不存在: {path}")
        api = _load_file(path)
    elif Path(DEFAULT_CONFIG_FILE).exists():
        api = _load_file(Path(DEFAULT_CONFIG_FILE))

    uri = _pick(environ, ENV_URI, api, "uri", DEFAULT_API_URI)
    key = _pick(environ, ENV_KEY, api, "key", "")
    secret = _pick(environ, ENV_SECRET, api, "secret", "")
    timeout = _pick(environ, ENV_TIMEOUT, api, "timeout", DEFAULT_TIMEOUT)

    try:
        settings = LandscapeSettings(
            uri=str(uri),
            credentials=ApiCredentials(access_key=str(key), secret_key=str(secret)),
            timeout=timeout,
        )
    except ValidationError as e:
        raise ConfigurationError(f"配置无效: {e}") from e

    logger.debug(f"Landscape API 地址: {settings.uri}")
    return settings
