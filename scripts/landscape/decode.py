"""Landscape API 响应解析"""

import json
import logging
from typing import Any, Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from .exceptions import ApiError, DecodeError
from .models import ErrorEnvelope

logger = logging.getLogger(__name__)


class ResponseDecoder(Protocol):
    """响应解析接口。JSON 之外的序列化格式（如 XML）实现同一接口即可替换。"""

    def decode(self, body: str, schema: TypeAdapter) -> Any:
        ...

    def decode_error(self, body: str) -> Optional[ApiError]:
        ...


class JsonResponseDecoder:
    """解析 Landscape 的 JSON 响应。"""

    def _load(self, body: str) -> Any:
        try:
            return json.loads(body)
        except ValueError as e:
            logger.error(f"JSON 解析失败: {str(e)}")
            raise DecodeError("API 返回无效的 JSON 格式") from e

    @staticmethod
    def _as_error(data: Any) -> Optional[ApiError]:
        if not isinstance(data, dict):
            return None
        try:
            envelope = ErrorEnvelope.model_validate(data)
        except ValidationError:
            return None
        return ApiError(envelope.code, envelope.message)

    def decode(self, body: str, schema: TypeAdapter) -> Any:
        """解析成功响应。

        先按 action 的成功结构校验；不符合时再尝试错误信封。列表保持服务端顺序。

        Args:
            body: 原始响应体
            schema: action 的成功结构

        Returns:
            类型化的结果记录，或 ApiError（错误信封）

        Raises:
            DecodeError: 既不是成功结构也不是错误信封
        """
        data = self._load(body)

        try:
            return schema.validate_python(data)
        except ValidationError as e:
            error = self._as_error(data)
            if error is not None:
                logger.debug(f"响应为错误信封: {error.code}")
                return error

            logger.error(f"数据格式错误: {e.error_count()} 处校验失败")
            raise DecodeError(f"API 返回的数据格式不正确: {e}") from e

    def decode_error(self, body: str) -> Optional[ApiError]:
        """尝试把响应体解析为错误信封，失败时返回 None。"""
        if not body or not body.strip():
            return None
        try:
            data = json.loads(body)
        except ValueError:
            return None
        return self._as_error(data)
