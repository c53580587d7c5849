"""
结果提取模块
============

把生成服务返回的原始文本转换为结构化数据，永不抛出异常。

解析失败时返回 ExtractionResult(payload={"raw": 原文前 500 字符}, ok=False)，
调用方必须把 ok=False 视为“该部分使用默认值”，而不是致命错误。
"""

import json
import re
from typing import Any, Dict, List, Optional

from agentswarm.types import ExtractionResult
from agentswarm.utils.logger import get_logger

logger = get_logger(__name__)

RAW_CAPTURE_LIMIT = 500

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")


def strip_fences(raw: str) -> str:
    """去掉 ``` 与 ```json 代码块标记"""
    return _FENCE_RE.sub("", raw).strip()


def _outermost_object(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def extract(raw_text: Optional[str]) -> ExtractionResult:
    """
    解析原始文本中的 JSON 对象

    先按原文整体解析，字符串值里的代码块标记因此保持原样；失败时去掉
    代码块标记再解析，最后尝试截取最外层的大括号区间。
    只接受 JSON 对象，数组或标量视为解析失败。

    Args:
        raw_text: 生成服务返回的文本

    Returns:
        ExtractionResult
    """
    raw = raw_text if isinstance(raw_text, str) else ""
    cleaned = strip_fences(raw)

    candidates = [raw.strip()]
    for candidate in (cleaned, _outermost_object(cleaned)):
        if candidate is not None and candidate not in candidates:
            candidates.append(candidate)

    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except (json.JSONDecodeError, ValueError, RecursionError):
            continue
        if isinstance(payload, dict):
            return ExtractionResult(payload=payload, ok=True)

    logger.debug(f"[Extractor] 结构化解析失败，保留原文 ({len(raw)} 字符)")
    return ExtractionResult(payload={"raw": raw[:RAW_CAPTURE_LIMIT]}, ok=False)


def get_list(payload: Dict[str, Any], key: str) -> List[Any]:
    value = payload.get(key)
    return list(value) if isinstance(value, list) else []


def get_str(payload: Dict[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else default


def get_bool(payload: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = payload.get(key)
    return value if isinstance(value, bool) else default


def get_dict(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key)
    return dict(value) if isinstance(value, dict) else {}


def get_number(payload: Dict[str, Any], key: str, default: float = 0.0) -> float:
    value = payload.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default
