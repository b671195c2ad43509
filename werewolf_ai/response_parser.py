"""
响应解析器 - 把模型返回的任意形态内容转换为 AgentDecision

解析按固定顺序尝试，第一个得到 JSON 对象的策略胜出：
    1. 剥离信封：{message:{content}}、{content}、{choices:[{message:{content}}]}
    2. 直接 JSON 解析
    3. 提取 ```json ... ``` 代码块
    4. 截取第一个 { 到最后一个 } 之间的内容
    5. 对转义过的字符串反转义一次后重试
    6. 按行解析 TARGET: / REASONING: / CONFIDENCE: / MESSAGE: / EMOTION:

每个失败的策略都会记入 attempts，便于排查。
所有函数都是 (payload, vocabulary) 的纯函数。
"""
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import ParseFailure, ValidationFailure
from .models import AgentDecision, Emotion

logger = logging.getLogger(__name__)


DEFAULT_CONFIDENCE = 0.5
NUMERIC_FIELDS = ("confidence", "suspiciousness", "persuasiveness", "priority")

_MAX_DEPTH = 4
_MISSING = object()

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_TEXT_FIELD_RE = re.compile(
    r"^[\s*#>-]*(TARGET|REASONING|CONFIDENCE|MESSAGE|EMOTION)\s*\**\s*[:：]\s*(.*?)\s*$",
    re.IGNORECASE,
)
_TRAILING_ID_RE = re.compile(r"[(（]\s*([^()（）]+?)\s*[)）]\s*$")
_EMOTIONS = {e.value: e for e in Emotion}


@dataclass
class ParseResult:
    """解析结果：决策、命中的策略以及之前失败的尝试"""
    decision: AgentDecision
    strategy: str
    attempts: List[str] = field(default_factory=list)


# ==================== 信封 ====================

def _envelope_content(obj: Any) -> Any:
    """如果 obj 是已知的信封结构，返回其中的 content；否则返回 _MISSING"""
    if not isinstance(obj, dict):
        return _MISSING

    choices = obj.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        first = choices[0]
        message = first.get("message")
        if isinstance(message, dict) and "content" in message:
            return message["content"]
        if "text" in first:
            return first["text"]

    message = obj.get("message")
    if isinstance(message, dict) and "content" in message:
        return message["content"]

    if "content" in obj and not any(k in obj for k in ("target", "action", "reasoning")):
        return obj["content"]

    return _MISSING


def _flatten_content(content: Any) -> Any:
    # [{type: text, text: ...}, ...] 形式的分段内容
    if isinstance(content, list):
        parts = [
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        ]
        return "".join(parts)
    if content is None:
        return ""
    return content


def unwrap_envelope(payload: Any) -> Any:
    """逐层剥离信封，返回最内层的 content（字符串）或非信封对象"""
    current = payload
    for _ in range(_MAX_DEPTH):
        content = _envelope_content(current)
        if content is _MISSING:
            return current
        current = _flatten_content(content)
    return current


# ==================== JSON 策略 ====================

def _as_object(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"结果不是JSON对象（{type(value).__name__}）")
    return value


def _parse_direct(text: str) -> Dict[str, Any]:
    return _as_object(json.loads(text))


def _parse_fenced(text: str) -> Dict[str, Any]:
    match = _FENCE_RE.search(text)
    if not match:
        raise ValueError("没有找到代码块")
    return _as_object(json.loads(match.group(1)))


def _parse_braces(text: str) -> Dict[str, Any]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("没有找到成对的花括号")
    return _as_object(json.loads(text[start:end + 1]))


_JSON_STRATEGIES: Tuple[Tuple[str, Callable[[str], Dict[str, Any]]], ...] = (
    ("direct", _parse_direct),
    ("fenced", _parse_fenced),
    ("braces", _parse_braces),
)


def _unescape_once(text: str) -> str:
    """把 {\\"target\\": \\"3\\"} 或 "{\\"target\\": ...}" 反转义一层"""
    stripped = text.strip()
    if len(stripped) >= 2 and stripped[0] == stripped[-1] == '"':
        candidate = stripped
    else:
        candidate = f'"{stripped}"'
    try:
        value = json.loads(candidate, strict=False)
    except ValueError:
        return stripped.replace('\\"', '"').replace("\\\\", "\\")
    return value if isinstance(value, str) else stripped


def _extract_object(
    payload: Any,
    attempts: List[str],
    depth: int = 0,
) -> Optional[Tuple[Dict[str, Any], str]]:
    inner = unwrap_envelope(payload)
    if isinstance(inner, dict):
        return inner, "envelope" if inner is not payload else "object"
    if not isinstance(inner, str):
        attempts.append(f"envelope: 不支持的内容类型 {type(inner).__name__}")
        return None

    for name, strategy in _JSON_STRATEGIES:
        try:
            obj = strategy(inner)
        except (ValueError, RecursionError) as e:
            attempts.append(f"{name}: {e}")
            continue
        # 解析出来的仍然是信封，继续向内
        if _envelope_content(obj) is not _MISSING and depth < _MAX_DEPTH:
            nested = _extract_object(obj, attempts, depth + 1)
            if nested is not None:
                return nested[0], f"{name}+{nested[1]}"
            continue
        return obj, name

    if depth < _MAX_DEPTH:
        unescaped = _unescape_once(inner)
        if unescaped != inner.strip():
            nested = _extract_object(unescaped, attempts, depth + 1)
            if nested is not None:
                return nested[0], f"escaped+{nested[1]}"
        else:
            attempts.append("escaped: 内容没有转义")
    return None


# ==================== 文本格式 ====================

def _parse_text_fields(text: str, vocabulary: Optional[Sequence[str]]) -> Optional[Dict[str, Any]]:
    """解析 KEY: value 形式的文本，没有任何字段时返回 None"""
    result: Dict[str, Any] = {}
    for line in text.splitlines():
        match = _TEXT_FIELD_RE.match(line)
        if not match:
            continue
        key = match.group(1).lower()
        value = match.group(2)

        if key == "target":
            # "逻辑守护(3)" -> "3"
            if vocabulary is not None and value not in vocabulary:
                id_match = _TRAILING_ID_RE.search(value)
                if id_match:
                    value = id_match.group(1)
            result["target"] = value
        elif key == "confidence":
            try:
                result["confidence"] = float(value)
            except ValueError:
                continue
        else:
            result[key] = value

    return result or None


# ==================== 校验 ====================

def _coerce_target(value: Any, raw: Any) -> Optional[str]:
    """目标统一转为字符串，绝不转为数字"""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        try:
            return str(value)
        except ValueError:
            raise ValidationFailure("target 数字过长", value=None, raw=raw)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, str):
        return value.strip() or None
    raise ValidationFailure(f"target 的类型不可用: {type(value).__name__}", value=value, raw=raw)


def _clamp(value: Any) -> Optional[float]:
    """限制到 [0, 1]；超出浮点范围的整数按符号取边界"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return 1.0 if value > 0 else 0.0
    if math.isnan(number):
        return None
    return max(0.0, min(1.0, number))


def _pick_target(obj: Dict[str, Any]) -> Any:
    target = obj.get("target")
    if target is not None and target != "":
        return target
    action = obj.get("action")
    # {"action": {"type": "vote", "target": 3}}
    if isinstance(action, dict):
        return action.get("target")
    return action


def validate_decision(
    obj: Dict[str, Any],
    vocabulary: Optional[Sequence[str]] = None,
    raw: Any = None,
) -> AgentDecision:
    """
    校验并规范化解析出的对象

    Args:
        obj: 解析得到的字典
        vocabulary: 本回合合法的 target 取值；None 表示不检查目标

    Raises:
        ValidationFailure: 目标不在合法词表中或类型不可用
    """
    target = _coerce_target(_pick_target(obj), raw)
    if target is not None and vocabulary is not None and target not in vocabulary:
        raise ValidationFailure(
            f"目标 {target!r} 不在合法选项中: {list(vocabulary)}",
            value=target,
            vocabulary=vocabulary,
            raw=raw,
        )

    numbers = {name: _clamp(obj.get(name)) for name in NUMERIC_FIELDS}
    confidence = numbers["confidence"]

    emotion_value = obj.get("emotion")
    emotion = Emotion.NEUTRAL
    if isinstance(emotion_value, str):
        emotion = _EMOTIONS.get(emotion_value.strip().lower(), Emotion.NEUTRAL)

    reasoning = obj.get("reasoning")
    message = obj.get("message")

    return AgentDecision(
        target=target,
        message=None if message is None else str(message),
        reasoning=None if reasoning is None else str(reasoning),
        confidence=DEFAULT_CONFIDENCE if confidence is None else confidence,
        emotion=emotion,
        suspiciousness=numbers["suspiciousness"],
        persuasiveness=numbers["persuasiveness"],
        priority=numbers["priority"],
    )


# ==================== 入口 ====================

def parse_response(payload: Any, vocabulary: Optional[Sequence[str]] = None) -> ParseResult:
    """
    解析模型响应

    Args:
        payload: 字符串、信封字典或已经解析好的决策字典
        vocabulary: 本回合合法的 target 取值

    Returns:
        ParseResult

    Raises:
        ParseFailure: 无法得到 JSON 对象，文本格式也没有任何字段
        ValidationFailure: 得到的内容无法通过校验
    """
    attempts: List[str] = []
    found = _extract_object(payload, attempts)

    if found is None:
        inner = unwrap_envelope(payload)
        fields = _parse_text_fields(inner, vocabulary) if isinstance(inner, str) else None
        if fields is None:
            attempts.append("text: 没有找到 KEY: value 字段")
            raise ParseFailure("无法从响应中解析出决策", attempts=attempts, raw=payload)
        found = (fields, "text")

    obj, strategy = found
    decision = validate_decision(obj, vocabulary, raw=payload)
    if attempts:
        logger.debug("🔍 解析策略 %s 成功，之前失败 %d 次: %s", strategy, len(attempts), attempts)
    return ParseResult(decision=decision, strategy=strategy, attempts=attempts)


def parse_decision(payload: Any, vocabulary: Optional[Sequence[str]] = None) -> AgentDecision:
    """解析并校验模型响应，返回 AgentDecision"""
    return parse_response(payload, vocabulary).decision
