"""错误类型定义"""
from typing import Any, List, Optional, Sequence


class WerewolfError(Exception):
    """所有游戏错误的基类"""


class ConfigError(WerewolfError):
    """AI 配置不合法，游戏无法开始"""


class TransportFailure(WerewolfError):
    """模型调用失败或超时"""


class ParseFailure(WerewolfError):
    """所有解析策略都无法得到 JSON 对象或文本字段"""

    def __init__(self, message: str, attempts: Optional[List[str]] = None, raw: Any = None):
        super().__init__(message)
        self.attempts = list(attempts or [])
        self.raw = raw


class ValidationFailure(WerewolfError):
    """解析成功但内容不可用（例如目标不在合法词表中）"""

    def __init__(
        self,
        message: str,
        value: Any = None,
        vocabulary: Optional[Sequence[str]] = None,
        raw: Any = None,
    ):
        super().__init__(message)
        self.value = value
        self.vocabulary = list(vocabulary) if vocabulary is not None else None
        self.raw = raw


class GameRuleViolation(WerewolfError):
    """决策无法按规则执行"""

    def __init__(self, message: str, player_id: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.player_id = player_id
        self.target = target


class IllegalPhaseTransition(WerewolfError):
    """非法的阶段跳转"""
