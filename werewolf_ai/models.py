"""数据模型定义"""
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Tuple
from enum import Enum


class Camp(str, Enum):
    WEREWOLF = "werewolf"
    GOOD = "good"


class Role(str, Enum):
    WEREWOLF = "werewolf"
    ALPHA_WOLF = "alpha_wolf"
    SEER = "seer"
    WITCH = "witch"
    HUNTER = "hunter"
    GUARD = "guard"
    VILLAGER = "villager"

    @property
    def camp(self) -> Camp:
        if self in (Role.WEREWOLF, Role.ALPHA_WOLF):
            return Camp.WEREWOLF
        return Camp.GOOD

    @property
    def is_god(self) -> bool:
        """神职：预言家、女巫、猎人"""
        return self in (Role.SEER, Role.WITCH, Role.HUNTER)


class Phase(str, Enum):
    PREPARATION = "preparation"
    NIGHT = "night"
    DAY_DISCUSSION = "day_discussion"
    DAY_VOTING = "day_voting"
    GAME_OVER = "game_over"


class PlayerStatus(str, Enum):
    ACTIVE = "active"
    ELIMINATED = "eliminated"


class ActionKind(str, Enum):
    KILL = "kill"
    CHECK = "check"
    SAVE = "save"
    POISON = "poison"
    GUARD = "guard"
    VOTE = "vote"
    SHOOT = "shoot"
    DISCUSSION = "discussion"


class Emotion(str, Enum):
    NEUTRAL = "neutral"
    SUSPICIOUS = "suspicious"
    DEFENSIVE = "defensive"
    AGGRESSIVE = "aggressive"
    CONFIDENT = "confident"


class Personality(str, Enum):
    LOGICAL = "logical"
    INTUITIVE = "intuitive"
    AGGRESSIVE = "aggressive"
    CONSERVATIVE = "conservative"
    LEADER = "leader"
    FOLLOWER = "follower"


class DeathCause(str, Enum):
    WOLF_KILL = "wolf_kill"
    POISON = "poison"
    VOTE = "vote"
    SHOT = "shot"


@dataclass
class Player:
    """玩家数据

    role 一经分配不可修改；status 只能从 active 变为 eliminated。
    """
    id: str
    name: str
    role: Role
    status: PlayerStatus = PlayerStatus.ACTIVE
    personality: Personality = Personality.LOGICAL
    thinking_history: List[str] = field(default_factory=list)

    # 角色特有状态
    has_used_skill: bool = False    # 女巫解药
    has_used_poison: bool = False   # 女巫毒药
    is_saved: bool = False          # 本轮被女巫救下
    last_guarded_id: Optional[str] = None  # 守卫上一晚的守护对象

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "role" and "role" in self.__dict__:
            raise AttributeError("角色分配后不可修改")
        if (name == "status"
                and self.__dict__.get("status") == PlayerStatus.ELIMINATED
                and value != PlayerStatus.ELIMINATED):
            raise AttributeError(f"玩家 {self.id} 已出局，状态不可恢复")
        super().__setattr__(name, value)

    @property
    def camp(self) -> Camp:
        return self.role.camp

    @property
    def is_alive(self) -> bool:
        return self.status == PlayerStatus.ACTIVE


@dataclass
class Vote:
    voter_id: str
    target_id: str
    round: int


@dataclass
class Speech:
    """玩家发言记录"""
    player_id: str
    player_name: str
    content: str
    emotion: Emotion
    round: int
    phase: Phase
    reasoning: Optional[str] = None
    confidence: float = 0.5
    skipped: bool = False


@dataclass
class GameLog:
    """游戏事件记录

    is_public 为 False 时只有 visible_to 中的玩家能看到。
    """
    round: int
    phase: Phase
    event_type: str  # "speech" | "vote" | "death" | "vote_result" | "check" | ...
    content: str
    player_id: Optional[str] = None
    target_id: Optional[str] = None
    is_public: bool = True
    visible_to: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def is_visible_to(self, player_id: str) -> bool:
        return self.is_public or player_id in self.visible_to

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "phase": self.phase.value,
            "event_type": self.event_type,
            "content": self.content,
            "player_id": self.player_id,
            "target_id": self.target_id,
            "is_public": self.is_public,
            "visible_to": list(self.visible_to),
        }


@dataclass
class NightActions:
    """当前夜晚的行动记录（仅结算器可写）"""
    wolf_votes: List[Tuple[str, str]] = field(default_factory=list)  # (狼人id, 目标id)
    kill_target: Optional[str] = None
    guarded_id: Optional[str] = None
    saved_id: Optional[str] = None
    poisoned_id: Optional[str] = None
    resolved: bool = False


@dataclass
class GameState:
    """游戏状态"""
    current_round: int = 1
    current_phase: Phase = Phase.PREPARATION
    players: Dict[str, Player] = field(default_factory=dict)
    votes: List[Vote] = field(default_factory=list)
    player_speeches: List[Speech] = field(default_factory=list)
    logs: List[GameLog] = field(default_factory=list)

    night: NightActions = field(default_factory=NightActions)
    awaiting: List[str] = field(default_factory=list)  # 本阶段尚未行动的玩家
    pending_shooter_id: Optional[str] = None
    winner: Optional[Camp] = None

    def get_player(self, player_id: Optional[str]) -> Optional[Player]:
        if player_id is None:
            return None
        return self.players.get(player_id)

    def get_alive_players(self) -> List[Player]:
        return [p for p in self.players.values() if p.is_alive]

    def get_alive_player_ids(self) -> List[str]:
        return [p.id for p in self.players.values() if p.is_alive]

    def get_alive_in_camp(self, camp: Camp) -> List[Player]:
        return [p for p in self.players.values() if p.is_alive and p.camp == camp]

    def votes_for_round(self, round_number: int) -> List[Vote]:
        return [v for v in self.votes if v.round == round_number]

    def visible_logs(self, player_id: str) -> List[GameLog]:
        return [log for log in self.logs if log.is_visible_to(player_id)]


@dataclass
class AgentDecision:
    """一次 AI 行动的结构化结果"""
    target: Optional[str] = None
    message: Optional[str] = None
    reasoning: Optional[str] = None
    confidence: float = 0.5
    emotion: Emotion = Emotion.NEUTRAL
    suspiciousness: Optional[float] = None
    persuasiveness: Optional[float] = None
    priority: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "confidence": self.confidence,
            "emotion": self.emotion.value,
        }
        for key in ("target", "message", "reasoning",
                    "suspiciousness", "persuasiveness", "priority"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class GameEvent:
    """推送给界面的事件"""
    type: str  # "game_start" | "phase_change" | "decision" | "elimination" | "game_over"
    round: int
    phase: Phase
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "round": self.round,
            "phase": self.phase.value,
            "data": self.data,
        }


@dataclass
class AIRequestLog:
    """一次模型请求的完整记录（提示词、原始响应、解析结果、耗时）

    失败的请求同样会记录，error 为错误信息，decision 为实际使用的默认行动。
    """
    player_id: str
    player_name: str
    round: int
    phase: Phase
    action_kind: ActionKind
    prompt: str
    vocabulary: Optional[List[str]] = None
    raw: Any = None
    decision: Optional[AgentDecision] = None
    strategy: Optional[str] = None
    attempts: List[str] = field(default_factory=list)
    elapsed: float = 0.0  # 秒
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.error_type is not None

    def summary(self) -> Dict[str, Any]:
        """不含提示词和原始响应的摘要，用于事件推送"""
        return {
            "player_id": self.player_id,
            "action_kind": self.action_kind.value,
            "strategy": self.strategy,
            "elapsed": round(self.elapsed, 3),
            "error_type": self.error_type,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data.update({
            "player_name": self.player_name,
            "round": self.round,
            "phase": self.phase.value,
            "prompt": self.prompt,
            "vocabulary": None if self.vocabulary is None else list(self.vocabulary),
            "raw": self.raw if isinstance(self.raw, (str, dict, list)) or self.raw is None else repr(self.raw),
            "decision": self.decision.to_dict() if self.decision else None,
            "attempts": list(self.attempts),
            "elapsed": self.elapsed,
            "error": self.error,
        })
        return data
