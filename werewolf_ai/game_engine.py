"""游戏引擎 - 控制阶段流转"""
import logging
import random
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence, Set

from .ai_player import AIPlayer, TurnResult
from .config import AIConfig
from .errors import IllegalPhaseTransition, WerewolfError
from .llm_provider import LLMProviderBase
from .models import (
    ActionKind, AgentDecision, AIRequestLog, Camp, DeathCause, GameEvent, GameLog, GameState,
    Personality, Phase, Player, Role,
)
from .resolver import RoleActionResolver
from .rules import (
    CAMP_NAMES, HUNTER_TRIGGERS, ROLE_NAMES, SKIP, check_winner,
    default_decision, legal_vocabulary, witch_action_kind,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[GameEvent], Awaitable[None]]

# 9人局：3狼 + 预言家 + 女巫 + 猎人 + 守卫 + 2村民
DEFAULT_ROLES: List[Role] = [
    Role.WEREWOLF, Role.WEREWOLF, Role.ALPHA_WOLF,
    Role.SEER, Role.WITCH, Role.HUNTER, Role.GUARD,
    Role.VILLAGER, Role.VILLAGER,
]

DEFAULT_NAMES: List[str] = [
    "逻辑守护", "夜行者", "沉默观察", "星河", "阿杰",
    "小鹿", "老陈", "北风", "青柠", "墨白", "橙子", "石头",
]

TRANSITIONS: Dict[Phase, Set[Phase]] = {
    Phase.PREPARATION: {Phase.NIGHT, Phase.GAME_OVER},
    Phase.NIGHT: {Phase.DAY_DISCUSSION, Phase.GAME_OVER},
    Phase.DAY_DISCUSSION: {Phase.DAY_VOTING, Phase.GAME_OVER},
    Phase.DAY_VOTING: {Phase.NIGHT, Phase.GAME_OVER},
    Phase.GAME_OVER: set(),
}

NIGHT_ROLES = (Role.WEREWOLF, Role.ALPHA_WOLF, Role.SEER, Role.WITCH, Role.GUARD)

# 只保留最近的请求记录
MAX_REQUEST_LOGS = 1000


class GameEngine:
    """
    狼人杀游戏引擎

    阶段：preparation → night → day_discussion → day_voting → night / game_over。
    每个阶段内的玩家严格依次行动；每次淘汰后都检查胜负。
    """

    def __init__(
        self,
        llm: LLMProviderBase,
        config: Optional[AIConfig] = None,
        rng: Optional[random.Random] = None,
        event_sink: Optional[EventSink] = None,
    ):
        self.llm = llm
        self.config = config or AIConfig(enabled=False)
        self.rng = rng or random.Random()
        self.event_sink = event_sink
        self.game_state: Optional[GameState] = None
        self.resolver: Optional[RoleActionResolver] = None
        self.ai_players: Dict[str, AIPlayer] = {}
        self.events: List[GameEvent] = []
        self.request_logs: Deque[AIRequestLog] = deque(maxlen=MAX_REQUEST_LOGS)

    @property
    def state(self) -> GameState:
        if self.game_state is None:
            raise WerewolfError("游戏尚未初始化")
        return self.game_state

    @property
    def is_over(self) -> bool:
        return self.game_state is not None and self.game_state.current_phase == Phase.GAME_OVER

    def setup_game(
        self,
        roles: Optional[Sequence[Role]] = None,
        names: Optional[Sequence[str]] = None,
    ) -> GameState:
        """
        初始化游戏（准备阶段）

        未指定 roles 时使用默认9人局并随机打乱；指定时按给定顺序入座。
        """
        if roles is None:
            seat_roles = list(DEFAULT_ROLES)
            self.rng.shuffle(seat_roles)
        else:
            seat_roles = list(roles)
        names = list(names or DEFAULT_NAMES)
        if len(names) < len(seat_roles):
            raise ValueError(f"玩家名字不足：需要 {len(seat_roles)} 个，只有 {len(names)} 个")

        personalities = list(Personality)
        state = GameState()
        for i, role in enumerate(seat_roles):
            player = Player(
                id=str(i + 1),
                name=names[i],
                role=role,
                personality=self.rng.choice(personalities),
            )
            state.players[player.id] = player

        self.game_state = state
        self.resolver = RoleActionResolver(state)
        self.request_logs.clear()
        self.ai_players = {
            pid: AIPlayer(player, self.llm, self.config)
            for pid, player in state.players.items()
        }

        logger.info("🎮 游戏初始化完成，共 %d 名玩家", len(state.players))
        for p in state.players.values():
            logger.debug("  %s（%s）: %s (%s)", p.name, p.id, ROLE_NAMES[p.role], p.personality.value)
        return state

    # ==================== 事件 ====================

    async def broadcast(self, event_type: str, data: dict) -> None:
        """广播事件到界面"""
        event = GameEvent(
            type=event_type,
            round=self.state.current_round,
            phase=self.state.current_phase,
            data=data,
        )
        self.events.append(event)
        logger.debug("📣 [%s] %s", event_type, data)
        if self.event_sink is not None:
            await self.event_sink(event)

    async def _emit_log(self, log: GameLog) -> None:
        await self.broadcast("decision", log.to_dict())

    # ==================== 阶段流转 ====================

    def _night_actors(self) -> List[str]:
        return [p.id for p in self.state.get_alive_players() if p.role in NIGHT_ROLES]

    def _ensure_phase_complete(self, phase: Phase) -> None:
        state = self.state
        if phase == Phase.PREPARATION:
            if not state.players:
                raise IllegalPhaseTransition("还没有玩家入座")
            return
        if state.awaiting:
            raise IllegalPhaseTransition(f"{phase.value} 阶段还有玩家未行动: {state.awaiting}")
        if phase == Phase.NIGHT and not state.night.resolved:
            raise IllegalPhaseTransition("夜晚尚未结算")

    async def _transition(self, phase: Phase) -> None:
        """
        切换阶段

        进入 game_over 可以打断任何阶段；其他跳转要求当前阶段已完成。
        """
        state = self.state
        current = state.current_phase
        if phase not in TRANSITIONS[current]:
            raise IllegalPhaseTransition(f"不能从 {current.value} 进入 {phase.value}")
        if phase != Phase.GAME_OVER:
            self._ensure_phase_complete(current)

        if phase == Phase.NIGHT:
            awaiting = self._night_actors()
        elif phase in (Phase.DAY_DISCUSSION, Phase.DAY_VOTING):
            awaiting = state.get_alive_player_ids()
        else:
            awaiting = []
        self.resolver.enter_phase(phase, awaiting, next_round=current == Phase.DAY_VOTING)

        logger.info("%s 第 %d 轮 - %s", "=" * 20, state.current_round, phase.value)
        await self.broadcast("phase_change", {"round": state.current_round, "phase": phase.value})

    async def run_game(self) -> Camp:
        """运行完整游戏，返回获胜阵营"""
        if not self.game_state:
            self.setup_game()

        state = self.state
        await self.broadcast("game_start", {
            "players": [
                {"id": p.id, "name": p.name, "personality": p.personality.value}
                for p in state.players.values()
            ],
        })
        logger.info("🌙 游戏开始！天黑请闭眼...")
        await self._transition(Phase.NIGHT)

        while not self.is_over:
            if state.current_phase == Phase.NIGHT:
                await self._run_night()
            elif state.current_phase == Phase.DAY_DISCUSSION:
                await self._run_discussion()
            elif state.current_phase == Phase.DAY_VOTING:
                await self._run_voting()

        if state.winner is None:
            raise WerewolfError("游戏结束但没有胜者")
        self._announce_winner()
        return state.winner

    # ==================== 单个玩家的回合 ====================

    async def _take_turn(self, player: Player, action_kind: ActionKind) -> AgentDecision:
        """
        请求一个玩家行动并立即结算；结算完成前不会请求下一个玩家

        失败记录与决策在同一次同步提交中写入，之后才推送事件。
        """
        vocabulary = legal_vocabulary(player, self.state, action_kind)

        logs: List[GameLog] = []
        request: Optional[AIRequestLog] = None
        remember = False
        if vocabulary is not None and len([v for v in vocabulary if v != SKIP]) == 0:
            # 没有可选目标，不必调用模型
            decision = default_decision(action_kind, vocabulary)
        else:
            result: TurnResult = await self.ai_players[player.id].act(self.state, action_kind)
            decision = result.decision
            request = result.request
            remember = not result.is_fallback
            if result.error is not None:
                logs.append(self.resolver.record_failure(player, action_kind, result.error, result.raw))

        logs.extend(self.resolver.apply(player, action_kind, decision, remember=remember))
        if request is not None:
            self.request_logs.append(request)
            await self.broadcast("ai_request", request.summary())
        for log in logs:
            await self._emit_log(log)
        return decision

    # ==================== 请求记录 ====================

    def request_history(
        self,
        player_id: Optional[str] = None,
        phase: Optional[Phase] = None,
        action_kind: Optional[ActionKind] = None,
        has_error: Optional[bool] = None,
    ) -> List[AIRequestLog]:
        """按条件筛选模型请求记录，按时间先后排列"""
        return [
            r for r in self.request_logs
            if (player_id is None or r.player_id == player_id)
            and (phase is None or r.phase == phase)
            and (action_kind is None or r.action_kind == action_kind)
            and (has_error is None or r.has_error == has_error)
        ]

    def request_stats(self) -> Dict[str, Any]:
        total = len(self.request_logs)
        errors = sum(1 for r in self.request_logs if r.has_error)
        average = sum(r.elapsed for r in self.request_logs) / total if total else 0.0
        return {"total": total, "errors": errors, "average_elapsed": round(average, 3)}

    # ==================== 夜晚阶段 ====================

    def _alive_with_roles(self, *roles: Role) -> List[Player]:
        return [p for p in self.state.get_alive_players() if p.role in roles]

    async def _run_night(self) -> None:
        """执行夜晚阶段：守卫 → 狼人 → 预言家 → 女巫 → 结算"""
        # 1. 守卫守护
        for guard in self._alive_with_roles(Role.GUARD):
            await self._take_turn(guard, ActionKind.GUARD)

        # 2. 狼人依次投票，取多数
        for wolf in self._alive_with_roles(Role.WEREWOLF, Role.ALPHA_WOLF):
            await self._take_turn(wolf, ActionKind.KILL)
        kill_target = self.resolver.reconcile_kill()
        if kill_target:
            logger.info("  → 狼人决定袭击 %s", kill_target)

        # 3. 预言家查验
        for seer in self._alive_with_roles(Role.SEER):
            await self._take_turn(seer, ActionKind.CHECK)

        # 4. 女巫用药
        for witch in self._alive_with_roles(Role.WITCH):
            await self._take_turn(witch, witch_action_kind(witch, self.state))

        # 5. 结算夜晚死亡
        deaths = self.resolver.resolve_night()
        logger.info("☀️ 天亮了...")
        for pid, cause in deaths:
            # 可能已经被猎人带走
            if not self.state.players[pid].is_alive:
                continue
            if await self._eliminate(pid, cause):
                return

        await self._transition(Phase.DAY_DISCUSSION)

    # ==================== 白天阶段 ====================

    async def _run_discussion(self) -> None:
        """发言阶段"""
        for player in self.state.get_alive_players():
            decision = await self._take_turn(player, ActionKind.DISCUSSION)
            logger.info("📢 %s：「%s」", player.name, decision.message or "（沉默）")

        await self._transition(Phase.DAY_VOTING)

    async def _run_voting(self) -> None:
        """投票阶段"""
        for player in self.state.get_alive_players():
            decision = await self._take_turn(player, ActionKind.VOTE)
            logger.info("  %s → 投票给 %s", player.name, decision.target)

        eliminated = self.resolver.tally_votes()
        if eliminated is not None:
            if await self._eliminate(eliminated, DeathCause.VOTE):
                return
        else:
            logger.info("🤷 没有有效投票")

        await self._transition(Phase.NIGHT)

    # ==================== 淘汰与胜负 ====================

    async def _eliminate(self, player_id: str, cause: DeathCause) -> bool:
        """
        淘汰一名玩家并检查胜负

        猎人被投票或被袭击出局时，先开枪再公布死讯；游戏已分出胜负时不再开枪。

        Returns:
            游戏是否结束
        """
        player = self.state.players[player_id]
        self.resolver.mark_eliminated(player)
        winner = check_winner(self.state)

        shot_target: Optional[str] = None
        if winner is None and player.role == Role.HUNTER and cause in HUNTER_TRIGGERS:
            shot_target = await self._hunter_shot(player)

        await self._emit_log(self.resolver.log_death(player, cause))
        await self.broadcast("elimination", {"player_id": player.id, "cause": cause.value})
        logger.info("💀 %s 出局（%s）", player.name, cause.value)

        if winner is not None:
            await self._end_game(winner)
            return True
        if shot_target is not None:
            return await self._eliminate(shot_target, DeathCause.SHOT)
        return False

    async def _hunter_shot(self, hunter: Player) -> Optional[str]:
        self.resolver.set_pending_shooter(hunter.id)
        try:
            decision = await self._take_turn(hunter, ActionKind.SHOOT)
        finally:
            self.resolver.set_pending_shooter(None)
        target = self.state.get_player(decision.target)
        if target is None or not target.is_alive:
            return None
        return target.id

    async def _end_game(self, winner: Camp) -> None:
        state = self.state
        await self._transition(Phase.GAME_OVER)
        await self._emit_log(self.resolver.declare_winner(winner))
        await self.broadcast("game_over", {
            "winner": winner.value,
            "players": [
                {"id": p.id, "name": p.name, "role": p.role.value, "status": p.status.value}
                for p in state.players.values()
            ],
        })

    def _announce_winner(self) -> None:
        """宣布胜者"""
        state = self.state
        logger.info("🏆 游戏结束！%s胜利", CAMP_NAMES[state.winner])
        logger.info("📋 最终角色揭晓：")
        for p in state.players.values():
            status = "存活" if p.is_alive else "出局"
            logger.info("  %s（%s）: %s [%s]", p.name, p.id, ROLE_NAMES[p.role], status)
