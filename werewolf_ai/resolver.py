"""行动结算器 - 把校验后的决策按角色规则应用到游戏状态"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import GameRuleViolation, WerewolfError
from .models import (
    ActionKind, AgentDecision, Camp, DeathCause, GameLog, GameState,
    NightActions, Phase, Player, PlayerStatus, Speech, Vote,
)
from .rules import (
    ACTION_ROLES, CAMP_NAMES, SKIP, default_decision, legal_vocabulary,
    plurality, split_witch_option,
)

logger = logging.getLogger(__name__)

SILENCE = "（沉默）"

DEATH_TEXT: Dict[DeathCause, str] = {
    DeathCause.WOLF_KILL: "昨晚出局",
    DeathCause.POISON: "昨晚出局",
    DeathCause.VOTE: "被投票放逐",
    DeathCause.SHOT: "被猎人开枪带走",
}


class RoleActionResolver:
    """
    角色行动结算器

    GameState 的唯一写入者。每个决策先完整校验再提交，
    校验失败时状态不会有任何变化。
    """

    def __init__(self, game_state: GameState):
        self.game_state = game_state
        self._handlers: Dict[ActionKind, Callable[[Player, AgentDecision], List[GameLog]]] = {
            ActionKind.KILL: self._commit_kill,
            ActionKind.CHECK: self._commit_check,
            ActionKind.SAVE: self._commit_witch,
            ActionKind.POISON: self._commit_witch,
            ActionKind.GUARD: self._commit_guard,
            ActionKind.VOTE: self._commit_vote,
            ActionKind.SHOOT: self._commit_shoot,
            ActionKind.DISCUSSION: self._commit_discussion,
        }

    # ==================== 工具方法 ====================

    def _label(self, player_id: Optional[str]) -> str:
        player = self.game_state.get_player(player_id)
        if player is None:
            return str(player_id)
        return f"{player.name}（{player.id}）"

    def _log(
        self,
        event_type: str,
        content: str,
        player_id: Optional[str] = None,
        target_id: Optional[str] = None,
        visible_to: Optional[List[str]] = None,
        **extra: Any,
    ) -> GameLog:
        """追加一条日志；visible_to 不为 None 时为私密日志"""
        log = GameLog(
            round=self.game_state.current_round,
            phase=self.game_state.current_phase,
            event_type=event_type,
            content=content,
            player_id=player_id,
            target_id=target_id,
            is_public=visible_to is None,
            visible_to=list(visible_to or []),
            extra=extra,
        )
        self.game_state.logs.append(log)
        return log

    def _wolf_ids(self) -> List[str]:
        return [p.id for p in self.game_state.players.values() if p.camp == Camp.WEREWOLF]

    def _done(self, player: Player) -> None:
        if player.id in self.game_state.awaiting:
            self.game_state.awaiting.remove(player.id)

    # ==================== 校验 ====================

    def check_actor(self, player: Player, action_kind: ActionKind) -> None:
        """检查该玩家此刻能否执行这种行动"""
        state = self.game_state
        if action_kind == ActionKind.SHOOT:
            if state.pending_shooter_id != player.id:
                raise GameRuleViolation(f"{player.name} 当前不能开枪", player_id=player.id)
        elif not player.is_alive:
            raise GameRuleViolation(f"{player.name} 已出局，不能行动", player_id=player.id)

        allowed_roles = ACTION_ROLES.get(action_kind)
        if allowed_roles is not None and player.role not in allowed_roles:
            raise GameRuleViolation(
                f"{player.name} 的角色不能执行 {action_kind.value}", player_id=player.id,
            )

    def check_target(self, player: Player, action_kind: ActionKind, decision: AgentDecision) -> None:
        """检查决策目标是否合法"""
        if action_kind == ActionKind.DISCUSSION:
            return

        target = decision.target
        if target is None:
            raise GameRuleViolation(f"{player.name} 没有给出 {action_kind.value} 的目标", player_id=player.id)

        if action_kind == ActionKind.GUARD and target == player.last_guarded_id:
            raise GameRuleViolation("守卫不能连续两晚守护同一名玩家", player_id=player.id, target=target)

        vocabulary = legal_vocabulary(player, self.game_state, action_kind) or []
        if target not in vocabulary:
            raise GameRuleViolation(
                f"{player.name} 的目标 {target!r} 不合法，可选：{vocabulary}",
                player_id=player.id,
                target=target,
            )

    def check(self, player: Player, action_kind: ActionKind, decision: AgentDecision) -> None:
        """
        Raises:
            GameRuleViolation: 决策无法按规则执行
        """
        self.check_actor(player, action_kind)
        self.check_target(player, action_kind, decision)

    # ==================== 提交 ====================

    def apply(
        self,
        player: Player,
        action_kind: ActionKind,
        decision: AgentDecision,
        remember: bool = True,
    ) -> List[GameLog]:
        """
        应用一个决策

        行动者本身不合法时只记录违规；目标不合法时改用默认行动。
        remember 为 True 时，决策的推理在提交后记入该玩家的思考历史。

        Returns:
            本次产生的日志
        """
        try:
            self.check_actor(player, action_kind)
        except GameRuleViolation as violation:
            return [self._record_violation(player, violation)]

        reasoning = decision.reasoning if remember else None
        logs: List[GameLog] = []
        try:
            self.check_target(player, action_kind, decision)
        except GameRuleViolation as violation:
            logs.append(self._record_violation(player, violation))
            vocabulary = legal_vocabulary(player, self.game_state, action_kind)
            decision = default_decision(action_kind, vocabulary)

        logs.extend(self._handlers[action_kind](player, decision))
        self._remember_reasoning(player, reasoning)
        self._done(player)
        return logs

    def _remember_reasoning(self, player: Player, reasoning: Optional[str]) -> None:
        if reasoning:
            player.thinking_history.append(reasoning)

    def _record_violation(self, player: Player, violation: GameRuleViolation) -> GameLog:
        logger.warning("⚠️ 规则违规: %s", violation)
        return self._log(
            "rule_violation", str(violation),
            player_id=player.id, target_id=violation.target, visible_to=[player.id],
        )

    def record_failure(self, player: Player, action_kind: ActionKind, error: WerewolfError, raw: Any) -> GameLog:
        """记录解析/传输失败，保留原始响应方便排查"""
        return self._log(
            "agent_error",
            f"{player.name} 的 {action_kind.value} 行动失败：{type(error).__name__}: {error}",
            player_id=player.id,
            visible_to=[],
            raw=raw if isinstance(raw, (str, dict, list)) else repr(raw),
            error_type=type(error).__name__,
            attempts=getattr(error, "attempts", []),
        )

    def _commit_kill(self, wolf: Player, decision: AgentDecision) -> List[GameLog]:
        if decision.target is None:
            return [self._log("wolf_kill_vote", "🐺 你放弃选择目标",
                              player_id=wolf.id, visible_to=[wolf.id])]
        self.game_state.night.wolf_votes.append((wolf.id, decision.target))
        return [self._log(
            "wolf_kill_vote", f"🐺 你选择袭击 {self._label(decision.target)}",
            player_id=wolf.id, target_id=decision.target, visible_to=[wolf.id],
        )]

    def _commit_check(self, seer: Player, decision: AgentDecision) -> List[GameLog]:
        target = self.game_state.get_player(decision.target)
        if target is None:
            return [self._log("check", "🔮 今晚没有查验", player_id=seer.id, visible_to=[seer.id])]
        camp = target.camp
        return [self._log(
            "check", f"🔮 查验结果：{self._label(target.id)} 属于【{CAMP_NAMES[camp]}】",
            player_id=seer.id, target_id=target.id, visible_to=[seer.id], camp=camp.value,
        )]

    def _commit_witch(self, witch: Player, decision: AgentDecision) -> List[GameLog]:
        night = self.game_state.night
        kind, target_id = split_witch_option(decision.target or SKIP)

        if kind == ActionKind.SAVE and target_id is not None:
            target = self.game_state.players[target_id]
            target.is_saved = True
            witch.has_used_skill = True
            night.saved_id = target_id
            return [self._log("witch_save", f"💊 你使用解药救了 {self._label(target_id)}",
                              player_id=witch.id, target_id=target_id, visible_to=[witch.id])]

        if kind == ActionKind.POISON and target_id is not None:
            witch.has_used_poison = True
            night.poisoned_id = target_id
            return [self._log("witch_poison", f"☠️ 你使用毒药毒了 {self._label(target_id)}",
                              player_id=witch.id, target_id=target_id, visible_to=[witch.id])]

        return [self._log("witch_skip", "💊 你今晚没有用药", player_id=witch.id, visible_to=[witch.id])]

    def _commit_guard(self, guard: Player, decision: AgentDecision) -> List[GameLog]:
        guard.last_guarded_id = decision.target
        self.game_state.night.guarded_id = decision.target
        if decision.target is None:
            return [self._log("guard", "🛡️ 你今晚没有守护任何人", player_id=guard.id, visible_to=[guard.id])]
        return [self._log("guard", f"🛡️ 你守护了 {self._label(decision.target)}",
                          player_id=guard.id, target_id=decision.target, visible_to=[guard.id])]

    def _commit_vote(self, voter: Player, decision: AgentDecision) -> List[GameLog]:
        if decision.target is None:
            return [self._log("vote", f"🗳️ {self._label(voter.id)} 弃票", player_id=voter.id)]
        self.game_state.votes.append(
            Vote(voter_id=voter.id, target_id=decision.target, round=self.game_state.current_round)
        )
        text = f"🗳️ {self._label(voter.id)} 投票给 {self._label(decision.target)}"
        if decision.message:
            text += f"：「{decision.message}」"
        return [self._log("vote", text, player_id=voter.id, target_id=decision.target)]

    def _commit_shoot(self, hunter: Player, decision: AgentDecision) -> List[GameLog]:
        # 目标由 GameEngine 立即淘汰
        if decision.target in (None, SKIP):
            return [self._log("shoot", f"🔫 {self._label(hunter.id)} 放弃开枪", player_id=hunter.id)]
        return [self._log("shoot", f"🔫 {self._label(hunter.id)} 开枪带走了 {self._label(decision.target)}",
                          player_id=hunter.id, target_id=decision.target)]

    def _commit_discussion(self, speaker: Player, decision: AgentDecision) -> List[GameLog]:
        state = self.game_state
        skipped = not decision.message
        content = SILENCE if skipped else decision.message
        state.player_speeches.append(Speech(
            player_id=speaker.id,
            player_name=speaker.name,
            content=content,
            emotion=decision.emotion,
            round=state.current_round,
            phase=state.current_phase,
            reasoning=decision.reasoning,
            confidence=decision.confidence,
            skipped=skipped,
        ))
        return [self._log("speech", f"💬 {self._label(speaker.id)}：{content}",
                          player_id=speaker.id, emotion=decision.emotion.value, skipped=skipped)]

    # ==================== 夜晚与投票结算 ====================

    def reconcile_kill(self) -> Optional[str]:
        """多名狼人投票取多数，平票取最先提交的目标"""
        night = self.game_state.night
        night.kill_target = plurality([target for _, target in night.wolf_votes])
        if night.kill_target is not None:
            self._log("werewolf_kill", f"🐺 狼人阵营决定袭击 {self._label(night.kill_target)}",
                      target_id=night.kill_target, visible_to=self._wolf_ids())
        return night.kill_target

    def resolve_night(self) -> List[Tuple[str, DeathCause]]:
        """
        结算夜晚死亡

        被守护或被救的玩家不会死于袭击；被毒的玩家无论如何都会死，
        同时被袭击和被毒时按毒杀处理（猎人不能开枪）。
        """
        night = self.game_state.night
        deaths: List[Tuple[str, DeathCause]] = []

        victim = self.game_state.get_player(night.kill_target)
        if (victim is not None
                and not victim.is_saved
                and night.guarded_id != victim.id
                and night.poisoned_id != victim.id):
            deaths.append((victim.id, DeathCause.WOLF_KILL))

        if night.poisoned_id is not None:
            deaths.append((night.poisoned_id, DeathCause.POISON))

        night.resolved = True
        if not deaths:
            self._log("peaceful_night", "✨ 昨晚是平安夜，没有人出局")
        return deaths

    def tally_votes(self) -> Optional[str]:
        """统计本轮投票，返回被放逐的玩家id"""
        state = self.game_state
        votes = state.votes_for_round(state.current_round)
        eliminated = plurality([v.target_id for v in votes])

        counts: Dict[str, int] = {}
        for v in votes:
            counts[v.target_id] = counts.get(v.target_id, 0) + 1
        summary = "，".join(f"{self._label(pid)} {count}票" for pid, count in counts.items())
        if eliminated is None:
            self._log("vote_result", "📊 没有有效投票")
        else:
            self._log("vote_result", f"📊 投票结果：{summary}", target_id=eliminated, counts=counts)
        return eliminated

    # ==================== 出局 ====================

    def mark_eliminated(self, player: Player) -> None:
        player.status = PlayerStatus.ELIMINATED
        if player.id in self.game_state.awaiting:
            self.game_state.awaiting.remove(player.id)

    def log_death(self, player: Player, cause: DeathCause) -> GameLog:
        """公开死讯（不公开身份）"""
        return self._log(
            "death", f"💀 {self._label(player.id)} {DEATH_TEXT[cause]}",
            target_id=player.id, cause=cause.value,
        )

    def declare_winner(self, winner: Camp) -> GameLog:
        self.game_state.winner = winner
        return self._log("game_over", f"🏆 游戏结束，{CAMP_NAMES[winner]}胜利", winner=winner.value)

    # ==================== 阶段 ====================

    def enter_phase(self, phase: Phase, awaiting: List[str], next_round: bool = False) -> None:
        """进入新阶段；跳转是否合法由 GameEngine 检查"""
        state = self.game_state
        if next_round:
            state.current_round += 1
        state.current_phase = phase
        state.awaiting = list(awaiting)
        if phase == Phase.NIGHT:
            state.night = NightActions()
            for p in state.players.values():
                p.is_saved = False

    def set_pending_shooter(self, player_id: Optional[str]) -> None:
        self.game_state.pending_shooter_id = player_id
