"""游戏规则 - 合法目标、默认行动、计票与胜负判定

这里的函数都只读取 GameState，不做任何修改。
"""
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    ActionKind, AgentDecision, Camp, DeathCause, GameState, Player, Role,
)


SKIP = "skip"
SAVE_PREFIX = "save_"
POISON_PREFIX = "poison_"

ROLE_NAMES: Dict[Role, str] = {
    Role.WEREWOLF: "狼人",
    Role.ALPHA_WOLF: "狼王",
    Role.SEER: "预言家",
    Role.WITCH: "女巫",
    Role.HUNTER: "猎人",
    Role.GUARD: "守卫",
    Role.VILLAGER: "村民",
}

CAMP_NAMES: Dict[Camp, str] = {
    Camp.WEREWOLF: "狼人阵营",
    Camp.GOOD: "好人阵营",
}

# 每种行动允许的角色；投票和发言所有存活玩家都可以
ACTION_ROLES: Dict[ActionKind, Tuple[Role, ...]] = {
    ActionKind.KILL: (Role.WEREWOLF, Role.ALPHA_WOLF),
    ActionKind.CHECK: (Role.SEER,),
    ActionKind.SAVE: (Role.WITCH,),
    ActionKind.POISON: (Role.WITCH,),
    ActionKind.GUARD: (Role.GUARD,),
    ActionKind.SHOOT: (Role.HUNTER,),
}

# 可以放弃的行动，超时或解析失败时默认 skip
OPTIONAL_ACTIONS = (ActionKind.SAVE, ActionKind.POISON, ActionKind.SHOOT)

# 被投票或被狼人击杀时猎人可以开枪，被毒不能
HUNTER_TRIGGERS = (DeathCause.WOLF_KILL, DeathCause.VOTE)


def save_available(witch: Player, game_state: GameState) -> bool:
    """女巫今晚是否可以使用解药"""
    victim = game_state.get_player(game_state.night.kill_target)
    return (
        not witch.has_used_skill
        and victim is not None
        and not victim.is_saved
    )


def witch_action_kind(witch: Player, game_state: GameState) -> ActionKind:
    """有人可救时女巫面对救人选项，否则面对毒人选项"""
    if save_available(witch, game_state):
        return ActionKind.SAVE
    return ActionKind.POISON


def split_witch_option(option: str) -> Tuple[Optional[ActionKind], Optional[str]]:
    """把 save_<id> / poison_<id> / skip 拆成 (行动, 目标id)"""
    if option.startswith(SAVE_PREFIX):
        return ActionKind.SAVE, option[len(SAVE_PREFIX):]
    if option.startswith(POISON_PREFIX):
        return ActionKind.POISON, option[len(POISON_PREFIX):]
    return None, None


def legal_vocabulary(
    player: Player,
    game_state: GameState,
    action_kind: ActionKind,
) -> Optional[List[str]]:
    """
    计算本回合合法的 target 取值（按座位顺序）

    Returns:
        合法取值列表；发言阶段没有目标，返回 None
    """
    alive = game_state.get_alive_players()
    others = [p.id for p in alive if p.id != player.id]

    if action_kind == ActionKind.DISCUSSION:
        return None

    if action_kind == ActionKind.KILL:
        return [p.id for p in alive if p.camp == Camp.GOOD]

    if action_kind in (ActionKind.CHECK, ActionKind.VOTE):
        return others

    if action_kind == ActionKind.GUARD:
        return [p.id for p in alive if p.id != player.last_guarded_id]

    if action_kind == ActionKind.SHOOT:
        return others + [SKIP]

    if action_kind == ActionKind.SAVE:
        if not save_available(player, game_state):
            return [SKIP]
        return [SAVE_PREFIX + game_state.night.kill_target, SKIP]

    if action_kind == ActionKind.POISON:
        if player.has_used_poison:
            return [SKIP]
        victim_id = game_state.night.kill_target
        options = [POISON_PREFIX + pid for pid in others if pid != victim_id]
        return options + [SKIP]

    raise ValueError(f"未知的行动类型: {action_kind}")


def default_decision(action_kind: ActionKind, vocabulary: Optional[Sequence[str]]) -> AgentDecision:
    """
    超时、解析失败或违规时的默认行动

    必须执行的行动取第一个合法目标，可放弃的行动取 skip，发言视为沉默。
    """
    if action_kind == ActionKind.DISCUSSION:
        return AgentDecision(reasoning="默认行动：沉默", confidence=0.0)

    target: Optional[str] = None
    if vocabulary:
        if action_kind in OPTIONAL_ACTIONS and SKIP in vocabulary:
            target = SKIP
        else:
            target = vocabulary[0]
    return AgentDecision(target=target, reasoning="默认行动", confidence=0.0)


def plurality(targets: Sequence[str]) -> Optional[str]:
    """
    多数票目标，平票时最早获得选票的目标胜出

    >>> plurality(["2", "3", "3", "2"])
    '2'
    """
    counts: Dict[str, int] = {}
    for target in targets:
        counts[target] = counts.get(target, 0) + 1
    if not counts:
        return None
    top = max(counts.values())
    # dict 保持插入顺序，即每个目标第一次得票的顺序
    for target, count in counts.items():
        if count == top:
            return target
    return None


def check_winner(game_state: GameState) -> Optional[Camp]:
    """检查胜负，返回获胜阵营；游戏未结束返回 None"""
    wolves_alive = len(game_state.get_alive_in_camp(Camp.WEREWOLF))
    good_alive = len(game_state.get_alive_in_camp(Camp.GOOD))

    # 狼人全死 -> 好人胜
    if wolves_alive == 0:
        return Camp.GOOD

    # 狼人 >= 好人 -> 狼人胜
    if wolves_alive >= good_alive:
        return Camp.WEREWOLF

    # 神职与平民全部出局 -> 狼人胜
    gods_and_villagers = [
        p for p in game_state.players.values()
        if p.role.is_god or p.role == Role.VILLAGER
    ]
    if gods_and_villagers and not any(p.is_alive for p in gods_and_villagers):
        return Camp.WEREWOLF

    return None
