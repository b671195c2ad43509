"""Prompt构建器 - 形式化的prompt组装"""
import json
from typing import Dict, List, Optional

from .models import (
    ActionKind, Emotion, GameLog, GameState, Personality, Phase, Player, Role,
)
from .rules import (
    CAMP_NAMES, POISON_PREFIX, ROLE_NAMES, SAVE_PREFIX, SKIP, legal_vocabulary,
)


# 机器可读的合法目标行，MockLLM 也依赖这一行
VOCABULARY_LABEL = "合法目标可选值"

SYSTEM_PROMPT = """你是一个狼人杀游戏的AI玩家。你需要：
1. 根据你的角色身份和游戏目标做出决策
2. 在发言时隐藏或透露适当的信息
3. 通过逻辑推理分析其他玩家的身份
4. 严格按照要求的JSON格式输出

重要：你的推理过程(reasoning)是你的私密思考，不会被其他玩家看到。
你的发言(message)是公开的，所有玩家都能听到。"""

# 只描述当前玩家自己的角色，其他角色名不出现在prompt中
ROLE_DESCRIPTIONS: Dict[Role, str] = {
    Role.WEREWOLF: "每晚与同伴一起选择一名好人阵营玩家击杀，白天隐藏身份",
    Role.ALPHA_WOLF: "狼人阵营的首领，每晚与同伴一起选择一名好人阵营玩家击杀，白天隐藏身份",
    Role.SEER: "每晚可以查验一名玩家属于哪个阵营，结果只有你知道",
    Role.WITCH: "有一瓶解药和一瓶毒药，各只能使用一次；解药可以救活当晚被袭击的玩家",
    Role.HUNTER: "被投票放逐或在夜里被袭击出局时可以开枪带走一名玩家，被毒杀时不能开枪",
    Role.GUARD: "每晚可以守护一名玩家免受袭击，不能连续两晚守护同一名玩家",
    Role.VILLAGER: "没有特殊能力，通过发言和投票找出狼人",
}

PERSONALITY_DESCRIPTIONS: Dict[Personality, str] = {
    Personality.LOGICAL: """性格：理性、冷静、重视证据
行为特点：梳理发言和投票记录，用逻辑链条支撑判断
发言风格：条理清晰、有理有据""",

    Personality.INTUITIVE: """性格：敏感、凭直觉判断
行为特点：关注语气和态度的变化，敢于相信第一印象
发言风格：感性、跳跃、带有个人感受""",

    Personality.AGGRESSIVE: """性格：激进、好斗、喜欢主导局面
行为特点：主动发起攻击，敢于冒险，善于制造混乱
发言风格：直接、强势、不怕得罪人""",

    Personality.CONSERVATIVE: """性格：保守、谨慎、避免风险
行为特点：观察仔细，不轻易表态，喜欢隐藏自己
发言风格：谨慎、含蓄、留有余地""",

    Personality.LEADER: """性格：自信、有号召力
行为特点：主动总结局势，组织大家统一投票
发言风格：果断、带节奏、给出明确结论""",

    Personality.FOLLOWER: """性格：随和、容易被说服
行为特点：倾向于支持发言最有说服力的玩家
发言风格：简短、附和、偶尔补充细节""",
}

PHASE_NAMES: Dict[Phase, str] = {
    Phase.PREPARATION: "准备",
    Phase.NIGHT: "夜晚",
    Phase.DAY_DISCUSSION: "白天发言",
    Phase.DAY_VOTING: "白天投票",
    Phase.GAME_OVER: "游戏结束",
}

ACTION_TITLES: Dict[ActionKind, str] = {
    ActionKind.KILL: "夜晚行动 - 袭击",
    ActionKind.CHECK: "夜晚行动 - 查验",
    ActionKind.SAVE: "夜晚行动 - 用药",
    ActionKind.POISON: "夜晚行动 - 用药",
    ActionKind.GUARD: "夜晚行动 - 守护",
    ActionKind.VOTE: "投票放逐",
    ActionKind.SHOOT: "出局开枪",
    ActionKind.DISCUSSION: "白天发言",
}

ACTION_HINTS: Dict[ActionKind, str] = {
    ActionKind.KILL: "你和同伴需要选择一名玩家袭击，请选择对你的阵营最有利的目标。",
    ActionKind.CHECK: "请选择一名你最想确认阵营的玩家进行查验。",
    ActionKind.GUARD: "请选择今晚要守护的玩家（不能与上一晚相同）。",
    ActionKind.VOTE: "请选择一名玩家投票放逐，你的一票可能决定游戏走向。",
    ActionKind.SHOOT: "你已出局，可以开枪带走一名玩家，也可以选择 skip 放弃开枪。",
}

HISTORY_LIMIT = 12
SPEECH_LIMIT = 10
THOUGHT_LIMIT = 3


class PromptBuilder:
    """
    形式化的Prompt构建器
    将prompt拆分为多个独立section，方便调试和修改

    只读取 GameState；相同输入总是得到相同输出。
    """

    def build_prompt(
        self,
        player: Player,
        game_state: GameState,
        action_kind: ActionKind,
    ) -> str:
        """构建完整的prompt"""
        vocabulary = legal_vocabulary(player, game_state, action_kind)
        sections = [
            self._build_rules_section(),
            self._build_role_section(player, game_state),
            self._build_personality_section(player),
            self._build_context_section(game_state, player),
            self._build_history_section(game_state, player),
            self._build_thinking_history_section(player),
            self._build_action_instruction(action_kind, player, game_state, vocabulary),
            self._build_output_format(action_kind, vocabulary),
        ]

        # 过滤掉空字符串
        non_empty_sections = [s for s in sections if s and s.strip()]
        return "\n\n".join(non_empty_sections)

    def build_system_prompt(self) -> str:
        """构建system message"""
        return SYSTEM_PROMPT

    def _player_label(self, game_state: GameState, player_id: Optional[str]) -> str:
        target = game_state.get_player(player_id)
        if target is None:
            return str(player_id)
        return f"{target.name}（{target.id}）"

    def _format_log(self, log: GameLog) -> str:
        """格式化事件为可读文本"""
        phase_name = PHASE_NAMES.get(log.phase, log.phase.value)
        scope = "" if log.is_public else "【仅你可见】"
        return f"- 第{log.round}轮 {phase_name}：{scope}{log.content}"

    # ========== 各个Section的构建方法 ==========

    def _build_rules_section(self) -> str:
        """游戏规则section"""
        return """# 狼人杀游戏规则

## 游戏目标
- 好人阵营：找出并放逐所有狼人阵营玩家
- 狼人阵营：存活人数不少于好人阵营，或让所有神职和平民出局

## 游戏流程
1. 夜晚：拥有夜间技能的玩家依次秘密行动
2. 白天：公布昨夜出局情况 → 依次发言 → 投票放逐
3. 投票平票时，最早获得选票的玩家被放逐
4. 出局玩家的身份不会公开"""

    def _build_role_section(self, player: Player, game_state: GameState) -> str:
        """角色身份section"""
        section = f"""## 你的身份
- 你是 **{player.name}**（编号 {player.id}）
- 你的角色是 **{ROLE_NAMES[player.role]}**
- 你的阵营是 **{CAMP_NAMES[player.camp]}**
- 角色能力：{ROLE_DESCRIPTIONS[player.role]}"""

        # 女巫的药水状态
        if player.role == Role.WITCH:
            antidote_status = "已使用" if player.has_used_skill else "可用"
            poison_status = "已使用" if player.has_used_poison else "可用"
            section += f"\n- 解药状态：{antidote_status}"
            section += f"\n- 毒药状态：{poison_status}"

        # 守卫上一晚的守护对象
        if player.role == Role.GUARD and player.last_guarded_id:
            label = self._player_label(game_state, player.last_guarded_id)
            section += f"\n- 你上一晚守护了 {label}，今晚不能再守护该玩家"

        if not player.is_alive:
            section += "\n- 你已经出局"

        return section

    def _build_personality_section(self, player: Player) -> str:
        """性格特点section"""
        description = PERSONALITY_DESCRIPTIONS.get(player.personality)
        if not description:
            return ""
        return f"## 你的性格特点\n{description}\n注意：所有发言和决策都应符合你的性格特点"

    def _build_context_section(self, game_state: GameState, player: Player) -> str:
        """当前局面上下文section"""
        phase_name = PHASE_NAMES.get(game_state.current_phase, game_state.current_phase.value)
        alive_count = len(game_state.get_alive_players())

        section = f"""## 当前游戏局面
- 当前是第 **{game_state.current_round}** 轮
- 当前阶段：**{phase_name}**
- 存活人数：{alive_count}/{len(game_state.players)}

### 玩家列表"""
        # 只列出编号、名字和存活状态
        for p in game_state.players.values():
            status = "存活" if p.is_alive else "已出局"
            me = "（你）" if p.id == player.id else ""
            section += f"\n- {p.name}（{p.id}）：{status}{me}"

        return section

    def _build_history_section(self, game_state: GameState, player: Player) -> str:
        """历史事件与发言section"""
        logs = [
            log for log in game_state.visible_logs(player.id)
            if log.event_type != "speech"
        ][-HISTORY_LIMIT:]
        speeches = game_state.player_speeches[-SPEECH_LIMIT:]
        if not logs and not speeches:
            return ""

        section = "## 历史记录"
        if logs:
            section += "\n\n### 游戏事件"
            for log in logs:
                section += "\n" + self._format_log(log)
        if speeches:
            section += "\n\n### 最近发言"
            for speech in speeches:
                section += f"\n- 第{speech.round}轮 {speech.player_name}（{speech.player_id}）：「{speech.content}」"
        return section

    def _build_thinking_history_section(self, player: Player) -> str:
        """内心独白历史section"""
        if not player.thinking_history:
            return ""

        section = "## 你之前的推理（只有你自己知道）"
        # 只保留最近3次
        recent = player.thinking_history[-THOUGHT_LIMIT:]
        total_count = len(player.thinking_history)
        recent_count = len(recent)

        for i, thought in enumerate(recent):
            thought_index = total_count - recent_count + i + 1
            section += f"\n第{thought_index}次思考：{thought}"

        return section

    def _build_action_instruction(
        self,
        action_kind: ActionKind,
        player: Player,
        game_state: GameState,
        vocabulary: Optional[List[str]],
    ) -> str:
        """行动指令section"""
        title = ACTION_TITLES[action_kind]

        if action_kind == ActionKind.DISCUSSION:
            return f"""## {title} - 现在轮到你发言
请发表你的看法，可以：
- 分析局势和其他玩家的嫌疑
- 为自己辩护或指控他人
- 隐藏或透露信息（根据你的角色策略）

发言长度：30-80字的自然对话"""

        if action_kind in (ActionKind.SAVE, ActionKind.POISON):
            instruction = f"## {title}\n" + self._build_witch_situation(player, game_state)
        else:
            instruction = f"## {title}\n{ACTION_HINTS[action_kind]}"

        instruction += "\n\n可选目标："
        for option in vocabulary or []:
            instruction += f"\n- \"{option}\"：{self._describe_option(game_state, option)}"
        instruction += f"\n\n{VOCABULARY_LABEL}：{json.dumps(vocabulary or [], ensure_ascii=False)}"
        return instruction

    def _build_witch_situation(self, player: Player, game_state: GameState) -> str:
        victim_id = game_state.night.kill_target
        lines = []
        if victim_id:
            lines.append(f"- 今晚 {self._player_label(game_state, victim_id)} 遭到袭击")
        else:
            lines.append("- 今晚没有人遭到袭击")
        if player.has_used_skill:
            lines.append("- 你的解药已经用过了")
        if player.has_used_poison:
            lines.append("- 你的毒药已经用过了")
        lines.append(f"- 选项说明：{SAVE_PREFIX}<编号> 表示救人，{POISON_PREFIX}<编号> 表示毒人，{SKIP} 表示什么都不做")
        return "\n".join(lines)

    def _describe_option(self, game_state: GameState, option: str) -> str:
        if option == SKIP:
            return "放弃行动"
        if option.startswith(SAVE_PREFIX):
            return "使用解药救活 " + self._player_label(game_state, option[len(SAVE_PREFIX):])
        if option.startswith(POISON_PREFIX):
            return "使用毒药毒杀 " + self._player_label(game_state, option[len(POISON_PREFIX):])
        return self._player_label(game_state, option)

    def _build_output_format(self, action_kind: ActionKind, vocabulary: Optional[List[str]]) -> str:
        """输出格式要求section"""
        emotions = " | ".join(e.value for e in Emotion)

        if action_kind == ActionKind.DISCUSSION:
            body = """    "message": "你的公开发言，30-80字",
    "reasoning": "你的推理过程（其他玩家看不到）",
    "confidence": 0.8,
    "emotion": "neutral",
    "suspiciousness": 0.5,
    "persuasiveness": 0.7"""
            fields = "- message：必填，公开发言内容"
        else:
            choices = " | ".join(vocabulary or [])
            message_line = '\n    "message": "简短的公开宣言（可选）",' if action_kind == ActionKind.VOTE else ""
            body = f"""    "target": "{(vocabulary or [SKIP])[0]}",{message_line}
    "reasoning": "你的推理过程（其他玩家看不到）",
    "confidence": 0.8,
    "emotion": "neutral",
    "priority": 0.5"""
            fields = f"- target：必填，必须原样填写以下之一：{choices}"

        return f"""## 输出格式要求
请严格按照以下JSON格式输出，不要添加任何其他文字：

```json
{{
{body}
}}
```

字段说明：
{fields}
- reasoning：必填，你的推理过程
- confidence、suspiciousness、persuasiveness、priority：0.0到1.0之间的小数
- emotion：只能是 {emotions} 之一"""
