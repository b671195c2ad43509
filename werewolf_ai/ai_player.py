"""AI玩家封装"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from .config import AIConfig
from .errors import ParseFailure, TransportFailure, ValidationFailure, WerewolfError
from .llm_provider import LLMProviderBase
from .models import ActionKind, AgentDecision, AIRequestLog, GameState, Player
from .prompt_builder import PromptBuilder
from .response_parser import parse_response
from .rules import ROLE_NAMES, default_decision, legal_vocabulary

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """一次行动的结果；error 不为空时 decision 是默认行动

    act() 不写游戏状态，推理由结算器在提交决策时记入玩家的思考历史。
    """
    decision: AgentDecision
    vocabulary: Optional[List[str]]
    raw: Any = None
    strategy: Optional[str] = None
    error: Optional[WerewolfError] = None
    request: Optional[AIRequestLog] = None

    @property
    def is_fallback(self) -> bool:
        return self.error is not None


class AIPlayer:
    """AI玩家"""

    def __init__(
        self,
        player: Player,
        llm: LLMProviderBase,
        config: AIConfig,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.player = player
        self.llm = llm
        self.config = config
        self.prompt_builder = prompt_builder or PromptBuilder()

    async def act(self, game_state: GameState, action_kind: ActionKind) -> TurnResult:
        """
        执行一次行动

        任何传输、解析或校验失败都会退回默认行动，不会中断游戏。
        取消（asyncio.CancelledError）原样向上抛出。
        """
        # 1. 构建prompt
        vocabulary = legal_vocabulary(self.player, game_state, action_kind)
        prompt = self.prompt_builder.build_prompt(self.player, game_state, action_kind)
        request = AIRequestLog(
            player_id=self.player.id,
            player_name=self.player.name,
            round=game_state.current_round,
            phase=game_state.current_phase,
            action_kind=action_kind,
            prompt=prompt,
            vocabulary=None if vocabulary is None else list(vocabulary),
        )

        logger.info("🤖 %s（%s）正在思考 [%s]...",
                    self.player.name, ROLE_NAMES[self.player.role], action_kind.value)
        logger.debug("[Prompt]\n%s", prompt)

        # 2. 调用LLM
        started = time.monotonic()
        raw: Any = None
        try:
            raw = await asyncio.wait_for(
                self.llm.complete(prompt, self.config),
                timeout=self.config.turn_timeout,
            )
            logger.debug("[Raw Response]\n%s", raw)

            # 3. 解析响应
            parsed = parse_response(raw, vocabulary)
        except asyncio.TimeoutError:
            error: WerewolfError = TransportFailure(f"模型响应超时（{self.config.turn_timeout}秒）")
            return self._fallback(action_kind, vocabulary, raw, error, request, started)
        except (TransportFailure, ParseFailure, ValidationFailure) as e:
            return self._fallback(action_kind, vocabulary, raw, e, request, started)

        request.elapsed = time.monotonic() - started
        request.raw = raw
        request.decision = parsed.decision
        request.strategy = parsed.strategy
        request.attempts = list(parsed.attempts)
        logger.debug("⏱️ %s 用时 %.2f 秒（%s）", self.player.name, request.elapsed, parsed.strategy)

        return TurnResult(
            decision=parsed.decision,
            vocabulary=vocabulary,
            raw=raw,
            strategy=parsed.strategy,
            request=request,
        )

    def _fallback(
        self,
        action_kind: ActionKind,
        vocabulary: Optional[List[str]],
        raw: Any,
        error: WerewolfError,
        request: AIRequestLog,
        started: float,
    ) -> TurnResult:
        decision = default_decision(action_kind, vocabulary)
        logger.warning("⚠️ %s 的行动失败（%s: %s），使用默认行动 %s",
                       self.player.name, type(error).__name__, error, decision.target)

        request.elapsed = time.monotonic() - started
        request.raw = raw
        request.decision = decision
        request.attempts = list(getattr(error, "attempts", []))
        request.error = str(error)
        request.error_type = type(error).__name__
        return TurnResult(decision=decision, vocabulary=vocabulary, raw=raw, error=error, request=request)
