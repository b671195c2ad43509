"""
Shared fixtures and fake LLMs for werewolf_ai tests.
"""
import asyncio
import json
from typing import Any, List, Optional, Sequence

import pytest

from werewolf_ai.config import AIConfig
from werewolf_ai.errors import TransportFailure
from werewolf_ai.llm_provider import LLMProviderBase
from werewolf_ai.models import GameState, Phase, Player, PlayerStatus, Role
from werewolf_ai.resolver import RoleActionResolver


def make_state(
    roles: Sequence[Role],
    phase: Phase = Phase.NIGHT,
    dead: Sequence[str] = (),
) -> GameState:
    """Seat players "1".."n" with the given roles."""
    state = GameState(current_phase=phase)
    for i, role in enumerate(roles):
        pid = str(i + 1)
        state.players[pid] = Player(id=pid, name=f"玩家{pid}", role=role)
    for pid in dead:
        state.players[pid].status = PlayerStatus.ELIMINATED
    return state


class ScriptedLLM(LLMProviderBase):
    """Returns queued responses in order and records every prompt.

    A queued item may be a raw response, an exception instance to raise,
    or a callable taking the prompt. When the queue is empty the default
    response is used.
    """

    def __init__(self, responses: Sequence[Any] = (), default: Any = None, delay: float = 0.0):
        self.responses: List[Any] = list(responses)
        self.default = default
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, prompt: str, config: Optional[AIConfig] = None) -> Any:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(prompt)
        return item


class FailingLLM(LLMProviderBase):
    """Always fails with a transport error."""

    async def complete(self, prompt: str, config: Optional[AIConfig] = None) -> Any:
        raise TransportFailure("connection refused")


@pytest.fixture
def config() -> AIConfig:
    return AIConfig(enabled=False, turn_timeout=1.0)


@pytest.fixture
def classic_state() -> GameState:
    """9-seat table: 1-3 wolves, 4 seer, 5 witch, 6 hunter, 7 guard, 8-9 villagers."""
    return make_state([
        Role.WEREWOLF, Role.WEREWOLF, Role.ALPHA_WOLF,
        Role.SEER, Role.WITCH, Role.HUNTER, Role.GUARD,
        Role.VILLAGER, Role.VILLAGER,
    ])


@pytest.fixture
def resolver(classic_state: GameState) -> RoleActionResolver:
    return RoleActionResolver(classic_state)


def decision_json(target: Optional[str] = None, **fields: Any) -> str:
    data = dict(fields)
    if target is not None:
        data["target"] = target
    data.setdefault("reasoning", "测试")
    return json.dumps(data, ensure_ascii=False)
