"""
Tests for AIPlayer and MockLLM.
"""
import asyncio
import copy

import pytest
from conftest import FailingLLM, ScriptedLLM, decision_json

from werewolf_ai.ai_player import AIPlayer
from werewolf_ai.config import AIConfig
from werewolf_ai.errors import ParseFailure, TransportFailure, ValidationFailure
from werewolf_ai.llm_provider import MockLLM
from werewolf_ai.models import ActionKind, Emotion, Phase
from werewolf_ai.prompt_builder import PromptBuilder
from werewolf_ai.response_parser import parse_response


class TestAct:
    """Tests for a single agent turn."""

    @pytest.mark.asyncio
    async def test_successful_turn(self, classic_state, config):
        llm = ScriptedLLM([{"choices": [{"message": {"content": decision_json(
            "8", reasoning="八号跟票太快", confidence=0.8, emotion="confident",
        )}}]}])
        ai = AIPlayer(classic_state.players["4"], llm, config)

        result = await ai.act(classic_state, ActionKind.CHECK)

        assert not result.is_fallback
        assert result.decision.target == "8"
        assert result.decision.emotion == Emotion.CONFIDENT
        assert result.strategy == "direct"
        assert result.decision.reasoning == "八号跟票太快"
        assert "合法目标可选值" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_act_leaves_state_untouched(self, classic_state, config):
        """Test that a turn only reads the game state."""
        ai = AIPlayer(classic_state.players["4"], ScriptedLLM([decision_json("8", reasoning="先验八号")]), config)
        before = copy.deepcopy(classic_state)

        result = await ai.act(classic_state, ActionKind.CHECK)

        assert result.decision.reasoning == "先验八号"
        assert classic_state == before
        assert ai.player.thinking_history == []

    @pytest.mark.asyncio
    async def test_confidence_beyond_float_range(self, classic_state, config):
        """Test that an oversized integer confidence is clamped instead of failing the turn."""
        huge = '{"target":"3","reasoning":"x","confidence":1' + "0" * 400 + "}"
        classic_state.current_phase = Phase.DAY_VOTING
        ai = AIPlayer(classic_state.players["8"], ScriptedLLM([huge]), config)

        result = await ai.act(classic_state, ActionKind.VOTE)

        assert not result.is_fallback
        assert result.decision.target == "3"
        assert result.decision.confidence == 1.0

    @pytest.mark.asyncio
    async def test_transport_failure(self, classic_state, config):
        ai = AIPlayer(classic_state.players["8"], FailingLLM(), config)
        classic_state.current_phase = Phase.DAY_VOTING

        result = await ai.act(classic_state, ActionKind.VOTE)

        assert isinstance(result.error, TransportFailure)
        assert result.decision.target == "1"
        assert ai.player.thinking_history == []

    @pytest.mark.asyncio
    async def test_timeout(self, classic_state):
        config = AIConfig(enabled=False, turn_timeout=0.05)
        ai = AIPlayer(classic_state.players["6"], ScriptedLLM(default="{}", delay=1.0), config)
        classic_state.pending_shooter_id = "6"

        result = await ai.act(classic_state, ActionKind.SHOOT)

        assert isinstance(result.error, TransportFailure)
        assert result.decision.target == "skip"

    @pytest.mark.asyncio
    async def test_validation_failure(self, classic_state, config):
        """Test that a wolf naming a teammate falls back."""
        ai = AIPlayer(classic_state.players["1"], ScriptedLLM([decision_json("2")]), config)

        result = await ai.act(classic_state, ActionKind.KILL)

        assert isinstance(result.error, ValidationFailure)
        assert result.raw == decision_json("2")
        assert result.decision.target == "4"

    @pytest.mark.asyncio
    async def test_parse_failure(self, classic_state, config):
        classic_state.current_phase = Phase.DAY_DISCUSSION
        ai = AIPlayer(classic_state.players["9"], ScriptedLLM(["……"]), config)

        result = await ai.act(classic_state, ActionKind.DISCUSSION)

        assert isinstance(result.error, ParseFailure)
        assert result.decision.message is None

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, classic_state, config):
        ai = AIPlayer(classic_state.players["4"], ScriptedLLM(default="{}", delay=10.0), config)
        task = asyncio.create_task(ai.act(classic_state, ActionKind.CHECK))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestMockLLM:
    """The offline agent always answers within the legal vocabulary."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(5))
    async def test_answers_are_legal(self, classic_state, config, seed):
        llm = MockLLM(seed=seed)
        classic_state.night.kill_target = "8"
        player = classic_state.players["5"]
        ai = AIPlayer(player, llm, config)

        result = await ai.act(classic_state, ActionKind.SAVE)

        assert not result.is_fallback
        assert result.decision.target in ("save_8", "skip")

    @pytest.mark.asyncio
    async def test_discussion_message(self, classic_state, config):
        llm = MockLLM(seed=3)
        classic_state.current_phase = Phase.DAY_DISCUSSION
        prompt = PromptBuilder().build_prompt(classic_state.players["8"], classic_state, ActionKind.DISCUSSION)

        raw = await llm.complete(prompt, config)

        decision = parse_response(raw, None).decision
        assert decision.message in MockLLM.SPEECHES


class TestRequestRecord:
    """Every model call leaves a request record, successful or not."""

    @pytest.mark.asyncio
    async def test_success_is_recorded(self, classic_state, config):
        raw = decision_json("8", reasoning="八号发言有漏洞")
        llm = ScriptedLLM([raw])
        ai = AIPlayer(classic_state.players["4"], llm, config)

        result = await ai.act(classic_state, ActionKind.CHECK)

        request = result.request
        assert request.player_id == "4"
        assert request.action_kind == ActionKind.CHECK
        assert request.phase == Phase.NIGHT
        assert request.prompt == llm.prompts[0]
        assert "8" in request.vocabulary
        assert request.raw == raw
        assert request.strategy == "direct"
        assert request.decision.target == "8"
        assert request.elapsed >= 0
        assert not request.has_error

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self, classic_state, config):
        classic_state.current_phase = Phase.DAY_VOTING
        ai = AIPlayer(classic_state.players["8"], ScriptedLLM(["随便投吧"]), config)

        result = await ai.act(classic_state, ActionKind.VOTE)

        request = result.request
        assert request.has_error
        assert request.error_type == "ParseFailure"
        assert request.raw == "随便投吧"
        assert request.attempts
        assert request.strategy is None
        assert request.decision.target == result.decision.target == "1"

    @pytest.mark.asyncio
    async def test_record_dict_hides_nothing(self, classic_state, config):
        ai = AIPlayer(classic_state.players["8"], FailingLLM(), config)
        classic_state.current_phase = Phase.DAY_VOTING

        result = await ai.act(classic_state, ActionKind.VOTE)

        data = result.request.to_dict()
        assert data["error_type"] == "TransportFailure"
        assert data["error"] == "connection refused"
        assert data["phase"] == "day_voting"
        assert data["action_kind"] == "vote"
        assert data["prompt"]
        assert "prompt" not in result.request.summary()
