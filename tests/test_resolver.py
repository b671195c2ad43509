"""
Tests for RoleActionResolver: role rules, night resolution and vote tally.
"""
import pytest
from conftest import make_state

from werewolf_ai.errors import GameRuleViolation, ParseFailure
from werewolf_ai.models import (
    ActionKind, AgentDecision, Camp, DeathCause, Phase, PlayerStatus, Role,
)
from werewolf_ai.resolver import RoleActionResolver


def decide(target=None, **kwargs) -> AgentDecision:
    return AgentDecision(target=target, **kwargs)


class TestChecks:
    """Tests for actor and target checks."""

    def test_guard_repeat_is_violation(self, resolver, classic_state):
        """Test that guarding the same player twice is rejected."""
        guard = classic_state.players["7"]
        guard.last_guarded_id = "4"
        with pytest.raises(GameRuleViolation, match="连续两晚"):
            resolver.check(guard, ActionKind.GUARD, decide("4"))

    def test_dead_player_cannot_vote(self, resolver, classic_state):
        """Test that an eliminated player cannot act."""
        player = classic_state.players["8"]
        resolver.mark_eliminated(player)
        with pytest.raises(GameRuleViolation):
            resolver.check_actor(player, ActionKind.VOTE)

    def test_villager_cannot_check(self, resolver, classic_state):
        """Test that a role cannot use another role's skill."""
        with pytest.raises(GameRuleViolation):
            resolver.check_actor(classic_state.players["8"], ActionKind.CHECK)

    def test_shoot_requires_pending_shooter(self, resolver, classic_state):
        """Test that the hunter only shoots when a shot is pending."""
        hunter = classic_state.players["6"]
        with pytest.raises(GameRuleViolation):
            resolver.check_actor(hunter, ActionKind.SHOOT)
        classic_state.pending_shooter_id = "6"
        resolver.mark_eliminated(hunter)
        resolver.check_actor(hunter, ActionKind.SHOOT)


class TestApply:
    """Tests for committing decisions."""

    def test_illegal_target_falls_back_to_default(self, resolver, classic_state):
        """Test that an illegal guard target commits the default instead."""
        guard = classic_state.players["7"]
        guard.last_guarded_id = "1"
        logs = resolver.apply(guard, ActionKind.GUARD, decide("1"))

        assert logs[0].event_type == "rule_violation"
        assert logs[0].visible_to == ["7"]
        assert classic_state.night.guarded_id == "2"
        assert guard.last_guarded_id == "2"

    def test_apply_clears_awaiting(self, resolver, classic_state):
        """Test that a committed decision removes the seat from awaiting."""
        classic_state.awaiting = ["4", "5"]
        resolver.apply(classic_state.players["4"], ActionKind.CHECK, decide("1"))
        assert classic_state.awaiting == ["5"]

    def test_actor_violation_leaves_state(self, resolver, classic_state):
        """Test that a wrong actor changes nothing but the log."""
        classic_state.awaiting = ["8"]
        logs = resolver.apply(classic_state.players["8"], ActionKind.KILL, decide("4"))
        assert [log.event_type for log in logs] == ["rule_violation"]
        assert classic_state.night.wolf_votes == []
        assert classic_state.awaiting == ["8"]

    def test_check_result_is_private(self, resolver, classic_state):
        """Test that the seer learns the camp and nobody else does."""
        logs = resolver.apply(classic_state.players["4"], ActionKind.CHECK, decide("3"))
        log = logs[0]
        assert log.visible_to == ["4"]
        assert not log.is_public
        assert "狼人阵营" in log.content
        assert log.extra["camp"] == Camp.WEREWOLF.value

    def test_wolf_vote_is_private(self, resolver, classic_state):
        """Test that a kill vote is visible to the voting wolf only."""
        logs = resolver.apply(classic_state.players["1"], ActionKind.KILL, decide("8"))
        assert logs[0].visible_to == ["1"]
        assert classic_state.night.wolf_votes == [("1", "8")]

    def test_vote_recorded(self, resolver, classic_state):
        classic_state.current_phase = Phase.DAY_VOTING
        resolver.apply(classic_state.players["8"], ActionKind.VOTE, decide("2", message="二号很可疑"))
        vote = classic_state.votes[-1]
        assert (vote.voter_id, vote.target_id, vote.round) == ("8", "2", 1)
        assert "二号很可疑" in classic_state.logs[-1].content

    def test_empty_speech_is_silence(self, resolver, classic_state):
        classic_state.current_phase = Phase.DAY_DISCUSSION
        resolver.apply(classic_state.players["9"], ActionKind.DISCUSSION, decide())
        speech = classic_state.player_speeches[-1]
        assert speech.skipped
        assert speech.content == "（沉默）"

    def test_reasoning_remembered_on_commit(self, resolver, classic_state):
        """Test that the committed decision's reasoning joins the thinking history."""
        seer = classic_state.players["4"]
        resolver.apply(seer, ActionKind.CHECK, decide("3", reasoning="三号刀法很稳"))
        assert seer.thinking_history == ["三号刀法很稳"]

    def test_reasoning_kept_when_target_replaced(self, resolver, classic_state):
        guard = classic_state.players["7"]
        guard.last_guarded_id = "1"
        resolver.apply(guard, ActionKind.GUARD, decide("1", reasoning="继续守一号"))
        assert guard.thinking_history == ["继续守一号"]

    def test_default_reasoning_not_remembered(self, resolver, classic_state):
        seer = classic_state.players["4"]
        resolver.apply(seer, ActionKind.CHECK, decide("1", reasoning="默认行动"), remember=False)
        assert seer.thinking_history == []

    def test_rejected_actor_remembers_nothing(self, resolver, classic_state):
        villager = classic_state.players["8"]
        resolver.apply(villager, ActionKind.KILL, decide("4", reasoning="想刀四号"))
        assert villager.thinking_history == []

    def test_failure_keeps_raw_response(self, resolver, classic_state):
        """Test that a parse failure is logged with the raw payload."""
        error = ParseFailure("无法解析", attempts=["direct: x"], raw="???")
        log = resolver.record_failure(classic_state.players["4"], ActionKind.CHECK, error, "???")
        assert log.extra["raw"] == "???"
        assert log.extra["error_type"] == "ParseFailure"
        assert log.extra["attempts"] == ["direct: x"]
        assert log.visible_to == []
        assert not log.is_public


class TestNightResolution:
    """Tests for reconcile_kill and resolve_night."""

    def _wolves_pick(self, resolver, state, target):
        for wolf_id in ("1", "2", "3"):
            resolver.apply(state.players[wolf_id], ActionKind.KILL, decide(target))
        return resolver.reconcile_kill()

    def test_wolf_plurality(self, resolver, classic_state):
        resolver.apply(classic_state.players["1"], ActionKind.KILL, decide("8"))
        resolver.apply(classic_state.players["2"], ActionKind.KILL, decide("9"))
        resolver.apply(classic_state.players["3"], ActionKind.KILL, decide("9"))
        assert resolver.reconcile_kill() == "9"

    def test_unprotected_victim_dies(self, resolver, classic_state):
        self._wolves_pick(resolver, classic_state, "8")
        assert resolver.resolve_night() == [("8", DeathCause.WOLF_KILL)]
        assert classic_state.night.resolved

    def test_guarded_victim_survives(self, resolver, classic_state):
        resolver.apply(classic_state.players["7"], ActionKind.GUARD, decide("8"))
        self._wolves_pick(resolver, classic_state, "8")
        assert resolver.resolve_night() == []
        assert classic_state.logs[-1].event_type == "peaceful_night"

    def test_saved_victim_survives(self, resolver, classic_state):
        witch = classic_state.players["5"]
        self._wolves_pick(resolver, classic_state, "8")
        resolver.apply(witch, ActionKind.SAVE, decide("save_8"))
        assert witch.has_used_skill
        assert resolver.resolve_night() == []

    def test_guard_and_poison(self, resolver, classic_state):
        """Test that the guard does not stop the poison."""
        witch = classic_state.players["5"]
        witch.has_used_skill = True
        resolver.apply(classic_state.players["7"], ActionKind.GUARD, decide("9"))
        self._wolves_pick(resolver, classic_state, "8")
        resolver.apply(witch, ActionKind.POISON, decide("poison_9"))
        assert resolver.resolve_night() == [("8", DeathCause.WOLF_KILL), ("9", DeathCause.POISON)]
        assert witch.has_used_poison

    def test_poison_overrides_kill(self, resolver, classic_state):
        """Test that an attacked and poisoned player dies by poison."""
        self._wolves_pick(resolver, classic_state, "6")
        classic_state.night.poisoned_id = "6"
        assert resolver.resolve_night() == [("6", DeathCause.POISON)]


class TestVotesAndDeaths:
    """Tests for tally_votes and elimination logs."""

    def test_tie_goes_to_first_voted(self):
        state = make_state([Role.WEREWOLF, Role.SEER, Role.VILLAGER, Role.VILLAGER],
                           phase=Phase.DAY_VOTING)
        resolver = RoleActionResolver(state)
        for voter, target in (("1", "3"), ("2", "1"), ("3", "1"), ("4", "3")):
            resolver.apply(state.players[voter], ActionKind.VOTE, decide(target))
        assert resolver.tally_votes() == "3"

    def test_death_log_hides_role(self, resolver, classic_state):
        seer = classic_state.players["4"]
        resolver.mark_eliminated(seer)
        log = resolver.log_death(seer, DeathCause.WOLF_KILL)
        assert log.is_public
        assert "预言家" not in log.content
        assert "狼人" not in log.content
        assert not seer.is_alive

    def test_eliminated_player_cannot_return(self, classic_state):
        player = classic_state.players["8"]
        player.status = PlayerStatus.ELIMINATED
        with pytest.raises(AttributeError):
            player.status = PlayerStatus.ACTIVE
        with pytest.raises(AttributeError):
            player.role = Role.SEER
