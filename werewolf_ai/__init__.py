"""狼人杀 AI 对战 - AI 玩家决策流水线"""
from .ai_player import AIPlayer, TurnResult
from .config import AIConfig, load_config
from .errors import (
    ConfigError, GameRuleViolation, IllegalPhaseTransition, ParseFailure,
    TransportFailure, ValidationFailure, WerewolfError,
)
from .game_engine import GameEngine
from .llm_provider import LLMProviderBase, MockLLM, OpenAICompatibleLLM
from .models import AgentDecision, AIRequestLog, GameState, Phase, Player, Role
from .prompt_builder import PromptBuilder
from .resolver import RoleActionResolver
from .response_parser import parse_decision, parse_response

__all__ = [
    "AIPlayer", "TurnResult", "AIConfig", "load_config",
    "ConfigError", "GameRuleViolation", "IllegalPhaseTransition", "ParseFailure",
    "TransportFailure", "ValidationFailure", "WerewolfError",
    "GameEngine", "LLMProviderBase", "MockLLM", "OpenAICompatibleLLM",
    "AgentDecision", "AIRequestLog", "GameState", "Phase", "Player", "Role",
    "PromptBuilder", "RoleActionResolver", "parse_decision", "parse_response",
]
