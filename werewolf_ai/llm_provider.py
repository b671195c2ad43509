"""LLM 提供者封装"""
import json
import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionMessageParam

from .config import AIConfig
from .errors import TransportFailure
from .prompt_builder import SYSTEM_PROMPT, VOCABULARY_LABEL
from .rules import SKIP

logger = logging.getLogger(__name__)


class LLMProviderBase(ABC):
    """LLM 基类"""

    @abstractmethod
    async def complete(self, prompt: str, config: AIConfig) -> Any:
        """
        调用 LLM

        Returns:
            原始响应：字符串或信封字典，交给 response_parser 处理

        Raises:
            TransportFailure: 网络或服务端错误
        """


class OpenAICompatibleLLM(LLMProviderBase):
    """兼容 OpenAI 协议的 LLM（OpenAI / 通义千问 / DeepSeek）"""

    def __init__(self, system_prompt: str = SYSTEM_PROMPT):
        self.system_prompt = system_prompt
        self._clients: Dict[Tuple[str, str], AsyncOpenAI] = {}

    def _client(self, config: AIConfig) -> AsyncOpenAI:
        key = (config.api_key, config.base_url)
        if key not in self._clients:
            # 超时由 AIPlayer 统一控制，这里不重试
            self._clients[key] = AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                max_retries=0,
            )
        return self._clients[key]

    async def complete(self, prompt: str, config: AIConfig) -> Any:
        """调用 chat completions，返回完整的响应信封"""
        messages: List[ChatCompletionMessageParam] = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": prompt},
        ]
        try:
            response = await self._client(config).chat.completions.create(
                model=config.model,
                messages=messages,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except openai.APIError as e:
            logger.error("❌ API 调用错误: %s", e)
            raise TransportFailure(f"模型调用失败: {e}") from e
        return response.model_dump()


class MockLLM(LLMProviderBase):
    """模拟 LLM（用于测试和离线对局）

    从 prompt 中读取合法目标行并随机选择，响应随机包装成不同的信封格式。
    """

    SPEECHES = [
        "我是普通村民，昨晚没有收到任何信息。我觉得大家应该多发言，找出狼人。",
        "我注意到有些人发言闪躲，我建议大家关注一下那些不太说话的人。",
        "同意前面的分析，我也觉得我们应该投票给可疑的人。",
        "我觉得我们要理性分析，不能盲目跟票，大家说说自己的看法吧。",
        "昨晚的结果很说明问题，我们先从投票记录看起。",
    ]

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def _vocabulary(self, prompt: str) -> Optional[List[str]]:
        prefix = VOCABULARY_LABEL + "："
        for line in prompt.splitlines():
            if line.startswith(prefix):
                return json.loads(line[len(prefix):])
        return None

    def _wrap(self, decision: Dict[str, Any]) -> Any:
        text = json.dumps(decision, ensure_ascii=False)
        shape = self.rng.choice(["plain", "fenced", "content", "choices"])
        if shape == "fenced":
            return f"好的，这是我的决定：\n```json\n{text}\n```"
        if shape == "content":
            return {"message": {"role": "assistant", "content": text}}
        if shape == "choices":
            return {"choices": [{"message": {"role": "assistant", "content": text}}]}
        return text

    async def complete(self, prompt: str, config: Optional[AIConfig] = None) -> Any:
        """返回模拟响应"""
        vocabulary = self._vocabulary(prompt)
        emotion = self.rng.choice(["neutral", "suspicious", "defensive", "aggressive", "confident"])
        confidence = round(self.rng.uniform(0.3, 1.0), 2)

        if vocabulary is None:
            # 发言阶段
            return self._wrap({
                "message": self.rng.choice(self.SPEECHES),
                "reasoning": "先听听大家的说法",
                "confidence": confidence,
                "emotion": emotion,
                "suspiciousness": round(self.rng.random(), 2),
                "persuasiveness": round(self.rng.random(), 2),
            })

        # 可以放弃时偶尔放弃
        choices = [v for v in vocabulary if v != SKIP] or vocabulary
        if not choices:
            target = None
        elif SKIP in vocabulary and self.rng.random() < 0.5:
            target = SKIP
        else:
            target = self.rng.choice(choices)

        return self._wrap({
            "target": target,
            "reasoning": f"选择 {target} 对我的阵营最有利",
            "confidence": confidence,
            "emotion": emotion,
            "priority": round(self.rng.random(), 2),
        })
