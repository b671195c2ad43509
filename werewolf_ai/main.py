"""狼人杀AI对战 - 主程序"""
import argparse
import asyncio
import logging
import random
import sys
from typing import List, Optional

from .config import load_config
from .errors import ConfigError
from .game_engine import GameEngine
from .llm_provider import LLMProviderBase, MockLLM, OpenAICompatibleLLM

logger = logging.getLogger(__name__)


async def main(seed: Optional[int] = None) -> int:
    logger.info("=" * 60)
    logger.info("🎮 狼人杀 AI 对战系统")
    logger.info("=" * 60)
    logger.info("配置：9人局（3狼人 + 预言家 + 女巫 + 猎人 + 守卫 + 2村民）")

    try:
        config = load_config()
    except ConfigError as e:
        logger.error("❌ %s", e)
        return 1

    # 选择LLM
    llm: LLMProviderBase
    if config.enabled:
        logger.info("✅ 使用模型 %s @ %s（%s）", config.model, config.base_url, config.masked_key())
        llm = OpenAICompatibleLLM()
    else:
        logger.warning("⚠️ 未设置 OPENAI_API_KEY，使用 MockLLM 测试模式")
        logger.warning("   设置方法: export OPENAI_API_KEY='你的API密钥'")
        llm = MockLLM(seed=seed)

    # 创建游戏引擎并运行
    engine = GameEngine(llm, config, rng=random.Random(seed))
    await engine.run_game()
    return 0


def run(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="狼人杀 AI 对战")
    parser.add_argument("--seed", type=int, default=None, help="随机种子（座位、性格、模拟模型）")
    parser.add_argument("--debug", action="store_true", help="输出 prompt 和原始响应")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(main(seed=args.seed)))


if __name__ == "__main__":
    run()
