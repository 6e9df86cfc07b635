"""
run_script - 执行一个 JSON 自动化脚本

流程：
  1. 读取配置（auto.config.json + .env + 环境变量）
  2. 解析脚本文件并交给执行引擎
  3. 打印执行报告，可选保存 JSON 结果

依赖安装：
    pip install -e .
    playwright install chromium

运行示例：
    python run_script.py scripts/search.json [auto.config.json]

脚本示例：
    {
      "name": "search",
      "steps": [
        {"type": "navigate", "url": "https://cn.bing.com"},
        {"type": "wait", "selector": "#sb_form_q"},
        {"type": "type", "selector": "#sb_form_q", "value": "Playwright"},
        {"type": "screenshot"}
      ]
    }
"""

import asyncio
import os
import sys

from scriptrunner.config import load_config
from scriptrunner.engine import execute_script_from_file, format_execution_result, save_execution_result

# ──────────────────────────────────────────────
# 全局配置
# ──────────────────────────────────────────────

# 结果 JSON 的保存路径，未设置时不保存
RESULT_PATH = os.environ.get("RESULT_PATH")


async def run(script_path: str, config_path: str = None) -> int:
    """执行脚本，返回进程退出码"""
    config = load_config(config_path)

    print(f"\n{'='*60}")
    print(f"[Runner] 脚本：{script_path}")
    print(f"[Runner] 浏览器：{config.browser.type} (headless={config.browser.headless})")
    print(f"{'='*60}\n")

    outcome = await execute_script_from_file(script_path, config)
    if not outcome.success:
        # 脚本无法开始执行（解析 / 校验 / 浏览器启动失败）
        print(f"❌ {outcome.error}")
        return 2

    result = outcome.data
    print(format_execution_result(result))

    if RESULT_PATH:
        saved = await save_execution_result(result, RESULT_PATH)
        if saved.success:
            print(f"✓ 结果已保存：{RESULT_PATH}")
        else:
            print(f"⚠ {saved.error}")

    return 0 if result.success else 1


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("用法：python run_script.py <script.json> [config.json]")
        sys.exit(2)

    sys.exit(asyncio.run(run(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)))
