"""助手指令加载工具。

按语言(locale) 从 prompts/<locale> 目录读取默认指令文本，
ResponseRelay 会把它拼接在用户消息之前。
"""

from datetime import date
from pathlib import Path
from typing import Optional


PROMPTS_DIR = Path(__file__).resolve().parent


def load_instructions(locale: str = "en", today: Optional[date] = None) -> str:
    """加载默认助手指令，并填入当前日期，方便模型判断何时需要 web_search。"""

    fname = PROMPTS_DIR / locale / "assistant_instructions.md"
    text = fname.read_text(encoding="utf-8")
    return text.replace("{today}", (today or date.today()).isoformat()).strip()
