"""系统提示词加载工具。

按 Agent 类型和语言(locale) 从 prompts/<locale> 目录读取对应的提示词文本，
用于构造 ChatMessage(role="system")。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent

_PROMPT_FILES = {
    "okr-assistant": "okr_assistant_system.md",
    "workflow-continuation": "workflow_continuation.md",
}


def load_system_prompt(agent_type: str = "okr-assistant", locale: str = "en") -> str:
    """根据 Agent 类型和语言加载系统提示词文本。"""

    try:
        fname = _PROMPT_FILES[agent_type]
    except KeyError:
        raise ValueError(f"Unknown prompt type: {agent_type!r}") from None
    return (PROMPTS_DIR / locale / fname).read_text(encoding="utf-8").strip()
