"""Prompt text for every model call the assistant makes.

Each call type gets a system persona plus a user prompt builder. Guidance
has one persona and one prompt per stage; the stages escalate from
framing the problem to a fully annotated solution, and the personas are
written so that earlier stages withhold code.

The wording is Chinese because the exercises and the editor UI are; the
analysis prompt pins the JSON issue format the translator expects.

Consumed by:
- CodeAnalyzer (analysis)
- QuickFixService (fix, help)
- CompletionService (completion, tab completion)
- ProgressiveGuide (guidance stages)
- Settings API (connection test)

Tier 1 leaf: imports only from codecoach.schemas.
"""

from __future__ import annotations

from codecoach.schemas import Stage

_LANGUAGE_LABELS: dict[str, str] = {
    "cpp": "C++",
    "c": "C",
}


def language_label(language_id: str) -> str:
    """Human-readable language name for a language id ("cpp" → "C++")."""
    return _LANGUAGE_LABELS.get(language_id, language_id.upper())


# ---------------------------------------------------------------------------
# Document analysis
# ---------------------------------------------------------------------------

ANALYSIS_SYSTEM_PROMPT = (
    "你是一个专业的代码分析工具，需要在代码中发现问题并提供改进建议。"
    "请提供明确的代码行号、问题描述、严重性等级（error、warning、info）以及修复建议。"
)


def build_analysis_prompt(code: str, language_id: str) -> str:
    """User prompt asking for a JSON array of issues for the whole file."""
    return f"""请分析以下{language_label(language_id)}代码，找出潜在的问题和优化机会。请特别注意：
1. 语法错误
2. 逻辑问题
3. 最佳实践违规
4. 可能的性能问题
5. 安全隐患
6. 可读性和维护性改进

针对每个问题，请提供以下信息：
- 行号（从1开始）
- 问题描述
- 严重性级别（error、warning、info）
- 具体的修复建议

请以JSON数组格式响应，示例：
[
  {{
    "line": 5,
    "message": "未检查指针是否为空",
    "severity": "warning",
    "code": "NPE",
    "suggestion": "在解引用指针前添加空值检查"
  }}
]
如果问题只涉及行内的一部分，可以额外提供 "column" 和 "endColumn"（从1开始）。

代码:
```{language_id}
{code}
```"""


# ---------------------------------------------------------------------------
# Quick-fix and additional help
# ---------------------------------------------------------------------------

FIX_SYSTEM_PROMPT = "你是一个C++代码修复助手。根据问题描述提供具体的修复代码。"

HELP_SYSTEM_PROMPT = "你是一个熟练的C++编程教师，你的任务是帮助解释代码问题并提供多种解决方案。"


def build_fix_prompt(message: str, suggestion: str, context_code: str, language_id: str) -> str:
    """User prompt asking for the corrected snippet only. Problem line marked with →."""
    return f"""我需要修复以下{language_label(language_id)}代码中的问题。问题描述是: "{message}"。建议修复方法是: "{suggestion}"。
请提供具体的修复代码，只返回修改后的代码段，不需要解释。问题行用→标记。

```{language_id}
{context_code}
```

请提供修复后的代码段:"""


def build_help_prompt(message: str, context_code: str, language_id: str) -> str:
    """User prompt asking for an explanation and alternative fixes."""
    label = language_label(language_id)
    return f"""请详细解释以下{label}代码中的问题并提供多种解决方案。问题描述是: "{message}"。

代码上下文:
```{language_id}
{context_code}
```

请提供:
1. 问题的详细分析和为什么会引起这个错误
2. 至少两种不同的修复方案，并解释每种方案的优缺点
3. 可能的最佳实践和相关{label}知识点"""


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

COMPLETION_SYSTEM_PROMPT = (
    "你是一个C++代码补全助手。请仅返回可能的代码补全内容，不要包含解释，"
    "也不要添加任何额外文本。每个补全不超过一行代码。"
)


def build_completion_prompt(context_code: str, language_id: str, max_items: int) -> str:
    """User prompt asking for up to max_items single-line continuations."""
    return f"""我正在编写{language_label(language_id)}代码。请为下面的代码提供3-{max_items}个可能的补全建议，每个建议不超过一行代码。只返回代码补全部分，不要包含解释，不要添加提示文本。
代码上下文:
```{language_id}
{context_code}
```

可能的补全（每个补全一行，最多{max_items}行）:"""


TAB_COMPLETION_SYSTEM_PROMPT = (
    "你是一个C++代码补全助手。只提供单行代码的自然补全，不要包含解释或任何其他文本。"
)


def build_tab_prompt(context_code: str, language_id: str) -> str:
    """User prompt asking for the single most likely continuation."""
    return f"""请为下面的{language_label(language_id)}代码提供一个自然的补全。只返回最可能的补全内容，不要包含解释或注释，不要包括开头的缩进，不要重复已有的代码。以下是当前代码上下文：
```{language_id}
{context_code}
```

补全:"""


# ---------------------------------------------------------------------------
# Progressive guidance — one persona and one prompt per stage
# ---------------------------------------------------------------------------

_STAGE_SYSTEM_ROLES: dict[Stage, str] = {
    Stage.PROBLEM_ANALYSIS: (
        "你是一位专业的{lang}算法教师，擅长帮助学生理解和分析{lang}编程问题。"
        "你的目标是引导学生深入理解问题，而不是直接提供解答。请始终使用{lang}语言的视角进行分析。"
    ),
    Stage.CODE_STRUCTURE: (
        "你是一位{lang}编程设计专家，擅长帮助学生规划{lang}解决方案的整体结构。"
        "你的目标是提供{lang}解决方案的框架，而不是具体实现细节。请始终使用{lang}编程范式和实践。"
    ),
    Stage.KEY_HINTS: (
        "你是一位{lang}编程教练，善于提供{lang}编程相关的关键性提示以帮助学生突破思维瓶颈。"
        "你的回答应该点到为止，引导学生思考{lang}实现方案而非直接给出解答。"
    ),
    Stage.DETAILED_GUIDANCE: (
        "你是一位{lang}编程导师，善于提供详细且系统的{lang}算法指导。"
        "你的回答要有条理地讲解{lang}解题思路和关键步骤，但仍鼓励学生自己实现代码。"
        "请确保所有建议都符合{lang}编程实践。"
    ),
    Stage.GUIDED_CODE: (
        "你是一位{lang}编程实践指导者，善于提供有详细注释的{lang}实例代码。"
        "你的{lang}代码注释应清晰解释每个关键步骤的思路和目的，帮助学生理解{lang}实现细节。"
        "请确保代码符合{lang}最佳实践和风格指南。"
    ),
}

_STAGE_REQUESTS: dict[Stage, tuple[str, list[str]]] = {
    Stage.PROBLEM_ANALYSIS: (
        "我需要理解这道{lang}编程题目。请帮我深入分析题目要求，明确输入输出，"
        "并解释可能的解题思路，请使用{lang}语言的视角进行分析。",
        [
            "题目理解：题目实际要求我们做什么",
            "输入/输出分析：{lang}中的输入数据格式、约束和预期输出格式",
            "问题背后的核心概念和可能的{lang}算法思想",
            "分析样例，解释为什么示例输入得到相应输出",
            "边界情况思考：需要注意哪些边界情况和特殊输入",
            "{lang}特有的考虑点：如内存管理、STL使用等",
        ],
    ),
    Stage.CODE_STRUCTURE: (
        "我正在学习如何使用{lang}解决这个编程问题，现在需要了解{lang}解决方案的整体结构和框架。"
        "请不要给我完整代码，只需提供{lang}解决方案的基本框架和结构。",
        [
            "解决此问题所需的基本{lang}数据结构（如STL容器等）",
            "{lang}解决方案的整体框架和主要函数骨架",
            "各部分功能的简要说明",
            "可能的时间和空间复杂度分析",
            "需要包含的{lang}头文件",
        ],
    ),
    Stage.KEY_HINTS: (
        "我正在尝试使用{lang}解决这个编程问题，但需要一些关键点的提示而不是完整解答。"
        "请给我一些{lang}编程相关的思考方向和关键提示。",
        [
            "解决此问题的3-5个{lang}实现相关的关键提示点",
            "使用{lang}可能遇到的常见错误或陷阱",
            "算法中的关键步骤或{lang} STL使用的提示",
            "不要提供完整的代码实现，只给出{lang}实现关键部分的思路",
        ],
    ),
    Stage.DETAILED_GUIDANCE: (
        "我需要更详细的指导来用{lang}解决这个编程问题。请提供详细的{lang}解题思路和算法步骤。",
        [
            "详细的{lang}解题思路和算法步骤",
            "{lang}主要函数和组件的设计思路",
            "关键代码部分的{lang}伪代码或描述",
            "如何使用{lang}处理边界情况和异常",
            "不同{lang}解法的对比（如有）",
            "优化建议和{lang} STL的合理使用",
        ],
    ),
    Stage.GUIDED_CODE: (
        "请为这个编程问题提供有详细注释的{lang}指导代码。"
        "我需要完整且可运行的{lang}代码，但更重要的是详细解释每个关键步骤和思路。",
        [
            "完整的{lang}解决方案代码，包含所有必要的头文件",
            "每个关键步骤都有详细注释",
            "{lang}算法思想和关键操作的解释",
            "时间和空间复杂度分析",
            "{lang}特有功能的使用说明（如STL容器、智能指针等）",
        ],
    ),
}


def stage_system_role(stage: Stage, language: str = "C++") -> str:
    """Persona for a guidance stage."""
    return _STAGE_SYSTEM_ROLES[stage].format(lang=language)


def build_stage_prompt(stage: Stage, problem_text: str, language: str = "C++") -> str:
    """User prompt for a guidance stage: request, problem, numbered deliverables."""
    request, items = _STAGE_REQUESTS[stage]
    numbered = "\n".join(
        f"{i}. {item.format(lang=language)}" for i, item in enumerate(items, start=1)
    )
    return (
        f"{request.format(lang=language)}\n\n"
        f"题目描述:\n{problem_text}\n\n"
        f"请提供以下内容:\n{numbered}"
    )


# ---------------------------------------------------------------------------
# Connection test
# ---------------------------------------------------------------------------

CONNECTION_TEST_SYSTEM_PROMPT = "你是一个测试助手。"
CONNECTION_TEST_PROMPT = "请回复'连接成功'，不要添加其他任何内容。"
