"""AI code completion — a few single-line continuations at the cursor.

Completions share the orchestrator (and its rate floor) with everything
else, so they are cheap to refuse: nothing is sent for blank prefixes,
comments or very short prefixes, and results are cached per cursor
context. A newer completion request for the same document replaces a
queued older one. Every failure degrades to "no suggestions".

Tab (inline) completion is the single-answer variant: one continuation
for the cursor, switched separately and cached in a small LRU of its own.

Tier 2 service: imports from orchestrator (T2), prompts (T1), schemas (T1),
config (T2), models (T1).
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict

from codecoach.ai import prompts
from codecoach.ai.orchestrator import ModelRequest, RequestOrchestrator
from codecoach.ai.providers.base import JobSupersededError, ModelCallError
from codecoach.config import Settings
from codecoach.models import CALL_COMPLETION, CALL_TAB, resolve_call
from codecoach.schemas import CompletionItem, TextDocument

logger = logging.getLogger("codecoach.ai.completion")

_CACHE_KEY_RADIUS = 5
_PROMPT_CONTEXT_LINES = 10
_CACHE_LIMIT = 256
_CURSOR_MARK = "|CURSOR|"

_TAB_CONTEXT_LINES = 8
_TAB_CACHE_KEY_LINES = 3
_TAB_CACHE_LIMIT = 50
_TAB_MIN_LENGTH = 2
_TAB_REPLY_PREFIXES = ("补全:", "补全：")


def should_trigger(line_prefix: str, min_chars: int) -> bool:
    """Whether the text before the cursor is worth a completion request."""
    stripped = line_prefix.strip()
    if not stripped:
        return False
    if stripped.startswith("//"):
        return False
    return len(stripped) >= min_chars


def parse_completions(reply: str, language_id: str, max_items: int) -> list[CompletionItem]:
    """Splits a reply into completion items.

    Drops blank lines, code fences and lines that talk about "completion"
    rather than being one.
    """
    suggestions = [
        line.strip()
        for line in reply.split("\n")
        if line.strip()
        and not line.strip().startswith("```")
        and "completion" not in line.lower()
    ]
    label = prompts.language_label(language_id) if language_id in ("cpp", "c") else ""
    return [
        CompletionItem(label=suggestion, sort_text=f"{index:03d}", language_detail=label)
        for index, suggestion in enumerate(suggestions[:max_items])
    ]


def clean_tab_completion(reply: str, indent: str) -> str | None:
    """Turns a tab-completion reply into insertable text.

    Drops code fence lines and a leading "补全:" echo of the prompt, then
    indents every continuation line with ``indent``. Returns None for
    anything shorter than two characters.
    """
    kept = [line for line in reply.split("\n") if not line.strip().startswith("```")]
    text = "\n".join(kept).strip()
    for prefix in _TAB_REPLY_PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix):].strip()
            break
    if len(text) < _TAB_MIN_LENGTH:
        return None
    first, *rest = text.split("\n")
    return "\n".join([first] + [indent + line for line in rest])


class CompletionService:
    """Cached, rate-limited completion suggestions.

    Args:
        orchestrator: The process-wide request orchestrator.
        settings: Application settings.
    """

    def __init__(self, orchestrator: RequestOrchestrator, settings: Settings) -> None:
        self._orchestrator = orchestrator
        self._settings = settings
        self._enabled = settings.enable_ai_code_completion
        self._tab_enabled = settings.enable_tab_completion
        self._languages = frozenset(settings.analysis_languages)
        self._cache: OrderedDict[str, list[CompletionItem]] = OrderedDict()
        self._tab_cache: OrderedDict[str, str] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("AI completion %s", "enabled" if enabled else "disabled")

    @property
    def tab_enabled(self) -> bool:
        return self._tab_enabled

    def set_tab_enabled(self, enabled: bool) -> None:
        self._tab_enabled = enabled
        logger.info("AI tab completion %s", "enabled" if enabled else "disabled")

    def context_key(self, document: TextDocument, line: int, character: int) -> str:
        """Cache key: document, cursor position and a digest of nearby text."""
        lines = document.lines
        start = max(0, line - _CACHE_KEY_RADIUS)
        end = min(len(lines) - 1, line + _CACHE_KEY_RADIUS)
        parts = []
        for index in range(start, end + 1):
            if index == line:
                parts.append(lines[index][:character] + _CURSOR_MARK)
            else:
                parts.append(lines[index])
        digest = hashlib.sha1("\n".join(parts).encode("utf-8")).hexdigest()[:16]
        return f"{document.document_id}-{line}-{character}-{digest}"

    def _prompt_context(self, document: TextDocument, line: int, character: int) -> str:
        lines = document.lines
        start = max(0, line - _PROMPT_CONTEXT_LINES)
        preceding = [f"{lines[index]}\n" for index in range(start, line)]
        return "".join(preceding) + lines[line][:character]

    async def suggest(
        self, document: TextDocument, line: int, character: int
    ) -> list[CompletionItem]:
        """Returns completion items for the cursor position.

        Args:
            document: Current document snapshot.
            line: 0-based cursor line.
            character: 0-based cursor column.

        Returns:
            Up to completion_max_items items; empty when disabled,
            not triggered, superseded or failed.
        """
        if not self._enabled or document.language_id not in self._languages:
            return []
        if line < 0 or line >= document.line_count:
            return []

        line_prefix = document.lines[line][:character]
        if not should_trigger(line_prefix, self._settings.completion_trigger_chars):
            return []

        key = self.context_key(document, line, character)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        max_items = self._settings.completion_max_items
        request = ModelRequest(
            call_type=CALL_COMPLETION,
            system_prompt=prompts.COMPLETION_SYSTEM_PROMPT,
            user_prompt=prompts.build_completion_prompt(
                self._prompt_context(document, line, character),
                document.language_id,
                max_items,
            ),
            model_config=resolve_call(CALL_COMPLETION, self._settings),
            subject=document.document_id,
            dedupe_key=f"completion:{document.document_id}",
        )
        try:
            reply = await self._orchestrator.submit(request)
        except JobSupersededError:
            return []
        except ModelCallError as exc:
            logger.warning("AI completion request failed: %s", exc)
            return []

        items = parse_completions(reply, document.language_id, max_items)
        self._cache[key] = items
        if len(self._cache) > _CACHE_LIMIT:
            self._cache.popitem(last=False)
        return items

    # -- Tab (inline) completion -----------------------------------------------

    def tab_context_key(self, document: TextDocument, line: int, character: int) -> str:
        """Cache key for inline completions: the few lines ending at the cursor."""
        lines = document.lines
        start = max(0, line - _TAB_CACHE_KEY_LINES)
        parts = lines[start:line] + [lines[line][:character]]
        digest = hashlib.sha1("\n".join(parts).encode("utf-8")).hexdigest()[:16]
        return f"{document.language_id}-{digest}"

    async def inline(self, document: TextDocument, line: int, character: int) -> str | None:
        """Returns one inline continuation for the cursor position.

        Sends the eight lines before the cursor plus the current line prefix.
        A multi-line continuation gets the current line's indentation on
        every line after the first.

        Returns:
            The text to insert, or None when disabled, not triggered,
            superseded, failed or too short to be useful.
        """
        if not self._tab_enabled or document.language_id not in self._languages:
            return None
        if line < 0 or line >= document.line_count:
            return None

        current = document.lines[line]
        if not should_trigger(current[:character], self._settings.completion_trigger_chars):
            return None

        key = self.tab_context_key(document, line, character)
        cached = self._tab_cache.get(key)
        if cached is not None:
            self._tab_cache.move_to_end(key)
            return cached

        start = max(0, line - _TAB_CONTEXT_LINES)
        context = "".join(f"{text}\n" for text in document.lines[start:line]) + current[:character]
        request = ModelRequest(
            call_type=CALL_TAB,
            system_prompt=prompts.TAB_COMPLETION_SYSTEM_PROMPT,
            user_prompt=prompts.build_tab_prompt(context, document.language_id),
            model_config=resolve_call(CALL_TAB, self._settings),
            subject=document.document_id,
            dedupe_key=f"tab:{document.document_id}",
        )
        try:
            reply = await self._orchestrator.submit(request)
        except JobSupersededError:
            return None
        except ModelCallError as exc:
            logger.warning("AI tab completion request failed: %s", exc)
            return None

        indent = current[: len(current) - len(current.lstrip())]
        completion = clean_tab_completion(reply, indent)
        if completion is None:
            return None
        self._tab_cache[key] = completion
        if len(self._tab_cache) > _TAB_CACHE_LIMIT:
            self._tab_cache.popitem(last=False)
        return completion
