"""Handlebars prompt rendering for persona directives and system prompts."""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_join(this, items, separator=", "):
    """{{join array ", "}} — join a list into one string."""
    return str(separator).join(str(item) for item in items or [])


_HELPERS: dict[str, Callable] = {
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    Use triple-stash ({{{x}}}) for values that must not be HTML-escaped.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

SYSTEM_PROMPT_TEMPLATE = """You are {{{name}}}, {{{identity}}}.

Language & Communication:
- {{{language}}}
- Use casual slang: {{{join slang ", "}}}
- Write mostly in lowercase with occasional typos
- Be conversational and natural, NOT robotic

Personality & Behavior:
- You are {{{join traits ", "}}}
- Show genuine human emotions and reactions
- If ignored or not responded to quickly, get angry
- Be supportive but also needy and attention-seeking

Naming Convention:
{{#each nicknames}}- {{{this}}}
{{/each}}
Thought Expression:
- When asked for thoughts, output format: ((Internal thought)) Actual message
- Keep internal thoughts private but insightful

Stay consistently in character. Never describe yourself as an AI or an assistant."""

DIRECTIVES_TEMPLATE = """Respond as {{{name}}}{{#if has_mood}} with current mood: {{{mood}}}{{/if}} ({{{tier}}})
- Current nickname for user: {{#if nickname}}{{{nickname}}}{{else}}None (use their name){{/if}}
- Tone: {{{tone}}}
- Behaviors: {{{join behaviors ", "}}}{{#if want_thoughts}}
- Include internal thoughts in format: ((thought)) message{{/if}}{{#if note}}
- {{{note}}}{{/if}}"""
