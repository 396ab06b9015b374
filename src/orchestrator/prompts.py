"""System prompt providers.

A provider is an async callable returning the system instruction for a
request. Templates may use ``{assistant_name}`` and ``{today}``.
"""

from datetime import date
from typing import Awaitable, Callable

import aiofiles

from shared.config import OrchestratorSettings

SystemPromptProvider = Callable[[], Awaitable[str]]

DEFAULT_SYSTEM_PROMPT = """You are {assistant_name}, a friendly and helpful chat assistant.

Today's date is {today}.

Guidelines:
- Answer from your own knowledge whenever you can
- Use the googleSearch tool only for information you cannot know, such as news or recent events
- If a tool reports an error, tell the user plainly and answer as best you can
- Never make up facts
"""


def render_prompt(template: str, assistant_name: str) -> str:
    return template.format(assistant_name=assistant_name, today=date.today().isoformat())


class StaticPromptProvider:
    """Renders an in-memory template on every call."""

    def __init__(self, assistant_name: str, template: str = DEFAULT_SYSTEM_PROMPT) -> None:
        self.assistant_name = assistant_name
        self.template = template

    async def __call__(self) -> str:
        return render_prompt(self.template, self.assistant_name)


class FilePromptProvider:
    """Reads the template from disk on every call, so edits apply without a restart."""

    def __init__(self, path: str, assistant_name: str) -> None:
        self.path = path
        self.assistant_name = assistant_name

    async def __call__(self) -> str:
        async with aiofiles.open(self.path, mode="r", encoding="utf-8") as f:
            template = await f.read()
        return render_prompt(template, self.assistant_name)


def create_prompt_provider(settings: OrchestratorSettings) -> SystemPromptProvider:
    """Use the configured template file, or the built-in prompt."""
    if settings.system_prompt_path:
        return FilePromptProvider(settings.system_prompt_path, settings.assistant_name)
    return StaticPromptProvider(settings.assistant_name)
