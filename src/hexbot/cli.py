"""Command line interface for hexbot with streaming output."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
import time
from typing import Any

import click
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from hexbot.bots import ChatBot, CompletionBot, translate
from hexbot.config import HexConfig, load_config
from hexbot.errors import HexError, SettingsError
from hexbot.llm import HttpxTransport, RequestBuilder
from hexbot.presets import ActiveState, ActiveStateStore, PresetStore
from hexbot.types import BotSettings, ChatBotSettings, CompletionBotSettings, Message

console = Console()


class StreamingDisplay:
    """Prints streamed chunks as they arrive."""

    def __init__(self, con: Console):
        self.con = con
        self._streaming = False

    def chunk(self, text: str) -> None:
        if not self._streaming:
            self._streaming = True
            text = text.lstrip()
        self.con.print(text, end="", highlight=False, markup=False)

    def done(self, started: float) -> None:
        if self._streaming:
            self.con.print()
            self._streaming = False
        self.con.print(f"[dim]({time.monotonic() - started:.1f}s)[/dim]")


def _stores(config: HexConfig) -> tuple[PresetStore, ActiveStateStore]:
    presets = PresetStore(config.data_dir, config.preferences.backup_frequency)
    return presets, ActiveStateStore(presets, config.defaults)


def _override(settings: BotSettings, **changes: Any) -> BotSettings:
    """Copy *settings* with the non-None *changes* applied (and validated)."""
    changes = {k: v for k, v in changes.items() if v is not None}
    return dataclasses.replace(settings, **changes) if changes else settings


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    sys.exit(1)


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to hexbot.yaml (auto-detected from CWD or ~/.config/hexbot/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """Hex - chat and completion bot for OpenAI-compatible APIs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    try:
        config, config_file = load_config(config_path)
    except HexError as e:
        _fail(e)
    if verbose:
        console.print(f"[dim]Config: {config_file or 'defaults'}[/dim]")
    ctx.obj = config


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

async def _run_completion(
    config: HexConfig,
    text: str,
    settings: CompletionBotSettings,
) -> str:
    display = StreamingDisplay(console)
    async with HttpxTransport(config.preferences) as transport:
        bot = CompletionBot(
            transport,
            RequestBuilder(config.defaults),
            on_chunk=display.chunk,
            error_timeout=config.error_timeout,
        )
        started = time.monotonic()
        answer = await bot.send(text, settings)
        display.done(started)
    return answer


@main.command()
@click.argument("text", required=False)
@click.option("--preset", "-p", "preset_id", default=None, help="Use a stored preset")
@click.option("--prompt", default=None, help="Prompt template with {{ input }}")
@click.option("--model", "-m", default=None, help="Model identifier")
@click.option("--temperature", "-t", type=float, default=None)
@click.pass_obj
def complete(config: HexConfig, text: str | None, preset_id: str | None,
             prompt: str | None, model: str | None, temperature: float | None):
    """Run a one-shot completion (TEXT or stdin)."""
    if text is None:
        text = click.get_text_stream("stdin").read()
    _, active = _stores(config)
    try:
        state = active.use_preset(preset_id) if preset_id else active.get("completion")
        if not isinstance(state.settings, CompletionBotSettings):
            raise SettingsError(f"Preset {preset_id} is not a completion preset")
        settings = _override(
            state.settings, prompt=prompt, model=model, temperature=temperature,
        )
        active.set(ActiveState(settings=settings, preset_id=state.preset_id))
        asyncio.run(_run_completion(config, text, settings))
    except HexError as e:
        _fail(e)


@main.command(name="translate")
@click.argument("text")
@click.option("--language", "-l", default="English")
@click.option("--model", "-m", default=None)
@click.pass_obj
def translate_command(config: HexConfig, text: str, language: str, model: str | None):
    """Translate TEXT."""

    async def _run() -> str:
        async with HttpxTransport(config.preferences) as transport:
            bot = CompletionBot(
                transport, RequestBuilder(config.defaults),
                error_timeout=config.error_timeout,
            )
            return await translate(bot, text, language, model)

    try:
        console.print(asyncio.run(_run()), highlight=False, markup=False)
    except HexError as e:
        _fail(e)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

async def _chat_loop(config: HexConfig, settings: ChatBotSettings) -> None:
    prefs = config.preferences
    display = StreamingDisplay(console)
    history_path = config.data_dir / "history"
    history_path.parent.mkdir(parents=True, exist_ok=True)
    session: PromptSession = PromptSession(history=FileHistory(str(history_path)))

    async with HttpxTransport(prefs) as transport:
        bot = ChatBot(
            transport,
            RequestBuilder(config.defaults),
            prefs,
            on_chunk=display.chunk,
            error_timeout=config.error_timeout,
        )
        while True:
            try:
                user_input = (
                    await session.prompt_async(HTML(f"<ansigreen><b>{prefs.user_name} ❯ </b></ansigreen>"))
                ).strip()
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Goodbye![/dim]")
                break
            if not user_input:
                continue
            if user_input in ("/quit", "/exit"):
                console.print("[dim]Goodbye![/dim]")
                break
            if user_input == "/clear":
                bot.reset()
                console.print("[dim]Conversation cleared.[/dim]")
                continue

            console.print(f"[bold cyan]{prefs.assistant_name}:[/bold cyan] ", end="")
            started = time.monotonic()
            try:
                await bot.send(user_input, settings, optimistic=True)
            except HexError as e:
                display.done(started)
                console.print(f"[red]Error: {escape(str(e))}[/red]")
                continue
            display.done(started)


@main.command()
@click.option("--preset", "-p", "preset_id", default=None, help="Use a stored preset")
@click.pass_obj
def chat(config: HexConfig, preset_id: str | None):
    """Interactive chat (/clear resets the conversation, /quit exits)."""
    _, active = _stores(config)
    try:
        state = active.use_preset(preset_id) if preset_id else active.get("chat")
        if not isinstance(state.settings, ChatBotSettings):
            raise SettingsError(f"Preset {preset_id} is not a chat preset")
        asyncio.run(_chat_loop(config, state.settings))
    except HexError as e:
        _fail(e)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

@main.group()
def presets():
    """Manage stored presets."""


@presets.command(name="list")
@click.pass_obj
def presets_list(config: HexConfig):
    """List stored presets."""
    store, _ = _stores(config)
    try:
        items = store.read()
    except HexError as e:
        _fail(e)
    if not items:
        console.print("[dim]No presets.[/dim]")
        return
    table = Table(title="Presets")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Model")
    table.add_column("Last used", style="dim")
    for preset in sorted(items, key=lambda p: p.last_used_at, reverse=True):
        table.add_row(
            preset.id, preset.name, preset.type,
            preset.settings.model or "-", preset.last_used_at,
        )
    console.print(table)


@presets.command(name="create")
@click.argument("name")
@click.option("--type", "bot_type", type=click.Choice(["chat", "completion"]),
              default="completion")
@click.option("--prompt", default=None, help="Completion prompt or chat system message")
@click.option("--model", "-m", default=None)
@click.option("--temperature", "-t", type=float, default=None)
@click.pass_obj
def presets_create(config: HexConfig, name: str, bot_type: str, prompt: str | None,
                   model: str | None, temperature: float | None):
    """Store the default settings of a bot type (with overrides) as a preset."""
    store, _ = _stores(config)
    try:
        settings = config.defaults.for_type(bot_type)
        if prompt is not None:
            if isinstance(settings, CompletionBotSettings):
                settings.prompt = prompt
            else:
                settings.messages = [Message("system", prompt)] + [
                    m for m in settings.messages if m.role != "system"
                ]
        settings = _override(settings, model=model, temperature=temperature)
        preset = store.create(name, settings)
    except HexError as e:
        _fail(e)
    console.print(f"[green]Created preset {preset.id}[/green]")


@presets.command(name="remove")
@click.argument("preset_id")
@click.pass_obj
def presets_remove(config: HexConfig, preset_id: str):
    """Remove a preset."""
    store, _ = _stores(config)
    try:
        remaining = store.remove(preset_id)
    except HexError as e:
        _fail(e)
    console.print(f"[green]Removed. {len(remaining)} preset(s) left.[/green]")


if __name__ == "__main__":
    main()
