"""Telegram preview player for Dialogue Forge graphs."""

from __future__ import annotations

import io
import json
import logging
from pathlib import PurePath
from typing import Optional, Sequence

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..config import configure_logging, get_settings
from ..engine.errors import ForgeError, GraphDecodeError
from ..engine.graph import ForgeGraph, graph_from_dict, validate_graph
from ..engine.runner import GraphRunner, RunnerChoice, RunnerEvent, RunnerStatus
from ..engine.script import import_graph
from ..engine.storage import SQLiteGraphStore
from ..utils import format_flags, format_graph_list, format_transcript

logger = logging.getLogger(__name__)

SCRIPT_SUFFIXES = {".yarn", ".txt"}


class PlaybackSessions:
    """One runner per chat; starting a new graph replaces the old runner."""

    def __init__(self, store: SQLiteGraphStore) -> None:
        self.store = store
        self._runners: dict[int, GraphRunner] = {}

    def start(self, chat_id: int, graph: ForgeGraph) -> list[RunnerEvent]:
        runner = GraphRunner(graph, graph_resolver=self.store.find_graph)
        self._runners[chat_id] = runner
        return runner.step()

    def get(self, chat_id: int) -> Optional[GraphRunner]:
        return self._runners.get(chat_id)

    def drop(self, chat_id: int) -> None:
        self._runners.pop(chat_id, None)


def parse_choice_reply(text: str, choices: Sequence[RunnerChoice]) -> Optional[RunnerChoice]:
    """Resolve a numeric reply (1-based) or an exact choice text to a choice."""
    reply = (text or "").strip()
    if reply.isdigit():
        index = int(reply) - 1
        if 0 <= index < len(choices):
            return choices[index]
        return None
    for choice in choices:
        if choice.text.strip().lower() == reply.lower():
            return choice
    return None


def load_upload(filename: str, data: bytes) -> ForgeGraph:
    """Decode an uploaded graph document (.json) or dialogue script (.yarn/.txt)."""
    suffix = PurePath(filename).suffix.lower()
    text = data.decode("utf-8", errors="replace")
    if suffix == ".json":
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as exc:
            raise GraphDecodeError(f"{filename} is not valid JSON: {exc.msg}") from exc
        if not isinstance(doc, dict):
            raise GraphDecodeError(f"{filename} must contain a graph object")
        doc.setdefault("id", 0)
        return graph_from_dict(doc)
    if suffix in SCRIPT_SUFFIXES:
        graph = import_graph(text, title=PurePath(filename).stem)
        if not graph.nodes:
            raise GraphDecodeError(f"{filename} contains no dialogue nodes")
        return graph
    raise GraphDecodeError(f"Unsupported upload type: {filename}")


class TelegramBot:
    """High-level coordinator for Telegram playback."""

    def __init__(self, store: Optional[SQLiteGraphStore] = None) -> None:
        self.settings = get_settings()
        if not self.settings.has_telegram_credentials():
            raise RuntimeError("TELEGRAM_BOT_TOKEN is missing. Set it in your .env file.")

        self.store = store or SQLiteGraphStore()
        self.store.migrate()
        self.sessions = PlaybackSessions(self.store)

    def build_application(self) -> Application:
        application = (
            Application.builder()
            .token(self.settings.telegram_bot_token)
            .post_init(self._post_init)
            .build()
        )

        application.add_handler(CommandHandler(["start", "help"], self.handle_help))
        application.add_handler(CommandHandler("graphs", self.handle_graphs))
        application.add_handler(CommandHandler("play", self.handle_play))
        application.add_handler(CommandHandler("next", self.handle_next))
        application.add_handler(CommandHandler("flags", self.handle_flags))
        application.add_handler(CommandHandler("restart", self.handle_restart))
        application.add_handler(MessageHandler(filters.Document.ALL, self.handle_upload))
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_text))
        application.add_error_handler(self.handle_error)
        return application

    async def _post_init(self, application: Application) -> None:
        self.store.migrate()

    async def handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(
            "Upload a graph (.json) or script (.yarn), then:\n"
            "/graphs to list stored graphs\n"
            "/play <id> to start one\n"
            "/next to continue, a number to pick a choice\n"
            "/flags to inspect variables, /restart to start over"
        )

    async def handle_graphs(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(format_graph_list(self.store.list_graphs()))

    async def handle_play(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_chat:
            return
        args = context.args or []
        if not args or not args[0].isdigit():
            await update.message.reply_text("Usage: /play <graph id>")
            return
        graph = self.store.find_graph(int(args[0]))
        if graph is None:
            await update.message.reply_text(f"Graph {args[0]} not found.")
            return
        events = self.sessions.start(update.effective_chat.id, graph)
        await self._reply_events(update, events, header=f"▶️ {graph.title}")

    async def handle_next(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        runner = await self._require_runner(update)
        if runner is None:
            return
        if runner.status is RunnerStatus.WAITING_FOR_CHOICE:
            await self._reply(update, "Pick a choice by replying with its number.")
            return
        await self._reply_events(update, runner.advance())

    async def handle_flags(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        runner = await self._require_runner(update)
        if runner is None:
            return
        await self._reply(update, format_flags(runner.get_variable_snapshot()))

    async def handle_restart(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        runner = await self._require_runner(update)
        if runner is None:
            return
        await self._reply_events(update, runner.restart(), header="🔁 Restarted")

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.effective_chat:
            return
        runner = self.sessions.get(update.effective_chat.id)
        if runner is None or runner.status is not RunnerStatus.WAITING_FOR_CHOICE:
            return
        choice = parse_choice_reply(update.message.text or "", runner.get_state().waiting_choices)
        if choice is None:
            await update.message.reply_text("That is not one of the choices.")
            return
        await self._reply_events(update, runner.select_choice(choice.id))

    async def handle_upload(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.message
        if not message or not message.document:
            return
        document = message.document
        filename = document.file_name or "upload.json"

        file = await document.get_file()
        buffer = io.BytesIO()
        await file.download_to_memory(out=buffer)

        try:
            graph = load_upload(filename, buffer.getvalue())
        except ForgeError as exc:
            await message.reply_text(f"⚠️ {exc.message}")
            return

        stored = self.store.create_graph(graph)
        report = validate_graph(stored)
        lines = [f"Stored graph #{stored.id} ({len(stored.nodes)} nodes). /play {stored.id} to preview."]
        for issue in report.all_issues():
            lines.append(f"- {issue.severity}: {issue.message}")
        await message.reply_text("\n".join(lines))

    async def handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        if context.error:
            logger.error("Telegram error: %s", context.error, exc_info=context.error)

    async def _require_runner(self, update: Update) -> Optional[GraphRunner]:
        if not update.effective_chat:
            return None
        runner = self.sessions.get(update.effective_chat.id)
        if runner is None:
            await self._reply(update, "Nothing is playing. Use /play <graph id> first.")
        return runner

    async def _reply(self, update: Update, text: str) -> None:
        message = update.effective_message
        if message:
            await message.reply_text(text)

    async def _reply_events(
        self,
        update: Update,
        events: Sequence[RunnerEvent],
        *,
        header: Optional[str] = None,
    ) -> None:
        body = format_transcript(events) or "(nothing happened)"
        await self._reply(update, f"{header}\n{body}" if header else body)


def main() -> None:
    configure_logging()
    bot = TelegramBot()
    application = bot.build_application()
    application.run_polling()


if __name__ == "__main__":
    main()
