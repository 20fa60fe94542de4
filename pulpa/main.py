"""Main application entry point for pulpa."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .backend import (
    BackendClient,
    ChatAiClient,
    ConversationStore,
    RemoteProfileProvider,
    StaticProfileProvider,
    TextToSpeechClient,
)
from .config import PulpaConfig
from .exceptions import PulpaError
from .services import SessionController, StatePublisher
from .timers import Scheduler
from .transcription import AbstractTranscriptionBackend, ServiceTranscriptionBackend
from .ui.console_screen import ConsoleScreen
from .ui.keyboard_input import KeyboardInputHandler

logger = logging.getLogger(__name__)


def create_transcriber(config: PulpaConfig, client: BackendClient) -> AbstractTranscriptionBackend:
    """Build the transcription backend selected by `transcription.backend`."""
    sample_rate = config.get('audio.sample_rate', 16000)
    backend = config.get('transcription.backend', 'service')

    if backend == 'google':
        from .transcription.google_backend import GoogleSpeechBackend

        google = GoogleSpeechBackend(
            credentials_path=config.get_google_credentials_path(),
            sample_rate=sample_rate,
            use_enhanced=config.get('google_cloud.use_enhanced_model', True),
            enable_automatic_punctuation=config.get('google_cloud.enable_automatic_punctuation', True),
        )
        if not google.initialize():
            raise RuntimeError("Google Speech backend failed to initialize")
        return google

    if backend != 'service':
        raise ValueError(f"Unknown transcription backend: {backend}")
    return ServiceTranscriptionBackend(
        client,
        sample_rate=sample_rate,
        poll_interval_s=config.get('transcription.status_poll_interval_s', 1.0),
        poll_attempts=config.get('transcription.status_poll_attempts', 60),
    )


class App:
    """Console voice-journaling app: keyboard in, live status out."""

    def __init__(self, config: PulpaConfig):
        self.config = config
        self.client = BackendClient.from_config(config)
        self.conversations = ConversationStore(self.client)
        self.controller: Optional[SessionController] = None
        self.screen: Optional[ConsoleScreen] = None
        self.keyboard: Optional[KeyboardInputHandler] = None
        self._quit: Optional[asyncio.Event] = None

    async def _load_profile(self):
        static = StaticProfileProvider.from_config(self.config)
        if static() is not None:
            logger.info("Using profile from configuration")
            return static
        remote = RemoteProfileProvider(self.client)
        await remote.load()
        return remote

    async def init(self) -> None:
        logger.info("Initializing services...")
        scheduler = Scheduler(frame_interval_ms=self.config.get('detection.frame_interval_ms', 16))
        profile_provider = await self._load_profile()

        self.controller = SessionController.build(
            self.config,
            scheduler,
            transcriber=create_transcriber(self.config, self.client),
            chat=ChatAiClient(self.client),
            synthesizer=TextToSpeechClient(self.client),
            conversations=self.conversations,
            profile_provider=profile_provider,
            publisher=StatePublisher(),
        )
        self.screen = ConsoleScreen()

    async def run(self) -> None:
        await self.init()
        self._quit = asyncio.Event()
        loop = asyncio.get_running_loop()

        self.screen.start()
        await self.controller.bootstrap()
        self.keyboard = KeyboardInputHandler(
            lambda key: self._on_key_threadsafe(loop, key)
        )
        self.keyboard.start()
        try:
            await self._quit.wait()
        finally:
            await self.cleanup()

    def _on_key_threadsafe(self, loop: asyncio.AbstractEventLoop, key: str) -> bool:
        loop.call_soon_threadsafe(self.handle_key, key)
        return key != 'q'

    def handle_key(self, key: str) -> None:
        if key in (' ', '\r', '\n'):
            self.controller.handle_main_action()
        elif key == 'f':
            self.controller.scheduler.spawn(self.controller.finish_session(), name="finish-session")
        elif key == 'c':
            self.controller.store.toggle_conversation()
        elif key == 'q':
            logger.info("Quit requested")
            self._quit.set()

    async def cleanup(self) -> None:
        if self.keyboard:
            self.keyboard.stop()
        if self.controller:
            if self.controller.conversation_id:
                await self.controller.finish_session()
            self.controller.shutdown()
        if self.screen:
            self.screen.stop()
        logger.info("pulpa stopped")


async def list_conversations(config: PulpaConfig, search_term: Optional[str] = None,
                             console: Optional[Console] = None) -> int:
    """Print the user's saved conversations as a table. Returns the count."""
    console = console or Console()
    store = ConversationStore(BackendClient.from_config(config))
    conversations = await store.fetch_conversations(search_term)

    table = Table(title="Conversations")
    table.add_column("Started")
    table.add_column("Messages", justify="right")
    table.add_column("Summary")
    for conversation in conversations:
        table.add_row(
            conversation.created_at or "",
            str(len(conversation.messages)),
            conversation.summary or "[dim]not summarized[/dim]",
        )
    console.print(table)
    return len(conversations)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/pulpa.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Keep the live screen readable
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("pulpa starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for pulpa."""
    parser = argparse.ArgumentParser(
        description="pulpa - voice journaling with an empathetic AI listener",
        epilog="Keys: space/enter=talk or interrupt, f=finish session, c=show conversation, q=quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )

    parser.add_argument(
        "--list-conversations",
        action="store_true",
        help="Print saved conversations and exit"
    )

    parser.add_argument(
        "--search",
        type=str,
        help="With --list-conversations, only show conversations mentioning this text"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"pulpa v{__version__}"
    )

    args = parser.parse_args()

    try:
        config = PulpaConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    try:
        if args.list_conversations:
            asyncio.run(list_conversations(config, args.search))
        else:
            asyncio.run(App(config).run())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except (PulpaError, ValueError, RuntimeError) as e:
        print(f"❌ Error: {e}")
        logger.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
