"""Live terminal view of the session state."""

import logging
from typing import List, Optional

from pubsub import pub
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.conversation import ConversationTurn, Role
from ..models.state import RecordingState
from ..services.state_publisher import STATE_TOPIC, CONVERSATION_TOPIC

logger = logging.getLogger(__name__)

HELP_TEXT = "space/enter = talk · f = finish session · c = conversation · q = quit"


class ConsoleScreen:
    """Renders published state and conversation updates with rich."""

    def __init__(self, console: Optional[Console] = None,
                 state_topic: str = STATE_TOPIC, conversation_topic: str = CONVERSATION_TOPIC):
        self.console = console or Console()
        self.state_topic = state_topic
        self.conversation_topic = conversation_topic

        self.state = RecordingState()
        self.is_summarizing = False
        self.turns: List[ConversationTurn] = []
        self.show_conversation = False
        self.live: Optional[Live] = None

    def start(self) -> None:
        pub.subscribe(self._on_state, self.state_topic)
        pub.subscribe(self._on_conversation, self.conversation_topic)
        self.live = Live(self.render(), console=self.console, refresh_per_second=15, transient=False)
        self.live.start()
        logger.info("Console screen started")

    def stop(self) -> None:
        pub.unsubscribe(self._on_state, self.state_topic)
        pub.unsubscribe(self._on_conversation, self.conversation_topic)
        if self.live is not None:
            self.live.stop()
            self.live = None
        logger.info("Console screen stopped")

    def _on_state(self, state: RecordingState, is_summarizing: bool = False) -> None:
        self.state = state
        self.is_summarizing = is_summarizing
        self._refresh()

    def _on_conversation(self, conversation_id: Optional[str], turns: List[ConversationTurn],
                         visible: bool = True) -> None:
        self.turns = turns
        self.show_conversation = visible
        self._refresh()

    def _refresh(self) -> None:
        if self.live is not None:
            self.live.update(self.render())

    def render(self) -> Group:
        state = self.state
        if state.is_recording:
            phase, style = "🔴 RECORDING", "bold red"
        elif state.is_playing_audio:
            phase, style = "🔊 SPEAKING", "bold green"
        elif state.is_processing or state.is_ai_thinking or state.is_generating_audio:
            phase, style = "⏳ WORKING", "bold yellow"
        else:
            phase, style = "⏹️  READY", "bold blue"

        lines = Text()
        lines.append(f"{phase}\n", style=style)
        if state.error:
            lines.append(f"{state.error}\n", style="bold red")
        else:
            lines.append(f"{state.status}\n")
        if state.is_recording:
            bar = "█" * int(state.audio_level * 20)
            lines.append(f"Audio: [{bar:<20}] {state.audio_level:.3f}   ")
            lines.append(f"Duration: {state.recording_duration / 1000:.1f}s\n")
        if self.is_summarizing:
            lines.append("Summarizing session...\n", style="italic")

        panels = [Panel(lines, title="🎙️  pulpa", subtitle=HELP_TEXT)]
        if self.show_conversation and self.turns:
            table = Table(show_header=False, expand=True, box=None)
            table.add_column("who", style="bold", width=6)
            table.add_column("text")
            for turn in self.turns[-10:]:
                who = "You" if turn.role is Role.USER else "AI"
                table.add_row(who, turn.content)
            panels.append(Panel(table, title="Conversation"))
        return Group(*panels)
