"""Main application entry point for SpeechPace."""

import sys
import time
import argparse
import logging
import threading
from pathlib import Path
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .audio.player import PlaybackSession
from .config import SpeechPaceConfig
from .exceptions import SpeechPaceError
from .models.engine import EngineSnapshot, EngineState
from .models.recording import RecordingMetadata, SpeedCategory
from .services import RecordingEngine, create_recording_engine, ENGINE_TOPIC

logger = logging.getLogger(__name__)

SPEED_STYLES = {
    SpeedCategory.SLOW: "cyan",
    SpeedCategory.NORMAL: "green",
    SpeedCategory.FAST: "yellow",
    SpeedCategory.VERY_FAST: "red",
    SpeedCategory.UNCLEAR: "magenta",
}

FINALIZE_WAIT_SECONDS = 60.0


def setup_logging(config: SpeechPaceConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/speechpace.log')
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

    # Console handler - only warnings and above, so rich output stays readable
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("SpeechPace starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def render_snapshot(snapshot: EngineSnapshot) -> Panel:
    """Live panel for a session in progress."""
    status = Text()
    if snapshot.is_recording:
        status.append("● RECORDING", style="bold red")
    elif snapshot.is_processing:
        status.append("◌ PROCESSING", style="bold yellow")
    else:
        status.append("■ IDLE", style="bold")
    status.append(f"   words: {snapshot.word_count}")
    if snapshot.unclear_speech:
        status.append("   unclear speech, try speaking more clearly", style="magenta")

    body = Text(snapshot.transcript or "Listening...", style="white" if snapshot.transcript else "dim")
    table = Table.grid(padding=(1, 0))
    table.add_row(status)
    table.add_row(body)
    return Panel(table, title="SpeechPace", border_style="blue")


def render_analysis(snapshot: EngineSnapshot) -> Panel:
    style = SPEED_STYLES.get(snapshot.speed, "white")
    table = Table(show_header=False, box=None)
    table.add_row("Words", str(snapshot.word_count))
    table.add_row("Words per minute", str(snapshot.words_per_minute))
    table.add_row("Speed", Text(snapshot.speed.value, style=f"bold {style}"))
    table.add_row("Transcript", snapshot.transcript or "-")
    return Panel(table, title="Analysis", border_style=style)


def render_recordings(recordings) -> Table:
    table = Table(title="Saved recordings", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name")
    table.add_column("Date")
    table.add_column("Duration", justify="right")
    table.add_column("WPM", justify="right")
    table.add_column("Speed")
    for recording in recordings:
        table.add_row(
            recording.id,
            recording.name,
            recording.timestamp.astimezone().strftime("%Y-%m-%d %H:%M"),
            f"{recording.duration:.1f}s",
            str(recording.words_per_minute),
            Text(recording.speech_speed.value, style=SPEED_STYLES.get(recording.speech_speed, "white")),
        )
    return table


class Application:
    """Runs one CLI command against a RecordingEngine."""

    def __init__(self, config: SpeechPaceConfig, console: Optional[Console] = None):
        self.config = config
        self.console = console or Console()
        self._engine: Optional[RecordingEngine] = None

    @property
    def engine(self) -> RecordingEngine:
        if self._engine is None:
            self._engine = create_recording_engine(self.config)
        return self._engine

    def record(self, duration: Optional[int], name: Optional[str]) -> None:
        engine = self.engine
        with Live(render_snapshot(engine.snapshot), console=self.console, refresh_per_second=4) as live:
            def on_state(snapshot: EngineSnapshot) -> None:
                live.update(render_snapshot(snapshot))

            pub.subscribe(on_state, ENGINE_TOPIC)
            try:
                engine.start()
                if not engine.wait_for(lambda s: s.is_recording or s.error_message is not None, timeout=10):
                    raise SpeechPaceError("Recording did not start")
                if engine.snapshot.error_message:
                    raise SpeechPaceError(engine.snapshot.error_message)

                try:
                    if duration:
                        time.sleep(duration)
                    else:
                        threading.Event().wait()
                except KeyboardInterrupt:
                    pass

                engine.stop()
                engine.wait_for(lambda s: s.state is EngineState.IDLE, timeout=FINALIZE_WAIT_SECONDS)
            finally:
                pub.unsubscribe(on_state, ENGINE_TOPIC)

        self._report_session(name)

    def import_file(self, path: str, name: Optional[str]) -> None:
        engine = self.engine
        with self.console.status(f"Transcribing {Path(path).name}..."):
            future = engine.import_recording(path, name=name)
            future.result(timeout=engine.import_timeout_seconds + FINALIZE_WAIT_SECONDS)
        self._report_session(None)
        if name:
            self._print_saved(engine.snapshot.last_saved)

    def _report_session(self, name: Optional[str]) -> None:
        engine = self.engine
        if engine.snapshot.error_message:
            self.console.print(f"[yellow]{engine.snapshot.error_message}[/yellow]")
        if not engine.snapshot.can_analyze:
            return

        if not engine.snapshot.analyzed:
            engine.analyze()
            engine.wait_for(lambda s: s.analyzed or s.error_message is not None, timeout=5)
        self.console.print(render_analysis(engine.snapshot))

        if name:
            metadata = engine.save(name).result(timeout=FINALIZE_WAIT_SECONDS)
            self._print_saved(metadata)

    def _print_saved(self, metadata: Optional[RecordingMetadata]) -> None:
        if metadata is not None:
            self.console.print(f"[green]Saved[/green] '{metadata.name}' as {metadata.id}")

    def list_recordings(self) -> None:
        recordings = self.engine.load_catalog().result()
        if not recordings:
            self.console.print("No saved recordings.")
            return
        self.console.print(render_recordings(recordings))

    def delete(self, recording_id: str) -> None:
        self.engine.load_catalog().result()
        result = self.engine.delete(recording_id).result()
        self.console.print(f"[green]Deleted[/green] {recording_id}")
        if not result.blob_deleted:
            self.console.print(f"[yellow]Audio file left behind at {result.orphaned_uri}[/yellow]")

    def export(self, recording_id: str, dest: Optional[str]) -> None:
        self.engine.load_catalog().result()
        path = self.engine.export(recording_id, dest).result()
        self.console.print(f"[green]Exported[/green] to {path}")

    def play(self, recording_id: str) -> None:
        self.engine.load_catalog().result()
        path = self.engine.export(recording_id, str(self.engine.work_dir / "playback")).result()
        finished = threading.Event()
        player = PlaybackSession(path, on_finished=lambda completed: finished.set())
        player.start()
        self.console.print(f"Playing {Path(path).name} (Ctrl+C to stop)")
        try:
            finished.wait()
        except KeyboardInterrupt:
            player.stop()

    def cleanup(self) -> None:
        if self._engine is not None:
            self._engine.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SpeechPace - Record speech, transcribe it and measure your speaking pace",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for speechpace.yaml)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="SpeechPace v0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    record = subparsers.add_parser("record", help="Record from the microphone and analyze the pace")
    record.add_argument("--duration", type=int, help="Stop after this many seconds (default: until Ctrl+C)")
    record.add_argument("--name", type=str, help="Save the recording under this name")

    import_cmd = subparsers.add_parser("import", help="Transcribe and analyze an existing WAV file")
    import_cmd.add_argument("path", type=str)
    import_cmd.add_argument("--name", type=str, help="Save the recording under this name")

    subparsers.add_parser("list", help="List saved recordings")

    delete = subparsers.add_parser("delete", help="Delete a saved recording")
    delete.add_argument("id", type=str)

    export = subparsers.add_parser("export", help="Copy a saved recording's audio to a directory")
    export.add_argument("id", type=str)
    export.add_argument("--dest", type=str, help="Destination directory (default: data/tmp/exports)")

    play = subparsers.add_parser("play", help="Play a saved recording")
    play.add_argument("id", type=str)

    return parser


def main() -> None:
    """Main entry point for SpeechPace."""
    args = build_parser().parse_args()
    console = Console()

    try:
        config = SpeechPaceConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
    app = Application(config, console)
    try:
        if args.command == "record":
            app.record(args.duration, args.name)
        elif args.command == "import":
            app.import_file(args.path, args.name)
        elif args.command == "list":
            app.list_recordings()
        elif args.command == "delete":
            app.delete(args.id)
        elif args.command == "export":
            app.export(args.id, args.dest)
        elif args.command == "play":
            app.play(args.id)
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    except SpeechPaceError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        logger.error(f"Command {args.command} failed: {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        logger.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        app.cleanup()


if __name__ == "__main__":
    main()
