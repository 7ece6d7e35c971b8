"""
CLI entry point for voxpaste.

Commands:
  voxpaste setup       - Configure provider and API key
  voxpaste status      - Show current configuration
  voxpaste devices     - List audio input devices
  voxpaste dictate     - Record, transcribe and paste into the focused window
  voxpaste transcribe  - Transcribe an existing audio file
"""

import threading
from pathlib import Path

import click

from voxpaste import __version__
from voxpaste.config import Config, ProviderKind
from voxpaste.injector import TextInjector
from voxpaste.logger import setup_logging
from voxpaste.session import SessionOutcome, SessionStatus

STATUS_COLORS = {
    SessionStatus.SUCCESS: "green",
    SessionStatus.NO_SPEECH: "yellow",
    SessionStatus.CANCELED: "yellow",
    SessionStatus.NOT_CONFIGURED: "red",
    SessionStatus.FAILED: "red",
}


def _load_config() -> Config:
    config = Config.load()
    errors = config.validate()
    if errors:
        click.echo(click.style("Cannot start - configuration issues:", fg="red"), err=True)
        for error in errors:
            click.echo(f"  ⚠ {error}", err=True)
        raise SystemExit(1)
    return config


def _echo_progress(message: str) -> None:
    click.echo(click.style("· ", fg="blue") + message, err=True)


def _report(outcome: SessionOutcome) -> None:
    color = STATUS_COLORS[outcome.status]
    if outcome.status is SessionStatus.NOT_CONFIGURED:
        click.echo(click.style(outcome.message, fg=color), err=True)
        click.echo("Run " + click.style("voxpaste setup", bold=True) + " to configure.", err=True)
    elif outcome.status is not SessionStatus.SUCCESS:
        click.echo(click.style(outcome.message, fg=color), err=True)


def _wait_cancellable(worker: threading.Thread, cancel) -> None:
    """Join ``worker``; Ctrl+C cancels and keeps waiting for it to wind down."""
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        cancel()
        worker.join(10)


@click.group()
@click.version_option(version=__version__, prog_name="voxpaste")
@click.option("--verbose", "-v", is_flag=True, help="Also log to stderr")
def main(verbose: bool):
    """voxpaste - Push-to-talk dictation into the focused window.

    Records your voice, transcribes it with OpenAI, Groq or Google Gemini,
    and pastes the text where your cursor is.
    """
    setup_logging(console=verbose)


@main.command()
@click.option("--provider", type=click.Choice([k.value for k in ProviderKind]),
              prompt="Provider", default="openai", show_default=True,
              help="Speech-to-text provider")
@click.option("--api-key", prompt="API Key", hide_input=True,
              help="API key for the selected provider")
@click.option("--language", default="ru", show_default=True,
              help="Language hint (ISO-639-1)")
def setup(provider: str, api_key: str, language: str):
    """Configure voxpaste with your provider and API key."""
    config = Config.load()
    config.api.provider = provider
    config.api.language = language
    kind = ProviderKind(provider)
    if kind is ProviderKind.OPENAI:
        config.api.openai_api_key = api_key.strip()
    elif kind is ProviderKind.GROQ:
        config.api.groq_api_key = api_key.strip()
    else:
        config.api.google_api_key = api_key.strip()
    config.save()

    click.echo(click.style("✓ ", fg="green") + "Configuration saved!")
    click.echo(f"  Config file: {Config.get_config_path()}")
    click.echo()
    click.echo("You can now dictate with: " + click.style("voxpaste dictate", bold=True))


@main.command()
def status():
    """Show current configuration."""
    config = Config.load()
    errors = config.validate()

    click.echo(click.style("voxpaste Status", bold=True))
    click.echo("─" * 30)
    click.echo(f"Config: {Config.get_config_path()}")
    click.echo(f"Provider: {config.api.provider}")

    try:
        key = config.api.key_for(config.provider_kind)
    except ValueError:
        key = ""
    if key:
        masked_key = key[:8] + "..." + key[-4:]
        click.echo(f"API Key: {masked_key}")
    else:
        click.echo(click.style("API Key: Not set", fg="yellow"))

    click.echo(f"Language: {config.api.language}")
    click.echo(f"Retries: {config.retry.max_attempts} attempts, "
               f"{config.retry.initial_backoff_ms} ms initial backoff")
    click.echo(f"Audio: {config.audio.sample_rate}Hz, {config.audio.channels}ch")
    injector = TextInjector(paste_method=config.output.paste_method)
    tool = injector.tool_name or click.style("no tool found (install xdotool or ydotool)", fg="yellow")
    click.echo(f"Paste method: {config.output.paste_method} via {tool} "
               f"({injector.display_server.value})")
    click.echo()

    if errors:
        click.echo(click.style("Issues:", fg="yellow"))
        for error in errors:
            click.echo(f"  ⚠ {error}")
    else:
        click.echo(click.style("✓ Ready to use", fg="green"))


@main.command()
def devices():
    """List audio input devices."""
    from voxpaste.audio import AudioRecorder

    found = AudioRecorder.list_devices()
    if not found:
        click.echo(click.style("No input devices found", fg="yellow"))
        return
    for dev in found:
        click.echo(f"[{dev['index']}] {dev['name']} "
                   f"({dev['channels']}ch, {int(dev['sample_rate'])}Hz)")


@main.command()
def dictate():
    """Record, transcribe and paste into the focused window.

    Press Enter to start, Enter again to stop. Ctrl+C cancels at any time.
    """
    from voxpaste.daemon import DictationController

    config = _load_config()
    outcomes: list[SessionOutcome] = []
    controller = DictationController(
        config=config,
        on_progress=_echo_progress,
        on_outcome=outcomes.append,
        status_clear_delay=0,
    )

    try:
        click.prompt("Press Enter to start recording", default="", show_default=False)
        if controller.start() is not None:
            _report(outcomes[-1])
            raise SystemExit(1)
        click.prompt("Press Enter to stop", default="", show_default=False)
        click.echo(f"Recorded {controller.recorder.elapsed:.1f}s", err=True)
    except (KeyboardInterrupt, click.Abort):
        controller.cancel()
        controller.wait(10)
        click.echo()
        if outcomes:
            _report(outcomes[-1])
        raise SystemExit(130)

    worker = controller.stop()
    if worker is not None:
        _wait_cancellable(worker, controller.cancel)

    if not outcomes:
        raise SystemExit(1)
    outcome = outcomes[-1]
    _report(outcome)
    if outcome.ok:
        click.echo(outcome.text)
    raise SystemExit(0 if outcome.status in (SessionStatus.SUCCESS, SessionStatus.NO_SPEECH) else 1)


@main.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def transcribe(audio_file: Path):
    """Transcribe AUDIO_FILE and print the text."""
    from voxpaste.session import DictationSession

    config = _load_config()
    session = DictationSession(config, on_progress=_echo_progress)
    outcomes: list[SessionOutcome] = []

    worker = threading.Thread(
        target=lambda: outcomes.append(session.transcribe_file(audio_file)),
        daemon=True,
    )
    worker.start()
    _wait_cancellable(worker, session.cancel)

    if not outcomes:
        raise SystemExit(1)
    outcome = outcomes[0]
    _report(outcome)
    if outcome.ok:
        click.echo(outcome.text)
    elif outcome.status is not SessionStatus.NO_SPEECH:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
