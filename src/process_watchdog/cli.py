"""Command-line interface for Process Watchdog."""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from .config import TargetConfig, WatchdogConfig
from .processes import ProcessTable
from .shell import ShellState, format_duration, run_shell
from .watchdog import ProcessWatchdog


def target_options(func):
    """Options shared by the commands that start monitoring."""
    options = [
        click.option(
            "-c", "--config", "config_path",
            type=click.Path(exists=True),
            help="Path to configuration file (YAML)",
        ),
        click.option(
            "-p", "--process", "pattern",
            help="Process id, name, or part of name. Regular expressions are accepted",
        ),
        click.option(
            "-f", "--frequency",
            type=float,
            default=1.0,
            show_default=True,
            help="Process check frequency per minute, e.g. 0.1",
        ),
        click.option(
            "-t", "--live-time", "max_lifetime",
            type=float,
            default=3600.0,
            show_default=True,
            help="Maximum process live time in seconds",
        ),
        click.option(
            "--dry-run",
            is_flag=True,
            help="Dry-run mode (no actual kills)",
        ),
        click.option(
            "-v", "--verbose",
            is_flag=True,
            help="Enable verbose logging",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_config(
    config_path: Optional[str],
    pattern: Optional[str],
    frequency: float,
    max_lifetime: float,
    force: bool,
    dry_run: bool,
    verbose: bool,
) -> WatchdogConfig:
    if config_path:
        try:
            config = WatchdogConfig.from_yaml(config_path)
        except Exception as e:
            click.echo(f"Error loading config: {e}", err=True)
            sys.exit(1)
    else:
        config = WatchdogConfig()

    if pattern:
        config.targets.append(
            TargetConfig(
                pattern=pattern,
                frequency=frequency,
                max_lifetime=max_lifetime,
                force=force,
            )
        )

    if dry_run:
        config.dry_run = True

    if verbose:
        config.log_level = "DEBUG"

    errors = config.validate()
    if errors:
        click.echo("Configuration errors:", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    return config


@click.group()
@click.version_option(package_name="process-watchdog")
def main():
    """Process Watchdog - Kill processes that run for too long."""
    pass


@main.command()
@target_options
@click.option(
    "--force/--no-force",
    default=True,
    help="Register the -p target even if it does not match exactly one process",
)
def run(config_path, pattern, frequency, max_lifetime, dry_run, verbose, force):
    """Monitor targets until interrupted."""
    config = _load_config(config_path, pattern, frequency, max_lifetime, force, dry_run, verbose)

    if not config.targets:
        click.echo("Nothing to monitor: pass -p or a config file with targets", err=True)
        sys.exit(1)

    watchdog = ProcessWatchdog(config)
    if not len(watchdog.registry):
        click.echo("None of the configured targets could be registered", err=True)
        sys.exit(1)

    watchdog.run()


@main.command()
@target_options
def shell(config_path, pattern, frequency, max_lifetime, dry_run, verbose):
    """Start the interactive process monitor."""
    config = _load_config(config_path, None, frequency, max_lifetime, True, dry_run, verbose)

    click.echo("Start process monitor program")
    watchdog = ProcessWatchdog(config)
    state = ShellState(watchdog=watchdog)

    if pattern:
        entry, message = watchdog.register(pattern, frequency, max_lifetime, force=True)
        state.say(message, None if entry else "red")

    try:
        run_shell(state)
    finally:
        watchdog.shutdown()
    click.echo("Stop process monitor program")


@main.command()
@click.option(
    "-c", "--config", "config_path",
    type=click.Path(exists=True),
    required=True,
    help="Path to configuration file (YAML)",
)
def validate(config_path: str):
    """Validate configuration file."""
    try:
        config = WatchdogConfig.from_yaml(config_path)
        errors = config.validate()

        if errors:
            click.echo("❌ Configuration has errors:", err=True)
            for error in errors:
                click.echo(f"  - {error}", err=True)
            sys.exit(1)
        else:
            click.echo("✅ Configuration is valid")
            click.echo(f"\nTargets configured: {len(config.targets)}")
            for target in config.targets:
                status = "enabled" if target.enabled else "disabled"
                click.echo(
                    f"  - {target.pattern} ({status}, {target.frequency:g}/min, "
                    f"max {target.max_lifetime:g}s)"
                )
            click.echo(f"\nNotifiers configured: {len(config.notifiers)}")
            for notif in config.notifiers:
                status = "enabled" if notif.enabled else "disabled"
                click.echo(f"  - {notif.type} ({status})")

    except Exception as e:
        click.echo(f"❌ Error loading config: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("pattern", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def ps(pattern: Optional[str], as_json: bool):
    """List running processes, optionally filtered by a name regex."""
    table = ProcessTable()
    try:
        processes = table.search(pattern) if pattern else table.snapshot()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    processes.sort(key=lambda p: p.pid)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "pid": p.pid,
                        "name": p.name,
                        "started_at": p.started_at.isoformat(),
                        "uptime_seconds": p.age(),
                    }
                    for p in processes
                ],
                indent=2,
            )
        )
        return

    click.echo(f"{'id':<8} {'uptime':>14}  name")
    for p in processes:
        click.echo(f"{p.pid:<8} {format_duration(p.age()):>14}  {p.name}")


@main.command()
@click.option("-o", "--output", type=click.Path(), help="Output file path")
def init(output: str):
    """Generate a sample configuration file."""
    sample_config = '''# Process Watchdog Configuration

# Global settings
log_level: INFO
# log_file: /var/log/process-watchdog.log
# pid_file: /var/run/process-watchdog.pid
dry_run: false
kill_timeout: 3          # seconds to wait for a killed process to exit

# Processes to watch
targets:
  - pattern: "^chrome$"    # pid, name or regular expression
    frequency: 2           # checks per minute
    max_lifetime: 7200     # seconds before the process is killed
    force: true            # register even if nothing matches yet

  - pattern: "game"
    frequency: 0.5
    max_lifetime: 3600

# Notification channels
notifiers:
  - type: telegram
    enabled: false
    bot_token: ${TELEGRAM_BOT_TOKEN}
    chat_id: ${TELEGRAM_CHAT_ID}
    on_bind: false
    on_exit: true
    on_kill: true
    on_failure: true

  - type: slack
    enabled: false
    webhook_url: ${SLACK_WEBHOOK_URL}

  - type: webhook
    enabled: false
    url: https://your-webhook.com/alerts
    method: POST
    headers:
      Authorization: Bearer ${WEBHOOK_TOKEN}
'''

    if output:
        Path(output).write_text(sample_config)
        click.echo(f"✅ Sample config written to: {output}")
    else:
        click.echo(sample_config)


if __name__ == "__main__":
    main()
