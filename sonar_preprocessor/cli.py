"""CLI entry point — command definitions using Click.

Commands:
    init            Generate a template settings file
    ruleset         Generate the ruleset of one plugin/language/repository
    properties      Print the server properties of a project as JSON
    preprocess      Write every configured ruleset and the analysis config
    export-profile  Export a quality profile in a plugin-specific format
    download        Download a file embedded in a server plugin
"""

import functools
import json
import logging
import sys
from pathlib import Path

import click

from sonar_preprocessor import __version__

logger = logging.getLogger(__name__)

#: Name of the analysis config written by `preprocess`
ANALYSIS_CONFIG_FILE = "SonarQubeAnalysisConfig.xml"


# ---------------------------------------------------------------------------
# Helpers shared by all data commands
# ---------------------------------------------------------------------------

def _make_server(ctx: click.Context):
    """Load settings and return them with a ready SonarWebService. Exits on error."""
    from sonar_preprocessor.client import SonarClient
    from sonar_preprocessor.config import ConfigError, load
    from sonar_preprocessor.server import SonarWebService

    try:
        settings = load(ctx.obj["config_path"])
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Connecting to %s", settings.url)

    client = SonarClient(token=settings.token)
    ctx.call_on_close(client.close)
    server = SonarWebService(client, settings.url, default_properties=settings.default_properties)
    return settings, server


def _parse_local_properties(values: tuple[str, ...]) -> list[tuple[str, str]]:
    pairs = []
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got '{item}'", param_hint="-D")
        pairs.append((key.strip(), value))
    return pairs


def _handle_errors(func):
    """Decorator that catches client and file errors and exits cleanly."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from sonar_preprocessor.analysis_config import AnalysisConfigError
        from sonar_preprocessor.client import (
            AuthenticationError,
            NetworkError,
            NotFoundError,
            SonarClientError,
        )
        from sonar_preprocessor.models import SnapshotError
        from sonar_preprocessor.server import AmbiguousProfileError

        try:
            return func(*args, **kwargs)
        except AuthenticationError as exc:
            click.echo(f"Authentication error: {exc}", err=True)
            sys.exit(1)
        except NotFoundError as exc:
            click.echo(f"Not found: {exc}", err=True)
            sys.exit(1)
        except NetworkError as exc:
            click.echo(f"Network error: {exc}", err=True)
            sys.exit(1)
        except AmbiguousProfileError as exc:
            click.echo(f"Quality profile error: {exc}", err=True)
            sys.exit(1)
        except SonarClientError as exc:
            click.echo(f"SonarQube error: {exc}", err=True)
            sys.exit(1)
        except SnapshotError as exc:
            click.echo(f"Snapshot error: {exc}", err=True)
            sys.exit(1)
        except AnalysisConfigError as exc:
            click.echo(f"Analysis config error: {exc}", err=True)
            sys.exit(1)
        except OSError as exc:
            click.echo(f"File error: {exc}", err=True)
            sys.exit(1)
        except ValueError as exc:
            click.echo(f"Invalid argument: {exc}", err=True)
            sys.exit(1)

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default="sonar-prep.yaml", show_default=True,
              help="Path to the settings file.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging.")
@click.version_option(__version__, prog_name="sonar-prep")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """SonarQube pre-processor — fetch server settings and write analysis rulesets."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="sonar-prep.yaml", show_default=True,
              help="Path where the template settings file will be written.")
def init_command(output_path: str) -> None:
    """Generate a template sonar-prep.yaml file."""
    from sonar_preprocessor.config import ConfigError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with your server URL, token and ruleset targets.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# ruleset
# ---------------------------------------------------------------------------

@cli.command("ruleset")
@click.argument("plugin")
@click.argument("language")
@click.argument("repository")
@click.argument("project")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--branch", default=None, help="Project branch.")
@click.option("--snapshot", "snapshot_path", default=None, type=click.Path(dir_okay=False),
              help="Read server data from a YAML snapshot instead of the server.")
@click.pass_context
@_handle_errors
def ruleset_command(ctx: click.Context, plugin: str, language: str, repository: str,
                    project: str, output: str, branch: str | None,
                    snapshot_path: str | None) -> None:
    """Write the ruleset of REPOSITORY rules active for PROJECT to OUTPUT."""
    from sonar_preprocessor.ruleset import generate

    if snapshot_path:
        from sonar_preprocessor.models import InMemorySonarServer, load_snapshot
        server = InMemorySonarServer(load_snapshot(snapshot_path))
    else:
        _, server = _make_server(ctx)

    if generate(server, plugin, language, repository, project, branch, output):
        click.echo(f"Ruleset written to '{output}'", err=True)
    else:
        click.echo(f"No applicable rules for {plugin}/{language}/{repository}; nothing written.",
                   err=True)


# ---------------------------------------------------------------------------
# properties
# ---------------------------------------------------------------------------

@cli.command("properties")
@click.argument("project")
@click.option("--branch", default=None, help="Project branch.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print the JSON output.")
@click.pass_context
@_handle_errors
def properties_command(ctx: click.Context, project: str, branch: str | None, pretty: bool) -> None:
    """Print the server properties of PROJECT as JSON."""
    _, server = _make_server(ctx)
    properties = server.get_properties(project, branch)
    click.echo(json.dumps(properties, indent=2 if pretty else None, ensure_ascii=False))


# ---------------------------------------------------------------------------
# preprocess
# ---------------------------------------------------------------------------

@cli.command("preprocess")
@click.argument("project_key")
@click.argument("project_name")
@click.argument("project_version")
@click.option("--branch", default=None, help="Project branch.")
@click.option("--output-dir", default=".sonarqube", show_default=True,
              type=click.Path(file_okay=False),
              help="Directory receiving the conf/ and out/ folders.")
@click.option("-D", "local_properties", multiple=True, metavar="KEY=VALUE",
              help="Local analysis property (repeatable).")
@click.pass_context
@_handle_errors
def preprocess_command(ctx: click.Context, project_key: str, project_name: str,
                       project_version: str, branch: str | None, output_dir: str,
                       local_properties: tuple[str, ...]) -> None:
    """Fetch server settings, write the rulesets and the analysis config."""
    from sonar_preprocessor.analysis_config import AnalysisConfig, Property
    from sonar_preprocessor.ruleset import generate

    local = _parse_local_properties(local_properties)
    settings, server = _make_server(ctx)

    root = Path(output_dir).resolve()
    conf_dir = root / "conf"
    out_dir = root / "out"
    conf_dir.mkdir(parents=True, exist_ok=True)
    out_dir.mkdir(parents=True, exist_ok=True)

    server_properties = server.get_properties(project_key, branch)

    for target in settings.rulesets:
        ruleset_path = conf_dir / target.file
        # A ruleset left over from a previous run must not be mistaken for a fresh one
        ruleset_path.unlink(missing_ok=True)
        if generate(server, target.plugin, target.language, target.repository,
                    project_key, branch, ruleset_path):
            click.echo(f"Ruleset written to '{ruleset_path}'", err=True)

    config = AnalysisConfig(
        sonar_config_dir=str(conf_dir),
        sonar_output_dir=str(out_dir),
        sonar_project_key=project_key,
        sonar_project_name=project_name,
        sonar_project_version=project_version,
        server_settings=[Property(k, v) for k, v in server_properties.items()],
        local_settings=[Property(k, v) for k, v in local],
    )
    config_path = conf_dir / ANALYSIS_CONFIG_FILE
    config.save(config_path)
    click.echo(f"Analysis config written to '{config_path}'", err=True)


# ---------------------------------------------------------------------------
# export-profile
# ---------------------------------------------------------------------------

@cli.command("export-profile")
@click.argument("profile")
@click.argument("language")
@click.argument("export_format", metavar="FORMAT")
@click.option("--output", "output_path", default=None,
              help="Write the export to a file instead of stdout.")
@click.pass_context
@_handle_errors
def export_profile_command(ctx: click.Context, profile: str, language: str,
                           export_format: str, output_path: str | None) -> None:
    """Export quality PROFILE of LANGUAGE in FORMAT (e.g. roslyn-cs)."""
    _, server = _make_server(ctx)
    content = server.try_get_profile_export(profile, language, export_format)
    if content is None:
        click.echo(f"Profile '{profile}' cannot be exported as '{export_format}'.", err=True)
        sys.exit(1)

    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)
        click.echo(f"Export written to '{output_path}'", err=True)
    else:
        click.echo(content)


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------

@cli.command("download")
@click.argument("plugin")
@click.argument("file_name", metavar="FILE")
@click.argument("target_dir", type=click.Path(file_okay=False))
@click.pass_context
@_handle_errors
def download_command(ctx: click.Context, plugin: str, file_name: str, target_dir: str) -> None:
    """Download FILE embedded in PLUGIN into TARGET_DIR."""
    _, server = _make_server(ctx)
    Path(target_dir).mkdir(parents=True, exist_ok=True)
    if not server.try_download_embedded_file(plugin, file_name, target_dir):
        click.echo(f"'{file_name}' is not available from plugin '{plugin}'.", err=True)
        sys.exit(1)
    click.echo(f"Downloaded '{file_name}' to '{target_dir}'", err=True)
