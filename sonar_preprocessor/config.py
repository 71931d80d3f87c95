"""Tool settings loading and validation.

Usage:
    settings = load("sonar-prep.yaml")      # raises ConfigError on bad config
    for target in settings.rulesets: ...    # plugin / language / repository / file
    generate_template("sonar-prep.yaml")    # writes example file to disk
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from sonar_preprocessor.server import DEFAULT_PROPERTIES


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Settings dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RulesetTarget:
    """A ruleset to generate: rules of *repository* for *language*, if *plugin* is installed."""

    plugin: str
    language: str
    repository: str
    file: str


DEFAULT_RULESETS: tuple[RulesetTarget, ...] = (
    RulesetTarget("csharp", "cs", "fxcop", "SonarQubeFxCop-cs.ruleset"),
    RulesetTarget("vbnet", "vbnet", "fxcop-vbnet", "SonarQubeFxCop-vbnet.ruleset"),
)


@dataclass
class Settings:
    url: str
    token: str = ""
    rulesets: list[RulesetTarget] = field(default_factory=lambda: list(DEFAULT_RULESETS))
    default_properties: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PROPERTIES))


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str = "sonar-prep.yaml") -> Settings:
    """Load and validate settings from a YAML file.

    Environment variables SONAR_URL and SONAR_TOKEN override file values.

    Raises:
        ConfigError: if the file is missing, malformed, or required fields
                     are absent.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `sonar-prep init` to generate a template."
        )

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")

    server = raw.get("server") or {}
    url   = os.environ.get("SONAR_URL")  or server.get("url",   "")
    token = os.environ.get("SONAR_TOKEN") or server.get("token", "")

    settings = Settings(url=str(url).strip(), token=str(token or "").strip())

    if "rulesets" in raw:
        settings.rulesets = _parse_rulesets(raw["rulesets"], config_path)
    if "default_properties" in raw:
        defaults = raw["default_properties"] or {}
        if not isinstance(defaults, dict):
            raise ConfigError(f"'default_properties' in '{config_path}' must be a mapping.")
        settings.default_properties = {str(k): str(v) for k, v in defaults.items()}

    _validate(settings)
    return settings


def _parse_rulesets(raw, config_path: str) -> list[RulesetTarget]:
    if not isinstance(raw, list):
        raise ConfigError(f"'rulesets' in '{config_path}' must be a list.")

    targets: list[RulesetTarget] = []
    for index, entry in enumerate(raw):
        missing = [k for k in ("plugin", "language", "repository", "file")
                   if not isinstance(entry, dict) or not entry.get(k)]
        if missing:
            raise ConfigError(
                f"'rulesets[{index}]' in '{config_path}' is missing: {', '.join(missing)}"
            )
        targets.append(RulesetTarget(
            plugin=str(entry["plugin"]),
            language=str(entry["language"]),
            repository=str(entry["repository"]),
            file=str(entry["file"]),
        ))
    return targets


def _validate(settings: Settings) -> None:
    """Raise ConfigError if required fields are missing."""
    errors: list[str] = []

    if not settings.url:
        errors.append(
            "  - 'server.url' is missing (or set the SONAR_URL environment variable)"
        )
    file_names = [t.file for t in settings.rulesets]
    if len(file_names) != len(set(file_names)):
        errors.append(
            "  - 'rulesets' entries must each write to a different file"
        )

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
server:
  url: "https://sonar.example.com"
  token: "squ_xxxxxxxxxxxx"       # Generate at: <your-sonar-url>/account/security

# Rulesets written by `sonar-prep preprocess`, one per plugin/language pair.
rulesets:
  - plugin: csharp
    language: cs
    repository: fxcop
    file: SonarQubeFxCop-cs.ruleset
  - plugin: vbnet
    language: vbnet
    repository: fxcop-vbnet
    file: SonarQubeFxCop-vbnet.ruleset

# Added to the server properties when the server does not define them.
default_properties:
  sonar.cs.msbuild.testProjectPattern: '[^\\\\]*test[^\\\\]*$'
"""


def generate_template(output_path: str = "sonar-prep.yaml") -> None:
    """Write a template sonar-prep.yaml to *output_path*.

    Raises:
        ConfigError: if the file already exists (to avoid overwriting secrets).
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")
