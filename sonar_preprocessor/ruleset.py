"""Ruleset generation.

Functions:
    generate(server, plugin_key, language, repository_key, project_key, branch, output_path) -> bool
    to_ruleset_xml(rule_ids) -> str

``generate`` writes nothing when the plugin is not installed, when no quality
profile applies to the project, or when the profile activates no rule of the
repository. Callers running it for many plugin/language pairs tell the cases
apart by whether ``output_path`` exists afterwards.
"""

import logging
import os
from pathlib import Path
from typing import Iterable
from xml.sax.saxutils import quoteattr

logger = logging.getLogger(__name__)

_RULESET_HEADER = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<RuleSet Name="Rules for SonarQube" '
    'Description="This rule set was automatically generated from SonarQube." '
    'ToolsVersion="12.0">\n'
    '  <Rules AnalyzerId="Microsoft.Analyzers.ManagedCodeAnalysis" '
    'RuleNamespace="Microsoft.Rules.Managed">\n'
)
_RULESET_FOOTER = (
    "  </Rules>\n"
    "</RuleSet>\n"
)


def to_ruleset_xml(rule_ids: Iterable[str]) -> str:
    """Render *rule_ids*, in order, as a ruleset document."""
    lines = [f"    <Rule Id={quoteattr(rule_id)} Action=\"Warning\" />\n" for rule_id in rule_ids]
    return _RULESET_HEADER + "".join(lines) + _RULESET_FOOTER


def generate(
    server,
    plugin_key: str,
    language: str,
    repository_key: str,
    project_key: str,
    branch: str | None,
    output_path: str | Path,
) -> bool:
    """Write the ruleset of the rules active for a project to *output_path*.

    Args:
        server:         ``SonarWebService`` or ``InMemorySonarServer``
        plugin_key:     plugin that must be installed, e.g. ``"csharp"``
        language:       language of the quality profile, e.g. ``"cs"``
        repository_key: rule repository to keep, e.g. ``"fxcop"``
        project_key:    SonarQube project key
        branch:         project branch, or ``None``
        output_path:    where the ruleset is written

    Returns:
        ``True`` if the file was written, ``False`` if nothing applied.

    Raises:
        ValueError: a required argument is missing or blank.
    """
    for name, value in (
        ("plugin_key", plugin_key),
        ("language", language),
        ("repository_key", repository_key),
        ("project_key", project_key),
    ):
        if value is None or not str(value).strip():
            raise ValueError(f"'{name}' must be a non-empty string")
    # Path("") collapses to "."
    if output_path is None or not os.fspath(output_path).strip() or Path(output_path) == Path("."):
        raise ValueError("'output_path' must be a non-empty file path")

    if plugin_key not in server.get_installed_plugins():
        logger.info("Plugin '%s' is not installed, no ruleset generated", plugin_key)
        return False

    profile = server.get_quality_profile(project_key, branch, language)
    if profile is None:
        logger.info(
            "No %s quality profile found for project '%s' (branch: %s), no ruleset generated",
            language, project_key, branch or "default",
        )
        return False

    rule_ids = list(server.get_active_rule_keys(profile, language, repository_key))
    if not rule_ids:
        logger.info(
            "Quality profile '%s' has no active rule in repository '%s', no ruleset generated",
            profile, repository_key,
        )
        return False

    path = Path(output_path)
    path.write_text(to_ruleset_xml(rule_ids), encoding="utf-8")
    logger.info("Wrote %d rule(s) from profile '%s' to '%s'", len(rule_ids), profile, path)
    return True
