"""In-memory model of the SonarQube data the pre-processor relies on.

Contains:
    - Rule, Repository, QualityProfile   (building blocks)
    - ServerDataModel                    (installed plugins, repositories, profiles, properties)
    - InMemorySonarServer                (answers the SonarWebService queries from a model)
    - load_snapshot()                    (builds a model from a YAML file)

Models are built once, either in code::

    model = ServerDataModel()
    model.installed_plugins.add("csharp")
    model.add_repository("fxcop", "cs").add_rule("CA1000").add_rule("CA1001")
    model.add_quality_profile("Sonar way", "cs").add_project("my-project")
    model.add_rule_to_profile("CA1000", "Sonar way")

or from a snapshot file, and are not modified afterwards.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from sonar_preprocessor.server import (
    DEFAULT_PROPERTIES,
    AmbiguousProfileError,
    project_identifier,
)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

@dataclass
class Rule:
    key: str
    internal_key: str | None = None
    check_id: str | None = None

    @property
    def rule_id(self) -> str:
        return self.check_id if self.check_id is not None else self.key


@dataclass
class Repository:
    key: str
    language: str
    rules: list[Rule] = field(default_factory=list)

    def add_rule(self, key: str, internal_key: str | None = None, check_id: str | None = None) -> "Repository":
        """Append a rule and return the repository, so calls can be chained."""
        if self.find_rule(key) is not None:
            raise ValueError(f"Rule '{key}' already exists in repository '{self.key}' ({self.language})")
        self.rules.append(Rule(key=key, internal_key=internal_key, check_id=check_id))
        return self

    def find_rule(self, key: str) -> Rule | None:
        return next((r for r in self.rules if r.key == key), None)


@dataclass
class QualityProfile:
    name: str
    language: str
    projects: set[str] = field(default_factory=set)
    active_rules: list[str] = field(default_factory=list)

    def add_project(self, project_id: str) -> "QualityProfile":
        """Associate a ``key`` or ``key:branch`` project identifier."""
        self.projects.add(project_id)
        return self

    def add_rule(self, rule_key: str) -> "QualityProfile":
        if rule_key not in self.active_rules:
            self.active_rules.append(rule_key)
        return self

    def applies_to(self, project_key: str, branch: str | None = None) -> bool:
        return project_identifier(project_key, branch) in self.projects


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

@dataclass
class ServerDataModel:
    installed_plugins: set[str] = field(default_factory=set)
    repositories: list[Repository] = field(default_factory=list)
    quality_profiles: list[QualityProfile] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    #: ``(profile name, language, format) -> exported content``
    profile_exports: dict[tuple[str, str, str], str] = field(default_factory=dict)
    #: ``(plugin key, file name) -> file content``
    embedded_files: dict[tuple[str, str], bytes] = field(default_factory=dict)

    def add_repository(self, key: str, language: str) -> Repository:
        if self.find_repository(key, language) is not None:
            raise ValueError(f"Repository '{key}' ({language}) already exists")
        repository = Repository(key=key, language=language)
        self.repositories.append(repository)
        return repository

    def find_repository(self, key: str, language: str) -> Repository | None:
        return next(
            (r for r in self.repositories if r.key == key and r.language == language),
            None,
        )

    def add_quality_profile(self, name: str, language: str) -> QualityProfile:
        if self.find_profile(name, language) is not None:
            raise ValueError(f"Quality profile '{name}' ({language}) already exists")
        profile = QualityProfile(name=name, language=language)
        self.quality_profiles.append(profile)
        return profile

    def find_profile(self, name: str, language: str | None = None) -> QualityProfile | None:
        return next(
            (
                p for p in self.quality_profiles
                if p.name == name and (language is None or p.language == language)
            ),
            None,
        )

    def add_rule_to_profile(self, rule_key: str, profile_name: str, language: str | None = None) -> None:
        """Activate *rule_key* in a profile.

        *language* may be omitted while the profile name is unique; a name
        shared by several languages must be qualified.
        """
        matches = [
            p for p in self.quality_profiles
            if p.name == profile_name and (language is None or p.language == language)
        ]
        if not matches:
            raise ValueError(f"Unknown quality profile '{profile_name}'")
        if len(matches) > 1:
            languages = ", ".join(p.language for p in matches)
            raise ValueError(
                f"Quality profile '{profile_name}' exists for several languages "
                f"({languages}); pass a language"
            )
        matches[0].add_rule(rule_key)

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ServerDataModel":
        """Build a model from the structure of a YAML snapshot file."""
        model = cls()
        model.installed_plugins.update(str(p) for p in raw.get("installed_plugins") or [])

        for repo in raw.get("repositories") or []:
            repository = model.add_repository(str(repo["key"]), str(repo["language"]))
            for rule in repo.get("rules") or []:
                if isinstance(rule, str):
                    repository.add_rule(rule)
                else:
                    repository.add_rule(
                        str(rule["key"]),
                        internal_key=rule.get("internal_key"),
                        check_id=rule.get("check_id"),
                    )

        for prof in raw.get("quality_profiles") or []:
            profile = model.add_quality_profile(str(prof["name"]), str(prof["language"]))
            for project_id in prof.get("projects") or []:
                profile.add_project(str(project_id))
            for rule_key in prof.get("rules") or []:
                profile.add_rule(str(rule_key))

        model.properties.update(
            {str(k): str(v) for k, v in (raw.get("properties") or {}).items()}
        )
        return model


class SnapshotError(Exception):
    """Raised when a snapshot file is missing or malformed."""


def load_snapshot(snapshot_path: str | Path) -> ServerDataModel:
    """Load a :class:`ServerDataModel` from a YAML snapshot file.

    Raises:
        SnapshotError: if the file is missing, unparseable or badly shaped.
    """
    path = Path(snapshot_path)
    if not path.exists():
        raise SnapshotError(f"Snapshot file not found: '{snapshot_path}'")

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise SnapshotError(f"Failed to parse '{snapshot_path}': {exc}") from exc

    if not isinstance(raw, dict):
        raise SnapshotError(f"'{snapshot_path}' must be a YAML mapping at the top level.")

    try:
        return ServerDataModel.from_dict(raw)
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise SnapshotError(f"Invalid snapshot '{snapshot_path}': {exc!r}") from exc


# ---------------------------------------------------------------------------
# Server backed by a model
# ---------------------------------------------------------------------------

class InMemorySonarServer:
    """Answers the same queries as ``SonarWebService`` from a :class:`ServerDataModel`."""

    def __init__(self, data: ServerDataModel, default_properties: dict[str, str] | None = None) -> None:
        self.data = data
        self.default_properties = dict(
            DEFAULT_PROPERTIES if default_properties is None else default_properties
        )

    def get_installed_plugins(self) -> list[str]:
        return sorted(self.data.installed_plugins)

    def get_quality_profile(self, project_key: str, branch: str | None, language: str) -> str | None:
        candidates = [
            p for p in self.data.quality_profiles
            if p.language == language and p.applies_to(project_key, branch)
        ]
        if not candidates:
            return None
        if len(candidates) > 1:
            names = ", ".join(p.name for p in candidates)
            raise AmbiguousProfileError(
                f"Project '{project_identifier(project_key, branch)}' is associated "
                f"with several {language} profiles: {names}"
            )
        return candidates[0].name

    def get_active_rule_keys(self, profile_name: str, language: str, repository: str) -> list[str]:
        profile = self.data.find_profile(profile_name, language)
        repo = self.data.find_repository(repository, language)
        if profile is None or repo is None:
            return []

        rules = (repo.find_rule(key) for key in profile.active_rules)
        return [rule.rule_id for rule in rules if rule is not None]

    def get_internal_keys(self, repository: str) -> dict[str, str]:
        return {
            rule.key: rule.internal_key
            for repo in self.data.repositories if repo.key == repository
            for rule in repo.rules if rule.internal_key is not None
        }

    def get_properties(self, project_key: str, branch: str | None = None) -> dict[str, str]:
        result = dict(self.data.properties)
        for key, value in self.default_properties.items():
            result.setdefault(key, value)
        return result

    def try_get_profile_export(self, profile_name: str, language: str, export_format: str) -> str | None:
        return self.data.profile_exports.get((profile_name, language, export_format))

    def try_download_embedded_file(self, plugin_key: str, file_name: str, target_dir: str | Path) -> bool:
        content = self.data.embedded_files.get((plugin_key, file_name))
        if content is None:
            return False
        (Path(target_dir) / file_name).write_bytes(content)
        return True
