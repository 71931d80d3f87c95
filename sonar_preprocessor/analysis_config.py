"""Analysis configuration handed over to the analysis step.

Usage:
    config = AnalysisConfig(sonar_project_key="my-project")
    config.server_settings.append(Property("sonar.host.url", "https://sonar.example.com"))
    config.save("out/conf/SonarQubeAnalysisConfig.xml")
    config = AnalysisConfig.load("out/conf/SonarQubeAnalysisConfig.xml")

The file is an XML document in the ``NAMESPACE`` namespace. Loading ignores
any element it does not know about, so files written by newer versions can
still be read.
"""

import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

NAMESPACE = "http://www.sonarsource.com/msbuild/integration/2015/1"


class AnalysisConfigError(Exception):
    """Raised when an analysis config file cannot be parsed."""


@dataclass
class Property:
    """Analysis property, serialized as ``<Property Name="id">value</Property>``."""

    id: str
    value: str


@dataclass
class ConfigSetting:
    """Generic setting, serialized as ``<ConfigSetting Id="id" Value="value" />``."""

    id: str
    value: str


@dataclass
class AnalyzerSettings:
    rule_set_file_path: str | None = None
    additional_file_paths: list[str] | None = field(default_factory=list)
    analyzer_assembly_paths: list[str] | None = field(default_factory=list)


@dataclass
class AnalysisConfig:
    sonar_config_dir: str | None = None
    sonar_output_dir: str | None = None
    sonar_project_key: str | None = None
    sonar_project_name: str | None = None
    sonar_project_version: str | None = None
    server_settings: list[Property] | None = field(default_factory=list)
    local_settings: list[Property] | None = field(default_factory=list)
    additional_config: list[ConfigSetting] | None = field(default_factory=list)
    analyzer_settings: AnalyzerSettings | None = None

    # ------------------------------------------------------------------
    # Additional settings
    # ------------------------------------------------------------------

    def get_setting(self, setting_id: str, default: str | None = None) -> str | None:
        for setting in self.additional_config or []:
            if setting.id == setting_id:
                return setting.value
        return default

    def set_setting(self, setting_id: str, value: str) -> None:
        """Add a setting, or replace the value of an existing one."""
        if self.additional_config is None:
            self.additional_config = []
        for setting in self.additional_config:
            if setting.id == setting_id:
                setting.value = value
                return
        self.additional_config.append(ConfigSetting(setting_id, value))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Write the config to *path*, replacing any existing file."""
        _check_path(path)

        # Declared as a plain attribute so the element tags stay unprefixed
        root = ET.Element("AnalysisConfig", xmlns=NAMESPACE)
        _add_text(root, "SonarConfigDir", self.sonar_config_dir)
        _add_text(root, "SonarOutputDir", self.sonar_output_dir)
        _add_text(root, "SonarProjectKey", self.sonar_project_key)
        _add_text(root, "SonarProjectVersion", self.sonar_project_version)
        _add_text(root, "SonarProjectName", self.sonar_project_name)

        if self.additional_config is not None:
            parent = ET.SubElement(root, "AdditionalConfig")
            for setting in self.additional_config:
                ET.SubElement(parent, "ConfigSetting", Id=setting.id, Value=setting.value)

        _add_properties(root, "ServerSettings", self.server_settings)
        _add_properties(root, "LocalSettings", self.local_settings)

        analyzer = self.analyzer_settings
        if analyzer is not None:
            parent = ET.SubElement(root, "AnalyzerSettings")
            _add_text(parent, "RuleSetFilePath", analyzer.rule_set_file_path)
            _add_paths(parent, "AnalyzerAssemblyPaths", analyzer.analyzer_assembly_paths)
            _add_paths(parent, "AdditionalFilePaths", analyzer.additional_file_paths)

        tree = ET.ElementTree(root)
        ET.indent(tree)
        tree.write(path, encoding="utf-8", xml_declaration=True)

    @classmethod
    def load(cls, path: str | Path) -> "AnalysisConfig":
        """Read a config previously written by :meth:`save`.

        Raises:
            ValueError:          *path* is missing or blank.
            OSError:             the file cannot be read.
            AnalysisConfigError: the file is not well-formed XML.
        """
        _check_path(path)

        # Plain read-only open: other readers of the same file are unaffected
        with open(path, "rb") as f:
            try:
                root = ET.parse(f).getroot()
            except ET.ParseError as exc:
                raise AnalysisConfigError(f"Failed to parse '{path}': {exc}") from exc

        if root.tag != _q("AnalysisConfig"):
            raise AnalysisConfigError(
                f"'{path}' is not an analysis config (root element: {root.tag})"
            )

        config = cls(
            sonar_config_dir=_text(root, "SonarConfigDir"),
            sonar_output_dir=_text(root, "SonarOutputDir"),
            sonar_project_key=_text(root, "SonarProjectKey"),
            sonar_project_name=_text(root, "SonarProjectName"),
            sonar_project_version=_text(root, "SonarProjectVersion"),
            server_settings=_properties(root, "ServerSettings"),
            local_settings=_properties(root, "LocalSettings"),
            additional_config=[
                ConfigSetting(id=el.get("Id", ""), value=el.get("Value", ""))
                for el in root.iterfind(f"{_q('AdditionalConfig')}/{_q('ConfigSetting')}")
            ],
        )

        analyzer = root.find(_q("AnalyzerSettings"))
        if analyzer is not None:
            config.analyzer_settings = AnalyzerSettings(
                rule_set_file_path=_text(analyzer, "RuleSetFilePath"),
                additional_file_paths=_paths(analyzer, "AdditionalFilePaths"),
                analyzer_assembly_paths=_paths(analyzer, "AnalyzerAssemblyPaths"),
            )
        return config


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _check_path(path) -> None:
    # Path("") collapses to "."
    if path is None or not os.fspath(path).strip() or Path(path) == Path("."):
        raise ValueError("'path' must be a non-empty file path")


def _q(tag: str) -> str:
    return f"{{{NAMESPACE}}}{tag}"


def _add_text(parent: ET.Element, tag: str, value: str | None) -> None:
    if value is not None:
        ET.SubElement(parent, tag).text = value


def _add_properties(parent: ET.Element, tag: str, properties: list[Property] | None) -> None:
    if properties is None:
        return
    container = ET.SubElement(parent, tag)
    for prop in properties:
        ET.SubElement(container, "Property", Name=prop.id).text = prop.value


def _add_paths(parent: ET.Element, tag: str, paths: list[str] | None) -> None:
    if paths is None:
        return
    container = ET.SubElement(parent, tag)
    for p in paths:
        ET.SubElement(container, "Path").text = p


def _text(parent: ET.Element, tag: str) -> str | None:
    el = parent.find(_q(tag))
    if el is None:
        return None
    return el.text or ""


def _properties(parent: ET.Element, tag: str) -> list[Property]:
    return [
        Property(id=el.get("Name", ""), value=el.text or "")
        for el in parent.iterfind(f"{_q(tag)}/{_q('Property')}")
    ]


def _paths(parent: ET.Element, tag: str) -> list[str]:
    return [el.text or "" for el in parent.iterfind(f"{_q(tag)}/{_q('Path')}")]
