"""SonarQube web service queries used by the pre-processor.

Usage:
    with SonarClient(token="squ_xxx") as client:
        server  = SonarWebService(client, "https://sonar.example.com")
        profile = server.get_quality_profile("my-project", None, "cs")
        keys    = server.get_active_rule_keys(profile, "cs", "fxcop")

``SonarWebService`` does not talk HTTP itself: it builds URLs and hands them
to an injected downloader exposing ``download``, ``try_download_if_exists``
and ``try_download_file_if_exists`` (see ``sonar_preprocessor.client``).
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote_plus

from sonar_preprocessor.client import SonarClientError

logger = logging.getLogger(__name__)

#: Properties injected by :meth:`SonarWebService.get_properties` when the
#: server does not return them.
DEFAULT_PROPERTIES: dict[str, str] = {
    "sonar.cs.msbuild.testProjectPattern": r"[^\\]*test[^\\]*$",
}

#: Page size asking the rule search endpoint for every rule in one response
_ALL_RULES_PAGE_SIZE = str(2**31 - 1)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class AmbiguousProfileError(SonarClientError):
    """Raised when several quality profiles match and not exactly one is the default."""


# ---------------------------------------------------------------------------
# Payload records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfileSummary:
    """One entry of ``/api/profiles/list``."""

    name: str
    is_default: bool

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "ProfileSummary":
        # The server sends the flag as "True"/"False" (or a JSON boolean)
        return cls(name=str(raw["name"]), is_default=str(raw.get("default")) == "True")


@dataclass(frozen=True)
class ActiveRule:
    """One entry of the ``rules`` array returned by ``/api/profiles/index``."""

    key: str
    repository: str
    check_id: str | None = None

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> "ActiveRule":
        check_id = None
        for param in raw.get("params") or []:
            if param.get("key") == "CheckId":
                check_id = str(param["value"])
                break
        return cls(key=str(raw["key"]), repository=str(raw["repo"]), check_id=check_id)

    @property
    def rule_id(self) -> str:
        """Identifier the analyzer knows this rule by."""
        return self.check_id if self.check_id is not None else self.key


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def project_identifier(project_key: str, branch: str | None = None) -> str:
    """Return ``key`` or ``key:branch`` as SonarQube names branch projects."""
    if branch and branch.strip():
        return f"{project_key}:{branch}"
    return project_key


def select_profile(profiles: list[ProfileSummary]) -> str | None:
    """Pick the applicable profile name out of a profile listing.

    A single candidate wins regardless of its default flag. With several
    candidates exactly one must be flagged as the default.

    Raises:
        AmbiguousProfileError: several candidates and zero or many defaults.
    """
    if not profiles:
        return None
    if len(profiles) == 1:
        return profiles[0].name

    defaults = [p for p in profiles if p.is_default]
    if len(defaults) != 1:
        names = ", ".join(p.name for p in profiles)
        raise AmbiguousProfileError(
            f"Expected exactly one default quality profile among [{names}], "
            f"found {len(defaults)}"
        )
    return defaults[0].name


def _require(**values) -> None:
    for name, value in values.items():
        if value is None or not str(value).strip():
            raise ValueError(f"'{name}' must be a non-empty string")


def _parse_json(contents: str, url: str) -> Any:
    try:
        return json.loads(contents)
    except ValueError as exc:
        raise SonarClientError(f"Invalid JSON returned by {url}: {exc}") from exc


def _parse_entries(entries, url: str, parse) -> list:
    """Apply *parse* to each payload entry; badly shaped entries raise SonarClientError."""
    try:
        return [parse(entry) for entry in entries]
    except (KeyError, TypeError, AttributeError) as exc:
        raise SonarClientError(f"Unexpected payload from {url}: {exc!r}") from exc


# ---------------------------------------------------------------------------
# Web service
# ---------------------------------------------------------------------------

class SonarWebService:
    """Queries the SonarQube endpoints needed to prepare an analysis."""

    def __init__(
        self,
        downloader,
        server_url: str,
        default_properties: dict[str, str] | None = None,
    ) -> None:
        if downloader is None:
            raise ValueError("'downloader' is required")
        _require(server_url=server_url)

        self.downloader = downloader
        self.server_url = server_url[:-1] if server_url.endswith("/") else server_url
        self.default_properties = dict(
            DEFAULT_PROPERTIES if default_properties is None else default_properties
        )

    # ------------------------------------------------------------------
    # Quality profiles and rules
    # ------------------------------------------------------------------

    def get_quality_profile(self, project_key: str, branch: str | None, language: str) -> str | None:
        """Return the name of the quality profile used by a project, or ``None``.

        The project-scoped listing is tried first; servers that do not know the
        project answer 404 and the language default listing is used instead.
        """
        _require(project_key=project_key, language=language)
        project_id = project_identifier(project_key, branch)

        url = self._url("/api/profiles/list?language={0}&project={1}", language, project_id)
        contents = self.downloader.try_download_if_exists(url)
        if contents is None:
            url = self._url("/api/profiles/list?language={0}", language)
            contents = self.downloader.download(url)

        payload = _parse_json(contents, url)
        if not isinstance(payload, list):
            raise SonarClientError(f"Expected a JSON array of profiles from {url}")

        return select_profile(_parse_entries(payload, url, ProfileSummary.from_json))

    def get_active_rule_keys(self, profile_name: str, language: str, repository: str) -> list[str]:
        """Return the identifiers of the rules of *repository* active in a profile.

        A rule carrying a ``CheckId`` parameter is reported by that value,
        any other rule by its key. Order is the order the server returns.
        """
        _require(profile_name=profile_name, language=language, repository=repository)

        url = self._url("/api/profiles/index?language={0}&name={1}", language, profile_name)
        payload = _parse_json(self.downloader.download(url), url)
        if not isinstance(payload, list) or len(payload) != 1 or not isinstance(payload[0], dict):
            raise SonarClientError(f"Expected exactly one profile from {url}")

        raw_rules = payload[0].get("rules")
        if raw_rules is None:
            return []

        rules = _parse_entries(raw_rules, url, ActiveRule.from_json)
        return [r.rule_id for r in rules if r.repository == repository]

    def get_internal_keys(self, repository: str) -> dict[str, str]:
        """Map rule key to internal key for the rules of *repository* that declare one."""
        _require(repository=repository)

        url = self._url(
            "/api/rules/search?f=internalKey&ps={0}&repositories={1}",
            _ALL_RULES_PAGE_SIZE, repository,
        )
        payload = _parse_json(self.downloader.download(url), url)
        if not isinstance(payload, dict):
            raise SonarClientError(f"Expected a JSON object of rules from {url}")

        pairs = _parse_entries(
            payload.get("rules", []), url, lambda r: (str(r["key"]), r.get("internalKey")),
        )
        return {key: str(internal_key) for key, internal_key in pairs if internal_key is not None}

    # ------------------------------------------------------------------
    # Properties and plugins
    # ------------------------------------------------------------------

    def get_properties(self, project_key: str, branch: str | None = None) -> dict[str, str]:
        """Return the project's settings as a ``{key: value}`` mapping.

        Every entry of ``default_properties`` missing from the response is
        added with its default value.
        """
        _require(project_key=project_key)
        project_id = project_identifier(project_key, branch)

        url = self._url("/api/properties?resource={0}", project_id)
        logger.debug("Fetching properties for project '%s' from %s", project_id, url)
        payload = _parse_json(self.downloader.download(url), url)
        if not isinstance(payload, list):
            raise SonarClientError(f"Expected a JSON array of properties from {url}")

        result = dict(_parse_entries(payload, url, lambda p: (str(p["key"]), str(p["value"]))))
        for key, value in self.default_properties.items():
            result.setdefault(key, value)
        return result

    def get_installed_plugins(self) -> list[str]:
        url = self._url("/api/updatecenter/installed_plugins")
        payload = _parse_json(self.downloader.download(url), url)
        if not isinstance(payload, list):
            raise SonarClientError(f"Expected a JSON array of plugins from {url}")
        return _parse_entries(payload, url, lambda plugin: str(plugin["key"]))

    # ------------------------------------------------------------------
    # Tolerant downloads
    # ------------------------------------------------------------------

    def try_get_profile_export(self, profile_name: str, language: str, export_format: str) -> str | None:
        """Return the profile exported in *export_format*, or ``None`` if unavailable."""
        _require(profile_name=profile_name, language=language, export_format=export_format)

        url = self._url(
            "/profiles/export?format={0}&language={1}&name={2}",
            export_format, language, profile_name,
        )
        return self.downloader.try_download_if_exists(url)

    def try_download_embedded_file(self, plugin_key: str, file_name: str, target_dir: str | Path) -> bool:
        """Download a file a plugin exposes under ``/static`` into *target_dir*."""
        _require(plugin_key=plugin_key, file_name=file_name, target_dir=target_dir)

        url = self._url("/static/{0}/{1}", plugin_key, file_name)
        target_path = Path(target_dir) / file_name
        logger.debug("Downloading '%s' from %s to '%s'", file_name, url, target_dir)
        return self.downloader.try_download_file_if_exists(url, target_path)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _url(self, template: str, *args: str) -> str:
        path = template.format(*(quote_plus(a) for a in args))
        if not path.startswith("/"):
            path = "/" + path
        return self.server_url + path
