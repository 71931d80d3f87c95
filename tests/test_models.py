"""Tests for sonar_preprocessor/models.py"""

import textwrap

import pytest

from sonar_preprocessor.models import (
    InMemorySonarServer,
    QualityProfile,
    ServerDataModel,
    SnapshotError,
    load_snapshot,
)
from sonar_preprocessor.server import AmbiguousProfileError

SNAPSHOT = """\
    installed_plugins: [csharp, vbnet]
    repositories:
      - key: fxcop
        language: cs
        rules:
          - CA1000
          - key: My_Rule
            internal_key: CA2000
            check_id: CA2001
    quality_profiles:
      - name: Sonar way
        language: cs
        projects: [my.project, "my.project:dev"]
        rules: [My_Rule, CA1000, Unknown_Rule]
    properties:
      sonar.exclusions: "**/*.g.cs"
    """


def write_snapshot(tmp_path, content: str):
    p = tmp_path / "snapshot.yaml"
    p.write_text(textwrap.dedent(content), encoding="utf-8")
    return p


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def test_duplicate_rule_key_rejected():
    repo = ServerDataModel().add_repository("fxcop", "cs").add_rule("CA1000")
    with pytest.raises(ValueError, match="CA1000"):
        repo.add_rule("CA1000")


def test_same_rule_key_allowed_in_other_repository():
    model = ServerDataModel()
    model.add_repository("fxcop", "cs").add_rule("CA1000")
    model.add_repository("fxcop", "vbnet").add_rule("CA1000")
    assert len(model.repositories) == 2


def test_duplicate_repository_rejected():
    model = ServerDataModel()
    model.add_repository("fxcop", "cs")
    with pytest.raises(ValueError):
        model.add_repository("fxcop", "cs")


def test_unknown_profile_rejected():
    with pytest.raises(ValueError, match="missing"):
        ServerDataModel().add_rule_to_profile("CA1000", "missing")


def test_add_rule_to_profile_selects_language():
    model = ServerDataModel()
    cs = model.add_quality_profile("Sonar way", "cs")
    vbnet = model.add_quality_profile("Sonar way", "vbnet")

    model.add_rule_to_profile("CA1000", "Sonar way", "vbnet")

    assert vbnet.active_rules == ["CA1000"]
    assert cs.active_rules == []


def test_add_rule_to_profile_shared_name_requires_language():
    model = ServerDataModel()
    model.add_quality_profile("Sonar way", "cs")
    model.add_quality_profile("Sonar way", "vbnet")
    with pytest.raises(ValueError, match="several languages"):
        model.add_rule_to_profile("CA1000", "Sonar way")


def test_add_rule_to_profile_unknown_language_rejected():
    model = ServerDataModel()
    model.add_quality_profile("Sonar way", "cs")
    with pytest.raises(ValueError, match="Unknown quality profile"):
        model.add_rule_to_profile("CA1000", "Sonar way", "vbnet")


def test_bare_association_matches_only_without_branch():
    profile = QualityProfile("p", "cs").add_project("P")
    assert profile.applies_to("P", None) is True
    assert profile.applies_to("P", "") is True
    assert profile.applies_to("P", "anything") is False


def test_composite_association_matches_only_its_branch():
    profile = QualityProfile("p", "cs").add_project("P:B")
    assert profile.applies_to("P", "B") is True
    assert profile.applies_to("P", None) is False
    assert profile.applies_to("P", "C") is False
    assert profile.applies_to("Q", "B") is False


# ---------------------------------------------------------------------------
# InMemorySonarServer
# ---------------------------------------------------------------------------

def test_server_quality_profile_ambiguous():
    model = ServerDataModel()
    model.add_quality_profile("a", "cs").add_project("p")
    model.add_quality_profile("b", "cs").add_project("p")
    with pytest.raises(AmbiguousProfileError):
        InMemorySonarServer(model).get_quality_profile("p", None, "cs")


def test_server_internal_keys():
    model = ServerDataModel()
    model.add_repository("fxcop", "cs").add_rule("a", "A").add_rule("b")
    assert InMemorySonarServer(model).get_internal_keys("fxcop") == {"a": "A"}


def test_server_properties_include_defaults():
    model = ServerDataModel(properties={"k": "v"})
    server = InMemorySonarServer(model, default_properties={"d": "1", "k": "ignored"})
    assert server.get_properties("p") == {"k": "v", "d": "1"}


def test_server_tolerant_lookups(tmp_path):
    model = ServerDataModel(
        profile_exports={("Sonar way", "cs", "roslyn-cs"): "<RuleSet />"},
        embedded_files={("csharp", "a.zip"): b"zip"},
    )
    server = InMemorySonarServer(model)
    assert server.try_get_profile_export("Sonar way", "cs", "roslyn-cs") == "<RuleSet />"
    assert server.try_get_profile_export("Sonar way", "cs", "other") is None
    assert server.try_download_embedded_file("csharp", "a.zip", tmp_path) is True
    assert (tmp_path / "a.zip").read_bytes() == b"zip"
    assert server.try_download_embedded_file("csharp", "b.zip", tmp_path) is False


# ---------------------------------------------------------------------------
# load_snapshot()
# ---------------------------------------------------------------------------

def test_load_snapshot(tmp_path):
    model = load_snapshot(write_snapshot(tmp_path, SNAPSHOT))
    server = InMemorySonarServer(model)

    assert server.get_installed_plugins() == ["csharp", "vbnet"]
    assert server.get_quality_profile("my.project", "dev", "cs") == "Sonar way"
    assert server.get_active_rule_keys("Sonar way", "cs", "fxcop") == ["CA2001", "CA1000"]
    assert server.get_internal_keys("fxcop") == {"My_Rule": "CA2000"}
    assert server.get_properties("my.project")["sonar.exclusions"] == "**/*.g.cs"


def test_load_snapshot_missing_file(tmp_path):
    with pytest.raises(SnapshotError, match="not found"):
        load_snapshot(tmp_path / "nope.yaml")


def test_load_snapshot_not_a_mapping(tmp_path):
    with pytest.raises(SnapshotError, match="mapping"):
        load_snapshot(write_snapshot(tmp_path, "- a\n- b\n"))


def test_load_snapshot_bad_shape(tmp_path):
    with pytest.raises(SnapshotError, match="Invalid snapshot"):
        load_snapshot(write_snapshot(tmp_path, """\
            repositories:
              - language: cs
            """))
