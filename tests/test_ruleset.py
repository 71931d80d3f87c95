"""Tests for sonar_preprocessor/ruleset.py"""

import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from sonar_preprocessor.models import InMemorySonarServer, ServerDataModel
from sonar_preprocessor.ruleset import generate, to_ruleset_xml
from sonar_preprocessor.server import AmbiguousProfileError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def server() -> InMemorySonarServer:
    model = ServerDataModel()

    model.installed_plugins.add("real.plugin1")
    model.installed_plugins.add("unused.plugin1")

    # Rule repositories
    model.add_repository("empty.repo", "aaa")

    model.add_repository("repo1", "languageAAA") \
        .add_rule("repo1.aaa.r1", "repo1.aaa.r1.internal") \
        .add_rule("repo1.aaa.r2", "repo1.aaa.r2.internal")

    model.add_repository("repo1", "languageBBB") \
        .add_rule("repo1.bbb.r1", "repo1.xxx.r1.internal") \
        .add_rule("repo1.bbb.r2", "repo1.xxx.r2.internal") \
        .add_rule("repo1.bbb.r3", "repo1.xxx.r3.internal")

    # Quality profiles
    model.add_quality_profile("profile 1", "languageAAA") \
        .add_project("unused.project") \
        .add_project("project1") \
        .add_project("project2:anotherBranch")

    model.add_quality_profile("profile 2", "languageBBB") \
        .add_project("project1") \
        .add_project("project2")

    model.add_quality_profile("profile 3", "languageBBB") \
        .add_project("project2:aBranch") \
        .add_project("project3:aThirdBranch")

    # Active rules
    model.add_rule_to_profile("repo1.aaa.r1", "profile 1")

    model.add_rule_to_profile("repo1.bbb.r1", "profile 2")
    model.add_rule_to_profile("repo1.bbb.r2", "profile 2")
    model.add_rule_to_profile("repo1.bbb.r3", "profile 2")

    model.add_rule_to_profile("repo1.bbb.r1", "profile 3")

    return InMemorySonarServer(model)


def _rule_ids(path) -> list[str]:
    root = ET.parse(path).getroot()
    return [rule.get("Id") for rule in root.iter("Rule")]


# ---------------------------------------------------------------------------
# generate() — nothing applicable
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("plugin, language, project, branch", [
    ("missing.plugin", "languageAAA", "project1", None),
    ("real.plugin1", "unhandled.language", "project1", None),
    ("real.plugin1", "languageBBB", "missing.project", None),
    # only "project3:aThirdBranch" is associated
    ("real.plugin1", "languageBBB", "project3", None),
    ("real.plugin1", "languageBBB", "missing.project", "missingBranch"),
    # "project1" is associated, "project1:missingBranch" is not
    ("real.plugin1", "languageBBB", "project1", "missingBranch"),
])
def test_no_ruleset_written(server, tmp_path, plugin, language, project, branch):
    output = tmp_path / "r1.txt"
    assert generate(server, plugin, language, "repo1", project, branch, output) is False
    assert not output.exists()


def test_no_ruleset_when_profile_has_no_rule_in_repository(server, tmp_path):
    output = tmp_path / "empty.ruleset"
    assert generate(server, "real.plugin1", "languageAAA", "empty.repo", "project1", None, output) is False
    assert not output.exists()


def test_rules_from_other_repositories_are_excluded(server, tmp_path):
    server.data.add_repository("repo2", "languageBBB").add_rule("repo2.bbb.r1")
    output = tmp_path / "repo2.ruleset"
    assert generate(server, "real.plugin1", "languageBBB", "repo2", "project1", None, output) is False
    assert not output.exists()


def test_existing_file_left_untouched_when_nothing_applies(server, tmp_path):
    output = tmp_path / "kept.ruleset"
    output.write_text("previous")
    generate(server, "missing.plugin", "languageAAA", "repo1", "project1", None, output)
    assert output.read_text() == "previous"


# ---------------------------------------------------------------------------
# generate() — ruleset written
# ---------------------------------------------------------------------------

def test_language_aaa_default_branch(server, tmp_path):
    output = tmp_path / "aaa_ruleset.txt"
    assert generate(server, "real.plugin1", "languageAAA", "repo1", "project1", None, output) is True
    assert _rule_ids(output) == ["repo1.aaa.r1"]


def test_language_bbb_default_branch(server, tmp_path):
    output = tmp_path / "bbb_ruleset.txt"
    generate(server, "real.plugin1", "languageBBB", "repo1", "project1", None, output)
    assert _rule_ids(output) == ["repo1.bbb.r1", "repo1.bbb.r2", "repo1.bbb.r3"]


def test_language_bbb_branch_profile(server, tmp_path):
    output = tmp_path / "bbb_aBranch_ruleset.txt"
    generate(server, "real.plugin1", "languageBBB", "repo1", "project2", "aBranch", output)
    assert _rule_ids(output) == ["repo1.bbb.r1"]


def test_language_aaa_branch_profile(server, tmp_path):
    output = tmp_path / "aaa_anotherBranch_ruleset.txt"
    generate(server, "real.plugin1", "languageAAA", "repo1", "project2", "anotherBranch", output)
    assert _rule_ids(output) == ["repo1.aaa.r1"]


def test_rules_written_in_profile_order(tmp_path):
    model = ServerDataModel(installed_plugins={"csharp"})
    model.add_repository("fxcop", "cs").add_rule("CA1").add_rule("CA2").add_rule("CA3")
    profile = model.add_quality_profile("Sonar way", "cs").add_project("p")
    profile.add_rule("CA3").add_rule("CA1").add_rule("CA2")

    output = tmp_path / "out.ruleset"
    generate(InMemorySonarServer(model), "csharp", "cs", "fxcop", "p", None, output)
    assert _rule_ids(output) == ["CA3", "CA1", "CA2"]


def test_check_id_replaces_rule_key(tmp_path):
    model = ServerDataModel(installed_plugins={"csharp"})
    model.add_repository("fxcop", "cs") \
        .add_rule("My_Custom_Rule", check_id="CA9999") \
        .add_rule("CA1000")
    model.add_quality_profile("Sonar way", "cs").add_project("p") \
        .add_rule("My_Custom_Rule").add_rule("CA1000")

    output = tmp_path / "out.ruleset"
    generate(InMemorySonarServer(model), "csharp", "cs", "fxcop", "p", None, output)
    assert _rule_ids(output) == ["CA9999", "CA1000"]


def test_existing_file_is_overwritten(server, tmp_path):
    output = tmp_path / "bbb.ruleset"
    output.write_text("previous")
    generate(server, "real.plugin1", "languageBBB", "repo1", "project1", None, output)
    assert _rule_ids(output) == ["repo1.bbb.r1", "repo1.bbb.r2", "repo1.bbb.r3"]


# ---------------------------------------------------------------------------
# generate() — errors
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("field", ["plugin_key", "language", "repository_key", "project_key", "output_path"])
@pytest.mark.parametrize("blank", [None, "", " \t"])
def test_blank_arguments_rejected(server, tmp_path, field, blank):
    args = {
        "plugin_key": "real.plugin1",
        "language": "languageBBB",
        "repository_key": "repo1",
        "project_key": "project1",
        "output_path": str(tmp_path / "out.ruleset"),
    }
    args[field] = blank
    with pytest.raises(ValueError):
        generate(server, branch=None, **args)


def test_empty_path_object_rejected(server):
    # Path("") is Path(".")
    with pytest.raises(ValueError, match="output_path"):
        generate(server, "real.plugin1", "languageBBB", "repo1", "project1", None, Path(""))


def test_ambiguous_profile_propagates(server, tmp_path):
    server.data.add_quality_profile("profile 4", "languageBBB").add_project("project1")
    output = tmp_path / "out.ruleset"
    with pytest.raises(AmbiguousProfileError):
        generate(server, "real.plugin1", "languageBBB", "repo1", "project1", None, output)
    assert not output.exists()


# ---------------------------------------------------------------------------
# to_ruleset_xml()
# ---------------------------------------------------------------------------

def test_ruleset_document_layout():
    assert to_ruleset_xml(["CA1000", "CA1001"]) == (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<RuleSet Name="Rules for SonarQube" Description="This rule set was automatically '
        'generated from SonarQube." ToolsVersion="12.0">\n'
        '  <Rules AnalyzerId="Microsoft.Analyzers.ManagedCodeAnalysis" RuleNamespace="Microsoft.Rules.Managed">\n'
        '    <Rule Id="CA1000" Action="Warning" />\n'
        '    <Rule Id="CA1001" Action="Warning" />\n'
        '  </Rules>\n'
        '</RuleSet>\n'
    )


def test_ruleset_ids_are_escaped():
    root = ET.fromstring(to_ruleset_xml(['a&b<"c">']).split("\n", 1)[1])
    assert [r.get("Id") for r in root.iter("Rule")] == ['a&b<"c">']
