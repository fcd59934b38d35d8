import os

import pytest

from compliance_auditor.app.planning.manifest import (
    MANIFEST_FILENAME,
    Manifest,
    ManifestComponent,
    ManifestError,
    discover_manifest,
    find_manifest,
    load_manifest_components,
    load_manifest_document,
    match_rules_by_tags,
    parse_manifest,
)
from compliance_auditor.app.schemas.ruleset import Rule
from compliance_auditor.tests.fixtures.audit_fixtures import make_file


MANIFEST_YAML = """\
varp: "1"
api:
  path: src/api
  tags: [api routes, authentication]
  deps: [db]
db:
  path:
    - src/db
    - src/models
  tags: [database]
notes: just a string
"""


def _rule(applies_to):
    return Rule(id="R-01", title="T", category="C", applies_to=applies_to)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def test_manifest_document_is_parsed_relative_to_its_directory(tmp_path):
    manifest = load_manifest_document(MANIFEST_YAML, str(tmp_path))

    assert manifest.varp == "1"
    assert set(manifest.components) == {"api", "db"}

    api = manifest.components["api"]
    assert api.paths == [os.path.join(str(tmp_path), "src", "api")]
    assert api.tags == ["api routes", "authentication"]
    assert api.deps == ["db"]

    db = manifest.components["db"]
    assert db.paths == [
        os.path.join(str(tmp_path), "src", "db"),
        os.path.join(str(tmp_path), "src", "models"),
    ]
    assert db.deps == []


def test_missing_varp_key_is_rejected(tmp_path):
    with pytest.raises(ManifestError, match="varp"):
        load_manifest_document("api:\n  path: src/api\n", str(tmp_path))


def test_non_string_varp_is_rejected(tmp_path):
    with pytest.raises(ManifestError):
        load_manifest_document("varp: 1\n", str(tmp_path))


def test_malformed_yaml_is_a_manifest_error(tmp_path):
    with pytest.raises(ManifestError):
        load_manifest_document("varp: [unclosed\n", str(tmp_path))


def test_find_manifest_walks_up_from_target(tmp_path):
    (tmp_path / MANIFEST_FILENAME).write_text(MANIFEST_YAML, encoding="utf-8")
    nested = tmp_path / "src" / "api"
    nested.mkdir(parents=True)

    assert find_manifest(str(nested)) == str(tmp_path / MANIFEST_FILENAME)


def test_parse_and_discover_manifest(tmp_path):
    manifest_path = tmp_path / MANIFEST_FILENAME
    manifest_path.write_text(MANIFEST_YAML, encoding="utf-8")

    parsed = parse_manifest(str(manifest_path))
    discovered = discover_manifest(str(tmp_path))

    assert discovered == parsed


# ----------------------------------------------------------------------
# Components
# ----------------------------------------------------------------------

def test_components_are_filled_by_path_containment(tmp_path):
    manifest = load_manifest_document(MANIFEST_YAML, str(tmp_path))
    files = [
        make_file("src/api/users.ts", "abcd"),
        make_file("src/models/user.py", "abcdefgh", language="python"),
        make_file("src/apiary/bees.ts"),
        make_file("README.md", language="markdown"),
    ]

    components = {
        c.name: c for c in load_manifest_components(manifest, str(tmp_path), files)
    }

    assert components["api"].files == ["src/api/users.ts"]
    assert components["api"].tags == ["api routes", "authentication"]
    assert components["api"].estimated_tokens == 1
    assert components["db"].files == ["src/models/user.py"]
    assert components["db"].languages == ["python"]
    assert components["db"].path == "src/db, src/models"


def test_components_outside_target_or_without_files_are_dropped(tmp_path):
    manifest = Manifest(
        varp="1",
        components={
            "outside": ManifestComponent(paths=[str(tmp_path.parent / "other")]),
            "empty": ManifestComponent(paths=["src/empty"]),
            "everything": ManifestComponent(paths=["."]),
        },
    )
    files = [make_file("src/api/users.ts"), make_file("README.md")]

    components = load_manifest_components(manifest, str(tmp_path), files)

    assert [c.name for c in components] == ["everything"]
    assert components[0].files == ["src/api/users.ts", "README.md"]


# ----------------------------------------------------------------------
# Tag matching
# ----------------------------------------------------------------------

def test_tag_matching_is_bidirectional_and_case_insensitive():
    assert match_rules_by_tags(["API"], _rule(["api routes"]))
    assert match_rules_by_tags(["public api routes"], _rule(["API Routes"]))
    assert not match_rules_by_tags(["database"], _rule(["api routes"]))


def test_rule_without_tags_matches_any_component():
    assert match_rules_by_tags([], _rule([]))
    assert match_rules_by_tags(["anything"], _rule([]))


def test_untagged_component_matches_no_tagged_rule():
    assert not match_rules_by_tags([], _rule(["api routes"]))
