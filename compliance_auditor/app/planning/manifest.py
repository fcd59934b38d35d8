"""
Component manifest adapter.

A manifest (`varp.yaml`) is an externally maintained component map:

    varp: "1"
    api:
      path: src/api
      tags: [api routes, authentication]
      deps: [db]
    db:
      path: [src/db, src/models]
      tags: [database]

Every top-level key other than `varp` is a component. Paths are resolved
relative to the manifest's directory.

IMPORTANT:
- Loading a manifest is optional; absence means heuristic planning
- A malformed manifest raises ManifestError
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field

from compliance_auditor.app.schemas.plan import AuditComponent
from compliance_auditor.app.schemas.ruleset import Rule
from compliance_auditor.app.schemas.source import SourceFile
from compliance_auditor.app.utils.tokens import estimate_tokens


logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "varp.yaml"


class ManifestError(ValueError):
    """Raised when a manifest document is structurally invalid."""


class ManifestComponent(BaseModel):
    paths: List[str] = Field(
        ...,
        min_length=1,
        description="Component roots (absolute, or relative to the audit target)",
    )
    tags: List[str] = Field(default_factory=list)
    deps: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class Manifest(BaseModel):
    varp: str
    components: Dict[str, ManifestComponent] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")


# ----------------------------------------------------------------------
# Discovery / parsing
# ----------------------------------------------------------------------


def find_manifest(target_path: str) -> Optional[str]:
    """
    Walk up from target_path looking for a manifest file.

    Returns the absolute manifest path, or None if none is found before
    the filesystem root.
    """
    directory = os.path.abspath(target_path)
    if os.path.isfile(directory):
        directory = os.path.dirname(directory)

    while True:
        candidate = os.path.join(directory, MANIFEST_FILENAME)
        if os.path.isfile(candidate):
            return candidate

        parent = os.path.dirname(directory)
        if parent == directory:
            return None
        directory = parent


def _as_str_list(value: object) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def load_manifest_document(raw: str, base_dir: str) -> Manifest:
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ManifestError(f"Invalid manifest: {exc}") from exc

    if not isinstance(parsed, dict) or "varp" not in parsed:
        raise ManifestError("Invalid manifest: missing 'varp' key")

    version = parsed["varp"]
    if not isinstance(version, str):
        raise ManifestError("Invalid manifest: 'varp' must be a string")

    components: Dict[str, ManifestComponent] = {}

    for name, value in parsed.items():
        if name == "varp" or not isinstance(value, dict):
            continue

        path = value.get("path")
        if not path:
            continue

        raw_paths = path if isinstance(path, list) else [path]

        components[str(name)] = ManifestComponent(
            paths=[
                os.path.abspath(os.path.join(base_dir, str(p)))
                for p in raw_paths
            ],
            tags=_as_str_list(value.get("tags")),
            deps=_as_str_list(value.get("deps")),
        )

    return Manifest(varp=version, components=components)


def parse_manifest(manifest_path: str) -> Manifest:
    with open(manifest_path, "r", encoding="utf-8") as handle:
        raw = handle.read()

    return load_manifest_document(
        raw,
        base_dir=os.path.dirname(os.path.abspath(manifest_path)),
    )


def discover_manifest(target_path: str) -> Optional[Manifest]:
    manifest_path = find_manifest(target_path)
    if manifest_path is None:
        return None

    logger.info("Using component manifest %s", manifest_path)
    return parse_manifest(manifest_path)


# ----------------------------------------------------------------------
# Components
# ----------------------------------------------------------------------


def _relative_to_target(path: str, target_path: str) -> Optional[str]:
    target = os.path.abspath(target_path)
    absolute = os.path.abspath(os.path.join(target, path))
    relative = os.path.relpath(absolute, target).replace(os.sep, "/")

    if relative == ".." or relative.startswith("../"):
        return None
    return relative


def _contains(root: str, relative_file: str) -> bool:
    if root == ".":
        return True
    return relative_file == root or relative_file.startswith(root + "/")


def load_manifest_components(
    manifest: Manifest,
    target_path: str,
    files: Sequence[SourceFile],
) -> List[AuditComponent]:
    """
    Convert manifest components under the target into AuditComponents.

    Files are assigned by path containment; a file outside every
    component stays unassigned. Components with no files are dropped.
    """
    components: List[AuditComponent] = []

    for name, entry in manifest.components.items():
        roots = [
            rel
            for rel in (_relative_to_target(p, target_path) for p in entry.paths)
            if rel is not None
        ]
        if not roots:
            continue

        matched = [
            f for f in files
            if any(_contains(root, f.relative_path) for root in roots)
        ]
        if not matched:
            continue

        components.append(
            AuditComponent(
                name=name,
                path=", ".join(roots),
                files=[f.relative_path for f in matched],
                languages=list(dict.fromkeys(f.language for f in matched)),
                estimated_tokens=sum(estimate_tokens(f.content) for f in matched),
                tags=list(entry.tags),
            )
        )

    return components


def match_rules_by_tags(component_tags: Sequence[str], rule: Rule) -> bool:
    """
    Case-insensitive substring match between component tags and a rule's
    applies-to tags, in either direction.
    """
    if not rule.applies_to:
        return True
    if not component_tags:
        return False

    for rule_tag in rule.applies_to:
        normalized_rule = rule_tag.lower().strip()
        for component_tag in component_tags:
            normalized_component = component_tag.lower().strip()
            if (
                normalized_component in normalized_rule
                or normalized_rule in normalized_component
            ):
                return True

    return False
