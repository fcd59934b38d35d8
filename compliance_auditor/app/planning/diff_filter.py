"""
Incremental audit scoping.

Restricts an audit to files changed relative to a git ref, optionally
widened to every file of components that depend on a changed component.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections import deque
from typing import Deque, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from compliance_auditor.app.planning.manifest import (
    Manifest,
    load_manifest_components,
)
from compliance_auditor.app.schemas.compliance_report import DiffScope
from compliance_auditor.app.schemas.source import SourceFile


logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 10


def get_changed_files(target_path: str, ref: str = "HEAD") -> List[str]:
    """
    Paths changed relative to `ref`, as reported by
    `git diff --name-only --relative`: relative to the target directory,
    and limited to it when the target is a subdirectory of the repository.

    Returns an empty list when git is unavailable, the target is not a
    repository, or the diff fails.
    """
    try:
        completed = subprocess.run(
            ["git", "diff", "--name-only", "--relative", ref],
            cwd=os.path.abspath(target_path),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("git diff against %s failed: %s", ref, exc)
        return []

    if completed.returncode != 0:
        logger.warning(
            "git diff against %s exited with status %s",
            ref,
            completed.returncode,
        )
        return []

    return [line for line in completed.stdout.strip().split("\n") if line]


def filter_to_changed(
    files: Sequence[SourceFile],
    changed_paths: Sequence[str],
) -> List[SourceFile]:
    changed = set(changed_paths)
    return [f for f in files if f.relative_path in changed]


def expand_with_dependents(
    changed_paths: Sequence[str],
    manifest: Manifest,
    component_files: Mapping[str, Sequence[str]],
) -> List[str]:
    """
    Widen a change set to every file of every transitively dependent
    component.

    `component_files` maps component name to its relative file paths
    (as assigned during planning). Dependency cycles are tolerated.
    """
    changed = list(changed_paths)
    changed_set = set(changed)

    seeds = [
        name for name, paths in component_files.items()
        if changed_set.intersection(paths)
    ]
    if not seeds:
        return changed

    dependents: Dict[str, List[str]] = {name: [] for name in manifest.components}
    for name, entry in manifest.components.items():
        for dep in entry.deps:
            if dep in dependents:
                dependents[dep].append(name)

    affected: Set[str] = set()
    queue: Deque[str] = deque(seeds)

    while queue:
        current = queue.popleft()
        if current in affected:
            continue
        affected.add(current)
        queue.extend(d for d in dependents.get(current, []) if d not in affected)

    expanded = list(changed)
    seen = set(changed)
    for name in component_files:
        if name not in affected:
            continue
        for path in component_files[name]:
            if path not in seen:
                seen.add(path)
                expanded.append(path)

    return expanded


def scope_to_diff(
    files: Sequence[SourceFile],
    target_path: str,
    ref: str = "HEAD",
    manifest: Optional[Manifest] = None,
) -> Tuple[List[SourceFile], DiffScope]:
    """
    Restrict files to those changed relative to `ref`.

    With a manifest, the change set is first widened to every file of
    each dependent component. `DiffScope.changed_files` records the
    size of the raw git change set.
    """
    changed = get_changed_files(target_path, ref)
    logger.info("Incremental audit: %s file(s) changed since %s", len(changed), ref)

    selected = changed
    if manifest is not None:
        component_files = {
            component.name: component.files
            for component in load_manifest_components(manifest, target_path, files)
        }
        selected = expand_with_dependents(changed, manifest, component_files)

    return (
        filter_to_changed(files, selected),
        DiffScope(ref=ref, changed_files=len(changed)),
    )
