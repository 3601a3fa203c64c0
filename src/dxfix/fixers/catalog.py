"""Rule catalog loading.

Fix rules are configuration data: YAML documents listing steps and their
rules. The built-in catalog ships as package data.
"""

from __future__ import annotations

import importlib.resources
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

from dxfix.fixers.base import FixRule, FixStep, path_matcher
from dxfix.fixers.registry import StepRegistry

BUILTIN_CATALOGS = ["typescript.yaml"]

_FLAG_ALIASES = {
    "i": "IGNORECASE",
    "m": "MULTILINE",
    "s": "DOTALL",
    "x": "VERBOSE",
    "a": "ASCII",
}

_STEP_KEYS = {"name", "description", "priority", "rules"}
_RULE_KEYS = {"name", "pattern", "replacement", "flags", "files", "diagnostic_codes"}


class CatalogError(ValueError):
    """Raised when a rule catalog is malformed."""


def _parse_flags(raw: Any, where: str) -> re.RegexFlag:
    """Turn a list of flag names (or single-letter aliases) into re flags."""
    if raw is None:
        return re.RegexFlag(0)
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        raise CatalogError(f"{where}: 'flags' must be a list of flag names")

    flags = re.RegexFlag(0)
    for name in raw:
        key = _FLAG_ALIASES.get(str(name).lower(), str(name).upper())
        flag = getattr(re.RegexFlag, key, None)
        if flag is None:
            raise CatalogError(f"{where}: unknown regex flag '{name}'")
        flags |= flag
    return flags


def _parse_rule(raw: Any, where: str) -> FixRule:
    """Build a FixRule from one catalog entry."""
    if not isinstance(raw, dict):
        raise CatalogError(f"{where}: rule must be a mapping")

    unknown = set(raw) - _RULE_KEYS
    if unknown:
        raise CatalogError(f"{where}: unknown rule key(s): {', '.join(sorted(unknown))}")

    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise CatalogError(f"{where}: rule requires a non-empty 'name'")
    where = f"{where} ('{name}')"

    pattern = raw.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise CatalogError(f"{where}: rule requires a non-empty 'pattern'")

    replacement = raw.get("replacement")
    if not isinstance(replacement, str):
        raise CatalogError(f"{where}: rule requires a string 'replacement'")

    flags = _parse_flags(raw.get("flags"), where)
    try:
        compiled = re.compile(pattern, flags)
    except re.error as e:
        raise CatalogError(f"{where}: invalid pattern: {e}") from e

    # sub() parses the template before searching, so bad group references surface here
    try:
        compiled.sub(replacement, "")
    except (re.error, IndexError) as e:
        raise CatalogError(f"{where}: invalid replacement: {e}") from e

    file_filter = None
    files = raw.get("files")
    if files is not None:
        if not isinstance(files, str):
            raise CatalogError(f"{where}: 'files' must be a regex string")
        try:
            file_filter = path_matcher(files)
        except re.error as e:
            raise CatalogError(f"{where}: invalid 'files' regex: {e}") from e

    codes = raw.get("diagnostic_codes") or []
    if isinstance(codes, str):
        codes = [codes]
    if not isinstance(codes, list):
        raise CatalogError(f"{where}: 'diagnostic_codes' must be a list")

    return FixRule(
        name=name,
        pattern=compiled,
        transform=replacement,
        file_filter=file_filter,
        diagnostic_codes=frozenset(str(c) for c in codes),
    )


def _parse_step(raw: Any, where: str) -> FixStep:
    """Build a FixStep from one catalog entry."""
    if not isinstance(raw, dict):
        raise CatalogError(f"{where}: step must be a mapping")

    unknown = set(raw) - _STEP_KEYS
    if unknown:
        raise CatalogError(f"{where}: unknown step key(s): {', '.join(sorted(unknown))}")

    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise CatalogError(f"{where}: step requires a non-empty 'name'")
    where = f"{where} ('{name}')"

    priority = raw.get("priority")
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise CatalogError(f"{where}: step requires an integer 'priority'")

    rules_raw = raw.get("rules") or []
    if not isinstance(rules_raw, list):
        raise CatalogError(f"{where}: 'rules' must be a list")

    rules = tuple(
        _parse_rule(rule, f"{where} rule {index + 1}")
        for index, rule in enumerate(rules_raw)
    )

    return FixStep(
        name=name,
        description=str(raw.get("description") or ""),
        priority=priority,
        rules=rules,
    )


def load_catalog_text(text: str, source: str = "<string>") -> list[FixStep]:
    """Parse a YAML catalog document.

    Args:
        text: YAML text with a top-level 'steps' list.
        source: Name used in error messages.

    Returns:
        The steps declared in the document, in declaration order.

    Raises:
        CatalogError: If the document is not a valid catalog.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CatalogError(f"{source}: invalid YAML: {e}") from e

    if not isinstance(data, dict) or "steps" not in data:
        raise CatalogError(f"{source}: catalog must define a top-level 'steps' list")
    if not isinstance(data["steps"], list):
        raise CatalogError(f"{source}: 'steps' must be a list")

    return [
        _parse_step(step, f"{source} step {index + 1}")
        for index, step in enumerate(data["steps"])
    ]


def load_catalog(path: Path) -> list[FixStep]:
    """Load a YAML catalog file.

    Raises:
        CatalogError: If the file cannot be read or is not a valid catalog.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read rule catalog {path}: {e}") from e
    return load_catalog_text(text, source=str(path))


def load_builtin_catalog() -> list[FixStep]:
    """Load the catalogs shipped with the package.

    Raises:
        CatalogError: If a packaged catalog is missing or malformed.
    """
    steps: list[FixStep] = []
    catalogs = importlib.resources.files("dxfix.fixers").joinpath("catalogs")
    for filename in BUILTIN_CATALOGS:
        try:
            text = catalogs.joinpath(filename).read_text(encoding="utf-8")
        except (FileNotFoundError, OSError) as e:
            raise CatalogError(f"Cannot load built-in catalog '{filename}': {e}") from e
        steps.extend(load_catalog_text(text, source=f"builtin:{filename}"))
    return steps


def build_registry(
    catalog_paths: Iterable[Path] = (),
    include_builtin: bool = True,
) -> StepRegistry:
    """Build the step registry for one invocation.

    Args:
        catalog_paths: Extra catalogs, loaded after the built-in one.
        include_builtin: Whether to load the packaged catalog.

    Returns:
        A populated StepRegistry.

    Raises:
        CatalogError: If a catalog is malformed.
        ValueError: If two steps share a priority or a name.
    """
    steps: list[FixStep] = []
    if include_builtin:
        steps.extend(load_builtin_catalog())
    for path in catalog_paths:
        steps.extend(load_catalog(path))
    return StepRegistry.from_steps(steps)
