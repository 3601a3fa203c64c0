"""Fix rule framework.

Provides the rule/step model, the step registry, the in-memory file
transformer and the YAML catalog loader.
"""

from __future__ import annotations

from dxfix.fixers.base import (
    FileFilter,
    FixRule,
    FixStep,
    Transform,
    TransformResult,
    make_step,
    path_matcher,
)
from dxfix.fixers.catalog import (
    CatalogError,
    build_registry,
    load_builtin_catalog,
    load_catalog,
    load_catalog_text,
)
from dxfix.fixers.registry import StepRegistry, UnknownStepError
from dxfix.fixers.transformer import FileTransformer

__all__ = [
    # Base types
    "FileFilter",
    "FixRule",
    "FixStep",
    "Transform",
    "TransformResult",
    "make_step",
    "path_matcher",
    # Registry
    "StepRegistry",
    "UnknownStepError",
    # Transformer
    "FileTransformer",
    # Catalogs
    "CatalogError",
    "build_registry",
    "load_builtin_catalog",
    "load_catalog",
    "load_catalog_text",
]
