"""Static manifest extraction: read plugin metadata without executing the source."""

from __future__ import annotations

import ast
from typing import Any

from loguru import logger

from launchbridge.plugins.core.types import Manifest
from launchbridge.utils.exceptions import ManifestParseError

ID_SCHEME = "python"

ATTR_MD_IID = "md_iid"
ATTR_MD_ID = "md_id"

# Top-level assignment name -> Manifest field
SCALAR_FIELDS: dict[str, str] = {
    ATTR_MD_IID: "iid",
    "md_name": "name",
    "md_version": "version",
    "md_description": "description",
    "md_license": "license",
    "md_url": "url",
    "md_readme_url": "readme_url",
}

LIST_FIELDS: dict[str, str] = {
    "md_authors": "authors",
    "md_maintainers": "maintainers",
    "md_lib_dependencies": "runtime_dependencies",
    "md_bin_dependencies": "binary_dependencies",
    "md_credits": "third_party_credits",
    "md_platforms": "platforms",
}

# Accept a bare string in place of a one-element list
SINGLE_STRING_LIST_FIELDS = frozenset(LIST_FIELDS) - {"md_platforms"}


def namespaced_id(module_name: str) -> str:
    """Plugin id used by the host; prefixed so it cannot collide with native plugins."""
    return f"{ID_SCHEME}.{module_name}"


def _string_literal(node: ast.AST) -> str | None:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


def _string_list_literal(node: ast.AST) -> list[str] | None:
    if not isinstance(node, (ast.List, ast.Tuple)):
        return None
    return [value for value in (_string_literal(elt) for elt in node.elts) if value is not None]


def _assignments(tree: ast.Module):
    """Yield (name, value node) for each top-level assignment to a plain name."""
    for node in tree.body:
        if isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name):
                    yield target.id, node.value
        elif isinstance(node, ast.AnnAssign) and node.value is not None and isinstance(node.target, ast.Name):
            yield node.target.id, node.value


def extract_manifest(source: str, module_name: str, filename: str = "<plugin>") -> Manifest:
    """
    Parse source and collect the recognized md_* literals into a Manifest.

    Only top-level assignments are inspected; computed values are ignored so
    the field stays empty. Raises ManifestParseError on invalid syntax.
    """
    try:
        tree = ast.parse(source, filename=filename)
    except (SyntaxError, ValueError) as exc:
        raise ManifestParseError(filename, str(exc)) from exc

    values: dict[str, Any] = {}
    for name, value in _assignments(tree):
        if name in SCALAR_FIELDS:
            literal = _string_literal(value)
            if literal is not None:
                values[SCALAR_FIELDS[name]] = literal
        elif name in LIST_FIELDS:
            items = _string_list_literal(value)
            if items is None and name in SINGLE_STRING_LIST_FIELDS:
                single = _string_literal(value)
                items = [single] if single is not None else None
            if items is not None:
                values[LIST_FIELDS[name]] = tuple(items)
        elif name == ATTR_MD_ID:
            logger.warning(
                "{}: 'md_id' is no longer supported and is ignored. Plugin ids are '{}'.",
                module_name,
                namespaced_id(module_name),
            )

    return Manifest(id=namespaced_id(module_name), **values)
