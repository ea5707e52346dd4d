"""
Department configuration loader.

Loads the departments whose meetings we track from ``departments.yaml``
next to this module.  Each department maps to a listing view on the
video platform; the listing reader uses that view as its fast path.

Key functions:
- list_departments() -> list[Department]
- get_department(department_id) -> Department
- listing_url(department, base_url) -> str
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Department:
    """A municipal body with its own listing view."""

    id: str
    name: str
    view_id: str

    def listing_url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/views/{self.view_id.strip('/')}/"


def get_config_path() -> Path:
    """Path to the bundled departments.yaml."""
    return Path(__file__).parent / "departments.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with path.open() as f:
        return yaml.safe_load(f) or {}


@lru_cache(maxsize=4)
def _load_departments(path: Path) -> tuple[tuple[Department, ...], str | None]:
    data = _load_yaml(path)
    departments = []
    for entry in data.get("departments", []):
        try:
            departments.append(
                Department(
                    id=str(entry["id"]),
                    name=str(entry.get("name", entry["id"])),
                    view_id=str(entry["view_id"]),
                )
            )
        except (KeyError, TypeError):
            logger.warning("Skipping malformed department entry: %r", entry)
    return tuple(departments), data.get("default")


def list_departments(path: Path | None = None) -> list[Department]:
    """All configured departments, in file order."""
    departments, _ = _load_departments(path or get_config_path())
    return list(departments)


def get_department(department_id: str | None = None, path: Path | None = None) -> Department:
    """Look up a department by ID (the configured default when None).

    Raises:
        ValueError: If the department is not configured.
    """
    departments, default = _load_departments(path or get_config_path())
    wanted = department_id or default
    for department in departments:
        if department.id == wanted:
            return department
    known = ", ".join(d.id for d in departments) or "none"
    raise ValueError(f"Unknown department: {wanted!r}. Known: {known}")
