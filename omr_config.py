"""Layered layout configuration shared by sheet rendering and scan processing.

A layout is a mapping of named groups (``page_size``, ``reg_marks``,
``items``, ``barcode``, ``uid``). It is assembled from built-in defaults,
an optional base layout file and an optional explicit override, merged
recursively in that order. Distances are abstract units (millimetres for
the defaults); the origin is the top-left corner of the registration frame.
"""
from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

LAYOUT_FILENAME = "layout.yml"

LayoutSource = Union[None, Mapping[str, Any], str, "os.PathLike[str]", "LayoutSpec"]


class LayoutError(Exception):
    """Base class for layout configuration errors."""


class InvalidArgument(LayoutError, ValueError):
    """Unsupported layout source or an out-of-range query."""


class FileNotFound(LayoutError, FileNotFoundError):
    """An explicitly named layout file does not exist."""


class MissingConfigKey(LayoutError, KeyError):
    """A required group or value is absent after merging."""


DEFAULT_LAYOUT: Dict[str, Dict[str, Any]] = {
    "page_size": {
        "width": 210.0,  # A4 in mm
        "height": 297.0,
    },
    "reg_marks": {
        "margin": 10.0,
        "radius": 2.5,
        "search": 12.0,
        "crop": 2.0,
        "offset": 2.0,
        "dilate": 5,
        "blur": 2,
        "contrast": 20.0,
    },
    "items": {
        "rows": 30,
        "columns": 4,
        "left": 11.5,
        "top": 55.0,
        "column_width": 44.0,
        "x_spacing": 6.4,
        "y_spacing": 7.0,
        "cell_width": 5.2,
        "cell_height": 5.0,
        "max_cells": 5,
        "threshold": 0.75,
    },
    "barcode": {
        "bits": 38,
        "left": 15.0,
        "spacing": 4.0,
        "width": 3.0,
        "height": 3.0,
    },
    "uid": {
        "digits": 0,
        "left": 150.0,
        "top": 10.0,
        "width": 40.0,
        "height": 30.0,
        "cell_width": 3.5,
        "cell_height": 2.5,
    },
}


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``base`` updated recursively with ``override``.

    Nested mappings are merged key by key so that overriding one leaf keeps
    its siblings. Neither argument is modified.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_layout_file(path: Union[str, "os.PathLike[str]"]) -> Dict[str, Any]:
    """Read one YAML layout layer. An empty file is an empty layer."""
    layout_path = Path(path)
    if not layout_path.is_file():
        raise FileNotFound(f"Layout file not found: {layout_path}")

    with layout_path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise InvalidArgument(f"Layout file {layout_path} is not valid YAML") from exc

    logger.debug("Read layout layer from %s", layout_path)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise InvalidArgument(
            f"Layout file {layout_path} must contain a mapping, got {type(data).__name__}"
        )
    return dict(data)


def discover_layout_file(directory: Union[None, str, "os.PathLike[str]"] = None) -> Optional[Path]:
    """Return ``layout.yml`` in ``directory`` (default: cwd) if it exists."""
    candidate = Path(directory if directory is not None else Path.cwd()) / LAYOUT_FILENAME
    return candidate if candidate.is_file() else None


INTEGER_KEYS = frozenset({"dilate", "blur", "rows", "columns", "max_cells", "bits", "digits"})


def _leaf(group: str, values: Mapping[str, Any], key: str) -> Any:
    kind = int if key in INTEGER_KEYS else float
    if key not in values or values[key] is None:
        raise MissingConfigKey(f"{group}.{key}")
    try:
        return kind(values[key])
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"{group}.{key} must be numeric, got {values[key]!r}") from exc


def _build_group(cls, group: str, merged: Mapping[str, Any]):
    values = merged.get(group)
    if values is None:
        raise MissingConfigKey(group)
    if not isinstance(values, Mapping):
        raise InvalidArgument(f"Layout group '{group}' must be a mapping")
    kwargs = {f.name: _leaf(group, values, f.name) for f in fields(cls)}
    return cls(**kwargs)


@dataclass(frozen=True)
class PageSize:
    """Nominal page dimensions."""
    width: float
    height: float


@dataclass(frozen=True)
class RegMarks:
    """Registration mark geometry and detection tuning."""
    margin: float
    radius: float
    search: float
    crop: float
    offset: float
    dilate: int
    blur: int
    contrast: float


@dataclass(frozen=True)
class Items:
    """The response grid, filled column by column."""
    rows: int
    columns: int
    left: float
    top: float
    column_width: float
    x_spacing: float
    y_spacing: float
    cell_width: float
    cell_height: float
    max_cells: int
    threshold: float


@dataclass(frozen=True)
class Barcode:
    """Sheet identifier bars, least significant bit on the left."""
    bits: int
    left: float
    spacing: float
    width: float
    height: float


@dataclass(frozen=True)
class Uid:
    """Optional numeric ID block; ``digits == 0`` means the sheet has none."""
    digits: int
    left: float
    top: float
    width: float
    height: float
    cell_width: float
    cell_height: float

    @property
    def has_uid(self) -> bool:
        return self.digits > 0


GROUPS = {
    "page_size": PageSize,
    "reg_marks": RegMarks,
    "items": Items,
    "barcode": Barcode,
    "uid": Uid,
}


@dataclass(frozen=True)
class LayoutSpec:
    """Complete, validated sheet layout."""
    page_size: PageSize
    reg_marks: RegMarks
    items: Items
    barcode: Barcode
    uid: Uid
    options: Dict[str, Any]

    def __post_init__(self):
        """Validate configuration."""
        if self.items.rows < 1 or self.items.columns < 1:
            raise InvalidArgument("items.rows and items.columns must be positive")
        if self.items.max_cells < 1:
            raise InvalidArgument("items.max_cells must be positive")
        if not 0.0 <= self.items.threshold <= 1.0:
            raise InvalidArgument("items.threshold must lie between 0 and 1")
        # bit 0 doubles as the ink calibration bar
        if self.barcode.bits < 1:
            raise InvalidArgument("barcode.bits must be positive")
        if self.page_size.width <= 2 * self.reg_marks.margin:
            raise InvalidArgument("reg_marks.margin leaves no registration frame width")
        if self.page_size.height <= 2 * self.reg_marks.margin:
            raise InvalidArgument("reg_marks.margin leaves no registration frame height")

    @classmethod
    def from_dict(cls, merged: Mapping[str, Any]) -> "LayoutSpec":
        groups = {name: _build_group(group_cls, name, merged) for name, group_cls in GROUPS.items()}
        extra = sorted(set(merged) - set(GROUPS))
        if extra:
            logger.debug("Carrying layout groups through unchanged: %s", ", ".join(extra))
        return cls(options=copy.deepcopy(dict(merged)), **groups)

    def dump(self, subset: Optional[str] = None) -> str:
        """YAML text of the merged layout, or of one named group."""
        if subset is None:
            out = self.options
        elif subset in self.options:
            out = {subset: self.options[subset]}
        else:
            raise InvalidArgument(f"Unknown layout group: {subset!r}")
        return yaml.safe_dump(out, default_flow_style=False, sort_keys=False)


def _layer(source) -> Dict[str, Any]:
    if isinstance(source, Mapping):
        return dict(source)
    if isinstance(source, (str, os.PathLike)):
        return load_layout_file(source)
    raise InvalidArgument(
        f"Invalid layout source: {type(source).__name__}"
    )


def resolve_layout(
    source: LayoutSource = None,
    layout_file: Union[None, str, "os.PathLike[str]"] = None,
) -> LayoutSpec:
    """Merge defaults < ``layout_file`` < ``source`` into a LayoutSpec.

    A ``LayoutSpec`` source is already complete, so it cannot be combined
    with a ``layout_file``.
    """
    if isinstance(source, LayoutSpec):
        if layout_file is not None:
            raise InvalidArgument("A LayoutSpec source already includes every layer; drop layout_file")
        return source

    merged = copy.deepcopy(DEFAULT_LAYOUT)
    if layout_file is not None:
        merged = deep_merge(merged, load_layout_file(layout_file))
    if source is not None:
        merged = deep_merge(merged, _layer(source))
    return LayoutSpec.from_dict(merged)
