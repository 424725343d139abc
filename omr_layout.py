"""Abstract-unit geometry of a response sheet.

The resolver knows what the sheet should look like and nothing about any
scanned image. Every value it returns is in the units of the layout
(millimetres by default), measured from the top-left corner of the
registration frame unless stated otherwise. It is shared by the sheet
renderer (to place shapes) and by ``omr_projection`` (to locate them in
pixels).
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from omr_config import (
    InvalidArgument,
    LayoutError,
    LayoutSource,
    LayoutSpec,
    discover_layout_file,
    resolve_layout,
)

CORNERS = ("top-left", "top-right", "bottom-left", "bottom-right")


class LayoutResolver:
    """Read-only view of a merged layout with the sheet's position formulas.

    Args:
        source: Explicit override layer: a mapping, a path to a YAML file,
            a ``LayoutSpec`` or ``None``.
        layout_file: Base layout file merged below ``source``.
    """

    def __init__(self, source: LayoutSource = None, layout_file=None) -> None:
        self._spec = resolve_layout(source, layout_file)

    def __repr__(self) -> str:
        return (
            f"LayoutResolver(rows={self.rows}, columns={self.columns}, "
            f"bits={self.barcode_bits})"
        )

    @property
    def spec(self) -> LayoutSpec:
        return self._spec

    @property
    def options(self) -> dict:
        """The full merged layout mapping, collaborator groups included."""
        return self._spec.options

    def show(self, subset: Optional[str] = None) -> str:
        """YAML text of the merged layout or of one group, for diagnostics."""
        return self._spec.dump(subset)

    # Sheet-level values

    @property
    def max_questions(self) -> int:
        return self.rows * self.columns

    @property
    def max_choices_per_question(self) -> int:
        return self._spec.items.max_cells

    @property
    def choice_threshold(self) -> float:
        return self._spec.items.threshold

    @property
    def barcode_bits(self) -> int:
        return self._spec.barcode.bits

    @property
    def rm_dilate(self) -> int:
        return self._spec.reg_marks.dilate

    @property
    def rm_blur(self) -> int:
        return self._spec.reg_marks.blur

    @property
    def rm_crop(self) -> float:
        return self._spec.reg_marks.crop

    @property
    def rm_min_contrast(self) -> float:
        return self._spec.reg_marks.contrast

    # Question cells

    def item_x(self, q: int) -> float:
        """Distance from the frame to the left edge of question ``q``'s first cell."""
        self._check_question(q)
        items = self._spec.items
        return items.left + items.column_width * (q // items.rows) - items.cell_width / 2

    def cell_y(self, q: int) -> float:
        """Distance from the frame to the top edge of all cells of question ``q``."""
        self._check_question(q)
        items = self._spec.items
        return items.top + items.y_spacing * (q % items.rows) - items.cell_height / 2

    def cell_x(self, q: int, c: int) -> float:
        """Distance from the frame to the left edge of choice ``c`` of question ``q``."""
        if not 0 <= c < self.max_choices_per_question:
            raise InvalidArgument(
                f"Choice index {c} outside 0..{self.max_choices_per_question - 1}"
            )
        return self.item_x(q) + self._spec.items.x_spacing * c

    @property
    def cal_cell_x(self) -> float:
        """Left edge of the calibration cell column, one cell per row."""
        return self.reg_frame_width - self._spec.items.x_spacing

    def calibration_cells_y(self) -> List[float]:
        return [self.cell_y(q) for q in range(self.rows)]

    # Barcode

    def barcode_bit_x(self, i: int) -> float:
        # -1 is the calibration position left of bit 0
        if not -1 <= i < self.barcode_bits:
            raise InvalidArgument(f"Barcode bit {i} outside -1..{self.barcode_bits - 1}")
        barcode = self._spec.barcode
        return barcode.left + barcode.spacing * i

    @property
    def barcode_y(self) -> float:
        return self.reg_frame_height - self.barcode_height

    def barcode_bits_set(self, code: int) -> List[int]:
        """Indices of the bars printed for ``code``, least significant first."""
        if code < 0 or code >= 2 ** self.barcode_bits:
            raise InvalidArgument(f"Code {code} does not fit in {self.barcode_bits} bits")
        return [i for i in range(self.barcode_bits) if code >> i & 1]

    # Registration frame

    @property
    def reg_frame_width(self) -> float:
        return self.page_width - self.reg_margin * 2

    @property
    def reg_frame_height(self) -> float:
        return self.page_height - self.reg_margin * 2

    def reg_mark_centers(self) -> Dict[str, Tuple[float, float]]:
        """Mark centres in page coordinates (top-left page origin)."""
        left = self.reg_margin
        top = self.reg_margin
        right = self.page_width - self.reg_margin
        bottom = self.page_height - self.reg_margin
        return {
            "top-left": (left, top),
            "top-right": (right, top),
            "bottom-left": (left, bottom),
            "bottom-right": (right, bottom),
        }

    # Simple parameter extraction

    @property
    def rows(self) -> int:
        return self._spec.items.rows

    @property
    def columns(self) -> int:
        return self._spec.items.columns

    @property
    def cell_width(self) -> float:
        return self._spec.items.cell_width

    @property
    def cell_height(self) -> float:
        return self._spec.items.cell_height

    @property
    def cell_spacing(self) -> float:
        return self._spec.items.x_spacing

    @property
    def item_spacing(self) -> float:
        return self._spec.items.y_spacing

    @property
    def barcode_width(self) -> float:
        return self._spec.barcode.width

    @property
    def barcode_height(self) -> float:
        return self._spec.barcode.height

    @property
    def page_width(self) -> float:
        return self._spec.page_size.width

    @property
    def page_height(self) -> float:
        return self._spec.page_size.height

    @property
    def reg_margin(self) -> float:
        return self._spec.reg_marks.margin

    @property
    def reg_radius(self) -> float:
        return self._spec.reg_marks.radius

    @property
    def reg_search(self) -> float:
        return self._spec.reg_marks.search

    @property
    def reg_offset(self) -> float:
        return self._spec.reg_marks.offset

    @property
    def has_uid(self) -> bool:
        return self._spec.uid.has_uid

    @property
    def uid_digits(self) -> int:
        return self._spec.uid.digits

    def uid_box(self) -> Tuple[float, float, float, float]:
        """(x, y, width, height) of the ID block relative to the frame."""
        uid = self._spec.uid
        return uid.left, uid.top, uid.width, uid.height

    @property
    def uid_cell_size(self) -> Tuple[float, float]:
        return self._spec.uid.cell_width, self._spec.uid.cell_height

    def _check_question(self, q: int) -> None:
        if not 0 <= q < self.max_questions:
            raise InvalidArgument(f"Question index {q} outside 0..{self.max_questions - 1}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print the layout merged from ./layout.yml and an optional override file."""
    parser = argparse.ArgumentParser(
        prog="omr-layout",
        description="Show the sheet layout merged from ./layout.yml and an override file.",
    )
    parser.add_argument("override", nargs="?", type=Path, help="YAML layout merged on top")
    parser.add_argument("-g", "--group", help="Only show this layout group, e.g. items")
    args = parser.parse_args(argv)

    try:
        resolver = LayoutResolver(args.override, layout_file=discover_layout_file())
        text = resolver.show(args.group)
    except LayoutError as exc:
        parser.error(str(exc))
    print(text, end="")
    return 0


if __name__ == "__main__":
    sys.exit(main())
