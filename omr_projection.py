"""Pixel rectangles for regions of a scanned response sheet.

``PixelProjector`` wraps a ``LayoutResolver`` and re-expresses its geometry
on an image of known pixel size. Horizontal and vertical scale factors are
independent so that scans stretched along one axis still line up.

Two pairs of factors are used:
- ``cx``/``cy`` map registration-frame units to pixels (cells, barcode).
- ``ppu_x``/``ppu_y`` map page units to pixels (registration mark search).

Rectangles are rounded once, after all layout arithmetic is done, with
exact halves rounded away from zero.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from omr_config import InvalidArgument, LayoutSource
from omr_layout import CORNERS, LayoutResolver

# pixels kept between a registration mark and the image edge
EDGE_BUFFER_PX = 5


def _px(value: float) -> int:
    """Round to the nearest pixel, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


CORNER_ALIASES = {
    "tl": "top-left",
    "tr": "top-right",
    "bl": "bottom-left",
    "br": "bottom-right",
}


@dataclass(frozen=True)
class PixelArea:
    """Axis-aligned rectangle in image pixels."""
    x: int
    y: int
    w: int
    h: int

    def as_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    def crop(self, image):
        """Return the ``image`` view covered by this area (numpy row/column order)."""
        return image[self.y:self.y + self.h, self.x:self.x + self.w]


@dataclass(frozen=True)
class ScaleFactors:
    """Abstract-unit to pixel ratios for one scanned image."""
    cx: float
    cy: float
    ppu_x: float
    ppu_y: float

    @classmethod
    def for_image(cls, width: float, height: float, layout: LayoutResolver) -> "ScaleFactors":
        return cls(
            cx=width / layout.reg_frame_width,
            cy=height / layout.reg_frame_height,
            ppu_x=width / layout.page_width,
            ppu_y=height / layout.page_height,
        )


def _pixel_size(value, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidArgument(f"Image {name} must be a number, got {value!r}")
    try:
        size = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"Image {name} must be a number, got {value!r}") from exc
    if size <= 0:
        raise InvalidArgument(f"Image {name} must be positive, got {value!r}")
    return size


class PixelProjector:
    """Locate sheet regions on a scanned image of ``width`` x ``height`` pixels.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        layout: A ``LayoutResolver`` to wrap, or any layout source accepted by it.
        layout_file: Base layout file, used only when ``layout`` is not a resolver.
    """

    def __init__(
        self,
        width: float,
        height: float,
        layout: LayoutSource | LayoutResolver = None,
        layout_file=None,
    ) -> None:
        self._width = _pixel_size(width, "width")
        self._height = _pixel_size(height, "height")
        if isinstance(layout, LayoutResolver):
            self._layout = layout
        else:
            self._layout = LayoutResolver(layout, layout_file=layout_file)
        self._scale = ScaleFactors.for_image(self._width, self._height, self._layout)

    @classmethod
    def for_image(cls, image, layout=None, layout_file=None) -> "PixelProjector":
        """Build a projector sized from an image array's ``shape``."""
        height, width = image.shape[:2]
        return cls(width, height, layout, layout_file=layout_file)

    def __repr__(self) -> str:
        return f"PixelProjector({self._width:g}x{self._height:g}, {self._layout!r})"

    @property
    def layout(self) -> LayoutResolver:
        return self._layout

    @property
    def scale(self) -> ScaleFactors:
        return self._scale

    # Frame-relative areas

    def _frame_area(self, x: float, y: float, w: float, h: float) -> PixelArea:
        s = self._scale
        return PixelArea(
            x=_px(s.cx * x),
            y=_px(s.cy * y),
            w=_px(s.cx * w),
            h=_px(s.cy * h),
        )

    def choice_cell_area(self, q: int, c: int) -> PixelArea:
        layout = self._layout
        return self._frame_area(
            layout.cell_x(q, c), layout.cell_y(q), layout.cell_width, layout.cell_height
        )

    def choice_cell_areas(self, q: int, choices: Optional[int] = None) -> List[PixelArea]:
        """All choice cells of question ``q``, left to right."""
        count = self.max_choices_per_question if choices is None else choices
        return [self.choice_cell_area(q, c) for c in range(count)]

    def calibration_cell_areas(self) -> List[PixelArea]:
        layout = self._layout
        return [
            self._frame_area(layout.cal_cell_x, y, layout.cell_width, layout.cell_height)
            for y in layout.calibration_cells_y()
        ]

    def barcode_bit_area(self, bit: int) -> PixelArea:
        layout = self._layout
        return self._frame_area(
            layout.barcode_bit_x(bit),
            layout.barcode_y,
            layout.barcode_width,
            layout.barcode_height,
        )

    def barcode_bit_areas(self) -> List[PixelArea]:
        """Bars for bits 0..bits-1, least significant (leftmost) first."""
        return [self.barcode_bit_area(b) for b in range(self._layout.barcode_bits)]

    # areas on the sheet that are certainly white/black
    def paper_white_area(self) -> PixelArea:
        return self.barcode_bit_area(-1)

    def ink_black_area(self) -> PixelArea:
        return self.barcode_bit_area(0)

    # Registration marks

    def rm_search_area(self, corner: str, iteration: int = 0) -> PixelArea:
        """Window in which to look for the registration mark at ``corner``.

        The window grows by one mark radius per ``iteration``. Right and
        bottom windows grow towards the page centre so that their outer
        edge stays put.
        """
        if iteration < 0:
            raise InvalidArgument(f"Search iteration must not be negative: {iteration}")
        corner = CORNER_ALIASES.get(corner, corner)
        if corner not in CORNERS:
            raise InvalidArgument(f"Unknown corner {corner!r}, expected one of {CORNERS}")

        layout = self._layout
        side = layout.reg_search + layout.reg_radius * iteration
        if corner.endswith("left"):
            x = layout.reg_offset
        else:
            x = layout.page_width - side - layout.reg_offset
        if corner.startswith("top"):
            y = layout.reg_offset
        else:
            y = layout.page_height - side - layout.reg_offset

        s = self._scale
        return PixelArea(
            x=_px(s.ppu_x * x),
            y=_px(s.ppu_y * y),
            w=_px(s.ppu_x * side),
            h=_px(s.ppu_y * side),
        )

    def rm_edgy_x(self) -> int:
        """Minimum plausible distance of a mark centre from the left/right edge."""
        return _px(self._scale.ppu_x * self._layout.reg_radius) + EDGE_BUFFER_PX

    def rm_edgy_y(self) -> int:
        return _px(self._scale.ppu_y * self._layout.reg_radius) + EDGE_BUFFER_PX

    def rm_max_search_area_side(self) -> int:
        return _px(self._scale.ppu_x * self._layout.page_width / 4)

    # Pass-through tuning values

    @property
    def max_choices_per_question(self) -> int:
        return self._layout.max_choices_per_question

    @property
    def choice_threshold(self) -> float:
        return self._layout.choice_threshold

    @property
    def rm_dilate(self) -> int:
        return self._layout.rm_dilate

    @property
    def rm_blur(self) -> int:
        return self._layout.rm_blur
