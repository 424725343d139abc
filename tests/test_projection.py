import pytest

from omr_config import InvalidArgument
from omr_layout import LayoutResolver
from omr_projection import PixelArea, PixelProjector


# 100 x 80 registration frame inside a 120 x 100 page
FRAME_LAYOUT = {
    "page_size": {"width": 120, "height": 100},
    "reg_marks": {"margin": 10},
    "items": {
        "rows": 2,
        "columns": 1,
        "left": 10.2,
        "top": 5,
        "column_width": 50,
        "x_spacing": 20,
        "y_spacing": 15,
        "cell_width": 10.5,
        "cell_height": 6.2,
    },
}


def test_scale_factors_are_per_axis():
    projector = PixelProjector(250, 240, FRAME_LAYOUT)

    assert projector.scale.cx == pytest.approx(2.5)
    assert projector.scale.cy == pytest.approx(3.0)
    assert projector.scale.ppu_x == pytest.approx(250 / 120)
    assert projector.scale.ppu_y == pytest.approx(2.4)


def test_choice_cell_area_rounds_scaled_values():
    projector = PixelProjector(200, 160, FRAME_LAYOUT)

    # x: 2 * 24.95, y: 2 * 16.9, w: 2 * 10.5, h: 2 * 6.2
    assert projector.choice_cell_area(1, 1) == PixelArea(x=50, y=34, w=21, h=12)


def test_choice_cell_area_with_uneven_scan():
    projector = PixelProjector(250, 240, FRAME_LAYOUT)
    area = projector.choice_cell_area(0, 0)

    assert (area.w, area.h) == (round(2.5 * 10.5), round(3.0 * 6.2))
    assert (area.w, area.h) == (26, 19)


def test_choice_cell_areas_cover_every_choice():
    projector = PixelProjector(200, 160, FRAME_LAYOUT)
    areas = projector.choice_cell_areas(0)

    assert len(areas) == projector.max_choices_per_question
    assert [a.x for a in areas] == sorted(a.x for a in areas)
    assert len(projector.choice_cell_areas(0, choices=2)) == 2


def test_calibration_cell_areas_one_per_row():
    projector = PixelProjector(200, 160, FRAME_LAYOUT)
    areas = projector.calibration_cell_areas()

    assert len(areas) == 2
    assert {a.x for a in areas} == {160}  # 2 * (100 - 20)
    assert [a.y for a in areas] == [projector.choice_cell_area(q, 0).y for q in range(2)]


def test_barcode_bit_areas_left_to_right():
    projector = PixelProjector(190, 277, {"barcode": {"bits": 3, "left": 0, "spacing": 4}})
    areas = projector.barcode_bit_areas()

    assert [a.x for a in areas] == [0, 4, 8]
    assert len({a.y for a in areas}) == 1


def test_calibration_reference_areas():
    projector = PixelProjector(190, 277, {"barcode": {"bits": 3, "left": 0, "spacing": 4}})

    assert projector.paper_white_area() == projector.barcode_bit_area(-1)
    assert projector.paper_white_area().x == -4
    assert projector.ink_black_area() == projector.barcode_bit_area(0)
    with pytest.raises(InvalidArgument):
        projector.barcode_bit_area(3)


def test_rm_search_area_base_window():
    projector = PixelProjector(420, 594)

    assert projector.rm_search_area("top-left") == PixelArea(x=4, y=4, w=24, h=24)
    assert projector.rm_search_area("bottom-right", 0) == PixelArea(x=392, y=566, w=24, h=24)
    assert projector.rm_search_area("tr") == projector.rm_search_area("top-right")


@pytest.mark.parametrize("corner", ["top-left", "top-right", "bottom-left", "bottom-right"])
def test_rm_search_area_grows_with_iteration(corner):
    projector = PixelProjector(420, 594)
    areas = [projector.rm_search_area(corner, i) for i in range(20)]

    sides = [a.w for a in areas]
    assert sides == sorted(sides)
    assert areas[0].w == round(projector.scale.ppu_x * 12)
    assert areas[0].h == round(projector.scale.ppu_y * 12)


def test_rm_search_area_far_edge_fixed():
    projector = PixelProjector(420, 594)

    for i in range(10):
        right = projector.rm_search_area("bottom-right", i)
        left = projector.rm_search_area("top-left", i)
        assert right.x + right.w == 416
        assert right.y + right.h == 590
        assert (left.x, left.y) == (4, 4)


def test_rm_search_area_rejects_bad_input():
    projector = PixelProjector(420, 594)

    with pytest.raises(InvalidArgument):
        projector.rm_search_area("middle")
    with pytest.raises(InvalidArgument):
        projector.rm_search_area("top-left", -1)


def test_rm_limits():
    projector = PixelProjector(420, 594)

    assert projector.rm_edgy_x() == 10
    assert projector.rm_edgy_y() == 10
    assert projector.rm_max_search_area_side() == 105


def test_wraps_existing_resolver():
    layout = LayoutResolver({"items": {"threshold": 0.4}})
    projector = PixelProjector(100, 100, layout)

    assert projector.layout is layout
    assert projector.choice_threshold == pytest.approx(0.4)
    assert projector.rm_dilate == layout.rm_dilate
    assert projector.rm_blur == layout.rm_blur


@pytest.mark.parametrize("width,height", [(0, 100), (100, -3), ("wide", 100), (None, 100)])
def test_invalid_image_size(width, height):
    with pytest.raises(InvalidArgument):
        PixelProjector(width, height)


def test_invalid_layout_argument():
    with pytest.raises(InvalidArgument):
        PixelProjector(100, 100, 12)


def test_area_as_dict():
    assert PixelArea(1, 2, 3, 4).as_dict() == {"x": 1, "y": 2, "w": 3, "h": 4}


def test_for_image_and_crop():
    np = pytest.importorskip("numpy")
    image = np.zeros((277, 190, 3), dtype=np.uint8)
    projector = PixelProjector.for_image(image)

    assert projector.scale.cx == pytest.approx(1.0)
    assert projector.scale.cy == pytest.approx(1.0)

    area = projector.ink_black_area()
    image[area.y:area.y + area.h, area.x:area.x + area.w] = 255
    region = area.crop(image)
    assert region.shape == (area.h, area.w, 3)
    assert region.min() == 255


def test_half_pixels_round_away_from_zero():
    layout = dict(FRAME_LAYOUT, items=dict(FRAME_LAYOUT["items"], cell_width=10.25, cell_height=6.25))
    projector = PixelProjector(200, 160, layout)
    area = projector.choice_cell_area(0, 0)

    # 2 * 10.25 = 20.5, 2 * 6.25 = 12.5
    assert (area.w, area.h) == (21, 13)


def test_negative_half_pixels_round_away_from_zero():
    projector = PixelProjector(190, 277, {"barcode": {"bits": 3, "left": 0, "spacing": 4.5}})

    assert projector.paper_white_area().x == -5
    assert projector.barcode_bit_area(1).x == 5
