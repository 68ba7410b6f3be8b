import pytest

import card_print_engine.config as config
import card_print_engine.errors
import card_print_engine.layout as layout


CARD_LONG = config.mm_to_points(config.CR80_WIDTH_MM)
CARD_SHORT = config.mm_to_points(config.CR80_HEIGHT_MM)
EPSILON = 0.001


#============================================
def plan_cr80(landscape: bool, mode: str) -> config.GridConfig:
	"""
	Plan a CR80 grid on A4 in the complementary page orientation.
	"""
	if landscape:
		card_width, card_height = CARD_LONG, CARD_SHORT
	else:
		card_width, card_height = CARD_SHORT, CARD_LONG
	page_width, page_height = layout.page_size_for_card(card_width, card_height, config.A4)
	return layout.plan(card_width, card_height, page_width, page_height, mode)


#============================================
@pytest.mark.parametrize(
	"landscape, mode, columns, rows",
	[
		(True, "proof", 2, 4),
		(False, "proof", 4, 2),
		(True, "production", 2, 5),
		(False, "production", 5, 2),
	],
)
def test_cr80_grid_counts(landscape: bool, mode: str, columns: int, rows: int) -> None:
	grid = plan_cr80(landscape, mode)
	assert (grid.columns, grid.rows) == (columns, rows)


#============================================
@pytest.mark.parametrize("landscape", [True, False])
@pytest.mark.parametrize("mode", ["proof", "production"])
def test_grid_is_centered(landscape: bool, mode: str) -> None:
	"""
	Ensure the grid plus margins spans the page exactly on both axes.
	"""
	grid = plan_cr80(landscape, mode)
	width = 2 * grid.margin_x + grid.columns * grid.cell_width + (grid.columns - 1) * grid.gap_x
	height = 2 * grid.margin_y + grid.rows * grid.cell_height + (grid.rows - 1) * grid.gap_y
	assert width == pytest.approx(grid.page_width)
	assert height == pytest.approx(grid.page_height)
	assert grid.margin_x >= 0.0
	assert grid.margin_y >= 0.0


#============================================
@pytest.mark.parametrize("landscape", [True, False])
def test_page_orientation_complements_card(landscape: bool) -> None:
	grid = plan_cr80(landscape, "production")
	page_is_landscape = grid.page_width > grid.page_height
	assert page_is_landscape != landscape
	assert grid.cell_is_landscape == landscape


#============================================
def test_square_card_gets_landscape_page() -> None:
	assert layout.page_size_for_card(100.0, 100.0, config.A4) == (max(config.A4), min(config.A4))


#============================================
@pytest.mark.parametrize("mode", ["proof", "production"])
def test_slots_within_page_and_non_overlapping(mode: str) -> None:
	"""
	Ensure all slots are on-page and neighbors never overlap.
	"""
	grid = plan_cr80(True, mode)
	for index in range(grid.slots_per_page):
		x, y, width, height = grid.slot_rect(index)
		assert -EPSILON <= x and x + width <= grid.page_width + EPSILON
		assert -EPSILON <= y and y + height <= grid.page_height + EPSILON

	for col in range(grid.columns - 1):
		left = grid.slot_rect(col)
		right = grid.slot_rect(col + 1)
		assert right[0] >= left[0] + left[2] - EPSILON
	for row in range(grid.rows - 1):
		upper = grid.slot_rect(row * grid.columns)
		lower = grid.slot_rect((row + 1) * grid.columns)
		assert lower[1] >= upper[1] + upper[3] - EPSILON


#============================================
def test_slot_order_is_row_major() -> None:
	grid = plan_cr80(True, "production")
	first = grid.slot_rect(0)
	second = grid.slot_rect(1)
	third = grid.slot_rect(2)
	assert second[1] == pytest.approx(first[1])
	assert second[0] > first[0]
	assert third[0] == pytest.approx(first[0])
	assert third[1] > first[1]
	assert grid.slot_rect(grid.slots_per_page) == first


#============================================
def test_pdf_slot_rect_flips_y() -> None:
	grid = plan_cr80(True, "production")
	x, y, width, height = grid.slot_rect(0)
	pdf_x, pdf_y, _, _ = grid.slot_rect_pdf(0)
	assert pdf_x == x
	assert pdf_y == pytest.approx(grid.page_height - y - height)


#============================================
def test_preset_counts_clamp_to_page() -> None:
	"""
	Ensure a preset count that overflows the page is reduced to what fits.
	"""
	grid = layout.plan(250.0, 160.0, 595.0, 600.0, "production")
	assert grid.columns == 2
	assert grid.rows == 3
	assert grid.margin_y >= 0.0


#============================================
def test_card_too_large_for_page() -> None:
	with pytest.raises(card_print_engine.errors.CardTooLargeForPage):
		layout.plan(700.0, 300.0, 595.0, 842.0, "proof")


#============================================
def test_invalid_inputs_rejected() -> None:
	with pytest.raises(ValueError):
		layout.plan(0.0, 100.0, 595.0, 842.0, "proof")
	with pytest.raises(ValueError):
		layout.plan(100.0, 50.0, 595.0, 842.0, "draft")


#============================================
def test_pages_needed() -> None:
	grid = plan_cr80(True, "production")
	assert layout.pages_needed(0, grid) == 0
	assert layout.pages_needed(10, grid) == 1
	assert layout.pages_needed(23, grid) == 3


#============================================
def test_cover_fit_example() -> None:
	"""
	Ensure a square photo covers a 120x150 box at half scale, centered.
	"""
	fitted = layout.compute_cover_fit(0.0, 0.0, 120.0, 150.0, 300.0, 300.0)
	assert fitted.scale == pytest.approx(0.5)
	assert fitted.width == pytest.approx(150.0)
	assert fitted.height == pytest.approx(150.0)
	assert fitted.x == pytest.approx(-15.0)
	assert fitted.y == pytest.approx(0.0)


#============================================
def test_contain_and_stretch_fit() -> None:
	contained = layout.compute_contain_fit(10.0, 20.0, 200.0, 100.0, 400.0, 400.0)
	assert (contained.width, contained.height) == (100.0, 100.0)
	assert contained.x == pytest.approx(60.0)
	assert contained.y == pytest.approx(20.0)
	stretched = layout.compute_fit("stretch", (10.0, 20.0, 200.0, 100.0), 400.0, 400.0)
	assert (stretched.x, stretched.y, stretched.width, stretched.height) == (10.0, 20.0, 200.0, 100.0)
	with pytest.raises(ValueError):
		layout.compute_fit("fill", (0.0, 0.0, 1.0, 1.0), 1.0, 1.0)
