"""
Sheet layout planning and fit geometry.
"""

# Standard Library
import dataclasses
import math

# local repo modules
import card_print_engine as cpe
import card_print_engine.config
import card_print_engine.errors


GridConfig = cpe.config.GridConfig
LayoutPreset = cpe.config.LayoutPreset
CardTooLargeForPage = cpe.errors.CardTooLargeForPage

FIT_STRETCH = cpe.config.FIT_STRETCH
FIT_CONTAIN = cpe.config.FIT_CONTAIN
FIT_COVER = cpe.config.FIT_COVER

FIT_EPSILON = 1e-6


@dataclasses.dataclass(frozen=True)
class FitBox:
	x: float
	y: float
	width: float
	height: float
	scale_x: float
	scale_y: float

	@property
	def scale(self) -> float:
		return min(self.scale_x, self.scale_y)


#============================================
def compute_cover_fit(
	box_x: float,
	box_y: float,
	box_width: float,
	box_height: float,
	image_width: float,
	image_height: float,
) -> FitBox:
	"""
	Scale an image to fully cover a box, centered, overflow to be clipped.

	Args:
		box_x: Box left.
		box_y: Box top (or bottom, the math is symmetric).
		box_width: Box width.
		box_height: Box height.
		image_width: Source image width.
		image_height: Source image height.

	Returns:
		FitBox with the drawn image rectangle and uniform scale.
	"""
	scale = max(box_width / image_width, box_height / image_height)
	width = image_width * scale
	height = image_height * scale
	x = box_x + (box_width - width) / 2.0
	y = box_y + (box_height - height) / 2.0
	return FitBox(x=x, y=y, width=width, height=height, scale_x=scale, scale_y=scale)


#============================================
def compute_contain_fit(
	box_x: float,
	box_y: float,
	box_width: float,
	box_height: float,
	image_width: float,
	image_height: float,
) -> FitBox:
	"""
	Scale an image to fit entirely inside a box with symmetric letterboxing.

	Args:
		box_x: Box left.
		box_y: Box top.
		box_width: Box width.
		box_height: Box height.
		image_width: Source image width.
		image_height: Source image height.

	Returns:
		FitBox with the drawn image rectangle and uniform scale.
	"""
	scale = min(box_width / image_width, box_height / image_height)
	width = image_width * scale
	height = image_height * scale
	x = box_x + (box_width - width) / 2.0
	y = box_y + (box_height - height) / 2.0
	return FitBox(x=x, y=y, width=width, height=height, scale_x=scale, scale_y=scale)


#============================================
def compute_stretch_fit(
	box_x: float,
	box_y: float,
	box_width: float,
	box_height: float,
	image_width: float,
	image_height: float,
) -> FitBox:
	return FitBox(
		x=box_x,
		y=box_y,
		width=box_width,
		height=box_height,
		scale_x=box_width / image_width,
		scale_y=box_height / image_height,
	)


FIT_FUNCTIONS = {
	FIT_STRETCH: compute_stretch_fit,
	FIT_CONTAIN: compute_contain_fit,
	FIT_COVER: compute_cover_fit,
}


#============================================
def compute_fit(
	fit: str,
	box: tuple[float, float, float, float],
	image_width: float,
	image_height: float,
) -> FitBox:
	"""
	Dispatch to a fit policy by name.

	Args:
		fit: One of "stretch", "contain", "cover".
		box: Target (x, y, width, height).
		image_width: Source image width.
		image_height: Source image height.

	Returns:
		FitBox.
	"""
	function = FIT_FUNCTIONS.get(fit.strip().lower())
	if function is None:
		raise ValueError(f"Unknown fit policy: {fit!r}")
	return function(box[0], box[1], box[2], box[3], image_width, image_height)


#============================================
def page_size_for_card(
	card_width: float,
	card_height: float,
	paper: tuple[float, float] = cpe.config.A4,
) -> tuple[float, float]:
	"""
	Pick the page orientation complementary to the card orientation.

	Landscape cards go on a portrait page, portrait and square cards on a
	landscape page.

	Args:
		card_width: Card width.
		card_height: Card height.
		paper: Paper size in any orientation.

	Returns:
		Tuple of (page_width, page_height).
	"""
	short_side = min(paper)
	long_side = max(paper)
	if card_width > card_height:
		return (short_side, long_side)
	return (long_side, short_side)


#============================================
def max_count_that_fits(available: float, item: float, gap: float, limit: int) -> int:
	"""
	Find how many items fit along one axis, capped at a preset limit.

	Args:
		available: Page extent.
		item: Card extent.
		gap: Gap between adjacent cards.
		limit: Preset maximum.

	Returns:
		Count in the range 0..limit.
	"""
	count = limit
	while count > 0:
		needed = count * item + (count - 1) * gap
		if needed <= available + FIT_EPSILON:
			return count
		count -= 1
	return 0


#============================================
def plan(
	card_width: float,
	card_height: float,
	page_width: float,
	page_height: float,
	mode: "str | LayoutPreset",
) -> GridConfig:
	"""
	Compute a centered card grid for one page.

	The preset supplies columns, rows, and gaps for the card orientation;
	margins are derived so the grid sits centered with no leftover slack.

	Args:
		card_width: Card width in page units.
		card_height: Card height in page units.
		page_width: Page width in page units.
		page_height: Page height in page units.
		mode: "proof", "production", or a LayoutPreset.

	Returns:
		GridConfig.
	"""
	if card_width <= 0 or card_height <= 0:
		raise ValueError(f"Card size must be positive: {card_width}x{card_height}")
	preset = cpe.config.get_preset(mode)
	if card_width > card_height:
		grid_spec = preset.landscape
	else:
		grid_spec = preset.portrait

	columns = max_count_that_fits(page_width, card_width, grid_spec.gap_x, grid_spec.columns)
	rows = max_count_that_fits(page_height, card_height, grid_spec.gap_y, grid_spec.rows)
	if columns == 0 or rows == 0:
		raise CardTooLargeForPage(
			f"Card {card_width:.1f}x{card_height:.1f} does not fit on page "
			f"{page_width:.1f}x{page_height:.1f} in {preset.name} mode"
		)

	content_width = columns * card_width + (columns - 1) * grid_spec.gap_x
	content_height = rows * card_height + (rows - 1) * grid_spec.gap_y
	return GridConfig(
		cell_width=card_width,
		cell_height=card_height,
		columns=columns,
		rows=rows,
		gap_x=grid_spec.gap_x,
		gap_y=grid_spec.gap_y,
		margin_x=(page_width - content_width) / 2.0,
		margin_y=(page_height - content_height) / 2.0,
		page_width=page_width,
		page_height=page_height,
	)


#============================================
def pages_needed(card_count: int, grid: GridConfig) -> int:
	if card_count <= 0:
		return 0
	return math.ceil(card_count / grid.slots_per_page)
