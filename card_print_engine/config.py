"""
Shared configuration, presets, and constants.
"""

# Standard Library
import dataclasses

# PIP3 modules
import reportlab.lib.pagesizes
import reportlab.lib.units


MM = reportlab.lib.units.mm

# paper sizes in points, portrait
A4 = reportlab.lib.pagesizes.A4
LETTER = reportlab.lib.pagesizes.letter
PAPER_SIZES = {
	"a4": A4,
	"letter": LETTER,
}
DEFAULT_PAPER = "a4"

# CR80 card, landscape
CR80_WIDTH_MM = 85.6
CR80_HEIGHT_MM = 54.0
DEFAULT_RENDER_WIDTH = 1011
DEFAULT_RENDER_HEIGHT = 638

MODE_PROOF = "proof"
MODE_PRODUCTION = "production"

FIT_STRETCH = "stretch"
FIT_CONTAIN = "contain"
FIT_COVER = "cover"

DEFAULT_BACKGROUND = "#FFFFFF"
DEFAULT_TEXT_COLOR = "#000000"
DEFAULT_FONT_SIZE = 24.0
DEFAULT_MIN_FONT_SIZE = 8.0
DEFAULT_FONT_WEIGHT = 400
TEXT_LEADING = 1.2
PLACEHOLDER_FILL = "#E5E7EB"
PLACEHOLDER_STROKE = "#9CA3AF"
PLACEHOLDER_STROKE_WIDTH = 2

FONT_CANDIDATES = {
	"regular": (
		"DejaVuSans.ttf",
		"/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
		"/usr/share/fonts/dejavu/DejaVuSans.ttf",
		"/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
	),
	"bold": (
		"DejaVuSans-Bold.ttf",
		"/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
		"/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
		"/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
	),
	"italic": (
		"DejaVuSans-Oblique.ttf",
		"/usr/share/fonts/truetype/dejavu/DejaVuSans-Oblique.ttf",
		"/usr/share/fonts/truetype/liberation/LiberationSans-Italic.ttf",
	),
	"bold_italic": (
		"DejaVuSans-BoldOblique.ttf",
		"/usr/share/fonts/truetype/dejavu/DejaVuSans-BoldOblique.ttf",
		"/usr/share/fonts/truetype/liberation/LiberationSans-BoldItalic.ttf",
	),
}

WATERMARK_OPACITY = 0.15
WATERMARK_WIDTH = 60.0 * MM
WATERMARK_PITCH = 80.0 * MM
WATERMARK_OFFSET_X = 20.0 * MM
WATERMARK_OFFSET_Y = 40.0 * MM
WATERMARK_ANGLE = 45.0

FOOTER_FONT = "Helvetica"
FOOTER_FONT_SIZE = 8.0
FOOTER_GRAY = 150.0 / 255.0
FOOTER_OFFSET = 5.0 * MM
PROOF_FOOTER_TEXT = "Draft Proof - Not for Official Use"

OUTLINE_GRAY = 200.0 / 255.0
OUTLINE_WIDTH = 0.5

REQUEST_TIMEOUT = 30
PROGRESS_BAR_WIDTH = 20
PROGRESS_UPDATE_EVERY = 10


@dataclasses.dataclass(frozen=True)
class GridSpec:
	columns: int
	rows: int
	gap_x: float
	gap_y: float


@dataclasses.dataclass(frozen=True)
class LayoutPreset:
	name: str
	landscape: GridSpec
	portrait: GridSpec
	fit: str
	draw_outlines: bool
	default_footer: str | None


@dataclasses.dataclass(frozen=True)
class GridConfig:
	cell_width: float
	cell_height: float
	columns: int
	rows: int
	gap_x: float
	gap_y: float
	margin_x: float
	margin_y: float
	page_width: float
	page_height: float

	@property
	def slots_per_page(self) -> int:
		return self.columns * self.rows

	@property
	def cell_is_landscape(self) -> bool:
		return self.cell_width > self.cell_height

	#============================================
	def slot_rect(self, index: int) -> tuple[float, float, float, float]:
		"""
		Compute a slot rectangle in top-left page space.

		Slots fill row-major: left to right, then top to bottom.

		Args:
			index: Card index, global or within a page.

		Returns:
			Tuple of (x, y, width, height).
		"""
		slot = index % self.slots_per_page
		col = slot % self.columns
		row = slot // self.columns
		x = self.margin_x + col * (self.cell_width + self.gap_x)
		y = self.margin_y + row * (self.cell_height + self.gap_y)
		return (x, y, self.cell_width, self.cell_height)

	#============================================
	def slot_rect_pdf(self, index: int) -> tuple[float, float, float, float]:
		"""
		Compute a slot rectangle with a bottom-left origin for PDF drawing.

		Args:
			index: Card index.

		Returns:
			Tuple of (x, y, width, height).
		"""
		x, y, width, height = self.slot_rect(index)
		return (x, self.page_height - y - height, width, height)


@dataclasses.dataclass(frozen=True)
class BatchOptions:
	mode: str = MODE_PROOF
	watermark_ref: str | None = None
	footer_text: str | None = None
	use_default_footer: bool = True
	render_width: int | None = None
	render_height: int | None = None
	paper: str = DEFAULT_PAPER
	card_width_mm: float = CR80_WIDTH_MM
	card_height_mm: float = CR80_HEIGHT_MM


PROOF_PRESET = LayoutPreset(
	name=MODE_PROOF,
	landscape=GridSpec(columns=2, rows=4, gap_x=10.0 * MM, gap_y=15.0 * MM),
	portrait=GridSpec(columns=4, rows=2, gap_x=15.0 * MM, gap_y=10.0 * MM),
	fit=FIT_CONTAIN,
	draw_outlines=True,
	default_footer=PROOF_FOOTER_TEXT,
)

PRODUCTION_PRESET = LayoutPreset(
	name=MODE_PRODUCTION,
	landscape=GridSpec(columns=2, rows=5, gap_x=5.0 * MM, gap_y=2.0 * MM),
	portrait=GridSpec(columns=5, rows=2, gap_x=2.0 * MM, gap_y=5.0 * MM),
	fit=FIT_STRETCH,
	draw_outlines=False,
	default_footer=None,
)

PRESETS = {
	MODE_PROOF: PROOF_PRESET,
	MODE_PRODUCTION: PRODUCTION_PRESET,
}


#============================================
def mm_to_points(value: float) -> float:
	"""
	Convert millimeters to points.

	Args:
		value: Millimeters value.

	Returns:
		Points value.
	"""
	return value * MM


#============================================
def get_preset(mode: "str | LayoutPreset") -> LayoutPreset:
	"""
	Look up a layout preset by mode name.

	Args:
		mode: Mode string or an explicit preset.

	Returns:
		LayoutPreset.
	"""
	if isinstance(mode, LayoutPreset):
		return mode
	key = str(mode).strip().lower()
	if key not in PRESETS:
		raise ValueError(f"Unknown layout mode: {mode!r}")
	return PRESETS[key]


#============================================
def get_paper_size(name: str) -> tuple[float, float]:
	"""
	Look up a portrait paper size in points.

	Args:
		name: Paper name such as "a4".

	Returns:
		Tuple of (width, height).
	"""
	key = name.strip().lower()
	if key not in PAPER_SIZES:
		raise ValueError(f"Unknown paper size: {name!r}")
	return PAPER_SIZES[key]
