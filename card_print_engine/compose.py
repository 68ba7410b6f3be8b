"""
Sheet composition: place rendered cards into grid slots across PDF pages.
"""

# Standard Library
import dataclasses
import enum
import io
import math
import pathlib
import typing

# PIP3 modules
import PIL.Image
import pypdf
import reportlab.lib.utils
import reportlab.pdfgen.canvas

# local repo modules
import card_print_engine as cpe
import card_print_engine.config
import card_print_engine.errors
import card_print_engine.layout
import card_print_engine.orientation
import card_print_engine.render


GridConfig = cpe.config.GridConfig
RenderedCard = cpe.render.RenderedCard
NoRenderableCards = cpe.errors.NoRenderableCards
DocumentAssemblyFailure = cpe.errors.DocumentAssemblyFailure
ComposerFinalizedError = cpe.errors.ComposerFinalizedError

FIT_STRETCH = cpe.config.FIT_STRETCH
FIT_CONTAIN = cpe.config.FIT_CONTAIN
WATERMARK_OPACITY = cpe.config.WATERMARK_OPACITY
WATERMARK_WIDTH = cpe.config.WATERMARK_WIDTH
WATERMARK_PITCH = cpe.config.WATERMARK_PITCH
WATERMARK_OFFSET_X = cpe.config.WATERMARK_OFFSET_X
WATERMARK_OFFSET_Y = cpe.config.WATERMARK_OFFSET_Y
WATERMARK_ANGLE = cpe.config.WATERMARK_ANGLE
FOOTER_FONT = cpe.config.FOOTER_FONT
FOOTER_FONT_SIZE = cpe.config.FOOTER_FONT_SIZE
FOOTER_GRAY = cpe.config.FOOTER_GRAY
FOOTER_OFFSET = cpe.config.FOOTER_OFFSET
OUTLINE_GRAY = cpe.config.OUTLINE_GRAY
OUTLINE_WIDTH = cpe.config.OUTLINE_WIDTH


class ComposerState(enum.Enum):
	EMPTY = "empty"
	FILLING_PAGE = "filling_page"
	PAGE_FULL = "page_full"
	FINALIZED = "finalized"


@dataclasses.dataclass(frozen=True)
class Placement:
	index: int
	page: int
	slot: int
	x: float
	y: float
	width: float
	height: float
	rotated: bool
	label: str | None = None


@dataclasses.dataclass(frozen=True)
class PrintDocument:
	pdf: bytes
	page_count: int
	placements: tuple[Placement, ...]
	grid: GridConfig

	#============================================
	def cards_on_page(self, page: int) -> int:
		return sum(1 for placement in self.placements if placement.page == page)

	#============================================
	def write(self, target: "pathlib.Path | str | typing.BinaryIO") -> None:
		"""
		Write the PDF to a path or binary stream.

		Args:
			target: File path or writable binary stream.
		"""
		if isinstance(target, (str, pathlib.Path)):
			pathlib.Path(target).write_bytes(self.pdf)
			return
		target.write(self.pdf)


#============================================
def draw_slot_outline(
	pdf: reportlab.pdfgen.canvas.Canvas,
	rect: tuple[float, float, float, float],
) -> None:
	"""
	Draw a light gray outline around one slot.

	Args:
		pdf: ReportLab canvas.
		rect: Slot (x, y, width, height) with a bottom-left origin.
	"""
	pdf.saveState()
	pdf.setLineWidth(OUTLINE_WIDTH)
	pdf.setStrokeColorRGB(OUTLINE_GRAY, OUTLINE_GRAY, OUTLINE_GRAY)
	pdf.rect(rect[0], rect[1], rect[2], rect[3], stroke=1, fill=0)
	pdf.restoreState()


#============================================
def draw_watermark_tiles(
	pdf: reportlab.pdfgen.canvas.Canvas,
	watermark: PIL.Image.Image,
	page_width: float,
	page_height: float,
) -> None:
	"""
	Tile a semi-transparent, rotated watermark image across the page.

	Args:
		pdf: ReportLab canvas.
		watermark: Watermark image.
		page_width: Page width in points.
		page_height: Page height in points.
	"""
	aspect = (watermark.width or 1) / (watermark.height or 1)
	draw_width = WATERMARK_WIDTH
	draw_height = draw_width / aspect
	image_reader = reportlab.lib.utils.ImageReader(watermark)
	x_count = math.ceil(page_width / WATERMARK_PITCH)
	y_count = math.ceil(page_height / WATERMARK_PITCH)
	pdf.saveState()
	pdf.setFillAlpha(WATERMARK_OPACITY)
	for i in range(x_count):
		for j in range(y_count):
			x = i * WATERMARK_PITCH + WATERMARK_OFFSET_X
			top = j * WATERMARK_PITCH + WATERMARK_OFFSET_Y
			pdf.saveState()
			pdf.translate(x, page_height - top)
			pdf.rotate(WATERMARK_ANGLE)
			pdf.drawImage(
				image_reader,
				0.0,
				-draw_height,
				width=draw_width,
				height=draw_height,
				mask="auto",
				preserveAspectRatio=False,
			)
			pdf.restoreState()
	pdf.restoreState()


#============================================
def draw_footer(
	pdf: reportlab.pdfgen.canvas.Canvas,
	text: str,
	page_width: float,
) -> None:
	pdf.saveState()
	pdf.setFont(FOOTER_FONT, FOOTER_FONT_SIZE)
	pdf.setFillColorRGB(FOOTER_GRAY, FOOTER_GRAY, FOOTER_GRAY)
	pdf.drawCentredString(page_width / 2.0, FOOTER_OFFSET, text)
	pdf.restoreState()


#============================================
def build_overlay_page(
	page_width: float,
	page_height: float,
	watermark: PIL.Image.Image | None,
	footer_text: str | None,
) -> pypdf.PageObject:
	"""
	Build a single overlay page holding the watermark and footer.

	Args:
		page_width: Page width in points.
		page_height: Page height in points.
		watermark: Optional watermark image.
		footer_text: Optional footer caption.

	Returns:
		PDF page object to merge on top of every sheet.
	"""
	buffer = io.BytesIO()
	pdf = reportlab.pdfgen.canvas.Canvas(buffer, pagesize=(page_width, page_height), invariant=1)
	if watermark is not None:
		draw_watermark_tiles(pdf, watermark, page_width, page_height)
	if footer_text:
		draw_footer(pdf, footer_text, page_width)
	pdf.save()
	buffer.seek(0)
	reader = pypdf.PdfReader(buffer)
	return reader.pages[0]


class SheetComposer:
	"""
	Place rendered cards into grid slots, one page at a time.

	Cards fill slots row-major in the order they are added. A new page is
	started only when a card arrives for it, so the last page keeps its
	unfilled slots empty and no blank trailing page is produced.
	"""

	def __init__(
		self,
		grid: GridConfig,
		fit: str = FIT_STRETCH,
		draw_outlines: bool = False,
	) -> None:
		if fit not in (FIT_STRETCH, FIT_CONTAIN):
			raise ValueError(f"Unsupported sheet fit policy: {fit!r}")
		self.grid = grid
		self.fit = fit
		self.draw_outlines = draw_outlines
		self._buffer = io.BytesIO()
		self._pdf = reportlab.pdfgen.canvas.Canvas(
			self._buffer,
			pagesize=(grid.page_width, grid.page_height),
			invariant=1,
		)
		self._placements: list[Placement] = []
		self._page_count = 0
		self._state = ComposerState.EMPTY

	@property
	def state(self) -> ComposerState:
		return self._state

	@property
	def page_count(self) -> int:
		return self._page_count

	@property
	def card_count(self) -> int:
		return len(self._placements)

	@property
	def placements(self) -> tuple[Placement, ...]:
		return tuple(self._placements)

	#============================================
	def add(self, card: RenderedCard, slot_is_landscape: bool | None = None) -> Placement:
		"""
		Place one card into the next free slot.

		Args:
			card: Rendered card; ownership passes to the composer.
			slot_is_landscape: Slot orientation override, defaults to the
				grid cell orientation.

		Returns:
			Placement describing where the card was drawn.
		"""
		if self._state == ComposerState.FINALIZED:
			raise ComposerFinalizedError("Cannot add cards to a finalized document")
		if self._state == ComposerState.PAGE_FULL:
			self._pdf.showPage()
			self._page_count += 1
		elif self._state == ComposerState.EMPTY:
			self._page_count = 1
		self._state = ComposerState.FILLING_PAGE

		if slot_is_landscape is None:
			slot_is_landscape = self.grid.cell_is_landscape
		corrected = cpe.orientation.correct_orientation(card, slot_is_landscape)
		index = len(self._placements)
		slot = index % self.grid.slots_per_page
		rect = self.grid.slot_rect_pdf(index)
		fitted = cpe.layout.compute_fit(self.fit, rect, corrected.width, corrected.height)

		image = corrected.image()
		try:
			self._pdf.drawImage(
				reportlab.lib.utils.ImageReader(image),
				fitted.x,
				fitted.y,
				width=fitted.width,
				height=fitted.height,
				mask=None,
				preserveAspectRatio=False,
				anchor="sw",
			)
		finally:
			image.close()
		if self.draw_outlines:
			draw_slot_outline(self._pdf, rect)

		placement = Placement(
			index=index,
			page=self._page_count - 1,
			slot=slot,
			x=fitted.x,
			y=fitted.y,
			width=fitted.width,
			height=fitted.height,
			rotated=corrected is not card,
			label=card.label,
		)
		self._placements.append(placement)
		if (index + 1) % self.grid.slots_per_page == 0:
			self._state = ComposerState.PAGE_FULL
		return placement

	#============================================
	def finalize(
		self,
		watermark: PIL.Image.Image | None = None,
		footer_text: str | None = None,
	) -> PrintDocument:
		"""
		Seal the document, overlaying watermark and footer on every page.

		Args:
			watermark: Optional watermark image, tiled on each page.
			footer_text: Optional footer caption.

		Returns:
			PrintDocument.
		"""
		if self._state == ComposerState.FINALIZED:
			raise ComposerFinalizedError("Document is already finalized")
		if not self._placements:
			raise NoRenderableCards("No cards were placed")
		try:
			self._pdf.save()
			pdf_bytes = self._buffer.getvalue()
			if watermark is not None or footer_text:
				pdf_bytes = self._merge_overlay(pdf_bytes, watermark, footer_text)
		except Exception as error:
			raise DocumentAssemblyFailure(str(error)) from error
		self._state = ComposerState.FINALIZED
		return PrintDocument(
			pdf=pdf_bytes,
			page_count=self._page_count,
			placements=tuple(self._placements),
			grid=self.grid,
		)

	#============================================
	def _merge_overlay(
		self,
		pdf_bytes: bytes,
		watermark: PIL.Image.Image | None,
		footer_text: str | None,
	) -> bytes:
		overlay = build_overlay_page(
			self.grid.page_width,
			self.grid.page_height,
			watermark,
			footer_text,
		)
		reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))
		writer = pypdf.PdfWriter()
		for page in reader.pages:
			page.merge_page(overlay)
			writer.add_page(page)
		output = io.BytesIO()
		writer.write(output)
		return output.getvalue()


#============================================
def compose_sheets(
	cards: typing.Iterable[RenderedCard],
	grid: GridConfig,
	fit: str = FIT_STRETCH,
	draw_outlines: bool = False,
	watermark: PIL.Image.Image | None = None,
	footer_text: str | None = None,
) -> PrintDocument:
	"""
	Compose an iterable of cards into a finalized document.

	Args:
		cards: Rendered cards in placement order.
		grid: Grid configuration.
		fit: Slot fit policy.
		draw_outlines: Draw slot outlines.
		watermark: Optional watermark image.
		footer_text: Optional footer caption.

	Returns:
		PrintDocument.
	"""
	composer = SheetComposer(grid, fit=fit, draw_outlines=draw_outlines)
	for card in cards:
		composer.add(card)
	return composer.finalize(watermark=watermark, footer_text=footer_text)
