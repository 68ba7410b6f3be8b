"""
Batch pipeline: render many records and compose them into one document.
"""

# Standard Library
import asyncio
import dataclasses
import json
import logging
import pathlib
import typing

# PIP3 modules
import PIL.Image

# local repo modules
import card_print_engine as cpe
import card_print_engine.compose
import card_print_engine.config
import card_print_engine.errors
import card_print_engine.images
import card_print_engine.layout
import card_print_engine.render
import card_print_engine.template


Template = cpe.template.Template
Record = cpe.template.Record
BatchOptions = cpe.config.BatchOptions
GridConfig = cpe.config.GridConfig
PrintDocument = cpe.compose.PrintDocument
RenderedCard = cpe.render.RenderedCard
CardEngineError = cpe.errors.CardEngineError
EmptyOrMissingDesign = cpe.errors.EmptyOrMissingDesign
NoRenderableCards = cpe.errors.NoRenderableCards

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_SKIPPED = "skipped"

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class BatchItem:
	record: dict
	template: Template | None = None


@dataclasses.dataclass(frozen=True)
class CardResult:
	index: int
	label: str
	status: str
	warnings: tuple[str, ...] = ()
	error: str | None = None


@dataclasses.dataclass(frozen=True)
class BatchResult:
	success: bool
	cards: tuple[CardResult, ...]
	document: PrintDocument | None = None
	grid: GridConfig | None = None
	warnings: tuple[str, ...] = ()
	error: str | None = None
	error_type: str | None = None

	@property
	def pages(self) -> int:
		if self.document is None:
			return 0
		return self.document.page_count

	@property
	def rendered_count(self) -> int:
		return sum(1 for card in self.cards if card.status != STATUS_SKIPPED)

	@property
	def skipped_count(self) -> int:
		return sum(1 for card in self.cards if card.status == STATUS_SKIPPED)


#============================================
def card_size_points(options: BatchOptions, landscape: bool) -> tuple[float, float]:
	"""
	Physical card size in points, oriented like the template.

	Args:
		options: Batch options.
		landscape: True for landscape templates.

	Returns:
		Tuple of (width, height) in points.
	"""
	long_side = cpe.config.mm_to_points(max(options.card_width_mm, options.card_height_mm))
	short_side = cpe.config.mm_to_points(min(options.card_width_mm, options.card_height_mm))
	if landscape:
		return (long_side, short_side)
	return (short_side, long_side)


#============================================
def render_size(options: BatchOptions, template: Template) -> tuple[int, int]:
	"""
	Output pixel size for one card.

	Explicit options win; otherwise the CR80 300 DPI default is used,
	turned to match the template orientation.
	"""
	if options.render_width and options.render_height:
		return (options.render_width, options.render_height)
	long_side = cpe.config.DEFAULT_RENDER_WIDTH
	short_side = cpe.config.DEFAULT_RENDER_HEIGHT
	if template.is_landscape:
		return (long_side, short_side)
	return (short_side, long_side)


#============================================
def plan_for_template(template: Template, options: BatchOptions) -> GridConfig:
	"""
	Plan the sheet grid for a template's orientation.

	Args:
		template: Reference template.
		options: Batch options.

	Returns:
		GridConfig; raises CardTooLargeForPage when nothing fits.
	"""
	card_width, card_height = card_size_points(options, template.is_landscape)
	paper = cpe.config.get_paper_size(options.paper)
	page_width, page_height = cpe.layout.page_size_for_card(card_width, card_height, paper)
	return cpe.layout.plan(card_width, card_height, page_width, page_height, options.mode)


#============================================
def build_composer(template: Template, options: BatchOptions) -> cpe.compose.SheetComposer:
	"""
	Plan the grid for a template and open an empty composer on it.

	Args:
		template: Reference template deciding the card orientation.
		options: Batch options.

	Returns:
		SheetComposer using the mode's fit policy and outlines.
	"""
	grid = plan_for_template(template, options)
	preset = cpe.config.get_preset(options.mode)
	return cpe.compose.SheetComposer(grid, fit=preset.fit, draw_outlines=preset.draw_outlines)


#============================================
def resolve_footer(options: BatchOptions) -> str | None:
	if options.footer_text:
		return options.footer_text
	if not options.use_default_footer:
		return None
	return cpe.config.get_preset(options.mode).default_footer


#============================================
def failed_result(
	error: CardEngineError,
	cards: typing.Sequence[CardResult] = (),
	grid: GridConfig | None = None,
	warnings: typing.Sequence[str] = (),
) -> BatchResult:
	return BatchResult(
		success=False,
		cards=tuple(cards),
		grid=grid,
		warnings=tuple(warnings),
		error=str(error),
		error_type=type(error).__name__,
	)


#============================================
async def load_watermark(
	ref: str | None,
	loader: cpe.images.ImageLoader,
	warnings: list[str],
) -> PIL.Image.Image | None:
	"""
	Fetch the document watermark once; a failure only drops the watermark.
	"""
	if not ref:
		return None
	try:
		return await loader.load(ref)
	except cpe.errors.ImageLoadError as error:
		logger.warning("Watermark not loaded: %s", error)
		warnings.append(f"Watermark not loaded: {error}")
		return None


#============================================
def normalize_items(
	records: typing.Iterable[Record | BatchItem],
	template: Template | None,
) -> list[BatchItem]:
	items: list[BatchItem] = []
	for entry in records:
		if isinstance(entry, BatchItem):
			if entry.template is None and template is not None:
				entry = dataclasses.replace(entry, template=template)
			items.append(entry)
		else:
			items.append(BatchItem(record=dict(entry), template=template))
	return items


#============================================
async def render_batch(
	records: typing.Iterable[Record | BatchItem],
	template: Template | None = None,
	options: BatchOptions | None = None,
	loader: cpe.images.ImageLoader | None = None,
	progress: typing.Callable[[int, int], None] | None = None,
	composer: cpe.compose.SheetComposer | None = None,
) -> BatchResult:
	"""
	Render records one at a time and compose them into a print document.

	The layout is planned before any rendering, so a card that cannot fit
	the page fails the whole batch without output. Each card is rendered,
	orientation corrected, and placed before the next one starts. Cards
	without a usable template are skipped and reported; photo failures
	and unresolved markers become warnings on that card.

	Args:
		records: Records, or BatchItem entries carrying their own template.
		template: Shared template used when an item has none.
		options: Batch options.
		loader: Async image loader; one is opened for the batch if omitted.
		progress: Optional callback receiving (done, total).
		composer: Caller-owned composer from build_composer. When the batch
			is cancelled, the cards already placed stay on it and the caller
			can still finalize a partial document.

	Returns:
		BatchResult with per-card accounting and the document on success.
	"""
	if options is None:
		options = BatchOptions()
	items = normalize_items(records, template)

	reference = next((item.template for item in items if item.template is not None and item.template.nodes), None)
	if reference is None:
		cards = [
			CardResult(
				index=index,
				label=cpe.template.record_label(item.record, f"record #{index + 1}"),
				status=STATUS_SKIPPED,
				error="EmptyOrMissingDesign: Template is missing or has no nodes",
			)
			for index, item in enumerate(items)
		]
		return failed_result(NoRenderableCards("No item has a usable template"), cards)

	if composer is None:
		try:
			composer = build_composer(reference, options)
		except cpe.errors.CardTooLargeForPage as error:
			logger.error("Layout failed: %s", error)
			return failed_result(error)

	if loader is None:
		async with cpe.images.ImageLoader() as own_loader:
			return await _run_batch(items, composer, options, own_loader, progress)
	return await _run_batch(items, composer, options, loader, progress)


#============================================
async def _run_batch(
	items: list[BatchItem],
	composer: cpe.compose.SheetComposer,
	options: BatchOptions,
	loader: cpe.images.ImageLoader,
	progress: typing.Callable[[int, int], None] | None,
) -> BatchResult:
	grid = composer.grid
	batch_warnings: list[str] = []
	watermark = await load_watermark(options.watermark_ref, loader, batch_warnings)
	cards: list[CardResult] = []
	total = len(items)
	try:
		for index, item in enumerate(items):
			# cancellation point between cards
			await asyncio.sleep(0)
			label = cpe.template.record_label(item.record, f"record #{index + 1}")
			try:
				if item.template is None or not item.template.nodes:
					raise EmptyOrMissingDesign("Template is missing or has no nodes")
				width, height = render_size(options, item.template)
				card = await cpe.render.render_card(item.template, item.record, width, height, loader)
				composer.add(card)
			except (EmptyOrMissingDesign, cpe.errors.RenderError) as error:
				logger.warning("Skipping %s: %s", label, error)
				cards.append(
					CardResult(
						index=index,
						label=label,
						status=STATUS_SKIPPED,
						error=f"{type(error).__name__}: {error}",
					)
				)
			else:
				status = STATUS_WARNING if card.warnings else STATUS_OK
				cards.append(CardResult(index=index, label=label, status=status, warnings=card.warnings))
			if progress is not None:
				progress(index + 1, total)

		if composer.card_count == 0:
			error = NoRenderableCards("Batch produced no rendered cards")
			logger.error("%s", error)
			return failed_result(error, cards, grid, batch_warnings)

		try:
			document = composer.finalize(watermark=watermark, footer_text=resolve_footer(options))
		except cpe.errors.DocumentAssemblyFailure as error:
			logger.error("Document assembly failed: %s", error)
			return failed_result(error, cards, grid, batch_warnings)
	finally:
		if watermark is not None:
			watermark.close()

	return BatchResult(
		success=True,
		cards=tuple(cards),
		document=document,
		grid=grid,
		warnings=tuple(batch_warnings),
	)


#============================================
def render_batch_sync(
	records: typing.Iterable[Record | BatchItem],
	template: Template | None = None,
	options: BatchOptions | None = None,
	progress: typing.Callable[[int, int], None] | None = None,
) -> BatchResult:
	"""
	Blocking wrapper around render_batch.
	"""
	return asyncio.run(render_batch(records, template, options, progress=progress))


#============================================
async def impose_images(
	paths: typing.Sequence[pathlib.Path],
	options: BatchOptions | None = None,
	slot_is_landscape: bool | None = None,
) -> BatchResult:
	"""
	Lay out already-rendered card images onto sheets.

	The grid follows the orientation of the first readable image.

	Args:
		paths: Card image paths in placement order.
		options: Batch options; render size fields are ignored.
		slot_is_landscape: Force a slot orientation; None follows the grid.

	Returns:
		BatchResult.
	"""
	if options is None:
		options = BatchOptions()
	preset = cpe.config.get_preset(options.mode)
	cards: list[RenderedCard] = []
	results: list[CardResult] = []
	for index, path in enumerate(paths):
		label = pathlib.Path(path).name
		try:
			image = cpe.images.load_local_image(str(path))
		except cpe.errors.ImageLoadError as error:
			logger.warning("Skipping %s: %s", label, error)
			results.append(CardResult(index=index, label=label, status=STATUS_SKIPPED, error=str(error)))
			continue
		try:
			flattened = image.convert("RGB")
			cards.append(RenderedCard.from_image(flattened, label=label))
			flattened.close()
		finally:
			image.close()
		results.append(CardResult(index=index, label=label, status=STATUS_OK))

	if not cards:
		return failed_result(NoRenderableCards("No readable card images"), results)

	first = cards[0]
	if slot_is_landscape is None:
		landscape = first.is_landscape
	else:
		landscape = slot_is_landscape
	card_width, card_height = card_size_points(options, landscape)
	paper = cpe.config.get_paper_size(options.paper)
	page_width, page_height = cpe.layout.page_size_for_card(card_width, card_height, paper)
	try:
		grid = cpe.layout.plan(card_width, card_height, page_width, page_height, preset)
	except cpe.errors.CardTooLargeForPage as error:
		return failed_result(error, results)

	batch_warnings: list[str] = []
	async with cpe.images.ImageLoader() as loader:
		watermark = await load_watermark(options.watermark_ref, loader, batch_warnings)
	composer = cpe.compose.SheetComposer(grid, fit=preset.fit, draw_outlines=preset.draw_outlines)
	try:
		for card in cards:
			composer.add(card, slot_is_landscape=slot_is_landscape)
		document = composer.finalize(watermark=watermark, footer_text=resolve_footer(options))
	except cpe.errors.DocumentAssemblyFailure as error:
		return failed_result(error, results, grid, batch_warnings)
	finally:
		if watermark is not None:
			watermark.close()
	return BatchResult(
		success=True,
		cards=tuple(results),
		document=document,
		grid=grid,
		warnings=tuple(batch_warnings),
	)


#============================================
def impose_images_sync(
	paths: typing.Sequence[pathlib.Path],
	options: BatchOptions | None = None,
	slot_is_landscape: bool | None = None,
) -> BatchResult:
	return asyncio.run(impose_images(paths, options, slot_is_landscape))


#============================================
def write_manifest(
	manifest_path: pathlib.Path,
	result: BatchResult,
	options: BatchOptions,
) -> None:
	"""
	Write a JSON summary of a batch run.

	Args:
		manifest_path: Output path.
		result: Batch result.
		options: Batch options used for the run.
	"""
	layout = None
	if result.grid is not None:
		layout = dataclasses.asdict(result.grid)
	data = {
		"success": result.success,
		"error": result.error,
		"error_type": result.error_type,
		"mode": options.mode,
		"paper": options.paper,
		"pages": result.pages,
		"rendered_cards": result.rendered_count,
		"skipped_cards": result.skipped_count,
		"warnings": list(result.warnings),
		"cards": [dataclasses.asdict(card) for card in result.cards],
		"layout": layout,
	}
	with manifest_path.open("w", encoding="utf-8") as handle:
		json.dump(data, handle, indent=2, sort_keys=True)
