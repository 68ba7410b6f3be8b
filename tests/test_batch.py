import asyncio
import base64
import io
import json
import math
import pathlib

import PIL.Image
import pypdf
import pytest

import card_print_engine.batch as batch
import card_print_engine.config as config
import card_print_engine.template as template_lib


#============================================
def build_records(count: int) -> list[dict]:
	return [
		{"name": f"Student {index}", "roll_number": index, "class": "7B", "school": "Hillside"}
		for index in range(1, count + 1)
	]


#============================================
def small_options(**kwargs) -> config.BatchOptions:
	"""
	Batch options with a small render size to keep tests quick.
	"""
	values = {"mode": config.MODE_PRODUCTION, "render_width": 200, "render_height": 125}
	values.update(kwargs)
	return config.BatchOptions(**values)


#============================================
def test_batch_pages_and_accounting(card_design: dict) -> None:
	"""
	Ensure 23 records fill three production pages with 10, 10, and 3 cards.
	"""
	template = template_lib.parse_template(card_design)
	progress_calls = []
	result = batch.render_batch_sync(
		build_records(23),
		template,
		small_options(),
		progress=lambda done, total: progress_calls.append((done, total)),
	)
	assert result.success
	assert result.pages == 3
	assert result.rendered_count == 23
	assert result.skipped_count == 0
	assert [result.document.cards_on_page(page) for page in range(3)] == [10, 10, 3]
	assert len(pypdf.PdfReader(io.BytesIO(result.document.pdf)).pages) == 3
	assert progress_calls[-1] == (23, 23)
	assert all(card.status == batch.STATUS_OK for card in result.cards)


#============================================
def test_skipped_and_warning_cards(card_design: dict, tmp_path: pathlib.Path) -> None:
	"""
	Ensure an empty design is skipped and a bad photo only warns.
	"""
	template = template_lib.parse_template(card_design)
	empty = template_lib.Template(width=400, height=250, nodes=())
	records = build_records(3)
	records[1]["photo_url"] = str(tmp_path / "missing.png")
	items = [
		batch.BatchItem(record=records[0]),
		batch.BatchItem(record=records[1]),
		batch.BatchItem(record=records[2], template=empty),
	]
	result = batch.render_batch_sync(items, template, small_options())
	assert result.success
	statuses = [card.status for card in result.cards]
	assert statuses == [batch.STATUS_OK, batch.STATUS_WARNING, batch.STATUS_SKIPPED]
	assert result.cards[1].warnings[0].startswith("PhotoLoadFailure")
	assert result.cards[2].error.startswith("EmptyOrMissingDesign")
	assert result.cards[2].label == "Student 3 (3)"
	assert result.document.page_count == 1
	assert result.document.cards_on_page(0) == 2


#============================================
def test_no_renderable_cards(card_design: dict) -> None:
	result = batch.render_batch_sync(build_records(2), None, small_options())
	assert not result.success
	assert result.error_type == "NoRenderableCards"
	assert result.document is None
	assert [card.status for card in result.cards] == [batch.STATUS_SKIPPED] * 2


#============================================
def test_card_too_large_aborts_without_output(card_design: dict) -> None:
	template = template_lib.parse_template(card_design)
	options = small_options(card_width_mm=400.0, card_height_mm=250.0)
	result = batch.render_batch_sync(build_records(2), template, options)
	assert not result.success
	assert result.error_type == "CardTooLargeForPage"
	assert result.document is None
	assert result.cards == ()


#============================================
def test_portrait_template_uses_landscape_page() -> None:
	template = template_lib.parse_template(
		{"width": 250, "height": 400, "nodes": [{"type": "text", "text": "{{name}}"}]}
	)
	result = batch.render_batch_sync(build_records(4), template, config.BatchOptions(mode=config.MODE_PROOF, render_width=125, render_height=200))
	assert result.success
	assert result.grid.page_width > result.grid.page_height
	assert (result.grid.columns, result.grid.rows) == (4, 2)


#============================================
def test_watermark_failure_is_batch_warning(card_design: dict, tmp_path: pathlib.Path) -> None:
	template = template_lib.parse_template(card_design)
	options = small_options(watermark_ref=str(tmp_path / "missing.png"))
	result = batch.render_batch_sync(build_records(1), template, options)
	assert result.success
	assert len(result.warnings) == 1
	assert result.warnings[0].startswith("Watermark not loaded")


#============================================
def test_proof_default_footer(card_design: dict) -> None:
	"""
	Ensure proof mode stamps its default footer unless disabled.
	"""
	template = template_lib.parse_template(card_design)
	options = small_options(mode=config.MODE_PROOF)
	result = batch.render_batch_sync(build_records(1), template, options)
	page = pypdf.PdfReader(io.BytesIO(result.document.pdf)).pages[0]
	assert "Draft Proof" in page.extract_text()

	assert batch.resolve_footer(small_options(mode=config.MODE_PROOF, use_default_footer=False)) is None
	assert batch.resolve_footer(small_options(footer_text="Batch 4")) == "Batch 4"
	assert batch.resolve_footer(small_options()) is None


#============================================
def test_write_manifest(card_design: dict, tmp_path: pathlib.Path) -> None:
	template = template_lib.parse_template(card_design)
	options = small_options()
	result = batch.render_batch_sync(build_records(12), template, options)
	manifest_path = tmp_path / "run.json"
	batch.write_manifest(manifest_path, result, options)
	data = json.loads(manifest_path.read_text(encoding="utf-8"))
	assert data["success"] is True
	assert data["pages"] == 2
	assert data["rendered_cards"] == 12
	assert data["layout"]["columns"] == 2
	assert data["cards"][0]["label"] == "Student 1 (1)"


#============================================
def test_impose_images(tmp_path: pathlib.Path) -> None:
	"""
	Ensure existing card images are laid out and unreadable files skipped.
	"""
	paths = []
	for index in range(3):
		path = tmp_path / f"card_{index}.png"
		image = PIL.Image.new("RGB", (160, 100), (index * 40, 0, 0))
		image.save(path)
		image.close()
		paths.append(path)
	paths.append(tmp_path / "missing.png")
	result = batch.impose_images_sync(paths, small_options())
	assert result.success
	assert result.rendered_count == 3
	assert result.skipped_count == 1
	assert result.pages == 1


#============================================
def test_bad_image_fit_skips_only_that_card(card_design: dict) -> None:
	"""
	Ensure an image node with an unusable fit fails its own card only.
	"""
	buffer = io.BytesIO()
	source = PIL.Image.new("RGB", (10, 10), (255, 0, 0))
	source.save(buffer, format="PNG")
	source.close()
	uri = "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
	good = template_lib.parse_template(card_design)
	bad_node = template_lib.ImagePlaceholderNode(x=0, y=0, width=50, height=50, src=uri, fit="fill")
	bad = template_lib.Template(width=400, height=250, nodes=(bad_node,))
	records = build_records(2)
	items = [batch.BatchItem(record=records[0], template=bad), batch.BatchItem(record=records[1])]
	result = batch.render_batch_sync(items, good, small_options())
	assert result.success
	assert [card.status for card in result.cards] == [batch.STATUS_SKIPPED, batch.STATUS_OK]
	assert result.cards[0].error.startswith("RenderError")
	assert result.document.cards_on_page(0) == 1


#============================================
def test_cancelled_batch_keeps_placed_pages(card_design: dict) -> None:
	"""
	Ensure cards placed before a cancel can still be finalized.
	"""
	template = template_lib.parse_template(card_design)
	options = small_options()
	composer = batch.build_composer(template, options)
	stop_after = 12

	async def run() -> None:
		task = None

		def progress(done: int, total: int) -> None:
			if done == stop_after:
				task.cancel()

		task = asyncio.ensure_future(
			batch.render_batch(build_records(23), template, options, progress=progress, composer=composer)
		)
		with pytest.raises(asyncio.CancelledError):
			await task

	asyncio.run(run())
	assert composer.card_count == stop_after
	document = composer.finalize()
	assert document.page_count == math.ceil(stop_after / composer.grid.slots_per_page)
	assert len(pypdf.PdfReader(io.BytesIO(document.pdf)).pages) == 2
