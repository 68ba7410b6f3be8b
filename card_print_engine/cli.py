"""
CLI entry points for ID card rendering and sheet composition.
"""

# Standard Library
import argparse
import logging
import pathlib
import sys
import time

# local repo modules
import card_print_engine as cpe
import card_print_engine.batch
import card_print_engine.config
import card_print_engine.errors
import card_print_engine.render
import card_print_engine.template


BatchOptions = cpe.config.BatchOptions

MODE_PROOF = cpe.config.MODE_PROOF
MODE_PRODUCTION = cpe.config.MODE_PRODUCTION
PROGRESS_BAR_WIDTH = cpe.config.PROGRESS_BAR_WIDTH
PROGRESS_UPDATE_EVERY = cpe.config.PROGRESS_UPDATE_EVERY

SLOT_ORIENTATIONS = {
	"auto": None,
	"landscape": True,
	"portrait": False,
}


#============================================
def print_progress(prefix: str, current: int, total: int) -> None:
	"""
	Print a simple progress bar.

	Args:
		prefix: Label text.
		current: Current count.
		total: Total count.
	"""
	if total <= 0:
		return
	if current != total and current % PROGRESS_UPDATE_EVERY != 0:
		return
	percent = int(round((current / total) * 100.0))
	filled = int(round(PROGRESS_BAR_WIDTH * percent / 100.0))
	bar = "#" * filled + "-" * (PROGRESS_BAR_WIDTH - filled)
	print(f"{prefix} [{bar}] {current}/{total} ({percent}%)", end="\r")
	if current == total:
		print()


#============================================
def build_options(args: argparse.Namespace) -> BatchOptions:
	"""
	Build batch options from CLI args.

	Args:
		args: Parsed argparse namespace.

	Returns:
		BatchOptions.
	"""
	return BatchOptions(
		mode=args.mode,
		watermark_ref=args.watermark,
		footer_text=args.footer_text,
		use_default_footer=args.default_footer,
		render_width=getattr(args, "width", None),
		render_height=getattr(args, "height", None),
		paper=args.paper,
	)


#============================================
def add_sheet_arguments(parser: argparse.ArgumentParser) -> None:
	sheet_group = parser.add_argument_group("Sheet")
	sheet_group.add_argument(
		"-m", "--mode", dest="mode", choices=(MODE_PROOF, MODE_PRODUCTION),
		default=MODE_PROOF, help="Layout mode.",
	)
	sheet_group.add_argument(
		"--paper", dest="paper", choices=tuple(cpe.config.PAPER_SIZES),
		default=cpe.config.DEFAULT_PAPER, help="Paper size.",
	)
	sheet_group.add_argument("-w", "--watermark", dest="watermark", default=None, help="Watermark image path or URL.")
	sheet_group.add_argument("-f", "--footer", dest="footer_text", default=None, help="Footer caption.")
	sheet_group.add_argument(
		"-F", "--no-default-footer", dest="default_footer", action="store_false",
		help="Omit the mode's default footer.",
	)
	sheet_group.add_argument("--manifest", dest="manifest_path", default=None, help="Output manifest JSON path.")
	parser.set_defaults(default_footer=True)


#============================================
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	"""
	Parse command line arguments.

	Args:
		argv: Argument list, defaults to sys.argv.

	Returns:
		Parsed argparse namespace.
	"""
	parser = argparse.ArgumentParser(description="Render ID cards and compose printable PDF sheets.")
	parser.add_argument("-v", "--verbose", dest="verbose", action="store_true", help="Enable info logging.")
	subparsers = parser.add_subparsers(dest="command", required=True)

	render_parser = subparsers.add_parser("render", help="Render one card to PNG.")
	render_parser.add_argument("template", help="Template JSON path.")
	render_parser.add_argument("-r", "--record", dest="record_path", default=None, help="Record JSON or CSV path.")
	render_parser.add_argument("-i", "--index", dest="index", type=int, default=0, help="Record index within the file.")
	render_parser.add_argument("-o", "--output", dest="output_path", required=True, help="Output PNG path.")
	render_parser.add_argument("--width", dest="width", type=int, default=None, help="Output width in pixels.")
	render_parser.add_argument("--height", dest="height", type=int, default=None, help="Output height in pixels.")

	batch_parser = subparsers.add_parser("batch", help="Render records onto PDF sheets.")
	batch_parser.add_argument("template", help="Template JSON path.")
	batch_parser.add_argument("records", help="Records JSON or CSV path.")
	batch_parser.add_argument("-o", "--output", dest="output_path", required=True, help="Output PDF path.")
	batch_parser.add_argument("--width", dest="width", type=int, default=None, help="Card width in pixels.")
	batch_parser.add_argument("--height", dest="height", type=int, default=None, help="Card height in pixels.")
	add_sheet_arguments(batch_parser)

	impose_parser = subparsers.add_parser("impose", help="Lay out existing card images onto PDF sheets.")
	impose_parser.add_argument("images", nargs="+", help="Card image files.")
	impose_parser.add_argument("-o", "--output", dest="output_path", required=True, help="Output PDF path.")
	impose_parser.add_argument(
		"-s", "--slot-orientation", dest="slot_orientation", choices=tuple(SLOT_ORIENTATIONS),
		default="auto", help="Slot orientation; auto follows the first image.",
	)
	add_sheet_arguments(impose_parser)

	return parser.parse_args(argv)


#============================================
def print_result(result: cpe.batch.BatchResult) -> None:
	for card in result.cards:
		if card.status == cpe.batch.STATUS_SKIPPED:
			print(f"Skipped {card.label}: {card.error}")
		for warning in card.warnings:
			print(f"Warning {card.label}: {warning}")
	for warning in result.warnings:
		print(f"Warning: {warning}")
	print(f"Cards rendered: {result.rendered_count}")
	print(f"Cards skipped: {result.skipped_count}")
	print(f"Pages written: {result.pages}")


#============================================
def finish_sheets(
	args: argparse.Namespace,
	result: cpe.batch.BatchResult,
	options: BatchOptions,
	start_time: float,
) -> int:
	print_result(result)
	output_path = pathlib.Path(args.output_path)
	if result.success and result.document is not None:
		result.document.write(output_path)
		print(f"Output PDF: {output_path}")
	else:
		print(f"Failed: {result.error_type}: {result.error}")
	if args.manifest_path:
		cpe.batch.write_manifest(pathlib.Path(args.manifest_path), result, options)
		print(f"Manifest written: {args.manifest_path}")
	print(f"Timing: total={time.perf_counter() - start_time:.2f}s")
	if result.success:
		return 0
	return 1


#============================================
def run_render(args: argparse.Namespace) -> int:
	"""
	Render a single card to PNG.

	Args:
		args: Parsed argparse namespace.

	Returns:
		Process exit code.
	"""
	template = cpe.template.load_template(args.template)
	record: dict = {}
	if args.record_path:
		records = cpe.template.load_records(args.record_path)
		if not 0 <= args.index < len(records):
			print(f"Record index {args.index} out of range (found {len(records)})")
			return 1
		record = records[args.index]
	card = cpe.render.render_card_sync(template, record, args.width, args.height)
	output_path = pathlib.Path(args.output_path)
	output_path.write_bytes(card.png)
	for warning in card.warnings:
		print(f"Warning: {warning}")
	print(f"Card written: {output_path} ({card.width}x{card.height})")
	return 0


#============================================
def run_batch(args: argparse.Namespace) -> int:
	"""
	Render a records file onto PDF sheets.

	Args:
		args: Parsed argparse namespace.

	Returns:
		Process exit code.
	"""
	start_time = time.perf_counter()
	options = build_options(args)
	template = cpe.template.load_template(args.template)
	records = cpe.template.load_records(args.records)
	print(f"Mode: {options.mode}")
	print(f"Paper: {options.paper}")
	print(f"Records found: {len(records)}")

	def progress(current: int, total: int) -> None:
		print_progress("Rendering", current, total)

	result = cpe.batch.render_batch_sync(records, template, options, progress=progress)
	return finish_sheets(args, result, options, start_time)


#============================================
def run_impose(args: argparse.Namespace) -> int:
	"""
	Lay out card images onto PDF sheets.

	Args:
		args: Parsed argparse namespace.

	Returns:
		Process exit code.
	"""
	start_time = time.perf_counter()
	options = build_options(args)
	paths = [pathlib.Path(path) for path in args.images]
	print(f"Mode: {options.mode}")
	print(f"Images found: {len(paths)}")
	slot_is_landscape = SLOT_ORIENTATIONS[args.slot_orientation]
	result = cpe.batch.impose_images_sync(paths, options, slot_is_landscape)
	return finish_sheets(args, result, options, start_time)


COMMANDS = {
	"render": run_render,
	"batch": run_batch,
	"impose": run_impose,
}


#============================================
def main(argv: list[str] | None = None) -> int:
	"""
	Main entry point.
	"""
	args = parse_args(argv)
	if args.verbose:
		logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
	try:
		return COMMANDS[args.command](args)
	except cpe.errors.CardEngineError as error:
		print(f"Failed: {type(error).__name__}: {error}", file=sys.stderr)
		return 1
