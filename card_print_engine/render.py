"""
Card rasterization: paint a resolved template onto a fresh bitmap.
"""

# Standard Library
import asyncio
import dataclasses
import functools
import io
import logging
import typing

# PIP3 modules
import PIL.Image
import PIL.ImageChops
import PIL.ImageColor
import PIL.ImageDraw
import PIL.ImageFont

# local repo modules
import card_print_engine as cpe
import card_print_engine.config
import card_print_engine.errors
import card_print_engine.images
import card_print_engine.layout
import card_print_engine.resolver
import card_print_engine.template


Template = cpe.template.Template
TextNode = cpe.template.TextNode
ShapeNode = cpe.template.ShapeNode
ImagePlaceholderNode = cpe.template.ImagePlaceholderNode
PhotoPlaceholderNode = cpe.template.PhotoPlaceholderNode
Node = cpe.template.Node
Record = cpe.template.Record
EmptyOrMissingDesign = cpe.errors.EmptyOrMissingDesign
RenderError = cpe.errors.RenderError
ImageLoadError = cpe.errors.ImageLoadError
PhotoLoadFailure = cpe.errors.PhotoLoadFailure

CLIP_RECT = cpe.template.CLIP_RECT
CLIP_CIRCLE = cpe.template.CLIP_CIRCLE
PHOTO_FIELD = cpe.template.PHOTO_FIELD
FONT_CANDIDATES = cpe.config.FONT_CANDIDATES
TEXT_LEADING = cpe.config.TEXT_LEADING
PLACEHOLDER_STROKE_WIDTH = cpe.config.PLACEHOLDER_STROKE_WIDTH

Box = tuple[float, float, float, float]

logger = logging.getLogger(__name__)


class ImageSource(typing.Protocol):
	async def load(self, ref: str) -> PIL.Image.Image:
		...


@dataclasses.dataclass(frozen=True)
class RenderedCard:
	png: bytes
	width: int
	height: int
	warnings: tuple[str, ...] = ()
	label: str | None = None

	@property
	def is_landscape(self) -> bool:
		return self.width > self.height

	#============================================
	def image(self) -> PIL.Image.Image:
		"""
		Decode the PNG into a new, fully loaded image.

		Returns:
			RGB image owned by the caller.
		"""
		with PIL.Image.open(io.BytesIO(self.png)) as source:
			source.load()
			return source.copy()

	#============================================
	@classmethod
	def from_image(
		cls,
		image: PIL.Image.Image,
		warnings: typing.Sequence[str] = (),
		label: str | None = None,
	) -> "RenderedCard":
		"""
		Encode an image as PNG and wrap it.

		Args:
			image: Source image; not closed here.
			warnings: Warnings to carry along.
			label: Optional subject label.

		Returns:
			RenderedCard.
		"""
		buffer = io.BytesIO()
		image.save(buffer, format="PNG", optimize=False)
		return cls(
			png=buffer.getvalue(),
			width=image.width,
			height=image.height,
			warnings=tuple(warnings),
			label=label,
		)


#============================================
def parse_color(value: str | None, alpha: int = 255) -> tuple[int, int, int, int] | None:
	"""
	Parse a CSS-like color string into RGBA.

	Args:
		value: Color such as "#AABBCC", "red", or "rgb(1,2,3)".
		alpha: Alpha applied when the color has none.

	Returns:
		RGBA tuple, or None for empty and "transparent" colors.
	"""
	if value is None:
		return None
	text = str(value).strip()
	if not text or text.lower() in ("transparent", "none"):
		return None
	try:
		rgb = PIL.ImageColor.getrgb(text)
	except ValueError:
		logger.debug("Unknown color %r, using black", text)
		return (0, 0, 0, alpha)
	if len(rgb) == 4:
		return rgb
	return (rgb[0], rgb[1], rgb[2], alpha)


#============================================
@functools.lru_cache(maxsize=128)
def load_font(size: int, bold: bool, italic: bool) -> PIL.ImageFont.ImageFont:
	"""
	Load a TrueType font for a pixel size and style.

	Args:
		size: Pixel size.
		bold: Bold flag.
		italic: Italic flag.

	Returns:
		Font object; Pillow's default font when no candidate is installed.
	"""
	if bold and italic:
		style = "bold_italic"
	elif bold:
		style = "bold"
	elif italic:
		style = "italic"
	else:
		style = "regular"
	for candidate in FONT_CANDIDATES[style]:
		try:
			return PIL.ImageFont.truetype(candidate, size)
		except OSError:
			continue
	return PIL.ImageFont.load_default(size=size)


#============================================
def scale_box(node: Node, scale_x: float, scale_y: float) -> Box:
	return (node.x * scale_x, node.y * scale_y, node.width * scale_x, node.height * scale_y)


#============================================
def to_int_box(box: Box) -> tuple[int, int, int, int]:
	"""
	Round a float box to pixel corners (x0, y0, x1, y1).
	"""
	x0 = int(round(box[0]))
	y0 = int(round(box[1]))
	x1 = int(round(box[0] + box[2]))
	y1 = int(round(box[1] + box[3]))
	return (x0, y0, x1, y1)


#============================================
def build_clip_mask(size: tuple[int, int], box: Box, clip: str) -> PIL.Image.Image:
	"""
	Build an L-mode mask for a rectangle or circle clip.

	The circle is centered on the box center with a radius of half the
	shorter side.

	Args:
		size: Surface size.
		box: Clip bounds (x, y, width, height).
		clip: "rect" or "circle".

	Returns:
		Mask image, 255 inside the clip.
	"""
	mask = PIL.Image.new("L", size, 0)
	draw = PIL.ImageDraw.Draw(mask)
	if clip == CLIP_CIRCLE:
		center_x = box[0] + box[2] / 2.0
		center_y = box[1] + box[3] / 2.0
		radius = min(box[2], box[3]) / 2.0
		draw.ellipse(
			(
				int(round(center_x - radius)),
				int(round(center_y - radius)),
				int(round(center_x + radius)) - 1,
				int(round(center_y + radius)) - 1,
			),
			fill=255,
		)
	else:
		x0, y0, x1, y1 = to_int_box(box)
		draw.rectangle((x0, y0, x1 - 1, y1 - 1), fill=255)
	return mask


#============================================
def composite_layer(
	surface: PIL.Image.Image,
	layer: PIL.Image.Image,
	opacity: float,
	clip: str | None,
	box: Box,
) -> None:
	"""
	Composite a node layer onto the surface with clip and opacity.

	Args:
		surface: RGBA surface, modified in place.
		layer: RGBA layer the size of the surface.
		opacity: Node opacity 0.0-1.0.
		clip: Optional clip shape.
		box: Clip bounds.
	"""
	if clip is not None or opacity < 1.0:
		alpha = layer.getchannel("A")
		if clip is not None:
			mask = build_clip_mask(surface.size, box, clip)
			alpha = PIL.ImageChops.multiply(alpha, mask)
			mask.close()
		if opacity < 1.0:
			factor = max(0.0, opacity)
			alpha = alpha.point(lambda value: int(round(value * factor)))
		layer.putalpha(alpha)
	surface.alpha_composite(layer)


#============================================
def draw_text_node(
	draw: PIL.ImageDraw.ImageDraw,
	node: TextNode,
	box: Box,
	scale_y: float,
) -> None:
	"""
	Draw a text node, shrinking the font to fit when requested.

	Args:
		draw: Draw handle for the node layer.
		node: Resolved TextNode.
		box: Scaled node box.
		scale_y: Vertical template-to-output scale.
	"""
	lines = node.text.splitlines()
	if not lines:
		return
	bold = node.font_weight >= 700
	font_size = max(1.0, node.font_size * scale_y)
	font = load_font(int(round(font_size)), bold, node.font_italic)

	def compute_leading(size: float) -> float:
		return size * TEXT_LEADING

	leading = compute_leading(font_size)
	text_height = font_size + leading * (len(lines) - 1)
	max_width = max(draw.textlength(line, font=font) for line in lines)
	box_x, box_y, box_width, box_height = box
	if node.text_fit and box_width > 0 and box_height > 0:
		if max_width > box_width or text_height > box_height:
			scale_width = box_width / max_width if max_width > 0 else 1.0
			scale_height = box_height / text_height if text_height > 0 else 1.0
			scale = min(1.0, scale_width, scale_height)
			if scale < 1.0:
				min_size = node.min_font_size * scale_y
				font_size = max(min_size, font_size * scale, 1.0)
				font = load_font(int(round(font_size)), bold, node.font_italic)
				leading = compute_leading(font_size)
				text_height = font_size + leading * (len(lines) - 1)

	align_v = node.vertical_align.upper()
	if align_v in ("CENTER", "MIDDLE"):
		base_y = box_y + (box_height - text_height) / 2.0
	elif align_v == "BOTTOM":
		base_y = box_y + box_height - text_height
	else:
		base_y = box_y

	fill = parse_color(node.color) or (0, 0, 0, 255)
	align_h = node.align.upper()
	for index, line in enumerate(lines):
		line_width = draw.textlength(line, font=font)
		if align_h in ("CENTER", "MIDDLE"):
			text_x = box_x + (box_width - line_width) / 2.0
		elif align_h == "RIGHT":
			text_x = box_x + box_width - line_width
		else:
			text_x = box_x
		text_y = base_y + index * leading
		draw.text((int(round(text_x)), int(round(text_y))), line, font=font, fill=fill)


#============================================
def draw_shape_node(draw: PIL.ImageDraw.ImageDraw, node: ShapeNode, box: Box, scale: float) -> None:
	"""
	Draw a rectangle, ellipse, or line node.

	Args:
		draw: Draw handle for the node layer.
		node: ShapeNode.
		box: Scaled node box.
		scale: Uniform scale applied to stroke widths and radii.
	"""
	fill = parse_color(node.fill_color)
	outline = parse_color(node.stroke_color)
	stroke_width = int(round(node.stroke_width * scale))
	if outline is None:
		stroke_width = 0
	x0, y0, x1, y1 = to_int_box(box)
	if node.shape == cpe.template.SHAPE_LINE:
		color = outline or fill
		if color is None:
			return
		draw.line((x0, y0, x1, y1), fill=color, width=max(1, stroke_width))
		return
	if x1 <= x0 or y1 <= y0:
		return
	corners = (x0, y0, x1 - 1, y1 - 1)
	if node.shape == cpe.template.SHAPE_ELLIPSE:
		draw.ellipse(corners, fill=fill, outline=outline, width=stroke_width)
		return
	radius = int(round(node.corner_radius * scale))
	if radius > 0:
		draw.rounded_rectangle(corners, radius=radius, fill=fill, outline=outline, width=stroke_width)
	else:
		draw.rectangle(corners, fill=fill, outline=outline, width=stroke_width)


#============================================
def draw_placeholder_glyph(
	draw: PIL.ImageDraw.ImageDraw,
	box: Box,
	fill_color: str,
	stroke_color: str,
	clip: str | None,
) -> None:
	"""
	Draw the visible stand-in for an unfilled image or photo slot.

	Args:
		draw: Draw handle for the node layer.
		box: Scaled node box.
		fill_color: Background fill.
		stroke_color: Outline and silhouette color.
		clip: Clip shape, used to round the glyph for circular slots.
	"""
	x0, y0, x1, y1 = to_int_box(box)
	if x1 <= x0 or y1 <= y0:
		return
	fill = parse_color(fill_color)
	stroke = parse_color(stroke_color) or (0, 0, 0, 255)
	corners = (x0, y0, x1 - 1, y1 - 1)
	if clip == CLIP_CIRCLE:
		draw.ellipse(corners, fill=fill, outline=stroke, width=PLACEHOLDER_STROKE_WIDTH)
	else:
		draw.rectangle(corners, fill=fill, outline=stroke, width=PLACEHOLDER_STROKE_WIDTH)
	# head and shoulders silhouette
	width = x1 - x0
	height = y1 - y0
	center_x = x0 + width / 2.0
	head_radius = min(width, height) * 0.18
	head_y = y0 + height * 0.38
	draw.ellipse(
		(
			int(round(center_x - head_radius)),
			int(round(head_y - head_radius)),
			int(round(center_x + head_radius)),
			int(round(head_y + head_radius)),
		),
		fill=stroke,
	)
	shoulder_width = min(width, height) * 0.36
	draw.pieslice(
		(
			int(round(center_x - shoulder_width)),
			int(round(y0 + height * 0.62)),
			int(round(center_x + shoulder_width)),
			int(round(y0 + height * 0.62 + 2.0 * shoulder_width)),
		),
		start=180,
		end=360,
		fill=stroke,
	)


#============================================
def paste_fitted(
	layer: PIL.Image.Image,
	image: PIL.Image.Image,
	box: Box,
	fit: str,
) -> Box:
	"""
	Resize an image per a fit policy and paste it onto a layer.

	Args:
		layer: RGBA layer, modified in place.
		image: RGBA source image.
		box: Target box.
		fit: "cover", "contain", or "stretch".

	Returns:
		The drawn rectangle (x, y, width, height).
	"""
	fitted = cpe.layout.compute_fit(fit, box, image.width, image.height)
	target_width = max(1, int(round(fitted.width)))
	target_height = max(1, int(round(fitted.height)))
	resized = image.resize((target_width, target_height), PIL.Image.Resampling.LANCZOS)
	try:
		alpha_composite_clipped(layer, resized, (int(round(fitted.x)), int(round(fitted.y))))
	finally:
		resized.close()
	return (fitted.x, fitted.y, fitted.width, fitted.height)


#============================================
def alpha_composite_clipped(layer: PIL.Image.Image, image: PIL.Image.Image, dest: tuple[int, int]) -> None:
	"""
	Alpha composite an image that may extend past the layer edges.
	"""
	left = max(0, -dest[0])
	top = max(0, -dest[1])
	right = min(image.width, layer.width - dest[0])
	bottom = min(image.height, layer.height - dest[1])
	if right <= left or bottom <= top:
		return
	visible = image.crop((left, top, right, bottom))
	try:
		layer.alpha_composite(visible, dest=(dest[0] + left, dest[1] + top))
	finally:
		visible.close()


#============================================
def draw_photo(layer: PIL.Image.Image, photo: PIL.Image.Image, box: Box) -> None:
	"""
	Cover-fit a photo into the placeholder box, centered.

	Args:
		layer: RGBA layer, modified in place.
		photo: Decoded photo.
		box: Placeholder box; overflow is clipped later by the node mask.
	"""
	fitted = cpe.layout.compute_cover_fit(box[0], box[1], box[2], box[3], photo.width, photo.height)
	target_width = max(1, int(round(fitted.width)))
	target_height = max(1, int(round(fitted.height)))
	resized = photo.resize((target_width, target_height), PIL.Image.Resampling.LANCZOS)
	try:
		alpha_composite_clipped(layer, resized, (int(round(fitted.x)), int(round(fitted.y))))
	finally:
		resized.close()


#============================================
def paint_node(
	surface: PIL.Image.Image,
	node: Node,
	scale_x: float,
	scale_y: float,
	photo: PIL.Image.Image | None,
	photo_failed: bool,
	warnings: list[str],
) -> None:
	"""
	Paint one node onto the surface.

	Args:
		surface: RGBA surface, modified in place.
		node: Resolved node.
		scale_x: Horizontal template-to-output scale.
		scale_y: Vertical template-to-output scale.
		photo: Decoded photo for this node when it is the active photo slot.
		photo_failed: True when this node's photo failed to load.
		warnings: Warning list, appended to.
	"""
	box = scale_box(node, scale_x, scale_y)
	layer = PIL.Image.new("RGBA", surface.size, (0, 0, 0, 0))
	try:
		draw = PIL.ImageDraw.Draw(layer)
		clip = node.clip
		match node:
			case TextNode():
				draw_text_node(draw, node, box, scale_y)
			case ShapeNode():
				draw_shape_node(draw, node, box, min(scale_x, scale_y))
			case ImagePlaceholderNode():
				image = None
				if node.src:
					try:
						image = cpe.images.load_local_image(node.src)
					except ImageLoadError as error:
						logger.warning("Image node %s not drawn: %s", node.node_id or "", error)
						warnings.append(f"Image not loaded: {error}")
				if image is None:
					draw_placeholder_glyph(draw, box, cpe.config.PLACEHOLDER_FILL, cpe.config.PLACEHOLDER_STROKE, clip)
				else:
					try:
						paste_fitted(layer, image, box, node.fit)
					except ValueError as error:
						raise RenderError(f"Image node {node.node_id or ''} not drawn: {error}") from error
					finally:
						image.close()
					if clip is None:
						clip = CLIP_RECT
			case PhotoPlaceholderNode():
				if photo_failed:
					return
				if photo is None:
					draw_placeholder_glyph(draw, box, node.fill_color, node.stroke_color, clip)
				else:
					draw_photo(layer, photo, box)
					if clip is None:
						clip = CLIP_RECT
			case _:
				raise RenderError(f"Unsupported node type: {type(node).__name__}")
		composite_layer(surface, layer, node.opacity, clip, box)
	finally:
		layer.close()


#============================================
async def load_photo(loader: ImageSource, ref: str) -> PIL.Image.Image:
	try:
		return await loader.load(ref)
	except ImageLoadError as error:
		raise PhotoLoadFailure(str(error)) from error


#============================================
def validate_size(width: int, height: int) -> None:
	if int(width) != width or int(height) != height:
		raise RenderError(f"Render size must be whole pixels: {width}x{height}")
	if width <= 0 or height <= 0:
		raise RenderError(f"Render size must be positive: {width}x{height}")


#============================================
async def render_card(
	template: Template | None,
	record: Record,
	width: int | None = None,
	height: int | None = None,
	loader: ImageSource | None = None,
) -> RenderedCard:
	"""
	Render one card for one record.

	The template is resolved against the record, painted in node order onto
	a surface allocated for this call only, and flattened to PNG. The first
	photo placeholder receives the record photo, cover-fitted and clipped;
	a photo that fails to load leaves that slot unpainted and adds a
	warning instead of failing the card.

	Args:
		template: Card template.
		record: Record mapping.
		width: Output width in pixels, template width by default.
		height: Output height in pixels, template height by default.
		loader: Async image source for the photo.

	Returns:
		RenderedCard.
	"""
	if template is None or not template.nodes:
		raise EmptyOrMissingDesign("Template is missing or has no nodes")
	if width is None:
		width = template.width
	if height is None:
		height = template.height
	validate_size(width, height)
	width = int(width)
	height = int(height)
	if loader is None:
		loader = cpe.images.ImageLoader()

	label = cpe.template.record_label(record)
	resolved = cpe.resolver.resolve(template, record)
	warnings: list[str] = []
	for marker in cpe.resolver.unresolved_markers(resolved):
		warnings.append(f"Unresolved marker {marker}")

	photo_index = cpe.template.find_photo_placeholder(resolved.nodes)
	photo_ref = cpe.template.lookup_field(record, PHOTO_FIELD)
	photo: PIL.Image.Image | None = None
	photo_failed = False
	if photo_index is not None and photo_ref:
		try:
			photo = await load_photo(loader, photo_ref)
		except PhotoLoadFailure as error:
			logger.warning("Could not load photo for %s: %s", label, error)
			warnings.append(f"{type(error).__name__}: {error}")
			photo_failed = True

	scale_x = width / template.width
	scale_y = height / template.height
	background = parse_color(resolved.background_color) or (255, 255, 255, 255)
	surface = PIL.Image.new("RGBA", (width, height), background)
	try:
		for index, node in enumerate(resolved.nodes):
			active_photo = index == photo_index
			paint_node(
				surface,
				node,
				scale_x,
				scale_y,
				photo if active_photo else None,
				photo_failed and active_photo,
				warnings,
			)
		flattened = surface.convert("RGB")
		try:
			card = RenderedCard.from_image(flattened, warnings=warnings, label=label)
		finally:
			flattened.close()
	finally:
		surface.close()
		if photo is not None:
			photo.close()
	return card


#============================================
def render_card_sync(
	template: Template | None,
	record: Record,
	width: int | None = None,
	height: int | None = None,
	loader: ImageSource | None = None,
) -> RenderedCard:
	"""
	Blocking wrapper around render_card for callers without an event loop.
	"""
	return asyncio.run(render_card(template, record, width, height, loader))
