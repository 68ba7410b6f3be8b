"""
Card template scene graph, records, and parsing.
"""

# Standard Library
import csv
import dataclasses
import json
import pathlib
import re
import typing

# local repo modules
import card_print_engine as cpe
import card_print_engine.config
import card_print_engine.errors


TemplateFormatError = cpe.errors.TemplateFormatError
EmptyOrMissingDesign = cpe.errors.EmptyOrMissingDesign

DEFAULT_RENDER_WIDTH = cpe.config.DEFAULT_RENDER_WIDTH
DEFAULT_RENDER_HEIGHT = cpe.config.DEFAULT_RENDER_HEIGHT
DEFAULT_BACKGROUND = cpe.config.DEFAULT_BACKGROUND
DEFAULT_TEXT_COLOR = cpe.config.DEFAULT_TEXT_COLOR
DEFAULT_FONT_SIZE = cpe.config.DEFAULT_FONT_SIZE
DEFAULT_MIN_FONT_SIZE = cpe.config.DEFAULT_MIN_FONT_SIZE
DEFAULT_FONT_WEIGHT = cpe.config.DEFAULT_FONT_WEIGHT
PLACEHOLDER_FILL = cpe.config.PLACEHOLDER_FILL
PLACEHOLDER_STROKE = cpe.config.PLACEHOLDER_STROKE
IMAGE_FITS = (cpe.config.FIT_CONTAIN, cpe.config.FIT_COVER, cpe.config.FIT_STRETCH)

MARKER_PATTERN = re.compile(r"\{\{(.*?)\}\}")
PHOTO_FIELD = "photo_url"

KIND_TEXT = "text"
KIND_SHAPE = "shape"
KIND_IMAGE = "image"
KIND_PHOTO = "photo"

CLIP_RECT = "rect"
CLIP_CIRCLE = "circle"

SHAPE_RECT = "rect"
SHAPE_ELLIPSE = "ellipse"
SHAPE_LINE = "line"

# authoring tool type names mapped onto node kinds
TYPE_ALIASES = {
	"text": KIND_TEXT,
	"i-text": KIND_TEXT,
	"itext": KIND_TEXT,
	"textbox": KIND_TEXT,
	"shape": KIND_SHAPE,
	"rect": KIND_SHAPE,
	"circle": KIND_SHAPE,
	"ellipse": KIND_SHAPE,
	"line": KIND_SHAPE,
	"image": KIND_IMAGE,
	"photo": KIND_PHOTO,
}

Scalar = str | int | float | bool | None
Record = typing.Mapping[str, Scalar]


@dataclasses.dataclass(frozen=True)
class NodeBase:
	x: float = 0.0
	y: float = 0.0
	width: float = 0.0
	height: float = 0.0
	opacity: float = 1.0
	clip: str | None = None
	field: str | None = None
	node_id: str | None = None


@dataclasses.dataclass(frozen=True)
class TextNode(NodeBase):
	kind: typing.ClassVar[str] = KIND_TEXT
	text: str = ""
	font_size: float = DEFAULT_FONT_SIZE
	font_weight: int = DEFAULT_FONT_WEIGHT
	font_italic: bool = False
	color: str = DEFAULT_TEXT_COLOR
	align: str = "LEFT"
	vertical_align: str = "TOP"
	text_fit: bool = True
	min_font_size: float = DEFAULT_MIN_FONT_SIZE


@dataclasses.dataclass(frozen=True)
class ShapeNode(NodeBase):
	kind: typing.ClassVar[str] = KIND_SHAPE
	shape: str = SHAPE_RECT
	fill_color: str | None = "#000000"
	stroke_color: str | None = None
	stroke_width: float = 0.0
	corner_radius: float = 0.0


@dataclasses.dataclass(frozen=True)
class ImagePlaceholderNode(NodeBase):
	kind: typing.ClassVar[str] = KIND_IMAGE
	src: str | None = None
	fit: str = "contain"


@dataclasses.dataclass(frozen=True)
class PhotoPlaceholderNode(NodeBase):
	kind: typing.ClassVar[str] = KIND_PHOTO
	fill_color: str = PLACEHOLDER_FILL
	stroke_color: str = PLACEHOLDER_STROKE


Node = TextNode | ShapeNode | ImagePlaceholderNode | PhotoPlaceholderNode


@dataclasses.dataclass(frozen=True)
class Template:
	width: int
	height: int
	nodes: tuple[Node, ...]
	background_color: str = DEFAULT_BACKGROUND
	name: str | None = None

	@property
	def is_landscape(self) -> bool:
		return self.width > self.height


#============================================
def _pick(data: dict, keys: tuple[str, ...], default: typing.Any = None) -> typing.Any:
	"""
	Return the first present, non-None value among keys.
	"""
	for key in keys:
		if key in data and data[key] is not None:
			return data[key]
	return default


#============================================
def _as_float(value: typing.Any, default: float) -> float:
	if value is None or value == "":
		return default
	try:
		return float(value)
	except (TypeError, ValueError) as error:
		raise TemplateFormatError(f"Expected a number, got {value!r}") from error


#============================================
def _parse_weight(value: typing.Any) -> int:
	"""
	Parse a font weight that may be numeric or a keyword.

	Args:
		value: Weight such as 700, "700", "bold", or "normal".

	Returns:
		Integer weight.
	"""
	if value is None:
		return DEFAULT_FONT_WEIGHT
	if isinstance(value, str):
		keyword = value.strip().lower()
		if keyword == "bold":
			return 700
		if keyword in ("normal", ""):
			return 400
		if keyword.isdigit():
			return int(keyword)
		return DEFAULT_FONT_WEIGHT
	return int(value)


#============================================
def _parse_clip(data: dict) -> str | None:
	clip = _pick(data, ("clip", "clip_shape"))
	if clip is None and data.get("isCircle"):
		return CLIP_CIRCLE
	if clip is None:
		return None
	clip = str(clip).strip().lower()
	if clip not in (CLIP_RECT, CLIP_CIRCLE):
		raise TemplateFormatError(f"Unknown clip shape: {clip!r}")
	return clip


#============================================
def _node_kind(data: dict) -> str:
	"""
	Determine the node kind from a tagged record.

	Args:
		data: Node dictionary.

	Returns:
		One of the KIND_* constants.
	"""
	extra = data.get("data") if isinstance(data.get("data"), dict) else {}
	if data.get("isPhotoPlaceholder") or extra.get("isPhotoPlaceholder"):
		return KIND_PHOTO
	tag = _pick(data, ("kind", "type"))
	if tag is None:
		raise TemplateFormatError(f"Node has no type tag: {sorted(data.keys())}")
	kind = TYPE_ALIASES.get(str(tag).strip().lower())
	if kind is None:
		raise TemplateFormatError(f"Unknown node type: {tag!r}")
	return kind


#============================================
def parse_node(data: dict) -> Node:
	"""
	Parse one tagged node record into its node variant.

	Both the native snake_case form and the authoring tool's camelCase form
	are accepted. Authoring tool scale factors are folded into width and
	height, and a circle's radius becomes its bounding box.

	Args:
		data: Node dictionary.

	Returns:
		Node variant instance.
	"""
	if not isinstance(data, dict):
		raise TemplateFormatError(f"Node must be an object, got {type(data).__name__}")
	kind = _node_kind(data)
	extra = data.get("data") if isinstance(data.get("data"), dict) else {}

	scale_x = _as_float(_pick(data, ("scale_x", "scaleX")), 1.0)
	scale_y = _as_float(_pick(data, ("scale_y", "scaleY")), 1.0)
	radius = _pick(data, ("radius",))
	if radius is not None:
		default_size = 2.0 * _as_float(radius, 0.0)
	else:
		default_size = 0.0
	width = _as_float(_pick(data, ("width", "w")), default_size) * scale_x
	height = _as_float(_pick(data, ("height", "h")), default_size) * scale_y

	field = _pick(data, ("field", "key"))
	if field is None:
		field = extra.get("key")
	if field is not None:
		field = str(field).strip() or None

	common = {
		"x": _as_float(_pick(data, ("x", "left")), 0.0),
		"y": _as_float(_pick(data, ("y", "top")), 0.0),
		"width": width,
		"height": height,
		"opacity": min(1.0, max(0.0, _as_float(_pick(data, ("opacity",)), 1.0))),
		"clip": _parse_clip(data),
		"field": field,
		"node_id": _pick(data, ("id", "node_id")),
	}

	if kind == KIND_TEXT:
		font_style = str(_pick(data, ("fontStyle",), "")).lower()
		return TextNode(
			**common,
			text=str(_pick(data, ("text", "content"), "")),
			font_size=_as_float(_pick(data, ("font_size", "fontSize")), DEFAULT_FONT_SIZE) * scale_y,
			font_weight=_parse_weight(_pick(data, ("font_weight", "fontWeight"))),
			font_italic=bool(_pick(data, ("font_italic",), font_style == "italic")),
			color=str(_pick(data, ("color", "fill"), DEFAULT_TEXT_COLOR)),
			align=str(_pick(data, ("align", "textAlign"), "LEFT")).upper(),
			vertical_align=str(_pick(data, ("vertical_align", "verticalAlign"), "TOP")).upper(),
			text_fit=bool(_pick(data, ("text_fit",), True)),
			min_font_size=_as_float(_pick(data, ("min_font_size",)), DEFAULT_MIN_FONT_SIZE),
		)
	if kind == KIND_SHAPE:
		tag = str(_pick(data, ("shape", "type"), SHAPE_RECT)).strip().lower()
		if tag in ("circle", "ellipse"):
			shape = SHAPE_ELLIPSE
		elif tag == "line":
			shape = SHAPE_LINE
		else:
			shape = SHAPE_RECT
		return ShapeNode(
			**common,
			shape=shape,
			fill_color=_pick(data, ("fill_color", "fill"), "#000000"),
			stroke_color=_pick(data, ("stroke_color", "stroke")),
			stroke_width=_as_float(_pick(data, ("stroke_width", "strokeWidth")), 0.0),
			corner_radius=_as_float(_pick(data, ("corner_radius", "rx")), 0.0),
		)
	if kind == KIND_IMAGE:
		fit = str(_pick(data, ("fit",), cpe.config.FIT_CONTAIN)).strip().lower()
		if fit not in IMAGE_FITS:
			raise TemplateFormatError(f"Unknown image fit: {fit!r}")
		return ImagePlaceholderNode(
			**common,
			src=_pick(data, ("src",)),
			fit=fit,
		)
	return PhotoPlaceholderNode(
		**common,
		fill_color=str(_pick(data, ("fill_color", "fill"), PLACEHOLDER_FILL)),
		stroke_color=str(_pick(data, ("stroke_color", "stroke"), PLACEHOLDER_STROKE)),
	)


#============================================
def parse_template(data: dict | str | None) -> Template:
	"""
	Parse a template from a dictionary or JSON string.

	Args:
		data: Template payload, possibly nested under "front_design".

	Returns:
		Template.
	"""
	if data is None:
		raise EmptyOrMissingDesign("Template is missing")
	if isinstance(data, str):
		if not data.strip():
			raise EmptyOrMissingDesign("Template is empty")
		try:
			data = json.loads(data)
		except json.JSONDecodeError as error:
			raise TemplateFormatError(f"Template is not valid JSON: {error}") from error
	if not isinstance(data, dict):
		raise TemplateFormatError(f"Template must be an object, got {type(data).__name__}")
	if isinstance(data.get("front_design"), (dict, str)):
		return parse_template(data["front_design"])

	raw_nodes = _pick(data, ("nodes", "objects"), [])
	if not raw_nodes:
		raise EmptyOrMissingDesign("Template has no nodes")
	nodes = tuple(parse_node(item) for item in raw_nodes)

	width = int(round(_as_float(_pick(data, ("width", "card_width")), DEFAULT_RENDER_WIDTH)))
	height = int(round(_as_float(_pick(data, ("height", "card_height")), DEFAULT_RENDER_HEIGHT)))
	if width <= 0 or height <= 0:
		raise TemplateFormatError(f"Template dimensions must be positive: {width}x{height}")

	return Template(
		width=width,
		height=height,
		nodes=nodes,
		background_color=str(_pick(data, ("background_color", "background"), DEFAULT_BACKGROUND)),
		name=_pick(data, ("name",)),
	)


#============================================
def load_template(path: pathlib.Path | str) -> Template:
	"""
	Load a template JSON file.

	Args:
		path: JSON file path.

	Returns:
		Template.
	"""
	text = pathlib.Path(path).read_text(encoding="utf-8")
	return parse_template(text)


#============================================
def node_to_dict(node: Node) -> dict:
	data = {"type": node.kind}
	data.update(dataclasses.asdict(node))
	return data


#============================================
def template_to_dict(template: Template) -> dict:
	"""
	Serialize a template back into its tagged dictionary form.

	Args:
		template: Template to serialize.

	Returns:
		JSON-compatible dictionary.
	"""
	return {
		"width": template.width,
		"height": template.height,
		"background_color": template.background_color,
		"name": template.name,
		"nodes": [node_to_dict(node) for node in template.nodes],
	}


#============================================
def extract_fields(template: Template) -> set[str]:
	"""
	Collect every record field a template refers to.

	Args:
		template: Template to scan.

	Returns:
		Set of field names, including "photo_url" when a photo
		placeholder is present.
	"""
	fields: set[str] = set()
	for node in template.nodes:
		if node.field:
			fields.add(node.field)
		if isinstance(node, TextNode):
			for match in MARKER_PATTERN.finditer(node.text):
				name = match.group(1).strip()
				if name:
					fields.add(name)
		if isinstance(node, PhotoPlaceholderNode):
			fields.add(PHOTO_FIELD)
	return fields


#============================================
def find_photo_placeholder(nodes: typing.Sequence[Node]) -> int | None:
	"""
	Find the index of the first photo placeholder.
	"""
	for index, node in enumerate(nodes):
		if isinstance(node, PhotoPlaceholderNode):
			return index
	return None


#============================================
def stringify_value(value: Scalar) -> str:
	"""
	Convert a record value to display text.

	Args:
		value: Scalar record value.

	Returns:
		String form; integral floats drop the trailing ".0".
	"""
	if isinstance(value, float) and value.is_integer():
		return str(int(value))
	return str(value)


#============================================
def lookup_field(record: Record, name: str) -> str | None:
	"""
	Look up a record field as display text.

	Args:
		record: Record mapping.
		name: Field name.

	Returns:
		Stringified value, or None when the field is absent or null.
	"""
	value = record.get(name)
	if value is None:
		return None
	return stringify_value(value)


#============================================
def record_label(record: Record, fallback: str = "record") -> str:
	"""
	Build a short human label for a record.

	Args:
		record: Record mapping.
		fallback: Text used when the record has no name.

	Returns:
		Label like "Asha Rao (12)".
	"""
	name = lookup_field(record, "name")
	roll_number = lookup_field(record, "roll_number")
	if name and roll_number:
		return f"{name} ({roll_number})"
	if name:
		return name
	if roll_number:
		return f"roll {roll_number}"
	return fallback


#============================================
def load_records(path: pathlib.Path | str) -> list[dict]:
	"""
	Load records from a JSON list or a CSV file.

	Args:
		path: Input path ending in .json or .csv.

	Returns:
		List of record dictionaries.
	"""
	path = pathlib.Path(path)
	if path.suffix.lower() == ".csv":
		records: list[dict] = []
		with path.open("r", encoding="utf-8", newline="") as handle:
			for row in csv.DictReader(handle):
				records.append({key: (value if value != "" else None) for key, value in row.items()})
		return records
	data = json.loads(path.read_text(encoding="utf-8"))
	if isinstance(data, dict):
		data = data.get("records", [data])
	if not isinstance(data, list):
		raise ValueError(f"Expected a list of records in {path}")
	return [dict(item) for item in data]
