"""
Placeholder resolution: substitute record values into a template.
"""

# Standard Library
import dataclasses

# local repo modules
import card_print_engine as cpe
import card_print_engine.template


Template = cpe.template.Template
TextNode = cpe.template.TextNode
ImagePlaceholderNode = cpe.template.ImagePlaceholderNode
Node = cpe.template.Node
Record = cpe.template.Record
MARKER_PATTERN = cpe.template.MARKER_PATTERN


#============================================
def substitute_markers(text: str, record: Record) -> str:
	"""
	Replace every {{field}} marker with its record value.

	Markers whose field has no value are kept verbatim.

	Args:
		text: Literal text with zero or more markers.
		record: Record mapping.

	Returns:
		Substituted text.
	"""
	def replace(match) -> str:
		value = cpe.template.lookup_field(record, match.group(1).strip())
		if value is None:
			return match.group(0)
		return value

	return MARKER_PATTERN.sub(replace, text)


#============================================
def resolve_node(node: Node, record: Record) -> Node:
	"""
	Resolve a single node against a record.

	An explicit field binding replaces the node content wholesale and
	suppresses marker substitution. A bound field without a value leaves
	the node as authored.

	Args:
		node: Template node.
		record: Record mapping.

	Returns:
		Resolved node, or the same node when nothing changes.
	"""
	if isinstance(node, TextNode):
		if node.field:
			value = cpe.template.lookup_field(record, node.field)
			if value is None:
				return node
			return dataclasses.replace(node, text=value)
		if "{{" not in node.text:
			return node
		return dataclasses.replace(node, text=substitute_markers(node.text, record))
	if isinstance(node, ImagePlaceholderNode):
		if not node.field:
			return node
		value = cpe.template.lookup_field(record, node.field)
		if value is None:
			return node
		return dataclasses.replace(node, src=value)
	# shapes carry no content; photos resolve at render time
	return node


#============================================
def resolve(template: Template, record: Record) -> Template:
	"""
	Resolve all placeholders in a template.

	Args:
		template: Source template.
		record: Record mapping.

	Returns:
		New template with substituted content, same node order.
	"""
	nodes = tuple(resolve_node(node, record) for node in template.nodes)
	return dataclasses.replace(template, nodes=nodes)


#============================================
def unresolved_markers(template: Template) -> list[str]:
	"""
	List markers still present in a resolved template.

	Args:
		template: Resolved template.

	Returns:
		Marker strings such as "{{class}}", in paint order.
	"""
	markers: list[str] = []
	for node in template.nodes:
		if not isinstance(node, TextNode):
			continue
		for match in MARKER_PATTERN.finditer(node.text):
			markers.append(match.group(0))
	return markers
