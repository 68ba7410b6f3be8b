import card_print_engine.resolver as resolver
import card_print_engine.template as template_lib


#============================================
def test_marker_substitution(card_design: dict, student_record: dict) -> None:
	"""
	Ensure markers take record values and unmatched text is kept.
	"""
	template = template_lib.parse_template(card_design)
	resolved = resolver.resolve(template, student_record)
	assert resolved.nodes[1].text == "Hillside Public School"
	assert resolved.nodes[4].text == "Class 7B"
	assert resolver.unresolved_markers(resolved) == []


#============================================
def test_field_binding_wins_over_markers() -> None:
	"""
	Ensure a bound field replaces text wholesale, markers included.
	"""
	node = template_lib.TextNode(text="{{class}}", field="name")
	resolved = resolver.resolve_node(node, {"name": "Asha", "class": "7B"})
	assert resolved.text == "Asha"


#============================================
def test_field_binding_without_value_keeps_text() -> None:
	node = template_lib.TextNode(text="Name", field="name")
	assert resolver.resolve_node(node, {"name": None}) is node
	assert resolver.resolve_node(node, {}) is node


#============================================
def test_unresolved_marker_kept_verbatim() -> None:
	"""
	Ensure a marker with no record value stays visible and is reported.
	"""
	template = template_lib.parse_template(
		{"nodes": [{"type": "text", "text": "Roll {{ roll_number }} / {{section}}"}]}
	)
	resolved = resolver.resolve(template, {"roll_number": 12.0})
	assert resolved.nodes[0].text == "Roll 12 / {{section}}"
	assert resolver.unresolved_markers(resolved) == ["{{section}}"]


#============================================
def test_image_placeholder_binding() -> None:
	node = template_lib.ImagePlaceholderNode(src="logo.png", field="logo")
	assert resolver.resolve_node(node, {"logo": "crest.png"}).src == "crest.png"
	assert resolver.resolve_node(node, {}).src == "logo.png"


#============================================
def test_resolve_keeps_node_order_and_source(card_design: dict, student_record: dict) -> None:
	template = template_lib.parse_template(card_design)
	resolved = resolver.resolve(template, student_record)
	assert [node.kind for node in resolved.nodes] == [node.kind for node in template.nodes]
	assert template.nodes[1].text == "{{school}}"
