"""
Orientation correction for rendered cards placed into sheet slots.
"""

# PIP3 modules
import PIL.Image

# local repo modules
import card_print_engine as cpe
import card_print_engine.render


RenderedCard = cpe.render.RenderedCard


#============================================
def rotate_clockwise(image: PIL.Image.Image) -> PIL.Image.Image:
	"""
	Rotate an image 90 degrees clockwise, swapping width and height.

	Args:
		image: Source image; left untouched.

	Returns:
		New rotated image.
	"""
	return image.transpose(PIL.Image.Transpose.ROTATE_270)


#============================================
def needs_rotation(width: int, height: int, slot_is_landscape: bool) -> bool:
	image_is_landscape = width > height
	return image_is_landscape != slot_is_landscape


#============================================
def correct_orientation(card: RenderedCard, slot_is_landscape: bool) -> RenderedCard:
	"""
	Rotate a card when its orientation disagrees with its slot.

	The rotation is always clockwise. Square cards count as portrait.
	Templates whose content must read upright after rotation need to be
	authored in the slot orientation.

	Args:
		card: Rendered card.
		slot_is_landscape: True when the slot is wider than tall.

	Returns:
		The same card when orientations match, otherwise a rotated copy.
	"""
	if not needs_rotation(card.width, card.height, slot_is_landscape):
		return card
	image = card.image()
	try:
		rotated = rotate_clockwise(image)
	finally:
		image.close()
	try:
		return RenderedCard.from_image(rotated, warnings=card.warnings, label=card.label)
	finally:
		rotated.close()
