"""
Error taxonomy for card rendering and sheet composition.
"""


class CardEngineError(Exception):
	"""Base class for engine errors."""


class TemplateFormatError(CardEngineError):
	"""Template data is malformed or uses an unknown node type."""


class EmptyOrMissingDesign(CardEngineError):
	"""Template is absent or has zero nodes."""


class RenderError(CardEngineError):
	"""A card could not be rasterized."""


class ImageLoadError(CardEngineError):
	"""An image reference could not be fetched or decoded."""


class PhotoLoadFailure(ImageLoadError):
	"""A record photo could not be fetched or decoded."""


class CardTooLargeForPage(CardEngineError):
	"""Not even one card slot fits on the page."""


class NoRenderableCards(CardEngineError):
	"""A batch produced zero rendered cards."""


class DocumentAssemblyFailure(CardEngineError):
	"""The PDF writer failed while assembling the document."""


class ComposerFinalizedError(CardEngineError):
	"""A finalized sheet composer was asked to accept more cards."""
