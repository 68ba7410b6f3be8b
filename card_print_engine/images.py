"""
Image reference loading for photos, image nodes, and watermarks.

References may be http(s) URLs, data URIs, or local file paths. Remote and
local fetches are asynchronous; decoding always happens eagerly so a failed
image never reaches the drawing code.
"""

# Standard Library
import asyncio
import base64
import binascii
import io
import logging
import pathlib

# PIP3 modules
import aiofiles
import aiohttp
import PIL.Image
import PIL.ImageOps

# local repo modules
import card_print_engine as cpe
import card_print_engine.config
import card_print_engine.errors


ImageLoadError = cpe.errors.ImageLoadError
REQUEST_TIMEOUT = cpe.config.REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


#============================================
def is_remote(ref: str) -> bool:
	return ref.startswith(("http://", "https://"))


#============================================
def decode_data_uri(ref: str) -> bytes:
	"""
	Decode a base64 data URI.

	Args:
		ref: String like "data:image/png;base64,....".

	Returns:
		Raw bytes.
	"""
	if "," not in ref:
		raise ImageLoadError("Malformed data URI")
	header, encoded = ref.split(",", 1)
	if ";base64" not in header:
		raise ImageLoadError("Only base64 data URIs are supported")
	try:
		return base64.b64decode(encoded, validate=False)
	except (binascii.Error, ValueError) as error:
		raise ImageLoadError(f"Invalid base64 data URI: {error}") from error


#============================================
def decode_image(data: bytes) -> PIL.Image.Image:
	"""
	Decode image bytes into a fully loaded RGBA image.

	Args:
		data: Encoded image bytes.

	Returns:
		RGBA image with EXIF orientation applied.
	"""
	try:
		with PIL.Image.open(io.BytesIO(data)) as source:
			source.load()
			upright = PIL.ImageOps.exif_transpose(source)
			image = upright.convert("RGBA")
	except (PIL.UnidentifiedImageError, PIL.Image.DecompressionBombError, OSError, ValueError) as error:
		raise ImageLoadError(f"Could not decode image: {error}") from error
	if image.width <= 0 or image.height <= 0:
		raise ImageLoadError("Decoded image has no pixels")
	return image


#============================================
def load_local_image(ref: str) -> PIL.Image.Image:
	"""
	Synchronously load an image from a data URI or local path.

	Args:
		ref: Image reference.

	Returns:
		RGBA image.
	"""
	if ref.startswith("data:"):
		return decode_image(decode_data_uri(ref))
	if is_remote(ref):
		raise ImageLoadError(f"Remote image not allowed here: {ref[:70]}")
	path = pathlib.Path(ref)
	try:
		data = path.read_bytes()
	except OSError as error:
		raise ImageLoadError(f"Could not read {path}: {error}") from error
	return decode_image(data)


#============================================
async def fetch_image_bytes(ref: str, session: aiohttp.ClientSession | None = None) -> bytes:
	"""
	Fetch the raw bytes behind an image reference.

	Args:
		ref: URL, data URI, or local path.
		session: Optional shared HTTP session.

	Returns:
		Raw bytes.
	"""
	if not ref or not ref.strip():
		raise ImageLoadError("Empty image reference")
	ref = ref.strip()
	if ref.startswith("data:"):
		return decode_data_uri(ref)
	if is_remote(ref):
		timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
		try:
			if session is None:
				async with aiohttp.ClientSession(timeout=timeout) as own_session:
					async with own_session.get(ref) as response:
						response.raise_for_status()
						return await response.read()
			async with session.get(ref, timeout=timeout) as response:
				response.raise_for_status()
				return await response.read()
		except (aiohttp.ClientError, asyncio.TimeoutError) as error:
			raise ImageLoadError(f"Could not fetch {ref[:70]}: {type(error).__name__}: {error}") from error
	try:
		async with aiofiles.open(ref, "rb") as handle:
			return await handle.read()
	except OSError as error:
		raise ImageLoadError(f"Could not read {ref[:70]}: {error}") from error


class ImageLoader:
	"""
	Async image loader sharing one HTTP session across many fetches.

	Use as an async context manager for a batch; without one, each remote
	fetch opens its own session.
	"""

	def __init__(self) -> None:
		self._session: aiohttp.ClientSession | None = None

	async def __aenter__(self) -> "ImageLoader":
		timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
		self._session = aiohttp.ClientSession(timeout=timeout)
		return self

	async def __aexit__(self, exc_type, exc, tb) -> None:
		if self._session is not None:
			await self._session.close()
			self._session = None

	#============================================
	async def load(self, ref: str) -> PIL.Image.Image:
		"""
		Fetch and decode an image reference.

		Args:
			ref: URL, data URI, or local path.

		Returns:
			RGBA image.
		"""
		data = await fetch_image_bytes(ref, self._session)
		image = decode_image(data)
		logger.debug("Loaded image %s (%dx%d)", ref[:70], image.width, image.height)
		return image
