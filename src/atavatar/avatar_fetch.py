from typing import Optional
from dataclasses import dataclass
import logging

import aiohttp
from aiohttp import web, hdrs

from . import static_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageTransform:
	width: int
	height: int
	fit: str
	format: str

	def as_options(self) -> str:
		return f"width={self.width},height={self.height},fit={self.fit},format={self.format}"


TINY_TRANSFORM = ImageTransform(width=32, height=32, fit="cover", format="webp")


class AvatarFetchError(Exception):
	def __init__(self, url: str, status: int) -> None:
		super().__init__(f"fetching {url} failed with status {status}")
		self.url = url
		self.status = status


def transformed_url(
	url: str, transform: Optional[ImageTransform], resize_pfx: Optional[str]
) -> str:
	"""
	Transcoding is done by an image-resizing front end
	(Cloudflare-style "{pfx}/{options}/{source url}"), never in-process.
	Without one configured we just serve the original.
	"""
	if transform is None or not resize_pfx:
		return url
	return f"{resize_pfx.removesuffix('/')}/{transform.as_options()}/{url}"


async def fetch_avatar(
	client: aiohttp.ClientSession,
	url: str,
	transform: Optional[ImageTransform] = None,
	resize_pfx: Optional[str] = None,
) -> web.Response:
	fetch_url = transformed_url(url, transform, resize_pfx)
	if transform is not None and fetch_url == url:
		logger.debug(f"no image resizer configured, fetching {url} as-is")

	async with client.get(fetch_url) as r:
		if not 200 <= r.status < 300:
			raise AvatarFetchError(fetch_url, r.status)
		body = await r.read()
		content_type = (
			r.headers.get(hdrs.CONTENT_TYPE)
			or static_config.DEFAULT_AVATAR_CONTENT_TYPE
		)

	return web.Response(
		body=body,
		headers={
			hdrs.CONTENT_TYPE: content_type,
			hdrs.CACHE_CONTROL: static_config.CACHE_CONTROL,
		},
	)
