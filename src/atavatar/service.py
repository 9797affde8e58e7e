from typing import Optional
import importlib.metadata
import logging
import asyncio
import os

import aiohttp
from aiohttp_middlewares import cors_middleware
from aiohttp import web, hdrs

from . import static_config
from .app_util import *
from .avatar_fetch import AvatarFetchError, TINY_TRANSFORM, fetch_avatar
from .avatar_sources import avatar_from_bsky, avatar_from_pds
from .cache import ResponseCache
from .did import ActorResolver
from .placeholder import placeholder_svg
from .signing import AvatarSigner

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


@web.middleware
async def security_headers_middleware(request: web.Request, handler):
	res: web.Response = await handler(request)

	res.headers.setdefault("X-Content-Type-Options", "nosniff")
	res.headers.setdefault(
		"Content-Security-Policy", "default-src 'none'; sandbox"
	)

	return res


@routes.get("/")
async def hello(request: web.Request):
	return web.Response(text=static_config.BANNER)


@routes.get("/{tail:.*}")
async def avatar(request: web.Request):
	"""
	GET /{signature}/{actor}[?size=tiny]

	The cache is consulted before the signature is checked: the cache key is
	the full URL, signature included, so a hit was already verified when it
	was stored.
	"""
	cache = get_cache(request)
	cache_key = str(request.url)
	cached = cache.get(cache_key)
	if cached is not None:
		return cached

	path_parts = request.rel_url.raw_path.removeprefix("/").split("/")
	if len(path_parts) < 2:
		return web.Response(status=400, text="Bad URL")
	signature_hex, actor = path_parts[:2]

	if not get_signer(request).verify(actor, signature_hex):
		return web.Response(status=403, text="Invalid signature")

	tiny = request.query.get("size") == "tiny"
	client = get_client(request)

	try:
		avatar_url = await avatar_from_pds(
			client, get_actor_resolver(request), actor
		)

		if avatar_url is None:
			logger.debug(f"no Tangled avatar for {actor}, falling back to Bluesky")
			avatar_url = await avatar_from_bsky(
				client, actor, get_bsky_api(request)
			)

		if avatar_url is None:
			logger.debug(f"no avatar found for {actor}, generating placeholder")
			size = (
				static_config.PLACEHOLDER_SIZE_TINY
				if tiny
				else static_config.PLACEHOLDER_SIZE
			)
			res = web.Response(
				body=placeholder_svg(actor, size),
				headers={
					hdrs.CONTENT_TYPE: "image/svg+xml",
					hdrs.CACHE_CONTROL: static_config.CACHE_CONTROL,
				},
			)
		else:
			try:
				res = await fetch_avatar(
					client,
					avatar_url,
					TINY_TRANSFORM if tiny else None,
					get_resize_pfx(request),
				)
			except AvatarFetchError as e:
				logger.info(f"{e} (avatar for {actor})")
				return web.Response(
					status=e.status, text=f"failed to fetch avatar for {actor}."
				)

		cache.put(cache_key, res)
		return res
	except Exception as e:
		logger.exception(f"error fetching avatar for {actor}")
		return web.Response(status=500, text=f"error fetching avatar: {e}")


def construct_app(
	routes,
	signer: AvatarSigner,
	cache: ResponseCache,
	client: aiohttp.ClientSession,
	resolver: Optional[ActorResolver] = None,
	bsky_api: str = static_config.BSKY_PUBLIC_API,
	resize_pfx: Optional[str] = None,
) -> web.Application:
	cors = cors_middleware(allow_all=True, allow_methods=["GET"], max_age=100_000_000)

	app = web.Application(middlewares=[cors, security_headers_middleware])
	app[ATAVATAR_AIOHTTP_CLIENT] = client
	app[ATAVATAR_ACTOR_RESOLVER] = (
		ActorResolver(client) if resolver is None else resolver
	)
	app[ATAVATAR_SIGNER] = signer
	app[ATAVATAR_CACHE] = cache
	app[ATAVATAR_BSKY_API] = bsky_api
	app[ATAVATAR_RESIZE_PFX] = resize_pfx

	app.add_routes(routes)

	return app


async def run(
	signer: AvatarSigner,
	cache: ResponseCache,
	client: aiohttp.ClientSession,
	sock_path: Optional[str],
	host: str,
	port: int,
	resize_pfx: Optional[str] = None,
):
	version = importlib.metadata.version("atavatar")
	client.headers.update({"User-Agent": f"atavatar/{version}"})

	app = construct_app(routes, signer, cache, client, resize_pfx=resize_pfx)
	runner = web.AppRunner(app, access_log_format=static_config.HTTP_LOG_FMT)
	await runner.setup()

	if sock_path is None:
		logger.info(f"listening on http://{host}:{port}")
		site = web.TCPSite(runner, host=host, port=port)
	else:
		logger.info(f"listening on {sock_path}")
		site = web.UnixSite(runner, path=sock_path)

	await site.start()

	if sock_path:
		import grp

		try:
			sock_gid = grp.getgrnam(static_config.GROUPNAME).gr_gid
			os.chown(sock_path, os.geteuid(), sock_gid)
		except KeyError:
			logger.warning(
				f"Failed to set socket group - group {static_config.GROUPNAME!r} not found."
			)
		except PermissionError:
			logger.warning(
				f"Failed to set socket group - are you a member of the {static_config.GROUPNAME!r} group?"
			)

		os.chmod(sock_path, 0o770)

	while True:
		await asyncio.sleep(static_config.CACHE_PURGE_INTERVAL)
		purged = cache.purge_expired()
		logger.info(
			f"purged {purged} expired cache entries (hits: {cache.hits}, misses: {cache.misses})"
		)
