from typing import Optional

import aiohttp
from aiohttp import web

from .cache import ResponseCache
from .did import ActorResolver
from .signing import AvatarSigner

ATAVATAR_AIOHTTP_CLIENT = web.AppKey(
	"ATAVATAR_AIOHTTP_CLIENT", aiohttp.ClientSession
)
ATAVATAR_ACTOR_RESOLVER = web.AppKey("ATAVATAR_ACTOR_RESOLVER", ActorResolver)
ATAVATAR_SIGNER = web.AppKey("ATAVATAR_SIGNER", AvatarSigner)
ATAVATAR_CACHE = web.AppKey("ATAVATAR_CACHE", ResponseCache)
ATAVATAR_BSKY_API = web.AppKey("ATAVATAR_BSKY_API", str)
ATAVATAR_RESIZE_PFX = web.AppKey("ATAVATAR_RESIZE_PFX", Optional[str])


# these helpers are useful for conciseness and type hinting
def get_client(req: web.Request):
	return req.app[ATAVATAR_AIOHTTP_CLIENT]


def get_actor_resolver(req: web.Request):
	return req.app[ATAVATAR_ACTOR_RESOLVER]


def get_signer(req: web.Request):
	return req.app[ATAVATAR_SIGNER]


def get_cache(req: web.Request):
	return req.app[ATAVATAR_CACHE]


def get_bsky_api(req: web.Request):
	return req.app[ATAVATAR_BSKY_API]


def get_resize_pfx(req: web.Request):
	return req.app[ATAVATAR_RESIZE_PFX]


__all__ = [
	"ATAVATAR_AIOHTTP_CLIENT",
	"ATAVATAR_ACTOR_RESOLVER",
	"ATAVATAR_SIGNER",
	"ATAVATAR_CACHE",
	"ATAVATAR_BSKY_API",
	"ATAVATAR_RESIZE_PFX",
	"get_client",
	"get_actor_resolver",
	"get_signer",
	"get_cache",
	"get_bsky_api",
	"get_resize_pfx",
]
