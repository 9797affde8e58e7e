from typing import Dict, List, Optional
import dataclasses

import aiohttp
import pytest
from aiohttp import web

from atavatar import service
from atavatar.cache import ResponseCache
from atavatar.did import ResolvedIdentity
from atavatar.signing import AvatarSigner

TEST_SECRET = "correct horse battery staple"

PNG_BYTES = b"\x89PNG\r\n\x1a\nnot really a png"
JPEG_BYTES = b"\xff\xd8\xffnot really a jpeg"
WEBP_BYTES = b"RIFF\x00\x00\x00\x00WEBPnot really a webp"

TEST_CID = "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"


@dataclasses.dataclass
class Upstream:
	"""
	A fake PDS + Bluesky appview + avatar CDN + image resizer, all in one.
	"""

	base: str = ""
	calls: List[str] = dataclasses.field(default_factory=list)
	# did -> getRecord response body
	records: Dict[str, dict] = dataclasses.field(default_factory=dict)
	# cid -> image bytes
	blobs: Dict[str, bytes] = dataclasses.field(default_factory=dict)
	# actor -> getProfile response body
	bsky_profiles: Dict[str, dict] = dataclasses.field(default_factory=dict)
	resize_requests: List[str] = dataclasses.field(default_factory=list)
	# actor or did -> status to answer getProfile / getRecord with, body unchanged
	status_overrides: Dict[str, int] = dataclasses.field(default_factory=dict)


UPSTREAM = web.AppKey("UPSTREAM", Upstream)

upstream_routes = web.RouteTableDef()


@web.middleware
async def record_calls(request: web.Request, handler):
	request.app[UPSTREAM].calls.append(request.path)
	return await handler(request)


@upstream_routes.get("/xrpc/com.atproto.repo.getRecord")
async def get_record(request: web.Request):
	up = request.app[UPSTREAM]
	assert request.query["collection"] == "sh.tangled.actor.profile"
	assert request.query["rkey"] == "self"
	record = up.records.get(request.query["repo"])
	if record is None:
		return web.json_response(
			{"error": "RecordNotFound", "message": "Could not locate record"},
			status=400,
		)
	return web.json_response(
		record, status=up.status_overrides.get(request.query["repo"], 200)
	)


@upstream_routes.get("/xrpc/com.atproto.sync.getBlob")
async def get_blob(request: web.Request):
	blob = request.app[UPSTREAM].blobs.get(request.query["cid"])
	if blob is None:
		return web.json_response({"error": "BlobNotFound"}, status=404)
	return web.Response(body=blob, content_type="image/png")


@upstream_routes.get("/xrpc/app.bsky.actor.getProfile")
async def get_profile(request: web.Request):
	up = request.app[UPSTREAM]
	profile = up.bsky_profiles.get(request.query["actor"])
	if profile is None:
		return web.json_response(
			{"error": "InvalidRequest", "message": "Profile not found"},
			status=400,
		)
	return web.json_response(
		profile, status=up.status_overrides.get(request.query["actor"], 200)
	)


@upstream_routes.get("/cdn/avatar.jpg")
async def cdn_avatar(request: web.Request):
	return web.Response(body=JPEG_BYTES, content_type="image/jpeg")


@upstream_routes.get("/cdn/choose")
async def cdn_multiple_choices(request: web.Request):
	return web.Response(status=300, body=b"choose one", content_type="text/html")


@upstream_routes.get("/resize/{tail:.*}")
async def resize(request: web.Request):
	request.app[UPSTREAM].resize_requests.append(request.match_info["tail"])
	return web.Response(body=WEBP_BYTES, content_type="image/webp")


@pytest.fixture
async def upstream(aiohttp_server) -> Upstream:
	up = Upstream()
	app = web.Application(middlewares=[record_calls])
	app[UPSTREAM] = up
	app.add_routes(upstream_routes)
	server = await aiohttp_server(app)
	up.base = f"http://{server.host}:{server.port}"
	return up


class FakeResolver:
	def __init__(self) -> None:
		self.identities: Dict[str, ResolvedIdentity] = {}
		self.calls: List[str] = []

	async def resolve(self, actor: str) -> Optional[ResolvedIdentity]:
		self.calls.append(actor)
		return self.identities.get(actor)


class RecordingCache(ResponseCache):
	def __init__(self) -> None:
		super().__init__(":memory:")
		self.puts: List[str] = []

	def put(self, key, response):
		self.puts.append(key)
		super().put(key, response)


@pytest.fixture
def resolver() -> FakeResolver:
	return FakeResolver()


@pytest.fixture
def cache():
	cache = RecordingCache()
	yield cache
	cache.close()


@pytest.fixture
def signer() -> AvatarSigner:
	return AvatarSigner(TEST_SECRET)


@pytest.fixture
async def session():
	async with aiohttp.ClientSession() as s:
		yield s


@pytest.fixture
def make_client(aiohttp_client, upstream, resolver, cache, signer, session):
	async def make(resize_pfx: Optional[str] = None):
		app = service.construct_app(
			service.routes,
			signer=signer,
			cache=cache,
			client=session,
			resolver=resolver,
			bsky_api=upstream.base,
			resize_pfx=resize_pfx,
		)
		return await aiohttp_client(app)

	return make


@pytest.fixture
async def client(make_client):
	return await make_client()
