import asyncio
from typing import Dict

import pytest
from aiohttp import web

from atavatar.did import (
	ActorResolver,
	ResolvedIdentity,
	handle_from_did_doc,
	pds_from_did_doc,
	race,
)

DID = "did:plc:ewvi7nxzyoun6zhxrhs64oiz"
OTHER_DID = "did:plc:z72i7hdynmk6r22z27h6tvur"


def did_doc(did: str, handle: str, pds: str = "https://pds.example") -> dict:
	return {
		"@context": ["https://www.w3.org/ns/did/v1"],
		"id": did,
		"alsoKnownAs": [f"at://{handle}"],
		"service": [
			{
				"id": "#atproto_pds",
				"type": "AtprotoPersonalDataServer",
				"serviceEndpoint": pds,
			}
		],
	}


PLC_DOCS: Dict[str, dict] = {
	DID: did_doc(DID, "alice.test"),
	OTHER_DID: did_doc(OTHER_DID, "someone.else"),
	# claims to be a different DID
	"did:plc:liarliarliarliarliarliarl": did_doc(DID, "alice.test"),
}

TXT_RECORDS = {
	"_atproto.alice.test": f"did={DID}",
	"_atproto.mallory.test": f"did={OTHER_DID}",
}

routes = web.RouteTableDef()


@routes.get("/dns-query")
async def doh(request: web.Request):
	assert request.query["type"] == "TXT"
	assert request.headers["Accept"] == "application/dns-json"
	name = request.query["name"]
	answers = []
	if name in TXT_RECORDS:
		answers.append({"name": name, "type": 16, "TTL": 300, "data": f'"{TXT_RECORDS[name]}"'})
	return web.json_response(
		{"Status": 0, "Answer": answers}, content_type="application/dns-json"
	)


@routes.get("/{did}")
async def plc(request: web.Request):
	doc = PLC_DOCS.get(request.match_info["did"])
	if doc is None:
		raise web.HTTPNotFound(text="DID not registered")
	return web.json_response(doc)


@pytest.fixture
async def actor_resolver(aiohttp_server, session):
	app = web.Application()
	app.add_routes(routes)
	server = await aiohttp_server(app)
	base = f"http://{server.host}:{server.port}"
	return ActorResolver(
		session, plc_directory_host=base, doh_url=base + "/dns-query"
	)


def test_pds_from_did_doc():
	assert pds_from_did_doc(did_doc(DID, "alice.test")) == "https://pds.example"
	assert pds_from_did_doc({"id": DID}) is None
	assert (
		pds_from_did_doc(
			{
				"service": [
					{"id": "#bsky_fg", "type": "BskyFeedGenerator", "serviceEndpoint": "x"},
					{"id": f"{DID}#atproto_pds", "type": "AtprotoPersonalDataServer", "serviceEndpoint": "https://b.example/"},
				]
			}
		)
		== "https://b.example/"
	)


def test_handle_from_did_doc():
	assert handle_from_did_doc(did_doc(DID, "Alice.Test")) == "alice.test"
	assert handle_from_did_doc({"alsoKnownAs": ["https://example.com"]}) is None
	assert handle_from_did_doc({}) is None


async def test_resolve_handle(actor_resolver):
	assert await actor_resolver.resolve("alice.test") == ResolvedIdentity(
		did=DID, handle="alice.test", pds="https://pds.example"
	)


async def test_resolve_did(actor_resolver):
	assert await actor_resolver.resolve(DID) == ResolvedIdentity(
		did=DID, handle="alice.test", pds="https://pds.example"
	)


async def test_handle_not_claimed_back(actor_resolver):
	identity = await actor_resolver.resolve("mallory.test")
	assert identity.did == OTHER_DID
	assert identity.handle == "handle.invalid"


@pytest.mark.parametrize(
	"actor",
	[
		"did:plc:unregisteredunregisteredu",
		"did:plc:liarliarliarliarliarliarl",
		"did:plc:NOT-BASE32",
		"did:key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK",
		"not a handle",
		"did:" + "a" * 3000,
	],
)
async def test_resolution_failures_are_none(actor_resolver, actor):
	assert await actor_resolver.resolve(actor) is None


async def test_race_first_non_none_wins():
	async def slow():
		await asyncio.sleep(10)
		return "slow"

	async def fast():
		return "fast"

	assert await race(slow(), fast()) == "fast"


async def test_race_skips_failures_and_nones():
	async def fails():
		raise ValueError("nope")

	async def nothing():
		return None

	async def later():
		await asyncio.sleep(0.01)
		return "later"

	assert await race(fails(), nothing(), later()) == "later"
	assert await race(fails(), nothing()) is None


async def test_race_all_failed_raises():
	async def fails():
		raise ValueError("nope")

	with pytest.raises(ValueError):
		await race(fails(), fails())
