from typing import Dict, Callable, Any, Awaitable, Optional
from dataclasses import dataclass
import asyncio
import re
import json
import logging

import aiohttp

from . import static_config

logger = logging.getLogger(__name__)

DIDDoc = Dict[str, Any]

"""
Security considerations for DID resolution:

- SSRF - not handled here!!! - caller must pass in an "SSRF safe" ClientSession
- Overly long DID strings (handled here via a hard limit (2KiB))
- Overly long DID document responses (handled here via a hard limit (64KiB))
- Servers that are slow to respond (handled via timeouts configured in the ClientSession)
- Non-canonically-encoded DIDs (handled here via strict regex - for now we don't support percent-encoding at all)

Nothing here is cached: avatar responses are cached as a whole, so an
identity only gets re-resolved when its avatar response expires.
"""

HANDLE_REGEX = re.compile(
	r"^([a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]([a-z0-9\-]{0,61}[a-z0-9])?$"
)

INVALID_HANDLE = "handle.invalid"


@dataclass(frozen=True)
class ResolvedIdentity:
	"""
	`handle` is the handle the DID document claims, or "handle.invalid" when
	it does not claim the handle we started from. The avatar lookup only needs
	`did` and `pds`; the handle shows up in log lines.
	"""

	did: str
	handle: Optional[str]
	pds: Optional[str]


def pds_from_did_doc(doc: DIDDoc) -> Optional[str]:
	for service in doc.get("service", []):
		if not isinstance(service, dict):
			continue
		if (
			service.get("id", "").endswith("#atproto_pds")
			and service.get("type") == "AtprotoPersonalDataServer"
		):
			endpoint = service.get("serviceEndpoint")
			if isinstance(endpoint, str):
				return endpoint
	return None


def handle_from_did_doc(doc: DIDDoc) -> Optional[str]:
	for aka in doc.get("alsoKnownAs", []):
		if isinstance(aka, str) and aka.startswith("at://"):
			return aka.removeprefix("at://").lower()
	return None


class DIDResolver:
	DID_LENGTH_LIMIT = 2048
	DIDDOC_LENGTH_LIMIT = 0x10000

	def __init__(
		self,
		session: aiohttp.ClientSession,
		plc_directory_host: str = static_config.PLC_DIRECTORY_HOST,
	) -> None:
		self.session = session
		self.plc_directory_host = plc_directory_host
		self.did_methods: Dict[str, Callable[[str], Awaitable[DIDDoc]]] = {
			"web": self.resolve_did_web,
			"plc": self.resolve_did_plc,
		}

	async def resolve(self, did: str) -> DIDDoc:
		if len(did) > self.DID_LENGTH_LIMIT:
			raise ValueError("DID too long for atproto")
		scheme, method, *_ = did.split(":")
		if scheme != "did":
			raise ValueError("not a valid DID")
		resolver = self.did_methods.get(method)
		if resolver is None:
			raise ValueError(f"Unsupported DID method: {method}")
		doc = await resolver(did)
		if doc.get("id") != did:
			raise ValueError("DID document id does not match the requested DID")
		return doc

	async def resolve_did_web(self, did: str) -> DIDDoc:
		if not re.match(r"^did:web:[a-z0-9\.\-]+$", did):
			raise ValueError("Invalid did:web")
		host = did.rpartition(":")[2]

		return await get_json_with_limit(
			self.session,
			f"https://{host}/.well-known/did.json",
			self.DIDDOC_LENGTH_LIMIT,
		)

	async def resolve_did_plc(self, did: str) -> DIDDoc:
		if not re.match(r"^did:plc:[a-z2-7]+$", did):  # base32-sortable
			raise ValueError("Invalid did:plc")

		return await get_json_with_limit(
			self.session,
			f"{self.plc_directory_host}/{did}",
			self.DIDDOC_LENGTH_LIMIT,
		)


class HandleResolver:
	"""
	Resolves a handle to a DID by racing the DNS TXT method (over DoH) against
	the HTTPS well-known method. The first method to produce a DID wins.
	"""

	WELL_KNOWN_LENGTH_LIMIT = 0x1000

	def __init__(
		self,
		session: aiohttp.ClientSession,
		doh_url: str = static_config.DOH_URL,
	) -> None:
		self.session = session
		self.doh_url = doh_url

	async def resolve(self, handle: str) -> Optional[str]:
		handle = handle.lower()
		if not HANDLE_REGEX.match(handle):
			raise ValueError("Invalid handle")
		return await race(
			self.resolve_dns(handle),
			self.resolve_well_known(handle),
		)

	async def resolve_dns(self, handle: str) -> Optional[str]:
		async with self.session.get(
			self.doh_url,
			params={"name": f"_atproto.{handle}", "type": "TXT"},
			headers={"Accept": "application/dns-json"},
		) as r:
			r.raise_for_status()
			res = await r.json(content_type=None)

		dids = []
		for answer in res.get("Answer", []):
			if answer.get("type") != 16:  # TXT
				continue
			txt = answer.get("data", "").strip('"')
			if txt.startswith("did="):
				dids.append(txt.removeprefix("did="))
		if len(dids) > 1:
			raise ValueError(f"multiple DIDs in _atproto TXT records for {handle}")
		return dids[0] if dids else None

	async def resolve_well_known(self, handle: str) -> Optional[str]:
		async with self.session.get(
			f"https://{handle}/.well-known/atproto-did"
		) as r:
			if not 200 <= r.status < 300:
				return None
			body = await r.content.read(self.WELL_KNOWN_LENGTH_LIMIT)
		did = body.decode(errors="replace").strip()
		return did if did.startswith("did:") else None


class ActorResolver:
	"""
	actor (handle or DID) -> ResolvedIdentity

	Constructed once per process and shared by every request.
	"""

	def __init__(
		self,
		session: aiohttp.ClientSession,
		plc_directory_host: str = static_config.PLC_DIRECTORY_HOST,
		doh_url: str = static_config.DOH_URL,
	) -> None:
		self.handles = HandleResolver(session, doh_url)
		self.dids = DIDResolver(session, plc_directory_host)

	async def resolve(self, actor: str) -> Optional[ResolvedIdentity]:
		try:
			return await self.resolve_uncaught(actor)
		except Exception as e:
			logger.info(f"failed to resolve actor {actor!r}: {e!r}")
			return None

	async def resolve_uncaught(self, actor: str) -> Optional[ResolvedIdentity]:
		if actor.startswith("did:"):
			did = actor
		else:
			did = await self.handles.resolve(actor)
			if did is None:
				return None

		doc = await self.dids.resolve(did)
		handle = handle_from_did_doc(doc)
		if handle is None:
			handle = INVALID_HANDLE
		elif not actor.startswith("did:") and handle != actor.lower():
			# the DID doesn't claim the handle back
			handle = INVALID_HANDLE

		return ResolvedIdentity(did=did, handle=handle, pds=pds_from_did_doc(doc))


async def get_json_with_limit(
	session: aiohttp.ClientSession, url: str, limit: int
) -> Any:
	async with session.get(url) as r:
		r.raise_for_status()
		try:
			await r.content.readexactly(limit)
			raise ValueError("response too large")
		except asyncio.IncompleteReadError as e:
			# this is actually the happy path
			return json.loads(e.partial)


async def race(*coros: Awaitable[Optional[str]]) -> Optional[str]:
	"""
	Returns the first non-None result. If every coroutine returns None or
	fails, returns None, unless all of them failed, in which case the first
	error is re-raised.
	"""
	tasks = [asyncio.ensure_future(c) for c in coros]
	errors = []
	try:
		for fut in asyncio.as_completed(tasks):
			try:
				res = await fut
			except Exception as e:
				errors.append(e)
				continue
			if res is not None:
				return res
	finally:
		for task in tasks:
			task.cancel()
	if len(errors) == len(tasks):
		raise errors[0]
	return None
