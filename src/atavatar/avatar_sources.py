"""
Avatar locators. Each one turns an actor into a fetchable avatar URL, or None.

They never raise: a failure anywhere just means "try the next source".
"""

from typing import Any, Optional
import logging

import aiohttp

from . import static_config
from .did import ActorResolver

logger = logging.getLogger(__name__)


def cid_from_avatar_blob(avatar_blob: Any) -> Optional[str]:
	"""
	The blob ref shows up as {"ref": "<cid>"}, {"ref": {"$link": "<cid>"}},
	or (legacy) as a bare CID string.
	"""
	cid = None
	ref = avatar_blob.get("ref") if isinstance(avatar_blob, dict) else None
	if isinstance(ref, str):
		cid = ref
	elif isinstance(ref, dict) and ref.get("$link"):
		cid = ref["$link"]
	elif isinstance(avatar_blob, str):
		cid = avatar_blob

	if not cid or not isinstance(cid, str):
		return None
	return cid


async def avatar_from_pds(
	client: aiohttp.ClientSession, resolver: ActorResolver, actor: str
) -> Optional[str]:
	"""
	Look up the actor's sh.tangled.actor.profile record on their own PDS and
	return a getBlob URL for its avatar.
	"""
	try:
		identity = await resolver.resolve(actor)
		if identity is None:
			logger.debug(f"failed to resolve identity for {actor}")
			return None

		did = identity.did
		pds = (identity.pds or "").removesuffix("/")
		if not pds:
			logger.debug(f"no PDS endpoint found for {actor} ({did}, {identity.handle})")
			return None

		profile_url = (
			f"{pds}/xrpc/com.atproto.repo.getRecord?repo={did}"
			f"&collection={static_config.TANGLED_PROFILE_COLLECTION}"
			f"&rkey={static_config.TANGLED_PROFILE_RKEY}"
		)
		async with client.get(profile_url) as r:
			if not 200 <= r.status < 300:
				logger.debug(
					f"no Tangled profile found on PDS for {actor} (status {r.status})"
				)
				return None
			profile = await r.json(content_type=None)

		avatar_blob = (profile.get("value") or {}).get("avatar")
		if not avatar_blob:
			logger.debug(f"Tangled profile for {actor} has no avatar")
			return None

		cid = cid_from_avatar_blob(avatar_blob)
		if cid is None:
			logger.warning(
				f"could not extract valid CID from avatar blob for {actor}: {avatar_blob!r}"
			)
			return None

		return f"{pds}/xrpc/com.atproto.sync.getBlob?did={did}&cid={cid}"
	except Exception as e:
		logger.warning(f"error fetching Tangled avatar from PDS for {actor}: {e!r}")
		return None


async def avatar_from_bsky(
	client: aiohttp.ClientSession,
	actor: str,
	appview_pfx: str = static_config.BSKY_PUBLIC_API,
) -> Optional[str]:
	try:
		async with client.get(
			f"{appview_pfx}/xrpc/app.bsky.actor.getProfile",
			params={"actor": actor},
		) as r:
			if not 200 <= r.status < 300:
				logger.debug(f"no Bluesky profile for {actor} (status {r.status})")
				return None
			profile = await r.json(content_type=None)
	except Exception as e:
		logger.warning(f"error fetching Bluesky profile for {actor}: {e!r}")
		return None

	avatar = profile.get("avatar") if isinstance(profile, dict) else None
	if not isinstance(avatar, str) or not avatar:
		return None
	return avatar
