import ipaddress

import aiohttp
import aiohttp.connector
from aiohttp import TCPConnector, ClientSession, ClientTimeout
from aiohttp.resolver import DefaultResolver, AbstractResolver

from . import static_config

# XXX: Monkeypatch to force all hosts to go through the resolver
# This is necessary to prevent SSRF attacks via IP-literal URLs, which a PDS
# endpoint or an avatar URL can easily be.
# See https://github.com/aio-libs/aiohttp/discussions/10224 for more details.
aiohttp.connector.is_ip_address = lambda _: False


class SSRFException(ValueError):
	"""Exception raised for SSRF attempts."""

	pass


class SSRFSafeResolverWrapper(AbstractResolver):
	"""Wrapper for the default resolver to check for SSRF attempts."""

	def __init__(self, resolver: AbstractResolver):
		self.resolver = resolver

	async def resolve(self, host: str, port: int = 0, family: int = 0):
		result = await self.resolver.resolve(host, port, family)
		for addr in result:
			if not ipaddress.ip_address(addr["host"]).is_global:
				raise SSRFException(
					"Attempted SSRF to non-public IP: " + addr["host"]
				)
		return result

	async def close(self) -> None:
		await self.resolver.close()


def get_ssrf_safe_client() -> ClientSession:
	"""Return a ClientSession that uses the SSRF-safe resolver."""
	resolver = SSRFSafeResolverWrapper(DefaultResolver())
	connector = TCPConnector(resolver=resolver)
	return ClientSession(
		connector=connector,
		timeout=ClientTimeout(total=static_config.HTTP_CLIENT_TIMEOUT),
	)
