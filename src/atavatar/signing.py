"""
Request signatures.

The appview signs every avatar URL it hands out with HMAC-SHA256 over the
actor identifier, keyed with a secret it shares with us. We recompute and
compare; nothing else about the request is authenticated.
"""

import logging
import string

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

logger = logging.getLogger(__name__)

HEX_CHARS = frozenset(string.hexdigits)


class AvatarSigner:
	def __init__(self, secret: str) -> None:
		if not secret:
			raise ValueError("shared secret must not be empty")
		self._key = secret.encode()

	def _mac(self) -> hmac.HMAC:
		return hmac.HMAC(self._key, hashes.SHA256())

	def sign(self, actor: str) -> str:
		h = self._mac()
		h.update(actor.encode())
		return h.finalize().hex()

	def verify(self, actor: str, signature_hex: str) -> bool:
		logger.debug(
			f"avatar request for: {actor} computedSignature={self.sign(actor)} providedSignature={signature_hex}"
		)

		# malformed hex is just a bad signature (403), not a bad URL.
		# bytes.fromhex would also skip whitespace
		if len(signature_hex) % 2 or not HEX_CHARS.issuperset(signature_hex):
			return False
		sig = bytes.fromhex(signature_hex)

		h = self._mac()
		h.update(actor.encode())
		try:
			h.verify(sig)  # constant-time
		except InvalidSignature:
			return False
		return True


def verify(secret: str, actor: str, signature_hex: str) -> bool:
	return AvatarSigner(secret).verify(actor, signature_hex)
