"""
Last-resort avatars: a solid square in a colour derived from the actor string.

The colour must match what other Tangled components compute for the same
actor, so the hash reproduces JavaScript's 32-bit string hash exactly,
including overflow and iteration over UTF-16 code units.
"""

from . import static_config


def _to_int32(n: int) -> int:
	n &= 0xFFFFFFFF
	return n - 0x100000000 if n & 0x80000000 else n


def _utf16_code_units(s: str):
	data = s.encode("utf-16-le", "surrogatepass")
	for i in range(0, len(data), 2):
		yield data[i] | (data[i + 1] << 8)


def string_hash(s: str) -> int:
	h = 0
	for unit in _utf16_code_units(s):
		h = _to_int32(unit + _to_int32(_to_int32(h << 5) - h))
	return h


def string_to_color(s: str) -> str:
	h = string_hash(s)
	return "#" + "".join(f"{(h >> (i * 8)) & 0xFF:02x}" for i in range(3))


def placeholder_svg(actor: str, size: int = static_config.PLACEHOLDER_SIZE) -> bytes:
	color = string_to_color(actor)
	return (
		f'<svg width="{size}" height="{size}" viewBox="0 0 {size} {size}" xmlns="http://www.w3.org/2000/svg">'
		f'<rect width="{size}" height="{size}" fill="{color}"/></svg>'
	).encode()
