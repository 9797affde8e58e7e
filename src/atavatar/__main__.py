"""
atavatar: Tangled's avatar service

The shared secret is read from $AVATAR_SHARED_SECRET (or --secret); it must
match the one the appview signs avatar URLs with.
"""

import asyncio
import logging

import click

from . import static_config
from . import service
from . import ssrf
from .cache import ResponseCache
from .signing import AvatarSigner

logger = logging.getLogger(__name__)

secret_option = click.option(
	"--secret",
	envvar=static_config.SHARED_SECRET_ENV,
	required=True,
	help=f"HMAC secret shared with the appview [env: {static_config.SHARED_SECRET_ENV}]",
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool):
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)


@cli.command()
@secret_option
@click.option("--sock", "sock_path", default=None, help="Listen on a unix socket instead of TCP.")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8123, show_default=True, type=int)
@click.option("--cache-path", default=static_config.CACHE_DB_PATH, show_default=True)
@click.option(
	"--resize-pfx",
	default=None,
	help="Base URL of an image-resizing front end used for size=tiny requests.",
)
def run(secret, sock_path, host, port, cache_path, resize_pfx):
	"""Serve avatars."""
	signer = AvatarSigner(secret)
	cache = ResponseCache(cache_path)

	async def run_service_with_client():
		async with ssrf.get_ssrf_safe_client() as client:
			await service.run(
				signer=signer,
				cache=cache,
				client=client,
				sock_path=sock_path,
				host=host,
				port=port,
				resize_pfx=resize_pfx,
			)

	try:
		asyncio.run(run_service_with_client())
	finally:
		cache.close()


@cli.command()
@secret_option
@click.argument("actor")
def sign(secret, actor):
	"""Print the signed avatar path for ACTOR."""
	click.echo(f"/{AvatarSigner(secret).sign(actor)}/{actor}")


if __name__ == "__main__":
	cli()
