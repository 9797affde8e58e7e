"""
Hardcoded configs (it is not expected that end-users need to edit this file)

The only real secret, the appview's shared signing secret, comes from the
environment (see __main__.py).
"""

HTTP_LOG_FMT = (
	'%{X-Forwarded-For}i %t (%Tf) "%r" %s %b "%{Referer}i" "%{User-Agent}i"'
)

GROUPNAME = "atavatar-sock"

SHARED_SECRET_ENV = "AVATAR_SHARED_SECRET"

ATAVATAR_CACHE_VERSION = (
	1  # this gets bumped if we make breaking changes to the cache schema
)

DATA_DIR = "./data"
CACHE_DB_PATH = DATA_DIR + "/avatar_cache.sqlite3"

# how long clients (and we) may hold on to an avatar response
CACHE_MAX_AGE = 60 * 60 * 12  # 12 hours
CACHE_CONTROL = f"public, max-age={CACHE_MAX_AGE}"
CACHE_PURGE_INTERVAL = 60 * 60  # 1 hour

PLACEHOLDER_SIZE = 128
PLACEHOLDER_SIZE_TINY = 32

DEFAULT_AVATAR_CONTENT_TYPE = "image/jpeg"

TANGLED_PROFILE_COLLECTION = "sh.tangled.actor.profile"
TANGLED_PROFILE_RKEY = "self"

BSKY_PUBLIC_API = "https://public.api.bsky.app"
PLC_DIRECTORY_HOST = "https://plc.directory"
DOH_URL = "https://cloudflare-dns.com/dns-query"

# outbound requests share one session, this is its overall per-request budget
HTTP_CLIENT_TIMEOUT = 10  # seconds

BANNER = """\
This is Tangled's avatar service. It fetches your pretty avatar from your PDS, Bluesky, or generates a placeholder.
You can't use this directly unfortunately since all requests are signed and may only originate from the appview."""
