"""
URL-keyed response cache.

Stands in for an edge cache: the key is the full request URL (signature and
query string included), the value is the finished HTTP response. Only
successful responses are ever stored.
"""

from typing import Optional
import logging
import time
import os
import re

import apsw
import apsw.bestpractice
from aiohttp import web, hdrs

from . import static_config

logger = logging.getLogger(__name__)

apsw.bestpractice.apply(apsw.bestpractice.recommended)

MAX_AGE_RE = re.compile(r"(?:^|[,\s])max-age=(\d+)")


def max_age_from_cache_control(cache_control: Optional[str]) -> int:
	if cache_control:
		m = MAX_AGE_RE.search(cache_control)
		if m:
			return int(m.group(1))
	return static_config.CACHE_MAX_AGE


class ResponseCache:
	def __init__(self, path: str = static_config.CACHE_DB_PATH) -> None:
		logger.info(f"opening response cache at {path}")
		self.path = path
		if "/" in path:
			os.makedirs(os.path.dirname(path), exist_ok=True)
		self.con = apsw.Connection(path)
		self.hits = 0
		self.misses = 0

		config_exists = self.con.execute(
			"SELECT count(*) FROM sqlite_master WHERE type='table' AND name='config'"
		).fetchone()[0]

		if config_exists:
			version = self.con.execute(
				"SELECT cache_version FROM config"
			).fetchone()[0]
			if version != static_config.ATAVATAR_CACHE_VERSION:
				# it's only a cache, start over
				logger.warning(
					f"cache version {version} != {static_config.ATAVATAR_CACHE_VERSION}, dropping cache"
				)
				with self.con:
					self.con.execute("DROP TABLE response")
					self.con.execute("DROP TABLE config")
					self._init_tables()
		else:
			with self.con:
				self._init_tables()

	def _init_tables(self):
		logger.info("initing tables")
		self.con.execute(
			"""
			CREATE TABLE config(
				cache_version INTEGER NOT NULL
			) STRICT
			"""
		)
		self.con.execute(
			"INSERT INTO config(cache_version) VALUES (?)",
			(static_config.ATAVATAR_CACHE_VERSION,),
		)
		self.con.execute(
			"""
			CREATE TABLE response(
				url TEXT PRIMARY KEY NOT NULL,
				content_type TEXT NOT NULL,
				cache_control TEXT NOT NULL,
				body BLOB NOT NULL,
				created_at INTEGER NOT NULL,
				expires_at INTEGER NOT NULL
			) STRICT
			"""
		)
		self.con.execute(
			"CREATE INDEX response_by_expiry ON response(expires_at)"
		)

	def get(self, key: str) -> Optional[web.Response]:
		now = int(time.time())
		row = self.con.execute(
			"SELECT content_type, cache_control, body, expires_at FROM response WHERE url=?",
			(key,),
		).fetchone()

		if row is not None and row[3] <= now:
			self.con.execute("DELETE FROM response WHERE url=?", (key,))
			row = None

		if row is None:
			self.misses += 1
			logger.debug(
				f"cache miss for {key}. Total hits: {self.hits}, Total misses: {self.misses}"
			)
			return None

		self.hits += 1
		content_type, cache_control, body, _ = row
		return web.Response(
			body=body,
			headers={
				hdrs.CONTENT_TYPE: content_type,
				hdrs.CACHE_CONTROL: cache_control,
			},
		)

	def put(self, key: str, response: web.Response) -> None:
		if response.status != 200:
			raise ValueError("refusing to cache a non-200 response")
		body = response.body
		if not isinstance(body, bytes):
			raise TypeError("can only cache responses with an in-memory body")

		cache_control = response.headers.get(
			hdrs.CACHE_CONTROL, static_config.CACHE_CONTROL
		)
		now = int(time.time())
		self.con.execute(
			"INSERT OR REPLACE INTO response (url, content_type, cache_control, body, created_at, expires_at) VALUES (?, ?, ?, ?, ?, ?)",
			(
				key,
				response.headers.get(hdrs.CONTENT_TYPE, response.content_type),
				cache_control,
				body,
				now,
				now + max_age_from_cache_control(cache_control),
			),
		)

	def purge_expired(self) -> int:
		with self.con:
			self.con.execute(
				"DELETE FROM response WHERE expires_at<=?", (int(time.time()),)
			)
			return self.con.changes()

	def close(self) -> None:
		self.con.close()
