"""
Request routing: directory listings for directories, raw bytes for the rest.
"""
import datetime
import email.utils
import http.server
import io
import os
import posixpath
import re
import ssl
import stat
import urllib.parse

from . import __version__
from .listing import INDEX_FILE, build_listing

CHUNK_SIZE = 65536	# 64KB chunks

NO_CACHE_HEADERS = (
	("Cache-Control", "no-cache, no-store, must-revalidate"),
	("Pragma", "no-cache"),
	("Expires", "0"),
)

RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class RangeNotSatisfiable(Exception):
	pass


def clean_url_path(path):
	"""
	Lexically clean a URL path.

	Collapses "." and ".." segments and repeated slashes. The result always
	starts with "/" and never climbs above it.
	"""
	return posixpath.normpath("/" + path.lstrip("/"))


def is_directory(path):
	"""Stat path, anything that does not exist is just not a directory."""
	try:
		st = os.stat(path)
	except (FileNotFoundError, NotADirectoryError, ValueError):
		# ValueError: NUL bytes, which no real path contains
		return False
	return stat.S_ISDIR(st.st_mode)


def parse_range(header, size):
	"""
	Parse a single "bytes=" range against a file of the given size.

	Returns an inclusive (start, end) pair, or None when the whole file
	should be sent (no header, several ranges, or something malformed).
	"""
	if not header:
		return None
	match = RANGE_RE.match(header.strip())
	if not match:
		return None
	first, last = match.groups()
	if not first and not last:
		return None

	if not first:
		# suffix form, the last N bytes
		length = int(last)
		if length == 0 or size == 0:
			raise RangeNotSatisfiable(header)
		return max(0, size - length), size - 1

	start = int(first)
	end = int(last) if last else size - 1
	if end < start:
		return None
	if start >= size:
		raise RangeNotSatisfiable(header)
	return start, min(end, size - 1)


class StaticRequestHandler(http.server.SimpleHTTPRequestHandler):
	server_version = "dirserve/" + __version__

	def __init__(self, *args, cache=False, content_type=None, **kwargs):
		# the base class handles the request inside __init__
		self.cache = cache
		self.content_type = content_type
		self._remaining = None
		super().__init__(*args, **kwargs)


	def handle(self):
		if isinstance(self.connection, ssl.SSLSocket):
			try:
				self.connection.do_handshake()
			except (ssl.SSLError, OSError) as e:
				self.log_error("TLS handshake failed: %s", e)
				return
		super().handle()


	def end_headers(self):
		if not self.cache:
			for keyword, value in NO_CACHE_HEADERS:
				self.send_header(keyword, value)
		super().end_headers()


	def split_path(self):
		"""Request path and query, with any fragment dropped."""
		path = self.path.split("#", 1)[0]
		path, _, query = path.partition("?")
		return path, query


	def translate_path(self, path):
		path = path.split("#", 1)[0].split("?", 1)[0]
		path = clean_url_path(
			urllib.parse.unquote(path, errors="surrogateescape"))
		return os.path.join(self.directory, path.lstrip("/"))


	def guess_type(self, path):
		if self.content_type:
			return self.content_type
		return super().guess_type(path)


	def send_head(self):
		self._remaining = None
		path = self.translate_path(self.path)

		try:
			is_dir = is_directory(path)
		except OSError as e:
			self.log_error("cannot stat %s: %s", path, e)
			self.send_error(500)
			return None

		request_path, query = self.split_path()
		if not is_dir:
			if request_path.endswith("/"):
				self.send_error(404, "File not found")
				return None
			return self.send_file(path)

		if not request_path.endswith("/"):
			location = "/" + request_path.lstrip("/") + "/"
			if query:
				location += "?" + query
			self.send_response(301)
			self.send_header("Location", location)
			self.send_header("Content-Length", "0")
			self.end_headers()
			return None

		display_path = clean_url_path(urllib.parse.unquote(request_path))
		try:
			listing = build_listing(path, display_path)
		except OSError as e:
			self.log_error("cannot list %s: %s", path, e)
			self.send_error(500)
			return None

		if listing is None:
			return self.send_file(os.path.join(path, INDEX_FILE))
		return self.send_listing(listing)


	def send_listing(self, listing):
		encoded = listing.render().encode("utf-8", "surrogateescape")
		f = io.BytesIO(encoded)
		self.send_response(200)
		self.send_header("Content-Type", "text/html; charset=utf-8")
		self.send_header("Content-Length", str(len(encoded)))
		self.end_headers()
		return f


	def not_modified(self, fs):
		"""Whether an If-Modified-Since header lets us answer 304."""
		if ("If-Modified-Since" not in self.headers
				or "If-None-Match" in self.headers):
			return False
		try:
			ims = email.utils.parsedate_to_datetime(
				self.headers["If-Modified-Since"])
		except (TypeError, IndexError, OverflowError, ValueError):
			return False
		if ims.tzinfo is None:
			ims = ims.replace(tzinfo=datetime.timezone.utc)
		last_modified = datetime.datetime.fromtimestamp(
			fs.st_mtime, datetime.timezone.utc).replace(microsecond=0)
		return last_modified <= ims


	def send_file(self, path):
		"""Open path and send its headers, returning the file to copy."""
		ctype = self.guess_type(path)
		try:
			f = open(path, "rb")
		except (OSError, ValueError):
			self.send_error(404, "File not found")
			return None

		try:
			fs = os.fstat(f.fileno())
			if self.not_modified(fs):
				f.close()
				self.send_response(304)
				self.end_headers()
				return None

			try:
				byte_range = parse_range(self.headers.get("Range"), fs.st_size)
			except RangeNotSatisfiable:
				f.close()
				self.send_response(416)
				self.send_header("Content-Range", f"bytes */{fs.st_size}")
				self.send_header("Content-Length", "0")
				self.end_headers()
				return None

			if byte_range is None:
				length = fs.st_size
				self.send_response(200)
			else:
				start, end = byte_range
				length = end - start + 1
				f.seek(start)
				self._remaining = length
				self.send_response(206)
				self.send_header("Content-Range",
					f"bytes {start}-{end}/{fs.st_size}")

			self.send_header("Content-Type", ctype)
			self.send_header("Content-Length", str(length))
			self.send_header("Last-Modified", self.date_time_string(fs.st_mtime))
			self.send_header("Accept-Ranges", "bytes")
			self.end_headers()
			return f
		except Exception:
			f.close()
			raise


	def copyfile(self, source, outputfile):
		if self._remaining is None:
			return super().copyfile(source, outputfile)
		remaining = self._remaining
		while remaining > 0:
			chunk = source.read(min(CHUNK_SIZE, remaining))
			if not chunk:
				break
			outputfile.write(chunk)
			remaining -= len(chunk)
