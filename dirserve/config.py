"""
Command line flags. Defaults come from the environment or a .env file.
"""
import argparse
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_HOST = "[::]"
DEFAULT_PORT = 8000
TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
	path: str
	host: str = DEFAULT_HOST
	port: int = DEFAULT_PORT
	cache: bool = False
	tls: bool = False
	content_type: Optional[str] = None

	@property
	def scheme(self):
		return "https" if self.tls else "http"

	@property
	def bind_host(self):
		# "[::]" is how the address is written, not how it is bound
		return self.host.strip("[]")


def env_flag(name):
	return os.getenv(name, "").strip().lower() in TRUTHY


def port_number(value):
	try:
		port = int(value)
	except ValueError as exc:
		raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from exc
	if not 0 <= port <= 65535:
		raise argparse.ArgumentTypeError("port must be between 0 and 65535")
	return port


def build_parser():
	parser = argparse.ArgumentParser(
		prog="dirserve",
		description="Serve a directory tree over HTTP(S) with autoindex "
			"listings.",
	)
	parser.add_argument("-path", "--path",
		default=os.getenv("FOLDER") or os.getcwd(),
		help="Path to serve")
	parser.add_argument("-host", "--host",
		default=os.getenv("HTTP_HOST", DEFAULT_HOST),
		help="Server host")
	parser.add_argument("-port", "--port", type=port_number,
		default=os.getenv("HTTP_PORT", str(DEFAULT_PORT)),
		help="Server port number")
	parser.add_argument("-cache", "--cache", action="store_true",
		default=env_flag("HTTP_CACHE"),
		help="Enable cache")
	parser.add_argument("-tls", "--tls", action="store_true",
		default=env_flag("HTTP_TLS"),
		help="Enable TLS server")
	parser.add_argument("-type", "--type", dest="content_type",
		default=os.getenv("HTTP_TYPE") or None,
		help="Force content type")
	return parser


def load_config(argv=None) -> Config:
	"""Parse argv (sys.argv when None) on top of .env defaults."""
	load_dotenv()
	parser = build_parser()
	args = parser.parse_args(argv)

	path = os.path.abspath(args.path)
	if not os.path.isdir(path):
		parser.error(f"not a directory: {path}")

	return Config(
		path=path,
		host=args.host,
		port=args.port,
		cache=args.cache,
		tls=args.tls,
		content_type=args.content_type,
	)
