"""
Server bootstrap: wires the config into the request handler and, when TLS
is on, into a freshly minted certificate.
"""
import functools
import http.server
import socket
import sys

from . import certs
from .config import load_config
from .handler import StaticRequestHandler


class DirServer(http.server.ThreadingHTTPServer):
	def __init__(self, server_address, handler_class, ssl_context=None):
		if ":" in server_address[0]:
			self.address_family = socket.AF_INET6
		super().__init__(server_address, handler_class)
		if ssl_context is not None:
			# handshakes happen in the worker threads, see
			# StaticRequestHandler.handle
			self.socket = ssl_context.wrap_socket(self.socket,
				server_side=True, do_handshake_on_connect=False)


	def server_bind(self):
		if self.address_family == socket.AF_INET6:
			# take ipv4 connections too where the os allows it
			try:
				self.socket.setsockopt(socket.IPPROTO_IPV6,
					socket.IPV6_V6ONLY, 0)
			except (AttributeError, OSError):
				pass
		super().server_bind()
		self.socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


def make_server(config, ssl_context=None):
	handler = functools.partial(
		StaticRequestHandler,
		directory=config.path,
		cache=config.cache,
		content_type=config.content_type,
	)
	return DirServer((config.bind_host, config.port), handler,
		ssl_context=ssl_context)


def main(argv=None):
	config = load_config(argv)

	# no certificate, no server
	ssl_context = None
	if config.tls:
		ssl_context = certs.server_context(certs.mint_chain())

	try:
		server = make_server(config, ssl_context)
	except OSError as e:
		sys.exit(f"cannot listen on {config.host}:{config.port}: {e}")

	port = server.server_address[1]
	print(f"Listening and serving {config.path} on "
		f"{config.scheme}://{config.host}:{port}")
	try:
		server.serve_forever()
	except KeyboardInterrupt:
		print("\nKeyboard interrupt received, exiting.")
	finally:
		server.server_close()
