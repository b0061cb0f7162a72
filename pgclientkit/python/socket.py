##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
socket creation for connections
"""
import socket

__all__ = ['find_available_port', 'SocketFactory']

class SocketFactory(object):
	"""
	Object used to create a socket and connect it.

	This is, more or less, a specialized partial() for socket creation.

	`socket_secure` is a dictionary of SSL parameters: ``sslmode``,
	``sslrootcert``, ``sslcert``, ``sslkey`` and the ``host`` name used to
	verify the server's certificate.
	"""

	@property
	def _security_context(self):
		if self._security_context_ii is None:
			from ssl import SSLContext, PROTOCOL_TLS_CLIENT, CERT_NONE, CERT_REQUIRED
			ctx = SSLContext(PROTOCOL_TLS_CLIENT)
			mode = self.socket_secure.get('sslmode')

			ca = self.socket_secure.get('sslrootcert')
			if mode in ('verify-ca', 'verify-full'):
				ctx.check_hostname = mode == 'verify-full'
				ctx.verify_mode = CERT_REQUIRED
				if ca is not None:
					ctx.load_verify_locations(ca)
				else:
					ctx.load_default_certs()
			else:
				# require, prefer and allow encrypt without verification.
				ctx.check_hostname = False
				ctx.verify_mode = CERT_NONE

			cf = self.socket_secure.get('sslcert')
			kf = self.socket_secure.get('sslkey')
			if cf is not None:
				ctx.load_cert_chain(cf, keyfile=kf)
			self._security_context_ii = ctx
		return self._security_context_ii

	def secure(self, socket: socket.socket):
		"""
		Secure a socket with SSL.
		"""
		ctx = self._security_context
		return ctx.wrap_socket(
			socket,
			server_hostname = self.socket_secure.get('host') if ctx.check_hostname else None
		)

	def __call__(self, timeout = None):
		s = socket.socket(*self.socket_create)
		try:
			s.settimeout(float(timeout) if timeout is not None else None)
			s.connect(self.socket_connect)
			s.settimeout(None)
		except Exception:
			s.close()
			raise
		return s

	def __init__(self,
		socket_create,
		socket_connect,
		socket_secure = None,
		socket_security_context = None
	):
		self._security_context_ii = socket_security_context
		self.socket_create = socket_create
		self.socket_connect = socket_connect
		self.socket_secure = socket_secure or {}

	def __str__(self):
		return 'socket' + repr(self.socket_connect)

def find_available_port(
	interface = 'localhost',
	address_family = socket.AF_INET,
):
	"""
	Find an available port on the given interface for the given address family.
	"""

	port = None
	s = socket.socket(address_family, socket.SOCK_STREAM,)
	try:
		s.bind((interface, 0))
		port = s.getsockname()[1]
	finally:
		s.close()

	return port
