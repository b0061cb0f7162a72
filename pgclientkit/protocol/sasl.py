##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
SCRAM-SHA-256 client exchange (RFC 5802, RFC 7677).

PostgreSQL ignores the SCRAM user name; the user given in the startup message
is authoritative, so the client-first message always carries an empty `n=`.
Channel binding is not supported, "n,," is the GS2 header.
"""
import os
import hmac
import base64
import hashlib

from .. import exceptions as pg_exc

mechanism = b'SCRAM-SHA-256'
gs2_header = b'n,,'
nonce_length = 18

def salted_password(password, salt, iterations):
	return hashlib.pbkdf2_hmac('sha256', password, salt, iterations)

def hmac256(key, msg):
	return hmac.new(key, msg, hashlib.sha256).digest()

def client_key(salted):
	return hmac256(salted, b'Client Key')

def server_key(salted):
	return hmac256(salted, b'Server Key')

def stored_key(salted):
	return hashlib.sha256(client_key(salted)).digest()

def xor(a, b):
	return bytes(x ^ y for x, y in zip(a, b))

def parse_attributes(data):
	"""
	Split a SCRAM message, b'r=...,s=...,i=...', into a dictionary of
	attribute bytes.
	"""
	attrs = {}
	for part in data.split(b','):
		if len(part) < 2 or part[1:2] != b'=':
			raise pg_exc.ProtocolError(
				"malformed SCRAM attribute %r" %(part,)
			)
		attrs[part[0:1]] = part[2:]
	return attrs

class ScramSHA256(object):
	"""
	ScramSHA256(user, password)

	Client side state of one SCRAM-SHA-256 exchange. `password` is bytes. The
	methods are called in order:

		`client_first_message`, `process_server_first`, `verify_server_final`
	"""
	def __init__(self, user, password, nonce = None):
		self.user = user
		self.password = password
		if nonce is None:
			nonce = base64.b64encode(os.urandom(nonce_length))
		self.client_nonce = nonce
		self.client_first_bare = None
		self.auth_message = None
		self.salted = None

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__,
			type(self).__name__,
			self.user,
		)

	def client_first_message(self):
		self.client_first_bare = b'n=,r=' + self.client_nonce
		return gs2_header + self.client_first_bare

	def process_server_first(self, data):
		"""
		Given the server-first message, produce the client-final message.
		"""
		if isinstance(data, str):
			data = data.encode('utf-8')
		attrs = parse_attributes(data)
		try:
			nonce = attrs[b'r']
			salt = base64.b64decode(attrs[b's'])
			iterations = int(attrs[b'i'])
		except (KeyError, ValueError) as err:
			raise pg_exc.ProtocolError(
				"invalid SCRAM server-first message"
			) from err
		if not nonce.startswith(self.client_nonce) or nonce == self.client_nonce:
			raise pg_exc.AuthenticationError(
				"SCRAM server nonce does not extend the client nonce"
			)

		self.salted = salted_password(self.password, salt, iterations)
		without_proof = b'c=' + base64.b64encode(gs2_header) + b',r=' + nonce
		self.auth_message = b','.join((
			self.client_first_bare, data, without_proof
		))
		signature = hmac256(stored_key(self.salted), self.auth_message)
		proof = xor(client_key(self.salted), signature)
		return without_proof + b',p=' + base64.b64encode(proof)

	def verify_server_final(self, data):
		"""
		Check the server's signature. Raises `AuthenticationError` when the
		server could not prove knowledge of the password.
		"""
		if isinstance(data, str):
			data = data.encode('utf-8')
		attrs = parse_attributes(data)
		if b'e' in attrs:
			raise pg_exc.AuthenticationError(
				"SCRAM authentication failed: %s" %(
					attrs[b'e'].decode('utf-8', 'replace'),
				)
			)
		if b'v' not in attrs:
			raise pg_exc.ProtocolError("invalid SCRAM server-final message")
		expected = hmac256(server_key(self.salted), self.auth_message)
		if not hmac.compare_digest(base64.b64decode(attrs[b'v']), expected):
			raise pg_exc.AuthenticationError("SCRAM server signature mismatch")
