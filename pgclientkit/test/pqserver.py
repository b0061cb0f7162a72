##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Scripted PostgreSQL backend for the connection tests.

`Server` listens on a localhost port and serves each client on a thread. It
speaks enough of protocol 3.0 for the driver: SSL negotiation (always
declined), trust, cleartext, MD5 and SCRAM-SHA-256 authentication, simple and
extended queries, COPY and cancel requests.

The statements it understands:

 SELECT 1
  One int4 row.
 SELECT $1, $2::int8, ...
  Echo of the parameters; a cast selects the column type.
 SELECT * FROM items
  Two rows of (int4, text) with a NULL.
 SELECT pg_sleep(N)
  Waits N seconds or until a cancel request arrives (57014).
 SELECT pg_terminate_backend(pg_backend_pid())
  FATAL 57P01 and the connection is closed.
 INSERT ...
  INSERT 0 1
 BEGIN, COMMIT, ROLLBACK
  Tracks the transaction status of ReadyForQuery.
 DO ... RAISE WARNING 'text' ...
  A WARNING notice.
 NOTIFY channel, 'payload'
  A notification sent back to the same session.
 COPY ... FROM STDIN, COPY ... TO STDOUT
  Counts the received rows; sends `copy_rows`.

Anything else is a syntax error, SQLSTATE 42601.
"""
import re
import os
import socket
import base64
import hashlib
import threading
from itertools import count

from ..protocol import element3 as element
from ..protocol import sasl
from ..protocol.buffer import pq_message_stream
from ..protocol.typstruct import ulong_unpack
from ..protocol.typio import TypeIO
from ..protocol.version import NegotiateSSLCode, CancelRequestCode
from .. import types as pg_types

__all__ = ['Server']

copy_rows = (b'1\tone\n', b'2\ttwo\n')
items_rows = ((1, 'one'), (2, None))

scram_iterations = 4096

cast_names = {
	'int' : pg_types.INT4OID,
	'integer' : pg_types.INT4OID,
	'bigint' : pg_types.INT8OID,
	'smallint' : pg_types.INT2OID,
	'float' : pg_types.FLOAT8OID,
	'real' : pg_types.FLOAT4OID,
	'boolean' : pg_types.BOOLOID,
	'timestamptz' : pg_types.TIMESTAMPTZOID,
	'varchar' : pg_types.VARCHAROID,
}

param_re = re.compile(r'\$(\d+)(?:::(\w+(?:\[\])?))?')
sleep_re = re.compile(r'^SELECT\s+pg_sleep\(\s*([\d.]+)\s*\)$', re.I)
warning_re = re.compile(r"RAISE\s+WARNING\s+'([^']*)'", re.I)
notify_re = re.compile(r"^NOTIFY\s+(\w+)(?:\s*,\s*'([^']*)')?$", re.I)

def error(code, message, severity = b'ERROR'):
	return element.Error(
		severity = severity,
		code = code.encode('ascii'),
		message = message.encode('utf-8'),
	)

def column_type(name):
	if name is None:
		return None
	if name.endswith('[]'):
		return pg_types.element_to_array[column_type(name[:-2])]
	return cast_names.get(name.lower()) or pg_types.name_to_oid[name.lower()]

class Reply(object):
	"""
	The planned response of a statement. `columns` is a sequence of
	``(name, oid)`` and `rows` holds Python values; `body` is called instead
	when the statement has its own exchange.
	"""
	def __init__(self, tag = None, columns = None, rows = (), body = None, error = None):
		self.tag = tag
		self.columns = columns
		self.rows = rows
		self.body = body
		self.error = error

class Session(threading.Thread):
	"""
	The backend of one client connection.
	"""
	def __init__(self, server, sock):
		super().__init__(name = 'pqserver-session', daemon = True)
		self.server = server
		self.sock = sock
		self.buffer = pq_message_stream()
		self.typio = TypeIO()
		self.cancelled = threading.Event()
		self.pid = next(server.pids)
		self.key = int.from_bytes(os.urandom(4), 'big')
		self.xact_state = b'I'
		self.startup = None
		# extended protocol state
		self.statement = None
		self.argtypes = ()
		self.portal = None

	##
	# I/O

	def recv_exactly(self, n):
		data = b''
		while len(data) < n:
			chunk = self.sock.recv(n - len(data))
			if not chunk:
				raise EOFError("client went away")
			data += chunk
		return data

	def read_untyped(self):
		size = ulong_unpack(self.recv_exactly(4))
		return self.recv_exactly(size - 4)

	def next_message(self):
		while True:
			msg = self.buffer.next_message()
			if msg is not None:
				return msg
			data = self.sock.recv(8192)
			if not data:
				raise EOFError("client went away")
			self.buffer.write(data)

	def send(self, *messages):
		self.sock.sendall(b''.join([x.bytes() for x in messages]))

	def expect(self, typ):
		t, data = self.next_message()
		if t != typ.type:
			raise EOFError("expected %r, got %r" %(typ.type, t))
		return data

	##
	# Session

	def run(self):
		try:
			if self.negotiate():
				self.serve()
		except (EOFError, OSError):
			pass
		finally:
			self.server.forget(self)
			self.sock.close()

	def negotiate(self):
		while True:
			data = self.read_untyped()
			code = data[0:4]
			if code == NegotiateSSLCode.bytes():
				self.sock.sendall(b'N')
				continue
			if code == CancelRequestCode.bytes():
				pid, key = element.KillInformation.struct.unpack(data[4:12])
				self.server.cancel(pid, key)
				return False
			break
		self.startup = element.Startup.parse(data)
		user = self.startup.get(b'user', b'')
		database = self.startup.get(b'database', b'')

		if not self.authenticate(user):
			return False
		if database == b'missing':
			self.send(error('3D000',
				'database "missing" does not exist', severity = b'FATAL'))
			return False

		self.server.register(self)
		self.send(element.Authentication(element.AuthRequest_OK, b''))
		status = dict(self.server.parameters)
		status[b'application_name'] = self.startup.get(b'application_name', b'')
		for k, v in status.items():
			self.send(element.ShowOption(k, v))
		for x in self.server.startup_notices:
			self.send(element.Notice(
				severity = b'WARNING', code = b'01000', message = x.encode('utf-8'),
			))
		self.send(
			element.KillInformation(self.pid, self.key),
			element.Ready(self.xact_state),
		)
		return True

	def authenticate(self, user):
		method = self.server.auth
		password = self.server.password.encode('utf-8')
		if method == 'trust':
			return True

		if method == 'password':
			self.send(element.Authentication(element.AuthRequest_Cleartext, b''))
			ok = element.Password.parse(self.expect(element.Password)).data == password
		elif method == 'md5':
			salt = os.urandom(4)
			self.send(element.Authentication(element.AuthRequest_MD5, salt))
			pw = hashlib.md5(password + user).hexdigest().encode('ascii')
			expected = b'md5' + hashlib.md5(pw + salt).hexdigest().encode('ascii')
			ok = element.Password.parse(self.expect(element.Password)).data == expected
		elif method == 'scram':
			ok = self.scram(password)
		else:
			self.send(element.Authentication(element.AuthRequest_GSS, b''))
			return False

		if not ok:
			self.send(error('28P01',
				'password authentication failed for user "%s"' %(user.decode('utf-8'),),
				severity = b'FATAL',
			))
		return ok

	def scram(self, password):
		self.send(element.Authentication(
			element.AuthRequest_SASL, sasl.mechanism + b'\x00\x00'
		))
		first = element.SASLInitialResponse.parse(self.expect(element.SASLInitialResponse))
		client_first_bare = first.data[len(sasl.gs2_header):]
		client_nonce = sasl.parse_attributes(client_first_bare)[b'r']

		salt = os.urandom(16)
		nonce = client_nonce + base64.b64encode(os.urandom(18))
		server_first = b'r=' + nonce + b',s=' + base64.b64encode(salt) + \
			b',i=' + str(scram_iterations).encode('ascii')
		self.send(element.Authentication(element.AuthRequest_SASLContinue, server_first))

		final = self.expect(element.SASLResponse)
		without_proof, proof = final.rsplit(b',p=', 1)
		if sasl.parse_attributes(without_proof).get(b'r') != nonce:
			return False
		salted = sasl.salted_password(password, salt, scram_iterations)
		auth_message = b','.join((client_first_bare, server_first, without_proof))
		signature = sasl.hmac256(sasl.stored_key(salted), auth_message)
		key = sasl.xor(base64.b64decode(proof), signature)
		if hashlib.sha256(key).digest() != sasl.stored_key(salted):
			return False
		verifier = sasl.hmac256(sasl.server_key(salted), auth_message)
		self.send(element.Authentication(
			element.AuthRequest_SASLFinal, b'v=' + base64.b64encode(verifier)
		))
		return True

	def serve(self):
		while True:
			t, data = self.next_message()
			if t == element.Disconnect.type:
				return
			if t == element.Query.type:
				if not self.simple_query(element.Query.parse(data).data):
					return
			elif not self.extended(t, data):
				return

	def sync(self):
		'Discard messages until the Sync and report ready.'
		while True:
			t, data = self.next_message()
			if t == element.Synchronize.type:
				break
		self.send(element.Ready(self.xact_state))

	##
	# Statements

	def plan(self, sql, params = ()):
		"""
		Decide the `Reply` for the statement.
		"""
		sql = sql.strip().rstrip(';').strip()
		upper = sql.upper()
		if sql == '':
			return None
		if upper == 'SELECT 1':
			return Reply('SELECT 1', [('?column?', pg_types.INT4OID)], [(1,)])
		if upper == 'SELECT * FROM ITEMS':
			return Reply('SELECT 2',
				[('n', pg_types.INT4OID), ('name', pg_types.TEXTOID)], items_rows)
		if upper.startswith('SELECT $'):
			return self.echo(sql, params)
		m = sleep_re.match(sql)
		if m is not None:
			return Reply(body = lambda: self.sleep(float(m.group(1))))
		if upper == 'SELECT PG_TERMINATE_BACKEND(PG_BACKEND_PID())':
			return Reply(error = error('57P01',
				'terminating connection due to administrator command',
				severity = b'FATAL',
			))
		if upper.startswith('INSERT '):
			return Reply('INSERT 0 1')
		if upper in ('BEGIN', 'START TRANSACTION'):
			self.xact_state = b'T'
			return Reply('BEGIN')
		if upper in ('COMMIT', 'ROLLBACK'):
			self.xact_state = b'I'
			return Reply(upper)
		if upper.startswith('DO '):
			m = warning_re.search(sql)
			if m is not None:
				self.send(element.Notice(
					severity = b'WARNING', code = b'01000',
					message = m.group(1).encode('utf-8'),
				))
			return Reply('DO')
		m = notify_re.match(sql)
		if m is not None:
			self.send(element.Notify(
				self.pid, m.group(1).encode('utf-8'), (m.group(2) or '').encode('utf-8')
			))
			return Reply('NOTIFY')
		if upper.startswith('COPY ') and upper.endswith('FROM STDIN'):
			return Reply(body = self.copy_in)
		if upper.startswith('COPY ') and upper.endswith('TO STDOUT'):
			return Reply(body = self.copy_out)
		word = sql.split()[0]
		return Reply(error = element.Error(
			severity = b'ERROR',
			code = b'42601',
			message = ('syntax error at or near "%s"' %(word,)).encode('utf-8'),
			position = b'1',
		))

	def echo(self, sql, params):
		columns = []
		values = []
		for i, m in enumerate(param_re.finditer(sql)):
			n = int(m.group(1)) - 1
			typid, value = params[n]
			oid = column_type(m.group(2)) or typid or pg_types.TEXTOID
			if value is not None and typid == 0 and oid != pg_types.TEXTOID:
				# the cast of an untyped text parameter
				value = self.typio.resolve(oid)[1](value)
			columns.append(('?column?', oid))
			values.append(value)
		return Reply('SELECT 1', columns, [tuple(values)])

	def sleep(self, seconds):
		if self.cancelled.wait(seconds):
			self.cancelled.clear()
			return error('57014', 'canceling statement due to user request')
		return (
			[('pg_sleep', pg_types.VOIDOID)],
			[('',)],
			'SELECT 1',
		)

	def copy_in(self):
		self.send(element.CopyFromBegin(0, []))
		lines = 0
		while True:
			t, data = self.next_message()
			if t == element.CopyData.type:
				lines += data.count(b'\n')
			elif t == element.CopyDone.type:
				return ((), (), 'COPY %d' %(lines,))
			elif t == element.CopyFail.type:
				return error('57014', 'COPY from stdin failed: ' + \
					element.CopyFail.parse(data).data.decode('utf-8'))

	def copy_out(self):
		self.send(element.CopyToBegin(0, []))
		for x in copy_rows:
			self.send(element.CopyData(x))
		self.send(element.CopyDoneMessage)
		return ((), (), 'COPY %d' %(len(copy_rows),))

	def describe(self, columns, format):
		return element.TupleDescriptor([
			(name.encode('utf-8'), 0, 0, oid, -1, -1, format)
			for name, oid in columns
		])

	def encode_row(self, columns, row, format):
		out = []
		for (name, oid), v in zip(columns, row):
			if v is None:
				out.append(None)
				continue
			io = self.typio.resolve(oid)
			if io is None:
				out.append(self.typio.encode(str(v)))
			elif format:
				out.append(io[2](v))
			else:
				out.append(self.typio.encode(io[0](v)))
		return element.Tuple(out)

	def run_body(self, reply):
		"""
		Run the statement's own exchange; returns the `element.Error` or the
		triple ``(columns, rows, tag)``.
		"""
		if reply.body is not None:
			return reply.body()
		if reply.error is not None:
			return reply.error
		return (reply.columns or (), reply.rows, reply.tag)

	def simple_query(self, sql):
		reply = self.plan(sql.decode('utf-8'))
		if reply is None:
			self.send(element.NullMessage, element.Ready(self.xact_state))
			return True
		r = self.run_body(reply)
		if isinstance(r, element.Error):
			self.send(r)
			if r['severity'] == b'FATAL':
				return False
		else:
			columns, rows, tag = r
			if columns:
				self.send(self.describe(columns, 0))
				self.send(*[self.encode_row(columns, x, 0) for x in rows])
			self.send(element.Complete(tag.encode('ascii')))
		self.send(element.Ready(self.xact_state))
		return True

	def extended(self, t, data):
		if t == element.Parse.type:
			p = element.Parse.parse(data)
			self.statement = p.statement.decode('utf-8')
			self.argtypes = p.argtypes
			self.send(element.ParseCompleteMessage)
		elif t == element.Bind.type:
			b = element.Bind.parse(data)
			params = []
			for i, (fmt, arg) in enumerate(zip(b.aformats, b.arguments)):
				typid = self.argtypes[i] if i < len(self.argtypes) else 0
				if arg is None:
					params.append((typid, None))
				elif typid == 0:
					params.append((0, self.typio.decode(arg)))
				else:
					params.append((typid, self.typio.decode_field(
						typid, fmt == element.BinaryFormat, arg
					)))
			rformat = 1 if b.rformats and b.rformats[0] == element.BinaryFormat else 0
			self.portal = (self.plan(self.statement, params), rformat)
			self.send(element.BindCompleteMessage)
		elif t == element.Describe.type:
			reply, rformat = self.portal
			if reply is not None and reply.columns:
				self.send(self.describe(reply.columns, rformat))
			elif reply is not None and reply.body is not None and \
			sleep_re.match(self.statement.strip()):
				self.send(self.describe([('pg_sleep', pg_types.VOIDOID)], rformat))
			else:
				self.send(element.NoDataMessage)
		elif t == element.Execute.type:
			reply, rformat = self.portal
			if reply is None:
				self.send(element.NullMessage)
				return True
			r = self.run_body(reply)
			if isinstance(r, element.Error):
				self.send(r)
				if r['severity'] == b'FATAL':
					return False
				self.sync()
				return True
			columns, rows, tag = r
			self.send(*[self.encode_row(columns, x, rformat) for x in rows])
			self.send(element.Complete(tag.encode('ascii')))
		elif t == element.Synchronize.type:
			self.send(element.Ready(self.xact_state))
		else:
			self.send(error('08P01', 'unexpected message type %r' %(t,), severity = b'FATAL'))
			return False
		return True

class Server(object):
	"""
	Server(auth = 'trust', password = 'secret')

	`auth` is one of ``'trust'``, ``'password'``, ``'md5'``, ``'scram'`` or
	``'gss'``; the last is requested but not implemented by the client.
	"""
	parameters = (
		(b'server_version', b'16.0'),
		(b'server_encoding', b'UTF8'),
		(b'client_encoding', b'UTF8'),
		(b'DateStyle', b'ISO, MDY'),
		(b'IntervalStyle', b'postgres'),
		(b'integer_datetimes', b'on'),
		(b'standard_conforming_strings', b'on'),
		(b'TimeZone', b'UTC'),
	)

	def __init__(self, auth = 'trust', password = 'secret', startup_notices = ()):
		self.auth = auth
		self.password = password
		self.startup_notices = startup_notices
		self.pids = count(1000)
		self.sessions = {}
		self.connections = 0
		self._lock = threading.Lock()
		self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		self.listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		self.listener.bind(('127.0.0.1', 0))
		self.listener.listen(16)
		self.host, self.port = self.listener.getsockname()
		self.thread = threading.Thread(
			target = self.accept, name = 'pqserver', daemon = True
		)
		self.thread.start()

	def __enter__(self):
		return self

	def __exit__(self, typ, val, tb):
		self.close()

	def url(self, user = 'test', database = 'test', password = None, **options):
		s = 'postgres://%s%s@%s:%d/%s' %(
			user,
			':' + password if password is not None else '',
			self.host, self.port, database,
		)
		options.setdefault('sslmode', 'disable')
		return s + '?' + '&'.join(['%s=%s' %(k, v) for k, v in sorted(options.items())])

	def accept(self):
		while True:
			try:
				sock, addr = self.listener.accept()
			except OSError:
				return
			with self._lock:
				self.connections += 1
			Session(self, sock).start()

	def register(self, session):
		with self._lock:
			self.sessions[session.pid] = session

	def forget(self, session):
		with self._lock:
			self.sessions.pop(session.pid, None)

	def cancel(self, pid, key):
		with self._lock:
			s = self.sessions.get(pid)
		if s is not None and s.key == key:
			s.cancelled.set()

	def close(self):
		self.listener.close()
		self.thread.join(5)
