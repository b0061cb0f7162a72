##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Protocol version 3.0 client and tools.

`Connection` owns the socket and the message buffer and drives the current
transaction (see `pgclientkit.protocol.xact3`). Socket failures never escape
the connection; they are recorded on the transaction as a fatal
`element3.ClientError` whose `exception` attribute is the original error.
"""
import select
import socket
from time import monotonic

from .buffer import pq_message_stream
from . import element3 as element
from . import xact3 as xact
from .typstruct import ulong_pack

__all__ = ['Connection', 'cat_messages']

copy_data_type = element.CopyData.type
recv_size = 1024 * 16

def cat_messages(messages, lpack = ulong_pack):
	"""
	Concatenate the serialized form of the given messages. Raw `bytes` objects
	are taken as the contents of `element3.CopyData` messages.
	"""
	return b''.join([
		copy_data_type + lpack(len(x) + 4) + x
		if x.__class__ is bytes else x.bytes()
		for x in messages
	])

def trace_repr(msg):
	if msg.__class__ is bytes:
		return 'CopyData(%d bytes)' %(len(msg),)
	if isinstance(msg, (element.Password, element.SASLInitialResponse, element.SASLResponse)):
		return type(msg).__name__ + '(...)'
	return repr(msg)

class Connection(object):
	"""
	A PQ version 3.0 client connection.

	Connection(socket_factory, startup_parameters, password = b'')

	The `xact` attribute is the current transaction. It starts out as the
	`xact3.Negotiation` and is `None` when the connection is idle. When a
	transaction fails fatally it remains the `xact` and the socket is closed.
	"""
	tracer = None
	socket = None
	ssl_negotiation = None
	backend_id = None
	key = None

	def __init__(self, socket_factory, startup, password = b''):
		self.socket_factory = socket_factory
		self.message_buffer = pq_message_stream()
		self.backlog = []
		self.state = None
		self.xact = xact.Negotiation(element.Startup(startup), password)

	def __repr__(self):
		return '<%s.%s %s %s>' %(
			type(self).__module__,
			type(self).__name__,
			self.socket_factory,
			'closed' if self.socket is None else repr(self.state),
		)

	@property
	def closed(self):
		return self.socket is None

	def _trace_sent(self, messages):
		for x in messages:
			self.tracer('↑ ' + trace_repr(x))

	def _trace_received(self, messages):
		for x in messages:
			self.tracer('↓ %r %r' %(x[0], x[1]))

	def _fail(self, x, msg, code, err):
		x.fail(msg, code, exception = err)
		self.close()

	def close(self):
		'Close the socket without notifying the server.'
		if self.socket is not None:
			try:
				self.socket.close()
			except OSError:
				pass
			self.socket = None

	def negotiate_ssl(self):
		"""
		Send the SSLRequest. Returns `True` if the server accepted and the socket
		has been secured, `False` if the server declined.
		"""
		self.socket.sendall(element.NegotiateSSLMessage.bytes())
		status = self.socket.recv(1)
		if status == b'S':
			self.socket = self.socket_factory.secure(self.socket)
			return True
		elif status == b'N':
			return False
		raise ValueError("unexpected response to SSL negotiation: %r" %(status,))

	def connect(self, ssl = None, timeout = None):
		"""
		Establish the connection and complete the negotiation.

		When `ssl` is `None`, SSL negotiation will not occur. When `True`, it will
		occur and it must succeed. When `False`, it will occur but the server may
		decline.
		"""
		x = self.xact
		try:
			self.socket = self.socket_factory(timeout = timeout)
		except OSError as err:
			x.fail(
				"could not connect to %s: %s" %(
					self.socket_factory,
					getattr(err, 'strerror', None) or str(err)
				),
				'08001', exception = err
			)
			return

		try:
			self.socket.settimeout(timeout)
			if ssl is not None:
				self.ssl_negotiation = self.negotiate_ssl()
				if ssl is True and self.ssl_negotiation is False:
					self._fail(x, "server does not support SSL", '08001', None)
					return
		except ValueError as err:
			self._fail(x, str(err), '08P01', err)
			return
		except OSError as err:
			self._fail(
				x, "SSL negotiation failed: " + str(err), '08001', err
			)
			return

		self.complete()
		if self.socket is not None:
			self.socket.settimeout(None)

	def push(self, transaction):
		'Make the given transaction the current one'
		if self.xact is not None:
			raise RuntimeError("transaction already in progress")
		if self.socket is None:
			raise RuntimeError("connection is closed")
		self.xact = transaction

	def send_messages(self, messages):
		data = cat_messages(messages)
		if self.tracer is not None:
			self._trace_sent(messages)
		self.socket.sendall(data)

	def read_messages(self):
		"""
		Read at least one complete message from the socket.
		"""
		msgs = self.message_buffer.read()
		while not msgs:
			data = self.socket.recv(recv_size)
			if not data:
				raise EOFError("server closed the connection unexpectedly")
			self.message_buffer.write(data)
			msgs = self.message_buffer.read()
		if self.tracer is not None:
			self._trace_received(msgs)
		return msgs

	def ready(self):
		'Whether a message can be read without blocking.'
		if self.backlog or self.message_buffer.has_message():
			return True
		pending = getattr(self.socket, 'pending', None)
		if pending is not None and pending():
			return True
		return False

	def wait(self, timeout):
		'Wait for data to arrive; returns whether it did.'
		if self.ready():
			return True
		r, w, e = select.select((self.socket,), (), (), max(timeout, 0))
		return bool(r)

	def step(self):
		"""
		Perform one unit of work for the current transaction: send its messages
		or feed it the next batch of received messages.
		"""
		x = self.xact
		try:
			if x.state[0] is xact.Sending:
				self.send_messages(x.messages)
				x.state[1]()
			else:
				if self.backlog:
					msgs = self.backlog
					self.backlog = []
				else:
					msgs = self.read_messages()
				count = x.state[1](msgs)
				if count < len(msgs):
					self.backlog = msgs[count:]
		except socket.timeout as err:
			self._fail(x, "timeout while communicating with server", '08006', err)
		except (OSError, EOFError) as err:
			self._fail(x, "connection lost: " + str(err), '08006', err)
		except ValueError as err:
			self._fail(x, "malformed message stream: " + str(err), '08P01', err)
		self._finish(x)

	def _finish(self, x):
		if x.state is not xact.Complete:
			return
		if x.fatal is True:
			self.close()
			return
		self.xact = None
		if isinstance(x, xact.Negotiation) and x.killinfo is not None:
			self.backend_id = x.killinfo.pid
			self.key = x.killinfo.key
		if x.last_ready is not None:
			self.state = x.last_ready

	def complete(self, timeout = None):
		"""
		Complete the current transaction.

		When `timeout` expires before the transaction is complete, a cancel
		request is sent and the transaction is completed normally; the server
		will report the cancellation. Returns `True` if a cancel was sent.
		"""
		x = self.xact
		if x is None:
			return False
		deadline = None if timeout is None else monotonic() + timeout
		interrupted = False
		while x.state is not xact.Complete:
			if deadline is not None and x.state[0] is xact.Receiving:
				remaining = deadline - monotonic()
				if not self.wait(remaining):
					deadline = None
					interrupted = True
					try:
						self.interrupt()
					except OSError as err:
						self._fail(x, "could not send cancel request: " + str(err), '08006', err)
						break
					continue
			self.step()
		return interrupted

	def interrupt(self, timeout = None):
		"""
		Ask the server to cancel the running statement using a new connection.
		"""
		if self.backend_id is None:
			return
		cq = element.CancelRequest(self.backend_id, self.key).bytes()
		s = self.socket_factory(timeout = timeout)
		try:
			s.sendall(cq)
		finally:
			s.close()
