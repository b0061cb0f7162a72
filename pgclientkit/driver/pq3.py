##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PG-API interface for PostgreSQL using PQ version 3.0.

`Connection` drives a `pgclientkit.protocol.client3.Connection` on behalf of
its caller: it resolves the connection parameters, negotiates the session,
serializes statement execution with a `QueueLock`, converts the failures
recorded by the protocol transactions into `pgclientkit.exceptions` and
reports every event to its delegate.
"""
import os
import socket
import warnings
import weakref
from types import MappingProxyType
from itertools import repeat

from .. import api as pg_api
from .. import exceptions as pg_exc
from .. import status
from .. import url as pg_url
from .. import clientparameters
from ..string import count_placeholders
from ..result import Column, Result
from ..types import TupleFormat

from ..dispatch import Dispatcher
from ..python.itertools import interlace
from ..python.socket import SocketFactory
from ..python.thread import QueueLock

from ..protocol import xact3 as xact
from ..protocol import element3 as element
from ..protocol import client3 as client
from ..protocol.typio import TypeIO

__all__ = ['Connection', 'connect']

# Codes of client detected failures whose class does not follow from the
# SQLSTATE class mapping.
client_error_classes = {
	'08001' : pg_exc.ConnectionRefusedError,
	'08003' : pg_exc.NotConnectedError,
	'08006' : pg_exc.ProtocolError,
	'08P01' : pg_exc.ProtocolError,
	'--AUT' : pg_exc.AuthenticationMethodError,
}

format_codes = {
	TupleFormat.Text : element.StringFormat,
	TupleFormat.Binary : element.BinaryFormat,
}

# ``value`` keyword marker; `None` is a valid value.
_unset = object()

def parse_url(url):
	'Accept a `ConnectionURL` or parse a string into one.'
	if isinstance(url, pg_url.ConnectionURL):
		return url
	if isinstance(url, str):
		return pg_url.parse(url)
	raise pg_exc.BadURLError(
		"expected a connection URL string, got %s" %(type(url).__name__,)
	)

def socket_factories(host, port, socket_secure):
	"""
	Create the `SocketFactory` sequence of the addresses to try for the host.
	A host beginning with a slash is the directory of a Unix domain socket.
	"""
	if host.startswith('/'):
		return [SocketFactory(
			(socket.AF_UNIX, socket.SOCK_STREAM),
			os.path.join(host, '.s.PGSQL.%d' %(port,)),
			socket_secure,
		)]
	try:
		addrs = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
	except socket.gaierror as err:
		raise pg_exc.ConnectionRefusedError(
			"could not resolve host %r: %s" %(host, err.strerror or err),
		) from err
	return [SocketFactory(x[0:3], x[4][:2], socket_secure) for x in addrs]

def ssl_sequence(sslmode, factories):
	"""
	Pair each socket factory with the SSL negotiation to perform on it.

	When ssl is None: SSL negotiation will not occur.
	When ssl is True: SSL negotiation will occur *and* it must succeed.
	When ssl is False: SSL negotiation will occur but it may fail(NOSSL).
	"""
	n = len(factories)
	if sslmode == 'allow':
		# without ssl, then with.
		return interlace(
			zip(repeat(None, n), factories),
			zip(repeat(True, n), factories)
		)
	elif sslmode == 'prefer':
		# with ssl, then without.
		return interlace(
			zip(repeat(False, n), factories),
			zip(repeat(None, n), factories)
		)
	elif sslmode in ('require', 'verify-ca', 'verify-full'):
		return zip(repeat(True, n), factories)
	elif sslmode == 'disable':
		return zip(repeat(None, n), factories)
	raise pg_exc.BadURLError("invalid sslmode: " + repr(sslmode))

class Connection(pg_api.Connection):
	"""
	Connection(delegate = None, tag = 0, context = None)

	A session with a PostgreSQL server. The `delegate` is weakly referenced;
	`context` is given to the `pgclientkit.dispatch.Dispatcher` that runs the
	``*_in_background`` methods.
	"""
	pq = None
	url = None
	user = None
	database = None
	_server_process_id = None
	_password_used = False
	_tracer = None
	_delegate = None

	def __init__(self, delegate = None, tag = 0, context = None):
		self.tag = tag
		self.delegate = delegate
		self.typio = TypeIO()
		self._settings = {}
		self._lock = QueueLock()
		self._dispatcher = Dispatcher(context)
		self._status = status_machine(self)

	def __repr__(self):
		return '<%s.%s %s %s>' %(
			type(self).__module__,
			type(self).__name__,
			self.url if self.url is not None else '-',
			self._status.status,
		)

	def __del__(self):
		pq = self.__dict__.get('pq')
		if pq is not None:
			pq.close()

	@property
	def delegate(self):
		if self._delegate is None:
			return None
		return self._delegate()

	@delegate.setter
	def delegate(self, ob):
		self._delegate = weakref.ref(ob) if ob is not None else None

	@property
	def status(self):
		return self._status.status

	@property
	def status_history(self):
		'The recent statuses, oldest first.'
		return tuple(self._status.history)

	@property
	def server_process_id(self):
		return self._server_process_id

	@property
	def settings(self):
		'The parameters reported by the server; read-only.'
		return MappingProxyType(self._settings)

	@property
	def server_version(self):
		return self._settings.get('server_version')

	@property
	def transaction_status(self):
		"""
		The transaction status of the last ReadyForQuery: ``'I'``, ``'T'``,
		``'E'`` or `None` when not connected.
		"""
		pq = self.pq
		if pq is None or pq.state is None:
			return None
		return pq.state.decode('ascii')

	@property
	def tracer(self):
		return self._tracer

	@tracer.setter
	def tracer(self, value):
		self._tracer = value
		if self.pq is not None:
			self.pq.tracer = value

	def connection_used_password(self):
		if self._status.status in (status.Connected, status.Busy):
			return self._password_used
		return False

	##
	# Delegate

	def _delegate_call(self, name, *args):
		"""
		Call the delegate's method, if any; returns whether there was one.
		The no-op methods inherited from `pgclientkit.api.Delegate` do not count.
		"""
		d = self.delegate
		if d is None:
			return False
		meth = getattr(d, name, None)
		if meth is None or getattr(type(d), name, None) is getattr(pg_api.Delegate, name):
			return False
		meth(self, *args)
		return True

	def _status_changed(self, st):
		self._delegate_call('status_change', st)

	def _report(self, err):
		'Give the error to the delegate before it is raised.'
		self._delegate_call('error', err)
		return err

	##
	# Message conversion

	def _decode_pq_message(self, msg):
		if isinstance(msg, element.ClientError):
			# already in unicode
			return dict(msg)
		decode = self.typio.decode
		d = {}
		for k, v in msg.items():
			try:
				d[k] = decode(v)
			except UnicodeDecodeError:
				d[k] = repr(v)[2:-1]
		return d

	def _convert_pq_message(self, msg):
		d = self._decode_pq_message(msg)
		code = d.pop('code', None)
		m = d.pop('message', None)
		severity = d.pop('severity', None)
		return pg_exc.WarningLookup(code)(
			m, code = code, details = d, severity = severity
		)

	def _error_lookup(self, om : element.Error,
		exception = None,
		statement = None,
		fallback = None,
	) -> pg_exc.Error:
		"""
		Create the exception for the error message. When `fallback` is given,
		errors that are neither connection nor authentication errors take that
		class.
		"""
		d = self._decode_pq_message(om)
		code = d.pop('code', None)
		m = d.pop('message', None)
		severity = d.pop('severity', None)
		if isinstance(exception, socket.timeout):
			cls = pg_exc.TimeoutError
		else:
			cls = client_error_classes.get(code) or pg_exc.ErrorLookup(code)
		if fallback is not None and \
		not issubclass(cls, (pg_exc.ConnectionError, pg_exc.AuthenticationError)):
			cls = fallback
		err = cls(m, code = code, details = d,
			severity = severity, statement = statement
		)
		if exception is not None:
			err.__cause__ = exception
		return err

	def _receive_async(self, msg,
		showoption = element.ShowOption.type,
		notice = element.Notice.type,
		notify = element.Notify.type,
	):
		if msg.type == showoption:
			name = msg.name.decode('ascii')
			if name == 'client_encoding':
				self.typio.set_encoding(msg.value.decode('ascii'))
			value = self.typio.decode(msg.value)
			if name == 'integer_datetimes':
				self.typio.select_time_io(value)
			self._settings[name] = value
		elif msg.type == notice:
			m = self._convert_pq_message(msg)
			if not self._delegate_call('notice', m) and \
			str(m.severity).upper() == 'WARNING':
				warnings.warn(m, stacklevel = 4)
		elif msg.type == notify:
			self._delegate_call('notification',
				self.typio.decode(msg.channel),
				self.typio.decode(msg.payload),
				msg.pid,
			)

	##
	# Session establishment

	def _open(self, url, will_open = None):
		"""
		Negotiate a new protocol connection with the server identified by `url`.

		Returns the tuple, ``(pq, negotiation, client_parameters)``. The state of
		this connection is not modified.
		"""
		try:
			params = clientparameters.collect(url)
		except ValueError as err:
			raise pg_exc.BadURLError(
				"invalid connection parameter: " + str(err)
			) from err
		if will_open is not None:
			will_open(params)
		clientparameters.resolve_password(params)
		cp, settings = clientparameters.split(params)

		try:
			timeout = cp.get('connect_timeout')
			timeout = float(timeout) if timeout not in (None, '') else None
			port = int(cp.get('port') or pg_url.DEFAULT_PORT)
		except ValueError as err:
			raise pg_exc.BadURLError(
				"invalid connection parameter: " + str(err)
			) from err
		if timeout is not None and timeout <= 0:
			# zero means wait indefinitely
			timeout = None
		host = cp.get('host') or clientparameters.default_host
		sslmode = cp.get('sslmode') or 'prefer'

		startup = {
			b'user' : cp['user'].encode('utf-8'),
			b'database' : (cp.get('database') or cp['user']).encode('utf-8'),
		}
		for k, v in settings.items():
			startup[k.encode('utf-8')] = v.encode('utf-8')
		password = (cp.get('password') or '').encode('utf-8')

		socket_secure = {
			k : cp[k] for k in ('sslmode', 'sslrootcert', 'sslcert', 'sslkey')
			if cp.get(k) is not None
		}
		socket_secure['host'] = host
		attempts = ssl_sequence(sslmode, socket_factories(host, port, socket_secure))

		# can_skip is used when 'prefer' or 'allow' is the sslmode.
		# if the ssl negotiation returns 'N' (nossl), then
		# ssl "failed", but the socket is still usable for nossl.
		# in these cases, can_skip is set to True so that the
		# subsequent non-ssl attempt is skipped.
		can_skip = False
		failures = []
		for (ssl, sf) in attempts:
			if can_skip is True:
				can_skip = False
				continue
			pq = client.Connection(sf, startup, password = password)
			pq.tracer = self._tracer
			# Grab the negotiation transaction before
			# connecting as it will be needed later if successful.
			neg = pq.xact
			pq.connect(ssl = ssl, timeout = timeout)

			# It successfully connected if pq.xact is None;
			# The startup/negotiation xact completed.
			if pq.xact is None:
				return (pq, neg, cp)

			didssl = pq.ssl_negotiation
			if sslmode == 'prefer' and ssl is False and didssl is False:
				# The server declined SSL on a usable socket; the
				# "without ssl" attempt has been made already.
				can_skip = True
			elif neg.exception is not None:
				# A Python exception is likely to happen again on
				# the same address.
				if (sslmode == 'prefer' and ssl is False) or \
				(sslmode == 'allow' and ssl is None):
					can_skip = True
			failures.append(self._error_lookup(
				neg.error_message,
				exception = neg.exception,
				fallback = pg_exc.ConnectionRefusedError,
			))

		if not failures:
			raise pg_exc.ConnectionRefusedError(
				"could not establish connection to server",
				details = {'hint' : "no addresses for host %r" %(host,)},
			)
		err = failures[-1]
		err.failures = tuple(failures)
		raise err

	def _establish(self, url):
		self._status.enter(status.Connecting)
		try:
			self.typio = TypeIO()
			self._settings = {}
			pq, neg, cp = self._open(url,
				will_open = lambda params: self._delegate_call('will_open', params)
			)
			self.pq = pq
			for x in neg.asyncs():
				self._receive_async(x)
		except pg_exc.Error as err:
			self._discard()
			self._status.enter(status.Error)
			raise self._report(err)
		except BaseException:
			self._discard()
			self._status.enter(status.Error)
			raise
		self._server_process_id = pq.backend_id
		self.user = cp['user']
		self.database = cp.get('database') or cp['user']
		self._password_used = neg.password_used
		self._status.enter(status.Connected)

	def _discard(self):
		'Close the protocol connection without notifying the server.'
		pq = self.pq
		self.pq = None
		if pq is not None:
			pq.close()

	@staticmethod
	def _terminate(pq):
		'Send the Terminate message, if possible, and close the socket.'
		if pq.closed:
			return
		if pq.xact is None:
			pq.push(xact.Closing())
			pq.complete()
		pq.close()

	def _disconnect(self):
		pq = self.pq
		self.pq = None
		if pq is not None:
			self._terminate(pq)

	def connect(self, url):
		with self._lock:
			try:
				url = parse_url(url)
			except pg_exc.BadURLError as err:
				raise self._report(err)

			st = self._status.status
			if st == status.Error:
				self._discard()
				self._status.enter(status.Disconnected)
			elif st != status.Disconnected:
				raise self._report(pg_exc.ConnectionStateError(
					"cannot connect, connection is " + st
				))
			self.url = url
			self._establish(url)

	def connect_in_background(self, url, callback):
		try:
			url = parse_url(url)
		except pg_exc.BadURLError as err:
			callback(self._report(err))
			return False
		return self._dispatcher.submit(
			self._lock,
			lambda: self.connect(url),
			lambda result, error: callback(error),
		)

	def ping(self, url):
		try:
			url = parse_url(url)
		except pg_exc.BadURLError as err:
			raise self._report(err)
		with self._lock:
			try:
				pq, neg, cp = self._open(url)
			except pg_exc.Error as err:
				raise self._report(err)
			self._terminate(pq)
		return True

	def reset(self):
		with self._lock:
			st = self._status.status
			if st not in (status.Connected, status.Error) or self.url is None:
				raise self._report(pg_exc.NotConnectedError(
					"cannot reset, connection is " + st
				))
			if st == status.Connected:
				self._disconnect()
			else:
				self._discard()
			self._establish(self.url)

	def reset_in_background(self, callback):
		return self._dispatcher.submit(
			self._lock, self.reset,
			lambda result, error: callback(error),
		)

	def disconnect(self):
		with self._lock:
			st = self._status.status
			if st == status.Disconnected:
				return
			if st not in (status.Connected, status.Error):
				raise self._report(pg_exc.ConnectionStateError(
					"cannot disconnect, connection is " + st
				))
			if st == status.Connected:
				self._disconnect()
			else:
				self._discard()
			self._status.enter(status.Disconnected)

	##
	# Statement execution

	def _require_connected(self):
		st = self._status.status
		if st == status.Connected:
			return
		if st in (status.Busy, status.Connecting):
			raise self._report(pg_exc.ConnectionStateError(
				"connection is " + st
			))
		raise self._report(pg_exc.NotConnectedError(
			"connection is " + st
		))

	def _encode_statement(self, query):
		try:
			return self.typio.encode(query)
		except UnicodeError as err:
			raise self._report(pg_exc.UntranslatableCharacterError(
				"statement cannot be encoded in the client encoding, " + \
				self.typio.encoding,
				statement = query,
			)) from err

	def _instruction(self, query, format, values):
		q = self._encode_statement(query)
		if values is None and format == TupleFormat.Text:
			return xact.Instruction((element.Query(q),))

		try:
			params = self.typio.encode_parameters(values or ())
		except pg_exc.BindValueError as err:
			err.statement = query
			raise self._report(err)
		return xact.Instruction((
			element.Parse(b'', q, [x.oid for x in params]),
			element.Bind(b'', b'',
				[format_codes[x.format] for x in params],
				[x.data for x in params],
				(format_codes[format],),
			),
			element.DescribePortal(b''),
			element.Execute(b'', 0),
			element.SynchronizeMessage,
		))

	def _begin(self, x):
		self.pq.push(x)
		self._status.enter(status.Busy)

	def _finish(self, x, statement):
		"""
		Conclude the completed transaction `x`: process the asynchronous
		messages, leave the Busy status and raise the error that was recorded,
		if any.
		"""
		for m in x.asyncs():
			self._receive_async(m)
		if x.fatal is True:
			self._discard()
			self._status.enter(status.Error)
			raise self._report(self._error_lookup(
				x.error_message,
				exception = x.exception,
				statement = statement,
				fallback = pg_exc.ProtocolError,
			))
		self._status.enter(status.Connected)
		if x.fatal is False:
			raise self._report(self._error_lookup(
				x.error_message, statement = statement
			))

	def _abort(self):
		# The exchange was interrupted; the wire state is unknown.
		self._discard()
		self._status.enter(status.Error)

	def _result(self, x, format):
		desc = None
		complete = None
		tuples = []
		copy_data = []
		for m in x.messages_received():
			typ = type(m)
			if typ is element.Tuple:
				tuples.append(m)
			elif typ is bytes:
				copy_data.append(m)
			elif typ is element.TupleDescriptor:
				desc = m
				tuples = []
			elif typ is element.Complete:
				complete = m

		columns = ()
		rows = ()
		if desc is not None:
			decode = self.typio.decode
			columns = [
				Column(decode(a[0]), a[3], a[4], a[5], a[6])
				for a in desc
			]
			unpackers = self.typio.resolve_descriptor(desc)
			typids = [a[3] for a in desc]
			rows = [
				self.typio.decode_row(unpackers, typids, t)
				for t in tuples
			]
		return Result(
			self.typio.decode(complete.data) if complete is not None else None,
			columns = columns,
			rows = rows,
			affected_rows = complete.extract_count() if complete is not None else None,
			copy_data = copy_data,
			format = format,
		)

	def execute(self, query, format = TupleFormat.Text,
		values = None, value = _unset, timeout = None
	):
		"""
		Execute `query` and return its `pgclientkit.result.Result`.

		`values` is the sequence of parameter values referenced by ``$1``
		through ``$N``; `value` is a shorthand for a single one. When `timeout`
		expires, the statement is cancelled and `CancelledError` is raised.
		"""
		if value is not _unset:
			if values is not None:
				raise TypeError("execute() takes either values or value, not both")
			values = [value]
		if format not in format_codes:
			raise ValueError("invalid result format: " + repr(format))

		with self._lock:
			self._require_connected()
			self._delegate_call('will_execute', query, values)
			self._require_connected()

			n = count_placeholders(query)
			given = 0 if values is None else len(values)
			if n != given:
				raise self._report(pg_exc.BindValueError(
					"statement takes %d parameters, %d given" %(n, given),
					statement = query,
				))

			x = self._instruction(query, format, values)
			self._begin(x)
			try:
				self.pq.complete(timeout)
			except BaseException:
				self._abort()
				raise
			self._finish(x, query)
			return self._result(x, format)

	def execute_in_background(self, query, callback,
		format = TupleFormat.Text, values = None, timeout = None
	):
		return self._dispatcher.submit(
			self._lock,
			lambda: self.execute(query, format = format, values = values, timeout = timeout),
			callback,
		)

	def copy_from(self, query, data):
		"""
		Execute the ``COPY ... FROM STDIN`` statement, `query`, sending each
		`bytes` chunk produced by the iterable `data` to the server.

		When the iterable raises, the COPY is failed and the exception is
		re-raised after the server has acknowledged the failure. A statement
		that does not start a COPY is executed normally.
		"""
		with self._lock:
			self._require_connected()
			self._delegate_call('will_execute', query, None)
			self._require_connected()
			x = xact.Instruction((element.Query(self._encode_statement(query)),))
			self._begin(x)
			pq = self.pq
			try:
				# Get the COPY started.
				while x.state is not xact.Complete:
					pq.step()
					if hasattr(x, 'CopyFailSequence') and x.messages is x.CopyFailSequence:
						break
				else:
					# not a COPY FROM STDIN
					self._finish(x, query)
					return self._result(x, TupleFormat.Text)

				try:
					for chunk in data:
						x.messages = [bytes(chunk)]
						while x.messages is not x.CopyFailSequence and \
						x.state is not xact.Complete:
							pq.step()
				except Exception:
					# CopyFail
					x.messages = x.CopyFailSequence
					pq.complete()
					self._finish_quietly(x)
					raise
				x.messages = x.CopyDoneSequence
				pq.complete()
			except BaseException:
				if self._status.status == status.Busy:
					self._abort()
				raise
			self._finish(x, query)
			return self._result(x, TupleFormat.Text)

	def _finish_quietly(self, x):
		"""
		Conclude a transaction that failed on the client's side; the server's
		report of the failure is not raised.
		"""
		for m in x.asyncs():
			self._receive_async(m)
		if x.fatal is True:
			self._discard()
			self._status.enter(status.Error)
		else:
			self._status.enter(status.Connected)

	def cancel(self):
		"""
		Ask the server to cancel the statement in progress. May be called from
		any thread; the interrupted statement raises `CancelledError`.
		"""
		pq = self.pq
		if pq is None or pq.backend_id is None:
			raise self._report(pg_exc.NotConnectedError(
				"cannot cancel, connection is " + self._status.status
			))
		try:
			pq.interrupt()
		except OSError as err:
			raise self._report(pg_exc.ConnectionError(
				"could not send cancel request: " + str(err)
			)) from err

def status_machine(connection):
	"""
	Create the `StatusMachine` of the connection. The observer refers to the
	connection weakly so that the machine does not keep it alive.
	"""
	ref = weakref.ref(connection)
	def observer(st):
		c = ref()
		if c is not None:
			c._status_changed(st)
	return status.StatusMachine(observer = observer)

def connect(url, delegate = None, **kw) -> Connection:
	"""
	Create a `Connection`, connect it to the server at `url` and return it.
	"""
	c = Connection(delegate = delegate, **kw)
	c.connect(url)
	return c
