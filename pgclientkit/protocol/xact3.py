##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version 3.0 client transactions

A transaction is a unit of exchange with the server: the messages to send and
the validation of the messages received in response. Transactions never touch
the wire; `pgclientkit.protocol.client3.Connection` feeds them.

The progress of a transaction is its `state` attribute, a pair of
(`Sending` or `Receiving`, method). `Complete` marks the end. Failures are
recorded rather than raised: `fatal` is set (`True` for errors that end the
session, `False` for statement errors) and `error_message` holds the
`element3.Error`, or an `element3.ClientError` when the failure was detected
by the client.
"""
import os
from pprint import pformat
from itertools import chain
from hashlib import md5

from .. import exceptions as pg_exc
from . import element3 as element
from . import sasl

Receiving = True
Sending = False
Complete = (None, None)

AsynchronousMap = {
	element.Notice.type : element.Notice.parse,
	element.Notify.type : element.Notify.parse,
	element.ShowOption.type : element.ShowOption.parse,
}

def return_arg(x):
	return x

def client_error(message, code, severity = 'FATAL', **kw):
	'Build the `element.ClientError` describing a client detected failure.'
	return element.ClientError(
		severity = severity, code = code, message = message, **kw
	)

class ProtocolViolation(Exception):
	'[internal] unexpected message received by a transaction'

class Transaction(object):
	fatal = None
	error_message = None
	exception = None

	def messages_received(self):
		"""
		Return an iterable to the messages received.
		"""
		raise NotImplementedError

	def snapshot_text(self):
		s = repr(self)
		s += os.linesep*2 + '   [Received]' + os.linesep*2
		s += pformat(list(self.messages_received()))
		if self.error_message is not None:
			s += os.linesep*2 + '   [Error Message]' + os.linesep*2
			s += repr(self.error_message)
		return s

	def fail(self, message, code, exception = None):
		"""
		Mark the transaction as fatally failed by the client.
		"""
		self.error_message = client_error(message, code)
		self.fatal = True
		self.exception = exception
		self.state = Complete

class Negotiation(Transaction):
	"""
	Negotiation is a protocol transaction used to manage the initial stage of a
	connection to PostgreSQL.

	This transaction revolves around the `state_machine` method which is a
	generator that takes individual messages and progresses the state of the
	connection negotiation. There are many conditions which make a generator
	ideal for managing the authentication exchange.
	"""
	state = None

	def __init__(self,
		startup_message : "startup message to send",
		password : "password source data(encoded password bytes)",
	):
		self.startup_message = startup_message
		self.password = password
		self.reset()

	def __repr__(self):
		s = type(self).__module__ + "." + type(self).__name__
		s += pformat((self.startup_message, '<password>')).lstrip()
		return s

	def reset(self):
		self.authtype = None
		self.killinfo = None
		self.authok = None
		self.last_ready = None
		self.password_used = False
		self.fatal = None
		self.error_message = None
		self.exception = None
		self._asyncs = []
		self.received = []
		self.machine = self.state_machine()
		self.messages = next(self.machine)
		self.state = (Sending, self.sent)

	def asyncs(self):
		"iterate over asynchronous messages received"
		return iter(self._asyncs)

	def messages_received(self):
		return chain.from_iterable(self.received)

	def sent(self):
		"""
		Empty messages and switch state to receiving.

		This is called by the user after the `messages` have been sent to the
		remote end. That is, this merely finalizes the "Sending" state.
		"""
		self.messages = ()
		self.state = (Receiving, self.put_messages)

	def put_messages(self, messages):
		self.received.append(messages)
		count = 0
		out_messages = None
		try:
			for x in messages:
				count += 1
				if x[0] == element.Error.type:
					self.error_message = element.Error.parse(x[1])
					self.fatal = True
					self.state = Complete
					return count
				elif x[0] in AsynchronousMap:
					self._asyncs.append(AsynchronousMap[x[0]](x[1]))
				else:
					out_messages = self.machine.send(x)
					if out_messages:
						break
		except StopIteration:
			# generator is complete, negotiation is complete..
			self.state = Complete
			return count
		except ProtocolViolation as err:
			self.fail(str(err), '08P01', exception = err)
			return count
		except pg_exc.Error as err:
			# SASL verification failures and unsupported methods.
			self.fail(err.message, str(err.code), exception = err)
			return count
		except ValueError as err:
			self.fail("malformed message: " + str(err), '08P01', exception = err)
			return count

		if out_messages:
			self.messages = out_messages
			self.state = (Sending, self.sent)
		return count

	@staticmethod
	def expect(x, typ):
		if x[0] != typ.type:
			raise ProtocolViolation(
				"received message of type %r, but expected %r" %(
					x[0], typ.type,
				)
			)
		return typ.parse(x[1])

	def md5_password(self, salt):
		user = self.startup_message.get(b'user', b'')
		pw = md5(self.password + user).hexdigest().encode('ascii')
		return b'md5' + md5(pw + salt).hexdigest().encode('ascii')

	def state_machine(self):
		"""
		Generator keeping the state of the connection negotiation process.
		"""
		x = (yield (self.startup_message,))
		self.authtype = self.expect(x, element.Authentication)
		req = self.authtype.request

		if req == element.AuthRequest_OK:
			self.authok = self.authtype
		elif req in (element.AuthRequest_Cleartext, element.AuthRequest_MD5):
			if req == element.AuthRequest_Cleartext:
				pw = self.password
			else:
				pw = self.md5_password(self.authtype.salt)
			self.password_used = True
			x = (yield (element.Password(pw),))
			self.authok = self.expect(x, element.Authentication)
		elif req == element.AuthRequest_SASL:
			if sasl.mechanism not in self.authtype.mechanisms():
				raise pg_exc.AuthenticationMethodError(
					"no supported SASL mechanism offered by the server: %r" %(
						self.authtype.mechanisms(),
					)
				)
			scram = sasl.ScramSHA256(
				self.startup_message.get(b'user', b''), self.password
			)
			self.password_used = True
			x = (yield (element.SASLInitialResponse(
				sasl.mechanism, scram.client_first_message()
			),))
			cont = self.expect(x, element.Authentication)
			if cont.request != element.AuthRequest_SASLContinue:
				raise ProtocolViolation(
					"expected SASLContinue, but received %s(%d)" %(
						element.AuthNameMap.get(cont.request, '<unknown>'),
						cont.request,
					)
				)
			x = (yield (element.SASLResponse(
				scram.process_server_first(cont.salt)
			),))
			final = self.expect(x, element.Authentication)
			if final.request != element.AuthRequest_SASLFinal:
				raise ProtocolViolation(
					"expected SASLFinal, but received %s(%d)" %(
						element.AuthNameMap.get(final.request, '<unknown>'),
						final.request,
					)
				)
			scram.verify_server_final(final.salt)
			x = (yield None)
			self.authok = self.expect(x, element.Authentication)
		else:
			raise pg_exc.AuthenticationMethodError(
				"unsupported authentication request %r(%d)" %(
					element.AuthNameMap.get(req, '<unknown>'), req,
				),
				details = {
					'hint' : "supported methods: trust, password, md5 and SCRAM-SHA-256",
				}
			)

		if self.authok.request != element.AuthRequest_OK:
			raise ProtocolViolation(
				"expected an OK from the authentication " \
				"message, but received %s(%d) instead" %(
					element.AuthNameMap.get(self.authok.request, '<unknown>'),
					self.authok.request,
				)
			)

		# Done authenticating, pick up the killinfo and the ready message.
		x = (yield None)
		if x[0] == element.KillInformation.type:
			self.killinfo = element.KillInformation.parse(x[1])
			x = (yield None)
		self.last_ready = self.expect(x, element.Ready).xact_state

class Instruction(Transaction):
	"""
	Manage the state of a sequence of request messages to be sent to the server.
	It provides the messages to be sent and takes the response messages for order
	and integrity validation:

		Instruction([pgclientkit.protocol.element3.Message(), ..])

	A message must be one of:

		* `pgclientkit.protocol.element3.Query`
		* `pgclientkit.protocol.element3.Parse`
		* `pgclientkit.protocol.element3.Bind`
		* `pgclientkit.protocol.element3.Describe`
		* `pgclientkit.protocol.element3.Execute`
		* `pgclientkit.protocol.element3.Synchronize`
	"""
	state = None
	CopyFailMessage = element.CopyFail(b"invalid termination")

	# The hook is the dictionary that provides the path for the
	# current working message. The received messages ultimately come
	# through here and get parsed using the associated callable.
	# Messages that complete a command are paired with None.
	hook = {
		element.Query.type : (
			# 0: Start.
			{
				element.TupleDescriptor.type : (element.TupleDescriptor.parse, 3),
				element.Null.type : (element.Null.parse, 0),
				element.Complete.type : (element.Complete.parse, 0),
				element.CopyToBegin.type : (element.CopyToBegin.parse, 2),
				element.CopyFromBegin.type : (element.CopyFromBegin.parse, 1),
				element.Ready.type : (element.Ready.parse, None),
			},
			# 1: Complete.
			{
				element.Complete.type : (element.Complete.parse, 0),
			},
			# 2: Copy Data.
			# CopyData until CopyDone.
			# Complete comes next.
			{
				element.CopyData.type : (return_arg, 2),
				element.CopyDone.type : (element.CopyDone.parse, 1),
			},
			# 3: Row Data.
			{
				element.Tuple.type : (element.Tuple.parse, 3),
				element.Complete.type : (element.Complete.parse, 0),
			},
		),

		# Extended Protocol
		element.Parse.type : (
			{element.ParseComplete.type : (element.ParseComplete.parse, None)},
		),

		element.Bind.type : (
			{element.BindComplete.type : (element.BindComplete.parse, None)},
		),

		# Portal description; NoData or TupleDescriptor
		element.Describe.type : (
			{
				element.NoData.type : (element.NoData.parse, None),
				element.TupleDescriptor.type : (
					element.TupleDescriptor.parse, None
				),
			},
		),

		element.Execute.type : (
			# 0: Start.
			{
				element.Tuple.type : (element.Tuple.parse, 1),
				element.CopyToBegin.type : (element.CopyToBegin.parse, 2),
				element.CopyFromBegin.type : (element.CopyFromBegin.parse, 3),
				element.Null.type : (element.Null.parse, None),
				element.Complete.type : (element.Complete.parse, None),
			},
			# 1: Row Data.
			{
				element.Tuple.type : (element.Tuple.parse, 1),
				element.Suspension.type : (element.Suspension.parse, None),
				element.Complete.type : (element.Complete.parse, None),
			},
			# 2: Copy Data.
			{
				element.CopyData.type : (return_arg, 2),
				element.CopyDone.type : (element.CopyDone.parse, 3),
			},
			# 3: Complete.
			{
				element.Complete.type : (element.Complete.parse, None),
			},
		),

		element.Synchronize.type : (
			{element.Ready.type : (element.Ready.parse, None)},
		),
	}

	def __init__(self, commands):
		"""
		Initialize an `Instruction` instance using the given commands.
		"""
		# Commands are accessed by index.
		self.commands = tuple(commands)

		for cmd in self.commands:
			if cmd.type not in self.hook:
				raise TypeError(
					"unknown message type for PQ 3.0 protocol", cmd.type
				)
		self.reset()

	def __repr__(self):
		return '%s.%s(%s%s)' %(
			type(self).__module__,
			type(self).__name__,
			os.linesep,
			pformat(self.commands)
		)

	def reset(self):
		"""
		Reset the `Transaction` instance to its initial state.
		"""
		self.completed = []
		self._asyncs = []
		self.position = (0, 0) # command offset, step
		self.messages = self.commands
		self.state = (Sending, self.standard_sent)
		self.fatal = None
		self.error_message = None
		self.exception = None
		self.last_ready = None

	def asyncs(self):
		"iterate over asynchronous messages received"
		return iter(self._asyncs)

	def messages_received(self):
		'Received and validated messages'
		return chain.from_iterable(self.completed)

	def reverse(self):
		"""
		An iterator producing the completed messages in reverse
		order. Last in, first out.
		"""
		return chain.from_iterable(
			map(reversed, reversed(self.completed))
		)

	def standard_put(self, messages):
		"""
		Attempt to forward the state of the transaction using the given
		messages. "put" messages into the transaction for processing.
		"""
		offset, current_step = self.position
		cmd = self.commands[offset]
		paths = self.hook[cmd.type]
		processed = []
		count = 0

		for x in messages:
			count += 1
			# For the current message, get the path for the message
			# and whether it signals the end of the current command
			path, next_step = paths[current_step].get(x[0], (None, None))

			if path is None:
				# No path for message type, could be a protocol error.
				if x[0] == element.Error.type:
					em = element.Error.parse(x[1])
					fatal = em.get('severity', b'').upper() in (b'FATAL', b'PANIC')
					if fatal or self.error_message is None:
						self.error_message = em
						self.fatal = fatal
					if fatal:
						self.state = Complete
						self.completed.append(processed)
						return count
					# Error occurred, so sync up with backend if
					# the current command is not 'Q' as it
					# implies a sync message.
					if cmd.type != element.Query.type:
						for offset in range(offset, len(self.commands)):
							if self.commands[offset] is element.SynchronizeMessage:
								break
						else:
							##
							# It's done.
							self.completed.append(processed)
							self.state = Complete
							return count
					##
					# Not quite done, the state(Ready) message still
					# needs to be received.
					cmd = self.commands[offset]
					paths = self.hook[cmd.type]
					# On a new command, setup the new step.
					current_step = 0
					continue
				elif x[0] in AsynchronousMap:
					self._asyncs.append(AsynchronousMap[x[0]](x[1]))
				else:
					##
					# Protocol violation
					self.completed.append(processed)
					self.fail(
						"expected message of types %r, " \
						"but received %r instead" % (
							tuple(paths[current_step].keys()), x[0]
						),
						'08P01',
					)
					return count
			else:
				# Valid message
				try:
					r = path(x[1])
				except ValueError as err:
					self.completed.append(processed)
					self.fail(
						"malformed message: " + str(err), '08P01', exception = err
					)
					return count
				processed.append(r)

				if next_step is not None:
					current_step = next_step
				else:
					current_step = 0
					if type(r) is element.Ready:
						self.last_ready = r.xact_state
					# Done with the current command. Increment the offset, and
					# try to process the new command with the remaining data.
					offset += 1
					if offset == len(self.commands):
						# Done with transaction.
						break
					cmd = self.commands[offset]
					paths = self.hook[cmd.type]

		self.completed.append(processed)
		# Store the state for the next transition.
		self.position = (offset, current_step)

		if offset == len(self.commands):
			# transaction complete.
			self.state = Complete
		elif cmd.type in (element.Execute.type, element.Query.type) and \
		processed:
			# Check the context to identify if the state should be
			# switched to an optimized processor.
			last = processed[-1]
			if type(last) is bytes:
				self.state = (Receiving, self.put_copydata)
			elif type(last) is element.CopyToBegin:
				self.state = (Receiving, self.put_copydata)
			elif type(last) is element.Tuple:
				self.state = (Receiving, self.put_tupledata)
			elif type(last) is element.CopyFromBegin:
				self.CopyFailSequence = (self.CopyFailMessage,) + \
					self.commands[offset+1:]
				self.CopyDoneSequence = (element.CopyDoneMessage,) + \
					self.commands[offset+1:]
				self.state = (Sending, self.sent_from_stdin)
		return count

	def put_copydata(self, messages):
		"""
		In the context of a copy, `put_copydata` is used as a fast path for
		storing `element.CopyData` messages. When a non-`element.CopyData.type`
		message is received, it reverts the ``state`` attribute back to
		`standard_put` to process the message.
		"""
		# "Fail" quickly if the last message is not copy data.
		if messages[-1][0] != element.CopyData.type:
			self.state = (Receiving, self.standard_put)
			return self.standard_put(messages)

		lines = []
		for x in messages:
			if x[0] != element.CopyData.type:
				self.state = (Receiving, self.standard_put)
				return self.standard_put(messages)
			lines.append(x[1])
		self.completed.append(lines)
		return len(messages)

	def put_tupledata(self, messages):
		"""
		Fast path used when inside an Execute command. As soon as tuple
		data is seen.
		"""
		# Fallback to `standard_put` quickly if the last
		# message is not tuple data.
		if messages[-1][0] != element.Tuple.type:
			self.state = (Receiving, self.standard_put)
			return self.standard_put(messages)

		p = element.Tuple.parse
		tuplemessages = []
		for x in messages:
			if x[0] != element.Tuple.type:
				self.state = (Receiving, self.standard_put)
				return self.standard_put(messages)
			tuplemessages.append(p(x[1]))
		self.completed.append(tuplemessages)
		return len(messages)

	def standard_sent(self):
		"""
		Empty messages and switch state to receiving.

		This is called by the user after the `messages` have been sent to the
		remote end. That is, this merely finalizes the "Sending" state.
		"""
		self.messages = ()
		self.state = (Receiving, self.standard_put)
	sent = standard_sent

	def sent_from_stdin(self):
		"""
		The state method for sending copy data.

		After each call to `sent_from_stdin`, the `messages` attribute is set to a
		`CopyFailSequence`. This sequence of messages assures that the COPY will be
		properly terminated.

		If new copy data is not provided, or `messages` is *not* set to
		`CopyDoneSequence`, the transaction will instruct the remote end to cause
		the COPY to fail.
		"""
		if self.messages is self.CopyDoneSequence or \
		self.messages is self.CopyFailSequence:
			# If the last sent `messages` is CopyDone or CopyFail, finish out the
			# transaction.
			##
			self.messages = ()
			self.state = (Receiving, self.standard_put)
		else:
			##
			# Initialize to CopyFail, if the messages attribute is not
			# set properly before each invocation, the transaction is
			# being misused and will be terminated.
			self.messages = self.CopyFailSequence

class Closing(Transaction):
	"""
	Send the Terminate message; the connection is closed afterwards.
	"""
	messages = (element.DisconnectMessage,)

	def __init__(self):
		self.state = (Sending, self.sent)

	def messages_received(self):
		return ()

	def asyncs(self):
		return iter(())

	def sent(self):
		# Once the terminate message has been sent, the session is over.
		self.messages = ()
		self.error_message = client_error("connection closed", '08003')
		self.fatal = True
		self.state = Complete
