##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Messages of the version 3.0 frontend/backend protocol

A message is built from its fields. `serialize` produces the message body and
the `parse` class method rebuilds a message from a body; `bytes` gives the
complete wire form, the type byte and the length word followed by the body.
The messages sent before the startup completes carry no type byte.
"""
import pprint
from struct import Struct, pack, unpack
from .message_types import message_types
from .typstruct import ushort_pack, ushort_unpack, ulong_pack, ulong_unpack
from .version import V3_0, CancelRequestCode, NegotiateSSLCode

null_field = b'\xff\xff\xff\xff'

StringFormat = b'\x00\x00'
BinaryFormat = b'\x00\x01'

header_struct = Struct("!cL")

def cstring(data, offset = 0):
	"""
	Read the NUL terminated string at `offset`.

	Returns a pair: (string, offset following the terminator).
	"""
	end = data.find(b'\x00', offset)
	if end < 0:
		raise ValueError("unterminated string in message data")
	return data[offset:end], end + 1

def pack_fields(fields):
	'Length prefixed fields; `None` is sent as the NULL field.'
	return b''.join([
		null_field if x is None else ulong_pack(len(x)) + x
		for x in fields
	])

def unpack_fields(data, count, offset = 0):
	"""
	Read `count` length prefixed fields starting at `offset`.

	Returns a pair: (fields, offset following the last field).
	"""
	fields = []
	for i in range(count):
		size = data[offset:offset+4]
		offset += 4
		if size == null_field:
			fields.append(None)
			continue
		if len(size) != 4:
			raise ValueError("truncated field length")
		end = offset + ulong_unpack(size)
		if end > len(data):
			raise ValueError("field data exceeds the message size")
		fields.append(data[offset:end])
		offset = end
	return fields, offset

def pack_formats(formats):
	return ushort_pack(len(formats)) + b''.join(formats)

def unpack_formats(data, offset):
	count = ushort_unpack(data[offset:offset+2])
	offset += 2
	end = offset + (count * 2)
	if end > len(data):
		raise ValueError("truncated format codes")
	return tuple([data[x:x+2] for x in range(offset, end, 2)]), end

def strip_code(data, code):
	'Remove the request code that leads an untyped message.'
	if data[0:4] != code:
		raise ValueError("expected request code %r, got %r" %(code, data[0:4]))
	return data[4:]

class Message(object):
	"""
	A protocol message. `field_names` lists the attributes that make up the
	message's identity for `repr` and comparisons.
	"""
	type = b''
	field_names = ()
	__slots__ = ()

	def fields(self):
		return tuple([getattr(self, x) for x in self.field_names])

	def __repr__(self):
		return '%s.%s(%s)' %(
			type(self).__module__,
			type(self).__name__,
			', '.join(map(repr, self.fields())),
		)

	def __eq__(self, ob):
		return type(ob) is type(self) and self.fields() == ob.fields()

	def bytes(self):
		body = self.serialize()
		if self.type:
			return header_struct.pack(self.type, len(body) + 4) + body
		return ulong_pack(len(body) + 4) + body

	@classmethod
	def parse(typ, data):
		return typ(data)

class StringMessage(Message):
	'A message whose body is a single NUL terminated string.'
	__slots__ = field_names = ('data',)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return bytes(self.data) + b'\x00'

	@classmethod
	def parse(typ, data):
		s, end = cstring(data)
		if end != len(data):
			raise ValueError("data follows the string of a %s message" %(typ.__name__,))
		return typ(s)

class TupleMessage(tuple, Message):
	'A message whose body is a sequence.'
	__slots__ = ()

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__,
			type(self).__name__,
			tuple(self),
		)

class DictMessage(Message, dict):
	'A message whose fields are keyed by name.'
	__slots__ = ()

	def __repr__(self):
		return '%s.%s(**%s)' %(
			type(self).__module__,
			type(self).__name__,
			pprint.pformat(dict(self)),
		)

	def __eq__(self, ob):
		return type(ob) is type(self) and dict.__eq__(self, ob)

class EmptyMessage(Message):
	'A message with no body; each type has exactly one instance.'
	__slots__ = ()

	def __new__(typ):
		return typ.SingleInstance

	def serialize(self):
		return b''

	@classmethod
	def parse(typ, data):
		if data:
			raise ValueError("%s message carries data" %(typ.__name__,))
		return typ.SingleInstance

def single_instance(typ):
	typ.SingleInstance = Message.__new__(typ)
	return typ.SingleInstance

##
# Backend messages
##

class Notify(Message):
	'NotificationResponse: a NOTIFY on a channel the session listens to'
	type = message_types[b'A'[0]]
	__slots__ = field_names = ('pid', 'channel', 'payload')

	def __init__(self, pid, channel, payload = b''):
		self.pid = pid
		self.channel = channel
		self.payload = payload

	def serialize(self):
		return ulong_pack(self.pid) + self.channel + b'\x00' + self.payload + b'\x00'

	@classmethod
	def parse(typ, data):
		channel, offset = cstring(data, 4)
		payload, offset = cstring(data, offset)
		return typ(ulong_unpack(data[0:4]), channel, payload)

class ShowOption(Message):
	'ParameterStatus: the current value of a reported server setting'
	type = message_types[b'S'[0]]
	__slots__ = field_names = ('name', 'value')

	def __init__(self, name, value):
		self.name = name
		self.value = value

	def serialize(self):
		return self.name + b'\x00' + self.value + b'\x00'

	@classmethod
	def parse(typ, data):
		name, offset = cstring(data)
		value, offset = cstring(data, offset)
		return typ(name, value)

class Complete(StringMessage):
	'CommandComplete; `data` is the command tag'
	type = message_types[b'C'[0]]
	__slots__ = ()

	@classmethod
	def parse(typ, data):
		return typ(data.rstrip(b'\x00'))

	def extract_count(self):
		"""
		The row count carried by the command tag, or `None` when the tag has
		no count. ``INSERT 0 5`` gives 5.
		"""
		words = self.data.split()
		if len(words) > 1 and words[-1].isdigit():
			return int(words[-1])
		return None

class Null(EmptyMessage):
	'EmptyQueryResponse'
	type = message_types[b'I'[0]]
	__slots__ = ()
NullMessage = single_instance(Null)

class NoData(EmptyMessage):
	'The described portal produces no rows'
	type = message_types[b'n'[0]]
	__slots__ = ()
NoDataMessage = single_instance(NoData)

class ParseComplete(EmptyMessage):
	type = message_types[b'1'[0]]
	__slots__ = ()
ParseCompleteMessage = single_instance(ParseComplete)

class BindComplete(EmptyMessage):
	type = message_types[b'2'[0]]
	__slots__ = ()
BindCompleteMessage = single_instance(BindComplete)

class Suspension(EmptyMessage):
	'PortalSuspended: the row limit of an Execute was reached'
	type = message_types[b's'[0]]
	__slots__ = ()
SuspensionMessage = single_instance(Suspension)

class Ready(Message):
	"""
	ReadyForQuery; `xact_state` is the transaction status of the session:
	``I`` idle, ``T`` in a transaction or ``E`` in a failed transaction.
	"""
	type = message_types[b'Z'[0]]
	transaction_states = (b'I', b'T', b'E')
	__slots__ = field_names = ('xact_state',)

	def __init__(self, xact_state):
		if xact_state not in self.transaction_states:
			raise ValueError("invalid transaction status %r" %(xact_state,))
		self.xact_state = xact_state

	def serialize(self):
		return self.xact_state

# NoticeResponse and ErrorResponse field codes
notice_field_names = {
	b'S' : 'severity',
	b'V' : 'severity_nonlocalized',
	b'C' : 'code',
	b'M' : 'message',
	b'D' : 'detail',
	b'H' : 'hint',
	b'P' : 'position',
	b'p' : 'internal_position',
	b'q' : 'internal_query',
	b'W' : 'context',
	b's' : 'schema',
	b't' : 'table',
	b'c' : 'column',
	b'd' : 'datatype',
	b'n' : 'constraint',
	b'F' : 'file',
	b'L' : 'line',
	b'R' : 'function',
}

class Notice(DictMessage):
	"""
	NoticeResponse

	The fields are keyed by their names in `notice_field_names`; the values
	are the bytes sent by the server. Unknown field codes are ignored.
	"""
	type = message_types[b'N'[0]]
	__slots__ = ()

	def __init__(self, **fields):
		self.update([x for x in fields.items() if x[1] is not None])

	def serialize(self):
		return b''.join([
			code + self[name] + b'\x00'
			for code, name in notice_field_names.items()
			if self.get(name) is not None
		]) + b'\x00'

	@classmethod
	def parse(typ, data):
		fields = {}
		for part in data.split(b'\x00'):
			name = notice_field_names.get(part[0:1])
			if name is not None:
				fields[name] = part[1:]
		return typ(**fields)

class Error(Notice):
	'ErrorResponse'
	type = message_types[b'E'[0]]
	__slots__ = ()

class ClientError(Error):
	"""
	An error raised by the client itself. The values are `str` and the message
	never goes over the wire.
	"""
	__slots__ = ()

	def serialize(self):
		raise RuntimeError("ClientError is never sent")

	@classmethod
	def parse(typ, data):
		raise RuntimeError("ClientError is never received")

class TupleDescriptor(TupleMessage):
	"""
	RowDescription; one (name, table oid, column number, type oid, type size,
	type modifier, format) tuple per column
	"""
	type = message_types[b'T'[0]]
	attribute_struct = Struct("!LhLhlh")
	__slots__ = ()

	def serialize(self):
		return ushort_pack(len(self)) + b''.join([
			x[0] + b'\x00' + self.attribute_struct.pack(*x[1:])
			for x in self
		])

	@classmethod
	def parse(typ, data):
		size = typ.attribute_struct.size
		offset = 2
		attributes = []
		for i in range(ushort_unpack(data[0:2])):
			name, offset = cstring(data, offset)
			end = offset + size
			if end > len(data):
				raise ValueError("truncated row description")
			attributes.append((name,) + typ.attribute_struct.unpack(data[offset:end]))
			offset = end
		return typ(attributes)

class Tuple(TupleMessage):
	'DataRow; the column values, `None` for NULL'
	type = message_types[b'D'[0]]
	__slots__ = ()

	def serialize(self):
		return ushort_pack(len(self)) + pack_fields(self)

	@classmethod
	def parse(typ, data):
		return typ(unpack_fields(data, ushort_unpack(data[0:2]), 2)[0])

class KillInformation(Message):
	'BackendKeyData: the key needed to cancel the session\'s queries'
	type = message_types[b'K'[0]]
	struct = Struct("!LL")
	__slots__ = field_names = ('pid', 'key')

	def __init__(self, pid, key):
		self.pid = pid
		self.key = key

	def serialize(self):
		return self.struct.pack(self.pid, self.key)

	@classmethod
	def parse(typ, data):
		return typ(*typ.struct.unpack(data))

AuthRequest_OK = 0
AuthRequest_Cleartext = 3
AuthRequest_MD5 = 5
AuthRequest_SASL = 10
AuthRequest_SASLContinue = 11
AuthRequest_SASLFinal = 12

# Requests that are refused.
AuthRequest_KRB4 = 1
AuthRequest_KRB5 = 2
AuthRequest_Crypt = 4
AuthRequest_SCMC = 6
AuthRequest_GSS = 7
AuthRequest_GSSContinue = 8
AuthRequest_SSPI = 9

AuthNameMap = {
	AuthRequest_Cleartext : 'Cleartext',
	AuthRequest_MD5 : 'MD5',
	AuthRequest_SASL : 'SASL',
	AuthRequest_SASLContinue : 'SASLContinue',
	AuthRequest_SASLFinal : 'SASLFinal',
	AuthRequest_KRB4 : 'Kerberos4',
	AuthRequest_KRB5 : 'Kerberos5',
	AuthRequest_Crypt : 'Crypt',
	AuthRequest_SCMC : 'SCM Credential',
	AuthRequest_GSS : 'GSS',
	AuthRequest_GSSContinue : 'GSSContinue',
	AuthRequest_SSPI : 'SSPI',
}

class Authentication(Message):
	"""
	Authentication(request, salt)

	`salt` is the remainder of the message: the MD5 salt, the list of SASL
	mechanisms, or the SASL challenge data.
	"""
	type = message_types[b'R'[0]]
	__slots__ = field_names = ('request', 'salt')

	def __init__(self, request, salt):
		self.request = request
		self.salt = salt

	def serialize(self):
		return ulong_pack(self.request) + self.salt

	@classmethod
	def parse(typ, data):
		if len(data) < 4:
			raise ValueError("truncated authentication request")
		return typ(ulong_unpack(data[0:4]), data[4:])

	def mechanisms(self):
		'The SASL mechanisms offered by an `AuthRequest_SASL` message.'
		return [x for x in self.salt.split(b'\x00') if x]

class CopyBegin(Message):
	'The overall format and the per column formats of a COPY'
	struct = Struct("!BH")
	__slots__ = field_names = ('format', 'formats')

	def __init__(self, format, formats):
		self.format = format
		self.formats = formats

	def serialize(self):
		return self.struct.pack(self.format, len(self.formats)) + \
			pack('!%dH' %(len(self.formats),), *self.formats)

	@classmethod
	def parse(typ, data):
		format, count = typ.struct.unpack(data[0:3])
		if len(data) != 3 + (count * 2):
			raise ValueError("column format count does not match the data")
		return typ(format, list(unpack('!%dH' %(count,), data[3:])))

class CopyToBegin(CopyBegin):
	'CopyOutResponse'
	type = message_types[b'H'[0]]
	__slots__ = ()

class CopyFromBegin(CopyBegin):
	'CopyInResponse'
	type = message_types[b'G'[0]]
	__slots__ = ()

##
# Frontend messages
##

class Startup(DictMessage):
	'StartupMessage: the protocol version and the session parameters'
	code = V3_0.bytes()
	__slots__ = ()

	def serialize(self):
		return self.code + b''.join([
			k + b'\x00' + v + b'\x00'
			for k, v in self.items()
			if v is not None
		]) + b'\x00'

	@classmethod
	def parse(typ, data):
		parts = strip_code(data, typ.code).split(b'\x00')
		# the last two parts are the terminators of the final value and the list
		return typ(zip(parts[0:-2:2], parts[1:-2:2]))

class CancelRequest(KillInformation):
	'Sent on a new connection to cancel the running query of a session'
	type = b''
	code = CancelRequestCode.bytes()
	__slots__ = ()

	def serialize(self):
		return self.code + self.struct.pack(self.pid, self.key)

	@classmethod
	def parse(typ, data):
		return typ(*typ.struct.unpack(strip_code(data, typ.code)))

class NegotiateSSL(Message):
	'SSLRequest; the server answers with a single byte, S or N'
	code = NegotiateSSLCode.bytes()
	__slots__ = ()

	def __new__(typ):
		return NegotiateSSLMessage

	def serialize(self):
		return self.code

	@classmethod
	def parse(typ, data):
		if strip_code(data, typ.code):
			raise ValueError("SSLRequest carries data")
		return NegotiateSSLMessage
NegotiateSSLMessage = Message.__new__(NegotiateSSL)

class Password(StringMessage):
	'PasswordMessage carrying a cleartext or MD5 password'
	type = message_types[b'p'[0]]
	__slots__ = ()

class SASLInitialResponse(Message):
	'The selected SASL mechanism and the client-first message'
	type = message_types[b'p'[0]]
	__slots__ = field_names = ('mechanism', 'data')

	def __init__(self, mechanism, data):
		self.mechanism = mechanism
		self.data = data

	def serialize(self):
		return self.mechanism + b'\x00' + pack_fields((self.data,))

	@classmethod
	def parse(typ, data):
		mechanism, offset = cstring(data)
		return typ(mechanism, unpack_fields(data, 1, offset)[0][0])

class SASLResponse(Message):
	'A later SASL message; the body is mechanism specific'
	type = message_types[b'p'[0]]
	__slots__ = field_names = ('data',)

	def __init__(self, data):
		self.data = data

	def serialize(self):
		return self.data

class Disconnect(EmptyMessage):
	'Terminate'
	type = message_types[b'X'[0]]
	__slots__ = ()
DisconnectMessage = single_instance(Disconnect)

class Synchronize(EmptyMessage):
	'Sync; ends an extended query'
	type = message_types[b'S'[0]]
	__slots__ = ()
SynchronizeMessage = single_instance(Synchronize)

class Query(StringMessage):
	'A simple query'
	type = message_types[b'Q'[0]]
	__slots__ = ()

class Parse(Message):
	'Prepare `statement` as `name`, fixing the types of its parameters'
	type = message_types[b'P'[0]]
	__slots__ = field_names = ('name', 'statement', 'argtypes')

	def __init__(self, name, statement, argtypes):
		self.name = name
		self.statement = statement
		self.argtypes = argtypes

	def serialize(self):
		count = len(self.argtypes)
		return self.name + b'\x00' + self.statement + b'\x00' + \
			ushort_pack(count) + pack('!%dL' %(count,), *self.argtypes)

	@classmethod
	def parse(typ, data):
		name, offset = cstring(data)
		statement, offset = cstring(data, offset)
		count = ushort_unpack(data[offset:offset+2])
		offset += 2
		if len(data) - offset != count * 4:
			raise ValueError("parameter type count does not match the data")
		return typ(name, statement, unpack('!%dL' %(count,), data[offset:]))

class Bind(Message):
	"""
	Bind(portal, statement, aformats, arguments, rformats)

	`aformats` and `rformats` are sequences of `StringFormat` or
	`BinaryFormat`; `arguments` holds the encoded parameters, `None` for NULL.
	"""
	type = message_types[b'B'[0]]
	__slots__ = field_names = ('name', 'statement', 'aformats', 'arguments', 'rformats')

	def __init__(self, name, statement, aformats, arguments, rformats):
		self.name = name
		self.statement = statement
		self.aformats = aformats
		self.arguments = arguments
		self.rformats = rformats

	def serialize(self):
		return self.name + b'\x00' + self.statement + b'\x00' + \
			pack_formats(self.aformats) + \
			ushort_pack(len(self.arguments)) + pack_fields(self.arguments) + \
			pack_formats(self.rformats)

	@classmethod
	def parse(typ, data):
		name, offset = cstring(data)
		statement, offset = cstring(data, offset)
		aformats, offset = unpack_formats(data, offset)
		count = ushort_unpack(data[offset:offset+2])
		arguments, offset = unpack_fields(data, count, offset + 2)
		rformats, offset = unpack_formats(data, offset)
		return typ(name, statement, aformats, arguments, rformats)

class Execute(Message):
	'Run the portal `name`, returning at most `max` rows; zero is no limit'
	type = message_types[b'E'[0]]
	__slots__ = field_names = ('name', 'max')

	def __init__(self, name, max = 0):
		self.name = name
		self.max = max

	def serialize(self):
		return self.name + b'\x00' + ulong_pack(self.max)

	@classmethod
	def parse(typ, data):
		name, offset = cstring(data)
		return typ(name, ulong_unpack(data[offset:]))

class Describe(StringMessage):
	'Describe; subclasses name the kind of object described'
	type = message_types[b'D'[0]]
	subtype = None
	__slots__ = ()

	def serialize(self):
		return self.subtype + self.data + b'\x00'

	@classmethod
	def parse(typ, data):
		if data[0:1] != typ.subtype:
			raise ValueError("expected Describe of %r, got %r" %(typ.subtype, data[0:1]))
		return super().parse(data[1:])

class DescribePortal(Describe):
	subtype = b'P'
	__slots__ = ()

##
# COPY data, sent in both directions
##

class CopyData(Message):
	type = message_types[b'd'[0]]
	__slots__ = field_names = ('data',)

	def __init__(self, data):
		self.data = bytes(data)

	def serialize(self):
		return self.data

class CopyFail(StringMessage):
	type = message_types[b'f'[0]]
	__slots__ = ()

class CopyDone(EmptyMessage):
	type = message_types[b'c'[0]]
	__slots__ = ()
CopyDoneMessage = single_instance(CopyDone)
