##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL type I/O for a connection.

`TypeIO` combines the process-wide codec registry,
`pgclientkit.types.io.oid_to_io`, with the configuration of a connection: the
client encoding and whether the server uses integer datetimes. It encodes
parameters for a Bind message and decodes the fields of received rows.

Parameter types are inferred from the Python type when the caller does not
give one with `pgclientkit.types.Typed`:

 None
  NULL, type left to the server.
 bool
  bool
 int
  int4, int8 or numeric; the smallest that holds the value.
 float
  float8
 decimal.Decimal
  numeric
 str
  Oid 0; the server infers the type from the statement.
 bytes, bytearray, memoryview
  bytea
 datetime.datetime
  timestamptz when aware, otherwise timestamp.
 datetime.date, datetime.time, datetime.timedelta
  date; timetz when aware, otherwise time; interval.
 uuid.UUID
  uuid
 dict
  jsonb
 list, tuple, `pgclientkit.types.Array`
  The array of the widest element type. Empty arrays and arrays of NULLs are
  sent as an untyped text literal.
"""
import warnings
import datetime
from decimal import Decimal
from uuid import UUID

from ..encodings import aliases as pg_enc_aliases
from .. import exceptions as pg_exc
from ..python.functools import process_tuple
from .. import types as pg_types
from ..types import Typed, UnknownValue, Parameter, Array
from ..types.io import oid_to_io
from ..types.io import stdlib_datetime
from ..types.io.pg_container import format_array, array_check

int4_range = (-(1 << 31), (1 << 31) - 1)
int8_range = (-(1 << 63), (1 << 63) - 1)

# Widening order of the numeric element types of an inferred array.
numeric_rank = {
	pg_types.INT4OID : 0,
	pg_types.INT8OID : 1,
	pg_types.FLOAT8OID : 2,
	pg_types.NUMERICOID : 3,
}

# Types whose parameters are always sent in text format.
text_parameter_types = frozenset((
	pg_types.InvalidOid,
	pg_types.UNKNOWNOID,
))

def infer_scalar(value):
	'Identify the type Oid of the given value.'
	if value.__class__ is bool:
		return pg_types.BOOLOID
	elif isinstance(value, int):
		if int4_range[0] <= value <= int4_range[1]:
			return pg_types.INT4OID
		elif int8_range[0] <= value <= int8_range[1]:
			return pg_types.INT8OID
		return pg_types.NUMERICOID
	elif isinstance(value, float):
		return pg_types.FLOAT8OID
	elif isinstance(value, Decimal):
		return pg_types.NUMERICOID
	elif isinstance(value, str):
		return pg_types.InvalidOid
	elif isinstance(value, (bytes, bytearray, memoryview)):
		return pg_types.BYTEAOID
	elif isinstance(value, datetime.datetime):
		if value.tzinfo is not None:
			return pg_types.TIMESTAMPTZOID
		return pg_types.TIMESTAMPOID
	elif isinstance(value, datetime.date):
		return pg_types.DATEOID
	elif isinstance(value, datetime.time):
		if value.tzinfo is not None:
			return pg_types.TIMETZOID
		return pg_types.TIMEOID
	elif isinstance(value, datetime.timedelta):
		return pg_types.INTERVALOID
	elif isinstance(value, UUID):
		return pg_types.UUIDOID
	elif isinstance(value, dict):
		return pg_types.JSONBOID
	raise TypeError("cannot infer the type of %s" %(type(value).__name__,))

def widest(oids):
	"""
	Select the element type of an array from the types of its elements.

	Returns `None` when there are no typed elements.
	"""
	oids = set(oids)
	if not oids:
		return None
	if len(oids) == 1:
		return oids.pop()
	if oids.issubset(numeric_rank):
		if pg_types.FLOAT8OID in oids and pg_types.NUMERICOID not in oids:
			return pg_types.FLOAT8OID
		return max(oids, key = numeric_rank.__getitem__)
	if oids == {pg_types.TIMESTAMPOID, pg_types.TIMESTAMPTZOID}:
		return pg_types.TIMESTAMPTZOID
	if oids == {pg_types.TIMEOID, pg_types.TIMETZOID}:
		return pg_types.TIMETZOID
	raise TypeError("array elements have inconsistent types: " + ', '.join(
		sorted([pg_types.oid_to_name.get(x, str(x)) for x in oids])
	))

class TypeIO(object):
	"""
	A class that manages I/O for a given configuration. Normally, a connection
	would create an instance, and configure it based upon the settings reported
	by the server it is connected to.
	"""

	def __init__(self, encoding = 'utf8', integer_datetimes = True):
		self._cache = {}
		self.set_encoding(encoding)
		self.select_time_io(integer_datetimes)

	def __repr__(self):
		return '<%s.%s encoding=%r integer_datetimes=%r>' %(
			type(self).__module__,
			type(self).__name__,
			self.encoding,
			self.integer_datetimes,
		)

	def set_encoding(self, value):
		"""
		Set the client encoding using the PostgreSQL name of the encoding.

		Raises `LookupError` when there is no Python codec for it.
		"""
		ci = pg_enc_aliases.lookup(value)
		self.encoding = value.lower().strip()
		self._encode = ci[0]
		self._decode = ci[1]

	def select_time_io(self, integer_datetimes):
		"""
		Choose the binary representation of the time types. `integer_datetimes`
		is the server's setting; a string from a ParameterStatus message is
		accepted.
		"""
		if isinstance(integer_datetimes, str):
			integer_datetimes = integer_datetimes.lower() in ('on', 'true', 't')
		self.integer_datetimes = bool(integer_datetimes)
		self._time_io = {} if self.integer_datetimes else stdlib_datetime.time_io
		self._cache.clear()

	def encode(self, string_data):
		return self._encode(string_data)[0]

	def decode(self, bytes_data):
		return self._decode(bytes_data)[0]

	def resolve(self, typid):
		"""
		Lookup the codec, (text_pack, text_unpack, binary_pack, binary_unpack), of
		the given type. Returns `None` for types that have no codec.
		"""
		typid = int(typid)
		typio = self._cache.get(typid)
		if typio is None:
			typio = self._time_io.get(typid) or oid_to_io.get(typid)
			if typio is None:
				return None
			if not isinstance(typio, tuple):
				typio = typio(typid, self)
			self._cache[typid] = typio
		return typio

	def infer(self, value):
		"""
		Identify the type Oid of the value; `Typed` values give their own.
		"""
		if isinstance(value, Typed):
			return value.oid
		if isinstance(value, (list, tuple, Array)):
			a = array_check(value)
			element = widest([
				infer_scalar(x) for x in a.elements
				if x is not None
			])
			if element is None:
				return pg_types.InvalidOid
			if element == pg_types.InvalidOid:
				element = pg_types.TEXTOID
			array_oid = pg_types.element_to_array.get(element)
			if array_oid is None:
				raise TypeError(
					"no array type for elements of type %s" %(
						pg_types.oid_to_name.get(element, element),
					)
				)
			return array_oid
		return infer_scalar(value)

	def encode_parameter(self, value, index = None):
		"""
		Encode a value for a Bind message, returning a `Parameter`.

		Raises `pgclientkit.exceptions.BindValueError` naming `index` when the value
		cannot be encoded.
		"""
		if value is None:
			return Parameter(pg_types.InvalidOid, 0, None)

		if isinstance(value, Typed):
			typid, value = value.oid, value.value
			if value is None:
				return Parameter(typid, 0, None)
		else:
			try:
				typid = self.infer(value)
			except (TypeError, ValueError) as err:
				raise pg_exc.BindValueError(
					self._position(index) + str(err), index = index
				) from err

		if typid == pg_types.InvalidOid and isinstance(value, (list, tuple, Array)):
			# No typed elements: leave the array type to the server.
			a = array_check(value)
			return Parameter(typid, 0, self.encode(format_array(a.elements, a.dimensions, str)))

		typio = self.resolve(typid)
		if typio is None:
			raise pg_exc.BindValueError(
				self._position(index) + "no codec for type %d" %(typid,),
				index = index
			)
		try:
			if typio[2] is not None and typid not in text_parameter_types:
				return Parameter(typid, 1, typio[2](value))
			return Parameter(typid, 0, self.encode(typio[0](value)))
		except Exception as err:
			raise pg_exc.BindValueError(
				self._position(index) + "cannot encode %s as %s: %s" %(
					type(value).__name__,
					pg_types.oid_to_name.get(typid, typid),
					err,
				),
				index = index
			) from err

	@staticmethod
	def _position(index):
		if index is None:
			return ''
		return 'parameter $%d: ' %(index + 1,)

	def encode_parameters(self, values):
		return [
			self.encode_parameter(x, i) for i, x in enumerate(values)
		]

	def field_unpacker(self, typid, format):
		"""
		Create the routine that decodes a field of the given type and format.
		"""
		typio = self.resolve(typid)
		if format:
			unpack = typio[3] if typio is not None else None
			if unpack is None:
				return lambda data: UnknownValue(typid, data)
			return unpack
		unpack = typio[1] if typio is not None else None
		decode = self.decode
		if unpack is None:
			return lambda data: UnknownValue(typid, decode(data))
		return lambda data: unpack(decode(data))

	def resolve_descriptor(self, desc):
		'create a sequence of field decoders from a pq row description'
		return [self.field_unpacker(x[3], x[6]) for x in desc]

	def decode_field(self, typid, format, data):
		"""
		Decode a single field. NULL, `None`, is returned as-is.
		"""
		return self.decode_row(
			[self.field_unpacker(typid, format)], [typid], (data,)
		)[0]

	def decode_row(self, unpackers, typids, data):
		"""
		Decode the fields of a row using the routines from `resolve_descriptor`.
		Fields that fail to decode are returned as `UnknownValue` and a
		`TypeConversionWarning` is emitted.
		"""
		def fallback(procs, tup, itemnum):
			typid = typids[itemnum]
			warnings.warn(pg_exc.TypeConversionWarning(
				"could not decode field %d of type %s" %(
					itemnum, pg_types.oid_to_name.get(typid, typid),
				),
				details = {
					'context' : repr(tup[itemnum])[:80],
					'position' : str(itemnum),
				}
			), stacklevel = 3)
			return UnknownValue(typid, tup[itemnum])
		return process_tuple(unpackers, data, fallback)
