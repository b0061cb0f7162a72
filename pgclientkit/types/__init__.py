##
# copyright 2009, James William Pye.
# http://python.projects.postgresql.org
##
"""
PostgreSQL types and identifiers.

The type Oids known to the codec, the Python types used to represent values
that have no natural builtin (`Array`, `Row`, `UnknownValue`) and the wrappers
callers use to steer parameter encoding (`Typed`).
"""
from collections import namedtuple
from operator import itemgetter
get0 = itemgetter(0)
get1 = itemgetter(1)
del itemgetter

InvalidOid = 0

BOOLOID = 16
BYTEAOID = 17
CHAROID = 18
NAMEOID = 19
INT8OID = 20
INT2OID = 21
INT4OID = 23
TEXTOID = 25
OIDOID = 26
JSONOID = 114
FLOAT4OID = 700
FLOAT8OID = 701
UNKNOWNOID = 705
BPCHAROID = 1042
VARCHAROID = 1043
DATEOID = 1082
TIMEOID = 1083
TIMESTAMPOID = 1114
TIMESTAMPTZOID = 1184
INTERVALOID = 1186
TIMETZOID = 1266
NUMERICOID = 1700
UUIDOID = 2950
JSONBOID = 3802
VOIDOID = 2278

BOOLARRAYOID = 1000
BYTEAARRAYOID = 1001
CHARARRAYOID = 1002
NAMEARRAYOID = 1003
INT2ARRAYOID = 1005
INT4ARRAYOID = 1007
TEXTARRAYOID = 1009
BPCHARARRAYOID = 1014
VARCHARARRAYOID = 1015
INT8ARRAYOID = 1016
FLOAT4ARRAYOID = 1021
FLOAT8ARRAYOID = 1022
OIDARRAYOID = 1028
TIMESTAMPARRAYOID = 1115
DATEARRAYOID = 1182
TIMEARRAYOID = 1183
TIMESTAMPTZARRAYOID = 1185
INTERVALARRAYOID = 1187
NUMERICARRAYOID = 1231
TIMETZARRAYOID = 1270
UUIDARRAYOID = 2951
JSONARRAYOID = 199
JSONBARRAYOID = 3807

oid_to_name = {
	BOOLOID : 'bool',
	BYTEAOID : 'bytea',
	CHAROID : 'char',
	NAMEOID : 'name',
	INT8OID : 'int8',
	INT2OID : 'int2',
	INT4OID : 'int4',
	TEXTOID : 'text',
	OIDOID : 'oid',
	JSONOID : 'json',
	FLOAT4OID : 'float4',
	FLOAT8OID : 'float8',
	UNKNOWNOID : 'unknown',
	BPCHAROID : 'bpchar',
	VARCHAROID : 'varchar',
	DATEOID : 'date',
	TIMEOID : 'time',
	TIMESTAMPOID : 'timestamp',
	TIMESTAMPTZOID : 'timestamptz',
	INTERVALOID : 'interval',
	TIMETZOID : 'timetz',
	NUMERICOID : 'numeric',
	UUIDOID : 'uuid',
	JSONBOID : 'jsonb',
	VOIDOID : 'void',
}

# array type -> element type
array_to_element = {
	BOOLARRAYOID : BOOLOID,
	BYTEAARRAYOID : BYTEAOID,
	CHARARRAYOID : CHAROID,
	NAMEARRAYOID : NAMEOID,
	INT2ARRAYOID : INT2OID,
	INT4ARRAYOID : INT4OID,
	TEXTARRAYOID : TEXTOID,
	BPCHARARRAYOID : BPCHAROID,
	VARCHARARRAYOID : VARCHAROID,
	INT8ARRAYOID : INT8OID,
	FLOAT4ARRAYOID : FLOAT4OID,
	FLOAT8ARRAYOID : FLOAT8OID,
	OIDARRAYOID : OIDOID,
	TIMESTAMPARRAYOID : TIMESTAMPOID,
	DATEARRAYOID : DATEOID,
	TIMEARRAYOID : TIMEOID,
	TIMESTAMPTZARRAYOID : TIMESTAMPTZOID,
	INTERVALARRAYOID : INTERVALOID,
	NUMERICARRAYOID : NUMERICOID,
	TIMETZARRAYOID : TIMETZOID,
	UUIDARRAYOID : UUIDOID,
	JSONARRAYOID : JSONOID,
	JSONBARRAYOID : JSONBOID,
}
element_to_array = {v : k for k, v in array_to_element.items()}

for k, v in array_to_element.items():
	oid_to_name[k] = '_' + oid_to_name[v]
del k, v

name_to_oid = {v : k for k, v in oid_to_name.items()}

class TupleFormat(object):
	"""
	The format of the values returned by the server.
	"""
	Text = 0
	Binary = 1

class Typed(tuple):
	"""
	Typed(value, oid)

	A parameter value with an explicitly chosen type. The value is encoded
	with the codec for `oid` instead of the one inferred from its Python type.
	"""
	__slots__ = ()

	def __new__(subtype, value, oid):
		if isinstance(oid, str):
			oid = name_to_oid[oid]
		return tuple.__new__(subtype, (value, int(oid)))

	value = property(fget = get0)
	oid = property(fget = get1)

	def __repr__(self):
		return '%s.%s(%r, %d)' %(
			type(self).__module__,
			type(self).__name__,
			self[0], self[1],
		)

class UnknownValue(tuple):
	"""
	UnknownValue(oid, data)

	A field that the codec has no decoder for, or could not decode. `data` is
	the text of a text format field of an unknown type, otherwise the `bytes`
	as they were received.
	"""
	__slots__ = ()

	def __new__(subtype, oid, data):
		return tuple.__new__(subtype, (oid, data))

	oid = property(fget = get0)
	data = property(fget = get1)

	def __repr__(self):
		return '%s.%s(%d, %r)' %(
			type(self).__module__,
			type(self).__name__,
			self[0], self[1],
		)

# A bound parameter: data is None for SQL NULL, format is 0(text) or 1(binary).
Parameter = namedtuple('Parameter', ('oid', 'format', 'data'))

class Array(object):
	"""
	Type used to mimic PostgreSQL arrays.

	The elements are stored flat with the size and lower bound of each axis.
	Indexing and iteration treat the array like nested Python lists; sub-arrays
	of a multi-dimensional array are `Array` instances.
	"""

	# Detect the dimensions of a nested sequence
	@staticmethod
	def detect_dimensions(hier):
		while isinstance(hier, (list, tuple)):
			l = len(hier)
			yield l
			if l == 0:
				break
			# boundary consistency checks come later.
			hier = hier[0]

	@staticmethod
	def unroll_nest(hier, depth):
		if depth == 1:
			for x in hier:
				yield x
		else:
			for x in hier:
				if not isinstance(x, (list, tuple)):
					raise ValueError("array is not rectangular")
				for y in Array.unroll_nest(x, depth - 1):
					yield y

	@classmethod
	def from_nest(typ, nest, lowerbounds = ()):
		'Create an array from a nested sequence'
		dims = tuple(typ.detect_dimensions(nest))
		if dims == (0,):
			return typ.from_elements((), ())
		return typ.from_elements(
			list(typ.unroll_nest(nest, len(dims))), dims, lowerbounds
		)

	@classmethod
	def from_elements(subtype,
		elements : "iterable of elements in the array",
		dimensions : "size of each axis" = None,
		lowerbounds : "beginning of each axis" = (),
	):
		elements = list(elements)

		if dimensions is None:
			dimensions = (len(elements),) if elements else ()
		dimensions = tuple(dimensions)
		elcount = 1
		for x in dimensions:
			elcount = x * elcount
		if not dimensions:
			elcount = 0
		if len(elements) != elcount:
			raise ValueError("array element count inconsistent with dimensions")

		ndims = len(dimensions)
		if not lowerbounds:
			lowerbounds = (1,) * ndims
		lowerbounds = tuple(lowerbounds)
		if len(lowerbounds) != ndims:
			raise ValueError("number of bounds inconsistent with number of dimensions")

		rob = object.__new__(subtype)
		rob.elements = elements
		rob.dimensions = dimensions
		rob.lowerbounds = lowerbounds
		return rob

	def __new__(subtype, elements, lowerbounds = ()):
		if isinstance(elements, Array):
			return elements
		return subtype.from_nest(list(elements), lowerbounds = lowerbounds)

	@property
	def ndims(self):
		return len(self.dimensions)

	def nest(self, seqtype = list):
		'Transform the array into a nested sequence'
		return seqtype([
			x.nest(seqtype) if isinstance(x, Array) else x
			for x in self
		])

	def __repr__(self):
		lb = ''
		if any(x != 1 for x in self.lowerbounds):
			lb = ', lowerbounds = %r' %(self.lowerbounds,)
		return '%s.%s(%r%s)' %(
			type(self).__module__,
			type(self).__name__,
			self.nest(),
			lb,
		)

	def __len__(self):
		return self.dimensions[0] if self.dimensions else 0

	def __eq__(self, ob):
		if isinstance(ob, Array):
			return self.dimensions == ob.dimensions and \
				self.lowerbounds == ob.lowerbounds and \
				self.elements == ob.elements
		return self.nest() == ob

	def __ne__(self, ob):
		return not self.__eq__(ob)

	__hash__ = None

	def __getitem__(self, item):
		l = len(self)
		if item < 0:
			item += l
		if not (0 <= item < l):
			raise IndexError("array index out of range")
		if len(self.dimensions) == 1:
			return self.elements[item]
		width = len(self.elements) // l
		return type(self).from_elements(
			self.elements[item * width:(item + 1) * width],
			self.dimensions[1:],
			self.lowerbounds[1:],
		)

	def __iter__(self):
		for x in range(len(self)):
			yield self[x]

class Row(tuple):
	"Name addressable items tuple; mapping and sequence"
	@classmethod
	def from_sequence(typ, keymap, seq):
		r = typ(seq)
		r.keymap = keymap
		return r

	def __getitem__(self, i, gi = tuple.__getitem__):
		if isinstance(i, (int, slice)):
			return gi(self, i)
		idx = self.keymap[i]
		return gi(self, idx)

	def get(self, i, gi = tuple.__getitem__):
		if type(i) is int:
			l = len(self)
			if -l <= i < l:
				return gi(self, i)
		else:
			idx = self.keymap.get(i)
			if idx is not None:
				return gi(self, idx)
		return None

	def keys(self):
		return self.keymap.keys()

	def values(self):
		return iter(self)

	def items(self):
		return zip(iter(self.column_names), iter(self))

	def index_from_key(self, key):
		return self.keymap.get(key)

	@property
	def column_names(self):
		l = list(self.keymap.items())
		l.sort(key = get1)
		return tuple(map(get0, l))
