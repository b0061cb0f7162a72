##
# types.io.pg_container - construct I/O for container types
##
"""
Array I/O.

`array_io_factory` builds the codec of an array type from the codec of its
element type. The text form is ``{a,"b c",NULL}`` with an optional
``[lb:ub]=`` prefix when an axis does not start at one; multi-dimensional
arrays nest the braces.
"""
import re
from ...protocol import typstruct as lib
from ...python.itertools import interlace
from .. import Array, array_to_element

array_quote_chars = frozenset('{}",\\ \t\n\r\f\v')
bounds_re = re.compile(r'\[(-?\d+):(-?\d+)\]')

def array_check(x, ArrayType = Array):
	if x.__class__ is ArrayType:
		return x
	if not isinstance(x, (list, tuple, ArrayType)):
		raise TypeError("expected list, tuple or Array, got %s" %(type(x).__name__,))
	return ArrayType(x)

def quote_element(s):
	if s == '' or s.upper() == 'NULL' or not array_quote_chars.isdisjoint(s):
		return '"' + s.replace('\\', '\\\\').replace('"', '\\"') + '"'
	return s

def format_array(elements, dimensions, pack_element):
	"""
	Serialize the flat `elements` of an array with the given `dimensions` into
	the nested brace form.
	"""
	if not dimensions:
		return '{}'
	widths = [1] * len(dimensions)
	for i in range(len(dimensions) - 2, -1, -1):
		widths[i] = widths[i+1] * dimensions[i+1]
	last = len(dimensions) - 1

	def fmt(offset, depth):
		n = dimensions[depth]
		if depth == last:
			items = [
				'NULL' if x is None else quote_element(pack_element(x))
				for x in elements[offset:offset+n]
			]
		else:
			items = [fmt(offset + i * widths[depth], depth + 1) for i in range(n)]
		return '{' + ','.join(items) + '}'
	return fmt(0, 0)

def parse_array(s):
	"""
	Parse the text form of an array into a triple:

		([element strings or None], dimensions, lowerbounds)
	"""
	lowerbounds = ()
	if s.startswith('['):
		decl, eq, s = s.partition('=')
		bounds = bounds_re.findall(decl)
		if not eq or not bounds:
			raise ValueError("invalid array dimension decoration")
		lowerbounds = tuple([int(lb) for lb, ub in bounds])

	elements = []
	dimensions = []
	counts = []
	depth = 0
	pos = 0
	end = len(s)
	while pos < end:
		c = s[pos]
		if c == '{':
			if depth > 0:
				counts[depth-1] += 1
			depth += 1
			if len(counts) < depth:
				counts.append(0)
			counts[depth-1] = 0
			pos += 1
		elif c == '}':
			if depth == 0:
				raise ValueError("unbalanced braces in array")
			k = counts[depth-1]
			if len(dimensions) < depth:
				dimensions.extend([None] * (depth - len(dimensions)))
			if dimensions[depth-1] is None:
				dimensions[depth-1] = k
			elif dimensions[depth-1] != k:
				raise ValueError("multi-dimensional array is not rectangular")
			depth -= 1
			pos += 1
			if depth == 0:
				break
		elif c == ',' or c.isspace():
			pos += 1
		elif depth == 0:
			raise ValueError("array element outside of braces")
		elif c == '"':
			buf = []
			pos += 1
			while True:
				if pos >= end:
					raise ValueError("unterminated quoted array element")
				c = s[pos]
				if c == '\\':
					buf.append(s[pos+1:pos+2])
					pos += 2
				elif c == '"':
					pos += 1
					break
				else:
					buf.append(c)
					pos += 1
			elements.append(''.join(buf))
			counts[depth-1] += 1
		else:
			buf = []
			escaped = False
			while pos < end and s[pos] not in ',}':
				if s[pos] == '\\':
					escaped = True
					buf.append(s[pos+1:pos+2])
					pos += 2
				else:
					buf.append(s[pos])
					pos += 1
			tok = ''.join(buf).strip()
			elements.append(None if not escaped and tok.upper() == 'NULL' else tok)
			counts[depth-1] += 1

	if depth != 0 or not dimensions:
		raise ValueError("unterminated array")
	if s[pos:].strip():
		raise ValueError("trailing data after array: %r" %(s[pos:],))
	if dimensions == [0]:
		return ([], (), ())
	return (elements, tuple(dimensions), lowerbounds)

##
# array_io_factory - build the codec of an array type
##
def array_io_factory(
	oid, typio,
	array_pack = lib.array_pack,
	array_unpack = lib.array_unpack,
	ArrayType = Array,
):
	element_oid = array_to_element[oid]
	element_io = typio.resolve(element_oid)
	text_pack, text_unpack, pack_element, unpack_element = element_io

	def pack_array_text(data):
		a = array_check(data)
		s = format_array(a.elements, a.dimensions, text_pack)
		if any(x != 1 for x in a.lowerbounds):
			s = ''.join([
				'[%d:%d]' %(lb, lb + size - 1)
				for size, lb in zip(a.dimensions, a.lowerbounds)
			]) + '=' + s
		return s

	def unpack_array_text(data):
		elements, dims, lbs = parse_array(data)
		return ArrayType.from_elements(
			[x if x is None else text_unpack(x) for x in elements],
			dims, lbs
		)

	if pack_element is not None:
		def pack_an_array(data):
			a = array_check(data)
			return array_pack((
				1 if None in a.elements else 0,
				element_oid,
				tuple(interlace(a.dimensions, a.lowerbounds)),
				[x if x is None else pack_element(x) for x in a.elements],
			))
	else:
		# signals string formatting
		pack_an_array = None

	if unpack_element is not None:
		def unpack_an_array(data):
			flags, typid, dlb, elements = array_unpack(data)
			return ArrayType.from_elements(
				[x if x is None else unpack_element(x) for x in elements],
				dlb[0::2], dlb[1::2],
			)
	else:
		unpack_an_array = None

	return (pack_array_text, unpack_array_text, pack_an_array, unpack_an_array)

oid_to_io = {
	oid : array_io_factory for oid in array_to_element
}
