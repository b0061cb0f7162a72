##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
I/O for the types represented by Python builtins: bool, int, float, str and
bytes.
"""
import math
from ...python.functools import Composition as compose
from ...protocol import typstruct as lib
from ...encodings import bytea
from ...types import \
	BOOLOID, INT2OID, INT4OID, INT8OID, OIDOID, \
	FLOAT4OID, FLOAT8OID, BYTEAOID, CHAROID, NAMEOID, \
	TEXTOID, VARCHAROID, BPCHAROID, UNKNOWNOID, InvalidOid

def require(*types):
	names = ' or '.join([x.__name__ for x in types])
	def check(x):
		if x.__class__ is bool and bool not in types:
			raise TypeError("expected %s, got bool" %(names,))
		if not isinstance(x, types):
			raise TypeError("expected %s, got %s" %(names, type(x).__name__))
		return x
	return check

def bool_check(x):
	if x.__class__ is not bool:
		raise TypeError("expected bool, got %s" %(type(x).__name__,))
	return x

text_to_bool = {
	't' : True, 'f' : False,
	'true' : True, 'false' : False,
}
def bool_text_unpack(x):
	return text_to_bool[x.lower()]

bool_io = (
	compose((bool_check, {True : 't', False : 'f'}.__getitem__)), bool_text_unpack,
	compose((bool_check, lib.bool_pack)), lib.bool_unpack,
)

def range_check(name, lo, hi):
	check_int = require(int)
	def check(x):
		check_int(x)
		if not (lo <= x <= hi):
			raise ValueError("%d is out of range for %s" %(x, name))
		return x
	return check

def integer_io(name, bits, pack, unpack, signed = True):
	if signed:
		check = range_check(name, -(1 << (bits - 1)), (1 << (bits - 1)) - 1)
	else:
		check = range_check(name, 0, (1 << bits) - 1)
	return (
		compose((check, '%d'.__mod__)), int,
		compose((check, pack)), unpack,
	)

check_real = require(int, float)

def float_text_pack(x):
	x = float(check_real(x))
	if math.isnan(x):
		return 'NaN'
	elif math.isinf(x):
		return 'Infinity' if x > 0 else '-Infinity'
	return repr(x)

float_io = (float_text_pack, float, compose((check_real, float, lib.float_pack)), lib.float_unpack)
double_io = (float_text_pack, float, compose((check_real, float, lib.double_pack)), lib.double_unpack)

check_bytes = require(bytes, bytearray, memoryview)
bytea_io = (
	compose((check_bytes, bytes, bytea.encode)), bytea.decode,
	compose((check_bytes, bytes)), bytes,
)

check_str = require(str)
def string_io_factory(oid, typio):
	"""
	Character types are sent as text in either format; the binary form is the
	string in the client encoding.
	"""
	return (
		check_str, str,
		compose((check_str, typio.encode)), typio.decode,
	)

oid_to_io = {
	BOOLOID : bool_io,
	INT2OID : integer_io('int2', 16, lib.int2_pack, lib.int2_unpack),
	INT4OID : integer_io('int4', 32, lib.int4_pack, lib.int4_unpack),
	INT8OID : integer_io('int8', 64, lib.int8_pack, lib.int8_unpack),
	OIDOID : integer_io('oid', 32, lib.oid_pack, lib.oid_unpack, signed = False),
	FLOAT4OID : float_io,
	FLOAT8OID : double_io,
	BYTEAOID : bytea_io,

	InvalidOid : string_io_factory,
	CHAROID : string_io_factory,
	NAMEOID : string_io_factory,
	TEXTOID : string_io_factory,
	VARCHAROID : string_io_factory,
	BPCHAROID : string_io_factory,
	UNKNOWNOID : string_io_factory,
}
