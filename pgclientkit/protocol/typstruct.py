##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL data type protocol--packing and unpacking functions.

This module provides the struct level routines that serialize the binary
representation of the standard PostgreSQL types. The functions return or take
a structured form of the data; conversion to and from the higher level Python
objects is done by `pgclientkit.types.io`.

Most of the functions that deal with time use a pair for representing the
relative offset: (seconds, microseconds). This provides an abstraction over
the quad-word and the floating point time representations.
"""
import math
import struct
from operator import itemgetter
from ..python.functools import Composition as compose

null_sequence = b'\xff\xff\xff\xff'

# Always to and from network order.
def mk_pack(x):
	'Create a pair, (pack, unpack) for the given `struct` format.'
	s = struct.Struct('!' + x)
	if len(x) > 1:
		def pack_apply(data):
			return s.pack(*data)
		return (pack_apply, s.unpack)
	else:
		return (s.pack, compose((s.unpack, itemgetter(0))))

def mktimetuple(ts):
	'make a pair of (seconds, microseconds) out of the given double'
	seconds = math.floor(ts)
	return (int(seconds), int(round(1000000 * (ts - seconds))))

def mktimetuple64(ts):
	'make a pair of (seconds, microseconds) out of the given long'
	seconds = ts // 1000000
	return (seconds, ts - (seconds * 1000000))

def mktime(seconds_ms):
	'make a double out of the pair of (seconds, microseconds)'
	return float(seconds_ms[0]) + (seconds_ms[1] / 1000000.0)

def mktime64(seconds_ms):
	'make an integer out of the pair of (seconds, microseconds)'
	return seconds_ms[0] * 1000000 + seconds_ms[1]

data_to_bool = {b'\x01' : True, b'\x00' : False}
bool_to_data = {True : b'\x01', False : b'\x00'}

bool_pack = bool_to_data.__getitem__
bool_unpack = data_to_bool.__getitem__

longlong_pack, longlong_unpack = mk_pack("q")
long_pack, long_unpack = mk_pack("l")
ulong_pack, ulong_unpack = mk_pack("L")
short_pack, short_unpack = mk_pack("h")
ushort_pack, ushort_unpack = mk_pack("H")
double_pack, double_unpack = mk_pack("d")
float_pack, float_unpack = mk_pack("f")
llL_pack, llL_unpack = mk_pack("llL")
qll_pack, qll_unpack = mk_pack("qll")
dll_pack, dll_unpack = mk_pack("dll")
dl_pack, dl_unpack = mk_pack("dl")
ql_pack, ql_unpack = mk_pack("ql")
# numeric header: ndigits, weight, sign (0xC000 and up are special), dscale
hhHh_pack, hhHh_unpack = mk_pack("hhHh")

int2_pack, int2_unpack = short_pack, short_unpack
int4_pack, int4_unpack = long_pack, long_unpack
int8_pack, int8_unpack = longlong_pack, longlong_unpack

oid_pack = ulong_pack
oid_unpack = ulong_unpack

def numeric_pack(data):
	"""
	Given a pair, ((ndigits, weight, sign, dscale), digits), serialize the
	numeric. Each digit is a base 10000 integer.
	"""
	(header, numbers) = data
	return hhHh_pack(header) + struct.pack("!%dH"%(len(numbers),), *numbers)

def numeric_unpack(data):
	"""
	Unpack a numeric into the pair ((ndigits, weight, sign, dscale), digits).
	"""
	ndigits, weight, sign, dscale = hhHh_unpack(data[:8])
	if len(data) - 8 != ndigits * 2:
		raise ValueError("numeric digit count inconsistent with data size")
	return (
		(ndigits, weight, sign, dscale),
		struct.unpack("!8x%dH"%(ndigits,), data)
	)

# time types
date_pack, date_unpack = long_pack, long_unpack

# takes a pair, (seconds, microseconds)
time_pack = compose((mktime, double_pack))
time_unpack = compose((double_unpack, mktimetuple))

time64_pack = compose((mktime64, longlong_pack))
time64_unpack = compose((longlong_unpack, mktimetuple64))

def interval_pack(m_d_timetup):
	"""
	Given a triple, (month, day, (seconds, microseconds)), serialize it for
	transport.
	"""
	(month, day, timetup) = m_d_timetup
	return dll_pack((mktime(timetup), day, month))

def interval_unpack(data):
	"""
	Given a serialized interval, '{time}{day}{month}', yield the triple:

		(month, day, (seconds, microseconds))
	"""
	tim, day, month = dll_unpack(data)
	return (month, day, mktimetuple(tim))

def interval64_pack(m_d_timetup):
	"""
	Given a triple, (month, day, (seconds, microseconds)), return the serialized
	data using a quad-word for the (seconds, microseconds) tuple.
	"""
	(month, day, timetup) = m_d_timetup
	return qll_pack((mktime64(timetup), day, month))

def interval64_unpack(data):
	"""
	Unpack an interval containing a quad-word into a triple:

		(month, day, (seconds, microseconds))
	"""
	tim, day, month = qll_unpack(data)
	return (month, day, mktimetuple64(tim))

def timetz_pack(timetup_tz):
	"""
	Pack a time; offset from beginning of the day and timezone offset.

	Given a pair, ((seconds, microseconds), timezone_offset), pack it into its
	serialized form: "!dl". The zone is in seconds *west* of UTC.
	"""
	(timetup, tz_offset) = timetup_tz
	return dl_pack((mktime(timetup), tz_offset))

def timetz_unpack(data):
	"""
	Given serialized time data, unpack it into a pair:

	    ((seconds, microseconds), timezone_offset).
	"""
	ts, tz = dl_unpack(data)
	return (mktimetuple(ts), tz)

def timetz64_pack(timetup_tz):
	"""
	Like `timetz_pack`, but using a long long for the time: "!ql".
	"""
	(timetup, tz_offset) = timetup_tz
	return ql_pack((mktime64(timetup), tz_offset))

def timetz64_unpack(data):
	"""
	Given "long long" serialized time data, "ql", unpack it into a pair:

	    ((seconds, microseconds), timezone_offset)
	"""
	ts, tz = ql_unpack(data)
	return (mktimetuple64(ts), tz)

def elements_pack(elements):
	"""
	Pack the elements for containment within a serialized array.

	This is used by array_pack.
	"""
	for x in elements:
		if x is None:
			yield null_sequence
		else:
			yield long_pack(len(x))
			yield x

def array_pack(array_data):
	"""
	Pack a raw array. A raw array consists of flags, type oid, sequence of
	dimension sizes and lower bounds, and an iterable of already serialized
	element data:

		(flags, element type oid, (size, lower bound, ...), iterable of element_data)

	The length of the dimensions sequence is two times the number of dimensions
	that the array has. `flags` is 1 when the array contains NULLs.
	"""
	(flags, typid, dlb, elements) = array_data
	header = llL_pack((len(dlb) // 2, flags, typid))
	return header + \
		struct.pack("!%dl" %(len(dlb),), *dlb) + \
		b''.join(elements_pack(elements))

def elements_unpack(data, offset):
	"""
	Unpack the serialized elements of an array.

	This is used by array_unpack.
	"""
	data_len = len(data)
	while offset < data_len:
		lend = data[offset:offset+4]
		offset += 4
		if lend == null_sequence:
			yield None
		else:
			sizeof_el = long_unpack(lend)
			if offset + sizeof_el > data_len:
				raise ValueError("array element exceeds the serialized data")
			yield data[offset:offset+sizeof_el]
			offset += sizeof_el

def array_unpack(data):
	"""
	Given a serialized array, unpack it into a tuple:

		(flags, typid, (size, lower bound, ...), [elements])
	"""
	ndim, flags, typid = llL_unpack(data[0:12])
	if ndim < 0:
		raise ValueError("invalid number of dimensions: %d" %(ndim,))
	# "ndim" number of pairs of longs
	end = 4 * 2 * ndim + 12
	dlb = struct.unpack("!%dl"%(2 * ndim,), data[12:end])
	return (flags, typid, dlb, list(elements_unpack(data, end)))
