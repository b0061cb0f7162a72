##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
date, time, timestamp, timestamptz, timetz and interval I/O using the
`datetime` module.

The text routines read and write the ISO ``DateStyle`` and the ``postgres``
``IntervalStyle``. The binary routines come in two flavors: `time64_io` for
servers with ``integer_datetimes`` on, and `time_io` for the floating point
representation used by old builds. Infinite dates and timestamps are mapped to
the `max` and `min` of the corresponding Python type.

Values of the zone-less types are naive; timestamptz values are returned in
UTC and naive datetimes given for timestamptz or timetz are taken as UTC.
"""
import re
import warnings
import datetime
from operator import methodcaller

from ...python.functools import Composition as compose
from ...python.datetime import UTC, FixedOffset
from ...protocol import typstruct as lib
from ... import exceptions as pg_exc
from ...types import \
	DATEOID, TIMEOID, TIMETZOID, TIMESTAMPOID, TIMESTAMPTZOID, INTERVALOID

pg_epoch_datetime = datetime.datetime(2000, 1, 1)
pg_epoch_date = pg_epoch_datetime.date()
pg_date_offset = pg_epoch_date.toordinal()

set_as_utc = methodcaller('replace', tzinfo = UTC)

seconds_in_day = 24 * 60 * 60
seconds_in_hour = 60 * 60

datetime_max_tz = datetime.datetime.max.replace(tzinfo = UTC)
datetime_min_tz = datetime.datetime.min.replace(tzinfo = UTC)

def check_type(typ, exclude = None):
	def check(x):
		if not isinstance(x, typ) or (exclude is not None and isinstance(x, exclude)):
			raise TypeError("expected %s, got %s" %(typ.__name__, type(x).__name__))
		return x
	return check

check_date = check_type(datetime.date, exclude = datetime.datetime)
check_datetime = check_type(datetime.datetime)
check_time = check_type(datetime.time)
check_timedelta = check_type(datetime.timedelta)

def as_utc(x):
	'Convert an aware datetime to naive UTC; naive datetimes are taken as UTC.'
	if x.tzinfo is None:
		return x
	return x.astimezone(UTC).replace(tzinfo = None)

def utcoffset_seconds(x):
	td = x.utcoffset() if x.tzinfo is not None else None
	if td is None:
		return 0
	return td.days * seconds_in_day + td.seconds

##
# Structured forms
##
def timestamp_pack(x):
	"""
	Create a (seconds, microseconds) pair from a `datetime.datetime` instance.
	"""
	d = (x - pg_epoch_datetime)
	return ((d.days * seconds_in_day) + d.seconds, d.microseconds)

def timestamp_unpack(seconds, timedelta = datetime.timedelta):
	"""
	Create a `datetime.datetime` instance from a (seconds, microseconds) pair.
	"""
	return pg_epoch_datetime + timedelta(
		seconds = seconds[0], microseconds = seconds[1]
	)

def time_pack(x):
	"""
	Create a (seconds, microseconds) pair from a `datetime.time` instance.
	"""
	return (
		(x.hour * seconds_in_hour) + (x.minute * 60) + x.second,
		x.microsecond
	)

def time_unpack(seconds_ms, time = datetime.time):
	"""
	Create a `datetime.time` instance from a (seconds, microseconds) pair.
	Seconds being offset from midnight.
	"""
	seconds, ms = seconds_ms
	minutes, sec = divmod(seconds, 60)
	hours, min = divmod(minutes, 60)
	return time(hours, min, sec, ms)

def interval_pack(x):
	"""
	Create a (months, days, (seconds, microseconds)) tuple from a
	`datetime.timedelta` instance.
	"""
	return (
		0, x.days, (x.seconds, x.microseconds)
	)

def interval_unpack(mds, timedelta = datetime.timedelta):
	"""
	Given a (months, days, (seconds, microseconds)) tuple, create a
	`datetime.timedelta` instance. Months are counted as thirty days.
	"""
	months, days, seconds_ms = mds
	if months != 0:
		w = pg_exc.TypeConversionWarning(
			"datetime.timedelta cannot represent relative intervals",
			details = {
				'hint': 'An interval was unpacked with a non-zero "month" field.'
			},
		)
		warnings.warn(w)
	sec, ms = seconds_ms
	return timedelta(
		days = days + (months * 30),
		seconds = sec, microseconds = ms
	)

def timetz_pack(x):
	"""
	Create a ((seconds, microseconds), timezone) tuple from a `datetime.time`
	instance. The zone is in seconds west of UTC.
	"""
	return (time_pack(x), -utcoffset_seconds(x))

def timetz_unpack(tstz):
	"""
	Create a `datetime.time` instance from a ((seconds, microseconds), timezone)
	tuple.
	"""
	t = time_unpack(tstz[0])
	return t.replace(tzinfo = FixedOffset(-tstz[1]))

##
# Text forms
##
def parse_time(s):
	'parse "HH:MM:SS[.ffffff]" into (hour, minute, second, microsecond)'
	hms, dot, frac = s.partition('.')
	h, m, sec = hms.split(':')
	if frac and not frac.isdigit():
		raise ValueError("invalid fractional seconds: %r" %(s,))
	return (int(h), int(m), int(sec), int((frac + '000000')[:6]) if frac else 0)

def parse_offset(s):
	'parse "+HH[:MM[:SS]]" into seconds east of UTC'
	sign = -1 if s[0] == '-' else 1
	parts = [int(x) for x in s[1:].split(':')]
	parts.extend([0] * (3 - len(parts)))
	return sign * (parts[0] * seconds_in_hour + parts[1] * 60 + parts[2])

def split_offset(s):
	for i in range(len(s) - 1, 0, -1):
		if s[i] in '+-':
			return s[:i], s[i:]
	return s, None

def parse_date(s):
	if s.endswith(' BC'):
		raise ValueError("BC dates are not representable: %r" %(s,))
	y, m, d = s.split('-')
	return datetime.date(int(y), int(m), int(d))

def date_text_pack(x):
	x = check_date(x)
	if x == datetime.date.max:
		return 'infinity'
	elif x == datetime.date.min:
		return '-infinity'
	return x.isoformat()

def date_text_unpack(s):
	if s == 'infinity':
		return datetime.date.max
	elif s == '-infinity':
		return datetime.date.min
	return parse_date(s)

def time_text_pack(x):
	return check_time(x).replace(tzinfo = None).isoformat()

def time_text_unpack(s):
	return datetime.time(*parse_time(s))

def timetz_text_pack(x):
	x = check_time(x)
	if x.tzinfo is None:
		x = x.replace(tzinfo = UTC)
	return x.isoformat()

def timetz_text_unpack(s):
	t, off = split_offset(s)
	if off is None:
		raise ValueError("time with time zone lacks an offset: %r" %(s,))
	return datetime.time(*parse_time(t), tzinfo = FixedOffset(parse_offset(off)))

def timestamp_text_pack(x):
	x = check_datetime(x).replace(tzinfo = None)
	if x == datetime.datetime.max:
		return 'infinity'
	elif x == datetime.datetime.min:
		return '-infinity'
	return x.isoformat(' ')

def timestamp_text_unpack(s):
	if s == 'infinity':
		return datetime.datetime.max
	elif s == '-infinity':
		return datetime.datetime.min
	if s.endswith(' BC'):
		raise ValueError("BC timestamps are not representable: %r" %(s,))
	d, sep, t = s.partition(' ')
	return datetime.datetime.combine(parse_date(d), datetime.time(*parse_time(t)))

def timestamptz_text_pack(x):
	x = check_datetime(x)
	wall = x.replace(tzinfo = None)
	if wall == datetime.datetime.max:
		return 'infinity'
	elif wall == datetime.datetime.min:
		return '-infinity'
	if x.tzinfo is None:
		x = x.replace(tzinfo = UTC)
	return x.isoformat(' ')

def timestamptz_text_unpack(s):
	if s == 'infinity':
		return datetime_max_tz
	elif s == '-infinity':
		return datetime_min_tz
	if s.endswith(' BC'):
		raise ValueError("BC timestamps are not representable: %r" %(s,))
	d, sep, t = s.partition(' ')
	t, off = split_offset(t)
	if off is None:
		raise ValueError("timestamp with time zone lacks an offset: %r" %(s,))
	ts = datetime.datetime.combine(parse_date(d), datetime.time(*parse_time(t)))
	return ts.replace(tzinfo = FixedOffset(parse_offset(off))).astimezone(UTC)

def interval_text_pack(x):
	x = check_timedelta(x)
	return '%d days %d.%06d seconds' %(x.days, x.seconds, x.microseconds)

interval_units = {
	'year' : ('months', 12),
	'years' : ('months', 12),
	'mon' : ('months', 1),
	'mons' : ('months', 1),
	'day' : ('days', 1),
	'days' : ('days', 1),
}
interval_time_re = re.compile(r'^([-+])?(\d+):(\d\d):(\d\d)(?:\.(\d{1,6}))?$')

def interval_text_unpack(s):
	"""
	Parse an interval in the ``postgres`` style:

		1 year 2 mons -3 days +04:05:06.789
	"""
	fields = {'months' : 0, 'days' : 0}
	micro = 0
	parts = s.split()
	i = 0
	while i < len(parts):
		m = interval_time_re.match(parts[i])
		if m is not None:
			sign, h, mi, sec, frac = m.groups()
			t = ((int(h) * seconds_in_hour + int(mi) * 60 + int(sec)) * 1000000) + \
				int((frac or '').ljust(6, '0'))
			micro += -t if sign == '-' else t
			i += 1
			continue
		if i + 1 >= len(parts) or parts[i+1] not in interval_units:
			raise ValueError("unrecognized interval: %r" %(s,))
		field, mul = interval_units[parts[i+1]]
		fields[field] += int(parts[i]) * mul
		i += 2
	return interval_unpack((fields['months'], fields['days'], (0, micro)))

##
# Binary forms
##
date_pinf = 0x7FFFFFFF
date_ninf = -0x80000000

def date_pack(x):
	x = check_date(x)
	if x == datetime.date.max:
		return lib.date_pack(date_pinf)
	elif x == datetime.date.min:
		return lib.date_pack(date_ninf)
	return lib.date_pack(x.toordinal() - pg_date_offset)

def date_unpack(data):
	d = lib.date_unpack(data)
	if d == date_pinf:
		return datetime.date.max
	elif d == date_ninf:
		return datetime.date.min
	return datetime.date.fromordinal(d + pg_date_offset)

# (raw pack, raw unpack, to raw, from raw, +infinity, -infinity)
integer_times = (
	lib.int8_pack, lib.int8_unpack, lib.mktime64, lib.mktimetuple64,
	0x7FFFFFFFFFFFFFFF, -0x8000000000000000,
)
float_times = (
	lib.double_pack, lib.double_unpack, lib.mktime, lib.mktimetuple,
	float('inf'), float('-inf'),
)

def timestamp_io_factory(times, aware):
	"""
	Build the binary (pack, unpack) pair for timestamp or timestamptz using the
	given time representation.
	"""
	raw_pack, raw_unpack, to_raw, from_raw, pinf, ninf = times
	if aware:
		maximum, minimum = datetime_max_tz, datetime_min_tz
	else:
		maximum, minimum = datetime.datetime.max, datetime.datetime.min

	def pack(x):
		x = check_datetime(x)
		wall = x.replace(tzinfo = None)
		if wall == datetime.datetime.max:
			return raw_pack(pinf)
		elif wall == datetime.datetime.min:
			return raw_pack(ninf)
		return raw_pack(to_raw(timestamp_pack(as_utc(x) if aware else wall)))

	def unpack(data):
		r = raw_unpack(data)
		if r == pinf:
			return maximum
		elif r == ninf:
			return minimum
		ts = timestamp_unpack(from_raw(r))
		return set_as_utc(ts) if aware else ts

	return (pack, unpack)

def time_io_factory(times):
	"""
	Build the binary routines of the time types for the given representation.
	"""
	raw_pack, raw_unpack, to_raw, from_raw, pinf, ninf = times
	if to_raw is lib.mktime64:
		time_p, time_u = lib.time64_pack, lib.time64_unpack
		timetz_p, timetz_u = lib.timetz64_pack, lib.timetz64_unpack
		interval_p, interval_u = lib.interval64_pack, lib.interval64_unpack
	else:
		time_p, time_u = lib.time_pack, lib.time_unpack
		timetz_p, timetz_u = lib.timetz_pack, lib.timetz_unpack
		interval_p, interval_u = lib.interval_pack, lib.interval_unpack

	return {
		TIMEOID : (
			time_text_pack, time_text_unpack,
			compose((check_time, time_pack, time_p)),
			compose((time_u, time_unpack)),
		),
		TIMETZOID : (
			timetz_text_pack, timetz_text_unpack,
			compose((check_time, timetz_pack, timetz_p)),
			compose((timetz_u, timetz_unpack)),
		),
		TIMESTAMPOID : (timestamp_text_pack, timestamp_text_unpack) + \
			timestamp_io_factory(times, False),
		TIMESTAMPTZOID : (timestamptz_text_pack, timestamptz_text_unpack) + \
			timestamp_io_factory(times, True),
		INTERVALOID : (
			interval_text_pack, interval_text_unpack,
			compose((check_timedelta, interval_pack, interval_p)),
			compose((interval_u, interval_unpack)),
		),
	}

time64_io = time_io_factory(integer_times)
time_io = time_io_factory(float_times)

oid_to_io = {
	DATEOID : (date_text_pack, date_text_unpack, date_pack, date_unpack),
}
oid_to_io.update(time64_io)
