##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
import warnings
import datetime
import uuid
from decimal import Decimal

from .. import types as pg_types
from .. import exceptions as pg_exc
from ..types import Typed, UnknownValue, Parameter, Array
from ..protocol import typio as pg_typio
from ..protocol import typstruct
from ..python.datetime import UTC, FixedOffset
from ..types.io import stdlib_datetime, stdlib_decimal, pg_container
from ..encodings import bytea

inference_samples = [
	(True, pg_types.BOOLOID),
	(0, pg_types.INT4OID),
	(-(1 << 31), pg_types.INT4OID),
	((1 << 31), pg_types.INT8OID),
	(-(1 << 63), pg_types.INT8OID),
	((1 << 63), pg_types.NUMERICOID),
	(1.5, pg_types.FLOAT8OID),
	(Decimal('1.5'), pg_types.NUMERICOID),
	('text', pg_types.InvalidOid),
	(b'bytes', pg_types.BYTEAOID),
	(bytearray(b'bytes'), pg_types.BYTEAOID),
	(datetime.datetime(2000, 1, 1), pg_types.TIMESTAMPOID),
	(datetime.datetime(2000, 1, 1, tzinfo = UTC), pg_types.TIMESTAMPTZOID),
	(datetime.date(2000, 1, 1), pg_types.DATEOID),
	(datetime.time(12, 0), pg_types.TIMEOID),
	(datetime.time(12, 0, tzinfo = UTC), pg_types.TIMETZOID),
	(datetime.timedelta(days = 1), pg_types.INTERVALOID),
	(uuid.UUID(int = 1), pg_types.UUIDOID),
	({'a' : 1}, pg_types.JSONBOID),
	([1, 2], pg_types.INT4ARRAYOID),
	([1, None, 3], pg_types.INT4ARRAYOID),
	([1, 1 << 40], pg_types.INT8ARRAYOID),
	([1, 1.5], pg_types.FLOAT8ARRAYOID),
	([1.5, Decimal(1)], pg_types.NUMERICARRAYOID),
	(['a', 'b'], pg_types.TEXTARRAYOID),
	([[1, 2], [3, 4]], pg_types.INT4ARRAYOID),
	((True, False), pg_types.BOOLARRAYOID),
	([None], pg_types.InvalidOid),
	([], pg_types.InvalidOid),
	(Typed('1', 'int8'), pg_types.INT8OID),
	(Typed([1], pg_types.INT2ARRAYOID), pg_types.INT2ARRAYOID),
]

class test_inference(unittest.TestCase):
	def setUp(self):
		self.typio = pg_typio.TypeIO()

	def test_samples(self):
		for value, oid in inference_samples:
			self.assertEqual(self.typio.infer(value), oid, repr(value))

	def test_uninferable(self):
		self.assertRaises(TypeError, self.typio.infer, object())
		self.assertRaises(TypeError, self.typio.infer, ['a', 1])
		self.assertRaises(TypeError, self.typio.infer, [b'a', 1.5])

	def test_widest(self):
		self.assertEqual(pg_typio.widest([]), None)
		self.assertEqual(
			pg_typio.widest([pg_types.INT8OID, pg_types.FLOAT8OID]),
			pg_types.FLOAT8OID,
		)
		self.assertEqual(
			pg_typio.widest([pg_types.INT4OID, pg_types.NUMERICOID, pg_types.FLOAT8OID]),
			pg_types.NUMERICOID,
		)
		self.assertEqual(
			pg_typio.widest([pg_types.TIMESTAMPOID, pg_types.TIMESTAMPTZOID]),
			pg_types.TIMESTAMPTZOID,
		)

	def test_typed(self):
		t = Typed(5, 'int2')
		self.assertEqual(t.value, 5)
		self.assertEqual(t.oid, pg_types.INT2OID)
		self.assertRaises(KeyError, Typed, 5, 'nosuchtype')

class test_encode(unittest.TestCase):
	def setUp(self):
		self.typio = pg_typio.TypeIO()

	def test_null(self):
		self.assertEqual(
			self.typio.encode_parameter(None), Parameter(pg_types.InvalidOid, 0, None)
		)
		self.assertEqual(
			self.typio.encode_parameter(Typed(None, 'int4')),
			Parameter(pg_types.INT4OID, 0, None)
		)

	def test_binary_scalars(self):
		ep = self.typio.encode_parameter
		self.assertEqual(ep(1), Parameter(pg_types.INT4OID, 1, b'\x00\x00\x00\x01'))
		self.assertEqual(ep(True), Parameter(pg_types.BOOLOID, 1, b'\x01'))
		self.assertEqual(ep(b'\x00\xff'), Parameter(pg_types.BYTEAOID, 1, b'\x00\xff'))
		self.assertEqual(
			ep(Typed(5, 'int2')), Parameter(pg_types.INT2OID, 1, b'\x00\x05')
		)
		self.assertEqual(
			ep(uuid.UUID(int = 1)),
			Parameter(pg_types.UUIDOID, 1, b'\x00' * 15 + b'\x01')
		)
		self.assertEqual(
			ep(datetime.date(2000, 1, 2)),
			Parameter(pg_types.DATEOID, 1, b'\x00\x00\x00\x01')
		)
		self.assertEqual(
			ep({'a' : 1}), Parameter(pg_types.JSONBOID, 1, b'\x01{"a": 1}')
		)

	def test_text_parameters(self):
		ep = self.typio.encode_parameter
		self.assertEqual(ep('abc'), Parameter(pg_types.InvalidOid, 0, b'abc'))
		self.assertEqual(ep('café'), Parameter(pg_types.InvalidOid, 0, 'café'.encode('utf-8')))
		self.assertEqual(ep([None, None]), Parameter(pg_types.InvalidOid, 0, b'{NULL,NULL}'))
		self.assertEqual(ep([]), Parameter(pg_types.InvalidOid, 0, b'{}'))

	def test_arrays(self):
		p = self.typio.encode_parameter([1, None, 3])
		self.assertEqual(p.oid, pg_types.INT4ARRAYOID)
		self.assertEqual(p.format, 1)
		self.assertEqual(
			self.typio.resolve(pg_types.INT4ARRAYOID)[3](p.data),
			Array([1, None, 3])
		)
		p = self.typio.encode_parameter(['a b', 'c'])
		self.assertEqual(p.oid, pg_types.TEXTARRAYOID)

	def test_encoding(self):
		self.typio.set_encoding('LATIN1')
		self.assertEqual(self.typio.encoding, 'latin1')
		self.assertEqual(
			self.typio.encode_parameter('café'),
			Parameter(pg_types.InvalidOid, 0, b'caf\xe9')
		)
		self.assertRaises(LookupError, self.typio.set_encoding, 'no_such_encoding')
		self.assertRaises(UnicodeError, self.typio.encode, '€')

	def test_bind_value_errors(self):
		ep = self.typio.encode_parameter
		for value in (
			object(),
			Typed('1', 'int4'),
			Typed(1 << 40, 'int4'),
			Typed(1.5, 'int8'),
			Typed(1, 'bool'),
			Typed(True, 'int4'),
			Typed('x', 'uuid'),
			['a', 1],
		):
			try:
				ep(value, 1)
			except pg_exc.BindValueError as err:
				self.assertEqual(err.index, 1)
				self.assertTrue(str(err).startswith('parameter $2: '), str(err))
				self.assertEqual(err.details['position'], '1')
			else:
				self.fail("no error for %r" %(value,))
		self.assertTrue(
			issubclass(pg_exc.BindValueError, ValueError)
		)

	def test_no_codec(self):
		self.assertRaises(
			pg_exc.BindValueError, self.typio.encode_parameter, Typed(b'x', 999999)
		)

	def test_encode_parameters(self):
		params = self.typio.encode_parameters([1, None, 'x'])
		self.assertEqual([x.oid for x in params], [
			pg_types.INT4OID, pg_types.InvalidOid, pg_types.InvalidOid,
		])
		self.assertEqual(params[1].data, None)

class test_decode(unittest.TestCase):
	def setUp(self):
		self.typio = pg_typio.TypeIO()

	def decode(self, oid, data, format = 0):
		return self.typio.decode_field(oid, format, data)

	def test_text(self):
		self.assertEqual(self.decode(pg_types.INT4OID, b'42'), 42)
		self.assertEqual(self.decode(pg_types.INT8OID, b'-9000000000'), -9000000000)
		self.assertEqual(self.decode(pg_types.BOOLOID, b't'), True)
		self.assertEqual(self.decode(pg_types.BOOLOID, b'f'), False)
		self.assertEqual(self.decode(pg_types.FLOAT8OID, b'1.5'), 1.5)
		self.assertEqual(self.decode(pg_types.NUMERICOID, b'1.50'), Decimal('1.50'))
		self.assertEqual(self.decode(pg_types.TEXTOID, 'café'.encode('utf-8')), 'café')
		self.assertEqual(self.decode(pg_types.BYTEAOID, b'\\x0001ff'), b'\x00\x01\xff')
		self.assertEqual(self.decode(pg_types.DATEOID, b'2001-02-03'), datetime.date(2001, 2, 3))
		self.assertEqual(self.decode(pg_types.DATEOID, b'infinity'), datetime.date.max)
		self.assertEqual(
			self.decode(pg_types.TIMESTAMPOID, b'2001-02-03 04:05:06.5'),
			datetime.datetime(2001, 2, 3, 4, 5, 6, 500000)
		)
		self.assertEqual(
			self.decode(pg_types.TIMESTAMPTZOID, b'2001-02-03 04:05:06+02'),
			datetime.datetime(2001, 2, 3, 2, 5, 6, tzinfo = UTC)
		)
		self.assertEqual(
			self.decode(pg_types.TIMETZOID, b'04:05:06-05:30'),
			datetime.time(4, 5, 6, tzinfo = FixedOffset(-19800))
		)
		self.assertEqual(
			self.decode(pg_types.INTERVALOID, b'1 day -01:00:00'),
			datetime.timedelta(days = 1, hours = -1)
		)
		self.assertEqual(
			self.decode(pg_types.UUIDOID, b'00000000-0000-0000-0000-000000000001'),
			uuid.UUID(int = 1)
		)
		self.assertEqual(self.decode(pg_types.JSONBOID, b'{"a": [1, null]}'), {'a' : [1, None]})
		self.assertEqual(self.decode(pg_types.INT4OID, None), None)

	def test_binary(self):
		self.assertEqual(self.decode(pg_types.INT4OID, b'\x00\x00\x00\x2a', 1), 42)
		self.assertEqual(self.decode(pg_types.BOOLOID, b'\x01', 1), True)
		self.assertEqual(self.decode(pg_types.TEXTOID, b'abc', 1), 'abc')
		self.assertEqual(self.decode(pg_types.BYTEAOID, b'\x00\x01', 1), b'\x00\x01')
		self.assertEqual(self.decode(pg_types.JSONBOID, b'\x01[1]', 1), [1])
		self.assertEqual(
			self.decode(pg_types.TIMESTAMPOID, b'\x00\x00\x00\x00\x00\x0f\x42\x40', 1),
			datetime.datetime(2000, 1, 1, 0, 0, 1)
		)

	def test_unknown_type(self):
		self.assertEqual(self.decode(999999, b'abc'), UnknownValue(999999, 'abc'))
		self.assertEqual(self.decode(999999, b'\x00', 1), UnknownValue(999999, b'\x00'))
		self.assertEqual(self.decode(pg_types.VOIDOID, b''), UnknownValue(pg_types.VOIDOID, ''))

	def test_decode_failure(self):
		with warnings.catch_warnings(record = True) as w:
			warnings.simplefilter('always')
			v = self.decode(pg_types.INT4OID, b'not a number')
		self.assertEqual(v, UnknownValue(pg_types.INT4OID, b'not a number'))
		self.assertEqual(len(w), 1)
		self.assertTrue(issubclass(w[0].category, pg_exc.TypeConversionWarning))

	def test_resolve_descriptor(self):
		desc = (
			(b'i', 0, 0, pg_types.INT4OID, 4, -1, 0),
			(b't', 0, 0, pg_types.TEXTOID, -1, -1, 0),
			(b'b', 0, 0, pg_types.INT4OID, 4, -1, 1),
		)
		unpackers = self.typio.resolve_descriptor(desc)
		row = self.typio.decode_row(
			unpackers, [x[3] for x in desc], (b'1', None, b'\x00\x00\x00\x02')
		)
		self.assertEqual(row, [1, None, 2])
		self.assertRaises(
			TypeError, self.typio.decode_row, unpackers, [x[3] for x in desc], (b'1',)
		)

	def test_float_datetimes(self):
		self.typio.select_time_io('off')
		self.assertEqual(self.typio.integer_datetimes, False)
		self.assertEqual(
			self.decode(pg_types.TIMESTAMPOID, b'?\xf0\x00\x00\x00\x00\x00\x00', 1),
			datetime.datetime(2000, 1, 1, 0, 0, 1)
		)
		self.typio.select_time_io('on')
		self.assertEqual(self.typio.integer_datetimes, True)

	def test_interval_months(self):
		with warnings.catch_warnings(record = True) as w:
			warnings.simplefilter('always')
			v = self.decode(pg_types.INTERVALOID, b'1 mon 2 days')
		self.assertEqual(v, datetime.timedelta(days = 32))
		self.assertTrue(issubclass(w[0].category, pg_exc.TypeConversionWarning))

	def test_text_arrays(self):
		self.assertEqual(
			self.decode(pg_types.INT4ARRAYOID, b'{1,2,NULL}'), [1, 2, None]
		)
		self.assertEqual(
			self.decode(pg_types.INT4ARRAYOID, b'{{1,2},{3,4}}').nest(), [[1, 2], [3, 4]]
		)
		a = self.decode(pg_types.INT4ARRAYOID, b'[0:1]={1,2}')
		self.assertEqual(a.lowerbounds, (0,))
		self.assertEqual(
			self.decode(pg_types.TEXTARRAYOID, b'{"a b","NULL",NULL,"q\\"uote"}'),
			['a b', 'NULL', None, 'q"uote']
		)
		self.assertEqual(self.decode(pg_types.TEXTARRAYOID, b'{}'), [])

class test_containers(unittest.TestCase):
	def test_format_array(self):
		self.assertEqual(pg_container.format_array([], (), str), '{}')
		self.assertEqual(
			pg_container.format_array([1, None, 3], (3,), str), '{1,NULL,3}'
		)
		self.assertEqual(
			pg_container.format_array(['a b', '', 'null', 'x'], (2, 2), str),
			'{{"a b",""},{"null",x}}'
		)

	def test_parse_array(self):
		self.assertEqual(
			pg_container.parse_array('{{1,2},{3,4}}'),
			(['1', '2', '3', '4'], (2, 2), ())
		)
		self.assertEqual(pg_container.parse_array('{}'), ([], (), ()))
		for bad in ('{1,2', '{{1},{2,3}}', '1,2', '{1}x', '[1:2{1,2}'):
			self.assertRaises(ValueError, pg_container.parse_array, bad)

	def test_array_type(self):
		a = Array([[1, 2], [3, 4]])
		self.assertEqual(a.dimensions, (2, 2))
		self.assertEqual(a.elements, [1, 2, 3, 4])
		self.assertEqual(a[1], [3, 4])
		self.assertEqual(len(a), 2)
		self.assertRaises(ValueError, Array, [[1, 2], [3]])
		self.assertRaises(IndexError, a.__getitem__, 2)

class test_codecs(unittest.TestCase):
	def test_numeric(self):
		for s in (
			'0', '1', '-1', '10000', '0.0001', '12345.6789',
			'-0.5', '1.50', '100000000', '1E+5', 'NaN', 'Infinity', '-Infinity',
		):
			d = Decimal(s)
			r = stdlib_decimal.numeric_unpack(stdlib_decimal.numeric_pack(d))
			if d.is_nan():
				self.assertTrue(r.is_nan())
			else:
				self.assertEqual(r, d, s)
		self.assertEqual(
			str(stdlib_decimal.numeric_unpack(stdlib_decimal.numeric_pack(Decimal('1.50')))),
			'1.50'
		)

	def test_numeric_special_parameters(self):
		tio = pg_typio.TypeIO()
		for s, sign in (('NaN', 0xC000), ('Infinity', 0xD000), ('-Infinity', 0xF000)):
			p = tio.encode_parameter(Decimal(s), 0)
			self.assertEqual(p.oid, pg_types.NUMERICOID)
			self.assertEqual(p.format, 1)
			self.assertEqual(typstruct.numeric_unpack(p.data)[0][2], sign)
			r = tio.decode_field(pg_types.NUMERICOID, 1, p.data)
			if s == 'NaN':
				self.assertTrue(r.is_nan())
			else:
				self.assertEqual(r, Decimal(s))
		self.assertEqual(
			typstruct.numeric_pack(((0, 0, 0xC000, 0), ())),
			b'\x00\x00\x00\x00\xc0\x00\x00\x00'
		)

	def test_bytea(self):
		self.assertEqual(bytea.encode(b'\x00\xff'), '\\x00ff')
		self.assertEqual(bytea.decode('\\x00ff'), b'\x00\xff')
		self.assertEqual(bytea.decode('a\\\\b\\001'), b'a\\b\x01')
		self.assertEqual(bytea.encode_escape(b'a\\b\x01'), 'a\\\\b\\001')
		self.assertRaises(ValueError, bytea.decode, 'a\\9')

	def test_datetime_text(self):
		self.assertEqual(
			stdlib_datetime.timestamptz_text_pack(datetime.datetime(2000, 1, 1)),
			'2000-01-01 00:00:00+00:00'
		)
		self.assertEqual(
			stdlib_datetime.interval_text_pack(datetime.timedelta(days = 1, microseconds = 5)),
			'1 days 0.000005 seconds'
		)
		self.assertRaises(ValueError, stdlib_datetime.date_text_unpack, '0044-03-15 BC')

if __name__ == '__main__':
	from types import ModuleType
	this = ModuleType("this")
	this.__dict__.update(globals())
	unittest.main(this)
