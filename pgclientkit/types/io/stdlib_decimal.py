##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
numeric I/O using `decimal.Decimal`.

The binary form is a header, (ndigits, weight, sign, dscale), followed by
base 10000 digits. `weight` is the power of 10000 of the first digit and
`dscale` is the number of decimal digits after the point.
"""
from decimal import Decimal
from ...protocol import typstruct as lib
from ...types import NUMERICOID

numeric_positive = 0x0000
numeric_negative = 0x4000
numeric_nan = 0xC000
numeric_pinf = 0xD000
numeric_ninf = 0xF000

def numeric_check(x):
	if isinstance(x, Decimal):
		return x
	if x.__class__ is not bool and isinstance(x, int):
		return Decimal(x)
	if isinstance(x, float):
		return Decimal(repr(x))
	raise TypeError("expected Decimal, int or float, got %s" %(type(x).__name__,))

def numeric_text_pack(x):
	x = numeric_check(x)
	if x.is_nan():
		return 'NaN'
	elif x.is_infinite():
		return '-Infinity' if x.is_signed() else 'Infinity'
	return str(x)

def numeric_text_unpack(x):
	return Decimal(x)

def numeric_pack(x):
	x = numeric_check(x)
	if x.is_nan():
		return lib.numeric_pack(((0, 0, numeric_nan, 0), ()))
	elif x.is_infinite():
		sign = numeric_ninf if x.is_signed() else numeric_pinf
		return lib.numeric_pack(((0, 0, sign, 0), ()))

	sign, digits, exp = x.as_tuple()
	dscale = max(-exp, 0)
	if exp > 0:
		digits = digits + (0,) * exp
		exp = 0
	# pad the fraction and the integer part to whole base 10000 digits
	frac = -exp
	pad = (-frac) % 4
	digits = digits + (0,) * pad
	nint = len(digits) - (frac + pad)
	lead = (-nint) % 4
	digits = (0,) * lead + digits
	nint += lead

	groups = [
		digits[i] * 1000 + digits[i+1] * 100 + digits[i+2] * 10 + digits[i+3]
		for i in range(0, len(digits), 4)
	]
	weight = (nint // 4) - 1
	start = 0
	while start < len(groups) and groups[start] == 0:
		start += 1
		weight -= 1
	end = len(groups)
	while end > start and groups[end - 1] == 0:
		end -= 1
	groups = groups[start:end]
	if not groups:
		weight = 0
		sign = 0
	return lib.numeric_pack((
		(len(groups), weight, numeric_negative if sign else numeric_positive, dscale),
		groups
	))

def numeric_unpack(data):
	(ndigits, weight, sign, dscale), groups = lib.numeric_unpack(data)
	if sign == numeric_nan:
		return Decimal('NaN')
	elif sign == numeric_pinf:
		return Decimal('Infinity')
	elif sign == numeric_ninf:
		return Decimal('-Infinity')
	elif sign not in (numeric_positive, numeric_negative):
		raise ValueError("invalid numeric sign: 0x%x" %(sign,))

	digits = []
	for g in groups:
		if g > 9999:
			raise ValueError("invalid numeric digit: %d" %(g,))
		digits.extend((g // 1000, (g // 100) % 10, (g // 10) % 10, g % 10))
	exp = 4 * (weight + 1 - ndigits)
	if exp > -dscale:
		digits.extend([0] * (exp + dscale))
	elif exp < -dscale:
		# the digits past the display scale are padding
		del digits[max(len(digits) - (-dscale - exp), 0):]
	return Decimal((
		1 if sign == numeric_negative else 0,
		tuple(digits) or (0,),
		-dscale
	))

oid_to_io = {
	NUMERICOID : (numeric_text_pack, numeric_text_unpack, numeric_pack, numeric_unpack),
}
