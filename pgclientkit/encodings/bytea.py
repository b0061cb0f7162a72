##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL bytea text forms.

Servers send bytea in the hex form, ``\\x0a0b``, unless `bytea_output` is set
to ``escape``; the escape form uses backslash-octal sequences for
non-printable bytes. Both are accepted by `decode`.
"""
import binascii

def encode_hex(data):
	return '\\x' + binascii.hexlify(data).decode('ascii')

def bchr(o):
	if o == 92:
		return '\\\\'
	elif not (32 <= o < 127):
		return '\\%03o' %(o,)
	return chr(o)

def encode_escape(data):
	return ''.join([bchr(x) for x in data])

def decode_escape(data):
	output = bytearray()
	diter = iter(data)
	for x in diter:
		if x == '\\':
			y = next(diter, None)
			if y is None:
				raise ValueError("incomplete backslash sequence")
			if y == '\\':
				output.append(92)
				continue
			os = y + ''.join([next(diter, '') for i in range(2)])
			if len(os) != 3 or not all(c in '01234567' for c in os):
				raise ValueError("invalid bytea octal sequence %r" %(os,))
			output.append(int(os, 8))
		else:
			o = ord(x)
			if o > 255:
				raise ValueError("character outside of the byte range: %r" %(x,))
			output.append(o)
	return bytes(output)

def decode(data):
	'Decode either text form of a bytea.'
	if data.startswith('\\x'):
		return binascii.unhexlify(data[2:])
	return decode_escape(data)

encode = encode_hex
