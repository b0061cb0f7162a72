##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ protocol version codes.

The first word of a StartupMessage, SSLRequest and CancelRequest is a version
code. The special requests use "versions" that no server will ever speak.
"""
from struct import Struct

version_struct = Struct('!HH')

class Version(tuple):
	"""
	Version((major, minor)) -> Version

	The protocol version as a pair of 16-bit integers.
	"""
	def __new__(subtype, major_minor):
		major, minor = major_minor
		return tuple.__new__(subtype, (int(major), int(minor)))

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__,
			type(self).__name__,
			tuple(self)
		)

	@property
	def major(self):
		return self[0]

	@property
	def minor(self):
		return self[1]

	def __int__(self):
		return (self[0] << 16) | self[1]

	def bytes(self):
		return version_struct.pack(self[0], self[1])

	@classmethod
	def parse(typ, data):
		return typ(version_struct.unpack(data))

CancelRequestCode = Version((1234, 5678))
NegotiateSSLCode = Version((1234, 5679))
V3_0 = Version((3, 0))
