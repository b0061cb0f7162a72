##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Message stream buffer.

`pq_message_stream` accumulates the bytes read from the server and slices them
into `(message_type, body)` pairs as complete messages become available.
"""
__all__ = ['pq_message_stream']

from io import BytesIO
import struct
from .message_types import message_types

xl_unpack = struct.Struct('!xL').unpack_from

class pq_message_stream(object):
	'provide a message stream from a data stream'
	_block = 512
	_limit = _block * 4

	def __init__(self):
		self._strio = BytesIO()
		self._start = 0

	def truncate(self):
		"remove all data in the buffer"
		self._strio.truncate(0)
		self._start = 0

	def _rtruncate(self, amt = None):
		"[internal] remove the given amount of data from the front"
		if amt is None:
			amt = self._strio.tell()
		self._strio.seek(0, 2)
		size = self._strio.tell()
		if size == amt:
			self._strio.seek(0)
			self._strio.truncate(0)
			return

		self._strio.seek(amt)
		remainder = self._strio.read()
		self._strio.seek(0)
		self._strio.truncate(0)
		self._strio.write(remainder)

	def has_message(self):
		"if the buffer has a message available"
		self._strio.seek(self._start)
		header = self._strio.read(5)
		if len(header) < 5:
			return False
		length, = xl_unpack(header)
		if length < 4:
			raise ValueError("invalid message size '%d'" %(length,))
		self._strio.seek(0, 2)
		return (self._strio.tell() - self._start) >= length + 1

	def __len__(self):
		"number of complete messages in buffer"
		count = 0
		self._strio.seek(self._start)
		while True:
			header = self._strio.read(5)
			if len(header) < 5:
				break
			length, = xl_unpack(header)
			if length < 4:
				raise ValueError("invalid message size '%d'" %(length,))
			body = self._strio.read(length - 4)
			if len(body) != length - 4:
				break
			count += 1
		return count

	def _get_message(self, mtypes = message_types):
		header = self._strio.read(5)
		if len(header) < 5:
			return None
		length, = xl_unpack(header)
		typ = mtypes[header[0]]

		if length < 4:
			raise ValueError("invalid message size '%d'" %(length,))
		length -= 4
		body = self._strio.read(length)
		if len(body) < length:
			# Not enough data for message.
			return None
		return (typ, body)

	def _reclaim(self):
		if self._start > self._limit:
			self._rtruncate(self._start)
			self._start = 0

	def next_message(self):
		self._reclaim()
		self._strio.seek(self._start)
		msg = self._get_message()
		if msg is not None:
			self._start = self._strio.tell()
		return msg

	def __iter__(self):
		return self

	def __next__(self):
		msg = self.next_message()
		if msg is None:
			raise StopIteration
		return msg

	def read(self, num = 0xFFFFFFFF):
		"read up to `num` complete messages"
		self._reclaim()
		self._strio.seek(self._start)
		l = []
		new_start = self._start
		while len(l) < num:
			msg = self._get_message()
			if msg is None:
				break
			l.append(msg)
			new_start += (5 + len(msg[1]))
		self._start = new_start
		return l

	def getvalue(self):
		"the unread portion of the buffer"
		self._strio.seek(self._start)
		return self._strio.read()

	def write(self, data):
		self._strio.seek(0, 2)
		self._strio.write(data)
