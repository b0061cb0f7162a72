##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
uuid I/O using `uuid.UUID`.
"""
import uuid
from ...types import UUIDOID

def uuid_check(x):
	if not isinstance(x, uuid.UUID):
		raise TypeError("expected uuid.UUID, got %s" %(type(x).__name__,))
	return x

def uuid_text_pack(x):
	return str(uuid_check(x))

def uuid_pack(x):
	return uuid_check(x).bytes

def uuid_unpack(x):
	if len(x) != 16:
		raise ValueError("uuid data must be 16 bytes, got %d" %(len(x),))
	return uuid.UUID(bytes = x)

oid_to_io = {
	UUIDOID : (uuid_text_pack, uuid.UUID, uuid_pack, uuid_unpack),
}
