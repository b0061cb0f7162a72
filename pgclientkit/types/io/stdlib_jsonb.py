##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
json and jsonb I/O using the `json` module.

The binary form of json is the text itself; jsonb prefixes it with a format
version byte.
"""
import json
from ...types import JSONOID, JSONBOID

jsonb_version = 1

def json_text_pack(x):
	return json.dumps(x)

def json_text_unpack(x):
	return json.loads(x)

def jsonb_pack(x, typeio):
	jsonb = typeio.encode(json.dumps(x))
	return bytes((jsonb_version,)) + jsonb

def jsonb_unpack(x, typeio):
	if not x or x[0] != jsonb_version:
		raise ValueError('unexpected JSONB format version: {!r}'.format(x[:1]))
	return json.loads(typeio.decode(x[1:]))

def _json_io_factory(oid, typeio):
	_pack = lambda x: typeio.encode(json.dumps(x))
	_unpack = lambda x: json.loads(typeio.decode(x))

	return (json_text_pack, json_text_unpack, _pack, _unpack)

def _jsonb_io_factory(oid, typeio):
	_pack = lambda x: jsonb_pack(x, typeio)
	_unpack = lambda x: jsonb_unpack(x, typeio)

	return (json_text_pack, json_text_unpack, _pack, _unpack)

oid_to_io = {
	JSONOID: _json_io_factory,
	JSONBOID: _jsonb_io_factory,
}
