##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL type I/O.

`oid_to_io` maps a type Oid to its codec:

	(text_pack, text_unpack, binary_pack, binary_unpack)

The text routines translate between objects and `str`; the client encoding is
applied by `pgclientkit.protocol.typio.TypeIO`. The binary routines translate
between objects and `bytes`. Codecs that depend on the connection, the
character types for instance, are registered as factories called with
``(oid, typio)`` that return the four-tuple.
"""
from types import MappingProxyType

from . import builtin
from . import stdlib_decimal
from . import stdlib_datetime
from . import stdlib_uuid
from . import stdlib_jsonb
from . import pg_container

io_modules = (
	builtin,
	stdlib_decimal,
	stdlib_datetime,
	stdlib_uuid,
	stdlib_jsonb,
	pg_container,
)

def _build_registry(modules):
	d = {}
	for mod in modules:
		d.update(mod.oid_to_io)
	return MappingProxyType(d)

oid_to_io = _build_registry(io_modules)
del _build_registry
