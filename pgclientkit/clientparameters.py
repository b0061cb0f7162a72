##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Collect client connection parameters from various sources.

Parameters are resolved in this order, later sources overriding earlier ones:

 1. Built-in defaults: localhost, 5432, the user running the process.
 2. ``PG*`` environment variables.
 3. The connection URL.
 4. The edits made by the delegate's ``will_open``.

A password that is still missing is then looked up in the pgpass file.

The result is a flat dictionary. `split` separates the parameters used by
the client from the settings sent to the server in the startup message.
"""
import os
import sys
from itertools import chain

from . import pgpassfile as pg_pass

try:
	from getpass import getuser
except ImportError:
	def getuser():
		return 'postgres'

default_host = 'localhost'
default_port = 5432

# posix
pg_home_passfile = '.pgpass'

# win32
pg_appdata_directory = 'postgresql'
pg_appdata_passfile = 'pgpass.conf'

# Settings sent in the startup message unless overridden.
default_settings = (
	('client_encoding', 'UTF8'),
	('DateStyle', 'ISO'),
	('IntervalStyle', 'postgres'),
)

# Environment variables that require no transformation.
default_envvar_map = {
	'USER' : 'user',
	'DATABASE' : 'database',
	'HOST' : 'host',
	'PORT' : 'port',
	'PASSWORD' : 'password',
	'SSLMODE' : 'sslmode',
	'SSLROOTCERT' : 'sslrootcert',
	'SSLCERT' : 'sslcert',
	'SSLKEY' : 'sslkey',
	'CONNECT_TIMEOUT' : 'connect_timeout',
	'APPNAME' : 'application_name',
	'CLIENTENCODING' : 'client_encoding',
	'PASSFILE' : 'passfile',
}

# Parameters consumed by the client; everything else is a server setting.
client_keys = frozenset((
	'host', 'port', 'user', 'password', 'database',
	'sslmode', 'sslrootcert', 'sslcert', 'sslkey',
	'connect_timeout', 'passfile',
))

def default_passfile(environ = os.environ):
	if sys.platform == 'win32':
		appdata = environ.get('APPDATA')
		if appdata:
			return os.path.join(appdata, pg_appdata_directory, pg_appdata_passfile)
	return os.path.join(os.path.expanduser('~'), pg_home_passfile)

def defaults(environ = os.environ):
	"""
	Produce the defaults based on the existing configuration.
	"""
	yield ('user', getuser() or 'postgres')
	yield ('host', default_host)
	yield ('port', default_port)
	yield ('passfile', default_passfile(environ = environ))
	for x in default_settings:
		yield x

def envvars(environ = os.environ, modifier : "environment variable key modifier" = 'PG'.__add__):
	"""
	Create parameters from the given environment variables.

		PGUSER -> user
		PGDATABASE -> database
		PGHOST -> host
		PGHOSTADDR -> host (overrides PGHOST)
		PGPORT -> port

		PGPASSWORD -> password
		PGPASSFILE -> passfile

		PGSSLMODE -> sslmode
		PGREQUIRESSL gets rewritten into "sslmode = 'require'".
		PGSSLROOTCERT, PGSSLCERT, PGSSLKEY -> sslrootcert, sslcert, sslkey

		PGCONNECT_TIMEOUT -> connect_timeout
		PGAPPNAME -> application_name
		PGCLIENTENCODING -> client_encoding
	"""
	hostaddr = modifier('HOSTADDR')
	reqssl = modifier('REQUIRESSL')
	if reqssl in environ:
		if environ[reqssl].strip() == '1':
			yield ('sslmode', 'require')

	for k, v in default_envvar_map.items():
		k = modifier(k)
		if k in environ:
			yield (v, environ[k])
	if hostaddr in environ:
		yield ('host', environ[hostaddr])

def normalize_parameter(kv):
	"""
	Translate a parameter into standard form.
	"""
	(k, v) = kv
	if k == 'requiressl':
		if v in ('1', 1, True):
			k = 'sslmode'
			v = 'require'
	elif k == 'dbname':
		k = 'database'
	elif k == 'sslmode':
		v = v.lower()
	elif k == 'port' and v is not None:
		v = int(v)
	return (k, v)

def normalize(iter):
	"""
	Make a dictionary of the parameters; the last occurrence of a key wins.
	"""
	rd = {}
	for (k, v) in map(normalize_parameter, iter):
		rd[k] = v
	return rd

def resolve_password(d, lookup = pg_pass.lookup_pgpass):
	"""
	Given a parameters dictionary, resolve the 'password' key.

	If the 'password' key is `None`, attempt to resolve the password using the
	'passfile' key. The 'passfile' key is removed as the password has been
	resolved for the given parameters.
	"""
	passfile = d.pop('passfile', None)
	if d.get('password') is None and passfile is not None:
		pw = lookup(d, passfile)
		if pw is not None:
			d['password'] = pw

def collect(url = None, environ = os.environ, no_defaults = False, no_environ = False):
	"""
	Collect the parameters for a connection to `url`, a
	`pgclientkit.url.ConnectionURL`. The returned dictionary is the one handed
	to the delegate's ``will_open``.
	"""
	parameters = []
	if not no_defaults:
		parameters.append(defaults(environ = environ))
	if not no_environ:
		parameters.append(envvars(environ = environ))
	if url is not None:
		parameters.append(url.parameters().items())
	d = normalize(chain(*parameters))
	if d.get('database') is None and d.get('user') is not None:
		d['database'] = d['user']
	return d

def split(d):
	"""
	Separate the client's parameters from the server settings:

		(client parameters, startup settings)
	"""
	client = {}
	settings = {}
	for k, v in d.items():
		if k in client_keys:
			client[k] = v
		elif v is not None:
			settings[k] = str(v)
	return (client, settings)

if __name__ == '__main__':
	import pprint
	pprint.pprint(collect())
