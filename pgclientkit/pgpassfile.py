##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
'Parse pgpass files and subsequently lookup a password.'
import os
import sys
import stat
import warnings

def split(line):
	'split a pgpass line on unescaped colons, unescaping the fields'
	fields = []
	current = []
	chars = iter(line)
	for c in chars:
		if c == '\\':
			current.append(next(chars, ''))
		elif c == ':':
			fields.append(''.join(current))
			current = []
		else:
			current.append(c)
	fields.append(''.join(current))
	return fields

def parse(data):
	'produce a list of [(word, (host,port,dbname,user))] from a pgpass file object'
	r = []
	for line in data:
		line = line.rstrip('\r\n')
		if not line or line.startswith('#'):
			continue
		x = split(line)
		if len(x) < 5:
			continue
		# a password may contain unescaped colons
		r.append((':'.join(x[4:]), tuple(x[0:4])))
	return r

def lookup_password(words, uhpd):
	"""
	lookup_password(words, (user, host, port, database)) -> password

	Where 'words' is the output from pgpass.parse()
	"""
	user, host, port, database = uhpd
	for word, (w_host, w_port, w_database, w_user) in words:
		if (w_user == '*' or w_user == user) and \
			(w_host == '*' or w_host == host) and \
			(w_port == '*' or w_port == port) and \
		(w_database == '*' or w_database == database):
			return word

def permissions_ok(path):
	'Whether the file is inaccessible to the group and others.'
	if sys.platform == 'win32':
		return True
	mode = os.stat(path).st_mode
	return not (mode & (stat.S_IRWXG | stat.S_IRWXO))

def lookup_password_file(path, t):
	'like lookup_password, but takes a file path'
	with open(path) as f:
		return lookup_password(parse(f), t)

def lookup_pgpass(d, passfile):
	"""
	Lookup the password for the parameters in `d` using the given pgpass file.
	Returns `None` when the file does not exist, is readable by others, or has
	no matching entry.
	"""
	if not os.path.isfile(passfile):
		return None
	if not permissions_ok(passfile):
		warnings.warn(
			"password file %r has group or world access; "
			"permissions should be u=rw (0600) or less" %(passfile,)
		)
		return None
	host = str(d.get('host') or 'localhost')
	if host.startswith('/'):
		# Unix domain sockets are matched as localhost
		host = 'localhost'
	return lookup_password_file(passfile, (
		str(d['user']), host, str(d.get('port') or 5432),
		str(d.get('database') or d['user'])
	))
