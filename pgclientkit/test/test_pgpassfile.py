##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import os
import sys
import unittest
import tempfile
import warnings
from io import StringIO

from .. import pgpassfile as client_pgpass

passfile_sample = """
# escaped colons and backslashes
h\\:st:1111:db\\\\name:us\\:er:pass\\:word
# host:1111:dbname:user:password1
host:1111:dbname:user:password1
*:1111:dbname:user:password2
*:*:dbname:user:password3

# Comment

*:*:*:user:password4
*:*:*:usern:password4.5
*:*:*:*:password5
short:line
"""

passfile_expect = [
	(('user', 'host', '1111', 'dbname'), 'password1'),
	(('user', 'host', '1111', 'dbname'), 'password1'),
	(('user', 'foo', '1111', 'dbname'), 'password2'),
	(('user', 'foo', '4321', 'dbname'), 'password3'),
	(('user', 'foo', '4321', 'db,name'), 'password4'),
	(('uuser', 'foo', '4321', 'db,name'), 'password5'),
	(('usern', 'foo', '4321', 'db,name'), 'password4.5'),
	(('foobar', 'fuh', '0', 'nope'), 'password5'),
	(('us:er', 'h:st', '1111', 'db\\name'), 'pass:word'),
]

class test_pgpass(unittest.TestCase):
	def runTest(self):
		sample1 = client_pgpass.parse(StringIO(passfile_sample))
		for (uhpd, pw) in passfile_expect:
			self.assertEqual(
				client_pgpass.lookup_password(sample1, uhpd), pw,
				"password lookup incongruity, expecting %r got %r" %(
					pw, client_pgpass.lookup_password(sample1, uhpd)
				)
			)

	def testEscapes(self):
		self.assertEqual(
			client_pgpass.split('h\\:st:1:db\\\\name:u:p'),
			['h:st', '1', 'db\\name', 'u', 'p']
		)
		words = client_pgpass.parse(StringIO("*:*:*:*:pass:word\n"))
		self.assertEqual(words, [('pass:word', ('*', '*', '*', '*'))])
		self.assertEqual(client_pgpass.parse(StringIO("a:b:c\n")), [])

	def testNoMatch(self):
		words = client_pgpass.parse(StringIO("host:1:db:user:pw\n"))
		self.assertEqual(
			client_pgpass.lookup_password(words, ('user', 'host', '2', 'db')),
			None
		)

	@unittest.skipIf(sys.platform == 'win32', "permissions are not checked on win32")
	def testLookupFile(self):
		fd, path = tempfile.mkstemp()
		try:
			with os.fdopen(fd, 'w') as f:
				f.write("localhost:5432:db:user:secret\n")
			os.chmod(path, 0o600)
			d = {'user' : 'user', 'database' : 'db'}
			self.assertEqual(client_pgpass.lookup_pgpass(d, path), 'secret')
			# unix sockets match as localhost
			d['host'] = '/tmp'
			self.assertEqual(client_pgpass.lookup_pgpass(d, path), 'secret')
			d['port'] = 6000
			self.assertEqual(client_pgpass.lookup_pgpass(d, path), None)

			os.chmod(path, 0o644)
			with warnings.catch_warnings(record = True) as w:
				warnings.simplefilter('always')
				self.assertEqual(
					client_pgpass.lookup_pgpass({'user' : 'user', 'database' : 'db'}, path),
					None
				)
			self.assertEqual(len(w), 1)
		finally:
			os.remove(path)
		self.assertEqual(client_pgpass.lookup_pgpass({'user' : 'u'}, path), None)

if __name__ == '__main__':
	from types import ModuleType
	this = ModuleType("this")
	this.__dict__.update(globals())
	unittest.main(this)
