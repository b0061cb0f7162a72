##
# .test.test_python
##
import unittest
import socket
import errno
import time
import threading
import datetime
from operator import methodcaller

from ..python import functools
from ..python import itertools
from ..python.socket import find_available_port, SocketFactory
from ..python.thread import QueueLock
from ..python.datetime import FixedOffset, UTC
from ..dispatch import Dispatcher

class test_itertools(unittest.TestCase):
	def testInterlace(self):
		i1 = range(0, 100, 4)
		i2 = range(1, 100, 4)
		i3 = range(2, 100, 4)
		i4 = range(3, 100, 4)
		self.assertEqual(
			list(itertools.interlace(i1, i2, i3, i4)),
			list(range(100))
		)
		self.assertEqual(list(itertools.interlace((1, 2), ())), [1])

class test_functools(unittest.TestCase):
	def testComposition(self):
		compose = functools.Composition
		simple = compose((int, str))
		self.assertEqual("100", simple("100"))
		timesfour_fourtimes = compose((methodcaller('__mul__', 4),)*4)
		self.assertEqual(4*(4*4*4*4), timesfour_fourtimes(4))
		nothing = compose(())
		self.assertEqual(nothing("100"), "100")
		self.assertEqual(nothing(100), 100)
		self.assertEqual(nothing(None), None)

	def testProcessTuple(self):
		failures = []
		def fail(procs, tup, i):
			failures.append(i)
			return 'failed'
		self.assertEqual(
			functools.process_tuple((int, str, int), ('1', None, 'x'), fail),
			[1, None, 'failed']
		)
		self.assertEqual(failures, [2])
		def reraise(procs, tup, i):
			raise KeyError(i)
		self.assertRaises(
			KeyError, functools.process_tuple, (int,), ('x',), reraise
		)
		self.assertRaises(
			TypeError, functools.process_tuple, (int, int), ('1',), fail
		)

class test_datetime(unittest.TestCase):
	def testFixedOffset(self):
		tz = FixedOffset(3600)
		dt = datetime.datetime(2000, 1, 1, 1, tzinfo = tz)
		self.assertEqual(dt.utcoffset(), datetime.timedelta(hours = 1))
		self.assertEqual(dt.astimezone(UTC).hour, 0)
		self.assertEqual(tz, FixedOffset(3600))
		self.assertNotEqual(tz, UTC)
		self.assertEqual(UTC.tzname(None), 'UTC')

class test_socket(unittest.TestCase):
	def testFindAvailable(self):
		# the port is randomly generated, so make a few trials before
		# determining success.
		for i in range(20):
			portnum = find_available_port()
			s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
			try:
				s.connect(('localhost', portnum))
			except socket.error as err:
				self.assertEqual(err.errno, errno.ECONNREFUSED)
			else:
				self.fail("got a connection to an available port: " + str(portnum))
			finally:
				s.close()

	def testSocketFactory(self):
		servsock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		servsock.bind(('127.0.0.1', 0))
		servsock.listen(1)
		try:
			sf = SocketFactory(
				(socket.AF_INET, socket.SOCK_STREAM), servsock.getsockname()
			)
			s = sf(timeout = 1)
			try:
				self.assertEqual(s.gettimeout(), None)
				self.assertEqual(s.getpeername(), servsock.getsockname())
			finally:
				s.close()
			self.assertTrue(str(sf).startswith('socket('))
		finally:
			servsock.close()
		self.assertRaises(OSError, sf, 1)

class test_queuelock(unittest.TestCase):
	def testReentrant(self):
		l = QueueLock()
		self.assertFalse(l.locked())
		with l:
			self.assertTrue(l.owned())
			with l:
				self.assertTrue(l.owned())
			self.assertTrue(l.locked())
		self.assertFalse(l.locked())
		self.assertFalse(l.owned())
		self.assertRaises(RuntimeError, l.release)

	def testOrder(self):
		l = QueueLock()
		served = []
		l.acquire()
		threads = []
		for i in range(5):
			ticket = l.reserve()
			def work(ticket = ticket, i = i):
				l.wait(ticket)
				served.append(i)
				l.release()
			# started in the reverse order of the reservations
			threads.insert(0, threading.Thread(target = work))
		for t in threads:
			t.start()
		time.sleep(0.1)
		self.assertEqual(served, [])
		l.release()
		for t in threads:
			t.join(5)
		self.assertEqual(served, [0, 1, 2, 3, 4])
		self.assertFalse(l.locked())

	def testAbandon(self):
		l = QueueLock()
		l.acquire()
		t1 = l.reserve()
		t2 = l.reserve()
		l.abandon(t1)
		done = []
		def work():
			l.wait(t2)
			done.append(True)
			l.release()
		t = threading.Thread(target = work)
		t.start()
		l.release()
		t.join(5)
		self.assertEqual(done, [True])
		# abandoning the ticket being served lets the next one in
		t3 = l.reserve()
		l.abandon(t3)
		with l:
			self.assertTrue(l.owned())

	def testExclusion(self):
		l = QueueLock()
		inside = []
		overlap = []
		def work():
			for i in range(50):
				with l:
					inside.append(1)
					if len(inside) > 1:
						overlap.append(1)
					inside.pop()
		threads = [threading.Thread(target = work) for x in range(4)]
		for t in threads:
			t.start()
		for t in threads:
			t.join(10)
		self.assertEqual(overlap, [])

class test_dispatch(unittest.TestCase):
	def testOrderAndDelivery(self):
		l = QueueLock()
		d = Dispatcher()
		results = []
		finished = threading.Event()
		def completion(result, error):
			results.append((result, error))
			if len(results) == 3:
				finished.set()
		def failing():
			raise ValueError("no")
		l.acquire()
		self.assertTrue(d.submit(l, lambda: 1, completion))
		self.assertTrue(d.submit(l, failing, completion))
		self.assertTrue(d.submit(l, lambda: 3, completion))
		time.sleep(0.05)
		self.assertEqual(results, [])
		l.release()
		self.assertTrue(finished.wait(5))
		self.assertEqual(results[0], (1, None))
		self.assertEqual(results[1][0], None)
		self.assertTrue(isinstance(results[1][1], ValueError))
		self.assertEqual(results[2], (3, None))
		# the lock is released after each operation
		with l:
			pass

	def testContext(self):
		class Context(object):
			def __init__(self):
				self.calls = []
				self.event = threading.Event()
			def call_soon_threadsafe(self, f, *args):
				self.calls.append((f, args))
				self.event.set()
		ctx = Context()
		d = Dispatcher(ctx)
		l = QueueLock()
		def completion(result, error):
			pass
		d.submit(l, lambda: 'result', completion)
		self.assertTrue(ctx.event.wait(5))
		self.assertEqual(ctx.calls, [(completion, ('result', None))])
		self.assertTrue('context' in repr(d))

if __name__ == '__main__':
	from types import ModuleType
	this = ModuleType("this")
	this.__dict__.update(globals())
	unittest.main(this)
