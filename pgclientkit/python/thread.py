##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Thread synchronization tools.
"""
import threading

__all__ = ['QueueLock']

class QueueLock(object):
	"""
	A re-entrant lock that serves its contenders in arrival order.

	Arrival is marked by `reserve`, which hands out a ticket without blocking.
	`wait` blocks until the ticket is served and makes the calling thread the
	owner. This allows a place in the queue to be taken on one thread and the
	lock to be held on another:

		>>> ticket = lock.reserve()
		>>> # ... on the worker thread
		>>> lock.wait(ticket)
		>>> lock.release()

	`acquire` does both and admits the current owner again without queueing.
	"""
	def __init__(self):
		self._cond = threading.Condition(threading.Lock())
		self._next = 0
		self._serving = 0
		self._abandoned = set()
		self._owner = None
		self._depth = 0

	def __repr__(self):
		return '<%s.%s owner=%r waiting=%d>' %(
			type(self).__module__,
			type(self).__name__,
			self._owner,
			self._next - self._serving - (1 if self._owner is not None else 0),
		)

	def owned(self):
		'Whether the current thread holds the lock.'
		return self._owner == threading.get_ident()

	def locked(self):
		return self._owner is not None

	def reserve(self):
		'Take the next place in the queue and return its ticket.'
		with self._cond:
			ticket = self._next
			self._next += 1
			return ticket

	def _advance(self):
		# caller holds _cond
		self._serving += 1
		while self._serving in self._abandoned:
			self._abandoned.discard(self._serving)
			self._serving += 1
		self._cond.notify_all()

	def abandon(self, ticket):
		'Give up a reserved place that will never be waited on.'
		with self._cond:
			if ticket == self._serving and self._owner is None:
				self._advance()
			elif ticket > self._serving:
				self._abandoned.add(ticket)

	def wait(self, ticket):
		'Block until `ticket` is served; the current thread becomes the owner.'
		with self._cond:
			while self._serving != ticket or self._owner is not None:
				self._cond.wait()
			self._owner = threading.get_ident()
			self._depth = 1

	def acquire(self):
		if self.owned():
			self._depth += 1
			return True
		self.wait(self.reserve())
		return True

	def release(self):
		if not self.owned():
			raise RuntimeError("cannot release un-acquired lock")
		with self._cond:
			self._depth -= 1
			if self._depth == 0:
				self._owner = None
				self._advance()

	def __enter__(self):
		self.acquire()
		return self

	def __exit__(self, typ, val, tb):
		self.release()
