##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Run blocking connection operations on worker threads.

The `Dispatcher` is the thin adapter behind the ``*_in_background`` methods
of a connection. It owns no protocol code: the operation given to `submit`
is the same method the synchronous API runs.
"""
import threading

__all__ = ['Dispatcher']

class Dispatcher(object):
	"""
	Dispatcher(context = None)

	When `context` is given, it must provide ``call_soon_threadsafe``, an
	`asyncio` event loop for instance, and the completions are scheduled on it.
	Otherwise, completions are called on the worker thread while it still holds
	the connection's lock, so a completion may use the connection directly.
	"""
	thread_name = 'pgclientkit-dispatch'

	def __init__(self, context = None):
		self.context = context

	def __repr__(self):
		return '<%s.%s context=%r>' %(
			type(self).__module__,
			type(self).__name__,
			self.context,
		)

	def deliver(self, completion, result, error):
		if self.context is None:
			completion(result, error)
		else:
			self.context.call_soon_threadsafe(completion, result, error)

	def run(self, lock, ticket, operation, completion):
		lock.wait(ticket)
		try:
			result = error = None
			try:
				result = operation()
			except Exception as err:
				error = err
			# Delivered before the next queued operation may start.
			self.deliver(completion, result, error)
		finally:
			lock.release()

	def submit(self,
		lock : "`pgclientkit.python.thread.QueueLock` of the connection",
		operation : "Callable performing the blocking work",
		completion : "Called with (result, error) exactly once",
	) -> bool:
		"""
		Queue the `operation` behind the current holders of `lock` and run it on
		a new daemon thread. The place in the queue is taken before returning,
		so operations are served in the order they were submitted.

		Returns `False` when the worker could not be started; the completion is
		never called in that case.
		"""
		ticket = lock.reserve()
		t = threading.Thread(
			target = self.run,
			args = (lock, ticket, operation, completion),
			name = self.thread_name,
			daemon = True,
		)
		try:
			t.start()
		except RuntimeError:
			lock.abandon(ticket)
			return False
		return True
