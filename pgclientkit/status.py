##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Connection status and its transitions.

::

	Disconnected --connect-->      Connecting
	Connecting   --ok-->           Connected
	Connecting   --fail-->         Error
	Connected    --execute-begin-> Busy
	Busy         --execute-end-->  Connected
	Connected    --reset-->        Connecting
	Connected    --disconnect-->   Disconnected
	Error        --reset-->        Connecting
	Error        --disconnect-->   Disconnected
	any          --fatal-->        Error
"""
from collections import deque

Disconnected = 'disconnected'
Connecting = 'connecting'
Connected = 'connected'
Busy = 'busy'
Error = 'error'

all_statuses = (Disconnected, Connecting, Connected, Busy, Error)

transitions = {
	Disconnected : frozenset((Connecting, Error)),
	Connecting : frozenset((Connected, Error)),
	Connected : frozenset((Busy, Connecting, Disconnected, Error)),
	Busy : frozenset((Connected, Error)),
	Error : frozenset((Connecting, Disconnected, Error)),
}

def legal(trace):
	'Whether the sequence of statuses is a walk over the transitions.'
	trace = list(trace)
	return all(
		b in transitions[a] for a, b in zip(trace, trace[1:])
	)

class StatusMachine(object):
	"""
	The status of a connection.

	`enter` moves to a new status and calls the `observer` with it on the
	calling thread. Transitions that are not in `transitions` raise
	`RuntimeError`; they indicate a defect in the caller.
	"""
	history_size = 256

	def __init__(self, observer = None, initial = Disconnected):
		self.observer = observer
		self.status = initial
		self.history = deque((initial,), maxlen = self.history_size)

	def __repr__(self):
		return '<%s.%s %s>' %(
			type(self).__module__,
			type(self).__name__,
			self.status,
		)

	def can_enter(self, status):
		return status in transitions[self.status]

	def enter(self, status):
		if status not in transitions[self.status]:
			raise RuntimeError(
				"illegal status transition: %s -> %s" %(self.status, status)
			)
		self.status = status
		self.history.append(status)
		if self.observer is not None:
			self.observer(status)
