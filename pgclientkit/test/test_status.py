##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
import unittest
from .. import status as pg_status

class test_status(unittest.TestCase):
	def test_initial(self):
		sm = pg_status.StatusMachine()
		self.assertEqual(sm.status, pg_status.Disconnected)
		self.assertEqual(list(sm.history), [pg_status.Disconnected])

	def test_session_walk(self):
		seen = []
		sm = pg_status.StatusMachine(seen.append)
		walk = [
			pg_status.Connecting,
			pg_status.Connected,
			pg_status.Busy,
			pg_status.Connected,
			pg_status.Busy,
			pg_status.Error,
			pg_status.Connecting,
			pg_status.Connected,
			pg_status.Disconnected,
		]
		for x in walk:
			sm.enter(x)
		self.assertEqual(seen, walk)
		self.assertEqual(list(sm.history), [pg_status.Disconnected] + walk)
		self.assertTrue(pg_status.legal(sm.history))

	def test_illegal(self):
		seen = []
		sm = pg_status.StatusMachine(seen.append)
		self.assertRaises(RuntimeError, sm.enter, pg_status.Connected)
		self.assertRaises(RuntimeError, sm.enter, pg_status.Busy)
		# nothing happened
		self.assertEqual(sm.status, pg_status.Disconnected)
		self.assertEqual(seen, [])
		sm.enter(pg_status.Connecting)
		self.assertFalse(sm.can_enter(pg_status.Busy))
		self.assertFalse(sm.can_enter(pg_status.Disconnected))
		self.assertTrue(sm.can_enter(pg_status.Error))

	def test_legal(self):
		self.assertTrue(pg_status.legal([]))
		self.assertTrue(pg_status.legal([pg_status.Disconnected]))
		self.assertFalse(pg_status.legal([
			pg_status.Disconnected, pg_status.Busy
		]))
		self.assertFalse(pg_status.legal([
			pg_status.Connecting, pg_status.Connected, pg_status.Connected
		]))

	def test_transitions_cover_statuses(self):
		self.assertEqual(
			set(pg_status.transitions), set(pg_status.all_statuses)
		)
		for targets in pg_status.transitions.values():
			self.assertTrue(targets <= set(pg_status.all_statuses))
			# a fatal error is possible from anywhere
			self.assertTrue(pg_status.Error in targets)

	def test_history_bound(self):
		sm = pg_status.StatusMachine()
		sm.enter(pg_status.Connecting)
		sm.enter(pg_status.Connected)
		for i in range(sm.history_size):
			sm.enter(pg_status.Busy)
			sm.enter(pg_status.Connected)
		self.assertEqual(len(sm.history), sm.history_size)
		self.assertEqual(sm.history[-1], pg_status.Connected)

if __name__ == '__main__':
	from types import ModuleType
	this = ModuleType("this")
	this.__dict__.update(globals())
	unittest.main(this)
