##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
additional functools
"""

class Composition(tuple):
	'simple compositions'
	def __call__(self, r):
		for x in self:
			r = x(r)
		return r

def process_tuple(procs, tup, exception_handler):
	"""
	Call each item in `procs` with the corresponding item in `tup` returning
	the result as `type(tup)`. `None` passes through without calling the
	processor.

	If an item in `tup` fails to process, `exception_handler` is called with
	the `procs`, `tup`, and the offset of the failure. The handler may return
	a replacement value, or raise.
	"""
	i = len(procs)
	if len(tup) != i:
		raise TypeError(
			"inconsistent items, %d processors and %d items in row" %(
				i, len(tup)
			)
		)
	r = [None] * i
	for i in range(i):
		ob = tup[i]
		if ob is None:
			continue
		try:
			r[i] = procs[i](ob)
		except Exception:
			r[i] = exception_handler(procs, tup, i)
	return r
