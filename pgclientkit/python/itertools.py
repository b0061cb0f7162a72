##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
itertools extensions
"""
from itertools import cycle

def interlace(*iters):
	"""
	interlace(i1, i2, ..., in) -> (
		i1-0, i2-0, ..., in-0,
		i1-1, i2-1, ..., in-1,
		.
		.
		.
		i1-n, i2-n, ..., in-n,
	)

	Stops at the first exhausted iterator.
	"""
	iters = [iter(x) for x in iters]
	for i in cycle(range(len(iters))):
		try:
			yield next(iters[i])
		except StopIteration:
			return
