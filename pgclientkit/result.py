##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Results of executed statements.

A `Result` holds everything a statement produced: the command tag, the column
descriptions and the decoded rows. It does not refer to the connection and
remains usable after it is closed.
"""
from collections import namedtuple
from .types import Row, TupleFormat

__all__ = ['Column', 'Result']

Column = namedtuple('Column', ('name', 'oid', 'size', 'modifier', 'format'))

class Result(object):
	"""
	The result of one statement.

	Rows are `pgclientkit.types.Row` instances; they can be indexed by position
	or by column name.
	"""
	__slots__ = (
		'command_tag', 'affected_rows', 'columns', 'rows',
		'copy_data', 'format', '_keymap',
	)

	def __init__(self,
		command_tag,
		columns = (),
		rows = (),
		affected_rows = None,
		copy_data = (),
		format = TupleFormat.Text,
	):
		self.command_tag = command_tag
		self.affected_rows = affected_rows
		self.columns = tuple(columns)
		self._keymap = {}
		for i, c in enumerate(self.columns):
			# the first of duplicate names is addressable
			self._keymap.setdefault(c.name, i)
		self.rows = tuple([
			r if isinstance(r, Row) else Row.from_sequence(self._keymap, r)
			for r in rows
		])
		self.copy_data = tuple(copy_data)
		self.format = format

	def __repr__(self):
		return '<%s.%s %r columns=%d rows=%d>' %(
			type(self).__module__,
			type(self).__name__,
			self.command_tag,
			len(self.columns),
			len(self.rows),
		)

	def __len__(self):
		return len(self.rows)

	def __iter__(self):
		return iter(self.rows)

	@property
	def column_count(self):
		return len(self.columns)

	@property
	def row_count(self):
		return len(self.rows)

	@property
	def column_names(self):
		return tuple([c.name for c in self.columns])

	def column_name(self, i):
		return self.columns[i].name

	def column_oid(self, i):
		return self.columns[i].oid

	def column_index(self, name):
		"""
		The position of the named column. Raises `KeyError` when there is no
		such column.
		"""
		return self._keymap[name]

	def row(self, i):
		return self.rows[i]

	def _column(self, col):
		if isinstance(col, str):
			return self.column_index(col)
		if not (-len(self.columns) <= col < len(self.columns)):
			raise IndexError("column index out of range: %d" %(col,))
		return col

	def value(self, row, col):
		"""
		The value of the field in `row` at `col`, a column position or name.
		NULL is `None`.
		"""
		return self.rows[row][self._column(col)]

	def is_null(self, row, col):
		return self.value(row, col) is None
