##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
String tools for SQL text.

`find_placeholders` scans a statement for ``$N`` parameter references while
skipping over string literals, quoted identifiers, comments and dollar-quoted
strings, so ``'$1'`` and ``-- $1`` are not counted.
"""
import re

__all__ = ['find_placeholders', 'count_placeholders']

token_re = re.compile(r"""
	(?P<equote>[Ee]')
	| (?P<quote>')
	| (?P<ident>")
	| (?P<line_comment>--)
	| (?P<block_comment>/\*)
	| (?P<dollar>\$(?:[^\W\d]\w*)?\$)
	| (?P<param>\$(?P<number>\d+))
""", re.X)

block_re = re.compile(r'/\*|\*/')

def is_identifier_char(c):
	return c.isalnum() or c in '_$'

def close_quote(s, pos, q, backslash = False):
	'Find the offset after the quote that closes the literal starting at `pos`.'
	end = len(s)
	while pos < end:
		c = s[pos]
		if backslash and c == '\\':
			pos += 2
		elif c == q:
			if s[pos+1:pos+2] == q:
				pos += 2
			else:
				return pos + 1
		else:
			pos += 1
	return end

def close_comment(s, pos):
	'Find the offset after the end of a, possibly nested, block comment.'
	depth = 1
	while depth:
		m = block_re.search(s, pos)
		if m is None:
			return len(s)
		depth += 1 if m.group() == '/*' else -1
		pos = m.end()
	return pos

def find_placeholders(sql):
	"""
	Return the set of the parameter numbers referenced by ``$N`` in `sql`.
	"""
	found = set()
	pos = 0
	end = len(sql)
	while pos < end:
		m = token_re.search(sql, pos)
		if m is None:
			break
		start = m.start()
		pos = m.end()
		kind = m.lastgroup
		follows_identifier = start > 0 and is_identifier_char(sql[start-1])

		if kind == 'equote':
			pos = close_quote(sql, pos, "'", backslash = not follows_identifier)
		elif kind == 'quote':
			pos = close_quote(sql, pos, "'")
		elif kind == 'ident':
			pos = close_quote(sql, pos, '"')
		elif kind == 'line_comment':
			nl = sql.find('\n', pos)
			pos = end if nl == -1 else nl + 1
		elif kind == 'block_comment':
			pos = close_comment(sql, pos)
		elif follows_identifier:
			# "$" is an identifier character: a$1, b$x$
			pos = start + 1
		elif kind == 'dollar':
			tag = m.group()
			close = sql.find(tag, pos)
			pos = end if close == -1 else close + len(tag)
		else:
			found.add(int(m.group('number')))
	return found

def count_placeholders(sql):
	"""
	The number of parameters the statement takes: the highest ``$N`` referenced.
	"""
	return max(find_placeholders(sql), default = 0)
