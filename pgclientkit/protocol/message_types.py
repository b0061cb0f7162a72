##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
A sequence of single byte `bytes` objects whose value corresponds to its index.

Message types taken from here are shared by the buffer, the message classes
and the protocol transactions, so comparisons may use the `is` operator.
"""
message_types = tuple([bytes((x,)) for x in range(256)])
