##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PQ version 3.0 protocol: message elements, client transactions, the client
connection and the type I/O used to pack and unpack values.
"""
