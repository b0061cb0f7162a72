##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Driver package for connecting to PostgreSQL via a data stream(sockets).
"""
__all__ = ['Connection', 'connect']

from .pq3 import Connection, connect
