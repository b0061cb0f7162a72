##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Encoding support: PostgreSQL encoding names and the bytea text forms.
"""
