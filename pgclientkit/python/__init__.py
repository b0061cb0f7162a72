##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Python tools package. Generally, tools that are not specific to PostgreSQL.
"""
