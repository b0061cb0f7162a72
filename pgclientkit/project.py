'project information'

#: project name
name = 'pgclientkit'

#: IRI based project identity
identity = 'http://python.projects.postgresql.org/'

author = 'James William Pye <x@jwp.name>'
description = 'Client connection object for PostgreSQL with synchronous and background operations'

# Set this to the target date when approaching a release.
date = None
tags = set(('features',))
version_info = (0, 1, 0)
version = '.'.join(map(str, version_info)) + (date is None and 'dev' or '')
