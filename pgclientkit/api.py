##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Application Programmer Interfaces for pgclientkit (ABCs).

This module defines the interface of a connection and the callbacks of its
delegate. `pgclientkit.driver.pq3.Connection` is the implementation.
"""
from abc import ABCMeta, abstractmethod

from .types import TupleFormat

class Delegate(object):
	"""
	The observer of a `Connection`.

	A delegate implements any subset of these methods; the connection looks each
	one up when the event occurs. The connection holds a weak reference to its
	delegate and never extends its lifetime.

	Callbacks are called on the thread that caused the event; for background
	operations, that is the dispatcher's worker thread.
	"""

	def will_open(self,
		connection : "The connection being opened.",
		parameters : "Mutable dictionary of connection parameters.",
	) -> None:
		"""
		Called before a connection is established. Changes made to `parameters`,
		``sslmode`` or ``application_name`` for instance, are used for the
		connection. The return value is ignored; the dictionary cannot cancel
		the connect.
		"""

	def will_execute(self,
		connection : "The connection executing the statement.",
		query : "The SQL text.",
		values : "The parameter values, or `None`.",
	) -> None:
		"""
		Called before a statement is sent to the server.
		"""

	def error(self,
		connection : "The connection that failed.",
		error : "The `pgclientkit.exceptions.Error` instance.",
	) -> None:
		"""
		Called with every error raised by the connection before the caller
		receives it.
		"""

	def status_change(self,
		connection : "The connection whose status changed.",
		status : "The new status; a `pgclientkit.status` constant.",
	) -> None:
		"""
		Called each time the connection enters a status.
		"""

	def notice(self,
		connection : "The connection that received the message.",
		message : "A `pgclientkit.exceptions.Warning` instance.",
	) -> None:
		"""
		Called with the notices, warnings and other messages below the ERROR
		severity that the server sends.
		"""

	def notification(self,
		connection : "The connection that received the notification.",
		channel : "The channel given to NOTIFY.",
		payload : "The payload string; empty when none was given.",
		pid : "The process identifier of the notifying backend.",
	) -> None:
		"""
		Called with the NOTIFY messages received on a channel the session
		listens to.
		"""

delegate_methods = (
	'will_open', 'will_execute', 'error', 'status_change', 'notice', 'notification',
)

class Connection(metaclass = ABCMeta):
	"""
	A session with a PostgreSQL server.
	"""

	@property
	@abstractmethod
	def status(self) -> str:
		"""
		The current status; one of the constants in `pgclientkit.status`.
		"""

	@property
	@abstractmethod
	def server_process_id(self) -> (int, None):
		"""
		The process identifier of the server's backend. `None` before the first
		successful connect.
		"""

	@abstractmethod
	def connect(self, url : "`str` or `pgclientkit.url.ConnectionURL`") -> None:
		"""
		Establish the connection. Blocks until the connection is ready or raises
		a `pgclientkit.exceptions.Error`.
		"""

	@abstractmethod
	def connect_in_background(self,
		url : "`str` or `pgclientkit.url.ConnectionURL`",
		callback : "Called with `None` or the error once the connect completes.",
	) -> bool:
		"""
		Connect on a worker thread. Returns whether the request was admitted.
		"""

	@abstractmethod
	def ping(self, url) -> bool:
		"""
		Connect to `url` on a separate transport and close it again. The status
		of this connection is not affected. Returns `True` or raises.
		"""

	@abstractmethod
	def reset(self) -> None:
		"""
		Drop the session and connect again using the last URL given to
		`connect`.
		"""

	@abstractmethod
	def reset_in_background(self, callback) -> bool:
		"""
		`reset` on a worker thread.
		"""

	@abstractmethod
	def disconnect(self) -> None:
		"""
		Close the connection. Closing a closed connection does nothing.
		"""

	@abstractmethod
	def connection_used_password(self) -> bool:
		"""
		Whether the server asked for a password when the connection was
		established.
		"""

	@abstractmethod
	def execute(self,
		query : str,
		format : "`pgclientkit.types.TupleFormat` of the returned fields" = TupleFormat.Text,
		values : "Sequence of parameter values" = None,
		timeout : "Seconds after which the statement is cancelled" = None,
	) -> "`pgclientkit.result.Result`":
		"""
		Execute a single statement and return its `Result`.
		"""

	@abstractmethod
	def execute_in_background(self,
		query : str,
		callback : "Called with (result, error) once the statement completes.",
		format = TupleFormat.Text,
		values = None,
		timeout = None,
	) -> bool:
		"""
		`execute` on a worker thread.
		"""
