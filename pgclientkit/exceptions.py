##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
PostgreSQL SQLState codes and the exceptions raised by connections.

The primary entry point of this module is the `ErrorLookup` function. Given
an SQL state code it returns the exception class most closely associated with
it. Server errors resolve to subclasses of `StatementError`; the remaining
classes identify failures of the connection itself.

Every exception carries a `kind`, one of::

	BadURL, ConnectionRefused, AuthenticationFailed, NotConnected,
	BindValueInvalid, StatementFailed, ProtocolBroken, Cancelled, Timeout,
	InvalidState

For more information see:
 http://www.postgresql.org/docs/current/static/errcodes-appendix.html

This module is executable via -m: python -m pgclientkit.exceptions::

	$ python -m pgclientkit.exceptions 42601
	pgclientkit.exceptions.SyntaxError [42601]
"""
import sys
from os import linesep

def sixbit(i):
	'force values to be in the sixbit range'
	return ((i - 0x30) & 0x3F)
def unsixbit(i):
	'extract the original value from an integer processed with `sixbit`'
	return ((i & 0x3F) + 0x30)

def make(chars):
	"""
	Given an SQL state code as a character string, create the integer
	representation using `sixbit`.
	"""
	return sixbit(ord(chars[0])) + (sixbit(ord(chars[1])) << 6) + \
			(sixbit(ord(chars[2])) << 12) + (sixbit(ord(chars[3])) << 18) + \
			(sixbit(ord(chars[4])) << 24)

def unmake(code):
	"""
	Given an SQL state code as an integer, create the character string
	representation using `unsixbit`.
	"""
	return chr(unsixbit(code)) + chr(unsixbit(code >> 6)) + \
		chr(unsixbit(code >> 12)) + chr(unsixbit(code >> 18)) + \
		chr(unsixbit(code >> 24))

class State(int):
	"""
	An SQL state code. Normally used to identify the kind of error that occurred.
	"""
	def __new__(self, arg):
		if isinstance(arg, State):
			return arg
		elif isinstance(arg, int):
			chars = unmake(arg)
		else:
			chars = ''.join(arg)
			if len(chars) != 5:
				raise ValueError("SQL state codes are five characters: " + repr(chars))
			arg = make(chars)

		rob = int.__new__(self, arg)
		rob._chars = chars
		return rob

	def __str__(self):
		return self._chars

	def __repr__(self):
		return '%s.%s(%r)' %(
			type(self).__module__,
			type(self).__name__,
			self._chars,
		)

	def __eq__(self, ob):
		if isinstance(ob, str):
			return self._chars == ob
		return int.__eq__(self, ob)

	def __ne__(self, ob):
		if isinstance(ob, str):
			return self._chars != ob
		return int.__ne__(self, ob)
	__hash__ = int.__hash__

	def __getitem__(self, item):
		return self._chars[item]

class Class(State):
	"""
	SQL state code class. This is a state code whose last three characters are
	'000'. The states of the class are set as attributes.
	"""
	def __new__(self, chars, **kw):
		if isinstance(chars, Class):
			return chars

		rob = State.__new__(self, (chars[0], chars[1], '0', '0', '0'))
		for k, v in kw.items():
			setattr(rob, k, v)
		return rob

	def __contains__(self, ob):
		"""
		Whether the given state, `ob`, is in the state-class, `self`.

		>>> State('42601') in Class('42')
		True
		"""
		return State(ob)._chars[0:2] == self._chars[0:2]

	def __setattr__(self, att, val):
		if att.startswith('_'):
			super().__setattr__(att, val)
		else:
			if isinstance(val, int):
				c = State(val)
			else:
				c = State((self._chars[0], self._chars[1], val[0], val[1], val[2]))
			super().__setattr__(att, c)

	def __iter__(self):
		return iter([
			x for x in self.__dict__.values() if isinstance(x, State)
		])

class Mapping(dict):
	'Dictionary subclass for mapping states and classes to Python classes'
	__slots__ = ()
	def get(self, key):
		'Gets the value at the key or the Class of that key or None'
		c = State(key)
		supr = super()
		return supr.get(c) or supr.get(Class(c))

	def set(self, code, cls):
		'Assumes that it will be given a class for the value argument'
		code = State(code)
		codec = Class(code)
		if codec != SUCCESS:
			cur = self.get(code)
			if cur is None or codec != code or \
				(issubclass(cur, cls) and codec == code):
				self[code] = cls

SUCCESS = Class('00',
	COMPLETION = '000',
)

WARNING = Class('01',
	DYNAMIC_RESULT_SETS_RETURNED = '00C',
	IMPLICIT_ZERO_BIT_PADDING = '008',
	NULL_VALUE_ELIMINATED_IN_SET_FUNCTION = '003',
	PRIVILEGE_NOT_GRANTED = '007',
	PRIVILEGE_NOT_REVOKED = '006',
	STRING_DATA_RIGHT_TRUNCATION = '004',
	DEPRECATED_FEATURE = 'P01',
)

NO_DATA_WARNING = Class('02',
	NO_ADDITIONAL_DYNAMIC_RESULT_SETS_RETURNED = '001',
)

CONNECTION = Class('08',
	DOES_NOT_EXIST = '003',
	FAILURE = '006',
	SQLCLIENT_UNABLE_TO_ESTABLISH_SQLCONNECTION = '001',
	SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION = '004',
	TRANSACTION_RESOLUTION_UNKNOWN = '007',
	PROTOCOL_VIOLATION = 'P01',
)

FEATURE_NOT_SUPPORTED = Class('0A')
CARDINALITY_VIOLATION = Class('21')

DATA = Class('22',
	ARRAY_ELEMENT = '02E',
	CHARACTER_NOT_IN_REPERTOIRE = '021',
	DATETIME_FIELD_OVERFLOW = '008',
	DIVISION_BY_ZERO = '012',
	INVALID_DATETIME_FORMAT = '007',
	INVALID_PARAMETER_VALUE = '023',
	NULL_VALUE_NOT_ALLOWED = '004',
	NUMERIC_VALUE_OUT_OF_RANGE = '003',
	STRING_RIGHT_TRUNCATION = '001',
	INVALID_TEXT_REPRESENTATION = 'P02',
	INVALID_BINARY_REPRESENTATION = 'P03',
	BAD_COPY_FILE_FORMAT = 'P04',
	UNTRANSLATABLE_CHARACTER = 'P05',
)

# Integrity Constraint Violation
ICV = Class('23',
	RESTRICT = '001',
	NOT_NULL = '502',
	FOREIGN_KEY = '503',
	UNIQUE = '505',
	CHECK = '514',
	EXCLUSION = 'P01',
)

# Invalid Transaction State
ITS = Class('25',
	ACTIVE = '001',
	READ_ONLY = '006',
	NO_ACTIVE = 'P01',
	IN_FAILED = 'P02',
)

AUTHORIZATION_SPECIFICATION = Class('28',
	INVALID_PASSWORD = 'P01',
)

INVALID_CATALOG_NAME = Class('3D')
INVALID_SCHEMA_NAME = Class('3F')

# Transaction Rollback
TR = Class('40',
	SERIALIZATION_FAILURE = '001',
	INTEGRITY_CONSTRAINT_VIOLATION = '002',
	STATEMENT_COMPLETION_UNKNOWN = '003',
	DEADLOCK_DETECTED = 'P01',
)

# Syntax Error or Access Rule Violation
SEARV = Class('42',
	SYNTAX = '601',
	INSUFFICIENT_PRIVILEGE = '501',
	DATATYPE_MISMATCH = '804',
	INDETERMINATE_DATATYPE = 'P18',
	UNDEFINED_COLUMN = '703',
	UNDEFINED_FUNCTION = '883',
	UNDEFINED_TABLE = 'P01',
	UNDEFINED_PARAMETER = 'P02',
	UNDEFINED_OBJECT = '704',
	DUPLICATE_COLUMN = '701',
	DUPLICATE_TABLE = 'P07',
	DUPLICATE_OBJECT = '710',
	AMBIGUOUS_COLUMN = '702',
)

# Insufficient Resources
IR = Class('53',
	DISK_FULL = '100',
	OUT_OF_MEMORY = '200',
	CONNECTION_OVERFLOW = '300'
)

# Object Not In Prerequisite State
ONIPS = Class('55',
	OBJECT_IN_USE = '006',
	LOCK_NOT_AVAILABLE = 'P03'
)

# Operator Intervention
OI = Class('57',
	QUERY_CANCELED = '014',
	ADMIN_SHUTDOWN = 'P01',
	CRASH_SHUTDOWN = 'P02',
	CANNOT_CONNECT_NOW = 'P03',
)

PLPGSQL = Class('P0',
	RAISE = '001',
	NO_DATA_FOUND = '002',
	TOO_MANY_ROWS = '003',
)

# Internal Error
IE = Class('XX',
	DATA_CORRUPTED = '001',
	INDEX_CORRUPTED = '002',
)

def msgstr(ob):
	'Create a string for display in a warning or traceback'
	details = ob.details or {}
	loc = [
		details.get('file'),
		details.get('line'),
		details.get('function')
	]
	# If there are any location details, make the locstr.
	if loc.count(None) < 3:
		locstr = '%sLOCATION: File %r, line %s, in %s' %(
			linesep,
			loc[0] or '?',
			loc[1] or '?',
			loc[2] or '?',
		)
	else:
		locstr = ''

	lines = [
		'%s: %s' %(k.upper(), v) for k, v in details.items()
		if k not in ('message', 'severity', 'file', 'function', 'line')
	]
	if ob.code is not None:
		lines.insert(0, 'CODE: ' + str(ob.code))
	if getattr(ob, 'statement', None) is not None:
		lines.append('STATEMENT: ' + ob.statement)
	return str(ob.message or details.get('message')) + (
		linesep + linesep.join(lines) if lines else ''
	) + locstr

class Warning(Warning):
	"""
	A server message below the ERROR severity, or a client-side warning.
	"""
	code = WARNING
	severity = 'WARNING'
	message = None
	__str__ = msgstr

	def __init__(self, msg, code = None, details = None, severity = None):
		self.message = msg
		if code is not None and self.code != code:
			self.code = State(code)
		if severity is not None:
			self.severity = severity
		self.details = details or {}
		super().__init__(msg)

class DeprecationWarning(Warning, DeprecationWarning):
	code = WARNING.DEPRECATED_FEATURE
class PrivilegeNotGrantedWarning(Warning):
	code = WARNING.PRIVILEGE_NOT_GRANTED
class PrivilegeNotRevokedWarning(Warning):
	code = WARNING.PRIVILEGE_NOT_REVOKED
class StringDataRightTruncationWarning(Warning):
	code = WARNING.STRING_DATA_RIGHT_TRUNCATION
class NoDataWarning(Warning):
	code = NO_DATA_WARNING

class TypeConversionWarning(Warning):
	"""
	Emitted when a value could not be represented faithfully, e.g. an interval
	with a month component, or a field that could not be decoded at all.
	"""
	code = State('01PTC')

class Error(Exception):
	"""Error(msg[, code[, details]])

	Base class of every exception raised by a connection. The `details`
	dictionary holds the remaining fields of a server error (detail, hint,
	position, context, ...).
	"""
	kind = 'Error'
	code = IE
	severity = 'ERROR'
	details = None
	statement = None
	message = None
	display_order = ('detail', 'hint', 'context')

	def __init__(self, msg, code = None, details = None,
		severity = None, statement = None
	):
		if code is not None and self.code != code:
			self.code = State(code)
		if details is not None:
			self.details = details
		else:
			self.details = {}
		if severity is not None:
			self.severity = severity
		if statement is not None:
			self.statement = statement
		self.message = msg
		super().__init__(msg)

	__str__ = msgstr
	def __repr__(self):
		return '%s.%s(%r%s%r)' %(
			type(self).__module__,
			type(self).__name__,
			self.message,
			', code = ' if self.code is not None else '',
			str(self.code) if self.code is not None else '',
		)

	@property
	def fatal(self):
		return str(self.severity).upper() in ('FATAL', 'PANIC')

class BadURLError(Error, ValueError):
	"The connection URL could not be parsed or names an unknown scheme."
	kind = 'BadURL'
	code = None

class ConnectionError(Error):
	code = CONNECTION

class ConnectionStateError(ConnectionError):
	"""
	The operation is not valid in the connection's current status; connecting
	an already connected connection, for instance.
	"""
	kind = 'InvalidState'

class ConnectionRefusedError(ConnectionError):
	"The server could not be reached or it rejected the connection."
	kind = 'ConnectionRefused'
	code = CONNECTION.SQLCLIENT_UNABLE_TO_ESTABLISH_SQLCONNECTION

class ServerRejectedConnectionError(ConnectionRefusedError):
	code = CONNECTION.SQLSERVER_REJECTED_ESTABLISHMENT_OF_SQLCONNECTION

class NotConnectedError(ConnectionError):
	kind = 'NotConnected'
	code = CONNECTION.DOES_NOT_EXIST

class ProtocolError(ConnectionError):
	"The server and the client disagree on the state of the wire protocol."
	kind = 'ProtocolBroken'
	code = CONNECTION.PROTOCOL_VIOLATION

class TimeoutError(ConnectionError):
	kind = 'Timeout'
	code = CONNECTION.FAILURE

class AuthenticationError(Error):
	kind = 'AuthenticationFailed'
	code = AUTHORIZATION_SPECIFICATION

class InvalidPasswordError(AuthenticationError):
	code = AUTHORIZATION_SPECIFICATION.INVALID_PASSWORD

class AuthenticationMethodError(AuthenticationError):
	"The server requested an authentication method the client does not support."
	code = State('--AUT')

class BindValueError(Error, ValueError):
	"""
	A parameter value could not be bound; wrong count, wrong type, or out of
	range for the requested type.
	"""
	kind = 'BindValueInvalid'
	code = DATA.INVALID_PARAMETER_VALUE

	def __init__(self, msg, index = None, **kw):
		super().__init__(msg, **kw)
		self.index = index
		if index is not None:
			self.details.setdefault('position', str(index))

class StatementError(Error):
	"""
	The server rejected a statement. The connection remains usable.
	"""
	kind = 'StatementFailed'
	code = IE

# Abstract classifications
class TransactionError(StatementError):
	pass
class IntegrityError(StatementError):
	pass
class ValidityError(StatementError):
	pass
class OverflowError(StatementError):
	pass

class CancelledError(StatementError):
	"The statement was cancelled, either by request or by a timeout."
	kind = 'Cancelled'
	code = OI.QUERY_CANCELED

class FeatureError(StatementError):
	code = FEATURE_NOT_SUPPORTED
class CardinalityError(StatementError):
	code = CARDINALITY_VIOLATION

class DataError(StatementError):
	code = DATA
class ZeroDivisionError(DataError, ZeroDivisionError):
	code = DATA.DIVISION_BY_ZERO
class DateTimeFieldOverflowError(DataError):
	code = DATA.DATETIME_FIELD_OVERFLOW
class NumericRangeError(DataError):
	code = DATA.NUMERIC_VALUE_OUT_OF_RANGE
class StringRightTruncationError(DataError):
	code = DATA.STRING_RIGHT_TRUNCATION
class BadCopyError(DataError):
	code = DATA.BAD_COPY_FILE_FORMAT
class InvalidTextRepresentationError(DataError):
	code = DATA.INVALID_TEXT_REPRESENTATION
class InvalidBinaryRepresentationError(DataError):
	code = DATA.INVALID_BINARY_REPRESENTATION
class UntranslatableCharacterError(DataError):
	code = DATA.UNTRANSLATABLE_CHARACTER
class InvalidDateTimeFormatError(DataError, ValidityError):
	code = DATA.INVALID_DATETIME_FORMAT
class InvalidParameterValue(DataError, ValidityError):
	code = DATA.INVALID_PARAMETER_VALUE
class NullValueNotAllowedError(DataError):
	code = DATA.NULL_VALUE_NOT_ALLOWED

class ICVError(IntegrityError):
	"Integrity Contraint Violation"
	code = ICV
class RestrictError(ICVError):
	code = ICV.RESTRICT
class NotNullError(ICVError):
	code = ICV.NOT_NULL
class ForeignKeyError(ICVError):
	code = ICV.FOREIGN_KEY
class UniqueError(ICVError):
	code = ICV.UNIQUE
class CheckError(ICVError):
	code = ICV.CHECK
class ExclusionError(ICVError):
	code = ICV.EXCLUSION

class ITSError(TransactionError):
	"Invalid Transaction State"
	code = ITS
class ActiveTransactionError(ITSError):
	code = ITS.ACTIVE
class ReadOnlyTransactionError(ITSError):
	"Occurs when an alteration occurs in a read-only transaction."
	code = ITS.READ_ONLY
class NoActiveTransactionError(ITSError):
	code = ITS.NO_ACTIVE
class InFailedTransactionError(ITSError):
	"Occurs when an action occurs in a failed transaction."
	code = ITS.IN_FAILED

class TRError(TransactionError):
	"Transaction Rollback"
	code = TR
class SerializationError(TRError):
	code = TR.SERIALIZATION_FAILURE
class DeadlockError(TRError):
	code = TR.DEADLOCK_DETECTED

class InvalidCatalogName(StatementError, NameError):
	code = INVALID_CATALOG_NAME
class InvalidSchemaName(StatementError, NameError):
	code = INVALID_SCHEMA_NAME

class SEARVError(StatementError):
	"Syntax Error or Access Rule Violation"
	code = SEARV
class SyntaxError(SEARVError):
	code = SEARV.SYNTAX
class InsufficientPrivilegeError(SEARVError):
	code = SEARV.INSUFFICIENT_PRIVILEGE
class TypeError(SEARVError):
	pass
class DatatypeMismatchError(TypeError):
	code = SEARV.DATATYPE_MISMATCH
class IndeterminateDatatypeError(TypeError):
	code = SEARV.INDETERMINATE_DATATYPE

class UndefinedError(SEARVError):
	pass
class UndefinedColumnError(UndefinedError):
	code = SEARV.UNDEFINED_COLUMN
class UndefinedFunctionError(UndefinedError):
	code = SEARV.UNDEFINED_FUNCTION
class UndefinedTableError(UndefinedError):
	code = SEARV.UNDEFINED_TABLE
class UndefinedParameterError(UndefinedError):
	code = SEARV.UNDEFINED_PARAMETER
class UndefinedObjectError(UndefinedError):
	code = SEARV.UNDEFINED_OBJECT

class DuplicateError(SEARVError):
	pass
class DuplicateColumnError(DuplicateError):
	code = SEARV.DUPLICATE_COLUMN
class DuplicateTableError(DuplicateError):
	code = SEARV.DUPLICATE_TABLE
class DuplicateObjectError(DuplicateError):
	code = SEARV.DUPLICATE_OBJECT
class AmbiguousColumnError(SEARVError):
	code = SEARV.AMBIGUOUS_COLUMN

class IRError(OverflowError):
	"Insufficient Resource Errors"
	code = IR
class DiskFullError(IRError):
	code = IR.DISK_FULL
class ConnectionOverflowError(IRError):
	code = IR.CONNECTION_OVERFLOW

class ONIPSError(StatementError):
	"Object Not In Prerequisite State"
	code = ONIPS
class ObjectInUseError(ONIPSError):
	code = ONIPS.OBJECT_IN_USE
class UnavailableLockError(ONIPSError):
	code = ONIPS.LOCK_NOT_AVAILABLE

class OIError(StatementError):
	"Operator Intervention"
	code = OI
class AdminShutdownError(OIError):
	code = OI.ADMIN_SHUTDOWN
class CrashShutdownError(OIError):
	code = OI.CRASH_SHUTDOWN
class CannotConnectNowError(OIError):
	code = OI.CANNOT_CONNECT_NOW

class PLPGSQLError(StatementError):
	"Error raised by a PL/PgSQL procedural function"
	code = PLPGSQL
class PLPGSQLRaiseError(PLPGSQLError):
	"Error raised by a PL/PgSQL RAISE statement."
	code = PLPGSQL.RAISE

class InternalError(StatementError):
	code = IE
class DataCorruptedError(InternalError):
	code = IE.DATA_CORRUPTED

CodeClass = Mapping()
WarningCodeClass = Mapping()

def ErrorLookup(c):
	"""
	Given an error code, return the exception that is most closely associated
	with it.
	"""
	if c is None:
		return StatementError
	return CodeClass.get(c) or StatementError

def WarningLookup(c):
	"""
	Given a warning code, return the warning that is most closely associated
	with it.
	"""
	if c is None:
		return Warning
	return WarningCodeClass.get(c) or Warning

# Setup mapping to provide code based exception lookup.
def _register(ns):
	abstract = (
		Error, StatementError, TransactionError, IntegrityError,
		ValidityError, OverflowError, ConnectionError, ConnectionStateError,
		BindValueError, BadURLError, TypeConversionWarning,
		AuthenticationMethodError, TimeoutError, NotConnectedError,
		ConnectionRefusedError,
	)
	for e in ns.values():
		if not isinstance(e, type) or e in abstract:
			continue
		if e.__dict__.get('code', None) is None:
			continue
		if issubclass(e, Error):
			CodeClass.set(e.code, e)
		elif issubclass(e, Warning):
			WarningCodeClass.set(e.code, e)
	# Class 28 always signals a failed authentication.
	CodeClass[AUTHORIZATION_SPECIFICATION] = AuthenticationError
_register(sys.modules[__name__].__dict__)
del _register

if __name__ == '__main__':
	for x in sys.argv[1:]:
		e = ErrorLookup(x)
		sys.stdout.write('pgclientkit.exceptions.%s [%s]%s' %(
				e.__name__, e.code, linesep,
			)
		)
