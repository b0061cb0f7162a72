##
# copyright 2009, James William Pye
# http://python.projects.postgresql.org
##
"""
Aliases for Python encodings that Postgres uses.
"""
import codecs

# dictionary of Postgres encoding names to Python encoding names
postgres_to_python = {
	'unicode' : 'utf_8',
	'utf8' : 'utf_8',
	'sql_ascii' : 'ascii',
	'euc_jp' : 'eucjp',
	'euc_cn' : 'euccn',
	'euc_kr' : 'euckr',
	'euc_jis_2004' : 'euc_jis_2004',
	'sjis' : 'shift_jis',
	'shift_jis_2004' : 'shift_jis_2004',
	'big5' : 'big5',
	'gbk' : 'gbk',
	'gb18030' : 'gb18030',
	'uhc' : 'cp949',
	'johab' : 'johab',
#	'euc_tw' : None, # N/A
#	'mule_internal' : None, # N/A
	'alt' : 'cp866',
	'win866' : 'cp866',
	'win874' : 'cp874',
	'koi8r' : 'koi8_r',
	'koi8u' : 'koi8_u',
	'tcvn' : 'windows_1258',
	'win1250' : 'windows_1250',
	'win1251' : 'windows_1251',
	'win1252' : 'windows_1252',
	'win1253' : 'windows_1253',
	'win1254' : 'windows_1254',
	'win1255' : 'windows_1255',
	'win1256' : 'windows_1256',
	'win1257' : 'windows_1257',
	'win1258' : 'windows_1258',
	'latin1' : 'iso8859_1',
	'latin2' : 'iso8859_2',
	'latin3' : 'iso8859_3',
	'latin4' : 'iso8859_4',
	'latin5' : 'iso8859_9',
	'latin6' : 'iso8859_10',
	'latin7' : 'iso8859_13',
	'latin8' : 'iso8859_14',
	'latin9' : 'iso8859_15',
	'latin10' : 'iso8859_16',
	'iso_8859_5' : 'iso8859_5',
	'iso_8859_6' : 'iso8859_6',
	'iso_8859_7' : 'iso8859_7',
	'iso_8859_8' : 'iso8859_8',
}

def get_python_name(encname):
	"""
	Given the name of a PostgreSQL encoding, return the name of the Python
	codec that implements it, or `None` when the name has no alias.
	"""
	return postgres_to_python.get(encname.lower().replace('-', '_').strip())

def lookup(encname):
	"""
	Return the `codecs.CodecInfo` for the PostgreSQL encoding name.

	Raises `LookupError` when Python has no such codec.
	"""
	return codecs.lookup(get_python_name(encname) or encname)
