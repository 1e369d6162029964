#!/usr/bin/env python
# encoding: utf-8

"""Utility module: errors, logging helpers, configuration and properties."""

from configparser import (NoOptionError, NoSectionError, ParsingError,
  RawConfigParser)
from contextlib import contextmanager
from functools import wraps
from logging.handlers import TimedRotatingFileHandler
from tempfile import gettempdir, mkstemp
from traceback import print_exc
from urllib3 import disable_warnings
from urllib3.exceptions import InsecureRequestWarning
import logging as lg
import os
import os.path as osp
import re
import sys
import warnings as wr


_logger = lg.getLogger(__name__)

#: Default location of the configuration file.
CONFIG_PATH = '~/.hadoopdslrc'

#: Format of messages written to the log file.
LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


class HadoopDslError(Exception):

  """Base error class.

  :param message: Message, formatted with `args` using the `%` operator when
    any are given.
  :param \*args: Format arguments.

  """

  def __init__(self, message, *args):
    if args:
      message %= args
    super(HadoopDslError, self).__init__(message)
    self.message = message


class ValidationError(HadoopDslError):

  """Invalid workflow description, raised during compilation."""


class RemoteError(HadoopDslError):

  """Error reported by (or while reaching) the Azkaban server."""


class SessionExpired(HadoopDslError):

  """The Azkaban server rejected the current session ID."""


class SessionRejected(RemoteError):

  """The session was still rejected after logging back in.

  Unlike other remote errors, this one concerns every request sent to the
  server rather than a single one.

  """


class Adapter(lg.LoggerAdapter):

  """Logger adapter tagging every message with the object it comes from.

  :param prefix: Tag, typically the `repr` of the object logging.
  :param logger: Underlying logger.
  :param extra: Contextual information forwarded to the formatter.

  """

  def __init__(self, prefix, logger, extra=None):
    super(Adapter, self).__init__(logger, extra or {})
    self.prefix = prefix

  def process(self, msg, kwargs):
    return '%s :: %s' % (self.prefix, msg), kwargs


class Properties(dict):

  """Ordered mapping of job properties.

  :param \*sources: Dictionaries merged in order, later definitions of a key
    overriding earlier ones. Nested dictionaries are flattened (cf.
    :func:`flatten`).

  Keys keep the position of their first definition so that documents built
  from the same sources are always identical.

  """

  def __init__(self, *sources):
    super(Properties, self).__init__()
    for source in sources:
      self.update(flatten(source or {}))

  def __repr__(self):
    return '<%s(%s)>' % (self.__class__.__name__, dict.__repr__(self))

  def merge(self, *sources):
    """Return a new instance with `sources` merged on top of this one.

    :param \*sources: Dictionaries taking precedence over the current
      properties, in increasing order.

    """
    return Properties(self, *sources)

  def missing(self, keys):
    """Return the keys absent from these properties, in the order given.

    :param keys: Iterable of required keys.

    """
    return [key for key in keys if key not in self]


class Config(object):

  """Settings stored in an INI file.

  :param path: Location of the file, by default `~/.hadoopdslrc`. A missing
    file is treated as empty.

  Sections used:

  + `hadoopdsl`: `default.alias`, `default.project` and `default.log`.
  + `alias.<name>`: `url`, `verify`, `attempts`, `workers` and `timeout`.
  + `status`: `default.flows` and `dr.elephant.url`.
  + `session_id`: cached session IDs, written by
    :class:`~hadoopdsl.remote.Session`.

  """

  def __init__(self, path=None):
    self.path = path or osp.expanduser(CONFIG_PATH)
    self.parser = RawConfigParser()
    if osp.exists(self.path):
      try:
        self.parser.read(self.path)
      except ParsingError as err:
        raise HadoopDslError('Unable to parse %r: %s', self.path, err)

  def __repr__(self):
    return '<%s(path=%r)>' % (self.__class__.__name__, self.path)

  def save(self):
    """Write the current settings back to the file."""
    with open(self.path, 'w') as writer:
      self.parser.write(writer)

  def get_option(self, section, name, default=None):
    """Look up a setting.

    :param section: Section name, usually the command's.
    :param name: Option name.
    :param default: Returned if the option isn't set. When `None`, a missing
      option raises :class:`HadoopDslError` instead.

    """
    try:
      return self.parser.get(section, name)
    except (NoOptionError, NoSectionError):
      if default is None:
        raise HadoopDslError(
          'Option `%s` is not set in section `%s` of %r.',
          name, section, self.path
        )
      return default

  def get_list_option(self, section, name):
    """Comma separated setting as a list of names, empty if unset.

    :param section: Section name.
    :param name: Option name.

    """
    return split_names(self.get_option(section, name, ''))

  def get_file_handler(self, section):
    """Daily rotating log file handler.

    :param section: Section whose `default.log` option holds the log file's
      path. Defaults to `<section>.log` in the temporary directory.

    Returns `None` (with a warning) if the log file can't be opened.

    """
    fallback = osp.join(gettempdir(), '%s.log' % (section, ))
    path = self.get_option(section, 'default.log', fallback)
    try:
      handler = TimedRotatingFileHandler(
        path, when='midnight', backupCount=1, encoding='utf-8'
      )
    except IOError:
      wr.warn('Log file %s is not writable, logging disabled.' % (path, ))
      return None
    handler.setFormatter(lg.Formatter(LOG_FORMAT))
    return handler


@contextmanager
def temppath():
  """Reserve a path to a temporary file.

  The file isn't created, but anything written there is deleted when the
  context exits.

  """
  desc, path = mkstemp(prefix='hadoopdsl-')
  os.close(desc)
  os.remove(path)
  try:
    yield path
  finally:
    if osp.exists(path):
      os.remove(path)

def exit_on_error(*error_classes):
  """Decorator for entry points: errors are reported and exit with status 1.

  :param \*error_classes: Expected errors, only their message is printed.
    Others are printed along with their traceback.

  """
  def decorator(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
      try:
        return func(*args, **kwargs)
      except error_classes as err:
        _logger.error('Command failed: %s', err)
        sys.stderr.write('%s\n' % (err, ))
      except Exception:
        _logger.exception('Command failed unexpectedly.')
        print_exc()
      sys.exit(1)
    return wrapper
  return decorator

def flatten(dct, sep='.'):
  """Collapse nested dictionaries into a single level.

  :param dct: Dictionary, possibly with dictionary values.
  :param sep: String inserted between a parent key and its children's.

  For example `{'a': {'b': 1}}` becomes `{'a.b': 1}`.

  """
  flat = {}
  for key, value in dct.items():
    if isinstance(value, dict):
      for child_key, child_value in flatten(value, sep).items():
        flat['%s%s%s' % (key, sep, child_key)] = child_value
    else:
      flat[key] = value
  return flat

def split_names(names):
  """Split a comma separated list of names.

  :param names: String, e.g. `'foo,,bar, foo'`.

  Returns a sorted list without duplicates or blank entries.

  """
  return sorted(set(
    name.strip() for name in (names or '').split(',') if name.strip()
  ))

def human_readable(size):
  """Format a number of bytes, e.g. `2048` as `'2.0kB'`."""
  units = ['bytes', 'kB', 'MB', 'GB']
  while size >= 1024 and len(units) > 1:
    size /= 1024.0
    units.pop(0)
  return '%.1f%s' % (size, units[0])

_comment_p = re.compile(r'^\s*[#!]')
_continuation_p = re.compile(r'\\\n\s*')
_separator_p = re.compile(r'(?<!\\)(?:\s*[=:]\s*|\s+)')
_escape_p = re.compile(r'\\([=:\s])')

def read_properties(*paths):
  """Load `.properties` files into a dictionary.

  :param \*paths: File paths. Options defined in several files take the value
    of the last one.

  Comments, line continuations, and escaped separators in keys are handled.
  Unicode escapes are not.

  """
  opts = {}
  for path in paths:
    try:
      with open(path) as reader:
        contents = _continuation_p.sub('', reader.read())
    except FileNotFoundError:
      raise HadoopDslError('No properties file found at %s.', path)
    except (IOError, UnicodeDecodeError) as err:
      raise HadoopDslError('Unable to read properties from %r: %s', path, err)
    for line in contents.splitlines():
      if not line.strip() or _comment_p.match(line):
        continue
      parts = _separator_p.split(line.strip(), 1)
      key = _escape_p.sub(r'\1', parts[0])
      opts[key] = parts[1].strip() if len(parts) > 1 else ''
  return opts

def suppress_urllib_warnings(verify=True):
  """Route urllib3 warnings to the logging module.

  :param verify: Whether HTTPS certificates are verified. If not, insecure
    request warnings are silenced altogether.

  """
  lg.captureWarnings(True)
  if not verify:
    disable_warnings(InsecureRequestWarning)
