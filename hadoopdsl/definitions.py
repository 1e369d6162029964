#!/usr/bin/env python
# encoding: utf-8

"""Definition sets: named groups of values shared by a project's jobs.

A project starts with a single (default) set. Named sets hold values specific
to a context, e.g. a cluster, and are selected with
:meth:`Definitions.set_definition_set`. Profiles are python files which
update these sets, typically to override definitions for a given user or
environment.

"""

from runpy import run_path
from .util import HadoopDslError
import logging as lg
import os.path as osp


_logger = lg.getLogger(__name__)

#: Name of the set definitions belong to when none is specified.
DEFAULT_SET = 'default'


class Definitions(object):

  """Registry of definition sets.

  The current set is the default one until another is selected.

  """

  def __init__(self):
    self._sets = {DEFAULT_SET: {}}
    self.current = DEFAULT_SET

  def __repr__(self):
    return '<%s(current=%r, sets=%s)>' % (
      self.__class__.__name__, self.current, sorted(self._sets)
    )

  @property
  def names(self):
    """Names of all sets, sorted."""
    return sorted(self._sets)

  def definition_set(self, defs=None, name=DEFAULT_SET):
    """Declare (or update) a definition set.

    :param defs: Dictionary of definitions. They override any previous
      definitions of the same names in this set.
    :param name: Set name.

    Returns a copy of the set's definitions.

    """
    definitions = self._sets.setdefault(name, {})
    definitions.update(defs or {})
    _logger.debug('Updated definition set %r: %s', name, sorted(defs or {}))
    return dict(definitions)

  def set_definition_set(self, name):
    """Select the set :meth:`lookup_def` looks into first.

    :param name: Set name, it must already be declared.

    """
    if name not in self._sets:
      raise HadoopDslError(
        'Definition set %r not found. Available sets: %s',
        name, ', '.join(self.names)
      )
    self.current = name

  def lookup_def(self, name):
    """Value of a definition.

    :param name: Definition name. It is looked up in the current set, then
      in the default one.

    """
    for set_name in (self.current, DEFAULT_SET):
      definitions = self._sets[set_name]
      if name in definitions:
        return definitions[name]
    raise HadoopDslError(
      'Definition %r not found in set %r.', name, self.current
    )

  def apply_profile(self, path):
    """Run a profile file.

    :param path: Path to a python file. It is executed with this registry
      available as `definitions`.

    Returns `False` (without raising) if there is no file at `path`, `True`
    otherwise. Errors raised by the profile itself are propagated.

    """
    if not osp.isfile(path):
      _logger.warning('No profile found at %r, skipping.', path)
      return False
    _logger.info('Applying profile %s.', path)
    run_path(path, init_globals={'definitions': self})
    return True
