#!/usr/bin/env python
# encoding: utf-8

"""Projects: the workflows and files packaged in a single Azkaban archive."""

from importlib import import_module
from weakref import WeakValueDictionary
from zipfile import ZIP_DEFLATED, ZipFile
from .compiler import compile_workflow
from .definitions import Definitions
from .util import Adapter, HadoopDslError, Properties
import logging as lg
import os
import os.path as osp
import sys


_logger = lg.getLogger(__name__)

#: Contents of the file marking an archive as using flow definitions.
PROJECT_FILE_CONTENTS = 'azkaban-flow-version: 2.0\n'


class _WorkflowDict(dict):

  """Read-only view of a project's workflows.

  Looking up a missing workflow raises :class:`~hadoopdsl.util.HadoopDslError`
  and workflows can only be added via :meth:`Project.add_workflow`.

  """

  def __getitem__(self, name):
    if name not in self:
      raise HadoopDslError(
        'Workflow %r not found. Available workflows: %s',
        name, ', '.join(sorted(self)) or 'none'
      )
    return dict.__getitem__(self, name)

  def __setitem__(self, name, workflow):
    raise HadoopDslError(
      'Use `Project.add_workflow` to add workflow %r.', name
    )


class Project(object):

  """Azkaban project.

  :param name: Project name, as known by the Azkaban server.
  :param root: File or directory that relative paths passed to
    :meth:`add_file` are resolved against (usually `__file__`).
  :param register: Make the project discoverable by :meth:`load`, and hence
    by the command line.
  :param version: Appended to the name of the archive uploaded to Azkaban.

  `properties` holds project level properties. They are inherited by every
  job and included in each flow's config.
  `definitions` holds the project's definition sets (cf.
  :class:`~hadoopdsl.definitions.Definitions`).

  """

  root = None
  _registry = WeakValueDictionary()

  def __init__(self, name, root=None, register=True, version=None):
    self.name = name
    self.version = version
    if root:
      self.root = osp.realpath(root if osp.isdir(root) else osp.dirname(root))
    self.properties = {}
    self.definitions = Definitions()
    self._workflows = []
    self._files = {}
    if register:
      self._registry[name] = self
    self._logger = Adapter(repr(self), _logger)

  def __repr__(self):
    return '<%s(name=%r)>' % (self.__class__.__name__, self.name)

  def __str__(self):
    return self.name

  @property
  def versioned_name(self):
    """`<name>-<version>`, or just the name if there is no version."""
    if not self.version:
      return self.name
    return '%s-%s' % (self.name, self.version)

  @property
  def files(self):
    """List of `(local_path, archive_path)` tuples of the added files."""
    return [(path, archive_path) for archive_path, path in self._files.items()]

  @property
  def workflows(self):
    """Top-level workflows, keyed by name."""
    return _WorkflowDict((wf.name, wf) for wf in self._workflows)

  def add_workflow(self, workflow):
    """Include a top-level workflow in the project, compiled to its own flow.

    :param workflow: :class:`~hadoopdsl.workflow.Workflow` instance.

    """
    if workflow.name in self.workflows:
      raise HadoopDslError('Duplicate workflow: %r.', workflow.name)
    self._workflows.append(workflow)
    self._logger.debug('Added workflow %r.', workflow.name)
    return workflow

  def add_file(self, path, archive_path=None, overwrite=False):
    """Package a file with the project, e.g. a script run by a job.

    :param path: Local path, either absolute or relative to the project's
      `root`.
    :param archive_path: Location inside the archive. Defaults to `path`
      relative to `root` (absolute if there is no root).
    :param overwrite: Replace a different file previously added at the same
      archive path instead of raising an error.

    """
    if not osp.isabs(path):
      if not self.root:
        raise HadoopDslError(
          'Relative path %r requires a project root.', path
        )
      path = osp.join(self.root, path)
    path = osp.realpath(path)
    if not osp.exists(path):
      raise HadoopDslError('File not found: %r.', path)
    if not archive_path:
      if not self.root:
        archive_path = path
      elif path.startswith(self.root + os.sep):
        archive_path = osp.relpath(path, self.root)
      else:
        raise HadoopDslError(
          'File %r is outside of the project root, an archive path is '
          'required.', path
        )
    # archive paths are always relative
    archive_path = archive_path.lstrip('/')
    current = self._files.get(archive_path)
    if current and current != path and not overwrite:
      raise HadoopDslError(
        'Archive path %r is already used by %r.', archive_path, current
      )
    self._files[archive_path] = path
    self._logger.debug('Added file %r as %r.', path, archive_path)

  def apply_profile(self, path):
    """Update the project's definitions from a profile file.

    :param path: Path to the profile, either absolute or relative to the
      project's `root`.

    Returns `False` if the file doesn't exist (cf.
    :meth:`~hadoopdsl.definitions.Definitions.apply_profile`).

    """
    if not osp.isabs(path) and self.root:
      path = osp.join(self.root, path)
    return self.definitions.apply_profile(path)

  def compile(self):
    """Compile all workflows.

    Returns a list of :class:`~hadoopdsl.compiler.FlowDefinition`, in the
    order the workflows were added. No flow is returned if any workflow is
    invalid.

    """
    properties = Properties(self.properties)
    return [compile_workflow(wf, properties) for wf in self._workflows]

  def build(self, path, overwrite=False):
    """Write the project archive.

    :param path: Archive path.
    :param overwrite: Replace any existing file at `path`.

    The archive holds a `.project` file, a `.flow` file per workflow and the
    files added to the project. Nothing is written if a workflow is invalid.

    """
    if osp.exists(path) and not overwrite:
      raise HadoopDslError('Path %r already exists.', path)
    if not self._workflows:
      raise HadoopDslError('Project %s has no workflows.', self.name)
    flows = self.compile()
    with ZipFile(path, 'w', ZIP_DEFLATED) as writer:
      writer.writestr('%s.project' % (self.name, ), PROJECT_FILE_CONTENTS)
      for flow in flows:
        writer.writestr('%s.flow' % (flow.name, ), flow.to_yaml())
      for archive_path in sorted(self._files):
        writer.write(self._files[archive_path], archive_path)
    self._logger.info(
      'Built %s flows and %s files into %s.',
      len(flows), len(self._files), path
    )

  @classmethod
  def load(cls, path, new=False):
    """Import a module (or package) and collect the projects it registers.

    :param path: Path to the module.
    :param new: Only return the projects registered by this import, rather
      than all registered projects.

    Returns a dictionary of projects keyed by name. Projects instantiated with
    `register=False` are never returned.

    """
    if not path:
      raise ImportError('Invalid project module path: %r' % (path, ))
    directory, filename = osp.split(osp.abspath(path).rstrip(os.sep))
    module_name = osp.splitext(filename)[0]
    _logger.debug('Importing %s from %s.', module_name, directory)
    # registrations are captured separately to detect redefinitions
    previous, cls._registry = cls._registry, {}
    sys.path.insert(0, directory)
    try:
      import_module(module_name)
    finally:
      sys.path.remove(directory)
      loaded, cls._registry = cls._registry, previous
    clashes = sorted(set(loaded) & set(previous))
    if clashes:
      _logger.warning(
        'Projects redefined by %s: %s', path, ', '.join(clashes)
      )
    cls._registry.update(loaded)
    _logger.info(
      'Loaded %s projects from %s: %s',
      len(loaded), path, ', '.join(sorted(loaded))
    )
    return dict(loaded) if new else dict(cls._registry)
