#!/usr/bin/env python
# encoding: utf-8

"""Workflow definition module."""

from .util import Adapter, HadoopDslError, Properties, read_properties
import logging as lg


_logger = lg.getLogger(__name__)


class PropertyFile(object):

  """Named set of properties shared by jobs and workflows.

  :param name: Property file name.
  :param \*options: Dictionaries of properties (later ones take precedence).

  Property files are referenced, not owned: the same instance can be added to
  any number of jobs and workflows.

  """

  def __init__(self, name, *options):
    self.name = name
    self.properties = Properties(*options)

  def __repr__(self):
    return '<%s(name=%r)>' % (self.__class__.__name__, self.name)

  def set(self, *options, **kwargs):
    """Set properties, overriding any previous definitions."""
    self.properties = self.properties.merge(*(options + (kwargs, )))
    return self

  @classmethod
  def from_path(cls, name, *paths):
    """Load a property file from `.properties` files on disk.

    :param name: Property file name.
    :param \*paths: Paths to `.properties` files, later ones overriding
      earlier ones.

    """
    return cls(name, read_properties(*paths))


class Workflow(object):

  """Workflow of jobs and embedded workflows.

  :param name: Workflow name. It is also the name of the workflow's own node,
    which depends on the workflow's targets.
  :param condition: Execution condition of the workflow when it is embedded in
    another one (cf. :class:`~hadoopdsl.job.Job`).
  :param \*options: Dictionaries of workflow level properties, inherited by
    all the jobs it contains.

  Jobs and embedded workflows keep their declaration order, which is also the
  order of the nodes in the compiled flow.

  """

  def __init__(self, name, *options, condition=None):
    self.name = name
    self.condition = condition
    self.properties = Properties(*options)
    self.property_files = []
    self.dependencies = []
    self._targets = []
    self._nodes = []
    self._logger = Adapter(repr(self), _logger)

  def __repr__(self):
    return '<%s(name=%r)>' % (self.__class__.__name__, self.name)

  def __str__(self):
    return self.name

  @property
  def nodes(self):
    """List of `(name, node)` tuples in declaration order.

    Nodes are either :class:`~hadoopdsl.job.Job` or :class:`Workflow`
    instances. Use :meth:`add_job` and :meth:`add_workflow` to add nodes.

    """
    return list(self._nodes)

  @property
  def jobs(self):
    """Dictionary of jobs, keyed by name."""
    return dict(t for t in self._nodes if not isinstance(t[1], Workflow))

  @property
  def workflows(self):
    """Dictionary of embedded workflows, keyed by name."""
    return dict(t for t in self._nodes if isinstance(t[1], Workflow))

  @property
  def targets(self):
    """Names of the nodes the workflow's own node depends on."""
    return list(self._targets)

  def add_job(self, name, job):
    """Include a job in the workflow.

    :param name: Name assigned to job, unique in this workflow.
    :param job: :class:`~hadoopdsl.job.Job` instance.

    Name collisions are reported when the workflow is compiled.

    """
    self._nodes.append((name, job))
    self._logger.debug('Added job %r.', name)
    return job

  def add_workflow(self, workflow):
    """Embed a workflow.

    :param workflow: :class:`Workflow` instance. Its dependencies (cf.
      :meth:`depends`) refer to nodes of this workflow.

    """
    if workflow is self:
      raise HadoopDslError('Cannot embed workflow %r in itself.', self.name)
    self._nodes.append((workflow.name, workflow))
    self._logger.debug('Embedded workflow %r.', workflow.name)
    return workflow

  def add_property_file(self, property_file):
    """Reference a property file, inherited by all nodes of the workflow.

    :param property_file: :class:`PropertyFile` instance.

    """
    self.property_files.append(property_file)
    return self

  def set(self, *options, **kwargs):
    """Set workflow level properties."""
    self.properties = self.properties.merge(*(options + (kwargs, )))
    return self

  def target(self, *names):
    """Declare targets, the nodes with no downstream dependents.

    :param \*names: Job or workflow names.

    """
    for name in names:
      if name not in self._targets:
        self._targets.append(name)
    return self

  def depends(self, *names):
    """Declare dependencies of this workflow inside its parent workflow.

    :param \*names: Names of nodes of the enclosing workflow.

    """
    for name in names:
      if name not in self.dependencies:
        self.dependencies.append(name)
    return self

  def inherited_properties(self, *inherited):
    """Properties passed down to the nodes of this workflow.

    :param \*inherited: Dictionaries inherited from the enclosing scopes.

    """
    sources = list(inherited)
    sources.extend(pf.properties for pf in self.property_files)
    sources.append(self.properties)
    return Properties(*sources)

  def own_properties(self):
    """Properties defined at this workflow's level (its flow config)."""
    return self.inherited_properties()
