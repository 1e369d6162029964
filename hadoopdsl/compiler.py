#!/usr/bin/env python
# encoding: utf-8

"""Flow compilation module.

Workflows are compiled into Azkaban flow definitions (the "Flow 2.0" YAML
format): a config mapping followed by the ordered list of the workflow's nodes.
Embedded workflows become nodes of type `flow` holding their own nodes.

"""

from collections import namedtuple
from .util import Properties, ValidationError
from .workflow import Workflow
import logging as lg
import re
import yaml


_logger = lg.getLogger(__name__)

#: Conditions on the status of a node's parents supported by Azkaban.
CONDITION_MACROS = (
  'all_success', 'all_failed', 'all_done', 'one_success', 'one_failed',
)

_reference_p = re.compile(r'\$\{([^:}]+):[^}]*\}')

# visitation states used for cycle detection
_UNVISITED, _IN_PROGRESS, _DONE = range(3)


class Node(namedtuple('Node', 'name type depends_on condition config nodes')):

  """Compiled job or embedded workflow.

  :param name: Node name, unique in its flow.
  :param type: Job type (`'flow'` for embedded workflows).
  :param depends_on: Tuple of names of nodes of the same flow.
  :param condition: Execution condition or `None`.
  :param config: Dictionary of properties.
  :param nodes: Tuple of nested nodes, only non-empty for embedded workflows.

  """

  __slots__ = ()

  def to_dict(self):
    """Dictionary representation, omitting empty fields."""
    dct = {'name': self.name, 'type': self.type}
    if self.depends_on:
      dct['dependsOn'] = list(self.depends_on)
    if self.condition:
      dct['condition'] = self.condition
    if self.config:
      dct['config'] = dict(self.config)
    if self.nodes:
      dct['nodes'] = [node.to_dict() for node in self.nodes]
    return dct


class FlowDefinition(object):

  """Compiled workflow.

  :param name: Flow name.
  :param config: Flow level properties.
  :param nodes: Ordered nodes. The last one is the flow's own node.

  Instances should be created via :func:`compile_workflow`.

  """

  def __init__(self, name, config, nodes):
    self.name = name
    self._config = dict(config)
    self._nodes = tuple(nodes)

  def __repr__(self):
    return '<%s(name=%r)>' % (self.__class__.__name__, self.name)

  @property
  def config(self):
    """Flow level properties."""
    return dict(self._config)

  @property
  def nodes(self):
    """Tuple of :class:`Node`."""
    return self._nodes

  def get_node(self, name):
    """Get a top-level node by name.

    :param name: Node name.

    """
    for node in self._nodes:
      if node.name == name:
        return node
    raise KeyError(name)

  def to_dict(self):
    """Dictionary representation, config first."""
    return {
      'config': dict(self._config),
      'nodes': [node.to_dict() for node in self._nodes],
    }

  def to_yaml(self, path=None):
    """Serialize the flow.

    :param path: Optional file path. Any existing file will be overwritten.

    Returns the YAML string.

    """
    contents = yaml.safe_dump(
      self.to_dict(),
      default_flow_style=False,
      sort_keys=False,
    )
    if path:
      with open(path, 'w') as writer:
        writer.write(contents)
    return contents


def compile_workflow(workflow, properties=None):
  """Compile a workflow into a flow definition.

  :param workflow: :class:`~hadoopdsl.workflow.Workflow` instance.
  :param properties: Dictionary of project level properties, inherited by all
    jobs and included in the flow's config.

  Raises :class:`~hadoopdsl.util.ValidationError` if the workflow (or any of
  the workflows it embeds) is invalid. Nothing is returned in that case.

  """
  _logger.debug('Compiling workflow %r.', workflow.name)
  inherited = Properties(properties or {})
  nodes = _compile_nodes(workflow, inherited)
  config = workflow.inherited_properties(inherited)
  _logger.info('Compiled workflow %r (%s nodes).', workflow.name, len(nodes))
  return FlowDefinition(workflow.name, config, nodes)

def _compile_nodes(workflow, inherited):
  """Compile the nodes of a workflow, embedded workflows first.

  :param workflow: Workflow.
  :param inherited: Properties inherited from enclosing scopes.

  """
  _check_names(workflow)
  scope = workflow.inherited_properties(inherited)
  nodes = []
  for name, item in workflow.nodes:
    if isinstance(item, Workflow):
      nodes.append(Node(
        name=name,
        type='flow',
        depends_on=tuple(item.dependencies),
        condition=item.condition,
        config=dict(item.own_properties()),
        nodes=tuple(_compile_nodes(item, scope)),
      ))
    else:
      nodes.append(_compile_job(workflow, name, item, scope))
  if not workflow.targets:
    _logger.warning('Workflow %r has no targets.', workflow.name)
  nodes.append(Node(
    name=workflow.name,
    type='noop',
    depends_on=tuple(workflow.targets),
    condition=None,
    config={},
    nodes=(),
  ))
  _check_graph(workflow.name, nodes)
  return nodes

def _compile_job(workflow, name, job, scope):
  """Compile a single job.

  :param workflow: Enclosing workflow.
  :param name: Job name.
  :param job: :class:`~hadoopdsl.job.Job`.
  :param scope: Properties inherited from the enclosing workflows.

  """
  if not job.type:
    raise ValidationError(
      'Job %r in workflow %r has no type.', name, workflow.name
    )
  missing = job.resolve_properties(scope).missing(job.required)
  if missing:
    raise ValidationError(
      'Job %r in workflow %r is missing required parameters: %s.',
      name, workflow.name, ', '.join(missing)
    )
  config = job.resolve_properties()
  return Node(
    name=name,
    type=job.type,
    depends_on=tuple(job.dependencies),
    condition=job.condition,
    config=dict(config),
    nodes=(),
  )

def _check_names(workflow):
  """Check that node names are unique in a workflow.

  :param workflow: Workflow.

  """
  seen = set([workflow.name])
  for name, _ in workflow.nodes:
    if name in seen:
      raise ValidationError(
        'Duplicate node name %r in workflow %r.', name, workflow.name
      )
    seen.add(name)

def _check_graph(flow_name, nodes):
  """Check references, cycles, and conditions of a flow's nodes.

  :param flow_name: Name of the flow (also the name of its own node, the last
    one in `nodes`).
  :param nodes: List of nodes in the flow.

  """
  declared = set(node.name for node in nodes[:-1])
  for node in nodes:
    for dep in node.depends_on:
      if dep not in declared:
        if node.name == flow_name:
          raise ValidationError(
            'Target %r of workflow %r is not defined.', dep, flow_name
          )
        raise ValidationError(
          'Node %r in workflow %r depends on undefined node %r.',
          node.name, flow_name, dep
        )
  graph = dict((node.name, node.depends_on) for node in nodes)
  _check_acyclic(flow_name, graph, [node.name for node in nodes])
  for node in nodes:
    if node.condition:
      _check_condition(flow_name, node, graph)
  unreachable = declared - _ancestors(graph, flow_name)
  for node in nodes:
    if node.name in unreachable:
      _logger.warning(
        'Node %r in workflow %r is not reachable from its targets.',
        node.name, flow_name
      )

def _check_acyclic(flow_name, graph, names):
  """Depth first search for cycles.

  :param flow_name: Flow name, used in error messages.
  :param graph: Dictionary of dependencies keyed by node name.
  :param names: Node names, in the order they should be visited.

  """
  states = dict((name, _UNVISITED) for name in names)
  for start in names:
    if states[start] != _UNVISITED:
      continue
    states[start] = _IN_PROGRESS
    path = [start]
    stack = [(start, iter(graph[start]))]
    while stack:
      name, deps = stack[-1]
      for dep in deps:
        if states[dep] == _IN_PROGRESS:
          cycle = path[path.index(dep):] + [dep]
          raise ValidationError(
            'Cycle detected in workflow %r: %s.', flow_name, ' -> '.join(cycle)
          )
        if states[dep] == _UNVISITED:
          states[dep] = _IN_PROGRESS
          path.append(dep)
          stack.append((dep, iter(graph[dep])))
          break
      else:
        # all dependencies visited
        stack.pop()
        path.pop()
        states[name] = _DONE

def _ancestors(graph, name):
  """Names of all nodes a node (transitively) depends on.

  :param graph: Acyclic dependency graph.
  :param name: Node name.

  """
  ancestors = set()
  stack = list(graph[name])
  while stack:
    dep = stack.pop()
    if dep not in ancestors:
      ancestors.add(dep)
      stack.extend(graph[dep])
  return ancestors

def _check_condition(flow_name, node, graph):
  """Check that a node's condition only refers to its ancestors.

  :param flow_name: Flow name.
  :param node: Node with a condition.
  :param graph: Acyclic dependency graph.

  """
  if not node.depends_on:
    raise ValidationError(
      'Node %r in workflow %r has a condition but no dependencies.',
      node.name, flow_name
    )
  ancestors = _ancestors(graph, node.name)
  for ref in _reference_p.findall(node.condition):
    if ref not in ancestors:
      raise ValidationError(
        'Condition of node %r in workflow %r refers to %r which is not one '
        'of its ancestors.', node.name, flow_name, ref
      )
  if node.condition not in CONDITION_MACROS:
    _logger.debug(
      'Node %r in workflow %r uses condition expression %r.',
      node.name, flow_name, node.condition
    )
