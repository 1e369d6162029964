#!/usr/bin/env python
# encoding: utf-8

"""Job definition module."""

from .util import Properties, split_names


class Job(object):

  """Base job.

  :param options: tuple of dictionaries. The final job properties are built
    from this tuple by keeping the latest definition of each option.
    Furthermore, any nested dictionary will be flattened (combining keys with
    `'.'`). A `'type'` option sets the job type and a comma separated
    `'dependencies'` option is equivalent to calling :meth:`depends`.
  :param dependencies: Names of the jobs (or embedded workflows) of the same
    workflow this job depends on.
  :param required: Names of parameters which must be defined once all property
    files are applied to this job.
  :param condition: Execution condition, either one of the macros in
    :data:`~hadoopdsl.compiler.CONDITION_MACROS` (e.g. `'all_done'` to run
    regardless of the upstream outcome) or an expression such as
    `'${upstream:param} == 1'`.
  :param property_files: :class:`~hadoopdsl.workflow.PropertyFile` instances
    whose properties this job inherits. Later files override earlier ones and
    the job's own options override all of them.

  Jobs are named when they are added to a workflow (cf.
  :meth:`~hadoopdsl.workflow.Workflow.add_job`), the same instance can be added
  under different names or to different workflows.

  """

  job_type = None

  def __init__(self, *options, dependencies=None, required=None,
    condition=None, property_files=None):
    self.options = Properties()
    self.type = self.job_type
    self.dependencies = []
    self.required = []
    self.condition = condition
    self.property_files = []
    self.set(*options)
    self.depends(*(dependencies or []))
    self.require(*(required or []))
    for property_file in property_files or []:
      self.add_property_file(property_file)

  def __repr__(self):
    return '<%s(type=%r)>' % (self.__class__.__name__, self.type)

  def depends(self, *names):
    """Declare dependencies on other nodes of the same workflow.

    :param \*names: Job or workflow names. Duplicates are ignored.

    Returns the job itself to allow chaining.

    """
    for name in names:
      if name not in self.dependencies:
        self.dependencies.append(name)
    return self

  def require(self, *names):
    """Declare required parameters.

    :param \*names: Parameter names.

    """
    for name in names:
      if name not in self.required:
        self.required.append(name)
    return self

  def set(self, *options, **kwargs):
    """Set properties, overriding any previous definitions.

    :param \*options: Dictionaries of properties.
    :param \*\*kwargs: Properties whose keys are valid python identifiers.

    As in the constructor, `'type'` and `'dependencies'` options update the
    job's type and dependencies rather than its properties.

    """
    options = Properties(*(options + (kwargs, )))
    job_type = options.pop('type', None)
    if job_type:
      self.type = job_type
    dependencies = options.pop('dependencies', None) or []
    if isinstance(dependencies, str):
      dependencies = split_names(dependencies)
    self.depends(*dependencies)
    self.options = self.options.merge(options)
    return self

  def add_property_file(self, property_file):
    """Reference a property file.

    :param property_file: :class:`~hadoopdsl.workflow.PropertyFile` instance.

    """
    self.property_files.append(property_file)
    return self

  def resolve_properties(self, *inherited):
    """Properties visible to this job once compiled.

    :param \*inherited: Dictionaries inherited from enclosing scopes, in
      increasing order of precedence. They are all overridden by the job's
      property files, themselves overridden by the job's own options.

    """
    sources = list(inherited)
    sources.extend(pf.properties for pf in self.property_files)
    sources.append(self.options)
    return Properties(*sources)

  def join_option(self, option, sep, formatter='%s'):
    """Helper method to join iterable options into a string.

    :param option: Option key. If the option doesn't exist, this method does
      nothing.
    :param sep: Separator used to concatenate the string.
    :param formatter: Pattern used to format the option values.

    """
    values = self.options.get(option, None)
    if values and not isinstance(values, str):
      self.options[option] = sep.join(formatter % (v, ) for v in values)

  def join_prefix(self, prefix, sep, formatter):
    """Helper method to join options starting with a prefix into a string.

    :param prefix: Option prefix.
    :param sep: Separator used to concatenate the string.
    :param formatter: String formatter. It is formatted using the tuple
      `(suffix, value)` where `suffix` is the part of `key` after `prefix`.

    For example `{'jvm.args': {'foo': 48}}` joined with `'-D%s=%s'` becomes
    `{'jvm.args': '-Dfoo=48'}`.

    """
    prefix = prefix.rstrip('.')
    opts = []
    for key in list(self.options):
      if key.startswith('%s.' % (prefix, )):
        opts.append((key[len(prefix) + 1:], self.options.pop(key)))
    if opts:
      self.options[prefix] = sep.join(formatter % a for a in sorted(opts))


class NoopJob(Job):

  """Job which does nothing, typically used to group dependencies."""

  job_type = 'noop'


class CommandJob(Job):

  """Job running a shell command.

  :param command: Command this job uses. Lists of commands are spread over
    `command`, `command.1`, `command.2`, ... options, which Azkaban runs in
    order.
  :param \*options: Cf. :class:`Job`.
  :param \*\*kwargs: Cf. :class:`Job`.

  """

  job_type = 'command'

  def __init__(self, command, *options, **kwargs):
    super(CommandJob, self).__init__(*options, **kwargs)
    commands = [command] if isinstance(command, str) else list(command)
    for index, value in enumerate(commands):
      self.options['command.%s' % (index, ) if index else 'command'] = value


class PigJob(Job):

  """Job running a pig script.

  :param script: Path to the pig script (relative to the project archive).
  :param \*options: Cf. :class:`Job`.
  :param \*\*kwargs: Cf. :class:`Job`.

  JVM args can be specified as a dictionary: `{'jvm.args': {'foo': 1}}` will
  be converted to `jvm.args=-Dfoo=1`. Pig parameters are similarly set via
  `{'param': {'name': 'value'}}`, kept as `param.name=value` options.

  """

  job_type = 'pig'

  def __init__(self, script, *options, **kwargs):
    super(PigJob, self).__init__(*options, **kwargs)
    # absolute archive paths get trimmed
    self.options['pig.script'] = script.lstrip('/')
    self.join_prefix('jvm.args', ' ', '-D%s=%s')


class HadoopJavaJob(Job):

  """Job running a java class with the hadoopJava job type.

  :param job_class: Fully qualified name of the class.
  :param \*options: Cf. :class:`Job`.
  :param \*\*kwargs: Cf. :class:`Job`.

  """

  job_type = 'hadoopJava'

  def __init__(self, job_class, *options, **kwargs):
    super(HadoopJavaJob, self).__init__(*options, **kwargs)
    self.options['job.class'] = job_class
    self.join_prefix('jvm.args', ' ', '-D%s=%s')
    self.join_option('classpath', ',')
