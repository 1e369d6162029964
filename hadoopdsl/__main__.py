#!/usr/bin/env python
# encoding: utf-8

"""Hadoop DSL command line interface.

Usage:
  hadoopdsl build [-rp PROJECT] [-o OPTION ...] PATH
  hadoopdsl info [-p PROJECT] [-o OPTION ...] [WORKFLOW]
  hadoopdsl upload [-cp PROJECT] [-a ALIAS | -u URL] [-o OPTION ...]
  hadoopdsl status [-p PROJECT] [-a ALIAS | -u URL] [-d | -f FLOWS]
  hadoopdsl -h | --help | -l | --log | -v | --version

Commands:
  build*                        Compile the project's workflows and write the
                                archive to PATH.
  info*                         Print the compiled flow definitions.
  upload*                       Compile the project's workflows and upload the
                                archive to Azkaban.
  status                        Show the latest execution of each of the
                                project's flows.

Arguments:
  PATH                          Archive path. When it is a directory, the
                                archive is written there as
                                `<project>[-<version>].zip`.
  WORKFLOW                      Only print this workflow's flow.

Options:
  -a ALIAS --alias=ALIAS        Server alias, as configured in
                                `~/.hadoopdslrc`. Session IDs are cached per
                                server.
  -c --create                   Create the project on the server if missing.
  -d --detailed                 List the jobs of every flow instead of
                                summarizing each flow in a single row.
  -f FLOWS --flows=FLOWS        Comma separated flows whose jobs are listed.
  -h --help                     Print this message.
  -l --log                      Print the path of the log file.
  -o OPTION --option=OPTION     Project property, either `key=value` or the
                                path of a `.properties` file. Options override
                                the properties defined by the project itself.
  -p PROJECT --project=PROJECT  Project name, or path of the python module
                                defining it. Starred commands need the module.
                                Use `module:name` to pick one of several
                                projects defined in the same module.
  -r --replace                  Replace any file already at PATH.
  -u URL --url=URL              Server URL, `[user@]host[:port]` optionally
                                preceded by a scheme (`http://` by default).
                                The user defaults to the current one.
  -v --version                  Print the version.

The module and alias used when omitted are set by the `default.project` and
`default.alias` options of the `hadoopdsl` section of `~/.hadoopdslrc`. Flows
summarized by `status` default to the `default.flows` option of its `status`
section, and otherwise to all of the project's flows. Its `dr.elephant.url`
option adds links to Dr. Elephant reports below detail tables.

Exits with status 1 on error.

"""

from docopt import docopt
from requests.exceptions import HTTPError
from hadoopdsl import __version__
from hadoopdsl.project import Project
from hadoopdsl.remote import Session
from hadoopdsl.status import fetch_flow_status
from hadoopdsl.util import (Config, HadoopDslError, Properties, RemoteError,
  exit_on_error, human_readable, read_properties, temppath)
import logging as lg
import os
import os.path as osp
import sys


_logger = lg.getLogger(__name__)


def _forward(args, names):
  """Keyword arguments for a command, from the parsed arguments.

  :param args: Output of `docopt.docopt`.
  :param names: Arguments to keep. `--flows` is forwarded as `_flows`,
    `PATH` as `_path`.

  """
  kwargs = {}
  for name in names:
    key = name.lstrip('-').lower().replace('-', '_')
    kwargs['_%s' % (key, )] = args[name]
  return kwargs

def _parse_option(_option):
  """Properties passed via `--option`.

  :param _option: List of `key=value` strings and `.properties` paths. Files
    are read first, explicit values override them.

  """
  assignments = [opt for opt in _option if '=' in opt]
  opts = read_properties(*(opt for opt in _option if '=' not in opt))
  for assignment in assignments:
    key, value = assignment.split('=', 1)
    opts[key] = value
  return opts

def _parse_project(_project, require_project=False):
  """Resolve `--project` into a `(name, project)` tuple.

  :param _project: `--project` argument, falling back to the configured
    `default.project` (or `jobs`).
  :param require_project: Raise an error rather than returning a `None`
    project when no module is found.

  A `module:name` argument selects a project from a module. A path to a
  module must define exactly one registered project. Anything else is taken
  as a bare project name, which is enough for commands that only talk to the
  server.

  """
  default = Config().get_option('hadoopdsl', 'default.project', 'jobs')
  _project = _project or default
  if ':' in _project:
    path, name = _project.rsplit(':', 1)
    path = path or default
  else:
    path, name = _project, None
  if not (osp.exists(path) or osp.exists('%s.py' % (path, ))):
    if name or require_project:
      raise HadoopDslError(
        'No project module found at %r. Use `--project` to specify another '
        'location.', path
      )
    return path, None
  projects = Project.load(path, new=True)
  if name:
    if name not in projects:
      raise HadoopDslError(
        'Project %r not found in %r. Available projects: %s', name, path,
        ', '.join(sorted(projects)) or 'none'
      )
    return name, projects[name]
  if len(projects) != 1:
    raise HadoopDslError(
      '%s registered projects found in %r, exactly one is required. Use '
      '`--project=module:name` to select one.', len(projects), path
    )
  return projects.popitem()

def _load_project(_project, _option=None):
  """Load the project a command operates on.

  :param _project: `--project` argument.
  :param _option: `--option` argument, its properties override the project's.

  """
  project = _parse_project(_project, require_project=True)[1]
  if _option:
    project.properties = Properties(
      project.properties, _parse_option(_option)
    )
  return project

def _get_session(url, alias):
  """Session for `--url` if given, else for `--alias` (or the default one).

  :param url: `--url` argument.
  :param alias: `--alias` argument.

  """
  config = Config()
  if url:
    return Session(url=url, config=config)
  alias = alias or config.get_option('hadoopdsl', 'default.alias')
  return Session.from_alias(alias=alias, config=config)

def _upload_zip(session, name, path, create=False, archive_name=None):
  """Upload an archive, creating the project first if needed.

  :param session: :class:`~hadoopdsl.remote.Session`.
  :param name: Project name.
  :param path: Archive path.
  :param create: Create the project if the server reports it as missing.
  :param archive_name: Archive name recorded by the server.

  """
  try:
    return session.upload_project(name, path, archive_name=archive_name)
  except RemoteError as err:
    if not (create and err.message.endswith("doesn't exist.")):
      raise
  except HTTPError as err:
    status = err.response.status_code
    if status == 400:
      raise HadoopDslError(
        'Upload of %s rejected (HTTP 400). Check that the project exists, '
        'is not locked, and that you are allowed to write to it.', name
      )
    if status == 401:
      raise HadoopDslError(
        'Not allowed to upload %s (HTTP 401). Check that you are allowed to '
        'write to it.', name
      )
    if not (create and status == 410):
      raise
  _logger.info('Project %s is missing, creating it.', name)
  session.create_project(name, name)
  return session.upload_project(name, path, archive_name=archive_name)

def build_project(project, _path, _replace):
  """Write the project's archive."""
  if osp.isdir(_path):
    _path = osp.join(_path, '%s.zip' % (project.versioned_name, ))
  project.build(_path, overwrite=_replace)
  sys.stdout.write(
    'Project %s successfully built as %s (%s).\n'
    % (project, _path, human_readable(osp.getsize(_path)))
  )

def view_info(project, _workflow):
  """Print the compiled flows, or only one of them."""
  if _workflow:
    project.workflows[_workflow] # raises if missing, before compiling
  for flow in project.compile():
    if _workflow in (None, flow.name):
      sys.stdout.write('# %s.flow\n%s' % (flow.name, flow.to_yaml()))

def upload_project(project, _url, _alias, _create):
  """Build the archive and upload it."""
  with temppath() as path:
    project.build(path)
    session = _get_session(_url, _alias)
    res = _upload_zip(
      session,
      project.name,
      path,
      create=_create,
      archive_name='%s.zip' % (project.versioned_name, ),
    )
    size = human_readable(osp.getsize(path))
  sys.stdout.write(
    'Project %s successfully uploaded (id: %s, version: %s, size: %s).\n'
    'Details at %s/manager?project=%s\n'
    % (project, res['projectId'], res['version'], size, session.url, project)
  )

def view_status(_project, _url, _alias, _detailed, _flows):
  """Print the status of the project's latest executions."""
  name, project = _parse_project(_project)
  config = Config()
  default_flows = config.get_list_option('status', 'default.flows')
  if not default_flows and project:
    default_flows = sorted(project.workflows)
  if _detailed and _flows is None:
    _flows = '' # all flows, one table each
  report = fetch_flow_status(
    _get_session(_url, _alias),
    name,
    flow_filter=_flows,
    default_flows=default_flows,
    dr_elephant_url=config.get_option('status', 'dr.elephant.url', '') or None,
  )
  sys.stdout.write(report.render())

@exit_on_error(HadoopDslError)
def main(argv=None):
  """Entry point."""
  root_logger = lg.getLogger()
  root_logger.setLevel(lg.DEBUG)
  handler = Config().get_file_handler('hadoopdsl')
  if handler:
    root_logger.addHandler(handler)
  argv = sys.argv[1:] if argv is None else argv
  _logger.debug('Running `hadoopdsl %s` in %s.', ' '.join(argv), os.getcwd())
  args = docopt(__doc__, argv=argv, version=__version__)
  if args['--log']:
    if not handler:
      raise HadoopDslError('No log file active.')
    sys.stdout.write('%s\n' % (handler.baseFilename, ))
  elif args['build']:
    build_project(
      _load_project(args['--project'], args['--option']),
      **_forward(args, ['PATH', '--replace'])
    )
  elif args['info']:
    view_info(
      _load_project(args['--project'], args['--option']),
      **_forward(args, ['WORKFLOW'])
    )
  elif args['upload']:
    upload_project(
      _load_project(args['--project'], args['--option']),
      **_forward(args, ['--url', '--alias', '--create'])
    )
  elif args['status']:
    view_status(
      **_forward(
        args, ['--project', '--url', '--alias', '--detailed', '--flows']
      )
    )

if __name__ == '__main__':
  main()
