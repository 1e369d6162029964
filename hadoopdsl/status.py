#!/usr/bin/env python
# encoding: utf-8

"""Flow status module.

Fetches the most recent execution of each flow in a project and builds
reports out of them: either a summary table with one row per flow (and the
number of jobs in each status), or one detail table per flow listing its jobs.

Reports are plain table models, :meth:`Report.render` turns them into text.

"""

from collections import namedtuple
from datetime import datetime
from time import time
from urllib.parse import quote_plus
from .util import RemoteError, split_names
import logging as lg


_logger = lg.getLogger(__name__)

#: Job statuses, in the order they are displayed.
STATUS_LABELS = (
  'READY',
  'QUEUED',
  'PREPARING',
  'RUNNING',
  'PAUSED',
  'SUCCEEDED',
  'FAILED',
  'FAILED_FINISHING',
  'KILLING',
  'KILLED',
  'CANCELLED',
  'SKIPPED',
  'DISABLED',
)

NO_FLOWS_MESSAGE = 'No flows defined in current project'
NO_EXECUTIONS_MESSAGE = 'Project %s has no previously executed flows.'
NO_EXECUTION_YET = 'No execution yet.'


class StatusTally(object):

  """Number of jobs in each status."""

  def __init__(self):
    self._counts = dict((label, 0) for label in STATUS_LABELS)

  def __repr__(self):
    return '<%s(%s)>' % (
      self.__class__.__name__,
      ', '.join('%s=%s' % t for t in sorted(self._counts.items()) if t[1]),
    )

  def __getitem__(self, label):
    return self._counts.get(label, 0)

  def increment(self, label):
    """Count one more job with this status.

    :param label: Status label. Unknown labels are counted as well but don't
      appear in :meth:`values`.

    """
    if label not in self._counts:
      _logger.debug('Unknown job status %r.', label)
      self._counts[label] = 0
    self._counts[label] += 1

  def values(self):
    """Counts, in the order of :meth:`labels`."""
    return [self._counts[label] for label in STATUS_LABELS]

  @staticmethod
  def labels():
    """All recognized status labels, in a fixed order."""
    return list(STATUS_LABELS)


class JobStatus(namedtuple(
  'JobStatus',
  'name type status start_time end_time',
)):

  """Status of a job inside a flow execution."""

  __slots__ = ()

  @classmethod
  def from_json(cls, dct):
    """Build from a node of an Azkaban `fetchexecflow` response."""
    return cls(
      name=dct.get('id'),
      type=dct.get('type'),
      status=dct.get('status'),
      start_time=dct.get('startTime', -1),
      end_time=dct.get('endTime', -1),
    )


class ExecutionStatus(namedtuple(
  'ExecutionStatus',
  'flow exec_id status submit_time start_time end_time jobs',
)):

  """Status of a flow execution."""

  __slots__ = ()

  @classmethod
  def from_json(cls, dct):
    """Build from an Azkaban `fetchexecflow` response.

    :param dct: Decoded response.

    """
    return cls(
      flow=dct.get('flow') or dct.get('flowId'),
      exec_id=dct.get('execid'),
      status=dct.get('status'),
      submit_time=dct.get('submitTime', -1),
      start_time=dct.get('startTime', -1),
      end_time=dct.get('endTime', -1),
      jobs=tuple(JobStatus.from_json(node) for node in dct.get('nodes') or []),
    )

  def tally(self):
    """:class:`StatusTally` of this execution's jobs."""
    tally = StatusTally()
    for job in self.jobs:
      tally.increment(job.status)
    return tally


class Table(object):

  """Text table.

  :param title: Line displayed above the table.
  :param headers: Column headers.
  :param rows: List of rows, each a list of values (one per header).
  :param notes: Lines displayed below the table.

  """

  def __init__(self, title, headers=None, rows=None, notes=None):
    self.title = title
    self.headers = list(headers or [])
    self.rows = [list(row) for row in rows or []]
    self.notes = list(notes or [])

  def __repr__(self):
    return '<%s(title=%r, rows=%s)>' % (
      self.__class__.__name__, self.title, len(self.rows)
    )

  def render(self):
    """Text representation."""
    widths = [len(str(header)) for header in self.headers]
    for row in self.rows:
      for index, cell in enumerate(row):
        widths[index] = max(widths[index], len(str(cell)))
    rule = '-' * max(
      len(self.title), sum(widths) + 2 * max(0, len(widths) - 1)
    )
    parts = [self.title, rule]
    if self.headers:
      parts.append(_format_row(self.headers, widths))
      parts.append(rule)
      parts.extend(_format_row(row, widths) for row in self.rows)
      parts.append(rule)
    parts.extend(self.notes)
    return '\n'.join(parts) + '\n'


class Report(object):

  """Result of a status query.

  :param message: Message displayed when there is nothing to tabulate.
  :param tables: List of :class:`Table`.

  """

  def __init__(self, message=None, tables=None):
    self.message = message
    self.tables = list(tables or [])

  def __repr__(self):
    return '<%s(message=%r, tables=%s)>' % (
      self.__class__.__name__, self.message, len(self.tables)
    )

  def render(self):
    """Text representation."""
    if self.message:
      return '%s\n' % (self.message, )
    return '\n'.join(table.render() for table in self.tables)


def get_sorted_flows(session, project):
  """Names of all flows in a project, sorted.

  :param session: :class:`~hadoopdsl.remote.Session`.
  :param project: Project name.

  """
  try:
    res = session.get_workflows(project)
  except RemoteError as err:
    raise RemoteError(
      'Fetching flows from %s failed. Reason: %s', session.url, err
    )
  return sorted(flow['flowId'] for flow in res.get('flows') or [])

def get_latest_execution_ids(session, project, flows):
  """Most recent execution ID of each flow.

  :param session: :class:`~hadoopdsl.remote.Session`.
  :param project: Project name.
  :param flows: Flow names.

  Returns a dictionary keyed by flow name, with value `None` for flows which
  were never executed. Flows whose executions couldn't be fetched are logged
  and left out.

  """
  exec_ids = {}
  for flow, res in session.get_latest_executions(project, flows).items():
    if isinstance(res, Exception):
      _logger.error('Could not get executions of flow %s: %s', flow, res)
      continue
    executions = res.get('executions') or []
    exec_ids[flow] = executions[0]['execId'] if executions else None
  return exec_ids

def get_executions(session, exec_ids):
  """Status of the executions of several flows.

  :param session: :class:`~hadoopdsl.remote.Session`.
  :param exec_ids: Dictionary of execution IDs keyed by flow name (`None`
    values are ignored).

  Returns a dictionary of :class:`ExecutionStatus` keyed by flow name.
  Executions which couldn't be fetched are logged and left out.

  """
  flows = dict((exec_id, flow) for flow, exec_id in exec_ids.items())
  flows.pop(None, None)
  executions = {}
  for exec_id, res in session.get_execution_statuses(list(flows)).items():
    if isinstance(res, Exception):
      _logger.error('Could not get status of execution %s: %s', exec_id, res)
      continue
    executions[flows[exec_id]] = ExecutionStatus.from_json(res)
  return executions

def select_flows(flows, flow_filter=None, default_flows=None):
  """Flows to report on.

  :param flows: All flows in the project.
  :param flow_filter: Comma separated string (or list) of flow names. Takes
    precedence if it contains at least one name.
  :param default_flows: List of flow names used if there is no filter.

  """
  if flow_filter:
    if isinstance(flow_filter, str):
      names = split_names(flow_filter)
    else:
      names = split_names(','.join(flow_filter))
    if names:
      return names
  if default_flows:
    return list(default_flows)
  return list(flows)

def build_flow_summary(flows, executions):
  """Table with the status of the latest execution of each flow.

  :param flows: Flow names, one row each.
  :param executions: Dictionary of :class:`ExecutionStatus` keyed by flow.

  """
  rows = []
  for flow in flows:
    execution = executions.get(flow)
    if execution is None:
      rows.append([flow, 'NONE', '-'] + [0] * len(STATUS_LABELS))
    else:
      rows.append(
        [flow, execution.exec_id, execution.status] +
        execution.tally().values()
      )
  return Table(
    title='Job Statistics for individual flow',
    headers=['Flow Name', 'Latest Exec ID', 'Status'] + StatusTally.labels(),
    rows=rows,
  )

def build_job_details(flows, executions, execution_url=None, now=None,
  dr_elephant_url=None):
  """Tables with the status of each job of the latest execution of each flow.

  :param flows: Flow names, one table each.
  :param executions: Dictionary of :class:`ExecutionStatus` keyed by flow.
  :param execution_url: Function returning the URL of an execution from its
    ID, used to add a link below each table.
  :param now: Timestamp (in seconds) used to compute the elapsed time of
    unfinished executions. Defaults to the current time.
  :param dr_elephant_url: Base URL of a Dr. Elephant server. When set (and
    `execution_url` too), each table also links to the execution's
    performance report.

  """
  tables = []
  for flow in flows:
    execution = executions.get(flow)
    if execution is None:
      tables.append(
        Table(title='Flow: %s' % (flow, ), notes=[NO_EXECUTION_YET])
      )
      continue
    title = ' | '.join([
      'Flow: %s' % (flow, ),
      'Exec Id: %s' % (execution.exec_id, ),
      'Status: %s' % (execution.status, ),
      'Submitted: %s' % (format_time(execution.submit_time), ),
      'Started: %s' % (format_time(execution.start_time), ),
      'Ended: %s' % (format_time(execution.end_time), ),
      'Elapsed: %s' % (
        format_elapsed(execution.start_time, execution.end_time, now),
      ),
    ])
    rows = [
      [
        job.name,
        job.type,
        job.status,
        format_time(job.start_time),
        format_time(job.end_time),
        format_elapsed(job.start_time, job.end_time, now),
      ]
      for job in execution.jobs
    ]
    notes = []
    if execution_url:
      url = execution_url(execution.exec_id)
      notes.append('Execution URL: %s' % (url, ))
      if dr_elephant_url is not None:
        report_url = format_dr_elephant_url(dr_elephant_url, url)
        notes.append('Dr. Elephant URL: %s' % (report_url, ))
    tables.append(Table(
      title=title,
      headers=[
        'Job Name', 'Job Type', 'Job Status', 'Job Start Time',
        'Job End Time', 'Elapsed',
      ],
      rows=rows,
      notes=notes,
    ))
  return tables

def fetch_flow_status(session, project, flow_filter=None, default_flows=None,
  detailed=None, dr_elephant_url=None):
  """Report on the latest execution of a project's flows.

  :param session: :class:`~hadoopdsl.remote.Session`.
  :param project: Project name.
  :param flow_filter: Comma separated flow names (cf. :func:`select_flows`).
  :param default_flows: Flows reported on if no filter is specified.
  :param detailed: Report on each job rather than each flow. Defaults to
    `True` when a filter is specified (even an empty one).
  :param dr_elephant_url: Dr. Elephant server linked to from detail tables
    (cf. :func:`build_job_details`).

  Returns a :class:`Report`. Errors specific to a flow or execution are
  logged and the corresponding rows left empty. A rejected session
  (:class:`~hadoopdsl.util.SessionRejected`) aborts the whole query.

  """
  flows = get_sorted_flows(session, project)
  if not flows:
    return Report(NO_FLOWS_MESSAGE)
  exec_ids = get_latest_execution_ids(session, project, flows)
  if not any(exec_id is not None for exec_id in exec_ids.values()):
    return Report(NO_EXECUTIONS_MESSAGE % (project, ))
  executions = get_executions(session, exec_ids)
  if detailed is None:
    detailed = flow_filter is not None
  targets = select_flows(flows, flow_filter, default_flows)
  if detailed:
    return Report(tables=build_job_details(
      targets, executions, session.execution_url,
      dr_elephant_url=dr_elephant_url,
    ))
  return Report(tables=[build_flow_summary(targets, executions)])

def format_time(timestamp):
  """Format an Azkaban timestamp (in milliseconds) as a local time.

  :param timestamp: Milliseconds since epoch, negative if unset.

  """
  if timestamp is None or int(timestamp) <= 0:
    return '-'
  return datetime.fromtimestamp(int(timestamp) / 1000.).strftime(
    '%Y-%m-%d %H:%M:%S'
  )

def format_elapsed(start_time, end_time, now=None):
  """Format the time elapsed between two Azkaban timestamps.

  :param start_time: Start, in milliseconds since epoch.
  :param end_time: End, in milliseconds since epoch. If unset, the current
    time is used.
  :param now: Current time in seconds, mostly used by tests.

  """
  if start_time is None or int(start_time) <= 0:
    return '-'
  if end_time is None or int(end_time) <= 0:
    end_time = 1000 * (time() if now is None else now)
  seconds = max(0, int((int(end_time) - int(start_time)) / 1000))
  return '%d:%02d:%02d' % (seconds // 3600, seconds // 60 % 60, seconds % 60)

def _format_row(cells, widths):
  """Left aligned cells, padded to the column widths."""
  return '  '.join(
    str(cell).ljust(width) for cell, width in zip(cells, widths)
  ).rstrip()

def format_dr_elephant_url(base_url, execution_url):
  """Link to the Dr. Elephant report of an execution.

  :param base_url: Dr. Elephant server URL. If empty, the returned link is
    relative.
  :param execution_url: Azkaban execution URL.

  """
  return '%s/search?flow-exec-id=%s' % (
    base_url.rstrip('/'), quote_plus(execution_url)
  )
