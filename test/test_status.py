#!/usr/bin/env python
# encoding: utf-8

"""Test status module."""

from hadoopdsl.status import *
from hadoopdsl.remote import Session
from hadoopdsl.util import RemoteError, SessionRejected
from unittest.mock import MagicMock, patch
import pytest


def _execution(exec_id, flow, statuses, status='SUCCEEDED'):
  """Mock `fetchexecflow` response."""
  return {
    'execid': exec_id,
    'flow': flow,
    'status': status,
    'submitTime': 1000,
    'startTime': 2000,
    'endTime': 3727000,
    'nodes': [
      {
        'id': 'job%s' % (index, ),
        'type': 'command',
        'status': job_status,
        'startTime': 2000,
        'endTime': 62000,
      }
      for index, job_status in enumerate(statuses)
    ],
  }


def _session(flows=None, executions=None, statuses=None):
  """Mock session.

  :param flows: Flow names.
  :param executions: Dictionary of latest execution ID keyed by flow name.
  :param statuses: Dictionary of `fetchexecflow` responses keyed by ID.

  """
  session = MagicMock()
  session.url = 'http://server'
  session.execution_url = lambda exec_id: 'http://server/exec/%s' % (exec_id, )
  session.get_workflows.return_value = {
    'flows': [{'flowId': flow} for flow in flows or []],
  }
  session.get_latest_executions.return_value = dict(
    (flow, {'executions': [{'execId': exec_id}] if exec_id else []})
    for flow, exec_id in (executions or {}).items()
  )
  session.get_execution_statuses.side_effect = lambda exec_ids: dict(
    (exec_id, statuses[exec_id]) for exec_id in exec_ids
  )
  return session


class TestStatusTally(object):

  def test_counts(self):
    tally = StatusTally()
    for label in ['SUCCEEDED', 'FAILED', 'SUCCEEDED']:
      tally.increment(label)
    assert tally['SUCCEEDED'] == 2
    assert tally['RUNNING'] == 0
    values = tally.values()
    assert len(values) == len(StatusTally.labels())
    assert values[StatusTally.labels().index('FAILED')] == 1

  def test_unknown_label(self):
    tally = StatusTally()
    tally.increment('WEIRD')
    assert tally['WEIRD'] == 1
    assert sum(tally.values()) == 0

  def test_labels_order(self):
    assert StatusTally.labels()[:4] == [
      'READY', 'QUEUED', 'PREPARING', 'RUNNING',
    ]


class TestExecutionStatus(object):

  def test_from_json(self):
    execution = ExecutionStatus.from_json(
      _execution(3, 'foo', ['SUCCEEDED', 'KILLED'])
    )
    assert execution.exec_id == 3
    assert execution.flow == 'foo'
    assert [job.name for job in execution.jobs] == ['job0', 'job1']
    assert execution.tally()['KILLED'] == 1

  def test_from_json_without_nodes(self):
    execution = ExecutionStatus.from_json({'execid': 1, 'flowId': 'bar'})
    assert execution.flow == 'bar'
    assert execution.jobs == ()
    assert execution.start_time == -1


class TestSelectFlows(object):

  def test_filter_first(self):
    assert select_flows(['a', 'b', 'c'], 'c, b', ['a']) == ['b', 'c']

  def test_blank_filter_uses_defaults(self):
    assert select_flows(['a', 'b'], ' , ', ['b']) == ['b']

  def test_defaults(self):
    assert select_flows(['a', 'b'], None, ['b']) == ['b']

  def test_all(self):
    assert select_flows(['a', 'b'], '', []) == ['a', 'b']

  def test_list_filter(self):
    assert select_flows(['a', 'b'], ['b', 'a']) == ['a', 'b']


class TestFormat(object):

  def test_format_time_unset(self):
    assert format_time(-1) == '-'
    assert format_time(None) == '-'

  def test_format_elapsed(self):
    assert format_elapsed(2000, 3727000) == '1:02:05'

  def test_format_elapsed_unfinished(self):
    assert format_elapsed(2000, -1, now=62) == '0:01:00'

  def test_format_elapsed_unstarted(self):
    assert format_elapsed(-1, 3000) == '-'


class TestTable(object):

  def test_render(self):
    table = Table('Title', ['A', 'Long'], [['xyz', 1]], ['note'])
    assert table.render() == (
      'Title\n'
      '---------\n'
      'A    Long\n'
      '---------\n'
      'xyz  1\n'
      '---------\n'
      'note\n'
    )

  def test_render_without_headers(self):
    assert Table('Flow: a', notes=['Nothing.']).render() == (
      'Flow: a\n-------\nNothing.\n'
    )

  def test_report_message(self):
    assert Report('Hello').render() == 'Hello\n'


class TestFlowSummary(object):

  def test_missing_execution(self):
    table = build_flow_summary(['a'], {})
    assert table.rows == [['a', 'NONE', '-'] + [0] * len(STATUS_LABELS)]

  def test_headers(self):
    table = build_flow_summary([], {})
    assert table.title == 'Job Statistics for individual flow'
    assert table.headers[:3] == ['Flow Name', 'Latest Exec ID', 'Status']
    assert table.headers[3:] == list(STATUS_LABELS)

  def test_row(self):
    executions = {
      'a': ExecutionStatus.from_json(
        _execution(7, 'a', ['SUCCEEDED', 'SUCCEEDED'], 'RUNNING')
      ),
    }
    row = build_flow_summary(['a'], executions).rows[0]
    assert row[:3] == ['a', 7, 'RUNNING']
    assert row[3 + STATUS_LABELS.index('SUCCEEDED')] == 2


class TestJobDetails(object):

  def test_missing_execution(self):
    tables = build_job_details(['a'], {})
    assert tables[0].notes == [NO_EXECUTION_YET]
    assert tables[0].rows == []

  def test_rows(self):
    executions = {
      'a': ExecutionStatus.from_json(_execution(7, 'a', ['FAILED'], 'FAILED')),
    }
    table = build_job_details(
      ['a'], executions, lambda exec_id: 'url/%s' % (exec_id, )
    )[0]
    assert 'Exec Id: 7' in table.title
    assert 'Elapsed: 1:02:05' in table.title
    assert table.rows[0][:3] == ['job0', 'command', 'FAILED']
    assert table.rows[0][5] == '0:01:00'
    assert table.notes == ['Execution URL: url/7']

  def test_dr_elephant_url(self):
    executions = {'a': ExecutionStatus.from_json(_execution(7, 'a', []))}
    table = build_job_details(
      ['a'], executions, lambda exec_id: 'http://az/exec/%s' % (exec_id, ),
      dr_elephant_url='http://dr/',
    )[0]
    assert table.notes == [
      'Execution URL: http://az/exec/7',
      'Dr. Elephant URL: '
      'http://dr/search?flow-exec-id=http%3A%2F%2Faz%2Fexec%2F7',
    ]

  def test_relative_dr_elephant_url(self):
    assert format_dr_elephant_url('', 'http://az/executor?execid=1') == (
      '/search?flow-exec-id=http%3A%2F%2Faz%2Fexecutor%3Fexecid%3D1'
    )


class TestFetchFlowStatus(object):

  def test_no_flows(self):
    session = _session()
    report = fetch_flow_status(session, 'foo')
    assert report.message == NO_FLOWS_MESSAGE
    assert not session.get_latest_executions.called
    assert not session.get_execution_statuses.called

  def test_no_executions(self):
    session = _session(['a', 'b'], {'a': None, 'b': None})
    report = fetch_flow_status(session, 'foo')
    assert report.message == 'Project foo has no previously executed flows.'
    assert not session.get_execution_statuses.called

  def test_fetch_flows_error(self):
    session = _session()
    session.get_workflows.side_effect = RemoteError('Project foo not found.')
    with pytest.raises(RemoteError) as excinfo:
      fetch_flow_status(session, 'foo')
    assert 'http://server' in str(excinfo.value)

  def test_summary(self):
    session = _session(
      ['b', 'a'],
      {'a': 1, 'b': None},
      {1: _execution(1, 'a', ['SUCCEEDED'])},
    )
    report = fetch_flow_status(session, 'foo')
    assert len(report.tables) == 1
    rows = report.tables[0].rows
    assert [row[:3] for row in rows] == [
      ['a', 1, 'SUCCEEDED'],
      ['b', 'NONE', '-'],
    ]
    session.get_latest_executions.assert_called_once_with('foo', ['a', 'b'])
    session.get_execution_statuses.assert_called_once_with([1])

  def test_summary_with_default_flows(self):
    session = _session(
      ['a', 'b'],
      {'a': 1, 'b': 2},
      {1: _execution(1, 'a', []), 2: _execution(2, 'b', [])},
    )
    report = fetch_flow_status(session, 'foo', default_flows=['b'])
    assert [row[0] for row in report.tables[0].rows] == ['b']

  def test_detailed(self):
    session = _session(
      ['a', 'b'],
      {'a': 1, 'b': 2},
      {1: _execution(1, 'a', ['SUCCEEDED']), 2: _execution(2, 'b', [])},
    )
    report = fetch_flow_status(session, 'foo', flow_filter='a')
    assert len(report.tables) == 1
    assert report.tables[0].notes == ['Execution URL: http://server/exec/1']

  def test_detailed_without_filter(self):
    session = _session(
      ['a', 'b'],
      {'a': 1, 'b': None},
      {1: _execution(1, 'a', ['SUCCEEDED'])},
    )
    report = fetch_flow_status(session, 'foo', flow_filter='')
    assert len(report.tables) == 2
    assert report.tables[1].notes == [NO_EXECUTION_YET]

  def test_partial_failures(self):
    session = _session(['a', 'b'], {'a': 1}, {1: _execution(1, 'a', [])})
    latest = session.get_latest_executions.return_value
    latest['b'] = RemoteError('Timed out.')
    report = fetch_flow_status(session, 'foo')
    assert [row[:2] for row in report.tables[0].rows] == [
      ['a', 1], ['b', 'NONE'],
    ]

  def test_session_rejected_while_fetching_executions(self):
    session = Session('http://me@server', workers=2)
    session.id = 'abc'
    flows = MagicMock(text='{}')
    flows.json.return_value = {'flows': [{'flowId': 'a'}, {'flowId': 'b'}]}
    rejected = MagicMock(text='{"error": "session"}')
    rejected.json.return_value = {'error': 'session'}

    def request(method, url, params=None, **kwargs):
      if params['ajax'] == 'fetchprojectflows':
        return flows
      return rejected

    with patch.object(session, '_http') as http:
      http.request.side_effect = request
      with patch.object(session, '_login'):
        with pytest.raises(SessionRejected):
          fetch_flow_status(session, 'proj')
