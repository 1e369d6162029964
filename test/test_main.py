#!/usr/bin/env python
# encoding: utf-8

"""Test CLI."""

from hadoopdsl.__main__ import (_forward, _parse_option, _parse_project,
  build_project, main, view_info, view_status)
from hadoopdsl.job import CommandJob
from hadoopdsl.project import Project
from hadoopdsl.status import Report
from hadoopdsl.util import HadoopDslError
from hadoopdsl.workflow import Workflow
from unittest.mock import MagicMock, patch
from zipfile import ZipFile
import os.path as osp
import pytest


class _TestWithConfig(object):

  def setup_method(self):
    config = MagicMock()
    config.get_option.side_effect = (
      lambda command, name, default=None: default
    )
    config.get_list_option.return_value = []
    config.get_file_handler.return_value = None
    self.patcher = patch('hadoopdsl.__main__.Config', return_value=config)
    self.patcher.start()

  def teardown_method(self):
    self.patcher.stop()


class TestForward(object):

  def test_forward(self):
    args = {'--project': 'foo', '--flows': 'a,b', 'PATH': 'bar', 'x': 1}
    assert _forward(args, ['--project', '--flows', 'PATH']) == {
      '_project': 'foo', '_flows': 'a,b', '_path': 'bar',
    }


class TestParseOption(object):

  def test_key_value(self):
    assert _parse_option(['a=1', 'b=c=d']) == {'a': '1', 'b': 'c=d'}

  def test_file_then_override(self, tmp_path):
    path = tmp_path / 'opts.properties'
    path.write_text('a=1\nb=2\n')
    assert _parse_option([str(path), 'b=3']) == {'a': '1', 'b': '3'}


class TestParseProject(_TestWithConfig):

  index = 0
  # python modules are hard to reload, we go around this by making all module
  # names unique

  def _temp_project(self, tmp_path, projects):
    TestParseProject.index += 1
    module_path = tmp_path / ('hadoopdsl_main_%s.py' % (self.index, ))
    lines = ['from hadoopdsl import Project\n']
    for index, (name, register) in enumerate(projects):
      lines.append(
        'pj_%s = Project(%r, register=%r)\n' % (index, name, register)
      )
    module_path.write_text(''.join(lines))
    return str(module_path)

  def test_name_only(self):
    assert _parse_project('some_project_name') == ('some_project_name', None)

  def test_require_project(self):
    with pytest.raises(HadoopDslError):
      _parse_project('some_project_name', require_project=True)

  def test_missing_module_with_name(self):
    with pytest.raises(HadoopDslError):
      _parse_project('some_missing_module:foo')

  def test_single(self, tmp_path):
    path = self._temp_project(tmp_path, [('one', True)])
    name, project = _parse_project(path)
    assert name == 'one'
    assert project.name == 'one'

  def test_unregistered(self, tmp_path):
    path = self._temp_project(tmp_path, [('hidden', False)])
    with pytest.raises(HadoopDslError):
      _parse_project(path)

  def test_multiple(self, tmp_path):
    path = self._temp_project(tmp_path, [('one', True), ('two', True)])
    with pytest.raises(HadoopDslError):
      _parse_project(path)

  def test_multiple_with_name(self, tmp_path):
    path = self._temp_project(tmp_path, [('one', True), ('two', True)])
    name, project = _parse_project('%s:two' % (path, ))
    assert name == 'two'
    assert project.name == 'two'

  def test_multiple_with_missing_name(self, tmp_path):
    path = self._temp_project(tmp_path, [('one', True), ('two', True)])
    with pytest.raises(HadoopDslError):
      _parse_project('%s:three' % (path, ))


class TestCommands(_TestWithConfig):

  def setup_method(self):
    super(TestCommands, self).setup_method()
    self.project = Project('cli', register=False)
    workflow = self.project.add_workflow(Workflow('wf').target('a'))
    workflow.add_job('a', CommandJob('ls'))

  def test_build_project_in_directory(self, tmp_path, capsys):
    build_project(self.project, str(tmp_path), False)
    path = osp.join(str(tmp_path), 'cli.zip')
    with ZipFile(path) as reader:
      assert sorted(reader.namelist()) == ['cli.project', 'wf.flow']
    assert 'successfully built' in capsys.readouterr().out

  def test_view_info(self, capsys):
    view_info(self.project, None)
    out = capsys.readouterr().out
    assert out.startswith('# wf.flow\n')
    assert 'name: a' in out

  def test_view_info_missing_workflow(self):
    with pytest.raises(HadoopDslError):
      view_info(self.project, 'other')

  def test_view_status_detailed(self, capsys):
    with patch('hadoopdsl.__main__._get_session') as get_session:
      with patch('hadoopdsl.__main__.fetch_flow_status') as fetch:
        fetch.return_value = Report('Nothing to see.')
        view_status('some_project_name', None, 'prod', True, None)
    fetch.assert_called_once_with(
      get_session.return_value,
      'some_project_name',
      flow_filter='',
      default_flows=[],
      dr_elephant_url=None,
    )
    assert capsys.readouterr().out == 'Nothing to see.\n'

  def test_main_error_exits(self, capsys):
    with pytest.raises(SystemExit) as excinfo:
      main(['info', '-p', 'some_missing_module'])
    assert excinfo.value.code == 1
    assert 'No project module found' in capsys.readouterr().err
