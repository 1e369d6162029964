#!/usr/bin/env python
# encoding: utf-8

"""Test job module."""

from hadoopdsl.job import *
from hadoopdsl.workflow import PropertyFile


class TestJob(object):

  def test_options_with_defaults(self):
    defaults = {'b': {'d': 4}, 'e': 5}
    job = Job(defaults, {'type': 'noop', 'a': 1, 'b': {'c': 2, 'd': 3}})
    assert job.type == 'noop'
    assert job.options == {'b.d': 3, 'e': 5, 'a': 1, 'b.c': 2}

  def test_dependencies_option(self):
    job = Job({'type': 'noop', 'dependencies': 'foo, bar'})
    assert job.dependencies == ['bar', 'foo']
    assert 'dependencies' not in job.options

  def test_dependencies_option_list(self):
    job = Job({'type': 'noop', 'dependencies': ['foo', 'bar']})
    assert job.dependencies == ['foo', 'bar']

  def test_depends_ignores_duplicates(self):
    job = NoopJob(dependencies=['a']).depends('b', 'a')
    assert job.dependencies == ['a', 'b']

  def test_require(self):
    job = NoopJob(required=['a']).require('b', 'a')
    assert job.required == ['a', 'b']

  def test_set_overrides(self):
    job = NoopJob({'a': 1}).set({'b': {'c': 2}}, a=3)
    assert job.options == {'a': 3, 'b.c': 2}

  def test_set_type_and_dependencies(self):
    job = NoopJob(dependencies=['a'])
    job.set({'type': 'command', 'dependencies': 'c,b', 'd': 1})
    assert job.type == 'command'
    assert job.dependencies == ['a', 'b', 'c']
    assert job.options == {'d': 1}

  def test_set_without_type_keeps_type(self):
    job = CommandJob('ls').set(dependencies=['a'])
    assert job.type == 'command'
    assert job.dependencies == ['a']
    assert 'dependencies' not in job.options

  def test_resolve_properties_precedence(self):
    first = PropertyFile('first', {'a': 1, 'b': 1, 'c': 1})
    second = PropertyFile('second', {'b': 2, 'c': 2})
    job = NoopJob({'c': 3}, property_files=[first, second])
    props = job.resolve_properties({'a': 0, 'z': 0})
    assert props == {'a': 1, 'z': 0, 'b': 2, 'c': 3}

  def test_resolve_properties_without_inherited(self):
    job = NoopJob({'a': 1}).add_property_file(PropertyFile('pf', {'b': 2}))
    assert job.resolve_properties() == {'b': 2, 'a': 1}

  def test_condition(self):
    assert NoopJob(condition='all_done').condition == 'all_done'
    assert NoopJob().condition is None

  def test_join_options(self):
    job = Job({'bar': range(3)})
    job.join_option('bar', ',')
    assert job.options['bar'] == '0,1,2'

  def test_join_options_with_custom_formatter(self):
    job = Job({'bar': range(3)})
    job.join_option('bar', ' ', '(%s)')
    assert job.options['bar'] == '(0) (1) (2)'

  def test_join_missing_option(self):
    job = Job({'bar': '1'})
    job.join_option('baz', ' ', '(%s)')
    assert job.options['bar'] == '1'
    assert not 'baz' in job.options

  def test_join_prefix(self):
    job = Job({'bar': {'a': 1, 'b.c': 'foo'}, 'barn': 2})
    job.join_prefix('bar', ',', '%s-%s')
    assert job.options == {'bar': 'a-1,b.c-foo', 'barn': 2}


class TestJobTypes(object):

  def test_noop(self):
    assert NoopJob().type == 'noop'

  def test_untyped(self):
    assert Job().type is None

  def test_command(self):
    job = CommandJob('echo hi', {'user.to.proxy': 'foo'})
    assert job.type == 'command'
    assert job.options == {'user.to.proxy': 'foo', 'command': 'echo hi'}

  def test_multiple_commands(self):
    job = CommandJob(['pwd', 'ls'])
    assert job.options == {'command': 'pwd', 'command.1': 'ls'}

  def test_command_type_override(self):
    assert CommandJob('ls', {'type': 'custom'}).type == 'custom'

  def test_pig(self):
    job = PigJob('/scripts/foo.pig', {'jvm.args': {'a': 1, 'b': 2}})
    assert job.type == 'pig'
    assert job.options == {
      'jvm.args': '-Da=1 -Db=2',
      'pig.script': 'scripts/foo.pig',
    }

  def test_hadoop_java(self):
    job = HadoopJavaJob(
      'com.example.Main',
      {'classpath': ['a.jar', 'b.jar']},
      dependencies=['foo'],
    )
    assert job.type == 'hadoopJava'
    assert job.options['job.class'] == 'com.example.Main'
    assert job.options['classpath'] == 'a.jar,b.jar'
    assert job.dependencies == ['foo']
