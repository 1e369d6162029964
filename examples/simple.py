#!/usr/bin/env python
# encoding: utf-8

"""Hadoop DSL sample project configuration script.

Let us assume we have a flow with pig scripts to run, which share many
options. This example shows a way to concisely build the workflow.

"""

from getpass import getuser
from hadoopdsl import NoopJob, PigJob, Project, PropertyFile, Workflow


PROJECT = Project('hadoopdsl_sample', root=__file__)

# default options for all jobs
DEFAULTS = PropertyFile('defaults', {
  'user.to.proxy': getuser(),
  'param': {
    'input_root': 'sample_dir/',
    'n_reducers': 20,
  },
})

# pig job options, keyed by script
OPTIONS = {
  'first.pig': {},
  'second.pig': {'dependencies': 'first'},
  'third.pig': {'param': {'foo': 48}},
  'fourth.pig': {'dependencies': 'second,third'},
}

WORKFLOW = PROJECT.add_workflow(Workflow('pig_scripts'))
WORKFLOW.add_property_file(DEFAULTS)
for script, options in sorted(OPTIONS.items()):
  WORKFLOW.add_job(
    script.rsplit('.', 1)[0],
    PigJob(script, {'jvm.args': {'mapred.max.split.size': 2684354560}},
      options),
  )
WORKFLOW.add_job('done', NoopJob(dependencies=['fourth']))
WORKFLOW.target('done')
