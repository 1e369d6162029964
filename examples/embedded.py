#!/usr/bin/env python
# encoding: utf-8

"""Hadoop DSL project with an embedded workflow.

The `cleanup` workflow runs once the daily aggregation is over, even if it
failed, and only requires the `day` parameter which the project provides.

The proxy user comes from the project's definitions, which an optional
`profile.py` next to this file can override (e.g. with
`definitions.definition_set({'proxy.user': 'me'})`).

"""

from hadoopdsl import CommandJob, HadoopJavaJob, Project, Workflow


PROJECT = Project('hadoopdsl_embedded', root=__file__)
PROJECT.definitions.definition_set({'proxy.user': 'production_user'})
PROJECT.apply_profile('profile.py')
PROJECT.properties = {
  'user.to.proxy': PROJECT.definitions.lookup_def('proxy.user'),
  'day': '${azkaban.flow.start.year}-${azkaban.flow.start.month}',
}

DAILY = PROJECT.add_workflow(Workflow('daily', {'hdfs.root': '/jobs/daily/'}))
DAILY.add_job('gather', HadoopJavaJob(
  'sample.GatherData',
  {'path.output': '${hdfs.root}data.avro', 'classpath': ['lib/sample.jar']},
  required=['day'],
))
DAILY.add_job('aggregate', CommandJob(
  ['bash aggregate.sh ${day}', 'bash publish.sh ${day}'],
  dependencies=['gather'],
))

CLEANUP = DAILY.add_workflow(Workflow('cleanup', condition='all_done'))
CLEANUP.depends('aggregate')
CLEANUP.add_job('purge', CommandJob('hdfs dfs -rm -r ${hdfs.root}tmp'))
CLEANUP.target('purge')

DAILY.target('cleanup')
