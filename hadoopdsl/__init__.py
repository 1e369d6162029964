#!/usr/bin/env python
# encoding: utf-8

"""Hadoop DSL: job workflows compiled to Azkaban flows."""

__all__ = [
  'CommandJob', 'Definitions', 'HadoopJavaJob', 'Job', 'NoopJob', 'PigJob',
  'Project', 'PropertyFile', 'Workflow', 'compile_workflow',
]
__version__ = '0.1.0'

try:
  from .compiler import compile_workflow
  from .definitions import Definitions
  from .job import CommandJob, HadoopJavaJob, Job, NoopJob, PigJob
  from .project import Project
  from .workflow import PropertyFile, Workflow
except ImportError:
  pass # in setup.py

import logging as lg


lg.getLogger(__name__).addHandler(lg.NullHandler())
