#!/usr/bin/env python
# encoding: utf-8

"""Azkaban client.

All calls to the Azkaban AJAX API go through a :class:`Session`, which keeps
the session ID obtained when logging in, renews it when the server rejects
it, and fans batches of read requests out over a thread pool.

"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from configparser import NoOptionError, NoSectionError
from getpass import getpass, getuser
from os.path import basename, exists
from threading import Lock
from urllib.parse import urlparse
from requests.adapters import HTTPAdapter
from requests.exceptions import HTTPError
from urllib3.util.retry import Retry
from .util import (Adapter, Config, HadoopDslError, RemoteError,
  SessionExpired, SessionRejected, suppress_urllib_warnings)
import logging as lg
import re
import requests as rq


_logger = lg.getLogger(__name__)

#: Config section where session IDs are cached.
SESSION_SECTION = 'session_id'

# markers of the login page Azkaban serves instead of an answer
_LOGIN_MARKERS = ('<!-- /.login -->', 'Login error')


def _send(http, method, url, **kwargs):
  """Send a single HTTP request.

  :param http: `requests.Session`.
  :param method: HTTP method.
  :param url: Full URL.
  :param \*\*kwargs: Forwarded to `requests.Session.request`.

  Transport failures are converted to :class:`~hadoopdsl.util.RemoteError`.

  """
  try:
    return http.request(method=method, url=url, **kwargs)
  except rq.exceptions.MissingSchema:
    raise RemoteError('Invalid Azkaban server url: %r.', url)
  except rq.Timeout as err:
    raise RemoteError('Request to %s timed out: %s', url, err)
  except rq.ConnectionError as err:
    raise RemoteError('Unable to reach Azkaban at %s: %s', url, err)

def _extract_json(response):
  """Decode an API response.

  :param response: `requests.Response`.

  Azkaban reports most failures in the body of a 200 response, either as an
  `error` field or as `status: error` along with a `message`. Both are raised
  as :class:`~hadoopdsl.util.RemoteError`.

  """
  try:
    body = response.json()
  except ValueError:
    _logger.error('Undecodable response from %s:\n%s', response.url,
      response.text)
    raise RemoteError('Invalid response from %s.', response.url)
  if 'error' in body:
    raise RemoteError(body['error'])
  if body.get('status') == 'error':
    raise RemoteError(body['message'])
  return body

def _check_session(response):
  """Raise :class:`~hadoopdsl.util.SessionExpired` if the server rejected the
  session ID a response was requested with.

  :param response: `requests.Response`.

  """
  if any(marker in response.text for marker in _LOGIN_MARKERS):
    raise SessionExpired('Login required.')
  try:
    body = response.json()
  except ValueError:
    return
  error = body.get('error') if isinstance(body, dict) else None
  if error and 'session' in str(error).lower():
    raise SessionExpired(str(error))

def _retry_on_expiry(send, renew, retries=1):
  """Send a request, logging back in if the session has expired.

  :param send: Function sending the request. It returns a tuple
    `(session_id, response)` where `session_id` is the ID the request was sent
    with.
  :param renew: Function called with the expired session ID to log back in.
  :param retries: Maximum number of times the session is renewed before
    giving up.

  A session which is still rejected once the retries are exhausted is
  surfaced as a :class:`~hadoopdsl.util.SessionRejected`.

  """
  while True:
    session_id, response = send()
    try:
      _check_session(response)
    except SessionExpired as err:
      if retries <= 0:
        raise SessionRejected('Session rejected by Azkaban server: %s', err)
      _logger.info('Session %s expired, logging back in.', session_id)
      retries -= 1
      renew(session_id)
    else:
      return response

def _parse_url(url):
  """Split a server URL into `(user, password, address)`.

  :param url: `[scheme://][user[:password]@]host[:port]`, the scheme defaults
    to `http`. User and password are `None` when absent.

  """
  if not re.match(r'[a-zA-Z]+://', url):
    url = 'http://%s' % (url, )
  parsed = urlparse(url.rstrip('/'))
  if not parsed.hostname:
    raise HadoopDslError('Malformed url: %r', url)
  address = '%s://%s' % (parsed.scheme, parsed.hostname)
  if parsed.port:
    address += ':%s' % (parsed.port, )
  return parsed.username, parsed.password, address


class Session(object):

  """Connection to an Azkaban server.

  :param url: Server URL, optionally with a user (and password), cf.
    :func:`_parse_url`. The user defaults to the current one.
  :param config: :class:`~hadoopdsl.util.Config` where session IDs are
    cached between invocations.
  :param attempts: Number of password prompts before giving up on logging in.
  :param verify: Verify the server's certificate on HTTPS connections.
  :param workers: Number of requests sent concurrently by batch methods.
  :param timeout: Timeout (in seconds) of each request.

  No request is sent on instantiation: a cached ID is reused until the server
  rejects it. An expired ID is renewed at most once per request, even when
  several threads notice it at the same time.

  """

  def __init__(
    self, url, config=None, attempts=3, verify=True, workers=8, timeout=60
  ):
    self.user, self.password, self.url = _parse_url(url)
    self.user = self.user or getuser()
    self.config = config
    self.attempts = attempts
    self.verify = verify
    self.workers = workers
    self.timeout = timeout
    self.id = self._load_id()
    self._lock = Lock()
    self._http = rq.Session()
    # transient gateway errors are retried on idempotent requests only
    adapter = HTTPAdapter(
      pool_maxsize=workers,
      max_retries=Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=frozenset(['GET']),
        raise_on_status=False,
      ),
    )
    for prefix in ('http://', 'https://'):
      self._http.mount(prefix, adapter)
    suppress_urllib_warnings(verify)
    self._logger = Adapter(repr(self), _logger)

  def __repr__(self):
    return '<%s(url=%r)>' % (self.__class__.__name__, str(self))

  def __str__(self):
    return '%s@%s' % (self.user, self.url)

  def is_valid(self, response=None):
    """Whether the server accepts the current session ID.

    :param response: Response to inspect. If omitted, a lightweight request
      is sent to find out.

    """
    if not self.id:
      return False
    if response is None:
      # empty 200 when the ID is valid, login page otherwise
      response = _send(
        self._http,
        'POST',
        '%s/manager' % (self.url, ),
        data={'session.id': self.id},
        verify=self.verify,
        timeout=self.timeout,
      )
    try:
      _check_session(response)
    except SessionExpired:
      self._logger.debug('Session %s was rejected.', self.id)
      return False
    return True

  def execution_url(self, exec_id):
    """Link to the page of an execution.

    :param exec_id: Execution ID.

    """
    return '%s/executor?execid=%s' % (self.url, exec_id)

  def get_workflows(self, project):
    """Flows of a project (`fetchprojectflows`).

    :param project: Project name.

    """
    self._logger.debug('Listing flows of project %s.', project)
    try:
      res = self._request(
        method='GET',
        endpoint='manager',
        params={'ajax': 'fetchprojectflows', 'project': project},
      )
    except HTTPError as err:
      raise RemoteError('Unable to list flows of %s: %s', project, err)
    if not res.text:
      # unknown projects get an empty 200
      raise RemoteError('Project %s not found.', project)
    return _extract_json(res)

  def get_workflow_executions(self, project, flow, start=0, length=10):
    """Executions of a flow, most recent first (`fetchFlowExecutions`).

    :param project: Project name.
    :param flow: Flow name.
    :param start: Offset of the first execution returned.
    :param length: Maximum number of executions returned.

    """
    self._logger.debug('Listing executions of %s/%s.', project, flow)
    res = self._request(
      method='GET',
      endpoint='manager',
      params={
        'ajax': 'fetchFlowExecutions',
        'project': project,
        'flow': flow,
        'start': start,
        'length': length,
      },
    )
    if not res.text:
      raise RemoteError('Project %s not found.', project)
    return _extract_json(res)

  def get_execution_status(self, exec_id):
    """State of an execution and of each of its jobs (`fetchexecflow`).

    :param exec_id: Execution ID.

    """
    self._logger.debug('Fetching execution %s.', exec_id)
    return _extract_json(self._request(
      method='GET',
      endpoint='executor',
      params={'ajax': 'fetchexecflow', 'execid': exec_id},
    ))

  def get_latest_executions(self, project, flows):
    """Fetch the most recent execution of several flows concurrently.

    :param project: Project name.
    :param flows: Flow names.

    Returns a dictionary keyed by flow name. Each value is either the response
    (cf. :meth:`get_workflow_executions`) or the error raised while fetching
    it.

    """
    return self._batch(
      lambda flow: self.get_workflow_executions(project, flow, length=1),
      flows,
    )

  def get_execution_statuses(self, exec_ids):
    """Fetch the status of several executions concurrently.

    :param exec_ids: Execution IDs.

    Returns a dictionary keyed by execution ID, with values either the status
    (cf. :meth:`get_execution_status`) or the error raised while fetching it.

    """
    return self._batch(self.get_execution_status, exec_ids)

  def create_project(self, name, description):
    """Create an empty project.

    :param name: Project name.
    :param description: Free text shown in the web UI.

    """
    res = _extract_json(self._request(
      method='POST',
      endpoint='manager',
      data={'action': 'create', 'name': name, 'description': description},
    ))
    self._logger.info('Created project %s.', name)
    return res

  def upload_project(self, name, path, archive_name=None):
    """Upload a project archive, replacing the project's current contents.

    :param name: Project name.
    :param path: Path to the zip archive.
    :param archive_name: Name the server records for the archive, `.zip` is
      appended if missing. Defaults to the archive's file name.

    Returns the decoded response, including the `projectId` and `version`.

    """
    if not exists(path):
      raise HadoopDslError('Unable to find archive at %r.', path)
    # the archive can only be streamed once, so log in beforehand
    if not self.is_valid():
      self._renew(self.id)
    archive_name = archive_name or basename(path)
    if not archive_name.endswith('.zip'):
      archive_name = '%s.zip' % (archive_name, )
    self._logger.debug('Uploading %s to project %s.', path, name)
    with open(path, 'rb') as reader:
      res = _extract_json(self._request(
        method='POST',
        endpoint='manager',
        include_session='params',
        retries=0,
        data={'ajax': 'upload', 'project': name},
        files={'file': (archive_name, reader, 'application/zip')},
      ))
    self._logger.info('Uploaded %s to project %s.', archive_name, name)
    return res

  def _batch(self, func, keys):
    """Apply a request function to several keys concurrently.

    :param func: Function taking a single key.
    :param keys: Iterable of keys, duplicates are only requested once.

    Failed requests are logged and their error stored as result, they don't
    interrupt the others. A rejected session is the exception: it fails every
    request so it is raised, and requests not yet started are cancelled.

    """
    keys = list(dict.fromkeys(keys))
    results = {}
    if not keys:
      return results
    with ThreadPoolExecutor(max_workers=self.workers) as executor:
      futures = dict((executor.submit(func, key), key) for key in keys)
      for future in as_completed(futures):
        key = futures[future]
        try:
          results[key] = future.result()
        except SessionRejected:
          for pending in futures:
            pending.cancel()
          raise
        except (HadoopDslError, rq.RequestException) as err:
          self._logger.warning('Request for %s failed: %s', key, err)
          results[key] = err
    return results

  @property
  def _config_key(self):
    # colons delimit options in the config file
    return str(self).replace(':', '.')

  def _load_id(self):
    """Session ID cached in the config, if any."""
    if not self.config:
      return None
    try:
      return self.config.parser.get(SESSION_SECTION, self._config_key)
    except (NoOptionError, NoSectionError):
      return None

  def _save_id(self):
    """Cache the current session ID in the config."""
    if not self.config:
      return
    parser = self.config.parser
    if not parser.has_section(SESSION_SECTION):
      parser.add_section(SESSION_SECTION)
    parser.set(SESSION_SECTION, self._config_key, self.id)
    self.config.save()

  def _renew(self, expired_id):
    """Log back in, unless another request already did.

    :param expired_id: Session ID rejected by the server (`None` if there was
      none).

    """
    with self._lock:
      if self.id == expired_id:
        self._login()
      else:
        self._logger.debug('Session already renewed.')

  def _login(self, password=None):
    """Obtain a new session ID.

    :param password: Password, by default the one in the URL. The user is
      prompted for it otherwise, up to `attempts` times.

    """
    password = password or self.password
    for _ in range(self.attempts):
      password = password or getpass('Azkaban password for %s: ' % (self, ))
      try:
        res = _extract_json(_send(
          self._http,
          'POST',
          self.url,
          data={
            'action': 'login',
            'username': self.user,
            'password': password,
          },
          verify=self.verify,
          timeout=self.timeout,
        ))
      except RemoteError as err:
        if 'Incorrect Login.' not in err.message:
          raise
        self._logger.warning('Login refused for %s.', self.user)
        password = None
      else:
        self.id = res['session.id']
        self._save_id()
        self._logger.info('Logged in.')
        return
    raise RemoteError('Too many unsuccessful login attempts. Aborting.')

  def _request(self, method, endpoint, include_session='cookies', retries=1,
    **kwargs):
    """Send an authenticated request.

    :param method: HTTP method.
    :param endpoint: Path relative to the server URL, e.g. `'manager'`.
    :param include_session: How the session ID is passed: as a cookie
      (`'cookies'`), a form field (`'params'`), or not at all (`False`).
    :param retries: Number of times an expired session is renewed (and the
      request resent).
    :param \*\*kwargs: Forwarded to `requests.Session.request`.

    Raises `requests.HTTPError` on non 2XX responses.

    """
    if include_session not in ('cookies', 'params', False):
      raise ValueError('Invalid `include_session`: %r' % (include_session, ))
    url = '%s/%s' % (self.url, endpoint.lstrip('/'))
    if not self.id:
      self._renew(None)

    def send():
      session_id = self.id
      if include_session == 'cookies':
        kwargs.setdefault('cookies', {})['azkaban.browser.session.id'] = (
          session_id
        )
      elif include_session == 'params':
        kwargs.setdefault('data', {})['session.id'] = session_id
      response = _send(
        self._http, method, url, verify=self.verify, timeout=self.timeout,
        **kwargs
      )
      return session_id, response

    response = _retry_on_expiry(send, self._renew, retries)
    if not response.ok:
      self._logger.warning(
        'HTTP %s from %s:\n%s', response.status_code, url, response.text
      )
    response.raise_for_status()
    return response

  @classmethod
  def from_alias(cls, alias, config=None):
    """Session configured from an `alias.<name>` section of the config.

    :param alias: Alias name.
    :param config: :class:`~hadoopdsl.util.Config`, loaded from the default
      location if omitted.

    """
    config = config or Config()
    parser = config.parser
    section = 'alias.%s' % (alias, )
    if not parser.has_section(section):
      raise HadoopDslError('Alias not found: %r', alias)
    if not parser.has_option(section, 'url'):
      raise HadoopDslError('No url defined for alias %r.', alias)
    opts = {'url': parser.get(section, 'url'), 'config': config}
    if parser.has_option(section, 'verify'):
      opts['verify'] = parser.getboolean(section, 'verify')
    for name in ('attempts', 'workers', 'timeout'):
      if parser.has_option(section, name):
        opts[name] = parser.getint(section, name)
    return cls(**opts)
