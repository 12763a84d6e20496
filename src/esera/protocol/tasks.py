"""
The task queue serializes commands to the controller and attributes the lines it receives to the
command outstanding.

The controller protocol carries no request id. Correlation is positional: exactly one command is
outstanding at any time, and each line routed here is interpreted in the context of the task at
the head of the queue. A task resolves one of three ways:

- awaiting match: the task has an expected-response pattern and an error pattern. The next line
  resolves it through the success, error or unexpected handler, whichever matches first.
- sync wait: the task has an expected-response pattern but no error pattern. Lines that don't
  match are ignored until one does.
- posted wait: the task has no expected-response pattern. It is resolved when its wait time has
  elapsed; lines received meanwhile are discarded.

Handlers are named by HandlerKind rather than held as callables. The queue calls a single
dispatch function with the kind, the task and the line, which keeps tasks plain values that can
be compared and logged.
"""
import logging
import re
import time
from collections import deque
from enum import Enum

from esera.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

ERROR_PATTERN = '1_ERR'
COMMAND_TERMINATOR = '\r'


class HandlerKind(Enum):
    SETTINGS_CAPTURE = 'settings capture'
    CONTROLLER_READY = 'controller ready'
    STATUS = 'status'
    RAW_CAPTURE = 'raw capture'
    ERROR_LOGGER = 'error logger'
    UNEXPECTED_LOGGER = 'unexpected logger'
    ART_ASSIGN_ACK = 'art assign ack'
    ART_ASSIGN_ERROR = 'art assign error'
    INIT_COMPLETE = 'init complete'
    REFRESH_COMPLETE = 'refresh complete'


class TaskState(Enum):
    IDLE = 'idle'
    AWAITING_MATCH = 'awaiting match'
    SYNC_WAIT = 'sync wait'
    POSTED_WAIT = 'posted wait'


class Task(CommonEqualityMixin, StringerMixin):
    """
    One queued command and the policy for handling its response.

    :param command: the command text, or None for a pure wait
    :param expected: regex searched for in a response that resolves the task successfully
    :param on_success: HandlerKind invoked with the matching response
    :param error: regex identifying an error response. None makes the task a sync wait.
    :param on_error: HandlerKind invoked with an error response
    :param on_unexpected: HandlerKind invoked with a response matching neither pattern, or with
        no response when the controller doesn't reply in time
    :param wait: seconds to wait after sending, used only when there is no expected pattern
    """

    def __init__(self, command=None, expected=None, on_success=None, error=None, on_error=None,
                 on_unexpected=None, wait=None):
        if expected is None and not (wait and wait > 0):
            raise ValueError("a task without an expected response needs a positive wait time")
        self.command = command
        self.expected = expected
        self.on_success = on_success
        self.error = error
        self.on_error = on_error
        self.on_unexpected = on_unexpected
        self.wait = wait

    @property
    def state(self) -> TaskState:
        """ the state the task waits in once it is active. """
        if self.expected is None:
            return TaskState.POSTED_WAIT
        if self.error is None:
            return TaskState.SYNC_WAIT
        return TaskState.AWAITING_MATCH

    def __repr__(self):
        return "Task(%r, %s)" % (self.command, self.state.value)


class TaskQueue:
    """
    A FIFO of tasks, of which only the head is active.

    The queue is driven by two triggers: handle_response() when the classifier routes a line here,
    and poll() to expire timers. Neither blocks.

    :param send: callable that writes one command line to the controller
    :param dispatch: callable(kind, task, line) that runs the handler of the given kind. The line
        is None when a task is resolved by a timeout.
    :param current_time: clock returning seconds, used for the wait and timeout deadlines
    :param response_timeout: seconds an awaiting-match task waits for a response before it is
        resolved as unexpected. None or 0 waits forever.
    :param sync_timeout: seconds a sync-wait task waits for its response. None or 0 waits forever.
    """

    def __init__(self, send, dispatch, current_time=time.monotonic, response_timeout=None,
                 sync_timeout=None, log=logger):
        self._send = send
        self._dispatch = dispatch
        self._current_time = current_time
        self.response_timeout = response_timeout
        self.sync_timeout = sync_timeout
        self.logger = log
        self._queue = deque()
        self._deadline = None

    def __len__(self):
        return len(self._queue)

    @property
    def tasks(self):
        return tuple(self._queue)

    @property
    def active(self) -> Task:
        """ the task at the head of the queue, or None. """
        return self._queue[0] if self._queue else None

    @property
    def state(self) -> TaskState:
        active = self.active
        return active.state if active is not None else TaskState.IDLE

    @property
    def deadline(self):
        """ the time at which the active task's timer expires, or None when no timer is running. """
        return self._deadline

    def enqueue(self, task: Task):
        """ appends a task. A task added to an empty queue is started immediately. """
        self._queue.append(task)
        self.logger.debug("new length of task list: %d" % len(self._queue))
        if len(self._queue) == 1:
            self._start(task)
        return task

    def enqueue_command(self, command, expected, on_success, error=ERROR_PATTERN,
                        on_error=HandlerKind.ERROR_LOGGER, on_unexpected=HandlerKind.UNEXPECTED_LOGGER,
                        wait=None):
        """ queues a command that expects a single response. """
        return self.enqueue(Task(command, expected, on_success, error, on_error, on_unexpected, wait))

    def enqueue_posted_write(self, command, wait):
        """ queues a command with no distinguishable response. The next task starts after `wait` seconds. """
        return self.enqueue(Task(command, wait=wait))

    def enqueue_wait(self, wait):
        """ queues a pause in which no command is sent. """
        return self.enqueue(Task(wait=wait))

    def enqueue_sync(self, command, expected, on_success):
        """ queues a command whose response may be preceded by lines that are to be ignored. """
        return self.enqueue(Task(command, expected, on_success))

    def clear(self):
        """ abandons all tasks, including the active one, without invoking any handlers. """
        if self._queue:
            self.logger.info("clearing %d task(s)" % len(self._queue))
        self._queue.clear()
        self._deadline = None

    def handle_response(self, line):
        """
        Resolves the active task with a line classified as a command response.
        :return: True if the line resolved the active task
        """
        task = self.active
        if task is None:
            self.logger.warning("response received with no command outstanding, ignoring: %s" % line)
            return False

        state = task.state
        if state is TaskState.POSTED_WAIT:
            self.logger.debug("response received while waiting after a posted write, ignoring: %s" % line)
            return False

        if re.search(task.expected, line):
            self.logger.debug("expected response received: %s" % line)
            kind = task.on_success
        elif state is TaskState.SYNC_WAIT:
            self.logger.debug("ignoring response while waiting for sync: %s" % line)
            return False
        elif re.search(task.error, line):
            self.logger.warning("error response received for %s, expected: %s" % (task.command, task.expected))
            kind = task.on_error
        else:
            self.logger.warning("unexpected response received for %s, expected: %s" % (task.command, task.expected))
            kind = task.on_unexpected
        self._resolve(task, kind, line)
        return True

    def poll(self, current_time=None):
        """
        Expires the active task's timer if its deadline has passed.
        :return: True if a task was resolved
        """
        task = self.active
        if task is None or self._deadline is None:
            return False
        now = self._current_time() if current_time is None else current_time
        if now < self._deadline:
            return False

        state = task.state
        if state is TaskState.POSTED_WAIT:
            self.logger.debug("wait after %r elapsed" % task.command)
            kind = None
        elif state is TaskState.SYNC_WAIT:
            self.logger.error("no %s received for %s within %ss, continuing" %
                              (task.expected, task.command, self.sync_timeout))
            kind = None
        else:
            self.logger.error("no response to %s within %ss" % (task.command, self.response_timeout))
            kind = task.on_unexpected
        self._resolve(task, kind, None)
        return True

    def _resolve(self, task, kind, line):
        """ runs the handler, then removes the task and starts the next one. The queue advances even if
            the handler raises. The handler may clear the queue and enqueue a fresh start, in which case
            there is nothing left to advance. """
        self._deadline = None
        try:
            if kind is not None:
                self._dispatch(kind, task, line)
        finally:
            if self._queue and self._queue[0] is task:
                self._queue.popleft()
                self.logger.debug("new length of task list: %d" % len(self._queue))
                if self._queue:
                    self._start(self._queue[0])

    def _start(self, task):
        timeout = self._timeout_for(task)
        self._deadline = self._current_time() + timeout if timeout else None
        if task.command is not None:
            self.logger.debug("COMM sending: %s" % task.command)
            self._send(task.command + COMMAND_TERMINATOR)

    def _timeout_for(self, task):
        state = task.state
        if state is TaskState.POSTED_WAIT:
            return task.wait
        if state is TaskState.SYNC_WAIT:
            return self.sync_timeout
        return self.response_timeout
