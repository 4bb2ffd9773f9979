# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
Base functionality for tailflow. The pipeline abstractions that every adapter
and filter builds on are defined here.

The key abstractions are:

 * InputStage  - receives a stream of events through on_next(), on_error(),
                 and on_completed().
 * OutputStage - emits a stream of events to the input stages connected to it.
                 Adapters that read from the outside world (e.g. a tailed
                 file) are output stages.
 * Filter      - both an InputStage and an OutputStage. Filters transform
                 streams.
 * Scheduler   - wraps an asyncio event loop. Output stages only produce an
                 event when the scheduler asks them to (by calling _observe()),
                 and only while they still have downstream connections. This is
                 how backpressure is applied: no demand, no read.

A stream ends exactly once, either with on_completed() or with on_error().
Errors that should stop the whole event loop are subclasses of FatalError;
everything else is passed downstream via on_error() and only ends that stream.
"""

import traceback as tb
import logging
logger = logging.getLogger(__name__)

from tailflow.internal import noop


class InputStage:
    """Interface for the receiving end of a stream. Subclasses override
    the methods they care about.
    """
    def on_next(self, x):
        pass

    def on_error(self, e):
        pass

    def on_completed(self):
        pass


class FatalError(Exception):
    """Base class for exceptions that should terminate the event loop.
    These are for problems outside the data stream: misconfiguration of a
    stage, bugs in the infrastructure, or dispatching on a closed stream.
    Problems with the data itself (a truncated file, an undecodable record)
    are not fatal. They are sent downstream through on_error().
    """
    pass

class StreamAlreadyClosed(FatalError):
    pass

class ExcInDispatch(FatalError):
    """An input stage raised something other than a FatalError while
    handling an event.
    """
    pass

class ScheduleError(FatalError):
    pass

class InvalidParameterError(FatalError):
    """A stage was constructed with an unusable parameter value.
    """
    pass


class CallableAsInputStage(InputStage):
    """Wrap a plain function so it can be connected to an output stage.
    The function receives the on_next() calls; on_error and on_completed
    may also be provided.
    """
    def __init__(self, on_next=None, on_error=None, on_completed=None):
        self.on_next = on_next or noop
        if on_error:
            self.on_error = on_error
        self.on_completed = on_completed or noop

    def on_error(self, e):
        if isinstance(e, FatalError):
            raise e
        logger.error("%s: Received on_error(%s)", self, e)

    def __str__(self):
        return 'CallableAsInputStage(%s)' % str(self.on_next)


class _Connection:
    __slots__ = ('on_next', 'on_completed', 'on_error', 'input_stage')
    def __init__(self, input_stage):
        self.on_next = input_stage.on_next
        self.on_completed = input_stage.on_completed
        self.on_error = input_stage.on_error
        self.input_stage = input_stage

    def __str__(self):
        return '_Connection(%s)' % self.input_stage


class OutputStage:
    """Base class for event producers. connect() and print_downstream() are
    the public interface. The underscore methods are used by subclasses to
    send events and by the scheduler.
    """
    def __init__(self):
        self.__connections__ = []
        self.__closed__ = False

    def connect(self, input_stage):
        """Send this stage's events to input_stage, which may also be a
        plain callable. Returns a function that removes the connection.
        """
        if not hasattr(input_stage, 'on_next') and callable(input_stage):
            input_stage = CallableAsInputStage(input_stage)
        if self.__closed__:
            raise StreamAlreadyClosed("Cannot connect %s to %s, stream already ended" %
                                      (input_stage, self))
        connection = _Connection(input_stage)
        # Connections are copied on write so that connect() and disconnect()
        # may be called from inside a dispatch.
        self.__connections__ = self.__connections__ + [connection]
        def disconnect():
            remaining = [c for c in self.__connections__
                         if c.input_stage is not input_stage]
            self.__connections__ = remaining
        return disconnect

    def _has_connections(self):
        """The scheduler drops an output stage that nobody is listening to.
        """
        return len(self.__connections__)>0

    def _is_closed(self):
        return self.__closed__

    def _check_open(self, what):
        if self.__closed__:
            raise StreamAlreadyClosed("%s on %s after the stream already ended" %
                                      (what, self))

    def _end_stream(self):
        self.__closed__ = True
        self.__connections__ = []

    def _dispatch_next(self, x):
        self._check_open('on_next(%r)' % (x,))
        for c in self.__connections__:
            if self.__closed__:
                break # a downstream stage cancelled us
            try:
                c.on_next(x)
            except FatalError:
                raise
            except Exception as e:
                raise ExcInDispatch("Unexpected exception when dispatching event %r to %s from %s" %
                                    (x, c.input_stage, self)) from e

    def _dispatch_completed(self):
        self._check_open('on_completed')
        connections = self.__connections__
        self._end_stream()
        for c in connections:
            try:
                c.on_completed()
            except FatalError:
                raise
            except Exception as e:
                raise ExcInDispatch("Unexpected exception when dispatching completed to %s from %s" %
                                    (c.input_stage, self)) from e

    def _dispatch_error(self, e):
        self._check_open('on_error(%s)' % e)
        connections = self.__connections__
        self._end_stream()
        for c in connections:
            try:
                c.on_error(e)
            except FatalError:
                raise
            except Exception as e2:
                raise ExcInDispatch("Unexpected exception when dispatching error %r to %s from %s" %
                                    (e, c.input_stage, self)) from e2

    def print_downstream(self):
        """Print every path starting at this stage. For debugging.
        """
        def print_from(path, stage):
            connections = getattr(stage, '__connections__', [])
            if len(connections)==0:
                print(path)
            for c in connections:
                print_from(path + " => %s" % c.input_stage, c.input_stage)
        print("***** Dump of all paths from %s *****" % self)
        print_from("  %s" % self, self)
        print("*"*(12+len(str(self))))

    def __str__(self):
        return self.__class__.__name__ + '()'


class Filter(OutputStage, InputStage):
    """A filter connects itself to the previous stage in the chain.
    By default every event, error, and completion is passed through.
    """
    def __init__(self, previous_in_chain):
        super().__init__()
        self.disconnect_from_upstream = previous_in_chain.connect(self)

    def on_next(self, x):
        self._dispatch_next(x)

    def on_error(self, e):
        self._dispatch_error(e)

    def on_completed(self):
        self._dispatch_completed()


class XformOrDropFilter(Filter):
    """A filter where each event is either transformed or dropped.
    Subclasses implement _filter() and optionally _complete().
    """
    def on_next(self, x):
        """Pass x to _filter(). A return value of None drops the event.
        Any exception other than a FatalError ends the stream with on_error()
        and disconnects us from upstream.
        """
        try:
            x_prime = self._filter(x)
        except FatalError:
            raise
        except Exception as e:
            logger.exception("Got an exception on %s._filter(%r)", self, x)
            self.disconnect_from_upstream()
            self.on_error(e)
        else:
            if x_prime is not None:
                self._dispatch_next(x_prime)

    def _filter(self, x):
        return x

    def _complete(self):
        """Called when the stream ends. May return one last event to send.
        """
        return None

    def on_error(self, e):
        x = self._complete()
        if x is not None:
            self._dispatch_next(x)
        self._dispatch_error(e)

    def on_completed(self):
        x = self._complete()
        if x is not None:
            self._dispatch_next(x)
        self._dispatch_completed()


class FunctionFilter(Filter):
    """A filter built from plain functions. Each function receives the
    filter as its first argument, so it can call self._dispatch_next()::

        on_next(self, x)
        on_completed(self)
        on_error(self, e)

    Missing functions default to passing the call downstream.
    """
    def __init__(self, previous_in_chain,
                 on_next=None, on_completed=None,
                 on_error=None, name=None):
        super().__init__(previous_in_chain)
        self._on_next = on_next
        self._on_error = on_error
        self._on_completed = on_completed
        self.name = name

    def on_next(self, x):
        try:
            if self._on_next:
                self._on_next(self, x)
            else:
                self._dispatch_next(x)
        except FatalError:
            raise
        except Exception as e:
            logger.exception("Got an exception on %s.on_next(%r)", self, x)
            self.disconnect_from_upstream()
            self.on_error(e)

    def on_error(self, e):
        if self._on_error:
            self._on_error(self, e)
        else:
            self._dispatch_error(e)

    def on_completed(self):
        if self._on_completed:
            self._on_completed(self)
        else:
            self._dispatch_completed()

    def __str__(self):
        return self.name if self.name else self.__class__.__name__ + '()'


def _is_thunk(t):
    return hasattr(t, '__thunk__')

def _make_thunk(t):
    setattr(t, '__thunk__', True)

class _ThunkBuilder:
    """The module-level version of a filter method. Calling it with the
    filter's arguments returns a thunk: a function of the previous stage.
    """
    def __init__(self, func):
        self.func = func
        self.__name__ = func.__name__

    def __call__(self, *args, **kwargs):
        if len(args)==0 and len(kwargs)==0:
            _make_thunk(self.func)
            return self.func
        def apply(this):
            return self.func(this, *args, **kwargs)
        apply.__name__ = self.__name__
        _make_thunk(apply)
        return apply

    def __repr__(self):
        return "_ThunkBuilder(%s)" % self.__name__

def _connect_thunk(prev, thunk):
    """Attach a thunk, thunk builder, input stage, or bare callable to prev.
    Returns the new end of the chain, or None if the chain was terminated
    by a plain input stage.
    """
    if isinstance(thunk, _ThunkBuilder):
        return thunk()(prev)
    elif _is_thunk(thunk):
        return thunk(prev)
    else:
        prev.connect(thunk)
        return None


def filtermethod(base, alias=None):
    """Decorator that turns a function of (previous_stage, *args) into a
    filter usable two ways:

    1. As a method on base (normally OutputStage), for method chaining::

           reader.split_lines().map(str.upper).output()

    2. As a module-level function that takes only the remaining arguments and
       returns a thunk, for use with the combinators::

           compose(split_lines(), map(str.upper), output())

    alias is an alternative name or a list of them.
    """
    def inner(func):
        names = [func.__name__,]
        if alias:
            names += alias if isinstance(alias, list) else [alias]
        thunk = _ThunkBuilder(func)
        for name in names:
            setattr(base, name, func)
            func.__globals__[name] = thunk
        return thunk
    return inner


class DirectOutputStageMixin:
    """Interface for output stages driven directly by the scheduler
    (schedule_recurring(), schedule_periodic(), schedule_polling()).
    """
    def _observe(self):
        """Produce at most one event and dispatch it. Return False if no data
        was available yet. schedule_polling() then waits before asking again.
        """
        raise NotImplementedError

    def _cancel(self):
        """Called by the scheduler when the stage is descheduled before its
        stream ended. Release resources here.
        """
        pass


class IterableAsOutputStage(OutputStage, DirectOutputStageMixin):
    """Turn any iterator into an output stage. One item is taken per
    _observe() call.
    """
    def __init__(self, iterable, name=None):
        super().__init__()
        self.iterable = iter(iterable)
        self.name = name

    def _observe(self):
        try:
            event = self.iterable.__next__()
        except StopIteration:
            self._close()
            self._dispatch_completed()
        except FatalError:
            self._close()
            raise
        except Exception as e:
            # Non-fatal: this stream ends, other schedules keep running.
            tb.print_exc()
            self._close()
            self._dispatch_error(e)
        else:
            self._dispatch_next(event)

    def _close(self):
        """Release anything held by the iterator. Called once the stream
        ends, or when cancelled.
        """
        pass

    def _cancel(self):
        self._close()
        if not self._is_closed():
            self._dispatch_completed()

    def __str__(self):
        return self.name if self.name else super().__str__()

def from_iterable(i):
    return IterableAsOutputStage(i)

def from_list(l):
    return IterableAsOutputStage(iter(l))


class Scheduler:
    """Wrap an asyncio event loop and drive output stages on it.
    Each schedule_* method returns a callable that cancels the schedule.
    run_forever() returns once no schedules are left.
    """
    def __init__(self, event_loop):
        self.event_loop = event_loop
        self.active_schedules = {} # output stage -> event loop handle
        # If a callback raises, we remember the exception, stop everything,
        # and re-raise it from run_forever().
        self.fatal_error = None
        def exception_handler(loop, context):
            assert loop==self.event_loop
            self.fatal_error = context.get('exception')
            self.stop()
        self.event_loop.set_exception_handler(exception_handler)

    def _remove_from_active_schedules(self, output_stage):
        del self.active_schedules[output_stage]
        if len(self.active_schedules)==0:
            logger.info("No more active schedules, will exit event loop")
            self.stop()

    def _make_cancel(self, output_stage):
        def cancel():
            try:
                handle = self.active_schedules[output_stage]
            except KeyError:
                raise ScheduleError("Attempt to de-schedule %s, which does not have an active schedule" %
                                    output_stage)
            logger.debug("canceling schedule of %s", output_stage)
            handle.cancel()
            output_stage._cancel()
            # _cancel() may have caused a nested cancel from downstream
            if output_stage in self.active_schedules:
                self._remove_from_active_schedules(output_stage)
        return cancel

    def _run_step(self, output_stage, next_delay):
        """Run one _observe() step and reschedule. next_delay maps the result
        of _observe() to the delay before the following step.
        """
        def drop():
            output_stage._cancel()
            self._remove_from_active_schedules(output_stage)
        def run():
            assert output_stage in self.active_schedules
            if not output_stage._has_connections():
                drop() # no demand, so we do not read at all
                return
            result = output_stage._observe()
            if output_stage not in self.active_schedules:
                return # cancelled from inside the dispatch
            if not output_stage._has_connections():
                # completed, failed, or everyone downstream disconnected
                drop()
                return
            delay = next_delay(result)
            if delay>0:
                handle = self.event_loop.call_later(delay, run)
            else:
                handle = self.event_loop.call_soon(run)
            self.active_schedules[output_stage] = handle
        return run

    def schedule_recurring(self, output_stage):
        """Call _observe() again as soon as the previous call returns. Only
        use this for stages whose _observe() never blocks, such as iterables.
        """
        run = self._run_step(output_stage, lambda result: 0)
        self.active_schedules[output_stage] = self.event_loop.call_soon(run)
        return self._make_cancel(output_stage)

    def schedule_periodic(self, output_stage, interval):
        run = self._run_step(output_stage, lambda result: interval)
        self.active_schedules[output_stage] = \
            self.event_loop.call_later(interval, run)
        return self._make_cancel(output_stage)

    def schedule_polling(self, output_stage, interval=None):
        """Drive an output stage that is sometimes out of data, like a tailed
        file at its current end. As long as _observe() produces something, it
        is called again right away. When it returns False, the next call
        happens after interval seconds (by default the stage's poll_interval).
        The wait is an event loop timer, so no thread is blocked.
        """
        if interval is None:
            interval = output_stage.poll_interval
        run = self._run_step(output_stage,
                             lambda result: interval if result is False else 0)
        self.active_schedules[output_stage] = self.event_loop.call_soon(run)
        return self._make_cancel(output_stage)

    def run_forever(self):
        """Run the event loop until all schedules are gone or stop() is
        called. Re-raises a fatal error that stopped the loop.
        """
        try:
            self.event_loop.run_forever()
        except KeyboardInterrupt:
            print("Active output stages: %s" %
                  ', '.join([str(o) for o in self.active_schedules.keys()]))
            raise
        if self.fatal_error is not None:
            raise ScheduleError("Scheduler aborted due to fatal error") \
                from self.fatal_error

    def stop(self):
        """Cancel every active schedule, releasing the resources of the
        stages, then stop the event loop.
        """
        active = self.active_schedules
        self.active_schedules = {}
        for (output_stage, handle) in active.items():
            handle.cancel()
            output_stage._cancel()
        self.event_loop.stop()
