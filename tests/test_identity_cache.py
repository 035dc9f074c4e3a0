"""Identity cache tests.

The same embedded value must always surface as the same host proxy, whether
it is reached by construction, by an operation result or by explicit wrap().
"""

import gc
import threading

import pytest

from pyglue import ForeignHandle, IdentityCache, identity_scope

from .fixtures.proxies import Countdown, Widget


class _Proxy:
    def __init__(self, handle):
        self.handle = handle


class TestIdentityCacheUnit:
    def test_get_or_create_builds_once(self):
        cache = IdentityCache()
        handle = ForeignHandle("rt", 1, "Widget")
        calls = []

        def factory():
            calls.append(1)
            return _Proxy(handle)

        first = cache.get_or_create(_Proxy, handle, factory)
        second = cache.get_or_create(_Proxy, ForeignHandle("rt", 1, "Widget"), factory)
        assert first is second
        assert len(calls) == 1

    def test_entries_are_per_proxy_type(self):
        cache = IdentityCache()
        handle = ForeignHandle("rt", 1, "Widget")

        class Other(_Proxy):
            pass

        a = cache.get_or_create(_Proxy, handle, lambda: _Proxy(handle))
        b = cache.get_or_create(Other, handle, lambda: Other(handle))
        assert a is not b
        assert len(cache) == 2

    def test_publish_keeps_existing_entry(self):
        cache = IdentityCache()
        handle = ForeignHandle("rt", 1, "Widget")
        first = _Proxy(handle)
        assert cache.publish(_Proxy, handle, first) is first
        assert cache.publish(_Proxy, handle, _Proxy(handle)) is first
        assert cache.lookup(_Proxy, handle) is first

    def test_strong_cache_never_evicts(self):
        cache = IdentityCache()
        handle = ForeignHandle("rt", 1, "Widget")
        cache.get_or_create(_Proxy, handle, lambda: _Proxy(handle))
        gc.collect()
        assert cache.lookup(_Proxy, handle) is not None

    def test_weak_cache_drops_unreferenced_proxies(self):
        cache = IdentityCache(weak=True)
        handle = ForeignHandle("rt", 1, "Widget")
        proxy = cache.get_or_create(_Proxy, handle, lambda: _Proxy(handle))
        assert cache.lookup(_Proxy, handle) is proxy

        del proxy
        gc.collect()
        assert cache.lookup(_Proxy, handle) is None

    def test_exception_proxies_are_held_weakly(self):
        class _Failure(_Proxy, Exception):
            pass

        cache = IdentityCache()
        handle = ForeignHandle("rt", 1, "Failure")
        failure = cache.get_or_create(_Failure, handle, lambda: _Failure(handle))
        assert cache.get_or_create(_Failure, handle, lambda: _Failure(handle)) is failure
        assert len(cache) == 1

        del failure
        gc.collect()
        assert cache.lookup(_Failure, handle) is None
        assert len(cache) == 0

    def test_concurrent_wrappers_observe_one_winner(self):
        cache = IdentityCache()
        handle = ForeignHandle("rt", 1, "Widget")
        barrier = threading.Barrier(16)
        results = []

        def worker():
            barrier.wait()
            results.append(cache.get_or_create(_Proxy, handle, lambda: _Proxy(handle)))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(r) for r in results}) == 1


class TestIdentityScope:
    def test_scope_installs_and_restores_instance(self):
        before = IdentityCache.get_instance()
        with identity_scope() as scoped:
            assert IdentityCache.get_instance() is scoped
            assert scoped is not before
        assert IdentityCache.get_instance() is before

    def test_scope_clears_entries_on_exit(self):
        handle = ForeignHandle("rt", 1, "Widget")
        with identity_scope() as scoped:
            scoped.get_or_create(_Proxy, handle, lambda: _Proxy(handle))
            assert len(scoped) == 1
        assert len(scoped) == 0


class TestProxyIdentity:
    """Identity through real crossings."""

    def test_wrap_same_handle_twice(self, glue):
        widget = Widget("w")
        handle = widget.__foreign_handle__
        assert Widget.wrap(handle) is Widget.wrap(handle)
        assert Widget.wrap(handle) is widget

    def test_operation_returning_self(self, glue):
        widget = Widget("w")
        assert widget.self_ref() is widget

    def test_repeated_results_share_a_proxy(self, glue):
        widget = Widget("w")
        first = widget.child()
        assert widget.child() is first
        assert widget.children() == [first, first]
        assert widget.children()[1] is first

    def test_distinct_values_get_distinct_proxies(self, glue):
        widget = Widget("w")
        a = widget.fresh()
        b = widget.fresh()
        assert a is not b
        assert a.get_name() == b.get_name() == "w.fresh"

    def test_wrap_null_is_none(self, glue, runtime):
        assert Widget.wrap(ForeignHandle.null(runtime.identifier)) is None
        assert Widget.wrap(None) is None

    def test_null_result_becomes_none(self, glue):
        assert Widget("w").nothing() is None

    def test_fresh_construction_is_published(self, glue):
        widget = Widget("w")
        assert glue.identity.lookup(Widget, widget.__foreign_handle__) is widget

    def test_iterator_proxy_identity(self, glue):
        countdown = Countdown(2)
        assert Countdown.wrap(countdown.__foreign_handle__) is countdown

    def test_weak_policy_end_to_end(self, runtime):
        from pyglue import GlueContext, context_scope

        with identity_scope(weak=True) as cache:
            context = GlueContext(runtime, identity_cache=cache)
            with context_scope(context):
                widget = Widget("w")
                child = widget.child()
                assert widget.child() is child
                handle = child.__foreign_handle__

                del child
                gc.collect()
                assert cache.lookup(Widget, handle) is None
                # A new proxy is built on the next crossing, then kept while referenced.
                again = widget.child()
                assert widget.child() is again


@pytest.mark.parametrize("weak", [False, True])
def test_clear_empties_cache(weak):
    cache = IdentityCache(weak=weak)
    handle = ForeignHandle("rt", 1, "Widget")
    proxy = cache.get_or_create(_Proxy, handle, lambda: _Proxy(handle))
    cache.clear()
    assert len(cache) == 0
    assert proxy.handle is handle
