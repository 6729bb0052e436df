"""Tests for copy strategy resolution and fallback."""

import pytest

from subvoltools.backup import CopyStrategy, check_strategy, fallback_of, resolve_strategy
from subvoltools.exceptions import DependencyUnavailable


class TestResolveStrategy:
    def test_available_no_warnings(self, make_probe):
        probe = make_probe(tools={"tar"}, cpus=4, terminal=True)
        for strategy in CopyStrategy:
            res = resolve_strategy(strategy, probe)
            assert res.resolved is strategy
            assert res.warnings == ()
            assert res.degraded is False

    def test_parallel_on_bare_host_ends_at_plain(self, make_probe):
        res = resolve_strategy(CopyStrategy.PARALLEL, make_probe())
        assert res.requested is CopyStrategy.PARALLEL
        assert res.resolved is CopyStrategy.PLAIN_COPY
        assert res.degraded is True
        assert len(res.warnings) == 3
        for w in res.warnings:
            assert "requested parallel" in w
        assert "falling back to archive" in res.warnings[0]
        assert "falling back to plain-copy" in res.warnings[-1]

    def test_archive_without_tar(self, make_probe):
        res = resolve_strategy(CopyStrategy.ARCHIVE, make_probe(terminal=True))
        assert res.resolved is CopyStrategy.PROGRESS_COPY
        assert res.warnings == (
            "tar not found for archive, falling back to progress-copy (requested archive)",
        )

    def test_parallel_single_cpu_uses_archive(self, make_probe):
        res = resolve_strategy(CopyStrategy.PARALLEL, make_probe(tools={"tar"}, cpus=1))
        assert res.resolved is CopyStrategy.ARCHIVE
        assert len(res.warnings) == 1

    def test_plain_always_available(self, make_probe):
        res = resolve_strategy(CopyStrategy.PLAIN_COPY, make_probe())
        assert res.resolved is CopyStrategy.PLAIN_COPY
        assert res.warnings == ()

    @pytest.mark.parametrize("method, expected", [
        ("tar", CopyStrategy.ARCHIVE),
        ("parallel", CopyStrategy.PARALLEL),
        ("cp", CopyStrategy.PROGRESS_COPY),
        ("plain", CopyStrategy.PLAIN_COPY),
        ("plain-copy", CopyStrategy.PLAIN_COPY),
    ])
    def test_method_names(self, make_probe, method, expected):
        probe = make_probe(tools={"tar"}, cpus=4, terminal=True)
        assert resolve_strategy(method, probe).resolved is expected

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            CopyStrategy.from_method("rsync")


class TestFallbackChain:
    def test_chain_terminates_without_cycles(self):
        for start in CopyStrategy:
            seen = []
            current = start
            while current is not None:
                assert current not in seen
                seen.append(current)
                current = fallback_of(current)
            assert seen[-1] is CopyStrategy.PLAIN_COPY

    def test_order(self):
        assert fallback_of(CopyStrategy.PARALLEL) is CopyStrategy.ARCHIVE
        assert fallback_of(CopyStrategy.ARCHIVE) is CopyStrategy.PROGRESS_COPY
        assert fallback_of(CopyStrategy.PROGRESS_COPY) is CopyStrategy.PLAIN_COPY
        assert fallback_of(CopyStrategy.PLAIN_COPY) is None

    def test_check_strategy_reason(self, make_probe):
        with pytest.raises(DependencyUnavailable) as exc_info:
            check_strategy(CopyStrategy.ARCHIVE, make_probe())
        assert exc_info.value.strategy is CopyStrategy.ARCHIVE
        assert exc_info.value.reason == "tar not found"
