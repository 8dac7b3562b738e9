"""
Unit tests for the instance aggregator (vaultprune/retention/aggregator.py).
"""

from datetime import datetime, timezone

import pytest

from vaultprune.retention import ArchiveMatchSpec, LogLevel, aggregate


@pytest.fixture
def spec():
    return ArchiveMatchSpec(base_name='Job', primary_extension='.7z')


class TestAggregate:
    """Test grouping of entries into instances."""

    def test_groups_parts_into_instances(self, spec, make_entry):
        entries = [
            make_entry('Job [2025-07-05].7z.001', hours=24),
            make_entry('Job [2025-07-05].7z.002', hours=25),
            make_entry('Job [2025-07-05].7z.manifest.sha256', hours=26),
            make_entry('Job [2025-07-06].7z', hours=48),
            make_entry('Other [2025-07-05].7z', hours=24),
        ]

        instances = aggregate(entries, spec)

        assert set(instances) == {'Job [2025-07-05].7z', 'Job [2025-07-06].7z'}
        split = instances['Job [2025-07-05].7z']
        assert [f.name for f in split.files] == [
            'Job [2025-07-05].7z.001',
            'Job [2025-07-05].7z.002',
            'Job [2025-07-05].7z.manifest.sha256',
        ]
        assert split.total_size == 300

    def test_duplicate_listing_counted_once(self, spec, make_entry):
        entries = [make_entry('Job [2025-07-05].7z.001'), make_entry('Job [2025-07-05].7z.001')]

        instances = aggregate(entries, spec)

        assert len(instances['Job [2025-07-05].7z'].files) == 1

    def test_heuristic_entries_excluded_by_default(self, spec, make_entry, run_log):
        entries = [make_entry('Job-notes'), make_entry('Job [2025-07-05].7z')]

        instances = aggregate(entries, spec, run_log)

        assert list(instances) == ['Job [2025-07-05].7z']
        assert run_log.has_level(LogLevel.WARNING)

    def test_heuristic_entries_included_when_enabled(self, make_entry):
        spec = ArchiveMatchSpec(base_name='Job', primary_extension='.7z', include_heuristic=True)

        instances = aggregate([make_entry('Job-notes')], spec)

        assert list(instances) == ['Job']

    def test_empty_listing(self, spec):
        assert aggregate([], spec) == {}


class TestRepresentativeTime:
    """Test the representative time rule precedence."""

    def test_first_volume_wins_over_listing_jitter(self, spec, make_entry):
        """The .001 part defines the time even when another part is older."""
        entries = [
            make_entry('Job [2025-07-05].7z.002', hours=1),
            make_entry('Job [2025-07-05].7z.001', hours=3),
            make_entry('Job [2025-07-05].7z.manifest.sha256', hours=2),
        ]

        instance = aggregate(entries, spec)['Job [2025-07-05].7z']

        assert instance.representative_time == datetime(2025, 7, 1, 5, 0, tzinfo=timezone.utc)

    def test_primary_time_without_volumes(self, spec, make_entry):
        entries = [
            make_entry('Job [2025-07-05].7z.manifest.sha256', hours=1),
            make_entry('Job [2025-07-05].7z', hours=4),
        ]

        instance = aggregate(entries, spec)['Job [2025-07-05].7z']

        assert instance.representative_time == datetime(2025, 7, 1, 6, 0, tzinfo=timezone.utc)

    def test_sfx_time(self, spec, make_entry):
        entries = [
            make_entry('Job [2025-07-05].exe.manifest.sha256', hours=1),
            make_entry('Job [2025-07-05].exe', hours=2),
        ]

        instance = aggregate(entries, spec)['Job [2025-07-05].exe']

        assert instance.representative_time == datetime(2025, 7, 1, 4, 0, tzinfo=timezone.utc)

    def test_earliest_time_as_fallback(self, spec, make_entry):
        """Volumes without a first part fall back to the earliest file."""
        entries = [
            make_entry('Job [2025-07-05].7z.003', hours=5),
            make_entry('Job [2025-07-05].7z.002', hours=4),
        ]

        instance = aggregate(entries, spec)['Job [2025-07-05].7z']

        assert instance.representative_time == datetime(2025, 7, 1, 6, 0, tzinfo=timezone.utc)
