"""
Unit tests for the retention orchestrator (vaultprune/retention/orchestrator.py).

Runs complete retention passes against an in-memory backend.
"""

import pytest

from vaultprune.retention import (
    ArchiveMatchSpec, LogLevel, RetentionStage, RunLog, TransferResult, apply_retention
)


@pytest.fixture
def spec():
    return ArchiveMatchSpec(base_name='B', primary_extension='.7z')


class TestApplyRetention:
    """Test full retention passes."""

    def test_end_to_end_single_file_instances(self, spec, make_entry, memory_backend):
        backend = memory_backend([
            make_entry('B1.7z', hours=1),
            make_entry('B2.7z', hours=2),
            make_entry('B3.7z', hours=3),
        ])

        result = apply_retention(backend, spec, keep_count=1)

        assert sorted(backend.delete_calls) == ['B1.7z', 'B2.7z']
        assert result.deleted_count == 2
        assert result.kept_count == 1
        assert result.instances_found == 3
        assert result.stage is RetentionStage.DONE
        assert result.succeeded
        assert list(backend.files) == ['B3.7z']

    def test_second_pass_is_a_no_op(self, spec, make_entry, memory_backend):
        backend = memory_backend([make_entry(f'B{n}.7z', hours=n) for n in range(1, 5)])

        first = apply_retention(backend, spec, keep_count=2)
        second = apply_retention(backend, spec, keep_count=2)

        assert first.deleted_count == 2
        assert second.deleted_count == 0
        assert second.failed_count == 0
        assert second.plan.is_empty

    def test_unlimited_keep_count(self, spec, make_entry, memory_backend):
        backend = memory_backend([make_entry('B1.7z'), make_entry('B2.7z', hours=1)])

        result = apply_retention(backend, spec, keep_count=0)

        assert backend.delete_calls == []
        assert result.kept_count == 2
        assert result.stage is RetentionStage.DONE

    def test_listing_failure_skips_retention(self, spec, memory_backend):
        run_log = RunLog()
        backend = memory_backend(list_error='connection refused')

        result = apply_retention(backend, spec, keep_count=1, run_log=run_log)

        assert result.stage is RetentionStage.LISTING
        assert result.listing_error == 'connection refused'
        assert not result.succeeded
        assert 'connection refused' in result.error_summary
        assert run_log.has_level(LogLevel.WARNING)
        assert not run_log.has_level(LogLevel.ERROR)

    def test_delete_failures_reported_not_raised(self, spec, make_entry, memory_backend):
        backend = memory_backend(
            [make_entry('B1.7z', hours=1), make_entry('B2.7z', hours=2), make_entry('B3.7z', hours=3)],
            fail_on={'B1.7z'}
        )

        result = apply_retention(backend, spec, keep_count=1)

        assert result.stage is RetentionStage.DONE
        assert result.deleted_count == 1
        assert result.failed_count == 1
        assert result.errors == ['B1.7z: permission denied: B1.7z']
        assert 'failed to delete 1 file(s)' in result.error_summary

    def test_already_absent_counted_separately(self, spec, make_entry, memory_backend):
        backend = memory_backend(
            [make_entry('B1.7z', hours=1), make_entry('B2.7z', hours=2)],
            vanish={'B1.7z'}
        )

        result = apply_retention(backend, spec, keep_count=1)

        assert result.absent_count == 1
        assert result.deleted_count == 0
        assert result.succeeded

    def test_dry_run_keeps_files(self, spec, make_entry, memory_backend):
        backend = memory_backend([make_entry('B1.7z', hours=1), make_entry('B2.7z', hours=2)])

        result = apply_retention(backend, spec, keep_count=1, dry_run=True)

        assert backend.delete_calls == []
        assert result.skipped_count == 1
        assert result.dry_run
        assert len(backend.files) == 2

    def test_result_logs_and_per_instance_log(self, spec, make_entry, memory_backend):
        run_log = RunLog()
        run_log.info('earlier line from the caller')
        backend = memory_backend([make_entry('B1.7z', hours=1), make_entry('B2.7z', hours=2)])

        result = apply_retention(backend, spec, keep_count=1, run_log=run_log)

        assert not any('earlier line' in line for line in result.logs)
        assert 'B1.7z' in result.per_instance_log
        assert any("Deleted 'B1.7z'" in line for line in result.per_instance_log['B1.7z'])

    def test_to_dict(self, spec, make_entry, memory_backend):
        backend = memory_backend([make_entry('B1.7z', hours=1), make_entry('B2.7z', hours=2)])

        data = apply_retention(backend, spec, keep_count=1, dry_run=True).to_dict()

        assert data['destination'] == 'memory://test'
        assert data['stage'] == 'done'
        assert data['stale_instances'][0]['key'] == 'B1.7z'
        assert data['outcomes'][0]['skip_reason'] == 'simulated'
        assert data['error_summary'] is None


class TestTransferResult:
    """Test merging retention results into transfer results."""

    def test_retention_failure_never_fails_transfer(self, spec, make_entry, memory_backend):
        backend = memory_backend(
            [make_entry('B1.7z', hours=1), make_entry('B2.7z', hours=2)],
            fail_on={'B1.7z'}
        )
        transfer = TransferResult(destination='nas', files_transferred=1)

        transfer.merge_retention(apply_retention(backend, spec, keep_count=1))

        assert transfer.success
        assert 'Retention failed' in transfer.error_message

    def test_clean_retention_leaves_no_error(self, spec, make_entry, memory_backend):
        backend = memory_backend([make_entry('B1.7z', hours=1)])
        transfer = TransferResult(destination='nas')

        transfer.merge_retention(apply_retention(backend, spec, keep_count=1))

        assert transfer.success
        assert transfer.error_message is None

    def test_add_error_appends(self):
        transfer = TransferResult(destination='nas')

        transfer.add_error('first')
        transfer.add_error('second')

        assert transfer.error_message == 'first; second'
