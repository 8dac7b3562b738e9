"""
Unit tests for the instance classifier (vaultprune/retention/classifier.py).
"""

import pytest

from vaultprune.retention import (
    ArchiveMatchSpec, Classification, ConfigurationError, LogLevel, Role, aggregate, classify, classify_name
)
from vaultprune.retention.classifier import is_first_volume


@pytest.fixture
def spec():
    return ArchiveMatchSpec(base_name='Job [2025-07-05]', primary_extension='.7z')


class TestClassifyName:
    """Test the ordered classification rules."""

    def test_split_volumes_and_manifest_share_key(self, spec):
        """All parts and the manifest of one run belong to one instance."""
        names = [
            'Job [2025-07-05].7z.001',
            'Job [2025-07-05].7z.002',
            'Job [2025-07-05].7z.manifest.sha256',
            'Job [2025-07-05].7z.003',
        ]

        results = [classify_name(n, spec) for n in names]

        assert {r.key for r in results} == {'Job [2025-07-05].7z'}
        assert [r.role for r in results] == [Role.VOLUME, Role.VOLUME, Role.MANIFEST, Role.VOLUME]
        assert [r.part for r in results] == ['001', '002', None, '003']

    def test_single_primary_file(self, spec):
        result = classify_name('Job [2025-07-05].7z', spec)

        assert result.key == 'Job [2025-07-05].7z'
        assert result.role is Role.PRIMARY

    def test_volume_with_more_than_three_digits(self, spec):
        result = classify_name('Job [2025-07-05].7z.1024', spec)

        assert result.role is Role.VOLUME
        assert result.part == '1024'

    def test_sfx_primary(self, spec):
        result = classify_name('Job [2025-07-05].exe', spec)

        assert result.key == 'Job [2025-07-05].exe'
        assert result.role is Role.SFX

    def test_sfx_manifest_groups_with_sfx(self, spec):
        result = classify_name('Job [2025-07-05].exe.manifest.sha256', spec)

        assert result.key == 'Job [2025-07-05].exe'
        assert result.role is Role.MANIFEST

    def test_unrelated_name_is_ignored(self, spec):
        """Names of other jobs are never grouped with this job."""
        assert classify_name('OtherJob [2025-07-05].7z', spec) is None
        assert classify_name('readme.txt', spec) is None

    def test_prefix_only_match_is_heuristic(self, spec):
        """A two digit part number matches no naming scheme."""
        result = classify_name('Job [2025-07-05].7z.12', spec)

        assert result.role is Role.HEURISTIC
        assert result.key == 'Job [2025-07-05].12'

    def test_heuristic_without_suffix(self, spec):
        result = classify_name('Job [2025-07-05]', spec)

        assert result.role is Role.HEURISTIC
        assert result.key == 'Job [2025-07-05]'

    def test_regex_characters_in_base_name(self):
        """Brackets and dots in the base name are matched literally."""
        spec = ArchiveMatchSpec(base_name='a.b[1]', primary_extension='7z')

        assert classify_name('a.b[1].7z.001', spec).key == 'a.b[1].7z'
        assert classify_name('axb[1].7z.001', spec) is None

    def test_date_stamp_is_part_of_key(self):
        spec = ArchiveMatchSpec(base_name='Job', primary_extension='.7z')

        first = classify_name('Job [2025-07-04].7z.001', spec)
        second = classify_name('Job [2025-07-05].7z.001', spec)

        assert first.key != second.key

    def test_base_name_shared_by_two_jobs(self):
        """A job never claims files of a job whose name merely starts with its own."""
        job = ArchiveMatchSpec(base_name='Job', primary_extension='.7z', include_heuristic=True)
        archive_job = ArchiveMatchSpec(base_name='JobArchive', primary_extension='.7z')
        names = [
            'Job [2025-07-05].7z',
            'JobArchive [2025-07-05].7z',
            'JobArchive [2025-07-05].7z.001',
            'JobArchive [2025-07-05].7z.manifest.sha256',
            'JobArchive.log',
        ]

        assert [classify_name(n, job) is not None for n in names] == [True, False, False, False, False]
        assert classify_name('JobArchive [2025-07-05].7z', archive_job).role is Role.PRIMARY

    def test_digit_after_base_name_belongs_to_job(self):
        spec = ArchiveMatchSpec(base_name='B', primary_extension='.7z')

        assert classify_name('B1.7z', spec).role is Role.PRIMARY
        assert classify_name('B_2025-07-05.7z', spec).role is Role.PRIMARY
        assert classify_name('Backup.7z', spec) is None

    def test_sfx_extension_with_7z_runs(self):
        """With '.exe' as primary, '.7z' runs and their manifests are alternate primaries."""
        spec = ArchiveMatchSpec(base_name='Job', primary_extension='.exe')

        assert classify_name('Job [2025-07-05].exe', spec) == Classification('Job [2025-07-05].exe', Role.PRIMARY)
        assert classify_name('Job [2025-07-05].exe.manifest.sha256', spec) == Classification(
            'Job [2025-07-05].exe', Role.MANIFEST
        )
        assert classify_name('Job [2025-07-04].7z', spec) == Classification('Job [2025-07-04].7z', Role.SFX)
        assert classify_name('Job [2025-07-04].7z.manifest.sha256', spec) == Classification(
            'Job [2025-07-04].7z', Role.MANIFEST
        )

    def test_sfx_extension_groups_into_one_instance_per_run(self, make_entry):
        spec = ArchiveMatchSpec(base_name='Job', primary_extension='.exe')
        entries = [
            make_entry('Job [2025-07-05].exe', hours=24),
            make_entry('Job [2025-07-05].exe.manifest.sha256', hours=24),
            make_entry('Job [2025-07-04].7z'),
            make_entry('Job [2025-07-04].7z.manifest.sha256'),
        ]

        instances = aggregate(entries, spec)

        assert sorted(instances) == ['Job [2025-07-04].7z', 'Job [2025-07-05].exe']
        assert all(len(i.files) == 2 for i in instances.values())

    def test_manifest_never_becomes_alternate_primary(self, spec):
        result = classify_name('Job [2025-07-05].manifest.sha256', spec)

        assert result.role is Role.HEURISTIC

    def test_digit_only_suffix_is_not_alternate_primary(self):
        spec = ArchiveMatchSpec(base_name='Job', primary_extension='.exe')

        assert classify_name('Job [2025-07-05].7z.001', spec).role is Role.HEURISTIC

    def test_is_first_volume(self, spec):
        assert is_first_volume(classify_name('Job [2025-07-05].7z.001', spec))
        assert not is_first_volume(classify_name('Job [2025-07-05].7z.002', spec))
        assert not is_first_volume(classify_name('Job [2025-07-05].7z', spec))


class TestClassify:
    """Test classification of listed entries."""

    def test_heuristic_match_logged_at_debug(self, spec, make_entry, run_log):
        result = classify(make_entry('Job [2025-07-05].tmp2'), spec, run_log)

        assert result.role is Role.SFX
        assert not run_log.has_level(LogLevel.DEBUG)

        result = classify(make_entry('Job [2025-07-05].7z.99'), spec, run_log)

        assert result.role is Role.HEURISTIC
        assert run_log.has_level(LogLevel.DEBUG)


class TestArchiveMatchSpec:
    """Test match spec validation."""

    def test_extension_normalised(self):
        assert ArchiveMatchSpec('Job', '7z').primary_extension == '.7z'
        assert ArchiveMatchSpec('Job', ' .zip ').primary_extension == '.zip'

    @pytest.mark.parametrize('base_name,extension', [('', '.7z'), ('Job', ''), ('Job', '.')])
    def test_invalid_spec_rejected(self, base_name, extension):
        with pytest.raises(ConfigurationError):
            ArchiveMatchSpec(base_name, extension)
