"""
Unit tests for the OID checkpoint store.
"""

from delpro_exporter.checkpoint import DEFAULT_OID_FILE, OIDCheckpoint


class TestOIDCheckpoint:
    """Test loading and saving the last processed OID."""

    def test_missing_file_loads_zero(self, tmp_path):
        assert OIDCheckpoint(tmp_path / "missing.txt").load() == 0

    def test_save_and_load(self, checkpoint):
        assert checkpoint.save(123456) is True

        assert checkpoint.load() == 123456
        assert checkpoint.path.read_text() == "123456"

    def test_load_tolerates_whitespace(self, tmp_path):
        path = tmp_path / "oid.txt"
        path.write_text("  789\n")

        assert OIDCheckpoint(path).load() == 789

    def test_garbage_loads_zero(self, tmp_path):
        path = tmp_path / "oid.txt"
        path.write_text("not-a-number")

        assert OIDCheckpoint(path).load() == 0

    def test_save_failure_is_reported_not_raised(self, tmp_path):
        checkpoint = OIDCheckpoint(tmp_path / "missing-dir" / "oid.txt")

        assert checkpoint.save(42) is False

    def test_default_path_in_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        checkpoint = OIDCheckpoint()

        assert checkpoint.path == tmp_path / DEFAULT_OID_FILE
