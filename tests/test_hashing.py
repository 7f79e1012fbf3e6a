"""
Tests for hashing and provenance sidecars.
"""

import pytest

from incident_atlas.hashing import (
    hash_dict,
    hash_file,
    hash_string,
    read_metadata_sidecar,
    sidecar_path_for,
    write_metadata_sidecar,
)


class TestHashing:
    """Tests for content hashes."""

    def test_hash_file_matches_string(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"incident")
        assert hash_file(path) == hash_string("incident")

    def test_hash_file_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            hash_file(tmp_path / "missing.txt")

    def test_hash_dict_ignores_key_order(self):
        assert hash_dict({"k": 3, "max_iter": 100}) == hash_dict({"max_iter": 100, "k": 3})

    def test_hash_dict_detects_change(self):
        assert hash_dict({"k": 3}) != hash_dict({"k": 4})


class TestSidecars:
    """Tests for metadata sidecar files."""

    def test_sidecar_path(self, tmp_path):
        path = sidecar_path_for("data/processed/clusters/cluster_centers.csv", tmp_path)
        assert path == tmp_path / "cluster_centers_metadata.json"

    def test_write_and_read(self, tmp_path, sample_csv):
        output = tmp_path / "date_counts.csv"
        output.write_text("date,count\n")
        config = {"clustering": {"k": 3}}

        written = write_metadata_sidecar(
            output_path=output,
            inputs={"raw": str(sample_csv), "gone": str(tmp_path / "gone.csv")},
            config=config,
            run_id="test_run",
            extra={"n_dates": 3},
            metadata_dir=tmp_path,
        )
        metadata = read_metadata_sidecar(output, metadata_dir=tmp_path)

        assert written.exists()
        assert metadata["run_id"] == "test_run"
        assert metadata["config_digest"] == hash_dict(config)
        assert metadata["inputs"]["raw"]["hash"] == hash_file(sample_csv)
        assert metadata["inputs"]["gone"]["missing"] is True
        assert metadata["output"]["hash"] == hash_file(output)
        assert metadata["extra"] == {"n_dates": 3}
        assert "python" in metadata["versions"]
        assert set(metadata["git"]) == {"commit", "dirty"}

    def test_read_missing_sidecar(self, tmp_path):
        assert read_metadata_sidecar(tmp_path / "nothing.csv", metadata_dir=tmp_path) is None
