"""Unit tests for sctoppr.export: saving ToppFun results."""

import os

import pandas as pd
import pytest

from sctoppr.errors import ConfigurationError
from sctoppr.export import resolve_save_dir, sanitize_filename_part, topp_save
from sctoppr.model import ANNOTATION_COLUMNS


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_result(clusters=("A", "B"), per_cluster=2):
    rows = []
    for cluster in clusters:
        for i in range(per_cluster):
            rows.append({
                "Category": "GeneOntologyBiologicalProcess",
                "ID": f"GO:{i:07d}",
                "Name": f"process {i}",
                "PValue": 1e-6 * (i + 1),
                "QValueFDRBH": 1e-4 * (i + 1),
                "QValueFDRBY": 1e-3 * (i + 1),
                "QValueBonferroni": 1e-2 * (i + 1),
                "TotalGenes": 19000,
                "GenesInTerm": 100 + i,
                "GenesInQuery": 40,
                "GenesInTermInQuery": 10 - i,
                "Source": "",
                "URL": "",
                "Cluster": cluster,
            })
    return pd.DataFrame(rows, columns=ANNOTATION_COLUMNS + ["Cluster"])


# ---------------------------------------------------------------------------
# topp_save
# ---------------------------------------------------------------------------

class TestToppSave:

    def test_split_writes_one_file_per_cluster(self, tmp_path):
        paths = topp_save(_make_result(), save_dir=tmp_path, format="csv")
        assert [p.name for p in paths] == ["toppData_A.csv", "toppData_B.csv"]
        frame = pd.read_csv(paths[0])
        assert set(frame["Cluster"]) == {"A"}

    def test_no_split_single_file(self, tmp_path):
        paths = topp_save(
            _make_result(), filename="results", save_dir=tmp_path, split=False, format="tsv"
        )
        assert [p.name for p in paths] == ["results.tsv"]
        frame = pd.read_csv(paths[0], sep="\t")
        assert len(frame) == 4

    def test_csv_round_trip(self, tmp_path):
        result = _make_result()
        path, = topp_save(result, save_dir=tmp_path, split=False, format="csv")
        reread = pd.read_csv(path, keep_default_na=False)
        assert list(reread.columns) == list(result.columns)
        pd.testing.assert_frame_equal(reread, result, check_dtype=False)

    def test_xlsx(self, tmp_path):
        path, = topp_save(_make_result(), save_dir=tmp_path, split=False, format="xlsx")
        assert path.name == "toppData.xlsx"
        frame = pd.read_excel(path, sheet_name="toppData", engine="openpyxl")
        assert len(frame) == 4

    def test_spreadsheet_alias(self, tmp_path):
        path, = topp_save(_make_result(("A",)), save_dir=tmp_path, format="spreadsheet")
        assert path.suffix == ".xlsx"

    def test_save_twice_identical(self, tmp_path):
        path, = topp_save(_make_result(), save_dir=tmp_path, split=False, format="csv")
        first = path.read_bytes()
        topp_save(_make_result(), save_dir=tmp_path, split=False, format="csv")
        assert path.read_bytes() == first

    def test_invalid_format_writes_nothing(self, tmp_path):
        with pytest.raises(ConfigurationError, match="docx"):
            topp_save(_make_result(), save_dir=tmp_path, format="docx")
        assert list(tmp_path.iterdir()) == []

    def test_missing_directory(self, tmp_path):
        with pytest.raises(OSError, match="does not exist"):
            topp_save(_make_result(), save_dir=tmp_path / "nope", format="csv")

    def test_split_without_cluster_column(self, tmp_path, caplog):
        result = _make_result(("A",)).drop(columns=["Cluster"])
        with caplog.at_level("WARNING", logger="sctoppr.export"):
            paths = topp_save(result, save_dir=tmp_path, split=True, format="csv")
        assert [p.name for p in paths] == ["toppData.csv"]
        assert "single file" in caplog.text

    def test_defaults_to_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        paths = topp_save(_make_result(("A",)), split=False, format="csv")
        assert paths[0].parent.resolve() == tmp_path.resolve()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:

    def test_sanitize_filename_part(self):
        assert sanitize_filename_part("CD4+ T/NK: naive") == "CD4+ T_NK_ naive"

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="permissions not enforced")
    def test_unwritable_directory(self, tmp_path):
        locked = tmp_path / "locked"
        locked.mkdir()
        locked.chmod(0o500)
        try:
            with pytest.raises(OSError, match="not writable"):
                resolve_save_dir(locked)
        finally:
            locked.chmod(0o700)
