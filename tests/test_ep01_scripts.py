import json
import sys

import pytest

import scripts.ep01_convolution_speedup as speedup_script
import scripts.ep01_plot as plot_script
import scripts.print_versions as print_versions


def _run(monkeypatch, module, *argv):
    monkeypatch.setattr(sys, "argv", [module.__name__, *map(str, argv)])
    return module.main()


@pytest.fixture
def cpu_results(monkeypatch, tmp_path):
    results_dir = tmp_path / "results"
    code = _run(
        monkeypatch, speedup_script,
        "--device", "cpu", "--sizes", "32,48", "--n-repeat", "2", "--n-warmup", "0",
        "--out-dir", results_dir,
    )
    assert code == 0
    return results_dir


class TestSpeedupScript:

    def test_writes_one_record_per_size(self, cpu_results):
        record = json.loads((cpu_results / "ep01_speedup_cpu.json").read_text())
        assert record["device"] == "cpu"
        assert record["n_repeat"] == 2
        assert "numpy" in record["versions"]
        assert [r["size"] for r in record["results"]] == [32, 48]

    def test_record_contents(self, cpu_results):
        record = json.loads((cpu_results / "ep01_speedup_cpu.json").read_text())
        first = record["results"][0]
        assert first["output_shape"] == [32 + 14, 32 + 14]
        assert first["results_match"] is True
        assert first["host"]["n_repeat"] == 2
        assert first["device"]["backend"] == "cpu"
        assert first["speedup"] > 0
        assert first["speedup_with_transfers"] > 0

    def test_json_out_overrides_out_dir(self, monkeypatch, tmp_path):
        out = tmp_path / "custom" / "speed.json"
        code = _run(monkeypatch, speedup_script, "--device", "cpu", "--sizes", "16",
                    "--n-repeat", "1", "--json-out", out)
        assert code == 0
        assert json.loads(out.read_text())["results"][0]["size"] == 16

    @pytest.mark.parametrize("sizes", ["abc", "", "0", "16,-4"])
    def test_invalid_sizes(self, monkeypatch, tmp_path, sizes):
        with pytest.raises(SystemExit, match="Invalid --sizes"):
            _run(monkeypatch, speedup_script, "--device", "cpu", "--sizes", sizes,
                 "--out-dir", tmp_path)

    def test_invalid_kernel_size(self, monkeypatch, tmp_path):
        with pytest.raises(SystemExit, match="Invalid arguments"):
            _run(monkeypatch, speedup_script, "--device", "cpu", "--sizes", "16",
                 "--kernel-size", "4", "--out-dir", tmp_path)


class TestPlots:

    def test_speedup_figure(self, monkeypatch, tmp_path, cpu_results):
        out_dir = tmp_path / "figures"
        code = _run(monkeypatch, plot_script, "speedup", "--results-dir", cpu_results,
                    "--out-dir", out_dir, "--device", "cpu")
        assert code == 0
        assert (out_dir / "ep01_speedup_cpu.png").stat().st_size > 0

    def test_arrays_figure(self, monkeypatch, tmp_path):
        out_dir = tmp_path / "figures"
        assert _run(monkeypatch, plot_script, "arrays", "--out-dir", out_dir) == 0
        assert (out_dir / "ep01_arrays.png").exists()

    def test_missing_results_are_skipped(self, tmp_path, capsys):
        assert plot_script.plot_speedup(tmp_path, tmp_path, device="cuda") == []
        assert "[skip]" in capsys.readouterr().out

    def test_missing_results_dir(self, monkeypatch, tmp_path):
        code = _run(monkeypatch, plot_script, "speedup", "--results-dir", tmp_path / "nope",
                    "--out-dir", tmp_path / "figures")
        assert code == 1

    def test_all_without_results_still_draws_arrays(self, monkeypatch, tmp_path, capsys):
        out_dir = tmp_path / "figures"
        code = _run(monkeypatch, plot_script, "all", "--results-dir", tmp_path / "nope",
                    "--out-dir", out_dir)
        assert code == 0
        assert (out_dir / "ep01_arrays.png").exists()
        assert not (out_dir / "ep01_speedup_cuda.png").exists()
        assert "[skip]" in capsys.readouterr().out


class TestPrintVersions:

    def test_snapshot(self):
        snapshot = print_versions.gather_snapshot()
        assert "numpy" in snapshot["packages"]
        assert "scipy" in snapshot["packages"]
        assert snapshot["python"]

    def test_json_out(self, monkeypatch, tmp_path):
        out = tmp_path / "versions.json"
        assert _run(monkeypatch, print_versions, "--json-out", out) == 0
        assert "packages" in json.loads(out.read_text())


def test_kernel_warmup_probe(monkeypatch, capsys):
    import scripts.test_kernel_warmup as warmup

    assert _run(monkeypatch, warmup, "--size", "64") == 0
    out = capsys.readouterr().out
    assert "No CUDA device" in out or "First call" in out
