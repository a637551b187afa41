"""
Unit tests for BAL file I/O and the command line tool
"""

import json
import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import build_scene

from bundle_adjust_bal import main as bal_main
from metricba.core.codec import SceneParameterCodec
from metricba.core.residual import ReprojectionResidual
from metricba.utils.io_utils import load_bal, save_bal


# two cameras looking down -Z at two points, BAL convention
BAL_TEXT = """2 2 4
0 0 -1.0e+01 5.0e+00
0 1 2.0e+01 -4.0e+00
1 0 -1.2e+01 6.0e+00
1 1 1.8e+01 -3.0e+00
0.0
0.0
0.0
0.0
0.0
-5.0
500.0
0.0
0.0
0.01
0.02
0.0
0.1
0.0
-5.0
520.0
0.001
0.0
0.1
0.2
0.3
-0.1
-0.05
0.2
"""


class TestLoadBal:
    """Test reading BAL files"""

    def test_load(self, tmp_path):
        path = tmp_path / "problem.txt"
        path.write_text(BAL_TEXT)

        structure, observations = load_bal(path)

        assert len(structure.views) == 2
        assert len(structure.points) == 2
        assert observations.observation_count() == 4
        assert observations.get_view(1).get(1) == (1, 18.0, 3.0)
        assert structure.cameras[1].model.f == 520.0
        np.testing.assert_array_equal(structure.get_point(1), [-0.1, -0.05, 0.2])

        # BAL t = (0, 0, -5) looking down -Z becomes +5 in front of the camera
        np.testing.assert_allclose(structure.views[0].world_to_view.T, [0.0, 0.0, 5.0])

    def test_projection_convention(self, tmp_path):
        """A point in front of a BAL camera lands at the BAL predicted pixel"""
        path = tmp_path / "problem.txt"
        path.write_text(BAL_TEXT)
        structure, observations = load_bal(path)

        # BAL: P = R X + t, p = -P / P.z, pixel = f * r(p) * p
        X = structure.get_point(0)
        P = X + np.array([0.0, 0.0, -5.0])
        p = -P[:2] / P[2]
        expected_x, expected_y = 500.0 * p

        residual_fn = ReprojectionResidual()
        residual_fn.configure(structure, observations)
        residual = residual_fn.evaluate(SceneParameterCodec().encode(structure))

        # residual = predicted - observed, with observed y negated on load
        assert residual[0] == pytest.approx(expected_x - (-10.0))
        assert residual[1] == pytest.approx(-expected_y - (-5.0))

    def test_malformed(self, tmp_path):
        path = tmp_path / "broken.txt"
        path.write_text("2 2 4\n0 0 1.0\n")

        with pytest.raises(ValueError, match="Malformed BAL file"):
            load_bal(path)

    def test_bad_index(self, tmp_path):
        path = tmp_path / "broken.txt"
        path.write_text(BAL_TEXT.replace("1 1 1.8e+01", "1 7 1.8e+01"))

        with pytest.raises(ValueError, match="point 7"):
            load_bal(path)


class TestSaveBal:
    """Test writing BAL files"""

    @pytest.mark.parametrize("name", ["problem.txt", "problem.txt.bz2"])
    def test_save_then_load(self, tmp_path, name):
        path = tmp_path / "problem.txt"
        path.write_text(BAL_TEXT)
        structure, observations = load_bal(path)

        saved = tmp_path / "out" / name
        save_bal(saved, structure, observations)
        again, again_obs = load_bal(saved)

        codec = SceneParameterCodec()
        np.testing.assert_allclose(codec.encode(again), codec.encode(structure), atol=1e-12)
        assert again_obs.get_view(1).get(1) == observations.get_view(1).get(1)

    def test_rejects_other_cameras(self, tmp_path):
        structure, observations = build_scene(with_rigid=False)

        with pytest.raises(ValueError):
            save_bal(tmp_path / "out.txt", structure, observations)


class TestCommandLine:
    """Test the bundle_adjust_bal entry point"""

    def test_run(self, tmp_path):
        path = tmp_path / "problem.txt"
        path.write_text(BAL_TEXT)
        output = tmp_path / "refined.txt"

        code = bal_main(["--input", str(path), "--output", str(output),
                         "--fix_first_view", "--max_nfev", "5", "--log_level", "WARNING"])

        assert code == 0
        assert output.exists()
        info = json.loads((tmp_path / "refined.txt.json").read_text())
        assert info["config"]["optimizer"]["max_nfev"] == 5
        assert info["result"]["final_cost"] <= info["result"]["initial_cost"]

    def test_config_file(self, tmp_path):
        path = tmp_path / "problem.txt"
        path.write_text(BAL_TEXT)
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"jacobian": {"rotation": "quaternion"}, "log_level": "ERROR"}))
        output = tmp_path / "refined.txt"

        code = bal_main(["--input", str(path), "--output", str(output), "--config", str(config),
                         "--fix_first_view", "--max_nfev", "3"])

        assert code == 0
        info = json.loads((tmp_path / "refined.txt.json").read_text())
        assert info["config"]["jacobian"]["rotation"] == "quaternion"

    def test_missing_input(self, tmp_path):
        code = bal_main(["--input", str(tmp_path / "missing.txt"), "--output", str(tmp_path / "out.txt")])
        assert code == 1
