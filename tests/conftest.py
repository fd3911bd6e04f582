import matplotlib

# Must be selected before pyplot is imported anywhere.
matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def diagonal_points():
    return [[0, 0], [1, 1], [2, 2], [3, 3]]


@pytest.fixture
def write_lines(tmp_path):
    """Returns function to write lines into a file under tmp_path, returning path."""

    def write(name, lines):
        path = tmp_path / name
        path.write_text("".join(f"{line}\n" for line in lines))
        return str(path)

    return write
