# conftest.py
import matplotlib
import pytest


@pytest.fixture(autouse=True)
def agg_backend():
    """Plots in the test-suite never open a window."""
    matplotlib.use('Agg')
