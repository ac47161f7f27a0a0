"""Pytest configuration and shared fixtures."""
import pytest

from paramkit import reset_settings

from sample_objects import GaussianKernel, LinearKernel, Machine


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reset process-wide settings around each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def kernel():
    """Provide a Gaussian kernel with a non-default width."""
    return GaussianKernel(width=2.5)


@pytest.fixture
def linear_kernel():
    """Provide a linear kernel."""
    return LinearKernel(scale=0.5)


@pytest.fixture
def machine(kernel):
    """Provide a machine holding the kernel fixture."""
    machine = Machine()
    machine.put('kernel', kernel)
    return machine
