"""
Shared fixtures: synthetic SH fields with closed-form amplitudes
"""

import numpy as np
import pytest
from dipy.reconst.shm import sph_harm_ind_list

# Real SH scale factors of the zonal (m = 0) functions used below
Y00 = 1.0 / (2.0 * np.sqrt(np.pi))
Y20_SCALE = np.sqrt(5.0 / (16.0 * np.pi))  # Y20 = Y20_SCALE * (3 cos^2 - 1)


class ConstantField:
    """Field with the same coefficients at every position"""

    def __init__(self, coeffs: np.ndarray, lmax: int):
        self.coeffs = np.asarray(coeffs, dtype=np.float64)
        self.lmax = lmax

    def query_coefficients(self, position):
        return self.coeffs.copy()


class EmptyField:
    """Field that is undefined everywhere"""

    lmax = 2

    def query_coefficients(self, position):
        return None


def zonal_coefficients(c00: float = 0.0, c20: float = 0.0, lmax: int = 2) -> np.ndarray:
    """Coefficients of ``c00 * Y00 + c20 * Y20`` (axially symmetric about z)"""
    m_values, l_values = sph_harm_ind_list(lmax)
    coeffs = np.zeros(len(m_values))
    coeffs[(l_values == 0) & (m_values == 0)] = c00
    coeffs[(l_values == 2) & (m_values == 0)] = c20
    return coeffs


@pytest.fixture
def flat_coeffs():
    """Amplitude 1 in every direction"""
    return zonal_coefficients(c00=1.0 / Y00)


@pytest.fixture
def lobe_coeffs():
    """Amplitude (3 cos^2 - 1) / 2 about z: 1 along z, -0.5 in the xy-plane"""
    return zonal_coefficients(c20=0.5 / Y20_SCALE)


@pytest.fixture
def flat_field(flat_coeffs):
    return ConstantField(flat_coeffs, lmax=2)


@pytest.fixture
def lobe_field(lobe_coeffs):
    return ConstantField(lobe_coeffs, lmax=2)


@pytest.fixture
def empty_field():
    return EmptyField()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
